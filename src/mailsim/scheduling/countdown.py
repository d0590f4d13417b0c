"""Countdown text for scheduled messages.

Rendering is derived from the data model alone; it never drives sending.
"""

from __future__ import annotations

from datetime import datetime


# Messages this far past their scheduled time no longer show a countdown
STALE_AFTER_SECONDS = 5.0
SENDING_LABEL = "Sending..."


def format_countdown(scheduled: datetime | None, now: datetime) -> str | None:
    """Return the countdown label for a scheduled send.

    Args:
        scheduled: Scheduled send time, or None if not scheduled.
        now: Current time.

    Returns:
        None when unscheduled or stale, ``"Sending..."`` when due,
        ``"<m>m <s>s"`` with at least a minute left, otherwise ``"<s>s"``.

    Example:
        >>> format_countdown(now + timedelta(seconds=95), now)
        '1m 35s'
    """
    if scheduled is None:
        return None
    remaining = (scheduled - now).total_seconds()
    if remaining <= -STALE_AFTER_SECONDS:
        return None
    if remaining <= 0:
        return SENDING_LABEL
    total_seconds = int(remaining)
    minutes, seconds = divmod(total_seconds, 60)
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"
