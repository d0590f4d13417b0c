"""Clock abstraction used by the send scheduler.

The scheduler never reads wall-clock time or sleeps directly; it goes through
a ``Clock`` so tests can substitute a fake that advances instantly.

Classes:
    Clock: Protocol with ``now()`` and an awaitable ``sleep()``.
    SystemClock: Real UTC clock backed by ``asyncio.sleep``.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Source of the current time and of cooperative waits."""

    def now(self) -> datetime:
        """Return the current timezone-aware time."""
        ...

    async def sleep(self, seconds: float) -> None:
        """Suspend the calling task for ``seconds``."""
        ...


class SystemClock:
    """Clock backed by the system time and the running event loop."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))
