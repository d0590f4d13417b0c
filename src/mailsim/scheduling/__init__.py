"""Message scheduling and threading.

Modules:
    engine: ThreadScheduler and the pure schedule computation
    models: Batch results and scheduler errors
    countdown: Countdown labels for scheduled messages
"""

from src.mailsim.scheduling.countdown import format_countdown
from src.mailsim.scheduling.engine import (
    Mailer,
    ThreadScheduler,
    assign_send_times,
    reply_subject,
)
from src.mailsim.scheduling.models import BatchResult, MessageOutcome, SchedulerError

__all__ = [
    "BatchResult",
    "Mailer",
    "MessageOutcome",
    "SchedulerError",
    "ThreadScheduler",
    "assign_send_times",
    "format_countdown",
    "reply_subject",
]
