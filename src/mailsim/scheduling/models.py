"""Scheduling result models.

Classes:
    MessageOutcome: What happened to one message in a batch.
    BatchResult: Summary of one ``schedule_and_send`` run.
    SchedulerError: Raised when a send cannot be started.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal


OutcomeStatus = Literal["sent", "skipped", "failed", "no_recipients", "cancelled"]


class SchedulerError(Exception):
    """Raised when a batch or immediate send cannot be started."""

    pass


@dataclass(frozen=True)
class MessageOutcome:
    """What happened to one message in a batch.

    Attributes:
        message_id: Id of the message.
        status: sent, skipped, failed, no_recipients or cancelled.
        transport_message_id: ``Message-ID`` assigned when sent.
        error: Failure description when status is failed.
    """

    message_id: str
    status: OutcomeStatus
    transport_message_id: str | None = None
    error: str | None = None


@dataclass
class BatchResult:
    """Summary of one batch.

    Attributes:
        sent_count: Messages delivered.
        total_count: Messages in the batch.
        skipped_account_names: Senders without mail credentials, in first
            occurrence order, without duplicates.
        outcomes: Per-message outcomes in batch order.
        scheduled_times: Send time assigned to each message id.
        cancelled: Whether the batch stopped early on request.
    """

    sent_count: int = 0
    total_count: int = 0
    skipped_account_names: list[str] = field(default_factory=list)
    outcomes: list[MessageOutcome] = field(default_factory=list)
    scheduled_times: dict[str, datetime] = field(default_factory=dict)
    cancelled: bool = False

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "failed")

    @property
    def all_sent(self) -> bool:
        return self.sent_count == self.total_count

    def record_skip(self, account_name: str) -> None:
        if account_name not in self.skipped_account_names:
            self.skipped_account_names.append(account_name)
