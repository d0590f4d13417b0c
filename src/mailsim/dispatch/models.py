"""Mail dispatch result and error types.

Classes:
    DispatchErrorKind: Failure categories reported by the mailer.
    DispatchError: Raised when a message cannot be delivered.
    DispatchReceipt: Result of a successful send.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class DispatchErrorKind(str, Enum):
    """Failure categories for a send attempt."""

    AUTH_FAILURE = "auth_failure"
    CONNECTION_FAILURE = "connection_failure"
    DNS_FAILURE = "dns_failure"
    TIMEOUT = "timeout"
    CONFIGURATION = "configuration"
    OTHER = "other"


class DispatchError(Exception):
    """Raised when a message cannot be delivered.

    Attributes:
        message: Human-readable error description.
        kind: Failure category.
        host: SMTP host involved, when known.
    """

    def __init__(
        self,
        message: str,
        kind: DispatchErrorKind = DispatchErrorKind.OTHER,
        host: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.host = host


@dataclass(frozen=True)
class DispatchReceipt:
    """Result of a successful send.

    Attributes:
        transport_message_id: The ``Message-ID`` header of the sent email.
            Later replies reference it to stay in the same thread.
        recipients: Addresses the message was delivered to.
    """

    transport_message_id: str
    recipients: tuple[str, ...] = ()
