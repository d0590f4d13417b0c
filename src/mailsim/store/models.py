"""Account, conversation and message models.

This module defines the Pydantic models for everything MailSim persists:
personas (accounts) with optional SMTP credentials, conversations between
them, and the generated messages each conversation owns.

Models:
    EmailConfig: SMTP credentials for an account
    Account: A persona that can author or receive messages
    TokenUsage: Token counts recorded for a generated message
    Message: One generated (and possibly sent) email
    Conversation: Participants, delay policy and ordered messages

Design Notes:
    - JSON documents use camelCase keys (``accountId``, ``emailConfig``,
      ``scheduledSendTime``) through an alias generator; Python code uses
      snake_case. Models accept either on input.
    - Messages carry a denormalized snapshot of their author so deleting an
      account never corrupts past messages.
    - Datetimes are normalized to timezone-aware UTC.

Example:
    >>> alice = Account(name="Alice", email="alice@example.com")
    >>> conv = Conversation(name="Launch plan", selected_account=alice)
    >>> conv.thread_subject
    'Conversation: Launch plan'
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


DEFAULT_MIN_DELAY_MINUTES = 1.0
DEFAULT_MAX_DELAY_MINUTES = 5.0
DEFAULT_CONVERSATION_LENGTH = 6
MIN_CONVERSATION_LENGTH = 2
SUBJECT_PREFIX = "Conversation: "


def new_id() -> str:
    """Return a fresh opaque identifier."""
    return uuid.uuid4().hex


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MailSimModel(BaseModel):
    """Base model with camelCase JSON aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_document(self) -> dict[str, Any]:
        """Serialize to the JSON-compatible camelCase document form."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# Accounts
# =============================================================================


class EmailConfig(MailSimModel):
    """SMTP credentials for sending as an account.

    Attributes:
        smtp_host: SMTP server host name.
        smtp_port: SMTP server port (465 implicit TLS, 587/25 STARTTLS).
        smtp_user: Login user name.
        smtp_password: Login password.
        smtp_secure: Use implicit TLS on ports other than 465/587/25.
    """

    smtp_host: str
    smtp_port: int = Field(default=587, ge=1, le=65535)
    smtp_user: str
    smtp_password: SecretStr
    smtp_secure: bool = False

    @field_serializer("smtp_password", when_used="json")
    def _reveal_password(self, value: SecretStr) -> str:
        # Persisted documents must round-trip the real password
        return value.get_secret_value()

    @property
    def is_complete(self) -> bool:
        """Whether host, port, user and password are all present."""
        return bool(
            self.smtp_host.strip()
            and self.smtp_port
            and self.smtp_user.strip()
            and self.smtp_password.get_secret_value()
        )


class Account(MailSimModel):
    """A persona that can author or receive messages.

    Attributes:
        id: Stable identifier.
        name: Display name.
        email: Email address.
        personality: Optional description of the persona's writing style.
        email_config: Optional SMTP credentials. Accounts without complete
            credentials are skipped when a conversation is sent.
    """

    id: str = Field(default_factory=new_id)
    name: str
    email: str
    personality: str | None = None
    email_config: EmailConfig | None = None

    @property
    def has_credentials(self) -> bool:
        """Whether this account can send mail."""
        return self.email_config is not None and self.email_config.is_complete

    @property
    def label(self) -> str:
        """Return ``Name (email)`` for prompts and logs."""
        return f"{self.name} ({self.email})"


# =============================================================================
# Messages
# =============================================================================


class TokenUsage(MailSimModel):
    """Token counts for a generated message."""

    input: int = 0
    output: int = 0
    total: int = 0


class Message(MailSimModel):
    """One generated email in a conversation.

    Attributes:
        id: Stable identifier.
        account_id: Id of the authoring account.
        account_name: Author name at generation time.
        account_email: Author email at generation time.
        content: Body text.
        timestamp: When the message was generated.
        sent: Whether the message has been delivered.
        scheduled_send_time: When a running batch will send it, if any.
        email_message_id: Transport ``Message-ID`` once sent (thread link).
        cost: Estimated generation cost in USD.
        tokens: Token usage of the generation call.
    """

    id: str = Field(default_factory=new_id)
    account_id: str
    account_name: str
    account_email: str
    content: str
    timestamp: datetime = Field(default_factory=utc_now)
    sent: bool = False
    scheduled_send_time: datetime | None = None
    email_message_id: str | None = None
    cost: float | None = None
    tokens: TokenUsage | None = None

    @field_validator("timestamp", "scheduled_send_time")
    @classmethod
    def _ensure_utc(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)

    @classmethod
    def from_account(cls, account: Account, content: str, **extra: Any) -> Message:
        """Create an unsent message authored by ``account``."""
        return cls(
            account_id=account.id,
            account_name=account.name,
            account_email=account.email,
            content=content,
            **extra,
        )


# =============================================================================
# Conversations
# =============================================================================


class Conversation(MailSimModel):
    """A set of participants exchanging an ordered list of messages.

    Attributes:
        id: Stable identifier.
        name: Display name.
        selected_account: Sender of record, or None.
        other_accounts: Remaining participants, unique by id and never
            including the selected account.
        messages: Ordered messages; append-only until cleared.
        prompt: Context handed to the generator.
        min_delay_minutes: Lower bound of the random gap between sends.
        max_delay_minutes: Upper bound of the random gap (>= minimum).
        conversation_length: Messages produced by a full generation run.
        email_subject: Subject shared by every email in the thread.
    """

    id: str = Field(default_factory=new_id)
    name: str
    selected_account: Account | None = None
    other_accounts: list[Account] = Field(default_factory=list)
    messages: list[Message] = Field(default_factory=list)
    prompt: str = ""
    min_delay_minutes: float = Field(default=DEFAULT_MIN_DELAY_MINUTES, ge=0)
    max_delay_minutes: float = Field(default=DEFAULT_MAX_DELAY_MINUTES, ge=0)
    conversation_length: int = Field(
        default=DEFAULT_CONVERSATION_LENGTH, ge=MIN_CONVERSATION_LENGTH
    )
    email_subject: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _migrate_legacy_delay(cls, data: Any) -> Any:
        """Translate the old single ``delayBetweenMessages`` (seconds) field."""
        if not isinstance(data, dict):
            return data
        legacy = data.get("delayBetweenMessages", data.get("delay_between_messages"))
        if legacy is None:
            return data
        migrated = {
            k: v
            for k, v in data.items()
            if k not in ("delayBetweenMessages", "delay_between_messages")
        }
        minutes = float(legacy) / 60
        migrated["minDelayMinutes"] = minutes
        migrated["maxDelayMinutes"] = minutes
        migrated.pop("min_delay_minutes", None)
        migrated.pop("max_delay_minutes", None)
        return migrated

    @model_validator(mode="after")
    def _enforce_invariants(self) -> Conversation:
        if self.max_delay_minutes < self.min_delay_minutes:
            self.max_delay_minutes = self.min_delay_minutes

        seen: set[str] = set()
        if self.selected_account is not None:
            seen.add(self.selected_account.id)
        unique: list[Account] = []
        for account in self.other_accounts:
            if account.id not in seen:
                seen.add(account.id)
                unique.append(account)
        self.other_accounts = unique
        return self

    @property
    def participants(self) -> list[Account]:
        """Sender of record followed by the other participants."""
        if self.selected_account is None:
            return list(self.other_accounts)
        return [self.selected_account, *self.other_accounts]

    @property
    def thread_subject(self) -> str:
        """Subject shared by the thread, before any reply prefix."""
        return self.email_subject or f"{SUBJECT_PREFIX}{self.name}"

    @property
    def unsent_messages(self) -> list[Message]:
        return [m for m in self.messages if not m.sent]

    def find_message(self, message_id: str) -> Message | None:
        return next((m for m in self.messages if m.id == message_id), None)

    def last_sent_message(self) -> Message | None:
        """Most recent message that was sent and carries a thread id."""
        for message in reversed(self.messages):
            if message.sent and message.email_message_id:
                return message
        return None

    def has_participant(self, account_id: str) -> bool:
        return any(a.id == account_id for a in self.participants)
