"""Conversation repository: in-memory state with write-through persistence.

The repository owns every account and conversation for a session. Each
mutation validates its input first (raising without changing state), applies
the change, then saves the full snapshot through the injected backend.
Backend failures are logged and never raised; the in-memory state stays
authoritative for the rest of the session.

Classes:
    ConversationRepository: CRUD over accounts, conversations and messages.
    StoreError: Base exception for repository errors.
    StoreValidationError: Input rejected; no state was changed.
    NotFoundError: Referenced account, conversation or message is unknown.

Example:
    >>> repo = ConversationRepository(JsonFileBackend("mailsim_data.json"))
    >>> alice = repo.add_account("Alice", "alice@example.com")
    >>> conv = repo.create_conversation("Launch plan")
    >>> repo.add_participant(conv.id, alice.id).selected_account.name
    'Alice'
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import SecretStr

from src.mailsim.store.backends import InMemoryBackend, StoreBackend
from src.mailsim.store.models import (
    MIN_CONVERSATION_LENGTH,
    SUBJECT_PREFIX,
    Account,
    Conversation,
    EmailConfig,
    Message,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class StoreError(Exception):
    """Base exception for repository errors."""

    pass


class StoreValidationError(StoreError):
    """Raised when input is rejected. No state is changed."""

    pass


class NotFoundError(StoreError):
    """Raised when a referenced entity does not exist.

    Attributes:
        kind: Entity kind ("account", "conversation" or "message").
        entity_id: The id that was looked up.
    """

    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(f"Unknown {kind}: {entity_id}")
        self.kind = kind
        self.entity_id = entity_id


def _required(value: str | None, field_name: str) -> str:
    trimmed = (value or "").strip()
    if not trimmed:
        raise StoreValidationError(f"{field_name} is required")
    return trimmed


# =============================================================================
# Repository
# =============================================================================


class ConversationRepository:
    """Accounts and conversations for one session.

    Attributes:
        backend: Persistence collaborator; saved after every mutation.
    """

    def __init__(self, backend: StoreBackend | None = None) -> None:
        """Initialize the repository and load the backend's stored state.

        Args:
            backend: Persistence backend. Defaults to an in-memory backend.
        """
        self.backend = backend or InMemoryBackend()
        snapshot = self.backend.load()
        self._accounts: list[Account] = list(snapshot.accounts)
        self._conversations: list[Conversation] = list(snapshot.conversations)
        logger.debug(
            f"Loaded {len(self._accounts)} account(s) and "
            f"{len(self._conversations)} conversation(s)"
        )

    def save(self) -> bool:
        """Persist the current state. Returns False if the backend failed."""
        try:
            self.backend.save(list(self._accounts), list(self._conversations))
        except Exception as e:
            logger.error(f"Failed to persist state: {e}")
            return False
        return True

    # =========================================================================
    # Accounts
    # =========================================================================

    def list_accounts(self) -> list[Account]:
        return list(self._accounts)

    def get_account(self, account_id: str) -> Account:
        for account in self._accounts:
            if account.id == account_id:
                return account
        raise NotFoundError("account", account_id)

    def find_account(self, account_id: str) -> Account | None:
        return next((a for a in self._accounts if a.id == account_id), None)

    def add_account(
        self, name: str, email: str, personality: str | None = None
    ) -> Account:
        """Create an account. Name and email must be non-empty."""
        account = Account(
            name=_required(name, "Name"),
            email=_required(email, "Email"),
            personality=(personality or "").strip() or None,
        )
        self._accounts.append(account)
        logger.info(f"Added account {account.label}")
        self.save()
        return account

    def edit_account(
        self,
        account_id: str,
        name: str,
        email: str,
        personality: str | None = None,
    ) -> Account:
        """Replace an account's name, email and personality.

        Conversations keep their own participant snapshots; they pick up the
        edit when participants are refreshed before sending.
        """
        current = self.get_account(account_id)
        updated = current.model_copy(
            update={
                "name": _required(name, "Name"),
                "email": _required(email, "Email"),
                "personality": (personality or "").strip() or None,
            }
        )
        self._replace_account(updated)
        self.save()
        return updated

    def configure_email(
        self,
        account_id: str,
        smtp_host: str,
        smtp_port: int,
        smtp_user: str,
        smtp_password: str,
        smtp_secure: bool = False,
    ) -> Account:
        """Attach SMTP credentials to an account. All fields are required."""
        current = self.get_account(account_id)
        if not smtp_password:
            raise StoreValidationError("SMTP password is required")
        try:
            port = int(smtp_port)
        except (TypeError, ValueError) as e:
            raise StoreValidationError(f"Invalid SMTP port: {smtp_port!r}") from e
        if not 1 <= port <= 65535:
            raise StoreValidationError(f"SMTP port out of range: {port}")

        config = EmailConfig(
            smtp_host=_required(smtp_host, "SMTP host"),
            smtp_port=port,
            smtp_user=_required(smtp_user, "SMTP user"),
            smtp_password=SecretStr(smtp_password),
            smtp_secure=smtp_secure,
        )
        updated = current.model_copy(update={"email_config": config})
        self._replace_account(updated)
        logger.info(f"Configured SMTP for {updated.label} via {config.smtp_host}")
        self.save()
        return updated

    def delete_account(self, account_id: str) -> None:
        """Remove an account. Conversations that reference it are untouched."""
        account = self.get_account(account_id)
        self._accounts = [a for a in self._accounts if a.id != account_id]
        logger.info(f"Deleted account {account.label}")
        self.save()

    def _replace_account(self, account: Account) -> None:
        self._accounts = [
            account if a.id == account.id else a for a in self._accounts
        ]

    # =========================================================================
    # Conversations
    # =========================================================================

    def list_conversations(self) -> list[Conversation]:
        return list(self._conversations)

    def get_conversation(self, conversation_id: str) -> Conversation:
        for conv in self._conversations:
            if conv.id == conversation_id:
                return conv
        raise NotFoundError("conversation", conversation_id)

    def create_conversation(self, name: str) -> Conversation:
        """Create an empty conversation with default delay and length."""
        trimmed = _required(name, "Conversation name")
        conv = Conversation(name=trimmed, email_subject=f"{SUBJECT_PREFIX}{trimmed}")
        self._conversations.append(conv)
        logger.info(f"Created conversation '{conv.name}' ({conv.id})")
        self.save()
        return conv

    def rename_conversation(self, conversation_id: str, name: str) -> Conversation:
        return self._update_conversation(
            conversation_id, name=_required(name, "Conversation name")
        )

    def delete_conversation(self, conversation_id: str) -> None:
        conv = self.get_conversation(conversation_id)
        self._conversations = [
            c for c in self._conversations if c.id != conversation_id
        ]
        logger.info(f"Deleted conversation '{conv.name}'")
        self.save()

    def set_prompt(self, conversation_id: str, prompt: str) -> Conversation:
        return self._update_conversation(conversation_id, prompt=prompt or "")

    def set_email_subject(self, conversation_id: str, subject: str) -> Conversation:
        return self._update_conversation(
            conversation_id, email_subject=(subject or "").strip() or None
        )

    def set_sender(
        self, conversation_id: str, account_id: str | None
    ) -> Conversation:
        """Make ``account_id`` the sender of record (None clears it)."""
        conv = self.get_conversation(conversation_id)
        if account_id is None:
            return self._update_conversation(conversation_id, selected_account=None)
        account = self.get_account(account_id)
        others = [a for a in conv.other_accounts if a.id != account_id]
        return self._update_conversation(
            conversation_id, selected_account=account, other_accounts=others
        )

    def add_participant(self, conversation_id: str, account_id: str) -> Conversation:
        """Add an account; it becomes the sender if none is selected."""
        conv = self.get_conversation(conversation_id)
        account = self.get_account(account_id)
        if conv.has_participant(account_id):
            raise StoreValidationError(
                f"{account.name} is already in '{conv.name}'"
            )
        if conv.selected_account is None:
            return self._update_conversation(
                conversation_id, selected_account=account
            )
        return self._update_conversation(
            conversation_id, other_accounts=[*conv.other_accounts, account]
        )

    def remove_participant(
        self, conversation_id: str, account_id: str
    ) -> Conversation:
        conv = self.get_conversation(conversation_id)
        if conv.selected_account is not None and conv.selected_account.id == account_id:
            return self._update_conversation(conversation_id, selected_account=None)
        others = [a for a in conv.other_accounts if a.id != account_id]
        if len(others) == len(conv.other_accounts):
            raise NotFoundError("participant", account_id)
        return self._update_conversation(conversation_id, other_accounts=others)

    def set_min_delay(self, conversation_id: str, minutes: float) -> Conversation:
        """Set the minimum delay, raising the maximum to match if needed."""
        conv = self.get_conversation(conversation_id)
        value = max(0.0, float(minutes))
        return self._update_conversation(
            conversation_id,
            min_delay_minutes=value,
            max_delay_minutes=max(value, conv.max_delay_minutes),
        )

    def set_max_delay(self, conversation_id: str, minutes: float) -> Conversation:
        """Set the maximum delay, lowering the minimum to match if needed."""
        conv = self.get_conversation(conversation_id)
        value = max(0.0, float(minutes))
        return self._update_conversation(
            conversation_id,
            min_delay_minutes=min(value, conv.min_delay_minutes),
            max_delay_minutes=value,
        )

    def set_conversation_length(
        self, conversation_id: str, length: int
    ) -> Conversation:
        if length < MIN_CONVERSATION_LENGTH:
            raise StoreValidationError(
                f"Conversation length must be at least {MIN_CONVERSATION_LENGTH}"
            )
        return self._update_conversation(conversation_id, conversation_length=length)

    def refresh_participants(self, conversation_id: str) -> Conversation:
        """Replace participant snapshots with the current stored accounts.

        Participants whose account was deleted keep their snapshot.
        """
        conv = self.get_conversation(conversation_id)

        def current(account: Account | None) -> Account | None:
            if account is None:
                return None
            return self.find_account(account.id) or account

        return self._update_conversation(
            conversation_id,
            selected_account=current(conv.selected_account),
            other_accounts=[current(a) for a in conv.other_accounts],
        )

    def _update_conversation(self, conversation_id: str, **changes: Any) -> Conversation:
        current = self.get_conversation(conversation_id)
        # Re-validate so model invariants (clamping, dedup) are enforced
        updated = Conversation.model_validate(
            {**current.model_dump(), **changes}
        )
        self._conversations = [
            updated if c.id == conversation_id else c for c in self._conversations
        ]
        self.save()
        return updated

    # =========================================================================
    # Messages
    # =========================================================================

    def append_message(self, conversation_id: str, message: Message) -> Conversation:
        conv = self.get_conversation(conversation_id)
        return self._update_conversation(
            conversation_id, messages=[*conv.messages, message]
        )

    def update_message(
        self, conversation_id: str, message_id: str, **changes: Any
    ) -> Message:
        """Replace one message by id with ``changes`` applied."""
        conv = self.update_messages(conversation_id, {message_id: changes})
        message = conv.find_message(message_id)
        if message is None:
            raise NotFoundError("message", message_id)
        return message

    def update_messages(
        self, conversation_id: str, changes_by_id: dict[str, dict[str, Any]]
    ) -> Conversation:
        """Apply per-message changes in one step.

        Unknown message ids are ignored with a warning; the rest of the
        conversation's messages are left as they are.
        """
        conv = self.get_conversation(conversation_id)
        known = {m.id for m in conv.messages}
        for message_id in changes_by_id:
            if message_id not in known:
                logger.warning(
                    f"Ignoring update for unknown message {message_id} "
                    f"in '{conv.name}'"
                )

        messages = [
            m.model_copy(update=changes_by_id[m.id]) if m.id in changes_by_id else m
            for m in conv.messages
        ]
        return self._update_conversation(conversation_id, messages=messages)

    def clear_messages(self, conversation_id: str) -> Conversation:
        conv = self._update_conversation(conversation_id, messages=[])
        logger.info(f"Cleared messages in '{conv.name}'")
        return conv
