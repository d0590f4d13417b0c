"""Tests for ConversationRepository.

Tests cover:
- Account CRUD and validation without state change
- SMTP configuration
- Conversation CRUD, participant management and delay clamping
- Message append and replace-by-id updates
- Write-through persistence and tolerance of backend failures
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from src.mailsim.store.backends import InMemoryBackend, StoreSnapshot
from src.mailsim.store.models import Account, Message
from src.mailsim.store.repository import (
    ConversationRepository,
    NotFoundError,
    StoreValidationError,
)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def repo(backend: InMemoryBackend) -> ConversationRepository:
    return ConversationRepository(backend)


@pytest.fixture
def alice(repo: ConversationRepository) -> Account:
    return repo.add_account("Alice", "alice@example.com", "Upbeat")


@pytest.fixture
def bob(repo: ConversationRepository) -> Account:
    return repo.add_account("Bob", "bob@example.com")


# =============================================================================
# Accounts
# =============================================================================


class TestAccounts:
    """Tests for account operations."""

    def test_add_account_trims_and_persists(
        self, repo: ConversationRepository, backend: InMemoryBackend
    ) -> None:
        account = repo.add_account("  Carol ", " carol@example.com ", "  ")
        assert account.name == "Carol"
        assert account.email == "carol@example.com"
        assert account.personality is None
        assert backend.load().accounts == [account]

    @pytest.mark.parametrize(("name", "email"), [("", "a@x.com"), ("A", "   ")])
    def test_add_account_requires_name_and_email(
        self, repo: ConversationRepository, backend: InMemoryBackend, name, email
    ) -> None:
        with pytest.raises(StoreValidationError):
            repo.add_account(name, email)
        assert repo.list_accounts() == []
        assert backend.save_count == 0

    def test_edit_account(self, repo: ConversationRepository, alice: Account) -> None:
        updated = repo.edit_account(alice.id, "Alicia", "alicia@example.com")
        assert updated.id == alice.id
        assert repo.get_account(alice.id).name == "Alicia"
        assert updated.personality is None

    def test_edit_account_invalid_leaves_state(
        self, repo: ConversationRepository, alice: Account
    ) -> None:
        with pytest.raises(StoreValidationError):
            repo.edit_account(alice.id, "", "x@example.com")
        assert repo.get_account(alice.id) == alice

    def test_configure_email(self, repo: ConversationRepository, alice: Account) -> None:
        updated = repo.configure_email(
            alice.id, " smtp.example.com ", 465, "alice", "secret", smtp_secure=True
        )
        assert updated.has_credentials is True
        assert updated.email_config.smtp_host == "smtp.example.com"
        assert updated.email_config.smtp_password.get_secret_value() == "secret"

    @pytest.mark.parametrize(
        ("host", "port", "user", "password"),
        [
            ("", 587, "u", "p"),
            ("h", 0, "u", "p"),
            ("h", "abc", "u", "p"),
            ("h", 587, "", "p"),
            ("h", 587, "u", ""),
        ],
    )
    def test_configure_email_requires_all_fields(
        self, repo: ConversationRepository, alice: Account, host, port, user, password
    ) -> None:
        with pytest.raises(StoreValidationError):
            repo.configure_email(alice.id, host, port, user, password)
        assert repo.get_account(alice.id).email_config is None

    def test_delete_account_does_not_cascade(
        self, repo: ConversationRepository, alice: Account
    ) -> None:
        conv = repo.create_conversation("Launch")
        repo.add_participant(conv.id, alice.id)

        repo.delete_account(alice.id)

        assert repo.list_accounts() == []
        assert repo.get_conversation(conv.id).selected_account.id == alice.id

    def test_unknown_account(self, repo: ConversationRepository) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            repo.get_account("nope")
        assert exc_info.value.kind == "account"
        assert repo.find_account("nope") is None


# =============================================================================
# Conversations
# =============================================================================


class TestConversations:
    """Tests for conversation operations."""

    def test_create_conversation_defaults(self, repo: ConversationRepository) -> None:
        conv = repo.create_conversation(" Launch plan ")
        assert conv.name == "Launch plan"
        assert conv.email_subject == "Conversation: Launch plan"
        assert conv.min_delay_minutes == 1.0
        assert conv.max_delay_minutes == 5.0
        assert conv.conversation_length == 6

    def test_create_conversation_requires_name(
        self, repo: ConversationRepository
    ) -> None:
        with pytest.raises(StoreValidationError):
            repo.create_conversation("  ")

    def test_rename_and_delete(self, repo: ConversationRepository) -> None:
        conv = repo.create_conversation("Old")
        assert repo.rename_conversation(conv.id, "New").name == "New"
        repo.delete_conversation(conv.id)
        assert repo.list_conversations() == []

    def test_first_participant_becomes_sender(
        self, repo: ConversationRepository, alice: Account, bob: Account
    ) -> None:
        conv = repo.create_conversation("c")
        conv = repo.add_participant(conv.id, alice.id)
        assert conv.selected_account.id == alice.id
        conv = repo.add_participant(conv.id, bob.id)
        assert [a.id for a in conv.other_accounts] == [bob.id]

    def test_duplicate_participant_rejected(
        self, repo: ConversationRepository, alice: Account
    ) -> None:
        conv = repo.create_conversation("c")
        repo.add_participant(conv.id, alice.id)
        with pytest.raises(StoreValidationError):
            repo.add_participant(conv.id, alice.id)

    def test_set_sender_moves_account_out_of_others(
        self, repo: ConversationRepository, alice: Account, bob: Account
    ) -> None:
        conv = repo.create_conversation("c")
        repo.add_participant(conv.id, alice.id)
        repo.add_participant(conv.id, bob.id)

        conv = repo.set_sender(conv.id, bob.id)

        assert conv.selected_account.id == bob.id
        assert conv.other_accounts == []

    def test_remove_participant(
        self, repo: ConversationRepository, alice: Account, bob: Account
    ) -> None:
        conv = repo.create_conversation("c")
        repo.add_participant(conv.id, alice.id)
        repo.add_participant(conv.id, bob.id)

        conv = repo.remove_participant(conv.id, alice.id)
        assert conv.selected_account is None
        conv = repo.remove_participant(conv.id, bob.id)
        assert conv.other_accounts == []
        with pytest.raises(NotFoundError):
            repo.remove_participant(conv.id, bob.id)

    def test_min_delay_raises_max(self, repo: ConversationRepository) -> None:
        conv = repo.create_conversation("c")
        conv = repo.set_min_delay(conv.id, 8)
        assert (conv.min_delay_minutes, conv.max_delay_minutes) == (8, 8)

    def test_max_delay_lowers_min(self, repo: ConversationRepository) -> None:
        conv = repo.create_conversation("c")
        conv = repo.set_max_delay(conv.id, 0.5)
        assert (conv.min_delay_minutes, conv.max_delay_minutes) == (0.5, 0.5)

    def test_negative_delay_clamped_to_zero(self, repo: ConversationRepository) -> None:
        conv = repo.create_conversation("c")
        conv = repo.set_min_delay(conv.id, -3)
        assert conv.min_delay_minutes == 0.0

    def test_conversation_length(self, repo: ConversationRepository) -> None:
        conv = repo.create_conversation("c")
        assert repo.set_conversation_length(conv.id, 10).conversation_length == 10
        with pytest.raises(StoreValidationError):
            repo.set_conversation_length(conv.id, 1)
        assert repo.get_conversation(conv.id).conversation_length == 10

    def test_subject_and_prompt(self, repo: ConversationRepository) -> None:
        conv = repo.create_conversation("c")
        conv = repo.set_email_subject(conv.id, " Q3 ")
        assert conv.email_subject == "Q3"
        conv = repo.set_prompt(conv.id, "Talk about Q3")
        assert conv.prompt == "Talk about Q3"

    def test_refresh_participants_uses_current_accounts(
        self, repo: ConversationRepository, alice: Account, bob: Account
    ) -> None:
        conv = repo.create_conversation("c")
        repo.add_participant(conv.id, alice.id)
        repo.add_participant(conv.id, bob.id)
        repo.configure_email(bob.id, "smtp.example.com", 587, "bob", "pw")
        repo.delete_account(alice.id)

        conv = repo.refresh_participants(conv.id)

        assert conv.selected_account == alice
        assert conv.other_accounts[0].has_credentials is True


# =============================================================================
# Messages
# =============================================================================


class TestMessages:
    """Tests for message operations."""

    def test_append_and_update_message(
        self, repo: ConversationRepository, alice: Account
    ) -> None:
        conv = repo.create_conversation("c")
        message = Message.from_account(alice, "Hello")
        repo.append_message(conv.id, message)

        updated = repo.update_message(
            conv.id, message.id, sent=True, email_message_id="<m1>"
        )

        assert updated.sent is True
        assert updated.content == "Hello"
        assert repo.get_conversation(conv.id).messages == [updated]

    def test_update_messages_ignores_unknown_ids(
        self, repo: ConversationRepository, alice: Account
    ) -> None:
        conv = repo.create_conversation("c")
        first = Message.from_account(alice, "1")
        second = Message.from_account(alice, "2")
        repo.append_message(conv.id, first)
        repo.append_message(conv.id, second)
        when = datetime(2026, 1, 1, tzinfo=timezone.utc)

        conv = repo.update_messages(
            conv.id,
            {first.id: {"scheduled_send_time": when}, "ghost": {"sent": True}},
        )

        assert conv.messages[0].scheduled_send_time == when
        assert conv.messages[1] == second

    def test_update_unknown_message_raises(self, repo: ConversationRepository) -> None:
        conv = repo.create_conversation("c")
        with pytest.raises(NotFoundError):
            repo.update_message(conv.id, "ghost", sent=True)

    def test_clear_messages(self, repo: ConversationRepository, alice: Account) -> None:
        conv = repo.create_conversation("c")
        repo.append_message(conv.id, Message.from_account(alice, "1"))
        assert repo.clear_messages(conv.id).messages == []


# =============================================================================
# Persistence
# =============================================================================


class TestPersistence:
    """Tests for write-through persistence."""

    def test_loads_backend_state(self) -> None:
        account = Account(name="Alice", email="alice@example.com")
        repo = ConversationRepository(InMemoryBackend(StoreSnapshot([account], [])))
        assert repo.get_account(account.id) == account

    def test_every_mutation_saves(
        self, repo: ConversationRepository, backend: InMemoryBackend
    ) -> None:
        conv = repo.create_conversation("c")
        repo.set_prompt(conv.id, "p")
        assert backend.save_count == 2
        assert backend.load().conversations[0].prompt == "p"

    def test_backend_failure_is_logged_not_raised(self, caplog) -> None:
        failing = MagicMock()
        failing.load.return_value = StoreSnapshot()
        failing.save.side_effect = OSError("disk full")
        repo = ConversationRepository(failing)

        account = repo.add_account("Alice", "alice@example.com")

        assert repo.list_accounts() == [account]
        assert repo.save() is False
        assert "disk full" in caplog.text

    def test_default_backend_is_in_memory(self) -> None:
        repo = ConversationRepository()
        assert isinstance(repo.backend, InMemoryBackend)
