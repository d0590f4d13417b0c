"""Tests for store models.

Tests cover:
- camelCase document serialization and snake_case construction
- EmailConfig completeness and password round-trip
- Conversation invariants (delay clamping, participant dedup)
- Legacy single-delay migration
- Conversation helpers (thread subject, last sent message)
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import SecretStr, ValidationError

from src.mailsim.store.models import (
    Account,
    Conversation,
    EmailConfig,
    Message,
    TokenUsage,
)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def smtp_config() -> EmailConfig:
    return EmailConfig(
        smtp_host="smtp.example.com",
        smtp_port=587,
        smtp_user="alice@example.com",
        smtp_password=SecretStr("hunter2"),
    )


@pytest.fixture
def alice(smtp_config: EmailConfig) -> Account:
    return Account(
        id="a1", name="Alice", email="alice@example.com", email_config=smtp_config
    )


@pytest.fixture
def bob() -> Account:
    return Account(id="b1", name="Bob", email="bob@example.com")


# =============================================================================
# Accounts
# =============================================================================


class TestEmailConfig:
    """Tests for EmailConfig."""

    def test_complete(self, smtp_config: EmailConfig) -> None:
        assert smtp_config.is_complete is True

    def test_blank_user_is_incomplete(self) -> None:
        config = EmailConfig(
            smtp_host="smtp.example.com",
            smtp_user="  ",
            smtp_password=SecretStr("pw"),
        )
        assert config.is_complete is False

    def test_port_out_of_range(self) -> None:
        with pytest.raises(ValidationError):
            EmailConfig(
                smtp_host="h", smtp_port=70000, smtp_user="u", smtp_password="p"
            )

    def test_password_hidden_in_repr_but_persisted(
        self, smtp_config: EmailConfig
    ) -> None:
        assert "hunter2" not in repr(smtp_config)
        assert smtp_config.to_document()["smtpPassword"] == "hunter2"


class TestAccount:
    """Tests for Account."""

    def test_has_credentials(self, alice: Account, bob: Account) -> None:
        assert alice.has_credentials is True
        assert bob.has_credentials is False

    def test_label(self, bob: Account) -> None:
        assert bob.label == "Bob (bob@example.com)"

    def test_document_uses_camel_case(self, alice: Account) -> None:
        doc = alice.to_document()
        assert doc["emailConfig"]["smtpHost"] == "smtp.example.com"
        assert "personality" not in doc

    def test_parses_camel_case_document(self) -> None:
        account = Account.model_validate(
            {
                "id": "x",
                "name": "Xena",
                "email": "x@example.com",
                "emailConfig": {
                    "smtpHost": "mail.example.com",
                    "smtpPort": 465,
                    "smtpUser": "x",
                    "smtpPassword": "pw",
                    "smtpSecure": True,
                },
            }
        )
        assert account.email_config.smtp_port == 465
        assert account.email_config.smtp_secure is True
        assert account.has_credentials is True

    def test_generated_ids_are_unique(self) -> None:
        a = Account(name="A", email="a@example.com")
        b = Account(name="B", email="b@example.com")
        assert a.id != b.id


# =============================================================================
# Messages
# =============================================================================


class TestMessage:
    """Tests for Message."""

    def test_from_account_snapshots_author(self, alice: Account) -> None:
        message = Message.from_account(alice, "Hello")
        assert message.account_id == "a1"
        assert message.account_name == "Alice"
        assert message.account_email == "alice@example.com"
        assert message.sent is False
        assert message.scheduled_send_time is None

    def test_naive_datetimes_become_utc(self, alice: Account) -> None:
        message = Message.from_account(
            alice, "Hi", scheduled_send_time=datetime(2026, 1, 1, 12, 0)
        )
        assert message.scheduled_send_time.tzinfo == timezone.utc

    def test_document_round_trip(self, alice: Account) -> None:
        message = Message.from_account(
            alice,
            "Hi",
            cost=0.0001,
            tokens=TokenUsage(input=10, output=5, total=15),
        )
        doc = message.to_document()
        assert doc["accountId"] == "a1"
        assert doc["tokens"] == {"input": 10, "output": 5, "total": 15}
        assert "scheduledSendTime" not in doc
        assert Message.model_validate(doc) == message


# =============================================================================
# Conversations
# =============================================================================


class TestConversation:
    """Tests for Conversation."""

    def test_defaults(self) -> None:
        conv = Conversation(name="Launch")
        assert conv.min_delay_minutes == 1.0
        assert conv.max_delay_minutes == 5.0
        assert conv.conversation_length == 6
        assert conv.prompt == ""

    def test_max_clamped_to_min(self) -> None:
        conv = Conversation(name="c", min_delay_minutes=4, max_delay_minutes=2)
        assert conv.max_delay_minutes == 4

    def test_length_below_two_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Conversation(name="c", conversation_length=1)

    def test_selected_account_removed_from_others(
        self, alice: Account, bob: Account
    ) -> None:
        conv = Conversation(
            name="c", selected_account=alice, other_accounts=[alice, bob, bob]
        )
        assert [a.id for a in conv.other_accounts] == ["b1"]
        assert [a.id for a in conv.participants] == ["a1", "b1"]

    def test_participants_without_sender(self, bob: Account) -> None:
        conv = Conversation(name="c", other_accounts=[bob])
        assert conv.participants == [bob]

    def test_legacy_delay_migrated(self) -> None:
        conv = Conversation.model_validate(
            {"id": "c1", "name": "Old", "delayBetweenMessages": 120}
        )
        assert conv.min_delay_minutes == 2.0
        assert conv.max_delay_minutes == 2.0

    def test_thread_subject_fallback(self) -> None:
        assert Conversation(name="Launch").thread_subject == "Conversation: Launch"
        assert (
            Conversation(name="Launch", email_subject="Q3 plan").thread_subject
            == "Q3 plan"
        )

    def test_last_sent_message(self, alice: Account, bob: Account) -> None:
        first = Message.from_account(alice, "1", sent=True, email_message_id="<m1>")
        second = Message.from_account(bob, "2", sent=True, email_message_id="<m2>")
        third = Message.from_account(alice, "3")
        conv = Conversation(name="c", messages=[first, second, third])

        assert conv.last_sent_message() == second
        assert conv.unsent_messages == [third]
        assert conv.find_message(third.id) == third
        assert conv.find_message("missing") is None

    def test_document_round_trip(self, alice: Account, bob: Account) -> None:
        conv = Conversation(
            name="c",
            selected_account=alice,
            other_accounts=[bob],
            messages=[Message.from_account(alice, "hello")],
        )
        restored = Conversation.model_validate(conv.to_document())
        assert restored == conv
