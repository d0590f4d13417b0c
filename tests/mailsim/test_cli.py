"""Tests for the mailsim command line.

Tests cover:
- Account, conversation and participant commands against a JSON data file
- Error reporting for invalid input
- Generation and sending through a patched orchestrator
- Backend and orchestrator construction from configuration
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.common.settings.config import MailSimConfig
from src.mailsim.cli import build_backend, build_orchestrator, main
from src.mailsim.scheduling.models import BatchResult
from src.mailsim.store.backends import JsonFileBackend, MirroredBackend
from src.mailsim.store.models import Account, Message
from src.mailsim.store.repository import ConversationRepository


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clean_env():
    """Remove MailSim and Sheets environment variables for each test."""
    keys = [
        k
        for k in os.environ
        if k.startswith("MAILSIM_") or k == "GOOGLE_SHEETS_CREDENTIALS"
    ]
    saved = {k: os.environ.pop(k) for k in keys}
    yield
    os.environ.update(saved)


@pytest.fixture
def data_file(tmp_path: Path) -> Path:
    return tmp_path / "data.json"


@pytest.fixture
def run(data_file: Path, capsys):
    """Run the CLI against the test data file and return (code, stdout)."""

    def _run(*argv: str) -> tuple[int, str]:
        code = main(["--data-file", str(data_file), *argv])
        return code, capsys.readouterr().out.strip()

    return _run


def _stored(data_file: Path) -> dict:
    return json.loads(data_file.read_text())


# =============================================================================
# Store Commands
# =============================================================================


class TestStoreCommands:
    """Tests for commands that only touch the store."""

    def test_add_and_list_accounts(self, run, data_file: Path) -> None:
        code, account_id = run("add-account", "Alice", "alice@example.com")
        assert code == 0

        code, listing = run("accounts")

        assert code == 0
        assert f"{account_id}  Alice (alice@example.com)  [no smtp]" in listing
        assert _stored(data_file)["accounts"][0]["name"] == "Alice"

    def test_configure_smtp(self, run) -> None:
        _, account_id = run("add-account", "Alice", "alice@example.com")

        code, out = run(
            "configure-smtp",
            account_id,
            "--host",
            "smtp.example.com",
            "--port",
            "465",
            "--user",
            "alice",
            "--password",
            "pw",
        )

        assert code == 0
        assert out == "Configured Alice (alice@example.com)"
        _, listing = run("accounts")
        assert "[smtp]" in listing

    def test_invalid_port_reports_error(self, run, data_file: Path, capsys) -> None:
        _, account_id = run("add-account", "Alice", "alice@example.com")

        code = main(
            [
                "--data-file",
                str(data_file),
                "configure-smtp",
                account_id,
                "--host",
                "h",
                "--port",
                "0",
                "--user",
                "u",
                "--password",
                "p",
            ]
        )

        assert code == 1
        assert "Error:" in capsys.readouterr().err
        assert "emailConfig" not in _stored(data_file)["accounts"][0]

    def test_unknown_conversation(self, data_file: Path, capsys) -> None:
        code = main(["--data-file", str(data_file), "show", "ghost"])

        assert code == 1
        assert "Error: Unknown conversation: ghost" in capsys.readouterr().err

    def test_conversation_setup_and_show(self, run) -> None:
        _, alice = run("add-account", "Alice", "alice@example.com")
        _, bob = run("add-account", "Bob", "bob@example.com")
        _, conv = run("new-conversation", "Launch", "--subject", "Q3 launch")
        run("add-participant", conv, alice)
        code, participants = run("add-participant", conv, bob)
        assert participants == "Alice, Bob"

        code, delays = run("set-delays", conv, "--min", "2", "--max", "3", "--length", "4")
        assert code == 0
        assert delays == "Delay 2.0-3.0 min, length 4"

        code, shown = run("show", conv)
        assert code == 0
        assert "Launch  (Q3 launch)" in shown
        assert "Sender: Alice (alice@example.com)" in shown
        assert "Others: Bob (bob@example.com)" in shown

    def test_sync_without_sheets(self, run, data_file: Path) -> None:
        code, out = run("sync")

        assert code == 0
        assert out == "Saved (Google Sheets not configured)"
        assert data_file.exists()


# =============================================================================
# Orchestrated Commands
# =============================================================================


class TestOrchestratedCommands:
    """Tests for generate, send-all and send."""

    @pytest.fixture
    def orchestrator(self) -> MagicMock:
        mock = MagicMock()
        alice = Account(name="Alice", email="alice@example.com")
        mock.generate_message = AsyncMock(
            return_value=Message.from_account(alice, "Hi", cost=0.0012)
        )
        mock.generate_full_conversation = AsyncMock(
            return_value=[Message.from_account(alice, str(i)) for i in range(3)]
        )
        mock.send_all = AsyncMock(
            return_value=BatchResult(
                sent_count=1, total_count=2, skipped_account_names=["Carol"]
            )
        )
        mock.send_message = AsyncMock(return_value="<m1@example.com>")
        return mock

    def test_generate_one(self, run, orchestrator: MagicMock) -> None:
        _, conv = run("new-conversation", "Launch")

        with patch("src.mailsim.cli.build_orchestrator", return_value=orchestrator):
            code, out = run("generate", conv, "--prompt", "Budget")

        assert code == 0
        assert out.startswith("Generated 1 message(s) ($0.0012")
        orchestrator.generate_message.assert_awaited_once_with(conv)

    def test_generate_full(self, run, orchestrator: MagicMock) -> None:
        _, conv = run("new-conversation", "Launch")

        with patch("src.mailsim.cli.build_orchestrator", return_value=orchestrator):
            code, out = run("generate", conv, "--full", "--length", "3")

        assert code == 0
        assert out == "Generated 3 message(s)"
        orchestrator.generate_full_conversation.assert_awaited_once_with(conv, 3)

    def test_send_all_partial(self, run, orchestrator: MagicMock) -> None:
        with patch("src.mailsim.cli.build_orchestrator", return_value=orchestrator):
            code, out = run("send-all", "c1")

        assert code == 2
        assert out == (
            "Sent 1 out of 2 messages. Skipped 1 account(s) without email "
            "config: Carol"
        )

    def test_send_one(self, run, orchestrator: MagicMock) -> None:
        with patch("src.mailsim.cli.build_orchestrator", return_value=orchestrator):
            code, out = run("send", "c1", "m1")

        assert code == 0
        assert out == "<m1@example.com>"
        orchestrator.send_message.assert_awaited_once_with("c1", "m1")


# =============================================================================
# Construction
# =============================================================================


class TestBuildBackend:
    """Tests for build_backend()."""

    def test_json_only_by_default(self, data_file: Path) -> None:
        backend = build_backend(MailSimConfig(data_file=data_file))
        assert isinstance(backend, JsonFileBackend)

    def test_invalid_credentials_fall_back(self, data_file: Path, caplog) -> None:
        config = MailSimConfig(data_file=data_file, google_sheets_credentials="nope")

        backend = build_backend(config)

        assert isinstance(backend, JsonFileBackend)
        assert "Google Sheets disabled" in caplog.text

    @patch("src.mailsim.cli.build_sheets_service")
    def test_mirrors_to_sheets(self, mock_build: MagicMock, data_file: Path) -> None:
        config = MailSimConfig(
            data_file=data_file,
            google_sheets_credentials='{"type": "service_account"}',
            spreadsheet_id="sheet-1",
        )

        backend = build_backend(config)

        assert isinstance(backend, MirroredBackend)
        assert backend.mirror.spreadsheet_id == "sheet-1"
        mock_build.assert_called_once_with('{"type": "service_account"}')


class TestBuildOrchestrator:
    """Tests for build_orchestrator()."""

    @patch("src.mailsim.cli.LLMFactory.create")
    def test_wires_configuration(self, mock_create: MagicMock) -> None:
        config = MailSimConfig(
            generation_model="gpt-4o",
            generation_temperature=0.5,
            generation_max_tokens=300,
            smtp_timeout=20.0,
            verify_smtp_dns=False,
        )
        repository = ConversationRepository()

        orchestrator = build_orchestrator(config, repository)

        mock_create.assert_called_once_with(
            "gpt-4o", temperature=0.5, max_tokens=300
        )
        assert orchestrator.generator.model == "gpt-4o"
        assert orchestrator.scheduler.mailer.timeout == 20.0
        assert orchestrator.scheduler.mailer.verify_dns is False
        assert orchestrator.scheduler.repository is repository
