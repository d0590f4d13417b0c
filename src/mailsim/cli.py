"""Command-line front end for MailSim.

Usage:
    mailsim [--data-file PATH] [--model MODEL] <command> [args]

Commands:
    accounts            List accounts
    add-account         Create an account
    configure-smtp      Attach SMTP credentials to an account
    new-conversation    Create a conversation
    add-participant     Add an account to a conversation
    set-delays          Set the delay window and length of a conversation
    show                Show a conversation with countdowns and usage
    generate            Generate one message (or a full exchange with --full)
    send-all            Schedule and send every unsent message
    send                Send one message immediately
    sync                Save state to every backend (mirrors included)

Global options (log level, data file, model, spreadsheet) must come before
the command. Everything else is read from MAILSIM_* environment variables.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Callable, Sequence

from src.common.settings.config import MailSimConfig, validate_config
from src.mailsim.core.llm_config import LLMFactory, UnsupportedModelError
from src.mailsim.core.clock import SystemClock
from src.mailsim.dispatch.mailer import SMTPMailer
from src.mailsim.dispatch.models import DispatchError
from src.mailsim.generation.generator import GenerationError, MessageGenerator
from src.mailsim.generation.models import summarize_usage
from src.mailsim.orchestrator import ConversationOrchestrator
from src.mailsim.scheduling.countdown import format_countdown
from src.mailsim.scheduling.engine import ThreadScheduler
from src.mailsim.scheduling.models import SchedulerError
from src.mailsim.store.backends import JsonFileBackend, MirroredBackend, StoreBackend
from src.mailsim.store.repository import ConversationRepository, StoreError
from src.mailsim.store.sheets import GoogleSheetsBackend, build_sheets_service


logger = logging.getLogger(__name__)

_HANDLED_ERRORS = (
    StoreError,
    GenerationError,
    DispatchError,
    SchedulerError,
    UnsupportedModelError,
)


# =============================================================================
# Component Construction
# =============================================================================


def build_backend(config: MailSimConfig) -> StoreBackend:
    """Build the JSON file backend, mirrored to Google Sheets if configured."""
    primary = JsonFileBackend(config.data_file)
    if not config.sheets_enabled:
        return primary
    try:
        service = build_sheets_service(
            config.google_sheets_credentials.get_secret_value()
        )
    except (ValueError, json.JSONDecodeError) as e:
        logger.warning(f"Google Sheets disabled, invalid credentials: {e}")
        return primary
    return MirroredBackend(
        primary, GoogleSheetsBackend(service, config.spreadsheet_id)
    )


def build_orchestrator(
    config: MailSimConfig, repository: ConversationRepository
) -> ConversationOrchestrator:
    """Build the orchestrator with a generator for the configured model."""
    llm = LLMFactory.create(
        config.generation_model,
        temperature=config.generation_temperature,
        max_tokens=config.generation_max_tokens,
    )
    generator = MessageGenerator(llm, model=config.generation_model)
    scheduler = ThreadScheduler(
        mailer=SMTPMailer(
            timeout=config.smtp_timeout, verify_dns=config.verify_smtp_dns
        ),
        repository=repository,
        clock=SystemClock(),
    )
    return ConversationOrchestrator(repository, generator, scheduler)


# =============================================================================
# Commands
# =============================================================================


def cmd_accounts(args, config, repository) -> int:
    accounts = repository.list_accounts()
    if not accounts:
        print("No accounts.")
    for account in accounts:
        smtp = "smtp" if account.has_credentials else "no smtp"
        print(f"{account.id}  {account.label}  [{smtp}]")
    return 0


def cmd_add_account(args, config, repository) -> int:
    account = repository.add_account(args.name, args.email, args.personality)
    print(account.id)
    return 0


def cmd_configure_smtp(args, config, repository) -> int:
    account = repository.configure_email(
        args.account_id,
        smtp_host=args.host,
        smtp_port=args.port,
        smtp_user=args.user,
        smtp_password=args.password,
        smtp_secure=args.secure,
    )
    print(f"Configured {account.label}")
    return 0


def cmd_new_conversation(args, config, repository) -> int:
    conv = repository.create_conversation(args.name)
    if args.subject:
        repository.set_email_subject(conv.id, args.subject)
    print(conv.id)
    return 0


def cmd_add_participant(args, config, repository) -> int:
    conv = repository.add_participant(args.conversation_id, args.account_id)
    print(", ".join(a.name for a in conv.participants))
    return 0


def cmd_set_delays(args, config, repository) -> int:
    conv_id = args.conversation_id
    if args.min is not None:
        repository.set_min_delay(conv_id, args.min)
    if args.max is not None:
        repository.set_max_delay(conv_id, args.max)
    if args.length is not None:
        repository.set_conversation_length(conv_id, args.length)
    conv = repository.get_conversation(conv_id)
    print(
        f"Delay {conv.min_delay_minutes}-{conv.max_delay_minutes} min, "
        f"length {conv.conversation_length}"
    )
    return 0


def cmd_show(args, config, repository) -> int:
    conv = repository.get_conversation(args.conversation_id)
    now = SystemClock().now()
    print(f"{conv.name}  ({conv.thread_subject})")
    sender = conv.selected_account.label if conv.selected_account else "-"
    print(f"Sender: {sender}")
    print(f"Others: {', '.join(a.label for a in conv.other_accounts) or '-'}")
    for message in conv.messages:
        status = "sent" if message.sent else "unsent"
        countdown = format_countdown(message.scheduled_send_time, now)
        if countdown and not message.sent:
            status = f"scheduled {countdown}"
        print(f"- [{status}] {message.account_name}: {message.content}")
    summary = summarize_usage(conv.messages)
    if summary.message_count:
        print(
            f"Usage: ${summary.total_cost_usd:.4f}, "
            f"{summary.total_tokens:,} tokens"
        )
    return 0


async def cmd_generate(args, config, repository) -> int:
    if args.prompt is not None:
        repository.set_prompt(args.conversation_id, args.prompt)
    orchestrator = build_orchestrator(config, repository)
    if args.full:
        messages = await orchestrator.generate_full_conversation(
            args.conversation_id, args.length
        )
    else:
        messages = [await orchestrator.generate_message(args.conversation_id)]
    summary = summarize_usage(messages)
    line = f"Generated {len(messages)} message(s)"
    if summary.total_cost_usd > 0:
        line += (
            f" (${summary.total_cost_usd:.4f}, {summary.total_tokens:,} tokens)"
        )
    print(line)
    return 0


async def cmd_send_all(args, config, repository) -> int:
    orchestrator = build_orchestrator(config, repository)
    result = await orchestrator.send_all(args.conversation_id)
    line = f"Sent {result.sent_count} out of {result.total_count} messages"
    if result.skipped_account_names:
        line += (
            f". Skipped {len(result.skipped_account_names)} account(s) without "
            f"email config: {', '.join(result.skipped_account_names)}"
        )
    print(line)
    return 0 if result.sent_count == result.total_count else 2


async def cmd_send(args, config, repository) -> int:
    orchestrator = build_orchestrator(config, repository)
    message_id = await orchestrator.send_message(
        args.conversation_id, args.message_id
    )
    print(message_id)
    return 0


def cmd_sync(args, config, repository) -> int:
    if not repository.save():
        return 1
    backend = repository.backend
    if isinstance(backend, MirroredBackend) and isinstance(
        backend.mirror, GoogleSheetsBackend
    ):
        print(backend.mirror.spreadsheet_url or "Synced")
    else:
        print("Saved (Google Sheets not configured)")
    return 0


# =============================================================================
# Parser
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mailsim",
        description="Generate and send simulated multi-party email conversations",
    )
    MailSimConfig.add_arguments(parser)
    sub = parser.add_subparsers(dest="command", required=True)

    def add(name: str, handler: Callable, help_text: str) -> argparse.ArgumentParser:
        p = sub.add_parser(name, help=help_text)
        p.set_defaults(handler=handler)
        return p

    add("accounts", cmd_accounts, "List accounts")

    p = add("add-account", cmd_add_account, "Create an account")
    p.add_argument("name")
    p.add_argument("email")
    p.add_argument("--personality", default=None)

    p = add("configure-smtp", cmd_configure_smtp, "Set SMTP credentials")
    p.add_argument("account_id")
    p.add_argument("--host", required=True)
    p.add_argument("--port", type=int, default=587)
    p.add_argument("--user", required=True)
    p.add_argument("--password", required=True)
    p.add_argument("--secure", action="store_true")

    p = add("new-conversation", cmd_new_conversation, "Create a conversation")
    p.add_argument("name")
    p.add_argument("--subject", default=None)

    p = add("add-participant", cmd_add_participant, "Add an account")
    p.add_argument("conversation_id")
    p.add_argument("account_id")

    p = add("set-delays", cmd_set_delays, "Set delay window and length")
    p.add_argument("conversation_id")
    p.add_argument("--min", type=float, default=None, help="Minutes")
    p.add_argument("--max", type=float, default=None, help="Minutes")
    p.add_argument("--length", type=int, default=None)

    p = add("show", cmd_show, "Show a conversation")
    p.add_argument("conversation_id")

    p = add("generate", cmd_generate, "Generate messages")
    p.add_argument("conversation_id")
    p.add_argument("--full", action="store_true", help="Generate a full exchange")
    p.add_argument("--length", type=int, default=None)
    p.add_argument("--prompt", default=None, help="Conversation context")

    p = add("send-all", cmd_send_all, "Schedule and send unsent messages")
    p.add_argument("conversation_id")

    p = add("send", cmd_send, "Send one message now")
    p.add_argument("conversation_id")
    p.add_argument("message_id")

    add("sync", cmd_sync, "Save state to all backends")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Parse arguments, build the repository and run one command."""
    parser = build_parser()
    args = parser.parse_args(argv)
    config = MailSimConfig.from_parsed_args(args)

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    for warning in validate_config(config):
        logger.warning(warning)

    repository = ConversationRepository(build_backend(config))
    try:
        outcome = args.handler(args, config, repository)
        if asyncio.iscoroutine(outcome):
            outcome = asyncio.run(outcome)
    except _HANDLED_ERRORS as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return outcome


if __name__ == "__main__":
    sys.exit(main())
