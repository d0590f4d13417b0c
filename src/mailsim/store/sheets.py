"""Google Sheets backend that mirrors MailSim state into a spreadsheet.

The spreadsheet holds three sheets (Accounts, Conversations, Messages) with
one header row each. Every save clears the data rows and rewrites them, so
the spreadsheet always reflects the latest snapshot. SMTP passwords are never
written; accounts loaded back from the sheet therefore have no credentials.

Classes:
    GoogleSheetsBackend: StoreBackend over the Sheets v4 API.

Functions:
    build_sheets_service: Build a Sheets client from service-account JSON.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from src.mailsim.store.backends import BackendError, StoreSnapshot
from src.mailsim.store.models import (
    Account,
    Conversation,
    Message,
    TokenUsage,
)


logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]
SPREADSHEET_TITLE = "Email System Database"

ACCOUNTS_SHEET = "Accounts"
CONVERSATIONS_SHEET = "Conversations"
MESSAGES_SHEET = "Messages"

ACCOUNT_HEADERS = [
    "ID",
    "Name",
    "Email",
    "Personality",
    "SMTP Host",
    "SMTP Port",
    "SMTP User",
    "Email Configured",
    "Last Updated",
]
CONVERSATION_HEADERS = [
    "Conversation ID",
    "Name",
    "Selected Account",
    "Other Accounts",
    "Message Count",
    "Email Subject",
    "Min Delay (min)",
    "Max Delay (min)",
    "Conversation Length",
    "Created",
    "Last Updated",
]
MESSAGE_HEADERS = [
    "Message ID",
    "Conversation ID",
    "Conversation Name",
    "Account ID",
    "Account Name",
    "Account Email",
    "Content",
    "Timestamp",
    "Sent",
    "Email Message ID",
    "Cost (USD)",
    "Tokens (Input)",
    "Tokens (Output)",
    "Tokens (Total)",
]


def build_sheets_service(credentials_json: str) -> Any:
    """Build a Sheets v4 client from service-account credentials.

    Args:
        credentials_json: The service-account key file contents.

    Returns:
        A googleapiclient Resource for the Sheets API.
    """
    info = json.loads(credentials_json)
    credentials = service_account.Credentials.from_service_account_info(
        info, scopes=SCOPES
    )
    return build("sheets", "v4", credentials=credentials, cache_discovery=False)


def _column_letter(count: int) -> str:
    return chr(ord("A") + count - 1)


def _cell(row: list[str], index: int) -> str:
    return row[index].strip() if index < len(row) else ""


def _optional_int(value: str) -> int | None:
    try:
        return int(float(value)) if value else None
    except ValueError:
        return None


def _optional_float(value: str) -> float | None:
    try:
        return float(value) if value else None
    except ValueError:
        return None


class GoogleSheetsBackend:
    """StoreBackend that mirrors state into a Google spreadsheet.

    Attributes:
        spreadsheet_id: Id of the target spreadsheet. Assigned on first use
            when the backend creates a new spreadsheet.

    Example:
        >>> service = build_sheets_service(credentials_json)
        >>> backend = GoogleSheetsBackend(service, spreadsheet_id="1g58...")
        >>> backend.save(accounts, conversations)
        >>> backend.spreadsheet_url
        'https://docs.google.com/spreadsheets/d/1g58...'
    """

    def __init__(self, service: Any, spreadsheet_id: str | None = None) -> None:
        self._service = service
        self.spreadsheet_id = spreadsheet_id
        self._verified = False

    @property
    def spreadsheet_url(self) -> str | None:
        if self.spreadsheet_id is None:
            return None
        return f"https://docs.google.com/spreadsheets/d/{self.spreadsheet_id}"

    # =========================================================================
    # StoreBackend
    # =========================================================================

    def load(self) -> StoreSnapshot:
        if self.spreadsheet_id is None:
            return StoreSnapshot()
        try:
            account_rows = self._read_rows(ACCOUNTS_SHEET, len(ACCOUNT_HEADERS))
            conversation_rows = self._read_rows(
                CONVERSATIONS_SHEET, len(CONVERSATION_HEADERS)
            )
            message_rows = self._read_rows(MESSAGES_SHEET, len(MESSAGE_HEADERS))
        except HttpError as e:
            raise BackendError(f"Failed to read spreadsheet: {e}") from e

        accounts = [self._parse_account(row) for row in account_rows if _cell(row, 0)]
        messages_by_conversation: dict[str, list[Message]] = defaultdict(list)
        for row in message_rows:
            message = self._parse_message(row)
            if message is not None:
                messages_by_conversation[_cell(row, 1)].append(message)

        conversations = []
        for row in conversation_rows:
            if not _cell(row, 0):
                continue
            conversations.append(
                self._parse_conversation(row, accounts, messages_by_conversation)
            )

        logger.info(
            f"Read {len(accounts)} account(s) and {len(conversations)} "
            f"conversation(s) from spreadsheet {self.spreadsheet_id}"
        )
        return StoreSnapshot(accounts=accounts, conversations=conversations)

    def save(self, accounts: list[Account], conversations: list[Conversation]) -> None:
        try:
            self._ensure_spreadsheet()
            self._sync_accounts(accounts)
            self._sync_conversations(conversations)
        except HttpError as e:
            raise BackendError(f"Failed to sync to Google Sheets: {e}") from e

    # =========================================================================
    # Spreadsheet Setup
    # =========================================================================

    def _ensure_spreadsheet(self) -> str:
        """Return the spreadsheet id, creating the spreadsheet if needed."""
        if self.spreadsheet_id is not None and self._verified:
            return self.spreadsheet_id

        if self.spreadsheet_id is not None:
            try:
                self._service.spreadsheets().get(
                    spreadsheetId=self.spreadsheet_id
                ).execute()
                self._verified = True
                return self.spreadsheet_id
            except HttpError as e:
                if e.resp.status != 404:
                    raise
                logger.info(
                    f"Spreadsheet {self.spreadsheet_id} not found, creating a new one"
                )

        body = {
            "properties": {"title": SPREADSHEET_TITLE},
            "sheets": [
                {"properties": {"title": title}}
                for title in (ACCOUNTS_SHEET, CONVERSATIONS_SHEET, MESSAGES_SHEET)
            ],
        }
        response = (
            self._service.spreadsheets()
            .create(body=body, fields="spreadsheetId")
            .execute()
        )
        self.spreadsheet_id = response["spreadsheetId"]
        self._verified = True
        logger.info(f"Created spreadsheet {self.spreadsheet_id}")
        return self.spreadsheet_id

    def _ensure_headers(self, sheet: str, headers: list[str]) -> None:
        values = self._service.spreadsheets().values()
        existing = values.get(
            spreadsheetId=self.spreadsheet_id,
            range=f"{sheet}!A1:{_column_letter(len(headers))}1",
        ).execute()
        if existing.get("values"):
            return
        values.update(
            spreadsheetId=self.spreadsheet_id,
            range=f"{sheet}!A1",
            valueInputOption="RAW",
            body={"values": [headers]},
        ).execute()

    def _replace_rows(self, sheet: str, rows: list[list[Any]]) -> None:
        values = self._service.spreadsheets().values()
        values.clear(
            spreadsheetId=self.spreadsheet_id,
            range=f"{sheet}!A2:Z",
            body={},
        ).execute()
        if rows:
            values.update(
                spreadsheetId=self.spreadsheet_id,
                range=f"{sheet}!A2",
                valueInputOption="RAW",
                body={"values": rows},
            ).execute()

    def _read_rows(self, sheet: str, width: int) -> list[list[str]]:
        response = (
            self._service.spreadsheets()
            .values()
            .get(
                spreadsheetId=self.spreadsheet_id,
                range=f"{sheet}!A2:{_column_letter(width)}",
            )
            .execute()
        )
        return response.get("values", [])

    # =========================================================================
    # Writing
    # =========================================================================

    def _sync_accounts(self, accounts: list[Account]) -> None:
        self._ensure_headers(ACCOUNTS_SHEET, ACCOUNT_HEADERS)
        self._replace_rows(ACCOUNTS_SHEET, self.account_rows(accounts))
        logger.debug(f"Synced {len(accounts)} account(s) to Google Sheets")

    def _sync_conversations(self, conversations: list[Conversation]) -> None:
        self._ensure_headers(CONVERSATIONS_SHEET, CONVERSATION_HEADERS)
        self._ensure_headers(MESSAGES_SHEET, MESSAGE_HEADERS)
        conversation_rows, message_rows = self.conversation_rows(conversations)
        self._replace_rows(CONVERSATIONS_SHEET, conversation_rows)
        self._replace_rows(MESSAGES_SHEET, message_rows)
        logger.debug(
            f"Synced {len(conversation_rows)} conversation(s) and "
            f"{len(message_rows)} message(s) to Google Sheets"
        )

    @staticmethod
    def account_rows(accounts: list[Account]) -> list[list[Any]]:
        """Build Accounts sheet rows (passwords are never included)."""
        now = datetime.now(timezone.utc).isoformat()
        rows = []
        for account in accounts:
            config = account.email_config
            rows.append(
                [
                    account.id,
                    account.name,
                    account.email,
                    account.personality or "",
                    config.smtp_host if config else "",
                    str(config.smtp_port) if config else "",
                    config.smtp_user if config else "",
                    "Yes" if config else "No",
                    now,
                ]
            )
        return rows

    @staticmethod
    def conversation_rows(
        conversations: list[Conversation],
    ) -> tuple[list[list[Any]], list[list[Any]]]:
        """Build Conversations and Messages sheet rows."""
        now = datetime.now(timezone.utc).isoformat()
        conversation_rows: list[list[Any]] = []
        message_rows: list[list[Any]] = []
        for conv in conversations:
            selected = conv.selected_account
            conversation_rows.append(
                [
                    conv.id,
                    conv.name,
                    (selected.name or selected.email) if selected else "",
                    ", ".join(a.name or a.email for a in conv.other_accounts),
                    len(conv.messages),
                    conv.email_subject or "",
                    conv.min_delay_minutes,
                    conv.max_delay_minutes,
                    conv.conversation_length,
                    now,
                    now,
                ]
            )
            for msg in conv.messages:
                message_rows.append(
                    [
                        msg.id,
                        conv.id,
                        conv.name,
                        msg.account_id,
                        msg.account_name,
                        msg.account_email,
                        msg.content,
                        msg.timestamp.isoformat(),
                        "Yes" if msg.sent else "No",
                        msg.email_message_id or "",
                        msg.cost if msg.cost is not None else "",
                        msg.tokens.input if msg.tokens else "",
                        msg.tokens.output if msg.tokens else "",
                        msg.tokens.total if msg.tokens else "",
                    ]
                )
        return conversation_rows, message_rows

    # =========================================================================
    # Reading
    # =========================================================================

    @staticmethod
    def _parse_account(row: list[str]) -> Account:
        return Account(
            id=_cell(row, 0),
            name=_cell(row, 1),
            email=_cell(row, 2),
            personality=_cell(row, 3) or None,
        )

    @staticmethod
    def _parse_message(row: list[str]) -> Message | None:
        if not _cell(row, 0) or not _cell(row, 1):
            return None
        tokens = None
        if _cell(row, 13):
            tokens = TokenUsage(
                input=_optional_int(_cell(row, 11)) or 0,
                output=_optional_int(_cell(row, 12)) or 0,
                total=_optional_int(_cell(row, 13)) or 0,
            )
        timestamp = _cell(row, 7)
        return Message(
            id=_cell(row, 0),
            account_id=_cell(row, 3),
            account_name=_cell(row, 4),
            account_email=_cell(row, 5),
            content=row[6] if len(row) > 6 else "",
            timestamp=datetime.fromisoformat(timestamp)
            if timestamp
            else datetime.now(timezone.utc),
            sent=_cell(row, 8) == "Yes",
            email_message_id=_cell(row, 9) or None,
            cost=_optional_float(_cell(row, 10)),
            tokens=tokens,
        )

    @staticmethod
    def _parse_conversation(
        row: list[str],
        accounts: list[Account],
        messages_by_conversation: dict[str, list[Message]],
    ) -> Conversation:
        by_label: dict[str, Account] = {}
        for account in accounts:
            by_label.setdefault(account.email, account)
            by_label.setdefault(account.name, account)

        selected = by_label.get(_cell(row, 2))
        others = [
            by_label[label.strip()]
            for label in _cell(row, 3).split(",")
            if label.strip() in by_label
        ]
        min_delay = _optional_float(_cell(row, 6))
        max_delay = _optional_float(_cell(row, 7))
        length = _optional_int(_cell(row, 8))

        data: dict[str, Any] = {
            "id": _cell(row, 0),
            "name": _cell(row, 1),
            "selected_account": selected,
            "other_accounts": others,
            "messages": messages_by_conversation.get(_cell(row, 0), []),
            "email_subject": _cell(row, 5) or None,
        }
        if min_delay is not None:
            data["min_delay_minutes"] = min_delay
        if max_delay is not None:
            data["max_delay_minutes"] = max_delay
        if length is not None and length >= 2:
            data["conversation_length"] = length
        return Conversation(**data)


__all__ = [
    "ACCOUNT_HEADERS",
    "CONVERSATION_HEADERS",
    "MESSAGE_HEADERS",
    "GoogleSheetsBackend",
    "build_sheets_service",
]
