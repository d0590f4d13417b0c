"""Persistence backends for the conversation repository.

A backend loads and saves a complete snapshot of accounts and conversations.
The repository calls ``load()`` once at session start and ``save()`` after
every mutation; backends never hold references to live repository state.

Classes:
    StoreSnapshot: Accounts and conversations captured at one point in time.
    StoreBackend: Protocol implemented by every backend.
    InMemoryBackend: Keeps the last snapshot in memory.
    JsonFileBackend: Local JSON document (the session's primary store).
    MirroredBackend: Primary backend plus a best-effort mirror.
    BackendError: Raised when a backend cannot complete an operation.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from pydantic import ValidationError

from src.mailsim.store.models import Account, Conversation


logger = logging.getLogger(__name__)


class BackendError(Exception):
    """Raised when a backend cannot load or save state."""

    pass


@dataclass
class StoreSnapshot:
    """Accounts and conversations captured at one point in time."""

    accounts: list[Account] = field(default_factory=list)
    conversations: list[Conversation] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.accounts and not self.conversations

    def to_document(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON document form."""
        return {
            "accounts": [a.to_document() for a in self.accounts],
            "conversations": [c.to_document() for c in self.conversations],
        }

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> StoreSnapshot:
        """Parse a JSON document, dropping entries that fail validation."""
        accounts: list[Account] = []
        for raw in document.get("accounts") or []:
            try:
                accounts.append(Account.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Dropping invalid stored account: {e}")

        conversations: list[Conversation] = []
        for raw in document.get("conversations") or []:
            try:
                conversations.append(Conversation.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Dropping invalid stored conversation: {e}")

        return cls(accounts=accounts, conversations=conversations)


@runtime_checkable
class StoreBackend(Protocol):
    """Persistence collaborator for the repository."""

    def load(self) -> StoreSnapshot:
        """Return the stored state (empty if nothing is stored)."""
        ...

    def save(self, accounts: list[Account], conversations: list[Conversation]) -> None:
        """Replace the stored state."""
        ...


class InMemoryBackend:
    """Backend that keeps the last saved snapshot in memory."""

    def __init__(self, snapshot: StoreSnapshot | None = None) -> None:
        self._snapshot = snapshot or StoreSnapshot()
        self.save_count = 0

    def load(self) -> StoreSnapshot:
        return StoreSnapshot(
            accounts=[a.model_copy(deep=True) for a in self._snapshot.accounts],
            conversations=[
                c.model_copy(deep=True) for c in self._snapshot.conversations
            ],
        )

    def save(self, accounts: list[Account], conversations: list[Conversation]) -> None:
        self._snapshot = StoreSnapshot(
            accounts=[a.model_copy(deep=True) for a in accounts],
            conversations=[c.model_copy(deep=True) for c in conversations],
        )
        self.save_count += 1


class JsonFileBackend:
    """Backend that stores a single JSON document on disk.

    Writes go to a temporary file in the same directory which then replaces
    the target, so a crash mid-write never leaves a truncated document.

    Attributes:
        path: Location of the JSON document.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def load(self) -> StoreSnapshot:
        if not self.path.exists():
            logger.debug(f"No data file at {self.path}; starting empty")
            return StoreSnapshot()
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read data file {self.path}: {e}")
            return StoreSnapshot()
        if not isinstance(document, dict):
            logger.error(f"Data file {self.path} does not contain a JSON object")
            return StoreSnapshot()
        return StoreSnapshot.from_document(document)

    def save(self, accounts: list[Account], conversations: list[Conversation]) -> None:
        document = StoreSnapshot(accounts, conversations).to_document()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise BackendError(f"Failed to write data file {self.path}: {e}") from e


class MirroredBackend:
    """Primary backend with a best-effort mirror.

    Loads come from the primary; if it is empty the mirror is consulted so a
    fresh machine can pick up mirrored state. Saves go to both, and a mirror
    failure is logged without affecting the primary.
    """

    def __init__(self, primary: StoreBackend, mirror: StoreBackend) -> None:
        self.primary = primary
        self.mirror = mirror

    def load(self) -> StoreSnapshot:
        snapshot = self.primary.load()
        if not snapshot.is_empty:
            return snapshot
        try:
            mirrored = self.mirror.load()
        except Exception as e:
            logger.warning(f"Failed to load from mirror: {e}")
            return snapshot
        if not mirrored.is_empty:
            logger.info(
                f"Loaded {len(mirrored.accounts)} account(s) and "
                f"{len(mirrored.conversations)} conversation(s) from mirror"
            )
        return mirrored

    def save(self, accounts: list[Account], conversations: list[Conversation]) -> None:
        self.primary.save(accounts, conversations)
        try:
            self.mirror.save(accounts, conversations)
        except Exception as e:
            logger.warning(f"Failed to sync to mirror: {e}")
