"""Account and conversation store.

Modules:
    models: Pydantic models for accounts, conversations and messages
    repository: In-memory repository with write-through persistence
    backends: Backend protocol plus in-memory, JSON file and mirrored backends
    sheets: Google Sheets mirror backend
"""

from src.mailsim.store.backends import (
    BackendError,
    InMemoryBackend,
    JsonFileBackend,
    MirroredBackend,
    StoreBackend,
    StoreSnapshot,
)
from src.mailsim.store.models import (
    DEFAULT_CONVERSATION_LENGTH,
    DEFAULT_MAX_DELAY_MINUTES,
    DEFAULT_MIN_DELAY_MINUTES,
    Account,
    Conversation,
    EmailConfig,
    Message,
    TokenUsage,
)
from src.mailsim.store.repository import (
    ConversationRepository,
    NotFoundError,
    StoreError,
    StoreValidationError,
)
from src.mailsim.store.sheets import GoogleSheetsBackend, build_sheets_service

__all__ = [
    # Models
    "Account",
    "Conversation",
    "EmailConfig",
    "Message",
    "TokenUsage",
    "DEFAULT_CONVERSATION_LENGTH",
    "DEFAULT_MAX_DELAY_MINUTES",
    "DEFAULT_MIN_DELAY_MINUTES",
    # Repository
    "ConversationRepository",
    "NotFoundError",
    "StoreError",
    "StoreValidationError",
    # Backends
    "BackendError",
    "GoogleSheetsBackend",
    "InMemoryBackend",
    "JsonFileBackend",
    "MirroredBackend",
    "StoreBackend",
    "StoreSnapshot",
    "build_sheets_service",
]
