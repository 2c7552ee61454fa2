"""Services package."""

from src.services.llm import GeminiClient, LanguageModelError
from src.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTransactionStorage,
    GoogleSheetsUserDataStorage,
    InMemoryAuditStorage,
    InMemoryTransactionStorage,
    InMemoryUserDataStorage,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
    UserDataStorageInterface,
)

__all__ = [
    # Language model
    "GeminiClient",
    "LanguageModelError",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsTransactionStorage",
    "GoogleSheetsUserDataStorage",
    "InMemoryAuditStorage",
    "InMemoryTransactionStorage",
    "InMemoryUserDataStorage",
    "NotFoundError",
    "StorageError",
    "TransactionStorageInterface",
    "UserDataStorageInterface",
]
