"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for the record store.
This allows us to:
1. Use Google Sheets as the user's record store
2. Use in-memory storage for testing and for unconfigured sessions
3. Keep the assistant pipeline decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Just the operations the assistant, planning and dashboard need.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

from src.models.audit import AuditEvent
from src.models.planning import BudgetItem, SavingsGoal
from src.models.transaction import Transaction, UserProfile


class TransactionStorageInterface(ABC):
    """
    Abstract interface for transaction storage.

    Any storage implementation must implement these methods.
    Records are always returned as fresh copies; mutating a returned
    Transaction never changes what is stored.
    """

    @abstractmethod
    async def add_transaction(self, transaction: Transaction) -> Transaction:
        """
        Store a new transaction.

        The transaction's id is kept as given, so a deleted record can be
        restored under its original id.

        Raises:
            DuplicateError: If a record with the same id exists
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        """Retrieve a transaction by id, or None."""
        pass

    @abstractmethod
    async def update_transaction(
        self,
        transaction_id: str,
        changes: dict[str, Any],
    ) -> Transaction:
        """
        Apply field changes to an existing transaction.

        Args:
            transaction_id: Record to change
            changes: Field name -> new value (only the given fields change)

        Returns:
            The updated transaction

        Raises:
            NotFoundError: If the transaction doesn't exist
            StorageError: If update fails
        """
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: str) -> bool:
        """
        Delete a transaction by id.

        Returns:
            True if a record was deleted, False if it didn't exist
        """
        pass

    @abstractmethod
    async def list_transactions(self) -> list[Transaction]:
        """
        List all transactions, newest first (date desc, then created_at desc).
        """
        pass


class UserDataStorageInterface(ABC):
    """
    Abstract interface for per-user documents: profile, budget plan, goals.

    Budget plan and goals are saved as whole lists (replace semantics).
    """

    @abstractmethod
    async def get_profile(self) -> UserProfile:
        """Return the profile (a default profile if none was saved)."""
        pass

    @abstractmethod
    async def save_profile(self, profile: UserProfile) -> bool:
        pass

    @abstractmethod
    async def get_budget_plan(self) -> list[BudgetItem]:
        pass

    @abstractmethod
    async def save_budget_plan(self, items: list[BudgetItem]) -> bool:
        pass

    @abstractmethod
    async def get_savings_goals(self) -> list[SavingsGoal]:
        pass

    @abstractmethod
    async def save_savings_goals(self, goals: list[SavingsGoal]) -> bool:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one assistant session).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


def apply_changes(transaction: Transaction, changes: dict[str, Any]) -> Transaction:
    """
    Return a validated copy of a transaction with the given fields replaced.

    Shared by all backends so updates are validated the same way everywhere.
    """
    unknown = set(changes) - set(Transaction.model_fields)
    if unknown:
        raise StorageError(f"Unknown transaction fields: {', '.join(sorted(unknown))}")
    if "id" in changes and changes["id"] != transaction.id:
        raise StorageError("Transaction id cannot be changed")
    data = transaction.model_dump()
    data.update(changes)
    return Transaction.model_validate(data)


def newest_first(transactions: list[Transaction]) -> list[Transaction]:
    """Sort by date desc, then created_at desc."""
    return sorted(
        transactions,
        key=lambda tx: (tx.date, tx.created_at),
        reverse=True,
    )
