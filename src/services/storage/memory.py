"""
In-Memory Storage

Used for tests and for sessions where Google Sheets is not configured.
Data lives as long as the process.

Copies go in and out so callers can never mutate stored records.
"""

from typing import Any, Optional
from uuid import UUID

from src.models.audit import AuditEvent
from src.models.planning import BudgetItem, SavingsGoal
from src.models.transaction import Transaction, UserProfile
from src.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    TransactionStorageInterface,
    UserDataStorageInterface,
    apply_changes,
    newest_first,
)


class InMemoryTransactionStorage(TransactionStorageInterface):
    """Transactions keyed by id."""

    def __init__(self, transactions: Optional[list[Transaction]] = None):
        self._records: dict[str, Transaction] = {}
        for tx in transactions or []:
            self._records[tx.id] = tx.model_copy(deep=True)

    async def add_transaction(self, transaction: Transaction) -> Transaction:
        if transaction.id in self._records:
            raise DuplicateError(f"Transaction already exists: {transaction.id}")
        self._records[transaction.id] = transaction.model_copy(deep=True)
        return transaction.model_copy(deep=True)

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        tx = self._records.get(transaction_id)
        return tx.model_copy(deep=True) if tx else None

    async def update_transaction(
        self,
        transaction_id: str,
        changes: dict[str, Any],
    ) -> Transaction:
        current = self._records.get(transaction_id)
        if current is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        updated = apply_changes(current, changes)
        self._records[transaction_id] = updated
        return updated.model_copy(deep=True)

    async def delete_transaction(self, transaction_id: str) -> bool:
        return self._records.pop(transaction_id, None) is not None

    async def list_transactions(self) -> list[Transaction]:
        return newest_first([tx.model_copy(deep=True) for tx in self._records.values()])


class InMemoryUserDataStorage(UserDataStorageInterface):
    """Profile, budget plan and goals held as plain attributes."""

    def __init__(
        self,
        profile: Optional[UserProfile] = None,
        budget_plan: Optional[list[BudgetItem]] = None,
        savings_goals: Optional[list[SavingsGoal]] = None,
    ):
        self._profile = profile or UserProfile()
        self._budget_plan = list(budget_plan or [])
        self._savings_goals = list(savings_goals or [])

    async def get_profile(self) -> UserProfile:
        return self._profile.model_copy(deep=True)

    async def save_profile(self, profile: UserProfile) -> bool:
        self._profile = profile.model_copy(deep=True)
        return True

    async def get_budget_plan(self) -> list[BudgetItem]:
        return [item.model_copy(deep=True) for item in self._budget_plan]

    async def save_budget_plan(self, items: list[BudgetItem]) -> bool:
        self._budget_plan = [item.model_copy(deep=True) for item in items]
        return True

    async def get_savings_goals(self) -> list[SavingsGoal]:
        return [goal.model_copy(deep=True) for goal in self._savings_goals]

    async def save_savings_goals(self, goals: list[SavingsGoal]) -> bool:
        self._savings_goals = [goal.model_copy(deep=True) for goal in goals]
        return True


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of events."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self.events, key=lambda e: e.timestamp, reverse=True)[:limit]
