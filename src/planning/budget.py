"""
Monthly Budget Tracking

A budget plan is a list of per-category allowances. Tracking compares
each allowance with this month's expense spending in that category.

Bands:
    on_track  <= 50% used
    caution   <= 80% used
    warning   <= 100% used
    over      >  100% used
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Optional

import structlog

from src.config import AssistantSettings, get_settings
from src.models.planning import BudgetBand, BudgetItem, BudgetLine, BudgetOverview
from src.models.transaction import Transaction
from src.services.storage import TransactionStorageInterface, UserDataStorageInterface


logger = structlog.get_logger()

ZERO = Decimal("0")


class PlanningError(Exception):
    """A budget or goal change was rejected (bad index, bad amount)."""
    pass


def budget_band(percentage: float) -> BudgetBand:
    if percentage <= 50:
        return BudgetBand.ON_TRACK
    if percentage <= 80:
        return BudgetBand.CAUTION
    if percentage <= 100:
        return BudgetBand.WARNING
    return BudgetBand.OVER


def monthly_spending(transactions: list[Transaction], year: int, month: int) -> dict[str, Decimal]:
    """Expense totals per category for one calendar month."""
    spending: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for tx in transactions:
        if tx.is_expense and tx.date.year == year and tx.date.month == month:
            spending[tx.category] += tx.amount
    return dict(spending)


def evaluate_budget(
    items: list[BudgetItem],
    transactions: list[Transaction],
    today: date,
) -> BudgetOverview:
    """Compare each budget item with the current month's spending."""
    spending = monthly_spending(transactions, today.year, today.month)
    lines = []
    for item in items:
        spent = spending.get(item.category, ZERO)
        percentage = (
            float(spent / item.budgeted_amount * 100) if item.budgeted_amount > 0 else 0.0
        )
        lines.append(BudgetLine(
            category=item.category,
            budgeted_amount=item.budgeted_amount,
            spent=spent,
            remaining=item.budgeted_amount - spent,
            percentage=percentage,
            band=budget_band(percentage),
            suggestion=item.suggestion,
        ))
    return BudgetOverview(
        year=today.year,
        month=today.month,
        lines=lines,
        total_budget=sum((item.budgeted_amount for item in items), ZERO),
        # All of this month's expenses, budgeted categories or not
        total_spent=sum(spending.values(), ZERO),
    )


class BudgetTracker:
    """Reads and edits the budget plan; evaluates it against spending."""

    def __init__(
        self,
        user_storage: UserDataStorageInterface,
        transaction_storage: TransactionStorageInterface,
        settings: Optional[AssistantSettings] = None,
    ):
        self._user_storage = user_storage
        self._transactions = transaction_storage
        self._settings = settings or get_settings().assistant

    async def get_plan(self) -> list[BudgetItem]:
        return await self._user_storage.get_budget_plan()

    async def overview(self, today: Optional[date] = None) -> BudgetOverview:
        items = await self._user_storage.get_budget_plan()
        transactions = await self._transactions.list_transactions()
        return evaluate_budget(items, transactions, today or self._settings.today())

    async def replace_plan(self, items: list[BudgetItem]) -> list[BudgetItem]:
        await self._user_storage.save_budget_plan(items)
        logger.info("budget_plan_replaced", items=len(items))
        return items

    async def add_item(
        self,
        category: str,
        budgeted_amount: Decimal,
        suggestion: Optional[str] = None,
    ) -> BudgetItem:
        if budgeted_amount < 0:
            raise PlanningError("Budgeted amount cannot be negative")
        item = BudgetItem(
            category=category,
            budgeted_amount=budgeted_amount,
            suggestion=suggestion or f"Monitor your {category} spending carefully.",
        )
        items = await self._user_storage.get_budget_plan()
        items.append(item)
        await self._user_storage.save_budget_plan(items)
        return item

    async def update_item(
        self,
        index: int,
        category: Optional[str] = None,
        budgeted_amount: Optional[Decimal] = None,
        suggestion: Optional[str] = None,
    ) -> BudgetItem:
        items = await self._user_storage.get_budget_plan()
        if not 0 <= index < len(items):
            raise PlanningError(f"No budget item at position {index}")
        if budgeted_amount is not None and budgeted_amount < 0:
            raise PlanningError("Budgeted amount cannot be negative")

        changes = {
            key: value
            for key, value in (
                ("category", category),
                ("budgeted_amount", budgeted_amount),
                ("suggestion", suggestion),
            )
            if value is not None
        }
        items[index] = BudgetItem.model_validate({**items[index].model_dump(), **changes})
        await self._user_storage.save_budget_plan(items)
        return items[index]

    async def delete_item(self, index: int) -> BudgetItem:
        items = await self._user_storage.get_budget_plan()
        if not 0 <= index < len(items):
            raise PlanningError(f"No budget item at position {index}")
        removed = items.pop(index)
        await self._user_storage.save_budget_plan(items)
        return removed
