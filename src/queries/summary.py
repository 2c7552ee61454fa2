"""
Dashboard Summaries

Aggregations computed in Python over the full transaction list.
Used by the dashboard, the charts and the prompt context.

All functions take transactions and return plain models; no storage access.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field

from src.models.transaction import Transaction, TransactionType
from src.utils.currency import format_currency


ZERO = Decimal("0")


class Totals(BaseModel):
    """Income, expense and balance over a set of transactions."""

    total_income: Decimal = ZERO
    total_expense: Decimal = ZERO
    balance: Decimal = ZERO
    count: int = 0


class CategoryTotal(BaseModel):
    category: str
    amount: Decimal


class MonthlyPoint(BaseModel):
    """Income and expense for one calendar month."""

    year: int
    month: int
    income: Decimal = ZERO
    expense: Decimal = ZERO

    @property
    def label(self) -> str:
        return date(self.year, self.month, 1).strftime("%b %Y")


class DashboardSummary(BaseModel):
    totals: Totals
    expense_by_category: list[CategoryTotal] = Field(default_factory=list)
    monthly: list[MonthlyPoint] = Field(default_factory=list)


def compute_totals(transactions: list[Transaction]) -> Totals:
    income = sum((tx.amount for tx in transactions if tx.is_income), ZERO)
    expense = sum((tx.amount for tx in transactions if tx.is_expense), ZERO)
    return Totals(
        total_income=income,
        total_expense=expense,
        balance=income - expense,
        count=len(transactions),
    )


def expense_by_category(transactions: list[Transaction]) -> list[CategoryTotal]:
    """Expense totals per category, largest first (ties by name)."""
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for tx in transactions:
        if tx.type == TransactionType.EXPENSE:
            totals[tx.category] += tx.amount
    ordered = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
    return [CategoryTotal(category=name, amount=amount) for name, amount in ordered]


def top_expense_categories(transactions: list[Transaction], limit: int = 5) -> list[CategoryTotal]:
    return expense_by_category(transactions)[:limit]


def monthly_series(transactions: list[Transaction]) -> list[MonthlyPoint]:
    """Income/expense per month, oldest month first."""
    points: dict[tuple[int, int], MonthlyPoint] = {}
    for tx in transactions:
        key = (tx.date.year, tx.date.month)
        point = points.setdefault(key, MonthlyPoint(year=key[0], month=key[1]))
        if tx.is_income:
            point.income += tx.amount
        else:
            point.expense += tx.amount
    return [points[key] for key in sorted(points)]


def build_dashboard_summary(transactions: list[Transaction]) -> DashboardSummary:
    return DashboardSummary(
        totals=compute_totals(transactions),
        expense_by_category=expense_by_category(transactions),
        monthly=monthly_series(transactions),
    )


def default_analysis(transactions: list[Transaction], limit: int = 5) -> str:
    """
    Markdown shown before any analysis has been generated.
    """
    if not transactions:
        return (
            "Your expense analysis will appear here once you have some transactions.\n\n"
            "Add some transactions and click **Update Analysis** to get personalized insights."
        )

    top = top_expense_categories(transactions, limit)
    if not top:
        return "No expenses recorded yet. Add an expense to see where your money goes."

    lines = ["**Here's a quick look at your spending:**", ""]
    for index, item in enumerate(top, start=1):
        lines.append(
            f"{index}. **{item.category}**: You've spent "
            f"{format_currency(item.amount, compact=True)} on {item.category}. "
            "Consider tracking this category more closely to optimize your spending."
        )
    return "\n".join(lines)
