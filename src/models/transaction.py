"""
Core Record Models for Finance Assistant

These models define the schemas for everything kept in the record store.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Support the undo log (records are snapshotted by value)

DESIGN DECISION: Amounts are Decimal everywhere inside the system.
Floats only appear at the language-model boundary and are converted on entry.
"""

from datetime import date as Date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# ENUMS & CONSTANTS
# =============================================================================

class TransactionType(str, Enum):
    """Direction of money flow."""
    INCOME = "income"
    EXPENSE = "expense"


# Categories offered to the user and to the language model.
# Free-text categories are still accepted; these are suggestions.
DEFAULT_CATEGORIES = [
    "Food",
    "Travel",
    "Shopping",
    "Bills",
    "Entertainment",
    "Health",
    "Education",
    "Electronics",
    "Income",
    "Investment",
    "Personal",
    "Other",
]

FALLBACK_CATEGORY = "Other"
SALARY_CATEGORY = "Salary"
SAVINGS_CATEGORY = "Savings"


def new_record_id() -> str:
    """Create a record identifier (opaque string, like a document id)."""
    return uuid4().hex


# =============================================================================
# RECORDS
# =============================================================================

class Transaction(BaseModel):
    """
    A single income or expense entry in the record store.

    Records are treated as values: the undo log keeps full copies,
    so a record can be restored exactly as it was.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=new_record_id,
        min_length=1,
        description="Record identifier"
    )
    type: TransactionType = Field(
        ...,
        description="Income or expense"
    )
    description: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="What the money was for"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Amount in INR"
    )
    category: str = Field(
        default=FALLBACK_CATEGORY,
        min_length=1,
        max_length=100,
        description="Spending/income category"
    )
    date: Date = Field(
        ...,
        description="Date the transaction happened"
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the record was created"
    )

    @property
    def is_income(self) -> bool:
        return self.type == TransactionType.INCOME

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE


class UserProfile(BaseModel):
    """
    Per-user profile data used to personalize the assistant.

    expected_salary comes from onboarding answers; it is what the
    assistant falls back to when the user says "got my salary".
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(
        default="User",
        max_length=200
    )
    email: Optional[str] = None
    occupation: Optional[str] = None
    expected_salary: Optional[Decimal] = Field(
        default=None,
        ge=0
    )

    # Last generated expense analysis (Markdown from the model)
    expense_analysis_report: Optional[str] = None
    analysis_updated_at: Optional[datetime] = None


class TransactionSuggestion(BaseModel):
    """
    Autofill result for the quick-add form.

    CRITICAL: This is a SUGGESTION. It only pre-fills a form;
    nothing is stored until the user submits.
    """

    type: TransactionType = TransactionType.EXPENSE
    amount: Optional[Decimal] = Field(default=None, ge=0)
    category: str = FALLBACK_CATEGORY
    date: Date
