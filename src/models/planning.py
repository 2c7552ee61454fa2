"""
Budget and Savings Plan Models

A budget plan is a list of per-category monthly allowances.
Savings goals track a target, a monthly contribution and progress.
Both can be written by hand or generated by the planning interview.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class PlanKind(str, Enum):
    """Which plan the interview produces."""
    BUDGET = "budget"
    SAVINGS = "savings"


class BudgetBand(str, Enum):
    """How close a category is to its budget."""
    ON_TRACK = "on_track"   # <= 50%
    CAUTION = "caution"     # <= 80%
    WARNING = "warning"     # <= 100%
    OVER = "over"           # > 100%


class BudgetItem(BaseModel):
    """Monthly allowance for one category."""
    model_config = ConfigDict(str_strip_whitespace=True)

    category: str = Field(..., min_length=1, max_length=100)
    budgeted_amount: Decimal = Field(..., ge=0)
    suggestion: str = Field(default="", max_length=1000)


class Contribution(BaseModel):
    """Money put towards a savings goal."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    amount: Decimal = Field(..., gt=0)
    date: datetime = Field(default_factory=datetime.utcnow)


class SavingsGoal(BaseModel):
    """
    A savings target.

    saved_amount is the running total of contributions; it is stored
    explicitly so goals created before contributions were tracked still work.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    goal_title: str = Field(..., min_length=1, max_length=200)
    target_amount: Decimal = Field(..., ge=0)
    monthly_contribution: Decimal = Field(default=Decimal("0"), ge=0)
    timeline: str = ""
    description: str = ""
    steps: list[str] = Field(default_factory=list)
    saved_amount: Decimal = Field(default=Decimal("0"), ge=0)
    contributions: list[Contribution] = Field(default_factory=list)


class BudgetLine(BaseModel):
    """A budget item evaluated against this month's spending."""

    category: str
    budgeted_amount: Decimal
    spent: Decimal
    remaining: Decimal
    percentage: float
    band: BudgetBand
    suggestion: str = ""

    @property
    def is_over_budget(self) -> bool:
        return self.band == BudgetBand.OVER


class BudgetOverview(BaseModel):
    """Whole-budget view for one month."""

    year: int
    month: int
    lines: list[BudgetLine] = Field(default_factory=list)
    total_budget: Decimal = Decimal("0")
    total_spent: Decimal = Decimal("0")


class GoalProgress(BaseModel):
    """Progress of a savings goal."""

    goal_id: str
    goal_title: str
    percentage: float
    remaining: Decimal
    months_to_goal: Optional[int] = None


class PlanInterview(BaseModel):
    """
    State of one planning interview.

    The model writes the questions; the user answers them in order;
    the plan is generated after the last answer.
    """

    kind: PlanKind
    questions: list[str] = Field(default_factory=list)
    answers: list[str] = Field(default_factory=list)
    budget_plan: Optional[list[BudgetItem]] = None
    savings_plan: Optional[list[SavingsGoal]] = None

    @property
    def current_index(self) -> int:
        return len(self.answers)

    @property
    def is_complete(self) -> bool:
        return len(self.questions) > 0 and len(self.answers) >= len(self.questions)

    @property
    def current_question(self) -> Optional[str]:
        if self.is_complete or not self.questions:
            return None
        return self.questions[self.current_index]

    @property
    def has_plan(self) -> bool:
        return self.budget_plan is not None or self.savings_plan is not None
