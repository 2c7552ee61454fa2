"""Budget plans and savings goals."""

from src.planning.budget import (
    BudgetTracker,
    PlanningError,
    budget_band,
    evaluate_budget,
    monthly_spending,
)
from src.planning.goals import SavingsGoalService, goal_progress

__all__ = [
    "BudgetTracker",
    "PlanningError",
    "SavingsGoalService",
    "budget_band",
    "evaluate_budget",
    "goal_progress",
    "monthly_spending",
]
