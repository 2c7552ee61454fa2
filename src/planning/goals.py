"""
Savings Goals

Goals carry a target, an optional monthly contribution and the amount
saved so far. Contributing to a goal also records an income transaction
in the "Savings" category, so the dashboard sees the money.
"""

import math
from datetime import datetime
from decimal import Decimal
from typing import Optional

import structlog

from src.audit import AuditLogger
from src.config import AssistantSettings, get_settings
from src.models.planning import Contribution, GoalProgress, SavingsGoal
from src.models.transaction import SAVINGS_CATEGORY, Transaction, TransactionType
from src.planning.budget import PlanningError
from src.services.storage import TransactionStorageInterface, UserDataStorageInterface


logger = structlog.get_logger()

ZERO = Decimal("0")


def goal_progress(goal: SavingsGoal) -> GoalProgress:
    """
    Percent saved, amount remaining and months to go.

    months_to_goal is 0 once the target is reached and None when there is
    no positive monthly contribution to project with.
    """
    percentage = (
        float(goal.saved_amount / goal.target_amount * 100) if goal.target_amount > 0 else 0.0
    )
    remaining = goal.target_amount - goal.saved_amount
    if remaining <= 0:
        months: Optional[int] = 0
    elif goal.monthly_contribution > 0:
        months = math.ceil(remaining / goal.monthly_contribution)
    else:
        months = None
    return GoalProgress(
        goal_id=goal.id,
        goal_title=goal.goal_title,
        percentage=percentage,
        remaining=max(remaining, ZERO),
        months_to_goal=months,
    )


class SavingsGoalService:
    """CRUD over the goals list plus contributions."""

    def __init__(
        self,
        user_storage: UserDataStorageInterface,
        transaction_storage: TransactionStorageInterface,
        settings: Optional[AssistantSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._user_storage = user_storage
        self._transactions = transaction_storage
        self._settings = settings or get_settings().assistant
        self._audit_logger = audit_logger

    async def list_goals(self) -> list[SavingsGoal]:
        return await self._user_storage.get_savings_goals()

    async def replace_goals(self, goals: list[SavingsGoal]) -> list[SavingsGoal]:
        await self._user_storage.save_savings_goals(goals)
        logger.info("savings_goals_replaced", goals=len(goals))
        return goals

    async def add_goal(self, goal: SavingsGoal) -> SavingsGoal:
        goals = await self._user_storage.get_savings_goals()
        goals.append(goal)
        await self._user_storage.save_savings_goals(goals)
        return goal

    async def _get(self, goals: list[SavingsGoal], index: int) -> SavingsGoal:
        if not 0 <= index < len(goals):
            raise PlanningError(f"No savings goal at position {index}")
        return goals[index]

    async def update_goal(self, index: int, **changes) -> SavingsGoal:
        """
        Edit goal fields. Saved amount and contribution history are kept.
        """
        goals = await self._user_storage.get_savings_goals()
        goal = await self._get(goals, index)
        for protected in ("id", "saved_amount", "contributions"):
            changes.pop(protected, None)
        goals[index] = SavingsGoal.model_validate({**goal.model_dump(), **changes})
        await self._user_storage.save_savings_goals(goals)
        return goals[index]

    async def delete_goal(self, index: int) -> SavingsGoal:
        goals = await self._user_storage.get_savings_goals()
        await self._get(goals, index)
        removed = goals.pop(index)
        await self._user_storage.save_savings_goals(goals)
        return removed

    async def contribute(
        self,
        index: int,
        amount: Decimal,
    ) -> tuple[SavingsGoal, Transaction]:
        """
        Put money towards a goal.

        Raises:
            PlanningError: If the amount isn't positive or the goal doesn't exist
        """
        if amount <= 0:
            raise PlanningError("Please enter a valid amount")

        goals = await self._user_storage.get_savings_goals()
        goal = await self._get(goals, index)

        goal.saved_amount += amount
        goal.contributions.append(Contribution(amount=amount, date=datetime.utcnow()))
        await self._user_storage.save_savings_goals(goals)

        transaction = await self._transactions.add_transaction(Transaction(
            type=TransactionType.INCOME,
            description=f"Savings contribution: {goal.goal_title}",
            amount=amount,
            category=SAVINGS_CATEGORY,
            date=self._settings.today(),
        ))

        logger.info(
            "goal_contribution_recorded",
            goal_id=goal.id,
            amount=str(amount),
            saved_amount=str(goal.saved_amount),
        )
        if self._audit_logger:
            await self._audit_logger.log_goal_contribution(
                goal_id=goal.id,
                goal_title=goal.goal_title,
                amount=str(amount),
            )
        return goal, transaction
