"""
Main Orchestrator for Finance Assistant

This module ties together all the components and defines the
end-to-end flows for:
1. Assistant (message -> interpret -> validate -> stage -> confirm -> execute -> undo)
2. Planning (interview -> plan -> save)
3. Analysis (context -> generated analysis -> profile)

DESIGN DECISION: The orchestrator enforces the boundaries:
- No record changes without human confirmation
- A pending confirmation blocks new input until resolved
- Every step is audited

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

import re
from datetime import datetime
from typing import NamedTuple, Optional, Union
from uuid import UUID

import structlog

from src.agents import AssistantAgent, PlanningAgent, build_financial_context
from src.agents.prompts import FinancialContext
from src.audit import AuditLogger, create_correlation_id
from src.config import AssistantSettings, get_settings
from src.models.assistant import (
    AssistantReply,
    AssistantTurn,
    BatchOutcome,
    ConversationTurn,
    Intent,
    OperationAction,
    PendingConfirmation,
    StagedOperation,
    TransactionOperation,
    TurnKind,
)
from src.models.planning import BudgetItem, PlanInterview, PlanKind, SavingsGoal
from src.models.transaction import FALLBACK_CATEGORY, Transaction
from src.operations import OperationExecutor, UndoLog
from src.planning import BudgetTracker, PlanningError, SavingsGoalService
from src.queries import apply_delete_filter, default_analysis, find_matches
from src.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsTransactionStorage,
    GoogleSheetsUserDataStorage,
    InMemoryTransactionStorage,
    InMemoryUserDataStorage,
    StorageError,
    TransactionStorageInterface,
    UserDataStorageInterface,
)
from src.utils import format_currency
from src.validation import OperationValidator


logger = structlog.get_logger()

AMOUNT_PATTERN = re.compile(r"^\d+(\.\d+)?$")
UNDO_KEYWORDS = ("undo", "revert", "cancel last")

HELP_TEXT = (
    "I'm not sure I understood that. I can help you with:\n"
    '- **Add:** "spent 500 on food" / "got salary"\n'
    '- **Update:** "sorry 450" / "change to electronics"\n'
    '- **Delete:** "delete all food" / "remove last 3"\n'
    '- **Show:** "show expenses" / "food total?"\n'
    'Say "undo" to revert the last action.'
)


def summarize_operation(operation: TransactionOperation) -> str:
    """One line per staged operation for the confirmation view."""
    if operation.action == OperationAction.ADD:
        return (
            f"Add {operation.type}: {operation.description} - "
            f"{format_currency(operation.amount, compact=True)} "
            f"({operation.category or FALLBACK_CATEGORY})"
        )

    if operation.action == OperationAction.UPDATE:
        fields = ", ".join(
            f"{name}: {format_currency(value, compact=True) if name == 'amount' else value}"
            for name, value in operation.changed_fields().items()
        )
        return f"Update transaction: {fields}"

    if operation.filter is not None and operation.filter.category:
        return f"Delete all {operation.filter.category} transactions"
    if operation.transaction_ids is not None:
        return f"Delete {len(operation.transaction_ids)} transaction(s)"
    return "Delete transactions"


def apply_selection(
    pending: PendingConfirmation,
    selection: Optional[dict[int, list[str]]],
) -> list[TransactionOperation]:
    """
    Narrow staged operations to the records the user picked.

    selection maps an operation's position to the chosen transaction ids.
    Updates take the first id; deletes take all of them. A delete whose
    selection is empty is dropped.
    """
    selection = selection or {}
    for index in selection:
        if not 0 <= index < len(pending.operations):
            raise ValueError(f"No staged operation at position {index}")

    operations = []
    for index, staged in enumerate(pending.operations):
        operation = staged.operation
        chosen = selection.get(index)
        if chosen is None:
            operations.append(operation)
        elif operation.action == OperationAction.UPDATE and chosen:
            operations.append(operation.model_copy(
                update={"transaction_id": chosen[0], "identify_by": None}
            ))
        elif operation.action == OperationAction.DELETE:
            if chosen:
                operations.append(operation.model_copy(
                    update={"transaction_ids": list(chosen), "identify_by": None, "filter": None}
                ))
        else:
            operations.append(operation)
    return operations


def render_results(outcome: BatchOutcome) -> str:
    if outcome.rolled_back:
        return f"❌ {outcome.error_message}. No changes were saved."
    if not outcome.results:
        return "No changes were made."
    return "\n".join(
        f"{'✅' if result.success else '❌'} {result.message}"
        for result in outcome.results
    )


class AssistantFlow:
    """
    Orchestrates the conversational transaction pipeline.

    Flow:
    1. Message -> language model classifies intent, proposes operations
    2. Missing amount -> ask for it (PAUSE)
    3. Validate -> two-stage validation
    4. Stage -> show what will change (PAUSE - require confirmation)
    5. Confirm -> execute the batch, record undo entry
    6. Undo -> reverse the last batch

    Confirmation (step 5) is MANDATORY, whatever the model says.
    """

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        user_storage: UserDataStorageInterface,
        agent: Optional[AssistantAgent] = None,
        validator: Optional[OperationValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AssistantSettings] = None,
    ):
        self._settings = settings or get_settings().assistant
        self._transactions = transaction_storage
        self._user_storage = user_storage
        self._agent = agent or AssistantAgent(settings=self._settings)
        self._validator = validator or OperationValidator()
        self._audit_logger = audit_logger

        self._undo_log = UndoLog(limit=self._settings.undo_history_limit)
        self._executor = OperationExecutor(
            transaction_storage,
            undo_log=self._undo_log,
            amount_tolerance=self._settings.amount_match_tolerance,
        )

        self._history: list[ConversationTurn] = []
        self._pending: Optional[PendingConfirmation] = None
        self._awaiting_amount: Optional[AssistantReply] = None

    @property
    def pending(self) -> Optional[PendingConfirmation]:
        return self._pending

    @property
    def history(self) -> list[ConversationTurn]:
        return list(self._history)

    @property
    def awaiting_amount(self) -> bool:
        return self._awaiting_amount is not None

    @property
    def undo_count(self) -> int:
        return len(self._undo_log)

    def _remember(self, role: str, message: str) -> None:
        if message:
            self._history.append(ConversationTurn(role=role, message=message))

    def _respond(self, turn: AssistantTurn) -> AssistantTurn:
        self._remember("assistant", turn.message)
        return turn

    async def _build_context(self) -> tuple[FinancialContext, list[Transaction]]:
        transactions = await self._transactions.list_transactions()
        profile = await self._user_storage.get_profile()
        context = build_financial_context(
            transactions,
            profile,
            self._last_touched(transactions),
            datetime.now(),
            self._settings,
        )
        return context, transactions

    def _last_touched(self, transactions: list[Transaction]) -> Optional[Transaction]:
        """This session's last add/update, else the newest stored record."""
        touched_id = self._executor.last_touched_id
        if touched_id:
            for tx in transactions:
                if tx.id == touched_id:
                    return tx
        return transactions[0] if transactions else None

    async def start_chat(self) -> AssistantTurn:
        """Reset the conversation. The undo history survives."""
        self._history = []
        self._pending = None
        self._awaiting_amount = None

        profile = await self._user_storage.get_profile()
        lines = [
            f"Hello {profile.name or 'there'}! I'm your smart AI financial assistant 🤖",
            HELP_TEXT.split("\n", 1)[1],
            "💡 I'll always confirm before making changes. I understand Hindi/English mix too!",
        ]
        if self.undo_count:
            lines.append(f"You can undo {self.undo_count} recent action(s).")
        return AssistantTurn(kind=TurnKind.REPLY, message="\n\n".join(lines))

    async def handle_message(
        self,
        text: str,
        correlation_id: Optional[UUID] = None,
    ) -> AssistantTurn:
        """
        Process one chat message.

        Raises:
            ValueError: If the message is blank
        """
        if not text or not text.strip():
            raise ValueError("Message cannot be empty")
        text = text.strip()

        if self._pending is not None:
            return AssistantTurn(
                kind=TurnKind.BLOCKED,
                message="Please confirm or cancel the pending operation first.",
                pending=self._pending,
            )

        correlation_id = correlation_id or create_correlation_id()
        if self._audit_logger:
            await self._audit_logger.log_message_received(text, correlation_id)

        history = list(self._history)
        self._remember("user", text)

        if self._awaiting_amount is not None:
            waiting = self._awaiting_amount
            self._awaiting_amount = None
            if AMOUNT_PATTERN.match(text):
                amount = float(text)
                operations = [
                    op.model_copy(update={"amount": amount}) if op.is_missing_amount else op
                    for op in waiting.operations
                ]
                return await self._stage(
                    operations,
                    "Great! Now please confirm this operation:",
                    correlation_id,
                    reply=waiting,
                )

        lowered = text.lower()
        if any(keyword in lowered for keyword in UNDO_KEYWORDS):
            return await self.undo(correlation_id)

        context, _ = await self._build_context()
        reply = await self._agent.interpret(text, context, history)

        if reply is None:
            if self._audit_logger:
                await self._audit_logger.log_interpretation_failed(text, correlation_id)
            return self._respond(AssistantTurn(kind=TurnKind.FALLBACK, message=HELP_TEXT))

        if self._audit_logger:
            await self._audit_logger.log_intent_classified(
                intent=reply.intent.value,
                sub_intent=reply.sub_intent,
                operation_count=len(reply.operations),
                correlation_id=correlation_id,
            )

        if reply.intent == Intent.UNDO:
            return await self.undo(correlation_id)

        if reply.has_operations:
            missing = [op for op in reply.operations if op.is_missing_amount]
            if missing:
                self._awaiting_amount = reply
                if self._audit_logger:
                    await self._audit_logger.log_amount_requested(
                        [op.description or "" for op in missing],
                        correlation_id,
                    )
                return self._respond(AssistantTurn(
                    kind=TurnKind.NEEDS_INFO,
                    message=" ".join(
                        f'I understood you want to add "{op.description}" as '
                        f"{op.type or 'expense'}. How much is the amount?"
                        for op in missing
                    ),
                    reply=reply,
                ))

            # requires_confirmation from the model is ignored on purpose
            return await self._stage(
                reply.operations,
                reply.confirmation_message or "Please confirm this operation:",
                correlation_id,
                reply=reply,
            )

        return self._respond(AssistantTurn(
            kind=TurnKind.REPLY,
            message=reply.response or HELP_TEXT,
            reply=reply,
        ))

    def _matching(
        self,
        operation: TransactionOperation,
        transactions: list[Transaction],
    ) -> Optional[list[Transaction]]:
        tolerance = self._settings.amount_match_tolerance
        if operation.action == OperationAction.ADD:
            return None
        if operation.identify_by is not None:
            return find_matches(transactions, operation.identify_by, tolerance)
        if operation.action == OperationAction.DELETE and operation.filter is not None:
            return apply_delete_filter(transactions, operation.filter)
        return None

    async def _stage(
        self,
        operations: list[TransactionOperation],
        message: str,
        correlation_id: UUID,
        reply: Optional[AssistantReply] = None,
    ) -> AssistantTurn:
        result = self._validator.validate(operations, self._settings.today())
        if not result.is_valid:
            if self._audit_logger:
                await self._audit_logger.log_operations_rejected(
                    [
                        {"operation": i.operation_index, "field": i.field, "message": i.message}
                        for i in result.errors
                    ],
                    correlation_id,
                )
            return self._respond(AssistantTurn(
                kind=TurnKind.INVALID,
                message=self._validator.get_user_friendly_summary(result),
                reply=reply,
            ))

        transactions = await self._transactions.list_transactions()
        pending = PendingConfirmation(
            operations=[
                StagedOperation(
                    operation=op,
                    matching_transactions=self._matching(op, transactions),
                    summary=summarize_operation(op),
                )
                for op in operations
            ],
            message=message,
            warnings=result.warnings,
        )
        self._pending = pending

        if self._audit_logger:
            await self._audit_logger.log_operations_staged(
                pending.batch_id,
                [op.action.value for op in operations],
                correlation_id,
            )

        lines = [message] + [f"- {staged.summary}" for staged in pending.operations]
        return self._respond(AssistantTurn(
            kind=TurnKind.CONFIRMATION_REQUIRED,
            message="\n".join(lines),
            pending=pending,
            warnings=result.warnings,
            reply=reply,
        ))

    async def confirm(
        self,
        selection: Optional[dict[int, list[str]]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AssistantTurn:
        """
        Execute the staged batch.

        CRITICAL: This is called ONLY after explicit user confirmation.

        Args:
            selection: Optional {operation position: chosen transaction ids}
        """
        if self._pending is None:
            raise ValueError("There is no pending operation to confirm")

        pending = self._pending
        operations = apply_selection(pending, selection)
        self._pending = None
        correlation_id = correlation_id or create_correlation_id()

        if self._audit_logger:
            await self._audit_logger.log_user_confirmed(
                pending.batch_id, len(operations), correlation_id
            )

        outcome = await self._executor.execute(
            operations,
            self._settings.today(),
            batch_id=pending.batch_id,
        )

        if self._audit_logger:
            await self._audit_logger.log_batch_outcome(outcome, correlation_id)

        return self._respond(AssistantTurn(
            kind=TurnKind.EXECUTED,
            message=render_results(outcome),
            results=outcome.results,
        ))

    async def cancel(self, correlation_id: Optional[UUID] = None) -> AssistantTurn:
        if self._pending is None:
            raise ValueError("There is no pending operation to cancel")

        pending = self._pending
        self._pending = None
        if self._audit_logger:
            await self._audit_logger.log_user_cancelled(
                pending.batch_id, correlation_id or create_correlation_id()
            )
        return self._respond(AssistantTurn(kind=TurnKind.CANCELLED, message="Operation cancelled"))

    async def undo(self, correlation_id: Optional[UUID] = None) -> AssistantTurn:
        """
        Reverse the most recent applied batch.

        Raises:
            StorageError: If the store rejects a reversal (the batch stays undoable)
        """
        correlation_id = correlation_id or create_correlation_id()
        entry = self._undo_log.peek()
        if entry is None:
            return self._respond(AssistantTurn(kind=TurnKind.NOTHING_TO_UNDO, message="Nothing to undo"))

        try:
            entry, results = await self._undo_log.undo(self._transactions)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_undo_failed(entry.batch_id, str(e), correlation_id)
            raise

        if self._audit_logger:
            await self._audit_logger.log_undo_applied(entry, correlation_id)

        return self._respond(AssistantTurn(
            kind=TurnKind.UNDONE,
            message="\n".join(f"↩️ {result.message}" for result in results),
            results=results,
        ))


class PlanningFlow:
    """
    Orchestrates the budget / savings interview.

    Flow:
    1. start(kind) -> model writes the questions
    2. answer(text) -> next question, or the generated plan after the last one
    3. save() -> plan replaces the stored budget plan / goals list

    Plans are drafts until saved.
    """

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        user_storage: UserDataStorageInterface,
        agent: Optional[PlanningAgent] = None,
        budget_tracker: Optional[BudgetTracker] = None,
        goal_service: Optional[SavingsGoalService] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AssistantSettings] = None,
    ):
        self._settings = settings or get_settings().assistant
        self._transactions = transaction_storage
        self._user_storage = user_storage
        self._agent = agent or PlanningAgent(settings=self._settings)
        self._budget = budget_tracker or BudgetTracker(
            user_storage, transaction_storage, self._settings
        )
        self._goals = goal_service or SavingsGoalService(
            user_storage, transaction_storage, self._settings
        )
        self._audit_logger = audit_logger
        self._interview: Optional[PlanInterview] = None
        self._correlation_id: Optional[UUID] = None

    @property
    def interview(self) -> Optional[PlanInterview]:
        return self._interview

    async def _build_context(self) -> FinancialContext:
        transactions = await self._transactions.list_transactions()
        profile = await self._user_storage.get_profile()
        last = transactions[0] if transactions else None
        return build_financial_context(transactions, profile, last, datetime.now(), self._settings)

    @staticmethod
    def _label(kind: PlanKind) -> str:
        return "budget" if kind == PlanKind.BUDGET else "savings"

    def _question_message(self) -> str:
        interview = self._interview
        return (
            f"Question {interview.current_index + 1} of {len(interview.questions)}: "
            f"{interview.current_question}"
        )

    async def start(self, kind: PlanKind) -> str:
        """
        Begin a new interview; any unsaved draft is discarded.

        Raises:
            PlanningError: If the model could not provide questions
        """
        self._correlation_id = create_correlation_id()
        context = await self._build_context()
        questions = await self._agent.generate_questions(kind, context)
        if not questions:
            self._interview = None
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="gemini",
                    error_message=f"No {self._label(kind)} interview questions generated",
                    correlation_id=self._correlation_id,
                )
            raise PlanningError("Error generating questions. Please try again.")

        self._interview = PlanInterview(kind=kind, questions=questions)
        return (
            f"Let's create your personalized {self._label(kind)} plan, {context.user_name}!\n\n"
            f"{self._question_message()}"
        )

    async def answer(self, text: str) -> str:
        """
        Record an answer. Returns the next question, or a summary of the
        generated plan after the last answer.

        Raises:
            ValueError: No interview in progress, or a blank answer
            PlanningError: The plan could not be generated (the last
                answer is dropped so it can be resubmitted)
        """
        if self._interview is None or self._interview.is_complete:
            raise ValueError("No planning interview in progress")
        if not text or not text.strip():
            raise ValueError("Answer cannot be empty")

        interview = self._interview
        interview.answers.append(text.strip())
        if not interview.is_complete:
            return self._question_message()

        context = await self._build_context()
        plan = await self._agent.generate_plan(
            interview.kind, interview.questions, interview.answers, context
        )
        if plan is None:
            interview.answers.pop()
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="gemini",
                    error_message=f"No usable {self._label(interview.kind)} plan generated",
                    correlation_id=self._correlation_id,
                )
            raise PlanningError("Error generating plan. Please try again.")

        if interview.kind == PlanKind.BUDGET:
            interview.budget_plan = plan
        else:
            interview.savings_plan = plan

        if self._audit_logger:
            await self._audit_logger.log_plan_generated(
                interview.kind.value, len(plan), self._correlation_id
            )
        return self.describe_plan(plan)

    @staticmethod
    def describe_plan(plan: Union[list[BudgetItem], list[SavingsGoal]]) -> str:
        lines = []
        for item in plan:
            if isinstance(item, BudgetItem):
                lines.append(
                    f"- **{item.category}**: {format_currency(item.budgeted_amount, compact=True)}"
                    + (f" ({item.suggestion})" if item.suggestion else "")
                )
            else:
                lines.append(
                    f"- **{item.goal_title}**: {format_currency(item.target_amount, compact=True)}, "
                    f"{format_currency(item.monthly_contribution, compact=True)}/month"
                    + (f", {item.timeline}" if item.timeline else "")
                )
        return "Here's your plan:\n" + "\n".join(lines)

    async def save(self) -> int:
        """
        Persist the generated plan. Returns how many items were saved.

        Raises:
            ValueError: If there is no generated plan
        """
        if self._interview is None or not self._interview.has_plan:
            raise ValueError("There is no generated plan to save")

        interview = self._interview
        if interview.kind == PlanKind.BUDGET:
            saved = await self._budget.replace_plan(interview.budget_plan)
        else:
            saved = await self._goals.replace_goals(interview.savings_plan)

        if self._audit_logger:
            await self._audit_logger.log_plan_saved(
                interview.kind.value, len(saved), self._correlation_id
            )
        self._interview = None
        return len(saved)

    def reset(self) -> None:
        self._interview = None


class AnalysisFlow:
    """Generated expense analysis, stored on the profile."""

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        user_storage: UserDataStorageInterface,
        agent: Optional[AssistantAgent] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AssistantSettings] = None,
    ):
        self._settings = settings or get_settings().assistant
        self._transactions = transaction_storage
        self._user_storage = user_storage
        self._agent = agent or AssistantAgent(settings=self._settings)
        self._audit_logger = audit_logger

    async def current(self) -> str:
        """Stored analysis, or the top-categories summary when there is none."""
        profile = await self._user_storage.get_profile()
        if profile.expense_analysis_report:
            return profile.expense_analysis_report
        transactions = await self._transactions.list_transactions()
        return default_analysis(transactions, self._settings.top_categories_limit)

    async def refresh(self) -> Optional[str]:
        """
        Ask the model for a fresh analysis and store it.

        Returns None (and keeps the stored analysis) if the model is unavailable.
        """
        transactions = await self._transactions.list_transactions()
        profile = await self._user_storage.get_profile()
        context = build_financial_context(
            transactions,
            profile,
            transactions[0] if transactions else None,
            datetime.now(),
            self._settings,
        )
        analysis = await self._agent.generate_analysis(context)
        if analysis is None:
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="gemini",
                    error_message="Expense analysis could not be generated",
                )
            return None

        profile.expense_analysis_report = analysis
        profile.analysis_updated_at = datetime.utcnow()
        await self._user_storage.save_profile(profile)

        if self._audit_logger:
            await self._audit_logger.log_analysis_generated(len(analysis))
        return analysis


class AppComponents(NamedTuple):
    assistant_flow: AssistantFlow
    planning_flow: PlanningFlow
    analysis_flow: AnalysisFlow
    budget_tracker: BudgetTracker
    goal_service: SavingsGoalService
    assistant_agent: AssistantAgent
    transaction_storage: TransactionStorageInterface
    user_storage: UserDataStorageInterface
    sheets_client: Optional[GoogleSheetsClient]


def create_app_components(
    use_storage: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False for in-memory storage (tests, demos).
    """
    settings = get_settings().assistant
    sheets_client = None
    transaction_storage: TransactionStorageInterface = InMemoryTransactionStorage()
    user_storage: UserDataStorageInterface = InMemoryUserDataStorage()
    audit_logger = AuditLogger()  # Local-only logging

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            transaction_storage = GoogleSheetsTransactionStorage(sheets_client)
            user_storage = GoogleSheetsUserDataStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            transaction_storage = InMemoryTransactionStorage()
            user_storage = InMemoryUserDataStorage()
            audit_logger = AuditLogger()

    assistant_agent = AssistantAgent(settings=settings)
    budget_tracker = BudgetTracker(user_storage, transaction_storage, settings)
    goal_service = SavingsGoalService(
        user_storage, transaction_storage, settings, audit_logger=audit_logger
    )

    assistant_flow = AssistantFlow(
        transaction_storage,
        user_storage,
        agent=assistant_agent,
        audit_logger=audit_logger,
        settings=settings,
    )
    planning_flow = PlanningFlow(
        transaction_storage,
        user_storage,
        agent=PlanningAgent(client=assistant_agent.client, settings=settings),
        budget_tracker=budget_tracker,
        goal_service=goal_service,
        audit_logger=audit_logger,
        settings=settings,
    )
    analysis_flow = AnalysisFlow(
        transaction_storage,
        user_storage,
        agent=assistant_agent,
        audit_logger=audit_logger,
        settings=settings,
    )

    return AppComponents(
        assistant_flow=assistant_flow,
        planning_flow=planning_flow,
        analysis_flow=analysis_flow,
        budget_tracker=budget_tracker,
        goal_service=goal_service,
        assistant_agent=assistant_agent,
        transaction_storage=transaction_storage,
        user_storage=user_storage,
        sheets_client=sheets_client,
    )
