"""
Integration tests for the assistant, planning and analysis flows.

In-memory storage and a mocked Gemini client; no network calls.
"""

import json
from decimal import Decimal
from uuid import uuid4

import pytest

from src.agents import AssistantAgent, PlanningAgent
from src.audit import AuditLogger
from src.models.assistant import (
    DeleteFilter,
    IdentifyBy,
    OperationAction,
    PendingConfirmation,
    StagedOperation,
    TransactionOperation,
    TurnKind,
)
from src.models.audit import AuditEventType
from src.models.planning import PlanKind
from src.orchestrator import (
    HELP_TEXT,
    AnalysisFlow,
    AssistantFlow,
    PlanningFlow,
    apply_selection,
    summarize_operation,
)
from src.planning import PlanningError
from src.services.llm import LanguageModelError
from src.validation import OperationValidator

from tests.conftest import reply_json


ADD_COFFEE = reply_json(
    intent="transaction_ops",
    sub_intent="add",
    operations=[{"action": "add", "type": "expense", "description": "Coffee", "amount": 60}],
)


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def flow(transaction_storage, user_storage, fake_client, assistant_settings, app_settings, audit_logger):
    return AssistantFlow(
        transaction_storage,
        user_storage,
        agent=AssistantAgent(client=fake_client, settings=assistant_settings),
        validator=OperationValidator(app_settings),
        audit_logger=audit_logger,
        settings=assistant_settings,
    )


def event_types(audit_storage) -> list[str]:
    return [event.event_type.value for event in audit_storage.events]


class TestConfirmationGate:
    """Nothing changes without confirmation."""

    @pytest.mark.asyncio
    async def test_operations_are_staged_not_applied(self, flow, fake_client, transaction_storage):
        fake_client.generate.return_value = ADD_COFFEE

        turn = await flow.handle_message("spent 60 on coffee")

        assert turn.kind == TurnKind.CONFIRMATION_REQUIRED
        assert turn.message == "Please confirm this operation:\n- Add expense: Coffee - ₹60 (Other)"
        assert flow.pending is not None
        assert len(await transaction_storage.list_transactions()) == 5

    @pytest.mark.asyncio
    async def test_model_confirmation_flag_is_ignored(self, flow, fake_client):
        fake_client.generate.return_value = reply_json(
            intent="transaction_ops",
            requires_confirmation=False,
            operations=[{"action": "add", "type": "expense", "description": "Tea", "amount": 20}],
        )

        turn = await flow.handle_message("tea 20")

        assert turn.kind == TurnKind.CONFIRMATION_REQUIRED

    @pytest.mark.asyncio
    async def test_pending_blocks_new_messages(self, flow, fake_client):
        fake_client.generate.return_value = ADD_COFFEE
        await flow.handle_message("spent 60 on coffee")
        history_before = flow.history

        turn = await flow.handle_message("also add tea")

        assert turn.kind == TurnKind.BLOCKED
        assert turn.message == "Please confirm or cancel the pending operation first."
        assert fake_client.generate.call_count == 1
        assert flow.history == history_before

    @pytest.mark.asyncio
    async def test_confirm_executes(self, flow, fake_client, transaction_storage, audit_storage):
        fake_client.generate.return_value = ADD_COFFEE
        staged = await flow.handle_message("spent 60 on coffee")

        turn = await flow.confirm()

        assert turn.kind == TurnKind.EXECUTED
        assert turn.message == "✅ Added expense: Coffee - ₹60"
        assert flow.pending is None
        assert flow.undo_count == 1
        assert len(await transaction_storage.list_transactions()) == 6
        assert event_types(audit_storage) == [
            "message_received",
            "intent_classified",
            "operations_staged",
            "user_confirmed",
            "transaction_added",
        ]
        confirmed = audit_storage.events[3]
        assert confirmed.entity_id == str(staged.pending.batch_id)

    @pytest.mark.asyncio
    async def test_cancel_discards(self, flow, fake_client, transaction_storage, audit_storage):
        fake_client.generate.return_value = ADD_COFFEE
        await flow.handle_message("spent 60 on coffee")

        turn = await flow.cancel()

        assert turn.kind == TurnKind.CANCELLED
        assert flow.pending is None
        assert len(await transaction_storage.list_transactions()) == 5
        assert AuditEventType.USER_CANCELLED.value in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_confirm_or_cancel_without_pending(self, flow):
        with pytest.raises(ValueError):
            await flow.confirm()
        with pytest.raises(ValueError):
            await flow.cancel()

    @pytest.mark.asyncio
    async def test_blank_message(self, flow):
        with pytest.raises(ValueError):
            await flow.handle_message("   ")


class TestMissingAmount:
    """Adds without an amount pause for the user."""

    @pytest.mark.asyncio
    async def test_asks_then_stages(self, flow, fake_client):
        fake_client.generate.return_value = reply_json(
            intent="transaction_ops",
            operations=[{"action": "add", "type": "expense", "description": "Groceries"}],
        )

        question = await flow.handle_message("bought groceries")
        assert question.kind == TurnKind.NEEDS_INFO
        assert question.message == (
            'I understood you want to add "Groceries" as expense. How much is the amount?'
        )
        assert flow.awaiting_amount

        turn = await flow.handle_message("450")

        assert turn.kind == TurnKind.CONFIRMATION_REQUIRED
        assert turn.message.startswith("Great! Now please confirm this operation:")
        assert turn.pending.operations[0].operation.amount == 450.0
        assert not flow.awaiting_amount
        assert fake_client.generate.call_count == 1

    @pytest.mark.asyncio
    async def test_asks_for_every_missing_amount(self, flow, fake_client):
        fake_client.generate.return_value = reply_json(
            intent="transaction_ops",
            operations=[
                {"action": "add", "type": "expense", "description": "Groceries"},
                {"action": "add", "type": "expense", "description": "Coffee", "amount": 60},
                {"action": "add", "type": "income", "description": "Refund"},
            ],
        )

        question = await flow.handle_message("groceries, coffee for 60 and a refund")

        assert question.kind == TurnKind.NEEDS_INFO
        assert question.message == (
            'I understood you want to add "Groceries" as expense. How much is the amount? '
            'I understood you want to add "Refund" as income. How much is the amount?'
        )

    @pytest.mark.asyncio
    async def test_non_numeric_reply_is_a_new_message(self, flow, fake_client):
        fake_client.generate.return_value = reply_json(
            intent="transaction_ops",
            operations=[{"action": "add", "type": "expense", "description": "Groceries"}],
        )
        await flow.handle_message("bought groceries")
        fake_client.generate.return_value = reply_json(intent="general_chat", response="Sure.")

        turn = await flow.handle_message("never mind")

        assert turn.kind == TurnKind.REPLY
        assert turn.message == "Sure."
        assert not flow.awaiting_amount


class TestReplies:
    """Non-mutating turns."""

    @pytest.mark.asyncio
    async def test_general_chat(self, flow, fake_client):
        fake_client.generate.return_value = reply_json(
            intent="show_data", response="You spent ₹430 on food this month."
        )

        turn = await flow.handle_message("food total?")

        assert turn.kind == TurnKind.REPLY
        assert turn.message == "You spent ₹430 on food this month."

    @pytest.mark.asyncio
    async def test_empty_response_falls_back_to_help(self, flow, fake_client):
        fake_client.generate.return_value = reply_json(intent="general_chat", response="")
        turn = await flow.handle_message("hmm")
        assert turn.message == HELP_TEXT

    @pytest.mark.asyncio
    async def test_model_failure_gives_help(self, flow, fake_client, audit_storage):
        fake_client.generate.side_effect = LanguageModelError("timeout")

        turn = await flow.handle_message("spent 60 on coffee")

        assert turn.kind == TurnKind.FALLBACK
        assert turn.message == HELP_TEXT
        assert AuditEventType.INTERPRETATION_FAILED.value in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_invalid_operations_are_rejected(self, flow, fake_client, audit_storage):
        fake_client.generate.return_value = reply_json(
            intent="transaction_ops",
            operations=[{"action": "update", "identify_by": {"description": "lunch"}}],
        )

        turn = await flow.handle_message("change lunch")

        assert turn.kind == TurnKind.INVALID
        assert "The update doesn't change any field" in turn.message
        assert flow.pending is None
        assert AuditEventType.OPERATIONS_REJECTED.value in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_history_records_both_sides(self, flow, fake_client):
        fake_client.generate.return_value = reply_json(intent="general_chat", response="Hello!")

        await flow.handle_message("hi")

        assert [(t.role, t.message) for t in flow.history] == [
            ("user", "hi"),
            ("assistant", "Hello!"),
        ]

    @pytest.mark.asyncio
    async def test_start_chat_greets_and_resets(self, flow, fake_client):
        fake_client.generate.return_value = ADD_COFFEE
        await flow.handle_message("spent 60 on coffee")

        turn = await flow.start_chat()

        assert turn.kind == TurnKind.REPLY
        assert turn.message.startswith("Hello Asha!")
        assert flow.pending is None
        assert flow.history == []


class TestUndo:
    """Undo through the chat."""

    @pytest.mark.asyncio
    async def test_nothing_to_undo(self, flow, fake_client):
        turn = await flow.handle_message("undo")
        assert turn.kind == TurnKind.NOTHING_TO_UNDO
        fake_client.generate.assert_not_called()

    @pytest.mark.asyncio
    async def test_keyword_undoes_last_batch(self, flow, fake_client, transaction_storage, audit_storage):
        fake_client.generate.return_value = ADD_COFFEE
        await flow.handle_message("spent 60 on coffee")
        await flow.confirm()

        turn = await flow.handle_message("please revert that")

        assert turn.kind == TurnKind.UNDONE
        assert turn.message == "↩️ Transaction addition undone"
        assert len(await transaction_storage.list_transactions()) == 5
        assert flow.undo_count == 0
        assert event_types(audit_storage)[-1] == "undo_applied"

    @pytest.mark.asyncio
    async def test_undo_intent(self, flow, fake_client, transaction_storage):
        fake_client.generate.return_value = reply_json(
            intent="transaction_ops",
            operations=[{"action": "delete", "transaction_ids": ["tx-uber"]}],
        )
        await flow.handle_message("delete the uber ride")
        await flow.confirm()
        fake_client.generate.return_value = reply_json(intent="undo")

        turn = await flow.handle_message("oops bring it back")

        assert turn.kind == TurnKind.UNDONE
        assert await transaction_storage.get_transaction("tx-uber") is not None


CORRECT_TO_450 = reply_json(
    intent="transaction_ops",
    sub_intent="update",
    operations=[{"action": "update", "amount": 450}],
)


class TestCorrections:
    """Updates that name no record go to the last touched one."""

    @pytest.mark.asyncio
    async def test_fresh_session_corrects_newest_record(self, flow, fake_client, transaction_storage):
        fake_client.generate.return_value = CORRECT_TO_450

        staged = await flow.handle_message("sorry 450")
        turn = await flow.confirm()

        assert staged.kind == TurnKind.CONFIRMATION_REQUIRED
        assert turn.kind == TurnKind.EXECUTED
        assert (await transaction_storage.get_transaction("tx-lunch")).amount == Decimal("450")

    @pytest.mark.asyncio
    async def test_correction_after_undoing_an_add(self, flow, fake_client, transaction_storage):
        fake_client.generate.return_value = ADD_COFFEE
        await flow.handle_message("spent 60 on coffee")
        await flow.confirm()
        await flow.handle_message("undo")
        fake_client.generate.return_value = CORRECT_TO_450

        await flow.handle_message("sorry 450")
        turn = await flow.confirm()

        assert turn.kind == TurnKind.EXECUTED
        assert (await transaction_storage.get_transaction("tx-lunch")).amount == Decimal("450")
        assert len(await transaction_storage.list_transactions()) == 5


class TestSelection:
    """Narrowing ambiguous matches at confirmation time."""

    @pytest.mark.asyncio
    async def test_matches_shown_and_narrowed(self, flow, fake_client, transaction_storage):
        fake_client.generate.return_value = reply_json(
            intent="transaction_ops",
            operations=[{"action": "delete", "identify_by": {"category": "Food"}}],
        )

        staged = await flow.handle_message("delete food")
        matches = staged.pending.operations[0].matching_transactions
        assert [tx.id for tx in matches] == ["tx-lunch", "tx-groceries"]

        await flow.confirm(selection={0: ["tx-lunch"]})

        assert await transaction_storage.get_transaction("tx-lunch") is None
        assert await transaction_storage.get_transaction("tx-groceries") is not None

    def test_update_takes_first_choice(self):
        op = TransactionOperation(
            action=OperationAction.UPDATE,
            identify_by=IdentifyBy(category="Food"),
            amount=300,
        )
        pending = PendingConfirmation(operations=[StagedOperation(operation=op)])

        [narrowed] = apply_selection(pending, {0: ["tx-groceries", "tx-lunch"]})

        assert narrowed.transaction_id == "tx-groceries"
        assert narrowed.identify_by is None

    def test_empty_delete_selection_drops_operation(self):
        op = TransactionOperation(action=OperationAction.DELETE, filter=DeleteFilter(category="Food"))
        pending = PendingConfirmation(operations=[StagedOperation(operation=op)])

        assert apply_selection(pending, {0: []}) == []

    def test_bad_position(self):
        op = TransactionOperation(action=OperationAction.DELETE, transaction_ids=["a"])
        pending = PendingConfirmation(operations=[StagedOperation(operation=op)])
        with pytest.raises(ValueError):
            apply_selection(pending, {3: ["a"]})


class TestSummarizeOperation:
    """Confirmation lines."""

    def test_update(self):
        op = TransactionOperation(action=OperationAction.UPDATE, amount=450, category="Food")
        assert summarize_operation(op) == "Update transaction: amount: ₹450, category: Food"

    def test_delete_variants(self):
        by_category = TransactionOperation(
            action=OperationAction.DELETE, filter=DeleteFilter(category="Food")
        )
        by_ids = TransactionOperation(action=OperationAction.DELETE, transaction_ids=["a", "b"])
        assert summarize_operation(by_category) == "Delete all Food transactions"
        assert summarize_operation(by_ids) == "Delete 2 transaction(s)"


@pytest.fixture
def planning_flow(transaction_storage, user_storage, fake_client, assistant_settings, audit_logger):
    return PlanningFlow(
        transaction_storage,
        user_storage,
        agent=PlanningAgent(client=fake_client, settings=assistant_settings),
        audit_logger=audit_logger,
        settings=assistant_settings,
    )


BUDGET_QUESTIONS = json.dumps(["What is your rent?", "Any big purchases planned?"])
BUDGET_PLAN = json.dumps([
    {"category": "Food", "budgeted_amount": 8000, "suggestion": "Cook at home"},
    {"category": "Travel", "budgeted_amount": 3000, "suggestion": ""},
])


class TestPlanningFlow:
    """The budget / savings interview."""

    @pytest.mark.asyncio
    async def test_full_budget_interview(self, planning_flow, fake_client, user_storage, audit_storage):
        fake_client.generate.side_effect = [BUDGET_QUESTIONS, BUDGET_PLAN]

        opening = await planning_flow.start(PlanKind.BUDGET)
        assert opening == (
            "Let's create your personalized budget plan, Asha!\n\n"
            "Question 1 of 2: What is your rent?"
        )

        assert await planning_flow.answer("15000") == "Question 2 of 2: Any big purchases planned?"

        summary = await planning_flow.answer("No")
        assert summary == (
            "Here's your plan:\n"
            "- **Food**: ₹8.0K (Cook at home)\n"
            "- **Travel**: ₹3.0K"
        )

        assert await planning_flow.save() == 2
        saved = await user_storage.get_budget_plan()
        assert [item.category for item in saved] == ["Food", "Travel"]
        assert planning_flow.interview is None
        assert event_types(audit_storage) == ["plan_generated", "plan_saved"]

    @pytest.mark.asyncio
    async def test_savings_plan_replaces_goals(self, planning_flow, fake_client, user_storage):
        fake_client.generate.side_effect = [
            json.dumps(["What are you saving for?"]),
            json.dumps([{"goal_title": "Bike", "target_amount": 90000, "monthly_contribution": 7500}]),
        ]

        await planning_flow.start(PlanKind.SAVINGS)
        summary = await planning_flow.answer("A bike")
        await planning_flow.save()

        assert summary == "Here's your plan:\n- **Bike**: ₹90.0K, ₹7.5K/month"
        goals = await user_storage.get_savings_goals()
        assert goals[0].goal_title == "Bike"

    @pytest.mark.asyncio
    async def test_no_questions(self, planning_flow, fake_client, audit_storage):
        fake_client.generate.return_value = "[]"
        with pytest.raises(PlanningError):
            await planning_flow.start(PlanKind.BUDGET)
        assert planning_flow.interview is None
        assert audit_storage.events[0].details == {"service": "gemini"}

    @pytest.mark.asyncio
    async def test_plan_failure_allows_retry(self, planning_flow, fake_client):
        fake_client.generate.side_effect = [BUDGET_QUESTIONS, "not a plan", BUDGET_PLAN]
        await planning_flow.start(PlanKind.BUDGET)
        await planning_flow.answer("15000")

        with pytest.raises(PlanningError):
            await planning_flow.answer("No")
        assert planning_flow.interview.answers == ["15000"]

        summary = await planning_flow.answer("No")
        assert summary.startswith("Here's your plan:")

    @pytest.mark.asyncio
    async def test_answer_and_save_need_an_interview(self, planning_flow):
        with pytest.raises(ValueError):
            await planning_flow.answer("hello")
        with pytest.raises(ValueError):
            await planning_flow.save()

    @pytest.mark.asyncio
    async def test_blank_answer(self, planning_flow, fake_client):
        fake_client.generate.return_value = BUDGET_QUESTIONS
        await planning_flow.start(PlanKind.BUDGET)
        with pytest.raises(ValueError):
            await planning_flow.answer(" ")


@pytest.fixture
def analysis_flow(transaction_storage, user_storage, fake_client, assistant_settings, audit_logger):
    return AnalysisFlow(
        transaction_storage,
        user_storage,
        agent=AssistantAgent(client=fake_client, settings=assistant_settings),
        audit_logger=audit_logger,
        settings=assistant_settings,
    )


class TestAnalysisFlow:
    """Stored expense analysis."""

    @pytest.mark.asyncio
    async def test_default_before_first_analysis(self, analysis_flow):
        text = await analysis_flow.current()
        assert text.startswith("**Here's a quick look at your spending:**")
        assert "**Electronics**" in text

    @pytest.mark.asyncio
    async def test_refresh_stores_on_profile(self, analysis_flow, fake_client, user_storage, audit_storage):
        fake_client.generate.return_value = "## Spending\nFood leads."

        text = await analysis_flow.refresh()

        assert text == "## Spending\nFood leads."
        profile = await user_storage.get_profile()
        assert profile.expense_analysis_report == text
        assert profile.analysis_updated_at is not None
        assert await analysis_flow.current() == text
        assert event_types(audit_storage) == ["analysis_generated"]

    @pytest.mark.asyncio
    async def test_refresh_failure_keeps_old(self, analysis_flow, fake_client, user_storage, audit_storage):
        fake_client.generate.side_effect = LanguageModelError("down")

        assert await analysis_flow.refresh() is None
        assert (await user_storage.get_profile()).expense_analysis_report is None
        assert event_types(audit_storage) == ["external_service_error"]


class TestAuditResilience:
    """Audit storage trouble never breaks a flow."""

    @pytest.mark.asyncio
    async def test_failing_audit_storage(self, transaction_storage, user_storage, fake_client,
                                         assistant_settings, app_settings):
        class BrokenAuditStorage:
            async def append_event(self, event):
                raise RuntimeError("sheet gone")

        flow = AssistantFlow(
            transaction_storage,
            user_storage,
            agent=AssistantAgent(client=fake_client, settings=assistant_settings),
            validator=OperationValidator(app_settings),
            audit_logger=AuditLogger(BrokenAuditStorage()),
            settings=assistant_settings,
        )
        fake_client.generate.return_value = ADD_COFFEE

        await flow.handle_message("spent 60 on coffee", correlation_id=uuid4())
        turn = await flow.confirm()

        assert turn.kind == TurnKind.EXECUTED
        assert (await transaction_storage.list_transactions())[0].amount == Decimal("60.00")
