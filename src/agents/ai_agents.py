"""
AI Agents for Finance Assistant

CRITICAL BOUNDARIES:

1. ASSISTANT AGENT:
   - CAN: Classify intent and PROPOSE add/update/delete operations
   - CAN: Answer questions FROM the financial context we computed
   - CANNOT: Change any record (it returns proposals, the flow stages them)
   - CANNOT: Skip confirmation (its requires_confirmation flag is ignored)

2. PLANNING AGENT:
   - CAN: Ask interview questions and draft budget / savings plans
   - CANNOT: Save a plan (the user saves it explicitly)

The LLM is a TRANSLATOR, not an ORACLE.
It converts between human language and structured operations.

Failure policy: agents never raise on model trouble. Network errors,
empty replies and malformed JSON are logged and turned into None or an
empty result, and the caller falls back to help text.
"""

import json
import re
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Union

import structlog
from pydantic import ValidationError

from src.agents.prompts import (
    ANALYSIS_INSTRUCTIONS,
    ANALYSIS_PROMPT,
    ASSISTANT_REPLY_SCHEMA,
    BUDGET_PLAN_SCHEMA,
    QUESTIONS_SCHEMA,
    SAVINGS_PLAN_SCHEMA,
    FinancialContext,
    build_autofill_prompt,
    build_autofill_schema,
    build_intent_prompt,
    build_plan_instructions,
    build_plan_prompt,
    build_questions_prompt,
    build_system_prompt,
)
from src.config import AssistantSettings, get_settings
from src.models.assistant import AssistantReply, ConversationTurn, parse_type, to_decimal
from src.models.planning import BudgetItem, PlanKind, SavingsGoal
from src.models.transaction import FALLBACK_CATEGORY, TransactionSuggestion, TransactionType
from src.services.llm import GeminiClient, LanguageModelError


logger = structlog.get_logger()

_CODE_FENCE = re.compile(r"```(?:html|markdown|md|json)?", re.IGNORECASE)


def extract_json(text: str) -> Optional[Any]:
    """
    Parse the JSON value in a model reply.

    Structured output is usually bare JSON, but models sometimes wrap it
    in prose or code fences, so we slice from the first bracket to the last.
    """
    text = _CODE_FENCE.sub("", text).strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    for opener, closer in (("{", "}"), ("[", "]")):
        start = text.find(opener)
        end = text.rfind(closer) + 1
        if start >= 0 and end > start:
            try:
                return json.loads(text[start:end])
            except json.JSONDecodeError:
                continue
    return None


def strip_code_fences(text: str) -> str:
    return _CODE_FENCE.sub("", text).strip()


def _normalize_reply(data: dict) -> dict:
    """Lowercase enum-like strings and drop nulls the models use for 'unknown'."""
    data = dict(data)
    if isinstance(data.get("intent"), str):
        data["intent"] = data["intent"].strip().lower()
    operations = []
    for op in data.get("operations") or []:
        if not isinstance(op, dict):
            continue
        op = {key: value for key, value in op.items() if value is not None}
        if isinstance(op.get("action"), str):
            op["action"] = op["action"].strip().lower()
        operations.append(op)
    data["operations"] = operations
    if isinstance(data.get("confidence"), (int, float)):
        data["confidence"] = min(max(float(data["confidence"]), 0.0), 1.0)
    if data.get("response") is None:
        data["response"] = ""
    return data


class AssistantAgent:
    """
    Natural-language front end for transactions.

    RESPONSIBILITIES:
    - Interpret chat messages into an AssistantReply
    - Autofill the quick-add form from a description
    - Write the expense analysis

    BOUNDARIES:
    - NEVER persists data
    - NEVER invents an amount the user didn't give
    """

    def __init__(
        self,
        client: Optional[GeminiClient] = None,
        settings: Optional[AssistantSettings] = None,
    ):
        self._client = client or GeminiClient()
        self._settings = settings or get_settings().assistant

    @property
    def client(self) -> GeminiClient:
        return self._client

    async def _generate(self, prompt: str, schema: Optional[dict] = None) -> Optional[str]:
        try:
            return await self._client.generate(prompt, schema=schema)
        except LanguageModelError as e:
            logger.warning("assistant_model_unavailable", error=str(e))
            return None

    async def interpret(
        self,
        message: str,
        context: FinancialContext,
        history: list[ConversationTurn],
    ) -> Optional[AssistantReply]:
        """
        Classify a chat message and extract proposed operations.

        Returns None when the model is unavailable or its reply can't be used.
        """
        prompt = build_system_prompt(
            context,
            history,
            build_intent_prompt(message),
            conversation_window=self._settings.conversation_window,
        )
        text = await self._generate(prompt, schema=ASSISTANT_REPLY_SCHEMA)
        if text is None:
            return None

        data = extract_json(text)
        if not isinstance(data, dict):
            logger.warning("assistant_reply_not_json", preview=text[:200])
            return None

        try:
            reply = AssistantReply.model_validate(_normalize_reply(data))
        except ValidationError as e:
            logger.warning("assistant_reply_invalid", errors=e.errors(include_url=False))
            return None

        logger.info(
            "assistant_reply_parsed",
            intent=reply.intent.value,
            sub_intent=reply.sub_intent,
            operations=len(reply.operations),
        )
        return reply

    async def autofill(
        self,
        description: str,
        today: date,
    ) -> Optional[TransactionSuggestion]:
        """
        Suggest type, amount, category and date for a description.

        The suggestion only pre-fills a form; nothing is stored.
        """
        if not description.strip():
            raise ValueError("Description is required for autofill")

        text = await self._generate(
            build_autofill_prompt(description, today),
            schema=build_autofill_schema(today),
        )
        if text is None:
            return None

        data = extract_json(text)
        if not isinstance(data, dict):
            logger.warning("autofill_reply_not_json", preview=text[:200])
            return None

        amount = None
        raw_amount = data.get("amount")
        if isinstance(raw_amount, (int, float)) and raw_amount > 0:
            amount = to_decimal(raw_amount)

        suggested_date = today
        if isinstance(data.get("date"), str):
            try:
                suggested_date = date.fromisoformat(data["date"].strip())
            except ValueError:
                pass

        return TransactionSuggestion(
            type=parse_type(data.get("type")) or TransactionType.EXPENSE,
            amount=amount,
            category=(data.get("category") or "").strip() or FALLBACK_CATEGORY,
            date=suggested_date,
        )

    async def generate_analysis(self, context: FinancialContext) -> Optional[str]:
        """Write a Markdown expense analysis; None if the model is unavailable."""
        prompt = build_system_prompt(
            context,
            [],
            ANALYSIS_PROMPT,
            instructions=ANALYSIS_INSTRUCTIONS,
            conversation_window=0,
        )
        text = await self._generate(prompt)
        if text is None:
            return None
        cleaned = strip_code_fences(text)
        return cleaned or None


class PlanningAgent:
    """
    Drives the budget / savings interview.

    Questions first, then a plan from the answers. Plans are drafts
    until the user saves them.
    """

    def __init__(
        self,
        client: Optional[GeminiClient] = None,
        settings: Optional[AssistantSettings] = None,
    ):
        self._client = client or GeminiClient()
        self._settings = settings or get_settings().assistant

    async def generate_questions(
        self,
        kind: PlanKind,
        context: FinancialContext,
    ) -> list[str]:
        """Interview questions; empty list if the model can't provide them."""
        count = self._settings.plan_question_count
        prompt = build_system_prompt(
            context,
            [],
            build_questions_prompt(kind, context.user_name, count),
            conversation_window=0,
        )
        try:
            text = await self._client.generate(prompt, schema=QUESTIONS_SCHEMA)
        except LanguageModelError as e:
            logger.warning("planning_model_unavailable", stage="questions", error=str(e))
            return []

        data = extract_json(text)
        if not isinstance(data, list):
            logger.warning("plan_questions_not_json", preview=text[:200])
            return []

        questions = [str(q).strip() for q in data if isinstance(q, str) and q.strip()]
        return questions[:count]

    async def generate_plan(
        self,
        kind: PlanKind,
        questions: list[str],
        answers: list[str],
        context: FinancialContext,
    ) -> Optional[Union[list[BudgetItem], list[SavingsGoal]]]:
        """
        Draft a plan from the interview.

        Returns budget items for PlanKind.BUDGET and goals for
        PlanKind.SAVINGS, or None if the model reply is unusable.
        """
        prompt = build_system_prompt(
            context,
            [],
            build_plan_prompt(kind, context.user_name),
            instructions=build_plan_instructions(kind, questions, answers),
            conversation_window=0,
        )
        schema = SAVINGS_PLAN_SCHEMA if kind == PlanKind.SAVINGS else BUDGET_PLAN_SCHEMA
        try:
            text = await self._client.generate(prompt, schema=schema)
        except LanguageModelError as e:
            logger.warning("planning_model_unavailable", stage="plan", error=str(e))
            return None

        data = extract_json(text)
        if not isinstance(data, list):
            logger.warning("plan_not_json", kind=kind.value, preview=text[:200])
            return None

        if kind == PlanKind.SAVINGS:
            plan = [goal for goal in (self._to_goal(item) for item in data) if goal]
        else:
            plan = [entry for entry in (self._to_budget_item(item) for item in data) if entry]
        return plan or None

    def _to_budget_item(self, item: Any) -> Optional[BudgetItem]:
        if not isinstance(item, dict):
            return None
        try:
            return BudgetItem(
                category=item.get("category") or "",
                budgeted_amount=to_decimal(item.get("budgeted_amount")) or Decimal("0"),
                suggestion=item.get("suggestion") or "",
            )
        except (ValidationError, TypeError, ArithmeticError) as e:
            logger.warning("plan_item_skipped", kind="budget", error=str(e))
            return None

    def _to_goal(self, item: Any) -> Optional[SavingsGoal]:
        if not isinstance(item, dict):
            return None
        try:
            return SavingsGoal(
                goal_title=item.get("goal_title") or "",
                target_amount=to_decimal(item.get("target_amount")) or Decimal("0"),
                monthly_contribution=to_decimal(item.get("monthly_contribution")) or Decimal("0"),
                timeline=item.get("timeline") or "",
                description=item.get("description") or "",
                steps=[str(step) for step in item.get("steps") or []],
            )
        except (ValidationError, TypeError, ArithmeticError) as e:
            logger.warning("plan_item_skipped", kind="savings", error=str(e))
            return None
