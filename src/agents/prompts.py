"""
Prompt and Schema Builder

Everything the language model sees is assembled here:
1. A FinancialContext snapshot computed from the user's real records
2. Prompt text (rules, context, conversation, the request)
3. JSON schemas the model's reply must follow

DESIGN DECISION: The model never reads storage. It only sees the
numbers we compute here, so any figure it quotes came from real data.

Schemas use Gemini's structured-output vocabulary (OBJECT, STRING, ...).
Keys are snake_case; the interpreter maps them onto our models.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from src.config import AssistantSettings
from src.models.assistant import ConversationTurn
from src.models.planning import PlanKind
from src.models.transaction import (
    DEFAULT_CATEGORIES,
    SALARY_CATEGORY,
    Transaction,
    TransactionType,
    UserProfile,
)
from src.queries.summary import CategoryTotal, compute_totals, top_expense_categories
from src.utils.currency import format_currency, format_currency_detailed


# =============================================================================
# FINANCIAL CONTEXT
# =============================================================================

class SalaryInfo(BaseModel):
    """What we know about the user's salary, for "got my salary" messages."""

    expected_salary: Optional[Decimal] = None
    recent_salary_transactions: list[Transaction] = Field(default_factory=list)
    last_salary_amount: Optional[Decimal] = None


class FinancialContext(BaseModel):
    """Snapshot of the user's finances that goes into every prompt."""

    user_name: str = "User"
    occupation: Optional[str] = None
    now: datetime
    today: date

    total_income: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    transaction_count: int = 0

    top_categories: list[CategoryTotal] = Field(default_factory=list)
    all_categories: list[str] = Field(default_factory=list)
    recent_transactions: list[Transaction] = Field(default_factory=list)
    last_transaction: Optional[Transaction] = None
    salary: SalaryInfo = Field(default_factory=SalaryInfo)


def is_salary_transaction(tx: Transaction) -> bool:
    if tx.type != TransactionType.INCOME:
        return False
    description = tx.description.lower()
    return "salary" in description or "income" in description or tx.category == SALARY_CATEGORY


def build_salary_info(
    transactions: list[Transaction],
    profile: Optional[UserProfile],
    limit: int = 3,
) -> SalaryInfo:
    salary_transactions = [tx for tx in transactions if is_salary_transaction(tx)][:limit]
    return SalaryInfo(
        expected_salary=profile.expected_salary if profile else None,
        recent_salary_transactions=salary_transactions,
        last_salary_amount=salary_transactions[0].amount if salary_transactions else None,
    )


def build_financial_context(
    transactions: list[Transaction],
    profile: Optional[UserProfile],
    last_touched: Optional[Transaction],
    now: datetime,
    settings: AssistantSettings,
) -> FinancialContext:
    """
    Compute the prompt context.

    Args:
        transactions: All records, newest first
        profile: User profile (may be None)
        last_touched: The record most recently added/updated this session
        now: Current time (shown to the model)
        settings: Limits for lists included in the prompt
    """
    totals = compute_totals(transactions)
    return FinancialContext(
        user_name=profile.name if profile else "User",
        occupation=profile.occupation if profile else None,
        now=now,
        today=settings.today(),
        total_income=totals.total_income,
        total_expenses=totals.total_expense,
        balance=totals.balance,
        transaction_count=totals.count,
        top_categories=top_expense_categories(transactions, settings.top_categories_limit),
        all_categories=sorted({tx.category for tx in transactions}),
        recent_transactions=transactions[: settings.recent_transactions_limit],
        last_transaction=last_touched,
        salary=build_salary_info(transactions, profile, settings.salary_history_limit),
    )


# =============================================================================
# PROMPTS
# =============================================================================

def _money(amount: Optional[Decimal]) -> str:
    """Compact and detailed forms side by side."""
    return f"{format_currency(amount, compact=True)} ({format_currency_detailed(amount)})"


def _render_last_transaction(tx: Optional[Transaction]) -> str:
    if tx is None:
        return "None"
    return "\n".join([
        f"- ID: {tx.id}",
        f"- Type: {tx.type.value}",
        f"- Description: {tx.description}",
        f"- Amount: {_money(tx.amount)}",
        f"- Category: {tx.category}",
        f"- Date: {tx.date.isoformat()}",
    ])


def render_history(history: list[ConversationTurn], window: int) -> str:
    if window <= 0:
        return ""
    return "\n".join(f"{turn.role}: {turn.message}" for turn in history[-window:])


def build_system_prompt(
    context: FinancialContext,
    history: list[ConversationTurn],
    user_request: str,
    instructions: str = "",
    conversation_window: int = 5,
) -> str:
    """The full prompt: context, history, assistant rules and the request."""
    salary = context.salary
    top_categories = "\n".join(
        f"- {item.category}: {_money(item.amount)}" for item in context.top_categories
    ) or "None"
    recent = "\n".join(
        f"- [{tx.id}] {tx.type.value}: {tx.description} - "
        f"{format_currency(tx.amount, compact=True)} ({tx.category}) [{tx.date.isoformat()}]"
        for tx in context.recent_transactions
    ) or "None"
    salary_history = "\n".join(
        f"- {tx.date.isoformat()}: {format_currency(tx.amount, compact=True)}"
        for tx in salary.recent_salary_transactions
    ) or "None"

    return f"""You are an intelligent financial assistant for {context.user_name}.

CURRENT CONTEXT:
- Current Date/Time: {context.now.strftime("%Y-%m-%d %H:%M:%S")} (UTC)
- User: {context.user_name}
- Occupation: {context.occupation or "Unknown"}
- Expected Salary: {format_currency(salary.expected_salary, compact=True) if salary.expected_salary else "Not specified"}
- Last Salary Amount: {format_currency(salary.last_salary_amount, compact=True) if salary.last_salary_amount else "None recorded"}

FINANCIAL DATA:
- Total Income: {_money(context.total_income)}
- Total Expenses: {_money(context.total_expenses)}
- Current Balance: {_money(context.balance)}
- Total Transactions: {context.transaction_count}
- Available Categories: {", ".join(context.all_categories) or "None"}

LAST TRANSACTION (for updates):
{_render_last_transaction(context.last_transaction)}

TOP SPENDING CATEGORIES:
{top_categories}

RECENT TRANSACTIONS (Last {len(context.recent_transactions)}):
{recent}

RECENT SALARY TRANSACTIONS:
{salary_history}

CONVERSATION HISTORY:
{render_history(history, conversation_window)}

INSTRUCTIONS:
- Understand context deeply, including follow-ups to earlier messages
- When the user mentions salary/income without an amount:
  * First use the expected salary from the user data
  * Otherwise use the most recent salary transaction
  * If no amount is known anywhere, DO NOT use 0; leave the amount empty so the user is asked
- ALWAYS ask for confirmation before changing transactions (requires_confirmation: true)
- Support Hindi/English mix
- Understand phrasings like "delete all food", "remove electronics", "clear shopping"
- For batch deletes use filters (category, type, date range, amount range)
- For corrections/updates without a specific ID, use the last transaction
- Use compact currency format (L/CR/K) in responses
- Always address the user as {context.user_name}
- Current date for new transactions: {context.today.isoformat()}

USER REQUEST: {user_request}

{instructions}""".rstrip() + "\n"


def build_intent_prompt(user_message: str) -> str:
    """The classification request sent as the USER REQUEST for chat messages."""
    return f"""Analyze this user input: "{user_message}"

Work out what the user wants. It is one of:

1. TRANSACTION OPERATIONS (intent: transaction_ops):
   - ADD: "spent X on Y", "paid", "received", "got salary", "maine kharcha kiya", "income hua"
   - UPDATE: "sorry X", "galti se", "actually", "change to", "update", or a bare number right after an add
     * by description: "update phone purchase to 5000"
     * by category: "change food expense to 300"
     * by amount: "change 1000 transaction to 1500"
   - DELETE: "delete", "remove", "clear", "hatao", "saaf karo" (single or batch)
     * by description: "delete phone purchase"
     * by category: "delete all food"
     * by amount: "delete 500 rupees transaction"
     * by date: "delete yesterday's", "remove last week's"
     * everything: "delete all", "clear everything"
2. UNDO (intent: undo): "undo", "revert", "cancel last", "galti ho gayi"
3. QUERIES/ANALYSIS (intent: show_data or complex_query):
   - balance and totals: "balance", "kitna hai", "how much"
   - category totals: "show food expenses", "electronics ka total"
   - time-based: "today's spending", "this month's income"
   - comparisons and insights: "compare food vs shopping", "where am I spending most"
4. GENERAL CONVERSATION (intent: general_chat): greetings, advice, budgeting tips

RULES:
- Every transaction operation needs confirmation (requires_confirmation: true)
- Dates are YYYY-MM-DD; resolve relative dates like "yesterday" against today's date
- A correction right after adding a transaction is an UPDATE of that transaction
- "Delete all X" means delete every transaction in category X (filter.category = X)
- To find transactions for update/delete use identify_by with description (partial),
  category, amount or type, combining them for accuracy; use transaction_id(s) when
  the ID is listed above
- Put the reply shown to the user in "response" and a short summary of the changes
  in "confirmation_message"
"""


AUTOFILL_CATEGORY_HINTS = {
    "Food": "restaurants, groceries, snacks, dining",
    "Travel": "transport, fuel, flights, hotels",
    "Shopping": "clothes, accessories, general purchases",
    "Bills": "utilities, rent, subscriptions, phone bills",
    "Entertainment": "movies, games, events, streaming",
    "Health": "medical, pharmacy, fitness, insurance",
    "Education": "courses, books, tuition, training",
    "Electronics": "gadgets, devices, tech purchases",
    "Income": "salary, freelance, business income",
    "Investment": "stocks, mutual funds, savings",
    "Personal": "haircut, beauty, personal care",
    "Other": "if none of the above fit",
}


def build_autofill_prompt(description: str, today: date) -> str:
    """Prompt for pre-filling the quick-add form from a description."""
    categories = "\n".join(
        f"   - {name} ({AUTOFILL_CATEGORY_HINTS.get(name, '')})" for name in DEFAULT_CATEGORIES
    )
    return f"""Analyze the following transaction description: "{description}"

Extract and determine:
1. Transaction type: "income" or "expense" (salary, bonus, payment received and freelance are income)
2. Amount: any numeric amount mentioned, or null if none is found
3. Category: the most appropriate of:
{categories}
4. Date: today's date ({today.isoformat()}) unless a specific date is mentioned

Examples:
- "bought iPhone" = Electronics, expense
- "salary credited" = Income, income
- "lunch at restaurant" = Food, expense
- "uber ride" = Travel, expense
- "netflix subscription" = Bills, expense
"""


ANALYSIS_PROMPT = """Analyze my spending patterns and provide deep insights for each major category. Look for:
- Spending trends and patterns
- Unusual or concerning expenses
- Opportunities to save money
- Category comparisons
- Time-based patterns (if data permits)

Be specific, actionable, and use data to support your insights. Use compact currency format (L/CR/K)."""

ANALYSIS_INSTRUCTIONS = """Return Markdown. Start with a personalized greeting using the user's name.
Then write numbered sections, one per insight, each with a bold title and a short paragraph
with specific numbers and actionable advice. Include:
- Overall spending summary
- Category-wise breakdown with insights
- Saving opportunities identified
- Budget recommendations based on patterns
Use compact currency format throughout."""


def build_questions_prompt(kind: PlanKind, user_name: str, count: int) -> str:
    if kind == PlanKind.SAVINGS:
        return (
            f"Generate {count} personalized, intelligent questions for {user_name} to create a "
            "comprehensive savings plan. Questions should be based on their current financial "
            "situation and spending patterns. Make questions specific and data-driven."
        )
    return (
        f"Generate {count} personalized questions for {user_name} to create a detailed monthly "
        "budget based on their spending patterns. Questions should help understand their "
        "priorities and constraints."
    )


def build_plan_prompt(kind: PlanKind, user_name: str) -> str:
    if kind == PlanKind.SAVINGS:
        return (
            f"Create a detailed, personalized savings plan for {user_name} based on their Q&A "
            "responses and financial data. Consider their income, expenses, and goals mentioned. "
            "Use compact currency format (L/CR/K)."
        )
    return (
        f"Create a comprehensive, realistic monthly budget for {user_name} based on their Q&A "
        "responses and spending patterns. Allocate budget intelligently based on their "
        "priorities. Use compact currency format (L/CR/K)."
    )


def build_plan_instructions(kind: PlanKind, questions: list[str], answers: list[str]) -> str:
    qa_context = "\n\n".join(
        f"Q: {question}\nA: {answers[i] if i < len(answers) and answers[i] else 'No answer'}"
        for i, question in enumerate(questions)
    )
    return f"""Based on this Q&A session:
{qa_context}

And the user's financial data, create a comprehensive {kind.value} plan in JSON format.
Be specific and actionable. Consider their actual spending patterns and income.
Use compact currency format (L for Lakhs, CR for Crores, K for Thousands) in descriptions."""


# =============================================================================
# SCHEMAS
# =============================================================================

_IDENTIFY_BY_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "description": {"type": "STRING"},
        "category": {"type": "STRING"},
        "amount": {"type": "NUMBER"},
        "type": {"type": "STRING"},
        "date_range": {"type": "STRING"},
    },
}

_FILTER_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "category": {"type": "STRING"},
        "type": {"type": "STRING"},
        "date_from": {"type": "STRING"},
        "date_to": {"type": "STRING"},
        "amount_min": {"type": "NUMBER"},
        "amount_max": {"type": "NUMBER"},
    },
}

ASSISTANT_REPLY_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "intent": {
            "type": "STRING",
            "enum": ["transaction_ops", "show_data", "general_chat", "complex_query", "undo"],
        },
        "sub_intent": {
            "type": "STRING",
            "description": "Specific sub-intent like 'add_expense', 'delete_batch', 'show_category_total'",
        },
        "requires_confirmation": {"type": "BOOLEAN"},
        "confirmation_message": {"type": "STRING"},
        "operations": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "action": {"type": "STRING", "enum": ["add", "update", "delete"]},
                    "type": {"type": "STRING", "enum": ["income", "expense"]},
                    "description": {"type": "STRING"},
                    "amount": {"type": "NUMBER"},
                    "category": {"type": "STRING"},
                    "date": {"type": "STRING"},
                    "transaction_id": {"type": "STRING"},
                    "transaction_ids": {"type": "ARRAY", "items": {"type": "STRING"}},
                    "identify_by": _IDENTIFY_BY_SCHEMA,
                    "filter": _FILTER_SCHEMA,
                },
                "required": ["action"],
            },
        },
        "query_params": {
            "type": "OBJECT",
            "properties": {
                "type": {"type": "STRING"},
                "categories": {"type": "ARRAY", "items": {"type": "STRING"}},
                "date_range": {"type": "STRING"},
                "sort_by": {"type": "STRING"},
                "group_by": {"type": "STRING"},
            },
        },
        "response": {"type": "STRING"},
        "requires_data": {"type": "BOOLEAN"},
        "confidence": {"type": "NUMBER"},
    },
    "required": ["intent", "response"],
}

QUESTIONS_SCHEMA = {
    "type": "ARRAY",
    "items": {"type": "STRING"},
}

BUDGET_PLAN_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "category": {"type": "STRING"},
            "budgeted_amount": {"type": "NUMBER"},
            "current_spending": {"type": "NUMBER"},
            "suggestion": {"type": "STRING"},
        },
        "required": ["category", "budgeted_amount"],
    },
}

SAVINGS_PLAN_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "goal_title": {"type": "STRING"},
            "target_amount": {"type": "NUMBER"},
            "monthly_contribution": {"type": "NUMBER"},
            "timeline": {"type": "STRING"},
            "description": {"type": "STRING"},
            "steps": {"type": "ARRAY", "items": {"type": "STRING"}},
        },
        "required": ["goal_title", "target_amount"],
    },
}


def build_autofill_schema(today: date) -> dict:
    return {
        "type": "OBJECT",
        "properties": {
            "type": {"type": "STRING", "enum": ["income", "expense"]},
            "amount": {"type": "NUMBER", "description": "Extracted amount or null if not found"},
            "category": {"type": "STRING"},
            "date": {
                "type": "STRING",
                "description": f"Date in YYYY-MM-DD format. Default to {today.isoformat()} if not specified.",
            },
        },
        "required": ["type", "category", "date"],
    }
