"""
Streamlit Frontend for Finance Assistant

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Explicit confirmation before any change the assistant proposes
3. Clear error messages in simple language
4. Visual feedback for all operations
5. No hidden actions

The UI enforces the human-in-the-loop principle:
- User sees every staged add/update/delete
- User picks which matching transactions are affected
- Nothing changes without an explicit "Confirm"
"""

import asyncio
from decimal import Decimal

import streamlit as st

from src.config import get_settings, validate_all_settings
from src.models.assistant import OperationAction
from src.models.planning import PlanKind, SavingsGoal
from src.models.transaction import DEFAULT_CATEGORIES, Transaction, TransactionType
from src.orchestrator import AppComponents, create_app_components
from src.planning import PlanningError, goal_progress
from src.queries import build_dashboard_summary, search_transactions
from src.services.storage import StorageError
from src.utils import format_currency, format_currency_detailed


st.set_page_config(
    page_title="Finance Assistant",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

BAND_ICONS = {
    "on_track": "🟢",
    "caution": "🟡",
    "warning": "🟠",
    "over": "🔴",
}


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    return create_app_components(use_storage=True)


def main():
    """Main application entry point."""
    try:
        components = get_components()
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        st.info("Set GEMINI_API_KEY (and optionally Google Sheets settings) in your .env file.")
        st.stop()

    st.sidebar.title("💰 Finance Assistant")
    if components.sheets_client is None:
        st.sidebar.warning("Google Sheets not configured: data is kept in memory only.")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["🤖 Assistant", "📊 Dashboard", "📋 Budget", "🎯 Goals", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **Talk to the assistant like:**
        - "spent 500 on food"
        - "sorry, make it 450"
        - "delete all food"
        - "undo"
        """
    )

    if page == "🤖 Assistant":
        render_assistant_page(components)
    elif page == "📊 Dashboard":
        render_dashboard_page(components)
    elif page == "📋 Budget":
        render_budget_page(components)
    elif page == "🎯 Goals":
        render_goals_page(components)
    elif page == "⚙️ Settings":
        render_settings_page(components)


# =============================================================================
# ASSISTANT
# =============================================================================

def _push_turn(role: str, content: str) -> None:
    st.session_state.chat.append({"role": role, "content": content})


def render_assistant_page(components: AppComponents):
    """Chat, confirmation and planning interview."""
    st.title("🤖 Financial Assistant")
    flow = components.assistant_flow
    planning = components.planning_flow

    if "chat" not in st.session_state:
        st.session_state.chat = []
        turn = run_async(flow.start_chat())
        _push_turn("assistant", turn.message)
    if "mode" not in st.session_state:
        st.session_state.mode = "chat"  # chat, budget, savings

    col1, col2, col3 = st.columns(3)
    with col1:
        if st.button("💬 New Chat"):
            planning.reset()
            st.session_state.mode = "chat"
            st.session_state.chat = []
            turn = run_async(flow.start_chat())
            _push_turn("assistant", turn.message)
            st.rerun()
    with col2:
        if st.button("📋 Budget Plan"):
            _start_plan(planning, PlanKind.BUDGET)
    with col3:
        if st.button("🎯 Savings Plan"):
            _start_plan(planning, PlanKind.SAVINGS)

    for entry in st.session_state.chat:
        with st.chat_message(entry["role"]):
            st.markdown(entry["content"])

    if st.session_state.mode == "chat" and flow.pending is not None:
        _render_confirmation(flow)

    if st.session_state.mode != "chat":
        interview = planning.interview
        if interview is not None and interview.has_plan:
            if st.button("💾 Save Plan", type="primary"):
                try:
                    count = run_async(planning.save())
                    _push_turn("assistant", f"✅ Saved {count} item(s).")
                    st.session_state.mode = "chat"
                    st.rerun()
                except StorageError as e:
                    st.error(f"Failed to save: {e}")

    prompt = st.chat_input(
        "Type a message...",
        disabled=st.session_state.mode == "chat" and flow.pending is not None,
    )
    if not prompt:
        return

    _push_turn("user", prompt)
    with st.spinner("Thinking..."):
        try:
            if st.session_state.mode == "chat":
                turn = run_async(flow.handle_message(prompt))
                _push_turn("assistant", turn.message)
            else:
                _push_turn("assistant", run_async(planning.answer(prompt)))
        except PlanningError as e:
            _push_turn("assistant", f"❌ {e}")
        except (ValueError, StorageError) as e:
            st.error(f"Error: {e}")
    st.rerun()


def _start_plan(planning, kind: PlanKind) -> None:
    with st.spinner("Preparing questions..."):
        try:
            message = run_async(planning.start(kind))
        except PlanningError as e:
            st.error(str(e))
            return
    st.session_state.mode = kind.value
    st.session_state.chat = []
    _push_turn("assistant", message)
    st.rerun()


def _render_confirmation(flow) -> None:
    pending = flow.pending
    selection = {}

    with st.container(border=True):
        st.markdown(f"**{pending.message}**")
        for warning in pending.warnings:
            st.warning(warning)

        for index, staged in enumerate(pending.operations):
            st.markdown(f"**{staged.summary}**")
            matches = staged.matching_transactions
            if not matches:
                continue
            labels = {
                tx.id: f"{tx.date.isoformat()} · {tx.description} · {format_currency(tx.amount, compact=True)} ({tx.category})"
                for tx in matches
            }
            if staged.operation.action == OperationAction.UPDATE:
                chosen = st.radio(
                    "Which transaction?",
                    options=list(labels),
                    format_func=labels.get,
                    key=f"select_{pending.batch_id}_{index}",
                )
                selection[index] = [chosen]
            else:
                chosen = st.multiselect(
                    "Transactions to delete",
                    options=list(labels),
                    default=list(labels),
                    format_func=labels.get,
                    key=f"select_{pending.batch_id}_{index}",
                )
                selection[index] = chosen

        col1, col2 = st.columns(2)
        with col1:
            if st.button("✅ Yes, Confirm", type="primary"):
                try:
                    turn = run_async(flow.confirm(selection))
                    _push_turn("assistant", turn.message)
                except StorageError as e:
                    st.error(f"Failed to apply changes: {e}")
                st.rerun()
        with col2:
            if st.button("❌ No, Cancel"):
                turn = run_async(flow.cancel())
                _push_turn("assistant", turn.message)
                st.rerun()


# =============================================================================
# DASHBOARD
# =============================================================================

def render_dashboard_page(components: AppComponents):
    """Totals, charts, analysis, transaction list and quick add."""
    st.title("📊 Dashboard")
    storage = components.transaction_storage

    transactions = run_async(storage.list_transactions())
    summary = build_dashboard_summary(transactions)

    col1, col2, col3 = st.columns(3)
    col1.metric("Income", format_currency(summary.totals.total_income, compact=True))
    col2.metric("Expenses", format_currency(summary.totals.total_expense, compact=True))
    col3.metric("Balance", format_currency(summary.totals.balance, compact=True))

    if summary.expense_by_category:
        st.subheader("Expenses by category")
        st.bar_chart({c.category: float(c.amount) for c in summary.expense_by_category})
    if summary.monthly:
        st.subheader("Monthly trend")
        st.line_chart({
            "Income": {p.label: float(p.income) for p in summary.monthly},
            "Expense": {p.label: float(p.expense) for p in summary.monthly},
        })

    st.subheader("🧠 Expense analysis")
    st.markdown(run_async(components.analysis_flow.current()))
    if st.button("🔄 Update Analysis"):
        with st.spinner("Analyzing your spending..."):
            if run_async(components.analysis_flow.refresh()) is None:
                st.warning("The assistant is unavailable right now. Please try again.")
        st.rerun()

    st.markdown("---")
    _render_quick_add(components)

    st.markdown("---")
    st.subheader("Transactions")
    col1, col2, col3 = st.columns(3)
    with col1:
        search = st.text_input("Search", placeholder="description or category")
    with col2:
        type_filter = st.selectbox(
            "Type",
            options=[None] + list(TransactionType),
            format_func=lambda x: "All" if x is None else x.value.title(),
        )
    with col3:
        category_filter = st.selectbox(
            "Category",
            options=[None] + sorted({tx.category for tx in transactions}),
            format_func=lambda x: "All" if x is None else x,
        )

    for tx in search_transactions(transactions, search, type_filter, category_filter):
        row = st.columns([2, 4, 2, 2, 1])
        row[0].write(tx.date.isoformat())
        row[1].write(tx.description)
        row[2].write(tx.category)
        sign = "+" if tx.is_income else "-"
        row[3].write(f"{sign}{format_currency_detailed(tx.amount)}")
        if row[4].button("🗑️", key=f"delete_{tx.id}"):
            run_async(storage.delete_transaction(tx.id))
            st.rerun()


def _render_quick_add(components: AppComponents):
    st.subheader("➕ Add Transaction")
    today = get_settings().assistant.today()

    if "suggestion" not in st.session_state:
        st.session_state.suggestion = None

    description = st.text_input("Description", key="quick_add_description")
    if st.button("✨ Autofill") and description.strip():
        with st.spinner("Filling in the details..."):
            st.session_state.suggestion = run_async(
                components.assistant_agent.autofill(description, today)
            )
        if st.session_state.suggestion is None:
            st.warning("Couldn't autofill. Please fill in the details yourself.")

    suggestion = st.session_state.suggestion
    categories = list(DEFAULT_CATEGORIES)
    if suggestion and suggestion.category not in categories:
        categories.append(suggestion.category)

    with st.form("quick_add"):
        col1, col2 = st.columns(2)
        with col1:
            tx_type = st.selectbox(
                "Type",
                options=list(TransactionType),
                index=list(TransactionType).index(suggestion.type) if suggestion else 1,
                format_func=lambda x: x.value.title(),
            )
            amount = st.number_input(
                "Amount (₹)",
                value=float(suggestion.amount) if suggestion and suggestion.amount else 0.0,
                min_value=0.0,
                step=1.0,
            )
        with col2:
            category = st.selectbox(
                "Category",
                options=categories,
                index=categories.index(suggestion.category) if suggestion else 0,
            )
            tx_date = st.date_input("Date", value=suggestion.date if suggestion else today)

        if st.form_submit_button("Add", type="primary"):
            if not description.strip():
                st.error("Please enter a description")
            elif amount <= 0:
                st.error("Please enter a valid amount")
            else:
                run_async(components.transaction_storage.add_transaction(Transaction(
                    type=tx_type,
                    description=description,
                    amount=Decimal(str(amount)),
                    category=category,
                    date=tx_date,
                )))
                st.session_state.suggestion = None
                st.success("Transaction added")
                st.rerun()


# =============================================================================
# BUDGET
# =============================================================================

def render_budget_page(components: AppComponents):
    """Monthly budget against this month's spending."""
    st.title("📋 My Budget")
    tracker = components.budget_tracker
    overview = run_async(tracker.overview())

    col1, col2, col3 = st.columns(3)
    col1.metric("Total budget", format_currency(overview.total_budget, compact=True))
    col2.metric("Spent this month", format_currency(overview.total_spent, compact=True))
    col3.metric(
        "Remaining",
        format_currency(overview.total_budget - overview.total_spent, compact=True),
    )

    if not overview.lines:
        st.info("No budget yet. Add items below or create one with the assistant's Budget Plan.")

    for index, line in enumerate(overview.lines):
        with st.container(border=True):
            st.markdown(
                f"{BAND_ICONS[line.band.value]} **{line.category}**: "
                f"{format_currency(line.spent, compact=True)} of "
                f"{format_currency(line.budgeted_amount, compact=True)} "
                f"({line.percentage:.0f}%)"
            )
            st.progress(min(line.percentage, 100.0) / 100)
            if line.suggestion:
                st.caption(line.suggestion)
            if st.button("Delete", key=f"budget_delete_{index}"):
                run_async(tracker.delete_item(index))
                st.rerun()

    with st.form("budget_add"):
        st.subheader("Add budget item")
        category = st.selectbox("Category", options=DEFAULT_CATEGORIES)
        amount = st.number_input("Monthly budget (₹)", min_value=0.0, step=500.0)
        suggestion = st.text_input("Note (optional)")
        if st.form_submit_button("Add", type="primary"):
            try:
                run_async(tracker.add_item(category, Decimal(str(amount)), suggestion or None))
                st.rerun()
            except PlanningError as e:
                st.error(str(e))


# =============================================================================
# GOALS
# =============================================================================

def render_goals_page(components: AppComponents):
    """Savings goals with progress and contributions."""
    st.title("🎯 Saving Goals")
    service = components.goal_service
    goals = run_async(service.list_goals())

    if not goals:
        st.info("No goals yet. Add one below or create a plan with the assistant.")

    for index, goal in enumerate(goals):
        progress = goal_progress(goal)
        with st.container(border=True):
            st.markdown(f"### {goal.goal_title}")
            if goal.description:
                st.caption(goal.description)
            st.progress(min(progress.percentage, 100.0) / 100)
            st.markdown(
                f"{format_currency(goal.saved_amount, compact=True)} of "
                f"{format_currency(goal.target_amount, compact=True)} "
                f"({progress.percentage:.0f}%)"
            )
            if progress.months_to_goal == 0:
                st.success("🎉 Goal reached!")
            elif progress.months_to_goal is not None:
                st.markdown(f"About **{progress.months_to_goal} month(s)** to go")
            for step in goal.steps:
                st.markdown(f"- {step}")

            col1, col2 = st.columns([3, 1])
            with col1:
                amount = st.number_input(
                    "Contribution (₹)", min_value=0.0, step=500.0, key=f"contribute_{goal.id}"
                )
                if st.button("💰 Contribute", key=f"contribute_button_{goal.id}"):
                    try:
                        run_async(service.contribute(index, Decimal(str(amount))))
                        st.rerun()
                    except PlanningError as e:
                        st.error(str(e))
            with col2:
                if st.button("Delete", key=f"goal_delete_{goal.id}"):
                    run_async(service.delete_goal(index))
                    st.rerun()

    with st.form("goal_add"):
        st.subheader("Add goal")
        title = st.text_input("Goal")
        target = st.number_input("Target (₹)", min_value=0.0, step=1000.0)
        monthly = st.number_input("Monthly contribution (₹)", min_value=0.0, step=500.0)
        timeline = st.text_input("Timeline", placeholder="e.g. 12 months")
        if st.form_submit_button("Add", type="primary"):
            if not title.strip():
                st.error("Please enter a goal title")
            else:
                run_async(service.add_goal(SavingsGoal(
                    goal_title=title,
                    target_amount=Decimal(str(target)),
                    monthly_contribution=Decimal(str(monthly)),
                    timeline=timeline,
                )))
                st.rerun()


# =============================================================================
# SETTINGS
# =============================================================================

def render_settings_page(components: AppComponents):
    """Connection status and profile."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")
    status = validate_all_settings()
    services = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Gemini (AI)", "gemini"),
    ]
    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    if st.button("🔑 Test Gemini API key"):
        if run_async(components.assistant_agent.client.verify_api_key()):
            st.success("API key works")
        else:
            st.error("API key check failed")

    st.markdown("---")
    st.markdown("### Profile")
    profile = run_async(components.user_storage.get_profile())
    with st.form("profile"):
        name = st.text_input("Name", value=profile.name)
        occupation = st.text_input("Occupation", value=profile.occupation or "")
        salary = st.number_input(
            "Expected monthly salary (₹)",
            value=float(profile.expected_salary or 0),
            min_value=0.0,
            step=1000.0,
        )
        if st.form_submit_button("Save", type="primary"):
            profile.name = name
            profile.occupation = occupation or None
            profile.expected_salary = Decimal(str(salary)) if salary else None
            run_async(components.user_storage.save_profile(profile))
            st.success("Profile saved")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
