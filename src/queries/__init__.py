"""Reference resolution and summaries over transactions."""

from src.queries.matcher import (
    apply_delete_filter,
    find_matches,
    matches_identify_by,
    resolve_delete_targets,
    resolve_update_target,
    search_transactions,
)
from src.queries.summary import (
    CategoryTotal,
    DashboardSummary,
    MonthlyPoint,
    Totals,
    build_dashboard_summary,
    compute_totals,
    default_analysis,
    expense_by_category,
    monthly_series,
    top_expense_categories,
)

__all__ = [
    # Matching
    "apply_delete_filter",
    "find_matches",
    "matches_identify_by",
    "resolve_delete_targets",
    "resolve_update_target",
    "search_transactions",
    # Summaries
    "CategoryTotal",
    "DashboardSummary",
    "MonthlyPoint",
    "Totals",
    "build_dashboard_summary",
    "compute_totals",
    "default_analysis",
    "expense_by_category",
    "monthly_series",
    "top_expense_categories",
]
