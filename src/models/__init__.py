"""
Data Models Package

This package contains all Pydantic models used in the Finance Assistant system.
All data flowing through the system must conform to these schemas.
"""

from src.models.transaction import (
    DEFAULT_CATEGORIES,
    FALLBACK_CATEGORY,
    SALARY_CATEGORY,
    SAVINGS_CATEGORY,
    Transaction,
    TransactionSuggestion,
    TransactionType,
    UserProfile,
)
from src.models.assistant import (
    AppliedChange,
    AssistantReply,
    AssistantTurn,
    BatchOutcome,
    ConversationTurn,
    DeleteFilter,
    IdentifyBy,
    Intent,
    OperationAction,
    OperationResult,
    PendingConfirmation,
    QueryParams,
    StagedOperation,
    TransactionOperation,
    TurnKind,
    UndoEntry,
    ValidationIssue,
    ValidationResult,
)
from src.models.planning import (
    BudgetBand,
    BudgetItem,
    BudgetLine,
    BudgetOverview,
    Contribution,
    GoalProgress,
    PlanInterview,
    PlanKind,
    SavingsGoal,
)
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Record models
    "DEFAULT_CATEGORIES",
    "FALLBACK_CATEGORY",
    "SALARY_CATEGORY",
    "SAVINGS_CATEGORY",
    "Transaction",
    "TransactionSuggestion",
    "TransactionType",
    "UserProfile",
    # Assistant models
    "AppliedChange",
    "AssistantReply",
    "AssistantTurn",
    "BatchOutcome",
    "ConversationTurn",
    "DeleteFilter",
    "IdentifyBy",
    "Intent",
    "OperationAction",
    "OperationResult",
    "PendingConfirmation",
    "QueryParams",
    "StagedOperation",
    "TransactionOperation",
    "TurnKind",
    "UndoEntry",
    "ValidationIssue",
    "ValidationResult",
    # Planning models
    "BudgetBand",
    "BudgetItem",
    "BudgetLine",
    "BudgetOverview",
    "Contribution",
    "GoalProgress",
    "PlanInterview",
    "PlanKind",
    "SavingsGoal",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
