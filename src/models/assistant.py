"""
Assistant Pipeline Models

Two families of models live here:

1. LANGUAGE-MODEL FACING (AssistantReply, TransactionOperation, ...):
   What the model is allowed to say. These are deliberately lenient
   (strings for dates, floats for amounts) because the model's output
   is untrusted. The validator decides what is acceptable.

2. PIPELINE STATE (StagedOperation, PendingConfirmation, UndoEntry, ...):
   What the system does with it. These are strict.

CRITICAL: A TransactionOperation is a PROPOSAL.
Nothing reaches the record store until the user confirms the batch.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from src.models.transaction import Transaction, TransactionType


# =============================================================================
# ENUMS
# =============================================================================

class Intent(str, Enum):
    """What the user wants, as classified by the language model."""
    TRANSACTION_OPS = "transaction_ops"
    SHOW_DATA = "show_data"
    GENERAL_CHAT = "general_chat"
    COMPLEX_QUERY = "complex_query"
    UNDO = "undo"


class OperationAction(str, Enum):
    """Mutations the assistant may propose."""
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


class TurnKind(str, Enum):
    """Outcome of one assistant turn (drives what the UI shows)."""
    REPLY = "reply"
    FALLBACK = "fallback"
    NEEDS_INFO = "needs_info"
    INVALID = "invalid"
    CONFIRMATION_REQUIRED = "confirmation_required"
    BLOCKED = "blocked"
    EXECUTED = "executed"
    CANCELLED = "cancelled"
    UNDONE = "undone"
    NOTHING_TO_UNDO = "nothing_to_undo"


# =============================================================================
# LANGUAGE-MODEL FACING
# =============================================================================

class IdentifyBy(BaseModel):
    """
    Criteria used to find existing transactions by their properties.

    Every given criterion must hold. An empty object matches everything.
    """

    description: Optional[str] = None
    category: Optional[str] = None
    amount: Optional[float] = None
    type: Optional[str] = None
    date_range: Optional[str] = None

    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (self.description, self.category, self.amount, self.type)
        )


class DeleteFilter(BaseModel):
    """Batch delete filter. An empty filter means 'all transactions'."""

    category: Optional[str] = None
    type: Optional[str] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    amount_min: Optional[float] = None
    amount_max: Optional[float] = None

    def is_empty(self) -> bool:
        return all(value is None for value in self.model_dump().values())


class TransactionOperation(BaseModel):
    """
    One proposed add/update/delete.

    Which fields matter depends on the action:
    - add: type, description, amount, category, date
    - update: target (transaction_id / identify_by / last touched) + changed fields
    - delete: transaction_ids, identify_by or filter (first one present wins)
    """

    action: OperationAction
    type: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[float] = None
    category: Optional[str] = None
    date: Optional[str] = None

    transaction_id: Optional[str] = None
    transaction_ids: Optional[list[str]] = None
    identify_by: Optional[IdentifyBy] = None
    filter: Optional[DeleteFilter] = None

    @property
    def is_missing_amount(self) -> bool:
        """Add operations without a usable amount need the user to supply one."""
        return self.action == OperationAction.ADD and not self.amount

    def changed_fields(self) -> dict[str, Any]:
        """Fields an update operation sets, in a stable order."""
        changes = {}
        for name in ("amount", "description", "category", "type", "date"):
            value = getattr(self, name)
            if value is not None:
                changes[name] = value
        return changes


class QueryParams(BaseModel):
    """Hints for data questions. Informational only."""

    type: Optional[str] = None
    categories: list[str] = Field(default_factory=list)
    date_range: Optional[str] = None
    sort_by: Optional[str] = None
    group_by: Optional[str] = None


class AssistantReply(BaseModel):
    """
    The structured reply the model returns for one user message.

    requires_confirmation is recorded but NOT trusted: every mutating
    batch is confirmed by the user regardless of what the model says.
    """

    intent: Intent
    sub_intent: Optional[str] = None
    requires_confirmation: bool = True
    confirmation_message: Optional[str] = None
    operations: list[TransactionOperation] = Field(default_factory=list)
    query_params: Optional[QueryParams] = None
    response: str = Field(
        default="",
        description="Text shown to the user"
    )
    requires_data: bool = False
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @property
    def has_operations(self) -> bool:
        return self.intent == Intent.TRANSACTION_OPS and len(self.operations) > 0


# =============================================================================
# PIPELINE STATE
# =============================================================================

class ConversationTurn(BaseModel):
    """One line of conversation kept for prompt context."""

    role: str = Field(..., pattern="^(user|assistant)$")
    message: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class StagedOperation(BaseModel):
    """
    An operation waiting for confirmation.

    matching_transactions is a snapshot taken at staging time so the user
    can see (and narrow down) what an update/delete will touch.
    """

    operation: TransactionOperation
    matching_transactions: Optional[list[Transaction]] = None
    summary: str = ""


class PendingConfirmation(BaseModel):
    """A staged batch. Only confirm() or cancel() resolve it."""

    batch_id: UUID = Field(default_factory=uuid4)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    operations: list[StagedOperation]
    message: str = "Please confirm this operation:"
    warnings: list[str] = Field(default_factory=list)


class OperationResult(BaseModel):
    """Result of applying one operation."""

    action: OperationAction
    success: bool
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class AppliedChange(BaseModel):
    """
    One change made to the record store, with enough data to reverse it.

    - add: after = the created record
    - update: before = full original record, after = updated record
    - delete: before = the deleted record
    """

    action: OperationAction
    transaction_id: str
    before: Optional[Transaction] = None
    after: Optional[Transaction] = None


class UndoEntry(BaseModel):
    """All changes of one applied batch. Undo reverses the whole batch."""

    batch_id: UUID
    applied_at: datetime = Field(default_factory=datetime.utcnow)
    changes: list[AppliedChange] = Field(default_factory=list)


class BatchOutcome(BaseModel):
    """What happened when a confirmed batch was executed."""

    batch_id: UUID
    results: list[OperationResult] = Field(default_factory=list)
    changes: list[AppliedChange] = Field(default_factory=list)
    rolled_back: bool = False
    error_message: Optional[str] = None

    @property
    def successes(self) -> list[OperationResult]:
        return [r for r in self.results if r.success]

    @property
    def failures(self) -> list[OperationResult]:
        return [r for r in self.results if not r.success]


class AssistantTurn(BaseModel):
    """Everything the UI needs to render one assistant response."""

    kind: TurnKind
    message: str
    pending: Optional[PendingConfirmation] = None
    results: list[OperationResult] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    reply: Optional[AssistantReply] = None


class ValidationIssue(BaseModel):
    """A single problem found in a proposed operation."""

    operation_index: int = Field(
        ...,
        ge=0,
        description="Position of the operation in the proposed batch"
    )
    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (required fields, formats) -> errors
    Stage 2: Semantic validation (suspicious values) -> warnings
    """

    validated_at: datetime = Field(default_factory=datetime.utcnow)
    schema_valid: bool
    semantic_valid: bool
    is_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]


def to_decimal(value: Optional[float]) -> Optional[Decimal]:
    """Convert a model-supplied number to a 2-place Decimal."""
    if value is None:
        return None
    return Decimal(str(value)).quantize(Decimal("0.01"))


def parse_type(value: Optional[str]) -> Optional[TransactionType]:
    """Lenient transaction-type parsing ('Income', ' expense ')."""
    if value is None:
        return None
    try:
        return TransactionType(value.strip().lower())
    except ValueError:
        return None
