"""
Audit Models for Finance Assistant

Every significant action in the system is logged for audit purposes.
This provides:
1. Complete traceability of what the assistant proposed and what was applied
2. Debugging information when things go wrong
3. Ability to reconstruct history (including undo)

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step in the assistant pipeline has its own event type.
    """
    # Conversation
    MESSAGE_RECEIVED = "message_received"
    INTENT_CLASSIFIED = "intent_classified"
    INTERPRETATION_FAILED = "interpretation_failed"
    AMOUNT_REQUESTED = "amount_requested"

    # Staging
    OPERATIONS_STAGED = "operations_staged"
    OPERATIONS_REJECTED = "operations_rejected"

    # Human confirmation
    USER_CONFIRMED = "user_confirmed"
    USER_CANCELLED = "user_cancelled"

    # Record store changes
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    OPERATION_FAILED = "operation_failed"
    BATCH_ROLLED_BACK = "batch_rolled_back"

    # Undo
    UNDO_APPLIED = "undo_applied"
    UNDO_FAILED = "undo_failed"

    # Planning & analysis
    PLAN_GENERATED = "plan_generated"
    PLAN_SAVED = "plan_saved"
    GOAL_CONTRIBUTION = "goal_contribution"
    ANALYSIS_GENERATED = "analysis_generated"

    # System events
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'batch', 'goal')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one assistant session)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


def _truncate(text: str, limit: int = 200) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.message_received(message, correlation_id)
        event = AuditEventBuilder.user_confirmed(batch_id, 2, correlation_id)
    """

    @staticmethod
    def message_received(
        message: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MESSAGE_RECEIVED,
            entity_type="conversation",
            correlation_id=correlation_id,
            description=f"User message: {_truncate(message, 120)}",
            details={"length": len(message)},
            is_user_action=True,
        )

    @staticmethod
    def intent_classified(
        intent: str,
        sub_intent: Optional[str],
        operation_count: int,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INTENT_CLASSIFIED,
            entity_type="conversation",
            correlation_id=correlation_id,
            description=f"Intent classified as {intent} with {operation_count} operation(s)",
            details={
                "intent": intent,
                "sub_intent": sub_intent,
                "operation_count": operation_count,
            },
        )

    @staticmethod
    def interpretation_failed(
        message: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INTERPRETATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="conversation",
            correlation_id=correlation_id,
            description="Assistant could not interpret the message",
            details={"message": _truncate(message)},
        )

    @staticmethod
    def amount_requested(
        descriptions: list[str],
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AMOUNT_REQUESTED,
            entity_type="conversation",
            correlation_id=correlation_id,
            description=f"Asked user for the amount of {len(descriptions)} operation(s)",
            details={"descriptions": descriptions},
        )

    @staticmethod
    def operations_staged(
        batch_id: UUID,
        actions: list[str],
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATIONS_STAGED,
            entity_type="batch",
            entity_id=str(batch_id),
            correlation_id=correlation_id,
            description=f"Staged {len(actions)} operation(s) for confirmation",
            details={"actions": actions},
        )

    @staticmethod
    def operations_rejected(
        issues: list[dict],
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATIONS_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="batch",
            correlation_id=correlation_id,
            description=f"Proposed operations failed validation with {len(issues)} issue(s)",
            details={"issues": issues},
        )

    @staticmethod
    def user_confirmed(
        batch_id: UUID,
        operation_count: int,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_CONFIRMED,
            entity_type="batch",
            entity_id=str(batch_id),
            correlation_id=correlation_id,
            description=f"User confirmed {operation_count} operation(s)",
            details={"operation_count": operation_count},
            is_user_action=True,
        )

    @staticmethod
    def user_cancelled(
        batch_id: UUID,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_CANCELLED,
            entity_type="batch",
            entity_id=str(batch_id),
            correlation_id=correlation_id,
            description="User cancelled staged operations",
            is_user_action=True,
        )

    @staticmethod
    def transaction_changed(
        action: str,
        transaction_id: str,
        message: str,
        batch_id: UUID,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        event_type = {
            "add": AuditEventType.TRANSACTION_ADDED,
            "update": AuditEventType.TRANSACTION_UPDATED,
            "delete": AuditEventType.TRANSACTION_DELETED,
        }[action]
        return AuditEvent(
            event_type=event_type,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=_truncate(message, 500),
            details={"batch_id": str(batch_id)},
        )

    @staticmethod
    def operation_failed(
        action: str,
        message: str,
        batch_id: UUID,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="batch",
            entity_id=str(batch_id),
            correlation_id=correlation_id,
            description=f"{action} operation failed",
            error_message=message,
            details={"action": action},
        )

    @staticmethod
    def batch_rolled_back(
        batch_id: UUID,
        reverted: int,
        error_message: Optional[str],
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BATCH_ROLLED_BACK,
            severity=AuditSeverity.ERROR,
            entity_type="batch",
            entity_id=str(batch_id),
            correlation_id=correlation_id,
            description=f"Batch rolled back after storage failure ({reverted} change(s) reverted)",
            error_message=error_message,
            details={"reverted": reverted},
        )

    @staticmethod
    def undo_applied(
        batch_id: UUID,
        change_count: int,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.UNDO_APPLIED,
            entity_type="batch",
            entity_id=str(batch_id),
            correlation_id=correlation_id,
            description=f"Undid batch with {change_count} change(s)",
            details={"change_count": change_count},
            is_user_action=True,
        )

    @staticmethod
    def undo_failed(
        batch_id: UUID,
        error_message: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.UNDO_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="batch",
            entity_id=str(batch_id),
            correlation_id=correlation_id,
            description="Undo failed",
            error_message=error_message,
        )

    @staticmethod
    def plan_generated(
        kind: str,
        item_count: int,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_GENERATED,
            entity_type="plan",
            correlation_id=correlation_id,
            description=f"Generated {kind} plan with {item_count} item(s)",
            details={"kind": kind, "item_count": item_count},
        )

    @staticmethod
    def plan_saved(
        kind: str,
        item_count: int,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_SAVED,
            entity_type="plan",
            correlation_id=correlation_id,
            description=f"Saved {kind} plan with {item_count} item(s)",
            details={"kind": kind, "item_count": item_count},
            is_user_action=True,
        )

    @staticmethod
    def goal_contribution(
        goal_id: str,
        goal_title: str,
        amount: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_CONTRIBUTION,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Contributed ₹{amount} towards {goal_title}",
            details={"amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def analysis_generated(
        length: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ANALYSIS_GENERATED,
            entity_type="profile",
            correlation_id=correlation_id,
            description="Expense analysis regenerated",
            details={"length": length},
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
