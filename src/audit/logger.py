"""
Audit Logger

DESIGN DECISION: Every step of the assistant pipeline is logged.
This provides:
1. Traceability from chat message to applied change
2. Debugging capability when the model misbehaves
3. A record of what undo reverted

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.models.assistant import BatchOutcome, UndoEntry
from src.models.audit import AuditEvent, AuditEventBuilder
from src.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit sheet (for persistence)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_message_received(self, message: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.message_received(message, correlation_id))

    async def log_intent_classified(
        self,
        intent: str,
        sub_intent: Optional[str],
        operation_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.intent_classified(
            intent=intent,
            sub_intent=sub_intent,
            operation_count=operation_count,
            correlation_id=correlation_id,
        ))

    async def log_interpretation_failed(self, message: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.interpretation_failed(message, correlation_id))

    async def log_amount_requested(self, descriptions: list[str], correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.amount_requested(descriptions, correlation_id))

    async def log_operations_staged(
        self,
        batch_id: UUID,
        actions: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.operations_staged(batch_id, actions, correlation_id))

    async def log_operations_rejected(self, issues: list[dict], correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.operations_rejected(issues, correlation_id))

    async def log_user_confirmed(
        self,
        batch_id: UUID,
        operation_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.user_confirmed(batch_id, operation_count, correlation_id))

    async def log_user_cancelled(self, batch_id: UUID, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.user_cancelled(batch_id, correlation_id))

    async def log_batch_outcome(
        self,
        outcome: BatchOutcome,
        correlation_id: UUID,
    ) -> None:
        """
        Log every result of an executed batch.

        A rolled-back batch is one event; its per-operation results
        no longer describe the record store.
        """
        if outcome.rolled_back:
            await self.log(AuditEventBuilder.batch_rolled_back(
                batch_id=outcome.batch_id,
                reverted=len(outcome.successes),
                error_message=outcome.error_message,
                correlation_id=correlation_id,
            ))
            return

        for change in outcome.changes:
            record = change.after or change.before
            await self.log(AuditEventBuilder.transaction_changed(
                action=change.action.value,
                transaction_id=change.transaction_id,
                message=record.description if record else change.transaction_id,
                batch_id=outcome.batch_id,
                correlation_id=correlation_id,
            ))

        for result in outcome.failures:
            await self.log(AuditEventBuilder.operation_failed(
                action=result.action.value,
                message=result.message,
                batch_id=outcome.batch_id,
                correlation_id=correlation_id,
            ))

    async def log_undo_applied(self, entry: UndoEntry, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.undo_applied(
            batch_id=entry.batch_id,
            change_count=len(entry.changes),
            correlation_id=correlation_id,
        ))

    async def log_undo_failed(
        self,
        batch_id: UUID,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.undo_failed(batch_id, error_message, correlation_id))

    async def log_plan_generated(self, kind: str, item_count: int, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.plan_generated(kind, item_count, correlation_id))

    async def log_plan_saved(self, kind: str, item_count: int, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.plan_saved(kind, item_count, correlation_id))

    async def log_goal_contribution(self, goal_id: str, goal_title: str, amount: str) -> None:
        await self.log(AuditEventBuilder.goal_contribution(goal_id, goal_title, amount))

    async def log_analysis_generated(self, length: int) -> None:
        await self.log(AuditEventBuilder.analysis_generated(length))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a chat message).
    Pass it through all subsequent operations.
    """
    return uuid4()
