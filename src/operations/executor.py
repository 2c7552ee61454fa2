"""
Operation Executor

Applies a CONFIRMED batch of operations to the record store.

CRITICAL: Nothing calls this before the user has confirmed the batch.
The executor trusts that confirmation happened; it does not ask again.

Batch semantics:
1. Operations run in order, each against the CURRENT records
   (so "add coffee, then change it to 60" works in one batch).
2. An operation that resolves to nothing (no match, bad field values)
   fails on its own; the rest of the batch still runs.
3. A StorageError aborts the batch. Changes already applied in this
   batch are compensated in reverse order and the outcome is marked
   rolled back. Nothing is pushed to the undo log.
4. A batch with at least one applied change becomes one undo entry.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog
from pydantic import ValidationError

from src.models.assistant import (
    AppliedChange,
    BatchOutcome,
    OperationAction,
    OperationResult,
    TransactionOperation,
    UndoEntry,
    parse_type,
    to_decimal,
)
from src.models.transaction import FALLBACK_CATEGORY, Transaction
from src.operations.undo import UndoLog, revert_change
from src.queries.matcher import (
    DEFAULT_AMOUNT_TOLERANCE,
    resolve_delete_targets,
    resolve_update_target,
)
from src.services.storage import StorageError, TransactionStorageInterface
from src.services.storage.interface import apply_changes
from src.utils.currency import format_currency


logger = structlog.get_logger()


class OperationError(Exception):
    """An operation cannot be applied as given (bad values, nothing to change)."""
    pass


def _parse_operation_date(value: Optional[str], default: date) -> date:
    if not value:
        return default
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise OperationError(f"Invalid date '{value}', expected YYYY-MM-DD")


def build_update_changes(operation: TransactionOperation) -> dict[str, Any]:
    """
    Convert an update operation's loose fields into typed record changes.

    Raises:
        OperationError: If a field value is unusable or nothing changes
    """
    changes: dict[str, Any] = {}
    for name, value in operation.changed_fields().items():
        if name == "amount":
            if value < 0:
                raise OperationError("Amount cannot be negative")
            changes["amount"] = to_decimal(value)
        elif name == "type":
            parsed = parse_type(value)
            if parsed is None:
                raise OperationError(f"Unknown transaction type '{value}'")
            changes["type"] = parsed
        elif name == "date":
            changes["date"] = _parse_operation_date(value, default=date.today())
        elif isinstance(value, str) and value.strip():
            changes[name] = value.strip()
    if not changes:
        raise OperationError("Nothing to update")
    return changes


def describe_update(original: Transaction, changes: dict[str, Any]) -> str:
    parts = []
    for key, value in changes.items():
        if key == "amount":
            parts.append(f"amount to {format_currency(value, compact=True)}")
        elif key == "type":
            parts.append(f'type to "{value.value}"')
        elif key == "date":
            parts.append(f'date to "{value.isoformat()}"')
        else:
            parts.append(f'{key} to "{value}"')
    return f'Updated "{original.description}" - {", ".join(parts)}'


def describe_delete(deleted: list[Transaction]) -> str:
    total = sum((tx.amount for tx in deleted), Decimal("0"))
    noun = "transaction" if len(deleted) == 1 else "transactions"
    descriptions = ", ".join(tx.description for tx in deleted)
    return (
        f"Deleted {len(deleted)} {noun}: {descriptions} "
        f"(Total: {format_currency(total, compact=True)})"
    )


class OperationExecutor:
    """
    Runs confirmed batches against a record store.

    last_touched_id follows the most recent add/update, across batches,
    so corrections like "actually make it 600" find their target. When it
    is unset or its record is gone, such corrections go to the newest record.
    """

    def __init__(
        self,
        storage: TransactionStorageInterface,
        undo_log: Optional[UndoLog] = None,
        amount_tolerance: float = DEFAULT_AMOUNT_TOLERANCE,
    ):
        self._storage = storage
        self._undo_log = undo_log
        self._tolerance = amount_tolerance
        self.last_touched_id: Optional[str] = None

    async def execute(
        self,
        operations: list[TransactionOperation],
        today: date,
        batch_id: Optional[UUID] = None,
    ) -> BatchOutcome:
        outcome = BatchOutcome(batch_id=batch_id or uuid4())
        last_touched = self.last_touched_id

        for operation in operations:
            try:
                if operation.action == OperationAction.ADD:
                    result, changes = await self._add(operation, today)
                elif operation.action == OperationAction.UPDATE:
                    result, changes = await self._update(operation, last_touched)
                else:
                    result, changes = await self._delete(operation)
            except OperationError as e:
                outcome.results.append(OperationResult(
                    action=operation.action,
                    success=False,
                    message=str(e),
                ))
                continue
            except StorageError as e:
                logger.error(
                    "batch_storage_failure",
                    batch_id=str(outcome.batch_id),
                    action=operation.action.value,
                    error=str(e),
                )
                outcome.results.append(OperationResult(
                    action=operation.action,
                    success=False,
                    message=f"Failed to {operation.action.value} transaction: {e}",
                ))
                await self._rollback(outcome)
                return outcome

            outcome.results.append(result)
            outcome.changes.extend(changes)
            for change in changes:
                if change.action in (OperationAction.ADD, OperationAction.UPDATE):
                    last_touched = change.transaction_id

        self.last_touched_id = last_touched
        if outcome.changes and self._undo_log is not None:
            self._undo_log.push(UndoEntry(
                batch_id=outcome.batch_id,
                changes=list(outcome.changes),
            ))

        logger.info(
            "batch_executed",
            batch_id=str(outcome.batch_id),
            succeeded=len(outcome.successes),
            failed=len(outcome.failures),
        )
        return outcome

    async def _rollback(self, outcome: BatchOutcome) -> None:
        """Compensate this batch's applied changes, newest first."""
        failed_reversals = []
        for change in reversed(outcome.changes):
            try:
                await revert_change(self._storage, change)
            except StorageError as e:
                failed_reversals.append(change.transaction_id)
                logger.error(
                    "rollback_step_failed",
                    batch_id=str(outcome.batch_id),
                    transaction_id=change.transaction_id,
                    error=str(e),
                )

        reverted = len(outcome.changes) - len(failed_reversals)
        outcome.rolled_back = True
        outcome.error_message = outcome.results[-1].message
        if failed_reversals:
            outcome.error_message += (
                f" (could not revert {len(failed_reversals)} change(s): "
                f"{', '.join(failed_reversals)})"
            )
        outcome.changes = []
        logger.warning(
            "batch_rolled_back",
            batch_id=str(outcome.batch_id),
            reverted=reverted,
        )

    async def _add(
        self,
        operation: TransactionOperation,
        today: date,
    ) -> tuple[OperationResult, list[AppliedChange]]:
        tx_type = parse_type(operation.type)
        if tx_type is None:
            raise OperationError(f"Unknown transaction type '{operation.type}'")
        description = (operation.description or "").strip()
        if not description:
            raise OperationError("Description is required to add a transaction")
        if operation.amount is None or operation.amount < 0:
            raise OperationError("A non-negative amount is required to add a transaction")

        try:
            transaction = Transaction(
                type=tx_type,
                description=description,
                amount=to_decimal(operation.amount),
                category=(operation.category or "").strip() or FALLBACK_CATEGORY,
                date=_parse_operation_date(operation.date, default=today),
            )
        except ValidationError as e:
            raise OperationError(f"Invalid transaction: {e.errors()[0]['msg']}")
        created = await self._storage.add_transaction(transaction)

        result = OperationResult(
            action=OperationAction.ADD,
            success=True,
            message=(
                f"Added {created.type.value}: {created.description} - "
                f"{format_currency(created.amount, compact=True)}"
            ),
            details={"transaction_id": created.id},
        )
        return result, [AppliedChange(
            action=OperationAction.ADD,
            transaction_id=created.id,
            after=created,
        )]

    async def _update(
        self,
        operation: TransactionOperation,
        last_touched_id: Optional[str],
    ) -> tuple[OperationResult, list[AppliedChange]]:
        transactions = await self._storage.list_transactions()
        target = resolve_update_target(
            operation,
            transactions,
            last_touched_id=last_touched_id,
            tolerance=self._tolerance,
        )
        if target is None:
            raise OperationError(
                "Could not find the transaction to update. Please be more specific."
            )

        changes = build_update_changes(operation)
        try:
            apply_changes(target, changes)
        except ValidationError as e:
            raise OperationError(f"Invalid update: {e.errors()[0]['msg']}")
        updated = await self._storage.update_transaction(target.id, changes)

        result = OperationResult(
            action=OperationAction.UPDATE,
            success=True,
            message=describe_update(target, changes),
            details={
                "transaction_id": target.id,
                "fields": sorted(changes),
            },
        )
        return result, [AppliedChange(
            action=OperationAction.UPDATE,
            transaction_id=target.id,
            before=target,
            after=updated,
        )]

    async def _delete(
        self,
        operation: TransactionOperation,
    ) -> tuple[OperationResult, list[AppliedChange]]:
        transactions = await self._storage.list_transactions()
        try:
            targets = resolve_delete_targets(operation, transactions, tolerance=self._tolerance)
        except ValueError as e:
            raise OperationError(str(e))

        deleted = []
        try:
            for tx in targets:
                if await self._storage.delete_transaction(tx.id):
                    deleted.append(tx)
        except StorageError:
            # Put back what this operation already removed before the batch rolls back
            for tx in reversed(deleted):
                await revert_change(
                    self._storage,
                    AppliedChange(action=OperationAction.DELETE, transaction_id=tx.id, before=tx),
                )
            raise

        if not deleted:
            raise OperationError("No transactions found matching the criteria")

        result = OperationResult(
            action=OperationAction.DELETE,
            success=True,
            message=describe_delete(deleted),
            details={
                "count": len(deleted),
                "total": str(sum((tx.amount for tx in deleted), Decimal("0"))),
                "transaction_ids": [tx.id for tx in deleted],
            },
        )
        return result, [
            AppliedChange(action=OperationAction.DELETE, transaction_id=tx.id, before=tx)
            for tx in deleted
        ]
