"""
Undo Log

A bounded stack of applied batches. Undo pops the most recent batch and
reverses its changes in reverse order:

- add    -> delete the created record
- update -> restore the original field values
- delete -> re-add the record under its original id

The log lives in session memory only; it is not persisted.
"""

from collections import deque
from typing import Optional

import structlog

from src.models.assistant import AppliedChange, OperationAction, OperationResult, UndoEntry
from src.services.storage import StorageError, TransactionStorageInterface


logger = structlog.get_logger()

RESTORABLE_FIELDS = ("type", "description", "amount", "category", "date")


async def revert_change(storage: TransactionStorageInterface, change: AppliedChange) -> None:
    """
    Reverse one applied change.

    Raises:
        StorageError: If the store rejects the reversal
    """
    if change.action == OperationAction.ADD:
        await storage.delete_transaction(change.transaction_id)
    elif change.action == OperationAction.UPDATE:
        if change.before is None:
            raise StorageError(f"No original snapshot for {change.transaction_id}")
        original = {name: getattr(change.before, name) for name in RESTORABLE_FIELDS}
        await storage.update_transaction(change.transaction_id, original)
    elif change.action == OperationAction.DELETE:
        if change.before is None:
            raise StorageError(f"No deleted snapshot for {change.transaction_id}")
        await storage.add_transaction(change.before)


def describe_undo(entry: UndoEntry) -> list[OperationResult]:
    """User-facing messages for an undone batch."""
    results = []
    restored = 0
    for change in reversed(entry.changes):
        if change.action == OperationAction.ADD:
            results.append(OperationResult(
                action=change.action,
                success=True,
                message="Transaction addition undone",
                details={"transaction_id": change.transaction_id},
            ))
        elif change.action == OperationAction.UPDATE:
            results.append(OperationResult(
                action=change.action,
                success=True,
                message="Transaction update undone",
                details={"transaction_id": change.transaction_id},
            ))
        else:
            restored += 1
    if restored:
        results.append(OperationResult(
            action=OperationAction.DELETE,
            success=True,
            message=f"Restored {restored} transaction(s)",
            details={"count": restored},
        ))
    return results


class UndoLog:
    """LIFO of UndoEntry, oldest dropped beyond the limit."""

    def __init__(self, limit: int = 20):
        if limit < 1:
            raise ValueError("Undo history limit must be at least 1")
        self._entries: deque[UndoEntry] = deque(maxlen=limit)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def limit(self) -> int:
        return self._entries.maxlen

    def push(self, entry: UndoEntry) -> None:
        if not entry.changes:
            return
        self._entries.append(entry)

    def peek(self) -> Optional[UndoEntry]:
        return self._entries[-1] if self._entries else None

    def clear(self) -> None:
        self._entries.clear()

    async def undo(
        self,
        storage: TransactionStorageInterface,
    ) -> Optional[tuple[UndoEntry, list[OperationResult]]]:
        """
        Reverse the most recent batch.

        Returns None when there is nothing to undo.

        Raises:
            StorageError: If a reversal fails. The changes not yet
                reversed are put back as the top entry so undo can be retried.
        """
        if not self._entries:
            return None

        entry = self._entries.pop()
        reverted = 0
        try:
            for change in reversed(entry.changes):
                await revert_change(storage, change)
                reverted += 1
        except StorageError as e:
            logger.error(
                "undo_failed",
                batch_id=str(entry.batch_id),
                reverted=reverted,
                error=str(e),
            )
            remaining = entry.changes[: len(entry.changes) - reverted]
            self._entries.append(entry.model_copy(update={"changes": remaining}))
            raise

        logger.info(
            "undo_applied",
            batch_id=str(entry.batch_id),
            change_count=len(entry.changes),
        )
        return entry, describe_undo(entry)
