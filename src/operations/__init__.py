"""Confirmed operation execution and undo."""

from src.operations.executor import OperationError, OperationExecutor
from src.operations.undo import UndoLog, revert_change

__all__ = [
    "OperationError",
    "OperationExecutor",
    "UndoLog",
    "revert_change",
]
