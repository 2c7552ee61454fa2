"""Validation package."""

from src.validation.validator import OperationValidator

__all__ = ["OperationValidator"]
