"""
Two-Stage Validation Pipeline

Proposed operations come from a language model, so they are checked
before they are staged for confirmation.

STAGE 1 - SCHEMA VALIDATION (errors, block staging):
- Required fields per action
- Non-negative amounts
- ISO dates, known transaction types
- Updates that change nothing, deletes that select nothing

STAGE 2 - SEMANTIC VALIDATION (warnings, shown with the confirmation):
- Absurd amounts
- Future dates
- Deletes that match every transaction

IMPORTANT: Validation NEVER silently fixes issues.
It reports them for human review.

A missing amount on an add is NOT an issue here: the assistant asks the
user for it instead.
"""

from datetime import date, timedelta
from typing import Optional

from src.config import AppSettings, get_settings
from src.models.assistant import (
    OperationAction,
    TransactionOperation,
    ValidationIssue,
    ValidationResult,
    parse_type,
)


def _parse_iso(value: str) -> Optional[date]:
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


class OperationValidator:
    """
    Validates a proposed batch through a two-stage pipeline.

    Stage 2 only runs when stage 1 found no errors.
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def _check_date(
        self,
        index: int,
        field: str,
        value: Optional[str],
        issues: list[ValidationIssue],
    ) -> None:
        if value and _parse_iso(value) is None:
            issues.append(ValidationIssue(
                operation_index=index,
                field=field,
                issue_type="invalid_format",
                message=f"Date '{value}' is not in YYYY-MM-DD format",
                severity="error",
                suggested_fix="Use a date like 2024-01-31",
            ))

    def _check_type(
        self,
        index: int,
        field: str,
        value: Optional[str],
        issues: list[ValidationIssue],
    ) -> None:
        if value and parse_type(value) is None:
            issues.append(ValidationIssue(
                operation_index=index,
                field=field,
                issue_type="invalid_value",
                message=f"Unknown transaction type '{value}'",
                severity="error",
                suggested_fix="Use income or expense",
            ))

    def _check_amount(
        self,
        index: int,
        field: str,
        value: Optional[float],
        issues: list[ValidationIssue],
    ) -> None:
        if value is not None and value < 0:
            issues.append(ValidationIssue(
                operation_index=index,
                field=field,
                issue_type="invalid_value",
                message="Amount cannot be negative",
                severity="error",
            ))

    def _validate_schema(
        self,
        operations: list[TransactionOperation],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if not operations:
            issues.append(ValidationIssue(
                operation_index=0,
                field="operations",
                issue_type="empty",
                message="No operations were proposed",
                severity="error",
            ))

        for index, op in enumerate(operations):
            if op.action == OperationAction.ADD:
                if not op.type:
                    issues.append(ValidationIssue(
                        operation_index=index,
                        field="type",
                        issue_type="missing",
                        message="Transaction type (income or expense) is required",
                        severity="error",
                    ))
                if not (op.description or "").strip():
                    issues.append(ValidationIssue(
                        operation_index=index,
                        field="description",
                        issue_type="missing",
                        message="A description is required to add a transaction",
                        severity="error",
                    ))
                self._check_type(index, "type", op.type, issues)
                self._check_amount(index, "amount", op.amount, issues)
                self._check_date(index, "date", op.date, issues)

            elif op.action == OperationAction.UPDATE:
                if not op.changed_fields():
                    issues.append(ValidationIssue(
                        operation_index=index,
                        field="update",
                        issue_type="missing",
                        message="The update doesn't change any field",
                        severity="error",
                        suggested_fix="Say what should change, e.g. 'make it 600'",
                    ))
                self._check_type(index, "type", op.type, issues)
                self._check_amount(index, "amount", op.amount, issues)
                self._check_date(index, "date", op.date, issues)
                if op.identify_by is not None:
                    self._check_type(index, "identify_by.type", op.identify_by.type, issues)

            else:
                if op.transaction_ids is None and op.identify_by is None and op.filter is None:
                    issues.append(ValidationIssue(
                        operation_index=index,
                        field="delete",
                        issue_type="missing",
                        message="The delete doesn't say which transactions to remove",
                        severity="error",
                        suggested_fix="Name a category, description or amount",
                    ))
                if op.identify_by is not None:
                    self._check_type(index, "identify_by.type", op.identify_by.type, issues)
                if op.filter is not None:
                    self._check_type(index, "filter.type", op.filter.type, issues)
                    self._check_date(index, "filter.date_from", op.filter.date_from, issues)
                    self._check_date(index, "filter.date_to", op.filter.date_to, issues)

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _selects_everything(self, op: TransactionOperation) -> bool:
        if op.transaction_ids is not None:
            return False
        if op.identify_by is not None:
            return op.identify_by.is_empty()
        return op.filter is not None and op.filter.is_empty()

    def _validate_semantic(
        self,
        operations: list[TransactionOperation],
        today: date,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []
        max_amount = self._settings.max_transaction_amount
        max_future_date = today + timedelta(days=self._settings.future_date_tolerance_days)

        for index, op in enumerate(operations):
            if op.amount is not None and op.amount > max_amount:
                issues.append(ValidationIssue(
                    operation_index=index,
                    field="amount",
                    issue_type="suspicious_value",
                    message=f"Amount (₹{op.amount:,.2f}) seems unusually high",
                    severity="warning",
                    suggested_fix="Please verify this amount is correct",
                ))

            op_date = _parse_iso(op.date) if op.date else None
            if op_date and op_date > max_future_date:
                issues.append(ValidationIssue(
                    operation_index=index,
                    field="date",
                    issue_type="future_date",
                    message=f"Date ({op_date.isoformat()}) is in the future",
                    severity="warning",
                    suggested_fix="Please verify the date is correct",
                ))

            if op.action == OperationAction.DELETE and self._selects_everything(op):
                issues.append(ValidationIssue(
                    operation_index=index,
                    field="delete",
                    issue_type="broad_delete",
                    message="This will delete ALL of your transactions",
                    severity="warning",
                ))

            if (
                op.filter is not None
                and op.filter.amount_min is not None
                and op.filter.amount_max is not None
                and op.filter.amount_min > op.filter.amount_max
            ):
                issues.append(ValidationIssue(
                    operation_index=index,
                    field="filter.amount_min",
                    issue_type="inconsistent",
                    message="Minimum amount is above maximum amount, nothing will match",
                    severity="warning",
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def validate(
        self,
        operations: list[TransactionOperation],
        today: Optional[date] = None,
    ) -> ValidationResult:
        """
        Run the full two-stage validation pipeline.

        Args:
            operations: The proposed batch
            today: Reference date for future-date checks
        """
        all_issues = []

        schema_valid, schema_issues = self._validate_schema(operations)
        all_issues.extend(schema_issues)

        # Only run stage 2 if stage 1 passes
        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(
                operations, today or date.today()
            )
            all_issues.extend(semantic_issues)

        warnings = [issue.message for issue in all_issues if issue.severity == "warning"]

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=warnings,
        )

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show in the chat.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []

        if not result.schema_valid:
            lines.append("❌ I couldn't prepare that change:")
            for issue in result.errors:
                lines.append(f"   • {issue.message}")
                if issue.suggested_fix:
                    lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
