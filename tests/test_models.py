"""
Tests for Finance Assistant

Test strategy:
1. Unit tests for individual components (models, validators, matchers)
2. Integration tests for flows (with in-memory storage and a mocked model)
3. No real API calls in tests (use mocks)
"""

import json
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from src.models.assistant import (
    AssistantReply,
    DeleteFilter,
    IdentifyBy,
    Intent,
    OperationAction,
    TransactionOperation,
    ValidationIssue,
    ValidationResult,
    parse_type,
    to_decimal,
)
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from src.models.planning import PlanInterview, PlanKind, SavingsGoal
from src.models.transaction import (
    DEFAULT_CATEGORIES,
    FALLBACK_CATEGORY,
    Transaction,
    TransactionSuggestion,
    TransactionType,
)


class TestTransactionModels:
    """Tests for record models."""

    def test_transaction_creation(self):
        """Test Transaction model creation with defaults."""
        tx = Transaction(
            type=TransactionType.EXPENSE,
            description="Coffee",
            amount=Decimal("60"),
            date=date(2024, 6, 15),
        )
        assert tx.category == FALLBACK_CATEGORY
        assert tx.id
        assert tx.is_expense
        assert not tx.is_income

    def test_date_fields_parse_iso_strings(self):
        """Test that the date fields are typed as dates, not left as strings."""
        tx = Transaction.model_validate({
            "type": "expense",
            "description": "Coffee",
            "amount": "60",
            "date": "2024-06-15",
        })
        suggestion = TransactionSuggestion(date="2024-06-14")
        assert tx.date == date(2024, 6, 15)
        assert suggestion.date == date(2024, 6, 14)

        with pytest.raises(ValueError):
            Transaction(
                type=TransactionType.EXPENSE,
                description="Coffee",
                amount=Decimal("60"),
                date="last tuesday",
            )

    def test_transaction_strips_whitespace(self):
        """Test that whitespace is stripped from description."""
        tx = Transaction(
            type=TransactionType.INCOME,
            description="  Salary  ",
            amount=Decimal("100"),
            date=date(2024, 6, 1),
        )
        assert tx.description == "Salary"

    def test_transaction_rejects_negative_amount(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValueError):
            Transaction(
                type=TransactionType.EXPENSE,
                description="Test",
                amount=Decimal("-1"),
                date=date(2024, 6, 1),
            )

    def test_transaction_rejects_empty_description(self):
        """Test that an empty description is rejected."""
        with pytest.raises(ValueError):
            Transaction(
                type=TransactionType.EXPENSE,
                description="   ",
                amount=Decimal("1"),
                date=date(2024, 6, 1),
            )

    def test_default_categories(self):
        """Test the offered category list."""
        assert "Food" in DEFAULT_CATEGORIES
        assert DEFAULT_CATEGORIES[-1] == "Other"
        assert len(DEFAULT_CATEGORIES) == 12


class TestAssistantModels:
    """Tests for the language-model facing models."""

    def test_missing_amount_only_for_add(self):
        """Adds without an amount need one; updates don't."""
        assert TransactionOperation(action=OperationAction.ADD, description="x").is_missing_amount
        assert TransactionOperation(action=OperationAction.ADD, amount=0).is_missing_amount
        assert not TransactionOperation(action=OperationAction.ADD, amount=5).is_missing_amount
        assert not TransactionOperation(action=OperationAction.UPDATE).is_missing_amount

    def test_changed_fields_order(self):
        """Update fields come out in a stable order, None skipped."""
        op = TransactionOperation(
            action=OperationAction.UPDATE,
            category="Electronics",
            amount=450,
        )
        assert list(op.changed_fields().items()) == [("amount", 450), ("category", "Electronics")]

    def test_empty_identify_by_and_filter(self):
        """Empty selectors are detected (they match everything)."""
        assert IdentifyBy().is_empty()
        assert not IdentifyBy(description="coffee").is_empty()
        assert DeleteFilter().is_empty()
        assert not DeleteFilter(category="Food").is_empty()

    def test_reply_has_operations_requires_ops_intent(self):
        """Operations only count for transaction_ops replies."""
        op = TransactionOperation(action=OperationAction.DELETE, transaction_ids=["a"])
        assert AssistantReply(intent=Intent.TRANSACTION_OPS, operations=[op]).has_operations
        assert not AssistantReply(intent=Intent.GENERAL_CHAT, operations=[op]).has_operations
        assert not AssistantReply(intent=Intent.TRANSACTION_OPS).has_operations

    def test_to_decimal(self):
        """Model floats become 2-place Decimals."""
        assert to_decimal(None) is None
        assert to_decimal(12.5) == Decimal("12.50")
        assert to_decimal(0.1) == Decimal("0.10")

    def test_parse_type(self):
        """Type parsing is lenient about case and whitespace."""
        assert parse_type(" Income ") == TransactionType.INCOME
        assert parse_type("expense") == TransactionType.EXPENSE
        assert parse_type("transfer") is None
        assert parse_type(None) is None


class TestPlanningModels:
    """Tests for the interview model."""

    def test_interview_progress(self):
        """Questions are answered in order until complete."""
        interview = PlanInterview(kind=PlanKind.BUDGET, questions=["Q1", "Q2"])
        assert interview.current_question == "Q1"
        interview.answers.append("A1")
        assert interview.current_index == 1
        assert interview.current_question == "Q2"
        interview.answers.append("A2")
        assert interview.is_complete
        assert interview.current_question is None
        assert not interview.has_plan

    def test_interview_without_questions_is_not_complete(self):
        """An interview with no questions never completes."""
        interview = PlanInterview(kind=PlanKind.SAVINGS)
        assert not interview.is_complete
        assert interview.current_question is None

    def test_savings_goal_defaults(self):
        """New goals start with nothing saved."""
        goal = SavingsGoal(goal_title="Laptop", target_amount=Decimal("80000"))
        assert goal.saved_amount == Decimal("0")
        assert goal.contributions == []


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            description="Test event",
        )
        assert event.event_id is not None
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        correlation_id = uuid4()
        event = AuditEventBuilder.message_received("spent 500 on food", correlation_id)

        log_dict = event.to_log_dict()

        assert log_dict["event_type"] == "message_received"
        assert log_dict["correlation_id"] == str(correlation_id)
        assert log_dict["is_user_action"] is True

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEventBuilder.plan_saved("budget", 4, None)

        row = event.to_sheets_row()

        assert len(row) == 11
        assert row[2] == "plan_saved"
        assert json.loads(row[8]) == {"kind": "budget", "item_count": 4}
        assert row[10] == "True"

    def test_transaction_changed_maps_action(self):
        """Each action gets its own event type."""
        batch_id = uuid4()
        added = AuditEventBuilder.transaction_changed("add", "tx1", "Added", batch_id, None)
        deleted = AuditEventBuilder.transaction_changed("delete", "tx1", "Deleted", batch_id, None)

        assert added.event_type == AuditEventType.TRANSACTION_ADDED
        assert deleted.event_type == AuditEventType.TRANSACTION_DELETED
        assert added.entity_id == "tx1"
        assert added.details["batch_id"] == str(batch_id)

    def test_long_messages_are_truncated(self):
        """Descriptions stay within the model limit."""
        event = AuditEventBuilder.message_received("x" * 1000, None)
        assert len(event.description) <= 500
        assert event.details["length"] == 1000


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test ValidationResult with errors."""
        result = ValidationResult(
            schema_valid=False,
            semantic_valid=False,
            is_valid=False,
            issues=[
                ValidationIssue(
                    operation_index=0,
                    field="description",
                    issue_type="missing",
                    message="Description is required",
                    severity="error",
                ),
                ValidationIssue(
                    operation_index=0,
                    field="amount",
                    issue_type="suspicious_value",
                    message="Amount seems high",
                    severity="warning",
                ),
            ],
        )
        assert not result.is_valid
        assert [issue.field for issue in result.errors] == ["description"]

    def test_issue_severity_is_restricted(self):
        """Unknown severities are rejected."""
        with pytest.raises(ValueError):
            ValidationIssue(
                operation_index=0,
                field="amount",
                issue_type="x",
                message="x",
                severity="fatal",
            )
