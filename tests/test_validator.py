"""Tests for the two-stage operation validator."""

import pytest

from src.models.assistant import (
    DeleteFilter,
    IdentifyBy,
    OperationAction,
    TransactionOperation,
)
from src.validation import OperationValidator

from tests.conftest import TODAY


@pytest.fixture
def validator(app_settings) -> OperationValidator:
    return OperationValidator(app_settings)


def add(**fields) -> TransactionOperation:
    defaults = {"type": "expense", "description": "Coffee", "amount": 60}
    defaults.update(fields)
    return TransactionOperation(action=OperationAction.ADD, **defaults)


class TestSchemaValidation:
    """Stage 1: errors block staging."""

    def test_valid_add(self, validator):
        result = validator.validate([add()], TODAY)
        assert result.is_valid
        assert result.issues == []

    def test_empty_batch(self, validator):
        result = validator.validate([], TODAY)
        assert not result.schema_valid
        assert result.errors[0].issue_type == "empty"

    def test_add_requires_type_and_description(self, validator):
        result = validator.validate([add(type=None, description=" ")], TODAY)
        assert not result.is_valid
        assert {issue.field for issue in result.errors} == {"type", "description"}

    def test_add_rejects_unknown_type(self, validator):
        result = validator.validate([add(type="transfer")], TODAY)
        assert result.errors[0].message == "Unknown transaction type 'transfer'"

    def test_negative_amount(self, validator):
        result = validator.validate([add(amount=-5)], TODAY)
        assert result.errors[0].field == "amount"

    def test_missing_amount_is_not_an_error(self, validator):
        """The flow asks the user for it instead."""
        result = validator.validate([add(amount=None)], TODAY)
        assert result.is_valid

    def test_non_iso_date(self, validator):
        result = validator.validate([add(date="15/06/2024")], TODAY)
        assert result.errors[0].issue_type == "invalid_format"
        assert result.errors[0].suggested_fix

    def test_update_without_changes(self, validator):
        op = TransactionOperation(
            action=OperationAction.UPDATE,
            identify_by=IdentifyBy(description="coffee"),
        )
        result = validator.validate([op], TODAY)
        assert result.errors[0].field == "update"

    def test_delete_without_selector(self, validator):
        result = validator.validate([TransactionOperation(action=OperationAction.DELETE)], TODAY)
        assert result.errors[0].field == "delete"

    def test_delete_filter_bad_date(self, validator):
        op = TransactionOperation(
            action=OperationAction.DELETE,
            filter=DeleteFilter(date_to="yesterday"),
        )
        result = validator.validate([op], TODAY)
        assert result.errors[0].field == "filter.date_to"

    def test_semantic_stage_skipped_on_errors(self, validator):
        result = validator.validate([add(type=None, amount=99999999)], TODAY)
        assert not result.semantic_valid
        assert result.warnings == []


class TestSemanticValidation:
    """Stage 2: warnings go along with the confirmation."""

    def test_huge_amount_warns(self, validator):
        result = validator.validate([add(amount=20000000)], TODAY)
        assert result.is_valid
        assert "unusually high" in result.warnings[0]

    def test_future_date_beyond_tolerance_warns(self, validator):
        assert validator.validate([add(date="2024-06-20")], TODAY).warnings == []
        result = validator.validate([add(date="2024-07-30")], TODAY)
        assert result.warnings == ["Date (2024-07-30) is in the future"]

    def test_delete_everything_warns(self, validator):
        op = TransactionOperation(action=OperationAction.DELETE, filter=DeleteFilter())
        result = validator.validate([op], TODAY)
        assert result.is_valid
        assert result.warnings == ["This will delete ALL of your transactions"]

    def test_inverted_amount_range_warns(self, validator):
        op = TransactionOperation(
            action=OperationAction.DELETE,
            filter=DeleteFilter(amount_min=500, amount_max=100),
        )
        assert len(validator.validate([op], TODAY).warnings) == 1


class TestUserFriendlySummary:
    """Tests for the chat rendering."""

    def test_all_passed(self, validator):
        result = validator.validate([add()], TODAY)
        assert validator.get_user_friendly_summary(result) == "✅ All checks passed."

    def test_errors_and_fixes(self, validator):
        result = validator.validate([add(date="tomorrow")], TODAY)
        summary = validator.get_user_friendly_summary(result)
        assert "❌ I couldn't prepare that change:" in summary
        assert "💡 Use a date like 2024-01-31" in summary

    def test_warnings(self, validator):
        result = validator.validate([add(amount=20000000)], TODAY)
        assert "⚠️ Please verify the following:" in validator.get_user_friendly_summary(result)
