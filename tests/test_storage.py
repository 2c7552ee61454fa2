"""
Tests for the storage backends.

Google Sheets is exercised against an in-memory worksheet double;
no credentials or network needed.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from src.models.audit import AuditEventBuilder
from src.models.planning import BudgetItem, Contribution, SavingsGoal
from src.models.transaction import TransactionType, UserProfile
from src.services.storage import (
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsTransactionStorage,
    GoogleSheetsUserDataStorage,
    InMemoryTransactionStorage,
    InMemoryUserDataStorage,
    NotFoundError,
    StorageError,
)
from src.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    BUDGET_COLUMNS,
    GOAL_COLUMNS,
    PROFILE_COLUMNS,
    TRANSACTION_COLUMNS,
)
from src.services.storage.interface import apply_changes


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the storage classes."""

    def __init__(self, columns):
        self.rows = [list(columns)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append([str(v) for v in values])

    def update(self, range_name, values, value_input_option=None):
        start = int(range_name[1:]) - 1
        for offset, row in enumerate(values):
            index = start + offset
            while len(self.rows) <= index:
                self.rows.append([])
            self.rows[index] = [str(v) for v in row]

    def delete_rows(self, index):
        del self.rows[index - 1]

    def clear(self):
        self.rows = []


class FakeSheetsClient:
    def __init__(self):
        self.sheets = {
            "transactions": FakeWorksheet(TRANSACTION_COLUMNS),
            "budget": FakeWorksheet(BUDGET_COLUMNS),
            "goals": FakeWorksheet(GOAL_COLUMNS),
            "profile": FakeWorksheet(PROFILE_COLUMNS),
            "audit": FakeWorksheet(AUDIT_COLUMNS),
        }

    def get_transactions_sheet(self):
        return self.sheets["transactions"]

    def get_budget_sheet(self):
        return self.sheets["budget"]

    def get_goals_sheet(self):
        return self.sheets["goals"]

    def get_profile_sheet(self):
        return self.sheets["profile"]

    def get_audit_sheet(self):
        return self.sheets["audit"]


@pytest.fixture
def sheets_client() -> FakeSheetsClient:
    return FakeSheetsClient()


class TestInMemoryTransactionStorage:
    """Tests for the in-memory record store."""

    @pytest.mark.asyncio
    async def test_newest_first(self, sample_transactions):
        storage = InMemoryTransactionStorage(list(reversed(sample_transactions)))
        listed = await storage.list_transactions()
        assert [tx.id for tx in listed] == [tx.id for tx in sample_transactions]

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self, transaction_storage):
        tx = await transaction_storage.get_transaction("tx-lunch")
        tx.description = "Changed outside"
        assert (await transaction_storage.get_transaction("tx-lunch")).description == "Lunch at cafe"

    @pytest.mark.asyncio
    async def test_duplicate_id(self, transaction_storage, sample_transactions):
        with pytest.raises(DuplicateError):
            await transaction_storage.add_transaction(sample_transactions[0])

    @pytest.mark.asyncio
    async def test_update_missing(self, empty_storage):
        with pytest.raises(NotFoundError):
            await empty_storage.update_transaction("nope", {"amount": Decimal("1")})

    @pytest.mark.asyncio
    async def test_delete_reports_whether_removed(self, transaction_storage):
        assert await transaction_storage.delete_transaction("tx-uber")
        assert not await transaction_storage.delete_transaction("tx-uber")


class TestApplyChanges:
    """Shared update validation."""

    def test_rejects_unknown_fields(self, sample_transactions):
        with pytest.raises(StorageError):
            apply_changes(sample_transactions[0], {"colour": "red"})

    def test_rejects_id_change(self, sample_transactions):
        with pytest.raises(StorageError):
            apply_changes(sample_transactions[0], {"id": "other"})

    def test_validates_values(self, sample_transactions):
        with pytest.raises(ValueError):
            apply_changes(sample_transactions[0], {"amount": Decimal("-3")})


class TestInMemoryUserDataStorage:
    """Tests for profile, budget and goals in memory."""

    @pytest.mark.asyncio
    async def test_default_profile(self):
        assert (await InMemoryUserDataStorage().get_profile()).name == "User"

    @pytest.mark.asyncio
    async def test_budget_round_trip(self):
        storage = InMemoryUserDataStorage()
        await storage.save_budget_plan([BudgetItem(category="Food", budgeted_amount=Decimal("8000"))])
        assert (await storage.get_budget_plan())[0].category == "Food"


class TestGoogleSheetsTransactionStorage:
    """Tests for the Sheets record store."""

    @pytest.mark.asyncio
    async def test_add_and_list(self, sheets_client, sample_transactions):
        storage = GoogleSheetsTransactionStorage(sheets_client)
        for tx in reversed(sample_transactions):
            await storage.add_transaction(tx)

        listed = await storage.list_transactions()

        assert [tx.id for tx in listed] == [tx.id for tx in sample_transactions]
        salary = listed[2]
        assert salary.type == TransactionType.INCOME
        assert salary.amount == Decimal("50000")
        assert salary.date == date(2024, 6, 1)

    @pytest.mark.asyncio
    async def test_duplicate_id(self, sheets_client, sample_transactions):
        storage = GoogleSheetsTransactionStorage(sheets_client)
        await storage.add_transaction(sample_transactions[0])
        with pytest.raises(DuplicateError):
            await storage.add_transaction(sample_transactions[0])

    @pytest.mark.asyncio
    async def test_update_rewrites_row(self, sheets_client, sample_transactions):
        storage = GoogleSheetsTransactionStorage(sheets_client)
        for tx in sample_transactions[:2]:
            await storage.add_transaction(tx)

        updated = await storage.update_transaction("tx-uber", {"amount": Decimal("200.00")})

        assert updated.amount == Decimal("200.00")
        assert sheets_client.sheets["transactions"].rows[2][3] == "200.00"
        assert (await storage.get_transaction("tx-uber")).category == "Travel"

    @pytest.mark.asyncio
    async def test_update_missing(self, sheets_client):
        storage = GoogleSheetsTransactionStorage(sheets_client)
        with pytest.raises(NotFoundError):
            await storage.update_transaction("nope", {"amount": Decimal("1")})

    @pytest.mark.asyncio
    async def test_delete(self, sheets_client, sample_transactions):
        storage = GoogleSheetsTransactionStorage(sheets_client)
        await storage.add_transaction(sample_transactions[0])

        assert await storage.delete_transaction("tx-lunch")
        assert not await storage.delete_transaction("tx-lunch")
        assert await storage.list_transactions() == []

    @pytest.mark.asyncio
    async def test_malformed_rows_skipped(self, sheets_client, sample_transactions):
        storage = GoogleSheetsTransactionStorage(sheets_client)
        await storage.add_transaction(sample_transactions[0])
        sheet = sheets_client.sheets["transactions"]
        sheet.rows.append(["bad", "expense", "Broken", "lots", "Food", "2024-06-01", ""])
        sheet.rows.append([])

        listed = await storage.list_transactions()

        assert [tx.id for tx in listed] == ["tx-lunch"]

    @pytest.mark.asyncio
    async def test_sheet_failure_is_storage_error(self):
        class BrokenClient:
            def get_transactions_sheet(self):
                raise RuntimeError("quota exceeded")

        storage = GoogleSheetsTransactionStorage(BrokenClient())
        with pytest.raises(StorageError):
            await storage.list_transactions()


class TestGoogleSheetsUserDataStorage:
    """Tests for profile, budget and goals worksheets."""

    @pytest.mark.asyncio
    async def test_profile_round_trip(self, sheets_client):
        storage = GoogleSheetsUserDataStorage(sheets_client)
        await storage.save_profile(UserProfile(name="Asha", expected_salary=Decimal("50000")))

        profile = await storage.get_profile()

        assert profile.name == "Asha"
        assert profile.expected_salary == Decimal("50000")
        assert profile.email is None

    @pytest.mark.asyncio
    async def test_empty_profile_sheet(self, sheets_client):
        profile = await GoogleSheetsUserDataStorage(sheets_client).get_profile()
        assert profile.name == "User"

    @pytest.mark.asyncio
    async def test_budget_round_trip(self, sheets_client):
        storage = GoogleSheetsUserDataStorage(sheets_client)
        await storage.save_budget_plan([
            BudgetItem(category="Food", budgeted_amount=Decimal("8000"), suggestion="Cook more"),
            BudgetItem(category="Travel", budgeted_amount=Decimal("3000")),
        ])

        items = await storage.get_budget_plan()

        assert [(i.category, i.budgeted_amount) for i in items] == [
            ("Food", Decimal("8000")),
            ("Travel", Decimal("3000")),
        ]
        assert sheets_client.sheets["budget"].rows[0] == BUDGET_COLUMNS

    @pytest.mark.asyncio
    async def test_goals_keep_contributions(self, sheets_client):
        storage = GoogleSheetsUserDataStorage(sheets_client)
        goal = SavingsGoal(
            goal_title="Laptop",
            target_amount=Decimal("80000"),
            monthly_contribution=Decimal("5000"),
            steps=["Compare prices"],
            saved_amount=Decimal("5000"),
            contributions=[Contribution(amount=Decimal("5000"))],
        )
        await storage.save_savings_goals([goal])

        [loaded] = await storage.get_savings_goals()

        assert loaded.id == goal.id
        assert loaded.steps == ["Compare prices"]
        assert loaded.saved_amount == Decimal("5000")
        assert loaded.contributions[0].amount == Decimal("5000")


class TestGoogleSheetsAuditStorage:
    """Tests for the append-only audit sheet."""

    @pytest.mark.asyncio
    async def test_append_and_query(self, sheets_client):
        storage = GoogleSheetsAuditStorage(sheets_client)
        correlation_id = uuid4()
        await storage.append_event(AuditEventBuilder.message_received("hi", correlation_id))
        await storage.append_event(AuditEventBuilder.plan_saved("budget", 2, None))

        mine = await storage.get_events_by_correlation_id(correlation_id)
        recent = await storage.get_recent_events(limit=1)

        assert [e.event_type.value for e in mine] == ["message_received"]
        assert mine[0].is_user_action
        assert len(recent) == 1

    @pytest.mark.asyncio
    async def test_append_failure_returns_false(self):
        class BrokenClient:
            def get_audit_sheet(self):
                raise RuntimeError("sheet gone")

        storage = GoogleSheetsAuditStorage(BrokenClient())
        assert await storage.append_event(AuditEventBuilder.plan_saved("budget", 1, None)) is False
