"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the user's record store because:
1. Non-technical users can view their data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (the operation executor compensates on failure)
- Limited query capabilities (we filter in Python)

Layout: one worksheet per collection. Nested fields (goal steps,
contributions) are JSON-serialized into a single column.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.config import GoogleSheetsSettings, get_settings
from src.models.audit import AuditEvent, AuditEventType, AuditSeverity
from src.models.planning import BudgetItem, Contribution, SavingsGoal
from src.models.transaction import Transaction, TransactionType, UserProfile
from src.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
    UserDataStorageInterface,
    apply_changes,
    newest_first,
)


logger = structlog.get_logger()


TRANSACTION_COLUMNS = [
    "id",
    "type",
    "description",
    "amount",
    "category",
    "date",
    "created_at",
]

BUDGET_COLUMNS = [
    "category",
    "budgeted_amount",
    "suggestion",
]

GOAL_COLUMNS = [
    "id",
    "goal_title",
    "target_amount",
    "monthly_contribution",
    "timeline",
    "description",
    "steps_json",
    "saved_amount",
    "contributions_json",
]

PROFILE_COLUMNS = ["key", "value"]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _safe_get(row: list, index: int, default: str = "") -> str:
    """Read a cell, tolerating short rows and blanks."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        """Get a worksheet, creating it with a header row if missing."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS
        )

    def get_budget_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.budget_sheet_name, BUDGET_COLUMNS, rows=200)

    def get_goals_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.goals_sheet_name, GOAL_COLUMNS, rows=200)

    def get_profile_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.profile_sheet_name, PROFILE_COLUMNS, rows=50)

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        # More rows for audit log
        return self.get_worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


def replace_rows(sheet: gspread.Worksheet, columns: list[str], rows: list[list]) -> None:
    """Overwrite a worksheet with a header and the given rows."""
    sheet.clear()
    sheet.update(range_name="A1", values=[columns] + rows)


class GoogleSheetsTransactionStorage(TransactionStorageInterface):
    """
    Google Sheets implementation of transaction storage.

    One transaction per row. Amounts are stored as plain decimal strings.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _transaction_to_row(self, tx: Transaction) -> list:
        return [
            tx.id,
            tx.type.value,
            tx.description,
            str(tx.amount),
            tx.category,
            tx.date.isoformat(),
            tx.created_at.isoformat(),
        ]

    def _row_to_transaction(self, row: list) -> Transaction:
        created_at = _safe_get(row, 6)
        return Transaction(
            id=_safe_get(row, 0),
            type=TransactionType(_safe_get(row, 1).lower()),
            description=_safe_get(row, 2),
            amount=Decimal(_safe_get(row, 3, "0")),
            category=_safe_get(row, 4, "Other"),
            date=date.fromisoformat(_safe_get(row, 5)),
            created_at=datetime.fromisoformat(created_at) if created_at else datetime.min,
        )

    def _find_row(self, all_rows: list[list], transaction_id: str) -> Optional[int]:
        """1-based sheet row index of a transaction (row 1 is the header)."""
        for idx, row in enumerate(all_rows[1:], start=2):
            if row and row[0] == transaction_id:
                return idx
        return None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(DuplicateError),
        reraise=True,
    )
    async def add_transaction(self, transaction: Transaction) -> Transaction:
        try:
            sheet = self._client.get_transactions_sheet()
            if self._find_row(sheet.get_all_values(), transaction.id) is not None:
                raise DuplicateError(f"Transaction already exists: {transaction.id}")
            sheet.append_row(
                self._transaction_to_row(transaction),
                value_input_option="RAW",
            )
            return transaction.model_copy(deep=True)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        try:
            sheet = self._client.get_transactions_sheet()
            for row in sheet.get_all_values()[1:]:
                if row and row[0] == transaction_id:
                    return self._row_to_transaction(row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}")

    async def update_transaction(
        self,
        transaction_id: str,
        changes: dict[str, Any],
    ) -> Transaction:
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()
            idx = self._find_row(all_rows, transaction_id)
            if idx is None:
                raise NotFoundError(f"Transaction not found: {transaction_id}")

            updated = apply_changes(self._row_to_transaction(all_rows[idx - 1]), changes)
            sheet.update(
                range_name=f"A{idx}",
                values=[self._transaction_to_row(updated)],
                value_input_option="RAW",
            )
            return updated
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update transaction: {e}")

    async def delete_transaction(self, transaction_id: str) -> bool:
        try:
            sheet = self._client.get_transactions_sheet()
            idx = self._find_row(sheet.get_all_values(), transaction_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete transaction: {e}")

    async def list_transactions(self) -> list[Transaction]:
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

        transactions = []
        for row in all_rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                transactions.append(self._row_to_transaction(row))
            except (ValueError, ArithmeticError, ValidationError) as e:
                logger.warning("skipped_malformed_row", sheet="transactions", row_id=row[0], error=str(e))

        return newest_first(transactions)


class GoogleSheetsUserDataStorage(UserDataStorageInterface):
    """
    Profile, budget plan and savings goals in their own worksheets.

    Budget and goals are small lists rewritten as a whole on save.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    async def get_profile(self) -> UserProfile:
        try:
            rows = self._client.get_profile_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to read profile: {e}")

        data = {row[0]: row[1] for row in rows if len(row) >= 2 and row[0] and row[1]}
        return UserProfile.model_validate(data)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_profile(self, profile: UserProfile) -> bool:
        rows = [
            [key, "" if value is None else str(value)]
            for key, value in profile.model_dump(mode="json").items()
        ]
        try:
            replace_rows(self._client.get_profile_sheet(), PROFILE_COLUMNS, rows)
            return True
        except Exception as e:
            raise StorageError(f"Failed to save profile: {e}")

    async def get_budget_plan(self) -> list[BudgetItem]:
        try:
            rows = self._client.get_budget_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to read budget plan: {e}")

        items = []
        for row in rows:
            if not row or not row[0]:
                continue
            try:
                items.append(BudgetItem(
                    category=row[0],
                    budgeted_amount=Decimal(_safe_get(row, 1, "0")),
                    suggestion=_safe_get(row, 2),
                ))
            except (ArithmeticError, ValidationError) as e:
                logger.warning("skipped_malformed_row", sheet="budget", category=row[0], error=str(e))
        return items

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_budget_plan(self, items: list[BudgetItem]) -> bool:
        rows = [
            [item.category, str(item.budgeted_amount), item.suggestion]
            for item in items
        ]
        try:
            replace_rows(self._client.get_budget_sheet(), BUDGET_COLUMNS, rows)
            return True
        except Exception as e:
            raise StorageError(f"Failed to save budget plan: {e}")

    def _goal_to_row(self, goal: SavingsGoal) -> list:
        return [
            goal.id,
            goal.goal_title,
            str(goal.target_amount),
            str(goal.monthly_contribution),
            goal.timeline,
            goal.description,
            json.dumps(goal.steps),
            str(goal.saved_amount),
            json.dumps([c.model_dump(mode="json") for c in goal.contributions]),
        ]

    def _row_to_goal(self, row: list) -> SavingsGoal:
        steps_json = _safe_get(row, 6)
        contributions_json = _safe_get(row, 8)
        return SavingsGoal(
            id=_safe_get(row, 0),
            goal_title=_safe_get(row, 1),
            target_amount=Decimal(_safe_get(row, 2, "0")),
            monthly_contribution=Decimal(_safe_get(row, 3, "0")),
            timeline=_safe_get(row, 4),
            description=_safe_get(row, 5),
            steps=json.loads(steps_json) if steps_json else [],
            saved_amount=Decimal(_safe_get(row, 7, "0")),
            contributions=[
                Contribution.model_validate(item)
                for item in (json.loads(contributions_json) if contributions_json else [])
            ],
        )

    async def get_savings_goals(self) -> list[SavingsGoal]:
        try:
            rows = self._client.get_goals_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to read savings goals: {e}")

        goals = []
        for row in rows:
            if not row or not row[0]:
                continue
            try:
                goals.append(self._row_to_goal(row))
            except (ValueError, ArithmeticError, ValidationError) as e:
                logger.warning("skipped_malformed_row", sheet="goals", goal_id=row[0], error=str(e))
        return goals

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_savings_goals(self, goals: list[SavingsGoal]) -> bool:
        try:
            replace_rows(
                self._client.get_goals_sheet(),
                GOAL_COLUMNS,
                [self._goal_to_row(goal) for goal in goals],
            )
            return True
        except Exception as e:
            raise StorageError(f"Failed to save savings goals: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_safe_get(row, 0)),
            timestamp=datetime.fromisoformat(_safe_get(row, 1)),
            event_type=AuditEventType(_safe_get(row, 2)),
            severity=AuditSeverity(_safe_get(row, 3)),
            entity_type=_safe_get(row, 4) or None,
            entity_id=_safe_get(row, 5) or None,
            correlation_id=UUID(_safe_get(row, 6)) if _safe_get(row, 6) else None,
            description=_safe_get(row, 7),
            details=json.loads(_safe_get(row, 8)) if _safe_get(row, 8) else {},
            error_message=_safe_get(row, 9) or None,
            is_user_action=_safe_get(row, 10).lower() == "true",
        )

    def _read_events(self) -> list[AuditEvent]:
        try:
            all_rows = self._client.get_audit_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, ValidationError) as e:
                logger.warning("skipped_malformed_row", sheet="audit", event_id=row[0], error=str(e))
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging should not break the main flow
            logger.warning("audit_write_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = self._read_events()
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
