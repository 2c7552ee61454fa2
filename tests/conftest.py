"""
Shared fixtures.

All tests run against in-memory storage and a mocked language model.
No network calls.
"""

import json
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from src.config import AppSettings, AssistantSettings
from src.models.transaction import Transaction, TransactionType, UserProfile
from src.services.llm import GeminiClient
from src.services.storage import (
    InMemoryAuditStorage,
    InMemoryTransactionStorage,
    InMemoryUserDataStorage,
)


TODAY = date(2024, 6, 15)


def make_transaction(
    id: str,
    description: str,
    amount: str,
    category: str,
    on: date,
    type: TransactionType = TransactionType.EXPENSE,
) -> Transaction:
    return Transaction(
        id=id,
        type=type,
        description=description,
        amount=Decimal(amount),
        category=category,
        date=on,
    )


@pytest.fixture
def sample_transactions() -> list[Transaction]:
    """Five records; newest first is lunch, uber, salary, groceries, headphones."""
    return [
        make_transaction("tx-lunch", "Lunch at cafe", "250", "Food", date(2024, 6, 14)),
        make_transaction("tx-uber", "Uber ride", "180", "Travel", date(2024, 6, 13)),
        make_transaction(
            "tx-salary", "June salary", "50000", "Salary", date(2024, 6, 1),
            type=TransactionType.INCOME,
        ),
        make_transaction("tx-groceries", "Groceries", "1200", "Food", date(2024, 5, 20)),
        make_transaction("tx-headphones", "Headphones", "2999", "Electronics", date(2024, 5, 10)),
    ]


@pytest.fixture
def assistant_settings() -> AssistantSettings:
    return AssistantSettings(reference_date=TODAY)


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings(max_transaction_amount=10000000.0, future_date_tolerance_days=7)


@pytest.fixture
def transaction_storage(sample_transactions) -> InMemoryTransactionStorage:
    return InMemoryTransactionStorage(sample_transactions)


@pytest.fixture
def empty_storage() -> InMemoryTransactionStorage:
    return InMemoryTransactionStorage()


@pytest.fixture
def user_storage() -> InMemoryUserDataStorage:
    return InMemoryUserDataStorage(
        profile=UserProfile(name="Asha", occupation="Engineer", expected_salary=Decimal("50000"))
    )


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def fake_client() -> AsyncMock:
    """A GeminiClient stand-in; set generate.return_value per test."""
    client = AsyncMock(spec=GeminiClient)
    client.generate.return_value = "{}"
    return client


def reply_json(**fields) -> str:
    """Serialize a model reply the way Gemini returns it."""
    payload = {
        "intent": "general_chat",
        "requires_confirmation": False,
        "operations": [],
        "response": "",
    }
    payload.update(fields)
    return json.dumps(payload)
