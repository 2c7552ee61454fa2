"""
Reference Resolution

Turns the assistant's loose references ("the coffee one", "all shopping",
"make it 600") into concrete transactions.

All functions are pure: they take the current list of transactions
(newest first, as the record store returns them) and never touch storage.

CRITICAL: An empty IdentifyBy or DeleteFilter matches EVERYTHING.
That is what "delete all transactions" looks like, and it is only safe
because every batch is confirmed by the user before it runs.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from src.models.assistant import (
    DeleteFilter,
    IdentifyBy,
    TransactionOperation,
    parse_type,
)
from src.models.transaction import Transaction, TransactionType


DEFAULT_AMOUNT_TOLERANCE = 0.01


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD")


def _type_matches(tx: Transaction, value: Optional[str]) -> bool:
    # An unrecognised type string matches nothing
    return parse_type(value) == tx.type


def matches_identify_by(
    tx: Transaction,
    criteria: IdentifyBy,
    tolerance: float = DEFAULT_AMOUNT_TOLERANCE,
) -> bool:
    """
    Every given criterion must hold.

    - description: case-insensitive substring
    - category: case-insensitive equality
    - amount: within tolerance
    - type: equality
    """
    if criteria.description:
        if criteria.description.strip().lower() not in tx.description.lower():
            return False
    if criteria.category:
        if tx.category.lower() != criteria.category.strip().lower():
            return False
    if criteria.amount is not None:
        if abs(tx.amount - Decimal(str(criteria.amount))) >= Decimal(str(tolerance)):
            return False
    if criteria.type:
        if not _type_matches(tx, criteria.type):
            return False
    return True


def find_matches(
    transactions: list[Transaction],
    criteria: IdentifyBy,
    tolerance: float = DEFAULT_AMOUNT_TOLERANCE,
) -> list[Transaction]:
    """Matching transactions, in the order given (newest first)."""
    return [tx for tx in transactions if matches_identify_by(tx, criteria, tolerance)]


def apply_delete_filter(
    transactions: list[Transaction],
    delete_filter: DeleteFilter,
) -> list[Transaction]:
    """
    Filter for batch deletes. Date and amount bounds are inclusive.

    Raises:
        ValueError: If a date bound is not an ISO date
    """
    date_from = _parse_date(delete_filter.date_from) if delete_filter.date_from else None
    date_to = _parse_date(delete_filter.date_to) if delete_filter.date_to else None
    amount_min = Decimal(str(delete_filter.amount_min)) if delete_filter.amount_min is not None else None
    amount_max = Decimal(str(delete_filter.amount_max)) if delete_filter.amount_max is not None else None

    selected = []
    for tx in transactions:
        if delete_filter.category and tx.category.lower() != delete_filter.category.strip().lower():
            continue
        if delete_filter.type and not _type_matches(tx, delete_filter.type):
            continue
        if date_from and tx.date < date_from:
            continue
        if date_to and tx.date > date_to:
            continue
        if amount_min is not None and tx.amount < amount_min:
            continue
        if amount_max is not None and tx.amount > amount_max:
            continue
        selected.append(tx)
    return selected


def resolve_update_target(
    operation: TransactionOperation,
    transactions: list[Transaction],
    last_touched_id: Optional[str] = None,
    tolerance: float = DEFAULT_AMOUNT_TOLERANCE,
) -> Optional[Transaction]:
    """
    Pick the record an update applies to.

    Order: explicit transaction_id, then the most recent identify_by match,
    then the last-touched record. An update that names no record at all
    ("make it 450") falls back to the newest stored record when nothing was
    touched yet or the touched record is gone. None if nothing fits.
    """
    by_id = {tx.id: tx for tx in transactions}

    if operation.transaction_id and operation.transaction_id in by_id:
        return by_id[operation.transaction_id]

    if operation.identify_by is not None:
        matches = find_matches(transactions, operation.identify_by, tolerance)
        if matches:
            return matches[0]

    if last_touched_id and last_touched_id in by_id:
        return by_id[last_touched_id]

    if operation.transaction_id is None and operation.identify_by is None and transactions:
        return transactions[0]

    return None


def resolve_delete_targets(
    operation: TransactionOperation,
    transactions: list[Transaction],
    tolerance: float = DEFAULT_AMOUNT_TOLERANCE,
) -> list[Transaction]:
    """
    Pick the records a delete applies to.

    The first selector present wins: transaction_ids (unknown ids are
    skipped), then identify_by, then filter.
    """
    if operation.transaction_ids is not None:
        wanted = set(operation.transaction_ids)
        return [tx for tx in transactions if tx.id in wanted]
    if operation.identify_by is not None:
        return find_matches(transactions, operation.identify_by, tolerance)
    if operation.filter is not None:
        return apply_delete_filter(transactions, operation.filter)
    return []


def search_transactions(
    transactions: list[Transaction],
    search: Optional[str] = None,
    type: Optional[TransactionType] = None,
    category: Optional[str] = None,
) -> list[Transaction]:
    """Transaction list filtering: free-text search on description or category."""
    needle = search.strip().lower() if search else ""
    results = []
    for tx in transactions:
        if needle and needle not in tx.description.lower() and needle not in tx.category.lower():
            continue
        if type is not None and tx.type != type:
            continue
        if category and tx.category != category:
            continue
        results.append(tx)
    return results
