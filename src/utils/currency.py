"""
Indian Rupee Formatting

Two styles are used throughout the app and in prompts:
- compact: ₹1.5L, ₹2.3CR, ₹4.5K (one decimal)
- full: Indian digit grouping (₹1,23,456), with 0 or 2 decimals
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

Number = Union[Decimal, float, int]

CRORE = Decimal("10000000")
LAKH = Decimal("100000")
THOUSAND = Decimal("1000")


def _to_decimal(amount: Optional[Number]) -> Optional[Decimal]:
    if amount is None:
        return None
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        return None
    return value if value.is_finite() else None


def group_indian(digits: str) -> str:
    """Group an integer digit string as 1,23,45,678."""
    if len(digits) <= 3:
        return digits
    last3 = digits[-3:]
    rest = digits[:-3]
    parts = []
    while len(rest) > 2:
        parts.append(rest[-2:])
        rest = rest[:-2]
    if rest:
        parts.append(rest)
    return ",".join(reversed(parts)) + "," + last3


def _format_grouped(value: Decimal, decimals: int) -> str:
    quantum = Decimal(1).scaleb(-decimals)
    rounded = abs(value).quantize(quantum, rounding=ROUND_HALF_UP)
    whole, _, fraction = f"{rounded:f}".partition(".")
    sign = "-" if value < 0 and rounded != 0 else ""
    text = group_indian(whole)
    if decimals > 0:
        text = f"{text}.{fraction}"
    return f"₹{sign}{text}"


def format_currency(amount: Optional[Number], compact: bool = False) -> str:
    """
    Format an amount in rupees.

    None (or anything non-numeric) renders as ₹0. Compact mode uses
    CR / L / K above a crore / lakh / thousand.
    """
    value = _to_decimal(amount)
    if value is None:
        return "₹0"

    magnitude = abs(value)
    sign = "-" if value < 0 else ""
    if compact:
        for unit, suffix in ((CRORE, "CR"), (LAKH, "L"), (THOUSAND, "K")):
            if magnitude >= unit:
                scaled = (magnitude / unit).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
                return f"₹{sign}{scaled}{suffix}"

    return _format_grouped(value, 0)


def format_currency_detailed(amount: Optional[Number]) -> str:
    """Indian grouping with two decimals (₹1,23,456.70)."""
    value = _to_decimal(amount)
    if value is None:
        return "₹0"
    return _format_grouped(value, 2)
