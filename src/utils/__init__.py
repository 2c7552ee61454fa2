"""Shared helpers."""

from src.utils.currency import format_currency, format_currency_detailed

__all__ = ["format_currency", "format_currency_detailed"]
