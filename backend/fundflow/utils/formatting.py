"""Amount conversion and display helpers."""

from __future__ import annotations

from decimal import Decimal


def to_token_amount(value: int, decimals: int) -> Decimal:
    """Convert an integer base-unit value into token units."""
    return Decimal(int(value)) / (Decimal(10) ** decimals)


def trim_decimals(value: str, places: int = 5) -> str:
    # Truncates, does not round.
    whole, sep, fraction = value.partition(".")
    if not sep:
        return value
    return f"{whole}.{fraction[:places]}"


def format_amount(value: int, decimals: int, symbol: str) -> str:
    """Human readable amount such as ``1.23456 ETH``."""
    amount = to_token_amount(value, decimals)
    return f"{trim_decimals(format(amount.normalize(), 'f'))} {symbol}"


__all__ = ["to_token_amount", "trim_decimals", "format_amount"]
