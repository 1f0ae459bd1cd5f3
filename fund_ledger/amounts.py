"""Fixed-point helpers for raw ledger amounts.

Raw amounts are Python integers in the asset's smallest unit and may exceed 53
bits, so they are never routed through ``float``.
"""
from __future__ import annotations

from decimal import Decimal, getcontext

getcontext().prec = 40


def unit_scale(decimals: int) -> Decimal:
    return Decimal(10) ** decimals


def to_units(raw: int, decimals: int) -> Decimal:
    """Convert a smallest-unit integer into whole asset units."""

    return Decimal(raw) / unit_scale(decimals)


def format_units(raw: int, decimals: int) -> str:
    """Render a raw amount as a plain decimal string without trailing zeros."""

    sign = "-" if raw < 0 else ""
    whole, fractional = divmod(abs(raw), 10**decimals)
    if decimals == 0:
        return f"{sign}{whole}"
    digits = str(fractional).rjust(decimals, "0").rstrip("0")
    return f"{sign}{whole}.{digits}" if digits else f"{sign}{whole}"


def unit_price(quote_raw: int, base_raw: int, quote_decimals: int, base_decimals: int) -> Decimal:
    """Price of one base unit expressed in quote units."""

    if base_raw == 0:
        raise ZeroDivisionError("base amount is zero")
    ratio = Decimal(abs(quote_raw)) / Decimal(abs(base_raw))
    return ratio * unit_scale(base_decimals - quote_decimals)


__all__ = ["unit_scale", "to_units", "format_units", "unit_price"]
