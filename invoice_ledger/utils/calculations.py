"""
utils/calculations.py

Pure helpers for invoice totals and balance roll-ups. Mirrors the math the
repositories write in SQL so previews and tests agree with stored values.

Do not import repos or open DB connections here.
Only compute numbers; formatting belongs in the caller.
"""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Tuple

from ..constants import EPSILON

__all__ = [
    "clamp_non_negative",
    "round_money",
    "line_total",
    "invoice_totals",
    "remaining_due",
    "status_from_paid",
]


def clamp_non_negative(x: float) -> float:
    """Return x if x > 0, else 0.0."""
    return x if x > 0.0 else 0.0


def round_money(x: float, places: int = 2) -> float:
    """Round half away from zero (0.125 -> 0.13), unlike the builtin round()."""
    q = Decimal(1).scaleb(-places)
    return float(Decimal(str(x)).quantize(q, rounding=ROUND_HALF_UP))


def line_total(quantity: float, unit_price: float, line_discount: float = 0.0) -> float:
    """qty * unit_price - line_discount, clamped at >= 0."""
    return clamp_non_negative(float(quantity) * float(unit_price) - float(line_discount or 0.0))


def invoice_totals(
    line_totals: Iterable[float],
    invoice_discount: float,
    tax_rate: float,
) -> Tuple[float, float, float, float]:
    """
    Returns (subtotal, taxable, tax_amount, total).

      subtotal   = sum of line totals
      taxable    = max(0, subtotal - invoice_discount)
      tax_amount = taxable * tax_rate / 100, rounded to cents
      total      = max(0, taxable + tax_amount)
    """
    subtotal = float(sum(line_totals))
    taxable = clamp_non_negative(subtotal - float(invoice_discount or 0.0))
    tax_amount = round_money(taxable * float(tax_rate or 0.0) / 100.0)
    total = clamp_non_negative(taxable + tax_amount)
    return subtotal, taxable, tax_amount, total


def remaining_due(total: float, paid: float) -> float:
    """due = max(0, total - paid)."""
    return clamp_non_negative(float(total) - float(paid))


def status_from_paid(total: float, paid: float, current: str = "open") -> str:
    """
    'canceled' is sticky; otherwise 'paid' when paid covers total, else 'open'.
    """
    if current == "canceled":
        return "canceled"
    return "paid" if float(paid) + EPSILON >= float(total) else "open"
