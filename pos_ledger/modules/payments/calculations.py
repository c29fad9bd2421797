"""
payments/calculations.py

Pure helpers for line totals, invoice amounts and payment proration.

Do not import repos or open DB connections here.
Only compute numbers; formatting belongs to callers.
"""
from __future__ import annotations

from typing import Sequence, Tuple

from ...constants import MONEY_PLACES
from ...enums import InvoiceStatus, InvoiceType

__all__ = [
    "clamp_non_negative",
    "line_total",
    "invoice_amounts",
    "invoice_status",
    "invoice_type_for",
    "prorate_payment",
    "exchange_price_difference",
]


# -----------------------------
# Core utilities
# -----------------------------

def clamp_non_negative(x: float) -> float:
    """Return x if x > 0, else 0.0."""
    return x if x > 0.0 else 0.0


def _r(x: float) -> float:
    x = round(x, MONEY_PLACES)
    return 0.0 if x == 0 else x


# -----------------------------
# Line items
# -----------------------------

def line_total(price: float, discount: float, quantity: int) -> Tuple[float, float]:
    """
    Returns (effective_discount, total_price).

    total_price = (price - discount) * quantity, signed like quantity.
    The discount only applies to sales; a negative quantity zeroes it so a
    return never refunds the discount as a loss.
    """
    effective_discount = float(discount or 0.0) if quantity > 0 else 0.0
    return effective_discount, _r((float(price) - effective_discount) * quantity)


def exchange_price_difference(old_price: float, new_price: float, quantity: int) -> float:
    """Positive when the customer owes more, negative when they are owed."""
    return _r((float(new_price) - float(old_price)) * quantity)


# -----------------------------
# Invoice header
# -----------------------------

def invoice_amounts(subtotal: float, requested_paid: float) -> Tuple[float, float, float]:
    """
    Returns (total, amount_paid, remaining).

    - shipping never enters the total
    - a negative subtotal (pure return) pays itself: amount_paid = subtotal
    - a negative requested payment counts as nothing paid
    - remaining = max(total - paid, 0) for non-negative totals, else 0
    """
    total = _r(subtotal)
    paid = total if total < 0 else _r(clamp_non_negative(float(requested_paid or 0.0)))
    remaining = _r(clamp_non_negative(total - paid)) if total >= 0 else 0.0
    return total, paid, remaining


def invoice_status(total: float, paid: float) -> InvoiceStatus:
    """
    - 'paid'    when the invoice is a refund (total < 0) or paid >= total
    - 'sent'    when nothing was paid
    - 'partial' otherwise
    """
    if total < 0:
        return InvoiceStatus.PAID
    if paid <= 0:
        return InvoiceStatus.SENT
    if paid >= total:
        return InvoiceStatus.PAID
    return InvoiceStatus.PARTIALLY_PAID


def invoice_type_for(total: float, requested: InvoiceType = InvoiceType.SALE) -> InvoiceType:
    return InvoiceType.RETURN if total < 0 else InvoiceType(requested)


# -----------------------------
# Proration
# -----------------------------

def prorate_payment(totals: Sequence[float], amount: float) -> list[float]:
    """
    Split `amount` across lines proportionally to their share of sum(totals).

    Every share is rounded to 2 decimals except the last, which receives
    `amount - sum(previous shares)` so the allocations add up exactly.
    When sum(totals) <= 0 (refunds) each line is simply paid its own total.

    >>> prorate_payment([100, 50, 30], 54.00)
    [30.0, 15.0, 9.0]
    """
    if not totals:
        return []
    grand = sum(float(t) for t in totals)
    if grand <= 0:
        return [_r(float(t)) for t in totals]

    allocations: list[float] = []
    allocated = 0.0
    for t in totals[:-1]:
        share = _r(float(amount) * float(t) / grand)
        allocations.append(share)
        allocated += share
    allocations.append(_r(float(amount) - allocated))
    return allocations
