"""
Canonical enumerations stored as INTEGER columns.

Values are persisted; never renumber an existing member.
"""
from __future__ import annotations

from enum import IntEnum


class TransactionKind(IntEnum):
    SALE = 1
    RETURN = 2
    EXCHANGE = 3
    PAYMENT = 4


class InvoiceType(IntEnum):
    SALE = 1
    EXCHANGE = 2
    RETURN = 3
    MAINTENANCE = 4
    ESTIMATE = 5


class InvoiceStatus(IntEnum):
    DRAFT = 1
    SENT = 2
    PAID = 3
    OVERDUE = 4
    CANCELLED = 5
    PARTIALLY_PAID = 6
    PENDING = 7
    UNDER_DELIVERY = 8
    NOT_DELIVERED = 9
    DELIVERED = 10


class ShippingType(IntEnum):
    BOSTA = 1
    CAIRO = 2
    NO_SHIPPING = 3


class OrderOrigin(IntEnum):
    WEBSITE = 1
    FACEBOOK = 2
    INSTAGRAM = 3
    WHATSAPP = 4
    STORE = 5
    PHONE = 6
    REFERRAL = 7
    OTHER = 8


class DayStatus(IntEnum):
    ACTIVE = 1
    CLOSED = 2


# ---------- Human labels ----------
LABELS = {
    TransactionKind.SALE: "Sale",
    TransactionKind.RETURN: "Return",
    TransactionKind.EXCHANGE: "Exchange",
    TransactionKind.PAYMENT: "Payment",
    DayStatus.ACTIVE: "Active",
    DayStatus.CLOSED: "Closed",
}


def label(member: IntEnum) -> str:
    """Human label; falls back to the member name title-cased."""
    return LABELS.get(member, member.name.replace("_", " ").title())
