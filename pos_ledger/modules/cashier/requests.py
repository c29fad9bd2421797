"""
Plain request payloads handed to the cashier, return and exchange services.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ...enums import InvoiceStatus, InvoiceType, OrderOrigin, ShippingType, TransactionKind


@dataclass
class LineItemRequest:
    quantity: int
    product_id: Optional[int] = None
    product_name: Optional[str] = None
    price: Optional[float] = None          # defaults to the product's selling price
    discount: float = 0.0
    color: Optional[str] = None
    size: Optional[str] = None
    notes: Optional[str] = None
    kind: Optional[TransactionKind] = None  # derived from the sign when omitted


@dataclass
class CheckoutRequest:
    items: list[LineItemRequest]
    customer_id: int = 0
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    customer_email: Optional[str] = None
    amount_paid: float = 0.0
    shipping_cost: float = 0.0
    shipping_type: ShippingType = ShippingType.NO_SHIPPING
    order_origin: Optional[OrderOrigin] = None
    invoice_type: InvoiceType = InvoiceType.SALE
    status: Optional[InvoiceStatus] = None
    invoice_number: Optional[str] = None
    order_number: Optional[str] = None
    original_invoice_number: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class ReturnItemRequest:
    product_id: int
    quantity: int
    reason: Optional[str] = None


@dataclass
class ReturnRequest:
    original_invoice_number: str
    items: list[ReturnItemRequest] = field(default_factory=list)
    reason: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None


@dataclass
class ExchangeItemRequest:
    old_product_id: int
    new_product_id: int
    quantity: int
    reason: Optional[str] = None


@dataclass
class ExchangeRequest:
    original_invoice_number: str
    items: list[ExchangeItemRequest] = field(default_factory=list)
    # what the customer pays now toward a positive difference; None = settled in full
    amount_paid: Optional[float] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
