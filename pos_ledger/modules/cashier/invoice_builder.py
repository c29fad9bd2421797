"""
Invoice builder: freezes persisted ledger rows into an invoice snapshot.

No stock is touched here. The only writes besides the invoice itself are the
prorated amount_paid and the invoice number on the ledger rows it covers.

Numbers come from the `sequences` table: invoice and order counters are
bumped inside the same unit of work as the invoice insert and formatted
zero-padded to four digits. Numbers supplied by the caller are used as-is.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Callable, Iterable, Optional

from ...constants import NUMBER_WIDTH, SEQ_INVOICE, SEQ_ORDER
from ...database.repositories.customers_repo import Customer
from ...database.repositories.invoices_repo import InvoiceHeader, InvoiceItem, InvoicesRepo
from ...database.repositories.products_repo import ProductsRepo
from ...database.repositories.sequences_repo import SequencesRepo
from ...database.repositories.transactions_repo import CustomerTransaction, TransactionsRepo
from ...database.tx import immediate_tx
from ...enums import InvoiceStatus, InvoiceType, OrderOrigin, ShippingType
from ...utils.helpers import now_str, round_money
from ..payments.calculations import (
    clamp_non_negative,
    invoice_amounts,
    invoice_status,
    invoice_type_for,
    prorate_payment,
)


def build_invoice_notes(
    invoice_type: InvoiceType,
    original_invoice_number: Optional[str],
    request_notes: Optional[str],
    item_notes: Iterable[Optional[str]] = (),
) -> Optional[str]:
    parts: list[str] = []
    if invoice_type == InvoiceType.RETURN:
        parts.append("Return")
    elif invoice_type == InvoiceType.EXCHANGE:
        parts.append("Exchange")
    if original_invoice_number:
        parts.append(f"Original invoice: {original_invoice_number}")
    if request_notes and request_notes.strip():
        parts.append(request_notes.strip())
    lines = [n for n in item_notes if n]
    if lines:
        parts.append("; ".join(lines))
    return " | ".join(parts) or None


class InvoiceBuilder:
    def __init__(
        self,
        conn: sqlite3.Connection,
        clock: Callable[[], datetime] = datetime.now,
        logger: Optional[logging.Logger] = None,
    ):
        self.conn = conn
        self.clock = clock
        self.invoices = InvoicesRepo(conn)
        self.transactions = TransactionsRepo(conn)
        self.products = ProductsRepo(conn)
        self.sequences = SequencesRepo(conn)
        self._log = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Numbering
    # ------------------------------------------------------------------
    def generate_invoice_number(self) -> str:
        n = self.sequences.next_value(SEQ_INVOICE, seed=lambda: self.invoices.max_numeric("invoice_number"))
        return f"{n:0{NUMBER_WIDTH}d}"

    def generate_order_number(self, prefix: str = "") -> str:
        n = self.sequences.next_value(SEQ_ORDER, seed=lambda: self.invoices.max_numeric("order_number"))
        return f"{prefix}{n:0{NUMBER_WIDTH}d}"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _items(self, transactions: list[CustomerTransaction]) -> list[InvoiceItem]:
        items = []
        for t in transactions:
            product = self.products.get(t.product_id)
            items.append(
                InvoiceItem(
                    item_id=None,
                    invoice_id=None,
                    transaction_id=t.transaction_id,
                    product_id=t.product_id,
                    product_name=product.name if product else str(t.product_id),
                    kind=t.kind,
                    quantity=t.quantity,
                    unit_price=t.price,
                    discount=t.discount,
                    total_price=t.total_price,
                    color=t.color,
                    size=t.size,
                    notes=t.notes,
                )
            )
        return items

    def _persist(self, header: InvoiceHeader, transactions: list[CustomerTransaction]) -> InvoiceHeader:
        self.invoices.insert(header)
        self.transactions.set_invoice_number([t.transaction_id for t in transactions], header.invoice_number)
        for t in transactions:
            t.invoice_number = header.invoice_number
        return header

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------
    def create_invoice(
        self,
        customer: Customer,
        transactions: list[CustomerTransaction],
        *,
        amount_paid: float = 0.0,
        cashier_name: Optional[str] = None,
        invoice_type: InvoiceType = InvoiceType.SALE,
        status: Optional[InvoiceStatus] = None,
        invoice_number: Optional[str] = None,
        order_number: Optional[str] = None,
        order_prefix: str = "",
        shipping_cost: float = 0.0,
        shipping_type: ShippingType = ShippingType.NO_SHIPPING,
        order_origin: Optional[OrderOrigin] = None,
        original_invoice_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> InvoiceHeader:
        """
        Snapshot `transactions` into a new invoice.

        - subtotal = total = sum(total_price); shipping is display-only
        - a negative total is a self-paying Return invoice
        - the payment is prorated over the lines (last line takes the residual)
        """
        subtotal = round_money(sum(t.total_price for t in transactions))
        total, paid, remaining = invoice_amounts(subtotal, amount_paid)
        inv_type = invoice_type_for(total, invoice_type)
        inv_status = status if status is not None else invoice_status(total, paid)

        with immediate_tx(self.conn):
            allocations = prorate_payment([t.total_price for t in transactions], paid)
            for t, share in zip(transactions, allocations):
                t.amount_paid = share
                self.transactions.set_amount_paid(t.transaction_id, share)

            header = InvoiceHeader(
                invoice_id=None,
                invoice_number=invoice_number or self.generate_invoice_number(),
                order_number=order_number or self.generate_order_number(order_prefix),
                customer_id=customer.customer_id,
                invoice_date=now_str(self.clock()),
                invoice_type=inv_type,
                status=inv_status,
                subtotal=subtotal,
                total_amount=total,
                amount_paid=paid,
                remaining_amount=remaining,
                discount=round_money(sum(t.discount for t in transactions)),
                shipping_cost=float(shipping_cost) if subtotal >= 0 else 0.0,
                shipping_type=shipping_type,
                order_origin=order_origin,
                original_invoice_number=original_invoice_number,
                notes=build_invoice_notes(inv_type, original_invoice_number, notes, (t.notes for t in transactions)),
                created_by=cashier_name,
                items=self._items(transactions),
            )
            self._persist(header, transactions)

        self._log.info(
            "invoice %s for customer %s: total=%.2f paid=%.2f remaining=%.2f",
            header.invoice_number, customer.customer_id, total, paid, remaining,
        )
        return header

    def create_exchange_invoice(
        self,
        customer: Customer,
        transactions: list[CustomerTransaction],
        price_difference: float,
        amount_paid: float,
        *,
        original_invoice_number: str,
        invoice_number: Optional[str] = None,
        order_prefix: str = "",
        cashier_name: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> InvoiceHeader:
        """
        Exchange invoices carry the settlement, not the legs: total is the
        absolute price difference, remaining is what the customer still owes.
        """
        diff = round_money(price_difference)
        if diff <= 0:
            paid, remaining, status = abs(diff), 0.0, InvoiceStatus.PAID
        else:
            paid = round_money(min(max(amount_paid, 0.0), diff))
            remaining = round_money(clamp_non_negative(diff - paid))
            status = invoice_status(diff, paid)

        with immediate_tx(self.conn):
            header = InvoiceHeader(
                invoice_id=None,
                invoice_number=invoice_number or self.generate_invoice_number(),
                order_number=self.generate_order_number(order_prefix),
                customer_id=customer.customer_id,
                invoice_date=now_str(self.clock()),
                invoice_type=InvoiceType.EXCHANGE,
                status=status,
                subtotal=round_money(sum(t.total_price for t in transactions)),
                total_amount=abs(diff),
                amount_paid=paid,
                remaining_amount=remaining,
                discount=0.0,
                original_invoice_number=original_invoice_number,
                notes=build_invoice_notes(InvoiceType.EXCHANGE, original_invoice_number, notes,
                                          (t.notes for t in transactions)),
                created_by=cashier_name,
                items=self._items(transactions),
            )
            self._persist(header, transactions)
        return header
