"""
Transaction recorder: turns a cart into signed customer_transactions rows.

Each line is its own unit of work: product lookup, stock check, stock change
and ledger insert commit together, so stock and ledger never drift apart.
Across lines the cart is best-effort. Every line is validated before the
first write; a line that still fails while writing (stock taken by another
writer, database conflict) leaves earlier lines committed, is logged as a
partial failure and re-raised with the ids already applied (a database
error in that position comes back as DatabaseConflict so the ids travel
with it).
"""
from __future__ import annotations

import logging
import sqlite3
from collections import defaultdict
from datetime import datetime
from typing import Callable, Optional

from ...database.repositories.customers_repo import Customer
from ...database.repositories.products_repo import Product, ProductsRepo
from ...database.repositories.transactions_repo import CustomerTransaction, TransactionsRepo
from ...database.tx import immediate_tx
from ...enums import TransactionKind
from ...errors import DatabaseConflict, DomainError, InsufficientStock, InvalidLineItem
from ...utils.helpers import now_str
from ..inventory.ledger import InventoryLedger
from ..payments.calculations import line_total
from .requests import LineItemRequest


def item_notes(item: LineItemRequest) -> str | None:
    """Free-text item notes with colour / size appended."""
    extra = []
    if item.color:
        extra.append(f"Color: {item.color}")
    if item.size:
        extra.append(f"Size: {item.size}")
    parts = [p for p in ((item.notes or "").strip(), " - ".join(extra)) if p]
    return " | ".join(parts) or None


def kind_for(quantity: int, requested: Optional[TransactionKind] = None) -> TransactionKind:
    if requested is not None:
        return TransactionKind(requested)
    return TransactionKind.SALE if quantity > 0 else TransactionKind.RETURN


class TransactionRecorder:
    def __init__(
        self,
        conn: sqlite3.Connection,
        clock: Callable[[], datetime] = datetime.now,
        logger: Optional[logging.Logger] = None,
    ):
        self.conn = conn
        self.clock = clock
        self.products = ProductsRepo(conn)
        self.transactions = TransactionsRepo(conn)
        self.ledger = InventoryLedger(conn)
        self._log = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------
    def _validate(self, items: list[LineItemRequest]) -> list[tuple[LineItemRequest, Product]]:
        if not items:
            raise InvalidLineItem("The cart is empty.")

        resolved: list[tuple[LineItemRequest, Product]] = []
        wanted: dict[int, int] = defaultdict(int)
        for item in items:
            if not item.quantity:
                raise InvalidLineItem("Quantity cannot be zero.")
            product = self.products.resolve(item.product_id, item.product_name)
            price = product.price if item.price is None else float(item.price)
            if price < 0:
                raise InvalidLineItem(f"Price for '{product.name}' cannot be negative.")
            if item.quantity > 0 and (item.discount < 0 or item.discount > price):
                raise InvalidLineItem(f"Discount for '{product.name}' must be between 0 and the unit price.")
            if item.quantity > 0:
                wanted[product.product_id] += int(item.quantity)
            resolved.append((item, product))

        # same product on several lines: check the combined quantity up front
        for item, product in resolved:
            need = wanted.get(product.product_id, 0)
            if need and product.quantity < need:
                raise InsufficientStock(
                    f"Insufficient stock for '{product.name}': requested {need}, available {product.quantity}.",
                    product_id=product.product_id,
                    requested=need,
                    available=product.quantity,
                )
        return resolved

    def _build(self, customer: Customer, product: Product, item: LineItemRequest, when: str) -> CustomerTransaction:
        price = product.price if item.price is None else float(item.price)
        discount, total = line_total(price, item.discount, int(item.quantity))
        return CustomerTransaction(
            transaction_id=None,
            customer_id=customer.customer_id,
            product_id=product.product_id,
            kind=kind_for(item.quantity, item.kind),
            quantity=int(item.quantity),
            price=price,
            discount=discount,
            total_price=total,
            shipping_cost=0.0,
            amount_paid=0.0,
            unit_cost=product.carton_price,
            invoice_number=None,
            color=item.color or product.color,
            size=item.size or product.size,
            notes=item_notes(item),
            date=when,
        )

    def record_line(self, customer: Customer, product: Product, item: LineItemRequest) -> CustomerTransaction:
        """One line: stock check, stock change and ledger insert as one unit of work."""
        with immediate_tx(self.conn):
            tx = self._build(customer, product, item, now_str(self.clock()))
            self.ledger.apply(product, tx.quantity)
            self.transactions.insert(tx)
        return tx

    def process_transaction_items(self, items: list[LineItemRequest], customer: Customer) -> list[CustomerTransaction]:
        resolved = self._validate(items)
        recorded: list[CustomerTransaction] = []
        for item, product in resolved:
            try:
                recorded.append(self.record_line(customer, product, item))
            except (DomainError, sqlite3.Error) as e:
                if recorded:
                    self._log.error(
                        "partial cart for customer %s: %d of %d lines applied before failure on product %s",
                        customer.customer_id, len(recorded), len(resolved), product.product_id,
                    )
                    applied = [t.transaction_id for t in recorded]
                    if isinstance(e, DomainError):
                        e.details["applied_transaction_ids"] = applied
                        raise
                    raise DatabaseConflict(
                        f"Cart stopped on product {product.product_id}; {len(recorded)} line(s) already saved.",
                        applied_transaction_ids=applied,
                    ) from e
                raise
            self._log.info(
                "recorded %s x%s for customer %s (stock now %s)",
                product.name, item.quantity, customer.customer_id,
                self.products.quantity_of(product.product_id),
            )
        return recorded
