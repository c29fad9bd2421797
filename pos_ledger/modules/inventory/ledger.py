"""
Inventory ledger: the only code that moves products.quantity.

Signed convention: a positive line quantity is a sale (stock goes down),
a negative one is a return (stock goes up). Every method runs inside the
caller's unit of work (database.tx.immediate_tx) so the stock change commits
or rolls back together with the ledger row that caused it.
"""
from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from ...database.repositories.products_repo import Product, ProductsRepo
from ...errors import InsufficientStock


class InventoryLedger:
    def __init__(self, conn: sqlite3.Connection, logger: Optional[logging.Logger] = None):
        self.conn = conn
        self.products = ProductsRepo(conn)
        self._log = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------
    def _take(self, product_id: int, qty: int, name: str | None = None) -> None:
        if not self.products.decrement_checked(product_id, qty):
            available = self.products.quantity_of(product_id)
            raise InsufficientStock(
                f"Insufficient stock for '{name or product_id}': requested {qty}, available {available}.",
                product_id=product_id,
                requested=qty,
                available=available,
            )

    def apply(self, product: Product, quantity: int) -> None:
        """Apply one signed line to stock."""
        if quantity > 0:
            self._take(product.product_id, quantity, product.name)
        elif quantity < 0:
            self.products.increment(product.product_id, abs(quantity))

    def apply_sale(self, product: Product, quantity: int) -> None:
        self.apply(product, abs(quantity))

    def apply_return(self, product: Product, quantity: int) -> None:
        # no upper bound here; the return tracker owns the sold-quantity cap
        self.apply(product, -abs(quantity))

    def apply_delta(self, product_id: int, old_quantity: int, new_quantity: int) -> int:
        """
        Edit of an existing line: apply new - old with the same sign rules.
        Stock is only re-validated when the edit takes more out.
        Returns the delta.
        """
        delta = int(new_quantity) - int(old_quantity)
        if delta > 0:
            self._take(product_id, delta)
        elif delta < 0:
            self.products.increment(product_id, -delta)
        return delta

    def reverse(self, product_id: int, quantity: int) -> None:
        """
        Undo a deleted line. A sale gives its stock back; a return takes the
        restored stock out again, clamped at zero.
        """
        if quantity > 0:
            self.products.increment(product_id, quantity)
        elif quantity < 0:
            before = self.products.quantity_of(product_id)
            if before < abs(quantity):
                self._log.warning(
                    "reversing return of %s on product %s with only %s on hand; clamping at 0",
                    abs(quantity), product_id, before,
                )
            self.products.decrement_clamped(product_id, abs(quantity))
