"""
Carton price (cost basis) maintenance.

Each ledger row keeps the carton price that applied when it was written
(`unit_cost`). Changing the price is forward-only by default; a retroactive
change rewrites that snapshot on every row of the product and rebuilds each
day the product moved on.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Callable, Dict, Optional

from ...database.repositories.products_repo import ProductsRepo
from ...database.repositories.transactions_repo import TransactionsRepo
from ...database.tx import immediate_tx
from ...errors import DomainError, InventoryRecalculationFailed
from ...utils.helpers import now_str
from ..activity.activity_log import log_activity
from ..daily_inventory.aggregator import DailyInventoryService


class ProductCostService:
    def __init__(
        self,
        conn: sqlite3.Connection,
        daily: Optional[DailyInventoryService] = None,
        clock: Callable[[], datetime] = datetime.now,
        logger: Optional[logging.Logger] = None,
    ):
        self.conn = conn
        self.clock = clock
        self.products = ProductsRepo(conn)
        self.transactions = TransactionsRepo(conn)
        self.daily = daily or DailyInventoryService(conn, clock=clock)
        self._log = logger or logging.getLogger(__name__)

    def update_carton_price(
        self,
        product_id: int,
        carton_price: Optional[float],
        retroactive: bool = False,
        user_id: Optional[str] = None,
    ) -> Dict[str, bool]:
        """
        Returns {day: recalculated_ok} for the days rebuilt (empty unless
        retroactive).
        """
        if carton_price is not None and carton_price < 0:
            raise DomainError("Carton price cannot be negative.")
        product = self.products.resolve(product_id)

        with immediate_tx(self.conn):
            self.products.set_carton_price(product.product_id, carton_price)
            rewritten = (
                self.transactions.set_unit_cost_for_product(product.product_id, carton_price)
                if retroactive else 0
            )

        outcome: Dict[str, bool] = {}
        if retroactive:
            for day in self.transactions.dates_for_product(product.product_id):
                try:
                    self.daily.recalculate(day)
                    outcome[day] = True
                except InventoryRecalculationFailed as e:
                    self.daily.mark_pending(day, "carton_price", str(product.product_id), e.message)
                    outcome[day] = False

        self._log.info(
            "carton price of %s: %s -> %s (retroactive=%s, %d rows rewritten)",
            product.name, product.carton_price, carton_price, retroactive, rewritten,
        )
        log_activity(
            self.conn, "Update", "Product", product.name,
            f"Carton price {product.carton_price} -> {carton_price}"
            + (f"; {rewritten} transaction(s) re-costed" if retroactive else ""),
            user_id, entity_id=product.product_id, created_at=now_str(self.clock()),
        )
        return outcome
