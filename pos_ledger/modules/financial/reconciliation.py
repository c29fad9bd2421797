"""
Financial reconciliation for the return / exchange side channel.

Returns and exchanges write their tracking rows and mirror ledger rows
directly, outside the checkout flow, so this service folds those rows into
*today's* daily aggregate with the same per-row rules the aggregator uses,
and bumps the numeric return / exchange counters.

Failures never propagate: the return or exchange itself already committed.
A failure (or a Closed day) is logged, and the day is flagged
`pending_reconciliation` with a queue entry that `replay_pending()` clears.
Back-dated corrections go through `recalculate` / `recalculate_profits`.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Callable, Dict, Iterable, Optional

from ...database.repositories.daily_inventory_repo import DailyInventoryRepo
from ...database.repositories.transactions_repo import CustomerTransaction
from ...database.tx import immediate_tx
from ...errors import InventoryRecalculationFailed
from ...utils.validators import parse_date
from ..daily_inventory.aggregator import DailyInventoryService, DayLike


class FinancialService:
    def __init__(
        self,
        conn: sqlite3.Connection,
        daily: Optional[DailyInventoryService] = None,
        clock: Callable[[], datetime] = datetime.now,
        logger: Optional[logging.Logger] = None,
    ):
        self.conn = conn
        self.clock = clock
        self.daily = daily or DailyInventoryService(conn, clock=clock)
        self.repo = DailyInventoryRepo(conn)
        self._log = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------
    def _reconcile(
        self,
        kind: str,
        counter: str,
        transactions: Iterable[CustomerTransaction],
        reference: Optional[str],
    ) -> bool:
        today = self.clock().date()
        key = today.isoformat()
        try:
            inv = self.daily.get_or_create(today)
            if inv.is_closed:
                self._log.warning("day %s is closed; %s %s queued for reconciliation", key, kind, reference)
                self.daily.mark_pending(key, kind, reference, "day closed")
                return False

            with immediate_tx(self.conn):
                for tx in transactions:
                    if parse_date(tx.date) != today:
                        # back-dated rows belong to recalculate(), not to today's totals
                        self._log.warning(
                            "transaction %s dated %s skipped by today's reconciliation",
                            tx.transaction_id, tx.date,
                        )
                        continue
                    self.daily.apply_transaction(inv.daily_inventory_id, tx)
                self.repo.increment_counter(inv.daily_inventory_id, counter)
                self.daily.refresh_totals(inv.daily_inventory_id)
        except Exception as e:
            self._log.exception("reconciliation of %s %s failed", kind, reference)
            self.daily.mark_pending(key, kind, reference, str(e))
            return False
        return True

    def process_return(self, transactions: Iterable[CustomerTransaction], reference: Optional[str] = None) -> bool:
        return self._reconcile("return", "returns_count", transactions, reference)

    def process_exchange(
        self,
        transactions: Iterable[CustomerTransaction],
        reference: Optional[str] = None,
        price_difference: float = 0.0,
    ) -> bool:
        ok = self._reconcile("exchange", "exchanges_count", transactions, reference)
        if ok:
            self._log.info("exchange %s reconciled (difference %.2f)", reference, price_difference)
        return ok

    # ------------------------------------------------------------------
    def recalculate_profits(self, date_from: DayLike, date_to: DayLike) -> Dict[str, bool]:
        """
        Rebuild every day in [date_from, date_to] that has an aggregate or
        ledger rows. One failing day does not stop the others; it is queued
        as pending instead. Returns {day: succeeded}.
        """
        outcome: Dict[str, bool] = {}
        for key in self.daily.days_between(date_from, date_to):
            if self.daily.get_inventory_by_date(key) is None and not self.daily.has_transactions(key):
                continue
            try:
                self.daily.recalculate(key)
                outcome[key] = True
            except InventoryRecalculationFailed as e:
                self.daily.mark_pending(key, "recalculate", key, e.message)
                outcome[key] = False
        return outcome

    def replay_pending(self, day: DayLike | None = None) -> Dict[str, bool]:
        return self.daily.replay_pending(day)
