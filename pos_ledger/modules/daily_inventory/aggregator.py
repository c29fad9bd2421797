"""
modules/daily_inventory/aggregator.py

Purpose
-------
Roll the customer ledger up into one `daily_inventories` row per calendar day,
with per-product and per-customer summaries underneath.

Lifecycle per date:  Active --close()--> Closed --reopen()--> Active

Public interface
----------------
- get_or_create(day)                  idempotent on the unique date
- get_inventory_by_date(day)
- process_transaction(tx)             incremental; no-op (warning) on a Closed day
- recalculate(day)                    delete-then-replay; allowed on Closed days
- close(day, user) / reopen(day, user)
- is_day_closed(day)
- get_inventories_in_range(start, end), get_previous_day(day), total_sales_in_range(start, end)
- top_selling_products(day, count=10), top_customers(day, count=10)
- mark_pending(day, kind, reference, error) / replay_pending(day=None)

Rules applied per ledger row (shared with the reconciliation service):
- quantity sold and discounts only accumulate for quantity > 0
- sales value = price * quantity, signed
- cost and profit use the row's cost snapshot; no cost basis => zero cost, zero profit
- customer payments skip rows carrying shipping and non-positive payments
- parent totals are always re-summed from the children

Every mutation runs under BEGIN IMMEDIATE, so an incremental update and a
rebuild of the same day never interleave. Each rebuild bumps
`aggregation_version`.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional, Union

from ...constants import DEFAULT_TOP_COUNT
from ...database.repositories.customers_repo import CustomersRepo
from ...database.repositories.daily_inventory_repo import DailyInventory, DailyInventoryRepo
from ...database.repositories.products_repo import ProductsRepo
from ...database.repositories.transactions_repo import CustomerTransaction, TransactionsRepo
from ...database.tx import immediate_tx
from ...enums import DayStatus
from ...errors import DomainError, InventoryRecalculationFailed, TransactionNotFound
from ...utils.helpers import day_bounds, now_str, round_money
from ...utils.validators import parse_date
from ..activity.activity_log import log_activity

DayLike = Union[date, datetime, str]

_PRODUCT_MONEY = ("total_sales_value", "total_cost_value", "total_discounts", "net_sales_value", "net_profit")
_TOTAL_MONEY = ("total_sales", "total_cost", "total_discounts", "net_profit", "total_payments", "total_debts")


def _day_key(day: DayLike) -> str:
    return parse_date(day).isoformat()


class DailyInventoryService:
    def __init__(
        self,
        conn: sqlite3.Connection,
        clock: Callable[[], datetime] = datetime.now,
        logger: Optional[logging.Logger] = None,
    ):
        self.conn = conn
        self.clock = clock
        self.repo = DailyInventoryRepo(conn)
        self.products = ProductsRepo(conn)
        self.customers = CustomersRepo(conn)
        self.transactions = TransactionsRepo(conn)
        self._log = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Day rows
    # ------------------------------------------------------------------
    def get_or_create(self, day: DayLike) -> DailyInventory:
        with immediate_tx(self.conn):
            return self.repo.ensure_day(_day_key(day))

    def get_inventory_by_date(self, day: DayLike) -> DailyInventory | None:
        return self.repo.get_by_date(_day_key(day))

    def is_day_closed(self, day: DayLike) -> bool:
        inv = self.repo.get_by_date(_day_key(day))
        return bool(inv and inv.is_closed)

    # ------------------------------------------------------------------
    # Per-row rules
    # ------------------------------------------------------------------
    def apply_transaction(self, daily_inventory_id: int, tx: CustomerTransaction) -> None:
        """
        Fold one ledger row into the day's snapshot, product summary and
        customer summary. Caller owns the transaction and must call
        refresh_totals() afterwards.
        """
        product = self.products.get(tx.product_id)
        cost = tx.unit_cost if tx.unit_cost is not None else (product.carton_price if product else None)
        cost = float(cost) if cost and cost > 0 else 0.0
        qty = int(tx.quantity)
        on_hand = product.quantity if product else 0

        self.repo.insert_sale_snapshot(
            daily_inventory_id,
            {
                "customer_transaction_id": tx.transaction_id,
                "customer_id": tx.customer_id,
                "product_id": tx.product_id,
                "kind": int(tx.kind),
                "quantity": qty,
                "unit_price": tx.price,
                "cost_price": cost,
                "discount": tx.discount,
                "total_price": tx.total_price,
                "amount_paid": tx.amount_paid,
                "transaction_time": tx.date,
            },
        )

        ps = self.repo.get_product_summary(daily_inventory_id, tx.product_id)
        if ps is None:
            ps = self.repo.insert_product_summary(
                daily_inventory_id,
                tx.product_id,
                product.name if product else None,
                starting_quantity=on_hand + qty,
                ending_quantity=on_hand,
            )
        if qty > 0:
            ps["total_quantity_sold"] += qty
            ps["total_discounts"] += tx.discount
        ps["total_sales_value"] += tx.price * qty
        if cost > 0:
            ps["total_cost_value"] += cost * qty
            ps["net_profit"] += round_money((tx.price - cost) * qty)
        ps["net_sales_value"] += round_money(tx.total_price)
        ps["transactions_count"] += 1
        ps["ending_quantity"] = on_hand
        for k in _PRODUCT_MONEY:
            ps[k] = round_money(ps[k])
        self.repo.update_product_summary(ps)

        cs = self.repo.get_customer_summary(daily_inventory_id, tx.customer_id)
        if cs is None:
            customer = self.customers.get(tx.customer_id)
            cs = self.repo.insert_customer_summary(
                daily_inventory_id, tx.customer_id, customer.name if customer else None
            )
        cs["transactions_count"] += 1
        cs["total_purchases"] = round_money(cs["total_purchases"] + tx.total_price)
        if not tx.shipping_cost and tx.amount_paid > 0:
            cs["total_payments"] = round_money(cs["total_payments"] + tx.amount_paid)
        cs["debt_amount"] = round_money(cs["total_purchases"] - cs["total_payments"])
        cs["last_transaction_time"] = tx.date
        self.repo.update_customer_summary(cs)

    def refresh_totals(self, daily_inventory_id: int) -> Dict[str, float]:
        """Re-sum parent totals from the children."""
        totals = self.repo.child_totals(daily_inventory_id)
        for k in _TOTAL_MONEY:
            totals[k] = round_money(totals[k])
        self.repo.write_totals(daily_inventory_id, totals, now_str(self.clock()))
        return totals

    # ------------------------------------------------------------------
    # Incremental path
    # ------------------------------------------------------------------
    def process_transaction(self, tx: Union[CustomerTransaction, int]) -> bool:
        """
        Fold one ledger row into its day. Returns False (and changes nothing)
        when that day is Closed.
        """
        if not isinstance(tx, CustomerTransaction):
            found = self.transactions.get(int(tx))
            if found is None:
                raise TransactionNotFound(f"Transaction {tx} was not found.")
            tx = found

        key = _day_key(tx.date)
        with immediate_tx(self.conn):
            inv = self.repo.ensure_day(key)
            if inv.is_closed:
                self._log.warning(
                    "day %s is closed; transaction %s not aggregated", key, tx.transaction_id
                )
                return False
            self.apply_transaction(inv.daily_inventory_id, tx)
            self.refresh_totals(inv.daily_inventory_id)
        self._log.debug(
            "transaction %s folded into %s (aggregation version %s)", tx.transaction_id, key, inv.aggregation_version
        )
        return True

    # ------------------------------------------------------------------
    # Full rebuild
    # ------------------------------------------------------------------
    def _recount(self, inv: DailyInventory) -> None:
        start, end = day_bounds(parse_date(inv.inventory_date))
        r = self.conn.execute(
            "SELECT COUNT(DISTINCT return_invoice_number) FROM return_trackings "
            "WHERE created_at >= ? AND created_at < ?",
            (start, end),
        ).fetchone()
        e = self.conn.execute(
            "SELECT COUNT(DISTINCT exchange_invoice_number) FROM exchange_trackings "
            "WHERE created_at >= ? AND created_at < ?",
            (start, end),
        ).fetchone()
        self.repo.set_counters(inv.daily_inventory_id, int(r[0]), int(e[0]))

    def recalculate(self, day: DayLike) -> DailyInventory:
        """
        Delete the day's children and replay every ledger row dated
        [day 00:00, day+1 00:00). Works on Closed days too.
        """
        key = _day_key(day)
        try:
            with immediate_tx(self.conn):
                inv = self.repo.ensure_day(key)
                self.repo.delete_children(inv.daily_inventory_id)
                start, end = day_bounds(parse_date(key))
                replayed = self.transactions.list_between(start, end)
                for tx in replayed:
                    self.apply_transaction(inv.daily_inventory_id, tx)
                self.refresh_totals(inv.daily_inventory_id)
                self._recount(inv)
                version = self.repo.bump_version(inv.daily_inventory_id)
                self.repo.set_pending_flag(key, False)
                self.repo.resolve_pending(key, now_str(self.clock()))
        except DomainError:
            raise
        except Exception as e:
            self._log.exception("recalculation of %s failed", key)
            raise InventoryRecalculationFailed(f"Could not recalculate inventory for {key}.", day=key) from e

        self._log.info("recalculated %s from %d transactions (version %d)", key, len(replayed), version)
        return self.repo.get_by_date(key)  # type: ignore[return-value]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def close(self, day: DayLike, user: Optional[str] = None) -> DailyInventory:
        """
        Active -> Closed. The status change stands even if the closing
        recalculation fails; that failure is logged and queued.
        """
        key = _day_key(day)
        with immediate_tx(self.conn):
            inv = self.repo.ensure_day(key)
            self.repo.set_status(
                inv.daily_inventory_id,
                DayStatus.CLOSED,
                closed_by=user,
                closed_at=now_str(self.clock()),
                updated_at=now_str(self.clock()),
            )
        try:
            self.recalculate(key)
        except InventoryRecalculationFailed as e:
            self._log.error("day %s closed but not recalculated: %s", key, e.message)
            self.mark_pending(key, "close", key, e.message)
        log_activity(self.conn, "Close", "DailyInventory", key, f"Daily inventory {key} closed", user,
                     created_at=now_str(self.clock()))
        return self.repo.get_by_date(key)  # type: ignore[return-value]

    def reopen(self, day: DayLike, user: Optional[str] = None) -> DailyInventory:
        """Closed -> Active."""
        key = _day_key(day)
        with immediate_tx(self.conn):
            inv = self.repo.ensure_day(key)
            self.repo.set_status(
                inv.daily_inventory_id,
                DayStatus.ACTIVE,
                closed_by=None,
                closed_at=None,
                updated_at=now_str(self.clock()),
            )
        log_activity(self.conn, "Reopen", "DailyInventory", key, f"Daily inventory {key} reopened", user,
                     created_at=now_str(self.clock()))
        return self.repo.get_by_date(key)  # type: ignore[return-value]

    # ------------------------------------------------------------------
    # Pending reconciliation
    # ------------------------------------------------------------------
    def mark_pending(self, day: DayLike, kind: str, reference: Optional[str], error: Optional[str]) -> None:
        """
        Flag the day as drifted and queue it for replay. Never raises; if even
        this fails the error is logged.
        """
        key = _day_key(day)
        try:
            with immediate_tx(self.conn):
                self.repo.ensure_day(key)
                self.repo.set_pending_flag(key, True)
                self.repo.add_pending(key, kind, reference, error, now_str(self.clock()))
        except Exception:
            self._log.exception("could not queue pending reconciliation for %s (%s %s)", key, kind, reference)

    def pending(self, day: DayLike | None = None) -> List[Dict]:
        return self.repo.list_pending(None if day is None else _day_key(day))

    def replay_pending(self, day: DayLike | None = None) -> Dict[str, bool]:
        """Recalculate every day with open pending entries; {day: succeeded}."""
        days = sorted({p["inventory_date"] for p in self.pending(day)})
        outcome: Dict[str, bool] = {}
        for key in days:
            try:
                self.recalculate(key)
                outcome[key] = True
            except InventoryRecalculationFailed:
                outcome[key] = False
        return outcome

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_inventories_in_range(self, start: DayLike, end: DayLike) -> List[DailyInventory]:
        return self.repo.list_in_range(_day_key(start), _day_key(end))

    def get_previous_day(self, day: DayLike) -> DailyInventory | None:
        return self.repo.previous_day(_day_key(day))

    def total_sales_in_range(self, start: DayLike, end: DayLike) -> float:
        return round_money(self.repo.total_sales_in_range(_day_key(start), _day_key(end)))

    def _day_id(self, day: DayLike) -> int | None:
        inv = self.repo.get_by_date(_day_key(day))
        return inv.daily_inventory_id if inv else None

    def top_selling_products(self, day: DayLike, count: int = DEFAULT_TOP_COUNT) -> List[Dict]:
        day_id = self._day_id(day)
        return [] if day_id is None else self.repo.top_products(day_id, count)

    def top_customers(self, day: DayLike, count: int = DEFAULT_TOP_COUNT) -> List[Dict]:
        day_id = self._day_id(day)
        return [] if day_id is None else self.repo.top_customers(day_id, count)

    def product_summaries(self, day: DayLike) -> List[Dict]:
        day_id = self._day_id(day)
        return [] if day_id is None else self.repo.product_summaries(day_id)

    def customer_summaries(self, day: DayLike) -> List[Dict]:
        day_id = self._day_id(day)
        return [] if day_id is None else self.repo.customer_summaries(day_id)

    def sale_snapshots(self, day: DayLike) -> List[Dict]:
        day_id = self._day_id(day)
        return [] if day_id is None else self.repo.sale_snapshots(day_id)

    def has_transactions(self, day: DayLike) -> bool:
        start, end = day_bounds(parse_date(day))
        return self.conn.execute(
            "SELECT 1 FROM customer_transactions WHERE date >= ? AND date < ? LIMIT 1", (start, end)
        ).fetchone() is not None

    def days_between(self, start: DayLike, end: DayLike) -> List[str]:
        s, e = parse_date(start), parse_date(end)
        return [(s + timedelta(days=i)).isoformat() for i in range((e - s).days + 1)]
