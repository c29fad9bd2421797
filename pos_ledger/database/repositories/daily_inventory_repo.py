from __future__ import annotations

"""
Repository for the daily inventory aggregate and its children.

Conventions:
- `inventory_date` is an ISO 'YYYY-MM-DD' string, unique per row.
- Child rows (product/customer summaries, sale snapshots) cascade with the day.
- Parent totals are only ever written from `child_totals()`; nothing adds to
  them incrementally.
- Callers own the transaction; nothing here commits.
"""

from dataclasses import dataclass
import sqlite3
from typing import Optional, List, Dict

from ...enums import DayStatus


@dataclass
class DailyInventory:
    daily_inventory_id: int
    inventory_date: str
    status: DayStatus
    total_sales: float
    total_cost: float
    total_discounts: float
    net_profit: float
    total_payments: float
    total_debts: float
    transactions_count: int
    customers_count: int
    products_sold_count: int
    total_quantity_sold: int
    returns_count: int
    exchanges_count: int
    pending_reconciliation: int
    aggregation_version: int
    notes: str | None
    closed_by: str | None
    closed_at: str | None
    created_at: str
    updated_at: str | None

    @property
    def is_closed(self) -> bool:
        return self.status == DayStatus.CLOSED

    def totals(self) -> dict:
        return {k: getattr(self, k) for k in TOTAL_FIELDS}


TOTAL_FIELDS = (
    "total_sales",
    "total_cost",
    "total_discounts",
    "net_profit",
    "total_payments",
    "total_debts",
    "transactions_count",
    "customers_count",
    "products_sold_count",
    "total_quantity_sold",
)

PRODUCT_SUMMARY_FIELDS = (
    "starting_quantity",
    "ending_quantity",
    "total_quantity_sold",
    "total_sales_value",
    "total_cost_value",
    "total_discounts",
    "net_sales_value",
    "net_profit",
    "transactions_count",
)

CUSTOMER_SUMMARY_FIELDS = (
    "transactions_count",
    "total_purchases",
    "total_payments",
    "debt_amount",
    "last_transaction_time",
)


def _to_day(r: sqlite3.Row | None) -> DailyInventory | None:
    if r is None:
        return None
    d = dict(r)
    d["status"] = DayStatus(d["status"])
    return DailyInventory(**d)


class DailyInventoryRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    # ------------------------------------------------------------------
    # Day rows
    # ------------------------------------------------------------------
    def get_by_date(self, day: str) -> DailyInventory | None:
        r = self.conn.execute(
            "SELECT * FROM daily_inventories WHERE inventory_date=?", (day,)
        ).fetchone()
        return _to_day(r)

    def get(self, daily_inventory_id: int) -> DailyInventory | None:
        r = self.conn.execute(
            "SELECT * FROM daily_inventories WHERE daily_inventory_id=?", (daily_inventory_id,)
        ).fetchone()
        return _to_day(r)

    def ensure_day(self, day: str) -> DailyInventory:
        """INSERT OR IGNORE keyed on the unique date, then read back."""
        self.conn.execute(
            "INSERT OR IGNORE INTO daily_inventories(inventory_date, status) VALUES (?, ?)",
            (day, int(DayStatus.ACTIVE)),
        )
        return self.get_by_date(day)  # type: ignore[return-value]

    def set_status(
        self,
        daily_inventory_id: int,
        status: DayStatus,
        *,
        closed_by: Optional[str],
        closed_at: Optional[str],
        updated_at: str,
    ) -> None:
        self.conn.execute(
            "UPDATE daily_inventories SET status=?, closed_by=?, closed_at=?, updated_at=? "
            "WHERE daily_inventory_id=?",
            (int(status), closed_by, closed_at, updated_at, daily_inventory_id),
        )

    def list_in_range(self, start: str, end: str) -> List[DailyInventory]:
        rows = self.conn.execute(
            "SELECT * FROM daily_inventories WHERE inventory_date BETWEEN ? AND ? "
            "ORDER BY inventory_date",
            (start, end),
        ).fetchall()
        return [_to_day(r) for r in rows]  # type: ignore[misc]

    def previous_day(self, day: str) -> DailyInventory | None:
        r = self.conn.execute(
            "SELECT * FROM daily_inventories WHERE inventory_date < ? "
            "ORDER BY inventory_date DESC LIMIT 1",
            (day,),
        ).fetchone()
        return _to_day(r)

    def total_sales_in_range(self, start: str, end: str) -> float:
        r = self.conn.execute(
            "SELECT COALESCE(SUM(total_sales), 0) AS s FROM daily_inventories "
            "WHERE inventory_date BETWEEN ? AND ?",
            (start, end),
        ).fetchone()
        return float(r["s"])

    # ------------------------------------------------------------------
    # Totals / bookkeeping columns
    # ------------------------------------------------------------------
    def child_totals(self, daily_inventory_id: int) -> Dict[str, float]:
        p = self.conn.execute(
            """
            SELECT COALESCE(SUM(total_sales_value), 0)   AS total_sales,
                   COALESCE(SUM(total_cost_value), 0)    AS total_cost,
                   COALESCE(SUM(total_discounts), 0)     AS total_discounts,
                   COALESCE(SUM(net_profit), 0)          AS net_profit,
                   COALESCE(SUM(transactions_count), 0)  AS transactions_count,
                   COALESCE(SUM(CASE WHEN total_quantity_sold > 0 THEN 1 ELSE 0 END), 0)
                                                          AS products_sold_count,
                   COALESCE(SUM(total_quantity_sold), 0) AS total_quantity_sold
            FROM daily_product_summaries WHERE daily_inventory_id=?
            """,
            (daily_inventory_id,),
        ).fetchone()
        c = self.conn.execute(
            """
            SELECT COALESCE(SUM(total_payments), 0) AS total_payments,
                   COALESCE(SUM(debt_amount), 0)    AS total_debts,
                   COUNT(*)                          AS customers_count
            FROM daily_customer_summaries WHERE daily_inventory_id=?
            """,
            (daily_inventory_id,),
        ).fetchone()
        return {**dict(p), **dict(c)}

    def write_totals(self, daily_inventory_id: int, totals: Dict[str, float], updated_at: str) -> None:
        assignments = ", ".join(f"{k}=?" for k in TOTAL_FIELDS)
        self.conn.execute(
            f"UPDATE daily_inventories SET {assignments}, updated_at=? WHERE daily_inventory_id=?",
            (*[totals[k] for k in TOTAL_FIELDS], updated_at, daily_inventory_id),
        )

    def bump_version(self, daily_inventory_id: int) -> int:
        self.conn.execute(
            "UPDATE daily_inventories SET aggregation_version = aggregation_version + 1 "
            "WHERE daily_inventory_id=?",
            (daily_inventory_id,),
        )
        r = self.conn.execute(
            "SELECT aggregation_version FROM daily_inventories WHERE daily_inventory_id=?",
            (daily_inventory_id,),
        ).fetchone()
        return int(r[0])

    def increment_counter(self, daily_inventory_id: int, column: str) -> None:
        if column not in ("returns_count", "exchanges_count"):
            raise ValueError(f"unsupported counter {column!r}")
        self.conn.execute(
            f"UPDATE daily_inventories SET {column} = {column} + 1 WHERE daily_inventory_id=?",
            (daily_inventory_id,),
        )

    def set_counters(self, daily_inventory_id: int, returns_count: int, exchanges_count: int) -> None:
        self.conn.execute(
            "UPDATE daily_inventories SET returns_count=?, exchanges_count=? WHERE daily_inventory_id=?",
            (returns_count, exchanges_count, daily_inventory_id),
        )

    def set_pending_flag(self, day: str, pending: bool) -> None:
        self.conn.execute(
            "UPDATE daily_inventories SET pending_reconciliation=? WHERE inventory_date=?",
            (1 if pending else 0, day),
        )

    # ------------------------------------------------------------------
    # Pending reconciliation queue
    # ------------------------------------------------------------------
    def add_pending(self, day: str, kind: str, reference: str | None, error: str | None, created_at: str) -> int:
        cur = self.conn.execute(
            "INSERT INTO pending_reconciliations(inventory_date, kind, reference, error, created_at) "
            "VALUES (?,?,?,?,?)",
            (day, kind, reference, error, created_at),
        )
        return int(cur.lastrowid)

    def list_pending(self, day: str | None = None) -> List[Dict]:
        sql = "SELECT * FROM pending_reconciliations WHERE resolved_at IS NULL"
        params: list = []
        if day is not None:
            sql += " AND inventory_date=?"
            params.append(day)
        sql += " ORDER BY pending_id"
        return [dict(r) for r in self.conn.execute(sql, params).fetchall()]

    def resolve_pending(self, day: str, resolved_at: str) -> int:
        cur = self.conn.execute(
            "UPDATE pending_reconciliations SET resolved_at=? "
            "WHERE inventory_date=? AND resolved_at IS NULL",
            (resolved_at, day),
        )
        return cur.rowcount

    # ------------------------------------------------------------------
    # Children
    # ------------------------------------------------------------------
    def delete_children(self, daily_inventory_id: int) -> None:
        for table in ("daily_sale_transactions", "daily_product_summaries", "daily_customer_summaries"):
            self.conn.execute(f"DELETE FROM {table} WHERE daily_inventory_id=?", (daily_inventory_id,))

    def insert_sale_snapshot(self, daily_inventory_id: int, row: Dict) -> int:
        data = {"daily_inventory_id": daily_inventory_id, **row}
        cols = ", ".join(data)
        marks = ", ".join("?" for _ in data)
        cur = self.conn.execute(
            f"INSERT INTO daily_sale_transactions({cols}) VALUES ({marks})", tuple(data.values())
        )
        return int(cur.lastrowid)

    def get_product_summary(self, daily_inventory_id: int, product_id: int) -> Dict | None:
        r = self.conn.execute(
            "SELECT * FROM daily_product_summaries WHERE daily_inventory_id=? AND product_id=?",
            (daily_inventory_id, product_id),
        ).fetchone()
        return dict(r) if r else None

    def insert_product_summary(
        self, daily_inventory_id: int, product_id: int, product_name: str | None,
        starting_quantity: int, ending_quantity: int,
    ) -> Dict:
        self.conn.execute(
            "INSERT INTO daily_product_summaries(daily_inventory_id, product_id, product_name, "
            "starting_quantity, ending_quantity) VALUES (?,?,?,?,?)",
            (daily_inventory_id, product_id, product_name, starting_quantity, ending_quantity),
        )
        return self.get_product_summary(daily_inventory_id, product_id)  # type: ignore[return-value]

    def update_product_summary(self, summary: Dict) -> None:
        assignments = ", ".join(f"{k}=?" for k in PRODUCT_SUMMARY_FIELDS)
        self.conn.execute(
            f"UPDATE daily_product_summaries SET {assignments} WHERE summary_id=?",
            (*[summary[k] for k in PRODUCT_SUMMARY_FIELDS], summary["summary_id"]),
        )

    def get_customer_summary(self, daily_inventory_id: int, customer_id: int) -> Dict | None:
        r = self.conn.execute(
            "SELECT * FROM daily_customer_summaries WHERE daily_inventory_id=? AND customer_id=?",
            (daily_inventory_id, customer_id),
        ).fetchone()
        return dict(r) if r else None

    def insert_customer_summary(self, daily_inventory_id: int, customer_id: int, customer_name: str | None) -> Dict:
        self.conn.execute(
            "INSERT INTO daily_customer_summaries(daily_inventory_id, customer_id, customer_name) "
            "VALUES (?,?,?)",
            (daily_inventory_id, customer_id, customer_name),
        )
        return self.get_customer_summary(daily_inventory_id, customer_id)  # type: ignore[return-value]

    def update_customer_summary(self, summary: Dict) -> None:
        assignments = ", ".join(f"{k}=?" for k in CUSTOMER_SUMMARY_FIELDS)
        self.conn.execute(
            f"UPDATE daily_customer_summaries SET {assignments} WHERE summary_id=?",
            (*[summary[k] for k in CUSTOMER_SUMMARY_FIELDS], summary["summary_id"]),
        )

    def product_summaries(self, daily_inventory_id: int) -> List[Dict]:
        rows = self.conn.execute(
            "SELECT * FROM daily_product_summaries WHERE daily_inventory_id=? ORDER BY product_id",
            (daily_inventory_id,),
        ).fetchall()
        return [dict(r) for r in rows]

    def customer_summaries(self, daily_inventory_id: int) -> List[Dict]:
        rows = self.conn.execute(
            "SELECT * FROM daily_customer_summaries WHERE daily_inventory_id=? ORDER BY customer_id",
            (daily_inventory_id,),
        ).fetchall()
        return [dict(r) for r in rows]

    def sale_snapshots(self, daily_inventory_id: int) -> List[Dict]:
        rows = self.conn.execute(
            "SELECT * FROM daily_sale_transactions WHERE daily_inventory_id=? "
            "ORDER BY transaction_time, sale_id",
            (daily_inventory_id,),
        ).fetchall()
        return [dict(r) for r in rows]

    def top_products(self, daily_inventory_id: int, count: int) -> List[Dict]:
        rows = self.conn.execute(
            "SELECT * FROM daily_product_summaries WHERE daily_inventory_id=? "
            "ORDER BY total_quantity_sold DESC, net_sales_value DESC, product_id LIMIT ?",
            (daily_inventory_id, int(count)),
        ).fetchall()
        return [dict(r) for r in rows]

    def top_customers(self, daily_inventory_id: int, count: int) -> List[Dict]:
        rows = self.conn.execute(
            "SELECT * FROM daily_customer_summaries WHERE daily_inventory_id=? "
            "ORDER BY total_purchases DESC, customer_id LIMIT ?",
            (daily_inventory_id, int(count)),
        ).fetchall()
        return [dict(r) for r in rows]
