from __future__ import annotations

import sqlite3

from ...enums import TransactionKind


class ReportingRepo:
    """
    Read-only queries for the year-level reports.

    Notes on date handling:
      • customer_transactions.date is stored as 'YYYY-MM-DD HH:MM:SS'; callers
        pass half-open [start, end) bounds in the same representation so the
        comparisons stay index friendly.
      • The cost column is the row's own snapshot (unit_cost), falling back to
        the product's current carton price only where no snapshot was taken.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    def transactions_between(self, start: str, end: str) -> list[sqlite3.Row]:
        sql = """
        SELECT
            t.transaction_id,
            t.customer_id,
            t.product_id,
            t.kind,
            t.quantity,
            t.price,
            t.discount,
            t.total_price,
            t.amount_paid,
            t.date,
            COALESCE(t.unit_cost, p.carton_price) AS cost
        FROM customer_transactions t
        LEFT JOIN products p ON p.product_id = t.product_id
        WHERE t.date >= ? AND t.date < ?
        ORDER BY t.date, t.transaction_id
        """
        return list(self.conn.execute(sql, (start, end)))

    def inventory_value(self) -> float:
        r = self.conn.execute(
            "SELECT COALESCE(SUM(price * quantity), 0.0) AS v FROM products"
        ).fetchone()
        return float(r["v"])

    def product_count(self) -> int:
        return int(self.conn.execute("SELECT COUNT(*) FROM products").fetchone()[0])

    def customer_balances(self) -> list[sqlite3.Row]:
        """
        One row per customer that has ledger rows. Payments only count on the
        sale side; returns reduce what is owed.
        """
        sql = """
        SELECT
            c.customer_id,
            c.name,
            c.phone,
            COUNT(t.transaction_id)                                              AS transactions_count,
            COALESCE(SUM(CASE WHEN t.quantity > 0 THEN t.total_price END), 0.0)  AS total_purchases,
            COALESCE(SUM(CASE WHEN t.quantity < 0 THEN -t.total_price END), 0.0) AS total_returns,
            COALESCE(SUM(CASE WHEN t.quantity > 0 THEN t.amount_paid END), 0.0)  AS total_paid,
            SUM(CASE WHEN t.quantity < 0 AND t.kind = ? THEN 1 ELSE 0 END)       AS returns_count,
            SUM(CASE WHEN t.quantity < 0 AND t.kind = ? THEN 1 ELSE 0 END)       AS exchanges_count
        FROM customers c
        JOIN customer_transactions t ON t.customer_id = c.customer_id
        GROUP BY c.customer_id, c.name, c.phone
        ORDER BY c.name COLLATE NOCASE
        """
        return list(self.conn.execute(sql, (int(TransactionKind.RETURN), int(TransactionKind.EXCHANGE))))
