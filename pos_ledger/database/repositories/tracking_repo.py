from __future__ import annotations

"""
Return / exchange tracking rows.

Availability for an (original invoice, product) pair is shared by both
flows: what was returned plus what was exchanged away can never exceed what
was sold. The same cap is enforced again by BEFORE INSERT triggers.
"""

from dataclasses import dataclass, asdict
import sqlite3


@dataclass
class ReturnTracking:
    return_id: int | None
    original_invoice_number: str
    return_invoice_number: str
    product_id: int
    returned_quantity: int
    transaction_id: int | None
    reason: str | None
    created_at: str
    created_by: str | None


@dataclass
class ExchangeTracking:
    exchange_id: int | None
    original_invoice_number: str
    exchange_invoice_number: str
    old_product_id: int
    new_product_id: int
    exchanged_quantity: int
    price_difference: float
    reason: str | None
    created_at: str
    created_by: str | None
    returned_transaction_id: int | None = None
    issued_transaction_id: int | None = None


def _insert(conn: sqlite3.Connection, table: str, row: dict) -> int:
    cols = ", ".join(row)
    marks = ", ".join("?" for _ in row)
    cur = conn.execute(f"INSERT INTO {table}({cols}) VALUES ({marks})", tuple(row.values()))
    return int(cur.lastrowid)


class TrackingRepo:
    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---- quantities ------------------------------------------------------

    def sold_quantity(self, original_invoice_number: str, product_id: int) -> int:
        r = self.conn.execute(
            """
            SELECT COALESCE(SUM(ii.quantity), 0) AS q
            FROM invoice_items ii
            JOIN invoices i ON i.invoice_id = ii.invoice_id
            WHERE i.invoice_number = ? AND ii.product_id = ? AND ii.quantity > 0
            """,
            (original_invoice_number, product_id),
        ).fetchone()
        return int(r["q"])

    def returned_quantity(self, original_invoice_number: str, product_id: int) -> int:
        r = self.conn.execute(
            "SELECT COALESCE(SUM(returned_quantity), 0) AS q FROM return_trackings "
            "WHERE original_invoice_number=? AND product_id=?",
            (original_invoice_number, product_id),
        ).fetchone()
        return int(r["q"])

    def exchanged_quantity(self, original_invoice_number: str, product_id: int) -> int:
        r = self.conn.execute(
            "SELECT COALESCE(SUM(exchanged_quantity), 0) AS q FROM exchange_trackings "
            "WHERE original_invoice_number=? AND old_product_id=?",
            (original_invoice_number, product_id),
        ).fetchone()
        return int(r["q"])

    def available_quantity(self, original_invoice_number: str, product_id: int) -> int:
        sold = self.sold_quantity(original_invoice_number, product_id)
        used = (
            self.returned_quantity(original_invoice_number, product_id)
            + self.exchanged_quantity(original_invoice_number, product_id)
        )
        return max(sold - used, 0)

    # ---- reads -----------------------------------------------------------

    def get_return(self, return_id: int) -> ReturnTracking | None:
        r = self.conn.execute("SELECT * FROM return_trackings WHERE return_id=?", (return_id,)).fetchone()
        return ReturnTracking(**r) if r else None

    def list_returns(self, original_invoice_number: str) -> list[ReturnTracking]:
        rows = self.conn.execute(
            "SELECT * FROM return_trackings WHERE original_invoice_number=? ORDER BY return_id",
            (original_invoice_number,),
        ).fetchall()
        return [ReturnTracking(**r) for r in rows]

    def get_exchange(self, exchange_id: int) -> ExchangeTracking | None:
        r = self.conn.execute("SELECT * FROM exchange_trackings WHERE exchange_id=?", (exchange_id,)).fetchone()
        return ExchangeTracking(**r) if r else None

    def list_exchanges(self, original_invoice_number: str) -> list[ExchangeTracking]:
        rows = self.conn.execute(
            "SELECT * FROM exchange_trackings WHERE original_invoice_number=? ORDER BY exchange_id",
            (original_invoice_number,),
        ).fetchall()
        return [ExchangeTracking(**r) for r in rows]

    # ---- writes (caller owns the transaction) -----------------------------

    def insert_return(self, t: ReturnTracking) -> int:
        d = asdict(t)
        d.pop("return_id")
        t.return_id = _insert(self.conn, "return_trackings", d)
        return t.return_id

    def insert_exchange(self, t: ExchangeTracking) -> int:
        d = asdict(t)
        d.pop("exchange_id")
        t.exchange_id = _insert(self.conn, "exchange_trackings", d)
        return t.exchange_id

    def delete_return(self, return_id: int) -> None:
        self.conn.execute("DELETE FROM return_trackings WHERE return_id=?", (return_id,))

    def return_for_transaction(self, transaction_id: int) -> ReturnTracking | None:
        r = self.conn.execute(
            "SELECT * FROM return_trackings WHERE transaction_id=?", (transaction_id,)
        ).fetchone()
        return ReturnTracking(**r) if r else None

    def delete_exchange(self, exchange_id: int) -> None:
        self.conn.execute("DELETE FROM exchange_trackings WHERE exchange_id=?", (exchange_id,))

    def exchange_for_transaction(self, transaction_id: int) -> ExchangeTracking | None:
        """The exchange whose returned or issued leg is this ledger row."""
        r = self.conn.execute(
            "SELECT * FROM exchange_trackings WHERE returned_transaction_id=? OR issued_transaction_id=?",
            (transaction_id, transaction_id),
        ).fetchone()
        return ExchangeTracking(**r) if r else None
