from __future__ import annotations

"""
Repository for the customer ledger (customer_transactions).

Every row is one signed line: quantity > 0 is a sale, quantity < 0 a return.
`kind` says structurally whether the row belongs to a sale, a plain return or
an exchange; nothing downstream inspects `notes` for that.

Callers own the transaction (see database.tx.immediate_tx); this repo never
commits.
"""

from dataclasses import dataclass, asdict
import sqlite3
from typing import Iterable

from ...enums import TransactionKind

_COLUMNS = (
    "transaction_id, customer_id, product_id, kind, quantity, price, discount, "
    "total_price, shipping_cost, amount_paid, unit_cost, invoice_number, "
    "color, size, notes, date"
)


@dataclass
class CustomerTransaction:
    transaction_id: int | None
    customer_id: int
    product_id: int
    kind: TransactionKind
    quantity: int
    price: float
    discount: float
    total_price: float
    shipping_cost: float
    amount_paid: float
    unit_cost: float | None
    invoice_number: str | None
    color: str | None
    size: str | None
    notes: str | None
    date: str

    @classmethod
    def from_row(cls, r: sqlite3.Row) -> "CustomerTransaction":
        d = dict(r)
        d["kind"] = TransactionKind(d["kind"])
        return cls(**d)


class TransactionsRepo:
    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def get(self, transaction_id: int) -> CustomerTransaction | None:
        r = self.conn.execute(
            f"SELECT {_COLUMNS} FROM customer_transactions WHERE transaction_id=?",
            (transaction_id,),
        ).fetchone()
        return CustomerTransaction.from_row(r) if r else None

    def get_many(self, ids: Iterable[int]) -> list[CustomerTransaction]:
        ids = list(ids)
        if not ids:
            return []
        marks = ",".join("?" for _ in ids)
        rows = self.conn.execute(
            f"SELECT {_COLUMNS} FROM customer_transactions "
            f"WHERE transaction_id IN ({marks}) ORDER BY transaction_id",
            ids,
        ).fetchall()
        return [CustomerTransaction.from_row(r) for r in rows]

    def list_between(self, start: str, end: str) -> list[CustomerTransaction]:
        """Rows with start <= date < end, in recording order."""
        rows = self.conn.execute(
            f"SELECT {_COLUMNS} FROM customer_transactions "
            "WHERE date >= ? AND date < ? ORDER BY date, transaction_id",
            (start, end),
        ).fetchall()
        return [CustomerTransaction.from_row(r) for r in rows]

    def list_for_invoice(self, invoice_number: str) -> list[CustomerTransaction]:
        rows = self.conn.execute(
            f"SELECT {_COLUMNS} FROM customer_transactions "
            "WHERE invoice_number=? ORDER BY transaction_id",
            (invoice_number,),
        ).fetchall()
        return [CustomerTransaction.from_row(r) for r in rows]

    def list_for_customer(self, customer_id: int) -> list[CustomerTransaction]:
        rows = self.conn.execute(
            f"SELECT {_COLUMNS} FROM customer_transactions "
            "WHERE customer_id=? ORDER BY date, transaction_id",
            (customer_id,),
        ).fetchall()
        return [CustomerTransaction.from_row(r) for r in rows]

    def dates_for_product(self, product_id: int) -> list[str]:
        """Distinct calendar dates (YYYY-MM-DD) on which the product moved."""
        rows = self.conn.execute(
            "SELECT DISTINCT substr(date, 1, 10) AS d FROM customer_transactions "
            "WHERE product_id=? ORDER BY d",
            (product_id,),
        ).fetchall()
        return [r["d"] for r in rows]

    # ---------------------------------------------------------------------
    # WRITE
    # ---------------------------------------------------------------------
    def insert(self, tx: CustomerTransaction) -> int:
        d = asdict(tx)
        d.pop("transaction_id")
        d["kind"] = int(tx.kind)
        cols = ", ".join(d)
        marks = ", ".join("?" for _ in d)
        cur = self.conn.execute(
            f"INSERT INTO customer_transactions({cols}) VALUES ({marks})",
            tuple(d.values()),
        )
        tx.transaction_id = int(cur.lastrowid)
        return tx.transaction_id

    def update_line(
        self,
        transaction_id: int,
        *,
        quantity: int,
        price: float,
        discount: float,
        total_price: float,
        amount_paid: float,
        kind: TransactionKind,
    ) -> None:
        self.conn.execute(
            "UPDATE customer_transactions "
            "SET quantity=?, price=?, discount=?, total_price=?, amount_paid=?, kind=? "
            "WHERE transaction_id=?",
            (quantity, price, discount, total_price, amount_paid, int(kind), transaction_id),
        )

    def set_amount_paid(self, transaction_id: int, amount_paid: float) -> None:
        self.conn.execute(
            "UPDATE customer_transactions SET amount_paid=? WHERE transaction_id=?",
            (amount_paid, transaction_id),
        )

    def set_invoice_number(self, ids: Iterable[int], invoice_number: str) -> None:
        self.conn.executemany(
            "UPDATE customer_transactions SET invoice_number=? WHERE transaction_id=?",
            [(invoice_number, i) for i in ids],
        )

    def set_unit_cost_for_product(self, product_id: int, unit_cost: float | None) -> int:
        cur = self.conn.execute(
            "UPDATE customer_transactions SET unit_cost=? WHERE product_id=?",
            (unit_cost, product_id),
        )
        return cur.rowcount

    def delete(self, transaction_id: int) -> None:
        self.conn.execute("DELETE FROM customer_transactions WHERE transaction_id=?", (transaction_id,))
