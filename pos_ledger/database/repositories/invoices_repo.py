from __future__ import annotations
from dataclasses import dataclass, asdict, field
import sqlite3

from ...enums import InvoiceStatus, InvoiceType, ShippingType, TransactionKind


@dataclass
class InvoiceHeader:
    invoice_id: int | None
    invoice_number: str
    order_number: str | None
    customer_id: int
    invoice_date: str
    invoice_type: InvoiceType
    status: InvoiceStatus
    subtotal: float
    total_amount: float
    amount_paid: float
    remaining_amount: float
    discount: float
    shipping_cost: float = 0.0
    shipping_type: ShippingType = ShippingType.NO_SHIPPING
    order_origin: int | None = None
    original_invoice_number: str | None = None
    notes: str | None = None
    created_by: str | None = None
    items: list["InvoiceItem"] = field(default_factory=list)


@dataclass
class InvoiceItem:
    item_id: int | None
    invoice_id: int | None
    transaction_id: int | None
    product_id: int
    product_name: str
    kind: TransactionKind
    quantity: int
    unit_price: float
    discount: float
    total_price: float
    color: str | None = None
    size: str | None = None
    notes: str | None = None


def _enum_value(v):
    return int(v) if v is not None else None


class InvoicesRepo:
    """
    Invoice header + items. Rows are written once and never updated; the
    invoice_items table refuses UPDATEs at the trigger level.
    """

    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def get_by_number(self, invoice_number: str) -> InvoiceHeader | None:
        r = self.conn.execute(
            "SELECT * FROM invoices WHERE invoice_number=?", (invoice_number,)
        ).fetchone()
        if r is None:
            return None
        d = dict(r)
        d["invoice_type"] = InvoiceType(d["invoice_type"])
        d["status"] = InvoiceStatus(d["status"])
        d["shipping_type"] = ShippingType(d["shipping_type"])
        header = InvoiceHeader(**d)
        header.items = self.list_items(header.invoice_id)
        return header

    def list_items(self, invoice_id: int) -> list[InvoiceItem]:
        rows = self.conn.execute(
            "SELECT * FROM invoice_items WHERE invoice_id=? ORDER BY item_id",
            (invoice_id,),
        ).fetchall()
        items = []
        for r in rows:
            d = dict(r)
            d["kind"] = TransactionKind(d["kind"])
            items.append(InvoiceItem(**d))
        return items

    def list_invoices(self, customer_id: int | None = None) -> list[dict]:
        sql = """
        SELECT i.invoice_id, i.invoice_number, i.order_number, i.invoice_date,
               i.invoice_type, i.status, c.name AS customer_name,
               CAST(i.total_amount AS REAL)     AS total_amount,
               CAST(i.amount_paid AS REAL)      AS amount_paid,
               CAST(i.remaining_amount AS REAL) AS remaining_amount
        FROM invoices i
        JOIN customers c ON c.customer_id = i.customer_id
        """
        params: list = []
        if customer_id is not None:
            sql += " WHERE i.customer_id = ?"
            params.append(customer_id)
        sql += " ORDER BY i.invoice_date DESC, i.invoice_id DESC"
        return [dict(r) for r in self.conn.execute(sql, params).fetchall()]

    def max_numeric(self, column: str) -> int:
        """
        Largest purely numeric invoice_number / order_number. Used once to seed
        the sequence counter on databases that predate it.
        """
        if column not in ("invoice_number", "order_number"):
            raise ValueError(f"unsupported column {column!r}")
        r = self.conn.execute(
            f"SELECT MAX(CAST({column} AS INTEGER)) AS m FROM invoices "
            f"WHERE {column} IS NOT NULL AND {column} <> '' AND {column} NOT GLOB '*[^0-9]*'"
        ).fetchone()
        return int(r["m"] or 0)

    # ---------------------------------------------------------------------
    # WRITE (caller owns the transaction)
    # ---------------------------------------------------------------------
    def _insert_header(self, h: InvoiceHeader) -> int:
        d = asdict(h)
        for k in ("invoice_id", "items"):
            d.pop(k)
        for k in ("invoice_type", "status", "shipping_type", "order_origin"):
            d[k] = _enum_value(d[k])
        cols = ", ".join(d)
        marks = ", ".join("?" for _ in d)
        cur = self.conn.execute(f"INSERT INTO invoices({cols}) VALUES ({marks})", tuple(d.values()))
        return int(cur.lastrowid)

    def _insert_item(self, invoice_id: int, it: InvoiceItem) -> int:
        d = asdict(it)
        d.pop("item_id")
        d["invoice_id"] = invoice_id
        d["kind"] = int(it.kind)
        cols = ", ".join(d)
        marks = ", ".join("?" for _ in d)
        cur = self.conn.execute(f"INSERT INTO invoice_items({cols}) VALUES ({marks})", tuple(d.values()))
        return int(cur.lastrowid)

    def insert(self, header: InvoiceHeader) -> int:
        invoice_id = self._insert_header(header)
        header.invoice_id = invoice_id
        for it in header.items:
            it.invoice_id = invoice_id
            it.item_id = self._insert_item(invoice_id, it)
        return invoice_id
