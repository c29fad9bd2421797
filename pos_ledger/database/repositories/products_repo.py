# pos_ledger/database/repositories/products_repo.py
from __future__ import annotations

from dataclasses import dataclass
import sqlite3

from ...errors import DomainError, ProductNotFound
from ..tx import immediate_tx

_COLUMNS = (
    "product_id, name, price, carton_price, cost_per_unit, "
    "quantity_at_entry, quantity, color, size"
)


@dataclass
class Product:
    product_id: int | None
    name: str
    price: float
    carton_price: float | None
    cost_per_unit: float | None
    quantity_at_entry: int | None
    quantity: int
    color: str | None = None
    size: str | None = None

    @property
    def has_cost_basis(self) -> bool:
        return bool(self.carton_price and self.carton_price > 0)


def _cost_per_unit(carton_price: float | None, quantity: int) -> float | None:
    if not carton_price or quantity <= 0:
        return None
    return round(float(carton_price) / quantity, 4)


class ProductsRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row

    # ---------------------------- Queries ----------------------------

    def list_products(self) -> list[Product]:
        rows = self.conn.execute(
            f"SELECT {_COLUMNS} FROM products ORDER BY product_id DESC"
        ).fetchall()
        return [Product(**r) for r in rows]

    def get(self, product_id: int) -> Product | None:
        r = self.conn.execute(
            f"SELECT {_COLUMNS} FROM products WHERE product_id=?",
            (product_id,),
        ).fetchone()
        return Product(**r) if r else None

    def get_by_name(self, name: str) -> Product | None:
        r = self.conn.execute(
            f"SELECT {_COLUMNS} FROM products WHERE name=? ORDER BY product_id LIMIT 1",
            (name,),
        ).fetchone()
        return Product(**r) if r else None

    def resolve(self, product_id: int | None = None, name: str | None = None) -> Product:
        """
        Look up by id first, then by exact name. Raises ProductNotFound when
        neither resolves.
        """
        product = None
        if product_id:
            product = self.get(int(product_id))
        if product is None and name and name.strip():
            product = self.get_by_name(name.strip())
        if product is None:
            ref = product_id if product_id else name
            raise ProductNotFound(f"Product '{ref}' was not found.", product_id=product_id, name=name)
        return product

    def quantity_of(self, product_id: int) -> int:
        r = self.conn.execute("SELECT quantity FROM products WHERE product_id=?", (product_id,)).fetchone()
        if r is None:
            raise ProductNotFound(f"Product '{product_id}' was not found.", product_id=product_id)
        return int(r["quantity"])

    def stock_value(self) -> float:
        """Selling value of everything on hand (price * quantity)."""
        r = self.conn.execute(
            "SELECT COALESCE(SUM(price * quantity), 0) AS v FROM products WHERE quantity > 0"
        ).fetchone()
        return float(r["v"])

    # ---------------------------- Mutations ----------------------------

    def create(
        self,
        name: str,
        price: float,
        quantity: int = 0,
        carton_price: float | None = None,
        color: str | None = None,
        size: str | None = None,
    ) -> int:
        if not name or not name.strip():
            raise DomainError("Product name cannot be empty.")
        if price < 0:
            raise DomainError("Price cannot be negative.")
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                "INSERT INTO products(name, price, carton_price, cost_per_unit, "
                "quantity_at_entry, quantity, color, size) VALUES (?,?,?,?,?,?,?,?)",
                (
                    name.strip(),
                    float(price),
                    carton_price,
                    _cost_per_unit(carton_price, quantity),
                    quantity,
                    quantity,
                    color,
                    size,
                ),
            )
            return int(cur.lastrowid)

    def set_carton_price(self, product_id: int, carton_price: float | None) -> None:
        """
        Store a new carton price and freeze a fresh cost_per_unit against the
        quantity on hand right now. Caller owns the transaction.
        """
        qty = self.quantity_of(product_id)
        self.conn.execute(
            "UPDATE products SET carton_price=?, cost_per_unit=?, quantity_at_entry=? "
            "WHERE product_id=?",
            (carton_price, _cost_per_unit(carton_price, qty), qty, product_id),
        )

    # -- stock counters (caller owns the transaction) --

    def decrement_checked(self, product_id: int, qty: int) -> bool:
        """
        Compare-and-swap decrement: only succeeds while quantity >= qty.
        Returns False when stock is insufficient.
        """
        cur = self.conn.execute(
            "UPDATE products SET quantity = quantity - ? WHERE product_id=? AND quantity >= ?",
            (qty, product_id, qty),
        )
        return cur.rowcount == 1

    def increment(self, product_id: int, qty: int) -> None:
        self.conn.execute(
            "UPDATE products SET quantity = quantity + ? WHERE product_id=?",
            (qty, product_id),
        )

    def decrement_clamped(self, product_id: int, qty: int) -> None:
        self.conn.execute(
            "UPDATE products SET quantity = MAX(quantity - ?, 0) WHERE product_id=?",
            (qty, product_id),
        )
