from __future__ import annotations
from dataclasses import dataclass
import sqlite3

from ...errors import CustomerValidationFailed, DomainError, DuplicatePhoneNumber
from ..tx import immediate_tx


@dataclass
class Customer:
    customer_id: int | None
    name: str
    phone: str
    address: str | None
    email: str | None = None


class CustomersRepo:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # ---- Internal helpers -------------------------------------------------

    @staticmethod
    def _normalize_text(s: str | None) -> str | None:
        if s is None:
            return None
        return s.strip()

    @staticmethod
    def _ensure_non_empty(value: str | None, field_label: str) -> None:
        if value is None or value.strip() == "":
            raise CustomerValidationFailed(f"{field_label} cannot be empty.")

    # ---- Queries ----------------------------------------------------------

    def list_customers(self) -> list[Customer]:
        rows = self.conn.execute(
            "SELECT customer_id, name, phone, address, email "
            "FROM customers ORDER BY customer_id DESC"
        ).fetchall()
        return [Customer(**r) for r in rows]

    def search(self, term: str) -> list[Customer]:
        """
        LIKE match over id, name, phone and address.
        """
        pattern = f"%{term.strip()}%"
        rows = self.conn.execute(
            "SELECT customer_id, name, phone, address, email "
            "FROM customers "
            "WHERE CAST(customer_id AS TEXT) LIKE ? OR name LIKE ? OR phone LIKE ? OR address LIKE ? "
            "ORDER BY customer_id DESC",
            (pattern, pattern, pattern, pattern),
        ).fetchall()
        return [Customer(**r) for r in rows]

    def get(self, customer_id: int) -> Customer | None:
        r = self.conn.execute(
            "SELECT customer_id, name, phone, address, email "
            "FROM customers WHERE customer_id=?",
            (customer_id,),
        ).fetchone()
        return Customer(**r) if r else None

    def get_by_phone(self, phone: str) -> Customer | None:
        r = self.conn.execute(
            "SELECT customer_id, name, phone, address, email "
            "FROM customers WHERE phone=?",
            (self._normalize_text(phone),),
        ).fetchone()
        return Customer(**r) if r else None

    def has_transactions(self, customer_id: int) -> bool:
        return self.conn.execute(
            "SELECT 1 FROM customer_transactions WHERE customer_id=? LIMIT 1", (customer_id,)
        ).fetchone() is not None

    # ---- Mutations --------------------------------------------------------

    def create(self, name: str, phone: str, address: str | None = None, email: str | None = None) -> int:
        """
        Insert a new customer. Name and phone are required; the phone must be unused.
        """
        self._ensure_non_empty(name, "Name")
        self._ensure_non_empty(phone, "Phone")

        phone_n = self._normalize_text(phone)
        if self.get_by_phone(phone_n) is not None:
            raise DuplicatePhoneNumber(f"Phone number {phone_n} is already registered.", phone=phone_n)

        with immediate_tx(self.conn):
            cur = self.conn.execute(
                "INSERT INTO customers(name, phone, address, email) VALUES (?,?,?,?)",
                (self._normalize_text(name), phone_n, self._normalize_text(address), self._normalize_text(email)),
            )
            return int(cur.lastrowid)

    def update(self, customer_id: int, name: str, phone: str, address: str | None, email: str | None = None) -> None:
        self._ensure_non_empty(name, "Name")
        self._ensure_non_empty(phone, "Phone")

        phone_n = self._normalize_text(phone)
        other = self.get_by_phone(phone_n)
        if other is not None and other.customer_id != customer_id:
            raise DuplicatePhoneNumber(f"Phone number {phone_n} is already registered.", phone=phone_n)

        with immediate_tx(self.conn):
            self.conn.execute(
                "UPDATE customers SET name=?, phone=?, address=?, email=? WHERE customer_id=?",
                (self._normalize_text(name), phone_n, self._normalize_text(address),
                 self._normalize_text(email), customer_id),
            )

    def delete(self, customer_id: int) -> None:
        """Refused while the customer still owns ledger rows."""
        if self.has_transactions(customer_id):
            raise DomainError("Cannot delete customer: transactions exist for this customer.")
        with immediate_tx(self.conn):
            self.conn.execute("DELETE FROM customers WHERE customer_id=?", (customer_id,))
