# pos_ledger/tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - Every test gets its own in-memory SQLite DB with the full schema
#   (database.get_connection(":memory:"))
# - conn.row_factory = sqlite3.Row, PRAGMA foreign_keys=ON
# - Services share one fixed clock so every row lands on TODAY
# - Seed helpers: make_product / make_customer / sell
# ---------------------------------------------------------------------

from __future__ import annotations

import itertools
from datetime import datetime, timedelta

import pytest

from pos_ledger.database import get_connection
from pos_ledger.database.repositories.customers_repo import CustomersRepo
from pos_ledger.database.repositories.products_repo import ProductsRepo
from pos_ledger.modules.cashier.requests import CheckoutRequest, LineItemRequest
from pos_ledger.modules.cashier.service import CashierService
from pos_ledger.modules.daily_inventory.aggregator import DailyInventoryService
from pos_ledger.modules.financial.reconciliation import FinancialService
from pos_ledger.modules.returns.tracker import ReturnExchangeTracker

FIXED_NOW = datetime(2025, 3, 14, 10, 30, 0)
TODAY = FIXED_NOW.date()
YESTERDAY = TODAY - timedelta(days=1)


@pytest.fixture()
def conn():
    con = get_connection(":memory:")
    try:
        yield con
    finally:
        con.close()


@pytest.fixture()
def clock():
    return lambda: FIXED_NOW


# ---------- Services ----------
@pytest.fixture()
def daily(conn, clock):
    return DailyInventoryService(conn, clock=clock)


@pytest.fixture()
def financial(conn, daily, clock):
    return FinancialService(conn, daily, clock=clock)


@pytest.fixture()
def cashier(conn, daily, clock):
    return CashierService(conn, daily=daily, clock=clock)


@pytest.fixture()
def tracker(conn, financial, clock):
    return ReturnExchangeTracker(conn, financial, clock=clock)


# ---------- Seed helpers ----------
@pytest.fixture()
def make_product(conn):
    repo = ProductsRepo(conn)
    names = itertools.count(1)

    def _make(name=None, price=100.0, quantity=10, carton_price=None, **kw):
        pid = repo.create(name or f"Product {next(names)}", price, quantity=quantity, carton_price=carton_price, **kw)
        return repo.get(pid)

    return _make


@pytest.fixture()
def make_customer(conn):
    repo = CustomersRepo(conn)
    phones = itertools.count(1)

    def _make(name="Walk-in", phone=None, address=None):
        cid = repo.create(name, phone or f"0100000{next(phones):04d}", address)
        return repo.get(cid)

    return _make


@pytest.fixture()
def sell(cashier, make_customer):
    """
    Run a checkout for (product, qty[, discount]) tuples and return the invoice.
    """
    def _sell(lines, customer=None, amount_paid=0.0, **kw):
        customer = customer or make_customer()
        items = []
        for line in lines:
            product, qty, *rest = line
            items.append(
                LineItemRequest(quantity=qty, product_id=product.product_id, discount=rest[0] if rest else 0.0)
            )
        req = CheckoutRequest(items=items, customer_id=customer.customer_id, amount_paid=amount_paid, **kw)
        return cashier.run_checkout(req, "cashier")

    return _sell


@pytest.fixture()
def stock(conn):
    repo = ProductsRepo(conn)
    return lambda product: repo.quantity_of(product.product_id)


@pytest.fixture()
def count(conn):
    return lambda table: int(conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0])


@pytest.fixture()
def today():
    return TODAY.isoformat()


@pytest.fixture()
def yesterday():
    return YESTERDAY.isoformat()
