"""Year figures and customer balances built from the ledger."""
import pytest

from pos_ledger.modules.cashier.requests import (
    ExchangeItemRequest,
    ExchangeRequest,
    ReturnItemRequest,
    ReturnRequest,
)
from pos_ledger.modules.reporting.annual import AnnualReport


@pytest.fixture()
def trading_day(make_product, make_customer, sell, tracker):
    """
    Sale of 3 x A (discount 10) + 2 x B paid 200, one A returned,
    one B exchanged for C.
    """
    a = make_product(name="A", price=100, carton_price=60, quantity=10)
    b = make_product(name="B", price=50, quantity=10)
    c = make_product(name="C", price=70, quantity=10)
    customer = make_customer(name="Hana")
    sale = sell([(a, 3, 10), (b, 2)], customer=customer, amount_paid=200)
    tracker.save_return_tracking(ReturnRequest(sale.invoice_number, [ReturnItemRequest(a.product_id, 1)]))
    tracker.save_exchange_tracking(
        ExchangeRequest(sale.invoice_number, [ExchangeItemRequest(b.product_id, c.product_id, 1)])
    )
    return customer


def test_annual_year_summary(conn, trading_day):
    s = AnnualReport(conn).year_summary(2025)
    assert s["year"] == 2025
    assert s["gross_sales"] == 440.0
    assert s["returns_value"] == 140.0
    assert s["regular_returns_value"] == 90.0
    assert s["exchanges_value"] == 50.0
    assert s["net_sales"] == 300.0
    assert s["total_discounts"] == 10.0
    assert s["total_cost"] == 120.0
    assert s["net_profit"] == 90.0
    assert s["profit_margin"] == 30.0
    assert s["transactions_count"] == 5
    assert s["sales_count"] == 3
    assert s["returns_count"] == 1
    assert s["exchanges_count"] == 1
    assert s["inventory_value"] == 1880.0
    assert s["products_count"] == 3


def test_annual_monthly_breakdown(conn, trading_day):
    months = AnnualReport(conn).monthly_breakdown(2025)
    assert [m["month"] for m in months] == list(range(1, 13))
    assert months[2]["net_sales"] == 300.0
    assert months[0]["transactions_count"] == 0
    assert months[11]["profit_margin"] == 0.0


def test_annual_other_year_is_empty(conn, trading_day):
    s = AnnualReport(conn).year_summary(2024)
    assert s["gross_sales"] == 0.0
    assert s["transactions_count"] == 0


def test_annual_customer_balances(conn, trading_day):
    [row] = AnnualReport(conn).customer_balances()
    assert row["customer_id"] == trading_day.customer_id
    assert row["transactions_count"] == 5
    assert row["total_purchases"] == 440.0
    assert row["total_returns"] == 140.0
    assert row["total_paid"] == 220.0
    assert row["remaining"] == 80.0
    assert row["payment_ratio"] == 50.0
    assert row["returns_count"] == 1
    assert row["exchanges_count"] == 1
