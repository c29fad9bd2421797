"""Checkout pipeline: customer, ledger rows, invoice, aggregate, activity."""
import sqlite3

import pytest

from pos_ledger.database.repositories.activity_repo import ActivityRepo
from pos_ledger.database.repositories.customers_repo import CustomersRepo
from pos_ledger.database.repositories.transactions_repo import TransactionsRepo
from pos_ledger.enums import InvoiceStatus, InvoiceType, TransactionKind
from pos_ledger.errors import DatabaseConflict, InsufficientStock, InvoiceNotFound
from pos_ledger.modules.cashier.requests import (
    CheckoutRequest,
    LineItemRequest,
    ReturnItemRequest,
    ReturnRequest,
)


def test_cashier_simple_sale(conn, make_product, sell, stock):
    p = make_product(price=100, quantity=10)
    inv = sell([(p, 3, 10)])

    assert inv.invoice_number == "0001"
    assert inv.order_number == "0001"
    assert inv.total_amount == 270.0
    assert inv.remaining_amount == 270.0
    assert inv.status == InvoiceStatus.SENT
    assert inv.invoice_type == InvoiceType.SALE
    assert stock(p) == 7

    rows = TransactionsRepo(conn).list_for_invoice("0001")
    assert len(rows) == 1
    assert rows[0].kind == TransactionKind.SALE
    assert rows[0].unit_cost is None


def test_cashier_paid_in_full_and_numbers_advance(make_product, sell):
    p = make_product(price=50, quantity=10)
    first = sell([(p, 1)], amount_paid=50)
    second = sell([(p, 2)], amount_paid=40)
    assert first.status == InvoiceStatus.PAID
    assert second.invoice_number == "0002"
    assert second.status == InvoiceStatus.PARTIALLY_PAID
    assert second.remaining_amount == 60.0


def test_cashier_payment_prorated_over_lines(conn, make_product, sell):
    a = make_product(price=100, quantity=10)
    b = make_product(price=50, quantity=10)
    inv = sell([(a, 1), (b, 1)], amount_paid=75)
    paid = [t.amount_paid for t in TransactionsRepo(conn).list_for_invoice(inv.invoice_number)]
    assert paid == [50.0, 25.0]


def test_cashier_shipping_stays_on_invoice(conn, make_product, sell):
    p = make_product(price=100, quantity=10)
    inv = sell([(p, 1)], shipping_cost=30)
    assert inv.shipping_cost == 30.0
    assert inv.total_amount == 100.0
    assert all(t.shipping_cost == 0 for t in TransactionsRepo(conn).list_for_invoice(inv.invoice_number))


# ---------------- customers ----------------

def test_cashier_rejects_known_phone_for_new_customer(cashier, make_customer, make_product, count):
    make_customer(name="Mona", phone="01000000001")
    p = make_product()
    res = cashier.checkout(
        CheckoutRequest(
            items=[LineItemRequest(quantity=1, product_id=p.product_id)],
            customer_name="Someone else",
            customer_phone="01000000001",
        )
    )
    assert not res.success
    assert res.error_code == "duplicate_phone_number"
    assert count("customer_transactions") == 0


def test_cashier_new_customer_needs_name(cashier, make_product):
    p = make_product()
    res = cashier.checkout(
        CheckoutRequest(items=[LineItemRequest(quantity=1, product_id=p.product_id)], customer_phone="0111")
    )
    assert res.error_code == "customer_validation_failed"


def test_cashier_creates_customer_from_request(conn, cashier, make_product):
    p = make_product()
    res = cashier.checkout(
        CheckoutRequest(
            items=[LineItemRequest(quantity=1, product_id=p.product_id)],
            customer_name="Karim",
            customer_phone="0122",
        ),
        "cashier",
    )
    assert res.success, res.message
    created = CustomersRepo(conn).get_by_phone("0122")
    assert created is not None
    assert res.data.customer_id == created.customer_id


# ---------------- line validation ----------------

def test_cashier_unknown_product(cashier, make_customer):
    c = make_customer()
    res = cashier.checkout(
        CheckoutRequest(items=[LineItemRequest(quantity=1, product_id=999)], customer_id=c.customer_id)
    )
    assert not res.success
    assert res.error_code == "product_not_found"


def test_cashier_product_by_name(make_product, cashier, make_customer, stock):
    p = make_product(name="Blue Shirt", quantity=4)
    c = make_customer()
    res = cashier.checkout(
        CheckoutRequest(items=[LineItemRequest(quantity=1, product_name="Blue Shirt")], customer_id=c.customer_id)
    )
    assert res.success
    assert stock(p) == 3


def test_cashier_combined_lines_checked_before_any_write(make_product, make_customer, cashier, stock, count):
    p = make_product(quantity=5)
    c = make_customer()
    res = cashier.checkout(
        CheckoutRequest(
            items=[
                LineItemRequest(quantity=3, product_id=p.product_id),
                LineItemRequest(quantity=3, product_id=p.product_id),
            ],
            customer_id=c.customer_id,
        )
    )
    assert res.error_code == "insufficient_stock"
    assert stock(p) == 5
    assert count("customer_transactions") == 0
    assert count("invoices") == 0


def test_cashier_rejects_empty_cart_and_bad_discount(cashier, make_product, make_customer):
    p = make_product(price=20)
    c = make_customer()
    empty = cashier.checkout(CheckoutRequest(items=[], customer_id=c.customer_id))
    assert empty.error_code == "invalid_line_item"
    bad = cashier.checkout(
        CheckoutRequest(items=[LineItemRequest(quantity=1, product_id=p.product_id, discount=25)],
                        customer_id=c.customer_id)
    )
    assert bad.error_code == "invalid_line_item"


def test_cashier_rejects_negative_payment(cashier, make_product, make_customer, stock, count):
    p = make_product(price=20, quantity=5)
    res = cashier.checkout(
        CheckoutRequest(items=[LineItemRequest(quantity=1, product_id=p.product_id)],
                        customer_id=make_customer().customer_id, amount_paid=-10)
    )
    assert res.error_code == "invalid_line_item"
    assert stock(p) == 5
    assert count("customer_transactions") == 0


def test_cashier_partial_cart_reports_applied_lines(monkeypatch, cashier, make_product, make_customer, stock, count):
    a = make_product(quantity=10)
    b = make_product(quantity=10)
    c = make_customer()
    ledger = cashier.recorder.ledger
    original = ledger.apply

    def flaky(product, quantity):
        if product.product_id == b.product_id:
            raise InsufficientStock("taken by another till", product_id=b.product_id)
        original(product, quantity)

    monkeypatch.setattr(ledger, "apply", flaky)
    req = CheckoutRequest(
        items=[LineItemRequest(quantity=2, product_id=a.product_id), LineItemRequest(quantity=1, product_id=b.product_id)],
        customer_id=c.customer_id,
    )
    with pytest.raises(InsufficientStock) as ei:
        cashier.run_checkout(req)

    assert len(ei.value.details["applied_transaction_ids"]) == 1
    assert stock(a) == 8
    assert stock(b) == 10
    assert count("customer_transactions") == 1
    assert count("invoices") == 0


def _fail_on(monkeypatch, cashier, product, error):
    ledger = cashier.recorder.ledger
    original = ledger.apply

    def flaky(p, quantity):
        if p.product_id == product.product_id:
            raise error
        original(p, quantity)

    monkeypatch.setattr(ledger, "apply", flaky)


def test_cashier_partial_cart_queues_the_day(monkeypatch, cashier, daily, make_product, make_customer, today):
    a = make_product(quantity=10)
    b = make_product(quantity=10)
    _fail_on(monkeypatch, cashier, b, InsufficientStock("taken by another till", product_id=b.product_id))
    req = CheckoutRequest(
        items=[LineItemRequest(quantity=2, product_id=a.product_id), LineItemRequest(quantity=1, product_id=b.product_id)],
        customer_id=make_customer().customer_id,
    )
    with pytest.raises(InsufficientStock) as ei:
        cashier.run_checkout(req)

    [entry] = daily.pending(today)
    assert entry["kind"] == "checkout"
    assert entry["reference"] == str(ei.value.details["applied_transaction_ids"][0])
    assert daily.get_inventory_by_date(today).pending_reconciliation == 1

    assert daily.replay_pending() == {today: True}
    day = daily.get_inventory_by_date(today)
    assert day.total_quantity_sold == 2
    assert day.pending_reconciliation == 0


def test_cashier_partial_cart_database_error(monkeypatch, cashier, daily, make_product, make_customer, today):
    a = make_product(quantity=10)
    b = make_product(quantity=10)
    _fail_on(monkeypatch, cashier, b, sqlite3.OperationalError("database is locked"))
    req = CheckoutRequest(
        items=[LineItemRequest(quantity=1, product_id=a.product_id), LineItemRequest(quantity=1, product_id=b.product_id)],
        customer_id=make_customer().customer_id,
    )
    with pytest.raises(DatabaseConflict) as ei:
        cashier.run_checkout(req)

    assert len(ei.value.details["applied_transaction_ids"]) == 1
    assert len(daily.pending(today)) == 1


def test_cashier_failure_on_first_line_queues_nothing(monkeypatch, cashier, daily, make_product, make_customer, today):
    a = make_product(quantity=10)
    _fail_on(monkeypatch, cashier, a, InsufficientStock("gone", product_id=a.product_id))
    req = CheckoutRequest(items=[LineItemRequest(quantity=1, product_id=a.product_id)], customer_id=make_customer().customer_id)
    with pytest.raises(InsufficientStock):
        cashier.run_checkout(req)
    assert daily.pending(today) == []


# ---------------- returns through the till ----------------

def test_cashier_till_return_against_invoice(conn, cashier, make_product, sell, stock, daily, today):
    p = make_product(price=100, quantity=10)
    sale = sell([(p, 3)])
    customer = CustomersRepo(conn).get(sale.customer_id)

    res = cashier.checkout(
        CheckoutRequest(
            items=[LineItemRequest(quantity=-1, product_id=p.product_id)],
            customer_id=customer.customer_id,
            original_invoice_number=sale.invoice_number,
        )
    )
    assert res.success, res.message
    ret = res.data
    assert ret.invoice_type == InvoiceType.RETURN
    assert ret.status == InvoiceStatus.PAID
    assert ret.total_amount == -100.0
    assert stock(p) == 8
    assert cashier.tracking.available_quantity(sale.invoice_number, p.product_id) == 2
    assert daily.get_inventory_by_date(today).returns_count == 1


def test_cashier_till_return_over_available(cashier, make_product, sell, stock):
    p = make_product(quantity=10)
    sale = sell([(p, 3)])
    res = cashier.checkout(
        CheckoutRequest(
            items=[LineItemRequest(quantity=-4, product_id=p.product_id)],
            customer_id=sale.customer_id,
            original_invoice_number=sale.invoice_number,
        )
    )
    assert res.error_code == "quantity_exceeds_available"
    assert stock(p) == 7


def test_cashier_till_return_unknown_invoice(cashier, make_product, make_customer):
    p = make_product()
    c = make_customer()
    res = cashier.checkout(
        CheckoutRequest(
            items=[LineItemRequest(quantity=-1, product_id=p.product_id)],
            customer_id=c.customer_id,
            original_invoice_number="9999",
        )
    )
    assert res.error_code == "original_invoice_not_found"


# ---------------- lookups / side effects ----------------

def test_cashier_get_invoice_items(cashier, tracker, make_product, sell):
    a = make_product(price=100, quantity=10)
    b = make_product(price=40, quantity=10)
    sale = sell([(a, 3, 10), (b, 1)])
    tracker.save_return_tracking(ReturnRequest(sale.invoice_number, [ReturnItemRequest(a.product_id, 1)]))

    items = {i["product_id"]: i for i in cashier.get_invoice_items(sale.invoice_number)}
    assert items[a.product_id]["quantity"] == 3
    assert items[a.product_id]["total_price"] == 270.0
    assert items[a.product_id]["paid_unit_price"] == 90.0
    assert items[a.product_id]["returned_quantity"] == 1
    assert items[a.product_id]["available_quantity"] == 2
    assert items[b.product_id]["available_quantity"] == 1

    with pytest.raises(InvoiceNotFound):
        cashier.get_invoice_items("9999")


def test_cashier_records_activity(conn, make_product, sell):
    p = make_product()
    inv = sell([(p, 1)])
    last = ActivityRepo(conn).recent(1, "Invoice")[0]
    assert last["action"] == "Checkout"
    assert last["entity_name"] == inv.invoice_number
    assert last["created_at"] == inv.invoice_date == "2025-03-14 10:30:00"


def test_cashier_closed_day_keeps_sale_and_queues_day(daily, make_product, sell, stock, today):
    daily.close(today, "manager")
    p = make_product(price=100, quantity=10)
    inv = sell([(p, 2)])

    assert inv.invoice_number == "0001"
    assert stock(p) == 8
    day = daily.get_inventory_by_date(today)
    assert day.pending_reconciliation == 1
    assert day.total_sales == 0
    assert [e["kind"] for e in daily.pending(today)] == ["checkout"]

    assert daily.replay_pending() == {today: True}
    day = daily.get_inventory_by_date(today)
    assert day.total_sales == 200.0
    assert day.pending_reconciliation == 0
    assert day.is_closed
