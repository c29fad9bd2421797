"""Editing and deleting single ledger rows."""
import pytest

from pos_ledger.database.repositories.customers_repo import CustomersRepo
from pos_ledger.database.repositories.transactions_repo import TransactionsRepo
from pos_ledger.enums import TransactionKind
from pos_ledger.errors import DomainError, InsufficientStock
from pos_ledger.modules.cashier.requests import (
    ExchangeItemRequest,
    ExchangeRequest,
    ReturnItemRequest,
    ReturnRequest,
)
from pos_ledger.modules.customer.transactions import CustomerTransactionsService


@pytest.fixture()
def edits(conn, daily, clock):
    return CustomerTransactionsService(conn, daily=daily, clock=clock)


def _only_row(conn, invoice):
    return TransactionsRepo(conn).list_for_invoice(invoice.invoice_number)[0]


def test_edit_quantity_moves_stock_by_delta(conn, edits, daily, make_product, sell, stock, today):
    p = make_product(price=100, quantity=10)
    row = _only_row(conn, sell([(p, 3, 10)]))
    assert stock(p) == 7

    updated = edits.edit_transaction(row.transaction_id, quantity=5, user_id="clerk")
    assert updated.quantity == 5
    assert updated.total_price == 450.0
    assert stock(p) == 5
    assert daily.get_inventory_by_date(today).total_quantity_sold == 5

    edits.edit_transaction(row.transaction_id, quantity=1)
    assert stock(p) == 9


def test_edit_refuses_when_stock_is_short(conn, edits, make_product, sell, stock):
    p = make_product(price=100, quantity=4)
    row = _only_row(conn, sell([(p, 3)]))
    with pytest.raises(InsufficientStock):
        edits.edit_transaction(row.transaction_id, quantity=10)
    assert stock(p) == 1
    assert TransactionsRepo(conn).get(row.transaction_id).quantity == 3

    res = edits.edit(row.transaction_id, quantity=10)
    assert res.error_code == "insufficient_stock"


def test_edit_sign_flip_turns_sale_into_return(conn, edits, make_product, sell, stock):
    p = make_product(price=100, quantity=10)
    row = _only_row(conn, sell([(p, 3, 10)]))
    updated = edits.edit_transaction(row.transaction_id, quantity=-2)
    assert updated.kind == TransactionKind.RETURN
    assert updated.discount == 0.0
    assert updated.total_price == -200.0
    assert stock(p) == 12


def test_edit_validates_input(conn, edits, make_product, sell):
    p = make_product(price=100, quantity=10)
    row = _only_row(conn, sell([(p, 1)]))
    assert edits.edit(row.transaction_id, quantity=0).error_code == "invalid_line_item"
    assert edits.edit(row.transaction_id, discount=150).error_code == "invalid_line_item"
    assert edits.edit(999, quantity=1).error_code == "transaction_not_found"


def test_edit_of_tracked_return_quantity_is_refused(conn, edits, tracker, make_product, sell):
    p = make_product(price=100, quantity=10)
    sale = sell([(p, 3)])
    out = tracker.save_return_tracking(ReturnRequest(sale.invoice_number, [ReturnItemRequest(p.product_id, 1)]))
    with pytest.raises(DomainError):
        edits.edit_transaction(out.transactions[0].transaction_id, quantity=-2)


def test_delete_sale_restores_stock(conn, edits, daily, make_product, sell, stock, today):
    p = make_product(price=100, quantity=10)
    row = _only_row(conn, sell([(p, 3)]))
    edits.delete_transaction(row.transaction_id, "clerk")

    assert stock(p) == 10
    assert TransactionsRepo(conn).get(row.transaction_id) is None
    assert daily.get_inventory_by_date(today).transactions_count == 0


def test_delete_tracked_return_frees_the_quantity(conn, edits, tracker, make_product, sell, stock, count):
    p = make_product(price=100, quantity=10)
    sale = sell([(p, 3)])
    out = tracker.save_return_tracking(ReturnRequest(sale.invoice_number, [ReturnItemRequest(p.product_id, 1)]))
    assert stock(p) == 8

    res = edits.delete(out.transactions[0].transaction_id)
    assert res.success, res.message
    assert stock(p) == 7
    assert count("return_trackings") == 0
    assert tracker.tracking.available_quantity(sale.invoice_number, p.product_id) == 3



def _exchange_one(tracker, sale, old, new):
    return tracker.save_exchange_tracking(
        ExchangeRequest(sale.invoice_number, [ExchangeItemRequest(old.product_id, new.product_id, 1)])
    )


def test_edit_of_exchange_leg_is_refused(conn, edits, tracker, make_product, sell, stock):
    a = make_product(price=50, quantity=10)
    b = make_product(price=70, quantity=10)
    sale = sell([(a, 2)])
    returned, issued = _exchange_one(tracker, sale, a, b).transactions

    with pytest.raises(DomainError):
        edits.edit_transaction(returned.transaction_id, quantity=-5)
    assert edits.edit(issued.transaction_id, price=10).error_code == "domain_error"
    assert (stock(a), stock(b)) == (9, 9)
    assert TransactionsRepo(conn).get(returned.transaction_id).quantity == -1

    # settling the payment on the issued leg is still allowed
    assert edits.edit_transaction(issued.transaction_id, amount_paid=5).amount_paid == 5


def test_delete_of_exchange_leg_is_refused(conn, edits, tracker, make_product, sell, stock, count):
    a = make_product(price=50, quantity=10)
    b = make_product(price=70, quantity=10)
    sale = sell([(a, 2)])
    out = _exchange_one(tracker, sale, a, b)

    for leg in out.transactions:
        res = edits.delete(leg.transaction_id)
        assert not res.success
        assert "delete the exchange" in res.message
    assert count("customer_transactions") == 3
    assert count("exchange_trackings") == 1
    assert (stock(a), stock(b)) == (9, 9)
    assert tracker.tracking.available_quantity(sale.invoice_number, a.product_id) == 1

def test_customer_with_transactions_cannot_be_deleted(conn, make_product, sell):
    p = make_product()
    inv = sell([(p, 1)])
    with pytest.raises(DomainError):
        CustomersRepo(conn).delete(inv.customer_id)
