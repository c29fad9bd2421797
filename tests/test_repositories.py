"""Repository queries not covered through the services."""
import pytest

from pos_ledger.database.repositories import (
    ActivityRepo,
    CustomersRepo,
    InvoicesRepo,
    ProductsRepo,
    TrackingRepo,
    TransactionsRepo,
)
from pos_ledger.errors import DomainError, DuplicatePhoneNumber, ProductNotFound
from pos_ledger.modules.cashier.requests import (
    ExchangeItemRequest,
    ExchangeRequest,
    ReturnItemRequest,
    ReturnRequest,
)


def test_products_repo_lookup_and_cost_basis(conn, make_product):
    repo = ProductsRepo(conn)
    costed = make_product(name="Kettle", price=100, carton_price=60, quantity=10)
    plain = make_product(name="Cup", price=5, quantity=0)

    assert [p.name for p in repo.list_products()] == ["Cup", "Kettle"]
    assert repo.get_by_name("Kettle").product_id == costed.product_id
    assert repo.resolve(name=" Kettle ").product_id == costed.product_id
    assert costed.has_cost_basis
    assert costed.cost_per_unit == 6.0
    assert not plain.has_cost_basis
    assert plain.cost_per_unit is None
    assert repo.stock_value() == 1000.0

    with pytest.raises(ProductNotFound):
        repo.resolve(999, "nope")
    with pytest.raises(DomainError):
        repo.create("  ", 10)
    with pytest.raises(DomainError):
        repo.create("Bad", -1)


def test_customers_repo_search_and_update(conn, make_customer):
    repo = CustomersRepo(conn)
    mona = make_customer(name="Mona", phone="0100")
    make_customer(name="Omar", phone="0200")

    assert [c.name for c in repo.search("mon")] == ["Mona"]
    assert [c.name for c in repo.search("0200")] == ["Omar"]

    repo.update(mona.customer_id, "Mona S.", "0101", "Giza", "mona@example.com")
    updated = repo.get(mona.customer_id)
    assert (updated.name, updated.phone, updated.email) == ("Mona S.", "0101", "mona@example.com")

    with pytest.raises(DuplicatePhoneNumber):
        repo.update(mona.customer_id, "Mona", "0200", None)
    with pytest.raises(DuplicatePhoneNumber):
        repo.create("Other", "0101")


def test_customers_repo_delete_without_transactions(conn, make_customer):
    repo = CustomersRepo(conn)
    c = make_customer()
    repo.delete(c.customer_id)
    assert repo.get(c.customer_id) is None


def test_transactions_repo_queries(conn, make_product, make_customer, sell):
    repo = TransactionsRepo(conn)
    p = make_product(quantity=10)
    buyer = make_customer()
    first = sell([(p, 1)], customer=buyer)
    sell([(p, 2)], customer=buyer)
    sell([(p, 1)])

    mine = repo.list_for_customer(buyer.customer_id)
    assert [t.quantity for t in mine] == [1, 2]
    ids = [t.transaction_id for t in mine]
    assert [t.transaction_id for t in repo.get_many(reversed(ids))] == ids
    assert repo.get_many([]) == []
    assert repo.list_for_invoice(first.invoice_number)[0].transaction_id == ids[0]
    assert repo.dates_for_product(p.product_id) == ["2025-03-14"]


def test_invoices_repo_listing(conn, make_product, make_customer, sell):
    repo = InvoicesRepo(conn)
    p = make_product(price=10, quantity=10)
    buyer = make_customer(name="Lina")
    inv = sell([(p, 2)], customer=buyer, amount_paid=5)
    sell([(p, 1)])

    rows = repo.list_invoices(buyer.customer_id)
    assert len(rows) == 1
    assert rows[0]["invoice_number"] == inv.invoice_number
    assert rows[0]["customer_name"] == "Lina"
    assert rows[0]["remaining_amount"] == 15.0
    assert len(repo.list_invoices()) == 2
    assert repo.max_numeric("invoice_number") == 2
    with pytest.raises(ValueError):
        repo.max_numeric("customer_id")


def test_tracking_repo_lists(conn, tracker, make_product, sell):
    a = make_product(price=50, quantity=10)
    b = make_product(price=50, quantity=10)
    sale = sell([(a, 3)])
    tracker.save_return_tracking(ReturnRequest(sale.invoice_number, [ReturnItemRequest(a.product_id, 1)]))
    tracker.save_exchange_tracking(
        ExchangeRequest(sale.invoice_number, [ExchangeItemRequest(a.product_id, b.product_id, 1)])
    )

    repo = TrackingRepo(conn)
    [ret] = repo.list_returns(sale.invoice_number)
    [exc] = repo.list_exchanges(sale.invoice_number)
    assert ret.returned_quantity == 1
    assert exc.new_product_id == b.product_id
    assert exc.price_difference == 0.0
    assert repo.return_for_transaction(ret.transaction_id).return_id == ret.return_id


def test_activity_repo_recent(conn, make_product, sell):
    p = make_product(quantity=10)
    for _ in range(3):
        sell([(p, 1)])
    repo = ActivityRepo(conn)
    assert len(repo.recent(2)) == 2
    assert {r["entity_type"] for r in repo.recent(10, "Invoice")} == {"Invoice"}
