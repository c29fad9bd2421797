"""FinancialService: folding returns / exchanges into today's aggregate."""
from pos_ledger.database.repositories.transactions_repo import TransactionsRepo
from pos_ledger.modules.cashier.requests import ReturnItemRequest, ReturnRequest


def test_financial_return_on_closed_day_is_queued(tracker, daily, make_product, sell, stock, today):
    p = make_product(price=100, quantity=10)
    sale = sell([(p, 2)])
    daily.close(today, "manager")

    out = tracker.save_return_tracking(ReturnRequest(sale.invoice_number, [ReturnItemRequest(p.product_id, 1)]))
    assert out.reconciled is False
    assert stock(p) == 9

    inv = daily.get_inventory_by_date(today)
    assert inv.pending_reconciliation == 1
    assert inv.returns_count == 0
    assert [e["kind"] for e in daily.pending(today)] == ["return"]

    daily.replay_pending(today)
    inv = daily.get_inventory_by_date(today)
    assert inv.returns_count == 1
    assert inv.total_sales == 100.0


def test_financial_skips_back_dated_rows(conn, financial, daily, make_product, sell, today):
    p = make_product(price=100, quantity=10)
    inv = sell([(p, 1)])
    tx = TransactionsRepo(conn).list_for_invoice(inv.invoice_number)[0]
    tx.date = "2025-03-13 09:00:00"
    snapshots = len(daily.sale_snapshots(today))

    assert financial.process_return([tx], "legacy") is True
    assert len(daily.sale_snapshots(today)) == snapshots
    assert daily.get_inventory_by_date(today).returns_count == 1


def test_financial_failure_is_queued_not_raised(monkeypatch, conn, financial, daily, make_product, sell, today):
    p = make_product(price=100, quantity=10)
    inv = sell([(p, 1)])
    tx = TransactionsRepo(conn).list_for_invoice(inv.invoice_number)[0]
    before = daily.get_inventory_by_date(today)

    def boom(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(daily, "apply_transaction", boom)
    assert financial.process_exchange([tx], "0042", 10.0) is False

    after = daily.get_inventory_by_date(today)
    assert after.pending_reconciliation == 1
    assert after.exchanges_count == before.exchanges_count
    pending = daily.pending(today)
    assert pending[0]["kind"] == "exchange"
    assert pending[0]["reference"] == "0042"
    assert pending[0]["error"] == "boom"


def test_financial_recalculate_profits_skips_idle_days(financial, make_product, sell, today, yesterday):
    p = make_product(price=100, carton_price=60, quantity=10)
    sell([(p, 1)])
    assert financial.recalculate_profits(yesterday, today) == {today: True}
    assert financial.replay_pending() == {}
