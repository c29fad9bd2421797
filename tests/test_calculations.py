"""Pure money helpers: line totals, invoice amounts, proration."""
import pytest

from pos_ledger.enums import InvoiceStatus, InvoiceType
from pos_ledger.modules.payments.calculations import (
    exchange_price_difference,
    invoice_amounts,
    invoice_status,
    invoice_type_for,
    line_total,
    prorate_payment,
)


def test_line_total_sale_applies_discount_per_unit():
    assert line_total(100, 10, 3) == (10.0, 270.0)


def test_line_total_return_zeroes_discount():
    discount, total = line_total(100, 10, -2)
    assert discount == 0.0
    assert total == -200.0


def test_prorate_payment_sums_exactly():
    shares = prorate_payment([100, 50, 30], 54.0)
    assert shares == [30.0, 15.0, 9.0]
    assert sum(shares) == pytest.approx(54.0)


def test_prorate_payment_last_line_takes_residual():
    shares = prorate_payment([1, 1, 1], 10.0)
    assert shares[:2] == [3.33, 3.33]
    assert shares[-1] == 3.34


def test_prorate_payment_refund_pays_each_line_its_total():
    assert prorate_payment([-90, -50], -140) == [-90.0, -50.0]
    assert prorate_payment([], 10) == []


def test_invoice_amounts_sale_and_return():
    assert invoice_amounts(370, 200) == (370.0, 200.0, 170.0)
    assert invoice_amounts(100, 150) == (100.0, 150.0, 0.0)
    # a pure return pays itself
    assert invoice_amounts(-90, 0) == (-90.0, -90.0, 0.0)


def test_invoice_amounts_ignores_negative_payment():
    assert invoice_amounts(100, -30) == (100.0, 0.0, 100.0)
    assert invoice_status(100, 0.0) == InvoiceStatus.SENT


@pytest.mark.parametrize(
    "total, paid, expected",
    [
        (-90, -90, InvoiceStatus.PAID),
        (100, 0, InvoiceStatus.SENT),
        (100, 40, InvoiceStatus.PARTIALLY_PAID),
        (100, 100, InvoiceStatus.PAID),
    ],
)
def test_invoice_status(total, paid, expected):
    assert invoice_status(total, paid) == expected


def test_invoice_type_for_negative_total_is_return():
    assert invoice_type_for(-1) == InvoiceType.RETURN
    assert invoice_type_for(10, InvoiceType.ESTIMATE) == InvoiceType.ESTIMATE


def test_exchange_price_difference_sign():
    assert exchange_price_difference(50, 70, 1) == 20.0
    assert exchange_price_difference(70, 50, 2) == -40.0
