"""Formatting / parsing helpers and the activity sink."""
import logging
from datetime import date, datetime

import pytest

from pos_ledger.database.repositories.activity_repo import ActivityRepo
from pos_ledger.modules.activity import get_activity_logger, log_activity, log_event
from pos_ledger.modules.cashier.requests import ReturnItemRequest, ReturnRequest
from pos_ledger.utils.helpers import day_bounds, fmt_money, now_str, round_money, today_str
from pos_ledger.utils.validators import non_empty, parse_date, parse_float, try_parse_float


def test_utils_fmt_money():
    assert fmt_money(1234.5) == "1,234.50"
    assert fmt_money("12") == "12.00"
    assert fmt_money("abc") == "abc"
    assert fmt_money(None, sentinel="-") == "-"
    with pytest.raises(ValueError):
        fmt_money("abc", strict=True)


def test_utils_round_money_never_negative_zero():
    assert round_money(-0.001) == 0.0
    assert str(round_money(-0.001)) == "0.0"
    assert round_money(2.675, 1) == 2.7


def test_utils_day_bounds_and_timestamps():
    assert day_bounds(date(2025, 3, 14)) == ("2025-03-14 00:00:00", "2025-03-15 00:00:00")
    assert day_bounds(date(2024, 12, 31))[1] == "2025-01-01 00:00:00"
    assert now_str(datetime(2025, 3, 14, 9, 5, 7)) == "2025-03-14 09:05:07"
    assert today_str() == date.today().isoformat()


def test_utils_parse_date_accepts_several_shapes():
    d = date(2025, 3, 14)
    assert parse_date(d) == d
    assert parse_date(datetime(2025, 3, 14, 23, 59)) == d
    assert parse_date("2025-03-14") == d
    assert parse_date("2025-03-14 10:30:00") == d
    with pytest.raises(ValueError):
        parse_date("14/03/2025")


def test_utils_number_parsing():
    assert try_parse_float("3.5") == (True, 3.5)
    assert try_parse_float(None) == (False, None)
    assert parse_float(2) == 2.0
    with pytest.raises(ValueError):
        parse_float("x")
    assert non_empty("  a ")
    assert not non_empty("   ")


def test_activity_logger_is_configured_once():
    first = get_activity_logger()
    second = get_activity_logger()
    assert first is second
    assert len(first.handlers) == 1


def test_activity_log_event_carries_payload(caplog):
    logger = get_activity_logger()
    with caplog.at_level(logging.INFO, logger=logger.name):
        log_event(logger, "Close", "day closed", {"day": "2025-03-14", "action": "ignored"})
    record = caplog.records[-1]
    assert record.extra_payload == {"action": "Close", "day": "2025-03-14"}


def test_activity_row_written(conn):
    log_id = log_activity(conn, "Update", "Product", "Mug", "price 10 -> 12", "owner", entity_id=7)
    row = conn.execute("SELECT * FROM activity_logs WHERE log_id = ?", (log_id,)).fetchone()
    assert row["entity_id"] == 7
    assert row["user_id"] == "owner"


def test_activity_failure_is_swallowed(conn):
    conn.execute("DROP TABLE activity_logs")
    assert log_activity(conn, "Update", "Product") is None


def test_activity_rows_follow_the_service_clock(conn, daily, tracker, make_product, sell, today):
    p = make_product(price=50, quantity=10)
    sale = sell([(p, 2)])
    tracker.save_return_tracking(ReturnRequest(sale.invoice_number, [ReturnItemRequest(p.product_id, 1)]))
    daily.close(today, "owner")

    stamps = {r["action"]: r["created_at"] for r in ActivityRepo(conn).recent(10)}
    assert stamps == {
        "Checkout": "2025-03-14 10:30:00",
        "Return": "2025-03-14 10:30:00",
        "Close": "2025-03-14 10:30:00",
    }


def test_activity_explicit_timestamp(conn):
    log_id = log_activity(conn, "Update", "Product", created_at="2024-01-02 03:04:05")
    row = conn.execute("SELECT created_at FROM activity_logs WHERE log_id = ?", (log_id,)).fetchone()
    assert row["created_at"] == "2024-01-02 03:04:05"
