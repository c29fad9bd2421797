"""CSV export of a day's sheets."""
import csv

import pytest

from pos_ledger.errors import DomainError
from pos_ledger.modules.daily_inventory.export import DailyInventoryExporter


@pytest.fixture()
def exporter(daily):
    return DailyInventoryExporter(daily)


def test_export_writes_one_file_per_sheet(tmp_path, exporter, make_product, sell, today):
    p = make_product(name="Mug", price=25, quantity=10)
    sell([(p, 2)])

    paths = exporter.export_csv(today, tmp_path)
    assert sorted(x.name for x in paths) == sorted(
        f"{today}_{sheet}.csv" for sheet in ("summary", "products", "customers", "transactions")
    )
    assert not list(tmp_path.glob(".export_*"))

    with open(tmp_path / f"{today}_products.csv", newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert rows[0][0] == "Product ID"
    assert rows[1][1] == "Mug"

    with open(tmp_path / f"{today}_transactions.csv", newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert rows[1][4] == "Sale"


def test_export_summary_only(tmp_path, exporter, make_product, sell, today):
    sell([(make_product(), 1)])
    paths = exporter.export_csv(today, tmp_path, detailed=False)
    assert [x.name for x in paths] == [f"{today}_summary.csv"]
    summary = dict(exporter.summary_rows(today))
    assert summary["Status"] == "Active"
    assert summary["Transactions"] == 1


def test_export_deadline(tmp_path, exporter, daily, today):
    daily.get_or_create(today)
    with pytest.raises(DomainError):
        exporter.export_csv(today, tmp_path, deadline_seconds=-1)
    assert list(tmp_path.iterdir()) == []


def test_export_needs_existing_folder(tmp_path, exporter, daily, today):
    daily.get_or_create(today)
    with pytest.raises(DomainError):
        exporter.export_csv(today, tmp_path / "missing")


def test_export_unknown_day(tmp_path, exporter):
    with pytest.raises(DomainError):
        exporter.export_csv("2020-01-01", tmp_path)
