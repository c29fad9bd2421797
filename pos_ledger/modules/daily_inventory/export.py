"""
Plain-row export of one day's inventory.

summary_rows(day)   label / value pairs for the day header
detailed_rows(day)  {"summary", "products", "customers", "transactions"} -> rows
export_csv(...)     one CSV file per sheet, each written to a temp file next to
                    the destination and moved into place with os.replace()
"""
from __future__ import annotations

import csv
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Dict, List, Optional

from ...enums import TransactionKind, label
from ...errors import DomainError
from .aggregator import DailyInventoryService, DayLike, _day_key

_log = logging.getLogger(__name__)

_PRODUCT_COLUMNS = (
    ("product_id", "Product ID"),
    ("product_name", "Product"),
    ("starting_quantity", "Opening qty"),
    ("total_quantity_sold", "Qty sold"),
    ("ending_quantity", "Closing qty"),
    ("total_sales_value", "Sales value"),
    ("total_discounts", "Discounts"),
    ("net_sales_value", "Net sales"),
    ("total_cost_value", "Cost"),
    ("net_profit", "Profit"),
    ("transactions_count", "Transactions"),
)

_CUSTOMER_COLUMNS = (
    ("customer_id", "Customer ID"),
    ("customer_name", "Customer"),
    ("transactions_count", "Transactions"),
    ("total_purchases", "Purchases"),
    ("total_payments", "Payments"),
    ("debt_amount", "Debt"),
    ("last_transaction_time", "Last transaction"),
)

_TRANSACTION_COLUMNS = (
    ("transaction_time", "Time"),
    ("customer_transaction_id", "Transaction ID"),
    ("customer_id", "Customer ID"),
    ("product_id", "Product ID"),
    ("kind", "Kind"),
    ("quantity", "Qty"),
    ("unit_price", "Unit price"),
    ("cost_price", "Cost price"),
    ("discount", "Discount"),
    ("total_price", "Total"),
    ("amount_paid", "Paid"),
)


def ensure_writable_dir(path: str | os.PathLike) -> Path:
    p = Path(path)
    if not p.exists():
        raise DomainError(f"Export folder does not exist: {p}")
    if not p.is_dir():
        raise DomainError(f"Export path is not a folder: {p}")
    if not os.access(str(p), os.W_OK | os.X_OK):
        raise DomainError(f"Export folder is not writable: {p}")
    return p


def _table(rows: List[Dict], columns) -> List[List]:
    out: List[List] = [[title for _, title in columns]]
    for r in rows:
        out.append([r.get(key) for key, _ in columns])
    return out


class DailyInventoryExporter:
    def __init__(self, service: DailyInventoryService):
        self.service = service

    def summary_rows(self, day: DayLike) -> List[List]:
        key = _day_key(day)
        inv = self.service.get_inventory_by_date(key)
        if inv is None:
            raise DomainError(f"No inventory recorded for {key}.")
        return [
            ["Date", inv.inventory_date],
            ["Status", label(inv.status)],
            ["Total sales", inv.total_sales],
            ["Total cost", inv.total_cost],
            ["Total discounts", inv.total_discounts],
            ["Net profit", inv.net_profit],
            ["Payments", inv.total_payments],
            ["Debts", inv.total_debts],
            ["Transactions", inv.transactions_count],
            ["Customers", inv.customers_count],
            ["Products sold", inv.products_sold_count],
            ["Quantity sold", inv.total_quantity_sold],
            ["Returns", inv.returns_count],
            ["Exchanges", inv.exchanges_count],
            ["Pending reconciliation", "yes" if inv.pending_reconciliation else "no"],
            ["Closed by", inv.closed_by or ""],
            ["Closed at", inv.closed_at or ""],
        ]

    def detailed_rows(self, day: DayLike) -> Dict[str, List[List]]:
        snapshots = self.service.sale_snapshots(day)
        for s in snapshots:
            s["kind"] = label(TransactionKind(s["kind"]))
        return {
            "summary": self.summary_rows(day),
            "products": _table(self.service.product_summaries(day), _PRODUCT_COLUMNS),
            "customers": _table(self.service.customer_summaries(day), _CUSTOMER_COLUMNS),
            "transactions": _table(snapshots, _TRANSACTION_COLUMNS),
        }

    def export_csv(
        self,
        day: DayLike,
        dest_dir: str | os.PathLike,
        *,
        detailed: bool = True,
        deadline_seconds: Optional[float] = None,
    ) -> List[Path]:
        """
        Write the sheets as `<date>_<sheet>.csv` under dest_dir and return the
        paths. With a deadline, the export stops with DomainError once it is
        exceeded; files already moved into place stay.
        """
        started = time.monotonic()
        dest = ensure_writable_dir(dest_dir)
        key = _day_key(day)
        sheets = self.detailed_rows(key) if detailed else {"summary": self.summary_rows(key)}

        written: List[Path] = []
        for name, rows in sheets.items():
            if deadline_seconds is not None and time.monotonic() - started > deadline_seconds:
                raise DomainError(f"Export of {key} timed out after {deadline_seconds}s.", written=[str(p) for p in written])
            target = dest / f"{key}_{name}.csv"
            fd, tmp = tempfile.mkstemp(prefix=".export_", suffix=".csv", dir=str(dest))
            try:
                with os.fdopen(fd, "w", newline="", encoding="utf-8") as f:
                    csv.writer(f).writerows(rows)
                os.replace(tmp, target)
            except OSError:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
            written.append(target)
        _log.info("exported %s: %s", key, ", ".join(p.name for p in written))
        return written
