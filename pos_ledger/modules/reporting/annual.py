"""
modules/reporting/annual.py

Purpose
-------
Year-level figures straight from the customer ledger.

Public interface
----------------
- year_summary(year)      one dict of headline figures
- monthly_breakdown(year) twelve dicts, January first
- customer_balances()     purchases / returns / paid / remaining per customer

Profit follows the daily aggregator: (price - cost) * quantity on rows that
have a cost basis, nothing on rows that do not. Returns are split into plain
returns and the returned side of exchanges by `kind`.
"""
from __future__ import annotations

import sqlite3
from datetime import date
from typing import Dict, Iterable, List

from ...database.repositories.reporting_repo import ReportingRepo
from ...enums import TransactionKind
from ...utils.helpers import round_money


def _year_bounds(year: int, month: int | None = None) -> tuple[str, str]:
    if month is None:
        start, end = date(year, 1, 1), date(year + 1, 1, 1)
    else:
        start = date(year, month, 1)
        end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return f"{start.isoformat()} 00:00:00", f"{end.isoformat()} 00:00:00"


def _figures(rows: Iterable[sqlite3.Row]) -> Dict:
    gross = returns = regular = exchanged = discounts = cost = profit = 0.0
    sales_n = returns_n = exchanges_n = count = 0
    for r in rows:
        count += 1
        qty = int(r["quantity"])
        unit_cost = float(r["cost"]) if r["cost"] and r["cost"] > 0 else 0.0
        if qty > 0:
            sales_n += 1
            gross += r["total_price"]
            discounts += r["discount"]
        elif qty < 0:
            value = abs(r["total_price"])
            returns += value
            if int(r["kind"]) == TransactionKind.EXCHANGE:
                exchanges_n += 1
                exchanged += value
            else:
                returns_n += 1
                regular += value
        if unit_cost:
            cost += unit_cost * qty
            profit += (r["price"] - unit_cost) * qty

    net_sales = gross - returns
    return {
        "gross_sales": round_money(gross),
        "returns_value": round_money(returns),
        "regular_returns_value": round_money(regular),
        "exchanges_value": round_money(exchanged),
        "net_sales": round_money(net_sales),
        "total_discounts": round_money(discounts),
        "total_cost": round_money(cost),
        "net_profit": round_money(profit),
        "profit_margin": round_money(profit / net_sales * 100) if net_sales > 0 else 0.0,
        "transactions_count": count,
        "sales_count": sales_n,
        "returns_count": returns_n,
        "exchanges_count": exchanges_n,
    }


class AnnualReport:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self.repo = ReportingRepo(conn)

    def year_summary(self, year: int) -> Dict:
        start, end = _year_bounds(year)
        out = _figures(self.repo.transactions_between(start, end))
        out["year"] = year
        out["inventory_value"] = round_money(self.repo.inventory_value())
        out["products_count"] = self.repo.product_count()
        return out

    def monthly_breakdown(self, year: int) -> List[Dict]:
        months = []
        for m in range(1, 13):
            start, end = _year_bounds(year, m)
            row = _figures(self.repo.transactions_between(start, end))
            row["month"] = m
            months.append(row)
        return months

    def customer_balances(self) -> List[Dict]:
        out = []
        for r in self.repo.customer_balances():
            purchases = round_money(r["total_purchases"])
            paid = round_money(r["total_paid"])
            out.append({
                "customer_id": r["customer_id"],
                "name": r["name"],
                "phone": r["phone"],
                "transactions_count": r["transactions_count"],
                "total_purchases": purchases,
                "total_returns": round_money(r["total_returns"]),
                "total_paid": paid,
                "remaining": round_money(purchases - r["total_returns"] - paid),
                "payment_ratio": round_money(paid / purchases * 100) if purchases > 0 else 0.0,
                "returns_count": r["returns_count"],
                "exchanges_count": r["exchanges_count"],
            })
        return out
