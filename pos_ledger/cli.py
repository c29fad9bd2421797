"""
Back-office command line.

    python -m pos_ledger [--db PATH] <command> [options]

Commands print their result as JSON. A failed operation prints the
cashier-facing message on stderr and exits with status 1.
"""
from __future__ import annotations

import argparse
import json
import sys

from . import __version__
from .constants import APP_NAME
from .database import get_connection
from .errors import DomainError, OperationResult, run_operation
from .modules.daily_inventory.aggregator import DailyInventoryService
from .modules.daily_inventory.export import DailyInventoryExporter
from .modules.financial.reconciliation import FinancialService
from .modules.product.cost_basis import ProductCostService
from .modules.reporting.annual import AnnualReport
from .utils.loggers import get_logger


def _day_dict(inv) -> dict:
    d = dict(vars(inv))
    d["status"] = inv.status.name
    return d


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pos-ledger", description=f"{APP_NAME} back-office tasks")
    parser.add_argument("--db", help="Path to SQLite DB (defaults to POS_LEDGER_DB or data/pos_ledger.db)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create or migrate the schema")

    p = sub.add_parser("recalc", help="Rebuild one day's aggregate")
    p.add_argument("--date", required=True, help="YYYY-MM-DD")

    p = sub.add_parser("recalc-range", help="Rebuild every day with activity in a range")
    p.add_argument("--from", dest="date_from", required=True)
    p.add_argument("--to", dest="date_to", required=True)

    for name in ("close", "reopen"):
        p = sub.add_parser(name, help=f"{name.capitalize()} a day")
        p.add_argument("--date", required=True)
        p.add_argument("--user", default=None)

    p = sub.add_parser("replay", help="Recalculate days waiting for reconciliation")
    p.add_argument("--date", default=None)

    p = sub.add_parser("export", help="Write a day's sheets as CSV")
    p.add_argument("--date", required=True)
    p.add_argument("--dest", required=True, help="Existing, writable folder")
    p.add_argument("--summary-only", action="store_true")
    p.add_argument("--deadline", type=float, default=None, help="Give up after this many seconds")

    p = sub.add_parser("annual", help="Year summary, monthly breakdown and customer balances")
    p.add_argument("--year", type=int, required=True)

    p = sub.add_parser("carton-price", help="Change a product's carton price")
    p.add_argument("--product", type=int, required=True)
    p.add_argument("--price", type=float, required=True)
    p.add_argument("--retroactive", action="store_true", help="Re-cost history and rebuild affected days")
    p.add_argument("--user", default=None)
    return parser


def _dispatch(args: argparse.Namespace, conn) -> object:
    daily = DailyInventoryService(conn)
    cmd = args.command
    if cmd == "init-db":
        return {"db": str(args.db or "default"), "status": "ready"}
    if cmd == "recalc":
        return _day_dict(daily.recalculate(args.date))
    if cmd == "recalc-range":
        return FinancialService(conn, daily).recalculate_profits(args.date_from, args.date_to)
    if cmd == "close":
        return _day_dict(daily.close(args.date, args.user))
    if cmd == "reopen":
        return _day_dict(daily.reopen(args.date, args.user))
    if cmd == "replay":
        return daily.replay_pending(args.date)
    if cmd == "export":
        paths = DailyInventoryExporter(daily).export_csv(
            args.date, args.dest, detailed=not args.summary_only, deadline_seconds=args.deadline
        )
        return [str(p) for p in paths]
    if cmd == "annual":
        report = AnnualReport(conn)
        return {
            "summary": report.year_summary(args.year),
            "months": report.monthly_breakdown(args.year),
            "customers": report.customer_balances(),
        }
    if cmd == "carton-price":
        return ProductCostService(conn, daily).update_carton_price(
            args.product, args.price, retroactive=args.retroactive, user_id=args.user
        )
    raise DomainError(f"Unknown command {cmd}.")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    log = get_logger("pos_ledger")
    conn = get_connection(args.db)
    try:
        result: OperationResult = run_operation(_dispatch, args, conn, logger=log)
    finally:
        conn.close()
    if not result.success:
        print(result.message, file=sys.stderr)
        return 1
    print(json.dumps(result.data, indent=2, default=str))
    return 0
