# database/repositories/__init__.py
"""
Repository layer public API.

Usage:
    from pos_ledger.database.repositories import (
        # Catalogue and people
        ProductsRepo, Product, CustomersRepo, Customer,
        # Ledger and invoices
        TransactionsRepo, CustomerTransaction, InvoicesRepo, InvoiceHeader, InvoiceItem,
        # Returns / exchanges
        TrackingRepo, ReturnTracking, ExchangeTracking,
        # Numbering
        SequencesRepo,
        # Daily aggregate
        DailyInventoryRepo, DailyInventory,
        # Reporting and audit
        ReportingRepo, ActivityRepo,
    )

Repositories never commit on their own, except where noted on the method;
group writes with database.tx.immediate_tx.
"""

# ---------------- Products / customers ----------------
from .products_repo import ProductsRepo, Product
from .customers_repo import CustomersRepo, Customer

# ---------------- Ledger / invoices -------------------
from .transactions_repo import TransactionsRepo, CustomerTransaction
from .invoices_repo import InvoicesRepo, InvoiceHeader, InvoiceItem

# ---------------- Returns / exchanges -----------------
from .tracking_repo import TrackingRepo, ReturnTracking, ExchangeTracking

# ---------------- Numbering ---------------------------
from .sequences_repo import SequencesRepo

# ---------------- Daily aggregate ---------------------
from .daily_inventory_repo import DailyInventoryRepo, DailyInventory

# ---------------- Reporting / audit -------------------
from .reporting_repo import ReportingRepo
from .activity_repo import ActivityRepo

__all__ = [
    "ProductsRepo",
    "Product",
    "CustomersRepo",
    "Customer",
    "TransactionsRepo",
    "CustomerTransaction",
    "InvoicesRepo",
    "InvoiceHeader",
    "InvoiceItem",
    "TrackingRepo",
    "ReturnTracking",
    "ExchangeTracking",
    "SequencesRepo",
    "DailyInventoryRepo",
    "DailyInventory",
    "ReportingRepo",
    "ActivityRepo",
]
