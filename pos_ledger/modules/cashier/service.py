"""
modules/cashier/service.py

Purpose
-------
The point-of-sale pipeline behind one checkout:

    customer -> ledger rows (+ stock) -> invoice -> daily aggregate -> activity log

Public interface
----------------
- validate_or_create_customer(request)
- validate_return_request(request)
- process_transaction_items(request, customer)
- create_invoice(request, customer, transactions, cashier_name)
- save_return_tracking(request, transactions, invoice_number)
- generate_invoice_number() / generate_order_number()
- get_invoice_items(invoice_number)
- checkout(request, cashier_name) -> OperationResult

Validation failures stop the checkout before anything is written. Once the
ledger rows and the invoice are committed, aggregation problems are logged
and queued as pending reconciliation; they never fail the sale.
"""
from __future__ import annotations

import logging
import sqlite3
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ...database.repositories.customers_repo import Customer, CustomersRepo
from ...database.repositories.daily_inventory_repo import DailyInventoryRepo
from ...database.repositories.invoices_repo import InvoiceHeader, InvoicesRepo
from ...database.repositories.tracking_repo import ReturnTracking, TrackingRepo
from ...database.repositories.transactions_repo import CustomerTransaction
from ...database.tx import immediate_tx
from ...errors import (
    CustomerValidationFailed,
    DomainError,
    DuplicatePhoneNumber,
    InvalidLineItem,
    InvoiceNotFound,
    OperationResult,
    OriginalInvoiceNotFound,
    run_operation,
)
from ...utils.helpers import now_str, round_money
from ...utils.validators import non_empty, parse_date
from ..activity.activity_log import log_activity
from ..daily_inventory.aggregator import DailyInventoryService
from ..returns.tracker import ReturnExchangeTracker
from .invoice_builder import InvoiceBuilder
from .recorder import TransactionRecorder
from .requests import CheckoutRequest

_log = logging.getLogger(__name__)


class CashierService:
    def __init__(
        self,
        conn: sqlite3.Connection,
        daily: Optional[DailyInventoryService] = None,
        clock: Callable[[], datetime] = datetime.now,
        logger: Optional[logging.Logger] = None,
    ):
        self.conn = conn
        self.clock = clock
        self.customers = CustomersRepo(conn)
        self.invoices = InvoicesRepo(conn)
        self.tracking = TrackingRepo(conn)
        self.days = DailyInventoryRepo(conn)
        self.recorder = TransactionRecorder(conn, clock=clock)
        self.builder = InvoiceBuilder(conn, clock=clock)
        self.daily = daily or DailyInventoryService(conn, clock=clock)
        self.returns = ReturnExchangeTracker(conn, clock=clock)
        self._log = logger or _log

    # ------------------------------------------------------------------
    # Customer
    # ------------------------------------------------------------------
    def validate_or_create_customer(self, request: CheckoutRequest) -> Customer:
        """
        Existing customer by id, then by phone; otherwise a new one, which
        needs both a name and a phone. A request that asks for a new customer
        (id 0) with a phone already on file is refused.
        """
        if request.customer_id:
            customer = self.customers.get(int(request.customer_id))
            if customer is not None:
                return customer

        phone = (request.customer_phone or "").strip()
        if phone:
            existing = self.customers.get_by_phone(phone)
            if existing is not None:
                if not request.customer_id:
                    raise DuplicatePhoneNumber(
                        f"Phone number {phone} already belongs to customer '{existing.name}'.",
                        phone=phone,
                        customer_id=existing.customer_id,
                    )
                return existing

        if not non_empty(request.customer_name or "") or not phone:
            raise CustomerValidationFailed("A new customer needs both a name and a phone number.")

        customer_id = self.customers.create(
            request.customer_name, phone, request.customer_address, request.customer_email
        )
        self._log.info("created customer %s (%s)", customer_id, phone)
        return self.customers.get(customer_id)  # type: ignore[return-value]

    # ------------------------------------------------------------------
    # Returns through the till
    # ------------------------------------------------------------------
    def validate_return_request(self, request: CheckoutRequest) -> Dict[int, int]:
        """
        Negative lines that reference an original invoice are checked against
        what is still returnable. Returns {product_id: available}.
        """
        negative = [i for i in request.items if i.quantity and i.quantity < 0]
        if not negative or not request.original_invoice_number:
            return {}

        invoice = self.invoices.get_by_number(request.original_invoice_number)
        if invoice is None:
            raise OriginalInvoiceNotFound(
                f"Original invoice {request.original_invoice_number} was not found.",
                invoice_number=request.original_invoice_number,
            )

        wanted: Dict[int, int] = defaultdict(int)
        for item in negative:
            if item.product_id is None:
                raise InvalidLineItem("Returned lines must name the product id.")
            wanted[int(item.product_id)] += abs(int(item.quantity))

        return {
            pid: self.returns.validate_return_request(request.original_invoice_number, pid, qty).available
            for pid, qty in wanted.items()
        }

    def save_return_tracking(
        self,
        request: CheckoutRequest,
        transactions: List[CustomerTransaction],
        invoice_number: str,
    ) -> List[ReturnTracking]:
        rows: List[ReturnTracking] = []
        returned = [t for t in transactions if t.quantity < 0]
        if not returned or not request.original_invoice_number:
            return rows

        when = now_str(self.clock())
        with immediate_tx(self.conn):
            for t in returned:
                row = ReturnTracking(
                    return_id=None,
                    original_invoice_number=request.original_invoice_number,
                    return_invoice_number=invoice_number,
                    product_id=t.product_id,
                    returned_quantity=abs(t.quantity),
                    transaction_id=t.transaction_id,
                    reason=t.notes,
                    created_at=when,
                    created_by=None,
                )
                self.tracking.insert_return(row)
                rows.append(row)

            day = self.days.ensure_day(parse_date(when).isoformat())
            if not day.is_closed:
                self.days.increment_counter(day.daily_inventory_id, "returns_count")
        return rows

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------
    def process_transaction_items(self, request: CheckoutRequest, customer: Customer) -> List[CustomerTransaction]:
        return self.recorder.process_transaction_items(request.items, customer)

    def create_invoice(
        self,
        request: CheckoutRequest,
        customer: Customer,
        transactions: List[CustomerTransaction],
        cashier_name: Optional[str] = None,
    ) -> InvoiceHeader:
        return self.builder.create_invoice(
            customer,
            transactions,
            amount_paid=request.amount_paid,
            cashier_name=cashier_name,
            invoice_type=request.invoice_type,
            status=request.status,
            invoice_number=request.invoice_number,
            order_number=request.order_number,
            shipping_cost=request.shipping_cost,
            shipping_type=request.shipping_type,
            order_origin=request.order_origin,
            original_invoice_number=request.original_invoice_number,
            notes=request.notes,
        )

    def generate_invoice_number(self) -> str:
        return self.builder.generate_invoice_number()

    def generate_order_number(self, prefix: str = "") -> str:
        return self.builder.generate_order_number(prefix)

    def _aggregate(self, transactions: List[CustomerTransaction], reference: str) -> bool:
        ok = True
        for t in transactions:
            try:
                if not self.daily.process_transaction(t):
                    self.daily.mark_pending(t.date, "checkout", reference, "day closed")
                    ok = False
            except Exception as e:
                self._log.exception("aggregation of transaction %s failed", t.transaction_id)
                self.daily.mark_pending(t.date, "checkout", reference, str(e))
                ok = False
        return ok

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def get_invoice_items(self, invoice_number: str) -> List[Dict]:
        """
        Sold lines of an invoice, one per product, with what can still be
        returned or exchanged.
        """
        invoice = self.invoices.get_by_number(invoice_number)
        if invoice is None:
            raise InvoiceNotFound(f"Invoice {invoice_number} was not found.", invoice_number=invoice_number)

        grouped: Dict[int, Dict] = {}
        for it in invoice.items:
            if it.quantity <= 0:
                continue
            g = grouped.setdefault(
                it.product_id,
                {
                    "product_id": it.product_id,
                    "product_name": it.product_name,
                    "unit_price": it.unit_price,
                    "quantity": 0,
                    "discount": 0.0,
                    "total_price": 0.0,
                    "color": it.color,
                    "size": it.size,
                },
            )
            g["quantity"] += it.quantity
            g["discount"] = round_money(g["discount"] + it.discount)
            g["total_price"] = round_money(g["total_price"] + it.total_price)

        for pid, g in grouped.items():
            g["paid_unit_price"] = round_money(g["total_price"] / g["quantity"])
            g["returned_quantity"] = self.tracking.returned_quantity(invoice_number, pid)
            g["exchanged_quantity"] = self.tracking.exchanged_quantity(invoice_number, pid)
            g["available_quantity"] = self.tracking.available_quantity(invoice_number, pid)
        return list(grouped.values())

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------
    def run_checkout(self, request: CheckoutRequest, cashier_name: Optional[str] = None) -> InvoiceHeader:
        if (request.amount_paid or 0.0) < 0:
            raise InvalidLineItem("Amount paid cannot be negative.")
        customer = self.validate_or_create_customer(request)
        self.validate_return_request(request)
        try:
            transactions = self.process_transaction_items(request, customer)
        except DomainError as e:
            applied = e.details.get("applied_transaction_ids")
            if applied:
                # saved lines have no invoice and never reached the aggregate
                self.daily.mark_pending(
                    now_str(self.clock()), "checkout", ",".join(str(i) for i in applied), e.message
                )
            raise
        invoice = self.create_invoice(request, customer, transactions, cashier_name)
        self.save_return_tracking(request, transactions, invoice.invoice_number)

        if not self._aggregate(transactions, invoice.invoice_number):
            self._log.warning("invoice %s saved; daily aggregate queued for reconciliation", invoice.invoice_number)

        log_activity(
            self.conn, "Checkout", "Invoice", invoice.invoice_number,
            f"{len(transactions)} line(s) for {customer.name}, total {invoice.total_amount:.2f}, "
            f"paid {invoice.amount_paid:.2f}",
            cashier_name, entity_id=invoice.invoice_id, created_at=invoice.invoice_date,
        )
        return invoice

    def checkout(self, request: CheckoutRequest, cashier_name: Optional[str] = None) -> OperationResult:
        return run_operation(
            self.run_checkout, request, cashier_name,
            success_message="Invoice saved.", logger=self._log,
        )
