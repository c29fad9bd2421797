"""
Return / exchange tracker.

Before anything is written every requested line is checked against the
original invoice:

    OriginalInvoiceNotFound      invoice number unknown
    ProductNotInOriginalInvoice  no sold line for that product
    QuantityExceedsAvailable     sold - (returned + exchanged) < requested

A passing request is then written as one unit of work: tracking rows, the
mirror ledger rows (kind RETURN or EXCHANGE), the stock movements and the
Return / Exchange invoice. Only after that commits is today's aggregate
patched through FinancialService, whose failures are queued, not raised.
"""
from __future__ import annotations

import logging
import sqlite3
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from ...constants import EXCHANGE_ORDER_PREFIX, RETURN_ORDER_PREFIX
from ...database.repositories.customers_repo import Customer, CustomersRepo
from ...database.repositories.invoices_repo import InvoiceHeader, InvoicesRepo
from ...database.repositories.products_repo import Product, ProductsRepo
from ...database.repositories.tracking_repo import ExchangeTracking, ReturnTracking, TrackingRepo
from ...database.repositories.transactions_repo import CustomerTransaction, TransactionsRepo
from ...database.tx import immediate_tx
from ...enums import TransactionKind
from ...errors import (
    DomainError,
    InsufficientStock,
    InvalidLineItem,
    OriginalInvoiceNotFound,
    OperationResult,
    ProductNotFound,
    ProductNotInOriginalInvoice,
    QuantityExceedsAvailable,
    run_operation,
)
from ...utils.helpers import now_str, round_money
from ..activity.activity_log import log_activity
from ..cashier.invoice_builder import InvoiceBuilder
from ..daily_inventory.aggregator import DailyInventoryService
from ..financial.reconciliation import FinancialService
from ..inventory.ledger import InventoryLedger
from ..payments.calculations import exchange_price_difference
from ..cashier.requests import ExchangeRequest, ReturnRequest


@dataclass
class ReturnCheck:
    invoice: InvoiceHeader
    product_id: int
    sold_quantity: int
    available: int
    paid_unit_price: float


@dataclass
class ReturnOutcome:
    invoice: InvoiceHeader
    transactions: list[CustomerTransaction]
    trackings: list = field(default_factory=list)
    price_difference: float = 0.0
    reconciled: bool = True


class ReturnExchangeTracker:
    def __init__(
        self,
        conn: sqlite3.Connection,
        financial: Optional[FinancialService] = None,
        clock: Callable[[], datetime] = datetime.now,
        logger: Optional[logging.Logger] = None,
    ):
        self.conn = conn
        self.clock = clock
        self.invoices = InvoicesRepo(conn)
        self.tracking = TrackingRepo(conn)
        self.products = ProductsRepo(conn)
        self.customers = CustomersRepo(conn)
        self.transactions = TransactionsRepo(conn)
        self.ledger = InventoryLedger(conn)
        self.builder = InvoiceBuilder(conn, clock=clock)
        self.financial = financial or FinancialService(conn, DailyInventoryService(conn, clock=clock), clock=clock)
        self._log = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def validate_return_request(self, original_invoice_number: str, product_id: int, quantity: int) -> ReturnCheck:
        if quantity is None or int(quantity) <= 0:
            raise InvalidLineItem("Quantity to return must be greater than zero.")

        invoice = self.invoices.get_by_number(original_invoice_number)
        if invoice is None:
            raise OriginalInvoiceNotFound(
                f"Original invoice {original_invoice_number} was not found.",
                invoice_number=original_invoice_number,
            )

        lines = [i for i in invoice.items if i.product_id == product_id and i.quantity > 0]
        if not lines:
            raise ProductNotInOriginalInvoice(
                f"Product {product_id} is not on invoice {original_invoice_number}.",
                invoice_number=original_invoice_number,
                product_id=product_id,
            )

        sold = sum(i.quantity for i in lines)
        available = self.tracking.available_quantity(original_invoice_number, product_id)
        if int(quantity) > available:
            raise QuantityExceedsAvailable(
                f"Only {available} of {sold} can still be returned or exchanged for product {product_id}.",
                requested=int(quantity),
                available=available,
            )

        # what the customer actually paid per unit (discount already netted in)
        paid_unit = round_money(sum(i.total_price for i in lines) / sold)
        return ReturnCheck(invoice, product_id, sold, available, paid_unit)

    def _validate_lines(self, original_invoice_number: str, wanted: dict[int, int]) -> dict[int, ReturnCheck]:
        return {
            pid: self.validate_return_request(original_invoice_number, pid, qty)
            for pid, qty in wanted.items()
        }

    def _customer(self, invoice: InvoiceHeader) -> Customer:
        customer = self.customers.get(invoice.customer_id)
        if customer is None:
            raise DomainError(f"Customer of invoice {invoice.invoice_number} no longer exists.")
        return customer

    def _product(self, product_id: int) -> Product:
        return self.products.resolve(product_id)

    def _leg(
        self,
        customer: Customer,
        product: Product,
        kind: TransactionKind,
        quantity: int,
        price: float,
        notes: Optional[str],
        when: str,
        amount_paid: float = 0.0,
    ) -> CustomerTransaction:
        return CustomerTransaction(
            transaction_id=None,
            customer_id=customer.customer_id,
            product_id=product.product_id,
            kind=kind,
            quantity=quantity,
            price=price,
            discount=0.0,
            total_price=round_money(price * quantity),
            shipping_cost=0.0,
            amount_paid=amount_paid,
            unit_cost=product.carton_price,
            invoice_number=None,
            color=product.color,
            size=product.size,
            notes=notes,
            date=when,
        )

    # ------------------------------------------------------------------
    # Returns
    # ------------------------------------------------------------------
    def save_return_tracking(self, request: ReturnRequest) -> ReturnOutcome:
        if not request.items:
            raise InvalidLineItem("Nothing to return.")
        wanted: dict[int, int] = defaultdict(int)
        for item in request.items:
            if item.quantity is None or int(item.quantity) <= 0:
                raise InvalidLineItem("Quantity to return must be greater than zero.")
            wanted[int(item.product_id)] += int(item.quantity)
        checks = self._validate_lines(request.original_invoice_number, wanted)
        invoice = next(iter(checks.values())).invoice
        customer = self._customer(invoice)
        when = now_str(self.clock())

        legs: list[CustomerTransaction] = []
        trackings: list[ReturnTracking] = []
        with immediate_tx(self.conn):
            return_number = self.builder.generate_invoice_number()
            for item in request.items:
                check = checks[int(item.product_id)]
                product = self._product(item.product_id)
                qty = int(item.quantity)
                leg = self._leg(
                    customer, product, TransactionKind.RETURN, -qty, check.paid_unit_price,
                    item.reason or request.reason, when,
                )
                self.ledger.apply_return(product, qty)
                self.transactions.insert(leg)
                t = ReturnTracking(
                    return_id=None,
                    original_invoice_number=request.original_invoice_number,
                    return_invoice_number=return_number,
                    product_id=product.product_id,
                    returned_quantity=qty,
                    transaction_id=leg.transaction_id,
                    reason=item.reason or request.reason,
                    created_at=when,
                    created_by=request.created_by,
                )
                self.tracking.insert_return(t)
                legs.append(leg)
                trackings.append(t)

            header = self.builder.create_invoice(
                customer,
                legs,
                invoice_number=return_number,
                order_prefix=RETURN_ORDER_PREFIX,
                cashier_name=request.created_by,
                original_invoice_number=request.original_invoice_number,
                notes=request.notes,
            )

        reconciled = self.financial.process_return(legs, header.invoice_number)
        log_activity(
            self.conn, "Return", "Invoice", header.invoice_number,
            f"Returned {sum(wanted.values())} item(s) from invoice {request.original_invoice_number}, "
            f"refund {abs(header.total_amount):.2f}",
            request.created_by, created_at=when,
        )
        return ReturnOutcome(header, legs, trackings, reconciled=reconciled)

    def delete_return(self, return_id: int, user_id: Optional[str] = None) -> None:
        """
        Undo a recorded return: the restored stock is taken out again
        (clamped at zero), the mirror ledger row and the tracking row go away,
        and the day of that row is rebuilt.
        """
        t = self.tracking.get_return(return_id)
        if t is None:
            raise DomainError(f"Return {return_id} was not found.")
        leg = self.transactions.get(t.transaction_id) if t.transaction_id else None

        with immediate_tx(self.conn):
            if leg is not None:
                self.ledger.reverse(leg.product_id, leg.quantity)
                self.tracking.delete_return(return_id)
                self.transactions.delete(leg.transaction_id)
            else:
                self.ledger.reverse(t.product_id, -t.returned_quantity)
                self.tracking.delete_return(return_id)

        day = (leg.date if leg else t.created_at)
        daily = self.financial.daily
        try:
            daily.recalculate(day)
        except DomainError as e:
            self._log.error("return %s deleted but %s not recalculated: %s", return_id, day, e.message)
            daily.mark_pending(day, "delete_return", str(return_id), e.message)
        log_activity(
            self.conn, "Delete", "ReturnTracking", t.return_invoice_number,
            f"Deleted return {return_id} of {t.returned_quantity} x product {t.product_id}",
            user_id, entity_id=return_id, created_at=now_str(self.clock()),
        )

    # ------------------------------------------------------------------
    # Exchanges
    # ------------------------------------------------------------------
    def save_exchange_tracking(self, request: ExchangeRequest) -> ReturnOutcome:
        if not request.items:
            raise InvalidLineItem("Nothing to exchange.")
        wanted: dict[int, int] = defaultdict(int)
        incoming: dict[int, int] = defaultdict(int)
        for item in request.items:
            if item.quantity is None or int(item.quantity) <= 0:
                raise InvalidLineItem("Quantity to exchange must be greater than zero.")
            wanted[int(item.old_product_id)] += int(item.quantity)
            incoming[int(item.new_product_id)] += int(item.quantity)
        checks = self._validate_lines(request.original_invoice_number, wanted)

        new_products: dict[int, Product] = {}
        for pid, qty in incoming.items():
            product = self.products.get(pid)
            if product is None:
                raise ProductNotFound(f"Product '{pid}' was not found.", product_id=pid)
            # stock coming back from the same product counts toward the new leg
            on_hand = product.quantity + wanted.get(pid, 0)
            if on_hand < qty:
                raise InsufficientStock(
                    f"Insufficient stock for '{product.name}': requested {qty}, available {on_hand}.",
                    product_id=pid, requested=qty, available=on_hand,
                )
            new_products[pid] = product

        invoice = next(iter(checks.values())).invoice
        customer = self._customer(invoice)
        when = now_str(self.clock())

        difference = round_money(sum(
            exchange_price_difference(
                checks[int(i.old_product_id)].paid_unit_price,
                new_products[int(i.new_product_id)].price,
                int(i.quantity),
            )
            for i in request.items
        ))
        if difference > 0:
            settle = difference if request.amount_paid is None else max(float(request.amount_paid), 0.0)
            paid_now = round_money(min(settle, difference))
        else:
            paid_now = 0.0

        legs: list[CustomerTransaction] = []
        trackings: list[ExchangeTracking] = []
        with immediate_tx(self.conn):
            exchange_number = self.builder.generate_invoice_number()
            for n, item in enumerate(request.items):
                old = self._product(item.old_product_id)
                new = new_products[int(item.new_product_id)]
                qty = int(item.quantity)
                check = checks[old.product_id]
                diff = exchange_price_difference(check.paid_unit_price, new.price, qty)

                out_leg = self._leg(
                    customer, old, TransactionKind.EXCHANGE, -qty, check.paid_unit_price,
                    f"Exchange {qty} x {old.name} (returned)", when,
                )
                in_leg = self._leg(
                    customer, new, TransactionKind.EXCHANGE, qty, new.price,
                    f"Exchange {qty} x {new.name} (issued)", when,
                    # the settlement rides on the first issued leg
                    amount_paid=paid_now if n == 0 else 0.0,
                )
                self.ledger.apply_return(old, qty)
                self.transactions.insert(out_leg)
                self.ledger.apply_sale(new, qty)
                self.transactions.insert(in_leg)

                t = ExchangeTracking(
                    exchange_id=None,
                    original_invoice_number=request.original_invoice_number,
                    exchange_invoice_number=exchange_number,
                    old_product_id=old.product_id,
                    new_product_id=new.product_id,
                    exchanged_quantity=qty,
                    price_difference=diff,
                    reason=item.reason or request.reason,
                    created_at=when,
                    created_by=request.created_by,
                    returned_transaction_id=out_leg.transaction_id,
                    issued_transaction_id=in_leg.transaction_id,
                )
                self.tracking.insert_exchange(t)
                legs.extend([out_leg, in_leg])
                trackings.append(t)

            header = self.builder.create_exchange_invoice(
                customer,
                legs,
                difference,
                paid_now,
                invoice_number=exchange_number,
                original_invoice_number=request.original_invoice_number,
                order_prefix=EXCHANGE_ORDER_PREFIX,
                cashier_name=request.created_by,
                notes=request.notes,
            )

        reconciled = self.financial.process_exchange(legs, header.invoice_number, difference)
        log_activity(
            self.conn, "Exchange", "Invoice", header.invoice_number,
            f"Exchanged {sum(wanted.values())} item(s) from invoice {request.original_invoice_number}, "
            f"difference {difference:.2f}",
            request.created_by, created_at=when,
        )
        return ReturnOutcome(header, legs, trackings, price_difference=difference, reconciled=reconciled)

    def delete_exchange(self, exchange_id: int, user_id: Optional[str] = None) -> None:
        """
        Undo a recorded exchange line: the issued product goes back on the
        shelf, the returned product comes off it again (clamped at zero), both
        ledger legs and the tracking row go away, and the days of those legs
        are rebuilt. The original invoice gets that quantity back as
        returnable.
        """
        t = self.tracking.get_exchange(exchange_id)
        if t is None:
            raise DomainError(f"Exchange {exchange_id} was not found.")
        legs = [
            leg for leg in (
                self.transactions.get(tid)
                for tid in (t.returned_transaction_id, t.issued_transaction_id) if tid
            ) if leg is not None
        ]

        with immediate_tx(self.conn):
            for leg in legs:
                self.ledger.reverse(leg.product_id, leg.quantity)
                self.transactions.delete(leg.transaction_id)
            if not legs:
                # legacy row with no linked legs: undo the stock moves only
                self.ledger.reverse(t.new_product_id, t.exchanged_quantity)
                self.ledger.reverse(t.old_product_id, -t.exchanged_quantity)
            self.tracking.delete_exchange(exchange_id)

        daily = self.financial.daily
        for day in sorted({leg.date for leg in legs} or {t.created_at}):
            try:
                daily.recalculate(day)
            except DomainError as e:
                self._log.error("exchange %s deleted but %s not recalculated: %s", exchange_id, day, e.message)
                daily.mark_pending(day, "delete_exchange", str(exchange_id), e.message)
        log_activity(
            self.conn, "Delete", "ExchangeTracking", t.exchange_invoice_number,
            f"Deleted exchange {exchange_id} of {t.exchanged_quantity} x product {t.old_product_id} "
            f"-> product {t.new_product_id}",
            user_id, entity_id=exchange_id, created_at=now_str(self.clock()),
        )

    # ------------------------------------------------------------------
    # Result-returning facade
    # ------------------------------------------------------------------
    def process_return(self, request: ReturnRequest) -> OperationResult:
        return run_operation(self.save_return_tracking, request, success_message="Return recorded.", logger=self._log)

    def process_exchange(self, request: ExchangeRequest) -> OperationResult:
        return run_operation(self.save_exchange_tracking, request, success_message="Exchange recorded.", logger=self._log)
