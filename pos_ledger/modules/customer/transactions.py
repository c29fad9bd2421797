"""
Edit / delete of a single customer ledger row.

Both operations move stock through the inventory ledger in the same unit of
work as the row change, then rebuild the day the row belongs to. A failed
rebuild is logged and queued; the edit itself stands.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Callable, Optional

from ...database.repositories.tracking_repo import TrackingRepo
from ...database.repositories.transactions_repo import CustomerTransaction, TransactionsRepo
from ...database.tx import immediate_tx
from ...enums import TransactionKind
from ...errors import DomainError, InvalidLineItem, OperationResult, TransactionNotFound, run_operation
from ...utils.helpers import now_str
from ..activity.activity_log import log_activity
from ..cashier.recorder import kind_for
from ..daily_inventory.aggregator import DailyInventoryService
from ..inventory.ledger import InventoryLedger
from ..payments.calculations import line_total


class CustomerTransactionsService:
    def __init__(
        self,
        conn: sqlite3.Connection,
        daily: Optional[DailyInventoryService] = None,
        clock: Callable[[], datetime] = datetime.now,
        logger: Optional[logging.Logger] = None,
    ):
        self.conn = conn
        self.clock = clock
        self.transactions = TransactionsRepo(conn)
        self.tracking = TrackingRepo(conn)
        self.ledger = InventoryLedger(conn)
        self.daily = daily or DailyInventoryService(conn, clock=clock)
        self._log = logger or logging.getLogger(__name__)

    def _load(self, transaction_id: int) -> CustomerTransaction:
        tx = self.transactions.get(transaction_id)
        if tx is None:
            raise TransactionNotFound(f"Transaction {transaction_id} was not found.", transaction_id=transaction_id)
        return tx

    def _recalculate(self, day: str, action: str, transaction_id: int) -> None:
        try:
            self.daily.recalculate(day)
        except DomainError as e:
            self._log.error("%s of transaction %s saved but %s not recalculated", action, transaction_id, day)
            self.daily.mark_pending(day, action, str(transaction_id), e.message)

    def edit_transaction(
        self,
        transaction_id: int,
        *,
        quantity: Optional[int] = None,
        price: Optional[float] = None,
        discount: Optional[float] = None,
        amount_paid: Optional[float] = None,
        user_id: Optional[str] = None,
    ) -> CustomerTransaction:
        """
        Change quantity / price / discount / amount paid of one row.

        The stock moves by new - old quantity (re-checked only when more is
        taken out) and total_price is recomputed with the signed rule.
        """
        tx = self._load(transaction_id)
        new_qty = tx.quantity if quantity is None else int(quantity)
        new_price = tx.price if price is None else float(price)
        new_discount = tx.discount if discount is None else float(discount)
        new_paid = tx.amount_paid if amount_paid is None else float(amount_paid)

        if new_qty == 0:
            raise InvalidLineItem("Quantity cannot be zero; delete the transaction instead.")
        if new_price < 0:
            raise InvalidLineItem("Price cannot be negative.")
        if new_qty > 0 and (new_discount < 0 or new_discount > new_price):
            raise InvalidLineItem("Discount must be between 0 and the unit price.")
        if new_qty != tx.quantity and self.tracking.return_for_transaction(transaction_id) is not None:
            raise DomainError("This row belongs to a tracked return; delete the return instead of editing it.")
        moved = new_qty != tx.quantity or new_price != tx.price
        if moved and self.tracking.exchange_for_transaction(transaction_id) is not None:
            # quantity and price feed the tracked price difference and the invoice cap
            raise DomainError("This row is a leg of a tracked exchange; delete the exchange instead of editing it.")

        eff_discount, total = line_total(new_price, new_discount, new_qty)
        if tx.kind == TransactionKind.EXCHANGE:
            kind = tx.kind
        elif (new_qty > 0) != (tx.quantity > 0):
            kind = kind_for(new_qty)
        else:
            kind = tx.kind

        with immediate_tx(self.conn):
            delta = self.ledger.apply_delta(tx.product_id, tx.quantity, new_qty)
            self.transactions.update_line(
                transaction_id,
                quantity=new_qty,
                price=new_price,
                discount=eff_discount,
                total_price=total,
                amount_paid=new_paid,
                kind=kind,
            )

        self._log.info("transaction %s edited: qty %s -> %s (stock delta %s)", transaction_id, tx.quantity, new_qty, -delta)
        self._recalculate(tx.date, "edit_transaction", transaction_id)
        log_activity(
            self.conn, "Update", "CustomerTransaction", str(transaction_id),
            f"qty {tx.quantity}->{new_qty}, price {tx.price:.2f}->{new_price:.2f}, "
            f"total {tx.total_price:.2f}->{total:.2f}",
            user_id, entity_id=transaction_id, created_at=now_str(self.clock()),
        )
        return self._load(transaction_id)

    def delete_transaction(self, transaction_id: int, user_id: Optional[str] = None) -> None:
        """Give the stock back (or take a return's stock out again) and drop the row."""
        tx = self._load(transaction_id)
        exchange = self.tracking.exchange_for_transaction(transaction_id)
        if exchange is not None:
            raise DomainError(
                f"This row is a leg of exchange {exchange.exchange_id}; delete the exchange instead.",
                exchange_id=exchange.exchange_id,
            )
        tracked = self.tracking.return_for_transaction(transaction_id)

        with immediate_tx(self.conn):
            self.ledger.reverse(tx.product_id, tx.quantity)
            if tracked is not None:
                self.tracking.delete_return(tracked.return_id)
            self.transactions.delete(transaction_id)

        self._recalculate(tx.date, "delete_transaction", transaction_id)
        log_activity(
            self.conn, "Delete", "CustomerTransaction", str(transaction_id),
            f"Deleted {tx.kind.name.lower()} of {tx.quantity} x product {tx.product_id} ({tx.total_price:.2f})",
            user_id, entity_id=transaction_id, created_at=now_str(self.clock()),
        )

    # result-returning wrappers
    def edit(self, transaction_id: int, **changes) -> OperationResult:
        return run_operation(
            self.edit_transaction, transaction_id, success_message="Transaction updated.", logger=self._log, **changes
        )

    def delete(self, transaction_id: int, user_id: Optional[str] = None) -> OperationResult:
        return run_operation(
            self.delete_transaction, transaction_id, user_id, success_message="Transaction deleted.", logger=self._log
        )
