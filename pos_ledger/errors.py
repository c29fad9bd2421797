"""
Domain errors and the structured result returned by public operations.

Services raise `DomainError` subclasses; the facade operations catch them and
hand back an `OperationResult` carrying a human-readable message. Tracebacks
only ever go to the log.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any, Callable, Optional


class DomainError(Exception):
    """Domain-level error whose message is safe to show to a cashier."""

    code = "domain_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details


class ProductNotFound(DomainError):
    code = "product_not_found"


class InsufficientStock(DomainError):
    code = "insufficient_stock"


class DuplicatePhoneNumber(DomainError):
    code = "duplicate_phone_number"


class OriginalInvoiceNotFound(DomainError):
    code = "original_invoice_not_found"


class ProductNotInOriginalInvoice(DomainError):
    code = "product_not_in_original_invoice"


class QuantityExceedsAvailable(DomainError):
    code = "quantity_exceeds_available"


class CustomerValidationFailed(DomainError):
    code = "customer_validation_failed"


class InvalidLineItem(DomainError):
    code = "invalid_line_item"


class InventoryRecalculationFailed(DomainError):
    code = "inventory_recalculation_failed"


class DatabaseConflict(DomainError):
    code = "database_conflict"


class InvoiceNotFound(DomainError):
    code = "invoice_not_found"


class TransactionNotFound(DomainError):
    code = "transaction_not_found"


@dataclass
class OperationResult:
    success: bool
    message: str
    data: Any = None
    error_code: Optional[str] = None

    @classmethod
    def ok(cls, message: str = "OK", data: Any = None) -> "OperationResult":
        return cls(True, message, data)

    @classmethod
    def fail(cls, message: str, error_code: Optional[str] = None, data: Any = None) -> "OperationResult":
        return cls(False, message, data, error_code)


_log = logging.getLogger(__name__)

GENERIC_FAILURE = "The operation could not be completed. Please retry or contact support."


def run_operation(
    fn: Callable[..., Any],
    *args,
    success_message: str = "OK",
    logger: Optional[logging.Logger] = None,
    **kwargs,
) -> OperationResult:
    """
    Call fn(*args, **kwargs) and wrap the outcome in an OperationResult.

    - DomainError     -> failure with the error's own message
    - sqlite3.Error   -> failure reported as a database conflict
    - anything else   -> generic failure, traceback logged
    """
    log = logger or _log
    try:
        data = fn(*args, **kwargs)
    except DomainError as e:
        log.info("%s rejected: %s", getattr(fn, "__name__", "operation"), e.message)
        return OperationResult.fail(e.message, e.code)
    except sqlite3.Error:
        log.exception("database error in %s", getattr(fn, "__name__", "operation"))
        return OperationResult.fail(
            "The database rejected the change (conflict). Please retry.",
            DatabaseConflict.code,
        )
    except Exception:
        log.exception("unexpected failure in %s", getattr(fn, "__name__", "operation"))
        return OperationResult.fail(GENERIC_FAILURE, "unexpected_error")
    return OperationResult.ok(success_message, data)
