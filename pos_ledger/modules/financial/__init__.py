from .reconciliation import FinancialService

__all__ = ["FinancialService"]
