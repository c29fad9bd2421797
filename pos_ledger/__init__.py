"""
pos_ledger: retail point-of-sale engine backed by SQLite.

Layers
------
- database/              schema, connection helper, repositories
- modules/<area>/        services (cashier, returns, daily inventory, ...)
- utils/                 logging, formatting and parsing helpers
"""

__version__ = "0.1.0"
