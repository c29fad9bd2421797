"""Year-level reporting over the customer ledger."""
