"""Edits and deletes of individual customer ledger rows."""
