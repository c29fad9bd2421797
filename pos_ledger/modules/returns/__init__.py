"""Return and exchange tracking against original invoices."""
