"""Point-of-sale checkout: recorder, invoice builder and the cashier pipeline."""
