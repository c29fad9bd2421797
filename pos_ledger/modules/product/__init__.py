"""Product cost basis maintenance."""
