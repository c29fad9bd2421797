"""Stock movements on products.quantity."""
