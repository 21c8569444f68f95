"""Services behind the reaction engine."""
