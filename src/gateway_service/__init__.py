"""Card payment gateway ledger service."""
