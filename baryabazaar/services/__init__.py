"""Domain services for the trading ledger."""
