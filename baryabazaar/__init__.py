"""BaryaBazaar P2P trading ledger service."""
