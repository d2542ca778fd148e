"""Applied-migration ledger."""
