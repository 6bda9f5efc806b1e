"""Per-vault position accounting and rebalancing."""
