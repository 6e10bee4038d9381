"""Walk-forward evaluation and tier-rule optimization."""
