"""Combinatorial tier-rule sweeps and weight searches over backtest evaluations."""

from .tier_sweep import SWEEP_SPACES, SweepOutcome, SweepResult, TierSweep, WeightSweep, apply_best

__all__ = ["SWEEP_SPACES", "SweepOutcome", "SweepResult", "TierSweep", "WeightSweep", "apply_best"]
