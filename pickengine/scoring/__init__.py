"""Convergence scoring of signal results."""

from .convergence import ConvergenceResult, ConvergenceScorer, score_signals

__all__ = ["ConvergenceResult", "ConvergenceScorer", "score_signals"]
