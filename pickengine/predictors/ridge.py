"""Closed-form ridge regression with a Cholesky solve.

The intercept (column 0) is never penalized. Pivots that fall below the
floor during factorization are clamped instead of aborting the fit, so
rank-deficient or badly conditioned training sets still produce
coefficients; each clamp is reported as a `NumericInstability` warning.
"""

from __future__ import annotations

import datetime as dt
import logging
import math
import warnings
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.linalg import solve_triangular

from ..config import RidgeConfig
from ..errors import InsufficientTrainingData, NumericInstability
from .features import design_matrix, feature_row

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Linear algebra
# ---------------------------------------------------------------------------


def normal_equations(X: np.ndarray, y: np.ndarray, lam: float) -> Tuple[np.ndarray, np.ndarray]:
    """XᵗX + λI' and Xᵗy, where I' skips the intercept's diagonal entry."""
    X = np.asarray(X, dtype=float)
    y = np.asarray(y, dtype=float)
    xtx = X.T @ X
    p = xtx.shape[0]
    if p > 1:
        idx = np.arange(1, p)
        xtx[idx, idx] += lam
    return xtx, X.T @ y


def cholesky_lower(a: np.ndarray, pivot_floor: float = 1e-10) -> Tuple[np.ndarray, int]:
    """Lower-triangular L with L·Lᵗ = a, clamping small pivots.

    Returns:
        (L, number of clamped pivots)
    """
    a = np.asarray(a, dtype=float)
    n = a.shape[0]
    L = np.zeros_like(a)
    clamped = 0
    for i in range(n):
        for j in range(i + 1):
            s = a[i, j] - float(np.dot(L[i, :j], L[j, :j]))
            if i == j:
                if not s >= pivot_floor:
                    clamped += 1
                    s = pivot_floor
                L[i, i] = math.sqrt(s)
            else:
                L[i, j] = s / L[j, j]
    return L, clamped


def solve_cholesky(L: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Solve L·Lᵗ·x = b by forward then back substitution."""
    z = solve_triangular(L, b, lower=True)
    return solve_triangular(L.T, z, lower=False)


@dataclass
class RidgeFit:
    beta: np.ndarray
    clamped_pivots: int


def fit_ridge(X: np.ndarray, y: np.ndarray, lam: float, pivot_floor: float = 1e-10) -> RidgeFit:
    xtx, xty = normal_equations(X, y, lam)
    L, clamped = cholesky_lower(xtx, pivot_floor)
    if clamped:
        message = f"{clamped} Cholesky pivot(s) clamped to {pivot_floor:g} (rank-deficient or ill-conditioned X)"
        logger.warning(message)
        warnings.warn(message, NumericInstability, stacklevel=2)
    return RidgeFit(beta=solve_cholesky(L, xty), clamped_pivots=clamped)


# ---------------------------------------------------------------------------
# Season-scoped coefficients
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelCoefficients:
    """Weights for one evaluation season, fit on strictly earlier seasons."""

    season: int
    lam: float
    features: Tuple[str, ...]
    beta: Tuple[float, ...]
    training_games: int
    training_cutoff: Optional[dt.date]
    last_training_date: Optional[dt.date]
    residual_std: float
    clamped_pivots: int = 0

    def predict_row(self, row: np.ndarray) -> float:
        return float(np.dot(np.asarray(row, dtype=float), np.asarray(self.beta)))

    def predict(self, matched) -> float:
        return self.predict_row(feature_row(matched, self.features))

    def coefficient(self, name: str) -> float:
        return self.beta[self.features.index(name)]

    def to_dict(self) -> dict:
        return {
            "season": self.season,
            "lam": self.lam,
            "features": list(self.features),
            "beta": list(self.beta),
            "training_games": self.training_games,
            "training_cutoff": self.training_cutoff.isoformat() if self.training_cutoff else None,
            "last_training_date": self.last_training_date.isoformat() if self.last_training_date else None,
            "residual_std": self.residual_std,
            "clamped_pivots": self.clamped_pivots,
        }


@dataclass(frozen=True)
class TrainingRow:
    """One completed, snapshot-matched game with its realized target."""

    matched: object  # MatchedGame
    target: float
    season: int
    date: dt.date


class RidgeTrainer:
    """Walk-forward ridge fitting: season S sees only seasons < S."""

    def __init__(self, features: Sequence[str], config: Optional[RidgeConfig] = None):
        self.features = tuple(features)
        self.config = config or RidgeConfig()
        if not self.features or self.features[0] != "intercept":
            raise ValueError("feature list must start with 'intercept'")

    def training_rows(
        self, rows: Sequence[TrainingRow], season: int, cutoff: Optional[dt.date] = None
    ) -> List[TrainingRow]:
        return [
            r for r in rows
            if r.season < season and (cutoff is None or r.date < cutoff)
        ]

    def fit_season(
        self, rows: Sequence[TrainingRow], season: int, cutoff: Optional[dt.date] = None
    ) -> ModelCoefficients:
        """
        Fit coefficients for evaluation season ``season``.

        Args:
            rows: Candidate training rows (any seasons)
            season: Evaluation season; only rows from earlier seasons are used
            cutoff: First game date of the evaluation season; rows on or
                after it are dropped as well

        Raises:
            InsufficientTrainingData: fewer than ``min_training_games`` rows survive
        """
        train = self.training_rows(rows, season, cutoff)
        if len(train) < self.config.min_training_games:
            raise InsufficientTrainingData(season, len(train), self.config.min_training_games)

        X = design_matrix([r.matched for r in train], self.features)
        y = np.array([r.target for r in train], dtype=float)
        fit = fit_ridge(X, y, self.config.lam, self.config.pivot_floor)

        residuals = y - X @ fit.beta
        dof = max(len(y) - len(self.features), 1)
        residual_std = float(math.sqrt(float(residuals @ residuals) / dof))

        coefficients = ModelCoefficients(
            season=season,
            lam=self.config.lam,
            features=self.features,
            beta=tuple(float(b) for b in fit.beta),
            training_games=len(train),
            training_cutoff=cutoff,
            last_training_date=max(r.date for r in train),
            residual_std=residual_std,
            clamped_pivots=fit.clamped_pivots,
        )
        logger.info(
            "Season %d: fit %d features on %d games (lambda=%g, residual sd=%.2f)",
            season, len(self.features), len(train), self.config.lam, residual_std,
        )
        return coefficients
