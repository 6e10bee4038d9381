"""Small-sample statistics shared by the history-based signals."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Tuple

from scipy.stats import binomtest, norm

from ..models.signal import Strength

Z_95 = 1.959963984540054


def wilson_interval(successes: int, n: int, z: float = Z_95) -> Tuple[float, float]:
    """Wilson score interval for a binomial proportion."""
    if n <= 0:
        return 0.0, 1.0
    p = successes / n
    denom = 1.0 + z * z / n
    centre = p + z * z / (2 * n)
    half = z * math.sqrt(p * (1 - p) / n + z * z / (4 * n * n))
    return max(0.0, (centre - half) / denom), min(1.0, (centre + half) / denom)


def wilson_edge(successes: int, n: int, min_n: int) -> float:
    """Wilson lower bound minus 0.5; zero when the sample is too small."""
    if n < min_n:
        return 0.0
    return wilson_interval(successes, n)[0] - 0.5


@dataclass(frozen=True)
class TrendSignificance:
    """Binomial test of an observed hit rate against a baseline."""

    hits: int
    n: int
    baseline: float
    p_value: float
    strength: Strength

    @property
    def observed_rate(self) -> float:
        return self.hits / self.n if self.n else self.baseline

    @property
    def effect(self) -> float:
        return abs(self.observed_rate - self.baseline)


def trend_significance(hits: int, n: int, baseline: float = 0.5) -> TrendSignificance:
    """Two-sided exact binomial test, bucketed into a strength tier.

    p < 0.01 is strong, p < 0.05 moderate, p < 0.10 weak, anything else noise.
    """
    if n <= 0:
        return TrendSignificance(hits, n, baseline, 1.0, Strength.NOISE)
    p_value = float(binomtest(hits, n, baseline, alternative="two-sided").pvalue)
    if p_value < 0.01:
        strength = Strength.STRONG
    elif p_value < 0.05:
        strength = Strength.MODERATE
    elif p_value < 0.10:
        strength = Strength.WEAK
    else:
        strength = Strength.NOISE
    return TrendSignificance(hits, n, baseline, p_value, strength)


def interest_score(sig: TrendSignificance, total_games: int) -> int:
    """Rank angles: significance, effect size, and sample size, scaled by strength."""
    score = 0.0
    if sig.p_value < 0.001:
        score += 40
    elif sig.p_value < 0.01:
        score += 30
    elif sig.p_value < 0.05:
        score += 20
    elif sig.p_value < 0.1:
        score += 10

    score += round(sig.effect * 200)

    if total_games >= 100:
        score += 20
    elif total_games >= 50:
        score += 15
    elif total_games >= 30:
        score += 10
    elif total_games >= 20:
        score += 5

    if sig.strength is Strength.STRONG:
        score *= 1.5
    elif sig.strength is Strength.MODERATE:
        score *= 1.2
    return int(round(score))


def interest_to_weight(score: int) -> int:
    if score >= 70:
        return 10
    if score >= 50:
        return 7
    if score >= 35:
        return 5
    if score >= 20:
        return 3
    return 1


# ---------------------------------------------------------------------------
# Market prices
# ---------------------------------------------------------------------------

STANDARD_PRICE = -110


def american_to_probability(price: Optional[int]) -> float:
    """Implied probability of an American price (vig included)."""
    price = STANDARD_PRICE if price is None else price
    if price == 0:
        raise ValueError("American price of 0 is not valid")
    if price < 0:
        return -price / (-price + 100.0)
    return 100.0 / (price + 100.0)


def vig_free_probability(price: Optional[int], other_price: Optional[int]) -> float:
    """Implied probability of one side with the bookmaker margin removed."""
    p = american_to_probability(price)
    q = american_to_probability(other_price)
    return p / (p + q)


def cover_probability(edge: float, sigma: float) -> float:
    """P(outcome beats the line on the edge's side), normal outcome model."""
    if sigma <= 0:
        raise ValueError("sigma must be positive")
    return float(norm.cdf(abs(edge) / sigma))
