"""
Tier sweep: search combinatorial tier rules over backtest evaluations.

Provides:
- Named sweep spaces ("totals": model-edge rules with tempo and line caps,
  "convergence": convergence-score thresholds)
- A weight search that re-scores the same evaluations under per-category
  scalings of the weight table, holding the tier scheme fixed
- Acceptance constraints: samples per tier, picks-per-week band per tier,
  monotone win rates across tiers, a floor on the top tier, full seasons
- Ranking by top-tier win rate, then seasons in which the tiers were
  monotone, then the next tier's win rate
- Optional ProcessPoolExecutor fan-out over candidate chunks
"""

from __future__ import annotations

import itertools
import logging
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ...config import AnyOfRule, EngineConfig, SweepConfig, TierContext, TierRule, TierScheme, WeightTable
from ...errors import ConfigError
from ...models.game import Outcome
from ...models.sport import Direction, Market, Sport
from ...scoring.convergence import ConvergenceScorer
from ..evaluation.backtest import BacktestReport, EvaluatedPick, TierRecord

logger = logging.getLogger(__name__)

OVER, UNDER = Direction.OVER, Direction.UNDER
TIERS = (5, 4, 3)
WEIGHT_FACTORS = (0.0, 0.5, 1.5, 2.0)
WEIGHTS_SPACE = "weights"


# ---------------------------------------------------------------------------
# Sweep spaces
# ---------------------------------------------------------------------------


def _under(tier: int, edge: float, **caps) -> TierRule:
    return TierRule(tier, min_edge=edge, direction=UNDER, **caps)


def _any_side(tier: int, edge: float) -> TierRule:
    return TierRule(tier, min_edge=edge)


def _under_or_over(tier: int, under: float, over: float) -> AnyOfRule:
    return AnyOfRule(tier, (TierRule(tier, min_edge=under, direction=UNDER),
                            TierRule(tier, min_edge=over, direction=OVER)))


def totals_space() -> Dict[int, List]:
    """Model-edge rules for totals; unders have historically carried the edge."""
    five = [_under(5, e, max_tempo=t) for e in (8, 10, 12, 15) for t in (64, 65, 66, 67, 68)]
    five += [_under(5, e) for e in (8, 10, 12, 15)]
    five += [_any_side(5, e) for e in (12, 15)]
    five += [_under(5, e, max_line=line) for e in (8, 10, 12) for line in (140, 145, 150)]

    four = [_under(4, e) for e in (5, 6, 7, 8, 10)]
    four += [_any_side(4, e) for e in (8, 10, 12)]
    four += [_under_or_over(4, u, o) for u in (4, 5, 6, 7) for o in (8, 10, 12)]
    four += [_under(4, e, max_tempo=t) for e in (5, 6, 7) for t in (68, 70)]

    three = [_any_side(3, e) for e in (6, 7, 8, 9, 10)]
    three += [_under_or_over(3, u, o) for u in (4, 5, 6) for o in (7, 8, 10)]
    three += [_under(3, e) for e in (4, 5, 6, 7)]
    return {5: five, 4: four, 3: three}


def convergence_space() -> Dict[int, List]:
    five = [TierRule(5, min_score=s) for s in (80, 82, 85, 88, 90)]
    five += [TierRule(5, min_score=s, min_edge=e) for s in (75, 80, 85) for e in (1.0, 2.0)]
    four = [TierRule(4, min_score=s) for s in (65, 68, 70, 72, 75)]
    four += [TierRule(4, min_score=s, min_edge=0.5) for s in (65, 70)]
    three = [TierRule(3, min_score=s) for s in (50, 52, 55, 58, 60)]
    return {5: five, 4: four, 3: three}


@dataclass(frozen=True)
class SweepSpace:
    name: str
    rules: Callable[[], Dict[int, List]]
    side_source: str  # "model": the model-edge side, "convergence": the signals' side
    description: str = ""


SWEEP_SPACES: Dict[str, SweepSpace] = {
    "totals": SweepSpace("totals", totals_space, "model", "model edge with direction, tempo and line filters"),
    "convergence": SweepSpace("convergence", convergence_space, "convergence", "convergence score thresholds"),
}


def get_space(name: str) -> SweepSpace:
    try:
        return SWEEP_SPACES[name]
    except KeyError:
        raise ConfigError(f"unknown sweep space '{name}', expected one of {sorted(SWEEP_SPACES)}") from None


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class SweepResult:
    """One candidate configuration scored on the held-out evaluations."""

    index: Tuple[int, ...]
    tiers: Dict[int, TierRecord]
    picks_per_week: Dict[int, float]
    monotone_seasons: int
    full_seasons: int
    rejections: List[str] = field(default_factory=list)
    scheme: Optional[TierScheme] = None
    weights: Optional[WeightTable] = None

    @property
    def accepted(self) -> bool:
        return not self.rejections

    def win_rate(self, tier: int) -> float:
        return self.tiers[tier].win_rate

    def rank_key(self) -> Tuple:
        tiers = sorted(self.tiers, reverse=True)
        top = self.win_rate(tiers[0])
        following = self.win_rate(tiers[1]) if len(tiers) > 1 else 0.0
        return (-top, -self.monotone_seasons, -following, self.index)

    def to_dict(self) -> dict:
        return {
            "scheme": self.scheme.to_dict() if self.scheme else None,
            "weights": self.weights.to_dict() if self.weights else None,
            "tiers": {str(t): r.to_dict() for t, r in sorted(self.tiers.items(), reverse=True)},
            "picks_per_week": {str(t): round(v, 3) for t, v in sorted(self.picks_per_week.items(), reverse=True)},
            "monotone_seasons": self.monotone_seasons,
            "full_seasons": self.full_seasons,
            "rejections": list(self.rejections),
        }


@dataclass
class SweepOutcome:
    space: str
    market: Market
    evaluated: int
    seasons: List[int]
    ranked: List[SweepResult]
    rejection_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def best(self) -> Optional[SweepResult]:
        return self.ranked[0] if self.ranked else None


# ---------------------------------------------------------------------------
# Scoring candidates
# ---------------------------------------------------------------------------


@dataclass
class _PickArrays:
    """Per-pick outcome arrays for the side each pick is graded on."""

    season_idx: np.ndarray
    win: np.ndarray
    loss: np.ndarray
    push: np.ndarray
    n_seasons: int


def _side(pick: EvaluatedPick, side_source: str) -> Direction:
    return pick.model_side if side_source == "model" else pick.convergence_side


def _context(pick: EvaluatedPick, side_source: str) -> TierContext:
    side = _side(pick, side_source)
    return TierContext(score=pick.score, side=side, edge=pick.model_edge, avg_tempo=pick.avg_tempo, line=pick.line)


def _pick_arrays(picks: Sequence[EvaluatedPick], outcomes: Sequence[Optional[Outcome]], seasons: List[int]) -> _PickArrays:
    season_pos = {s: i for i, s in enumerate(seasons)}
    return _PickArrays(
        season_idx=np.array([season_pos[p.season] for p in picks], dtype=int),
        win=np.array([o is Outcome.WIN for o in outcomes], dtype=bool),
        loss=np.array([o is Outcome.LOSS for o in outcomes], dtype=bool),
        push=np.array([o is Outcome.PUSH for o in outcomes], dtype=bool),
        n_seasons=len(seasons),
    )


def _acceptance(
    tiers: Dict[int, TierRecord],
    per_week: Dict[int, float],
    full_seasons: int,
    config: SweepConfig,
) -> List[str]:
    rejections = []
    for tier, record in tiers.items():
        minimum = config.min_samples.get(tier)
        if minimum is not None and record.graded < minimum:
            rejections.append(f"sample: {tier}* {record.graded} < {minimum}")
        band = config.volume_bands.get(tier)
        if band is not None and not band[0] <= per_week[tier] <= band[1]:
            rejections.append(f"volume: {tier}* {per_week[tier]:.1f}/wk outside {band[0]:g}-{band[1]:g}")
    ordered = sorted(tiers, reverse=True)
    for higher, lower in zip(ordered, ordered[1:]):
        if tiers[higher].win_rate < tiers[lower].win_rate:
            rejections.append(f"monotone: {higher}* below {lower}*")
    if tiers[ordered[0]].win_rate < config.min_top_win_rate:
        rejections.append(f"top tier: {ordered[0]}* {tiers[ordered[0]].win_rate:.3f} < {config.min_top_win_rate:g}")
    if full_seasons < config.min_full_seasons:
        rejections.append(f"seasons: {full_seasons} full < {config.min_full_seasons}")
    return rejections


def _summarize(
    index: Tuple[int, ...],
    selections: Sequence[Tuple[int, np.ndarray]],
    arrays: _PickArrays,
    total_weeks: float,
    config: SweepConfig,
) -> SweepResult:
    """Records, volume and per-season checks for one candidate.

    ``selections`` pairs each tier, highest first, with the mask of picks it
    took; masks never overlap.
    """
    S = arrays.n_seasons
    tiers: Dict[int, TierRecord] = {}
    per_week: Dict[int, float] = {}
    season_rates = np.zeros((len(selections), S))
    season_graded = np.zeros((len(selections), S), dtype=int)
    for k, (tier, selected) in enumerate(selections):
        wins = np.bincount(arrays.season_idx[selected & arrays.win], minlength=S)
        losses = np.bincount(arrays.season_idx[selected & arrays.loss], minlength=S)
        pushes = int(np.count_nonzero(selected & arrays.push))
        record = TierRecord(int(wins.sum()), int(losses.sum()), pushes)
        tiers[tier] = record
        per_week[tier] = record.total / total_weeks if total_weeks > 0 else 0.0
        graded = wins + losses
        season_graded[k] = graded
        season_rates[k] = np.divide(wins, graded, out=np.zeros(S), where=graded > 0)

    full = np.all(season_graded > 0, axis=0)
    monotone = full & np.all(season_rates[:-1] >= season_rates[1:], axis=0)
    full_seasons = int(full.sum())
    return SweepResult(
        index=tuple(index),
        tiers=tiers,
        picks_per_week=per_week,
        monotone_seasons=int(monotone.sum()),
        full_seasons=full_seasons,
        rejections=_acceptance(tiers, per_week, full_seasons, config),
    )


def _score_combos(
    combos: Sequence[Tuple[int, ...]],
    masks: Dict[int, np.ndarray],
    arrays: _PickArrays,
    total_weeks: float,
    config: SweepConfig,
) -> List[SweepResult]:
    """Score a chunk of candidates. Module-level so worker processes can run it."""
    n = len(arrays.win)
    results = []
    for combo in combos:
        taken = np.zeros(n, dtype=bool)
        selections = []
        for tier, rule_idx in zip(TIERS, combo):
            selected = masks[tier][rule_idx] & ~taken
            taken |= selected
            selections.append((tier, selected))
        results.append(_summarize(combo, selections, arrays, total_weeks, config))
    return results


def _chunks(items: List, size: int) -> List[List]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def _held_out(report: BacktestReport, market: Market) -> Tuple[List[int], List[EvaluatedPick], float]:
    runs = report.runs_for(market)
    seasons = [r.season for r in runs]
    season_set = set(seasons)
    picks = [p for p in report.picks if p.market is market and p.season in season_set]
    return seasons, picks, sum(r.weeks for r in runs)


def _rank(results: List[SweepResult], top_n: int) -> Tuple[List[SweepResult], Dict[str, int], int]:
    """Accepted results best first, capped at ``top_n``, plus rejection counts by kind."""
    counts: Dict[str, int] = {}
    for r in results:
        for reason in r.rejections:
            key = reason.split(":", 1)[0]
            counts[key] = counts.get(key, 0) + 1
    accepted = sorted((r for r in results if r.accepted), key=SweepResult.rank_key)
    return accepted[:top_n], counts, len(accepted)


class TierSweep:
    """Searches one sweep space over a backtest report's held-out evaluations."""

    def __init__(self, config: Optional[SweepConfig] = None, space: Optional[str] = None):
        self.config = config or SweepConfig()
        self.space = get_space(space or self.config.space)

    def _arrays(self, picks: List[EvaluatedPick], seasons: List[int]) -> _PickArrays:
        outcomes = [p.grade(_side(p, self.space.side_source)) for p in picks]
        return _pick_arrays(picks, outcomes, seasons)

    def run(self, report: BacktestReport, market: Market = Market.TOTAL) -> SweepOutcome:
        """
        Score every candidate in the space and rank the accepted ones.

        Args:
            report: Walk-forward backtest whose evaluations are re-tiered
            market: Market whose evaluations are swept

        Returns:
            SweepOutcome with up to ``top_n`` accepted results, best first
        """
        seasons, picks, total_weeks = _held_out(report, market)
        rules = self.space.rules()

        contexts = [_context(p, self.space.side_source) for p in picks]
        masks = {
            tier: np.array([[rule.matches(c) for c in contexts] for rule in rules[tier]], dtype=bool)
            for tier in TIERS
        }
        arrays = self._arrays(picks, seasons)
        combos = list(itertools.product(*(range(len(rules[t])) for t in TIERS)))
        logger.info(
            "Sweeping %d %s candidates over %d %s evaluations in %d seasons",
            len(combos), self.space.name, len(picks), market.value, len(seasons),
        )

        results = self._score(combos, masks, arrays, total_weeks)
        ranked, counts, n_accepted = _rank(results, self.config.top_n)
        for r in ranked:
            r.scheme = self.scheme_for(r.index, rules)
        logger.info("%d of %d candidates accepted", n_accepted, len(results))
        return SweepOutcome(
            space=self.space.name,
            market=market,
            evaluated=len(results),
            seasons=seasons,
            ranked=ranked,
            rejection_counts=counts,
        )

    def _score(self, combos, masks, arrays, total_weeks) -> List[SweepResult]:
        chunks = _chunks(combos, self.config.chunk_size)
        if self.config.parallel_workers <= 1 or len(chunks) <= 1:
            return [r for chunk in chunks for r in _score_combos(chunk, masks, arrays, total_weeks, self.config)]
        results: List[SweepResult] = []
        try:
            with ProcessPoolExecutor(max_workers=self.config.parallel_workers) as executor:
                futures = [
                    executor.submit(_score_combos, chunk, masks, arrays, total_weeks, self.config)
                    for chunk in chunks
                ]
                for future in as_completed(futures):
                    results.extend(future.result())
        except (RuntimeError, OSError):
            logger.warning("Process pool unavailable; sweeping sequentially")
            results = [r for chunk in chunks for r in _score_combos(chunk, masks, arrays, total_weeks, self.config)]
        return results

    def scheme_for(self, index: Tuple[int, ...], rules: Optional[Dict[int, List]] = None) -> TierScheme:
        rules = rules or self.space.rules()
        picked = [rules[tier][i] for tier, i in zip(TIERS, index)]
        name = f"{self.space.name}:" + "/".join(str(i) for i in index)
        return TierScheme(rules=picked, name=name, side_source=self.space.side_source)


# ---------------------------------------------------------------------------
# Weight search
# ---------------------------------------------------------------------------


class WeightSweep:
    """Searches per-category scalings of a weight table under a fixed tier scheme.

    Candidate 0 is the base table. Every other candidate multiplies one
    category of the base table by one of ``factors`` and renormalizes, so
    each candidate differs from the base along a single category. Every
    held-out evaluation is re-scored from its stored signals with the same
    scorer production uses, then held to the tier sweep's acceptance
    constraints and ranking.
    """

    def __init__(self, config: Optional[SweepConfig] = None, factors: Sequence[float] = WEIGHT_FACTORS):
        self.config = config or SweepConfig()
        self.factors = tuple(float(f) for f in factors)
        if any(f < 0 for f in self.factors):
            raise ConfigError(f"weight factors must be >= 0, got {self.factors}")

    def candidates(self, base: WeightTable) -> List[WeightTable]:
        tables = [base]
        for category in sorted(base.weights):
            weight = base.weights[category]
            if weight == 0:
                continue
            for factor in self.factors:
                if factor == 1.0:
                    continue
                if weight * factor + (1.0 - weight) <= 0:
                    # the only weighted category cannot be zeroed out
                    continue
                tables.append(base.scaled(category, factor))
        return tables

    def run(
        self,
        report: BacktestReport,
        market: Market,
        base: WeightTable,
        scheme: TierScheme,
    ) -> SweepOutcome:
        """
        Re-score every held-out evaluation under each candidate table.

        Args:
            report: Walk-forward backtest whose evaluations carry their signals
            market: Market whose evaluations are re-scored
            base: Weight table the candidates are derived from
            scheme: Tier scheme applied to every candidate

        Returns:
            SweepOutcome with up to ``top_n`` accepted tables, best first
        """
        if base.market is not Market(market):
            raise ConfigError(f"weight table is for {base.market.value}, not {Market(market).value}")
        seasons, picks, total_weeks = _held_out(report, market)
        if any(not p.signals for p in picks):
            raise ConfigError("backtest evaluations carry no signals to re-score")
        tables = self.candidates(base)
        logger.info(
            "Re-scoring %d %s evaluations under %d weight tables", len(picks), market.value, len(tables),
        )

        results = []
        for i, table in enumerate(tables):
            scorer = ConvergenceScorer(table, scheme)
            tier_of = np.zeros(len(picks), dtype=int)
            outcomes: List[Optional[Outcome]] = []
            for k, p in enumerate(picks):
                r = scorer.evaluate(p.signals, edge=p.model_edge, avg_tempo=p.avg_tempo, line=p.line)
                tier_of[k] = r.tier
                outcomes.append(p.grade(r.side) if r.tier > 0 else None)
            arrays = _pick_arrays(picks, outcomes, seasons)
            selections = [(tier, tier_of == tier) for tier in scheme.tiers]
            result = _summarize((i,), selections, arrays, total_weeks, self.config)
            result.weights = table
            results.append(result)

        ranked, counts, n_accepted = _rank(results, self.config.top_n)
        logger.info("%d of %d weight tables accepted", n_accepted, len(results))
        return SweepOutcome(
            space=WEIGHTS_SPACE,
            market=Market(market),
            evaluated=len(results),
            seasons=seasons,
            ranked=ranked,
            rejection_counts=counts,
        )


def apply_best(config: EngineConfig, sport: Sport, outcome: SweepOutcome) -> EngineConfig:
    """A copy of ``config`` carrying the winner: its tier scheme or its weight table."""
    best = outcome.best
    if best is None:
        raise ConfigError(f"sweep '{outcome.space}' accepted no configuration")
    if best.scheme is not None:
        config = config.with_tier_scheme(sport, outcome.market, best.scheme)
    if best.weights is not None:
        config = config.with_weight_table(sport, best.weights)
    return config
