"""Walk-forward backtest.

Each evaluation season S is scored with a model fit on seasons before S
only. Seasons without enough earlier games are skipped, never fit on a
thin sample. Every scored game is kept as an `EvaluatedPick` so the tier
sweep can re-tier the same evaluations under other rules without
recomputing signals.
"""

from __future__ import annotations

import datetime as dt
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import mean_squared_error

from ...data.context import RunContext
from ...data.snapshots import MatchedGame, MatchedSnapshot
from ...errors import InsufficientTrainingData
from ...models.game import Game, Outcome
from ...models.signal import SignalResult
from ...models.sport import Direction, Market
from ...pipeline.picks import PickGenerator
from ...pipeline.training import SeasonModels
from ...predictors.base import edge_direction

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass
class TierRecord:
    """Win/loss/push tally against the line."""

    wins: int = 0
    losses: int = 0
    pushes: int = 0

    def add(self, outcome: Optional[Outcome]) -> None:
        if outcome is Outcome.WIN:
            self.wins += 1
        elif outcome is Outcome.LOSS:
            self.losses += 1
        elif outcome is Outcome.PUSH:
            self.pushes += 1

    def merge(self, other: "TierRecord") -> "TierRecord":
        return TierRecord(self.wins + other.wins, self.losses + other.losses, self.pushes + other.pushes)

    @property
    def graded(self) -> int:
        return self.wins + self.losses

    @property
    def total(self) -> int:
        return self.wins + self.losses + self.pushes

    @property
    def win_rate(self) -> float:
        """Wins over decided picks; pushes are excluded, 0.0 with nothing decided."""
        return self.wins / self.graded if self.graded else 0.0

    def __str__(self) -> str:
        return f"{self.wins}-{self.losses}-{self.pushes}"

    def to_dict(self) -> dict:
        return {
            "wins": self.wins,
            "losses": self.losses,
            "pushes": self.pushes,
            "win_rate": round(self.win_rate, 4),
        }


@dataclass(frozen=True)
class EvaluatedPick:
    """One scored (game, market) of a held-out season, whether or not it was tiered.

    ``covered`` is the side that beat the line (NEUTRAL on a push). ``side``
    is the side the run's scheme picked; ``convergence_side`` is the side
    the signals favoured. ``signals`` lets a weight search re-score the
    game without regenerating them.
    """

    season: int
    date: dt.date
    game_id: str
    market: Market
    score: int
    side: Direction
    tier: int
    model_edge: Optional[float]
    avg_tempo: Optional[float]
    line: Optional[float]
    covered: Direction
    convergence_side: Direction = Direction.NEUTRAL
    signals: Tuple[SignalResult, ...] = field(default=(), repr=False, compare=False)

    @property
    def model_side(self) -> Direction:
        return edge_direction(self.model_edge, self.market)

    def grade(self, side: Direction) -> Optional[Outcome]:
        if side is Direction.NEUTRAL:
            return None
        if self.covered is Direction.NEUTRAL:
            return Outcome.PUSH
        return Outcome.WIN if self.covered is side else Outcome.LOSS


@dataclass
class BacktestRun:
    """Held-out results for one (season, market) under one tier scheme."""

    season: int
    market: Market
    config_name: str
    tiers: Dict[int, TierRecord]
    model_record: TierRecord
    headline_record: TierRecord
    picks_per_week: float
    rmse: Optional[float]
    n_predictions: int
    n_games: int
    weeks: float
    training_games: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "season": self.season,
            "market": self.market.value,
            "config_name": self.config_name,
            "tiers": {str(t): r.to_dict() for t, r in sorted(self.tiers.items(), reverse=True)},
            "model_record": self.model_record.to_dict(),
            "headline_record": self.headline_record.to_dict(),
            "picks_per_week": round(self.picks_per_week, 3),
            "rmse": round(self.rmse, 4) if self.rmse is not None else None,
            "n_predictions": self.n_predictions,
            "n_games": self.n_games,
            "training_games": self.training_games,
        }


@dataclass
class BacktestReport:
    runs: List[BacktestRun] = field(default_factory=list)
    picks: List[EvaluatedPick] = field(default_factory=list)
    skipped: List[Tuple[int, Market, str]] = field(default_factory=list)

    @property
    def seasons(self) -> List[int]:
        return sorted({r.season for r in self.runs})

    def runs_for(self, market: Market) -> List[BacktestRun]:
        return sorted((r for r in self.runs if r.market is market), key=lambda r: r.season)

    def aggregate(self, market: Market) -> Dict[int, TierRecord]:
        totals: Dict[int, TierRecord] = {}
        for run in self.runs_for(market):
            for tier, record in run.tiers.items():
                totals[tier] = totals.get(tier, TierRecord()).merge(record)
        return totals

    def aggregate_model_record(self, market: Market, headline: bool = False) -> TierRecord:
        total = TierRecord()
        for run in self.runs_for(market):
            total = total.merge(run.headline_record if headline else run.model_record)
        return total

    def to_frame(self) -> pd.DataFrame:
        """One row per (season, market); tier columns as W-L-P and win rate."""
        rows = []
        for run in sorted(self.runs, key=lambda r: (r.market.value, r.season)):
            row = {
                "season": run.season,
                "market": run.market.value,
                "config": run.config_name,
                "games": run.n_games,
                "rmse": run.rmse,
                "model": str(run.model_record),
                "model_pct": run.model_record.win_rate,
                "picks_per_week": run.picks_per_week,
            }
            for tier, record in sorted(run.tiers.items(), reverse=True):
                row[f"{tier}*"] = str(record)
                row[f"{tier}*_pct"] = record.win_rate
            rows.append(row)
        return pd.DataFrame(rows)

    def picks_frame(self) -> pd.DataFrame:
        return pd.DataFrame([
            {
                "season": p.season,
                "date": p.date,
                "game_id": p.game_id,
                "market": p.market.value,
                "score": p.score,
                "side": p.side.value,
                "convergence_side": p.convergence_side.value,
                "tier": p.tier,
                "model_edge": p.model_edge,
                "avg_tempo": p.avg_tempo,
                "line": p.line,
                "covered": p.covered.value,
            }
            for p in self.picks
        ])


def rmse(actual: Sequence[float], predicted: Sequence[float]) -> Optional[float]:
    if len(actual) == 0:
        return None
    return math.sqrt(mean_squared_error(np.asarray(actual, dtype=float), np.asarray(predicted, dtype=float)))


# ---------------------------------------------------------------------------
# Backtester
# ---------------------------------------------------------------------------


class WalkForwardBacktester:
    """Scores every held-out season with a model that never saw it."""

    def __init__(self, context: RunContext, markets: Optional[Iterable[Market]] = None):
        self.context = context
        self.config = context.config.backtest
        self.markets = tuple(Market(m) for m in (markets or self.config.markets))
        self.models = SeasonModels(context)
        self.generator = PickGenerator(context, markets=self.markets, models=self.models)

    @property
    def weeks(self) -> float:
        if self.config.weeks_per_season is not None:
            return float(self.config.weeks_per_season)
        return float(self.context.profile.weeks_per_season)

    def seasons(self) -> List[int]:
        available = self.context.seasons
        if self.config.seasons is None:
            return available
        return [s for s in self.config.seasons if s in available]

    def evaluate_season(self, season: int, market: Market) -> Tuple[BacktestRun, List[EvaluatedPick]]:
        """
        Score one held-out season.

        Raises:
            InsufficientTrainingData: the season has too few earlier games to fit on
        """
        training_games = None
        if self.context.profile.uses_rating_snapshots:
            training_games = self.models.coefficients(season, market).training_games
        predictor = self.models.predictor(season, (market,))
        scheme = self.generator.scorers[market].scheme

        games: List[Game] = [
            g for g in self.context.games if g.season == season and g.is_final and g.has_line(market)
        ]
        tiers = {t: TierRecord() for t in scheme.tiers}
        model_record = TierRecord()
        headline_record = TierRecord()
        actual: List[float] = []
        predicted: List[float] = []
        evaluated: List[EvaluatedPick] = []
        for g in games:
            ev = self.generator.evaluate(g, market, predictor)
            covered = g.covered(market)
            if ev.prediction is not None:
                actual.append(float(g.realized(market)))
                predicted.append(ev.prediction)
            model_side = edge_direction(ev.edge, market)
            if model_side is not Direction.NEUTRAL:
                outcome = g.grade(market, model_side)
                model_record.add(outcome)
                if abs(ev.edge) >= self.config.headline_edge:
                    headline_record.add(outcome)
            if ev.result.tier > 0:
                tiers.setdefault(ev.result.tier, TierRecord()).add(g.grade(market, ev.result.side))
            evaluated.append(EvaluatedPick(
                season=season,
                date=g.date,
                game_id=g.game_id,
                market=market,
                score=ev.result.score,
                side=ev.result.side,
                tier=ev.result.tier,
                model_edge=ev.edge,
                avg_tempo=ev.avg_tempo,
                line=ev.line,
                covered=covered,
                convergence_side=ev.result.convergence_side,
                signals=tuple(ev.signals),
            ))

        weeks = self.weeks
        tiered = sum(r.total for r in tiers.values())
        run = BacktestRun(
            season=season,
            market=market,
            config_name=scheme.name,
            tiers=tiers,
            model_record=model_record,
            headline_record=headline_record,
            picks_per_week=tiered / weeks if weeks > 0 else 0.0,
            rmse=rmse(actual, predicted),
            n_predictions=len(predicted),
            n_games=len(games),
            weeks=weeks,
            training_games=training_games,
        )
        return run, evaluated

    def run(self) -> BacktestReport:
        report = BacktestReport()
        for season in self.seasons():
            for market in self.markets:
                try:
                    run, evaluated = self.evaluate_season(season, market)
                except InsufficientTrainingData as exc:
                    logger.warning("Skipping %s season %d: %s", market.value, season, exc)
                    report.skipped.append((season, market, str(exc)))
                    continue
                report.runs.append(run)
                report.picks.extend(evaluated)
                logger.info(
                    "Season %d %s: %d games, model %s (%.1f%%), rmse %s",
                    season, market.value, run.n_games, run.model_record, 100 * run.model_record.win_rate,
                    f"{run.rmse:.3f}" if run.rmse is not None else "n/a",
                )
        return report


# ---------------------------------------------------------------------------
# Point-in-time vs end-of-season snapshots
# ---------------------------------------------------------------------------


def _end_of_season(context: RunContext, game: Game, season_end: dt.date) -> Optional[MatchedGame]:
    store = context.snapshots
    sides = []
    for team in (game.home_id, game.away_id):
        snapshot = store.latest_between(team, dt.date.min, season_end)
        if snapshot is None:
            return None
        sides.append(MatchedSnapshot(
            snapshot=snapshot,
            lag_days=(game.date - snapshot.date).days,
            method="end-of-season",
            rank=store.rank_on(team, snapshot.date),
        ))
    return MatchedGame(game=game, home=sides[0], away=sides[1])


def snapshot_gap_report(context: RunContext, market: Market = Market.TOTAL) -> pd.DataFrame:
    """Model record with point-in-time snapshots vs the season's final snapshots.

    The same walk-forward coefficients are applied to both; the gap is how
    much an evaluation built on end-of-season ratings would overstate the
    model.
    """
    columns = ["season", "games", "pit_win_rate", "eos_win_rate", "gap_pp", "pit_rmse", "eos_rmse"]
    if not context.profile.uses_rating_snapshots:
        return pd.DataFrame(columns=columns)
    models = SeasonModels(context)
    rows = []
    for season in context.seasons:
        try:
            coefficients = models.coefficients(season, market)
        except InsufficientTrainingData:
            continue
        games = [g for g in context.games if g.season == season and g.is_final and g.has_line(market)]
        if not games:
            continue
        season_end = max(g.date for g in games)
        pit, eos = TierRecord(), TierRecord()
        actual, pit_pred, eos_pred = [], [], []
        for g in games:
            matched = models.matched(g)
            final = _end_of_season(context, g, season_end)
            if matched is None or final is None:
                continue
            line = g.market_line(market)
            p, e = coefficients.predict(matched), coefficients.predict(final)
            for record, value in ((pit, p), (eos, e)):
                side = edge_direction(value - line, market)
                if side is not Direction.NEUTRAL:
                    record.add(g.grade(market, side))
            actual.append(float(g.realized(market)))
            pit_pred.append(p)
            eos_pred.append(e)
        if not actual:
            continue
        rows.append({
            "season": season,
            "games": len(actual),
            "pit_win_rate": pit.win_rate,
            "eos_win_rate": eos.win_rate,
            "gap_pp": 100.0 * (eos.win_rate - pit.win_rate),
            "pit_rmse": rmse(actual, pit_pred),
            "eos_rmse": rmse(actual, eos_pred),
        })
    return pd.DataFrame(rows, columns=columns)
