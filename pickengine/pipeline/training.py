"""Season-scoped predictors shared by daily picks and walk-forward backtests."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Dict, List, Optional, Tuple

from ..data.context import RunContext
from ..data.snapshots import MatchedGame
from ..errors import InsufficientTrainingData, LookAheadViolation
from ..models.game import Game
from ..models.sport import Market
from ..predictors.base import BasePredictor
from ..predictors.power_rating import PowerRatingPredictor
from ..predictors.rating_model import RidgePredictor
from ..predictors.ridge import ModelCoefficients, RidgeTrainer, TrainingRow

logger = logging.getLogger(__name__)


def check_walk_forward(coefficients: ModelCoefficients, season_start: Optional[dt.date]) -> None:
    """Raise `LookAheadViolation` if any training game is on or after ``season_start``."""
    last = coefficients.last_training_date
    if season_start is not None and last is not None and last >= season_start:
        raise LookAheadViolation(coefficients.season, last, season_start)


class SeasonModels:
    """Fits and caches one predictor per evaluation season.

    Coefficients for season S only ever see final games from seasons < S
    dated before S's first scheduled game. Sports without rating snapshots
    use a `PowerRatingPredictor`, which reads only games before each date.
    """

    def __init__(self, context: RunContext):
        self.context = context
        self._matched: Dict[str, Optional[MatchedGame]] = {}
        self._rows: Dict[Market, List[TrainingRow]] = {}
        self._coefficients: Dict[Tuple[int, Market], ModelCoefficients] = {}
        self._failures: Dict[Tuple[int, Market], InsufficientTrainingData] = {}
        self._season_starts: Dict[int, dt.date] = {}
        for g in context.games:
            start = self._season_starts.get(g.season)
            if start is None or g.date < start:
                self._season_starts[g.season] = g.date
        self._power: Optional[PowerRatingPredictor] = None

    def season_start(self, season: int) -> Optional[dt.date]:
        return self._season_starts.get(season)

    def matched(self, game: Game) -> Optional[MatchedGame]:
        if game.game_id not in self._matched:
            self._matched[game.game_id] = self.context.matcher.try_match_game(game)
        return self._matched[game.game_id]

    def training_rows(self, market: Market) -> List[TrainingRow]:
        """Every final, snapshot-matched game with its realized target."""
        if market not in self._rows:
            rows = []
            for g in self.context.games:
                if not g.is_final:
                    continue
                matched = self.matched(g)
                if matched is None:
                    continue
                rows.append(TrainingRow(matched=matched, target=float(g.realized(market)), season=g.season, date=g.date))
            self._rows[market] = rows
            logger.debug("%d training rows for %s", len(rows), market.value)
        return self._rows[market]

    def coefficients(self, season: int, market: Market) -> ModelCoefficients:
        """Ridge coefficients for ``season``.

        Raises:
            InsufficientTrainingData: too few earlier games (cached, re-raised)
            LookAheadViolation: a training game falls on or after the season start
        """
        key = (season, market)
        if key in self._failures:
            raise self._failures[key]
        if key not in self._coefficients:
            config = self.context.config
            trainer = RidgeTrainer(config.features(self.context.sport, market), config.ridge)
            cutoff = self.season_start(season)
            try:
                coefficients = trainer.fit_season(self.training_rows(market), season, cutoff)
            except InsufficientTrainingData as exc:
                logger.warning("No %s model for season %d: %s", market.value, season, exc)
                self._failures[key] = exc
                raise
            check_walk_forward(coefficients, cutoff)
            self._coefficients[key] = coefficients
        return self._coefficients[key]

    def predictor(self, season: int, markets=(Market.SPREAD, Market.TOTAL)) -> BasePredictor:
        """The predictor for ``season``; markets it cannot fit simply predict nothing."""
        if not self.context.profile.uses_rating_snapshots:
            if self._power is None:
                self._power = PowerRatingPredictor(self.context.history)
            return self._power
        fitted = {}
        for market in markets:
            try:
                fitted[market] = self.coefficients(season, market)
            except InsufficientTrainingData:
                continue
        return RidgePredictor(self.context.matcher, fitted, matched_cache=self._matched)
