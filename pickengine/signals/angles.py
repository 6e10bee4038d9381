"""Situational trend angles.

An angle is a predicate over a team's side of a game ("home favourite of
10+", "road dog off a back-to-back"). For each angle that applies to the
game being scored, the team's ATS and O/U record in past games matching the
same angle is tested against a coin flip; significant records vote for a
side, weighted by their interest score.
"""

from __future__ import annotations

import bisect
import datetime as dt
import logging
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

from ..data.history import HistoryIndex, TeamGame
from ..models.game import Game
from ..models.signal import SignalResult, Strength, clamp
from ..models.sport import TREND_ANGLES, Direction, Sport
from .base import SignalInputs, make_signal
from .significance import TrendSignificance, interest_score, interest_to_weight, trend_significance

logger = logging.getLogger(__name__)

ALL_SPORTS: FrozenSet[Sport] = frozenset(Sport)
FOOTBALL: FrozenSet[Sport] = frozenset({Sport.NFL, Sport.NCAAF})
BASKETBALL: FrozenSet[Sport] = frozenset({Sport.NCAAMB})


@dataclass(frozen=True)
class AngleTemplate:
    key: str
    description: str
    predicate: Callable[[TeamGame], bool]
    sports: FrozenSet[Sport] = ALL_SPORTS


def _spread_between(lo: float, hi: float) -> Callable[[TeamGame], bool]:
    def check(tg: TeamGame) -> bool:
        spread = tg.team_spread
        return spread is not None and lo <= spread <= hi
    return check


def _rest_edge(tg: TeamGame) -> bool:
    if tg.rest_days is None or tg.opp_rest_days is None:
        return False
    return tg.rest_days - tg.opp_rest_days >= 3


def _ranked(rank: Optional[int], top: int = 25) -> bool:
    return rank is not None and rank <= top


def _outdoor_temp_below(limit: float) -> Callable[[TeamGame], bool]:
    def check(tg: TeamGame) -> bool:
        w = tg.game.weather
        return w is not None and w.temperature is not None and w.temperature < limit
    return check


def _windy(tg: TeamGame) -> bool:
    w = tg.game.weather
    return w is not None and w.wind is not None and w.wind >= 20


def _snow(tg: TeamGame) -> bool:
    w = tg.game.weather
    return w is not None and (w.conditions or "").upper() == "SNOW"


DEFAULT_TEMPLATES: Tuple[AngleTemplate, ...] = (
    # spread situations
    AngleTemplate("home_big_fav", "home favourite of 10+",
                  lambda tg: tg.is_home and _spread_between(-100, -10)(tg)),
    AngleTemplate("home_small_fav", "home favourite of 1-3",
                  lambda tg: tg.is_home and _spread_between(-3, -1)(tg)),
    AngleTemplate("road_dog_3_7", "road underdog of 3-7",
                  lambda tg: not tg.is_home and _spread_between(3, 7)(tg)),
    AngleTemplate("home_dog", "home underdog", lambda tg: tg.is_home and tg.is_underdog is True),
    AngleTemplate("big_dog", "underdog of 14+", _spread_between(14, 100)),
    AngleTemplate("pickem", "pick'em (line within 1)", _spread_between(-1, 1)),
    # rest and schedule
    AngleTemplate("rest_edge", "3+ more days of rest than the opponent", _rest_edge),
    AngleTemplate("back_to_back", "back-to-back",
                  lambda tg: tg.rest_days is not None and tg.rest_days <= 1, BASKETBALL),
    AngleTemplate("short_week", "short week",
                  lambda tg: tg.rest_days is not None and tg.rest_days <= 5, FOOTBALL),
    AngleTemplate("off_bye", "off a bye",
                  lambda tg: tg.rest_days is not None and tg.rest_days >= 13, FOOTBALL),
    # conference
    AngleTemplate("conf_home", "conference home game", lambda tg: tg.is_home and tg.game.conference_game),
    AngleTemplate("nonconf_home", "non-conference home game",
                  lambda tg: tg.is_home and not tg.game.conference_game and not tg.game.neutral_site),
    # rankings
    AngleTemplate("ranked_vs_unranked_home", "ranked at home vs unranked",
                  lambda tg: tg.is_home and _ranked(tg.rank) and not _ranked(tg.opp_rank)),
    AngleTemplate("unranked_home_vs_ranked", "unranked at home vs ranked",
                  lambda tg: tg.is_home and not _ranked(tg.rank) and _ranked(tg.opp_rank)),
    AngleTemplate("top10_matchup", "top-10 matchup",
                  lambda tg: _ranked(tg.rank, 10) and _ranked(tg.opp_rank, 10)),
    # neutral site and tournament
    AngleTemplate("neutral_dog", "neutral-site underdog",
                  lambda tg: tg.game.neutral_site and tg.is_underdog is True),
    AngleTemplate("tournament_dog", "tournament underdog",
                  lambda tg: tg.game.tournament and tg.is_underdog is True),
    # weather
    AngleTemplate("cold_home", "home in sub-freezing weather",
                  lambda tg: tg.is_home and _outdoor_temp_below(32)(tg), FOOTBALL),
    AngleTemplate("windy", "wind 20+ mph", _windy, FOOTBALL),
    AngleTemplate("snow_home", "home in snow", lambda tg: tg.is_home and _snow(tg), FOOTBALL),
    # calendar
    AngleTemplate("november_home", "November home game",
                  lambda tg: tg.is_home and tg.date.month == 11),
    AngleTemplate("december_dog", "December underdog",
                  lambda tg: tg.date.month == 12 and tg.is_underdog is True),
    AngleTemplate("march_dog", "March underdog",
                  lambda tg: tg.date.month == 3 and tg.is_underdog is True, BASKETBALL),
)


@dataclass(frozen=True)
class AngleRecord:
    covered: int = 0
    lost: int = 0
    overs: int = 0
    unders: int = 0

    @property
    def ats_games(self) -> int:
        return self.covered + self.lost

    @property
    def ou_games(self) -> int:
        return self.overs + self.unders


class _AngleSeries:
    """Matching games for one (team, angle), with running ATS/O-U tallies."""

    def __init__(self):
        self.dates: List[dt.date] = []
        self.seasons: List[int] = []
        # prefix sums; index i holds tallies of the first i games
        self.covered = [0]
        self.lost = [0]
        self.overs = [0]
        self.unders = [0]

    def add(self, tg: TeamGame) -> None:
        self.dates.append(tg.date)
        self.seasons.append(tg.season)
        ats, over = tg.ats, tg.over
        self.covered.append(self.covered[-1] + (ats is True))
        self.lost.append(self.lost[-1] + (ats is False))
        self.overs.append(self.overs[-1] + (over is True))
        self.unders.append(self.unders[-1] + (over is False))

    def record(self, first_season: int, last_season: int, before: dt.date) -> AngleRecord:
        lo = bisect.bisect_left(self.seasons, first_season)
        hi = min(bisect.bisect_right(self.seasons, last_season), bisect.bisect_left(self.dates, before))
        if hi <= lo:
            return AngleRecord()
        return AngleRecord(
            covered=self.covered[hi] - self.covered[lo],
            lost=self.lost[hi] - self.lost[lo],
            overs=self.overs[hi] - self.overs[lo],
            unders=self.unders[hi] - self.unders[lo],
        )


@dataclass(frozen=True)
class AngleFinding:
    """One significant angle for one team in one market."""

    team_id: str
    template: AngleTemplate
    favors: Direction
    record: AngleRecord
    significance: TrendSignificance

    @property
    def interest(self) -> int:
        return interest_score(self.significance, self.significance.n)

    @property
    def weight(self) -> int:
        """Vote weight: 1, 3, 5, 7 or 10 by interest."""
        return interest_to_weight(self.interest)


class AngleIndex:
    """Per-team angle records, built once from the full history.

    Queries cover the current season and ``lookback_seasons`` before it, and
    only games dated strictly before the game being scored.
    """

    def __init__(
        self,
        history: HistoryIndex,
        templates: Optional[Sequence[AngleTemplate]] = None,
        min_sample: int = 15,
        lookback_seasons: int = 2,
    ):
        self.history = history
        self.templates = tuple(
            t for t in (templates or DEFAULT_TEMPLATES) if history.sport in t.sports
        )
        self.min_sample = min_sample
        self.lookback_seasons = lookback_seasons
        self._series: Dict[Tuple[str, str], _AngleSeries] = {}
        for team in history.teams:
            for tg in history.series(team):
                for template in self.templates:
                    if template.predicate(tg):
                        self._series.setdefault((team, template.key), _AngleSeries()).add(tg)
        logger.debug("Angle index: %d templates, %d team series", len(self.templates), len(self._series))

    def applicable(self, game: Game, team_id: str) -> List[AngleTemplate]:
        view = self.history.view(game, team_id)
        return [t for t in self.templates if t.predicate(view)]

    def record(self, team_id: str, key: str, season: int, before: dt.date) -> AngleRecord:
        series = self._series.get((team_id, key))
        if series is None:
            return AngleRecord()
        return series.record(season - self.lookback_seasons, season, before)

    def findings(self, game: Game, team_id: str, spread_market: bool) -> List[AngleFinding]:
        """Significant angles that apply to ``team_id``'s side of ``game``."""
        is_home = team_id == game.home_id
        team_side = Direction.HOME if is_home else Direction.AWAY
        out = []
        for template in self.applicable(game, team_id):
            rec = self.record(team_id, template.key, game.season, game.date)
            if spread_market:
                hits, n = rec.covered, rec.ats_games
            else:
                hits, n = rec.overs, rec.ou_games
            if n < self.min_sample:
                continue
            sig = trend_significance(hits, n)
            if sig.strength is Strength.NOISE or sig.observed_rate == 0.5:
                continue
            if spread_market:
                favors = team_side if sig.observed_rate > 0.5 else team_side.opposite
            else:
                favors = Direction.OVER if sig.observed_rate > 0.5 else Direction.UNDER
            out.append(AngleFinding(team_id, template, favors, rec, sig))
        return out


def trend_angles(inputs: SignalInputs) -> SignalResult:
    if inputs.angles is None:
        return SignalResult.neutral(TREND_ANGLES, "No angle index")
    g = inputs.game
    findings = inputs.angles.findings(g, g.home_id, inputs.is_spread)
    findings += inputs.angles.findings(g, g.away_id, inputs.is_spread)
    if not findings:
        return SignalResult.neutral(TREND_ANGLES, "No significant trend angles")

    positive, negative = inputs.market_sides
    pos_score = neg_score = total = 0
    significant = 0
    for f in findings:
        w = f.weight
        total += w
        if f.favors is positive:
            pos_score += w
        else:
            neg_score += w
        if f.significance.strength.is_meaningful:
            significant += 1

    dominance = abs(pos_score - neg_score) / total
    magnitude = clamp(dominance * 10 + significant * 0.5)
    if pos_score == neg_score:
        direction = Direction.NEUTRAL
    else:
        direction = positive if pos_score > neg_score else negative
    n_pos = sum(1 for f in findings if f.favors is positive)
    label = (
        f"{len(findings)} angles: {n_pos} {positive.value}, {len(findings) - n_pos} "
        f"{negative.value} ({significant} significant)"
    )
    if inputs.is_spread:
        confidence = clamp(0.4 + significant * 0.08, 0.4, 0.9)
        return make_signal(TREND_ANGLES, direction, magnitude, confidence, label)
    confidence = clamp(0.35 + significant * 0.08, 0.35, 0.85)
    return make_signal(TREND_ANGLES, direction, magnitude, confidence, label, strong=6, moderate=3, weak=1)
