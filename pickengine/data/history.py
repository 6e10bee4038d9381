"""Date-indexed game history for one sport.

Every query takes a ``before`` date and returns only games played strictly
earlier, so signal generators cannot see the game they are scoring or
anything after it.
"""

from __future__ import annotations

import bisect
import datetime as dt
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from ..models.game import Game
from ..models.sport import Direction, Market, Sport


@dataclass(frozen=True)
class TeamGame:
    """A game seen from one team's side."""

    game: Game
    team_id: str
    is_home: bool
    rest_days: Optional[int]
    opp_rest_days: Optional[int]

    @property
    def opponent_id(self) -> str:
        return self.game.away_id if self.is_home else self.game.home_id

    @property
    def date(self) -> dt.date:
        return self.game.date

    @property
    def season(self) -> int:
        return self.game.season

    @property
    def team_spread(self) -> Optional[float]:
        """Spread from this team's side (negative = favourite)."""
        if self.game.spread is None:
            return None
        return self.game.spread if self.is_home else -self.game.spread

    @property
    def is_underdog(self) -> Optional[bool]:
        spread = self.team_spread
        return None if spread is None else spread > 0

    @property
    def rank(self) -> Optional[int]:
        return self.game.home_rank if self.is_home else self.game.away_rank

    @property
    def opp_rank(self) -> Optional[int]:
        return self.game.away_rank if self.is_home else self.game.home_rank

    @property
    def points_for(self) -> Optional[int]:
        return self.game.home_score if self.is_home else self.game.away_score

    @property
    def points_against(self) -> Optional[int]:
        return self.game.away_score if self.is_home else self.game.home_score

    @property
    def ats(self) -> Optional[bool]:
        """True if this team covered, False if it lost ATS, None on push/no line."""
        side = self.game.covered(Market.SPREAD)
        if side is None or side is Direction.NEUTRAL:
            return None
        return (side is Direction.HOME) == self.is_home

    @property
    def over(self) -> Optional[bool]:
        side = self.game.covered(Market.TOTAL)
        if side is None or side is Direction.NEUTRAL:
            return None
        return side is Direction.OVER


@dataclass
class Record:
    """ATS / O-U / straight-up tallies over a set of team games."""

    wins: int = 0
    losses: int = 0
    ats_covered: int = 0
    ats_lost: int = 0
    overs: int = 0
    unders: int = 0
    games: int = 0
    points_for: float = 0.0
    points_against: float = 0.0

    @classmethod
    def from_games(cls, games: Iterable[TeamGame]) -> "Record":
        rec = cls()
        for tg in games:
            rec.games += 1
            pf, pa = tg.points_for, tg.points_against
            if pf is not None and pa is not None:
                rec.points_for += pf
                rec.points_against += pa
                if pf > pa:
                    rec.wins += 1
                elif pf < pa:
                    rec.losses += 1
            ats = tg.ats
            if ats is True:
                rec.ats_covered += 1
            elif ats is False:
                rec.ats_lost += 1
            over = tg.over
            if over is True:
                rec.overs += 1
            elif over is False:
                rec.unders += 1
        return rec

    @property
    def ats_total(self) -> int:
        return self.ats_covered + self.ats_lost

    @property
    def ou_total(self) -> int:
        return self.overs + self.unders

    @property
    def ats_pct(self) -> float:
        return 100.0 * self.ats_covered / self.ats_total if self.ats_total else 50.0

    @property
    def over_pct(self) -> float:
        return 100.0 * self.overs / self.ou_total if self.ou_total else 50.0

    @property
    def avg_margin(self) -> float:
        return (self.points_for - self.points_against) / self.games if self.games else 0.0

    @property
    def avg_for(self) -> float:
        return self.points_for / self.games if self.games else 0.0

    @property
    def avg_against(self) -> float:
        return self.points_against / self.games if self.games else 0.0

    def ats_string(self) -> str:
        return f"{self.ats_covered}-{self.ats_lost}"

    def ou_string(self) -> str:
        return f"{self.overs}-{self.unders}"


class HistoryIndex:
    """All games of one sport, indexed by team and date.

    Rest days come from the full schedule (played or not); records come from
    final games only.
    """

    def __init__(self, sport: Sport, games: Iterable[Game]):
        self.sport = Sport(sport)
        schedule = sorted(
            (g for g in games if g.sport is self.sport),
            key=lambda g: (g.date, g.game_id),
        )
        self._schedule_dates: Dict[str, List[dt.date]] = {}
        for g in schedule:
            for team in (g.home_id, g.away_id):
                self._schedule_dates.setdefault(team, []).append(g.date)

        self._final: Dict[str, List[TeamGame]] = {}
        self._final_dates: Dict[str, List[dt.date]] = {}
        self._final_seasons: Dict[str, List[int]] = {}
        self._all_final: List[Game] = []
        for g in schedule:
            if not g.is_final:
                continue
            self._all_final.append(g)
            for team, is_home in ((g.home_id, True), (g.away_id, False)):
                tg = TeamGame(
                    game=g,
                    team_id=team,
                    is_home=is_home,
                    rest_days=self.rest_days(team, g.date),
                    opp_rest_days=self.rest_days(g.opponent_of(team), g.date),
                )
                self._final.setdefault(team, []).append(tg)
                self._final_dates.setdefault(team, []).append(g.date)
                self._final_seasons.setdefault(team, []).append(g.season)

    def __len__(self) -> int:
        return len(self._all_final)

    @property
    def teams(self) -> List[str]:
        return sorted(self._final)

    def rest_days(self, team_id: str, day: dt.date) -> Optional[int]:
        """Days since the team's previous scheduled game, None if it has none."""
        dates = self._schedule_dates.get(team_id, [])
        idx = bisect.bisect_left(dates, day) - 1
        if idx < 0:
            return None
        return (day - dates[idx]).days

    def view(self, game: Game, team_id: str) -> TeamGame:
        """The (possibly unplayed) game from one team's side, with rest context."""
        return TeamGame(
            game=game,
            team_id=team_id,
            is_home=team_id == game.home_id,
            rest_days=self.rest_days(team_id, game.date),
            opp_rest_days=self.rest_days(game.opponent_of(team_id), game.date),
        )

    def team_games(
        self,
        team_id: str,
        before: dt.date,
        season: Optional[int] = None,
        min_season: Optional[int] = None,
        last_n: Optional[int] = None,
    ) -> List[TeamGame]:
        """Final games for a team dated strictly before ``before``."""
        games = self._final.get(team_id, [])
        hi = bisect.bisect_left(self._final_dates.get(team_id, []), before)
        lo = 0
        seasons = self._final_seasons.get(team_id, [])
        floor = season if season is not None else min_season
        if floor is not None:
            lo = bisect.bisect_left(seasons, floor, 0, hi)
        selected = games[lo:hi]
        if season is not None:
            selected = [tg for tg in selected if tg.season == season]
        if last_n is not None:
            selected = selected[-last_n:]
        return selected

    def season_record(self, team_id: str, season: int, before: dt.date) -> Tuple[Record, List[TeamGame]]:
        games = self.team_games(team_id, before, season=season)
        return Record.from_games(games), games

    def head_to_head(self, team_id: str, opponent_id: str, before: dt.date) -> List[TeamGame]:
        """Prior meetings, from ``team_id``'s side, at any venue."""
        return [tg for tg in self.team_games(team_id, before) if tg.opponent_id == opponent_id]

    def series(self, team_id: str) -> List[TeamGame]:
        return list(self._final.get(team_id, []))
