"""Point-in-time rating snapshot storage and matching.

The matcher answers "which ratings did the world know about this team before
tip-off?". The selected snapshot is always dated strictly before the game:
a same-day rating may already include the game's own result, and using it
inflates in-sample accuracy while out-of-sample accuracy collapses.
"""

from __future__ import annotations

import bisect
import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from ..config import MatcherConfig
from ..errors import SnapshotImmutableError, SnapshotUnavailable
from ..models.game import Game
from ..models.team import RatingSnapshot

logger = logging.getLogger(__name__)

ONE_DAY = dt.timedelta(days=1)


class SnapshotStore:
    """Append-only, single-writer store of per-team rating snapshots.

    Ingestion appends; `freeze` ends ingestion and builds the sorted date
    indexes and per-date ranks that readers use. Readers never see a store
    still being written, and reading never changes it.
    """

    def __init__(self, snapshots: Optional[Iterable[RatingSnapshot]] = None):
        self._by_team: Dict[str, Dict[dt.date, RatingSnapshot]] = {}
        self._dates: Dict[str, Tuple[dt.date, ...]] = {}
        self._by_date: Dict[dt.date, List[RatingSnapshot]] = {}
        self._ranks: Dict[dt.date, Dict[str, int]] = {}
        self._frozen = False
        if snapshots is not None:
            self.extend(snapshots)

    def append(self, snapshot: RatingSnapshot) -> bool:
        """Add one snapshot. Returns False for an identical re-delivery."""
        if self._frozen:
            raise SnapshotImmutableError("snapshot store is frozen; ingestion has ended")
        team_rows = self._by_team.setdefault(snapshot.team_id, {})
        existing = team_rows.get(snapshot.date)
        if existing is not None:
            if existing == snapshot:
                return False
            raise SnapshotImmutableError(
                f"snapshot for {snapshot.team_id} on {snapshot.date} already captured with different values"
            )
        team_rows[snapshot.date] = snapshot
        self._by_date.setdefault(snapshot.date, []).append(snapshot)
        return True

    def extend(self, snapshots: Iterable[RatingSnapshot]) -> int:
        return sum(1 for s in snapshots if self.append(s))

    def freeze(self) -> "SnapshotStore":
        self._dates = {team: tuple(sorted(rows)) for team, rows in self._by_team.items()}
        self._ranks = {}
        for day, rows in self._by_date.items():
            ordered = sorted(rows, key=lambda s: (-s.margin, s.team_id))
            self._ranks[day] = {s.team_id: i + 1 for i, s in enumerate(ordered)}
        self._frozen = True
        logger.info(
            "Snapshot store frozen: %d snapshots, %d teams, %d dates",
            len(self), len(self._by_team), len(self._by_date),
        )
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _require_frozen(self) -> None:
        if not self._frozen:
            raise RuntimeError("snapshot store must be frozen before it is read")

    def __len__(self) -> int:
        return sum(len(rows) for rows in self._by_team.values())

    def get(self, team_id: str, day: dt.date) -> Optional[RatingSnapshot]:
        return self._by_team.get(team_id, {}).get(day)

    def dates_for(self, team_id: str) -> Tuple[dt.date, ...]:
        self._require_frozen()
        return self._dates.get(team_id, ())

    def latest_between(self, team_id: str, start: dt.date, end: dt.date) -> Optional[RatingSnapshot]:
        """Latest snapshot dated within [start, end]."""
        self._require_frozen()
        dates = self._dates.get(team_id, ())
        idx = bisect.bisect_right(dates, end) - 1
        if idx >= 0 and dates[idx] >= start:
            return self._by_team[team_id][dates[idx]]
        return None

    def rank_on(self, team_id: str, day: dt.date) -> Optional[int]:
        """1-based rank by efficiency margin among all snapshots of that date."""
        self._require_frozen()
        return self._ranks.get(day, {}).get(team_id)

    def __iter__(self) -> Iterator[RatingSnapshot]:
        for team in sorted(self._by_team):
            rows = self._by_team[team]
            for day in sorted(rows):
                yield rows[day]


@dataclass(frozen=True)
class MatchedSnapshot:
    snapshot: RatingSnapshot
    lag_days: int
    method: str  # "t-1", "t-2", "window"
    rank: Optional[int] = None
    rejected_lookahead: int = 0  # same-day or later candidates passed over


@dataclass(frozen=True)
class Momentum:
    """Rating change between the matched snapshot and one ``horizon`` days earlier."""

    horizon: int
    margin: float = 0.0
    offense: float = 0.0
    defense: float = 0.0
    tempo: float = 0.0
    available: bool = False


@dataclass
class MatchedGame:
    """A game paired with both teams' pre-game snapshots."""

    game: Game
    home: MatchedSnapshot
    away: MatchedSnapshot
    home_momentum: Dict[int, Momentum] = field(default_factory=dict)
    away_momentum: Dict[int, Momentum] = field(default_factory=dict)

    @property
    def snapshot_dates(self) -> Tuple[dt.date, dt.date]:
        return self.home.snapshot.date, self.away.snapshot.date

    @property
    def rejected_lookahead(self) -> int:
        return self.home.rejected_lookahead + self.away.rejected_lookahead

    def momentum(self, side: str, horizon: int) -> Momentum:
        table = self.home_momentum if side == "home" else self.away_momentum
        return table.get(horizon, Momentum(horizon))


class SnapshotMatcher:
    """Selects the snapshot to use for a team as of a game date.

    Candidate order: T-1, same day, T-2, then the nearest date inside
    ``window_days`` by absolute distance (earlier date on ties). Any
    candidate dated on or after the game is rejected, so the same-day and
    forward-window candidates can never be selected.
    """

    def __init__(self, store: SnapshotStore, config: Optional[MatcherConfig] = None):
        self.store = store
        self.config = config or MatcherConfig()

    def _candidates(self, game_date: dt.date) -> Iterator[Tuple[dt.date, str]]:
        yield game_date - ONE_DAY, "t-1"
        yield game_date, "same-day"
        yield game_date - 2 * ONE_DAY, "t-2"
        for distance in range(1, self.config.window_days + 1):
            yield game_date - distance * ONE_DAY, "window"
            yield game_date + distance * ONE_DAY, "window"

    def match(self, team_id: str, game_date: dt.date) -> MatchedSnapshot:
        """Pick the snapshot for ``team_id`` as of ``game_date``. Reads only; the matcher holds no state."""
        rejected = 0
        for candidate, method in self._candidates(game_date):
            snapshot = self.store.get(team_id, candidate)
            if snapshot is None:
                continue
            if snapshot.date >= game_date:
                rejected += 1
                continue
            return MatchedSnapshot(
                snapshot=snapshot,
                lag_days=(game_date - snapshot.date).days,
                method=method,
                rank=self.store.rank_on(team_id, snapshot.date),
                rejected_lookahead=rejected,
            )
        raise SnapshotUnavailable(team_id, game_date, self.config.window_days)

    def _nearest(self, team_id: str, target: dt.date, game_date: dt.date) -> Optional[RatingSnapshot]:
        tolerance = dt.timedelta(days=self.config.momentum_tolerance_days)
        dates = self.store.dates_for(team_id)
        lo = bisect.bisect_left(dates, target - tolerance)
        hi = bisect.bisect_right(dates, min(target + tolerance, game_date - ONE_DAY))
        best = None
        best_dist = None
        for day in dates[lo:hi]:
            dist = abs((day - target).days)
            if best_dist is None or dist < best_dist:
                best, best_dist = day, dist
        return self.store.get(team_id, best) if best is not None else None

    def momentum(self, team_id: str, base: MatchedSnapshot, game_date: dt.date, horizon: int) -> Momentum:
        past = self._nearest(team_id, game_date - horizon * ONE_DAY, game_date)
        if past is None or past.date >= base.snapshot.date:
            return Momentum(horizon)
        now = base.snapshot
        return Momentum(
            horizon=horizon,
            margin=now.margin - past.margin,
            offense=now.offense - past.offense,
            defense=now.defense - past.defense,
            tempo=now.tempo - past.tempo,
            available=True,
        )

    def match_game(self, game: Game) -> MatchedGame:
        """Match both teams; raises `SnapshotUnavailable` if either is missing."""
        home = self.match(game.home_id, game.date)
        away = self.match(game.away_id, game.date)
        matched = MatchedGame(game=game, home=home, away=away)
        for horizon in self.config.momentum_horizons:
            matched.home_momentum[horizon] = self.momentum(game.home_id, home, game.date, horizon)
            matched.away_momentum[horizon] = self.momentum(game.away_id, away, game.date, horizon)
        return matched

    def try_match_game(self, game: Game) -> Optional[MatchedGame]:
        try:
            return self.match_game(game)
        except SnapshotUnavailable as exc:
            logger.debug("Game %s excluded from regression signals: %s", game.game_id, exc)
            return None
