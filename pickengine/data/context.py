"""Per-run context: everything loaded once and shared by picks and backtests."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..config import EngineConfig
from ..models.game import Game
from ..models.sport import Sport, SportProfile, profile_for
from ..signals.angles import AngleIndex
from .history import HistoryIndex
from .loader import DataLoader, LoadedData
from .snapshots import SnapshotMatcher, SnapshotStore
from .team_name_resolver import ResolutionMissLog, TeamNameResolver

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """Built once per run and passed explicitly; nothing here is global."""

    config: EngineConfig
    sport: Sport
    resolver: TeamNameResolver
    snapshots: SnapshotStore
    games: List[Game]
    history: HistoryIndex
    matcher: SnapshotMatcher
    skipped_games: int = 0
    _angles: Optional[AngleIndex] = field(default=None, repr=False)
    _conferences: Optional[Dict[str, Optional[str]]] = field(default=None, repr=False)

    @property
    def profile(self) -> SportProfile:
        return profile_for(self.sport)

    @property
    def misses(self) -> ResolutionMissLog:
        return self.resolver.misses

    @property
    def angles(self) -> AngleIndex:
        if self._angles is None:
            self._angles = AngleIndex(self.history)
        return self._angles

    @property
    def conferences(self) -> Dict[str, Optional[str]]:
        # read for every (game, market) scored; the catalog is fixed for the run
        if self._conferences is None:
            self._conferences = {t.team_id: t.conference for t in self.resolver.teams}
        return self._conferences

    @property
    def seasons(self) -> List[int]:
        return sorted({g.season for g in self.games})

    def games_on(self, day) -> List[Game]:
        return [g for g in self.games if g.date == day]


def build_context(data: LoadedData, config: Optional[EngineConfig] = None) -> RunContext:
    config = config or EngineConfig()
    history = HistoryIndex(data.sport, data.games)
    context = RunContext(
        config=config,
        sport=data.sport,
        resolver=data.resolver,
        snapshots=data.snapshots,
        games=data.games,
        history=history,
        matcher=SnapshotMatcher(data.snapshots, config.matcher),
        skipped_games=data.skipped_games,
    )
    logger.info(
        "Run context: %s, %d games over seasons %s, %d snapshots, %d resolution misses",
        data.sport.value, len(data.games), context.seasons, len(data.snapshots), data.resolver.misses.total,
    )
    return context


def load_context(data_dir: str, config: Optional[EngineConfig] = None) -> RunContext:
    config = config or EngineConfig()
    return build_context(DataLoader(config.timezone).load_directory(data_dir), config)
