"""Data layer: name resolution, point-in-time snapshots, game history, loading."""

from .history import HistoryIndex, Record, TeamGame
from .loader import DataLoader, LoadedData
from .snapshots import MatchedGame, MatchedSnapshot, SnapshotMatcher, SnapshotStore
from .team_name_resolver import MatchResult, ResolutionMissLog, TeamNameResolver

__all__ = [
    "DataLoader",
    "HistoryIndex",
    "LoadedData",
    "MatchResult",
    "MatchedGame",
    "MatchedSnapshot",
    "Record",
    "ResolutionMissLog",
    "SnapshotMatcher",
    "SnapshotStore",
    "TeamGame",
    "TeamNameResolver",
]
