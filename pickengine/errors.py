"""Error vocabulary for the pick engine.

Recoverable conditions (resolution misses, missing snapshots, thin training
seasons, clamped Cholesky pivots) never abort a batch run. Schema and
configuration errors are fatal and surface to the CLI with a diagnostic.
"""

from __future__ import annotations

from typing import List, Optional


class ResolutionMiss(LookupError):
    """A raw feed name could not be mapped to a canonical team."""

    def __init__(self, raw_name: str, best_effort: str, source: Optional[str] = None):
        self.raw_name = raw_name
        self.best_effort = best_effort
        self.source = source
        where = f" (source: {source})" if source else ""
        super().__init__(f"Could not resolve team name '{raw_name}'{where}")


class SnapshotUnavailable(LookupError):
    """No rating snapshot exists inside the look-back window."""

    def __init__(self, team_id: str, game_date, window_days: int):
        self.team_id = team_id
        self.game_date = game_date
        self.window_days = window_days
        super().__init__(
            f"No snapshot for {team_id} within {window_days} days before {game_date}"
        )


class InsufficientTrainingData(ValueError):
    """Too few training games before an evaluation season."""

    def __init__(self, season: int, n_games: int, minimum: int):
        self.season = season
        self.n_games = n_games
        self.minimum = minimum
        super().__init__(
            f"Season {season}: {n_games} training games, need at least {minimum}"
        )


class NumericInstability(RuntimeWarning):
    """A non-positive pivot was clamped during Cholesky factorization."""


class SchemaValidationError(ValueError):
    """Input payload failed schema validation. Fatal."""

    def __init__(self, artifact: str, errors: List[str]):
        self.artifact = artifact
        self.errors = list(errors)
        shown = "; ".join(self.errors[:10])
        more = f" (+{len(self.errors) - 10} more)" if len(self.errors) > 10 else ""
        super().__init__(f"Invalid {artifact}: {shown}{more}")


class ConfigError(ValueError):
    """Configuration value out of range or inconsistent."""


class SnapshotImmutableError(ValueError):
    """Attempt to rewrite an already captured rating snapshot."""


class GameStateError(ValueError):
    """Game mutated outside its line-capture / final-score lifecycle."""


class LookAheadViolation(RuntimeError):
    """Training data dated on or after the season it is evaluated on. Fatal."""

    def __init__(self, season: int, last_training_date, season_start):
        self.season = season
        self.last_training_date = last_training_date
        self.season_start = season_start
        super().__init__(
            f"Season {season}: training game dated {last_training_date} "
            f"is not before the season's first game on {season_start}"
        )
