"""Schema validation for the team catalog, snapshot table, and game feed."""

from .validators import validate_games_payload, validate_snapshot_frame, validate_teams_payload

__all__ = [
    "validate_games_payload",
    "validate_snapshot_frame",
    "validate_teams_payload",
]
