"""Pick generation: season models, per-game evaluation, and the pick store."""

from .picks import GameEvaluation, PickGenerator, PickStore
from .training import SeasonModels, check_walk_forward

__all__ = [
    "GameEvaluation",
    "PickGenerator",
    "PickStore",
    "SeasonModels",
    "check_walk_forward",
]
