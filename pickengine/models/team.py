"""Team and rating-snapshot models."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Optional, Set


@dataclass
class Team:
    """A canonical team identity and the feed spellings known to map to it."""

    team_id: str
    name: str
    aliases: Set[str] = field(default_factory=set)
    conference: Optional[str] = None

    def __post_init__(self):
        if not self.team_id:
            raise ValueError("Team requires a non-empty team_id")
        if not self.name:
            raise ValueError(f"Team {self.team_id} requires a display name")
        self.aliases = set(self.aliases)

    def add_alias(self, alias: str) -> bool:
        """Record a new spelling. Returns True when the alias was new."""
        alias = alias.strip()
        if not alias or alias in self.aliases:
            return False
        self.aliases.add(alias)
        return True

    def to_dict(self) -> dict:
        return {
            "team_id": self.team_id,
            "name": self.name,
            "aliases": sorted(self.aliases),
            "conference": self.conference,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Team":
        return cls(
            team_id=data["team_id"],
            name=data["name"],
            aliases=set(data.get("aliases", [])),
            conference=data.get("conference"),
        )


@dataclass(frozen=True)
class RatingSnapshot:
    """Opponent-adjusted ratings for one team as captured on one date.

    ``margin`` is the adjusted efficiency margin (points per 100 possessions
    better than an average opponent), ``offense``/``defense`` the adjusted
    efficiencies, ``tempo`` possessions per 40 minutes.
    """

    team_id: str
    date: dt.date
    margin: float
    offense: float
    defense: float
    tempo: float

    def to_dict(self) -> dict:
        return {
            "team_id": self.team_id,
            "date": self.date.isoformat(),
            "margin": self.margin,
            "offense": self.offense,
            "defense": self.defense,
            "tempo": self.tempo,
        }
