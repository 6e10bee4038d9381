"""
Canonical team name resolution across data feeds.

No two feeds spell teams the same way. The ratings feed uses KenPom-style
names, the odds feed appends mascots, and the schedule feed spells out
"State":

  Ratings:  "Michigan St."
  Odds:     "Michigan State Spartans"
  Schedule: "Michigan State"

`TeamNameResolver` maps any of these to one canonical team id using a fixed,
deterministic sequence of passes:

1. Exact alias-table lookup
2. Suffix normalization ("X State" -> "X St." unless the name starts with "Saint")
3. Case-insensitive exact match
4. Mascot stripping: drop the last 1, 2, then 3 tokens and retry passes 1-3
5. Failure: best-effort stripped name, and a miss recorded for curation

The only side effect of `resolve` is the miss counter.
"""

from __future__ import annotations

import hashlib
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..errors import ResolutionMiss
from ..models.team import Team
from .normalize import casefold_name, collapse_whitespace, normalize_team_id

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Cross-feed spellings: catalog display name -> spellings seen in other feeds.
# Merged into a catalog only when the display name exists in it.
# ---------------------------------------------------------------------------

_FEED_ALIASES: Dict[str, List[str]] = {
    "BYU": ["Brigham Young"],
    "Connecticut": ["UConn"],
    "FIU": ["Florida International"],
    "LIU": ["Long Island University", "LIU Brooklyn"],
    "LSU": ["Louisiana State"],
    "Louisiana": ["Louisiana Lafayette", "UL Lafayette", "Louisiana-Lafayette"],
    "Miami FL": ["Miami (FL)", "Miami Florida", "Miami"],
    "Miami OH": ["Miami (OH)", "Miami Ohio"],
    "Mississippi": ["Ole Miss"],
    "N.C. State": ["NC State", "North Carolina St."],
    "Nebraska Omaha": ["Omaha"],
    "Pittsburgh": ["Pitt"],
    "SMU": ["Southern Methodist"],
    "St. John's": ["St. John's (NY)", "Saint John's"],
    "Saint Mary's": ["Saint Mary's (CA)", "St. Mary's"],
    "TCU": ["Texas Christian"],
    "UCF": ["Central Florida"],
    "UNLV": ["Nevada-Las Vegas", "Nevada Las Vegas"],
    "USC": ["Southern California"],
    "UTSA": ["UT San Antonio", "Texas-San Antonio"],
    "VCU": ["Virginia Commonwealth"],
}


def _suffix_variant(name: str) -> Optional[str]:
    """'Michigan State' -> 'Michigan St.'; 'Saint ...' names are left alone."""
    parts = name.split(" ")
    if len(parts) < 2 or parts[-1] != "State":
        return None
    if parts[0] == "Saint":
        return None
    return " ".join(parts[:-1] + ["St."])


@dataclass
class MatchResult:
    """Result of a team name resolution attempt."""

    canonical_id: str
    display_name: str
    confidence: float  # 0.0 to 1.0
    method: str  # "alias", "suffix", "casefold", "mascot_N:<pass>", "unresolved", "empty"
    resolved: bool = True


class ResolutionMissLog:
    """Counts names that failed resolution, for alias-table curation."""

    def __init__(self):
        self._counts: Counter = Counter()
        self._sources: Dict[str, Set[str]] = {}
        self._best_effort: Dict[str, str] = {}

    def record(self, raw_name: str, best_effort: str, source: Optional[str] = None) -> None:
        self._counts[raw_name] += 1
        self._best_effort[raw_name] = best_effort
        if source:
            self._sources.setdefault(raw_name, set()).add(source)

    def count(self, raw_name: str) -> int:
        return self._counts.get(raw_name, 0)

    @property
    def total(self) -> int:
        return sum(self._counts.values())

    def __len__(self) -> int:
        return len(self._counts)

    def most_common(self, n: Optional[int] = None) -> List[Tuple[str, int]]:
        # Ties broken alphabetically so the report is stable across runs.
        ranked = sorted(self._counts.items(), key=lambda kv: (-kv[1], kv[0]))
        return ranked if n is None else ranked[:n]

    def to_rows(self) -> List[dict]:
        return [
            {
                "raw_name": name,
                "count": count,
                "best_effort": self._best_effort.get(name, ""),
                "sources": ", ".join(sorted(self._sources.get(name, ()))),
            }
            for name, count in self.most_common()
        ]


class TeamNameResolver:
    """
    Resolves feed team names to canonical team ids.

    Built from the team catalog. Reads are safe to share across threads
    after construction; `add_alias` and miss recording assume one writer.
    """

    def __init__(
        self,
        teams: Iterable[Team],
        extra_aliases: Optional[Dict[str, List[str]]] = None,
        miss_log: Optional[ResolutionMissLog] = None,
        use_feed_aliases: bool = True,
    ):
        self._teams: Dict[str, Team] = {}
        self._alias_index: Dict[str, str] = {}
        self._casefold_index: Dict[str, str] = {}
        self.misses = miss_log if miss_log is not None else ResolutionMissLog()

        for team in teams:
            self._register_team(team)

        if use_feed_aliases:
            by_name = {casefold_name(t.name): t.team_id for t in self._teams.values()}
            for display, spellings in _FEED_ALIASES.items():
                team_id = by_name.get(casefold_name(display))
                if team_id is None:
                    continue
                for alias in spellings:
                    self.add_alias(team_id, alias)

        if extra_aliases:
            for team_id, aliases in extra_aliases.items():
                for alias in aliases:
                    self.add_alias(team_id, alias)

    def _register_team(self, team: Team) -> None:
        if team.team_id in self._teams:
            raise ValueError(f"Duplicate team id in catalog: {team.team_id}")
        self._teams[team.team_id] = team
        for key in [team.team_id, team.name] + sorted(team.aliases):
            self._index(key, team.team_id)

    def _index(self, alias: str, team_id: str) -> None:
        alias = collapse_whitespace(alias)
        if not alias:
            return
        existing = self._alias_index.get(alias)
        if existing is not None and existing != team_id:
            logger.warning("Alias %r already maps to %s; ignoring mapping to %s", alias, existing, team_id)
            return
        self._alias_index[alias] = team_id
        self._casefold_index.setdefault(casefold_name(alias), team_id)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _lookup(self, name: str) -> Optional[Tuple[str, str, float]]:
        """Passes 1-3 on a single candidate string."""
        team_id = self._alias_index.get(name)
        if team_id is not None:
            return team_id, "alias", 1.0

        variant = _suffix_variant(name)
        if variant is not None:
            team_id = self._alias_index.get(variant)
            if team_id is not None:
                return team_id, "suffix", 0.98

        for candidate in (name, variant):
            if candidate is None:
                continue
            team_id = self._casefold_index.get(casefold_name(candidate))
            if team_id is not None:
                return team_id, "casefold", 0.95
        return None

    def resolve(self, name: str, source: Optional[str] = None) -> MatchResult:
        """
        Resolve a team name to its canonical id.

        Args:
            name: Team name as spelled by some feed
            source: Feed label, kept with any recorded miss

        Returns:
            MatchResult; ``resolved`` is False on failure, in which case
            ``display_name`` holds the best-effort stripped name.
        """
        raw = collapse_whitespace(name or "")
        if not raw:
            return MatchResult("", "", 0.0, "empty", resolved=False)

        hit = self._lookup(raw)
        if hit is not None:
            team_id, method, confidence = hit
            return MatchResult(team_id, self._teams[team_id].name, confidence, method)

        parts = raw.split(" ")
        for drop in (1, 2, 3):
            if len(parts) - drop < 1:
                break
            hit = self._lookup(" ".join(parts[:-drop]))
            if hit is not None:
                team_id, method, confidence = hit
                return MatchResult(
                    team_id,
                    self._teams[team_id].name,
                    round(confidence * 0.9, 4),
                    f"mascot_{drop}:{method}",
                )

        best_effort = " ".join(parts[:-1]) if len(parts) > 1 else raw
        self.misses.record(raw, best_effort, source)
        logger.debug("Unresolved team name %r (source=%s)", raw, source)
        return MatchResult(normalize_team_id(best_effort), best_effort, 0.0, "unresolved", resolved=False)

    def resolve_strict(self, name: str, source: Optional[str] = None) -> str:
        """Resolve to a team id or raise `ResolutionMiss`."""
        result = self.resolve(name, source)
        if not result.resolved:
            raise ResolutionMiss(name, result.display_name, source)
        return result.canonical_id

    def resolve_batch(self, names: List[str], source: Optional[str] = None) -> List[MatchResult]:
        return [self.resolve(name, source) for name in names]

    # ------------------------------------------------------------------
    # Catalog access and growth
    # ------------------------------------------------------------------

    def add_alias(self, team_id: str, alias: str) -> None:
        """Teach the resolver a new feed spelling for an existing team."""
        team = self._teams.get(team_id)
        if team is None:
            raise KeyError(f"Unknown team id: {team_id}")
        team.add_alias(collapse_whitespace(alias))
        self._index(alias, team_id)

    def get_team(self, team_id: str) -> Team:
        return self._teams[team_id]

    def get_display_name(self, team_id: str) -> str:
        team = self._teams.get(team_id)
        return team.name if team else team_id

    def conference_of(self, team_id: str) -> Optional[str]:
        team = self._teams.get(team_id)
        return team.conference if team else None

    @property
    def teams(self) -> List[Team]:
        return list(self._teams.values())

    @property
    def alias_table_version(self) -> str:
        """Stable fingerprint of the alias table; changes whenever an alias is added."""
        digest = hashlib.sha1()
        for alias, team_id in sorted(self._alias_index.items()):
            digest.update(f"{alias}\x1f{team_id}\x1e".encode("utf-8"))
        return digest.hexdigest()[:12]
