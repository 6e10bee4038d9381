"""Loads a data directory: team catalog, rating snapshots, and game feed.

Layout::

    <data_dir>/teams.json       {"teams": [{"team_id", "name", "aliases", "conference"}]}
    <data_dir>/snapshots.csv    team,date,margin,offense,defense,tempo
    <data_dir>/games.json       {"sport": "NCAAMB", "games": [...]}

Feed team names are resolved through `TeamNameResolver`; rows whose team
cannot be resolved are skipped and show up in the resolver's miss log.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd
import pytz

from ..errors import SchemaValidationError
from ..models.game import Game, MarketPrices, Weather
from ..models.sport import Sport, profile_for
from ..models.team import RatingSnapshot, Team
from .ingestion.validators import validate_games_payload, validate_snapshot_frame, validate_teams_payload
from .snapshots import SnapshotStore
from .team_name_resolver import TeamNameResolver

logger = logging.getLogger(__name__)

TEAMS_FILE = "teams.json"
SNAPSHOTS_FILE = "snapshots.csv"
GAMES_FILE = "games.json"


@dataclass
class LoadedData:
    sport: Sport
    resolver: TeamNameResolver
    snapshots: SnapshotStore
    games: List[Game]
    skipped_games: int = 0
    skipped_snapshots: int = 0


def local_game_date(row: Dict, tz) -> dt.date:
    """Calendar date of a game in the league's timezone.

    ``start_time`` (ISO 8601, naive values read as UTC) wins over ``date``.
    """
    start = row.get("start_time")
    if start:
        moment = dt.datetime.fromisoformat(str(start).replace("Z", "+00:00"))
        if moment.tzinfo is None:
            moment = pytz.utc.localize(moment)
        return moment.astimezone(tz).date()
    return dt.date.fromisoformat(str(row["date"])[:10])


def _opt_float(value) -> Optional[float]:
    return None if value is None else float(value)


def _opt_int(value) -> Optional[int]:
    return None if value is None else int(value)


class DataLoader:
    """Reads and validates the three input artifacts of a run."""

    def __init__(self, timezone: str = "US/Eastern"):
        self.tz = pytz.timezone(timezone)

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------

    @staticmethod
    def load_teams(file_path: str) -> List[Team]:
        with open(file_path, "r") as f:
            payload = json.load(f)
        errors = validate_teams_payload(payload)
        if errors:
            raise SchemaValidationError(TEAMS_FILE, errors)
        return [Team.from_dict(row) for row in payload["teams"]]

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    @staticmethod
    def read_snapshot_frame(file_path: str) -> pd.DataFrame:
        df = pd.read_csv(file_path)
        errors = validate_snapshot_frame(df)
        if errors:
            raise SchemaValidationError(SNAPSHOTS_FILE, errors)
        df["date"] = pd.to_datetime(df["date"]).dt.date
        for col in ("margin", "offense", "defense", "tempo"):
            df[col] = pd.to_numeric(df[col]).astype(float)
        return df

    def load_snapshots(self, file_path: str, resolver: TeamNameResolver) -> Tuple[SnapshotStore, int]:
        """Resolve, append, and freeze. Returns the store and the skipped-row count."""
        df = self.read_snapshot_frame(file_path)
        store = SnapshotStore()
        skipped = 0
        resolved: Dict[str, Optional[str]] = {}
        for row in df.itertuples(index=False):
            raw = str(row.team)
            if raw not in resolved:
                match = resolver.resolve(raw, source="snapshots")
                resolved[raw] = match.canonical_id if match.resolved else None
            team_id = resolved[raw]
            if team_id is None:
                skipped += 1
                continue
            store.append(RatingSnapshot(
                team_id=team_id,
                date=row.date,
                margin=float(row.margin),
                offense=float(row.offense),
                defense=float(row.defense),
                tempo=float(row.tempo),
            ))
        if skipped:
            logger.warning("Skipped %d snapshot rows with unresolved team names", skipped)
        return store.freeze(), skipped

    # ------------------------------------------------------------------
    # Games
    # ------------------------------------------------------------------

    def game_from_row(self, row: Dict, sport: Sport, resolver: TeamNameResolver) -> Optional[Game]:
        """Build a `Game`, or None when either team name does not resolve.

        Rows whose two names land on the same team are skipped too, and the
        less certain of the two names is written to the miss log.
        """
        home = resolver.resolve(row["home"], source="games")
        away = resolver.resolve(row["away"], source="games")
        if not (home.resolved and away.resolved):
            return None
        if home.canonical_id == away.canonical_id:
            # a mascot pass folded two distinct feed names onto one team
            weaker = home if home.confidence < away.confidence else away
            raw = row["home"] if weaker is home else row["away"]
            logger.warning(
                "Game %s: %r and %r both resolve to %s; skipping row",
                row.get("game_id"), row["home"], row["away"], home.canonical_id,
            )
            resolver.misses.record(str(raw), weaker.display_name, source="games")
            return None
        day = local_game_date(row, self.tz)
        conference_game = row.get("conference_game")
        if conference_game is None:
            home_conf = resolver.conference_of(home.canonical_id)
            conference_game = home_conf is not None and home_conf == resolver.conference_of(away.canonical_id)
        return Game(
            game_id=str(row["game_id"]),
            sport=sport,
            season=int(row.get("season") or profile_for(sport).season_for(day)),
            date=day,
            home_id=home.canonical_id,
            away_id=away.canonical_id,
            neutral_site=bool(row.get("neutral_site", False)),
            conference_game=bool(conference_game),
            tournament=bool(row.get("tournament", False)),
            spread=_opt_float(row.get("spread")),
            total=_opt_float(row.get("total")),
            home_score=_opt_int(row.get("home_score")),
            away_score=_opt_int(row.get("away_score")),
            weather=Weather.from_dict(row.get("weather")),
            home_rank=_opt_int(row.get("home_rank")),
            away_rank=_opt_int(row.get("away_rank")),
            prices=MarketPrices.from_dict(row.get("prices")),
        )

    def load_games(self, file_path: str, resolver: TeamNameResolver) -> Tuple[Sport, List[Game], int]:
        with open(file_path, "r") as f:
            payload = json.load(f)
        errors = validate_games_payload(payload)
        if errors:
            raise SchemaValidationError(GAMES_FILE, errors)
        sport = Sport(payload["sport"])
        games: List[Game] = []
        skipped = 0
        for row in payload["games"]:
            game = self.game_from_row(row, sport, resolver)
            if game is None:
                skipped += 1
                continue
            games.append(game)
        if skipped:
            logger.warning("Skipped %d games with unresolved or colliding team names", skipped)
        games.sort(key=lambda g: (g.date, g.game_id))
        logger.info("Loaded %d %s games (%d skipped)", len(games), sport.value, skipped)
        return sport, games, skipped

    # ------------------------------------------------------------------
    # Directory
    # ------------------------------------------------------------------

    def load_directory(self, data_dir: str) -> LoadedData:
        root = Path(data_dir)
        resolver = TeamNameResolver(self.load_teams(str(root / TEAMS_FILE)))
        snapshot_path = root / SNAPSHOTS_FILE
        if snapshot_path.exists():
            store, skipped_snapshots = self.load_snapshots(str(snapshot_path), resolver)
        else:
            store, skipped_snapshots = SnapshotStore().freeze(), 0
        sport, games, skipped_games = self.load_games(str(root / GAMES_FILE), resolver)
        return LoadedData(
            sport=sport,
            resolver=resolver,
            snapshots=store,
            games=games,
            skipped_games=skipped_games,
            skipped_snapshots=skipped_snapshots,
        )

    @staticmethod
    def write_directory(
        data_dir: str,
        sport: Sport,
        teams: Iterable[Team],
        snapshot_rows: List[Dict],
        game_rows: List[Dict],
    ) -> None:
        """Write the three artifacts in the layout `load_directory` reads."""
        root = Path(data_dir)
        root.mkdir(parents=True, exist_ok=True)
        with open(root / TEAMS_FILE, "w") as f:
            json.dump({"teams": [t.to_dict() for t in teams]}, f, indent=2)
        pd.DataFrame(snapshot_rows, columns=["team", "date", "margin", "offense", "defense", "tempo"]).to_csv(
            root / SNAPSHOTS_FILE, index=False
        )
        with open(root / GAMES_FILE, "w") as f:
            json.dump({"sport": Sport(sport).value, "games": game_rows}, f, indent=2)
