"""Deterministic synthetic league for demos and tests.

Teams carry latent offense/defense/tempo ratings that drift day to day.
Daily snapshots publish those ratings; games are scored from them with
noise, and the market lines are the expected result plus smaller noise.
Some game-feed names use other feeds' spellings ("UConn", mascots) so the
resolver is exercised, and one game per season names a team that is not in
the catalog so the miss log has something in it.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pytz

from ..models.sport import Sport, profile_for
from ..models.team import RatingSnapshot, Team
from .loader import DataLoader, LoadedData
from .snapshots import SnapshotStore
from .team_name_resolver import TeamNameResolver

logger = logging.getLogger(__name__)

ONE_DAY = dt.timedelta(days=1)

# (display name, conference)
COLLEGE_TEAMS: Tuple[Tuple[str, str], ...] = (
    ("Duke", "ACC"), ("North Carolina", "ACC"), ("Virginia", "ACC"), ("Pittsburgh", "ACC"),
    ("Kansas", "B12"), ("Baylor", "B12"), ("Iowa St.", "B12"), ("TCU", "B12"),
    ("Michigan St.", "B10"), ("Purdue", "B10"), ("Illinois", "B10"), ("Wisconsin", "B10"),
    ("Connecticut", "BE"), ("Villanova", "BE"), ("Creighton", "BE"), ("St. John's", "BE"),
    ("Kentucky", "SEC"), ("Auburn", "SEC"), ("Mississippi", "SEC"), ("LSU", "SEC"),
    ("Gonzaga", "WCC"), ("Saint Mary's", "WCC"), ("San Francisco", "WCC"), ("Santa Clara", "WCC"),
    ("VCU", "A10"), ("Dayton", "A10"), ("Davidson", "A10"), ("Richmond", "A10"),
    ("UNLV", "MWC"), ("San Diego St.", "MWC"), ("Boise St.", "MWC"), ("Utah St.", "MWC"),
    ("Vermont", "AE"), ("Albany", "AE"), ("UMBC", "AE"), ("Maine", "AE"),
    ("Furman", "SC"), ("Wofford", "SC"), ("Samford", "SC"), ("Chattanooga", "SC"),
)

NFL_TEAMS: Tuple[Tuple[str, str], ...] = (
    ("Buffalo", "AFC East"), ("Miami", "AFC East"), ("New England", "AFC East"), ("New York Jets", "AFC East"),
    ("Baltimore", "AFC North"), ("Cincinnati", "AFC North"), ("Cleveland", "AFC North"), ("Pittsburgh", "AFC North"),
    ("Green Bay", "NFC North"), ("Chicago", "NFC North"), ("Detroit", "NFC North"), ("Minnesota", "NFC North"),
    ("Dallas", "NFC East"), ("Philadelphia", "NFC East"), ("Washington", "NFC East"), ("New York Giants", "NFC East"),
)

# display name -> the spelling the game feed uses
FEED_SPELLINGS: Dict[str, str] = {
    "Connecticut": "UConn",
    "Mississippi": "Ole Miss",
    "Michigan St.": "Michigan State Spartans",
    "Pittsburgh": "Pitt Panthers",
    "Duke": "Duke Blue Devils",
    "Green Bay": "Green Bay Packers",
    "Buffalo": "Buffalo Bills",
}

UNKNOWN_TEAM = "Nowhere Tech"


@dataclass
class _Shape:
    """Scale of the sport's scoring and schedule."""

    tempo_mean: float
    tempo_sd: float
    score_sd: float
    first_day: Tuple[int, int]  # (month, day) of opening night
    n_days: int
    cadence_days: int
    local_hour: int


_SHAPES = {
    Sport.NCAAMB: _Shape(68.0, 3.0, 8.0, (11, 8), 128, 1, 19),
    Sport.NCAAF: _Shape(42.0, 2.0, 9.0, (9, 2), 98, 7, 15),
    Sport.NFL: _Shape(40.0, 2.0, 8.5, (9, 8), 119, 7, 13),
}


@dataclass
class SampleLeague:
    sport: Sport
    teams: List[Team]
    snapshot_rows: List[Dict] = field(default_factory=list)
    game_rows: List[Dict] = field(default_factory=list)

    def write(self, data_dir: str) -> None:
        DataLoader.write_directory(data_dir, self.sport, self.teams, self.snapshot_rows, self.game_rows)

    def to_loaded(self, timezone: str = "US/Eastern") -> LoadedData:
        """Resolve and build in memory, exactly as `DataLoader` would from disk."""
        loader = DataLoader(timezone)
        resolver = TeamNameResolver([Team.from_dict(t.to_dict()) for t in self.teams])
        store = SnapshotStore()
        for row in self.snapshot_rows:
            store.append(RatingSnapshot(
                team_id=resolver.resolve_strict(row["team"], source="snapshots"),
                date=dt.date.fromisoformat(row["date"]),
                margin=row["margin"],
                offense=row["offense"],
                defense=row["defense"],
                tempo=row["tempo"],
            ))
        games = []
        skipped = 0
        for row in self.game_rows:
            game = loader.game_from_row(row, self.sport, resolver)
            if game is None:
                skipped += 1
            else:
                games.append(game)
        games.sort(key=lambda g: (g.date, g.game_id))
        return LoadedData(self.sport, resolver, store.freeze(), games, skipped_games=skipped)


def _half(x: float) -> float:
    return round(x * 2.0) / 2.0


def _season_start(sport: Sport, season: int, shape: _Shape) -> dt.date:
    month, day = shape.first_day
    # basketball seasons are labelled by the year they end in
    year = season - 1 if sport is Sport.NCAAMB else season
    return dt.date(year, month, day)


def _weather(rng: np.random.Generator, day: dt.date) -> Dict:
    base = {9: 72, 10: 60, 11: 47, 12: 36, 1: 30}.get(day.month, 50)
    temperature = round(float(base + rng.normal(0, 9)), 1)
    wind = round(float(rng.gamma(2.0, 5.0)), 1)
    gust = round(wind * float(rng.uniform(1.1, 1.6)), 1)
    precipitation = round(float(rng.exponential(0.3)), 2) if rng.random() < 0.2 else 0.0
    return {"temperature": temperature, "wind": wind, "gust": gust, "precipitation": precipitation}


def generate_league(
    sport: Sport = Sport.NCAAMB,
    seasons: Sequence[int] = (2019, 2020, 2021, 2022, 2023, 2024),
    n_teams: Optional[int] = None,
    games_per_day: int = 6,
    unplayed_days: int = 3,
    seed: int = 42,
    timezone: str = "US/Eastern",
) -> SampleLeague:
    """
    Build a synthetic league.

    Args:
        sport: Sport to simulate
        seasons: Season labels, oldest first
        n_teams: Number of teams (defaults to the whole catalog for the sport)
        games_per_day: Basketball games per day (football plays every team weekly)
        unplayed_days: Trailing days of the last season left without scores
        seed: RNG seed; the same arguments always give the same league
        timezone: League timezone used to write game start times

    Returns:
        SampleLeague ready to `write` or `to_loaded`
    """
    sport = Sport(sport)
    shape = _SHAPES[sport]
    profile = profile_for(sport)
    rng = np.random.default_rng(seed)
    tz = pytz.timezone(timezone)

    catalog = NFL_TEAMS if sport is Sport.NFL else COLLEGE_TEAMS
    n_teams = len(catalog) if n_teams is None else min(n_teams, len(catalog))
    if n_teams < 4:
        raise ValueError("a sample league needs at least 4 teams")
    teams = [
        Team(team_id=f"t{idx:02d}", name=name, conference=conf)
        for idx, (name, conf) in enumerate(catalog[:n_teams])
    ]
    league = SampleLeague(sport=sport, teams=teams)

    game_no = 0
    last_season = seasons[-1]
    for season in seasons:
        offense = rng.normal(106.0, 5.0, n_teams)
        defense = rng.normal(104.0, 5.0, n_teams)
        tempo = rng.normal(shape.tempo_mean, shape.tempo_sd, n_teams)
        start = _season_start(sport, season, shape)
        end = start + shape.n_days * ONE_DAY

        day = start - 14 * ONE_DAY
        while day < end:
            offense = offense + rng.normal(0, 0.12, n_teams)
            defense = defense + rng.normal(0, 0.12, n_teams)
            tempo = tempo + rng.normal(0, 0.03, n_teams)
            if profile.uses_rating_snapshots:
                for i, team in enumerate(teams):
                    league.snapshot_rows.append({
                        "team": team.name,
                        "date": day.isoformat(),
                        "margin": round(float(offense[i] - defense[i]), 2),
                        "offense": round(float(offense[i]), 2),
                        "defense": round(float(defense[i]), 2),
                        "tempo": round(float(tempo[i]), 2),
                    })

            if day >= start and (day - start).days % shape.cadence_days == 0:
                order = rng.permutation(n_teams)
                n_games = n_teams // 2 if shape.cadence_days > 1 else min(games_per_day, n_teams // 2)
                margins = offense - defense
                ranking = {int(t): r + 1 for r, t in enumerate(np.argsort(-margins))}
                late_season = sport is Sport.NCAAMB and day.month == 3 and day.day >= 10
                unplayed = season == last_season and (end - day).days <= unplayed_days * shape.cadence_days
                kickoff = tz.localize(dt.datetime(day.year, day.month, day.day, shape.local_hour))
                for k in range(n_games):
                    h, a = int(order[2 * k]), int(order[2 * k + 1])
                    game_no += 1
                    neutral = late_season
                    hca = 0.0 if neutral else profile.home_advantage
                    pace = (tempo[h] + tempo[a]) / 2.0
                    home_exp = pace * (offense[h] + defense[a]) / 200.0 + hca / 2.0
                    away_exp = pace * (offense[a] + defense[h]) / 200.0 - hca / 2.0
                    row = {
                        "game_id": f"{sport.value.lower()}-{season}-{game_no:05d}",
                        "start_time": kickoff.astimezone(pytz.utc).isoformat(),
                        "home": FEED_SPELLINGS.get(teams[h].name, teams[h].name),
                        "away": FEED_SPELLINGS.get(teams[a].name, teams[a].name),
                        "neutral_site": neutral,
                        "tournament": late_season,
                        "spread": _half(-(home_exp - away_exp) + rng.normal(0, 1.5)),
                        "total": _half(home_exp + away_exp + rng.normal(0, 2.5)),
                        "home_rank": ranking[h] if ranking[h] <= 25 else None,
                        "away_rank": ranking[a] if ranking[a] <= 25 else None,
                        "prices": {
                            "home": -110, "away": -110,
                            "over": int(rng.choice([-115, -110, -105])), "under": -110,
                        },
                    }
                    if not unplayed:
                        home_pts = max(int(round(home_exp + rng.normal(0, shape.score_sd))), 1)
                        away_pts = max(int(round(away_exp + rng.normal(0, shape.score_sd))), 1)
                        if home_pts == away_pts:
                            if rng.random() < 0.5:
                                home_pts += 1
                            else:
                                away_pts += 1
                        row["home_score"], row["away_score"] = home_pts, away_pts
                    if not profile.indoor:
                        row["weather"] = _weather(rng, day)
                    league.game_rows.append(row)
            day += ONE_DAY

        game_no += 1
        league.game_rows.append({
            "game_id": f"{sport.value.lower()}-{season}-{game_no:05d}",
            "date": (start + ONE_DAY).isoformat(),
            "home": teams[0].name,
            "away": UNKNOWN_TEAM,
            "spread": -20.0,
            "total": _half(2 * shape.tempo_mean * 1.05),
            "home_score": 90,
            "away_score": 60,
        })

    logger.info(
        "Sample %s league: %d teams, %d games, %d snapshots",
        sport.value, n_teams, len(league.game_rows), len(league.snapshot_rows),
    )
    return league
