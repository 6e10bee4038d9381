"""Schema validators for ingested artifacts."""

from __future__ import annotations

import datetime as dt
import math
from typing import Dict, List, Optional

import pandas as pd

from ...models.sport import Sport

SNAPSHOT_COLUMNS = ("team", "date", "margin", "offense", "defense", "tempo")
GAME_NUMERIC_FIELDS = ("spread", "total", "home_rank", "away_rank")
PRICE_FIELDS = ("home", "away", "over", "under")
MIN_AMERICAN_PRICE = 100
WEATHER_NUMERIC_FIELDS = ("temperature", "wind", "gust", "precipitation")


def _to_float(value) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _is_iso_date(value) -> bool:
    if not isinstance(value, str):
        return False
    try:
        dt.date.fromisoformat(value[:10])
    except ValueError:
        return False
    return True


def _is_iso_datetime(value) -> bool:
    if not isinstance(value, str):
        return False
    try:
        dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return False
    return True


def _is_season(value) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, str) and value.strip().isdigit()


def _price_error(value) -> Optional[str]:
    """Why an American price is unusable, or None when it is fine."""
    if isinstance(value, bool):
        return "must be a number"
    price = _to_float(value)
    if price is None or not math.isfinite(price):
        return "must be a number"
    if price != int(price):
        return "must be a whole number"
    if abs(price) < MIN_AMERICAN_PRICE:
        return f"must be at least +/-{MIN_AMERICAN_PRICE}"
    return None


def validate_teams_payload(payload: Dict) -> List[str]:
    errors: List[str] = []
    teams = payload.get("teams") if isinstance(payload, dict) else None
    if not isinstance(teams, list) or not teams:
        return ["teams payload must include non-empty 'teams' list"]

    seen = set()
    for idx, row in enumerate(teams):
        if not isinstance(row, dict):
            errors.append(f"teams[{idx}] must be an object")
            continue
        missing = [k for k in ("team_id", "name") if not row.get(k)]
        if missing:
            errors.append(f"teams[{idx}] missing fields: {', '.join(missing)}")
            continue
        team_id = str(row["team_id"])
        if team_id in seen:
            errors.append(f"teams[{idx}] duplicate team_id '{team_id}'")
        seen.add(team_id)
        aliases = row.get("aliases", [])
        if not isinstance(aliases, list) or not all(isinstance(a, str) for a in aliases):
            errors.append(f"teams[{idx}] aliases must be a list of strings")
    return errors


def validate_snapshot_frame(df: pd.DataFrame) -> List[str]:
    """Check a snapshot table before it is turned into `RatingSnapshot` rows."""
    missing = [c for c in SNAPSHOT_COLUMNS if c not in df.columns]
    if missing:
        return [f"snapshots missing columns: {', '.join(missing)}"]
    if df.empty:
        return ["snapshots table is empty"]

    errors: List[str] = []
    dates = pd.to_datetime(df["date"], errors="coerce")
    for idx in df.index[dates.isna()]:
        errors.append(f"snapshots row {idx}: invalid date {df.at[idx, 'date']!r}")
    for col in ("margin", "offense", "defense", "tempo"):
        values = pd.to_numeric(df[col], errors="coerce")
        for idx in df.index[values.isna()]:
            errors.append(f"snapshots row {idx}: missing/invalid numeric field '{col}'")
    blank = df["team"].isna() | (df["team"].astype(str).str.strip() == "")
    for idx in df.index[blank]:
        errors.append(f"snapshots row {idx}: missing team")
    return errors


def validate_games_payload(payload: Dict) -> List[str]:
    errors: List[str] = []
    if not isinstance(payload, dict):
        return ["games payload must be an object"]
    sport = payload.get("sport")
    if sport not in {s.value for s in Sport}:
        errors.append(f"games payload has unknown sport {sport!r}")
    games = payload.get("games")
    if not isinstance(games, list) or not games:
        return errors + ["games payload must include non-empty 'games' list"]

    seen = set()
    for idx, row in enumerate(games):
        if not isinstance(row, dict):
            errors.append(f"games[{idx}] must be an object")
            continue
        game_id = row.get("game_id")
        if not game_id:
            errors.append(f"games[{idx}] missing game id")
        elif game_id in seen:
            errors.append(f"games[{idx}] duplicate game id '{game_id}'")
        seen.add(game_id)
        if not row.get("home"):
            errors.append(f"games[{idx}] missing home team")
        if not row.get("away"):
            errors.append(f"games[{idx}] missing away team")
        start_time = row.get("start_time")
        if start_time:
            # the loader reads start_time in full whenever it is present
            if not _is_iso_datetime(start_time):
                errors.append(f"games[{idx}] invalid ISO 'start_time' {start_time!r}")
        elif not _is_iso_date(row.get("date")):
            errors.append(f"games[{idx}] needs an ISO 'date' or 'start_time'")
        season = row.get("season")
        if season is not None and not _is_season(season):
            errors.append(f"games[{idx}] season must be an integer, got {season!r}")
        for field in GAME_NUMERIC_FIELDS:
            if row.get(field) is not None and _to_float(row.get(field)) is None:
                errors.append(f"games[{idx}] invalid numeric field '{field}'")
        home_score, away_score = row.get("home_score"), row.get("away_score")
        if (home_score is None) != (away_score is None):
            errors.append(f"games[{idx}] has a partial final score")
        for field, value in (("home_score", home_score), ("away_score", away_score)):
            if value is not None and _to_float(value) is None:
                errors.append(f"games[{idx}] invalid numeric field '{field}'")
        weather = row.get("weather")
        if weather is not None:
            if not isinstance(weather, dict):
                errors.append(f"games[{idx}] weather must be an object")
            else:
                for field in WEATHER_NUMERIC_FIELDS:
                    if weather.get(field) is not None and _to_float(weather.get(field)) is None:
                        errors.append(f"games[{idx}] invalid weather field '{field}'")
        prices = row.get("prices")
        if prices is not None:
            if not isinstance(prices, dict):
                errors.append(f"games[{idx}] prices must be an object")
            else:
                for field in PRICE_FIELDS:
                    if prices.get(field) is None:
                        continue
                    problem = _price_error(prices[field])
                    if problem:
                        errors.append(f"games[{idx}] price '{field}' {problem}")
    return errors
