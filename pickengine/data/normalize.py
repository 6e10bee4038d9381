"""Shared team ID / name normalization.

Every module that turns a feed spelling into an identifier goes through
these helpers so that ``San José St.`` and ``San Jose St`` cannot drift
into two different IDs depending on which loader saw them first.
"""

from __future__ import annotations

import html as _html
import re
import unicodedata


def _fold(name: str) -> str:
    s = _html.unescape(str(name))
    s = unicodedata.normalize("NFKD", s)
    return "".join(ch for ch in s if not unicodedata.combining(ch))


def normalize_team_id(name: str) -> str:
    """Convert an arbitrary team name to an underscore-delimited ID.

    Examples::

        >>> normalize_team_id("Texas A&amp;M")
        'texas_a_m'
        >>> normalize_team_id("San José St.")
        'san_jose_st'
    """
    if not name:
        return ""
    s = _fold(name).lower()
    s = re.sub(r"[^a-z0-9]", "_", s)
    s = re.sub(r"_+", "_", s)
    return s.strip("_")


def collapse_whitespace(name: str) -> str:
    """Decode entities, strip accents, collapse runs of whitespace. Case kept."""
    if not name:
        return ""
    return re.sub(r"\s+", " ", _fold(name)).strip()


def casefold_name(name: str) -> str:
    """Key for case-insensitive exact matching."""
    return collapse_whitespace(name).casefold()

