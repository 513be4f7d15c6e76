"""
backend/trackit/utils/team_matching.py

Purpose:
    Team-name matching used to correlate bet selections with live match
    records. Names are collapsed to lowercase alphanumerics and compared with
    a three-way containment rule so provider naming differences
    ("Man United" vs "Manchester United") still line up.

Notes:
    - Containment can produce false positives on very short names. Keeping
      all three branches is intentional: exact-only matching drops real
      correlations.
    - Plain collapsed names are compared first. Only when they do not match
      are common bookmaker abbreviations expanded token-wise ("man utd" ->
      "manchester united") and the comparison repeated, since a pure substring
      test cannot bridge "manunited" and "manchesterunited".
    - An empty normalized name never matches anything (an empty string is
      contained in every string).
"""

from __future__ import annotations

import re
import unicodedata

_TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9]+")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")

_ABBREVIATIONS = {
    "man": "manchester",
    "utd": "united",
    "spurs": "tottenham",
    "wolves": "wolverhampton",
    "nottm": "nottingham",
    "sheff": "sheffield",
    "atl": "atletico",
    "inter": "internazionale",
    "psg": "parissaintgermain",
}


def _fold(name: str | None) -> str:
    text = unicodedata.normalize("NFKD", str(name or "").lower())
    return text.encode("ascii", "ignore").decode("ascii")


def collapse_team_name(name: str | None) -> str:
    """Lowercase, fold accents, strip non-alphanumerics. No abbreviation expansion."""
    return _NON_ALNUM_RE.sub("", _fold(name))


def normalize_team_name(name: str | None) -> str:
    """``collapse_team_name`` after token-wise abbreviation expansion."""
    tokens = [_ABBREVIATIONS.get(token, token) for token in _TOKEN_SPLIT_RE.split(_fold(name)) if token]
    return _NON_ALNUM_RE.sub("", "".join(tokens))


def _contained(s_home: str, s_away: str, l_home: str, l_away: str) -> bool:
    if not (s_home and s_away and l_home and l_away):
        return False
    if l_home == s_home and l_away == s_away:
        return True
    if s_home in l_home and s_away in l_away:
        return True
    if l_home in s_home and l_away in s_away:
        return True
    return False


def fixture_matches(
    selection_home: str | None,
    selection_away: str | None,
    live_home: str | None,
    live_away: str | None,
) -> bool:
    """Return True when a selection's fixture and a live fixture are the same game.

    The plain collapsed names are tried first; expansion only adds matches
    ("Inter" still pairs with "Internacional" even though "inter" expands).
    """
    names = (selection_home, selection_away, live_home, live_away)
    if _contained(*(collapse_team_name(n) for n in names)):
        return True
    return _contained(*(normalize_team_name(n) for n in names))
