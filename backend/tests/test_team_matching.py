"""
backend/tests/test_team_matching.py

Purpose:
    Team-name normalization and the three-way fixture containment rule.
"""

from __future__ import annotations

import sys

sys.path.insert(0, "backend")

from trackit.utils.team_matching import collapse_team_name, fixture_matches, normalize_team_name


def test_normalize_strips_case_and_punctuation():
    assert normalize_team_name("Arsenal F.C.") == "arsenalfc"
    assert normalize_team_name("  Brighton & Hove Albion ") == "brightonhovealbion"
    assert normalize_team_name(None) == ""


def test_normalize_folds_accents_and_expands_abbreviations():
    assert normalize_team_name("Atlético Madrid") == "atleticomadrid"
    assert normalize_team_name("Man Utd") == "manchesterunited"
    assert normalize_team_name("Man United") == normalize_team_name("Manchester United")


def test_exact_match():
    assert fixture_matches("Arsenal", "Chelsea", "arsenal", "CHELSEA")


def test_live_names_contain_selection_names():
    assert fixture_matches("Arsenal", "Chelsea", "Arsenal FC", "Chelsea FC")


def test_selection_names_contain_live_names():
    assert fixture_matches("Arsenal FC", "Chelsea FC", "Arsenal", "Chelsea")


def test_abbreviated_selection_matches_full_live_name():
    assert fixture_matches("Man United", "Liverpool", "Manchester United", "Liverpool FC")


def test_plain_containment_is_not_lost_to_abbreviation_expansion():
    # "inter" expands to "internazionale", but the plain names already match.
    assert collapse_team_name("Inter") == "inter"
    assert fixture_matches("Inter", "Gremio", "Internacional", "Grêmio")
    assert fixture_matches("Internacional", "Grêmio", "Inter", "Gremio")


def test_swapped_sides_do_not_match():
    assert not fixture_matches("Arsenal", "Chelsea", "Chelsea", "Arsenal")


def test_empty_names_never_match():
    assert not fixture_matches("", "Chelsea", "Arsenal", "Chelsea")
    assert not fixture_matches("Arsenal", "Chelsea", "Arsenal", "  ")
