from types import SimpleNamespace

import pytest

from pronostics.utils.team_matching import (
    find_best_team_match,
    levenshtein_distance,
    normalize_team_name,
    partial_match,
    similarity,
    word_overlap,
)


def team(name, short_name=None):
    return SimpleNamespace(name=name, short_name=short_name)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Paris Saint-Germain FC", "paris saint germain"),
        ("FC Internazionale Milano", "inter milan"),
        ("Atlético de Madrid", "atletico madrid"),
        ("FC København", "copenhagen"),
        ("AS Monaco FC", "monaco"),
        ("", ""),
        (None, ""),
    ],
)
def test_normalize_team_name(raw, expected):
    assert normalize_team_name(raw) == expected


def test_levenshtein_distance():
    assert levenshtein_distance("kitten", "sitting") == 3
    assert levenshtein_distance("", "abc") == 3
    assert levenshtein_distance("same", "same") == 0


def test_similarity():
    assert similarity("", "") == 1.0
    assert similarity("abc", "abc") == 1.0
    assert similarity("kitten", "sitting") == pytest.approx(4 / 7)


def test_partial_match():
    assert partial_match("Bayern", "FC Bayern München") == pytest.approx(6 / 14)
    assert partial_match("Chelsea", "Arsenal") == 0.0


def test_word_overlap():
    assert word_overlap("Manchester City", "Man City FC") == pytest.approx(0.5)
    assert word_overlap("FC", "AC") == 0.0


def test_exact_match_after_normalization():
    teams = [team("Paris Saint-Germain"), team("Inter Milan")]
    match = find_best_team_match("FC Internazionale Milano", teams)
    assert match["team"].name == "Inter Milan"
    assert match["method"] == "exact_normalized"
    assert match["score"] == 1.0


def test_short_name_match():
    match = find_best_team_match("PSG", [team("Paris Saint-Germain", short_name="PSG")])
    assert match["method"] == "exact_normalized"


def test_fuzzy_match_handles_typos():
    match = find_best_team_match("Borussia Dortmund", [team("Borussia Dortmnud")])
    assert match["method"] == "fuzzy_normalized"
    assert match["score"] == pytest.approx(0.9 * similarity("borussia dortmund", "borussia dortmnud"))


def test_word_overlap_match():
    teams = [team("Manchester United"), team("Manchester City FC")]
    match = find_best_team_match("Man City", teams)
    assert match["team"].name == "Manchester City FC"
    assert match["method"] == "word_overlap"


def test_no_match():
    assert find_best_team_match("Real Madrid", [team("Inter Milan")]) is None
    assert find_best_team_match("Real Madrid", []) is None
