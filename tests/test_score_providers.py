import json
from datetime import date, datetime, timezone
from unittest.mock import patch

import pytest
import requests

from pronostics.utils.score_providers import (
    CANCELLED,
    FINISHED,
    LIVE,
    RESCHEDULED,
    UPCOMING,
    FootballDataProvider,
    ProviderError,
    RugbyApiProvider,
    get_provider_for_sport,
    map_football_status,
    map_rugby_status,
)


def make_response(payload, status_code=200, headers=None):
    response = requests.Response()
    response.status_code = status_code
    response._content = json.dumps(payload).encode()
    response.headers.update(headers or {})
    response.url = "https://api.example.test"
    return response


def football_match(match_id, home, away, status, home_score=None, away_score=None,
                   duration="REGULAR", competition="UEFA Champions League"):
    return {
        "id": match_id,
        "utcDate": "2025-05-31T19:00:00Z",
        "status": status,
        "minute": 67 if status == "IN_PLAY" else None,
        "competition": {"name": competition},
        "homeTeam": {"name": home},
        "awayTeam": {"name": away},
        "score": {
            "duration": duration,
            "fullTime": {"home": home_score, "away": away_score},
        },
    }


def rugby_game(game_id, home, away, short, home_score=None, away_score=None):
    return {
        "id": game_id,
        "date": "2025-06-28T19:05:00+00:00",
        "status": {"short": short, "elapsed": 55 if short == "2H" else None},
        "teams": {"home": {"id": 1, "name": home}, "away": {"id": 2, "name": away}},
        "scores": {"home": home_score, "away": away_score},
        "league": {"name": "Top 14"},
    }


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("pronostics.utils.score_providers.time.sleep") as sleep:
        yield sleep


@pytest.fixture()
def football():
    provider = FootballDataProvider(api_key="secret", competition_filter="UEFA Champions League")
    provider.min_request_interval = 0
    return provider


@pytest.fixture()
def rugby():
    provider = RugbyApiProvider(api_key="secret")
    provider.min_request_interval = 0
    return provider


@pytest.mark.parametrize(
    "external, expected",
    [
        ("SCHEDULED", UPCOMING),
        ("TIMED", UPCOMING),
        ("IN_PLAY", LIVE),
        ("PAUSED", LIVE),
        ("FINISHED", FINISHED),
        ("POSTPONED", CANCELLED),
        ("AWARDED_SOMEHOW", UPCOMING),
        (None, UPCOMING),
    ],
)
def test_map_football_status(external, expected):
    assert map_football_status(external) == expected


@pytest.mark.parametrize(
    "external, expected",
    [
        ("NS", UPCOMING),
        ("1H", LIVE),
        ("HT", LIVE),
        ("ET", LIVE),
        ("FT", FINISHED),
        ("AET", FINISHED),
        ("AW", FINISHED),
        ("POST", RESCHEDULED),
        ("ABD", CANCELLED),
        ("CANC", CANCELLED),
        ("???", UPCOMING),
    ],
)
def test_map_rugby_status(external, expected):
    assert map_rugby_status(external) == expected


def test_auth_headers(football, rugby):
    assert football.session.headers["X-Auth-Token"] == "secret"
    assert rugby.session.headers["x-apisports-key"] == "secret"


def test_parse_football_match(football):
    match = football.parse_match(
        football_match(42, "PSG", "Inter", "FINISHED", 5, 0, duration="PENALTY_SHOOTOUT")
    )
    assert match.external_id == "42"
    assert (match.home_name, match.away_name) == ("PSG", "Inter")
    assert (match.home_score, match.away_score) == (5, 0)
    assert match.status == FINISHED
    assert match.decided_by == "PEN"
    assert match.kickoff == datetime(2025, 5, 31, 19, 0, tzinfo=timezone.utc)


def test_live_matches_filtered_by_competition(football):
    payload = {
        "matches": [
            football_match(1, "PSG", "Inter", "IN_PLAY", 1, 0),
            football_match(2, "Arsenal", "Chelsea", "IN_PLAY", 0, 0, competition="Premier League"),
        ]
    }
    with patch.object(football.session, "get", return_value=make_response(payload)) as get:
        matches = football.get_live_matches()

    assert [m.external_id for m in matches] == ["1"]
    assert matches[0].elapsed == 67
    _, kwargs = get.call_args
    assert kwargs["params"] == {"status": "LIVE"}


def test_live_matches_fall_back_to_date(football):
    today = {
        "matches": [
            football_match(1, "PSG", "Inter", "IN_PLAY", 1, 0),
            football_match(3, "Barcelona", "Benfica", "TIMED"),
        ]
    }

    def fake_get(url, params=None, timeout=None):
        if params == {"status": "LIVE"}:
            return make_response({"message": "bad filter"}, status_code=400)
        return make_response(today)

    with patch.object(football.session, "get", side_effect=fake_get):
        matches = football.get_live_matches()

    assert [m.external_id for m in matches] == ["1"]


def test_finished_matches_use_date_range(football):
    payload = {"matches": [football_match(1, "PSG", "Inter", "FINISHED", 2, 1)]}
    with patch.object(football.session, "get", return_value=make_response(payload)) as get:
        matches = football.get_finished_matches(date(2025, 5, 31))

    assert [m.status for m in matches] == [FINISHED]
    _, kwargs = get.call_args
    assert kwargs["params"]["dateFrom"] == "2025-05-31"
    assert kwargs["params"]["dateTo"] == "2025-05-31"


def test_retries_server_errors(football, no_sleep):
    responses = [
        make_response({}, status_code=503),
        make_response({"matches": []}),
    ]
    with patch.object(football.session, "get", side_effect=responses) as get:
        assert football.get_matches_for_date(date(2025, 5, 31)) == []

    assert get.call_count == 2
    assert no_sleep.called


def test_retry_after_header_on_rate_limit(football, no_sleep):
    responses = [
        make_response({}, status_code=429, headers={"Retry-After": "7"}),
        make_response({"matches": []}),
    ]
    with patch.object(football.session, "get", side_effect=responses):
        football.get_matches_for_date(date(2025, 5, 31))

    no_sleep.assert_any_call(7)


def test_gives_up_after_max_retries(football):
    with patch.object(
        football.session, "get", side_effect=requests.exceptions.ConnectionError("down")
    ) as get:
        with pytest.raises(ProviderError):
            football.get_matches_for_date(date(2025, 5, 31))

    assert get.call_count == 3


def test_client_errors_are_not_retried(football):
    with patch.object(
        football.session, "get", return_value=make_response({}, status_code=403)
    ) as get:
        with pytest.raises(ProviderError):
            football.get_matches_for_date(date(2025, 5, 31))

    assert get.call_count == 1


def test_missing_api_key_raises():
    provider = FootballDataProvider(api_key=None)
    with pytest.raises(ProviderError):
        provider.get_matches_for_date()


def test_rugby_live_games(rugby):
    payload = {
        "errors": [],
        "response": [rugby_game(7, "Toulouse", "Racing 92", "2H", 17, 10)],
    }
    with patch.object(rugby.session, "get", return_value=make_response(payload)) as get:
        matches = rugby.get_live_matches()

    assert len(matches) == 1
    match = matches[0]
    assert match.external_id == "7"
    assert match.status == LIVE
    assert match.elapsed == 55
    assert (match.home_score, match.away_score) == (17, 10)
    _, kwargs = get.call_args
    assert kwargs["params"] == {"live": "all"}


def test_rugby_errors_payload(rugby):
    payload = {"errors": {"token": "Error/Missing application key."}, "response": []}
    with patch.object(rugby.session, "get", return_value=make_response(payload)):
        with pytest.raises(ProviderError):
            rugby.get_live_matches()


def test_rugby_finished_matches(rugby):
    payload = {
        "errors": [],
        "response": [
            rugby_game(7, "Toulouse", "Racing 92", "FT", 24, 20),
            rugby_game(8, "Clermont", "Toulon", "NS"),
        ],
    }
    with patch.object(rugby.session, "get", return_value=make_response(payload)):
        matches = rugby.get_finished_matches(date(2025, 6, 28))

    assert [m.external_id for m in matches] == ["7"]


def test_rate_limit_status(football):
    with patch.object(football.session, "get", return_value=make_response({"matches": []})):
        football.get_matches_for_date(date(2025, 5, 31))

    status = football.get_rate_limit_status()
    assert status["provider"] == "football-data.org"
    assert status["requests_last_minute"] == 1
    assert status["total_requests"] == 1


def test_get_provider_for_sport():
    config = {"FOOTBALL_DATA_API_KEY": "a", "RUGBY_API_KEY": "b"}
    assert isinstance(get_provider_for_sport("football", config), FootballDataProvider)
    assert isinstance(get_provider_for_sport("RUGBY", config), RugbyApiProvider)
    with pytest.raises(ValueError):
        get_provider_for_sport("CRICKET", config)


def test_football_match_by_id(football):
    payload = football_match(42, "PSG", "Arsenal", "FINISHED", 2, 1, competition="Friendly")
    with patch.object(football.session, "get", return_value=make_response(payload)) as get:
        match = football.get_match("42")

    # The competition filter only applies to lists
    assert match.external_id == "42"
    assert match.status == FINISHED
    args, _ = get.call_args
    assert args[0].endswith("/matches/42")


def test_football_match_by_id_not_found(football):
    with patch.object(
        football.session, "get", return_value=make_response({"message": "not found"}, status_code=404)
    ):
        with pytest.raises(ProviderError):
            football.get_match("999")


def test_rugby_match_by_id(rugby):
    payload = {"errors": [], "response": [rugby_game(7, "Toulouse", "Racing 92", "FT", 24, 20)]}
    with patch.object(rugby.session, "get", return_value=make_response(payload)) as get:
        match = rugby.get_match("7")

    assert (match.home_score, match.away_score) == (24, 20)
    _, kwargs = get.call_args
    assert kwargs["params"] == {"id": "7"}

    with patch.object(rugby.session, "get", return_value=make_response({"errors": [], "response": []})):
        assert rugby.get_match("8") is None
