"""
ESPN provider: HTTP error mapping, retry budget and payload parsing
"""
import pytest
import requests
from tenacity import wait_none

from gateway.errors import BadRequest, NotFound, UpstreamRateLimited, UpstreamUnavailable, ValidationFailure
from gateway.leagues import LEAGUES
from gateway.providers import ESPNProvider
from gateway.providers.espn_parsers import map_game_status, parse_player_stats, parse_roster, parse_standings
from gateway.schemas import GameStatus
from gateway.validation import require_complete_box_score
from tests.factories import espn_basketball_players, espn_event, espn_player_stats, espn_summary

INVALID_JSON = object()


class FakeResponse:
    def __init__(self, status_code=200, body=None, headers=None):
        self.status_code = status_code
        self._body = body if body is not None else {}
        self.headers = headers or {}

    def json(self):
        if self._body is INVALID_JSON:
            raise ValueError("Expecting value: line 1 column 1")
        return self._body


class FakeSession:
    """Replays scripted responses (or raises scripted exceptions) in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.requests.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        outcome = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_provider(*responses, **kwargs):
    session = FakeSession(*responses)
    provider = ESPNProvider(
        base_url="https://espn.test/apis/site/v2/sports",
        standings_base_url="https://espn.test/apis/v2/sports",
        athlete_base_url="https://espn.test/apis/common/v3/sports",
        session=session,
        retry_wait=wait_none(),
        **kwargs,
    )
    return provider, session


# ===== HTTP =====

def test_scoreboard_request_shape():
    provider, session = make_provider(FakeResponse(body={"events": []}), timeout=7.5, api_key="secret")

    assert provider.fetch_by_date_and_league("nba", "2026-01-20") == []

    request = session.requests[0]
    assert request["url"] == "https://espn.test/apis/site/v2/sports/basketball/nba/scoreboard"
    assert request["params"] == {"dates": "20260120"}
    assert request["timeout"] == 7.5
    assert request["headers"]["x-api-key"] == "secret"


def test_rate_limit_is_not_retried():
    provider, session = make_provider(FakeResponse(429, headers={"Retry-After": "30"}))

    with pytest.raises(UpstreamRateLimited) as exc_info:
        provider.fetch_by_date_and_league("nba", "2026-01-20")

    assert exc_info.value.retry_after == 30
    assert len(session.requests) == 1


def test_not_found_is_not_retried_and_not_a_fault():
    provider, session = make_provider(FakeResponse(404))

    with pytest.raises(NotFound):
        provider.fetch_box_score("nba_401810001")

    assert len(session.requests) == 1
    assert provider.health_check()["errorCount"] == 0


def test_server_errors_are_retried_until_success():
    provider, session = make_provider(
        FakeResponse(503),
        requests.ConnectionError("connection reset"),
        FakeResponse(body={"events": []}),
        max_attempts=3,
    )

    assert provider.fetch_by_date_and_league("nhl", "2026-01-20") == []
    assert len(session.requests) == 3
    assert provider.health_check()["errorCount"] == 0


def test_timeouts_exhaust_retry_budget():
    provider, session = make_provider(requests.Timeout("read timed out"), max_attempts=2)

    with pytest.raises(UpstreamUnavailable):
        provider.fetch_by_date_and_league("nba", "2026-01-20")

    assert len(session.requests) == 2
    assert provider.health_check()["errorCount"] == 1


def test_invalid_json_is_a_validation_failure():
    provider, session = make_provider(FakeResponse(body=INVALID_JSON))

    with pytest.raises(ValidationFailure):
        provider.fetch_by_date_and_league("nba", "2026-01-20")
    assert len(session.requests) == 1


def test_malformed_payload_is_a_validation_failure():
    provider, _ = make_provider(FakeResponse(body={"events": [{"id": "1", "competitions": []}]}))

    with pytest.raises(ValidationFailure):
        provider.fetch_by_date_and_league("nba", "2026-01-20")


def test_health_degrades_after_repeated_failures():
    provider, _ = make_provider(FakeResponse(500), max_attempts=1)

    for _ in range(6):
        with pytest.raises(UpstreamUnavailable):
            provider.fetch_by_date_and_league("nba", "2026-01-20")

    health = provider.health_check()
    assert health["name"] == "espn"
    assert health["status"] == "degraded"
    assert health["errorCount"] == 6


# ===== PARSING =====

@pytest.mark.parametrize("name, expected", [
    ("STATUS_SCHEDULED", GameStatus.SCHEDULED),
    ("STATUS_IN_PROGRESS", GameStatus.LIVE),
    ("STATUS_HALFTIME", GameStatus.LIVE),
    ("STATUS_END_PERIOD", GameStatus.LIVE),
    ("STATUS_FINAL", GameStatus.FINAL),
    ("STATUS_FINAL_OT", GameStatus.FINAL),
    ("STATUS_POSTPONED", GameStatus.SCHEDULED),
    ("STATUS_SOMETHING_NEW", GameStatus.SCHEDULED),
])
def test_status_mapping(name, expected):
    assert map_game_status(name) == expected


def test_scoreboard_parsing():
    body = {"events": [
        espn_event("401810001", "STATUS_SCHEDULED"),
        espn_event("401810002", "STATUS_IN_PROGRESS", period=3, home_score="77", away_score="70"),
        espn_event("401810003", "STATUS_FINAL", period=5, home_score="118", away_score="115"),
    ]}
    provider, _ = make_provider(FakeResponse(body=body))

    scheduled, live, final = provider.fetch_by_date_and_league("nba", "2026-01-20")

    assert scheduled["id"] == "nba_401810001"
    assert scheduled["status"] == "scheduled"
    assert "score" not in scheduled["homeTeam"]
    assert "period" not in scheduled

    assert live["status"] == "live"
    assert live["period"] == "Q3"
    assert live["homeTeam"]["score"] == 77
    assert live["homeTeam"]["id"] == "nba_2"
    assert live["awayTeam"]["abbrev"] == "BKN"

    assert final["period"] == "OT"
    assert final["overtimePeriods"] == 1
    assert final["startTime"] == "2026-01-21T00:30:00Z"
    assert final["venue"]["city"] == "Boston"


def test_college_basketball_uses_halves():
    body = {"events": [espn_event("401820001", "STATUS_IN_PROGRESS", period=2)]}
    provider, _ = make_provider(FakeResponse(body=body))

    (game,) = provider.fetch_by_date_and_league("ncaam", "2026-01-20")
    assert game["period"] == "H2"


def test_basketball_box_score_parsing():
    body = espn_summary("401810003", "STATUS_FINAL", [
        espn_basketball_players("2"),
        espn_basketball_players("17", starters=5, bench=3, dnp=0),
    ])
    provider, session = make_provider(FakeResponse(body=body))

    box = provider.fetch_box_score("nba_401810003")

    assert session.requests[0]["params"] == {"event": "401810003"}
    assert box["game"]["status"] == "final"
    home = box["boxScore"]["homeTeam"]
    away = box["boxScore"]["awayTeam"]
    assert home["sport"] == "basketball"
    assert home["teamId"] == "nba_2"
    assert len(home["starters"]) == 5
    assert len(home["bench"]) == 2
    assert home["dnp"][0]["dnpReason"] == "COACH'S DECISION"
    assert home["starters"][0]["stats"]["PTS"] == "18"
    assert home["teamTotals"]["PTS"] == 5 * 18 + 2 * 5
    assert len(away["bench"]) == 3

    require_complete_box_score(box)


def test_box_score_without_player_data_fails_completeness():
    body = espn_summary("401810003", "STATUS_FINAL", [])
    provider, _ = make_provider(FakeResponse(body=body))

    box = provider.fetch_box_score("nba_401810003")

    assert box["boxScore"]["homeTeam"]["starters"] == []
    with pytest.raises(ValidationFailure):
        require_complete_box_score(box)


def test_game_summary_parsing():
    body = espn_summary("401810003", "STATUS_FINAL", [])
    body["gameInfo"] = {"venue": {"id": "7", "fullName": "Garden", "address": {"city": "New York", "state": "NY"}}}
    provider, _ = make_provider(FakeResponse(body=body))

    game = provider.fetch_by_id("nba_401810003")

    assert game["id"] == "nba_401810003"
    assert game["homeTeam"]["score"] == 101
    assert game["awayTeam"]["score"] == 99
    assert game["venue"]["name"] == "Garden"


def test_invalid_game_id_is_rejected_before_any_request():
    provider, session = make_provider(FakeResponse(body={}))

    with pytest.raises(BadRequest):
        provider.fetch_box_score("401810003")

    assert session.requests == []


def test_standings_parsing():
    data = {"children": [{
        "name": "Eastern Conference",
        "standings": {"entries": [
            {
                "team": {"id": "2", "abbreviation": "BOS", "displayName": "Boston Celtics"},
                "stats": [
                    {"name": "wins", "value": 30}, {"name": "losses", "value": 12},
                    {"name": "winPercent", "value": 0.714}, {"name": "gamesBehind", "value": 0},
                    {"name": "playoffSeed", "value": 1}, {"name": "streak", "value": 3, "displayValue": "W3"},
                ],
            },
            {
                "team": {"id": "17", "abbreviation": "BKN", "displayName": "Brooklyn Nets"},
                "stats": [
                    {"name": "wins", "value": 15}, {"name": "losses", "value": 27},
                    {"name": "gamesBehind", "value": 15}, {"name": "playoffSeed", "value": 12},
                ],
            },
        ]},
    }]}

    result = parse_standings(data, LEAGUES["nba"], "2026")

    conference = result["conferences"][0]
    assert result["season"] == "2026"
    assert conference["name"] == "Eastern Conference"
    assert [t["teamId"] for t in conference["teams"]] == ["nba_2", "nba_17"]
    assert conference["teams"][0]["streak"] == "W3"
    assert conference["teams"][1]["gamesBack"] == 15.0


def test_standings_use_separate_base_url():
    provider, session = make_provider(FakeResponse(body={"children": []}))

    provider.fetch_standings("nhl", "2026")

    assert session.requests[0]["url"] == "https://espn.test/apis/v2/sports/hockey/nhl/standings"
    assert session.requests[0]["params"] == {"season": "2026"}


def test_grouped_roster_is_flattened():
    data = {
        "season": {"year": 2025},
        "athletes": [
            {"position": "offense", "items": [{"id": "1", "displayName": "QB One", "position": {"abbreviation": "QB"}}]},
            {"position": "defense", "items": [{"id": "2", "displayName": "LB Two", "position": {"abbreviation": "LB"}}]},
        ],
    }

    roster = parse_roster(data, "nfl_17")

    assert roster["teamId"] == "nfl_17"
    assert roster["season"] == "2025"
    assert [p["id"] for p in roster["players"]] == ["player_1", "player_2"]


def test_player_stats_request_and_parsing():
    provider, session = make_provider(FakeResponse(body=espn_player_stats()))

    stats = provider.fetch_player_stats("nba_4065648", "2026")

    request = session.requests[0]
    assert request["url"] == "https://espn.test/apis/common/v3/sports/basketball/nba/athletes/4065648/stats"
    assert request["params"] == {"season": "2026"}
    assert stats["playerId"] == "nba_4065648"
    assert stats["labels"] == ["GP", "MIN", "PTS", "REB"]
    assert [s["season"] for s in stats["seasons"]] == ["2025-26", "2024-25"]
    assert stats["current"] == {"season": "2025-26", "team": "BOS", "stats": {"GP": "41", "MIN": "35.9", "PTS": "27.1", "REB": "8.2"}}
    assert stats["career"]["PTS"] == "23.4"


def test_player_without_the_requested_season_has_no_current_line():
    stats = parse_player_stats(espn_player_stats(), LEAGUES["nba"], "nba_4065648", "2020")

    assert "current" not in stats
    assert len(stats["seasons"]) == 2


def test_player_stats_without_averages_are_empty():
    stats = parse_player_stats({"categories": []}, LEAGUES["nhl"], "nhl_8478402", "2026")

    assert stats["seasons"] == []
    assert "career" not in stats
