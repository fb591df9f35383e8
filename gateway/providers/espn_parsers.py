"""
Transform ESPN site-API JSON into gateway schemas.

Pure functions; the client in espn.py owns HTTP. Every parser raises
KeyError/TypeError/ValueError on malformed input, which the client turns
into ValidationFailure.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from gateway.leagues import League, period_label, prefixed_id
from gateway.schemas import (
    BasketballTeamBoxScore,
    BoxScore,
    BoxScoreResponse,
    ConferenceStandings,
    FootballGroup,
    FootballRow,
    FootballTeamBoxScore,
    Game,
    GameStatus,
    HockeyGoalieLine,
    HockeySkaterLine,
    HockeyTeamBoxScore,
    PlayerLine,
    PlayerSeasonLine,
    PlayerStatsResponse,
    RosterPlayer,
    RosterResponse,
    Standing,
    StandingsResponse,
    TeamSummary,
    Venue,
)

logger = logging.getLogger("provider.espn")

# Hockey stat categories that hold skaters
SKATER_CATEGORIES = {"skaters", "forwards", "defensemen", "defense", "defenses", ""}
GOALIE_CATEGORIES = {"goalies", "goaltending"}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# Breaks in play that look like endings
LIVE_BREAK_STATUSES = {"STATUS_END_PERIOD", "STATUS_END_OF_REGULATION", "STATUS_HALFTIME"}

# Games that never reached a result; final would make them durable
UNPLAYED_STATUSES = {"STATUS_POSTPONED", "STATUS_CANCELED", "STATUS_SUSPENDED"}


def map_game_status(status_name: str) -> GameStatus:
    """
    Map an ESPN status name (STATUS_IN_PROGRESS, STATUS_FINAL_OT, ...) to
    the gateway's three-state status. Unknown names count as scheduled.
    """
    name = (status_name or "").upper()
    if name in UNPLAYED_STATUSES or "SCHEDULED" in name or "PRE" in name:
        return GameStatus.SCHEDULED
    if name in LIVE_BREAK_STATUSES:
        return GameStatus.LIVE
    if "FINAL" in name or "END" in name or "POST" in name:
        return GameStatus.FINAL
    if "PROGRESS" in name or "HALFTIME" in name or "IN_" in name:
        return GameStatus.LIVE
    return GameStatus.SCHEDULED


def _split_competitors(competition: Dict[str, Any]):
    competitors = competition["competitors"]
    home = next((c for c in competitors if c.get("homeAway") == "home"), None)
    away = next((c for c in competitors if c.get("homeAway") == "away"), None)
    if home is None or away is None:
        raise ValueError("competition is missing a home or away competitor")
    return home, away


def _team_summary(competitor: Dict[str, Any], league: League, status: GameStatus) -> TeamSummary:
    team = competitor["team"]
    score = None
    if status != GameStatus.SCHEDULED:
        # Scheduled games carry "0"; only report a score once play begins
        try:
            score = int(competitor.get("score") or 0)
        except (TypeError, ValueError):
            score = 0
    return TeamSummary(
        id=prefixed_id(league, str(team["id"])),
        abbrev=team.get("abbreviation", ""),
        name=team.get("shortDisplayName") or team.get("displayName", ""),
        city=team.get("location", ""),
        score=score,
        logo_url=team.get("logo"),
    )


def _venue(raw: Optional[Dict[str, Any]]) -> Optional[Venue]:
    if not raw:
        return None
    address = raw.get("address") or {}
    return Venue(
        id=f"venue_{raw.get('id', '')}",
        name=raw.get("fullName", ""),
        city=address.get("city", ""),
        state=address.get("state"),
    )


def _build_game(
    event_id: str,
    start_time: str,
    status_block: Dict[str, Any],
    competition: Dict[str, Any],
    league: League,
    venue: Optional[Dict[str, Any]] = None,
) -> Game:
    status = map_game_status(status_block["type"]["name"])
    period = int(status_block.get("period") or 0)
    clock = status_block.get("displayClock")
    home, away = _split_competitors(competition)
    return Game(
        id=prefixed_id(league, str(event_id)),
        start_time=start_time,
        status=status,
        period=period_label(league, period) if status != GameStatus.SCHEDULED and period > 0 else None,
        clock=clock if status != GameStatus.SCHEDULED and clock else None,
        overtime_periods=(period - league.regular_periods) if period > league.regular_periods else None,
        venue=_venue(venue or competition.get("venue")),
        home_team=_team_summary(home, league, status),
        away_team=_team_summary(away, league, status),
    )


def parse_scoreboard(data: Dict[str, Any], league: League) -> List[Dict[str, Any]]:
    """Scoreboard response -> list of game payloads."""
    games = []
    for event in data.get("events") or []:
        competition = event["competitions"][0]
        game = _build_game(
            event_id=event["id"],
            start_time=event.get("date") or competition.get("date"),
            status_block=event.get("status") or competition["status"],
            competition=competition,
            league=league,
        )
        games.append(game.to_payload())
    return games


def parse_summary_game(data: Dict[str, Any], league: League, event_id: str) -> Game:
    """Game summary response -> Game."""
    competition = data["header"]["competitions"][0]
    return _build_game(
        event_id=event_id,
        start_time=competition.get("date") or _now_iso(),
        status_block=competition["status"],
        competition=competition,
        league=league,
        venue=(data.get("gameInfo") or {}).get("venue"),
    )


# ===== BOX SCORES =====

def _stat_map(labels: List[str], values: List[str]) -> Dict[str, str]:
    return {label: (values[i] if i < len(values) else "-") for i, label in enumerate(labels)}


def _athlete_fields(athlete: Dict[str, Any]) -> Dict[str, Any]:
    info = athlete.get("athlete") or {}
    return {
        "id": f"player_{info.get('id', '')}",
        "name": info.get("shortName") or info.get("displayName") or "Unknown",
        "jersey": info.get("jersey") or "",
        "position": (info.get("position") or {}).get("abbreviation", ""),
    }


def _sum_stat(players: List[PlayerLine], label: str) -> int:
    total = 0
    for player in players:
        try:
            total += int(player.stats.get(label, 0))
        except (TypeError, ValueError):
            continue
    return total


def _basketball_team(team_id: str, team_name: str, player_data: Optional[Dict[str, Any]]) -> BasketballTeamBoxScore:
    box = BasketballTeamBoxScore(team_id=team_id, team_name=team_name)
    if not player_data or not player_data.get("statistics"):
        return box

    category = player_data["statistics"][0]
    labels = category.get("labels") or []
    for athlete in category.get("athletes") or []:
        fields = _athlete_fields(athlete)
        line = PlayerLine(
            **fields,
            is_starter=bool(athlete.get("starter")),
            stats=_stat_map(labels, athlete.get("stats") or []),
        )
        if athlete.get("didNotPlay"):
            line.dnp_reason = athlete.get("reason") or "DNP"
            box.dnp.append(line)
        elif athlete.get("starter"):
            box.starters.append(line)
        else:
            box.bench.append(line)

    active = box.starters + box.bench
    box.team_totals = {label: _sum_stat(active, label) for label in ("PTS", "REB", "AST", "STL", "BLK", "TO")}
    return box


def _football_team(team_id: str, team_name: str, player_data: Optional[Dict[str, Any]]) -> FootballTeamBoxScore:
    box = FootballTeamBoxScore(team_id=team_id, team_name=team_name)
    if not player_data:
        return box
    for category in player_data.get("statistics") or []:
        labels = category.get("labels") or []
        rows = []
        for athlete in category.get("athletes") or []:
            fields = _athlete_fields(athlete)
            rows.append(FootballRow(
                id=fields["id"],
                name=fields["name"],
                position=fields["position"],
                stats=_stat_map(labels, athlete.get("stats") or []),
            ))
        box.groups.append(FootballGroup(name=category.get("name") or "unknown", headers=labels, rows=rows))
    return box


def _hockey_team(team_id: str, team_name: str, player_data: Optional[Dict[str, Any]]) -> HockeyTeamBoxScore:
    box = HockeyTeamBoxScore(team_id=team_id, team_name=team_name)
    if not player_data:
        return box
    for category in player_data.get("statistics") or []:
        category_name = (category.get("name") or "").lower()
        labels = category.get("labels") or []
        for athlete in category.get("athletes") or []:
            fields = _athlete_fields(athlete)
            if athlete.get("didNotPlay"):
                box.scratches.append(PlayerLine(**fields))
                continue
            stats = _stat_map(labels, athlete.get("stats") or [])
            if fields["position"] == "G" or category_name in GOALIE_CATEGORIES:
                box.goalies.append(HockeyGoalieLine(
                    id=fields["id"],
                    name=fields["name"],
                    jersey=fields["jersey"],
                    stats=stats,
                    decision=stats.get("DEC") or None,
                ))
            elif category_name in SKATER_CATEGORIES or fields["position"] == "D":
                box.skaters.append(HockeySkaterLine(**fields, stats=stats))
            else:
                logger.debug(f"Skipped hockey category '{category_name}' for {fields['name']}")

    totals = {}
    for label in ("G", "A", "SOG", "PIM", "HT", "BS"):
        total = 0
        for skater in box.skaters:
            try:
                total += int(skater.stats.get(label, 0))
            except (TypeError, ValueError):
                continue
        totals[label] = total
    box.team_totals = totals
    return box


_TEAM_BUILDERS = {
    "basketball": _basketball_team,
    "football": _football_team,
    "hockey": _hockey_team,
}


def parse_box_score(data: Dict[str, Any], league: League, event_id: str) -> Dict[str, Any]:
    """Game summary response -> box score payload for the league's sport."""
    game = parse_summary_game(data, league, event_id)
    competition = data["header"]["competitions"][0]
    home, away = _split_competitors(competition)

    players = (data.get("boxscore") or {}).get("players") or []

    def player_data_for(competitor):
        team_id = str(competitor["team"]["id"])
        return next((p for p in players if str(p["team"]["id"]) == team_id), None)

    build_team = _TEAM_BUILDERS[league.sport]
    box_score = BoxScore(
        home_team=build_team(
            prefixed_id(league, str(home["team"]["id"])),
            home["team"].get("displayName", ""),
            player_data_for(home),
        ),
        away_team=build_team(
            prefixed_id(league, str(away["team"]["id"])),
            away["team"].get("displayName", ""),
            player_data_for(away),
        ),
    )
    return BoxScoreResponse(game=game, box_score=box_score, last_updated=_now_iso()).to_payload()


# ===== REFERENCE DATA =====

def _stat_values(entry: Dict[str, Any]) -> Dict[str, Any]:
    values = {}
    for stat in entry.get("stats") or []:
        name = stat.get("name") or stat.get("type")
        if name:
            values[name] = stat.get("value") if stat.get("value") is not None else stat.get("displayValue")
    return values


def _standing(entry: Dict[str, Any], league: League, rank: int) -> Standing:
    team = entry["team"]
    stats = _stat_values(entry)
    streak = next(
        (s.get("displayValue") for s in entry.get("stats") or [] if s.get("name") == "streak"),
        None,
    )
    ties = stats.get("ties")
    return Standing(
        team_id=prefixed_id(league, str(team["id"])),
        abbrev=team.get("abbreviation", ""),
        name=team.get("shortDisplayName") or team.get("displayName", ""),
        wins=int(stats.get("wins") or 0),
        losses=int(stats.get("losses") or 0),
        ties=int(ties) if ties is not None else None,
        win_pct=float(stats.get("winPercent") or 0.0),
        rank=int(stats.get("playoffSeed") or rank),
        games_back=float(stats["gamesBehind"]) if stats.get("gamesBehind") not in (None, "-") else None,
        streak=streak,
    )


def parse_standings(data: Dict[str, Any], league: League, season: str) -> Dict[str, Any]:
    """Standings response (conference children) -> standings payload."""
    groups = data.get("children") or [data]
    conferences = []
    for group in groups:
        entries = (group.get("standings") or {}).get("entries") or []
        teams = [_standing(entry, league, rank) for rank, entry in enumerate(entries, start=1)]
        teams.sort(key=lambda s: s.rank)
        conferences.append(ConferenceStandings(name=group.get("name", ""), teams=teams))
    return StandingsResponse(
        league=league.code,
        season=season,
        last_updated=_now_iso(),
        conferences=conferences,
    ).to_payload()


def _roster_player(raw: Dict[str, Any]) -> RosterPlayer:
    return RosterPlayer(
        id=f"player_{raw['id']}",
        name=raw.get("displayName") or raw.get("fullName") or "Unknown",
        jersey=raw.get("jersey"),
        position=(raw.get("position") or {}).get("abbreviation"),
        height=raw.get("displayHeight"),
        weight=raw.get("displayWeight"),
    )


def parse_roster(data: Dict[str, Any], team_id: str) -> Dict[str, Any]:
    """
    Roster response -> roster payload. Football rosters arrive grouped by
    unit ({"position": "offense", "items": [...]}); flatten them.
    """
    players = []
    for item in data.get("athletes") or []:
        if "items" in item:
            players.extend(_roster_player(raw) for raw in item["items"])
        else:
            players.append(_roster_player(item))
    season = (data.get("season") or {}).get("year")
    return RosterResponse(
        team_id=team_id,
        season=str(season) if season else "",
        last_updated=_now_iso(),
        players=players,
    ).to_payload()


# ===== PLAYERS =====

def _season_year(entry: Dict[str, Any]) -> Optional[str]:
    season = entry.get("season")
    if isinstance(season, dict):
        year = season.get("year")
        return str(year) if year else None
    return str(season) if season else None


def parse_player_stats(data: Dict[str, Any], league: League, player_id: str, season: str) -> Dict[str, Any]:
    """
    Athlete stats response -> per-season averages.

    Only the "averages" category is read. Each of its rows is one season
    (newest first once sorted) except the career row, which is split out.
    """
    averages = next((c for c in data.get("categories") or [] if c.get("name") == "averages"), None)
    labels: List[str] = list((averages or {}).get("labels") or [])
    lines, career, current = [], None, None
    for entry in (averages or {}).get("statistics") or []:
        raw_stats = entry.get("stats") or []
        if not raw_stats:
            continue
        stats = _stat_map(labels, [str(v) for v in raw_stats])
        season_raw = entry.get("season")
        display = entry.get("displaySeason") or (
            season_raw.get("displayName") if isinstance(season_raw, dict) else None
        ) or ""
        if entry.get("type") == "career" or display.lower() == "career":
            career = stats
            continue
        line = PlayerSeasonLine(
            season=display or (_season_year(entry) or ""),
            team=(entry.get("team") or {}).get("abbreviation") or entry.get("teamAbbreviation"),
            stats=stats,
        )
        lines.append((_season_year(entry) or "", line))

    lines.sort(key=lambda pair: pair[0], reverse=True)
    for year, line in lines:
        if year == season:
            current = line
            break

    return PlayerStatsResponse(
        player_id=player_id,
        league=league.code,
        season=season,
        last_updated=_now_iso(),
        labels=labels,
        current=current,
        seasons=[line for _, line in lines],
        career=career,
    ).to_payload()
