"""
League season calendars and scoreboard-date helpers.

A season's active window runs from preseason start (or regular season
start) through postseason end (or regular season end). Dates outside every
window are off-season and never need an upstream call.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterator, List, Optional
from zoneinfo import ZoneInfo

# Scoreboards group games by the US/Eastern calendar date
SCOREBOARD_TZ = ZoneInfo("America/New_York")


@dataclass(frozen=True)
class LeagueSeason:
    id: str
    league: str
    label: str
    start_date: date
    end_date: date
    preseason_start: Optional[date] = None
    postseason_end: Optional[date] = None

    @property
    def window_start(self) -> date:
        return self.preseason_start or self.start_date

    @property
    def window_end(self) -> date:
        return self.postseason_end or self.end_date

    def contains(self, day: date) -> bool:
        return self.window_start <= day <= self.window_end

    @property
    def upstream_year(self) -> str:
        """Season year as upstream names it: 2025-26 is 2026, 2025 is 2025."""
        if "-" in self.label:
            return str(self.start_date.year + 1)
        return str(self.start_date.year)


def _d(value: str) -> date:
    return date.fromisoformat(value)


SEASONS: List[LeagueSeason] = [
    LeagueSeason("nba_2025-26", "nba", "2025-26", _d("2025-10-22"), _d("2026-04-13"),
                 preseason_start=_d("2025-10-04"), postseason_end=_d("2026-06-22")),
    LeagueSeason("nfl_2025", "nfl", "2025", _d("2025-09-04"), _d("2026-01-04"),
                 preseason_start=_d("2025-08-01"), postseason_end=_d("2026-02-08")),
    LeagueSeason("ncaaf_2025", "ncaaf", "2025", _d("2025-08-23"), _d("2025-12-07"),
                 preseason_start=_d("2025-08-23"), postseason_end=_d("2026-01-20")),
    LeagueSeason("ncaam_2025-26", "ncaam", "2025-26", _d("2025-11-04"), _d("2026-03-08"),
                 preseason_start=_d("2025-11-04"), postseason_end=_d("2026-04-06")),
    LeagueSeason("nhl_2025-26", "nhl", "2025-26", _d("2025-10-07"), _d("2026-04-17"),
                 preseason_start=_d("2025-09-21"), postseason_end=_d("2026-06-20")),
    # 2026-27 windows are provisional until the leagues publish schedules
    LeagueSeason("nba_2026-27", "nba", "2026-27", _d("2026-10-20"), _d("2027-04-11"),
                 preseason_start=_d("2026-10-02"), postseason_end=_d("2027-06-20")),
    LeagueSeason("nfl_2026", "nfl", "2026", _d("2026-09-10"), _d("2027-01-10"),
                 preseason_start=_d("2026-08-01"), postseason_end=_d("2027-02-14")),
    LeagueSeason("ncaaf_2026", "ncaaf", "2026", _d("2026-08-29"), _d("2026-12-12"),
                 preseason_start=_d("2026-08-22"), postseason_end=_d("2027-01-25")),
    LeagueSeason("ncaam_2026-27", "ncaam", "2026-27", _d("2026-11-02"), _d("2027-03-14"),
                 preseason_start=_d("2026-11-02"), postseason_end=_d("2027-04-05")),
    LeagueSeason("nhl_2026-27", "nhl", "2026-27", _d("2026-10-06"), _d("2027-04-15"),
                 preseason_start=_d("2026-09-19"), postseason_end=_d("2027-06-20")),
]


def parse_date(value: str) -> date:
    """Parse YYYY-MM-DD. Raises ValueError for anything else."""
    if not isinstance(value, str) or len(value) != 10:
        raise ValueError(f"Expected YYYY-MM-DD, got {value!r}")
    return date.fromisoformat(value)


def seasons_for(league: str) -> List[LeagueSeason]:
    return [s for s in SEASONS if s.league == league.lower()]


def get_season_for_date(league: str, day: date) -> Optional[LeagueSeason]:
    for season in seasons_for(league):
        if season.contains(day):
            return season
    return None


def is_date_in_season(league: str, day: date) -> bool:
    return get_season_for_date(league, day) is not None


def nearest_season(league: str, day: date) -> Optional[LeagueSeason]:
    """The season containing day, else the next one to start, else the latest."""
    candidates = seasons_for(league)
    if not candidates:
        return None
    current = get_season_for_date(league, day)
    if current is not None:
        return current
    upcoming = [s for s in candidates if s.window_start > day]
    if upcoming:
        return min(upcoming, key=lambda s: s.window_start)
    return max(candidates, key=lambda s: s.window_end)


def date_range(start: date, end: date) -> Iterator[date]:
    """Every date from start to end inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def scoreboard_date(start_time) -> str:
    """
    US/Eastern calendar date for a game start time.

    A game at 01:00 UTC on Jan 14 belongs to the Jan 13 slate.
    """
    if isinstance(start_time, str):
        start_time = datetime.fromisoformat(start_time.replace("Z", "+00:00"))
    if start_time.tzinfo is None:
        start_time = start_time.replace(tzinfo=timezone.utc)
    return start_time.astimezone(SCOREBOARD_TZ).date().isoformat()


def today_eastern(now: Optional[datetime] = None) -> date:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(SCOREBOARD_TZ).date()
