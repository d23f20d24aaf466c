"""Small builders shared by the unit tests."""

from datetime import datetime
from typing import List, Optional

from hallcup.services.bracket_model import TeamRef
from hallcup.services.domain import PHASE_GROUP_STAGE, MatchTiming, ScheduledMatch, Team, TournamentConfig

START = datetime(2026, 3, 7, 9, 0)


def make_teams(count: int, group: Optional[str] = None, prefix: Optional[str] = None) -> List[Team]:
    """Teams <prefix>1..<prefix>n; prefix defaults to the group label, else "T"."""
    prefix = prefix if prefix is not None else (group or "T")
    return [Team(id=f"{prefix}{i}", name=f"Team {prefix}{i}", group=group) for i in range(1, count + 1)]


def make_timing(**overrides) -> MatchTiming:
    values = {"start_time": START, "game_minutes": 10}
    values.update(overrides)
    return MatchTiming(**values)


def make_config(teams: List[Team], field_count: int = 2, **overrides) -> TournamentConfig:
    values = {"teams": tuple(teams), "field_count": field_count, "timing": make_timing()}
    values.update(overrides)
    return TournamentConfig(**values)


def make_match(match_id: str, slot: int, home: str, away: str, field: int = 0, referee=None) -> ScheduledMatch:
    return ScheduledMatch(
        id=match_id,
        match_number=0,
        slot=slot,
        field=field,
        home=TeamRef(home),
        away=TeamRef(away),
        home_label=home,
        away_label=away,
        start_time=START,
        end_time=START,
        phase=PHASE_GROUP_STAGE,
        referee=referee,
    )


def tournament_payload(**overrides) -> dict:
    """POST /api/tournaments body: two groups of four, two fields, top-4 finals."""
    teams = [{"id": f"{g}{i}", "name": f"Team {g}{i}", "group": g} for g in "AB" for i in range(1, 5)]
    payload = {
        "name": "Hallenturnier 2026",
        "teams": teams,
        "field_count": 2,
        "timing": {"start_time": "2026-03-07T09:00:00", "game_minutes": 10, "break_between_slots_minutes": 2},
        "min_rest_slots": 1,
        "referees": {"mode": "organizer", "number_of_referees": 2, "referee_names": {"1": "Anna"}},
        "finals": {"preset": "top-4"},
    }
    payload.update(overrides)
    return payload
