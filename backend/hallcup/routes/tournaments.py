import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session

from hallcup.config import DEFAULT_MIN_REST_SLOTS
from hallcup.database import get_session
from hallcup.models.bracket_state import BracketState
from hallcup.models.tournament import Tournament
from hallcup.services.domain import (
    FinalsConfig,
    MatchTiming,
    RefereeConfig,
    ScheduledMatch,
    Team,
    TournamentConfig,
)
from hallcup.services.errors import Unschedulable
from hallcup.services.fairness_report import analyze_schedule_fairness
from hallcup.services.schedule_assembler import group_by_phase
from hallcup.services.schedule_orchestrator import build_schedule
from hallcup.utils.referees import balance_referee_workloads
from hallcup.utils.version_guards import require_tournament

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Request / Response Models
# ============================================================================


class TeamIn(BaseModel):
    id: str
    name: str
    group: Optional[str] = None


class TimingIn(BaseModel):
    start_time: datetime
    game_minutes: int
    periods: int = 1
    period_break_minutes: int = 0
    break_between_slots_minutes: int = 0
    phase_break_minutes: int = 0
    playoff_game_minutes: Optional[int] = None


class RefereesIn(BaseModel):
    mode: str = "none"
    number_of_referees: int = 0
    referee_names: Dict[int, str] = Field(default_factory=dict)
    max_consecutive_slots: int = 1
    manual_assignments: Dict[str, Union[int, str]] = Field(default_factory=dict)


class FinalsIn(BaseModel):
    preset: str = "none"
    parallel_semifinals: bool = True
    parallel_quarterfinals: bool = True
    parallel_round_of_16: bool = True


class TournamentCreate(BaseModel):
    name: str
    teams: List[TeamIn]
    field_count: int
    timing: TimingIn
    min_rest_slots: int = DEFAULT_MIN_REST_SLOTS
    referees: RefereesIn = Field(default_factory=RefereesIn)
    finals: FinalsIn = Field(default_factory=FinalsIn)
    locale: str = "en"
    accept_incomplete: bool = False
    allow_rest_relaxation: bool = False

    def to_config(self) -> TournamentConfig:
        return TournamentConfig(
            teams=tuple(Team(id=t.id, name=t.name, group=t.group) for t in self.teams),
            field_count=self.field_count,
            timing=MatchTiming(**self.timing.model_dump()),
            min_rest_slots=self.min_rest_slots,
            referees=RefereeConfig(**self.referees.model_dump()),
            finals=FinalsConfig(**self.finals.model_dump()),
            locale=self.locale,
        )


class TournamentResponse(BaseModel):
    id: int
    name: str
    status: str
    summary: Dict[str, Any]
    warnings: List[Dict[str, Any]]
    schedule: Dict[str, Any]
    bracket_version: Optional[int] = None


class RefereeBalanceResponse(BaseModel):
    tournament_id: int
    change_count: int
    changes: List[Dict[str, Any]]


# ============================================================================
# Helpers
# ============================================================================


def load_config(tournament: Tournament) -> TournamentCreate:
    return TournamentCreate.model_validate(tournament.config_json)


def load_matches(tournament: Tournament) -> List[ScheduledMatch]:
    schedule = tournament.schedule_json or {}
    return [ScheduledMatch.from_dict(m) for m in schedule.get("matches", [])]


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/tournaments", response_model=TournamentResponse, status_code=201)
def create_tournament(payload: TournamentCreate, session: Session = Depends(get_session)):
    """Validate the configuration, build the schedule and store it"""
    config = payload.to_config()
    result = build_schedule(
        config,
        accept_incomplete=payload.accept_incomplete,
        allow_rest_relaxation=payload.allow_rest_relaxation,
    )

    if result.status == "failed":
        status_code = 409 if isinstance(result.error, Unschedulable) else 422
        raise HTTPException(
            status_code=status_code,
            detail={
                "code": result.error.code,
                "message": result.error.message,
                "failed_step": result.failed_step,
                "errors": [e.to_dict() for e in result.errors],
            },
        )

    tournament = Tournament(
        name=payload.name,
        locale=payload.locale,
        status=result.status,
        config_json=payload.model_dump(mode="json"),
        schedule_json=result.schedule.to_dict(),
        summary_json={
            "summary": result.summary.to_dict(),
            "warnings": [w.to_dict() for w in result.warnings],
        },
    )
    session.add(tournament)
    session.commit()
    session.refresh(tournament)

    bracket_version = None
    if result.bracket is not None:
        state = BracketState(tournament_id=tournament.id, version=1, nodes_json=result.bracket.to_dict())
        session.add(state)
        session.commit()
        bracket_version = state.version

    logger.info("Created tournament %s (%s) with %d matches", tournament.id, result.status,
                len(result.schedule.matches))

    return TournamentResponse(
        id=tournament.id,
        name=tournament.name,
        status=tournament.status,
        summary=tournament.summary_json["summary"],
        warnings=tournament.summary_json["warnings"],
        schedule=tournament.schedule_json,
        bracket_version=bracket_version,
    )


@router.get("/tournaments/{tournament_id}/schedule")
def get_schedule(tournament_id: int, session: Session = Depends(get_session)):
    """Flat, chronologically ordered match list"""
    tournament = require_tournament(session, tournament_id)
    schedule = tournament.schedule_json or {}
    return {
        "tournament_id": tournament.id,
        "name": tournament.name,
        "status": tournament.status,
        "match_count": len(schedule.get("matches", [])),
        **schedule,
    }


@router.get("/tournaments/{tournament_id}/schedule/phases")
def get_schedule_phases(tournament_id: int, session: Session = Depends(get_session)):
    """Matches grouped by phase (group stage, round of 16, ... , finals)"""
    tournament = require_tournament(session, tournament_id)
    phases = group_by_phase(load_matches(tournament), tournament.locale)
    return {"tournament_id": tournament.id, "phases": [p.to_dict() for p in phases]}


@router.get("/tournaments/{tournament_id}/schedule/fairness")
def get_schedule_fairness(tournament_id: int, session: Session = Depends(get_session)):
    tournament = require_tournament(session, tournament_id)
    config = load_config(tournament)
    report = analyze_schedule_fairness(load_matches(tournament), min_rest_slots=config.min_rest_slots)
    return {"tournament_id": tournament.id, **report.to_dict()}


@router.post("/tournaments/{tournament_id}/referees/balance", response_model=RefereeBalanceResponse)
def balance_referees(tournament_id: int, session: Session = Depends(get_session)):
    """Even out referee workloads on the stored schedule"""
    tournament = require_tournament(session, tournament_id)
    config = load_config(tournament).to_config()
    balanced = balance_referee_workloads(load_matches(tournament), config.referees, config.teams)

    if balanced.changes:
        schedule = dict(tournament.schedule_json or {})
        schedule["matches"] = [m.to_dict() for m in balanced.matches]
        tournament.schedule_json = schedule
        session.add(tournament)
        session.commit()

    return RefereeBalanceResponse(
        tournament_id=tournament.id,
        change_count=len(balanced.changes),
        changes=balanced.changes,
    )
