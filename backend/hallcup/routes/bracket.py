import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session

from hallcup.database import get_session
from hallcup.routes.tournaments import load_config, load_matches
from hallcup.services.bracket_model import Bracket
from hallcup.services.bracket_resolver import MatchResult, RankingInput, ResolutionInputs, resolve_ready
from hallcup.services.errors import StaleResolution
from hallcup.services.schedule_assembler import apply_bracket
from hallcup.utils.version_guards import require_bracket_state, require_tournament, save_bracket_state

logger = logging.getLogger(__name__)

router = APIRouter()


class RankingIn(BaseModel):
    ranking: List[str]
    complete: bool = True


class ResultIn(BaseModel):
    winner_id: str
    loser_id: str


class ResolveRequest(BaseModel):
    expected_version: int
    rankings: Dict[str, RankingIn] = Field(default_factory=dict)
    results: Dict[str, ResultIn] = Field(default_factory=dict)

    def to_inputs(self) -> ResolutionInputs:
        return ResolutionInputs(
            rankings={k: RankingInput(ranking=tuple(v.ranking), complete=v.complete) for k, v in self.rankings.items()},
            results={k: MatchResult(winner_id=v.winner_id, loser_id=v.loser_id) for k, v in self.results.items()},
        )


class ResolveResponse(BaseModel):
    tournament_id: int
    version: int
    changed: bool
    delta: Dict[str, Any]
    bracket: Dict[str, Any]


def _stale(exc: StaleResolution) -> HTTPException:
    return HTTPException(status_code=409, detail=exc.to_dict())


@router.get("/tournaments/{tournament_id}/bracket")
def get_bracket(tournament_id: int, session: Session = Depends(get_session)):
    """Current bracket snapshot with its version"""
    require_tournament(session, tournament_id)
    state = require_bracket_state(session, tournament_id)
    bracket = Bracket.from_dict(state.nodes_json)
    return {
        "tournament_id": tournament_id,
        "version": state.version,
        "unresolved_slots": len(bracket.unresolved_slots()),
        **bracket.to_dict(),
    }


@router.post("/tournaments/{tournament_id}/bracket/resolve", response_model=ResolveResponse)
def resolve_bracket(tournament_id: int, request: ResolveRequest, session: Session = Depends(get_session)):
    """
    Resolve every placeholder whose inputs are available.

    The request names the bracket version it was computed for; if the stored
    version has moved on the call fails with 409 STALE_RESOLUTION and nothing
    is written. Re-sending the same inputs resolves nothing and keeps the
    version.
    """
    tournament = require_tournament(session, tournament_id)
    state = require_bracket_state(session, tournament_id)

    if state.version != request.expected_version:
        raise _stale(StaleResolution(expected_version=request.expected_version, actual_version=state.version))

    outcome = resolve_ready(Bracket.from_dict(state.nodes_json), request.to_inputs())

    if outcome.delta.is_empty:
        return ResolveResponse(
            tournament_id=tournament_id,
            version=state.version,
            changed=False,
            delta=outcome.delta.to_dict(),
            bracket=outcome.bracket.to_dict(),
        )

    try:
        save_bracket_state(session, state, request.expected_version, outcome.bracket)
    except StaleResolution as exc:
        session.rollback()
        raise _stale(exc)

    # Playoff rows in the stored schedule follow the bracket
    config = load_config(tournament).to_config()
    matches = apply_bracket(load_matches(tournament), outcome.bracket, config.teams, tournament.locale)
    schedule = dict(tournament.schedule_json or {})
    schedule["matches"] = [m.to_dict() for m in matches]
    tournament.schedule_json = schedule
    session.add(tournament)
    session.commit()
    session.refresh(state)

    logger.info(
        "Tournament %s bracket v%d: resolved %d slots", tournament_id, state.version, len(outcome.delta.resolved)
    )
    return ResolveResponse(
        tournament_id=tournament_id,
        version=state.version,
        changed=True,
        delta=outcome.delta.to_dict(),
        bracket=outcome.bracket.to_dict(),
    )
