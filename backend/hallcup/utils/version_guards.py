"""
Version Safety Guards

Reusable guards for persisted tournament state:
- Tournament / bracket existence (HTTP 404)
- Optimistic concurrency on bracket writes: a resolution computed against
  version N may only be saved while the stored version is still N
"""

import logging
from datetime import datetime

from fastapi import HTTPException
from sqlmodel import Session, select

from hallcup.models.bracket_state import BracketState
from hallcup.models.tournament import Tournament
from hallcup.services.bracket_model import Bracket
from hallcup.services.errors import StaleResolution

logger = logging.getLogger(__name__)


def require_tournament(session: Session, tournament_id: int) -> Tournament:
    """
    Raises:
        HTTPException 404: Tournament not found
    """
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail=f"Tournament {tournament_id} not found")
    return tournament


def require_bracket_state(session: Session, tournament_id: int) -> BracketState:
    """
    Raises:
        HTTPException 404: Tournament has no bracket
    """
    state = session.exec(select(BracketState).where(BracketState.tournament_id == tournament_id)).first()
    if not state:
        raise HTTPException(status_code=404, detail=f"Tournament {tournament_id} has no bracket")
    return state


def save_bracket_state(session: Session, state: BracketState, expected_version: int, bracket: Bracket) -> BracketState:
    """
    Write `bracket` if the stored version still equals `expected_version`.

    Bumps the version on success. Does not commit.

    Raises:
        StaleResolution: stored version moved on since the snapshot was read
    """
    session.refresh(state)
    if state.version != expected_version:
        logger.warning(
            "Stale bracket write for tournament %s: expected v%d, stored v%d",
            state.tournament_id,
            expected_version,
            state.version,
        )
        raise StaleResolution(expected_version=expected_version, actual_version=state.version)

    state.nodes_json = bracket.to_dict()
    state.version = expected_version + 1
    state.updated_at = datetime.utcnow()
    session.add(state)
    return state
