"""
Bracket Resolver

Binds placeholder slots to concrete teams as their dependencies become
known, then cascades to dependent nodes until nothing else can resolve.

Inputs are supplied by the caller for every call:
- rankings: ranking_key -> RankingInput(ordered team ids, complete flag).
  Group ranks use the group label as key; cross-group ranks use
  "best-of-place-{place}". Tie-breaking happened upstream.
- results: node_id -> MatchResult(winner_id, loser_id)

Guarantees:
- Monotonic: a resolved slot is never rebound. Disagreeing inputs produce a
  RESOLUTION_DRIFT warning, not a change.
- Idempotent: a second call with the same inputs resolves nothing new and
  returns an equal bracket.
- A ranking that repeats a team binds nothing and is reported
  (RANKING_DUPLICATE_TEAM).
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from hallcup.services.bracket_model import (
    SIDES,
    BestOfPlace,
    Bracket,
    GroupRank,
    MatchOutcome,
    Outcome,
    ParticipantRef,
    TeamRef,
)

logger = logging.getLogger(__name__)

WARNING_RESOLUTION_DRIFT = "RESOLUTION_DRIFT"
WARNING_RESULT_TEAM_MISMATCH = "RESULT_TEAM_MISMATCH"
WARNING_RANK_OUT_OF_RANGE = "RANK_OUT_OF_RANGE"
WARNING_RANKING_DUPLICATE_TEAM = "RANKING_DUPLICATE_TEAM"


# ============================================================================
# Inputs
# ============================================================================


@dataclass(frozen=True)
class RankingInput:
    ranking: Tuple[str, ...]
    complete: bool = True


@dataclass(frozen=True)
class MatchResult:
    winner_id: str
    loser_id: str

    def team_for(self, outcome: Outcome) -> str:
        return self.winner_id if outcome == Outcome.WINNER else self.loser_id


@dataclass(frozen=True)
class ResolutionInputs:
    rankings: Dict[str, RankingInput] = field(default_factory=dict)
    results: Dict[str, MatchResult] = field(default_factory=dict)


# ============================================================================
# Output
# ============================================================================


@dataclass(frozen=True)
class ResolvedSlot:
    node_id: str
    side: str
    source: ParticipantRef
    team_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"node_id": self.node_id, "side": self.side, "source": self.source.to_dict(), "team_id": self.team_id}


@dataclass(frozen=True)
class ResolutionWarning:
    code: str
    node_id: str
    message: str
    side: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "node_id": self.node_id, "side": self.side, "message": self.message}


class ResolutionDelta:
    """Newly resolved slots (in resolution order) plus advisory warnings"""

    def __init__(self):
        self.resolved: List[ResolvedSlot] = []
        self.warnings: List[ResolutionWarning] = []

    @property
    def is_empty(self) -> bool:
        return not self.resolved

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resolved": [r.to_dict() for r in self.resolved],
            "warnings": [w.to_dict() for w in self.warnings],
        }


@dataclass(frozen=True)
class ResolutionOutcome:
    bracket: Bracket
    delta: ResolutionDelta


# ============================================================================
# Lookup
# ============================================================================


def _lookup(
    ref: ParticipantRef, bracket: Bracket, inputs: ResolutionInputs
) -> Tuple[Optional[str], Optional[Tuple[str, str]]]:
    """
    Return (team_id or None, optional (warning_code, message)).
    """
    if isinstance(ref, TeamRef):
        return ref.team_id, None

    if isinstance(ref, (GroupRank, BestOfPlace)):
        ranking = inputs.rankings.get(ref.ranking_key)
        if ranking is None or not ranking.complete:
            return None, None
        if len(set(ranking.ranking)) != len(ranking.ranking):
            repeated = sorted({t for t in ranking.ranking if ranking.ranking.count(t) > 1})
            return None, (
                WARNING_RANKING_DUPLICATE_TEAM,
                f"Ranking {ref.ranking_key} lists {', '.join(repeated)} more than once",
            )
        if ref.rank < 1 or ref.rank > len(ranking.ranking):
            return None, (
                WARNING_RANK_OUT_OF_RANGE,
                f"Ranking {ref.ranking_key} has {len(ranking.ranking)} entries, rank {ref.rank} requested",
            )
        return ranking.ranking[ref.rank - 1], None

    if isinstance(ref, MatchOutcome):
        result = inputs.results.get(ref.node_id)
        if result is None or not bracket.has_node(ref.node_id):
            return None, None
        source = bracket.node(ref.node_id)
        if not source.is_resolved:
            return None, None
        if {result.winner_id, result.loser_id} != {source.home.team_id, source.away.team_id}:
            return None, (
                WARNING_RESULT_TEAM_MISMATCH,
                f"Result for {ref.node_id} names {result.winner_id}/{result.loser_id}, "
                f"node is {source.home.team_id} vs {source.away.team_id}",
            )
        return result.team_for(ref.outcome), None

    return None, None


# ============================================================================
# Fixed-point pass
# ============================================================================


def resolve_ready(bracket: Bracket, inputs: ResolutionInputs) -> ResolutionOutcome:
    """
    Resolve every slot whose dependency is satisfied, cascading through
    dependents until a fixed point. Never mutates `bracket`.
    """
    current = bracket
    delta = ResolutionDelta()
    warned = set()

    def warn(code: str, node_id: str, side: str, message: str) -> None:
        if (code, node_id, side) in warned:
            return
        warned.add((code, node_id, side))
        delta.warnings.append(ResolutionWarning(code=code, node_id=node_id, side=side, message=message))
        logger.warning("%s on %s/%s: %s", code, node_id, side, message)

    worklist = deque(current.node_ids)
    queued = set(worklist)

    while worklist:
        node_id = worklist.popleft()
        queued.discard(node_id)
        node = current.node(node_id)
        changed = False

        for side in SIDES:
            slot = node.slot(side)
            team_id, problem = _lookup(slot.source, current, inputs)
            if problem is not None:
                warn(problem[0], node_id, side, problem[1])

            if slot.resolved:
                if team_id is not None and team_id != slot.team_id:
                    warn(
                        WARNING_RESOLUTION_DRIFT,
                        node_id,
                        side,
                        f"Slot stays {slot.team_id}; current inputs point to {team_id}",
                    )
                continue

            if team_id is None:
                continue

            node = node.with_slot(side, slot.resolve(team_id))
            delta.resolved.append(ResolvedSlot(node_id=node_id, side=side, source=slot.source, team_id=team_id))
            changed = True

        if changed:
            current = current.with_node(node)
            for dependent in current.dependents(node_id):
                if dependent not in queued:
                    worklist.append(dependent)
                    queued.add(dependent)

    if delta.resolved:
        logger.info("Resolved %d bracket slots", len(delta.resolved))
    return ResolutionOutcome(bracket=current, delta=delta)
