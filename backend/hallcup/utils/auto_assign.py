"""
Auto-Assign: fairness-scored pairing-to-cell assignment

Places round-robin pairings into a grid of slots x fields. Slots are grown
on demand; the field count is fixed.

Rules:
- Pairings are processed in round order, then pairing order (deterministic)
- Bye pairings are filtered by type and reported, never placed
- Hard: at most one pairing per cell, a team plays at most once per slot
- Hard: min rest between a team's matches (unless relaxation is enabled)
- Each outer iteration places exactly one pairing or stops with Unschedulable

Same inputs → same outputs. Nothing here raises from inside the search;
failures come back on AssignmentResult.error.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from hallcup.config import DEFAULT_MIN_REST_SLOTS, MAX_ASSIGN_ITERATIONS
from hallcup.services.domain import ByePairing, Pairing, Placement, RealPairing, TeamScheduleState
from hallcup.services.draw_rules import bye_pairings, real_pairings
from hallcup.services.errors import (
    CONSTRAINT_FIELD_CAPACITY,
    CONSTRAINT_ITERATION_LIMIT,
    CONSTRAINT_MIN_REST,
    InvalidConfiguration,
    SchedulingError,
    Unschedulable,
)
from hallcup.utils.rest_rules import RestViolation, check_rest_compatibility, plays_in_slot

logger = logging.getLogger(__name__)

# ============================================================================
# Score weights
# ============================================================================

SLOT_WEIGHT = 1.0
FIELD_VARIANCE_WEIGHT = 1.0
REST_VARIANCE_WEIGHT = 0.5
REST_SHORTFALL_PENALTY = 100.0


# ============================================================================
# Result
# ============================================================================


class AssignmentResult:
    """Structured result from an assignment run"""

    def __init__(self):
        self.placements: List[Placement] = []
        self.byes: List[ByePairing] = []
        self.team_states: Dict[str, TeamScheduleState] = {}
        self.rest_violations: List[RestViolation] = []
        self.total_pairings = 0
        self.iterations = 0
        self.error: Optional[SchedulingError] = None
        self.duration_ms: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def slot_count(self) -> int:
        if not self.placements:
            return 0
        return max(p.slot for p in self.placements) + 1

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "assigned_count": len(self.placements),
            "total_pairings": self.total_pairings,
            "slot_count": self.slot_count,
            "iterations": self.iterations,
            "byes": [b.to_dict() for b in self.byes],
            "rest_violations": [v.to_dict() for v in self.rest_violations],
            "duration_ms": self.duration_ms,
        }
        if self.error is not None:
            result["error"] = self.error.to_dict()
        return result


# ============================================================================
# Scoring
# ============================================================================


def _variance(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    mean = sum(values) / len(values)
    return sum((v - mean) ** 2 for v in values) / len(values)


def _field_variance(state: TeamScheduleState, field_index: int, field_count: int) -> float:
    counts = [state.field_counts.get(f, 0) for f in range(field_count)]
    counts[field_index] += 1
    return _variance(counts)


def _rest_variance(state: TeamScheduleState, slot: int) -> float:
    slots = sorted(state.slots + (slot,))
    gaps = [b - a - 1 for a, b in zip(slots, slots[1:])]
    return _variance(gaps)


def placement_score(
    pairing: RealPairing,
    slot: int,
    field_index: int,
    states: Dict[str, TeamScheduleState],
    field_count: int,
) -> float:
    """
    Lower is better.

    slot index (keeps the schedule compact) + per-team field-count variance
    + per-team rest-gap variance.
    """
    score = SLOT_WEIGHT * slot
    for team_id in pairing.team_ids:
        state = states[team_id]
        score += FIELD_VARIANCE_WEIGHT * _field_variance(state, field_index, field_count)
        score += REST_VARIANCE_WEIGHT * _rest_variance(state, slot)
    return score


# ============================================================================
# Validation
# ============================================================================


def validate_inputs(field_count: int, min_rest_slots: int, max_iterations: int) -> Optional[InvalidConfiguration]:
    """Return an InvalidConfiguration for unusable grid parameters, else None."""
    if field_count < 1:
        return InvalidConfiguration(f"Field count must be at least 1, got {field_count}", field="field_count")
    if min_rest_slots < 0:
        return InvalidConfiguration(f"Minimum rest cannot be negative, got {min_rest_slots}", field="min_rest_slots")
    if max_iterations < 1:
        return InvalidConfiguration(f"Iteration bound must be positive, got {max_iterations}", field="max_iterations")
    return None


def _initial_states(rounds: Sequence[Sequence[Pairing]]) -> Dict[str, TeamScheduleState]:
    states: Dict[str, TeamScheduleState] = {}
    for rnd in rounds:
        for pairing in rnd:
            if isinstance(pairing, RealPairing):
                teams = (pairing.team_a, pairing.team_b)
            else:
                teams = (pairing.team,)
            for team in teams:
                if team.id not in states:
                    states[team.id] = TeamScheduleState(team_id=team.id)
    return states


# ============================================================================
# Assignment
# ============================================================================


def assign_pairings(
    rounds: Sequence[Sequence[Pairing]],
    field_count: int,
    min_rest_slots: int = DEFAULT_MIN_REST_SLOTS,
    *,
    search_window: Optional[int] = None,
    max_iterations: int = MAX_ASSIGN_ITERATIONS,
    allow_rest_relaxation: bool = False,
) -> AssignmentResult:
    """
    Assign every real pairing in `rounds` to a (slot, field) cell.

    Args:
        rounds: Round-robin rounds (byes included; they are filtered here)
        field_count: Number of fields per slot
        min_rest_slots: Empty slots a team needs between two matches
        search_window: Slots searched beyond the current frontier
            (default: number of rounds)
        max_iterations: Bound on outer iterations
        allow_rest_relaxation: Use the least-violating cell instead of failing
            when no rest-compliant cell exists in the window

    Returns:
        AssignmentResult; on failure `error` is set and `placements` holds
        the partial assignment.
    """
    started = datetime.utcnow()
    result = AssignmentResult()

    pending = real_pairings(rounds)
    result.byes = bye_pairings(rounds)
    result.total_pairings = len(pending)

    states = _initial_states(rounds)
    result.team_states = states

    error = validate_inputs(field_count, min_rest_slots, max_iterations)
    if error is not None:
        result.error = error
        return result

    window = search_window if search_window is not None else len(rounds)
    window = max(window, 1)

    occupied_fields: Dict[int, Set[int]] = {}
    frontier = 0

    for pairing in pending:
        result.iterations += 1
        if result.iterations > max_iterations:
            result.error = Unschedulable(
                pairing,
                CONSTRAINT_ITERATION_LIMIT,
                f"Iteration bound {max_iterations} reached before placing {pairing.key}",
                placed_count=len(result.placements),
            )
            break

        best: Optional[Tuple[float, int, int]] = None
        best_relaxed: Optional[Tuple[int, float, int, int, List[RestViolation]]] = None
        any_free_cell = False

        for slot in range(frontier + window):
            used = occupied_fields.get(slot, set())
            if len(used) >= field_count:
                continue
            if any(plays_in_slot(states[t], slot) for t in pairing.team_ids):
                continue
            any_free_cell = True

            compatible, violations = check_rest_compatibility(pairing, slot, states, min_rest_slots)
            if not compatible and not allow_rest_relaxation:
                continue

            for field_index in range(field_count):
                if field_index in used:
                    continue
                score = placement_score(pairing, slot, field_index, states, field_count)
                if compatible:
                    candidate = (score, slot, field_index)
                    if best is None or candidate < best:
                        best = candidate
                else:
                    missing = sum(v.missing_rest_slots for v in violations)
                    relaxed = (missing, score + REST_SHORTFALL_PENALTY * missing, slot, field_index)
                    if best_relaxed is None or relaxed < best_relaxed[:4]:
                        best_relaxed = relaxed + (violations,)

        if best is not None:
            _, slot, field_index = best
        elif best_relaxed is not None:
            _, _, slot, field_index, violations = best_relaxed
            result.rest_violations.extend(violations)
            logger.warning(
                "Rest relaxed for %s in slot %d (%s)",
                pairing.key,
                slot,
                ", ".join(f"{v.team_id} short {v.missing_rest_slots}" for v in violations),
            )
        else:
            constraint = CONSTRAINT_MIN_REST if any_free_cell else CONSTRAINT_FIELD_CAPACITY
            result.error = Unschedulable(
                pairing,
                constraint,
                f"No cell within slots 0..{frontier + window - 1} satisfies {constraint} for {pairing.key}",
                placed_count=len(result.placements),
            )
            break

        placement = Placement.for_pairing(pairing, slot, field_index)
        result.placements.append(placement)
        occupied_fields.setdefault(slot, set()).add(field_index)
        frontier = max(frontier, slot + 1)

        # States are rebuilt, never mutated in place
        states = {
            **states,
            pairing.team_a.id: states[pairing.team_a.id].with_match(slot, field_index, True),
            pairing.team_b.id: states[pairing.team_b.id].with_match(slot, field_index, False),
        }
        logger.debug("Placed %s at slot=%d field=%d", pairing.key, slot, field_index)

    result.team_states = states
    result.duration_ms = int((datetime.utcnow() - started).total_seconds() * 1000)

    if result.error is not None:
        logger.warning("Assignment stopped: %s", result.error.message)
    else:
        logger.info(
            "Assigned %d pairings into %d slots x %d fields (%d byes, %d rest relaxations)",
            len(result.placements),
            result.slot_count,
            field_count,
            len(result.byes),
            len(result.rest_violations),
        )
    return result
