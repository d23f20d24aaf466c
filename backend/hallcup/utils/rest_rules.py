"""
Rest Rules - Team rest enforcement for slot assignment

A team needs at least `min_rest_slots` empty slots between any two of its
matches: a match in slot s is compatible with an existing match in slot t
iff |s - t| >= min_rest_slots + 1. The check runs against every slot the
team plays, not just the last one, so holes left earlier can still be filled.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Tuple

from hallcup.services.domain import RealPairing, TeamScheduleState

# ============================================================================
# Rest Check
# ============================================================================


def plays_in_slot(state: TeamScheduleState, slot: int) -> bool:
    return slot in state.slots


def rest_shortfall(state: TeamScheduleState, slot: int, min_rest_slots: int) -> int:
    """
    Return how many rest slots are missing if the team plays in `slot`.

    0 means compliant. A team with no prior match is always compliant.
    """
    shortfall = 0
    for played in state.slots:
        gap = abs(slot - played) - 1
        if gap < min_rest_slots:
            shortfall = max(shortfall, min_rest_slots - gap)
    return shortfall


# ============================================================================
# Violations
# ============================================================================


@dataclass(frozen=True)
class RestViolation:
    """Rest rule relaxed for one team of a placed pairing"""

    team_id: str
    pairing_key: str
    slot: int
    required_rest_slots: int
    missing_rest_slots: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "team_id": self.team_id,
            "pairing_key": self.pairing_key,
            "slot": self.slot,
            "required_rest_slots": self.required_rest_slots,
            "missing_rest_slots": self.missing_rest_slots,
        }


def check_rest_compatibility(
    pairing: RealPairing,
    slot: int,
    states: Mapping[str, TeamScheduleState],
    min_rest_slots: int,
) -> Tuple[bool, List[RestViolation]]:
    """
    Check if `slot` satisfies the rest rule for both teams of `pairing`.

    Returns:
        (is_compatible, violations)
    """
    violations: List[RestViolation] = []
    for team_id in pairing.team_ids:
        state = states.get(team_id)
        if state is None:
            continue
        missing = rest_shortfall(state, slot, min_rest_slots)
        if missing > 0:
            violations.append(
                RestViolation(
                    team_id=team_id,
                    pairing_key=pairing.key,
                    slot=slot,
                    required_rest_slots=min_rest_slots,
                    missing_rest_slots=missing,
                )
            )
    return (len(violations) == 0, violations)
