"""
Referee Assignment

Modes:
- none: no referees
- organizer: referees 1..R provided by the organizer
- teams: a team not playing in that slot referees the match

Invariants:
- A referee is never booked twice in the same slot
- In teams mode the referee never plays in the match (or anywhere in that slot)
- Workload is balanced with a running count, ties broken by lowest id

Manual assignments (keyed by match id) are applied before the automatic pass.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from hallcup.config import MAX_BALANCE_ITERATIONS
from hallcup.services.domain import (
    REFEREE_MODE_NONE,
    REFEREE_MODE_ORGANIZER,
    REFEREE_MODE_TEAMS,
    Placement,
    RefereeConfig,
    RefereeId,
    ScheduledMatch,
    Team,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefereeItem:
    """One match to cover: group placement or slotted playoff node."""

    key: str
    slot: int
    field: int
    team_ids: Tuple[str, ...] = ()
    resolved: bool = True


def items_from_placements(placements: Sequence[Placement]) -> List[RefereeItem]:
    return [
        RefereeItem(key=p.pairing.key, slot=p.slot, field=p.field, team_ids=(p.home.id, p.away.id))
        for p in placements
    ]


def items_from_matches(matches: Sequence[ScheduledMatch]) -> List[RefereeItem]:
    return [
        RefereeItem(
            key=m.id,
            slot=m.slot,
            field=m.field,
            team_ids=tuple(m.team_ids),
            resolved=len(m.team_ids) == 2,
        )
        for m in matches
    ]


class RefereeAssignmentResult:
    def __init__(self):
        self.assignments: Dict[str, RefereeId] = {}
        self.unassigned: List[str] = []
        self.skipped: List[str] = []  # playoff matches with unknown participants (teams mode)
        self.workloads: Dict[RefereeId, int] = {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assignments": dict(self.assignments),
            "unassigned": list(self.unassigned),
            "skipped": list(self.skipped),
            "workloads": {str(k): v for k, v in self.workloads.items()},
        }


class RefereeBalanceResult:
    def __init__(self, matches: List[ScheduledMatch]):
        self.matches = matches
        self.changes: List[Dict[str, Any]] = []

    def to_dict(self) -> Dict[str, Any]:
        return {"changes": list(self.changes), "change_count": len(self.changes)}


# ============================================================================
# Helpers
# ============================================================================


def _roster(config: RefereeConfig, teams: Sequence[Team]) -> List[RefereeId]:
    if config.mode == REFEREE_MODE_ORGANIZER:
        return list(range(1, config.number_of_referees + 1))
    if config.mode == REFEREE_MODE_TEAMS:
        return [t.id for t in teams]
    return []


def normalize_referee_id(mode: str, referee: RefereeId) -> RefereeId:
    """Organizer referees are numbered; "2" from JSON means referee 2."""
    if mode == REFEREE_MODE_ORGANIZER and isinstance(referee, str) and referee.strip().isdigit():
        return int(referee)
    return referee


def invalid_manual_referees(config: RefereeConfig, teams: Sequence[Team]) -> Dict[str, RefereeId]:
    """Manual assignments whose referee is not on the roster for the mode"""
    roster = set(_roster(config, teams))
    return {
        key: referee
        for key, referee in config.manual_assignments.items()
        if normalize_referee_id(config.mode, referee) not in roster
    }


def _playing_by_slot(items: Sequence[RefereeItem]) -> Dict[int, Set[str]]:
    playing: Dict[int, Set[str]] = {}
    for item in items:
        playing.setdefault(item.slot, set()).update(item.team_ids)
    return playing


def _can_referee(
    referee: RefereeId,
    slot: int,
    team_ids: Sequence[str],
    booked: Dict[int, Set[RefereeId]],
    playing: Dict[int, Set[str]],
    mode: str,
) -> bool:
    if referee in booked.get(slot, set()):
        return False
    if mode == REFEREE_MODE_TEAMS and (referee in team_ids or referee in playing.get(slot, set())):
        return False
    return True


# ============================================================================
# Assignment
# ============================================================================


def assign_referees(
    items: Sequence[RefereeItem], teams: Sequence[Team], config: RefereeConfig
) -> RefereeAssignmentResult:
    result = RefereeAssignmentResult()
    if config.mode == REFEREE_MODE_NONE:
        return result

    roster = _roster(config, teams)
    workload: Dict[RefereeId, int] = {r: 0 for r in roster}
    order = {r: i for i, r in enumerate(roster)}
    booked: Dict[int, Set[RefereeId]] = {}
    last_slot: Dict[RefereeId, int] = {}
    run_length: Dict[RefereeId, int] = {}
    playing = _playing_by_slot(items)

    ordered = sorted(items, key=lambda i: (i.slot, i.field, i.key))

    def book(item: RefereeItem, referee: RefereeId) -> None:
        result.assignments[item.key] = referee
        booked.setdefault(item.slot, set()).add(referee)
        workload[referee] = workload.get(referee, 0) + 1
        if last_slot.get(referee) == item.slot - 1:
            run_length[referee] = run_length.get(referee, 0) + 1
        elif last_slot.get(referee) != item.slot:
            run_length[referee] = 1
        last_slot[referee] = item.slot

    # Manual assignments first
    pending: List[RefereeItem] = []
    for item in ordered:
        manual = config.manual_assignments.get(item.key)
        if manual is None:
            pending.append(item)
            continue
        manual = normalize_referee_id(config.mode, manual)
        if manual not in order:
            logger.warning("Ignoring manual referee %r for %s: not on the %s roster", manual, item.key, config.mode)
            pending.append(item)
            continue
        if _can_referee(manual, item.slot, item.team_ids, booked, playing, config.mode):
            book(item, manual)
        else:
            logger.warning("Ignoring manual referee %s for %s: conflict in slot %d", manual, item.key, item.slot)
            pending.append(item)

    for item in pending:
        if config.mode == REFEREE_MODE_TEAMS and not item.resolved:
            result.skipped.append(item.key)
            continue

        free = [r for r in roster if _can_referee(r, item.slot, item.team_ids, booked, playing, config.mode)]
        if not free:
            result.unassigned.append(item.key)
            continue

        if config.mode == REFEREE_MODE_ORGANIZER:

            def organizer_key(r: RefereeId) -> Tuple[bool, int, int]:
                next_run = run_length.get(r, 0) + 1 if last_slot.get(r) == item.slot - 1 else 1
                return (next_run > config.max_consecutive_slots, workload[r], order[r])

            chosen = min(free, key=organizer_key)
        else:
            chosen = min(free, key=lambda r: (workload[r], order[r]))
        book(item, chosen)

    result.workloads = workload
    if result.unassigned:
        logger.warning("%d matches left without a referee", len(result.unassigned))
    logger.info("Assigned referees to %d matches (mode=%s)", len(result.assignments), config.mode)
    return result


# ============================================================================
# Workload balancing
# ============================================================================


def referee_workloads(matches: Sequence[ScheduledMatch], roster: Sequence[RefereeId]) -> Dict[RefereeId, int]:
    loads: Dict[RefereeId, int] = {r: 0 for r in roster}
    for m in matches:
        if m.referee is not None:
            loads[m.referee] = loads.get(m.referee, 0) + 1
    return loads


def balance_referee_workloads(
    matches: Sequence[ScheduledMatch],
    config: RefereeConfig,
    teams: Sequence[Team] = (),
    max_iterations: int = MAX_BALANCE_ITERATIONS,
) -> RefereeBalanceResult:
    """
    Move matches from the most- to the least-loaded referee while
    max - min > 1. A transfer is made only if the receiver is free in that
    slot (and, in teams mode, not playing in it). Returns new matches and the
    list of changes.
    """
    current = list(matches)
    result = RefereeBalanceResult(current)
    roster = _roster(config, teams)
    if config.mode == REFEREE_MODE_NONE or not roster:
        return result

    order = {r: i for i, r in enumerate(roster)}

    for _ in range(max_iterations):
        loads = referee_workloads(current, roster)
        if max(loads.values()) - min(loads.values()) <= 1:
            break

        booked: Dict[int, Set[RefereeId]] = {}
        for m in current:
            if m.referee is not None:
                booked.setdefault(m.slot, set()).add(m.referee)
        playing: Dict[int, Set[str]] = {}
        for m in current:
            playing.setdefault(m.slot, set()).update(m.team_ids)

        givers = sorted(loads, key=lambda r: (-loads[r], order.get(r, len(order))))
        takers = sorted(loads, key=lambda r: (loads[r], order.get(r, len(order))))

        transfer: Optional[Tuple[int, RefereeId]] = None
        for giver in givers:
            for taker in takers:
                if loads[giver] - loads[taker] <= 1:
                    break
                for index, m in enumerate(current):
                    if m.referee != giver:
                        continue
                    if _can_referee(taker, m.slot, m.team_ids, booked, playing, config.mode):
                        transfer = (index, taker)
                        break
                if transfer:
                    break
            if transfer:
                break

        if transfer is None:
            break

        index, taker = transfer
        old = current[index]
        current[index] = replace(old, referee=taker)
        result.changes.append({"match_id": old.id, "field": "referee", "old_value": old.referee, "new_value": taker})
        logger.debug("Referee for %s moved %s -> %s", old.id, old.referee, taker)

    result.matches = current
    logger.info("Referee balancing made %d changes", len(result.changes))
    return result


def referee_display_name(referee: Optional[RefereeId], config: RefereeConfig, teams: Sequence[Team] = ()) -> str:
    if referee is None:
        return "-"
    if isinstance(referee, int) and referee in config.referee_names:
        return config.referee_names[referee]
    if config.mode == REFEREE_MODE_TEAMS:
        for team in teams:
            if team.id == referee:
                return team.name
    if config.mode == REFEREE_MODE_ORGANIZER:
        return f"SR{referee}"
    return str(referee)
