"""
Schedule Assembler

Turns slot placements (group stage) and slotted bracket nodes (playoffs)
into ScheduledMatch records with wall-clock times, sequential match numbers
and phase tags. Phases come from provenance: placements are GROUP_STAGE,
bracket nodes carry their own phase. Nothing is inferred from ids.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence

from hallcup.services.bracket_model import (
    BestOfPlace,
    Bracket,
    GroupRank,
    MatchOutcome,
    Outcome,
    ParticipantRef,
    TeamRef,
)
from hallcup.services.domain import (
    PHASE_GROUP_STAGE,
    PHASE_LABELS,
    PHASE_ORDER,
    PHASE_QUARTERFINAL,
    PHASE_ROUND_OF_16,
    PHASE_SEMIFINAL,
    MatchTiming,
    Placement,
    RefereeId,
    ScheduledMatch,
    StandingRow,
    Team,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Timing
# ============================================================================


def total_match_minutes(game_minutes: int, periods: int = 1, period_break_minutes: int = 0) -> int:
    """Playing time plus the breaks between periods."""
    return game_minutes + max(periods - 1, 0) * period_break_minutes


class SlotClock:
    """Maps slot indices to start times; playoff slots follow a phase break."""

    def __init__(self, timing: MatchTiming, group_slot_count: int):
        self.timing = timing
        self.group_slot_count = group_slot_count
        self.group_minutes = total_match_minutes(timing.game_minutes, timing.periods, timing.period_break_minutes)
        self.playoff_minutes = total_match_minutes(
            timing.playoff_game_minutes or timing.game_minutes, timing.periods, timing.period_break_minutes
        )

    def start(self, slot: int) -> datetime:
        step = self.group_minutes + self.timing.break_between_slots_minutes
        if slot < self.group_slot_count:
            return self.timing.start_time + timedelta(minutes=slot * step)
        playoff_step = self.playoff_minutes + self.timing.break_between_slots_minutes
        offset = self.group_slot_count * step
        if self.group_slot_count > 0:
            offset += self.timing.phase_break_minutes
        offset += (slot - self.group_slot_count) * playoff_step
        return self.timing.start_time + timedelta(minutes=offset)

    def end(self, slot: int) -> datetime:
        minutes = self.group_minutes if slot < self.group_slot_count else self.playoff_minutes
        return self.start(slot) + timedelta(minutes=minutes)


# ============================================================================
# Playoff slotting
# ============================================================================


@dataclass(frozen=True)
class PlayoffSlot:
    node_id: str
    slot: int
    field: int

    def to_dict(self) -> Dict[str, Any]:
        return {"node_id": self.node_id, "slot": self.slot, "field": self.field}


def schedule_playoff_nodes(bracket: Bracket, first_slot: int, field_count: int) -> List[PlayoffSlot]:
    """
    Place bracket nodes into slots from `first_slot` on, in dependency waves.

    Each wave holds the nodes whose dependencies were placed in earlier
    waves. Parallel nodes fill fields left to right; sequential nodes
    (parallel not allowed, or a single field) then take a slot each on the
    first field, so a final is played after its wave's placement games.
    A node always lands in a later slot than everything it depends on.
    """
    ordered = bracket.topological_order()
    placed: Dict[str, PlayoffSlot] = {}
    current_slot = first_slot
    fields = max(field_count, 1)

    while len(placed) < len(ordered):
        ready = [
            n for n in ordered
            if n.id not in placed and all(d in placed for d in n.scheduling_dependencies())
        ]
        if not ready:
            break

        sequential = [n for n in ready if not n.parallel_allowed or fields == 1]
        parallel = [n for n in ready if n.parallel_allowed and fields > 1]

        field_index = 0
        for node in parallel:
            placed[node.id] = PlayoffSlot(node.id, current_slot, field_index)
            field_index += 1
            if field_index >= fields:
                field_index = 0
                current_slot += 1
        if field_index > 0:
            current_slot += 1

        for node in sequential:
            placed[node.id] = PlayoffSlot(node.id, current_slot, 0)
            current_slot += 1

    return sorted(placed.values(), key=lambda p: (p.slot, p.field))


# ============================================================================
# Labels
# ============================================================================

_ORDINAL_SUFFIXES = {1: "st", 2: "nd", 3: "rd"}

_ROUND_CODES = {
    "en": {PHASE_ROUND_OF_16: "R16", PHASE_QUARTERFINAL: "QF", PHASE_SEMIFINAL: "SF"},
    "de": {PHASE_ROUND_OF_16: "AF", PHASE_QUARTERFINAL: "VF", PHASE_SEMIFINAL: "HF"},
}

_OUTCOME_WORDS = {
    "en": {Outcome.WINNER: "Winner", Outcome.LOSER: "Loser"},
    "de": {Outcome.WINNER: "Sieger", Outcome.LOSER: "Verlierer"},
}


def _ordinal(n: int, locale: str) -> str:
    if locale == "de":
        return f"{n}."
    if 10 <= n % 100 <= 20:
        return f"{n}th"
    return f"{n}{_ORDINAL_SUFFIXES.get(n % 10, 'th')}"


def _node_code(node_id: str, bracket: Optional[Bracket], locale: str) -> str:
    if bracket is None or not bracket.has_node(node_id):
        return node_id
    node = bracket.node(node_id)
    code = _ROUND_CODES.get(locale, _ROUND_CODES["en"]).get(node.phase)
    if code is None:
        return node.label
    same_phase = [n.id for n in bracket if n.phase == node.phase]
    return f"{code} {same_phase.index(node_id) + 1}"


def participant_label(
    ref: ParticipantRef,
    team_names: Mapping[str, str],
    locale: str = "en",
    bracket: Optional[Bracket] = None,
) -> str:
    """Display text for a participant: team name, or a readable placeholder."""
    if locale not in ("en", "de"):
        locale = "en"
    if isinstance(ref, TeamRef):
        return team_names.get(ref.team_id, ref.team_id)
    if isinstance(ref, GroupRank):
        if locale == "de":
            return f"Gruppe {ref.group} - {ref.rank}. Platz"
        return f"Group {ref.group} - {_ordinal(ref.rank, locale)} Place"
    if isinstance(ref, BestOfPlace):
        if locale == "de":
            prefix = "Bester" if ref.rank == 1 else f"{ref.rank}.-bester"
            return f"{prefix} {ref.place}. Platz"
        prefix = "Best" if ref.rank == 1 else f"{_ordinal(ref.rank, locale)} Best"
        return f"{prefix} {_ordinal(ref.place, locale)} Place"
    if isinstance(ref, MatchOutcome):
        return f"{_OUTCOME_WORDS[locale][ref.outcome]} {_node_code(ref.node_id, bracket, locale)}"
    return str(ref)


# ============================================================================
# Assembly
# ============================================================================


class AssembledSchedule:
    def __init__(self):
        self.matches: List[ScheduledMatch] = []
        self.standings: List[StandingRow] = []
        self.group_slot_count = 0
        self.playoff_slot_count = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matches": [m.to_dict() for m in self.matches],
            "standings": [s.to_dict() for s in self.standings],
            "group_slot_count": self.group_slot_count,
            "playoff_slot_count": self.playoff_slot_count,
        }


def create_initial_standings(teams: Sequence[Team]) -> List[StandingRow]:
    return [StandingRow(team_id=t.id, group=t.group) for t in teams]


def assemble_schedule(
    placements: Sequence[Placement],
    playoff_slots: Sequence[PlayoffSlot],
    bracket: Optional[Bracket],
    teams: Sequence[Team],
    timing: MatchTiming,
    referees: Optional[Mapping[str, RefereeId]] = None,
    locale: str = "en",
) -> AssembledSchedule:
    referees = referees or {}
    team_names = {t.id: t.name for t in teams}
    schedule = AssembledSchedule()
    schedule.group_slot_count = max((p.slot for p in placements), default=-1) + 1
    clock = SlotClock(timing, schedule.group_slot_count)

    drafts: List[ScheduledMatch] = []
    for p in placements:
        drafts.append(
            ScheduledMatch(
                id=p.pairing.key,
                match_number=0,
                slot=p.slot,
                field=p.field,
                home=TeamRef(p.home.id),
                away=TeamRef(p.away.id),
                home_label=team_names.get(p.home.id, p.home.id),
                away_label=team_names.get(p.away.id, p.away.id),
                start_time=clock.start(p.slot),
                end_time=clock.end(p.slot),
                phase=PHASE_GROUP_STAGE,
                group=p.pairing.group,
                referee=referees.get(p.pairing.key),
            )
        )

    for ps in playoff_slots:
        node = bracket.node(ps.node_id)
        home, away = node.home.current_ref(), node.away.current_ref()
        drafts.append(
            ScheduledMatch(
                id=node.id,
                match_number=0,
                slot=ps.slot,
                field=ps.field,
                home=home,
                away=away,
                home_label=participant_label(home, team_names, locale, bracket),
                away_label=participant_label(away, team_names, locale, bracket),
                start_time=clock.start(ps.slot),
                end_time=clock.end(ps.slot),
                phase=node.phase,
                label=node.label,
                referee=referees.get(node.id),
                node_id=node.id,
            )
        )

    drafts.sort(key=lambda m: (m.slot, m.field, m.id))
    schedule.matches = [replace(m, match_number=i + 1) for i, m in enumerate(drafts)]
    if playoff_slots:
        schedule.playoff_slot_count = max(ps.slot for ps in playoff_slots) + 1 - schedule.group_slot_count
    schedule.standings = create_initial_standings(teams)

    logger.info(
        "Assembled %d matches (%d group slots, %d playoff slots)",
        len(schedule.matches),
        schedule.group_slot_count,
        schedule.playoff_slot_count,
    )
    return schedule


def apply_bracket(
    matches: Sequence[ScheduledMatch], bracket: Bracket, teams: Sequence[Team], locale: str = "en"
) -> List[ScheduledMatch]:
    """Re-render playoff participants from the (resolved) bracket."""
    team_names = {t.id: t.name for t in teams}
    updated: List[ScheduledMatch] = []
    for m in matches:
        if m.node_id is None or not bracket.has_node(m.node_id):
            updated.append(m)
            continue
        node = bracket.node(m.node_id)
        home, away = node.home.current_ref(), node.away.current_ref()
        updated.append(
            replace(
                m,
                home=home,
                away=away,
                home_label=participant_label(home, team_names, locale, bracket),
                away_label=participant_label(away, team_names, locale, bracket),
            )
        )
    return updated


# ============================================================================
# Phase view
# ============================================================================


@dataclass(frozen=True)
class SchedulePhase:
    phase: str
    label: str
    matches: List[ScheduledMatch]

    def to_dict(self) -> Dict[str, Any]:
        return {"phase": self.phase, "label": self.label, "matches": [m.to_dict() for m in self.matches]}


def group_by_phase(matches: Sequence[ScheduledMatch], locale: str = "en") -> List[SchedulePhase]:
    labels = PHASE_LABELS.get(locale, PHASE_LABELS["en"])
    by_phase: Dict[str, List[ScheduledMatch]] = {}
    for m in sorted(matches, key=lambda m: m.match_number):
        by_phase.setdefault(m.phase, []).append(m)
    return [
        SchedulePhase(phase=phase, label=labels.get(phase, phase), matches=by_phase[phase])
        for phase in sorted(by_phase, key=lambda p: PHASE_ORDER.get(p, 99))
    ]
