"""
Core domain values for group-stage scheduling.

Everything here is an immutable dataclass. Scheduling steps return new
values instead of mutating inputs, so a run can be repeated from the same
inputs and produce the same output.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from hallcup.services.bracket_model import ParticipantRef, TeamRef, participant_ref_from_dict

# ============================================================================
# Phases
# ============================================================================

PHASE_GROUP_STAGE = "GROUP_STAGE"
PHASE_ROUND_OF_16 = "ROUND_OF_16"
PHASE_QUARTERFINAL = "QUARTERFINAL"
PHASE_SEMIFINAL = "SEMIFINAL"
PHASE_FINAL = "FINAL"

PHASE_ORDER = {
    PHASE_GROUP_STAGE: 1,
    PHASE_ROUND_OF_16: 2,
    PHASE_QUARTERFINAL: 3,
    PHASE_SEMIFINAL: 4,
    PHASE_FINAL: 5,
}

PHASE_LABELS = {
    "en": {
        PHASE_GROUP_STAGE: "Group Stage",
        PHASE_ROUND_OF_16: "Round of 16",
        PHASE_QUARTERFINAL: "Quarterfinals",
        PHASE_SEMIFINAL: "Semifinals",
        PHASE_FINAL: "Finals",
    },
    "de": {
        PHASE_GROUP_STAGE: "Gruppenphase",
        PHASE_ROUND_OF_16: "Achtelfinale",
        PHASE_QUARTERFINAL: "Viertelfinale",
        PHASE_SEMIFINAL: "Halbfinale",
        PHASE_FINAL: "Finalspiele",
    },
}

REFEREE_MODE_NONE = "none"
REFEREE_MODE_ORGANIZER = "organizer"
REFEREE_MODE_TEAMS = "teams"
REFEREE_MODES = (REFEREE_MODE_NONE, REFEREE_MODE_ORGANIZER, REFEREE_MODE_TEAMS)

RefereeId = Union[int, str]


# ============================================================================
# Teams and pairings
# ============================================================================


@dataclass(frozen=True)
class Team:
    id: str
    name: str
    group: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "group": self.group}


@dataclass(frozen=True)
class RealPairing:
    """Two real teams meeting once in a round-robin round."""

    team_a: Team
    team_b: Team
    group: Optional[str]
    round_index: int
    sequence_in_round: int

    @property
    def key(self) -> str:
        return f"{self.group or 'ALL'}-R{self.round_index + 1}-M{self.sequence_in_round + 1}"

    @property
    def team_ids(self) -> Tuple[str, str]:
        return (self.team_a.id, self.team_b.id)

    def involves(self, team_id: str) -> bool:
        return team_id in self.team_ids

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "real",
            "key": self.key,
            "team_a": self.team_a.id,
            "team_b": self.team_b.id,
            "group": self.group,
            "round_index": self.round_index,
        }


@dataclass(frozen=True)
class ByePairing:
    """A team sitting out a round (odd team count)."""

    team: Team
    group: Optional[str]
    round_index: int

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "bye", "team": self.team.id, "group": self.group, "round_index": self.round_index}


Pairing = Union[RealPairing, ByePairing]


@dataclass(frozen=True)
class Placement:
    """A real pairing bound to one (slot, field) cell. Fields are 0-based."""

    pairing: RealPairing
    slot: int
    field: int
    home: Team
    away: Team

    @classmethod
    def for_pairing(cls, pairing: RealPairing, slot: int, field_index: int) -> "Placement":
        return cls(pairing=pairing, slot=slot, field=field_index, home=pairing.team_a, away=pairing.team_b)

    def swapped(self) -> "Placement":
        return replace(self, home=self.away, away=self.home)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.pairing.key,
            "slot": self.slot,
            "field": self.field,
            "home": self.home.id,
            "away": self.away.id,
            "group": self.pairing.group,
        }


# ============================================================================
# Per-team accumulator
# ============================================================================


@dataclass(frozen=True)
class TeamScheduleState:
    team_id: str
    slots: Tuple[int, ...] = ()
    field_counts: Dict[int, int] = field(default_factory=dict)
    last_slot: Optional[int] = None
    home_count: int = 0
    away_count: int = 0

    def with_match(self, slot: int, field_index: int, is_home: bool) -> "TeamScheduleState":
        counts = dict(self.field_counts)
        counts[field_index] = counts.get(field_index, 0) + 1
        return replace(
            self,
            slots=tuple(sorted(self.slots + (slot,))),
            field_counts=counts,
            last_slot=slot if self.last_slot is None else max(self.last_slot, slot),
            home_count=self.home_count + (1 if is_home else 0),
            away_count=self.away_count + (0 if is_home else 1),
        )

    @property
    def match_count(self) -> int:
        return len(self.slots)

    @property
    def imbalance(self) -> int:
        return self.home_count - self.away_count

    def rest_gaps(self) -> List[int]:
        """Empty slots between consecutive matches."""
        return [b - a - 1 for a, b in zip(self.slots, self.slots[1:])]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "team_id": self.team_id,
            "slots": list(self.slots),
            "field_counts": {str(k): v for k, v in sorted(self.field_counts.items())},
            "last_slot": self.last_slot,
            "home_count": self.home_count,
            "away_count": self.away_count,
        }


# ============================================================================
# Tournament configuration
# ============================================================================


@dataclass(frozen=True)
class MatchTiming:
    start_time: datetime
    game_minutes: int
    periods: int = 1
    period_break_minutes: int = 0
    break_between_slots_minutes: int = 0
    phase_break_minutes: int = 0
    playoff_game_minutes: Optional[int] = None


@dataclass(frozen=True)
class RefereeConfig:
    mode: str = REFEREE_MODE_NONE
    number_of_referees: int = 0
    referee_names: Dict[int, str] = field(default_factory=dict)
    max_consecutive_slots: int = 1
    manual_assignments: Dict[str, RefereeId] = field(default_factory=dict)  # item key -> referee


@dataclass(frozen=True)
class FinalsConfig:
    preset: str = "none"
    parallel_semifinals: bool = True
    parallel_quarterfinals: bool = True
    parallel_round_of_16: bool = True


@dataclass(frozen=True)
class TournamentConfig:
    teams: Tuple[Team, ...]
    field_count: int
    timing: MatchTiming
    min_rest_slots: int = 1
    referees: RefereeConfig = field(default_factory=RefereeConfig)
    finals: FinalsConfig = field(default_factory=FinalsConfig)
    locale: str = "en"

    def group_labels(self) -> List[Optional[str]]:
        """Groups in first-appearance order; [None] when no team has a group."""
        labels: List[Optional[str]] = []
        for team in self.teams:
            if team.group not in labels:
                labels.append(team.group)
        return labels

    def teams_in_group(self, group: Optional[str]) -> List[Team]:
        return [t for t in self.teams if t.group == group]


# ============================================================================
# Output
# ============================================================================


@dataclass(frozen=True)
class ScheduledMatch:
    id: str
    match_number: int
    slot: int
    field: int
    home: ParticipantRef
    away: ParticipantRef
    home_label: str
    away_label: str
    start_time: datetime
    end_time: datetime
    phase: str
    group: Optional[str] = None
    label: Optional[str] = None
    referee: Optional[RefereeId] = None
    node_id: Optional[str] = None

    @property
    def team_ids(self) -> List[str]:
        return [ref.team_id for ref in (self.home, self.away) if isinstance(ref, TeamRef)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "match_number": self.match_number,
            "slot": self.slot,
            "field": self.field + 1,
            "home": self.home.to_dict(),
            "away": self.away.to_dict(),
            "home_label": self.home_label,
            "away_label": self.away_label,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "phase": self.phase,
            "group": self.group,
            "label": self.label,
            "referee": self.referee,
            "node_id": self.node_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScheduledMatch":
        return cls(
            id=data["id"],
            match_number=int(data["match_number"]),
            slot=int(data["slot"]),
            field=int(data["field"]) - 1,
            home=participant_ref_from_dict(data["home"]),
            away=participant_ref_from_dict(data["away"]),
            home_label=data["home_label"],
            away_label=data["away_label"],
            start_time=datetime.fromisoformat(data["start_time"]),
            end_time=datetime.fromisoformat(data["end_time"]),
            phase=data["phase"],
            group=data.get("group"),
            label=data.get("label"),
            referee=data.get("referee"),
            node_id=data.get("node_id"),
        )


@dataclass(frozen=True)
class StandingRow:
    team_id: str
    group: Optional[str] = None
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0
    points: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "team_id": self.team_id,
            "group": self.group,
            "played": self.played,
            "won": self.won,
            "drawn": self.drawn,
            "lost": self.lost,
            "goals_for": self.goals_for,
            "goals_against": self.goals_against,
            "goal_difference": self.goals_for - self.goals_against,
            "points": self.points,
        }
