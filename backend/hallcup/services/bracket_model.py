"""
Bracket data model.

A bracket is a DAG of playoff nodes. Each node has two participant slots;
a slot starts Unresolved(source ref) and is bound exactly once to a concrete
team by the resolver. Placeholders are structured references, never strings
to be parsed.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

SIDE_HOME = "home"
SIDE_AWAY = "away"
SIDES = (SIDE_HOME, SIDE_AWAY)


class Outcome(str, Enum):
    WINNER = "WINNER"
    LOSER = "LOSER"


@dataclass(frozen=True)
class TeamRef:
    team_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "team", "team_id": self.team_id}


@dataclass(frozen=True)
class GroupRank:
    """Team finishing at `rank` (1-based) in `group`."""

    group: str
    rank: int

    @property
    def ranking_key(self) -> str:
        return self.group

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "group_rank", "group": self.group, "rank": self.rank}


@dataclass(frozen=True)
class BestOfPlace:
    """
    Cross-group rank: the `rank`-th best of all teams that finished `place`
    in their group (BestOfPlace(2) is the best second-placed team).

    The ordering across groups is supplied by the caller as a combined
    ranking under `ranking_key`; the resolver treats it like a group rank.
    """

    place: int
    rank: int = 1

    @property
    def ranking_key(self) -> str:
        return cross_group_key(self.place)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "best_of_place", "place": self.place, "rank": self.rank}


@dataclass(frozen=True)
class MatchOutcome:
    node_id: str
    outcome: Outcome

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "match_outcome", "node_id": self.node_id, "outcome": self.outcome.value}


ParticipantRef = Union[TeamRef, GroupRank, BestOfPlace, MatchOutcome]
RankSource = Union[GroupRank, BestOfPlace]


def cross_group_key(place: int) -> str:
    return f"best-of-place-{place}"


def participant_ref_from_dict(data: Dict[str, Any]) -> ParticipantRef:
    kind = data.get("type")
    if kind == "team":
        return TeamRef(team_id=str(data["team_id"]))
    if kind == "group_rank":
        return GroupRank(group=str(data["group"]), rank=int(data["rank"]))
    if kind == "best_of_place":
        return BestOfPlace(place=int(data["place"]), rank=int(data.get("rank", 1)))
    if kind == "match_outcome":
        return MatchOutcome(node_id=str(data["node_id"]), outcome=Outcome(data["outcome"]))
    raise ValueError(f"Unknown participant reference type: {kind!r}")


@dataclass(frozen=True)
class ParticipantSlot:
    """Unresolved(source) while team_id is None, Resolved(team_id) afterwards."""

    source: ParticipantRef
    team_id: Optional[str] = None

    @classmethod
    def for_ref(cls, ref: ParticipantRef) -> "ParticipantSlot":
        if isinstance(ref, TeamRef):
            return cls(source=ref, team_id=ref.team_id)
        return cls(source=ref)

    @property
    def resolved(self) -> bool:
        return self.team_id is not None

    def resolve(self, team_id: str) -> "ParticipantSlot":
        if self.team_id is not None and self.team_id != team_id:
            raise ValueError(f"Slot already resolved to {self.team_id}; cannot rebind to {team_id}")
        return replace(self, team_id=team_id)

    def current_ref(self) -> ParticipantRef:
        if self.team_id is not None:
            return TeamRef(self.team_id)
        return self.source

    def to_dict(self) -> Dict[str, Any]:
        return {"source": self.source.to_dict(), "team_id": self.team_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParticipantSlot":
        return cls(source=participant_ref_from_dict(data["source"]), team_id=data.get("team_id"))


@dataclass(frozen=True)
class BracketNode:
    id: str
    label: str
    phase: str
    home: ParticipantSlot
    away: ParticipantSlot
    final_type: Optional[str] = None  # "final" | "thirdPlace" | "fifthSixth" | "seventhEighth"
    places: Tuple[int, ...] = ()
    parallel_allowed: bool = True
    depends_on: Tuple[str, ...] = ()  # extra ordering constraints (not participant sources)

    def slot(self, side: str) -> ParticipantSlot:
        if side == SIDE_HOME:
            return self.home
        if side == SIDE_AWAY:
            return self.away
        raise ValueError(f"Unknown side: {side}")

    def with_slot(self, side: str, slot: ParticipantSlot) -> "BracketNode":
        if side == SIDE_HOME:
            return replace(self, home=slot)
        if side == SIDE_AWAY:
            return replace(self, away=slot)
        raise ValueError(f"Unknown side: {side}")

    def source_node_ids(self) -> List[str]:
        ids: List[str] = []
        for side in SIDES:
            ref = self.slot(side).source
            if isinstance(ref, MatchOutcome) and ref.node_id not in ids:
                ids.append(ref.node_id)
        return ids

    def scheduling_dependencies(self) -> List[str]:
        deps = self.source_node_ids()
        for node_id in self.depends_on:
            if node_id not in deps:
                deps.append(node_id)
        return deps

    @property
    def is_resolved(self) -> bool:
        return self.home.resolved and self.away.resolved

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "phase": self.phase,
            "home": self.home.to_dict(),
            "away": self.away.to_dict(),
            "final_type": self.final_type,
            "places": list(self.places),
            "parallel_allowed": self.parallel_allowed,
            "depends_on": list(self.depends_on),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BracketNode":
        return cls(
            id=data["id"],
            label=data.get("label", data["id"]),
            phase=data["phase"],
            home=ParticipantSlot.from_dict(data["home"]),
            away=ParticipantSlot.from_dict(data["away"]),
            final_type=data.get("final_type"),
            places=tuple(data.get("places") or ()),
            parallel_allowed=bool(data.get("parallel_allowed", True)),
            depends_on=tuple(data.get("depends_on") or ()),
        )


@dataclass(frozen=True)
class Bracket:
    """Immutable DAG of bracket nodes, kept in definition order."""

    nodes: Tuple[BracketNode, ...] = field(default_factory=tuple)

    def __iter__(self) -> Iterator[BracketNode]:
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    @property
    def node_ids(self) -> List[str]:
        return [n.id for n in self.nodes]

    def node(self, node_id: str) -> BracketNode:
        for n in self.nodes:
            if n.id == node_id:
                return n
        raise KeyError(node_id)

    def has_node(self, node_id: str) -> bool:
        return any(n.id == node_id for n in self.nodes)

    def dependents(self, node_id: str) -> List[str]:
        """Nodes with a participant slot fed by `node_id`'s outcome."""
        return [n.id for n in self.nodes if node_id in n.source_node_ids()]

    def with_node(self, updated: BracketNode) -> "Bracket":
        return Bracket(nodes=tuple(updated if n.id == updated.id else n for n in self.nodes))

    def topological_order(self) -> List[BracketNode]:
        """Kahn's algorithm over scheduling dependencies; ties keep definition order."""
        remaining = {n.id: set(d for d in n.scheduling_dependencies() if self.has_node(d)) for n in self.nodes}
        ordered: List[BracketNode] = []
        done: set = set()
        while remaining:
            ready = [n for n in self.nodes if n.id in remaining and remaining[n.id] <= done]
            if not ready:
                raise ValueError(f"Cycle in bracket between nodes {sorted(remaining)}")
            for n in ready:
                ordered.append(n)
                done.add(n.id)
                del remaining[n.id]
        return ordered

    def unresolved_slots(self) -> List[Tuple[str, str]]:
        return [(n.id, side) for n in self.nodes for side in SIDES if not n.slot(side).resolved]

    def to_dict(self) -> Dict[str, Any]:
        return {"nodes": [n.to_dict() for n in self.nodes]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bracket":
        return cls(nodes=tuple(BracketNode.from_dict(n) for n in data.get("nodes", [])))
