"""
Bracket Definition Builder

Expands a finals preset into node definitions and turns definitions into a
validated Bracket. Pure and deterministic; runs once per tournament.

Presets:
- none: no playoff matches
- final-only: 1A vs 1B
- top-4: semifinals + 3rd place + final
- top-8: quarterfinals + semifinals + places 3, 5, 7 + final (4+ groups)
- top-16: round of 16 + quarterfinals + semifinals + 3rd place + final (8+ groups)
- all-places: 2 groups play every place their group sizes allow
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from hallcup.services.bracket_model import (
    BestOfPlace,
    Bracket,
    BracketNode,
    GroupRank,
    MatchOutcome,
    Outcome,
    ParticipantRef,
    ParticipantSlot,
    TeamRef,
)
from hallcup.services.domain import (
    PHASE_FINAL,
    PHASE_QUARTERFINAL,
    PHASE_ROUND_OF_16,
    PHASE_SEMIFINAL,
    FinalsConfig,
)
from hallcup.services.errors import InvalidPlaceholder

logger = logging.getLogger(__name__)

PRESET_NONE = "none"
PRESET_FINAL_ONLY = "final-only"
PRESET_TOP_4 = "top-4"
PRESET_TOP_8 = "top-8"
PRESET_TOP_16 = "top-16"
PRESET_ALL_PLACES = "all-places"

FINALS_PRESETS = (PRESET_NONE, PRESET_FINAL_ONLY, PRESET_TOP_4, PRESET_TOP_8, PRESET_TOP_16, PRESET_ALL_PLACES)

FINAL_TYPE_FINAL = "final"
FINAL_TYPE_THIRD = "thirdPlace"
FINAL_TYPE_FIFTH = "fifthSixth"
FINAL_TYPE_SEVENTH = "seventhEighth"


@dataclass(frozen=True)
class NodeDefinition:
    id: str
    label: str
    phase: str
    home: ParticipantRef
    away: ParticipantRef
    final_type: Optional[str] = None
    places: Tuple[int, ...] = ()
    parallel_allowed: bool = True
    depends_on: Tuple[str, ...] = ()

    def refs(self) -> Tuple[ParticipantRef, ParticipantRef]:
        return (self.home, self.away)


class BracketBuildResult:
    def __init__(self):
        self.bracket: Optional[Bracket] = None
        self.errors: List[InvalidPlaceholder] = []

    @property
    def ok(self) -> bool:
        return self.bracket is not None and not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "node_count": len(self.bracket) if self.bracket is not None else 0,
            "errors": [e.to_dict() for e in self.errors],
        }


# ============================================================================
# Preset catalogue
# ============================================================================


@dataclass(frozen=True)
class FinalsOption:
    preset: str
    label: str
    category: str  # "recommended" | "possible"
    final_teams: int

    def to_dict(self) -> Dict[str, Any]:
        return {"preset": self.preset, "label": self.label, "category": self.category, "final_teams": self.final_teams}


def finals_options(group_count: int) -> List[FinalsOption]:
    """Presets worth offering for a group count, recommended ones first."""
    options = [FinalsOption(PRESET_NONE, "No finals", "recommended", 0)]
    if group_count == 2:
        options += [
            FinalsOption(PRESET_TOP_4, "Top 4 (semifinals + final)", "recommended", 4),
            FinalsOption(PRESET_ALL_PLACES, "All places", "recommended", 8),
            FinalsOption(PRESET_FINAL_ONLY, "Final only", "possible", 2),
        ]
    elif group_count == 3:
        options += [
            FinalsOption(PRESET_TOP_4, "Top 4 (semifinals + final)", "recommended", 4),
            FinalsOption(PRESET_FINAL_ONLY, "Final only", "possible", 2),
            FinalsOption(PRESET_ALL_PLACES, "All places", "possible", 6),
        ]
    elif group_count == 4:
        options += [
            FinalsOption(PRESET_TOP_8, "Top 8 (quarterfinals)", "recommended", 8),
            FinalsOption(PRESET_TOP_4, "Top 4 (group winners)", "recommended", 4),
            FinalsOption(PRESET_ALL_PLACES, "All places", "possible", 16),
            FinalsOption(PRESET_FINAL_ONLY, "Final only", "possible", 2),
        ]
    elif 5 <= group_count < 8:
        options += [
            FinalsOption(PRESET_TOP_8, "Top 8 (quarterfinals)", "recommended", 8),
            FinalsOption(PRESET_TOP_4, "Top 4 (semifinals)", "recommended", 4),
            FinalsOption(PRESET_ALL_PLACES, "All places", "possible", group_count * 4),
            FinalsOption(PRESET_FINAL_ONLY, "Final only", "possible", 2),
        ]
    elif group_count >= 8:
        options += [
            FinalsOption(PRESET_TOP_16, "Top 16 (round of 16)", "recommended", 16),
            FinalsOption(PRESET_TOP_8, "Top 8 (quarterfinals)", "recommended", 8),
            FinalsOption(PRESET_TOP_4, "Top 4 (semifinals)", "recommended", 4),
            FinalsOption(PRESET_ALL_PLACES, "All places", "possible", group_count * 4),
            FinalsOption(PRESET_FINAL_ONLY, "Final only", "possible", 2),
        ]
    return options


def recommended_finals_preset(group_count: int) -> str:
    if group_count in (2, 3):
        return PRESET_TOP_4
    if 4 <= group_count < 8:
        return PRESET_TOP_8
    if group_count >= 8:
        return PRESET_TOP_16
    return PRESET_NONE


# ============================================================================
# Preset expansion
# ============================================================================


def _winner(node_id: str) -> MatchOutcome:
    return MatchOutcome(node_id, Outcome.WINNER)


def _loser(node_id: str) -> MatchOutcome:
    return MatchOutcome(node_id, Outcome.LOSER)


def _semis_and_final(home1, away1, home2, away2, parallel: bool, semi_deps=((), ())) -> List[NodeDefinition]:
    return [
        NodeDefinition("semi1", "Semifinal 1", PHASE_SEMIFINAL, home1, away1, parallel_allowed=parallel,
                       depends_on=semi_deps[0]),
        NodeDefinition("semi2", "Semifinal 2", PHASE_SEMIFINAL, home2, away2, parallel_allowed=parallel,
                       depends_on=semi_deps[1]),
        NodeDefinition("third-place", "3rd Place", PHASE_FINAL, _loser("semi1"), _loser("semi2"),
                       final_type=FINAL_TYPE_THIRD, places=(3, 4)),
        NodeDefinition("final", "Final", PHASE_FINAL, _winner("semi1"), _winner("semi2"),
                       final_type=FINAL_TYPE_FINAL, places=(1, 2), parallel_allowed=False),
    ]


def _final_only(g: Sequence[str]) -> List[NodeDefinition]:
    return [
        NodeDefinition("final", "Final", PHASE_FINAL, GroupRank(g[0], 1), GroupRank(g[1], 1),
                       final_type=FINAL_TYPE_FINAL, places=(1, 2), parallel_allowed=False)
    ]


def _top4(g: Sequence[str], config: FinalsConfig) -> List[NodeDefinition]:
    parallel = config.parallel_semifinals
    if len(g) == 2:
        return _semis_and_final(GroupRank(g[0], 2), GroupRank(g[1], 1), GroupRank(g[0], 1), GroupRank(g[1], 2),
                                parallel)
    if len(g) == 3:
        # three winners plus the best runner-up
        return _semis_and_final(GroupRank(g[0], 1), BestOfPlace(2, 1), GroupRank(g[1], 1), GroupRank(g[2], 1),
                                parallel)
    return _semis_and_final(GroupRank(g[0], 1), GroupRank(g[1], 2), GroupRank(g[1], 1), GroupRank(g[0], 2), parallel)


def _top8(g: Sequence[str], config: FinalsConfig) -> List[NodeDefinition]:
    if len(g) < 4:
        return _top4(g, config)
    parallel = config.parallel_quarterfinals
    defs = [
        NodeDefinition("qf1", "Quarterfinal 1", PHASE_QUARTERFINAL, GroupRank(g[0], 1), GroupRank(g[3], 2),
                       parallel_allowed=parallel),
        NodeDefinition("qf2", "Quarterfinal 2", PHASE_QUARTERFINAL, GroupRank(g[1], 1), GroupRank(g[2], 2),
                       parallel_allowed=parallel),
        NodeDefinition("qf3", "Quarterfinal 3", PHASE_QUARTERFINAL, GroupRank(g[2], 1), GroupRank(g[1], 2),
                       parallel_allowed=parallel),
        NodeDefinition("qf4", "Quarterfinal 4", PHASE_QUARTERFINAL, GroupRank(g[3], 1), GroupRank(g[0], 2),
                       parallel_allowed=parallel),
    ]
    semis = _semis_and_final(_winner("qf1"), _winner("qf4"), _winner("qf2"), _winner("qf3"),
                             config.parallel_semifinals)
    placements = [
        NodeDefinition("place56", "5th Place", PHASE_FINAL, _loser("qf1"), _loser("qf2"),
                       final_type=FINAL_TYPE_FIFTH, places=(5, 6)),
        NodeDefinition("place78", "7th Place", PHASE_FINAL, _loser("qf3"), _loser("qf4"),
                       final_type=FINAL_TYPE_SEVENTH, places=(7, 8)),
    ]
    return defs + semis[:2] + placements + semis[2:]


def _top16(g: Sequence[str], config: FinalsConfig) -> List[NodeDefinition]:
    if len(g) < 8:
        return _top8(g, config)
    parallel = config.parallel_round_of_16
    defs = [
        NodeDefinition(f"r16-{i + 1}", f"Round of 16 - {i + 1}", PHASE_ROUND_OF_16, GroupRank(g[i], 1),
                       GroupRank(g[7 - i], 2), parallel_allowed=parallel)
        for i in range(8)
    ]
    for q, (a, b) in enumerate([(1, 8), (2, 7), (3, 6), (4, 5)], start=1):
        defs.append(
            NodeDefinition(f"qf{q}", f"Quarterfinal {q}", PHASE_QUARTERFINAL, _winner(f"r16-{a}"),
                           _winner(f"r16-{b}"), parallel_allowed=config.parallel_quarterfinals)
        )
    defs += _semis_and_final(_winner("qf1"), _winner("qf4"), _winner("qf2"), _winner("qf3"),
                             config.parallel_semifinals)
    return defs


def _all_places(g: Sequence[str], config: FinalsConfig, group_sizes: Optional[Dict[str, int]]) -> List[NodeDefinition]:
    if len(g) >= 4:
        return _top8(g, config)
    if len(g) != 2:
        return _top4(g, config)

    smallest = min(group_sizes.get(label, 2) for label in g) if group_sizes else 4
    defs = _semis_and_final(GroupRank(g[0], 2), GroupRank(g[1], 1), GroupRank(g[0], 1), GroupRank(g[1], 2),
                            config.parallel_semifinals)
    semis, third, final = defs[:2], defs[2], defs[3]

    extra: List[NodeDefinition] = []
    if smallest >= 4:
        extra.append(
            NodeDefinition("place78-direct", "7th Place", PHASE_FINAL, GroupRank(g[0], 4), GroupRank(g[1], 4),
                           final_type=FINAL_TYPE_SEVENTH, places=(7, 8), depends_on=("semi1", "semi2"))
        )
    if smallest >= 3:
        extra.append(
            NodeDefinition("place56-direct", "5th Place", PHASE_FINAL, GroupRank(g[0], 3), GroupRank(g[1], 3),
                           final_type=FINAL_TYPE_FIFTH, places=(5, 6), depends_on=("semi1", "semi2"))
        )

    final_deps = tuple(d.id for d in extra) + (third.id,)
    final = NodeDefinition(final.id, final.label, final.phase, final.home, final.away, final_type=final.final_type,
                           places=final.places, parallel_allowed=False, depends_on=final_deps)
    return semis + extra + [third, final]


def finals_definitions(
    group_labels: Sequence[str],
    config: FinalsConfig,
    group_sizes: Optional[Dict[str, int]] = None,
) -> List[NodeDefinition]:
    """
    Expand `config.preset` for the given groups (in configuration order).

    Fewer than 2 groups, or preset "none", yields no nodes.
    """
    g = list(group_labels)
    preset = config.preset
    if preset == PRESET_NONE or len(g) < 2:
        return []
    if preset == PRESET_FINAL_ONLY:
        return _final_only(g)
    if preset == PRESET_TOP_4:
        return _top4(g, config)
    if preset == PRESET_TOP_8:
        return _top8(g, config)
    if preset == PRESET_TOP_16:
        return _top16(g, config)
    if preset == PRESET_ALL_PLACES:
        return _all_places(g, config, group_sizes)
    raise ValueError(f"Unknown finals preset: {preset}")


# ============================================================================
# Validation + construction
# ============================================================================


def _validate_ref(
    definition: NodeDefinition,
    ref: ParticipantRef,
    node_ids: set,
    group_sizes: Dict[str, int],
) -> Optional[InvalidPlaceholder]:
    if isinstance(ref, TeamRef):
        return None
    if isinstance(ref, GroupRank):
        if ref.group not in group_sizes:
            return InvalidPlaceholder(definition.id, f"Unknown group {ref.group!r}", ref)
        if ref.rank < 1 or ref.rank > group_sizes[ref.group]:
            return InvalidPlaceholder(
                definition.id, f"Rank {ref.rank} out of range for group {ref.group} ({group_sizes[ref.group]} teams)", ref
            )
        return None
    if isinstance(ref, BestOfPlace):
        largest = max(group_sizes.values(), default=0)
        if ref.place < 1 or ref.place > largest:
            return InvalidPlaceholder(definition.id, f"No group has a place {ref.place}", ref)
        candidates = sum(1 for size in group_sizes.values() if size >= ref.place)
        if ref.rank < 1 or ref.rank > candidates:
            return InvalidPlaceholder(
                definition.id, f"Only {candidates} teams finish at place {ref.place}, rank {ref.rank} requested", ref
            )
        return None
    if isinstance(ref, MatchOutcome):
        if ref.node_id not in node_ids:
            return InvalidPlaceholder(definition.id, f"Unknown node {ref.node_id!r}", ref)
        if ref.node_id == definition.id:
            return InvalidPlaceholder(definition.id, "Node references its own outcome", ref)
        return None
    return InvalidPlaceholder(definition.id, f"Unsupported participant reference {ref!r}")


def build_bracket(definitions: Sequence[NodeDefinition], group_sizes: Dict[str, int]) -> BracketBuildResult:
    """
    Validate definitions and wire them into a Bracket.

    Every violation is reported as InvalidPlaceholder; the bracket is None
    when any error was found.
    """
    result = BracketBuildResult()
    node_ids: set = set()

    for definition in definitions:
        if definition.id in node_ids:
            result.errors.append(InvalidPlaceholder(definition.id, f"Duplicate node id {definition.id!r}"))
        node_ids.add(definition.id)

    for definition in definitions:
        for ref in definition.refs():
            error = _validate_ref(definition, ref, node_ids, group_sizes)
            if error is not None:
                result.errors.append(error)
        if definition.home == definition.away and not isinstance(definition.home, TeamRef):
            result.errors.append(InvalidPlaceholder(definition.id, "Both slots reference the same source",
                                                    definition.home))
        for dep in definition.depends_on:
            if dep not in node_ids:
                result.errors.append(InvalidPlaceholder(definition.id, f"Unknown dependency {dep!r}"))

    if result.errors:
        logger.warning("Bracket rejected with %d placeholder errors", len(result.errors))
        return result

    bracket = Bracket(
        nodes=tuple(
            BracketNode(
                id=d.id,
                label=d.label,
                phase=d.phase,
                home=ParticipantSlot.for_ref(d.home),
                away=ParticipantSlot.for_ref(d.away),
                final_type=d.final_type,
                places=d.places,
                parallel_allowed=d.parallel_allowed,
                depends_on=d.depends_on,
            )
            for d in definitions
        )
    )

    try:
        bracket.topological_order()
    except ValueError as exc:
        result.errors.append(InvalidPlaceholder(_first_cyclic_node(bracket), str(exc)))
        logger.warning("Bracket rejected: %s", exc)
        return result

    result.bracket = bracket
    logger.info("Built bracket with %d nodes", len(bracket))
    return result


def _first_cyclic_node(bracket: Bracket) -> str:
    done: set = set()
    progressed = True
    while progressed:
        progressed = False
        for node in bracket:
            if node.id not in done and all(d in done for d in node.scheduling_dependencies()):
                done.add(node.id)
                progressed = True
    return next(n.id for n in bracket if n.id not in done)


def build_finals_bracket(group_sizes: Dict[str, int], config: FinalsConfig) -> BracketBuildResult:
    """Preset expansion + validation for groups in `group_sizes` insertion order."""
    return build_bracket(finals_definitions(list(group_sizes), config, group_sizes), group_sizes)
