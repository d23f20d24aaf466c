"""
Tests for finals preset expansion and bracket validation.
"""

import pytest

from hallcup.services.bracket_builder import (
    NodeDefinition,
    build_bracket,
    build_finals_bracket,
    finals_definitions,
    finals_options,
    recommended_finals_preset,
)
from hallcup.services.bracket_model import BestOfPlace, GroupRank, MatchOutcome, Outcome, TeamRef
from hallcup.services.domain import PHASE_FINAL, PHASE_QUARTERFINAL, PHASE_SEMIFINAL, FinalsConfig


def _sizes(count, size=4):
    return {chr(ord("A") + i): size for i in range(count)}


def _ids(bracket):
    return [n.id for n in bracket]


# -----------------------------------------------------------------------------
# Presets
# -----------------------------------------------------------------------------


class TestPresets:
    def test_top4_two_groups_cross_semis(self):
        result = build_finals_bracket(_sizes(2), FinalsConfig(preset="top-4"))

        assert result.ok
        bracket = result.bracket
        assert _ids(bracket) == ["semi1", "semi2", "third-place", "final"]
        semi1, semi2 = bracket.node("semi1"), bracket.node("semi2")
        assert (semi1.home.source, semi1.away.source) == (GroupRank("A", 2), GroupRank("B", 1))
        assert (semi2.home.source, semi2.away.source) == (GroupRank("A", 1), GroupRank("B", 2))

        final = bracket.node("final")
        assert final.home.source == MatchOutcome("semi1", Outcome.WINNER)
        assert final.places == (1, 2)
        assert not final.parallel_allowed
        assert bracket.node("third-place").away.source == MatchOutcome("semi2", Outcome.LOSER)

    def test_top4_three_groups_uses_best_runner_up(self):
        result = build_finals_bracket(_sizes(3), FinalsConfig(preset="top-4"))

        semi1 = result.bracket.node("semi1")
        assert semi1.home.source == GroupRank("A", 1)
        assert semi1.away.source == BestOfPlace(2, 1)

    def test_top8_four_groups(self):
        result = build_finals_bracket(_sizes(4), FinalsConfig(preset="top-8"))

        bracket = result.bracket
        assert len(bracket) == 10
        qf = [n for n in bracket if n.phase == PHASE_QUARTERFINAL]
        assert [(n.home.source, n.away.source) for n in qf] == [
            (GroupRank("A", 1), GroupRank("D", 2)),
            (GroupRank("B", 1), GroupRank("C", 2)),
            (GroupRank("C", 1), GroupRank("B", 2)),
            (GroupRank("D", 1), GroupRank("A", 2)),
        ]
        assert bracket.node("place56").places == (5, 6)
        assert bracket.node("place78").home.source == MatchOutcome("qf3", Outcome.LOSER)

    def test_top8_falls_back_below_four_groups(self):
        defs = finals_definitions(["A", "B"], FinalsConfig(preset="top-8"))
        assert [d.id for d in defs] == ["semi1", "semi2", "third-place", "final"]

    def test_top16_eight_groups(self):
        result = build_finals_bracket(_sizes(8), FinalsConfig(preset="top-16"))

        bracket = result.bracket
        assert len(bracket) == 16
        r16 = bracket.node("r16-1")
        assert (r16.home.source, r16.away.source) == (GroupRank("A", 1), GroupRank("H", 2))
        assert bracket.node("qf1").away.source == MatchOutcome("r16-8", Outcome.WINNER)

    def test_top16_falls_back_to_top8(self):
        defs = finals_definitions(list("ABCDE"), FinalsConfig(preset="top-16"))
        assert defs[0].id == "qf1"

    def test_all_places_two_groups_of_four(self):
        result = build_finals_bracket(_sizes(2), FinalsConfig(preset="all-places"))

        bracket = result.bracket
        assert _ids(bracket) == ["semi1", "semi2", "place78-direct", "place56-direct", "third-place", "final"]
        assert bracket.node("place56-direct").home.source == GroupRank("A", 3)
        assert bracket.node("final").depends_on == ("place78-direct", "place56-direct", "third-place")

    def test_all_places_skips_missing_ranks(self):
        result = build_finals_bracket({"A": 4, "B": 3}, FinalsConfig(preset="all-places"))

        assert result.ok
        assert "place78-direct" not in _ids(result.bracket)
        assert "place56-direct" in _ids(result.bracket)

    def test_final_only(self):
        defs = finals_definitions(["A", "B"], FinalsConfig(preset="final-only"))
        assert len(defs) == 1
        assert defs[0].phase == PHASE_FINAL

    def test_fewer_than_two_groups_gives_no_nodes(self):
        assert finals_definitions(["A"], FinalsConfig(preset="top-4")) == []
        assert finals_definitions(["A", "B"], FinalsConfig(preset="none")) == []

    def test_unknown_preset(self):
        with pytest.raises(ValueError):
            finals_definitions(["A", "B"], FinalsConfig(preset="top-3"))

    def test_parallel_flags_carried(self):
        defs = finals_definitions(["A", "B"], FinalsConfig(preset="top-4", parallel_semifinals=False))
        semis = [d for d in defs if d.phase == PHASE_SEMIFINAL]
        assert all(not d.parallel_allowed for d in semis)


def test_finals_options_catalogue():
    options = finals_options(2)
    assert options[0].preset == "none"
    assert [o.preset for o in options if o.category == "recommended"] == ["none", "top-4", "all-places"]
    assert finals_options(1) == [options[0]]


@pytest.mark.parametrize("groups,preset", [(1, "none"), (2, "top-4"), (3, "top-4"), (4, "top-8"), (8, "top-16")])
def test_recommended_preset(groups, preset):
    assert recommended_finals_preset(groups) == preset


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------


class TestInvalidPlaceholders:
    def test_unknown_group(self):
        defs = [NodeDefinition("final", "Final", PHASE_FINAL, GroupRank("Z", 1), GroupRank("A", 1))]
        result = build_bracket(defs, {"A": 4, "B": 4})

        assert result.bracket is None
        assert len(result.errors) == 1
        assert result.errors[0].code == "INVALID_PLACEHOLDER"
        assert result.errors[0].node_id == "final"
        assert result.errors[0].ref == GroupRank("Z", 1)

    def test_rank_beyond_group_size(self):
        defs = [NodeDefinition("final", "Final", PHASE_FINAL, GroupRank("A", 5), GroupRank("B", 1))]
        result = build_bracket(defs, {"A": 4, "B": 4})
        assert not result.ok
        assert "out of range" in result.errors[0].message

    def test_best_of_place_needs_enough_groups(self):
        defs = [NodeDefinition("final", "Final", PHASE_FINAL, BestOfPlace(3, 2), GroupRank("B", 1))]
        result = build_bracket(defs, {"A": 3, "B": 2})
        assert not result.ok

    def test_unknown_node(self):
        defs = [
            NodeDefinition("final", "Final", PHASE_FINAL, MatchOutcome("ghost", Outcome.WINNER), GroupRank("A", 1))
        ]
        result = build_bracket(defs, {"A": 4})
        assert [e.node_id for e in result.errors] == ["final"]

    def test_cycle_detected(self):
        defs = [
            NodeDefinition("n1", "N1", PHASE_SEMIFINAL, MatchOutcome("n2", Outcome.WINNER), GroupRank("A", 1)),
            NodeDefinition("n2", "N2", PHASE_SEMIFINAL, MatchOutcome("n1", Outcome.WINNER), GroupRank("B", 1)),
        ]
        result = build_bracket(defs, {"A": 4, "B": 4})

        assert result.bracket is None
        assert len(result.errors) == 1
        assert result.errors[0].node_id == "n1"
        assert "Cycle" in result.errors[0].message

    def test_duplicate_ids_and_unknown_dependency(self):
        defs = [
            NodeDefinition("final", "Final", PHASE_FINAL, GroupRank("A", 1), GroupRank("B", 1)),
            NodeDefinition("final", "Final", PHASE_FINAL, GroupRank("A", 2), GroupRank("B", 2),
                           depends_on=("nowhere",)),
        ]
        result = build_bracket(defs, {"A": 4, "B": 4})
        messages = [e.message for e in result.errors]

        assert any("Duplicate" in m for m in messages)
        assert any("nowhere" in m for m in messages)

    def test_same_source_twice(self):
        defs = [NodeDefinition("final", "Final", PHASE_FINAL, GroupRank("A", 1), GroupRank("A", 1))]
        assert not build_bracket(defs, {"A": 4}).ok

    def test_fixed_teams_start_resolved(self):
        defs = [NodeDefinition("final", "Final", PHASE_FINAL, TeamRef("x"), GroupRank("A", 1))]
        bracket = build_bracket(defs, {"A": 4}).bracket

        assert bracket.node("final").home.team_id == "x"
        assert bracket.unresolved_slots() == [("final", "away")]

    def test_build_result_to_dict(self):
        data = build_finals_bracket(_sizes(2), FinalsConfig(preset="top-4")).to_dict()
        assert data == {"ok": True, "node_count": 4, "errors": []}
