"""
Test suite for the bracket resolver

- Group-rank placeholders stay unresolved until the ranking is complete
- One pass cascades winners and losers into dependent nodes
- Idempotent: the same inputs twice give the same bracket and an empty delta
- Monotonic: resolved slots never change; disagreement becomes a warning
"""

import pytest

from hallcup.services.bracket_builder import build_finals_bracket
from hallcup.services.bracket_model import SIDE_AWAY, SIDE_HOME, Bracket
from hallcup.services.bracket_resolver import (
    WARNING_RANK_OUT_OF_RANGE,
    WARNING_RANKING_DUPLICATE_TEAM,
    WARNING_RESOLUTION_DRIFT,
    WARNING_RESULT_TEAM_MISMATCH,
    MatchResult,
    RankingInput,
    ResolutionInputs,
    resolve_ready,
)
from hallcup.services.domain import FinalsConfig

RANKINGS = {
    "A": RankingInput(("A1", "A2", "A3", "A4")),
    "B": RankingInput(("B1", "B2", "B3", "B4")),
}


@pytest.fixture
def top4() -> Bracket:
    return build_finals_bracket({"A": 4, "B": 4}, FinalsConfig(preset="top-4")).bracket


def _team(bracket, node_id, side):
    return bracket.node(node_id).slot(side).team_id


def test_unresolved_before_groups_complete(top4):
    outcome = resolve_ready(top4, ResolutionInputs())

    assert outcome.delta.is_empty
    assert outcome.bracket == top4
    assert len(outcome.bracket.unresolved_slots()) == 8


def test_incomplete_ranking_is_not_used(top4):
    inputs = ResolutionInputs(rankings={"A": RankingInput(("A1", "A2"), complete=False), "B": RANKINGS["B"]})
    outcome = resolve_ready(top4, inputs)

    assert _team(outcome.bracket, "semi1", SIDE_HOME) is None
    assert _team(outcome.bracket, "semi1", SIDE_AWAY) == "B1"
    assert _team(outcome.bracket, "semi2", SIDE_AWAY) == "B2"


def test_group_ranks_resolve_in_single_call(top4):
    outcome = resolve_ready(top4, ResolutionInputs(rankings=RANKINGS))

    assert _team(outcome.bracket, "semi1", SIDE_HOME) == "A2"
    assert _team(outcome.bracket, "semi1", SIDE_AWAY) == "B1"
    assert _team(outcome.bracket, "semi2", SIDE_HOME) == "A1"
    assert _team(outcome.bracket, "semi2", SIDE_AWAY) == "B2"
    assert len(outcome.delta.resolved) == 4
    # the input bracket is never mutated
    assert len(top4.unresolved_slots()) == 8


def test_cascade_winner_and_loser_same_pass(top4):
    inputs = ResolutionInputs(
        rankings=RANKINGS,
        results={"semi1": MatchResult(winner_id="B1", loser_id="A2")},
    )
    outcome = resolve_ready(top4, inputs)

    assert _team(outcome.bracket, "final", SIDE_HOME) == "B1"
    assert _team(outcome.bracket, "third-place", SIDE_HOME) == "A2"
    # semi2 has no result yet
    assert _team(outcome.bracket, "final", SIDE_AWAY) is None
    resolved_nodes = [r.node_id for r in outcome.delta.resolved]
    assert resolved_nodes.index("final") > resolved_nodes.index("semi1")


def test_full_bracket_resolves(top4):
    inputs = ResolutionInputs(
        rankings=RANKINGS,
        results={
            "semi1": MatchResult("A2", "B1"),
            "semi2": MatchResult("B2", "A1"),
        },
    )
    outcome = resolve_ready(top4, inputs)

    assert outcome.bracket.unresolved_slots() == []
    final = outcome.bracket.node("final")
    assert (final.home.team_id, final.away.team_id) == ("A2", "B2")


def test_resolve_is_idempotent(top4):
    inputs = ResolutionInputs(rankings=RANKINGS, results={"semi1": MatchResult("B1", "A2")})
    first = resolve_ready(top4, inputs)
    second = resolve_ready(first.bracket, inputs)

    assert second.bracket == first.bracket
    assert second.delta.is_empty
    assert second.delta.warnings == []


def test_incremental_calls_match_single_call(top4):
    step1 = resolve_ready(top4, ResolutionInputs(rankings=RANKINGS))
    full_inputs = ResolutionInputs(rankings=RANKINGS, results={"semi2": MatchResult("A1", "B2")})
    step2 = resolve_ready(step1.bracket, full_inputs)
    direct = resolve_ready(top4, full_inputs)

    assert step2.bracket == direct.bracket


def test_resolved_slot_never_rebinds(top4):
    first = resolve_ready(top4, ResolutionInputs(rankings=RANKINGS))
    changed = {"A": RankingInput(("A4", "A3", "A2", "A1")), "B": RANKINGS["B"]}
    second = resolve_ready(first.bracket, ResolutionInputs(rankings=changed))

    assert second.bracket == first.bracket
    assert second.delta.is_empty
    codes = {(w.code, w.node_id, w.side) for w in second.delta.warnings}
    assert (WARNING_RESOLUTION_DRIFT, "semi1", SIDE_HOME) in codes
    assert (WARNING_RESOLUTION_DRIFT, "semi2", SIDE_HOME) in codes


def test_result_with_wrong_teams_is_ignored(top4):
    inputs = ResolutionInputs(rankings=RANKINGS, results={"semi1": MatchResult("A1", "B4")})
    outcome = resolve_ready(top4, inputs)

    assert _team(outcome.bracket, "final", SIDE_HOME) is None
    warnings = [w for w in outcome.delta.warnings if w.code == WARNING_RESULT_TEAM_MISMATCH]
    assert warnings
    assert all(w.node_id in ("final", "third-place") for w in warnings)


def test_result_for_unresolved_node_waits(top4):
    outcome = resolve_ready(top4, ResolutionInputs(results={"semi1": MatchResult("A2", "B1")}))
    assert outcome.delta.is_empty


def test_rank_out_of_range_warns(top4):
    short = {"A": RankingInput(("A1",)), "B": RANKINGS["B"]}
    outcome = resolve_ready(top4, ResolutionInputs(rankings=short))

    assert _team(outcome.bracket, "semi2", SIDE_HOME) == "A1"
    assert _team(outcome.bracket, "semi1", SIDE_HOME) is None
    assert [w.code for w in outcome.delta.warnings] == [WARNING_RANK_OUT_OF_RANGE]


def test_ranking_with_repeated_team_binds_nothing(top4):
    repeated = {"A": RankingInput(("A1", "A1", "A3", "A4")), "B": RANKINGS["B"]}
    outcome = resolve_ready(top4, ResolutionInputs(rankings=repeated))

    assert _team(outcome.bracket, "semi1", SIDE_HOME) is None
    assert _team(outcome.bracket, "semi2", SIDE_HOME) is None
    assert _team(outcome.bracket, "semi1", SIDE_AWAY) == "B1"
    assert {w.code for w in outcome.delta.warnings} == {WARNING_RANKING_DUPLICATE_TEAM}
    assert {w.node_id for w in outcome.delta.warnings} == {"semi1", "semi2"}


def test_best_of_place_uses_cross_group_ranking():
    bracket = build_finals_bracket({"A": 3, "B": 3, "C": 3}, FinalsConfig(preset="top-4")).bracket
    inputs = ResolutionInputs(
        rankings={
            "A": RankingInput(("A1", "A2", "A3")),
            "best-of-place-2": RankingInput(("C2", "A2", "B2")),
        }
    )
    outcome = resolve_ready(bracket, inputs)

    semi1 = outcome.bracket.node("semi1")
    assert (semi1.home.team_id, semi1.away.team_id) == ("A1", "C2")


def test_delta_to_dict(top4):
    data = resolve_ready(top4, ResolutionInputs(rankings=RANKINGS)).delta.to_dict()

    assert data["resolved"][0] == {
        "node_id": "semi1",
        "side": "home",
        "source": {"type": "group_rank", "group": "A", "rank": 2},
        "team_id": "A2",
    }
    assert data["warnings"] == []


def test_bracket_round_trips_through_dict(top4):
    resolved = resolve_ready(top4, ResolutionInputs(rankings=RANKINGS)).bracket
    assert Bracket.from_dict(resolved.to_dict()) == resolved
