"""
Tests for the fairness-scored slot/field assigner.

Covers:
- Hard constraints: one pairing per cell, one match per team per slot, min rest
- Scenario runs (5 teams / 1 field, 3 teams with impossible rest)
- Typed failures: Unschedulable with the violated constraint, never a raise
- Rest relaxation and the iteration bound
- Determinism
"""

import pytest

from hallcup.services.domain import TeamScheduleState
from hallcup.services.draw_rules import generate_group_rounds, generate_round_robin
from hallcup.services.errors import (
    CONSTRAINT_ITERATION_LIMIT,
    CONSTRAINT_MIN_REST,
    InvalidConfiguration,
    Unschedulable,
)
from hallcup.utils.auto_assign import assign_pairings, placement_score, validate_inputs
from hallcup.utils.rest_rules import check_rest_compatibility, rest_shortfall
from tests.helpers import make_teams


def assert_no_double_booking(placements):
    cells = [(p.slot, p.field) for p in placements]
    assert len(cells) == len(set(cells)), "two pairings share a cell"

    seen = set()
    for p in placements:
        for team_id in (p.home.id, p.away.id):
            assert (team_id, p.slot) not in seen, f"{team_id} plays twice in slot {p.slot}"
            seen.add((team_id, p.slot))


def assert_rest_respected(placements, min_rest):
    slots_by_team = {}
    for p in placements:
        for team_id in (p.home.id, p.away.id):
            slots_by_team.setdefault(team_id, []).append(p.slot)
    for team_id, slots in slots_by_team.items():
        slots.sort()
        for a, b in zip(slots, slots[1:]):
            assert b - a - 1 >= min_rest, f"{team_id} rests {b - a - 1} slots between {a} and {b}"


# -----------------------------------------------------------------------------
# Rest rules
# -----------------------------------------------------------------------------


class TestRestRules:
    def test_no_prior_match_is_compliant(self):
        assert rest_shortfall(TeamScheduleState("A"), 0, 3) == 0

    def test_shortfall_against_every_played_slot(self):
        state = TeamScheduleState("A").with_match(2, 0, True).with_match(6, 0, False)
        # slot 4 is 1 empty slot away from both matches
        assert rest_shortfall(state, 4, 2) == 1
        assert rest_shortfall(state, 9, 2) == 0
        assert rest_shortfall(state, 0, 1) == 0

    def test_check_reports_each_team(self):
        rounds = generate_round_robin(make_teams(2))
        pairing = rounds[0][0]
        states = {
            "T1": TeamScheduleState("T1").with_match(0, 0, True),
            "T2": TeamScheduleState("T2"),
        }
        ok, violations = check_rest_compatibility(pairing, 1, states, 1)

        assert not ok
        assert [v.team_id for v in violations] == ["T1"]
        assert violations[0].missing_rest_slots == 1


# -----------------------------------------------------------------------------
# Scenarios
# -----------------------------------------------------------------------------


def test_five_teams_one_field_rest_one():
    rounds = generate_round_robin(make_teams(5))
    result = assign_pairings(rounds, field_count=1, min_rest_slots=1)

    assert result.ok, result.error and result.error.message
    assert len(result.placements) == 10
    assert result.total_pairings == 10
    assert len(result.byes) == 5
    assert_no_double_booking(result.placements)
    assert_rest_respected(result.placements, 1)


def test_three_teams_impossible_rest_is_unschedulable():
    rounds = generate_round_robin(make_teams(3))
    result = assign_pairings(rounds, field_count=1, min_rest_slots=4)

    assert not result.ok
    assert isinstance(result.error, Unschedulable)
    assert result.error.constraint == CONSTRAINT_MIN_REST
    assert result.error.pairing.team_ids == ("T1", "T3")
    # Partial assignment is kept
    assert len(result.placements) == 1
    assert result.error.placed_count == 1


def test_rest_relaxation_places_everything_with_violations():
    rounds = generate_round_robin(make_teams(3))
    result = assign_pairings(rounds, field_count=1, min_rest_slots=4, allow_rest_relaxation=True)

    assert result.ok
    assert len(result.placements) == 3
    assert result.rest_violations
    assert all(v.required_rest_slots == 4 for v in result.rest_violations)
    assert_no_double_booking(result.placements)


@pytest.mark.parametrize(
    "team_count,field_count,min_rest",
    [(4, 1, 1), (6, 2, 1), (7, 2, 1), (8, 3, 2), (6, 3, 0)],
)
def test_hard_constraints_hold(team_count, field_count, min_rest):
    rounds = generate_round_robin(make_teams(team_count))
    result = assign_pairings(rounds, field_count=field_count, min_rest_slots=min_rest)

    assert result.ok
    assert len(result.placements) == team_count * (team_count - 1) // 2
    assert all(0 <= p.field < field_count for p in result.placements)
    assert_no_double_booking(result.placements)
    assert_rest_respected(result.placements, min_rest)


def test_grouped_rounds_use_both_fields():
    rounds = generate_group_rounds(make_teams(4, "A") + make_teams(4, "B"))
    result = assign_pairings(rounds, field_count=2, min_rest_slots=1)

    assert result.ok
    assert len(result.placements) == 12
    assert {p.field for p in result.placements} == {0, 1}
    assert_no_double_booking(result.placements)


def test_team_states_track_every_match():
    rounds = generate_round_robin(make_teams(4))
    result = assign_pairings(rounds, field_count=2, min_rest_slots=0)

    for team_id, state in result.team_states.items():
        assert state.match_count == 3
        assert state.home_count + state.away_count == 3
        assert sum(state.field_counts.values()) == 3


def test_iteration_limit_returns_unschedulable():
    rounds = generate_round_robin(make_teams(4))
    result = assign_pairings(rounds, field_count=1, min_rest_slots=0, max_iterations=2)

    assert isinstance(result.error, Unschedulable)
    assert result.error.constraint == CONSTRAINT_ITERATION_LIMIT
    assert len(result.placements) == 2


def test_invalid_field_count_is_reported_not_raised():
    rounds = generate_round_robin(make_teams(4))
    result = assign_pairings(rounds, field_count=0)

    assert isinstance(result.error, InvalidConfiguration)
    assert result.error.field == "field_count"
    assert result.placements == []


def test_validate_inputs():
    assert validate_inputs(1, 0, 1) is None
    assert validate_inputs(1, -1, 1).field == "min_rest_slots"
    assert validate_inputs(1, 0, 0).field == "max_iterations"


def test_assignment_is_deterministic():
    rounds = generate_round_robin(make_teams(7))
    first = assign_pairings(rounds, field_count=2, min_rest_slots=1)
    second = assign_pairings(rounds, field_count=2, min_rest_slots=1)

    assert first.placements == second.placements


def test_inputs_are_not_mutated():
    rounds = generate_round_robin(make_teams(5))
    snapshot = [list(r) for r in rounds]
    assign_pairings(rounds, field_count=1, min_rest_slots=1)
    assert rounds == snapshot


def test_score_prefers_earlier_slot():
    rounds = generate_round_robin(make_teams(2))
    pairing = rounds[0][0]
    states = {"T1": TeamScheduleState("T1"), "T2": TeamScheduleState("T2")}
    assert placement_score(pairing, 0, 0, states, 2) < placement_score(pairing, 1, 0, states, 2)


def test_result_to_dict():
    rounds = generate_round_robin(make_teams(3))
    data = assign_pairings(rounds, field_count=1, min_rest_slots=4).to_dict()

    assert data["assigned_count"] == 1
    assert data["error"]["code"] == "UNSCHEDULABLE"
    assert data["error"]["constraint"] == CONSTRAINT_MIN_REST
