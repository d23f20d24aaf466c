"""
Schedule Orchestrator Service - builds a full tournament schedule

Pipeline:
1. Validate configuration
2. Generate round-robin rounds per group
3. Assign pairings to slots x fields
4. Balance home/away
5. Build the finals bracket (if a preset is configured)
6. Slot bracket nodes after the group stage
7. Assign referees
8. Assemble the time-stamped schedule

Deterministic: the same configuration always yields the same schedule.
Failures are returned on the result (status "failed", failed_step, error);
nothing is raised to the caller.
"""

import logging
from typing import Any, Dict, List, Optional

from hallcup.config import MAX_ASSIGN_ITERATIONS
from hallcup.services.bracket_builder import FINALS_PRESETS, PRESET_NONE, BracketBuildResult, build_finals_bracket
from hallcup.services.bracket_model import Bracket
from hallcup.services.domain import REFEREE_MODE_ORGANIZER, REFEREE_MODE_TEAMS, REFEREE_MODES, TournamentConfig
from hallcup.services.draw_rules import generate_group_rounds
from hallcup.services.errors import InvalidConfiguration, SchedulingError
from hallcup.services.schedule_assembler import AssembledSchedule, assemble_schedule, schedule_playoff_nodes
from hallcup.utils.auto_assign import AssignmentResult, assign_pairings
from hallcup.utils.home_away import HomeAwayResult, balance_home_away
from hallcup.utils.referees import (
    RefereeAssignmentResult,
    RefereeItem,
    assign_referees,
    invalid_manual_referees,
    items_from_placements,
)

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_PARTIAL = "partial"
STATUS_FAILED = "failed"

# ============================================================================
# Response Models
# ============================================================================


class BuildWarning:
    """Warning during schedule build"""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details

    def to_dict(self):
        result = {"code": self.code, "message": self.message}
        if self.details is not None:
            result["details"] = self.details
        return result


class BuildSummary:
    """Summary of schedule build results"""

    def __init__(self):
        self.team_count = 0
        self.group_count = 0
        self.pairings_total = 0
        self.pairings_placed = 0
        self.byes = 0
        self.group_slots = 0
        self.home_away_swaps = 0
        self.rest_relaxations = 0
        self.playoff_matches = 0
        self.referees_assigned = 0
        self.referees_unassigned = 0

    def to_dict(self):
        return {
            "team_count": self.team_count,
            "group_count": self.group_count,
            "pairings_total": self.pairings_total,
            "pairings_placed": self.pairings_placed,
            "byes": self.byes,
            "group_slots": self.group_slots,
            "home_away_swaps": self.home_away_swaps,
            "rest_relaxations": self.rest_relaxations,
            "playoff_matches": self.playoff_matches,
            "referees_assigned": self.referees_assigned,
            "referees_unassigned": self.referees_unassigned,
        }


class ScheduleBuildResult:
    """Complete result of schedule build"""

    def __init__(self):
        self.status = STATUS_SUCCESS
        self.summary = BuildSummary()
        self.warnings: List[BuildWarning] = []
        self.failed_step: Optional[str] = None
        self.error: Optional[SchedulingError] = None
        self.errors: List[SchedulingError] = []

        self.assignment: Optional[AssignmentResult] = None
        self.home_away: Optional[HomeAwayResult] = None
        self.bracket: Optional[Bracket] = None
        self.referees: Optional[RefereeAssignmentResult] = None
        self.schedule: Optional[AssembledSchedule] = None

    def fail(self, step: str, errors: List[SchedulingError]) -> "ScheduleBuildResult":
        self.status = STATUS_FAILED
        self.failed_step = step
        self.errors = list(errors)
        self.error = errors[0] if errors else None
        logger.warning("Schedule build failed at %s: %s", step, self.error.message if self.error else "unknown")
        return self

    def to_dict(self):
        result = {
            "status": self.status,
            "summary": self.summary.to_dict(),
            "warnings": [w.to_dict() for w in self.warnings],
        }

        if self.failed_step:
            result["failed_step"] = self.failed_step
            result["error"] = self.error.to_dict() if self.error else None
            result["errors"] = [e.to_dict() for e in self.errors]

        if self.schedule is not None:
            result["schedule"] = self.schedule.to_dict()
        if self.bracket is not None:
            result["bracket"] = self.bracket.to_dict()

        return result


# ============================================================================
# Validation
# ============================================================================


def validate_tournament_config(config: TournamentConfig) -> List[InvalidConfiguration]:
    """Collect every configuration problem; empty list means valid."""
    errors: List[InvalidConfiguration] = []
    teams = config.teams
    timing = config.timing

    if len(teams) < 2:
        errors.append(InvalidConfiguration(f"At least 2 teams required, got {len(teams)}", field="teams"))

    ids = [t.id for t in teams]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        errors.append(InvalidConfiguration(f"Duplicate team ids: {', '.join(duplicates)}", field="teams"))

    grouped = [t for t in teams if t.group is not None]
    if grouped and len(grouped) != len(teams):
        errors.append(InvalidConfiguration("Either every team has a group or none does", field="teams"))
    elif grouped:
        for label in config.group_labels():
            size = len(config.teams_in_group(label))
            if size < 2:
                errors.append(InvalidConfiguration(f"Group {label} needs at least 2 teams, got {size}", field="teams"))

    if config.field_count < 1:
        errors.append(InvalidConfiguration(f"At least 1 field required, got {config.field_count}", field="field_count"))

    if timing.game_minutes <= 0:
        errors.append(InvalidConfiguration("Match duration must be positive", field="timing.game_minutes"))
    if timing.playoff_game_minutes is not None and timing.playoff_game_minutes <= 0:
        errors.append(InvalidConfiguration("Playoff match duration must be positive", field="timing.playoff_game_minutes"))
    if timing.periods < 1:
        errors.append(InvalidConfiguration("At least one period required", field="timing.periods"))
    for name in ("period_break_minutes", "break_between_slots_minutes", "phase_break_minutes"):
        if getattr(timing, name) < 0:
            errors.append(InvalidConfiguration(f"{name} cannot be negative", field=f"timing.{name}"))

    if config.min_rest_slots < 0:
        errors.append(InvalidConfiguration("Minimum rest cannot be negative", field="min_rest_slots"))

    if config.referees.mode not in REFEREE_MODES:
        errors.append(InvalidConfiguration(f"Unknown referee mode {config.referees.mode!r}", field="referees.mode"))
    elif config.referees.mode == REFEREE_MODE_ORGANIZER and config.referees.number_of_referees < 1:
        errors.append(
            InvalidConfiguration("Organizer referee mode needs at least 1 referee", field="referees.number_of_referees")
        )

    if config.referees.mode in (REFEREE_MODE_ORGANIZER, REFEREE_MODE_TEAMS):
        unknown = invalid_manual_referees(config.referees, teams)
        if unknown:
            listed = ", ".join(f"{key}={referee!r}" for key, referee in sorted(unknown.items()))
            errors.append(
                InvalidConfiguration(
                    f"Manual referees not on the {config.referees.mode} roster: {listed}",
                    field="referees.manual_assignments",
                )
            )

    if config.finals.preset not in FINALS_PRESETS:
        errors.append(InvalidConfiguration(f"Unknown finals preset {config.finals.preset!r}", field="finals.preset"))

    return errors


# ============================================================================
# Pipeline
# ============================================================================


def build_schedule(
    config: TournamentConfig,
    *,
    accept_incomplete: bool = False,
    search_window: Optional[int] = None,
    max_iterations: int = MAX_ASSIGN_ITERATIONS,
    allow_rest_relaxation: bool = False,
) -> ScheduleBuildResult:
    """
    Run the full pipeline for one tournament configuration.

    Args:
        config: Tournament configuration
        accept_incomplete: Keep going with the partial group stage when the
            assigner reports Unschedulable (status "partial")
        search_window, max_iterations, allow_rest_relaxation: passed to the assigner
    """
    result = ScheduleBuildResult()
    result.summary.team_count = len(config.teams)

    # Step 1: Validate
    errors = validate_tournament_config(config)
    if errors:
        return result.fail("validate", errors)

    # Step 2: Round-robin rounds
    try:
        rounds = generate_group_rounds(config.teams)
    except InvalidConfiguration as exc:
        return result.fail("generate", [exc])
    group_labels = config.group_labels()
    result.summary.group_count = len([g for g in group_labels if g is not None])

    # Step 3: Slot/field assignment
    assignment = assign_pairings(
        rounds,
        config.field_count,
        config.min_rest_slots,
        search_window=search_window,
        max_iterations=max_iterations,
        allow_rest_relaxation=allow_rest_relaxation,
    )
    result.assignment = assignment
    result.summary.pairings_total = assignment.total_pairings
    result.summary.pairings_placed = len(assignment.placements)
    result.summary.byes = len(assignment.byes)
    result.summary.rest_relaxations = len(assignment.rest_violations)
    if assignment.rest_violations:
        result.warnings.append(
            BuildWarning(
                "REST_RELAXED",
                f"Minimum rest relaxed for {len(assignment.rest_violations)} team placements",
                {"violations": [v.to_dict() for v in assignment.rest_violations[:20]]},
            )
        )
    if assignment.error is not None:
        if not accept_incomplete:
            return result.fail("assign", [assignment.error])
        result.status = STATUS_PARTIAL
        result.warnings.append(BuildWarning("INCOMPLETE_SCHEDULE", assignment.error.message, assignment.error.to_dict()))

    # Step 4: Home/away
    home_away = balance_home_away(assignment.placements)
    result.home_away = home_away
    result.summary.home_away_swaps = home_away.swaps
    placements = home_away.placements
    result.summary.group_slots = assignment.slot_count

    # Step 5: Bracket
    bracket: Optional[Bracket] = None
    if config.finals.preset != PRESET_NONE:
        group_sizes = {g: len(config.teams_in_group(g)) for g in group_labels if g is not None}
        if len(group_sizes) < 2:
            result.warnings.append(
                BuildWarning("NO_FINALS", f"Finals preset {config.finals.preset} needs at least 2 groups")
            )
        else:
            built: BracketBuildResult = build_finals_bracket(group_sizes, config.finals)
            if not built.ok:
                return result.fail("bracket", list(built.errors))
            bracket = built.bracket
    result.bracket = bracket

    # Step 6: Playoff slots
    playoff_slots = []
    if bracket is not None and len(bracket) > 0:
        playoff_slots = schedule_playoff_nodes(bracket, assignment.slot_count, config.field_count)
    result.summary.playoff_matches = len(playoff_slots)

    # Step 7: Referees
    items: List[RefereeItem] = items_from_placements(placements)
    for ps in playoff_slots:
        node = bracket.node(ps.node_id)
        resolved_ids = tuple(s.team_id for s in (node.home, node.away) if s.team_id is not None)
        items.append(RefereeItem(key=node.id, slot=ps.slot, field=ps.field, team_ids=resolved_ids,
                                 resolved=node.is_resolved))
    referees = assign_referees(items, config.teams, config.referees)
    result.referees = referees
    result.summary.referees_assigned = len(referees.assignments)
    result.summary.referees_unassigned = len(referees.unassigned)
    if referees.unassigned:
        result.warnings.append(
            BuildWarning("REFEREE_UNASSIGNED", f"{len(referees.unassigned)} matches have no referee",
                         {"matches": referees.unassigned})
        )

    # Step 8: Assemble
    result.schedule = assemble_schedule(
        placements,
        playoff_slots,
        bracket,
        config.teams,
        config.timing,
        referees=referees.assignments,
        locale=config.locale,
    )

    logger.info(
        "Schedule built (%s): %d/%d pairings, %d playoff matches, %d warnings",
        result.status,
        result.summary.pairings_placed,
        result.summary.pairings_total,
        result.summary.playoff_matches,
        len(result.warnings),
    )
    return result
