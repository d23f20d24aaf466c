"""
Fairness Report - analyses a produced schedule.

Per team: slots played, rest gaps (empty slots between matches) with
min/max/avg/variance, field distribution and home/away counts.

Checks:
1. No team plays twice in one slot
2. Rest compliance against a minimum rest (in slots)
3. Home/away imbalance at most 1
4. No referee booked twice in one slot

Only concrete participants are counted; unresolved playoff placeholders are
skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from hallcup.services.bracket_model import TeamRef
from hallcup.services.domain import ScheduledMatch

logger = logging.getLogger(__name__)


@dataclass
class CheckResult:
    """Result of a single fairness check."""
    name: str
    passed: bool
    summary: str
    details: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "passed": self.passed,
            "summary": self.summary,
            "details": self.details[:20],
            "detail_count": len(self.details),
        }


@dataclass
class TeamFairness:
    team_id: str
    slots: List[int]
    rest_gaps: List[int]
    field_distribution: Dict[int, int]
    home_count: int
    away_count: int

    @property
    def min_rest(self) -> Optional[int]:
        return min(self.rest_gaps) if self.rest_gaps else None

    @property
    def max_rest(self) -> Optional[int]:
        return max(self.rest_gaps) if self.rest_gaps else None

    @property
    def avg_rest(self) -> Optional[float]:
        return sum(self.rest_gaps) / len(self.rest_gaps) if self.rest_gaps else None

    @property
    def rest_variance(self) -> float:
        if len(self.rest_gaps) < 2:
            return 0.0
        mean = self.avg_rest
        return sum((g - mean) ** 2 for g in self.rest_gaps) / len(self.rest_gaps)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "team_id": self.team_id,
            "slots": self.slots,
            "rest_gaps": self.rest_gaps,
            "min_rest": self.min_rest,
            "max_rest": self.max_rest,
            "avg_rest": round(self.avg_rest, 2) if self.avg_rest is not None else None,
            "rest_variance": round(self.rest_variance, 3),
            "field_distribution": {str(k + 1): v for k, v in sorted(self.field_distribution.items())},
            "home_count": self.home_count,
            "away_count": self.away_count,
        }


@dataclass
class FairnessReport:
    """Full fairness report."""
    overall_passed: bool
    checks: List[CheckResult]
    teams: List[TeamFairness]
    stats: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_passed": self.overall_passed,
            "checks": [c.to_dict() for c in self.checks],
            "teams": [t.to_dict() for t in self.teams],
            "stats": self.stats,
        }


def _concrete(ref) -> Optional[str]:
    return ref.team_id if isinstance(ref, TeamRef) else None


def analyze_schedule_fairness(matches: Sequence[ScheduledMatch], min_rest_slots: int = 0) -> FairnessReport:
    slots_by_team: Dict[str, List[int]] = {}
    fields_by_team: Dict[str, Dict[int, int]] = {}
    home_by_team: Dict[str, int] = {}
    away_by_team: Dict[str, int] = {}

    double_booked: List[str] = []
    referee_conflicts: List[str] = []
    seen_in_slot: Dict[int, Dict[str, str]] = {}
    referees_in_slot: Dict[int, Dict[Any, str]] = {}

    for m in sorted(matches, key=lambda m: (m.slot, m.field)):
        for is_home, ref in ((True, m.home), (False, m.away)):
            team_id = _concrete(ref)
            if team_id is None:
                continue
            slots_by_team.setdefault(team_id, []).append(m.slot)
            fields = fields_by_team.setdefault(team_id, {})
            fields[m.field] = fields.get(m.field, 0) + 1
            if is_home:
                home_by_team[team_id] = home_by_team.get(team_id, 0) + 1
            else:
                away_by_team[team_id] = away_by_team.get(team_id, 0) + 1

            other = seen_in_slot.setdefault(m.slot, {}).get(team_id)
            if other is not None and other != m.id:
                double_booked.append(f"{team_id} plays {other} and {m.id} in slot {m.slot}")
            seen_in_slot[m.slot][team_id] = m.id

        if m.referee is not None:
            other = referees_in_slot.setdefault(m.slot, {}).get(m.referee)
            if other is not None:
                referee_conflicts.append(f"Referee {m.referee} on {other} and {m.id} in slot {m.slot}")
            referees_in_slot[m.slot][m.referee] = m.id

    teams: List[TeamFairness] = []
    rest_details: List[str] = []
    balance_details: List[str] = []
    for team_id in sorted(slots_by_team):
        slots = sorted(slots_by_team[team_id])
        gaps = [b - a - 1 for a, b in zip(slots, slots[1:])]
        tf = TeamFairness(
            team_id=team_id,
            slots=slots,
            rest_gaps=gaps,
            field_distribution=fields_by_team.get(team_id, {}),
            home_count=home_by_team.get(team_id, 0),
            away_count=away_by_team.get(team_id, 0),
        )
        teams.append(tf)
        if tf.min_rest is not None and tf.min_rest < min_rest_slots:
            rest_details.append(f"{team_id} rests only {tf.min_rest} slots (min {min_rest_slots})")
        if abs(tf.home_count - tf.away_count) > 1:
            balance_details.append(f"{team_id} home {tf.home_count} / away {tf.away_count}")

    checks = [
        CheckResult(
            "no_double_booking",
            not double_booked,
            "No team plays twice in a slot" if not double_booked else f"{len(double_booked)} double bookings",
            double_booked,
        ),
        CheckResult(
            "rest_compliance",
            not rest_details,
            f"All teams rest at least {min_rest_slots} slots" if not rest_details
            else f"{len(rest_details)} teams below minimum rest",
            rest_details,
        ),
        CheckResult(
            "home_away_balance",
            not balance_details,
            "Home/away within 1 for every team" if not balance_details
            else f"{len(balance_details)} teams unbalanced",
            balance_details,
        ),
        CheckResult(
            "referee_conflicts",
            not referee_conflicts,
            "No referee double-booked" if not referee_conflicts else f"{len(referee_conflicts)} referee conflicts",
            referee_conflicts,
        ),
    ]

    all_gaps = [g for t in teams for g in t.rest_gaps]
    stats = {
        "team_count": len(teams),
        "match_count": len(matches),
        "min_rest": min(all_gaps) if all_gaps else None,
        "max_rest": max(all_gaps) if all_gaps else None,
        "avg_rest": round(sum(all_gaps) / len(all_gaps), 2) if all_gaps else None,
        "total_rest_variance": round(sum(t.rest_variance for t in teams), 3),
    }

    report = FairnessReport(
        overall_passed=all(c.passed for c in checks),
        checks=checks,
        teams=teams,
        stats=stats,
    )
    logger.info("Fairness report: %d teams, passed=%s", len(teams), report.overall_passed)
    return report
