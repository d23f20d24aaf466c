"""
Draw Rules - round-robin pairing generation (circle method)

Single source of truth for round-robin arithmetic and the rotation used to
build group-stage rounds. All other modules must import from here.
"""

from typing import Dict, List, Optional, Sequence

from hallcup.services.domain import ByePairing, Pairing, RealPairing, Team
from hallcup.services.errors import InvalidConfiguration

# =============================================================================
# Round-robin arithmetic
# =============================================================================


def rr_matches_per_pool(teams_per_pool: int) -> int:
    """Return number of RR matches in a pool: C(n, 2) = n*(n-1)/2."""
    return (teams_per_pool * (teams_per_pool - 1)) // 2


def rr_round_count(teams_per_pool: int) -> int:
    """
    Return number of RR rounds for a pool of n teams.

    Even n: n-1 rounds. Odd n: n rounds (one bye per round).
    """
    if teams_per_pool < 2:
        return 0
    return teams_per_pool - 1 if teams_per_pool % 2 == 0 else teams_per_pool


# =============================================================================
# Circle method
# =============================================================================


def rr_pairings_by_round(n: int) -> List[List[tuple]]:
    """
    Circle-method pairings over positions 0..n-1 (n even).

    Position 0 is fixed; the rest rotate one step per round:
    [p0, p1, ..., p_{n-1}] -> [p0, p_{n-1}, p1, ..., p_{n-2}].
    Round r pairs position i with position n-1-i.
    """
    if n < 2 or n % 2 != 0:
        raise ValueError(f"circle method needs an even position count, got {n}")

    positions = list(range(n))
    rounds: List[List[tuple]] = []
    for _ in range(n - 1):
        rounds.append([(positions[i], positions[n - 1 - i]) for i in range(n // 2)])
        positions = [positions[0]] + [positions[-1]] + positions[1:-1]
    return rounds


def generate_round_robin(teams: Sequence[Team], group: Optional[str] = None) -> List[List[Pairing]]:
    """
    Generate round-robin rounds for one group.

    Team order defines the rotation tie-break. With an odd count a bye
    sentinel takes the last position, so every round carries exactly one
    ByePairing for the team drawn against it.

    Raises:
        InvalidConfiguration: fewer than 2 teams
    """
    if len(teams) < 2:
        raise InvalidConfiguration(
            f"Group {group or '(all)'} needs at least 2 teams, got {len(teams)}", field="teams"
        )

    slots: List[Optional[Team]] = list(teams)
    if len(slots) % 2 == 1:
        slots.append(None)  # bye sentinel, never leaves this function

    rounds: List[List[Pairing]] = []
    for round_index, position_pairs in enumerate(rr_pairings_by_round(len(slots))):
        round_pairings: List[Pairing] = []
        sequence = 0
        for pos_a, pos_b in position_pairs:
            team_a, team_b = slots[pos_a], slots[pos_b]
            if team_a is None or team_b is None:
                sitting_out = team_b if team_a is None else team_a
                round_pairings.append(ByePairing(team=sitting_out, group=group, round_index=round_index))
                continue
            round_pairings.append(
                RealPairing(
                    team_a=team_a,
                    team_b=team_b,
                    group=group,
                    round_index=round_index,
                    sequence_in_round=sequence,
                )
            )
            sequence += 1
        rounds.append(round_pairings)
    return rounds


def real_pairings(rounds: Sequence[Sequence[Pairing]]) -> List[RealPairing]:
    return [p for rnd in rounds for p in rnd if isinstance(p, RealPairing)]


def bye_pairings(rounds: Sequence[Sequence[Pairing]]) -> List[ByePairing]:
    return [p for rnd in rounds for p in rnd if isinstance(p, ByePairing)]


def merge_group_rounds(rounds_by_group: Dict[Optional[str], List[List[Pairing]]]) -> List[List[Pairing]]:
    """
    Interleave groups: global round k holds round k of every group, groups in
    insertion order. Groups with fewer rounds simply stop contributing.
    """
    if not rounds_by_group:
        return []
    depth = max(len(r) for r in rounds_by_group.values())
    merged: List[List[Pairing]] = []
    for k in range(depth):
        combined: List[Pairing] = []
        for group_rounds in rounds_by_group.values():
            if k < len(group_rounds):
                combined.extend(group_rounds[k])
        merged.append(combined)
    return merged


def group_teams(teams: Sequence[Team]) -> Dict[Optional[str], List[Team]]:
    """
    Split teams by group, groups in first-appearance order.

    Raises:
        InvalidConfiguration: some teams have a group and others do not
    """
    grouped = [t for t in teams if t.group is not None]
    if grouped and len(grouped) != len(teams):
        missing = ", ".join(t.id for t in teams if t.group is None)
        raise InvalidConfiguration(f"Teams without a group in a grouped tournament: {missing}", field="teams")

    by_group: Dict[Optional[str], List[Team]] = {}
    for team in teams:
        by_group.setdefault(team.group, []).append(team)
    return by_group


def generate_group_rounds(teams: Sequence[Team]) -> List[List[Pairing]]:
    """Round-robin every group and merge into one global round sequence."""
    by_group = group_teams(teams)
    return merge_group_rounds({g: generate_round_robin(members, g) for g, members in by_group.items()})
