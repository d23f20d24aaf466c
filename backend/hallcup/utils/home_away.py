"""
Home/Away Balancer

Post-pass over placements that only flips orientation (home <-> away). The
pairing, slot and field of every placement are left untouched.

Measure: sum over teams of (home - away)^2. Every flip applied here strictly
lowers it, so the pass terminates.

Phase 1: single swaps. Swapping a placement with home h and away a changes
the measure by 8 - 4*(d_h - d_a), so it helps iff d_h - d_a >= 3.

Phase 2: chain flips. While a team t has d_t >= 2, follow home->away edges
from t until reaching a team w with d_w <= -1 and flip every placement on
that path; intermediate teams keep their balance, t drops by 2 and w rises
by 2. Such a w is always reachable (the teams reachable from t cannot all
be home-heavy), so the pass ends with |home - away| <= 1 for every team.
Teams with d_t <= -2 are handled symmetrically along away->home edges.
"""

import logging
from collections import deque
from typing import Any, Dict, List, Optional, Sequence, Tuple

from hallcup.config import MAX_BALANCE_ITERATIONS
from hallcup.services.domain import Placement

logger = logging.getLogger(__name__)


class HomeAwayResult:
    """Balanced placements plus per-team counts"""

    def __init__(self, placements: List[Placement]):
        self.placements = placements
        self.swaps = 0
        self.flipped_keys: List[str] = []
        self.iterations = 0
        self.capped = False

    @property
    def counts(self) -> Dict[str, Tuple[int, int]]:
        return home_away_counts(self.placements)

    @property
    def max_imbalance(self) -> int:
        return max((abs(h - a) for h, a in self.counts.values()), default=0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "swaps": self.swaps,
            "iterations": self.iterations,
            "capped": self.capped,
            "max_imbalance": self.max_imbalance,
            "counts": {team_id: {"home": h, "away": a} for team_id, (h, a) in sorted(self.counts.items())},
        }


def home_away_counts(placements: Sequence[Placement]) -> Dict[str, Tuple[int, int]]:
    counts: Dict[str, List[int]] = {}
    for p in placements:
        counts.setdefault(p.home.id, [0, 0])[0] += 1
        counts.setdefault(p.away.id, [0, 0])[1] += 1
    return {team_id: (h, a) for team_id, (h, a) in counts.items()}


def _imbalances(placements: Sequence[Placement]) -> Dict[str, int]:
    return {team_id: h - a for team_id, (h, a) in home_away_counts(placements).items()}


def _best_single_swap(placements: Sequence[Placement], diff: Dict[str, int]) -> Optional[int]:
    best_index = None
    best_gain = 2  # d_h - d_a must reach 3 to help
    for i, p in enumerate(placements):
        gain = diff[p.home.id] - diff[p.away.id]
        if gain > best_gain:
            best_gain = gain
            best_index = i
    return best_index


def _flip_path(placements: Sequence[Placement], diff: Dict[str, int], start: str) -> List[int]:
    """
    BFS from `start` along edges that move its surplus away.

    For a home-heavy start, edges go home -> away; for an away-heavy start,
    away -> home. Returns placement indices on the path to the first team
    with an opposite surplus, or [] if none is reachable.
    """
    home_heavy = diff[start] > 0
    previous: Dict[str, Tuple[str, int]] = {}
    queue = deque([start])
    seen = {start}
    while queue:
        team_id = queue.popleft()
        for i, p in enumerate(placements):
            if home_heavy:
                src, dst = p.home.id, p.away.id
            else:
                src, dst = p.away.id, p.home.id
            if src != team_id or dst in seen:
                continue
            seen.add(dst)
            previous[dst] = (team_id, i)
            if (home_heavy and diff[dst] <= -1) or (not home_heavy and diff[dst] >= 1):
                path: List[int] = []
                node = dst
                while node != start:
                    node, index = previous[node]
                    path.append(index)
                return list(reversed(path))
            queue.append(dst)
    return []


def balance_home_away(
    placements: Sequence[Placement], max_iterations: int = MAX_BALANCE_ITERATIONS
) -> HomeAwayResult:
    """
    Flip orientations until every team has |home - away| <= 1 or no flip helps.

    Returns a new list; the input sequence is not modified.
    """
    current = list(placements)
    result = HomeAwayResult(current)

    def flip(index: int) -> None:
        current[index] = current[index].swapped()
        result.swaps += 1
        result.flipped_keys.append(current[index].pairing.key)

    # Phase 1: single swaps, largest gain first
    while True:
        if result.iterations >= max_iterations:
            result.capped = True
            break
        diff = _imbalances(current)
        index = _best_single_swap(current, diff)
        if index is None:
            break
        result.iterations += 1
        flip(index)

    # Phase 2: chain flips for teams still off by 2 or more
    while not result.capped:
        diff = _imbalances(current)
        heavy = [t for t in sorted(diff) if abs(diff[t]) >= 2]
        if not heavy:
            break
        if result.iterations >= max_iterations:
            result.capped = True
            break
        result.iterations += 1
        path = _flip_path(current, diff, heavy[0])
        if not path:
            logger.warning("No balancing path from team %s (imbalance %d)", heavy[0], diff[heavy[0]])
            break
        for index in path:
            flip(index)

    result.placements = current
    if result.capped:
        logger.warning("Home/away balancing hit iteration bound %d", max_iterations)
    logger.info("Home/away balanced with %d swaps, max imbalance %d", result.swaps, result.max_imbalance)
    return result
