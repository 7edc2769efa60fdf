"""Fairness objective used to rank candidate moves.

The objective is the lexicographic tuple
``(unassigned_count, unused_drivers, max_detour, sum_detour)`` over the
regular (non-overflow) routes. Detour fields are compared with a tolerance:
two states closer than ``epsilon`` seconds are tied, and a tie never replaces
the incumbent candidate.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from ...config import settings
from .route_builder import RouteBuilder


@dataclass(frozen=True, slots=True)
class FairnessTuple:
    unassigned_count: int
    unused_drivers: int
    max_detour: float
    sum_detour: float


@dataclass(frozen=True, slots=True)
class RouteChange:
    """Hypothetical state of one route after a simulated move."""

    detour: float
    stop_count: int


def is_better_fairness(a: FairnessTuple, b: FairnessTuple, epsilon: float | None = None) -> bool:
    """Return True when ``a`` is strictly better than ``b``."""
    eps = settings.fairness_epsilon_seconds if epsilon is None else epsilon

    if a.unassigned_count != b.unassigned_count:
        return a.unassigned_count < b.unassigned_count
    if a.unused_drivers != b.unused_drivers:
        return a.unused_drivers < b.unused_drivers

    if a.max_detour < b.max_detour - eps:
        return True
    if a.max_detour > b.max_detour + eps:
        return False

    return a.sum_detour < b.sum_detour - eps


def fairness_tuple(
    routes: Iterable[RouteBuilder],
    unassigned_count: int,
    changes: Mapping[str, RouteChange] | None = None,
) -> FairnessTuple:
    """Tuple for the current state, with ``changes`` applied per driver id."""
    unused = 0
    max_detour: float | None = None
    sum_detour = 0.0

    for route in routes:
        if route.is_overflow:
            continue
        change = changes.get(route.driver.id) if changes else None
        if change is None:
            detour, stop_count = route.detour, len(route.stops)
        else:
            detour, stop_count = change.detour, change.stop_count

        sum_detour += detour
        if max_detour is None or detour > max_detour:
            max_detour = detour
        if stop_count == 0:
            unused += 1

    return FairnessTuple(
        unassigned_count=unassigned_count,
        unused_drivers=unused,
        max_detour=max_detour if max_detour is not None else 0.0,
        sum_detour=sum_detour,
    )
