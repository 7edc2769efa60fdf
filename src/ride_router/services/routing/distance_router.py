"""Distance-minimising router with household grouping.

Participants whose coordinates round to the same point form a household.
Each step places the household block that adds the least loaded distance
anywhere; a household is split one member at a time only when no household
fits any driver whole. Routes are then 2-opted on loaded distance, and the
single best relocation of a household block between two regular drivers is
applied while it saves more than ``min_improvement_meters``.

Loaded distance is the part of a route driven with somebody aboard: origin
to the last stop when dropping off, first stop to the origin when picking
up. The empty leg to or from the driver's home is not counted.
"""

from __future__ import annotations

import logging
import time
from typing import Optional, Sequence

from ...config import settings
from ...models.domain import Coordinates, Participant
from ..distance.oracle import DistanceOracle
from .construct import fill_overflow
from .legs import LegTable
from .localsearch import two_opt_route
from .models import ROUTE_MODE_PICKUP, RoutingRequest
from .route_builder import RouteBuilder
from .router import Router, checkpoint

logger = logging.getLogger(__name__)

Placement = tuple[float, RouteBuilder, int, int, int]
Relocation = tuple[float, RouteBuilder, int, int, RouteBuilder, int]


def group_households(participants: Sequence[Participant], precision: int | None = None) -> list[list[Participant]]:
    """Group participants by rounded coordinates, larger households first.

    Members keep their input order and households of equal size keep the
    order in which their first member appears.
    """
    precision = settings.coordinate_precision if precision is None else precision
    households: dict[tuple[float, float], list[Participant]] = {}
    for participant in participants:
        households.setdefault(participant.coords.rounded(precision), []).append(participant)
    return sorted(households.values(), key=len, reverse=True)


def household_blocks(stops: Sequence[Participant], precision: int | None = None) -> list[tuple[int, int]]:
    """``(start, stop)`` slices of maximal runs of consecutive same-point stops."""
    precision = settings.coordinate_precision if precision is None else precision
    blocks: list[tuple[int, int]] = []
    start = 0
    for index in range(1, len(stops) + 1):
        if index == len(stops) or stops[index].coords.rounded(precision) != stops[start].coords.rounded(precision):
            blocks.append((start, index))
            start = index
    return blocks


def splice_distance(
    legs: LegTable,
    before: Optional[Coordinates],
    points: Sequence[Coordinates],
    after: Optional[Coordinates],
) -> float:
    """Loaded distance added by visiting ``points`` in order between two neighbours.

    ``None`` marks the empty end of the route; the leg on that side is not
    counted and nothing is saved by breaking it.
    """
    added = sum(legs.distance(a, b) for a, b in zip(points, points[1:]))
    if before is not None:
        added += legs.distance(before, points[0])
    if after is not None:
        added += legs.distance(points[-1], after)
    if before is not None and after is not None:
        added -= legs.distance(before, after)
    return added


def loaded_neighbours(
    route: RouteBuilder, start: int, stop: int, *, pickup: bool
) -> tuple[Optional[Coordinates], Optional[Coordinates]]:
    """Neighbours of ``stops[start:stop]`` (an empty slice is an insertion slot)."""
    before, after = route.path[start], route.path[stop + 1]
    if pickup and start == 0:
        before = None
    if not pickup and stop == len(route.stops):
        after = None
    return before, after


def loaded_distance(route: RouteBuilder, legs: LegTable, *, pickup: bool) -> float:
    if route.is_empty:
        return 0.0
    path = route.path[1:] if pickup else route.path[:-1]
    return sum(legs.distance(path[i], path[i + 1]) for i in range(len(path) - 1))


class DistanceMinimizingRouter(Router):
    """Assigns participants so that the total loaded distance is as small as possible."""

    name = "distance"

    def __init__(
        self,
        oracle: DistanceOracle,
        *,
        max_inter_route_iterations: int | None = None,
        min_improvement_meters: float | None = None,
        precision: int | None = None,
    ) -> None:
        super().__init__(oracle, max_inter_route_iterations=max_inter_route_iterations)
        self.min_improvement_meters = (
            settings.distance_improvement_meters if min_improvement_meters is None else min_improvement_meters
        )
        self.precision = settings.coordinate_precision if precision is None else precision

    def _construct(
        self, request: RoutingRequest, routes: list[RouteBuilder], unassigned: list[Participant], legs: LegTable
    ) -> list[Participant]:
        checkpoint(request, "insertion")
        phase_started = time.perf_counter()
        pickup = request.mode == ROUTE_MODE_PICKUP
        regular = [route for route in routes if not route.is_overflow]
        households = group_households(unassigned, self.precision)
        logger.info(f"Grouped {len(unassigned)} participant(s) into {len(households)} household(s)")

        while households:
            best = _best_placement(regular, households, legs, pickup=pickup, whole=True)
            if best is None:
                best = _best_placement(regular, households, legs, pickup=pickup, whole=False)
            if best is None:
                break

            cost, route, index, position, size = best
            household = households[index]
            members = household[:size]
            route.set_stops(route.stops[:position] + members + route.stops[position:], legs)
            if size < len(household):
                households[index] = household[size:]
                logger.debug(f"Split household of {members[0].id}: {len(household) - size} member(s) left")
            else:
                households.pop(index)
            logger.debug(
                f"Inserted {[p.id for p in members]} on driver {route.driver.id} at position {position} "
                f"(+{cost:.0f}m)"
            )

        remaining = [member for household in households for member in household]
        logger.info(f"Insertion: {time.perf_counter() - phase_started:.3f}s, {len(remaining)} left")
        return remaining

    def _improve(self, request: RoutingRequest, routes: list[RouteBuilder], unassigned_count: int, legs: LegTable) -> None:
        pickup = request.mode == ROUTE_MODE_PICKUP

        checkpoint(request, "2-opt")
        phase_started = time.perf_counter()
        reversals = sum(self._two_opt(route, legs, pickup=pickup) for route in routes)
        logger.info(f"2-opt: {time.perf_counter() - phase_started:.3f}s, {reversals} reversal(s)")

        checkpoint(request, "relocation")
        phase_started = time.perf_counter()
        regular = [route for route in routes if not route.is_overflow]
        iterations = 0
        while iterations < self.max_inter_route_iterations:
            checkpoint(request, "relocation iteration")
            move = _best_relocation(regular, legs, pickup=pickup, precision=self.precision)
            if move is None or move[0] <= self.min_improvement_meters:
                break
            iterations += 1

            saving, source, start, stop, target, position = move
            block = source.stops[start:stop]
            source.set_stops(source.stops[:start] + source.stops[stop:], legs)
            target.set_stops(target.stops[:position] + block + target.stops[position:], legs)
            self._two_opt(source, legs, pickup=pickup)
            self._two_opt(target, legs, pickup=pickup)
            logger.debug(
                f"Relocated {[p.id for p in block]} from {source.driver.id} to {target.driver.id} "
                f"(saved {saving:.0f}m)"
            )

        total = sum(loaded_distance(route, legs, pickup=pickup) for route in regular)
        logger.info(
            f"Relocation: {time.perf_counter() - phase_started:.3f}s, {iterations} move(s), "
            f"loaded distance {total:.0f}m"
        )

    def _fill_overflow(self, route: RouteBuilder, unassigned: list[Participant], legs: LegTable) -> list[Participant]:
        return fill_overflow(route, unassigned, legs, cost=legs.distance)

    def _two_opt(self, route: RouteBuilder, legs: LegTable, *, pickup: bool) -> int:
        if route.is_overflow:
            return two_opt_route(route, legs, cost=legs.distance)
        return two_opt_route(route, legs, cost=legs.distance, open_start=pickup, open_end=not pickup)


def _best_placement(
    routes: Sequence[RouteBuilder],
    households: Sequence[Sequence[Participant]],
    legs: LegTable,
    *,
    pickup: bool,
    whole: bool,
) -> Placement | None:
    """Cheapest (cost, route, household index, position, size); first found wins ties."""
    best: Placement | None = None
    for index, household in enumerate(households):
        size = len(household) if whole else 1
        points = [member.coords for member in household[:size]]
        for route in routes:
            if route.free_seats < size:
                continue
            for position in range(len(route.stops) + 1):
                before, after = loaded_neighbours(route, position, position, pickup=pickup)
                cost = splice_distance(legs, before, points, after)
                if best is None or cost < best[0]:
                    best = (cost, route, index, position, size)
    return best


def _best_relocation(
    routes: Sequence[RouteBuilder],
    legs: LegTable,
    *,
    pickup: bool,
    precision: int,
) -> Relocation | None:
    """Largest-saving move of one household block to another regular route."""
    best: Relocation | None = None
    for source in routes:
        for start, stop in household_blocks(source.stops, precision):
            size = stop - start
            points = [member.coords for member in source.stops[start:stop]]
            before, after = loaded_neighbours(source, start, stop, pickup=pickup)
            removal = splice_distance(legs, before, points, after)
            for target in routes:
                if target is source or target.free_seats < size:
                    continue
                for position in range(len(target.stops) + 1):
                    t_before, t_after = loaded_neighbours(target, position, position, pickup=pickup)
                    saving = removal - splice_distance(legs, t_before, points, t_after)
                    if best is None or saving > best[0]:
                        best = (saving, source, start, stop, target, position)
    return best
