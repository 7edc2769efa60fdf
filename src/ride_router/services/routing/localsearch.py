"""Intra-route 2-opt and inter-route rebalancing."""

from __future__ import annotations

import logging
from typing import Callable, Sequence

from ...models.domain import Coordinates, Participant
from .fairness import FairnessTuple, RouteChange, fairness_tuple, is_better_fairness
from .insertion import insertion_delta, removal_delta, replacement_delta
from .legs import LegTable
from .route_builder import RouteBuilder

logger = logging.getLogger(__name__)

# Smallest cost gain that counts as an improvement for 2-opt.
IMPROVEMENT_TOLERANCE = 1e-9

MIN_STOPS_FOR_TWO_OPT = 3


EdgeCost = Callable[[Coordinates, Coordinates], float]


def _segment_cost(stops: Sequence[Participant], i: int, j: int, edge: EdgeCost, *, reverse: bool = False) -> float:
    """Cost of the internal edges of ``stops[i:j]``, optionally walked backwards."""
    total = 0.0
    for k in range(i, j - 1):
        a, b = stops[k].coords, stops[k + 1].coords
        total += edge(b, a) if reverse else edge(a, b)
    return total


def two_opt_route(
    route: RouteBuilder,
    legs: LegTable,
    *,
    cost: EdgeCost | None = None,
    open_start: bool = False,
    open_end: bool = False,
) -> int:
    """Apply improving segment reversals until a full scan finds none.

    Edges are weighted by ``cost`` (leg duration by default). ``open_start``
    and ``open_end`` leave the leg out of the start or into the end out of the
    objective, so an empty leg does not steer the stop order.

    Returns the number of reversals applied. Routes with fewer than three
    stops are left untouched.
    """
    if len(route.stops) < MIN_STOPS_FOR_TWO_OPT:
        return 0

    edge = cost or legs.duration
    reversals = 0
    improved = True
    while improved:
        improved = False
        n = len(route.stops)
        for i in range(n - 1):
            for j in range(i + 2, n + 1):
                stops = route.stops
                before = route.start if i == 0 else stops[i - 1].coords
                after = route.end if j == n else stops[j].coords
                first, last = stops[i].coords, stops[j - 1].coords
                skip_before = open_start and i == 0
                skip_after = open_end and j == n

                current = (
                    (0.0 if skip_before else edge(before, first))
                    + _segment_cost(stops, i, j, edge)
                    + (0.0 if skip_after else edge(last, after))
                )
                candidate = (
                    (0.0 if skip_before else edge(before, last))
                    + _segment_cost(stops, i, j, edge, reverse=True)
                    + (0.0 if skip_after else edge(first, after))
                )
                if candidate + IMPROVEMENT_TOLERANCE < current:
                    route.reverse_segment(i, j, legs)
                    reversals += 1
                    improved = True

    if reversals:
        logger.debug(f"2-opt: driver {route.driver.id} reversals={reversals} duration={route.current_duration:.1f}s")
    return reversals


def optimize_all_routes(routes: Sequence[RouteBuilder], legs: LegTable) -> int:
    return sum(two_opt_route(route, legs) for route in routes)


def try_relocate(
    routes: Sequence[RouteBuilder],
    source: RouteBuilder,
    target: RouteBuilder,
    unassigned_count: int,
    legs: LegTable,
    epsilon: float | None = None,
) -> bool:
    """Move the single stop from ``source`` to ``target`` that best improves fairness."""
    if source.is_empty or not target.has_capacity:
        return False

    best: FairnessTuple = fairness_tuple(routes, unassigned_count)
    move: tuple[int, int] | None = None

    for src_pos, participant in enumerate(source.stops):
        source_change = RouteChange(
            detour=source.detour + removal_delta(source, src_pos, legs),
            stop_count=len(source.stops) - 1,
        )
        for dst_pos in range(len(target.stops) + 1):
            target_change = RouteChange(
                detour=target.detour + insertion_delta(target, participant, dst_pos, legs),
                stop_count=len(target.stops) + 1,
            )
            candidate = fairness_tuple(
                routes,
                unassigned_count,
                {source.driver.id: source_change, target.driver.id: target_change},
            )
            if is_better_fairness(candidate, best, epsilon):
                best = candidate
                move = (src_pos, dst_pos)

    if move is None:
        return False

    src_pos, dst_pos = move
    participant = source.remove(src_pos, legs)
    target.insert(participant, dst_pos, legs)
    two_opt_route(source, legs)
    two_opt_route(target, legs)
    logger.debug(
        f"Relocated {participant.id} from {source.driver.id} to {target.driver.id} "
        f"(max_detour={best.max_detour:.1f}s, sum_detour={best.sum_detour:.1f}s)"
    )
    return True


def try_swap(
    routes: Sequence[RouteBuilder],
    first: RouteBuilder,
    second: RouteBuilder,
    unassigned_count: int,
    legs: LegTable,
    epsilon: float | None = None,
) -> bool:
    """Exchange one stop of ``first`` with one stop of ``second``, each keeping its slot."""
    if first.is_empty or second.is_empty:
        return False

    best: FairnessTuple = fairness_tuple(routes, unassigned_count)
    move: tuple[int, int] | None = None

    for pos_a, participant_a in enumerate(first.stops):
        for pos_b, participant_b in enumerate(second.stops):
            change_a = RouteChange(
                detour=first.detour + replacement_delta(first, pos_a, participant_b, legs),
                stop_count=len(first.stops),
            )
            change_b = RouteChange(
                detour=second.detour + replacement_delta(second, pos_b, participant_a, legs),
                stop_count=len(second.stops),
            )
            candidate = fairness_tuple(
                routes,
                unassigned_count,
                {first.driver.id: change_a, second.driver.id: change_b},
            )
            if is_better_fairness(candidate, best, epsilon):
                best = candidate
                move = (pos_a, pos_b)

    if move is None:
        return False

    pos_a, pos_b = move
    participant_a = first.stops[pos_a]
    participant_b = second.replace(pos_b, participant_a, legs)
    first.replace(pos_a, participant_b, legs)
    two_opt_route(first, legs)
    two_opt_route(second, legs)
    logger.debug(f"Swapped {participant_a.id} ({first.driver.id}) with {participant_b.id} ({second.driver.id})")
    return True


def rebalance_routes(
    routes: Sequence[RouteBuilder],
    unassigned_count: int,
    legs: LegTable,
    *,
    max_iterations: int,
    epsilon: float | None = None,
    checkpoint: Callable[[], None] | None = None,
) -> int:
    """Relocate/swap between every pair of regular routes until nothing improves.

    ``checkpoint`` is called before each outer iteration and may raise to
    abort. Returns the number of outer iterations that ran.
    """
    regular = [route for route in routes if not route.is_overflow]
    iterations = 0
    improved = True

    while improved and iterations < max_iterations:
        if checkpoint is not None:
            checkpoint()
        improved = False
        iterations += 1
        moves = 0

        for i in range(len(regular)):
            for j in range(i + 1, len(regular)):
                a, b = regular[i], regular[j]
                if try_relocate(regular, a, b, unassigned_count, legs, epsilon):
                    moves += 1
                if try_relocate(regular, b, a, unassigned_count, legs, epsilon):
                    moves += 1
                if try_swap(regular, a, b, unassigned_count, legs, epsilon):
                    moves += 1

        improved = moves > 0
        logger.debug(f"Rebalance iteration {iterations}: {moves} move(s) accepted")

    return iterations
