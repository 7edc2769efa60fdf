"""Construction phases: seeding, fairness-driven insertion and overflow fill."""

from __future__ import annotations

import logging
from typing import Sequence

from ...models.domain import Participant
from .fairness import FairnessTuple, RouteChange, fairness_tuple, is_better_fairness
from .insertion import insertion_cost, insertion_delta
from .legs import LegTable
from .localsearch import EdgeCost, two_opt_route
from .route_builder import RouteBuilder

logger = logging.getLogger(__name__)


def seed_routes(
    routes: Sequence[RouteBuilder],
    unassigned: Sequence[Participant],
    legs: LegTable,
) -> list[Participant]:
    """Give every driver one participant before fairness insertion starts.

    Greedy matching on the cost of inserting a participant between a driver's
    start and end: the globally cheapest (driver, participant) pair is taken
    first, ties go to the pair seen first (driver order, then participant
    order). Only runs when there are at least as many participants as
    drivers. Returns the participants that are still unassigned.
    """
    regular = [route for route in routes if not route.is_overflow]
    if not regular or len(unassigned) < len(regular):
        return list(unassigned)

    candidates: list[tuple[float, int, int]] = []
    for route_idx, route in enumerate(regular):
        for participant_idx, participant in enumerate(unassigned):
            cost = insertion_cost(legs, route.start, route.end, participant.coords)
            candidates.append((cost, route_idx, participant_idx))

    seeded_routes: set[int] = set()
    seeded_participants: set[int] = set()

    while len(seeded_routes) < len(regular) and len(seeded_participants) < len(unassigned):
        best: tuple[float, int, int] | None = None
        for candidate in candidates:
            _, route_idx, participant_idx = candidate
            if route_idx in seeded_routes or participant_idx in seeded_participants:
                continue
            if best is None or candidate[0] < best[0]:
                best = candidate
        if best is None:
            break

        cost, route_idx, participant_idx = best
        route = regular[route_idx]
        participant = unassigned[participant_idx]
        route.insert(participant, 0, legs)
        seeded_routes.add(route_idx)
        seeded_participants.add(participant_idx)
        logger.debug(f"Seeded {participant.id} on driver {route.driver.id} (cost={cost:.1f}s)")

    return [p for idx, p in enumerate(unassigned) if idx not in seeded_participants]


def cheapest_insertion(
    routes: Sequence[RouteBuilder],
    unassigned: Sequence[Participant],
    legs: LegTable,
    epsilon: float | None = None,
) -> list[Participant]:
    """Insert participants one at a time at the placement with the best fairness tuple.

    Stops when everybody is placed or every regular driver is full; the
    leftovers are returned for the overflow phase.
    """
    remaining = list(unassigned)

    while remaining:
        best: tuple[FairnessTuple, RouteBuilder, int, int] | None = None

        for participant_idx, participant in enumerate(remaining):
            for route in routes:
                if route.is_overflow or not route.has_capacity:
                    continue
                for position in range(len(route.stops) + 1):
                    delta = insertion_delta(route, participant, position, legs)
                    candidate = fairness_tuple(
                        routes,
                        len(remaining) - 1,
                        {route.driver.id: RouteChange(route.detour + delta, len(route.stops) + 1)},
                    )
                    if best is None or is_better_fairness(candidate, best[0], epsilon):
                        best = (candidate, route, participant_idx, position)

        if best is None:
            logger.info(f"All drivers are full; {len(remaining)} participant(s) left for overflow")
            break

        candidate, route, participant_idx, position = best
        participant = remaining.pop(participant_idx)
        route.insert(participant, position, legs)
        logger.debug(
            f"Inserted {participant.id} on driver {route.driver.id} at position {position} "
            f"(max_detour={candidate.max_detour:.1f}s)"
        )

    return remaining


def fill_overflow(
    route: RouteBuilder,
    unassigned: Sequence[Participant],
    legs: LegTable,
    cost: EdgeCost | None = None,
) -> list[Participant]:
    """Nearest-neighbour fill of the overflow vehicle, starting from its start point.

    Nearness and the closing 2-opt use ``cost`` (leg duration by default).
    """
    edge = cost or legs.duration
    remaining = list(unassigned)
    current = route.start

    while remaining and route.has_capacity:
        nearest = min(remaining, key=lambda p: edge(current, p.coords))
        route.insert(nearest, len(route.stops), legs)
        remaining.remove(nearest)
        current = nearest.coords

    two_opt_route(route, legs, cost=edge)
    logger.info(
        f"Overflow vehicle {route.driver.id} carries {len(route.stops)} participant(s); "
        f"{len(remaining)} still unassigned"
    )
    return remaining
