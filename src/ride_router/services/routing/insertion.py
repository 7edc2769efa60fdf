"""Marginal duration changes for splicing stops in and out of a route."""

from __future__ import annotations

from ...models.domain import Coordinates, Participant
from .legs import LegTable
from .route_builder import RouteBuilder


def insertion_cost(legs: LegTable, a: Coordinates, b: Coordinates, p: Coordinates) -> float:
    """ins(a, b, p) = time(a, p) + time(p, b) - time(a, b)."""
    return legs.duration(a, p) + legs.duration(p, b) - legs.duration(a, b)


def insertion_delta(route: RouteBuilder, participant: Participant, position: int, legs: LegTable) -> float:
    prev_point, next_point = route.slot_neighbours(position)
    return insertion_cost(legs, prev_point, next_point, participant.coords)


def removal_delta(route: RouteBuilder, position: int, legs: LegTable) -> float:
    """Duration change when the stop at ``position`` is taken out (usually negative)."""
    prev_point, next_point = route.stop_neighbours(position)
    return -insertion_cost(legs, prev_point, next_point, route.stops[position].coords)


def replacement_delta(route: RouteBuilder, position: int, participant: Participant, legs: LegTable) -> float:
    """Duration change when the stop at ``position`` is swapped for ``participant`` in place."""
    prev_point, next_point = route.stop_neighbours(position)
    current = route.stops[position].coords
    incoming = participant.coords
    before = legs.duration(prev_point, current) + legs.duration(current, next_point)
    after = legs.duration(prev_point, incoming) + legs.duration(incoming, next_point)
    return after - before
