"""Mutable per-driver route used while a routing call is in progress."""

from __future__ import annotations

from typing import Sequence

from ...models.domain import Coordinates, Driver, Participant
from .legs import LegTable


class RouteBuilder:
    """One driver's stops plus the materialized path and its duration.

    ``path`` is always ``[start, *stops, end]`` and ``current_duration`` is
    recomputed from the leg table after every structural change. ``baseline``
    is the direct start->end duration and never changes after creation.
    """

    def __init__(
        self,
        driver: Driver,
        *,
        start: Coordinates,
        end: Coordinates,
        baseline: float,
        is_overflow: bool = False,
        overflow_driver_id: str | None = None,
    ) -> None:
        self.driver = driver
        self.start = start
        self.end = end
        self.baseline = baseline
        self.is_overflow = is_overflow
        self.overflow_driver_id = overflow_driver_id
        self.stops: list[Participant] = []
        self.path: list[Coordinates] = [start, end]
        self.current_duration = baseline

    def __repr__(self) -> str:
        return (
            f"RouteBuilder(driver={self.driver.id!r}, stops={[p.id for p in self.stops]!r}, "
            f"duration={self.current_duration:.1f})"
        )

    @property
    def capacity(self) -> int:
        return self.driver.vehicle_capacity

    @property
    def has_capacity(self) -> bool:
        return len(self.stops) < self.capacity

    @property
    def free_seats(self) -> int:
        return self.capacity - len(self.stops)

    @property
    def is_empty(self) -> bool:
        return not self.stops

    @property
    def detour(self) -> float:
        if self.is_overflow:
            return 0.0
        return self.current_duration - self.baseline

    def slot_neighbours(self, position: int) -> tuple[Coordinates, Coordinates]:
        """Points on either side of insertion slot ``position`` (0..len(stops))."""
        return self.path[position], self.path[position + 1]

    def stop_neighbours(self, position: int) -> tuple[Coordinates, Coordinates]:
        """Points on either side of the existing stop at ``position``."""
        return self.path[position], self.path[position + 2]

    def refresh(self, legs: LegTable) -> None:
        self.path = [self.start, *(stop.coords for stop in self.stops), self.end]
        self.current_duration = path_duration(self.path, legs)

    def insert(self, participant: Participant, position: int, legs: LegTable) -> None:
        self.stops.insert(position, participant)
        self.refresh(legs)

    def remove(self, position: int, legs: LegTable) -> Participant:
        participant = self.stops.pop(position)
        self.refresh(legs)
        return participant

    def replace(self, position: int, participant: Participant, legs: LegTable) -> Participant:
        previous = self.stops[position]
        self.stops[position] = participant
        self.refresh(legs)
        return previous

    def reverse_segment(self, i: int, j: int, legs: LegTable) -> None:
        """Reverse ``stops[i:j]`` in place."""
        self.stops[i:j] = self.stops[i:j][::-1]
        self.refresh(legs)

    def set_stops(self, stops: Sequence[Participant], legs: LegTable) -> None:
        self.stops = list(stops)
        self.refresh(legs)


def path_duration(path: Sequence[Coordinates], legs: LegTable) -> float:
    return sum(legs.duration(path[i], path[i + 1]) for i in range(len(path) - 1))
