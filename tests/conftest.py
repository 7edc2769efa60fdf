import math
from typing import Sequence

import pytest

from ride_router.models.domain import Coordinates, Driver, Participant, same_point
from ride_router.services.distance.oracle import DistanceResult


class PlanarOracle:
    """Straight-line oracle on the raw lat/lng plane: 1 unit = 1000 m = 100 s."""

    def __init__(self, meters_per_unit: float = 1000.0, seconds_per_unit: float = 100.0) -> None:
        self.meters_per_unit = meters_per_unit
        self.seconds_per_unit = seconds_per_unit
        self.calls = 0
        self.prewarmed: list[Coordinates] = []

    def get_distance(self, origin: Coordinates, dest: Coordinates) -> DistanceResult:
        self.calls += 1
        if same_point(origin, dest):
            return DistanceResult(0.0, 0.0)
        units = math.hypot(origin.lat - dest.lat, origin.lng - dest.lng)
        return DistanceResult(units * self.meters_per_unit, units * self.seconds_per_unit)

    def get_distance_matrix(self, points: Sequence[Coordinates]) -> list[list[DistanceResult]]:
        return [[self.get_distance(a, b) for b in points] for a in points]

    def prewarm_cache(self, points: Sequence[Coordinates]) -> None:
        self.prewarmed = list(points)


class FailingOracle(PlanarOracle):
    def get_distance(self, origin: Coordinates, dest: Coordinates) -> DistanceResult:
        raise ConnectionError("distance service unreachable")


def participant(pid: str, lat: float, lng: float) -> Participant:
    return Participant(id=pid, name=f"Participant {pid}", lat=lat, lng=lng)


def driver(did: str, lat: float, lng: float, capacity: int = 4, is_overflow: bool = False) -> Driver:
    return Driver(id=did, name=f"Driver {did}", lat=lat, lng=lng, vehicle_capacity=capacity, is_overflow=is_overflow)


@pytest.fixture
def oracle() -> PlanarOracle:
    return PlanarOracle()
