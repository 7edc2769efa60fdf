"""Distance/duration oracles consumed by the routing engine.

An oracle answers ``get_distance``, ``get_distance_matrix`` and
``prewarm_cache``. Same-point queries short-circuit to zero without touching
the backend. Oracles keep their cache behind a lock so a single instance can
serve concurrent routing calls.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Protocol, Sequence

from ...config import settings
from ...models.domain import Coordinates, same_point
from ..geospatial import haversine_km
from .osrm_client import OSRMClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DistanceResult:
    distance_meters: float
    duration_secs: float


ZERO_DISTANCE = DistanceResult(distance_meters=0.0, duration_secs=0.0)


class DistanceCalculationFailed(Exception):
    """Raised when the backend cannot produce a distance for a pair of points."""

    def __init__(self, reason: str, origin: Coordinates | None = None, dest: Coordinates | None = None) -> None:
        super().__init__(f"distance calculation failed: {reason}")
        self.reason = reason
        self.origin = origin
        self.dest = dest


class DistanceOracle(Protocol):
    def get_distance(self, origin: Coordinates, dest: Coordinates) -> DistanceResult: ...

    def get_distance_matrix(self, points: Sequence[Coordinates]) -> list[list[DistanceResult]]: ...

    def prewarm_cache(self, points: Sequence[Coordinates]) -> None: ...


class HaversineDistanceOracle:
    """Great-circle distances with durations estimated from an average speed."""

    def __init__(self, average_speed_kmh: float | None = None, precision: int | None = None) -> None:
        self.average_speed_kmh = average_speed_kmh or settings.haversine_average_speed_kmh
        self.precision = precision if precision is not None else settings.coordinate_precision

    def get_distance(self, origin: Coordinates, dest: Coordinates) -> DistanceResult:
        if same_point(origin, dest, self.precision):
            return ZERO_DISTANCE
        distance_km = haversine_km(origin.lat, origin.lng, dest.lat, dest.lng)
        duration_hours = distance_km / self.average_speed_kmh
        return DistanceResult(distance_meters=distance_km * 1000.0, duration_secs=duration_hours * 3600.0)

    def get_distance_matrix(self, points: Sequence[Coordinates]) -> list[list[DistanceResult]]:
        return [[self.get_distance(origin, dest) for dest in points] for origin in points]

    def prewarm_cache(self, points: Sequence[Coordinates]) -> None:
        return None


class OSRMDistanceOracle:
    """OSRM table lookups with an in-memory cache keyed by rounded coordinates."""

    def __init__(self, client: OSRMClient | None = None, precision: int | None = None) -> None:
        self.client = client or OSRMClient()
        self.precision = precision if precision is not None else settings.coordinate_precision
        self._cache: dict[tuple[tuple[float, float], tuple[float, float]], DistanceResult] = {}
        self._lock = threading.Lock()

    def _key(self, origin: Coordinates, dest: Coordinates) -> tuple[tuple[float, float], tuple[float, float]]:
        return (origin.rounded(self.precision), dest.rounded(self.precision))

    def _cached(self, origin: Coordinates, dest: Coordinates) -> DistanceResult | None:
        with self._lock:
            return self._cache.get(self._key(origin, dest))

    def _fetch_table(self, points: Sequence[Coordinates]) -> dict:
        try:
            return self.client.table([(point.lat, point.lng) for point in points])
        except Exception as exc:
            logger.error(f"OSRM table request failed for {len(points)} points: {exc}")
            raise DistanceCalculationFailed(str(exc)) from exc

    def _store_table(self, points: Sequence[Coordinates], table: dict) -> int:
        durations = table.get("durations") or []
        distances = table.get("distances") or []
        stored = 0
        with self._lock:
            for i, origin in enumerate(points):
                for j, dest in enumerate(points):
                    if i == j:
                        continue
                    try:
                        duration = durations[i][j]
                        distance = distances[i][j]
                    except IndexError:
                        continue
                    if duration is None or distance is None:
                        continue
                    self._cache[self._key(origin, dest)] = DistanceResult(
                        distance_meters=float(distance), duration_secs=float(duration)
                    )
                    stored += 1
        return stored

    def get_distance(self, origin: Coordinates, dest: Coordinates) -> DistanceResult:
        if same_point(origin, dest, self.precision):
            return ZERO_DISTANCE
        cached = self._cached(origin, dest)
        if cached is not None:
            return cached

        logger.debug(
            f"OSRM cache miss: origin=({origin.lat:.6f},{origin.lng:.6f}) dest=({dest.lat:.6f},{dest.lng:.6f})"
        )
        self._store_table([origin, dest], self._fetch_table([origin, dest]))
        result = self._cached(origin, dest)
        if result is None:
            raise DistanceCalculationFailed("no route between points", origin=origin, dest=dest)
        return result

    def get_distance_matrix(self, points: Sequence[Coordinates]) -> list[list[DistanceResult]]:
        self.prewarm_cache(points)
        return [[self.get_distance(origin, dest) for dest in points] for origin in points]

    def prewarm_cache(self, points: Sequence[Coordinates]) -> None:
        unique: list[Coordinates] = []
        seen: set[tuple[float, float]] = set()
        for point in points:
            key = point.rounded(self.precision)
            if key not in seen:
                seen.add(key)
                unique.append(point)
        if len(unique) < 2:
            return

        with self._lock:
            missing = any(
                self._key(origin, dest) not in self._cache
                for origin in unique
                for dest in unique
                if origin is not dest
            )
        if not missing:
            logger.debug(f"OSRM prewarm: all {len(unique)} points cached")
            return

        stored = self._store_table(unique, self._fetch_table(unique))
        logger.info(f"OSRM prewarm: points={len(unique)} pairs_cached={stored}")


def build_default_oracle() -> DistanceOracle:
    """OSRM when a base URL is configured, otherwise haversine estimates."""
    if settings.osrm_base_url:
        return OSRMDistanceOracle(OSRMClient())
    logger.warning("OSRM base URL is not configured; using haversine distance estimates.")
    return HaversineDistanceOracle()
