"""Per-call memo in front of the distance oracle."""

from __future__ import annotations

import logging
from typing import Sequence

from ...models.domain import Coordinates
from ..distance.oracle import DistanceOracle, DistanceResult
from .errors import OracleFailure

logger = logging.getLogger(__name__)


class LegTable:
    """Caches oracle answers for the lifetime of one routing call.

    Every oracle exception is re-raised as :class:`OracleFailure` so the
    orchestrator aborts without a partial result.
    """

    def __init__(self, oracle: DistanceOracle) -> None:
        self.oracle = oracle
        self._legs: dict[tuple[Coordinates, Coordinates], DistanceResult] = {}
        self.lookups = 0

    def prewarm(self, points: Sequence[Coordinates]) -> None:
        try:
            self.oracle.prewarm_cache(points)
        except Exception as exc:
            logger.error(f"Distance prewarm failed for {len(points)} points: {exc}")
            raise OracleFailure(f"distance prewarm failed: {exc}") from exc

    def leg(self, origin: Coordinates, dest: Coordinates) -> DistanceResult:
        key = (origin, dest)
        cached = self._legs.get(key)
        if cached is not None:
            return cached
        self.lookups += 1
        try:
            result = self.oracle.get_distance(origin, dest)
        except Exception as exc:
            logger.error(
                f"Distance lookup failed: origin=({origin.lat:.6f},{origin.lng:.6f}) "
                f"dest=({dest.lat:.6f},{dest.lng:.6f}): {exc}"
            )
            raise OracleFailure(f"distance lookup failed: {exc}") from exc
        self._legs[key] = result
        return result

    def duration(self, origin: Coordinates, dest: Coordinates) -> float:
        return self.leg(origin, dest).duration_secs

    def distance(self, origin: Coordinates, dest: Coordinates) -> float:
        return self.leg(origin, dest).distance_meters
