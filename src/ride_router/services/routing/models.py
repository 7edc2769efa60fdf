"""Routing domain models."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import List, Literal, Optional

from ...models.domain import Coordinates, Driver, Participant

RouteMode = Literal["dropoff", "pickup"]
ROUTE_MODE_DROPOFF: RouteMode = "dropoff"
ROUTE_MODE_PICKUP: RouteMode = "pickup"

RoutingStrategy = Literal["fairness", "distance"]
STRATEGY_FAIRNESS: RoutingStrategy = "fairness"
STRATEGY_DISTANCE: RoutingStrategy = "distance"


@dataclass(slots=True)
class RoutingRequest:
    """Input of one routing call.

    ``deadline`` is a ``time.monotonic()`` timestamp; ``cancel_event`` lets
    another thread abort the call. Both are only checked between phases and
    between inter-route iterations. ``strategy`` picks the router that
    serves the call.
    """

    origin: Coordinates
    participants: List[Participant]
    drivers: List[Driver]
    overflow_vehicle: Optional[Driver] = None
    overflow_driver_id: Optional[str] = None
    mode: RouteMode = ROUTE_MODE_DROPOFF
    strategy: RoutingStrategy = STRATEGY_FAIRNESS
    seed: Optional[int] = None
    deadline: Optional[float] = None
    cancel_event: Optional[threading.Event] = None


@dataclass(slots=True)
class RouteStop:
    order: int
    participant: Participant
    distance_from_prev_meters: float
    cumulative_distance_meters: float
    duration_from_prev_secs: float
    cumulative_duration_secs: float


@dataclass(slots=True)
class CalculatedRoute:
    driver: Driver
    stops: List[RouteStop]
    destination: Coordinates
    total_dropoff_distance_meters: float
    distance_to_destination_meters: float
    duration_to_destination_secs: float
    total_distance_meters: float
    baseline_duration_secs: float
    route_duration_secs: float
    detour_secs: float
    used_overflow_vehicle: bool = False
    overflow_driver_id: Optional[str] = None


@dataclass(slots=True)
class RoutingSummary:
    total_participants: int
    total_drivers_used: int
    total_dropoff_distance_meters: float
    total_distance_meters: float
    max_detour_secs: float
    sum_detour_secs: float
    average_detour_secs: float
    used_overflow_vehicle: bool


@dataclass(slots=True)
class RoutingResult:
    routes: List[CalculatedRoute]
    summary: RoutingSummary
    warnings: List[str]
    mode: RouteMode = ROUTE_MODE_DROPOFF

    def assignment(self) -> dict[str, list[str]]:
        """Driver id -> ordered participant ids, the shape ``reoptimize`` accepts."""
        return {route.driver.id: [stop.participant.id for stop in route.stops] for route in self.routes}
