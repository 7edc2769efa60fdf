"""Ride-home routers.

:class:`Router` owns the pipeline shared by every strategy:

0. baselines: direct start->end duration per driver
1. construction (strategy specific)
2. improvement inside and between routes (strategy specific)
3. overflow vehicle for whoever is left

:class:`FairnessRouter` constructs by seeding one participant per driver and
then cheapest insertion ranked by the fairness tuple, and improves with 2-opt
followed by relocate/swap between pairs of routes.

Phases run strictly in order on a single thread. Deadline and cancellation
are honoured between phases and between rebalancing iterations.
"""

from __future__ import annotations

import logging
import random
import time
from collections import Counter
from typing import Mapping, Sequence

from ...config import settings
from ...models.domain import Coordinates, Driver, Participant
from ..distance.oracle import DistanceOracle
from .assembly import build_result
from .construct import cheapest_insertion, fill_overflow, seed_routes
from .errors import CapacityExceeded, InvalidRoutingInput, RoutingCancelled
from .legs import LegTable
from .localsearch import optimize_all_routes, rebalance_routes
from .models import ROUTE_MODE_DROPOFF, ROUTE_MODE_PICKUP, RoutingRequest, RoutingResult, RoutingSummary
from .route_builder import RouteBuilder

logger = logging.getLogger(__name__)

VALID_MODES = (ROUTE_MODE_DROPOFF, ROUTE_MODE_PICKUP)


class Router:
    """Validation, prewarm, baselines, overflow and assembly around a strategy."""

    name = "base"

    def __init__(
        self,
        oracle: DistanceOracle,
        *,
        epsilon: float | None = None,
        max_inter_route_iterations: int | None = None,
    ) -> None:
        self.oracle = oracle
        self.epsilon = settings.fairness_epsilon_seconds if epsilon is None else epsilon
        self.max_inter_route_iterations = (
            settings.max_inter_route_iterations if max_inter_route_iterations is None else max_inter_route_iterations
        )

    def calculate_routes(self, request: RoutingRequest) -> RoutingResult:
        """Run the full pipeline.

        Raises:
            InvalidRoutingInput: request rejected before any oracle call.
            OracleFailure: a distance lookup failed.
            CapacityExceeded: participants left after the overflow vehicle.
            RoutingCancelled: deadline passed or cancel event set.
        """
        started = time.perf_counter()
        drivers, overflow = _validate(request)
        total = len(request.participants)

        if total == 0:
            logger.info("No participants to route")
            return _empty_result(request)

        logger.info(
            f"Routing {total} participant(s) with {len(drivers)} driver(s), strategy={self.name}, "
            f"overflow={'yes' if overflow else 'no'}, mode={request.mode}"
        )

        checkpoint(request, "distance prewarm")
        legs = LegTable(self.oracle)
        phase_started = time.perf_counter()
        legs.prewarm(_prewarm_points(request, drivers, overflow))
        logger.info(f"Prewarm: {time.perf_counter() - phase_started:.3f}s")

        checkpoint(request, "baselines")
        phase_started = time.perf_counter()
        routes = _initialize_routes(request, drivers, legs)
        logger.info(f"Phase 0 (baselines): {time.perf_counter() - phase_started:.3f}s")

        working = list(routes)
        if request.seed is not None:
            random.Random(request.seed).shuffle(working)

        unassigned: list[Participant] = list(request.participants)
        _check_conservation(working, unassigned, total, "baselines")

        unassigned = self._construct(request, working, unassigned, legs)
        _check_conservation(working, unassigned, total, "construction")

        self._improve(request, working, len(unassigned), legs)
        _check_conservation(working, unassigned, total, "local search")

        if unassigned and overflow is not None:
            checkpoint(request, "overflow")
            phase_started = time.perf_counter()
            overflow_route = _overflow_route(request, overflow)
            unassigned = self._fill_overflow(overflow_route, unassigned, legs)
            routes.append(overflow_route)
            _check_conservation(routes, unassigned, total, "overflow")
            logger.info(f"Overflow phase: {time.perf_counter() - phase_started:.3f}s")

        if unassigned:
            raise _capacity_exceeded(unassigned, drivers, overflow, total)

        result = build_result(routes, legs, mode=request.mode)
        logger.info(
            f"Routing done in {time.perf_counter() - started:.3f}s: {result.summary.total_drivers_used} route(s), "
            f"max_detour={result.summary.max_detour_secs:.1f}s, "
            f"dropoff_distance={result.summary.total_dropoff_distance_meters:.0f}m, {legs.lookups} oracle lookup(s)"
        )
        return result

    def reoptimize(self, request: RoutingRequest, assignment: Mapping[str, Sequence[str]]) -> RoutingResult:
        """Re-run sequencing and rebalancing for a fixed driver -> participants partition.

        ``assignment`` maps driver ids (the overflow vehicle included) to
        ordered participant ids and must cover every participant exactly once.
        Only baselines and the improvement phase run; construction is skipped.
        """
        started = time.perf_counter()
        drivers, overflow = _validate(request)
        total = len(request.participants)
        placement = _validate_assignment(request, drivers, overflow, assignment)

        if total == 0:
            return _empty_result(request)

        checkpoint(request, "distance prewarm")
        legs = LegTable(self.oracle)
        legs.prewarm(_prewarm_points(request, drivers, overflow))

        checkpoint(request, "baselines")
        routes = _initialize_routes(request, drivers, legs)
        if overflow is not None:
            routes.append(_overflow_route(request, overflow))

        for route in routes:
            stops = placement.get(route.driver.id)
            if stops:
                route.set_stops(stops, legs)
        _check_conservation(routes, [], total, "placement")

        self._improve(request, routes, 0, legs)
        _check_conservation(routes, [], total, "local search")

        result = build_result(routes, legs, mode=request.mode)
        logger.info(f"Re-optimization ({self.name}) done in {time.perf_counter() - started:.3f}s")
        return result

    def _construct(
        self, request: RoutingRequest, routes: list[RouteBuilder], unassigned: list[Participant], legs: LegTable
    ) -> list[Participant]:
        """Place participants on regular drivers; return whoever is left."""
        raise NotImplementedError

    def _improve(self, request: RoutingRequest, routes: list[RouteBuilder], unassigned_count: int, legs: LegTable) -> None:
        raise NotImplementedError

    def _fill_overflow(self, route: RouteBuilder, unassigned: list[Participant], legs: LegTable) -> list[Participant]:
        return fill_overflow(route, unassigned, legs)


class FairnessRouter(Router):
    """Assigns participants to drivers, minimising the worst driver detour first."""

    name = "fairness"

    def _construct(
        self, request: RoutingRequest, routes: list[RouteBuilder], unassigned: list[Participant], legs: LegTable
    ) -> list[Participant]:
        checkpoint(request, "seeding")
        phase_started = time.perf_counter()
        unassigned = seed_routes(routes, unassigned, legs)
        logger.info(f"Phase 1 (seeding): {time.perf_counter() - phase_started:.3f}s, {len(unassigned)} left")

        checkpoint(request, "insertion")
        phase_started = time.perf_counter()
        unassigned = cheapest_insertion(routes, unassigned, legs, self.epsilon)
        logger.info(f"Phase 2 (insertion): {time.perf_counter() - phase_started:.3f}s, {len(unassigned)} left")
        return unassigned

    def _improve(self, request: RoutingRequest, routes: list[RouteBuilder], unassigned_count: int, legs: LegTable) -> None:
        checkpoint(request, "2-opt")
        phase_started = time.perf_counter()
        reversals = optimize_all_routes(routes, legs)
        logger.info(f"Phase 3 (2-opt): {time.perf_counter() - phase_started:.3f}s, {reversals} reversal(s)")

        checkpoint(request, "rebalancing")
        phase_started = time.perf_counter()
        iterations = rebalance_routes(
            routes,
            unassigned_count,
            legs,
            max_iterations=self.max_inter_route_iterations,
            epsilon=self.epsilon,
            checkpoint=lambda: checkpoint(request, "rebalancing iteration"),
        )
        logger.info(f"Phase 4 (rebalancing): {time.perf_counter() - phase_started:.3f}s, {iterations} iteration(s)")


def _validate(request: RoutingRequest) -> tuple[list[Driver], Driver | None]:
    """Return (regular drivers, overflow vehicle) or raise InvalidRoutingInput."""
    if request.mode not in VALID_MODES:
        raise InvalidRoutingInput(f"unknown route mode: {request.mode!r}")

    flagged = [driver for driver in request.drivers if driver.is_overflow]
    candidates = flagged + ([request.overflow_vehicle] if request.overflow_vehicle is not None else [])
    if len(candidates) > 1:
        raise InvalidRoutingInput(
            f"only one overflow vehicle is allowed, got {len(candidates)}: {[d.id for d in candidates]}"
        )
    overflow = candidates[0] if candidates else None
    if overflow is not None and not request.overflow_driver_id:
        raise InvalidRoutingInput(f"overflow vehicle {overflow.id} requires an overflow driver id")

    drivers = [driver for driver in request.drivers if not driver.is_overflow]
    all_vehicles = drivers + ([overflow] if overflow is not None else [])

    for driver in all_vehicles:
        if driver.vehicle_capacity <= 0:
            raise InvalidRoutingInput(f"driver {driver.id} has invalid capacity {driver.vehicle_capacity}")

    duplicate_drivers = sorted(key for key, count in Counter(d.id for d in all_vehicles).items() if count > 1)
    if duplicate_drivers:
        raise InvalidRoutingInput(f"duplicate driver id(s): {duplicate_drivers}")

    duplicate_participants = sorted(
        key for key, count in Counter(p.id for p in request.participants).items() if count > 1
    )
    if duplicate_participants:
        raise InvalidRoutingInput(f"duplicate participant id(s): {duplicate_participants}")

    return drivers, overflow


def _validate_assignment(
    request: RoutingRequest,
    drivers: Sequence[Driver],
    overflow: Driver | None,
    assignment: Mapping[str, Sequence[str]],
) -> dict[str, list[Participant]]:
    vehicles = {driver.id: driver for driver in drivers}
    if overflow is not None:
        vehicles[overflow.id] = overflow
    participants = {participant.id: participant for participant in request.participants}

    placement: dict[str, list[Participant]] = {}
    seen: set[str] = set()
    for driver_id, participant_ids in assignment.items():
        driver = vehicles.get(driver_id)
        if driver is None:
            raise InvalidRoutingInput(f"assignment references unknown driver {driver_id}")
        if len(participant_ids) > driver.vehicle_capacity:
            raise InvalidRoutingInput(
                f"driver {driver_id} assigned {len(participant_ids)} participant(s), capacity {driver.vehicle_capacity}"
            )
        stops = []
        for participant_id in participant_ids:
            participant = participants.get(participant_id)
            if participant is None:
                raise InvalidRoutingInput(f"assignment references unknown participant {participant_id}")
            if participant_id in seen:
                raise InvalidRoutingInput(f"participant {participant_id} is assigned more than once")
            seen.add(participant_id)
            stops.append(participant)
        placement[driver_id] = stops

    missing = [participant_id for participant_id in participants if participant_id not in seen]
    if missing:
        raise InvalidRoutingInput(f"assignment is missing participant(s): {missing}")
    return placement


def checkpoint(request: RoutingRequest, stage: str) -> None:
    if request.cancel_event is not None and request.cancel_event.is_set():
        logger.warning(f"Routing cancelled before {stage}")
        raise RoutingCancelled(f"routing cancelled before {stage}")
    if request.deadline is not None and time.monotonic() >= request.deadline:
        logger.warning(f"Routing deadline exceeded before {stage}")
        raise RoutingCancelled(f"routing deadline exceeded before {stage}")


def _endpoints(request: RoutingRequest, home: Coordinates) -> tuple[Coordinates, Coordinates]:
    if request.mode == ROUTE_MODE_PICKUP:
        return home, request.origin
    return request.origin, home


def _prewarm_points(
    request: RoutingRequest, drivers: Sequence[Driver], overflow: Driver | None
) -> list[Coordinates]:
    points = [request.origin]
    points.extend(participant.coords for participant in request.participants)
    points.extend(driver.coords for driver in drivers)
    if overflow is not None:
        points.append(overflow.coords)
    return points


def _initialize_routes(request: RoutingRequest, drivers: Sequence[Driver], legs: LegTable) -> list[RouteBuilder]:
    routes = []
    for driver in drivers:
        start, end = _endpoints(request, driver.coords)
        baseline = legs.duration(start, end)
        routes.append(RouteBuilder(driver, start=start, end=end, baseline=baseline))
        logger.debug(f"Baseline for driver {driver.id}: {baseline:.1f}s")
    return routes


def _overflow_route(request: RoutingRequest, overflow: Driver) -> RouteBuilder:
    # The overflow vehicle leaves from and returns to the origin; its detour is never scored.
    return RouteBuilder(
        overflow,
        start=request.origin,
        end=request.origin,
        baseline=0.0,
        is_overflow=True,
        overflow_driver_id=request.overflow_driver_id,
    )


def _check_conservation(
    routes: Sequence[RouteBuilder],
    unassigned: Sequence[Participant],
    total: int,
    stage: str,
) -> None:
    placed = sum(len(route.stops) for route in routes)
    if placed + len(unassigned) != total:
        raise RuntimeError(
            f"participant count mismatch after {stage}: placed={placed} unassigned={len(unassigned)} total={total}"
        )


def _capacity_exceeded(
    unassigned: Sequence[Participant],
    drivers: Sequence[Driver],
    overflow: Driver | None,
    total: int,
) -> CapacityExceeded:
    capacity = sum(driver.vehicle_capacity for driver in drivers)
    if overflow is not None:
        capacity += overflow.vehicle_capacity
    logger.error(f"{len(unassigned)} participant(s) unassigned; total capacity {capacity} for {total} participant(s)")
    return CapacityExceeded(
        f"{len(unassigned)} participant(s) could not be assigned",
        unassigned_count=len(unassigned),
        total_capacity=capacity,
        total_participants=total,
    )


def _empty_result(request: RoutingRequest) -> RoutingResult:
    summary = RoutingSummary(
        total_participants=0,
        total_drivers_used=0,
        total_dropoff_distance_meters=0.0,
        total_distance_meters=0.0,
        max_detour_secs=0.0,
        sum_detour_secs=0.0,
        average_detour_secs=0.0,
        used_overflow_vehicle=False,
    )
    return RoutingResult(routes=[], summary=summary, warnings=[], mode=request.mode)
