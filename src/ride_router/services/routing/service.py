"""Routing orchestration service: schema <-> engine translation."""

from __future__ import annotations

import logging
import time

from ...models.domain import Coordinates, Driver, Participant
from ...schemas.routing import (
    CalculatedRouteModel,
    DriverModel,
    LocationModel,
    RouteStopModel,
    RoutingRequestModel,
    RoutingResponse,
    RoutingSummaryModel,
)
from ..distance.oracle import DistanceOracle, build_default_oracle
from .distance_router import DistanceMinimizingRouter
from .models import STRATEGY_DISTANCE, CalculatedRoute, RoutingRequest, RoutingResult, RoutingStrategy
from .router import FairnessRouter, Router

logger = logging.getLogger(__name__)


def _driver(model: DriverModel, *, is_overflow: bool | None = None) -> Driver:
    return Driver(
        id=model.id,
        name=model.name,
        lat=model.lat,
        lng=model.lng,
        vehicle_capacity=model.vehicle_capacity,
        is_overflow=model.is_overflow if is_overflow is None else is_overflow,
    )


def build_routing_request(payload: RoutingRequestModel) -> RoutingRequest:
    deadline = time.monotonic() + payload.timeout_seconds if payload.timeout_seconds else None
    return RoutingRequest(
        origin=Coordinates(payload.origin.lat, payload.origin.lng),
        participants=[Participant(id=p.id, name=p.name, lat=p.lat, lng=p.lng) for p in payload.participants],
        drivers=[_driver(d) for d in payload.drivers],
        overflow_vehicle=_driver(payload.overflow_vehicle, is_overflow=True) if payload.overflow_vehicle else None,
        overflow_driver_id=payload.overflow_driver_id,
        mode=payload.mode,
        strategy=payload.strategy,
        seed=payload.seed,
        deadline=deadline,
    )


def _route_model(route: CalculatedRoute) -> CalculatedRouteModel:
    return CalculatedRouteModel(
        driver_id=route.driver.id,
        driver_name=route.driver.name,
        vehicle_capacity=route.driver.vehicle_capacity,
        stops=[
            RouteStopModel(
                order=stop.order,
                participant_id=stop.participant.id,
                participant_name=stop.participant.name,
                lat=stop.participant.lat,
                lng=stop.participant.lng,
                distance_from_prev_meters=stop.distance_from_prev_meters,
                cumulative_distance_meters=stop.cumulative_distance_meters,
                duration_from_prev_secs=stop.duration_from_prev_secs,
                cumulative_duration_secs=stop.cumulative_duration_secs,
            )
            for stop in route.stops
        ],
        destination=LocationModel(lat=route.destination.lat, lng=route.destination.lng),
        total_dropoff_distance_meters=route.total_dropoff_distance_meters,
        distance_to_destination_meters=route.distance_to_destination_meters,
        duration_to_destination_secs=route.duration_to_destination_secs,
        total_distance_meters=route.total_distance_meters,
        baseline_duration_secs=route.baseline_duration_secs,
        route_duration_secs=route.route_duration_secs,
        detour_secs=route.detour_secs,
        used_overflow_vehicle=route.used_overflow_vehicle,
        overflow_driver_id=route.overflow_driver_id,
    )


def to_response(result: RoutingResult) -> RoutingResponse:
    summary = result.summary
    return RoutingResponse(
        mode=result.mode,
        routes=[_route_model(route) for route in result.routes],
        summary=RoutingSummaryModel(
            total_participants=summary.total_participants,
            total_drivers_used=summary.total_drivers_used,
            total_dropoff_distance_meters=summary.total_dropoff_distance_meters,
            total_distance_meters=summary.total_distance_meters,
            max_detour_secs=summary.max_detour_secs,
            sum_detour_secs=summary.sum_detour_secs,
            average_detour_secs=summary.average_detour_secs,
            used_overflow_vehicle=summary.used_overflow_vehicle,
        ),
        warnings=list(result.warnings),
    )


def build_router(strategy: RoutingStrategy, oracle: DistanceOracle) -> Router:
    if strategy == STRATEGY_DISTANCE:
        return DistanceMinimizingRouter(oracle)
    return FairnessRouter(oracle)


def calculate_routes(payload: RoutingRequestModel, oracle: DistanceOracle | None = None) -> RoutingResponse:
    request = build_routing_request(payload)
    router = build_router(request.strategy, oracle or build_default_oracle())

    if payload.route_assignments:
        # Manual assignment mode: keep the partition, only sequence and rebalance
        assignment = {item.driver_id: list(item.participant_ids) for item in payload.route_assignments}
        logger.info(f"Re-optimizing {len(assignment)} pre-assigned route(s)")
        result = router.reoptimize(request, assignment)
    else:
        result = router.calculate_routes(request)

    return to_response(result)
