"""Turn finished route builders into a :class:`RoutingResult`."""

from __future__ import annotations

from typing import Sequence

from .legs import LegTable
from .models import CalculatedRoute, RouteMode, RouteStop, RoutingResult, RoutingSummary
from .route_builder import RouteBuilder


def _calculated_route(route: RouteBuilder, legs: LegTable) -> CalculatedRoute:
    stops: list[RouteStop] = []
    previous = route.start
    cumulative_distance = 0.0
    cumulative_duration = 0.0

    for order, participant in enumerate(route.stops):
        leg = legs.leg(previous, participant.coords)
        cumulative_distance += leg.distance_meters
        cumulative_duration += leg.duration_secs
        stops.append(
            RouteStop(
                order=order,
                participant=participant,
                distance_from_prev_meters=leg.distance_meters,
                cumulative_distance_meters=cumulative_distance,
                duration_from_prev_secs=leg.duration_secs,
                cumulative_duration_secs=cumulative_duration,
            )
        )
        previous = participant.coords

    final_leg = legs.leg(previous, route.end)
    return CalculatedRoute(
        driver=route.driver,
        stops=stops,
        destination=route.end,
        total_dropoff_distance_meters=cumulative_distance,
        distance_to_destination_meters=final_leg.distance_meters,
        duration_to_destination_secs=final_leg.duration_secs,
        total_distance_meters=cumulative_distance + final_leg.distance_meters,
        baseline_duration_secs=route.baseline,
        route_duration_secs=route.current_duration,
        detour_secs=route.detour,
        used_overflow_vehicle=route.is_overflow,
        overflow_driver_id=route.overflow_driver_id if route.is_overflow else None,
    )


def build_result(
    routes: Sequence[RouteBuilder],
    legs: LegTable,
    *,
    mode: RouteMode,
) -> RoutingResult:
    """Assemble routes (in the given order), the summary and warnings.

    Only routes with at least one stop are emitted. Detour statistics cover
    the regular drivers that received participants.
    """
    calculated = [_calculated_route(route, legs) for route in routes if not route.is_empty]

    regular = [route for route in calculated if not route.used_overflow_vehicle]
    overflow = [route for route in calculated if route.used_overflow_vehicle]
    detours = [route.detour_secs for route in regular]
    sum_detour = sum(detours)

    summary = RoutingSummary(
        total_participants=sum(len(route.stops) for route in calculated),
        total_drivers_used=len(calculated),
        total_dropoff_distance_meters=sum(route.total_dropoff_distance_meters for route in calculated),
        total_distance_meters=sum(route.total_distance_meters for route in calculated),
        max_detour_secs=max(detours, default=0.0),
        sum_detour_secs=sum_detour,
        average_detour_secs=sum_detour / len(regular) if regular else 0.0,
        used_overflow_vehicle=bool(overflow),
    )

    warnings: list[str] = []
    for route in overflow:
        warnings.append(
            f"Overflow vehicle {route.driver.name or route.driver.id} used for "
            f"{len(route.stops)} participant(s), driven by {route.overflow_driver_id}"
        )
    unused = [route.driver for route in routes if route.is_empty and not route.is_overflow]
    if unused:
        names = ", ".join(driver.name or driver.id for driver in unused)
        warnings.append(f"{len(unused)} driver(s) had no participants assigned: {names}")

    return RoutingResult(routes=calculated, summary=summary, warnings=warnings, mode=mode)
