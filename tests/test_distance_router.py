import pytest

from ride_router.models.domain import Coordinates
from ride_router.services.routing.distance_router import (
    DistanceMinimizingRouter,
    group_households,
    household_blocks,
)
from ride_router.services.routing.errors import CapacityExceeded
from ride_router.services.routing.models import RoutingRequest

from conftest import PlanarOracle, driver, participant

ORIGIN = Coordinates(0.0, 0.0)


def _router(**kwargs) -> DistanceMinimizingRouter:
    kwargs.setdefault("max_inter_route_iterations", 50)
    return DistanceMinimizingRouter(PlanarOracle(), min_improvement_meters=1.0, precision=5, **kwargs)


def _stops(result) -> dict[str, list[str]]:
    return {route.driver.id: [stop.participant.id for stop in route.stops] for route in result.routes}


def test_group_households_puts_larger_households_first():
    people = [
        participant("E", 0.0, 3.0),
        participant("A", 0.0, 1.0),
        participant("B", 0.0, 2.0),
        participant("C", 0.0, 2.000001),
        participant("D", 0.0, 1.000002),
    ]

    households = group_households(people, precision=5)

    assert [[p.id for p in household] for household in households] == [["A", "D"], ["B", "C"], ["E"]]


def test_household_blocks_split_runs_of_same_point_stops():
    stops = [
        participant("A", 0.0, 1.0),
        participant("D", 0.0, 1.000002),
        participant("B", 0.0, 2.0),
        participant("C", 0.0, 2.0),
        participant("E", 0.0, 3.0),
    ]

    assert household_blocks(stops, precision=5) == [(0, 2), (2, 4), (4, 5)]
    assert household_blocks([], precision=5) == []


def test_participants_on_one_line_share_one_driver():
    request = RoutingRequest(
        origin=ORIGIN,
        participants=[participant("P1", 0.0, 2.0), participant("P2", 0.0, 4.0), participant("P3", 0.0, 6.0)],
        drivers=[driver("D1", 0.0, 10.0), driver("D2", 0.0, -10.0)],
        strategy="distance",
    )

    result = _router().calculate_routes(request)

    assert _stops(result) == {"D1": ["P1", "P2", "P3"]}
    assert result.summary.total_dropoff_distance_meters == pytest.approx(6000.0)
    assert [stop.order for stop in result.routes[0].stops] == [0, 1, 2]
    assert result.warnings == ["1 driver(s) had no participants assigned: Driver D2"]


def test_household_stays_together_when_a_cheaper_seat_is_alone():
    request = RoutingRequest(
        origin=ORIGIN,
        participants=[participant("H1", 0.0, 2.0), participant("H2", 0.0, 2.000001), participant("Z", 0.0, -8.0)],
        drivers=[driver("D1", 0.0, 10.0, capacity=1), driver("D2", 0.0, -10.0, capacity=3)],
    )

    result = _router().calculate_routes(request)

    assert _stops(result) == {"D1": ["Z"], "D2": ["H1", "H2"]}


def test_household_is_split_when_no_driver_fits_it_whole():
    request = RoutingRequest(
        origin=ORIGIN,
        participants=[participant("H1", 0.0, 2.0), participant("H2", 0.0, 2.000001)],
        drivers=[driver("D1", 0.0, 10.0, capacity=1), driver("D2", 0.0, -10.0, capacity=1)],
    )

    result = _router().calculate_routes(request)

    assert _stops(result) == {"D1": ["H1"], "D2": ["H2"]}


def test_pickup_counts_distance_from_first_stop_to_origin():
    request = RoutingRequest(
        origin=ORIGIN,
        participants=[participant("A", 0.0, 8.0), participant("B", 0.0, 2.0)],
        drivers=[driver("D1", 0.0, 10.0)],
        mode="pickup",
    )

    result = _router().calculate_routes(request)

    route = result.routes[0]
    assert [stop.participant.id for stop in route.stops] == ["A", "B"]
    assert [stop.order for stop in route.stops] == [0, 1]
    assert route.destination == ORIGIN
    assert result.mode == "pickup"


def test_overflow_vehicle_filled_by_nearest_distance():
    request = RoutingRequest(
        origin=ORIGIN,
        participants=[participant("P1", 0.0, 1.0), participant("P2", 0.0, 3.0), participant("P3", 0.0, -2.0)],
        drivers=[driver("D1", 0.0, 10.0, capacity=1)],
        overflow_vehicle=driver("VAN", 0.0, 0.0, capacity=4),
        overflow_driver_id="op-1",
    )

    result = _router().calculate_routes(request)

    assert [route.driver.id for route in result.routes] == ["D1", "VAN"]
    assert _stops(result) == {"D1": ["P1"], "VAN": ["P3", "P2"]}
    assert result.summary.used_overflow_vehicle
    assert result.routes[-1].overflow_driver_id == "op-1"


def test_capacity_exceeded_without_overflow():
    request = RoutingRequest(
        origin=ORIGIN,
        participants=[participant("P1", 0.0, 1.0), participant("P2", 0.0, 3.0)],
        drivers=[driver("D1", 0.0, 10.0, capacity=1)],
    )

    with pytest.raises(CapacityExceeded) as exc_info:
        _router().calculate_routes(request)

    assert exc_info.value.unassigned_count == 1
    assert exc_info.value.total_capacity == 1


def _misassigned() -> tuple[RoutingRequest, dict[str, list[str]]]:
    request = RoutingRequest(
        origin=ORIGIN,
        participants=[participant("E", 0.0, 5.0), participant("W", 0.0, -5.0), participant("W2", 0.0, -6.0)],
        drivers=[driver("D1", 0.0, 10.0), driver("D2", 0.0, -10.0)],
    )
    return request, {"D1": ["E", "W"], "D2": ["W2"]}


def test_relocation_moves_stop_to_the_route_heading_its_way():
    request, assignment = _misassigned()

    result = _router().reoptimize(request, assignment)

    assert _stops(result) == {"D1": ["E"], "D2": ["W", "W2"]}
    assert result.summary.total_dropoff_distance_meters == pytest.approx(11000.0)


def test_relocation_disabled_keeps_the_assignment():
    request, assignment = _misassigned()

    result = _router(max_inter_route_iterations=0).reoptimize(request, assignment)

    assert _stops(result) == assignment
    assert result.summary.total_dropoff_distance_meters == pytest.approx(21000.0)
