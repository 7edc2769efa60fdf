import math

import pytest

from ride_router.models.domain import Coordinates
from ride_router.services.routing.insertion import insertion_delta, removal_delta, replacement_delta
from ride_router.services.routing.legs import LegTable
from ride_router.services.routing.route_builder import RouteBuilder

from conftest import PlanarOracle, driver, participant

ORIGIN = Coordinates(0.0, 0.0)
HOME = Coordinates(0.0, 10.0)


@pytest.fixture
def legs() -> LegTable:
    return LegTable(PlanarOracle())


@pytest.fixture
def route(legs: LegTable) -> RouteBuilder:
    return RouteBuilder(driver("D1", 0.0, 10.0, capacity=2), start=ORIGIN, end=HOME, baseline=legs.duration(ORIGIN, HOME))


def test_empty_route_has_no_detour(route: RouteBuilder):
    assert route.baseline == pytest.approx(1000.0)
    assert route.current_duration == route.baseline
    assert route.detour == 0.0
    assert route.path == [ORIGIN, HOME]


def test_insert_recomputes_duration_and_matches_delta(route: RouteBuilder, legs: LegTable):
    p = participant("P1", 3.0, 4.0)
    delta = insertion_delta(route, p, 0, legs)

    route.insert(p, 0, legs)

    expected = (5.0 + math.sqrt(45.0)) * 100.0
    assert route.current_duration == pytest.approx(expected)
    assert route.detour == pytest.approx(delta)
    assert route.path == [ORIGIN, p.coords, HOME]


def test_capacity_tracking(route: RouteBuilder, legs: LegTable):
    route.insert(participant("P1", 0.0, 2.0), 0, legs)
    assert route.has_capacity
    route.insert(participant("P2", 0.0, 5.0), 1, legs)
    assert not route.has_capacity


def test_removal_delta_is_negative_insertion_cost(route: RouteBuilder, legs: LegTable):
    near = participant("P1", 0.0, 2.0)
    far = participant("P2", 4.0, 5.0)
    route.set_stops([near, far], legs)

    before = route.current_duration
    delta = removal_delta(route, 1, legs)
    removed = route.remove(1, legs)

    assert removed == far
    assert route.current_duration == pytest.approx(before + delta)
    assert delta < 0


def test_replacement_delta_matches_replace(route: RouteBuilder, legs: LegTable):
    route.set_stops([participant("P1", 0.0, 2.0), participant("P2", 5.0, 5.0)], legs)
    incoming = participant("P3", 0.0, 6.0)

    before = route.current_duration
    delta = replacement_delta(route, 1, incoming, legs)
    previous = route.replace(1, incoming, legs)

    assert previous.id == "P2"
    assert route.current_duration == pytest.approx(before + delta)
    assert route.detour == pytest.approx(0.0)


def test_reverse_segment(route: RouteBuilder, legs: LegTable):
    stops = [participant("P1", 0.0, 1.0), participant("P2", 0.0, 2.0), participant("P3", 0.0, 3.0)]
    wide = RouteBuilder(driver("D2", 0.0, 10.0, capacity=5), start=ORIGIN, end=HOME, baseline=route.baseline)
    wide.set_stops(stops, legs)

    wide.reverse_segment(0, 2, legs)

    assert [p.id for p in wide.stops] == ["P2", "P1", "P3"]
    assert wide.current_duration == pytest.approx(1200.0)


def test_overflow_route_never_reports_detour(legs: LegTable):
    overflow = RouteBuilder(
        driver("OV", 0.0, 0.0, capacity=8, is_overflow=True),
        start=ORIGIN,
        end=ORIGIN,
        baseline=0.0,
        is_overflow=True,
        overflow_driver_id="op-1",
    )
    overflow.insert(participant("P1", 3.0, 4.0), 0, legs)

    assert overflow.current_duration == pytest.approx(1000.0)
    assert overflow.detour == 0.0


def test_leg_table_memoizes_lookups(legs: LegTable):
    legs.duration(ORIGIN, HOME)
    legs.duration(ORIGIN, HOME)
    legs.distance(ORIGIN, HOME)

    assert legs.lookups == 1
    assert legs.oracle.calls == 1
