import pytest

from ride_router.models.domain import Coordinates
from ride_router.services.routing.legs import LegTable
from ride_router.services.routing.localsearch import rebalance_routes, try_relocate, try_swap, two_opt_route
from ride_router.services.routing.route_builder import RouteBuilder, path_duration

from conftest import PlanarOracle, driver, participant

ORIGIN = Coordinates(0.0, 0.0)


@pytest.fixture
def legs() -> LegTable:
    return LegTable(PlanarOracle())


def _route(did: str, home: Coordinates, legs: LegTable, capacity: int = 4) -> RouteBuilder:
    return RouteBuilder(
        driver(did, home.lat, home.lng, capacity=capacity),
        start=ORIGIN,
        end=home,
        baseline=legs.duration(ORIGIN, home),
    )


def _best_reversal_gain(route: RouteBuilder, legs: LegTable) -> float:
    current = route.current_duration
    best = 0.0
    for i in range(len(route.stops) - 1):
        for j in range(i + 2, len(route.stops) + 1):
            stops = route.stops[:i] + route.stops[i:j][::-1] + route.stops[j:]
            path = [route.start, *(p.coords for p in stops), route.end]
            best = max(best, current - path_duration(path, legs))
    return best


def test_two_opt_untangles_crossing_tour(legs: LegTable):
    loop = RouteBuilder(
        driver("OV", 0.0, 0.0, capacity=5, is_overflow=True),
        start=ORIGIN,
        end=ORIGIN,
        baseline=0.0,
        is_overflow=True,
    )
    loop.set_stops([participant("A", 0.0, 1.0), participant("C", 1.0, 0.0), participant("B", 1.0, 1.0)], legs)

    reversals = two_opt_route(loop, legs)

    assert reversals >= 1
    assert loop.current_duration == pytest.approx(400.0)
    assert _best_reversal_gain(loop, legs) < 1e-6


def test_two_opt_skips_short_routes(legs: LegTable):
    route = _route("D1", Coordinates(0.0, 10.0), legs)
    route.set_stops([participant("B", 0.0, 6.0), participant("A", 0.0, 3.0)], legs)

    assert two_opt_route(route, legs) == 0
    assert [p.id for p in route.stops] == ["B", "A"]


def test_two_opt_converged_route_has_no_improving_reversal(legs: LegTable):
    route = _route("D1", Coordinates(0.0, 10.0), legs, capacity=6)
    route.set_stops(
        [
            participant("P1", 2.0, 7.0),
            participant("P2", -1.0, 2.0),
            participant("P3", 1.5, 9.0),
            participant("P4", -2.0, 5.0),
            participant("P5", 0.5, 1.0),
        ],
        legs,
    )
    before = route.current_duration

    two_opt_route(route, legs)

    assert route.current_duration < before
    assert _best_reversal_gain(route, legs) < 1e-6


def test_relocate_moves_stop_to_closer_driver(legs: LegTable):
    east = _route("E", Coordinates(0.0, 10.0), legs)
    west = _route("W", Coordinates(0.0, -10.0), legs)
    east.set_stops([participant("P1", 0.0, 5.0), participant("P2", 0.0, -3.0)], legs)

    moved = try_relocate([east, west], east, west, 0, legs, epsilon=5.0)

    assert moved
    assert [p.id for p in east.stops] == ["P1"]
    assert [p.id for p in west.stops] == ["P2"]
    assert west.detour == pytest.approx(0.0)


def test_relocate_refuses_full_target(legs: LegTable):
    east = _route("E", Coordinates(0.0, 10.0), legs)
    west = _route("W", Coordinates(0.0, -10.0), legs, capacity=1)
    east.set_stops([participant("P1", 0.0, -5.0), participant("P2", 0.0, 5.0)], legs)
    west.set_stops([participant("P3", 0.0, -2.0)], legs)

    assert not try_relocate([east, west], east, west, 0, legs, epsilon=5.0)
    assert len(east.stops) == 2


def test_swap_exchanges_misplaced_participants(legs: LegTable):
    east = _route("E", Coordinates(0.0, 10.0), legs)
    west = _route("W", Coordinates(0.0, -10.0), legs)
    east.set_stops([participant("PW", 0.0, -5.0)], legs)
    west.set_stops([participant("PE", 0.0, 5.0)], legs)

    # relocating would leave a driver unused, so only a swap helps
    assert not try_relocate([east, west], east, west, 0, legs, epsilon=5.0)
    assert try_swap([east, west], east, west, 0, legs, epsilon=5.0)

    assert [p.id for p in east.stops] == ["PE"]
    assert [p.id for p in west.stops] == ["PW"]
    assert east.detour == pytest.approx(0.0)
    assert west.detour == pytest.approx(0.0)


def test_rebalance_stops_once_nothing_improves(legs: LegTable):
    east = _route("E", Coordinates(0.0, 10.0), legs)
    west = _route("W", Coordinates(0.0, -10.0), legs)
    east.set_stops([participant("PW", 0.0, -5.0)], legs)
    west.set_stops([participant("PE", 0.0, 5.0)], legs)

    iterations = rebalance_routes([east, west], 0, legs, max_iterations=50, epsilon=5.0)

    assert iterations == 2
    assert [p.id for p in east.stops] == ["PE"]


def test_rebalance_respects_iteration_cap(legs: LegTable):
    east = _route("E", Coordinates(0.0, 10.0), legs)
    west = _route("W", Coordinates(0.0, -10.0), legs)
    east.set_stops([participant("PW", 0.0, -5.0)], legs)

    assert rebalance_routes([east, west], 0, legs, max_iterations=0, epsilon=5.0) == 0
    assert [p.id for p in east.stops] == ["PW"]


def test_rebalance_checkpoint_can_abort(legs: LegTable):
    east = _route("E", Coordinates(0.0, 10.0), legs)
    west = _route("W", Coordinates(0.0, -10.0), legs)

    def abort():
        raise TimeoutError("stop")

    with pytest.raises(TimeoutError):
        rebalance_routes([east, west], 0, legs, max_iterations=50, checkpoint=abort)


def test_two_opt_on_distance_can_ignore_the_leg_home(legs: LegTable):
    home = Coordinates(0.0, -10.0)
    stops = [participant("A", 0.0, 2.0), participant("B", 0.0, 4.0), participant("C", 0.0, -1.0)]
    closed, open_end = _route("D1", home, legs), _route("D2", home, legs)
    closed.set_stops(stops, legs)
    open_end.set_stops(stops, legs)

    two_opt_route(closed, legs, cost=legs.distance)
    two_opt_route(open_end, legs, cost=legs.distance, open_end=True)

    assert [p.id for p in closed.stops] == ["A", "B", "C"]
    assert [p.id for p in open_end.stops] == ["C", "A", "B"]
