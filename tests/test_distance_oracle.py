import pytest

from ride_router.config import settings
from ride_router.models.domain import Coordinates
from ride_router.services.distance import oracle as oracle_module
from ride_router.services.distance.oracle import (
    DistanceCalculationFailed,
    HaversineDistanceOracle,
    OSRMDistanceOracle,
    build_default_oracle,
)
from ride_router.services.geospatial import haversine_km

JEDDAH = Coordinates(21.5433, 39.1728)
MAKKAH = Coordinates(21.3891, 39.8579)


class DummyOSRM:
    """Returns 600 s / 1000 m between any two distinct points."""

    def __init__(self, missing: set[tuple[int, int]] | None = None):
        self.requests: list[list[tuple[float, float]]] = []
        self.missing = missing or set()

    def table(self, coordinates):
        self.requests.append(list(coordinates))
        count = len(coordinates)
        durations = [[0 if i == j else 600 for j in range(count)] for i in range(count)]
        distances = [[0 if i == j else 1000 for j in range(count)] for i in range(count)]
        for i, j in self.missing:
            if i < count and j < count:
                durations[i][j] = None
                distances[i][j] = None
        return {"durations": durations, "distances": distances}


def test_haversine_oracle_uses_average_speed():
    oracle = HaversineDistanceOracle(average_speed_kmh=60.0)

    result = oracle.get_distance(JEDDAH, MAKKAH)

    expected_km = haversine_km(JEDDAH.lat, JEDDAH.lng, MAKKAH.lat, MAKKAH.lng)
    assert result.distance_meters == pytest.approx(expected_km * 1000.0)
    assert result.duration_secs == pytest.approx(expected_km * 60.0)


def test_haversine_same_point_is_zero():
    oracle = HaversineDistanceOracle()
    nearly_same = Coordinates(JEDDAH.lat + 1e-7, JEDDAH.lng)

    result = oracle.get_distance(JEDDAH, nearly_same)

    assert result.distance_meters == 0.0
    assert result.duration_secs == 0.0


def test_osrm_prewarm_issues_one_table_request():
    client = DummyOSRM()
    oracle = OSRMDistanceOracle(client)
    points = [JEDDAH, MAKKAH, Coordinates(21.6, 39.2)]

    oracle.prewarm_cache(points)
    result = oracle.get_distance(JEDDAH, MAKKAH)
    oracle.prewarm_cache(points)

    assert len(client.requests) == 1
    assert client.requests[0][0] == (JEDDAH.lat, JEDDAH.lng)
    assert result.duration_secs == 600.0
    assert result.distance_meters == 1000.0


def test_osrm_prewarm_dedupes_rounded_points():
    client = DummyOSRM()
    oracle = OSRMDistanceOracle(client)

    oracle.prewarm_cache([JEDDAH, Coordinates(JEDDAH.lat + 1e-7, JEDDAH.lng), MAKKAH])

    assert len(client.requests[0]) == 2


def test_osrm_cache_miss_fetches_the_pair():
    client = DummyOSRM()
    oracle = OSRMDistanceOracle(client)

    oracle.get_distance(JEDDAH, MAKKAH)
    oracle.get_distance(JEDDAH, MAKKAH)
    oracle.get_distance(MAKKAH, JEDDAH)

    assert len(client.requests) == 1


def test_osrm_same_point_skips_backend():
    client = DummyOSRM()
    oracle = OSRMDistanceOracle(client)

    assert oracle.get_distance(JEDDAH, JEDDAH).duration_secs == 0.0
    assert client.requests == []


def test_osrm_null_cell_raises():
    oracle = OSRMDistanceOracle(DummyOSRM(missing={(0, 1)}))

    with pytest.raises(DistanceCalculationFailed) as exc_info:
        oracle.get_distance(JEDDAH, MAKKAH)

    assert exc_info.value.origin == JEDDAH
    assert exc_info.value.dest == MAKKAH


def test_osrm_client_errors_are_wrapped():
    class BrokenOSRM:
        def table(self, coordinates):
            raise ConnectionError("connection refused")

    oracle = OSRMDistanceOracle(BrokenOSRM())

    with pytest.raises(DistanceCalculationFailed) as exc_info:
        oracle.get_distance(JEDDAH, MAKKAH)

    assert isinstance(exc_info.value.__cause__, ConnectionError)


def test_osrm_distance_matrix():
    oracle = OSRMDistanceOracle(DummyOSRM())

    matrix = oracle.get_distance_matrix([JEDDAH, MAKKAH])

    assert matrix[0][0].duration_secs == 0.0
    assert matrix[0][1].duration_secs == 600.0
    assert matrix[1][0].distance_meters == 1000.0


def test_default_oracle_without_osrm(monkeypatch):
    monkeypatch.setattr(settings, "osrm_base_url", None)

    assert isinstance(build_default_oracle(), HaversineDistanceOracle)


def test_default_oracle_with_osrm(monkeypatch):
    monkeypatch.setattr(settings, "osrm_base_url", "http://osrm.local:5000")
    monkeypatch.setattr(oracle_module, "OSRMClient", lambda *a, **k: DummyOSRM())

    oracle = build_default_oracle()

    assert isinstance(oracle, OSRMDistanceOracle)
    assert isinstance(oracle.client, DummyOSRM)
