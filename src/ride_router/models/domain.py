"""Domain models for participants, drivers and coordinates."""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Coordinates:
    """A (lat, lng) pair in decimal degrees."""

    lat: float
    lng: float

    def rounded(self, precision: int) -> tuple[float, float]:
        return (round(self.lat, precision), round(self.lng, precision))


@dataclass(frozen=True, slots=True)
class Participant:
    """Someone who needs a ride from the origin."""

    id: str
    name: str
    lat: float
    lng: float

    @property
    def coords(self) -> Coordinates:
        return Coordinates(self.lat, self.lng)


@dataclass(frozen=True, slots=True)
class Driver:
    """A capacity-limited vehicle whose route ends (or starts) at its home."""

    id: str
    name: str
    lat: float
    lng: float
    vehicle_capacity: int
    is_overflow: bool = False

    @property
    def coords(self) -> Coordinates:
        return Coordinates(self.lat, self.lng)


def same_point(a: Coordinates, b: Coordinates, precision: int = 5) -> bool:
    """Return True when both coordinates round to the same location."""

    return a.rounded(precision) == b.rounded(precision)
