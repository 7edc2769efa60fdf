"""Typed failures raised by the routing engine."""

from __future__ import annotations


class RoutingError(Exception):
    """Base class for every failure surfaced by a routing call."""


class InvalidRoutingInput(RoutingError, ValueError):
    """The request was rejected before any oracle call was made."""


class OracleFailure(RoutingError):
    """A distance/duration lookup failed; the whole call is aborted."""


class RoutingCancelled(RoutingError):
    """The caller's deadline passed or cancellation was requested."""


class CapacityExceeded(RoutingError):
    """Participants remain unassigned after the overflow fallback."""

    def __init__(
        self,
        reason: str,
        *,
        unassigned_count: int,
        total_capacity: int,
        total_participants: int,
    ) -> None:
        super().__init__(f"routing failed: {reason}")
        self.reason = reason
        self.unassigned_count = unassigned_count
        self.total_capacity = total_capacity
        self.total_participants = total_participants

    def to_dict(self) -> dict:
        return {
            "reason": self.reason,
            "unassigned_count": self.unassigned_count,
            "total_capacity": self.total_capacity,
            "total_participants": self.total_participants,
        }
