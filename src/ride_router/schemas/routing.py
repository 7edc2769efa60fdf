"""Routing request/response schemas."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class LocationModel(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class ParticipantModel(BaseModel):
    id: str
    name: str = ""
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class DriverModel(BaseModel):
    id: str
    name: str = ""
    lat: float = Field(..., ge=-90, le=90, description="Latitude of the driver's home.")
    lng: float = Field(..., ge=-180, le=180, description="Longitude of the driver's home.")
    vehicle_capacity: int = Field(..., description="Seats available for participants.")
    is_overflow: bool = Field(default=False, description="Marks this vehicle as the overflow vehicle.")


class RouteAssignment(BaseModel):
    """Manual assignment of participants to a specific driver."""
    driver_id: str = Field(..., description="Driver (or overflow vehicle) identifier")
    participant_ids: List[str] = Field(..., description="Participant IDs in visit order")


class RoutingRequestModel(BaseModel):
    origin: LocationModel = Field(..., description="Shared activity location.")
    participants: List[ParticipantModel]
    drivers: List[DriverModel]
    overflow_vehicle: Optional[DriverModel] = Field(
        default=None,
        description="Vehicle used only for participants no regular driver can take.",
    )
    overflow_driver_id: Optional[str] = Field(default=None, description="Who drives the overflow vehicle.")
    mode: Literal["dropoff", "pickup"] = "dropoff"
    strategy: Literal["fairness", "distance"] = Field(
        default="fairness",
        description=(
            "fairness minimises the worst driver detour; "
            "distance minimises the total distance driven with participants aboard."
        ),
    )
    seed: Optional[int] = Field(default=None, description="Shuffle driver order with this seed.")
    timeout_seconds: Optional[float] = Field(default=None, gt=0, description="Abort the run after this many seconds.")
    route_assignments: Optional[List[RouteAssignment]] = Field(
        default=None,
        description="Pre-assigned routes. If provided, only sequencing and rebalancing run, not construction.",
    )


class RouteStopModel(BaseModel):
    order: int = Field(..., ge=0, description="0-based visit position within the route.")
    participant_id: str
    participant_name: str
    lat: float
    lng: float
    distance_from_prev_meters: float
    cumulative_distance_meters: float
    duration_from_prev_secs: float
    cumulative_duration_secs: float


class CalculatedRouteModel(BaseModel):
    driver_id: str
    driver_name: str
    vehicle_capacity: int
    stops: List[RouteStopModel]
    destination: LocationModel
    total_dropoff_distance_meters: float
    distance_to_destination_meters: float
    duration_to_destination_secs: float
    total_distance_meters: float
    baseline_duration_secs: float
    route_duration_secs: float
    detour_secs: float
    used_overflow_vehicle: bool = False
    overflow_driver_id: Optional[str] = None


class RoutingSummaryModel(BaseModel):
    total_participants: int
    total_drivers_used: int
    total_dropoff_distance_meters: float
    total_distance_meters: float
    max_detour_secs: float
    sum_detour_secs: float
    average_detour_secs: float
    used_overflow_vehicle: bool


class RoutingResponse(BaseModel):
    mode: Literal["dropoff", "pickup"]
    routes: List[CalculatedRouteModel]
    summary: RoutingSummaryModel
    warnings: List[str] = Field(default_factory=list)
