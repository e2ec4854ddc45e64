from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Literal
from datetime import datetime
from enum import Enum

from geo import Point


class RideStatus(str, Enum):
    REQUESTED = "requested"
    MATCHED = "matched"
    DRIVER_EN_ROUTE = "driver_en_route"
    ARRIVED = "arrived"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DriverStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class BackgroundCheckStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# Coordinates
class Coordinates(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)

    @model_validator(mode="before")
    @classmethod
    def from_geojson(cls, value):
        # GeoJSON points arrive as [lng, lat]
        if isinstance(value, dict) and value.get("type") == "Point":
            coords = value.get("coordinates") or []
            if len(coords) != 2:
                raise ValueError("GeoJSON Point needs [longitude, latitude]")
            return {"latitude": coords[1], "longitude": coords[0]}
        return value

    def to_point(self) -> Point:
        return Point(self.latitude, self.longitude)


class Place(BaseModel):
    address: str = Field(min_length=1)
    coordinates: Coordinates


# Rider Schemas
class RiderCreate(BaseModel):
    name: str
    email: str
    phone: Optional[str] = None


class Rider(RiderCreate):
    id: str
    rating: float

    class Config:
        from_attributes = True


# Driver Schemas
class DriverCreate(BaseModel):
    first_name: str
    last_name: str = ""
    email: str
    phone: str
    vehicle_make: str
    vehicle_model: str
    vehicle_color: str
    license_plate: str
    status: DriverStatus = DriverStatus.PENDING
    background_check_status: BackgroundCheckStatus = BackgroundCheckStatus.PENDING
    location: Optional[Coordinates] = None


class DriverResponse(BaseModel):
    id: str
    first_name: str
    last_name: str
    phone: str
    vehicle_make: str
    vehicle_model: str
    vehicle_color: str
    license_plate: str
    status: DriverStatus
    background_check_status: BackgroundCheckStatus
    is_online: bool
    is_available: bool
    current_ride_id: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    heading: Optional[float] = None
    location_updated_at: Optional[datetime] = None
    rating: float
    total_rides: int

    class Config:
        from_attributes = True


class DriverStatusUpdate(BaseModel):
    is_online: bool


class DriverLocationUpdate(BaseModel):
    location: Coordinates
    heading: Optional[float] = Field(default=None, ge=0, lt=360)
    timestamp: Optional[datetime] = None


class LocationUpdateResponse(BaseModel):
    driver_id: str
    accepted: bool
    stale: bool


# Ride Schemas
class RideCreate(BaseModel):
    rider_id: str
    pickup: Place
    destination: Place
    notes: Optional[str] = Field(default=None, max_length=500)


class RideResponse(BaseModel):
    id: str
    reference: str
    pickup_code: str
    otp: str
    rider_id: str
    driver_id: Optional[str] = None
    status: RideStatus

    pickup_address: str
    pickup_lat: float
    pickup_lon: float
    destination_address: str
    destination_lat: float
    destination_lon: float

    distance_km: float
    duration_minutes: float
    estimated_fare: float
    base_fare: float
    distance_fee: float
    time_fee: float
    subtotal: float
    platform_fee: float
    minimum_fare_applied: bool
    currency: str
    carbon_saved_kg: float

    requested_at: datetime
    matched_at: Optional[datetime] = None
    driver_en_route_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    vehicle_info: Optional[str] = None
    license_plate: Optional[str] = None
    driver_lat: Optional[float] = None
    driver_lon: Optional[float] = None
    driver_heading: Optional[float] = None
    estimated_arrival_minutes: Optional[int] = None
    estimated_arrival: Optional[str] = None

    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None

    class Config:
        from_attributes = True


class RideCreated(BaseModel):
    ride: RideResponse
    message: str
    driver_candidates: int


class RideSummary(BaseModel):
    id: str
    reference: str
    pickup_address: str
    pickup_lat: float
    pickup_lon: float
    destination_address: str
    distance_km: float
    duration_minutes: float
    estimated_fare: float
    currency: str
    requested_at: datetime
    distance_to_pickup_km: float
    estimated_pickup_minutes: int


class AcceptRequest(BaseModel):
    driver_id: str
    driver_location: Optional[Coordinates] = None


class DeclineRequest(BaseModel):
    driver_id: str


class DeclineResponse(BaseModel):
    ride_id: str
    driver_id: str
    declined: bool = True


class RideStatusUpdate(BaseModel):
    driver_id: str
    status: Literal["driver_en_route", "arrived", "in_progress", "completed"]
    otp: Optional[str] = Field(default=None, pattern=r"^[0-9]{4}$")


class CancelRequest(BaseModel):
    actor: Literal["rider", "driver"]
    actor_id: str
    reason: Optional[str] = Field(default=None, max_length=500)


class RideLocationUpdate(BaseModel):
    driver_id: str
    location: Coordinates
    heading: Optional[float] = Field(default=None, ge=0, lt=360)


class TrackingResponse(BaseModel):
    ride_id: str
    reference: str
    status: RideStatus
    status_display: str
    driver_location: Optional[Coordinates] = None
    driver_heading: Optional[float] = None
    estimated_arrival: Optional[str] = None
    estimated_arrival_minutes: Optional[int] = None
    last_updated: Optional[datetime] = None


class ErrorBody(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorBody


class RideList(BaseModel):
    rides: List[RideResponse]
    total: int


# Documented on every router; rendered by the handlers in main.py
ERROR_RESPONSES = {
    status: {"model": ErrorResponse}
    for status in (400, 403, 404, 409, 422, 502, 503)
}
