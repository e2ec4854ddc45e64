from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, Boolean, Text, Index, UniqueConstraint
import datetime
import uuid

from database import Base

# Ride statuses, in lifecycle order
REQUESTED = "requested"
MATCHED = "matched"
DRIVER_EN_ROUTE = "driver_en_route"
ARRIVED = "arrived"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"
CANCELLED = "cancelled"

TERMINAL_STATUSES = (COMPLETED, CANCELLED)
NON_TERMINAL_STATUSES = (REQUESTED, MATCHED, DRIVER_EN_ROUTE, ARRIVED, IN_PROGRESS)
ACTIVE_STATUSES = (MATCHED, DRIVER_EN_ROUTE, ARRIVED, IN_PROGRESS)


def generate_uuid():
    return str(uuid.uuid4())


def utcnow():
    # Naive UTC; SQLite drops tzinfo on round trip.
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class Rider(Base):
    __tablename__ = "riders"
    id = Column(String, primary_key=True, default=generate_uuid)
    name = Column(String)
    email = Column(String, unique=True, index=True)
    phone = Column(String, nullable=True)
    rating = Column(Float, default=5.0)
    created_at = Column(DateTime, default=utcnow)


class Driver(Base):
    __tablename__ = "drivers"
    id = Column(String, primary_key=True, default=generate_uuid)
    first_name = Column(String)
    last_name = Column(String, default="")
    email = Column(String, unique=True, index=True)
    phone = Column(String)

    vehicle_make = Column(String)
    vehicle_model = Column(String)
    vehicle_color = Column(String)
    license_plate = Column(String, unique=True)

    status = Column(String, default="pending")  # pending, active, suspended
    background_check_status = Column(String, default="pending")  # pending, approved, rejected

    # Availability; is_available implies current_ride_id is NULL
    is_online = Column(Boolean, default=False)
    is_available = Column(Boolean, default=False)
    current_ride_id = Column(String, nullable=True, unique=True)

    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    heading = Column(Float, nullable=True)
    location_updated_at = Column(DateTime, nullable=True)

    rating = Column(Float, default=5.0)
    total_rides = Column(Integer, default=0)
    created_at = Column(DateTime, default=utcnow)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name or ''}".strip()

    @property
    def vehicle_info(self):
        return f"{self.vehicle_make} {self.vehicle_model} ({self.vehicle_color})"


class Ride(Base):
    __tablename__ = "rides"
    id = Column(String, primary_key=True, default=generate_uuid)
    reference = Column(String, unique=True, index=True)
    pickup_code = Column(String(6))
    otp = Column(String(4))

    rider_id = Column(String, ForeignKey("riders.id"), index=True)
    driver_id = Column(String, ForeignKey("drivers.id"), nullable=True, index=True)

    pickup_address = Column(Text)
    pickup_lat = Column(Float)
    pickup_lon = Column(Float)
    destination_address = Column(Text)
    destination_lat = Column(Float)
    destination_lon = Column(Float)

    # Route
    distance_km = Column(Float)
    duration_minutes = Column(Float)
    estimated_fare = Column(Float)

    # Pricing breakdown
    base_fare = Column(Float)
    distance_fee = Column(Float)
    time_fee = Column(Float)
    subtotal = Column(Float)
    platform_fee = Column(Float)
    minimum_fare_applied = Column(Boolean, default=False)
    currency = Column(String, default="USD")

    carbon_saved_kg = Column(Float, default=0.0)

    status = Column(String, default=REQUESTED, index=True)
    requested_at = Column(DateTime, default=utcnow)
    matched_at = Column(DateTime, nullable=True)
    driver_en_route_at = Column(DateTime, nullable=True)
    arrived_at = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    # Driver snapshot taken at match time
    driver_name = Column(String, nullable=True)
    driver_phone = Column(String, nullable=True)
    vehicle_info = Column(String, nullable=True)
    license_plate = Column(String, nullable=True)

    # Last known driver position for tracking
    driver_lat = Column(Float, nullable=True)
    driver_lon = Column(Float, nullable=True)
    driver_heading = Column(Float, nullable=True)
    driver_location_updated_at = Column(DateTime, nullable=True)

    estimated_arrival_minutes = Column(Integer, nullable=True)
    estimated_arrival = Column(String, nullable=True)

    notes = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_by = Column(String, nullable=True)  # rider, driver, system


# One non-terminal ride per rider and per assigned driver, enforced by the store
Index(
    "uq_rides_active_rider",
    Ride.rider_id,
    unique=True,
    sqlite_where=Ride.status.in_(NON_TERMINAL_STATUSES),
    postgresql_where=Ride.status.in_(NON_TERMINAL_STATUSES),
)
Index(
    "uq_rides_active_driver",
    Ride.driver_id,
    unique=True,
    sqlite_where=Ride.status.in_(ACTIVE_STATUSES),
    postgresql_where=Ride.status.in_(ACTIVE_STATUSES),
)


class RideDecline(Base):
    __tablename__ = "ride_declines"
    id = Column(String, primary_key=True, default=generate_uuid)
    ride_id = Column(String, ForeignKey("rides.id"), index=True)
    driver_id = Column(String, ForeignKey("drivers.id"), index=True)
    declined_at = Column(DateTime, default=utcnow)

    __table_args__ = (UniqueConstraint("ride_id", "driver_id", name="uq_ride_declines_ride_driver"),)
