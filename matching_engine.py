import logging
import secrets
import string
import time
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

import crud
from availability import DriverAvailabilityTracker, LocationResult, ReservationResult
from config import Settings, get_settings
from exceptions import (
    ActiveRideExistsError,
    ConflictError,
    DispatchError,
    DriverNotAvailableError,
    DriverNotFoundError,
    DriverTooFarError,
    InvalidOtpError,
    PersistenceError,
    RideAlreadyAssignedError,
    RideNotActiveError,
    RideNotAvailableError,
    RideNotFoundError,
    RoutingError,
    UnauthorizedDriverError,
    ValidationError,
)
from fare import FareEstimator, FareRates, estimate_carbon_saved
from geo import GeoIndex, Point, driver_position, haversine_meters, is_eligible, ride_pickup
from models import (
    Driver,
    Ride,
    RideDecline,
    REQUESTED,
    MATCHED,
    DRIVER_EN_ROUTE,
    ARRIVED,
    IN_PROGRESS,
    COMPLETED,
    CANCELLED,
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    utcnow,
)
from notifications import DispatchEvent, DispatchNotifier
from routing import RoutingService
from state_machine import STATUS_DISPLAY, RideStateMachine

logger = logging.getLogger(__name__)

DRIVER_PROGRESS_STATUSES = (DRIVER_EN_ROUTE, ARRIVED, IN_PROGRESS, COMPLETED)
CANCEL_ACTORS = ("rider", "driver", "system")
CANCEL_MESSAGES = {
    "rider": "Rider cancelled this ride.",
    "driver": "Driver cancelled the ride. Please request again.",
    "system": "Ride was cancelled by dispatch. Please request again.",
}
_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


@dataclass(frozen=True)
class MatchCandidate:
    """A driver considered for one ride; lives only for one assignment attempt."""
    ride_id: str
    driver_id: str
    distance_meters: float


@dataclass
class RideResult:
    """Result object for ride creation."""
    ride: Ride
    message: str = ""
    matched: bool = False
    driver_candidates: int = 0


@dataclass
class NearbyRide:
    ride: Ride
    distance_meters: float
    estimated_pickup_minutes: int


@dataclass
class DeclineAck:
    ride_id: str
    driver_id: str
    declined: bool = True


@dataclass
class RideTracking:
    ride: Ride
    status: str
    status_display: str
    driver_location: Optional[Point]
    driver_heading: Optional[float]
    estimated_arrival: Optional[str]
    estimated_arrival_minutes: Optional[int]
    last_updated: object


def fare_rates(settings: Settings) -> FareRates:
    return FareRates(
        base=settings.fare_base,
        per_km=settings.fare_per_km,
        per_minute=settings.fare_per_minute,
        platform_fee_rate=settings.fare_platform_fee_rate,
        minimum=settings.fare_minimum,
        currency=settings.fare_currency,
    )


def generate_reference() -> str:
    suffix = "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(6))
    return f"RIDE_{int(time.time() * 1000)}_{suffix}"


def generate_numeric_code(length: int) -> str:
    return "".join(secrets.choice(string.digits) for _ in range(length))


def validate_point(point: Optional[Point], label: str) -> Point:
    if point is None:
        raise ValidationError(f"{label} coordinates are required")
    lat, lon = point
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        raise ValidationError(f"Invalid {label} latitude or longitude values")
    return Point(float(lat), float(lon))


class MatchingEngine:
    """
    Ride dispatch core: creation, driver matching, accept/decline, progress,
    cancellation and tracking.

    Every state change on a ride or driver is a conditional UPDATE inside the
    session's transaction; a ride/driver pair is committed together or rolled
    back together. Notifications go out after commit and their failures are
    logged, never raised.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        routing: RoutingService,
        notifier: DispatchNotifier,
        settings: Optional[Settings] = None,
        fare_estimator: Optional[FareEstimator] = None,
    ):
        self.db = db_session
        self.routing = routing
        self.notifier = notifier
        self.settings = settings or get_settings()
        self.fares = fare_estimator or FareEstimator(fare_rates(self.settings))
        self.geo = GeoIndex(db_session)
        self.tracker = DriverAvailabilityTracker(db_session)
        self.rides = RideStateMachine(db_session)

    # ===================== Transactions =====================

    async def _commit(self):
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError("Conflicting update, please refresh and retry") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception("Commit failed")
            raise PersistenceError() from e

    async def _rollback(self, *objects):
        await self.db.rollback()
        for obj in objects:
            await self.db.refresh(obj)

    # ===================== Arrival estimate =====================

    def estimate_arrival_minutes(self, distance_meters: float) -> int:
        """Minutes to pickup at the configured city speed, clamped to a sane range."""
        minutes = round(distance_meters / 1000 / self.settings.average_speed_kmh * 60)
        return max(self.settings.eta_min_minutes, min(self.settings.eta_max_minutes, minutes))

    # ===================== Ride creation =====================

    async def create_ride(
        self,
        rider_id: str,
        pickup_address: str,
        pickup: Point,
        destination_address: str,
        destination: Point,
        notes: Optional[str] = None,
    ) -> RideResult:
        """
        Price a new ride, persist it as ``requested`` and run matching.

        In ``auto`` mode the nearest eligible driver that can be reserved is
        assigned immediately; in ``broadcast`` mode every candidate is offered
        the ride and the first ``accept_ride`` wins.
        """
        pickup = validate_point(pickup, "pickup")
        destination = validate_point(destination, "destination")
        if not (pickup_address or "").strip() or not (destination_address or "").strip():
            raise ValidationError("Pickup and destination must have an address")

        await crud.get_rider(self.db, rider_id)
        existing = await crud.get_active_ride(self.db, rider_id)
        if existing:
            raise ActiveRideExistsError(
                f"Rider already has an active ride ({existing.reference}, {existing.status})"
            )

        try:
            route = await self.routing.get_route(pickup, destination)
        except RoutingError:
            raise
        except Exception as e:
            logger.exception("Routing service failed for rider %s", rider_id)
            raise RoutingError() from e

        fare = self.fares.estimate(route.distance_km, route.duration_minutes)

        ride = Ride(
            reference=generate_reference(),
            pickup_code=generate_numeric_code(6),
            otp=generate_numeric_code(4),
            rider_id=rider_id,
            pickup_address=pickup_address.strip(),
            pickup_lat=pickup.latitude,
            pickup_lon=pickup.longitude,
            destination_address=destination_address.strip(),
            destination_lat=destination.latitude,
            destination_lon=destination.longitude,
            distance_km=round(route.distance_km, 3),
            duration_minutes=round(route.duration_minutes, 1),
            estimated_fare=fare.total,
            base_fare=fare.base_fare,
            distance_fee=fare.distance_fee,
            time_fee=fare.time_fee,
            subtotal=fare.subtotal,
            platform_fee=fare.platform_fee,
            minimum_fare_applied=fare.minimum_applied,
            currency=fare.currency,
            carbon_saved_kg=estimate_carbon_saved(route.distance_km),
            status=REQUESTED,
            requested_at=utcnow(),
            notes=notes,
        )
        self.db.add(ride)
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            raise ActiveRideExistsError() from e
        await self._commit()
        logger.info(
            "Created ride %s for rider %s: %.2f km, %.0f min, fare %.2f %s",
            ride.reference, rider_id, ride.distance_km, ride.duration_minutes,
            ride.estimated_fare, ride.currency,
        )

        hits = await self.geo.find_drivers_near(
            pickup, self.settings.search_radius_meters, self.settings.max_candidates
        )
        candidates = [MatchCandidate(ride.id, hit.entity.id, hit.distance_meters) for hit in hits]
        logger.info("Ride %s: %d candidate drivers within %.0fm", ride.reference, len(candidates), self.settings.search_radius_meters)

        if not candidates:
            await self._notify_rider(ride, "no_drivers_available", "No drivers found nearby. Please try again later.")
            return RideResult(ride=ride, message="No available drivers found nearby yet.")

        if self.settings.matching_mode == "auto":
            driver = await self._auto_assign(ride, candidates)
            if driver:
                return RideResult(
                    ride=ride,
                    message="Ride created and driver assigned",
                    matched=True,
                    driver_candidates=len(candidates),
                )
            await self._notify_rider(ride, "no_drivers_available", "Nearby drivers are busy. Your ride stays open for the next available driver.")
            return RideResult(
                ride=ride,
                message="Nearby drivers are busy; ride is waiting for a driver.",
                driver_candidates=len(candidates),
            )

        await self._broadcast_offer(ride, candidates)
        return RideResult(
            ride=ride,
            message="Notifying nearby drivers...",
            driver_candidates=len(candidates),
        )

    async def _broadcast_offer(self, ride: Ride, candidates: List[MatchCandidate]):
        for candidate in candidates:
            event = DispatchEvent(
                type="ride_offer",
                ride_id=ride.id,
                status=ride.status,
                message="New ride request nearby",
                data={
                    "ride_data": self._ride_payload(ride),
                    "distance_to_pickup_km": round(candidate.distance_meters / 1000, 2),
                },
            )
            await self._notify_driver(candidate.driver_id, event)

    async def _auto_assign(self, ride: Ride, candidates: List[MatchCandidate]) -> Optional[Driver]:
        """Reserve the nearest candidate that is still free, falling through on conflict."""
        for candidate in candidates:
            try:
                driver = await self._assign(ride, candidate)
            except (DriverNotAvailableError, DriverNotFoundError):
                logger.info("Ride %s: driver %s unavailable, trying next candidate", ride.reference, candidate.driver_id)
                continue
            except ConflictError:
                logger.warning("Ride %s changed during auto-assignment; stopping", ride.reference)
                return None
            await self._notify_match(ride, driver)
            return driver
        return None

    async def _assign(
        self,
        ride: Ride,
        candidate: MatchCandidate,
        location: Optional[Point] = None,
    ) -> Driver:
        """
        Move the ride to ``matched`` and reserve the driver in one transaction.

        The ride's conditional update runs first, so concurrent accepts for
        one ride are decided there: the losers get RideAlreadyAssignedError
        (or RideNotAvailableError when the ride left ``requested``) before
        touching any driver row. DriverNotAvailableError means the driver was
        taken. Nothing is committed on failure.
        """
        driver = await crud.get_driver(self.db, candidate.driver_id)
        driver_id = driver.id
        try:
            position = location or driver_position(driver)
            values = {
                "driver_id": driver_id,
                "driver_name": driver.full_name,
                "driver_phone": driver.phone,
                "vehicle_info": driver.vehicle_info,
                "license_plate": driver.license_plate,
            }
            if position is not None:
                eta = self.estimate_arrival_minutes(candidate.distance_meters)
                values.update(
                    driver_lat=position.latitude,
                    driver_lon=position.longitude,
                    driver_heading=driver.heading,
                    driver_location_updated_at=utcnow(),
                    estimated_arrival_minutes=eta,
                    estimated_arrival=f"{eta} minutes",
                )

            await self.rides.transition(
                ride, MATCHED, criteria=(Ride.driver_id.is_(None),), **values
            )

            reservation = await self.tracker.reserve(driver_id, ride.id)
            if reservation is not ReservationResult.RESERVED:
                raise DriverNotAvailableError(
                    f"Driver {driver_id} could not be reserved ({reservation.value})"
                )
            if location is not None:
                await self.tracker.update_location(driver_id, location)
            await self.db.flush()
        except RideNotAvailableError:
            await self._rollback(ride)
            if ride.driver_id is not None and ride.driver_id != driver_id:
                raise RideAlreadyAssignedError()
            raise
        except IntegrityError as e:
            await self._rollback(ride)
            if ride.driver_id is not None and ride.driver_id != driver_id:
                raise RideAlreadyAssignedError() from e
            raise DriverNotAvailableError(f"Driver {driver_id} is already on a ride") from e
        except DispatchError:
            await self._rollback(ride)
            raise

        await self._commit()
        driver = await crud.get_driver(self.db, driver_id)
        logger.info(
            "Ride %s matched to driver %s (%.0fm from pickup)",
            ride.reference, driver_id, candidate.distance_meters,
        )
        return driver

    # ===================== Driver-side protocol =====================

    async def accept_ride(
        self,
        ride_id: str,
        driver_id: str,
        driver_location: Optional[Point] = None,
    ) -> Ride:
        """
        Driver accepts an open ride. The first accept to flip the ride from
        ``requested`` wins; re-accepting by the same driver is a no-op.
        """
        if driver_location is not None:
            driver_location = validate_point(driver_location, "driver")

        ride = await crud.get_ride(self.db, ride_id)
        if ride.driver_id == driver_id and ride.status in ACTIVE_STATUSES:
            logger.info("Ride %s already accepted by driver %s", ride.reference, driver_id)
            return ride
        if ride.status in TERMINAL_STATUSES:
            raise RideNotAvailableError(f"Ride cannot be accepted. Current status: {ride.status}")
        if ride.driver_id is not None:
            raise RideAlreadyAssignedError()
        if ride.status != REQUESTED:
            raise RideNotAvailableError(f"Ride cannot be accepted. Current status: {ride.status}")

        driver = await crud.get_driver(self.db, driver_id)
        if not is_eligible(driver):
            raise DriverNotAvailableError()

        position = driver_location or driver_position(driver)
        distance = haversine_meters(position, ride_pickup(ride)) if position else None
        if distance is not None and distance > self.settings.accept_radius_meters:
            raise DriverTooFarError(
                f"Driver is {distance / 1000:.1f} km from pickup "
                f"(limit {self.settings.accept_radius_meters / 1000:.1f} km)"
            )

        # Without a known position the ride is matched with no arrival estimate
        candidate = MatchCandidate(ride.id, driver.id, distance if distance is not None else 0.0)
        driver = await self._assign(ride, candidate, location=driver_location)

        await self._notify_match(ride, driver)
        return ride

    async def decline_ride(self, ride_id: str, driver_id: str) -> DeclineAck:
        """Record a decline for analytics. Never changes ride or driver state."""
        try:
            ride = await crud.get_ride(self.db, ride_id)
        except RideNotFoundError:
            logger.info("Driver %s declined unknown ride %s", driver_id, ride_id)
            return DeclineAck(ride_id=ride_id, driver_id=driver_id)

        result = await self.db.execute(
            select(RideDecline.id).where(
                RideDecline.ride_id == ride.id, RideDecline.driver_id == driver_id
            )
        )
        if result.scalar_one_or_none() is None:
            self.db.add(RideDecline(ride_id=ride.id, driver_id=driver_id))
            try:
                await self.db.commit()
            except IntegrityError:
                # A concurrent decline from the same driver already landed
                await self.db.rollback()
            logger.info("Driver %s declined ride %s", driver_id, ride.reference)

        return DeclineAck(ride_id=ride.id, driver_id=driver_id)

    async def list_nearby_rides(
        self,
        driver_point: Point,
        radius_meters: Optional[float] = None,
        limit: Optional[int] = None,
        driver_id: Optional[str] = None,
    ) -> List[NearbyRide]:
        """
        Open rides around a driver, nearest pickup first. Rides the driver
        has declined are left out; an offline or inactive driver sees none.
        """
        driver_point = validate_point(driver_point, "driver")
        if radius_meters is None:
            radius_meters = self.settings.nearby_rides_radius_meters
        if limit is None:
            limit = self.settings.nearby_rides_limit
        if radius_meters <= 0 or limit <= 0:
            raise ValidationError("Radius and limit must be positive")

        if driver_id:
            driver = await crud.get_driver(self.db, driver_id)
            if not driver.is_online or driver.status != "active":
                return []

        hits = await self.geo.find_open_rides_near(driver_point, radius_meters, limit, declined_by=driver_id)
        return [
            NearbyRide(
                ride=hit.entity,
                distance_meters=hit.distance_meters,
                estimated_pickup_minutes=round(hit.distance_meters / 1000 / self.settings.average_speed_kmh * 60),
            )
            for hit in hits
        ]

    # ===================== Progress & cancellation =====================

    async def advance_ride(
        self,
        ride_id: str,
        driver_id: str,
        target: str,
        otp: Optional[str] = None,
    ) -> Ride:
        """Driver-side progress: en route, arrived, started, completed."""
        if target not in DRIVER_PROGRESS_STATUSES:
            raise ValidationError(f"Drivers cannot set status {target}")

        ride = await crud.get_ride(self.db, ride_id)
        if ride.driver_id != driver_id:
            raise UnauthorizedDriverError("Driver not authorized to update this ride")
        if target == IN_PROGRESS and otp is not None and otp != ride.otp:
            raise InvalidOtpError()

        try:
            changed = await self.rides.transition(
                ride, target, criteria=(Ride.driver_id == driver_id,)
            )
            if changed and target == COMPLETED:
                await self.tracker.release(driver_id, ride.id)
                await self.db.execute(
                    update(Driver)
                    .where(Driver.id == driver_id)
                    .values(total_rides=Driver.total_rides + 1)
                    .execution_options(synchronize_session=False)
                )
            await self.db.flush()
        except DispatchError:
            await self._rollback(ride)
            raise
        await self._commit()

        if changed:
            await self._notify_rider(ride, "ride_status_changed", STATUS_DISPLAY[target])
        return ride

    async def cancel_ride(
        self,
        ride_id: str,
        actor: str,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Ride:
        """Cancel from any non-terminal state, releasing the assigned driver."""
        if actor not in CANCEL_ACTORS:
            raise ValidationError(f"Unknown cancelling party: {actor}")

        ride = await crud.get_ride(self.db, ride_id)
        if actor == "rider" and ride.rider_id != actor_id:
            raise RideNotFoundError()
        if actor == "driver" and ride.driver_id != actor_id:
            raise UnauthorizedDriverError("Driver not authorized to cancel this ride")

        driver_id = ride.driver_id
        try:
            await self.rides.transition(
                ride,
                CANCELLED,
                cancelled_by=actor,
                cancellation_reason=reason or "No reason provided",
            )
            if driver_id:
                await self.tracker.release(driver_id, ride.id)
            await self.db.flush()
        except DispatchError:
            await self._rollback(ride)
            raise
        await self._commit()
        logger.info("Ride %s cancelled by %s", ride.reference, actor)

        if driver_id and actor != "driver":
            event = DispatchEvent("ride_cancelled", ride.id, ride.status, CANCEL_MESSAGES[actor])
            await self._notify_driver(driver_id, event)
        if actor != "rider":
            await self._notify_rider(ride, "ride_cancelled", CANCEL_MESSAGES[actor])
        return ride

    # ===================== Location & tracking =====================

    async def update_driver_location(
        self,
        driver_id: str,
        point: Point,
        heading: Optional[float] = None,
        timestamp=None,
    ) -> LocationResult:
        """
        Driver heartbeat. Out-of-order heartbeats are dropped as STALE.
        A fresh position is mirrored onto the driver's active ride.
        """
        point = validate_point(point, "driver")
        result = await self.tracker.update_location(driver_id, point, timestamp, heading)
        ride = None
        if result is LocationResult.UPDATED:
            driver = await crud.get_driver(self.db, driver_id)
            if driver.current_ride_id:
                ride = await self._mirror_location(driver.current_ride_id, driver_id, point, heading)
        await self._commit()

        if ride is not None:
            await self._notify_rider(ride, "driver_location_updated", data=self._location_payload(ride))
        return result

    async def update_ride_location(
        self,
        ride_id: str,
        driver_id: str,
        point: Point,
        heading: Optional[float] = None,
    ) -> Ride:
        """Ride-scoped location update from the assigned driver."""
        point = validate_point(point, "driver")
        ride = await crud.get_ride(self.db, ride_id)
        if ride.driver_id != driver_id:
            raise UnauthorizedDriverError()
        if ride.status not in ACTIVE_STATUSES:
            raise RideNotActiveError("Cannot update location for inactive ride")

        result = await self.tracker.update_location(driver_id, point, heading=heading)
        if result is LocationResult.STALE:
            # Driver row holds a newer fix; keep the ride consistent with it
            await self._commit()
            return ride
        mirrored = await self._mirror_location(ride.id, driver_id, point, heading)
        if mirrored is None:
            await self._rollback(ride)
            raise RideNotActiveError("Cannot update location for inactive ride")
        await self._commit()

        await self._notify_rider(ride, "driver_location_updated", data=self._location_payload(ride))
        return ride

    async def _mirror_location(
        self, ride_id: str, driver_id: str, point: Point, heading: Optional[float]
    ) -> Optional[Ride]:
        ride = await crud.get_ride(self.db, ride_id)
        values = {
            "driver_lat": point.latitude,
            "driver_lon": point.longitude,
            "driver_location_updated_at": utcnow(),
        }
        if heading is not None:
            values["driver_heading"] = heading
        if ride.status in (MATCHED, DRIVER_EN_ROUTE):
            eta = self.estimate_arrival_minutes(haversine_meters(point, ride_pickup(ride)))
            values.update(estimated_arrival_minutes=eta, estimated_arrival=f"{eta} minutes")

        result = await self.db.execute(
            update(Ride)
            .where(
                Ride.id == ride.id,
                Ride.driver_id == driver_id,
                Ride.status.in_(ACTIVE_STATUSES),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        for key, value in values.items():
            set_committed_value(ride, key, value)
        return ride

    async def get_ride_tracking(self, ride_id: str) -> RideTracking:
        ride = await crud.get_ride(self.db, ride_id)
        location = None
        if ride.driver_lat is not None and ride.driver_lon is not None:
            location = Point(ride.driver_lat, ride.driver_lon)
        return RideTracking(
            ride=ride,
            status=ride.status,
            status_display=STATUS_DISPLAY[ride.status],
            driver_location=location,
            driver_heading=ride.driver_heading,
            estimated_arrival=ride.estimated_arrival,
            estimated_arrival_minutes=ride.estimated_arrival_minutes,
            last_updated=ride.driver_location_updated_at,
        )

    async def set_driver_online(self, driver_id: str, online: bool) -> Driver:
        driver = await self.tracker.set_online(driver_id, online)
        await self._commit()
        return driver

    # ===================== Notifications =====================

    def _ride_payload(self, ride: Ride) -> dict:
        return {
            "id": ride.id,
            "reference": ride.reference,
            "status": ride.status,
            "pickup": {
                "address": ride.pickup_address,
                "coordinates": {"latitude": ride.pickup_lat, "longitude": ride.pickup_lon},
            },
            "destination": {
                "address": ride.destination_address,
                "coordinates": {"latitude": ride.destination_lat, "longitude": ride.destination_lon},
            },
            "distance_km": ride.distance_km,
            "estimated_fare": ride.estimated_fare,
            "currency": ride.currency,
        }

    def _location_payload(self, ride: Ride) -> dict:
        return {
            "driver_location": {"latitude": ride.driver_lat, "longitude": ride.driver_lon},
            "heading": ride.driver_heading,
            "estimated_arrival": ride.estimated_arrival,
        }

    async def _notify_match(self, ride: Ride, driver: Driver):
        await self._notify_rider(
            ride,
            "ride_matched",
            "Your ride has been accepted! The driver is on the way.",
            data={
                "driver_contact": {
                    "name": ride.driver_name,
                    "phone": ride.driver_phone,
                    "vehicle_info": ride.vehicle_info,
                    "license_plate": ride.license_plate,
                },
                "estimated_arrival": ride.estimated_arrival,
                "otp": ride.otp,
                "pickup_code": ride.pickup_code,
            },
        )
        event = DispatchEvent(
            type="ride_assigned",
            ride_id=ride.id,
            status=ride.status,
            message="Navigate to pickup location.",
            data={"ride_data": self._ride_payload(ride)},
        )
        await self._notify_driver(driver.id, event)

    async def _notify_rider(self, ride: Ride, event_type: str, message: str = "", data: Optional[dict] = None):
        event = DispatchEvent(type=event_type, ride_id=ride.id, status=ride.status, message=message, data=data or {})
        try:
            await self.notifier.notify_rider(ride.rider_id, event)
        except Exception:
            logger.exception("Failed to notify rider %s about ride %s", ride.rider_id, ride.id)

    async def _notify_driver(self, driver_id: str, event: DispatchEvent):
        try:
            await self.notifier.notify_driver(driver_id, event)
        except Exception:
            logger.exception("Failed to notify driver %s about ride %s", driver_id, event.ride_id)
