"""
Driver availability: offline / available / reserved.

Every mutation is a single conditional UPDATE so that concurrent handlers
in different processes serialize on the driver row, not on an in-process lock.
None of these methods commit; the caller owns the transaction.
"""

import datetime
import enum
import logging
from typing import Optional

from sqlalchemy import or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from crud import get_driver
from exceptions import ConflictError
from geo import Point
from models import Driver, utcnow

logger = logging.getLogger(__name__)


class ReservationResult(str, enum.Enum):
    RESERVED = "reserved"
    ALREADY_RESERVED = "already_reserved"
    NOT_AVAILABLE = "not_available"


class LocationResult(str, enum.Enum):
    UPDATED = "updated"
    STALE = "stale"


def to_naive_utc(value: Optional[datetime.datetime]) -> datetime.datetime:
    if value is None:
        return utcnow()
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return value


class DriverAvailabilityTracker:

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def reserve(self, driver_id: str, ride_id: str) -> ReservationResult:
        """
        Flip an eligible driver from available to reserved for ``ride_id``.

        Only one caller can win for a given driver: the UPDATE matches only
        while the driver is still available and unassigned.
        """
        stmt = (
            update(Driver)
            .where(
                Driver.id == driver_id,
                Driver.is_online.is_(True),
                Driver.is_available.is_(True),
                Driver.current_ride_id.is_(None),
                Driver.status == "active",
                Driver.background_check_status == "approved",
            )
            .values(is_available=False, current_ride_id=ride_id)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount == 1:
            logger.info("Driver %s reserved for ride %s", driver_id, ride_id)
            return ReservationResult.RESERVED

        driver = await get_driver(self.db, driver_id)
        if driver.current_ride_id == ride_id:
            return ReservationResult.RESERVED
        if driver.current_ride_id is not None:
            logger.warning(
                "Driver %s already reserved for ride %s (wanted %s)",
                driver_id, driver.current_ride_id, ride_id,
            )
            return ReservationResult.ALREADY_RESERVED
        return ReservationResult.NOT_AVAILABLE

    async def release(self, driver_id: str, ride_id: Optional[str] = None) -> bool:
        """
        Clear the driver's current ride. With ``ride_id`` the release only
        applies if the driver is still attached to that ride.
        """
        stmt = update(Driver).where(Driver.id == driver_id)
        if ride_id is not None:
            stmt = stmt.where(Driver.current_ride_id == ride_id)
        stmt = (
            stmt.values(current_ride_id=None, is_available=Driver.is_online)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount:
            logger.info("Driver %s released from ride %s", driver_id, ride_id)
        return result.rowcount == 1

    async def update_location(
        self,
        driver_id: str,
        point: Point,
        timestamp: Optional[datetime.datetime] = None,
        heading: Optional[float] = None,
    ) -> LocationResult:
        """Store a heartbeat unless a newer one is already stored."""
        timestamp = to_naive_utc(timestamp)
        values = {
            "latitude": point.latitude,
            "longitude": point.longitude,
            "location_updated_at": timestamp,
        }
        # A heartbeat without a heading keeps the last known one
        if heading is not None:
            values["heading"] = heading
        stmt = (
            update(Driver)
            .where(
                Driver.id == driver_id,
                or_(
                    Driver.location_updated_at.is_(None),
                    Driver.location_updated_at <= timestamp,
                ),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount == 1:
            return LocationResult.UPDATED

        # Raises if the driver does not exist at all
        await get_driver(self.db, driver_id)
        logger.warning("Dropped stale location for driver %s at %s", driver_id, timestamp)
        return LocationResult.STALE

    async def set_online(self, driver_id: str, online: bool) -> Driver:
        """
        Going online makes an unassigned driver available; going offline is
        refused while a ride is attached.
        """
        if online:
            stmt = (
                update(Driver)
                .where(Driver.id == driver_id)
                .values(is_online=True, is_available=Driver.current_ride_id.is_(None))
            )
        else:
            stmt = (
                update(Driver)
                .where(Driver.id == driver_id, Driver.current_ride_id.is_(None))
                .values(is_online=False, is_available=False)
            )
        result = await self.db.execute(stmt.execution_options(synchronize_session=False))

        driver = await get_driver(self.db, driver_id)
        if result.rowcount == 0:
            raise ConflictError(
                "Cannot go offline while a ride is assigned", code="DRIVER_HAS_ACTIVE_RIDE"
            )
        logger.info("Driver %s is now %s", driver_id, "online" if online else "offline")
        return driver
