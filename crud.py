from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from exceptions import ConflictError, DriverNotFoundError, RiderNotFoundError, RideNotFoundError
from models import Driver, Ride, Rider, NON_TERMINAL_STATUSES, utcnow
from schemas import DriverCreate, RiderCreate


async def get_rider(db: AsyncSession, rider_id: str) -> Rider:
    result = await db.execute(select(Rider).where(Rider.id == rider_id))
    rider = result.scalar_one_or_none()
    if not rider:
        raise RiderNotFoundError(f"Rider {rider_id} not found")
    return rider


async def create_rider(db: AsyncSession, rider: RiderCreate) -> Rider:
    db_rider = Rider(**rider.model_dump())
    db.add(db_rider)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError(f"A rider with email {rider.email} already exists", code="RIDER_EXISTS")
    await db.refresh(db_rider)
    return db_rider


async def get_driver(db: AsyncSession, driver_id: str) -> Driver:
    stmt = select(Driver).where(Driver.id == driver_id).execution_options(populate_existing=True)
    result = await db.execute(stmt)
    driver = result.scalar_one_or_none()
    if not driver:
        raise DriverNotFoundError(f"Driver {driver_id} not found")
    return driver


async def create_driver(db: AsyncSession, driver: DriverCreate) -> Driver:
    data = driver.model_dump(exclude={"location"}, mode="json")
    db_driver = Driver(**data)
    if driver.location is not None:
        db_driver.latitude = driver.location.latitude
        db_driver.longitude = driver.location.longitude
        db_driver.location_updated_at = utcnow()
    db.add(db_driver)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("A driver with this email or licence plate already exists", code="DRIVER_EXISTS")
    await db.refresh(db_driver)
    return db_driver


async def get_ride(db: AsyncSession, ride_id: str) -> Ride:
    """Look a ride up by primary key or public reference."""
    stmt = (
        select(Ride)
        .where(or_(Ride.id == ride_id, Ride.reference == ride_id))
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    ride = result.scalars().first()
    if not ride:
        raise RideNotFoundError()
    return ride


async def get_active_ride(db: AsyncSession, rider_id: str) -> Optional[Ride]:
    result = await db.execute(
        select(Ride).where(Ride.rider_id == rider_id, Ride.status.in_(NON_TERMINAL_STATUSES))
    )
    return result.scalars().first()


async def list_rides(
    db: AsyncSession,
    rider_id: Optional[str] = None,
    driver_id: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = 20,
) -> List[Ride]:
    stmt = select(Ride)
    if rider_id:
        stmt = stmt.where(Ride.rider_id == rider_id)
    if driver_id:
        stmt = stmt.where(Ride.driver_id == driver_id)
    if status:
        stmt = stmt.where(Ride.status == status)
    result = await db.execute(stmt.order_by(Ride.requested_at.desc()).limit(limit))
    return list(result.scalars().all())
