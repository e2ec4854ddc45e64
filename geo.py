"""
Geospatial lookups over driver and ride positions.

Coordinates are carried internally as ``Point(latitude, longitude)``;
all distances are meters on a 6371 km sphere. GeoJSON ``[lng, lat]``
pairs are converted at the request boundary, never here.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Iterable, List, NamedTuple, Optional, Tuple, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import Driver, Ride, RideDecline, REQUESTED

logger = logging.getLogger(__name__)

EARTH_RADIUS_METERS = 6371000
METERS_PER_DEGREE_LAT = 111320.0

T = TypeVar("T")


class Point(NamedTuple):
    latitude: float
    longitude: float


def haversine_meters(a: Point, b: Point) -> float:
    """Great-circle distance between two points in meters."""
    lat1, lon1, lat2, lon2 = map(math.radians, [a.latitude, a.longitude, b.latitude, b.longitude])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(min(1.0, h)))


def bounding_box(center: Point, radius_meters: float) -> Tuple[float, float, float, float]:
    """
    Lat/lon box enclosing the circle around ``center``.

    Returns (min_lat, max_lat, min_lon, max_lon). Used as a cheap index-friendly
    prefilter; callers still apply the exact haversine check.
    """
    lat_delta = radius_meters / METERS_PER_DEGREE_LAT
    cos_lat = math.cos(math.radians(center.latitude))
    if cos_lat < 1e-6:
        lon_delta = 180.0
    else:
        lon_delta = min(180.0, radius_meters / (METERS_PER_DEGREE_LAT * cos_lat))
    return (
        center.latitude - lat_delta,
        center.latitude + lat_delta,
        center.longitude - lon_delta,
        center.longitude + lon_delta,
    )


@dataclass(frozen=True)
class Nearby:
    """A single find-near hit. For drivers this is the match candidate."""
    entity: object
    distance_meters: float


def nearest(
    center: Point,
    items: Iterable[T],
    position: Callable[[T], Optional[Point]],
    radius_meters: float,
    limit: int,
    predicate: Optional[Callable[[T], bool]] = None,
) -> List[Nearby]:
    """
    Rank ``items`` by distance from ``center``.

    Items without a position, failing ``predicate`` or farther than
    ``radius_meters`` are dropped. Result is nearest first, ties broken by
    input order, and capped at ``limit``.
    """
    hits = []
    for item in items:
        if predicate is not None and not predicate(item):
            continue
        point = position(item)
        if point is None:
            continue
        distance = haversine_meters(center, point)
        if distance <= radius_meters:
            hits.append(Nearby(item, distance))
    hits.sort(key=lambda hit: hit.distance_meters)
    return hits[:max(limit, 0)]


def driver_position(driver: Driver) -> Optional[Point]:
    if driver.latitude is None or driver.longitude is None:
        return None
    return Point(driver.latitude, driver.longitude)


def ride_pickup(ride: Ride) -> Optional[Point]:
    if ride.pickup_lat is None or ride.pickup_lon is None:
        return None
    return Point(ride.pickup_lat, ride.pickup_lon)


def is_eligible(driver: Driver) -> bool:
    """Online, available, active, background-check approved and unassigned."""
    return bool(
        driver.is_online
        and driver.is_available
        and driver.current_ride_id is None
        and driver.status == "active"
        and driver.background_check_status == "approved"
    )


class GeoIndex:
    """
    Read-only radius queries against the shared store.

    The bounding box narrows the SQL scan; exact distance, ordering and the
    eligibility predicate are applied in :func:`nearest`.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def find_drivers_near(
        self,
        center: Point,
        radius_meters: float,
        limit: int,
        predicate: Callable[[Driver], bool] = is_eligible,
    ) -> List[Nearby]:
        min_lat, max_lat, min_lon, max_lon = bounding_box(center, radius_meters)
        stmt = select(Driver).where(
            Driver.is_online.is_(True),
            Driver.is_available.is_(True),
            Driver.current_ride_id.is_(None),
            Driver.latitude.between(min_lat, max_lat),
            Driver.longitude.between(min_lon, max_lon),
        )
        result = await self.db.execute(stmt)
        drivers = result.scalars().all()
        hits = nearest(center, drivers, driver_position, radius_meters, limit, predicate)
        logger.debug("GeoIndex: %d of %d drivers within %.0fm", len(hits), len(drivers), radius_meters)
        return hits

    async def find_open_rides_near(
        self,
        center: Point,
        radius_meters: float,
        limit: int,
        declined_by: Optional[str] = None,
    ) -> List[Nearby]:
        """Unassigned ``requested`` rides whose pickup lies within the radius."""
        min_lat, max_lat, min_lon, max_lon = bounding_box(center, radius_meters)
        stmt = (
            select(Ride)
            .where(
                Ride.status == REQUESTED,
                Ride.driver_id.is_(None),
                Ride.pickup_lat.between(min_lat, max_lat),
                Ride.pickup_lon.between(min_lon, max_lon),
            )
            .order_by(Ride.requested_at)
        )
        if declined_by:
            declined = select(RideDecline.ride_id).where(RideDecline.driver_id == declined_by)
            stmt = stmt.where(Ride.id.notin_(declined))

        result = await self.db.execute(stmt)
        rides = result.scalars().all()
        return nearest(center, rides, ride_pickup, radius_meters, limit)
