from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

import crud
from availability import LocationResult
from database import get_db
from dependencies import get_engine
from geo import Point
from matching_engine import MatchingEngine
from schemas import (
    ERROR_RESPONSES,
    DriverCreate,
    DriverLocationUpdate,
    DriverResponse,
    DriverStatusUpdate,
    LocationUpdateResponse,
    RideSummary,
)

router = APIRouter(prefix="/drivers", tags=["drivers"], responses=ERROR_RESPONSES)


@router.post("", response_model=DriverResponse, status_code=201)
async def register_driver(driver: DriverCreate, db: AsyncSession = Depends(get_db)):
    return await crud.create_driver(db, driver)


@router.get("/{driver_id}", response_model=DriverResponse)
async def get_driver(driver_id: str, db: AsyncSession = Depends(get_db)):
    return await crud.get_driver(db, driver_id)


@router.patch("/{driver_id}/status", response_model=DriverResponse)
async def update_driver_status(
    driver_id: str, request: DriverStatusUpdate, engine: MatchingEngine = Depends(get_engine)
):
    return await engine.set_driver_online(driver_id, request.is_online)


@router.post("/{driver_id}/location", response_model=LocationUpdateResponse)
async def update_driver_location(
    driver_id: str, request: DriverLocationUpdate, engine: MatchingEngine = Depends(get_engine)
):
    result = await engine.update_driver_location(
        driver_id,
        request.location.to_point(),
        heading=request.heading,
        timestamp=request.timestamp,
    )
    stale = result is LocationResult.STALE
    return LocationUpdateResponse(driver_id=driver_id, accepted=not stale, stale=stale)


@router.get("/{driver_id}/available-rides", response_model=List[RideSummary])
async def available_rides(
    driver_id: str,
    latitude: float = Query(ge=-90, le=90),
    longitude: float = Query(ge=-180, le=180),
    radius_meters: Optional[float] = Query(default=None, gt=0),
    limit: Optional[int] = Query(default=None, ge=1, le=50),
    engine: MatchingEngine = Depends(get_engine),
):
    nearby = await engine.list_nearby_rides(
        Point(latitude, longitude), radius_meters=radius_meters, limit=limit, driver_id=driver_id
    )
    return [
        RideSummary(
            id=item.ride.id,
            reference=item.ride.reference,
            pickup_address=item.ride.pickup_address,
            pickup_lat=item.ride.pickup_lat,
            pickup_lon=item.ride.pickup_lon,
            destination_address=item.ride.destination_address,
            distance_km=item.ride.distance_km,
            duration_minutes=item.ride.duration_minutes,
            estimated_fare=item.ride.estimated_fare,
            currency=item.ride.currency,
            requested_at=item.ride.requested_at,
            distance_to_pickup_km=round(item.distance_meters / 1000, 2),
            estimated_pickup_minutes=item.estimated_pickup_minutes,
        )
        for item in nearby
    ]
