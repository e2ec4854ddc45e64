from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

import crud
from database import get_db
from dependencies import get_engine
from matching_engine import MatchingEngine
from schemas import (
    ERROR_RESPONSES,
    AcceptRequest,
    CancelRequest,
    Coordinates,
    DeclineRequest,
    DeclineResponse,
    RideCreate,
    RideCreated,
    RideList,
    RideLocationUpdate,
    RideResponse,
    RideStatus,
    RideStatusUpdate,
    TrackingResponse,
)

router = APIRouter(prefix="/rides", tags=["rides"], responses=ERROR_RESPONSES)


@router.post("", response_model=RideCreated, status_code=201)
async def create_ride(request: RideCreate, engine: MatchingEngine = Depends(get_engine)):
    result = await engine.create_ride(
        rider_id=request.rider_id,
        pickup_address=request.pickup.address,
        pickup=request.pickup.coordinates.to_point(),
        destination_address=request.destination.address,
        destination=request.destination.coordinates.to_point(),
        notes=request.notes,
    )
    return RideCreated(
        ride=RideResponse.model_validate(result.ride),
        message=result.message,
        driver_candidates=result.driver_candidates,
    )


@router.get("", response_model=RideList)
async def list_rides(
    rider_id: Optional[str] = None,
    driver_id: Optional[str] = None,
    status: Optional[RideStatus] = None,
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    rides = await crud.list_rides(
        db, rider_id=rider_id, driver_id=driver_id,
        status=status.value if status else None, limit=limit,
    )
    return RideList(rides=[RideResponse.model_validate(r) for r in rides], total=len(rides))


@router.get("/{ride_id}", response_model=RideResponse)
async def get_ride(ride_id: str, db: AsyncSession = Depends(get_db)):
    return await crud.get_ride(db, ride_id)


@router.post("/{ride_id}/accept", response_model=RideResponse)
async def accept_ride(ride_id: str, request: AcceptRequest, engine: MatchingEngine = Depends(get_engine)):
    location = request.driver_location.to_point() if request.driver_location else None
    return await engine.accept_ride(ride_id, request.driver_id, driver_location=location)


@router.post("/{ride_id}/decline", response_model=DeclineResponse)
async def decline_ride(ride_id: str, request: DeclineRequest, engine: MatchingEngine = Depends(get_engine)):
    ack = await engine.decline_ride(ride_id, request.driver_id)
    return DeclineResponse(ride_id=ack.ride_id, driver_id=ack.driver_id, declined=ack.declined)


@router.patch("/{ride_id}/status", response_model=RideResponse)
async def update_ride_status(ride_id: str, request: RideStatusUpdate, engine: MatchingEngine = Depends(get_engine)):
    return await engine.advance_ride(ride_id, request.driver_id, request.status, otp=request.otp)


@router.post("/{ride_id}/cancel", response_model=RideResponse)
async def cancel_ride(ride_id: str, request: CancelRequest, engine: MatchingEngine = Depends(get_engine)):
    return await engine.cancel_ride(ride_id, request.actor, request.actor_id, reason=request.reason)


@router.post("/{ride_id}/location", response_model=TrackingResponse)
async def update_ride_location(ride_id: str, request: RideLocationUpdate, engine: MatchingEngine = Depends(get_engine)):
    await engine.update_ride_location(
        ride_id, request.driver_id, request.location.to_point(), heading=request.heading
    )
    return await _tracking(engine, ride_id)


@router.get("/{ride_id}/tracking", response_model=TrackingResponse)
async def get_ride_tracking(ride_id: str, engine: MatchingEngine = Depends(get_engine)):
    return await _tracking(engine, ride_id)


async def _tracking(engine: MatchingEngine, ride_id: str) -> TrackingResponse:
    tracking = await engine.get_ride_tracking(ride_id)
    location = None
    if tracking.driver_location is not None:
        location = Coordinates(
            latitude=tracking.driver_location.latitude,
            longitude=tracking.driver_location.longitude,
        )
    return TrackingResponse(
        ride_id=tracking.ride.id,
        reference=tracking.ride.reference,
        status=tracking.status,
        status_display=tracking.status_display,
        driver_location=location,
        driver_heading=tracking.driver_heading,
        estimated_arrival=tracking.estimated_arrival,
        estimated_arrival_minutes=tracking.estimated_arrival_minutes,
        last_updated=tracking.last_updated,
    )
