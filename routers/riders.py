from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

import crud
from database import get_db
from schemas import ERROR_RESPONSES, Rider, RiderCreate, RideResponse

router = APIRouter(prefix="/riders", tags=["riders"], responses=ERROR_RESPONSES)


@router.post("", response_model=Rider, status_code=201)
async def register_rider(rider: RiderCreate, db: AsyncSession = Depends(get_db)):
    return await crud.create_rider(db, rider)


@router.get("/{rider_id}", response_model=Rider)
async def get_rider(rider_id: str, db: AsyncSession = Depends(get_db)):
    return await crud.get_rider(db, rider_id)


@router.get("/{rider_id}/active-ride", response_model=Optional[RideResponse])
async def get_active_ride(rider_id: str, db: AsyncSession = Depends(get_db)):
    # 404 for unknown riders, null when the rider has nothing in flight
    await crud.get_rider(db, rider_id)
    return await crud.get_active_ride(db, rider_id)
