import pytest
from sqlalchemy import update

from exceptions import InvalidTransitionError, RideNotAvailableError
from models import Ride, REQUESTED, MATCHED, DRIVER_EN_ROUTE, ARRIVED, IN_PROGRESS, COMPLETED, CANCELLED, utcnow
from state_machine import RideStateMachine, can_transition, is_terminal

from conftest import PICKUP


async def new_ride(db, rider_id="rider-1"):
    ride = Ride(
        reference=f"RIDE_{rider_id}", rider_id=rider_id, status=REQUESTED, requested_at=utcnow(),
        pickup_address="A", pickup_lat=PICKUP[0], pickup_lon=PICKUP[1],
        destination_address="B", destination_lat=PICKUP[0], destination_lon=PICKUP[1],
    )
    db.add(ride)
    await db.commit()
    return ride


MATCH_VALUES = {"driver_id": "driver-1", "driver_name": "Jo Smith", "driver_phone": "+15550001"}


def test_transition_table():
    assert can_transition(REQUESTED, MATCHED)
    assert can_transition(MATCHED, ARRIVED)
    assert can_transition(IN_PROGRESS, CANCELLED)
    assert not can_transition(REQUESTED, IN_PROGRESS)
    assert not can_transition(COMPLETED, CANCELLED)
    assert not can_transition(CANCELLED, MATCHED)
    assert is_terminal(COMPLETED) and is_terminal(CANCELLED)
    assert not is_terminal(IN_PROGRESS)


@pytest.mark.asyncio
async def test_full_lifecycle_stamps_timestamps(test_db):
    ride = await new_ride(test_db)
    machine = RideStateMachine(test_db)

    assert await machine.transition(ride, MATCHED, **MATCH_VALUES)
    for status in (DRIVER_EN_ROUTE, ARRIVED, IN_PROGRESS, COMPLETED):
        assert await machine.transition(ride, status)
    await test_db.commit()

    await test_db.refresh(ride)
    assert ride.status == COMPLETED
    assert ride.driver_id == "driver-1"
    assert ride.matched_at <= ride.started_at <= ride.completed_at


@pytest.mark.asyncio
async def test_match_requires_driver_snapshot(test_db):
    ride = await new_ride(test_db)
    with pytest.raises(InvalidTransitionError):
        await RideStateMachine(test_db).transition(ride, MATCHED, driver_id="driver-1")
    assert ride.status == REQUESTED


@pytest.mark.asyncio
async def test_illegal_move_rejected(test_db):
    ride = await new_ride(test_db)
    with pytest.raises(InvalidTransitionError):
        await RideStateMachine(test_db).transition(ride, COMPLETED)


@pytest.mark.asyncio
async def test_terminal_states_are_final(test_db):
    ride = await new_ride(test_db)
    machine = RideStateMachine(test_db)
    await machine.transition(ride, CANCELLED, cancelled_by="rider")
    await test_db.commit()

    for target in (MATCHED, CANCELLED, COMPLETED):
        with pytest.raises(InvalidTransitionError):
            await machine.transition(ride, target, cancelled_by="rider")


@pytest.mark.asyncio
async def test_replaying_current_status_is_a_noop(test_db):
    ride = await new_ride(test_db)
    machine = RideStateMachine(test_db)
    await machine.transition(ride, MATCHED, **MATCH_VALUES)
    matched_at = ride.matched_at
    assert await machine.transition(ride, MATCHED, **MATCH_VALUES) is False
    assert ride.matched_at == matched_at


@pytest.mark.asyncio
async def test_stale_status_loses_the_race(test_db):
    ride = await new_ride(test_db)
    # Another writer cancels the ride behind this session's back
    await test_db.execute(
        update(Ride).where(Ride.id == ride.id).values(status=CANCELLED, cancelled_by="rider")
        .execution_options(synchronize_session=False)
    )
    with pytest.raises(RideNotAvailableError):
        await RideStateMachine(test_db).transition(ride, MATCHED, **MATCH_VALUES)


@pytest.mark.asyncio
async def test_extra_criteria_guard_the_update(test_db):
    ride = await new_ride(test_db)
    await test_db.execute(
        update(Ride).where(Ride.id == ride.id).values(driver_id="someone-else")
        .execution_options(synchronize_session=False)
    )
    with pytest.raises(RideNotAvailableError):
        await RideStateMachine(test_db).transition(
            ride, MATCHED, criteria=(Ride.driver_id.is_(None),), **MATCH_VALUES
        )
