"""
Ride lifecycle.

    requested -> matched -> driver_en_route -> arrived -> in_progress -> completed
    any non-terminal state -> cancelled

Transitions are applied with a conditional UPDATE keyed on the status the
caller last observed, so two writers racing on one ride cannot both win.
"""

import logging
from typing import Any, Dict

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from exceptions import InvalidTransitionError, RideNotAvailableError
from models import (
    Ride,
    REQUESTED,
    MATCHED,
    DRIVER_EN_ROUTE,
    ARRIVED,
    IN_PROGRESS,
    COMPLETED,
    CANCELLED,
    TERMINAL_STATUSES,
    utcnow,
)

logger = logging.getLogger(__name__)

TRANSITIONS = {
    REQUESTED: {MATCHED, CANCELLED},
    MATCHED: {DRIVER_EN_ROUTE, ARRIVED, IN_PROGRESS, CANCELLED},
    DRIVER_EN_ROUTE: {ARRIVED, IN_PROGRESS, CANCELLED},
    ARRIVED: {IN_PROGRESS, CANCELLED},
    IN_PROGRESS: {COMPLETED, CANCELLED},
    COMPLETED: set(),
    CANCELLED: set(),
}

TIMESTAMP_FIELDS = {
    REQUESTED: "requested_at",
    MATCHED: "matched_at",
    DRIVER_EN_ROUTE: "driver_en_route_at",
    ARRIVED: "arrived_at",
    IN_PROGRESS: "started_at",
    COMPLETED: "completed_at",
    CANCELLED: "cancelled_at",
}

REQUIRED_FIELDS = {
    MATCHED: ("driver_id", "driver_name", "driver_phone"),
    DRIVER_EN_ROUTE: ("driver_id",),
    ARRIVED: ("driver_id",),
    IN_PROGRESS: ("driver_id",),
    COMPLETED: ("driver_id",),
    CANCELLED: ("cancelled_by",),
}

STATUS_DISPLAY = {
    REQUESTED: "Finding a Driver",
    MATCHED: "Driver Assigned",
    DRIVER_EN_ROUTE: "Driver En Route",
    ARRIVED: "Driver Arrived",
    IN_PROGRESS: "Ride Started - En Route to Destination",
    COMPLETED: "Ride Completed - Thank You!",
    CANCELLED: "Ride Cancelled",
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, set())


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


class RideStateMachine:
    """Validates and applies status changes for a single ride."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    def validate(self, ride: Ride, target: str, values: Dict[str, Any]) -> None:
        if target not in TRANSITIONS:
            raise InvalidTransitionError(f"Unknown ride status: {target}")
        if not can_transition(ride.status, target):
            raise InvalidTransitionError(
                f"Ride cannot move from {ride.status} to {target}"
            )
        missing = [
            field for field in REQUIRED_FIELDS.get(target, ())
            if values.get(field, getattr(ride, field)) in (None, "")
        ]
        if missing:
            raise InvalidTransitionError(
                f"Ride cannot move to {target} without {', '.join(missing)}"
            )

    async def transition(self, ride: Ride, target: str, criteria=(), **values: Any) -> bool:
        """
        Move ``ride`` to ``target`` and stamp the matching timestamp.

        ``criteria`` are extra WHERE clauses for the conditional update, e.g.
        requiring the ride to still be unassigned.

        Returns False when the ride is already in ``target`` (replay of a
        non-terminal transition). Raises ``InvalidTransitionError`` for illegal
        moves and ``RideNotAvailableError`` when the stored status no longer
        matches ``ride.status``. Does not commit.
        """
        if ride.status == target and not is_terminal(target):
            return False

        self.validate(ride, target, values)

        expected = ride.status
        values = dict(values)
        values["status"] = target
        values[TIMESTAMP_FIELDS[target]] = utcnow()

        stmt = (
            update(Ride)
            .where(Ride.id == ride.id, Ride.status == expected, *criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            logger.warning("Ride %s left %s before transition to %s", ride.id, expected, target)
            raise RideNotAvailableError(
                f"Ride {ride.reference or ride.id} is no longer {expected}"
            )

        for key, value in values.items():
            set_committed_value(ride, key, value)
        logger.info("Ride %s: %s -> %s", ride.id, expected, target)
        return True
