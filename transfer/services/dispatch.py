"""
Dispatch Assigner
=================

Picks one eligible driver for a pending/confirmed booking and writes the
booking and the driver in the same transaction.

Eligibility: ``status == available``, ``is_active``, not linked to the
booking's customer (a driver is never dispatched to their own booking).
Order: longest idle first, then lowest id.

Concurrency safety
------------------
Both rows carry a ``version_id_col``.  If another request assigned the same
driver (or touched the booking) after we read it, the flush updates zero
rows, SQLAlchemy raises ``StaleDataError`` and the caller gets a
``ConflictError``; nothing is written.  The partial unique index on
``bookings.driver_id`` backs the one-active-job rule at the storage level.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from transfer.domain.entities import Actor
from transfer.domain.enums import (
    DISPATCHABLE_STATUSES,
    ActorRole,
    BookingStatus,
    DriverStatus,
)
from transfer.domain.errors import (
    AlreadyAssigned,
    BookingNotPending,
    NoDriverAvailable,
    NotFound,
    ValidationError,
)
from transfer.domain.notifications import driver_job_assigned
from transfer.infrastructure.database import utcnow
from transfer.infrastructure.models import BookingModel, DriverModel
from transfer.infrastructure.repositories import (
    BookingRepository,
    DriverRepository,
    flush_or_conflict,
)
from transfer.services.lifecycle import transition
from transfer.services.notifier import Notifier

logger = logging.getLogger(__name__)


class DispatchAssigner:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.bookings = BookingRepository(session)
        self.drivers = DriverRepository(session)

    async def assign(
        self,
        booking_id: int,
        driver_id: Optional[int] = None,
        actor: Optional[Actor] = None,
    ) -> BookingModel:
        """Assign a driver to *booking_id*.

        With *driver_id* the chosen driver is checked instead of searched
        for (admin manual assignment).
        """
        actor = actor or Actor.system()
        booking = await self.bookings.get_by_id(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        if booking.driver_id is not None:
            raise AlreadyAssigned("A driver is already assigned to this booking")
        if BookingStatus(booking.status) not in DISPATCHABLE_STATUSES:
            raise BookingNotPending(
                f"Cannot assign a driver to a booking in status {BookingStatus(booking.status).value}"
            )

        if driver_id is not None:
            driver = await self._check_chosen(booking, driver_id)
        else:
            driver = await self._pick(booking)

        booking.attach_driver(driver.snapshot())
        booking.driver_assigned_at = utcnow()
        await transition(
            self.session,
            booking,
            BookingStatus.DRIVER_ASSIGNED,
            actor,
            note=f"Driver {driver.name} assigned",
            edge_role=ActorRole.SYSTEM,
        )
        driver.status = DriverStatus.BUSY

        Notifier(self.session).send(
            driver.user_id,
            driver_job_assigned(
                booking.id, booking.pickup_location, booking.dropoff_location
            ),
            booking_id=booking.id,
        )
        await flush_or_conflict(self.session, "booking")
        logger.info("Booking %s dispatched to driver %s", booking.id, driver.id)
        return booking

    async def _pick(self, booking: BookingModel) -> DriverModel:
        candidates = [
            d
            for d in await self.drivers.get_available()
            if d.user_id is None or d.user_id != booking.user_id
        ]
        if not candidates:
            logger.info("No driver available for booking %s", booking.id)
            raise NoDriverAvailable()
        logger.debug(
            "Booking %s: %d candidate driver(s), picking %s",
            booking.id,
            len(candidates),
            candidates[0].id,
        )
        return candidates[0]

    async def _check_chosen(self, booking: BookingModel, driver_id: int) -> DriverModel:
        driver = await self.drivers.get_by_id(driver_id)
        if driver is None or not driver.is_active:
            raise NotFound("Driver not found")
        if driver.user_id is not None and driver.user_id == booking.user_id:
            raise ValidationError("A driver cannot be assigned to their own booking")
        if driver.status != DriverStatus.AVAILABLE:
            raise NoDriverAvailable(
                f"Cannot assign driver: driver is {DriverStatus(driver.status).value}"
            )
        if await self.bookings.get_active_for_driver(driver.id):
            raise NoDriverAvailable("Cannot assign driver: driver already has an active job")
        return driver
