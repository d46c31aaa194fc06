"""
Status Transition Engine
========================

``transition`` is the only place a booking's ``status`` changes.  It

1. checks the edge table and the actor's role rules (nothing is mutated
   when the check fails),
2. applies the side effects tied to the target status,
3. appends exactly one history entry with the next sequence number,
4. queues the customer notification.

Side effects
------------
* **cancelled**: releases the driver, detaches the snapshot (keeping
  ``released_driver_id``) and stamps the cancellation fields.
* **completed**: releases the driver, bumps ``total_trips`` and
  ``total_earnings``; cash bookings are marked paid.
* **no_show**: only after the driver marked arrival and waited
  ``no_show_wait_minutes``.  Records the fee, credits the driver's share to
  ``pending_earnings``, releases and detaches the driver and opens a
  ``customer_no_show`` dispute.

Everything happens on the caller's session; the caller flushes/commits.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from transfer.config import settings
from transfer.domain.entities import Actor, check_transition
from transfer.domain.enums import (
    DRIVER_BOUND_STATUSES,
    ActorRole,
    BookingStatus,
    CancellationReason,
    DisputeStatus,
    DriverStatus,
    PaymentMethod,
    PaymentStatus,
)
from transfer.domain.errors import InvalidTransition, ValidationError
from transfer.domain.notifications import driver_job_cancelled, status_notification
from transfer.infrastructure.database import utcnow
from transfer.infrastructure.models import BookingModel, DriverModel, StatusHistoryModel
from transfer.infrastructure.repositories import BookingRepository, DriverRepository
from transfer.services.notifier import Notifier

logger = logging.getLogger(__name__)

NO_SHOW_DISPUTE_REASON = "customer_no_show"


def append_history(
    booking: BookingModel,
    status: BookingStatus,
    actor: Actor,
    note: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> StatusHistoryModel:
    entry = StatusHistoryModel(
        seq=len(booking.status_history) + 1,
        status=status,
        note=note or None,
        updated_by=actor.role.value,
        actor_id=actor.user_id,
        timestamp=timestamp or utcnow(),
    )
    booking.status_history.append(entry)
    return entry


async def release_driver(
    session: AsyncSession,
    driver_id: int,
    exclude_booking_id: Optional[int] = None,
) -> Optional[DriverModel]:
    """Make a busy driver available unless another active booking holds it."""
    driver = await DriverRepository(session).get_by_id(driver_id)
    if driver is None:
        logger.warning("Driver %s not found while releasing", driver_id)
        return None

    others = await BookingRepository(session).get_active_for_driver(
        driver_id, exclude_booking_id=exclude_booking_id
    )
    if others:
        logger.warning(
            "Driver %s still holds active booking(s) %s; not released",
            driver_id,
            [b.id for b in others],
        )
        return driver

    if driver.status == DriverStatus.BUSY:
        driver.status = DriverStatus.AVAILABLE
        driver.available_since = utcnow()
        logger.info("Driver %s released", driver_id)
    return driver


def no_show_ready_at(booking: BookingModel) -> Optional[datetime]:
    if booking.driver_arrived_at is None:
        return None
    return booking.driver_arrived_at + timedelta(minutes=settings.no_show_wait_minutes)


def _check_no_show(booking: BookingModel, now: datetime, actor: Actor) -> None:
    if actor.role is ActorRole.ADMIN:
        return
    ready_at = no_show_ready_at(booking)
    if ready_at is None:
        raise ValidationError("Driver must mark arrival before reporting a no-show")
    if now < ready_at:
        remaining = int((ready_at - now).total_seconds() // 60) + 1
        raise ValidationError(
            f"Please wait {remaining} more minute(s) before reporting a no-show"
        )


async def transition(
    session: AsyncSession,
    booking: BookingModel,
    target: BookingStatus,
    actor: Actor,
    note: Optional[str] = None,
    *,
    edge_role: Optional[ActorRole] = None,
    reason: Optional[str] = None,
) -> BookingModel:
    """Move *booking* to *target* on behalf of *actor*.

    *edge_role* overrides the role whose edge rules apply (an admin
    dispatching manually still takes the system's dispatch edge).
    *reason* is the cancellation reason code for ``cancelled``.
    """
    current = BookingStatus(booking.status)
    check_transition(current, target, edge_role or actor.role, note)
    if target in DRIVER_BOUND_STATUSES and booking.driver_id is None:
        raise InvalidTransition(
            f"Cannot change status to {target.value} without an assigned driver"
        )

    now = utcnow()
    if target is BookingStatus.NO_SHOW:
        _check_no_show(booking, now, actor)
    if target is BookingStatus.CANCELLED and reason is not None:
        try:
            reason = CancellationReason(reason).value
        except ValueError:
            raise ValidationError(f"Invalid cancellation reason: {reason}") from None

    driver: Optional[DriverModel] = None
    if booking.driver_id is not None and target in (
        BookingStatus.CANCELLED,
        BookingStatus.NO_SHOW,
        BookingStatus.COMPLETED,
    ):
        driver = await release_driver(
            session, booking.driver_id, exclude_booking_id=booking.id
        )

    if target is BookingStatus.CANCELLED:
        booking.cancelled_at = now
        booking.cancelled_by = actor.role.value
        booking.cancellation_reason = reason or (
            CancellationReason.ADMIN_ACTION.value
            if actor.role is ActorRole.ADMIN
            else CancellationReason.OTHER.value
        )
        if booking.driver_id is not None:
            if driver is not None:
                Notifier(session).send(
                    driver.user_id,
                    driver_job_cancelled(
                        booking.id, booking.pickup_location, booking.dropoff_location
                    ),
                    booking_id=booking.id,
                )
            booking.detach_driver()

    elif target is BookingStatus.NO_SHOW:
        fee = settings.no_show_fee
        booking.no_show_fee = fee
        if driver is not None:
            driver.pending_earnings = (driver.pending_earnings or 0.0) + round(
                fee * settings.no_show_fee_driver_percent / 100, 2
            )
        booking.detach_driver()
        booking.has_dispute = True
        booking.dispute_status = DisputeStatus.OPEN
        booking.dispute_reason = NO_SHOW_DISPUTE_REASON
        booking.dispute_opened_at = now

    elif target is BookingStatus.COMPLETED:
        if driver is not None:
            driver.total_trips = (driver.total_trips or 0) + 1
            driver.total_earnings = (driver.total_earnings or 0.0) + (
                booking.total_cost or 0.0
            )
        if (
            booking.payment_method == PaymentMethod.CASH
            and booking.payment_status != PaymentStatus.PAID
        ):
            booking.payment_status = PaymentStatus.PAID
            booking.payment_completed_at = now

    booking.status = target
    append_history(booking, target, actor, note, timestamp=now)

    Notifier(session).send(
        booking.user_id,
        status_notification(
            target, booking.id, booking.driver_name, booking.driver_vehicle_plate
        ),
        booking_id=booking.id,
    )
    logger.info(
        "Booking %s: %s -> %s by %s (%s)",
        booking.id,
        current.value,
        target.value,
        actor.role.value,
        actor.user_id,
    )
    return booking
