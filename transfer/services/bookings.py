"""
Booking operations
==================

Each public coroutine is one unit of work on the session it was built
with: it either finishes (and has flushed) or raises a ``BookingError``
having written nothing the caller will commit.

Payments
--------
The core never captures money.  ``confirm_payment`` records the signal
from the booking owner's client after a successful checkout, and
``confirm_payment_webhook`` records the same signal from the payment
processor, authenticated by a shared secret.
"""

from __future__ import annotations

import hmac
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from transfer.config import settings
from transfer.domain.entities import Actor
from transfer.domain.enums import (
    DISPUTABLE_STATUSES,
    DISPUTE_REASON_CODES,
    ActorRole,
    BookingStatus,
    DisputeStatus,
    PaymentMethod,
    PaymentStatus,
    TripType,
    VehicleType,
)
from transfer.domain.errors import (
    AuthorizationError,
    ConflictError,
    InvalidTransition,
    NotFound,
    Unauthenticated,
    ValidationError,
)
from transfer.domain.notifications import (
    dispute_updated,
    driver_arrived,
    payment_received,
)
from transfer.domain.rating import sanitize_text
from transfer.infrastructure.database import utcnow
from transfer.infrastructure.models import BookingModel
from transfer.infrastructure.repositories import (
    BookingRepository,
    DriverRepository,
    UserRepository,
    flush_or_conflict,
)
from transfer.services.access import is_admin, require_admin, resolve_actor
from transfer.services.dispatch import DispatchAssigner
from transfer.services.lifecycle import (
    NO_SHOW_DISPUTE_REASON,
    append_history,
    transition,
)
from transfer.services.notifier import Notifier
from transfer.services.ratings import RatingFinalizer

logger = logging.getLogger(__name__)

MAX_NOTE_LENGTH = 500
MAX_DISPUTE_DESCRIPTION_LENGTH = 1000


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BookingService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.bookings = BookingRepository(session)
        self.drivers = DriverRepository(session)
        self.users = UserRepository(session)
        self.notifier = Notifier(session)

    async def _load(self, booking_id: int) -> BookingModel:
        booking = await self.bookings.get_by_id(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        return booking

    # ── Create / read ─────────────────────────────────────────────────

    async def create_booking(
        self,
        actor_id: Optional[str],
        *,
        pickup_location: str,
        dropoff_location: str,
        scheduled_at: datetime,
        first_name: str = "",
        last_name: str = "",
        email: Optional[str] = None,
        phone: Optional[str] = None,
        trip_type: TripType | str = TripType.ONE_WAY,
        vehicle_type: VehicleType | str = VehicleType.SEDAN,
        payment_method: PaymentMethod | str = PaymentMethod.CARD,
        total_cost: float = 0.0,
        idempotency_key: Optional[str] = None,
    ) -> BookingModel:
        """Create a pending, unpaid booking.  Replays of the same key return the original."""
        if not actor_id:
            raise Unauthenticated("Authentication required")

        if idempotency_key:
            existing = await self.bookings.get_by_idempotency_key(idempotency_key)
            if existing is not None:
                if existing.user_id != actor_id:
                    raise ConflictError("Idempotency key already used")
                logger.info("Idempotent replay of booking %s", existing.id)
                return existing

        pickup = sanitize_text(pickup_location, 255)
        dropoff = sanitize_text(dropoff_location, 255)
        if not pickup or not dropoff:
            raise ValidationError("Pickup and dropoff locations are required")
        if pickup == dropoff:
            raise ValidationError("Pickup and dropoff locations must differ")
        scheduled_at = _as_utc(scheduled_at)
        if scheduled_at <= utcnow():
            raise ValidationError("Pickup time must be in the future")
        if total_cost < 0:
            raise ValidationError("Total cost cannot be negative")

        actor = Actor(user_id=actor_id, role=ActorRole.CUSTOMER)
        booking = BookingModel(
            user_id=actor_id,
            email=email,
            phone=phone,
            first_name=sanitize_text(first_name, 80),
            last_name=sanitize_text(last_name, 80),
            pickup_location=pickup,
            dropoff_location=dropoff,
            scheduled_at=scheduled_at,
            trip_type=TripType(trip_type),
            vehicle_type=VehicleType(vehicle_type),
            payment_method=PaymentMethod(payment_method),
            payment_status=PaymentStatus.UNPAID,
            status=BookingStatus.PENDING,
            total_cost=total_cost,
            idempotency_key=idempotency_key,
            status_history=[],
            ratings=[],
        )
        append_history(booking, BookingStatus.PENDING, actor, "Booking created")
        await self.bookings.create(booking)
        logger.info("Booking %s created for %s", booking.id, actor_id)
        return booking

    async def get_booking(self, booking_id: int, actor_id: Optional[str]) -> BookingModel:
        booking = await self._load(booking_id)
        await resolve_actor(self.session, actor_id, booking)
        return booking

    async def find_bookings(
        self,
        actor_id: Optional[str],
        *,
        user_id: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> list[BookingModel]:
        """Admins may search any identifier; customers only their own."""
        if not actor_id:
            raise Unauthenticated("Authentication required")
        if not await is_admin(self.session, actor_id):
            if user_id and user_id != actor_id:
                raise AuthorizationError("You can only view your own bookings")
            user = await self.users.get_by_id(actor_id)
            if email and (user is None or user.email != email):
                raise AuthorizationError("You can only view your own bookings")
            if phone and (user is None or user.phone != phone):
                raise AuthorizationError("You can only view your own bookings")
            user_id = actor_id
        elif not (user_id or email or phone):
            raise ValidationError("Please provide a user id, email or phone to search")
        return await self.bookings.find_by_customer(
            user_id=user_id, email=email, phone=phone
        )

    # ── Payment ───────────────────────────────────────────────────────

    async def confirm_payment(
        self,
        booking_id: int,
        actor_id: Optional[str],
        payment_intent_id: Optional[str] = None,
    ) -> BookingModel:
        booking = await self._load(booking_id)
        actor = await resolve_actor(self.session, actor_id, booking)
        if actor.role not in (ActorRole.CUSTOMER, ActorRole.ADMIN, ActorRole.SYSTEM):
            raise AuthorizationError("Only the booking owner can confirm payment")
        if booking.payment_status == PaymentStatus.PAID:
            raise ConflictError("Booking is already paid")
        return await self._mark_paid(booking, actor, payment_intent_id)

    async def confirm_payment_webhook(
        self,
        booking_id: int,
        secret: Optional[str],
        payment_intent_id: Optional[str] = None,
    ) -> BookingModel:
        """Processor callback; replays for an already-paid booking succeed."""
        expected = settings.payment_webhook_secret
        if not expected:
            raise AuthorizationError("Payment webhook is not configured")
        if not secret or not hmac.compare_digest(secret.encode(), expected.encode()):
            raise Unauthenticated("Invalid webhook signature")

        booking = await self._load(booking_id)
        if booking.payment_status == PaymentStatus.PAID:
            logger.info("Webhook replay for paid booking %s", booking.id)
            return booking
        return await self._mark_paid(booking, Actor.system(), payment_intent_id)

    async def _mark_paid(
        self, booking: BookingModel, actor: Actor, payment_intent_id: Optional[str]
    ) -> BookingModel:
        status = BookingStatus(booking.status)
        if status in (BookingStatus.CANCELLED, BookingStatus.NO_SHOW):
            raise InvalidTransition(f"Cannot confirm payment for a {status.value} booking")
        if booking.payment_method == PaymentMethod.CASH:
            raise ValidationError("Cash bookings cannot be confirmed online")

        now = utcnow()
        booking.payment_status = PaymentStatus.PAID
        booking.payment_completed_at = now
        if payment_intent_id:
            booking.payment_intent_id = payment_intent_id
        append_history(booking, status, actor, "Payment confirmed", timestamp=now)
        self.notifier.send(booking.user_id, payment_received(booking.id), booking.id)
        await flush_or_conflict(self.session, "booking")
        logger.info("Payment confirmed for booking %s by %s", booking.id, actor.role.value)
        return booking

    # ── Dispatch / status ─────────────────────────────────────────────

    async def assign_driver(
        self,
        booking_id: int,
        actor_id: Optional[str],
        driver_id: Optional[int] = None,
    ) -> BookingModel:
        actor = await require_admin(self.session, actor_id)
        return await DispatchAssigner(self.session).assign(
            booking_id, driver_id=driver_id, actor=actor
        )

    async def advance_status(
        self,
        booking_id: int,
        new_status: BookingStatus | str,
        actor_id: Optional[str],
        note: Optional[str] = None,
    ) -> BookingModel:
        try:
            target = BookingStatus(new_status)
        except ValueError:
            raise ValidationError(f"Invalid status: {new_status}") from None
        if target is BookingStatus.CANCELLED:
            return await self.cancel_booking(booking_id, actor_id, None, note)
        if target is BookingStatus.NO_SHOW:
            return await self.report_no_show(booking_id, actor_id, note)

        booking = await self._load(booking_id)
        actor = await resolve_actor(self.session, actor_id, booking)
        await transition(
            self.session, booking, target, actor, sanitize_text(note, MAX_NOTE_LENGTH)
        )
        await flush_or_conflict(self.session, "booking")
        return booking

    async def cancel_booking(
        self,
        booking_id: int,
        actor_id: Optional[str],
        reason: Optional[str] = None,
        note: Optional[str] = None,
    ) -> BookingModel:
        booking = await self._load(booking_id)
        actor = await resolve_actor(self.session, actor_id, booking)
        await transition(
            self.session,
            booking,
            BookingStatus.CANCELLED,
            actor,
            sanitize_text(note, MAX_NOTE_LENGTH),
            reason=reason,
        )
        await flush_or_conflict(self.session, "booking")
        return booking

    async def mark_driver_arrived(
        self, booking_id: int, actor_id: Optional[str]
    ) -> BookingModel:
        booking = await self._load(booking_id)
        actor = await resolve_actor(self.session, actor_id, booking)
        if actor.role not in (ActorRole.DRIVER, ActorRole.ADMIN):
            raise AuthorizationError("Only the assigned driver can mark arrival")
        status = BookingStatus(booking.status)
        if status is not BookingStatus.DRIVER_EN_ROUTE:
            raise InvalidTransition("Driver can only arrive while en route")
        if booking.driver_arrived_at is not None:
            raise ConflictError("Arrival has already been recorded")

        now = utcnow()
        booking.driver_arrived_at = now
        append_history(booking, status, actor, "Driver arrived at pickup", timestamp=now)
        self.notifier.send(booking.user_id, driver_arrived(booking.id), booking.id)
        await flush_or_conflict(self.session, "booking")
        return booking

    async def report_no_show(
        self,
        booking_id: int,
        actor_id: Optional[str],
        note: Optional[str] = None,
    ) -> BookingModel:
        booking = await self._load(booking_id)
        actor = await resolve_actor(self.session, actor_id, booking)
        await transition(
            self.session,
            booking,
            BookingStatus.NO_SHOW,
            actor,
            sanitize_text(note, MAX_NOTE_LENGTH) or "Customer did not show up",
        )
        await flush_or_conflict(self.session, "booking")
        return booking

    async def rate_booking(
        self,
        booking_id: int,
        rating_type: str,
        actor_id: Optional[str],
        stars: int,
        reasons: Optional[list[str]] = None,
        comment: Optional[str] = None,
        tip: Optional[float] = None,
    ):
        return await RatingFinalizer(self.session).rate(
            booking_id, rating_type, actor_id, stars, reasons, comment, tip
        )

    # ── Disputes (side channel, status never changes) ─────────────────

    async def open_dispute(
        self,
        booking_id: int,
        actor_id: Optional[str],
        reason: str,
        description: str,
    ) -> BookingModel:
        booking = await self._load(booking_id)
        actor = await resolve_actor(self.session, actor_id, booking)
        if actor.role is not ActorRole.CUSTOMER:
            raise AuthorizationError("Only the customer can open a dispute")
        status = BookingStatus(booking.status)
        if status not in DISPUTABLE_STATUSES:
            raise InvalidTransition("Disputes can only be opened for finished bookings")
        if booking.has_dispute:
            raise ConflictError("A dispute already exists for this booking")
        if reason not in DISPUTE_REASON_CODES:
            raise ValidationError(f"Invalid dispute reason: {reason}")
        description = sanitize_text(description, MAX_DISPUTE_DESCRIPTION_LENGTH)
        if not description:
            raise ValidationError("Please describe the problem")

        now = utcnow()
        finished_at = next(
            (h.timestamp for h in booking.status_history if h.status == status),
            booking.updated_at,
        )
        window = timedelta(hours=settings.dispute_window_hours)
        if finished_at is not None and now - finished_at > window:
            raise ValidationError(
                f"Disputes must be opened within {settings.dispute_window_hours} hours"
            )

        self._open(booking, reason, description, now)
        append_history(booking, status, actor, f"Dispute opened: {reason}", timestamp=now)
        self.notifier.send(
            booking.user_id, dispute_updated(booking.id, DisputeStatus.OPEN.value), booking.id
        )
        await flush_or_conflict(self.session, "booking")
        return booking

    async def flag_dispute(
        self, booking_id: int, actor_id: Optional[str], note: str
    ) -> BookingModel:
        """Admin marks a booking as disputed without touching its status."""
        actor = await require_admin(self.session, actor_id)
        booking = await self._load(booking_id)
        note = sanitize_text(note, MAX_NOTE_LENGTH)
        if not note:
            raise ValidationError("An audit note is required to flag a dispute")
        if booking.has_dispute and booking.dispute_status == DisputeStatus.OPEN:
            raise ConflictError("A dispute is already open for this booking")

        now = utcnow()
        self._open(booking, "admin_flag", note, now)
        append_history(
            booking, BookingStatus(booking.status), actor, f"Dispute flagged: {note}", timestamp=now
        )
        await flush_or_conflict(self.session, "booking")
        return booking

    async def resolve_dispute(
        self,
        booking_id: int,
        actor_id: Optional[str],
        resolution: DisputeStatus | str,
        note: str,
        refund: bool = False,
    ) -> BookingModel:
        actor = await require_admin(self.session, actor_id)
        booking = await self._load(booking_id)
        try:
            resolution = DisputeStatus(resolution)
        except ValueError:
            raise ValidationError(f"Invalid resolution: {resolution}") from None
        if resolution is DisputeStatus.OPEN:
            raise ValidationError("Resolution must be resolved or rejected")
        note = sanitize_text(note, MAX_NOTE_LENGTH)
        if not note:
            raise ValidationError("An audit note is required to resolve a dispute")
        if not booking.has_dispute or booking.dispute_status != DisputeStatus.OPEN:
            raise ConflictError("No open dispute for this booking")

        if refund and resolution is DisputeStatus.RESOLVED:
            await self._refund(booking)

        booking.dispute_status = resolution
        append_history(
            booking,
            BookingStatus(booking.status),
            actor,
            f"Dispute {resolution.value}: {note}",
        )
        self.notifier.send(
            booking.user_id, dispute_updated(booking.id, resolution.value), booking.id
        )
        await flush_or_conflict(self.session, "booking")
        logger.info("Dispute on booking %s %s (refund=%s)", booking.id, resolution.value, refund)
        return booking

    @staticmethod
    def _open(booking: BookingModel, reason: str, description: str, now: datetime) -> None:
        booking.has_dispute = True
        booking.dispute_status = DisputeStatus.OPEN
        booking.dispute_reason = reason
        booking.dispute_description = description
        booking.dispute_opened_at = now

    async def _refund(self, booking: BookingModel) -> None:
        """Refund the fare and waive a no-show fee, clawing back the driver's share."""
        if booking.payment_status == PaymentStatus.PAID:
            booking.payment_status = PaymentStatus.REFUNDED
        if booking.dispute_reason == NO_SHOW_DISPUTE_REASON and booking.no_show_fee:
            if booking.released_driver_id is not None:
                driver = await self.drivers.get_by_id(booking.released_driver_id)
                if driver is not None:
                    share = round(
                        booking.no_show_fee * settings.no_show_fee_driver_percent / 100, 2
                    )
                    driver.pending_earnings = max(0.0, (driver.pending_earnings or 0.0) - share)
            booking.no_show_fee = 0.0
