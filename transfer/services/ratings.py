"""
Rating / Settlement Finalizer
=============================

Records one rating per (booking, rating type) on a completed trip and
updates the rated party's aggregate with a running mean.  Customer tips
go to the driver's ``pending_earnings`` and ``total_tips``.

The booking's ``*_rating_submitted`` flag is checked and set in the same
version-checked transaction, and ``booking_ratings`` has a unique
``(booking_id, rating_type)`` constraint, so two concurrent submissions
cannot both count.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from transfer.domain.enums import BookingStatus, DriverStatus, RatingType
from transfer.domain.errors import (
    AlreadyRated,
    AuthorizationError,
    InvalidTransition,
    NotFound,
    Unauthenticated,
    ValidationError,
)
from transfer.domain.rating import running_average, sanitize_text, validate_rating
from transfer.infrastructure.models import BookingModel, RatingModel
from transfer.infrastructure.repositories import (
    BookingRepository,
    DriverRepository,
    UserRepository,
    flush_or_conflict,
)
from transfer.services.access import linked_driver_id
from transfer.services.lifecycle import release_driver

logger = logging.getLogger(__name__)


class RatingFinalizer:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.bookings = BookingRepository(session)
        self.drivers = DriverRepository(session)
        self.users = UserRepository(session)

    async def rate(
        self,
        booking_id: int,
        rating_type: RatingType | str,
        actor_id: Optional[str],
        stars: int,
        reasons: Optional[Sequence[str]] = None,
        comment: Optional[str] = None,
        tip: Optional[float] = None,
    ) -> RatingModel:
        if not actor_id:
            raise Unauthenticated("Authentication required")
        try:
            rating_type = RatingType(rating_type)
        except ValueError:
            raise ValidationError(f"Invalid rating type: {rating_type}") from None
        reasons = validate_rating(rating_type, stars, reasons, tip)

        booking = await self.bookings.get_by_id(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        if BookingStatus(booking.status) is not BookingStatus.COMPLETED:
            raise InvalidTransition("You can only rate completed trips")
        await self._authorize(booking, rating_type, actor_id)

        if rating_type is RatingType.CUSTOMER_TO_DRIVER:
            if booking.customer_rating_submitted:
                raise AlreadyRated("You have already rated this trip")
            booking.customer_rating_submitted = True
        else:
            if booking.driver_rating_submitted:
                raise AlreadyRated("You have already rated this customer")
            booking.driver_rating_submitted = True

        rating = RatingModel(
            rating_type=rating_type,
            stars=stars,
            reasons=reasons,
            comment=sanitize_text(comment) or None,
            tip=float(tip or 0.0),
            rated_by=actor_id,
        )
        booking.ratings.append(rating)

        if rating_type is RatingType.CUSTOMER_TO_DRIVER:
            await self._settle_driver(booking, stars, rating.tip)
        else:
            await self._settle_customer(booking, stars)

        await flush_or_conflict(
            self.session,
            "booking",
            on_integrity=AlreadyRated("This trip has already been rated"),
        )
        logger.info(
            "Booking %s rated %s: %d star(s), tip %.2f",
            booking.id,
            rating_type.value,
            stars,
            rating.tip,
        )
        return rating

    async def _authorize(
        self, booking: BookingModel, rating_type: RatingType, actor_id: str
    ) -> None:
        if rating_type is RatingType.CUSTOMER_TO_DRIVER:
            if booking.user_id != actor_id:
                raise AuthorizationError("Only the customer can rate the driver")
            return
        if booking.driver_id is None or (
            await linked_driver_id(self.session, actor_id) != booking.driver_id
        ):
            raise AuthorizationError("Only the assigned driver can rate the customer")

    async def _settle_driver(self, booking: BookingModel, stars: int, tip: float) -> None:
        driver = await self.drivers.get_by_id(booking.driver_id)
        if driver is None:
            logger.warning("Booking %s: rated driver %s is gone", booking.id, booking.driver_id)
            return
        driver.rating = running_average(driver.rating, driver.rating_count, stars)
        driver.rating_count += 1
        if tip > 0:
            driver.pending_earnings = (driver.pending_earnings or 0.0) + tip
            driver.total_tips = (driver.total_tips or 0.0) + tip
        if driver.status == DriverStatus.BUSY:
            await release_driver(self.session, driver.id, exclude_booking_id=booking.id)

    async def _settle_customer(self, booking: BookingModel, stars: int) -> None:
        user = await self.users.get_by_id(booking.user_id)
        if user is None:
            logger.debug("Booking %s: customer %s has no user row", booking.id, booking.user_id)
            return
        user.rating = running_average(user.rating, user.rating_count, stars)
        user.rating_count += 1
