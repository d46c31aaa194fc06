"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
the document-store style queries the core needs: read-one-by-id,
query-by-field-equality and query-by-field-in-list.  Commit / rollback
belongs to whoever owns the session.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from .models import (
    BookingModel,
    DriverModel,
    NotificationModel,
    UserModel,
)
from transfer.domain.enums import ACTIVE_JOB_STATUSES, BookingStatus, DriverStatus
from transfer.domain.errors import ConflictError

logger = logging.getLogger(__name__)


async def flush_or_conflict(
    session: AsyncSession,
    what: str,
    on_integrity: Optional[ConflictError] = None,
) -> None:
    """Flush pending writes; a lost compare-and-swap becomes ``ConflictError``.

    *on_integrity* replaces the generic conflict raised for a unique
    constraint violation when the caller knows which constraint it hit.
    """
    try:
        await session.flush()
    except StaleDataError as exc:
        logger.info("Stale write rejected (%s): %s", what, exc)
        raise ConflictError(
            f"The {what} was modified by another request, please reload and retry"
        ) from exc
    except IntegrityError as exc:
        logger.info("Constraint violation (%s): %s", what, exc.orig)
        if on_integrity is not None:
            raise on_integrity from exc
        raise ConflictError(
            f"The {what} was modified by another request, please reload and retry"
        ) from exc


class BookingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, booking: BookingModel) -> BookingModel:
        self.session.add(booking)
        await flush_or_conflict(self.session, "booking")
        return booking

    async def get_by_id(self, booking_id: int) -> Optional[BookingModel]:
        return await self.session.get(BookingModel, booking_id)

    async def get_by_idempotency_key(self, key: str) -> Optional[BookingModel]:
        result = await self.session.execute(
            select(BookingModel).where(BookingModel.idempotency_key == key)
        )
        return result.scalar_one_or_none()

    async def find_by_customer(
        self,
        *,
        user_id: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> list[BookingModel]:
        """Bookings matching any of the given customer identifiers."""
        clauses = []
        if user_id:
            clauses.append(BookingModel.user_id == user_id)
        if email:
            clauses.append(BookingModel.email == email)
        if phone:
            clauses.append(BookingModel.phone == phone)
        if not clauses:
            return []
        result = await self.session.execute(
            select(BookingModel)
            .where(or_(*clauses))
            .order_by(BookingModel.created_at.desc(), BookingModel.id.desc())
        )
        return list(result.scalars().all())

    async def get_active_for_driver(
        self, driver_id: int, exclude_booking_id: Optional[int] = None
    ) -> list[BookingModel]:
        query = select(BookingModel).where(
            BookingModel.driver_id == driver_id,
            BookingModel.status.in_(ACTIVE_JOB_STATUSES),
        )
        if exclude_booking_id is not None:
            query = query.where(BookingModel.id != exclude_booking_id)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_for_driver(self, driver_id: int) -> list[BookingModel]:
        """Jobs held by the driver, plus cancelled ones it was released from."""
        result = await self.session.execute(
            select(BookingModel)
            .where(
                or_(
                    BookingModel.driver_id == driver_id,
                    BookingModel.released_driver_id == driver_id,
                )
            )
            .order_by(BookingModel.scheduled_at.desc(), BookingModel.id.desc())
        )
        return list(result.scalars().all())

    async def get_dispatchable(self, limit: int = 50) -> list[BookingModel]:
        """Unassigned pending/confirmed bookings, earliest pickup first."""
        result = await self.session.execute(
            select(BookingModel)
            .where(
                BookingModel.status.in_(
                    [BookingStatus.PENDING, BookingStatus.CONFIRMED]
                ),
                BookingModel.driver_id.is_(None),
            )
            .order_by(BookingModel.scheduled_at, BookingModel.id)
            .limit(limit)
        )
        return list(result.scalars().all())


class DriverRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, driver: DriverModel) -> DriverModel:
        self.session.add(driver)
        await flush_or_conflict(self.session, "driver")
        return driver

    async def get_by_id(self, driver_id: int) -> Optional[DriverModel]:
        return await self.session.get(DriverModel, driver_id)

    async def get_by_user_id(self, user_id: str) -> Optional[DriverModel]:
        result = await self.session.execute(
            select(DriverModel)
            .where(DriverModel.user_id == user_id, DriverModel.is_active.is_(True))
            .order_by(DriverModel.id)
        )
        return result.scalars().first()

    async def get_available(self) -> list[DriverModel]:
        """Available, active drivers in dispatch order.

        Order: longest idle first (``available_since`` ascending, drivers that
        never had a job fall back to ``created_at``), then lowest id.
        """
        query = select(DriverModel).where(
            DriverModel.status == DriverStatus.AVAILABLE,
            DriverModel.is_active.is_(True),
        )
        result = await self.session.execute(query)
        drivers = list(result.scalars().all())
        drivers.sort(key=lambda d: (d.available_since or d.created_at, d.id))
        return drivers


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: str) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)

    async def list_linked_to_driver(self, driver_id: int) -> list[UserModel]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.driver_id == driver_id)
        )
        return list(result.scalars().all())

    async def create(self, user: UserModel) -> UserModel:
        self.session.add(user)
        await flush_or_conflict(self.session, "user")
        return user


class NotificationRepository:
    """Outbox writer: rows are picked up and delivered by the messaging service."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def add(self, notification: NotificationModel) -> None:
        self.session.add(notification)

