"""Driver onboarding, availability, location, job list and removal."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from transfer.domain.enums import ActorRole, DriverStatus, VehicleType
from transfer.domain.errors import ConflictError, NotFound, ValidationError
from transfer.domain.rating import sanitize_text
from transfer.infrastructure.database import utcnow
from transfer.infrastructure.models import BookingModel, DriverModel
from transfer.infrastructure.repositories import (
    BookingRepository,
    DriverRepository,
    UserRepository,
    flush_or_conflict,
)
from transfer.services.access import require_admin, resolve_driver_actor

logger = logging.getLogger(__name__)

# Statuses a driver may set on themselves; admins may also suspend.
SELF_SERVICE_STATUSES = frozenset({DriverStatus.AVAILABLE, DriverStatus.OFFLINE})


class DriverService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.drivers = DriverRepository(session)
        self.bookings = BookingRepository(session)
        self.users = UserRepository(session)

    async def _load(self, driver_id: int) -> DriverModel:
        driver = await self.drivers.get_by_id(driver_id)
        if driver is None or not driver.is_active:
            raise NotFound("Driver not found")
        return driver

    async def register_driver(
        self,
        actor_id: Optional[str],
        *,
        name: str,
        phone: str = "",
        vehicle_plate: str = "",
        vehicle_model: str = "",
        vehicle_color: str = "",
        vehicle_type: VehicleType | str = VehicleType.SEDAN,
        user_id: Optional[str] = None,
        available: bool = False,
    ) -> DriverModel:
        """Admin approval of a driver application."""
        await require_admin(self.session, actor_id)
        name = sanitize_text(name, 120)
        if not name:
            raise ValidationError("Driver name is required")
        if user_id and await self.drivers.get_by_user_id(user_id) is not None:
            raise ConflictError("This user is already registered as a driver")

        now = utcnow()
        driver = DriverModel(
            user_id=user_id or None,
            name=name,
            phone=sanitize_text(phone, 32),
            vehicle_plate=sanitize_text(vehicle_plate, 32),
            vehicle_model=sanitize_text(vehicle_model, 80),
            vehicle_color=sanitize_text(vehicle_color, 40),
            vehicle_type=VehicleType(vehicle_type),
            status=DriverStatus.AVAILABLE if available else DriverStatus.OFFLINE,
            available_since=now if available else None,
        )
        await self.drivers.create(driver)

        if user_id:
            user = await self.users.get_by_id(user_id)
            if user is not None:
                user.driver_id = driver.id
                await flush_or_conflict(self.session, "user")
        logger.info("Driver %s registered (user=%s)", driver.id, user_id)
        return driver

    async def set_driver_status(
        self,
        driver_id: int,
        actor_id: Optional[str],
        status: DriverStatus | str,
    ) -> DriverModel:
        driver = await self._load(driver_id)
        actor = await resolve_driver_actor(self.session, actor_id, driver)
        try:
            status = DriverStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid driver status: {status}") from None

        allowed = set(SELF_SERVICE_STATUSES)
        if actor.role is ActorRole.ADMIN:
            allowed.add(DriverStatus.SUSPENDED)
        if status not in allowed:
            raise ValidationError(f"Cannot set driver status to {status.value}")
        suspended = DriverStatus(driver.status) is DriverStatus.SUSPENDED
        if suspended and actor.role is not ActorRole.ADMIN:
            raise ValidationError("Suspended drivers cannot change their status")
        if await self.bookings.get_active_for_driver(driver.id):
            raise ConflictError("Cannot change status while on an active job")

        if status is DriverStatus.AVAILABLE and driver.status != DriverStatus.AVAILABLE:
            driver.available_since = utcnow()
        driver.status = status
        await flush_or_conflict(self.session, "driver")
        logger.info("Driver %s set %s by %s", driver.id, status.value, actor.role.value)
        return driver

    async def update_driver_location(
        self,
        driver_id: int,
        actor_id: Optional[str],
        lat: float,
        lng: float,
    ) -> DriverModel:
        driver = await self._load(driver_id)
        await resolve_driver_actor(self.session, actor_id, driver)
        if not -90 <= lat <= 90 or not -180 <= lng <= 180:
            raise ValidationError("Invalid coordinates")
        driver.current_lat = lat
        driver.current_lng = lng
        driver.location_updated_at = utcnow()
        await flush_or_conflict(self.session, "driver")
        return driver

    async def deactivate_driver(self, driver_id: int, actor_id: Optional[str]) -> DriverModel:
        """Soft delete: refused while the driver holds an active job."""
        await require_admin(self.session, actor_id)
        driver = await self._load(driver_id)
        if await self.bookings.get_active_for_driver(driver.id):
            raise ConflictError("Cannot remove a driver with an active job")
        driver.is_active = False
        driver.status = DriverStatus.OFFLINE
        await self._unlink_users(driver)
        await flush_or_conflict(self.session, "driver")
        logger.info("Driver %s deactivated", driver.id)
        return driver

    async def delete_driver(self, driver_id: int, actor_id: Optional[str]) -> DriverModel:
        """Hard delete, for drivers that never took a trip.

        Completed bookings keep a foreign key to their driver, so a driver
        with trip history can only be deactivated.
        """
        await require_admin(self.session, actor_id)
        driver = await self.drivers.get_by_id(driver_id)
        if driver is None:
            raise NotFound("Driver not found")
        if await self.bookings.get_active_for_driver(driver.id):
            raise ConflictError("Cannot remove a driver with an active job")
        if any(b.driver_id == driver.id for b in await self.bookings.list_for_driver(driver.id)):
            raise ConflictError("Cannot delete a driver with trip history, deactivate instead")

        await self._unlink_users(driver)
        await flush_or_conflict(self.session, "user")
        await self.session.delete(driver)
        await flush_or_conflict(self.session, "driver")
        logger.info("Driver %s permanently deleted", driver_id)
        return driver

    async def list_jobs(self, driver_id: int, actor_id: Optional[str]) -> list[BookingModel]:
        """The driver's bookings, most recent pickup first."""
        driver = await self._load(driver_id)
        await resolve_driver_actor(self.session, actor_id, driver)
        return await self.bookings.list_for_driver(driver.id)

    async def _unlink_users(self, driver: DriverModel) -> None:
        for user in await self.users.list_linked_to_driver(driver.id):
            user.driver_id = None
            logger.info("User %s unlinked from driver %s", user.id, driver.id)
