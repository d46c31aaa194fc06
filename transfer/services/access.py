"""Resolves a caller id into the role it plays for one booking or driver."""

from __future__ import annotations

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from transfer.domain.entities import SYSTEM_ACTOR_ID, Actor
from transfer.domain.enums import ActorRole, UserRole
from transfer.domain.errors import AuthorizationError, Unauthenticated
from transfer.infrastructure.models import BookingModel, DriverModel
from transfer.infrastructure.repositories import DriverRepository, UserRepository


async def linked_driver_id(session: AsyncSession, user_id: str) -> Optional[int]:
    """Driver id linked to *user_id*, via the user row or the driver row."""
    user = await UserRepository(session).get_by_id(user_id)
    if user is not None and user.driver_id is not None:
        return user.driver_id
    driver = await DriverRepository(session).get_by_user_id(user_id)
    return driver.id if driver is not None else None


async def is_admin(session: AsyncSession, user_id: str) -> bool:
    user = await UserRepository(session).get_by_id(user_id)
    return user is not None and user.role == UserRole.ADMIN


async def resolve_actor(
    session: AsyncSession, actor_id: Optional[str], booking: BookingModel
) -> Actor:
    """Owner first, then admin, then the booking's assigned driver.

    An admin acting on their own booking is treated as its customer.
    """
    if not actor_id:
        raise Unauthenticated("Authentication required")
    if actor_id == SYSTEM_ACTOR_ID:
        return Actor.system()
    if booking.user_id == actor_id:
        return Actor(user_id=actor_id, role=ActorRole.CUSTOMER)
    if await is_admin(session, actor_id):
        return Actor(user_id=actor_id, role=ActorRole.ADMIN)
    if booking.driver_id is not None:
        driver_id = await linked_driver_id(session, actor_id)
        if driver_id == booking.driver_id:
            return Actor(user_id=actor_id, role=ActorRole.DRIVER, driver_id=driver_id)
    raise AuthorizationError("You are not authorized to access this booking")


async def resolve_driver_actor(
    session: AsyncSession, actor_id: Optional[str], driver: DriverModel
) -> Actor:
    """The driver's own linked user, or an admin."""
    if not actor_id:
        raise Unauthenticated("Authentication required")
    if await is_admin(session, actor_id):
        return Actor(user_id=actor_id, role=ActorRole.ADMIN)
    if driver.user_id == actor_id or await linked_driver_id(session, actor_id) == driver.id:
        return Actor(user_id=actor_id, role=ActorRole.DRIVER, driver_id=driver.id)
    raise AuthorizationError("You are not authorized to manage this driver")


async def require_admin(session: AsyncSession, actor_id: Optional[str]) -> Actor:
    if not actor_id:
        raise Unauthenticated("Authentication required")
    if not await is_admin(session, actor_id):
        raise AuthorizationError("Admin access required")
    return Actor(user_id=actor_id, role=ActorRole.ADMIN)
