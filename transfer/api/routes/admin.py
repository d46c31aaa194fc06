"""
Admin / observability endpoints
===============================

POST   /api/v1/admin/bookings/{id}/assign          -- dispatch (auto or chosen driver)
POST   /api/v1/admin/bookings/{id}/dispute         -- flag a dispute
POST   /api/v1/admin/bookings/{id}/dispute/resolve -- resolve / reject a dispute
POST   /api/v1/admin/drivers                       -- approve a new driver
DELETE /api/v1/admin/drivers/{id}                  -- soft-delete a driver (?hard=true deletes it)
GET    /api/v1/admin/health                        -- simple health check
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from transfer.api.dependencies import get_actor_id, get_db
from transfer.api.middleware import SENSITIVE, STANDARD, limiter
from transfer.api.schemas import (
    AssignRequest,
    BookingResponse,
    DriverCreateRequest,
    DriverResponse,
    Envelope,
    FlagDisputeRequest,
    HealthResponse,
    ResolveDisputeRequest,
    envelope,
)
from transfer.services.bookings import BookingService
from transfer.services.drivers import DriverService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post(
    "/bookings/{booking_id}/assign",
    response_model=Envelope[BookingResponse],
    summary="Assign a driver to a booking",
    description=(
        "Without ``driver_id`` the longest-idle available driver is chosen. "
        "Fails with 409 when no driver is eligible."
    ),
)
@limiter.limit(STANDARD)
async def assign_driver(
    request: Request,
    booking_id: int,
    body: Optional[AssignRequest] = None,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    booking = await BookingService(db).assign_driver(
        booking_id, actor_id, driver_id=body.driver_id if body else None
    )
    return envelope(booking)


@router.post(
    "/bookings/{booking_id}/dispute",
    response_model=Envelope[BookingResponse],
    summary="Flag a booking as disputed",
)
@limiter.limit(SENSITIVE)
async def flag_dispute(
    request: Request,
    booking_id: int,
    body: FlagDisputeRequest,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return envelope(await BookingService(db).flag_dispute(booking_id, actor_id, body.note))


@router.post(
    "/bookings/{booking_id}/dispute/resolve",
    response_model=Envelope[BookingResponse],
    summary="Resolve or reject a dispute",
)
@limiter.limit(SENSITIVE)
async def resolve_dispute(
    request: Request,
    booking_id: int,
    body: ResolveDisputeRequest,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    booking = await BookingService(db).resolve_dispute(
        booking_id, actor_id, body.resolution, body.note, body.refund
    )
    return envelope(booking)


@router.post(
    "/drivers",
    status_code=201,
    response_model=Envelope[DriverResponse],
    summary="Approve a new driver",
)
@limiter.limit(STANDARD)
async def register_driver(
    request: Request,
    body: DriverCreateRequest,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    driver = await DriverService(db).register_driver(actor_id, **body.model_dump())
    return envelope(driver)


@router.delete(
    "/drivers/{driver_id}",
    response_model=Envelope[DriverResponse],
    summary="Remove a driver",
    description=(
        "Soft delete by default. With ``hard=true`` a driver without trip "
        "history is deleted outright. Either way the linked user loses its "
        "driver link."
    ),
)
@limiter.limit(SENSITIVE)
async def remove_driver(
    request: Request,
    driver_id: int,
    hard: bool = Query(False),
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    service = DriverService(db)
    if hard:
        return envelope(await service.delete_driver(driver_id, actor_id))
    return envelope(await service.deactivate_driver(driver_id, actor_id))


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
