"""
Driver self-service endpoints
=============================

POST /api/v1/drivers/{id}/status   -- go available / offline
POST /api/v1/drivers/{id}/location -- periodic location ping
GET  /api/v1/drivers/{id}/bookings -- the driver's jobs, latest pickup first
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from transfer.api.dependencies import get_actor_id, get_db
from transfer.api.middleware import DRIVER_LOCATION, STANDARD, limiter
from transfer.api.schemas import (
    BookingResponse,
    DriverLocationRequest,
    DriverResponse,
    DriverStatusRequest,
    Envelope,
    envelope,
)
from transfer.services.drivers import DriverService

router = APIRouter(prefix="/drivers", tags=["drivers"])


@router.post(
    "/{driver_id}/status",
    response_model=Envelope[DriverResponse],
    summary="Set driver availability",
    description="Refused while the driver holds an active job.",
)
@limiter.limit(STANDARD)
async def set_driver_status(
    request: Request,
    driver_id: int,
    body: DriverStatusRequest,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    driver = await DriverService(db).set_driver_status(driver_id, actor_id, body.status)
    return envelope(driver)


@router.post(
    "/{driver_id}/location",
    response_model=Envelope[DriverResponse],
    summary="Update driver location",
)
@limiter.limit(DRIVER_LOCATION)
async def update_location(
    request: Request,
    driver_id: int,
    body: DriverLocationRequest,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    driver = await DriverService(db).update_driver_location(
        driver_id, actor_id, body.lat, body.lng
    )
    return envelope(driver)


@router.get(
    "/{driver_id}/bookings",
    response_model=Envelope[list[BookingResponse]],
    summary="List the driver's jobs",
)
@limiter.limit(STANDARD)
async def list_jobs(
    request: Request,
    driver_id: int,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return envelope(await DriverService(db).list_jobs(driver_id, actor_id))
