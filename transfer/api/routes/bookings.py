"""
Booking endpoints
=================

POST /api/v1/bookings                  -- create a booking (idempotent)
GET  /api/v1/bookings                  -- find bookings by user id / email / phone
GET  /api/v1/bookings/{id}             -- booking detail with status history
POST /api/v1/bookings/{id}/status      -- advance the booking status
POST /api/v1/bookings/{id}/cancel      -- cancel (customer, or admin with a note)
POST /api/v1/bookings/{id}/arrived     -- driver reached the pickup point
POST /api/v1/bookings/{id}/no-show     -- driver reports a no-show after waiting
POST /api/v1/bookings/{id}/rating      -- rate a completed trip
POST /api/v1/bookings/{id}/dispute     -- customer opens a dispute
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from transfer.api.dependencies import get_actor_id, get_db
from transfer.api.middleware import SENSITIVE, STANDARD, limiter
from transfer.api.schemas import (
    BookingCreateRequest,
    BookingResponse,
    CancelRequest,
    DisputeRequest,
    Envelope,
    NoShowRequest,
    RatingRequest,
    RatingResponse,
    StatusUpdateRequest,
    envelope,
)
from transfer.services.bookings import BookingService

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post(
    "",
    status_code=201,
    response_model=Envelope[BookingResponse],
    summary="Create a booking",
)
@limiter.limit(STANDARD)
async def create_booking(
    request: Request,
    body: BookingCreateRequest,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    booking = await BookingService(db).create_booking(actor_id, **body.model_dump())
    return envelope(booking)


@router.get(
    "",
    response_model=Envelope[list[BookingResponse]],
    summary="Find bookings by customer identifier",
)
@limiter.limit(STANDARD)
async def find_bookings(
    request: Request,
    user_id: Optional[str] = Query(None),
    email: Optional[str] = Query(None),
    phone: Optional[str] = Query(None),
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    bookings = await BookingService(db).find_bookings(
        actor_id, user_id=user_id, email=email, phone=phone
    )
    return envelope(bookings)


@router.get(
    "/{booking_id}",
    response_model=Envelope[BookingResponse],
    summary="Get booking detail",
)
@limiter.limit(STANDARD)
async def get_booking(
    request: Request,
    booking_id: int,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return envelope(await BookingService(db).get_booking(booking_id, actor_id))


@router.post(
    "/{booking_id}/status",
    response_model=Envelope[BookingResponse],
    summary="Advance booking status",
    description=(
        "Drivers move their job forward one step at a time; admins may take "
        "any legal edge with an audit note."
    ),
)
@limiter.limit(STANDARD)
async def advance_status(
    request: Request,
    booking_id: int,
    body: StatusUpdateRequest,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    booking = await BookingService(db).advance_status(
        booking_id, body.status, actor_id, body.note
    )
    return envelope(booking)


@router.post(
    "/{booking_id}/cancel",
    response_model=Envelope[BookingResponse],
    summary="Cancel a booking",
    description="Releases the assigned driver, if any, in the same transaction.",
)
@limiter.limit(SENSITIVE)
async def cancel_booking(
    request: Request,
    booking_id: int,
    body: CancelRequest,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    booking = await BookingService(db).cancel_booking(
        booking_id, actor_id, body.reason.value, body.note
    )
    return envelope(booking)


@router.post(
    "/{booking_id}/arrived",
    response_model=Envelope[BookingResponse],
    summary="Mark driver arrival at pickup",
)
@limiter.limit(STANDARD)
async def mark_arrived(
    request: Request,
    booking_id: int,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return envelope(await BookingService(db).mark_driver_arrived(booking_id, actor_id))


@router.post(
    "/{booking_id}/no-show",
    response_model=Envelope[BookingResponse],
    summary="Report a customer no-show",
)
@limiter.limit(STANDARD)
async def report_no_show(
    request: Request,
    booking_id: int,
    body: NoShowRequest,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    booking = await BookingService(db).report_no_show(booking_id, actor_id, body.note)
    return envelope(booking)


@router.post(
    "/{booking_id}/rating",
    response_model=Envelope[RatingResponse],
    summary="Rate a completed trip",
)
@limiter.limit(STANDARD)
async def rate_booking(
    request: Request,
    booking_id: int,
    body: RatingRequest,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    rating = await BookingService(db).rate_booking(
        booking_id,
        body.rating_type,
        actor_id,
        body.stars,
        body.reasons,
        body.comment,
        body.tip,
    )
    return envelope(rating)


@router.post(
    "/{booking_id}/dispute",
    response_model=Envelope[BookingResponse],
    summary="Open a dispute on a finished booking",
)
@limiter.limit(SENSITIVE)
async def open_dispute(
    request: Request,
    booking_id: int,
    body: DisputeRequest,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    booking = await BookingService(db).open_dispute(
        booking_id, actor_id, body.reason, body.description
    )
    return envelope(booking)
