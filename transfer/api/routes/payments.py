"""
Payment signal endpoints
========================

POST /api/v1/payments/confirm -- the booking owner's client after checkout
POST /api/v1/payments/webhook -- the payment processor, ``X-Webhook-Secret`` header
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from transfer.api.dependencies import get_actor_id, get_db
from transfer.api.middleware import PAYMENT, limiter
from transfer.api.schemas import (
    BookingResponse,
    Envelope,
    PaymentConfirmRequest,
    envelope,
)
from transfer.services.bookings import BookingService

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post(
    "/confirm",
    response_model=Envelope[BookingResponse],
    summary="Confirm payment for a booking",
)
@limiter.limit(PAYMENT)
async def confirm_payment(
    request: Request,
    body: PaymentConfirmRequest,
    actor_id: str = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    booking = await BookingService(db).confirm_payment(
        body.booking_id, actor_id, body.payment_intent_id
    )
    return envelope(booking)


@router.post(
    "/webhook",
    response_model=Envelope[BookingResponse],
    summary="Payment processor webhook",
)
@limiter.limit(PAYMENT)
async def payment_webhook(
    request: Request,
    body: PaymentConfirmRequest,
    x_webhook_secret: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
):
    booking = await BookingService(db).confirm_payment_webhook(
        body.booking_id, x_webhook_secret, body.payment_intent_id
    )
    return envelope(booking)
