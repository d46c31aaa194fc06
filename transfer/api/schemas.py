"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from transfer.domain.enums import (
    BookingStatus,
    CancellationReason,
    DisputeStatus,
    DriverStatus,
    PaymentMethod,
    PaymentStatus,
    RatingType,
    TripType,
    VehicleType,
)

T = TypeVar("T")


# ── Requests ──────────────────────────────────────────────────────────


class BookingCreateRequest(BaseModel):
    first_name: str = Field("", max_length=80)
    last_name: str = Field("", max_length=80)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=32)
    pickup_location: str = Field(..., min_length=1, max_length=255)
    dropoff_location: str = Field(..., min_length=1, max_length=255)
    scheduled_at: datetime
    trip_type: TripType = TripType.ONE_WAY
    vehicle_type: VehicleType = VehicleType.SEDAN
    payment_method: PaymentMethod = PaymentMethod.CARD
    total_cost: float = Field(0.0, ge=0)
    idempotency_key: Optional[str] = Field(
        None,
        max_length=64,
        description="Client-generated UUID to prevent double-booking on retries.",
    )


class StatusUpdateRequest(BaseModel):
    status: BookingStatus
    note: Optional[str] = Field(None, max_length=500)


class CancelRequest(BaseModel):
    reason: CancellationReason = CancellationReason.OTHER
    note: Optional[str] = Field(None, max_length=500)


class NoShowRequest(BaseModel):
    note: Optional[str] = Field(None, max_length=500)


class RatingRequest(BaseModel):
    rating_type: RatingType = RatingType.CUSTOMER_TO_DRIVER
    stars: int
    reasons: list[str] = []
    comment: Optional[str] = Field(None, max_length=2000)
    tip: Optional[float] = None


class DisputeRequest(BaseModel):
    reason: str = Field(..., max_length=40)
    description: str = Field(..., max_length=2000)


class PaymentConfirmRequest(BaseModel):
    booking_id: int
    payment_intent_id: Optional[str] = Field(None, max_length=128)


class AssignRequest(BaseModel):
    driver_id: Optional[int] = Field(
        None, description="Dispatch to this driver instead of searching."
    )


class FlagDisputeRequest(BaseModel):
    note: str = Field(..., max_length=500)


class ResolveDisputeRequest(BaseModel):
    resolution: DisputeStatus
    note: str = Field(..., max_length=500)
    refund: bool = False


class DriverCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    phone: str = Field("", max_length=32)
    vehicle_plate: str = Field("", max_length=32)
    vehicle_model: str = Field("", max_length=80)
    vehicle_color: str = Field("", max_length=40)
    vehicle_type: VehicleType = VehicleType.SEDAN
    user_id: Optional[str] = Field(None, max_length=128)
    available: bool = False


class DriverStatusRequest(BaseModel):
    status: DriverStatus


class DriverLocationRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


# ── Responses ─────────────────────────────────────────────────────────


class StatusHistoryResponse(BaseModel):
    seq: int
    status: BookingStatus
    timestamp: datetime
    note: Optional[str] = None
    updated_by: str
    actor_id: Optional[str] = None

    model_config = {"from_attributes": True}


class DriverInfo(BaseModel):
    driver_id: int
    name: str
    phone: str = ""
    vehicle_plate: str = ""
    vehicle_model: str = ""
    vehicle_color: str = ""

    model_config = {"from_attributes": True}


class BookingResponse(BaseModel):
    id: int
    user_id: str
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    pickup_location: str
    dropoff_location: str
    scheduled_at: datetime
    trip_type: TripType
    vehicle_type: VehicleType
    total_cost: float
    status: BookingStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    driver: Optional[DriverInfo] = None
    driver_assigned_at: Optional[datetime] = None
    driver_arrived_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancellation_reason: Optional[str] = None
    no_show_fee: float = 0.0
    has_dispute: bool = False
    dispute_status: Optional[DisputeStatus] = None
    dispute_reason: Optional[str] = None
    customer_rating_submitted: bool = False
    driver_rating_submitted: bool = False
    status_history: list[StatusHistoryResponse] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RatingResponse(BaseModel):
    booking_id: int
    rating_type: RatingType
    stars: int
    reasons: list[str] = []
    comment: Optional[str] = None
    tip: float = 0.0
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class DriverResponse(BaseModel):
    id: int
    user_id: Optional[str] = None
    name: str
    phone: str = ""
    vehicle_plate: str = ""
    vehicle_model: str = ""
    vehicle_color: str = ""
    vehicle_type: VehicleType
    status: DriverStatus
    is_active: bool
    rating: float
    rating_count: int
    total_trips: int
    current_lat: Optional[float] = None
    current_lng: Optional[float] = None
    location_updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    status: str = "ok"


def envelope(data: Any) -> dict[str, Any]:
    return {"success": True, "data": data}
