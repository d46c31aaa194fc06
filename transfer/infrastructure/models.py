"""
SQLAlchemy ORM models.

Tables
------
* ``users``                  -- identities from the external provider (role, linked driver)
* ``drivers``                -- service providers with availability status
* ``bookings``               -- one customer trip, with a denormalised driver snapshot
* ``booking_status_history`` -- append-only audit trail, ordered by ``seq``
* ``booking_ratings``        -- at most one row per (booking, rating type)
* ``notifications``          -- outbox of notification intents for the messaging service

Concurrency
-----------
* ``bookings`` and ``drivers`` carry a ``version`` column used as the
  mapper's ``version_id_col``: every UPDATE is ``... WHERE id = :id AND
  version = :seen`` so a stale writer fails instead of clobbering.
* **Partial unique index** on ``bookings.driver_id`` over active-job
  statuses: a driver can never hold two active bookings.
* **Unique** ``(booking_id, seq)`` on history and ``(booking_id,
  rating_type)`` on ratings.
"""

from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from .database import Base, UTCDateTime, utcnow
from transfer.domain.entities import DriverSnapshot
from transfer.domain.enums import (
    ACTIVE_JOB_STATUSES,
    BookingStatus,
    DisputeStatus,
    DriverStatus,
    PaymentMethod,
    PaymentStatus,
    RatingType,
    TripType,
    UserRole,
    VehicleType,
)


def _enum(enum_cls, name: str) -> Enum:
    """Store enum *values* (``"driver_assigned"``), not member names."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


BOOKING_STATUS_TYPE = _enum(BookingStatus, "bookingstatus")
VEHICLE_TYPE = _enum(VehicleType, "vehicletype")

_ACTIVE_JOB_SQL = "status IN ({})".format(
    ", ".join(f"'{s.value}'" for s in sorted(ACTIVE_JOB_STATUSES, key=lambda s: s.value))
)


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String(128), primary_key=True)  # identity provider uid
    name = Column(String(120), nullable=False, default="")
    email = Column(String(255), nullable=True)
    phone = Column(String(32), nullable=True)
    role = Column(_enum(UserRole, "userrole"), default=UserRole.USER, nullable=False)
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=True)
    rating = Column(Float, default=5.0, nullable=False)
    rating_count = Column(Integer, default=0, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (
        Index("idx_users_email", "email"),
        Index("idx_users_phone", "phone"),
    )


class DriverModel(Base):
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), nullable=True)
    name = Column(String(120), nullable=False)
    phone = Column(String(32), nullable=False, default="")
    vehicle_plate = Column(String(32), nullable=False, default="")
    vehicle_model = Column(String(80), nullable=False, default="")
    vehicle_color = Column(String(40), nullable=False, default="")
    vehicle_type = Column(VEHICLE_TYPE, default=VehicleType.SEDAN, nullable=False)

    status = Column(
        _enum(DriverStatus, "driverstatus"), default=DriverStatus.OFFLINE, nullable=False
    )
    is_active = Column(Boolean, default=True, nullable=False)
    available_since = Column(UTCDateTime, nullable=True)

    total_trips = Column(Integer, default=0, nullable=False)
    total_earnings = Column(Float, default=0.0, nullable=False)
    pending_earnings = Column(Float, default=0.0, nullable=False)
    total_tips = Column(Float, default=0.0, nullable=False)
    rating = Column(Float, default=5.0, nullable=False)
    rating_count = Column(Integer, default=0, nullable=False)

    current_lat = Column(Float, nullable=True)
    current_lng = Column(Float, nullable=True)
    location_updated_at = Column(UTCDateTime, nullable=True)

    version = Column(Integer, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_drivers_dispatch", "status", "is_active"),
        Index("idx_drivers_user", "user_id"),
    )

    def snapshot(self) -> DriverSnapshot:
        return DriverSnapshot(
            driver_id=self.id,
            name=self.name,
            phone=self.phone or "",
            vehicle_plate=self.vehicle_plate or "",
            vehicle_model=self.vehicle_model or "",
            vehicle_color=self.vehicle_color or "",
        )


class BookingModel(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Customer identity -- any of the three may be used for lookup
    user_id = Column(String(128), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(32), nullable=True)
    first_name = Column(String(80), nullable=False, default="")
    last_name = Column(String(80), nullable=False, default="")

    # Trip
    pickup_location = Column(String(255), nullable=False)
    dropoff_location = Column(String(255), nullable=False)
    scheduled_at = Column(UTCDateTime, nullable=False)
    trip_type = Column(_enum(TripType, "triptype"), default=TripType.ONE_WAY, nullable=False)
    vehicle_type = Column(VEHICLE_TYPE, default=VehicleType.SEDAN, nullable=False)
    total_cost = Column(Float, nullable=False, default=0.0)

    status = Column(BOOKING_STATUS_TYPE, default=BookingStatus.PENDING, nullable=False)

    # Payment
    payment_method = Column(
        _enum(PaymentMethod, "paymentmethod"), default=PaymentMethod.CARD, nullable=False
    )
    payment_status = Column(
        _enum(PaymentStatus, "paymentstatus"), default=PaymentStatus.UNPAID, nullable=False
    )
    payment_intent_id = Column(String(128), nullable=True)
    payment_completed_at = Column(UTCDateTime, nullable=True)

    # Driver snapshot, copied at assignment time
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=True)
    driver_name = Column(String(120), nullable=True)
    driver_phone = Column(String(32), nullable=True)
    driver_vehicle_plate = Column(String(32), nullable=True)
    driver_vehicle_model = Column(String(80), nullable=True)
    driver_vehicle_color = Column(String(40), nullable=True)
    driver_assigned_at = Column(UTCDateTime, nullable=True)
    driver_arrived_at = Column(UTCDateTime, nullable=True)
    released_driver_id = Column(Integer, nullable=True)

    # Cancellation / no-show
    cancelled_at = Column(UTCDateTime, nullable=True)
    cancelled_by = Column(String(20), nullable=True)
    cancellation_reason = Column(String(40), nullable=True)
    no_show_fee = Column(Float, nullable=False, default=0.0)

    # Dispute side channel -- never changes ``status``
    has_dispute = Column(Boolean, nullable=False, default=False)
    dispute_status = Column(_enum(DisputeStatus, "disputestatus"), nullable=True)
    dispute_reason = Column(String(40), nullable=True)
    dispute_description = Column(Text, nullable=True)
    dispute_opened_at = Column(UTCDateTime, nullable=True)

    # Rating-submitted flags
    customer_rating_submitted = Column(Boolean, nullable=False, default=False)
    driver_rating_submitted = Column(Boolean, nullable=False, default=False)

    idempotency_key = Column(String(64), unique=True, nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    status_history = relationship(
        "StatusHistoryModel",
        order_by="StatusHistoryModel.seq",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    ratings = relationship(
        "RatingModel",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_bookings_status", "status"),
        Index("idx_bookings_user", "user_id"),
        Index("idx_bookings_email", "email"),
        Index("idx_bookings_phone", "phone"),
        Index("idx_bookings_driver", "driver_id"),
        Index(
            "uq_bookings_active_driver",
            "driver_id",
            unique=True,
            postgresql_where=text(_ACTIVE_JOB_SQL),
            sqlite_where=text(_ACTIVE_JOB_SQL),
        ),
    )

    @property
    def driver(self) -> Optional[DriverSnapshot]:
        if self.driver_id is None:
            return None
        return DriverSnapshot(
            driver_id=self.driver_id,
            name=self.driver_name or "",
            phone=self.driver_phone or "",
            vehicle_plate=self.driver_vehicle_plate or "",
            vehicle_model=self.driver_vehicle_model or "",
            vehicle_color=self.driver_vehicle_color or "",
        )

    def attach_driver(self, snapshot: DriverSnapshot) -> None:
        self.driver_id = snapshot.driver_id
        self.driver_name = snapshot.name
        self.driver_phone = snapshot.phone
        self.driver_vehicle_plate = snapshot.vehicle_plate
        self.driver_vehicle_model = snapshot.vehicle_model
        self.driver_vehicle_color = snapshot.vehicle_color

    def detach_driver(self) -> None:
        self.released_driver_id = self.driver_id
        self.driver_id = None
        self.driver_name = None
        self.driver_phone = None
        self.driver_vehicle_plate = None
        self.driver_vehicle_model = None
        self.driver_vehicle_color = None


class StatusHistoryModel(Base):
    __tablename__ = "booking_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False)
    seq = Column(Integer, nullable=False)
    status = Column(BOOKING_STATUS_TYPE, nullable=False)
    note = Column(String(500), nullable=True)
    updated_by = Column(String(20), nullable=False)  # actor role
    actor_id = Column(String(128), nullable=True)
    timestamp = Column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("booking_id", "seq", name="uq_status_history_seq"),
    )


class RatingModel(Base):
    __tablename__ = "booking_ratings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False)
    rating_type = Column(_enum(RatingType, "ratingtype"), nullable=False)
    stars = Column(Integer, nullable=False)
    reasons = Column(JSON, nullable=False, default=list)
    comment = Column(String(500), nullable=True)
    tip = Column(Float, nullable=False, default=0.0)
    rated_by = Column(String(128), nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("booking_id", "rating_type", name="uq_booking_rating_type"),
    )


class NotificationModel(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipient_id = Column(String(128), nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    kind = Column(String(40), nullable=False)
    title_th = Column(String(200), nullable=False)
    title_en = Column(String(200), nullable=False)
    body_th = Column(String(500), nullable=False)
    body_en = Column(String(500), nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_notifications_recipient", "recipient_id"),
    )
