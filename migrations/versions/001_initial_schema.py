"""Initial schema: users, drivers, bookings with history, ratings and outbox.

Revision ID: 001
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

ENUMS = {
    "userrole": ("user", "admin"),
    "driverstatus": ("available", "busy", "offline", "suspended"),
    "vehicletype": ("sedan", "suv", "van", "luxury"),
    "triptype": ("one_way", "round_trip"),
    "bookingstatus": (
        "pending",
        "confirmed",
        "driver_assigned",
        "driver_en_route",
        "in_progress",
        "completed",
        "cancelled",
        "no_show",
    ),
    "paymentmethod": ("card", "promptpay", "bank_transfer", "cash"),
    "paymentstatus": ("unpaid", "paid", "refunded"),
    "disputestatus": ("open", "resolved", "rejected"),
    "ratingtype": ("customerToDriver", "driverToCustomer"),
}

ACTIVE_JOB = "status IN ('driver_assigned', 'driver_en_route', 'in_progress')"


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _ts(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    # ── drivers ───────────────────────────────────────────────────────
    op.create_table(
        "drivers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(128), nullable=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(32), nullable=False, server_default=""),
        sa.Column("vehicle_plate", sa.String(32), nullable=False, server_default=""),
        sa.Column("vehicle_model", sa.String(80), nullable=False, server_default=""),
        sa.Column("vehicle_color", sa.String(40), nullable=False, server_default=""),
        sa.Column("vehicle_type", _enum("vehicletype"), nullable=False),
        sa.Column("status", _enum("driverstatus"), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        _ts("available_since"),
        sa.Column("total_trips", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_earnings", sa.Float, nullable=False, server_default="0"),
        sa.Column("pending_earnings", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_tips", sa.Float, nullable=False, server_default="0"),
        sa.Column("rating", sa.Float, nullable=False, server_default="5"),
        sa.Column("rating_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("current_lat", sa.Float, nullable=True),
        sa.Column("current_lng", sa.Float, nullable=True),
        _ts("location_updated_at"),
        sa.Column("version", sa.Integer, nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("idx_drivers_dispatch", "drivers", ["status", "is_active"])
    op.create_index("idx_drivers_user", "drivers", ["user_id"])

    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False, server_default=""),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("role", _enum("userrole"), nullable=False),
        sa.Column("driver_id", sa.Integer, sa.ForeignKey("drivers.id"), nullable=True),
        sa.Column("rating", sa.Float, nullable=False, server_default="5"),
        sa.Column("rating_count", sa.Integer, nullable=False, server_default="0"),
        _ts("created_at"),
    )
    op.create_index("idx_users_email", "users", ["email"])
    op.create_index("idx_users_phone", "users", ["phone"])

    # ── bookings ──────────────────────────────────────────────────────
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("first_name", sa.String(80), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(80), nullable=False, server_default=""),
        sa.Column("pickup_location", sa.String(255), nullable=False),
        sa.Column("dropoff_location", sa.String(255), nullable=False),
        _ts("scheduled_at", nullable=False),
        sa.Column("trip_type", _enum("triptype"), nullable=False),
        sa.Column("vehicle_type", _enum("vehicletype"), nullable=False),
        sa.Column("total_cost", sa.Float, nullable=False, server_default="0"),
        sa.Column("status", _enum("bookingstatus"), nullable=False),
        sa.Column("payment_method", _enum("paymentmethod"), nullable=False),
        sa.Column("payment_status", _enum("paymentstatus"), nullable=False),
        sa.Column("payment_intent_id", sa.String(128), nullable=True),
        _ts("payment_completed_at"),
        sa.Column("driver_id", sa.Integer, sa.ForeignKey("drivers.id"), nullable=True),
        sa.Column("driver_name", sa.String(120), nullable=True),
        sa.Column("driver_phone", sa.String(32), nullable=True),
        sa.Column("driver_vehicle_plate", sa.String(32), nullable=True),
        sa.Column("driver_vehicle_model", sa.String(80), nullable=True),
        sa.Column("driver_vehicle_color", sa.String(40), nullable=True),
        _ts("driver_assigned_at"),
        _ts("driver_arrived_at"),
        sa.Column("released_driver_id", sa.Integer, nullable=True),
        _ts("cancelled_at"),
        sa.Column("cancelled_by", sa.String(20), nullable=True),
        sa.Column("cancellation_reason", sa.String(40), nullable=True),
        sa.Column("no_show_fee", sa.Float, nullable=False, server_default="0"),
        sa.Column("has_dispute", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("dispute_status", _enum("disputestatus"), nullable=True),
        sa.Column("dispute_reason", sa.String(40), nullable=True),
        sa.Column("dispute_description", sa.Text, nullable=True),
        _ts("dispute_opened_at"),
        sa.Column(
            "customer_rating_submitted", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "driver_rating_submitted", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        sa.Column("idempotency_key", sa.String(64), unique=True, nullable=True),
        sa.Column("version", sa.Integer, nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("idx_bookings_status", "bookings", ["status"])
    op.create_index("idx_bookings_user", "bookings", ["user_id"])
    op.create_index("idx_bookings_email", "bookings", ["email"])
    op.create_index("idx_bookings_phone", "bookings", ["phone"])
    op.create_index("idx_bookings_driver", "bookings", ["driver_id"])
    # One active job per driver, enforced by the database
    op.create_index(
        "uq_bookings_active_driver",
        "bookings",
        ["driver_id"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_JOB),
    )

    # ── booking_status_history ────────────────────────────────────────
    op.create_table(
        "booking_status_history",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer, sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("seq", sa.Integer, nullable=False),
        sa.Column("status", _enum("bookingstatus"), nullable=False),
        sa.Column("note", sa.String(500), nullable=True),
        sa.Column("updated_by", sa.String(20), nullable=False),
        sa.Column("actor_id", sa.String(128), nullable=True),
        _ts("timestamp", nullable=False),
        sa.UniqueConstraint("booking_id", "seq", name="uq_status_history_seq"),
    )

    # ── booking_ratings ───────────────────────────────────────────────
    op.create_table(
        "booking_ratings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("booking_id", sa.Integer, sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("rating_type", _enum("ratingtype"), nullable=False),
        sa.Column("stars", sa.Integer, nullable=False),
        sa.Column("reasons", sa.JSON, nullable=False),
        sa.Column("comment", sa.String(500), nullable=True),
        sa.Column("tip", sa.Float, nullable=False, server_default="0"),
        sa.Column("rated_by", sa.String(128), nullable=False),
        _ts("created_at", nullable=False),
        sa.UniqueConstraint("booking_id", "rating_type", name="uq_booking_rating_type"),
    )

    # ── notifications (outbox) ────────────────────────────────────────
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("recipient_id", sa.String(128), nullable=False),
        sa.Column("booking_id", sa.Integer, sa.ForeignKey("bookings.id"), nullable=True),
        sa.Column("kind", sa.String(40), nullable=False),
        sa.Column("title_th", sa.String(200), nullable=False),
        sa.Column("title_en", sa.String(200), nullable=False),
        sa.Column("body_th", sa.String(500), nullable=False),
        sa.Column("body_en", sa.String(500), nullable=False),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default=sa.false()),
        _ts("created_at", nullable=False),
    )
    op.create_index("idx_notifications_recipient", "notifications", ["recipient_id"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("booking_ratings")
    op.drop_table("booking_status_history")
    op.drop_table("bookings")
    op.drop_table("users")
    op.drop_table("drivers")
    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
