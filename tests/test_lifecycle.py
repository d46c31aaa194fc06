"""
Booking lifecycle through the service layer.

Each test drives ``BookingService`` the way one HTTP request would (one
session, commit at the end) and checks both the booking and the driver
row afterwards.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from tests.conftest import make_booking, make_driver, make_user
from transfer.config import settings
from transfer.domain.enums import (
    DRIVER_BOUND_STATUSES,
    BookingStatus,
    DisputeStatus,
    DriverStatus,
    PaymentMethod,
    PaymentStatus,
    UserRole,
)
from transfer.domain.errors import (
    AuthorizationError,
    ConflictError,
    InvalidTransition,
    NotFound,
    Unauthenticated,
    ValidationError,
)
from transfer.infrastructure.database import utcnow
from transfer.infrastructure.repositories import BookingRepository, DriverRepository
from transfer.services.bookings import BookingService

S = BookingStatus


def assert_driver_invariant(booking):
    assert (booking.driver_id is not None) == (
        BookingStatus(booking.status) in DRIVER_BOUND_STATUSES
    )


async def reload(session_factory, booking_id, driver_id=None):
    async with session_factory() as s:
        booking = await BookingRepository(s).get_by_id(booking_id)
        driver = await DriverRepository(s).get_by_id(driver_id) if driver_id else None
        return booking, driver


# ── Cancellation ──────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_cancel_assigned_booking_releases_driver_in_same_commit(session_factory):
    async with session_factory() as s:
        await make_user(s, "admin-1", role=UserRole.ADMIN)
        driver = await make_driver(s, "Anan", user_id="drv-1")
        booking = await make_booking(s, status=S.DRIVER_ASSIGNED, driver=driver)

    async with session_factory() as s:
        await BookingService(s).cancel_booking(
            booking.id, "admin-1", "admin_action", "customer called support"
        )
        await s.commit()

    booking, driver = await reload(session_factory, booking.id, driver.id)
    assert booking.status == S.CANCELLED
    assert booking.driver_id is None
    assert booking.released_driver_id == driver.id
    assert booking.cancelled_by == "admin"
    assert booking.cancellation_reason == "admin_action"
    assert driver.status == DriverStatus.AVAILABLE
    assert_driver_invariant(booking)


@pytest.mark.asyncio
async def test_customer_cancels_pending_booking(db_session):
    booking = await make_booking(db_session)

    await BookingService(db_session).cancel_booking(booking.id, "cust-1", "change_of_plans")
    assert booking.status == S.CANCELLED
    assert booking.cancelled_by == "customer"
    assert booking.cancelled_at is not None
    assert booking.status_history[-1].status == S.CANCELLED
    assert booking.status_history[-1].seq == 2


@pytest.mark.asyncio
async def test_customer_cannot_cancel_after_dispatch(db_session):
    driver = await make_driver(db_session)
    booking = await make_booking(db_session, status=S.DRIVER_ASSIGNED, driver=driver)

    with pytest.raises(AuthorizationError):
        await BookingService(db_session).cancel_booking(booking.id, "cust-1")

    assert booking.status == S.DRIVER_ASSIGNED
    assert booking.driver_id == driver.id
    assert len(booking.status_history) == 1


@pytest.mark.asyncio
async def test_stranger_cannot_touch_booking(db_session):
    booking = await make_booking(db_session)

    with pytest.raises(AuthorizationError):
        await BookingService(db_session).cancel_booking(booking.id, "someone-else")


@pytest.mark.asyncio
async def test_invalid_cancellation_reason(db_session):
    booking = await make_booking(db_session)

    with pytest.raises(ValidationError):
        await BookingService(db_session).cancel_booking(booking.id, "cust-1", "bored")
    assert booking.status == S.PENDING


# ── Driver progress ───────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_driver_runs_the_trip_to_completion(session_factory):
    async with session_factory() as s:
        driver = await make_driver(s, "Anan", user_id="drv-1")
        booking = await make_booking(
            s,
            status=S.DRIVER_ASSIGNED,
            driver=driver,
            payment_method=PaymentMethod.CASH,
            total_cost=900.0,
        )

    for target in (S.DRIVER_EN_ROUTE, S.IN_PROGRESS, S.COMPLETED):
        async with session_factory() as s:
            result = await BookingService(s).advance_status(booking.id, target, "drv-1")
            await s.commit()
            assert result.status == target
            assert_driver_invariant(result)

    booking, driver = await reload(session_factory, booking.id, driver.id)
    assert [h.seq for h in booking.status_history] == [1, 2, 3, 4]
    assert booking.driver_id == driver.id
    assert booking.payment_status == PaymentStatus.PAID
    assert driver.status == DriverStatus.AVAILABLE
    assert driver.total_trips == 1
    assert driver.total_earnings == 900.0


@pytest.mark.asyncio
async def test_illegal_transition_does_not_mutate(db_session):
    driver = await make_driver(db_session, user_id="drv-1")
    booking = await make_booking(db_session, status=S.DRIVER_ASSIGNED, driver=driver)

    with pytest.raises(InvalidTransition):
        await BookingService(db_session).advance_status(booking.id, S.COMPLETED, "drv-1")

    assert booking.status == S.DRIVER_ASSIGNED
    assert len(booking.status_history) == 1
    assert driver.status == DriverStatus.BUSY


@pytest.mark.asyncio
async def test_unknown_status_value(db_session):
    booking = await make_booking(db_session)

    with pytest.raises(ValidationError):
        await BookingService(db_session).advance_status(booking.id, "teleported", "cust-1")


@pytest.mark.asyncio
async def test_admin_confirms_with_note(db_session):
    await make_user(db_session, "admin-1", role=UserRole.ADMIN)
    booking = await make_booking(db_session)

    result = await BookingService(db_session).advance_status(
        booking.id, S.CONFIRMED, "admin-1", "verified by phone"
    )
    assert result.status == S.CONFIRMED
    assert result.status_history[-1].note == "verified by phone"
    assert result.status_history[-1].updated_by == "admin"


@pytest.mark.asyncio
async def test_admin_cannot_force_assignment_without_driver(db_session):
    await make_user(db_session, "admin-1", role=UserRole.ADMIN)
    booking = await make_booking(db_session)

    with pytest.raises(InvalidTransition, match="without an assigned driver"):
        await BookingService(db_session).advance_status(
            booking.id, S.DRIVER_ASSIGNED, "admin-1", "force"
        )
    assert_driver_invariant(booking)


@pytest.mark.asyncio
async def test_missing_booking(db_session):
    with pytest.raises(NotFound):
        await BookingService(db_session).advance_status(404, S.CONFIRMED, "cust-1")


# ── Arrival and no-show ───────────────────────────────────────────────


@pytest.mark.asyncio
async def test_no_show_requires_arrival(db_session):
    driver = await make_driver(db_session, user_id="drv-1")
    booking = await make_booking(db_session, status=S.DRIVER_EN_ROUTE, driver=driver)

    with pytest.raises(ValidationError, match="mark arrival"):
        await BookingService(db_session).report_no_show(booking.id, "drv-1")
    assert booking.status == S.DRIVER_EN_ROUTE


@pytest.mark.asyncio
async def test_no_show_requires_waiting(db_session):
    driver = await make_driver(db_session, user_id="drv-1")
    booking = await make_booking(
        db_session, status=S.DRIVER_EN_ROUTE, driver=driver, arrived_minutes_ago=3
    )

    with pytest.raises(ValidationError, match="Please wait"):
        await BookingService(db_session).report_no_show(booking.id, "drv-1")


@pytest.mark.asyncio
async def test_mark_arrived_once(db_session):
    driver = await make_driver(db_session, user_id="drv-1")
    booking = await make_booking(db_session, status=S.DRIVER_EN_ROUTE, driver=driver)
    service = BookingService(db_session)

    await service.mark_driver_arrived(booking.id, "drv-1")
    assert booking.driver_arrived_at is not None
    assert booking.status == S.DRIVER_EN_ROUTE

    with pytest.raises(ConflictError):
        await service.mark_driver_arrived(booking.id, "drv-1")


@pytest.mark.asyncio
async def test_customer_cannot_mark_arrival(db_session):
    driver = await make_driver(db_session, user_id="drv-1")
    booking = await make_booking(db_session, status=S.DRIVER_EN_ROUTE, driver=driver)

    with pytest.raises(AuthorizationError):
        await BookingService(db_session).mark_driver_arrived(booking.id, "cust-1")


@pytest.mark.asyncio
async def test_no_show_after_wait(session_factory):
    async with session_factory() as s:
        driver = await make_driver(s, user_id="drv-1")
        booking = await make_booking(
            s, status=S.DRIVER_EN_ROUTE, driver=driver, arrived_minutes_ago=15
        )

    async with session_factory() as s:
        await BookingService(s).advance_status(booking.id, S.NO_SHOW, "drv-1")
        await s.commit()

    booking, driver = await reload(session_factory, booking.id, driver.id)
    assert booking.status == S.NO_SHOW
    assert booking.driver_id is None
    assert booking.released_driver_id == driver.id
    assert booking.no_show_fee == 100.0
    assert booking.has_dispute is True
    assert booking.dispute_status == DisputeStatus.OPEN
    assert booking.dispute_reason == "customer_no_show"
    assert driver.status == DriverStatus.AVAILABLE
    assert driver.pending_earnings == 50.0
    assert_driver_invariant(booking)


# ── Payment ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_owner_confirms_payment(db_session):
    booking = await make_booking(db_session)
    service = BookingService(db_session)

    await service.confirm_payment(booking.id, "cust-1", "pi_123")
    assert booking.payment_status == PaymentStatus.PAID
    assert booking.payment_intent_id == "pi_123"
    assert booking.status == S.PENDING
    assert booking.status_history[-1].note == "Payment confirmed"

    with pytest.raises(ConflictError, match="already paid"):
        await service.confirm_payment(booking.id, "cust-1")


@pytest.mark.asyncio
async def test_cash_payment_cannot_be_confirmed_online(db_session):
    booking = await make_booking(db_session, payment_method=PaymentMethod.CASH)

    with pytest.raises(ValidationError):
        await BookingService(db_session).confirm_payment(booking.id, "cust-1")


@pytest.mark.asyncio
async def test_webhook_checks_secret_and_is_idempotent(db_session, monkeypatch):
    monkeypatch.setattr(settings, "payment_webhook_secret", "whsec_test")
    booking = await make_booking(db_session)
    service = BookingService(db_session)

    with pytest.raises(Unauthenticated):
        await service.confirm_payment_webhook(booking.id, "wrong")

    await service.confirm_payment_webhook(booking.id, "whsec_test", "pi_9")
    assert booking.payment_status == PaymentStatus.PAID
    assert booking.status_history[-1].updated_by == "system"

    again = await service.confirm_payment_webhook(booking.id, "whsec_test", "pi_9")
    assert again.payment_status == PaymentStatus.PAID
    assert len(booking.status_history) == 2


@pytest.mark.asyncio
async def test_webhook_disabled_without_secret(db_session, monkeypatch):
    monkeypatch.setattr(settings, "payment_webhook_secret", "")
    booking = await make_booking(db_session)

    with pytest.raises(AuthorizationError):
        await BookingService(db_session).confirm_payment_webhook(booking.id, "anything")


# ── Creation ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_booking_is_idempotent(db_session):
    service = BookingService(db_session)
    kwargs = dict(
        pickup_location="Don Mueang Airport (DMK)",
        dropoff_location="Silom Road",
        scheduled_at=utcnow() + timedelta(hours=5),
        idempotency_key="key-1",
    )
    first = await service.create_booking("cust-1", **kwargs)
    second = await service.create_booking("cust-1", **kwargs)

    assert first.id == second.id
    assert first.status == S.PENDING
    assert first.payment_status == PaymentStatus.UNPAID
    assert len(first.status_history) == 1

    with pytest.raises(ConflictError):
        await service.create_booking("cust-2", **kwargs)


@pytest.mark.asyncio
async def test_create_booking_in_the_past(db_session):
    with pytest.raises(ValidationError, match="future"):
        await BookingService(db_session).create_booking(
            "cust-1",
            pickup_location="BKK",
            dropoff_location="Hotel",
            scheduled_at=utcnow() - timedelta(minutes=1),
        )


# ── Lookup ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_find_bookings_by_own_email(db_session):
    await make_user(db_session, "cust-1", email="nok@example.com")
    await make_booking(db_session, "cust-1", email="nok@example.com")
    await make_booking(db_session, "cust-2", email="other@example.com")

    found = await BookingService(db_session).find_bookings("cust-1", email="nok@example.com")
    assert [b.user_id for b in found] == ["cust-1"]

    with pytest.raises(AuthorizationError):
        await BookingService(db_session).find_bookings("cust-1", email="other@example.com")


@pytest.mark.asyncio
async def test_admin_finds_any_customer(db_session):
    await make_user(db_session, "admin-1", role=UserRole.ADMIN)
    await make_booking(db_session, "cust-2", email="other@example.com")

    found = await BookingService(db_session).find_bookings("admin-1", email="other@example.com")
    assert len(found) == 1


# ── Disputes ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_dispute_is_a_side_channel(db_session):
    await make_user(db_session, "admin-1", role=UserRole.ADMIN)
    driver = await make_driver(db_session)
    booking = await make_booking(
        db_session,
        status=S.COMPLETED,
        driver=driver,
        payment_status=PaymentStatus.PAID,
    )
    service = BookingService(db_session)

    await service.open_dispute(booking.id, "cust-1", "wrong_charge", "Charged twice")
    assert booking.status == S.COMPLETED
    assert booking.has_dispute is True
    assert booking.dispute_status == DisputeStatus.OPEN

    with pytest.raises(ConflictError):
        await service.open_dispute(booking.id, "cust-1", "other", "again")

    await service.resolve_dispute(
        booking.id, "admin-1", "resolved", "refund approved", refund=True
    )
    assert booking.dispute_status == DisputeStatus.RESOLVED
    assert booking.payment_status == PaymentStatus.REFUNDED
    assert booking.status == S.COMPLETED


@pytest.mark.asyncio
async def test_dispute_only_on_finished_bookings(db_session):
    booking = await make_booking(db_session)

    with pytest.raises(InvalidTransition):
        await BookingService(db_session).open_dispute(
            booking.id, "cust-1", "other", "not happy"
        )


@pytest.mark.asyncio
async def test_admin_flags_active_booking(db_session):
    await make_user(db_session, "admin-1", role=UserRole.ADMIN)
    driver = await make_driver(db_session)
    booking = await make_booking(db_session, status=S.IN_PROGRESS, driver=driver)

    await BookingService(db_session).flag_dispute(booking.id, "admin-1", "route complaint")
    assert booking.has_dispute is True
    assert booking.status == S.IN_PROGRESS


@pytest.mark.asyncio
async def test_customer_cannot_flag_dispute(db_session):
    booking = await make_booking(db_session)

    with pytest.raises(AuthorizationError):
        await BookingService(db_session).flag_dispute(booking.id, "cust-1", "note")
