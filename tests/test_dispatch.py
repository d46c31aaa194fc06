"""
Dispatch Assigner tests.

Covers driver selection (availability, self-assignment exclusion, idle
ordering), re-entrancy, manual assignment and the version-checked paired
write that rejects a driver taken by a concurrent request.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from tests.conftest import make_booking, make_driver, make_user
from transfer.domain.entities import Actor
from transfer.domain.enums import (
    ActorRole,
    BookingStatus,
    DriverStatus,
    PaymentStatus,
)
from transfer.domain.errors import (
    AlreadyAssigned,
    BookingNotPending,
    ConflictError,
    NoDriverAvailable,
    NotFound,
    ValidationError,
)
from transfer.infrastructure.models import DriverModel, NotificationModel
from transfer.infrastructure.repositories import BookingRepository
from transfer.services.dispatch import DispatchAssigner


@pytest.mark.asyncio
async def test_assigns_available_driver(db_session):
    d1 = await make_driver(db_session, "Anan", user_id="drv-1")
    await make_driver(db_session, "Boon", status=DriverStatus.BUSY, idle_minutes=60)
    booking = await make_booking(db_session)

    result = await DispatchAssigner(db_session).assign(booking.id)
    await db_session.commit()

    assert result.status == BookingStatus.DRIVER_ASSIGNED
    assert result.driver_id == d1.id
    assert result.driver.name == "Anan"
    assert result.driver_assigned_at is not None
    assert d1.status == DriverStatus.BUSY
    assert [h.status for h in result.status_history] == [
        BookingStatus.PENDING,
        BookingStatus.DRIVER_ASSIGNED,
    ]
    assert result.status_history[-1].updated_by == "system"


@pytest.mark.asyncio
async def test_confirmed_booking_is_dispatchable(db_session):
    await make_driver(db_session)
    booking = await make_booking(db_session, status=BookingStatus.CONFIRMED)

    result = await DispatchAssigner(db_session).assign(booking.id)
    assert result.status == BookingStatus.DRIVER_ASSIGNED


@pytest.mark.asyncio
async def test_never_assigns_customer_own_driver_profile(db_session):
    await make_driver(db_session, "Self", user_id="cust-1")
    booking = await make_booking(db_session, user_id="cust-1")

    with pytest.raises(NoDriverAvailable, match="Cannot assign driver"):
        await DispatchAssigner(db_session).assign(booking.id)

    assert booking.status == BookingStatus.PENDING
    assert booking.driver_id is None


@pytest.mark.asyncio
async def test_no_driver_when_all_busy_offline_or_inactive(db_session):
    await make_driver(db_session, "Busy", status=DriverStatus.BUSY)
    await make_driver(db_session, "Off", status=DriverStatus.OFFLINE)
    await make_driver(db_session, "Gone", is_active=False)
    booking = await make_booking(db_session)

    with pytest.raises(NoDriverAvailable):
        await DispatchAssigner(db_session).assign(booking.id)


@pytest.mark.asyncio
async def test_longest_idle_driver_wins(db_session):
    await make_driver(db_session, "Fresh", idle_minutes=1)
    veteran = await make_driver(db_session, "Idle", idle_minutes=45)
    await make_driver(db_session, "Middle", idle_minutes=20)
    booking = await make_booking(db_session)

    result = await DispatchAssigner(db_session).assign(booking.id)
    assert result.driver_id == veteran.id


@pytest.mark.asyncio
async def test_equal_idle_time_breaks_tie_on_lowest_id(db_session):
    first = await make_driver(db_session, "First")
    second = await make_driver(db_session, "Second")
    second.available_since = first.available_since
    await db_session.commit()
    booking = await make_booking(db_session)

    result = await DispatchAssigner(db_session).assign(booking.id)
    assert result.driver_id == first.id


@pytest.mark.asyncio
async def test_second_assign_is_rejected_without_writes(db_session):
    await make_driver(db_session, "One")
    await make_driver(db_session, "Two")
    booking = await make_booking(db_session)

    assigner = DispatchAssigner(db_session)
    await assigner.assign(booking.id)
    await db_session.commit()

    with pytest.raises(AlreadyAssigned):
        await assigner.assign(booking.id)

    busy = (
        await db_session.execute(
            select(DriverModel).where(DriverModel.status == DriverStatus.BUSY)
        )
    ).scalars().all()
    assert len(busy) == 1
    assigned_entries = [
        h for h in booking.status_history if h.status == BookingStatus.DRIVER_ASSIGNED
    ]
    assert len(assigned_entries) == 1


@pytest.mark.asyncio
async def test_terminal_booking_is_not_dispatchable(db_session):
    await make_driver(db_session)
    booking = await make_booking(db_session, status=BookingStatus.CANCELLED)

    with pytest.raises(BookingNotPending):
        await DispatchAssigner(db_session).assign(booking.id)


@pytest.mark.asyncio
async def test_missing_booking(db_session):
    with pytest.raises(NotFound):
        await DispatchAssigner(db_session).assign(999)


@pytest.mark.asyncio
async def test_dispatch_queues_customer_and_driver_notifications(db_session):
    await make_driver(db_session, "Anan", user_id="drv-1")
    booking = await make_booking(db_session)

    await DispatchAssigner(db_session).assign(booking.id)
    await db_session.commit()

    rows = (await db_session.execute(select(NotificationModel))).scalars().all()
    kinds = {(n.recipient_id, n.kind) for n in rows}
    assert ("cust-1", "booking_driver_assigned") in kinds
    assert ("drv-1", "job_assigned") in kinds


# ── Manual assignment ─────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_manual_assignment_uses_chosen_driver(db_session):
    await make_driver(db_session, "Idle", idle_minutes=60)
    chosen = await make_driver(db_session, "Chosen")
    booking = await make_booking(db_session)
    admin = Actor(user_id="admin-1", role=ActorRole.ADMIN)

    result = await DispatchAssigner(db_session).assign(
        booking.id, driver_id=chosen.id, actor=admin
    )
    assert result.driver_id == chosen.id
    assert result.status_history[-1].updated_by == "admin"
    assert result.status_history[-1].actor_id == "admin-1"


@pytest.mark.asyncio
async def test_manual_assignment_rejects_busy_driver(db_session):
    busy = await make_driver(db_session, "Busy", status=DriverStatus.BUSY)
    booking = await make_booking(db_session)

    with pytest.raises(NoDriverAvailable):
        await DispatchAssigner(db_session).assign(booking.id, driver_id=busy.id)


@pytest.mark.asyncio
async def test_manual_assignment_rejects_self(db_session):
    own = await make_driver(db_session, "Own", user_id="cust-1")
    booking = await make_booking(db_session, user_id="cust-1")

    with pytest.raises(ValidationError):
        await DispatchAssigner(db_session).assign(booking.id, driver_id=own.id)


# ── Concurrency ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_driver_taken_concurrently_is_a_conflict(session_factory):
    """Two requests read the same available driver; only the first commits."""
    async with session_factory() as seed:
        await make_driver(seed, "Only")
        b1 = await make_booking(seed, user_id="cust-1")
        b2 = await make_booking(seed, user_id="cust-2")

    async with session_factory() as first, session_factory() as second:
        late = DispatchAssigner(second)
        # The second request reads the candidates before the first commits
        seen = await late.drivers.get_available()
        assert len(seen) == 1

        await DispatchAssigner(first).assign(b1.id)
        await first.commit()

        late.drivers.get_available = AsyncMock(return_value=seen)
        with pytest.raises(ConflictError):
            await late.assign(b2.id)
        await second.rollback()

    async with session_factory() as check:
        untouched = await BookingRepository(check).get_by_id(b2.id)
        assert untouched.status == BookingStatus.PENDING
        assert untouched.driver_id is None
        assert untouched.payment_status == PaymentStatus.UNPAID
        assert len(untouched.status_history) == 1
