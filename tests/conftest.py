"""
Shared test fixtures.

Each test gets its own SQLite file database (via aiosqlite) built from the
production metadata, so the version columns, the partial unique index on
active driver jobs and the unique constraints all behave as in PostgreSQL.
No Docker / PostgreSQL / Redis needed.
"""

from datetime import timedelta
from typing import AsyncGenerator, Optional

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from transfer.domain.enums import (
    ACTIVE_JOB_STATUSES,
    DRIVER_BOUND_STATUSES,
    BookingStatus,
    DriverStatus,
    PaymentMethod,
    PaymentStatus,
    UserRole,
)
from transfer.infrastructure.database import Base, utcnow
from transfer.infrastructure.models import (
    BookingModel,
    DriverModel,
    StatusHistoryModel,
    UserModel,
)


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Create tables in a fresh database file, yield a session factory."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient against the real app, DB dependency pointed at the test DB."""
    from transfer.api.app import create_app
    from transfer.api.dependencies import get_db
    from transfer.api.middleware import limiter

    async def _test_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app = create_app()
    app.dependency_overrides[get_db] = _test_db
    limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ── Seed helpers ──────────────────────────────────────────────────────


async def make_user(
    session: AsyncSession,
    user_id: str,
    *,
    role: UserRole = UserRole.USER,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    driver_id: Optional[int] = None,
) -> UserModel:
    user = UserModel(
        id=user_id,
        name=user_id,
        email=email,
        phone=phone,
        role=role,
        driver_id=driver_id,
    )
    session.add(user)
    await session.commit()
    return user


async def make_driver(
    session: AsyncSession,
    name: str = "Somchai",
    *,
    user_id: Optional[str] = None,
    status: DriverStatus = DriverStatus.AVAILABLE,
    idle_minutes: int = 0,
    is_active: bool = True,
) -> DriverModel:
    """A driver; ``idle_minutes`` pushes ``available_since`` into the past."""
    driver = DriverModel(
        name=name,
        user_id=user_id,
        phone="0812345678",
        vehicle_plate=f"{name[:2].upper()}-1234",
        vehicle_model="Toyota Camry",
        vehicle_color="White",
        status=status,
        is_active=is_active,
        available_since=utcnow() - timedelta(minutes=idle_minutes),
    )
    session.add(driver)
    await session.commit()
    return driver


async def make_booking(
    session: AsyncSession,
    user_id: str = "cust-1",
    *,
    status: BookingStatus = BookingStatus.PENDING,
    driver: Optional[DriverModel] = None,
    payment_method: PaymentMethod = PaymentMethod.CARD,
    payment_status: PaymentStatus = PaymentStatus.UNPAID,
    total_cost: float = 1200.0,
    email: Optional[str] = None,
    arrived_minutes_ago: Optional[int] = None,
) -> BookingModel:
    """A booking already in *status*; a driver-bound status attaches *driver*."""
    now = utcnow()
    booking = BookingModel(
        user_id=user_id,
        email=email,
        first_name="Nok",
        last_name="Suksan",
        pickup_location="Suvarnabhumi Airport (BKK)",
        dropoff_location="Sukhumvit Soi 11",
        scheduled_at=now + timedelta(days=1),
        status=status,
        payment_method=payment_method,
        payment_status=payment_status,
        total_cost=total_cost,
        status_history=[
            StatusHistoryModel(
                seq=1, status=status, updated_by="customer", actor_id=user_id, timestamp=now
            )
        ],
        ratings=[],
    )
    if driver is not None and status in DRIVER_BOUND_STATUSES:
        booking.attach_driver(driver.snapshot())
        booking.driver_assigned_at = now
        if status in ACTIVE_JOB_STATUSES:
            driver.status = DriverStatus.BUSY
    if arrived_minutes_ago is not None:
        booking.driver_arrived_at = now - timedelta(minutes=arrived_minutes_ago)
    session.add(booking)
    await session.commit()
    return booking
