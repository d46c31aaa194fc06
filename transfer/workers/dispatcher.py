"""
Background Auto-Dispatch Worker
===============================

Optional (``AUTO_DISPATCH_ENABLED``), runs every
``DISPATCH_INTERVAL_SECONDS`` (default 30 s).

Concurrency safety
------------------
* **Redis distributed lock** ensures only one instance runs the dispatch
  cycle at a time across multiple API processes.
* Each booking is dispatched in its own transaction by the same
  ``DispatchAssigner`` the admin endpoint uses, so version-checked writes
  still reject a driver taken concurrently by a manual assignment.

Cycle
-----
1. Fetch pending/confirmed bookings without a driver, earliest pickup first.
2. Keep the ones ready to dispatch (paid, or paid in cash to the driver).
3. Assign each; stop early once no driver is left.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from transfer.config import settings
from transfer.domain.enums import PaymentMethod, PaymentStatus
from transfer.domain.errors import BookingError, NoDriverAvailable
from transfer.infrastructure.database import async_session_factory
from transfer.infrastructure.locks import DistributedLock
from transfer.infrastructure.redis_client import get_redis
from transfer.infrastructure.repositories import BookingRepository
from transfer.services.dispatch import DispatchAssigner

logger = logging.getLogger(__name__)

LOCK_NAME = "auto_dispatch"

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_dispatch_loop() -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info(
        "Dispatch worker started (interval=%ds)", settings.dispatch_interval_seconds
    )


async def stop_dispatch_loop() -> None:
    global _task, _stop_event
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    _task = _stop_event = None
    logger.info("Dispatch worker stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _loop() -> None:
    """Periodic loop: run a dispatch cycle then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_dispatch_cycle()
        except Exception:
            logger.exception("Unhandled error in dispatch cycle")
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.dispatch_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass


async def run_dispatch_cycle(
    session_factory: Optional[async_sessionmaker] = None,
    redis=None,
) -> int:
    """Execute one dispatch cycle.  Returns the number of bookings assigned."""
    session_factory = session_factory or async_session_factory
    redis = redis or await get_redis()
    lock = DistributedLock(
        redis, LOCK_NAME, ttl_seconds=max(60, settings.dispatch_interval_seconds * 2)
    )

    if not await lock.acquire():
        logger.debug("Lock held by another worker, skipping cycle")
        return 0

    assigned = 0
    try:
        async with session_factory() as session:
            candidates = [
                b.id
                for b in await BookingRepository(session).get_dispatchable()
                if b.payment_status == PaymentStatus.PAID
                or b.payment_method == PaymentMethod.CASH
            ]

        for booking_id in candidates:
            async with session_factory() as session:
                try:
                    await DispatchAssigner(session).assign(booking_id)
                    await session.commit()
                    assigned += 1
                except NoDriverAvailable:
                    await session.rollback()
                    logger.info("No driver left, stopping cycle at booking %s", booking_id)
                    break
                except BookingError as exc:
                    await session.rollback()
                    logger.info("Skipped booking %s: %s", booking_id, exc.message)

        if assigned:
            logger.info("Dispatch cycle: %d booking(s) assigned", assigned)
    finally:
        await lock.release()

    return assigned
