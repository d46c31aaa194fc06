"""
FastAPI application factory.

* Registers routes for bookings, payments, drivers and admin.
* Maps domain errors to the ``{success, error}`` envelope.
* Starts / stops the optional auto-dispatch worker via lifespan events.
* Applies rate limiting.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from transfer.api.errors import register_error_handlers
from transfer.api.middleware import limiter
from transfer.api.routes import admin, bookings, drivers, payments
from transfer.config import settings
from transfer.infrastructure.redis_client import close_redis
from transfer.workers import dispatcher as _dispatcher

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the dispatch worker on startup when enabled; stop on shutdown."""
    if settings.auto_dispatch_enabled:
        await _dispatcher.start_dispatch_loop()
    else:
        logger.info("Auto-dispatch disabled; drivers are assigned by admins")
    yield
    if settings.auto_dispatch_enabled:
        await _dispatcher.stop_dispatch_loop()
        await close_redis()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Airport Transfer Booking API",
        description=(
            "Booking lifecycle core for an airport / car transfer service: "
            "bookings, payment confirmation, driver dispatch, status "
            "tracking, no-shows, disputes and ratings."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter and error envelope
    app.state.limiter = limiter
    register_error_handlers(app)

    # Routers
    app.include_router(bookings.router, prefix="/api/v1")
    app.include_router(payments.router, prefix="/api/v1")
    app.include_router(drivers.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
