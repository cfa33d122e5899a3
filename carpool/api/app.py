"""
FastAPI application factory.

* Registers routes for rides, bookings, wishes, driver applications and admin.
* Starts / stops the background outbox worker via lifespan events.
* Applies rate-limiting middleware.
* Maps domain errors to JSON ``{"detail", "code"}`` responses.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from carpool.api.errors import register_exception_handlers
from carpool.api.middleware import limiter
from carpool.api.routes import admin, bookings, drivers, rides, wishes
from carpool.config import settings
from carpool.workers import outbox as _outbox

logging.basicConfig(level=settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the outbox worker on startup; stop on shutdown."""
    await _outbox.start_outbox_loop()
    yield
    await _outbox.stop_outbox_loop()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Carpool Ride Booking API",
        description=(
            "Books seats on shared car rides with payment holds, driver "
            "acceptance, cancellation refunds and ride-wish alerts."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    register_exception_handlers(app)

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(bookings.router, prefix="/api/v1")
    app.include_router(wishes.router, prefix="/api/v1")
    app.include_router(drivers.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
