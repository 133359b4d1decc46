"""
FastAPI application factory.

* Registers routes for rides, bookings, payments and admin.
* Starts / stops the background expiration sweeper via lifespan events.
* Maps domain errors to HTTP status codes.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from campusride.api.middleware import limiter
from campusride.api.routes import admin, bookings, payments, rides
from campusride.config import settings
from campusride.domain.errors import DomainError
from campusride.workers import expiration as _sweeper

logging.basicConfig(level=settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the expiration sweeper on startup; stop on shutdown."""
    await _sweeper.start_expiration_loop()
    yield
    await _sweeper.stop_expiration_loop()


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def create_app() -> FastAPI:
    app = FastAPI(
        title="CampusRide Booking API",
        description=(
            "Staff publish scheduled rides; students book seats on them.  "
            "Seat inventory stays consistent under concurrent bookings and "
            "departed rides are expired by a background sweeper."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_exception_handler(DomainError, domain_error_handler)

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(bookings.router, prefix="/api/v1")
    app.include_router(payments.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
