"""
FastAPI application factory.

* Registers routes for pricing, bookings, extensions, payments and admin.
* Maps the domain error taxonomy onto HTTP status codes.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from autoconcierge.api.middleware import limiter
from autoconcierge.api.routes import admin, bookings, extensions, payments, pricing
from autoconcierge.api.schemas import ErrorResponse
from autoconcierge.config import settings
from autoconcierge.domain.errors import (
    ConflictError,
    DomainError,
    InvalidTransitionError,
    NotFoundError,
    PricingUnavailableError,
    ValidationError,
)
from autoconcierge.infrastructure.database import engine
from autoconcierge.infrastructure.redis_client import close_redis

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

# First match wins; subclasses before their bases
_STATUS_CODES: tuple[tuple[type[DomainError], int], ...] = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (InvalidTransitionError, 409),
    (ConflictError, 409),
    (PricingUnavailableError, 500),
)


def status_code_for(exc: DomainError) -> int:
    for error_type, code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return code
    return 500


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    code = status_code_for(exc)
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    extra = {}
    if isinstance(exc, InvalidTransitionError):
        extra = dict(current_status=exc.current, event=exc.event, unmet_guard=exc.guard)
    body = ErrorResponse(detail=str(exc), error=type(exc).__name__, **extra)
    return JSONResponse(
        status_code=code, content=body.model_dump(by_alias=True, exclude_none=True)
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Release pooled DB and Redis connections on shutdown."""
    logger.info("AutoConcierge API starting")
    yield
    await engine.dispose()
    await close_redis()
    logger.info("AutoConcierge API stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title="AutoConcierge Booking API",
        description=(
            "Fixed-price vehicle maintenance with jockey pickup and return. "
            "Prices services from the rate table and drives each booking "
            "through its lifecycle, including workshop extensions that "
            "need customer approval."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Domain errors -> HTTP
    app.add_exception_handler(DomainError, domain_error_handler)

    # Routers
    app.include_router(pricing.router, prefix="/api/v1")
    app.include_router(bookings.router, prefix="/api/v1")
    app.include_router(extensions.router, prefix="/api/v1")
    app.include_router(payments.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
