"""FastAPI application entry point for CrowdVine."""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from crowdvine import __version__
from crowdvine.config import settings
from crowdvine.database import close_db, init_db, ping_database
from crowdvine.routers._common import limiter
from crowdvine.services.analytics import posthog_service

logger = logging.getLogger(__name__)

# Background cleanup task handle
_cleanup_task: asyncio.Task | None = None

CLEANUP_INTERVAL_SECONDS = 3600


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["X-Permitted-Cross-Domain-Policies"] = "none"
        response.headers["Permissions-Policy"] = (
            "accelerometer=(), camera=(), geolocation=(), gyroscope=(), "
            "magnetometer=(), microphone=(), usb=()"
        )

        # JSON API only; nothing here should be framed or run scripts
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none'; base-uri 'none'; form-action 'none';"
        )

        if settings.enforce_https:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains; preload"
            )

        return response


def _is_production() -> bool:
    """True unless running in debug mode or under pytest."""
    return not settings.debug and not os.getenv("PYTEST_CURRENT_TEST")


async def _run_cleanup() -> None:
    """Hourly pruning of revoked tokens, day-old login attempts and dead invitation codes."""
    from crowdvine.models.security import LoginAttempt, RevokedToken
    from crowdvine.services.invitations import cleanup_invitations

    while True:
        try:
            await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)
            removed = {
                "revoked tokens": await RevokedToken.cleanup_expired(),
                "login attempts": await LoginAttempt.cleanup_old_attempts(older_than_hours=24),
                "invitation codes": await cleanup_invitations(),
            }
            for kind, count in removed.items():
                if count:
                    logger.info("Cleanup removed %d %s", count, kind)
        except asyncio.CancelledError:
            logger.debug("Cleanup task cancelled")
            break
        except Exception as e:
            logger.error("Cleanup task error: %s", str(e))


def _configuration_problems() -> tuple[list[str], list[str]]:
    """Return (blocking, advisory) problems with the deployed configuration."""
    blocking: list[str] = []
    advisory: list[str] = []

    if len(settings.secret_key or "") < 32:
        blocking.append("CROWDVINE_SECRET_KEY must be set to at least 32 characters")

    if _is_production():
        if any(host in settings.mongodb_url for host in ("localhost", "127.0.0.1")):
            advisory.append("MongoDB URL points at localhost")
        if not settings.enforce_https:
            advisory.append("enforce_https is off")
        if not (settings.stripe_secret_key and settings.stripe_webhook_secret):
            advisory.append("Stripe keys are missing; payment links and webhooks will fail")

    return blocking, advisory


def _validate_security_configuration() -> None:
    """Log configuration problems and refuse to start production with blocking ones."""
    blocking, advisory = _configuration_problems()
    for problem in advisory:
        logger.warning("SECURITY WARNING: %s", problem)

    if not blocking:
        return
    if _is_production():
        for problem in blocking:
            logger.error("SECURITY ERROR: %s", problem)
        raise RuntimeError("Refusing to start with insecure configuration; see log for details")
    for problem in blocking:
        logger.warning("SECURITY WARNING (development mode): %s", problem)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    global _cleanup_task

    _validate_security_configuration()

    await init_db()

    _cleanup_task = asyncio.create_task(_run_cleanup())
    logger.info("Started cleanup background task")

    yield

    if _cleanup_task:
        _cleanup_task.cancel()
        try:
            await _cleanup_task
        except asyncio.CancelledError:
            pass
        logger.info("Stopped cleanup background task")

    # Flush pending analytics events
    posthog_service.shutdown()

    await close_db()


app = FastAPI(
    title=settings.app_name,
    description="Members' wine club: shared pallets, reservations and producer orders",
    version=__version__,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# Only allow origins from the whitelist; empty list means same-origin only
if settings.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
        allow_headers=["Authorization", "Content-Type"],
        expose_headers=["X-Request-ID"],
        max_age=600,
    )

app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", tags=["Health"])
@limiter.exempt
async def health_check() -> JSONResponse:
    """Health check endpoint, including database reachability."""
    database_ok = await ping_database()
    return JSONResponse(
        status_code=200 if database_ok else 503,
        content={
            "status": "healthy" if database_ok else "degraded",
            "database": "ok" if database_ok else "unreachable",
            "version": __version__,
            "app_name": settings.app_name,
        },
    )


@app.get("/api/config/analytics", tags=["Configuration"])
async def get_analytics_config() -> JSONResponse:
    """PostHog settings for the front end; only the public key is exposed."""
    return JSONResponse(
        content={
            "enabled": settings.posthog_enabled,
            "host": settings.posthog_host,
            "api_key": settings.posthog_api_key or "",
        }
    )


from crowdvine.routers import (  # noqa: E402
    access_requests,
    admin,
    auth,
    bulk_upload,
    cart,
    checkout,
    membership,
    pallets,
    producer_orders,
    reservations,
    shop,
    stripe_webhook,
    tastings,
)

app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(shop.router, prefix="/api/shop", tags=["Shop"])
app.include_router(cart.router, prefix="/api/cart", tags=["Cart"])
app.include_router(checkout.router, prefix="/api/checkout", tags=["Checkout"])
app.include_router(reservations.router, prefix="/api/reservations", tags=["Reservations"])
app.include_router(pallets.router, prefix="/api/pallets", tags=["Pallets"])
app.include_router(stripe_webhook.router, prefix="/api/stripe", tags=["Payments"])
app.include_router(membership.router, prefix="/api", tags=["Membership"])
app.include_router(access_requests.router, prefix="/api/access-requests", tags=["Access Requests"])
app.include_router(producer_orders.router, prefix="/api/producer", tags=["Producer Orders"])
app.include_router(tastings.router, prefix="/api/wine-tastings", tags=["Wine Tastings"])
app.include_router(bulk_upload.router, prefix="/api/admin/bulk-upload", tags=["Admin"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])
