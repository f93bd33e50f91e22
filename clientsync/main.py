"""
IRIAS Ironworks client portal - Google Sheets / MySQL client sync.
Main FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from clientsync.api.deps import register_error_handlers
from clientsync.api.router import api_router
from clientsync.config import get_settings
from clientsync.database import dispose_engine, get_session_factory
from clientsync.errors import StoreConnectionError
from clientsync.services.portal import build_portal
from clientsync.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)
from clientsync.utils.redis import close_redis

logger = logging.getLogger("clientsync")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("Client portal starting up (env=%s)", settings.app_env)

    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.app_env,
            )
            logger.info("Sentry initialized")
        except Exception as e:
            logger.warning("Sentry initialization failed: %s", str(e))

    portal = build_portal(settings, get_session_factory())
    app.state.portal = portal

    try:
        await portal.clients.connect()
    except StoreConnectionError as e:
        # App stays up; client endpoints answer 503 until restart
        logger.error("Database unavailable at startup: %s", str(e))
    else:
        await portal.scheduler.restore()

    if settings.auto_sync_enabled and portal.clients.available:
        await portal.scheduler.start(settings.sync_interval_minutes)
        logger.info("Auto sync enabled (every %d min)", settings.sync_interval_minutes)
    else:
        logger.info("Auto sync disabled - start it via POST /api/sync/start")

    yield

    logger.info("Client portal shutting down")
    # The data source may have been switched; stop whichever portal is current
    await app.state.portal.scheduler.stop()
    await dispose_engine()
    await close_redis()
    logger.info("Client portal shutdown complete")


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="IRIAS Client Portal",
        description="Client management portal with Google Sheets sync",
        version="1.0.0",
        lifespan=lifespan,
    )

    origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
    application.add_middleware(
        CORSMiddleware,
        allow_origins=origins + [settings.app_base_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=[
            "Authorization", "Content-Type", "X-Correlation-ID", "X-User-Email",
            "Accept", "Origin", "X-Requested-With",
        ],
    )

    # Added after CORS so it runs on every request
    application.add_middleware(CorrelationIdMiddleware)

    register_error_handlers(application)
    application.include_router(api_router)

    return application


app = create_app()
