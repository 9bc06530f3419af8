"""codepact challenge service - main application.

Wires the challenge router, the completion sweep and database lifecycle
into one FastAPI app.
"""

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from codepact.challenges.api import get_challenge_service
from codepact.challenges.api import router as challenges_router
from codepact.challenges.config import get_challenge_settings
from codepact.challenges.scheduler import challenge_scheduler_tick
from codepact.infrastructure.database.session import close_db, init_db
from codepact.infrastructure.scheduler import PeriodicScheduler
from codepact.shared.utils.logging import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)

logger = get_logger(__name__)

APP_TITLE = "codepact"
APP_VERSION = "0.1.0"
API_PREFIX = "/api/v1"


# ===========================================
# LIFECYCLE MANAGEMENT
# ===========================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    settings = get_challenge_settings()
    configure_logging(settings.log_level, settings.json_logs)
    logger.info("app_starting", version=APP_VERSION)

    await init_db()

    scheduler = PeriodicScheduler()
    scheduler.register(
        "challenge_completion",
        settings.scheduler_interval_seconds,
        lambda: challenge_scheduler_tick(get_challenge_service()),
    )
    await scheduler.start()
    app.state.scheduler = scheduler

    yield

    await scheduler.stop()
    await close_db()
    logger.info("app_stopped")


# ===========================================
# APPLICATION FACTORY
# ===========================================


def create_app(with_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=APP_TITLE,
        version=APP_VERSION,
        lifespan=lifespan if with_lifespan else None,
    )

    @app.middleware("http")
    async def add_request_context(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        bind_request_context(request_id)
        start_time = time.time()
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(time.time() - start_time)
        return response

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error("unhandled_exception", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "detail": "An unexpected error occurred",
            },
        )

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "ok", "version": APP_VERSION}

    app.include_router(challenges_router, prefix=API_PREFIX)

    return app


app = create_app()
