"""Team Capacity Tracker — FastAPI Application Factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from capacity_tracker import __version__
from capacity_tracker.app_settings.router import router as settings_router
from capacity_tracker.capacity.router import router as capacity_router
from capacity_tracker.common.exceptions import register_exception_handlers
from capacity_tracker.common.rate_limit import limiter
from capacity_tracker.config import settings
from capacity_tracker.integrations.tickets import TicketCache
from capacity_tracker.reports.router import router as reports_router
from capacity_tracker.time_off.router import router as time_off_router
from capacity_tracker.users.router import router as users_router

logger = logging.getLogger("capacity_tracker")


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    cache = TicketCache.from_settings()
    app.state.ticket_cache = cache
    await cache.start()
    logger.info("Capacity tracker %s started (%s)", __version__, settings.ENVIRONMENT)
    yield
    await cache.stop()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging()

    app = FastAPI(
        title="Team Capacity Tracker",
        description="Weekly allocations, time off and capacity reporting",
        version=__version__,
        docs_url="/api/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url="/api/redoc" if settings.ENVIRONMENT != "production" else None,
        lifespan=lifespan,
    )

    # Exception handlers (RFC 7807)
    register_exception_handlers(app)

    # Rate limiting (slowapi)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check (no auth)
    @app.get("/api/v1/health", tags=["system"])
    async def health_check():
        return {
            "status": "healthy",
            "version": __version__,
            "environment": settings.ENVIRONMENT,
        }

    # Register routers
    app.include_router(capacity_router, prefix="/api/v1/capacity", tags=["capacity"])
    app.include_router(reports_router, prefix="/api/v1/capacity", tags=["reports"])
    app.include_router(time_off_router, prefix="/api/v1/time-off", tags=["time-off"])
    app.include_router(users_router, prefix="/api/v1/users", tags=["users"])
    app.include_router(settings_router, prefix="/api/v1/settings", tags=["settings"])

    return app


app = create_app()
