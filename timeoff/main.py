"""Time-off management — FastAPI application factory."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from timeoff.calendar.router import feeds_router
from timeoff.calendar.router import router as calendar_router
from timeoff.common.exceptions import register_exception_handlers
from timeoff.common.logging import setup_logging
from timeoff.common.rate_limit import limiter
from timeoff.company.router import router as users_router
from timeoff.config import settings
from timeoff.database import engine
from timeoff.leave.router import router as leave_router
from timeoff.reports.router import router as integration_router

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    yield
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    setup_logging()

    app = FastAPI(
        title="Time-off Management",
        description="Leave requests, allowances, team calendars and feeds",
        version=VERSION,
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
            "version": VERSION,
            "environment": settings.ENVIRONMENT,
        }

    # Register routers
    app.include_router(leave_router, prefix="/api/v1/leave", tags=["leave"])
    app.include_router(calendar_router, prefix="/api/v1/calendar", tags=["calendar"])
    app.include_router(users_router, prefix="/api/v1/users", tags=["users"])
    app.include_router(integration_router, prefix="/api/v1/integration", tags=["integration"])
    app.include_router(feeds_router, prefix="/api/v1/feeds", tags=["feeds"])

    return app


app = create_app()
