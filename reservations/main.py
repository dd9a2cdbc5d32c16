"""FastAPI application entry point."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reservations.api.v1.router import api_router
from reservations.config import settings
from reservations.core.background_tasks import start_scheduler, stop_scheduler
from reservations.core.exceptions import AppException
from reservations.core.immutability import register_immutability_enforcement
from reservations.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from reservations.database import close_db, init_db
from reservations.services.notification_service import notification_service

logger = logging.getLogger(__name__)

# Background task handle
_scheduler_task: asyncio.Task | None = None


def configure_logging() -> None:
    """Configure root logging from settings."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events."""
    global _scheduler_task

    # Startup
    register_immutability_enforcement()
    if settings.debug:
        await init_db()

    if settings.run_scheduler_in_process:
        _scheduler_task = asyncio.create_task(start_scheduler())

    yield

    # Shutdown
    if _scheduler_task:
        stop_scheduler()
        _scheduler_task.cancel()
        try:
            await _scheduler_task
        except asyncio.CancelledError:
            pass
        _scheduler_task = None

    await notification_service.close()
    await close_db()


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Marketplace reservation lifecycle API",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # Exception handlers
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        """Handle custom application exceptions."""
        content = {"detail": exc.detail, "code": exc.code}
        if exc.current_state is not None:
            content["current_state"] = exc.current_state
        return JSONResponse(
            status_code=exc.status_code,
            content=content,
            headers=exc.headers,
        )

    # Middleware (order matters - first added = last executed)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API routes
    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/health")
    async def health_check() -> dict:
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    return app


configure_logging()
app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "reservations.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
    )
