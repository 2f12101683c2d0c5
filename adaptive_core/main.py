"""
Main FastAPI application.
"""
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from adaptive_core.api.v1.api import api_router
from adaptive_core.core.config import settings
from adaptive_core.core.logging_config import setup_logging
from adaptive_core.core.services import AssessmentServices, build_sql_services
from adaptive_core.middleware import RequestLoggingMiddleware

setup_logging()

logger = logging.getLogger(__name__)


def _default_services() -> AssessmentServices:
    """Create tables if needed and wire SQL-backed services."""
    from adaptive_core.models.base import Base, SessionLocal, engine

    Base.metadata.create_all(bind=engine)
    return build_sql_services(SessionLocal)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan event handler.

    - On startup: wires services unless they were injected
    - On shutdown: drains queued calibration updates
    """
    if getattr(app.state, "services", None) is None:
        app.state.services = _default_services()
        logger.info("Assessment services initialized")

    yield

    services: AssessmentServices = app.state.services
    logger.info(
        f"Application shutting down - draining "
        f"{services.dispatcher.pending_count} calibration updates"
    )
    services.shutdown()


tags_metadata = [
    {"name": "health", "description": "Health check endpoint"},
    {
        "name": "sessions",
        "description": "Adaptive session lifecycle: begin, next item, answer, complete, abort",
    },
    {"name": "blueprints", "description": "Blueprint registration (admin)"},
    {
        "name": "calibration",
        "description": "Item difficulty calibration statistics and overrides (admin)",
    },
]


def create_application(services: Optional[AssessmentServices] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        services: Pre-built services (tests inject in-memory ones). When
            omitted, SQL-backed services are built at startup.
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        lifespan=lifespan,
        description=(
            "Adaptive assessment engine: difficulty-matched item selection, "
            "ability estimation, bank quotas and response-driven calibration."
        ),
        docs_url=f"{settings.API_V1_PREFIX}/docs",
        redoc_url=f"{settings.API_V1_PREFIX}/redoc",
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        openapi_tags=tags_metadata,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Admin-Token", "X-Request-ID"],
    )

    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """
        Handle unexpected exceptions.

        Generates a unique error_id for each exception so that support can
        trace it in the logs without leaking internal details.
        """
        error_id = str(uuid.uuid4())
        logger.exception(
            f"Unhandled exception [error_id={error_id}]: {exc}",
            extra={"error_id": error_id},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error", "error_id": error_id},
        )

    return app


app = create_application()


@app.get("/")
def root():
    """
    Root endpoint.
    """
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": f"{settings.API_V1_PREFIX}/docs",
    }
