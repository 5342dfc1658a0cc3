"""FastAPI application entry point.

This module configures the FastAPI application with:
- CORS middleware for frontend communication
- API v1 router with all endpoints
- 400 responses for request validation errors
- ARQ/Redis lifecycle management
- Health check endpoints
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.api import api_router
from app.core.arq_config import close_arq_pool, get_arq_pool
from app.core.config import settings
from app.core.database import close_db
from app.core.logging_config import setup_logging
from app.core.redis import close_redis, ping_redis

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events.

    Handles:
    - ARQ job queue pool initialization
    - Graceful shutdown of Redis and database connections
    """
    # Startup
    logger.info(f"Starting {settings.PROJECT_NAME} API ({settings.ENVIRONMENT})...")

    try:
        # Initialize ARQ pool for job enqueueing
        await get_arq_pool()
        logger.info("ARQ job queue pool initialized")
    except Exception as e:
        # Paid work stays PENDING and is picked up by the recovery cron
        logger.error(f"Failed to initialize job queue: {e}")

    yield  # Application is running

    # Shutdown
    logger.info(f"Shutting down {settings.PROJECT_NAME} API...")

    try:
        await close_arq_pool()
        await close_redis()
        await close_db()
        logger.info("Connections closed")
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")


app = FastAPI(
    title=f"{settings.PROJECT_NAME} API",
    description="Token-based fitness coaching: bookings, coach requests and AI courses",
    version=settings.VERSION,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Invalid request bodies and parameters are client errors (400)."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": {
                "error": "validation_error",
                "message": "Invalid request",
                "errors": jsonable_encoder(exc.errors()),
            }
        },
    )


# Include API v1 router
app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.get("/api/health")
async def health_check():
    """Health check endpoint.

    Returns basic health status. For Redis connectivity, use /api/v1/status.
    """
    return {"status": "ok", "service": "coachly-backend"}


@app.get("/api/v1/status")
async def status_check():
    """API status endpoint with service health details."""
    redis_status = "connected" if await ping_redis() else "disconnected"

    return {
        "status": "running",
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
        "services": {
            "redis": redis_status,
            "job_queue": "arq",
        },
    }
