"""
FastAPI application entry point.

Configures the API with all routes, middleware, and error handling.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from identity import __version__
from identity.errors import AuthError
from identity.services import get_context
from .deps import http_error
from .v1.router import router as v1_router

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None

PURGE_INTERVAL_MINUTES = 30


def purge_expired_records():
    """Background job removing long-expired codes and refresh tokens."""
    try:
        removed = get_context().purge_expired()
        logger.info(f"Scheduled purge removed {removed} expired records")
    except AuthError as e:
        logger.error(f"Scheduled purge failed: {e.message}")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan manager."""
    global scheduler

    logger.info("Starting Identity Gateway API...")

    # Initialize services on startup
    get_context()

    # Start scheduler for background jobs
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        purge_expired_records,
        trigger=IntervalTrigger(minutes=PURGE_INTERVAL_MINUTES),
        id="purge_expired",
        name=f"Purge expired codes and tokens every {PURGE_INTERVAL_MINUTES} minutes",
        replace_existing=True
    )
    scheduler.start()
    logger.info("Background scheduler started")

    yield

    # Shared context is closed by whoever owns the process (main.py)
    logger.info("Shutting down...")
    if scheduler:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


app = FastAPI(
    title="Identity Gateway API",
    description="Registration, login, verification codes and token lifecycle",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    error = http_error(exc)
    return JSONResponse(
        status_code=error.status_code,
        content={"detail": error.detail},
        headers=error.headers
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


# Health check
@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "identity-api"}


# Include API v1 routes
app.include_router(v1_router, prefix="/api/v1")


# Root endpoint
@app.get("/", tags=["System"])
async def root():
    """API root endpoint."""
    return {
        "name": "Identity Gateway API",
        "version": __version__,
        "docs": "/docs"
    }
