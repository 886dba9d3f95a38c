"""
Timeclock Punch Service - Main Application Entry Point
"""
import logging
from urllib.parse import urlparse, urlunparse

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from timeclock.api.router import api_router
from timeclock.core.config import settings
from timeclock.core.errors import (
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)
from timeclock.core.logging import setup_logging
from timeclock.db.session import SessionLocal, init_sqlite_schema
from timeclock.services.idempotency import IdempotencyCoordinator

# Setup logging first
setup_logging()
logger = logging.getLogger(__name__)


def _mask_database_url(url: str) -> str:
    """Mask password in DATABASE_URL for safe logging; show full path for sqlite."""
    parsed = urlparse(url)
    if parsed.scheme.startswith("sqlite"):
        return url
    if parsed.password:
        netloc = f"{parsed.username}:****@{parsed.hostname or ''}"
        if parsed.port:
            netloc += f":{parsed.port}"
        return urlunparse(parsed._replace(netloc=netloc))
    return url


app = FastAPI(
    title="Timeclock Punch Service",
    description="Punch validation, idempotent submission and attendance exceptions",
    version=settings.VERSION or "1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register exception handlers
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Include all API routes under /api/v1
app.include_router(api_router, prefix="/api/v1")

# One coordinator per process: its per-key lock registry must be shared by all requests
app.state.idempotency = IdempotencyCoordinator.from_settings(SessionLocal, settings)


@app.on_event("startup")
def startup_log_config() -> None:
    """Log DATABASE_URL at startup so it can be verified against Alembic."""
    logger.info("DATABASE_URL (app): %s", _mask_database_url(settings.DATABASE_URL))
    logger.info(
        "business timezone=%s time-window hard fail=%s",
        settings.BUSINESS_TZ, settings.TIME_WINDOW_HARD_FAIL,
    )


@app.on_event("startup")
def bootstrap_schema() -> None:
    """Create tables for local sqlite databases; other backends use Alembic."""
    init_sqlite_schema()
