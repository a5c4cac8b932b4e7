"""FastAPI application entry point.

Configures CORS, structured logging, lifespan events (including APScheduler),
domain error mapping and router registration.
"""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse

from app.core.config import settings
from app.core.exceptions import DuplicateRecord, InvariantViolation, RecordNotFound, StoreError
from app.core.logging import setup_logging
from app.routers import accounts, certifications, health, notifications, profiles, scans
from app.scheduler.jobs import shutdown_scheduler, start_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: starts APScheduler on startup, stops it on exit."""
    setup_logging()
    logger.info("Application starting up")
    start_scheduler()
    yield
    shutdown_scheduler()
    logger.info("Application shutting down")


app = FastAPI(
    title="Talent Shield Compliance API",
    description="Certification expiry scans, entity synchronisation and notification fan-out",
    version="0.1.0",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# CORS Configuration
# ---------------------------------------------------------------------------
_raw_origins = settings.ALLOWED_ORIGINS.strip()
if _raw_origins == "*":
    _allowed_origins: list[str] = ["*"]
else:
    _allowed_origins = [o.strip() for o in _raw_origins.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Domain error mapping
# ---------------------------------------------------------------------------

@app.exception_handler(InvariantViolation)
async def invariant_violation_handler(request: Request, exc: InvariantViolation) -> JSONResponse:
    logger.warning("request_rejected", extra={"path": request.url.path, "error_message": str(exc)})
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(RecordNotFound)
async def record_not_found_handler(request: Request, exc: RecordNotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(DuplicateRecord)
async def duplicate_record_handler(request: Request, exc: DuplicateRecord) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error("store_unavailable", extra={"path": request.url.path, "error_message": str(exc)})
    return JSONResponse(status_code=503, content={"detail": "Data store unavailable"})


# ---------------------------------------------------------------------------
# Router Registration
# ---------------------------------------------------------------------------
app.include_router(health.router, tags=["Health"])
app.include_router(profiles.router, prefix="/api/v1/profiles", tags=["Profiles"])
app.include_router(certifications.router, prefix="/api/v1/certifications", tags=["Certifications"])
app.include_router(accounts.router, prefix="/api/v1/accounts", tags=["Accounts"])
app.include_router(notifications.router, prefix="/api/v1/notifications", tags=["Notifications"])
app.include_router(scans.router, prefix="/api/v1/scans", tags=["Scans"])
