"""APScheduler job definitions and scheduler management.

Registers the two daily expiry scans on an AsyncIOScheduler in the
configured time zone and provides start/shutdown/status helpers for the
FastAPI lifespan.  ``run_scan`` is shared by the scheduled jobs and the
manual trigger endpoints.
"""

from __future__ import annotations

import logging
from datetime import date
from uuid import uuid4

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from app.core.config import settings
from app.core.dates import today_in
from app.db.repositories import get_repositories
from app.models.enums import ScanStatus
from app.models.scan import ScanSummary
from app.scheduler.lock import acquire_scan_lock, release_scan_lock
from app.services.delivery import get_gateway
from app.services.expiry import SCAN_EXPIRED, SCAN_EXPIRING, ExpiryScanner
from app.services.notifications import NotificationFanOut

logger = logging.getLogger(__name__)

EXPIRY_REMINDER_JOB_ID = "certificate_expiry_reminders"
EXPIRED_NOTICE_JOB_ID = "expired_certificate_notices"

# Module-level scheduler instance (singleton)
scheduler = AsyncIOScheduler(timezone=settings.SCHEDULER_TIMEZONE)


async def build_scanner() -> ExpiryScanner:
    repos = await get_repositories()
    fanout = NotificationFanOut(repos, get_gateway())
    return ExpiryScanner(repos, fanout)


async def run_scan(
    scan: str, trigger: str = "scheduler", today: date | None = None
) -> ScanSummary:
    """Run one expiry scan under its lock.

    Returns a ``skipped`` summary when the same scan is already running.
    """
    run_id = uuid4()
    if not acquire_scan_lock(scan, run_id):
        logger.warning("scan_already_running", extra={"scan": scan, "trigger": trigger})
        return ScanSummary(
            scan=scan,
            today=today or today_in(settings.SCHEDULER_TIMEZONE),
            status=ScanStatus.skipped,
            reason="already running",
        )

    logger.info(
        "scan_triggered",
        extra={"scan": scan, "trigger": trigger, "run_id": str(run_id)},
    )
    try:
        scanner = await build_scanner()
        if scan == SCAN_EXPIRING:
            return await scanner.scan_expiring(today)
        return await scanner.scan_expired(today)
    finally:
        release_scan_lock(scan)


async def _scheduled(scan: str) -> None:
    try:
        await run_scan(scan)
    except Exception:
        logger.exception("scheduled_scan_failed", extra={"scan": scan})


async def run_expiry_reminders() -> None:
    """Job body for the daily approaching-expiry scan."""
    await _scheduled(SCAN_EXPIRING)


async def run_expired_notices() -> None:
    """Job body for the daily expired-certificate scan."""
    await _scheduled(SCAN_EXPIRED)


def start_scheduler() -> None:
    """Configure and start the scheduler unless disabled in settings."""
    if not settings.SCHEDULER_ENABLED:
        logger.info("scheduler_disabled")
        return

    scheduler.add_job(
        run_expiry_reminders,
        CronTrigger(hour=settings.EXPIRY_REMINDER_HOUR, minute=0),
        id=EXPIRY_REMINDER_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        run_expired_notices,
        CronTrigger(hour=settings.EXPIRED_NOTICE_HOUR, minute=0),
        id=EXPIRED_NOTICE_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    logger.info(
        "scheduler_started",
        extra={
            "timezone": settings.SCHEDULER_TIMEZONE,
            "expiry_reminder_hour": settings.EXPIRY_REMINDER_HOUR,
            "expired_notice_hour": settings.EXPIRED_NOTICE_HOUR,
        },
    )


def shutdown_scheduler() -> None:
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")


def is_scheduler_running() -> bool:
    """Check if the scheduler is currently running."""
    return scheduler.running
