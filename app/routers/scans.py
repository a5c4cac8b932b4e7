"""Manual triggers for the daily expiry scans.

Each endpoint runs the scan to completion and returns its summary.  A
trigger that overlaps a running scan of the same kind gets 409.
"""

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, HTTPException, Query

from app.models.enums import ScanStatus
from app.models.scan import ScanSummary
from app.scheduler.jobs import run_scan
from app.scheduler.lock import get_current_run_id, is_scan_running
from app.services.expiry import SCAN_EXPIRED, SCAN_EXPIRING

logger = logging.getLogger(__name__)

router = APIRouter()


async def _trigger(scan: str, today: date | None) -> ScanSummary:
    if is_scan_running(scan):
        current_run = get_current_run_id(scan)
        raise HTTPException(
            status_code=409,
            detail=f"Scan '{scan}' already in progress",
            headers={"X-Current-Run-Id": str(current_run) if current_run else "unknown"},
        )

    summary = await run_scan(scan, trigger="manual", today=today)
    if summary.status == ScanStatus.skipped:
        raise HTTPException(status_code=409, detail=f"Scan '{scan}' already in progress")
    return summary


@router.post("/expiring", response_model=ScanSummary)
async def trigger_expiring_scan(
    today: date | None = Query(default=None, description="Override the scan date"),
) -> ScanSummary:
    """Run the approaching-expiry reminder scan now."""
    return await _trigger(SCAN_EXPIRING, today)


@router.post("/expired", response_model=ScanSummary)
async def trigger_expired_scan(
    today: date | None = Query(default=None, description="Override the scan date"),
) -> ScanSummary:
    """Run the expired-certificate notice scan now."""
    return await _trigger(SCAN_EXPIRED, today)
