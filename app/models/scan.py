"""Summary model returned by each expiry scan run."""

from datetime import date

from pydantic import BaseModel

from app.models.enums import ScanStatus


class ScanSummary(BaseModel):
    """Counters for one run of the approaching-expiry or expired scan."""
    scan: str
    today: date
    status: ScanStatus = ScanStatus.success
    checked: int = 0
    notified: int = 0
    skipped: int = 0
    failed: int = 0
    duration_seconds: float = 0.0
    reason: str | None = None
