"""Certification expiry scans.

Two scans run once per day each:

1. ``scan_expiring`` -- reminders at 60, 30, 14, 7, 3 and 1 day(s) before
   expiry.  A threshold is recorded in ``reminder_thresholds_sent`` once
   handled, so a second run on the same day sends nothing.
2. ``scan_expired`` -- one notice for a certification that expired within
   the last ``EXPIRED_NOTICE_WINDOW_DAYS`` days and has no
   ``expired_notice_sent_at`` marker yet.

Every certification is a self-contained unit: it is notified and then
marked, or left untouched.  Bad data, missing profiles and store errors on
one item are logged and counted; the rest of the batch carries on.
Certifications are processed concurrently, bounded by a semaphore, so the
delivery gateway never sees more than ``NOTIFY_CONCURRENCY`` fan-outs at a
time.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import date
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import ValidationError

from app.core.config import settings
from app.core.constants import EXPIRY_REMINDER_DAYS
from app.core.dates import days_until_expiry, parse_date, today_in
from app.core.exceptions import ComplianceError
from app.db.repositories import Repositories
from app.models.account import Account
from app.models.certification import Certification
from app.models.enums import NotificationType, ScanStatus
from app.models.notification import NotificationEvent
from app.models.profile import Profile
from app.models.scan import ScanSummary
from app.services.notifications import NotificationFanOut

logger = logging.getLogger(__name__)

SCAN_EXPIRING = "expiring"
SCAN_EXPIRED = "expired"


class _ItemResult(str, Enum):
    notified = "notified"
    skipped = "skipped"
    failed = "failed"


Selector = Callable[[Certification, int], bool]
Marker = Callable[[Certification, int], Awaitable[Any]]


class ExpiryScanner:
    """Scan all certifications and fan out expiry notifications."""

    def __init__(
        self,
        repos: Repositories,
        fanout: NotificationFanOut,
        *,
        concurrency: int | None = None,
        expired_window_days: int | None = None,
        timezone_name: str | None = None,
    ) -> None:
        self._repos = repos
        self._fanout = fanout
        self._concurrency = max(1, concurrency or settings.NOTIFY_CONCURRENCY)
        self._expired_window_days = (
            expired_window_days
            if expired_window_days is not None
            else settings.EXPIRED_NOTICE_WINDOW_DAYS
        )
        self._timezone_name = timezone_name or settings.SCHEDULER_TIMEZONE

    # ------------------------------------------------------------------
    # Public scans
    # ------------------------------------------------------------------

    async def scan_expiring(self, today: date | None = None) -> ScanSummary:
        """Send approaching-expiry reminders for today's threshold matches."""
        return await self._scan(
            SCAN_EXPIRING,
            today,
            NotificationType.certificate_expiring,
            self._is_due_reminder,
            self._mark_reminder,
        )

    async def scan_expired(self, today: date | None = None) -> ScanSummary:
        """Send one notice per newly expired certification."""
        return await self._scan(
            SCAN_EXPIRED,
            today,
            NotificationType.certificate_expired,
            self._is_due_expired_notice,
            self._mark_expired,
        )

    # ------------------------------------------------------------------
    # Selection and markers
    # ------------------------------------------------------------------

    def _is_due_reminder(self, cert: Certification, days: int) -> bool:
        return days in EXPIRY_REMINDER_DAYS and days not in cert.reminder_thresholds_sent

    def _is_due_expired_notice(self, cert: Certification, days: int) -> bool:
        return (
            days <= 0
            and -days <= self._expired_window_days
            and cert.expired_notice_sent_at is None
        )

    async def _mark_reminder(self, cert: Certification, days: int) -> None:
        await self._repos.certifications.record_reminder_sent(cert, days)

    async def _mark_expired(self, cert: Certification, days: int) -> None:
        await self._repos.certifications.record_expired_notice(cert.id)

    # ------------------------------------------------------------------
    # Scan loop
    # ------------------------------------------------------------------

    async def _scan(
        self,
        name: str,
        today: date | None,
        event_type: NotificationType,
        is_due: Selector,
        mark: Marker,
    ) -> ScanSummary:
        today = today or today_in(self._timezone_name)
        summary = ScanSummary(scan=name, today=today)
        start_time = time.time()

        logger.info("scan_start", extra={"scan": name, "today": today.isoformat()})

        try:
            rows = await self._repos.certifications.list_expiry_rows()
            admins = await self._repos.accounts.list_admins()
        except (ComplianceError, ValidationError) as exc:
            return self._finish_failed(summary, start_time, exc)

        due: list[tuple[Certification, int]] = []
        for row in rows:
            summary.checked += 1
            parsed = self._parse_row(name, row, today)
            if parsed is None:
                summary.skipped += 1
                continue
            cert, days = parsed
            if is_due(cert, days):
                due.append((cert, days))

        try:
            profiles = await self._repos.profiles.get_many(
                [cert.profile_id for cert, _ in due if cert.profile_id is not None]
            )
        except (ComplianceError, ValidationError) as exc:
            return self._finish_failed(summary, start_time, exc)

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _bounded(cert: Certification, days: int) -> _ItemResult:
            async with semaphore:
                return await self._process(
                    name, event_type, cert, days, profiles, admins, mark
                )

        results = await asyncio.gather(*(_bounded(cert, days) for cert, days in due))
        for result in results:
            if result is _ItemResult.notified:
                summary.notified += 1
            elif result is _ItemResult.skipped:
                summary.skipped += 1
            else:
                summary.failed += 1

        summary.status = ScanStatus.partial if summary.failed else ScanStatus.success
        summary.duration_seconds = round(time.time() - start_time, 2)
        logger.info("scan_complete", extra=summary.model_dump(mode="json"))
        return summary

    def _parse_row(
        self, name: str, row: dict[str, Any], today: date
    ) -> tuple[Certification, int] | None:
        try:
            cert = Certification(**row)
        except ValidationError as exc:
            logger.warning(
                "scan_invalid_certification",
                extra={"scan": name, "certification_id": row.get("id"), "error_message": str(exc)},
            )
            return None
        expiry = parse_date(cert.expiry_date)
        if expiry is None:
            logger.warning(
                "scan_invalid_expiry_date",
                extra={"scan": name, "certification_id": str(cert.id)},
            )
            return None
        return cert, days_until_expiry(expiry, today)

    async def _process(
        self,
        name: str,
        event_type: NotificationType,
        cert: Certification,
        days: int,
        profiles: dict[UUID, Profile],
        admins: list[Account],
        mark: Marker,
    ) -> _ItemResult:
        profile = profiles.get(cert.profile_id) if cert.profile_id is not None else None
        if profile is None:
            logger.warning(
                "scan_missing_profile",
                extra={
                    "scan": name,
                    "certification_id": str(cert.id),
                    "profile_id": str(cert.profile_id),
                    "holder_name": cert.holder_name,
                },
            )
            return _ItemResult.skipped
        if not profile.email:
            logger.warning(
                "scan_missing_email",
                extra={"scan": name, "certification_id": str(cert.id), "profile_id": str(profile.id)},
            )
            return _ItemResult.skipped

        event = NotificationEvent(
            event_type=event_type,
            subject_profile_id=profile.id,
            related_entity_id=cert.id,
            days_value=days,
            details={
                "certificate_name": cert.name,
                "category": cert.category,
                "expiry_date": cert.expiry_date.isoformat() if cert.expiry_date else None,
                "employee_name": profile.full_name,
                "employee_email": profile.email,
            },
        )

        try:
            report = await self._fanout.notify_detailed(event, subject=profile, admins=admins)
            if report.nobody_to_notify:
                logger.warning(
                    "scan_no_recipients",
                    extra={"scan": name, "certification_id": str(cert.id), "days": days},
                )
                return _ItemResult.skipped
            if not report.any_success:
                logger.error(
                    "scan_notification_failed",
                    extra={"scan": name, "certification_id": str(cert.id), "days": days},
                )
                return _ItemResult.failed
            await mark(cert, days)
        except ComplianceError as exc:
            logger.error(
                "scan_marker_failed",
                extra={
                    "scan": name,
                    "certification_id": str(cert.id),
                    "error_type": type(exc).__name__,
                    "error_message": str(exc),
                },
            )
            return _ItemResult.failed
        except Exception:
            logger.exception(
                "scan_item_unexpected_error",
                extra={"scan": name, "certification_id": str(cert.id)},
            )
            return _ItemResult.failed

        return _ItemResult.notified

    def _finish_failed(
        self, summary: ScanSummary, start_time: float, exc: Exception
    ) -> ScanSummary:
        summary.status = ScanStatus.failed
        summary.reason = str(exc)
        summary.duration_seconds = round(time.time() - start_time, 2)
        logger.error(
            "scan_error",
            extra={
                "scan": summary.scan,
                "error_type": type(exc).__name__,
                "error_message": str(exc),
            },
        )
        return summary
