"""Notification fan-out engine.

Dispatches one domain event to the subject employee's account and to every
administrator, across two independent channels: a persisted notification
record and an e-mail through the delivery gateway. A subject without a
linked account is reached by e-mail only.

Failure isolation:
- a record that cannot be stored is logged and skipped (no retry);
- a failed delivery is logged and does not roll back the record;
- neither blocks the next recipient.

``notify`` never raises; the worst outcome is an empty list plus log lines.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID

from pydantic import ValidationError

from app.core.exceptions import ComplianceError
from app.db.repositories import Repositories
from app.models.account import Account
from app.models.enums import NotificationPriority
from app.models.notification import Notification, NotificationCreate, NotificationEvent
from app.models.profile import Profile
from app.services.delivery import DeliveryResult
from app.services.messages import RenderedMessage, priority_for, render

logger = logging.getLogger(__name__)


class Gateway(Protocol):
    async def send(self, to: str, subject: str, body: str) -> DeliveryResult: ...


@dataclass
class FanOutReport:
    """Per-channel outcome of one fan-out call."""
    recipients: int = 0
    recipients_failed: bool = False
    records: list[Notification] = field(default_factory=list)
    delivered: int = 0
    delivery_failures: int = 0
    record_failures: int = 0

    @property
    def any_success(self) -> bool:
        return bool(self.records) or self.delivered > 0

    @property
    def nobody_to_notify(self) -> bool:
        return self.recipients == 0 and not self.recipients_failed


@dataclass(frozen=True)
class _Recipient:
    account: Account | None
    for_admin: bool
    address: str


def _account_ref(recipient: _Recipient) -> str | None:
    return str(recipient.account.id) if recipient.account is not None else None


class NotificationFanOut:
    """Fan out events to the subject and all administrators."""

    def __init__(self, repos: Repositories, gateway: Gateway) -> None:
        self._repos = repos
        self._gateway = gateway

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def notify(
        self,
        event: NotificationEvent,
        subject: Profile | None = None,
        admins: list[Account] | None = None,
    ) -> list[Notification]:
        """Fan out *event*; return the notification records created."""
        report = await self.notify_detailed(event, subject, admins)
        return report.records

    async def notify_many(self, events: Iterable[NotificationEvent]) -> int:
        """Fan out several events in order; return the records created."""
        created = 0
        for event in events:
            created += len(await self.notify(event))
        return created

    async def notify_detailed(
        self,
        event: NotificationEvent,
        subject: Profile | None = None,
        admins: list[Account] | None = None,
    ) -> FanOutReport:
        report = FanOutReport()
        try:
            if subject is None and event.subject_profile_id is not None:
                subject = await self._repos.profiles.get(event.subject_profile_id)
            recipients = await self._recipients(subject, admins)
        except (ComplianceError, ValidationError) as exc:
            logger.error(
                "fanout_recipients_failed",
                extra={
                    "event_type": event.event_type.value,
                    "subject_profile_id": str(event.subject_profile_id),
                    "error_type": type(exc).__name__,
                    "error_message": str(exc),
                },
            )
            report.recipients_failed = True
            return report

        report.recipients = len(recipients)
        priority = priority_for(event)
        metadata = event.model_dump(mode="json", exclude_none=True)

        for recipient in recipients:
            rendered = render(event, subject, for_admin=recipient.for_admin)
            try:
                if recipient.account is not None:
                    await self._store(
                        event, subject, recipient, rendered, priority, metadata, report
                    )
                await self._deliver(event, recipient, rendered, report)
            except Exception:
                # Per-recipient safety net; the remaining recipients still run.
                logger.exception(
                    "fanout_recipient_unexpected_error",
                    extra={
                        "event_type": event.event_type.value,
                        "account_id": _account_ref(recipient),
                    },
                )

        logger.info(
            "fanout_complete",
            extra={
                "event_type": event.event_type.value,
                "recipients": len(recipients),
                "records": len(report.records),
                "record_failures": report.record_failures,
                "delivered": report.delivered,
                "delivery_failures": report.delivery_failures,
            },
        )
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _subject_account(self, subject: Profile) -> Account | None:
        if subject.account_id is not None:
            account = await self._repos.accounts.get(subject.account_id)
            if account is not None:
                return account
        return await self._repos.accounts.find_by_profile(subject.id)

    async def _recipients(
        self,
        subject: Profile | None,
        admins: list[Account] | None,
    ) -> list[_Recipient]:
        recipients: list[_Recipient] = []
        seen: set[UUID] = set()

        if subject is not None:
            account = await self._subject_account(subject)
            if account is not None:
                recipients.append(
                    _Recipient(account=account, for_admin=False, address=subject.email)
                )
                seen.add(account.id)
            elif subject.email:
                # No login yet: e-mail only, nothing to attach a record to.
                recipients.append(
                    _Recipient(account=None, for_admin=False, address=subject.email)
                )

        if admins is None:
            admins = await self._repos.accounts.list_admins()
        for admin in admins:
            if admin.id in seen:
                continue
            seen.add(admin.id)
            recipients.append(_Recipient(account=admin, for_admin=True, address=admin.email))

        return recipients

    async def _store(
        self,
        event: NotificationEvent,
        subject: Profile | None,
        recipient: _Recipient,
        rendered: RenderedMessage,
        priority: NotificationPriority,
        metadata: dict,
        report: FanOutReport,
    ) -> None:
        payload = NotificationCreate(
            account_id=recipient.account.id,
            profile_id=subject.id if subject is not None else event.subject_profile_id,
            type=event.event_type,
            priority=priority,
            title=rendered.title,
            message=rendered.message,
            metadata=metadata,
        )
        try:
            record = await self._repos.notifications.insert(payload)
        except (ComplianceError, ValidationError) as exc:
            report.record_failures += 1
            logger.error(
                "notification_record_failed",
                extra={
                    "event_type": event.event_type.value,
                    "account_id": _account_ref(recipient),
                    "error_type": type(exc).__name__,
                    "error_message": str(exc),
                },
            )
            return
        report.records.append(record)

    async def _deliver(
        self,
        event: NotificationEvent,
        recipient: _Recipient,
        rendered: RenderedMessage,
        report: FanOutReport,
    ) -> None:
        result = await self._gateway.send(
            recipient.address, rendered.email_subject, rendered.email_body
        )
        if result.success:
            report.delivered += 1
            return
        report.delivery_failures += 1
        logger.warning(
            "delivery_failed",
            extra={
                "event_type": event.event_type.value,
                "account_id": _account_ref(recipient),
                "to": recipient.address,
                "error_message": result.error,
            },
        )
