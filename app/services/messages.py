"""Per-event message rendering for in-app records and e-mails.

Each event type renders a title and message (stored on the notification
record) plus an e-mail subject and body.  Administrator copies are
prefixed with ``[Admin]`` and name the affected employee.  The one-time
credential of a ``credentials_issued`` event appears only in the e-mail
body addressed to the employee.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.core.config import settings
from app.core.constants import (
    ADMIN_TITLE_PREFIX,
    EXPIRING_CRITICAL_MAX_DAYS,
    EXPIRING_HIGH_MAX_DAYS,
    EXPIRING_MEDIUM_MAX_DAYS,
)
from app.models.enums import NotificationPriority, NotificationType
from app.models.notification import NotificationEvent
from app.models.profile import Profile

_SIGN_OFF = "\n\nBest regards,\nTalent Shield HRMS Team"


@dataclass(frozen=True)
class RenderedMessage:
    """Text for one recipient of one event."""
    title: str
    message: str
    email_subject: str
    email_body: str


def priority_for(event: NotificationEvent) -> NotificationPriority:
    """Derive the priority of an event."""
    kind = event.event_type
    if kind == NotificationType.certificate_expiring:
        days = event.days_value if event.days_value is not None else 0
        if days <= EXPIRING_CRITICAL_MAX_DAYS:
            return NotificationPriority.critical
        if days <= EXPIRING_HIGH_MAX_DAYS:
            return NotificationPriority.high
        if days <= EXPIRING_MEDIUM_MAX_DAYS:
            return NotificationPriority.medium
        return NotificationPriority.low
    if kind == NotificationType.certificate_expired:
        return NotificationPriority.critical
    if kind in (
        NotificationType.profile_deleted,
        NotificationType.certificate_deleted,
        NotificationType.credentials_issued,
    ):
        return NotificationPriority.medium
    return NotificationPriority.low


def _employee(event: NotificationEvent, subject: Profile | None) -> tuple[str, str]:
    if subject is not None:
        return subject.full_name, subject.email
    return (
        str(event.details.get("employee_name", "Unknown employee")),
        str(event.details.get("employee_email", "")),
    )


def _fields(event: NotificationEvent) -> str:
    return ", ".join(event.updated_field_names or []) or "none"


def _subject_text(event: NotificationEvent, name: str) -> tuple[str, str, str, str]:
    """Return (title, message, email subject, email body) for the employee."""
    cert = event.details.get("certificate_name", "certificate")
    expiry = event.details.get("expiry_date", "unknown")
    kind = event.event_type

    if kind == NotificationType.certificate_expiring:
        days = event.days_value
        urgency = "URGENT" if days is not None and days <= 7 else "NOTICE"
        return (
            f"Certificate Expiring in {days} days",
            f'Your certificate "{cert}" will expire in {days} days. '
            f"Please renew it before {expiry}.",
            f"{urgency}: Certificate Expiry Notification - {cert}",
            f"Dear {name},\n\nYour certificate \"{cert}\" will expire in {days} days "
            f"on {expiry}.\n\nPlease renew this certificate before it expires."
            + _SIGN_OFF,
        )
    if kind == NotificationType.certificate_expired:
        days = abs(event.days_value or 0)
        return (
            "Certificate Expired",
            f'Your certificate "{cert}" expired {days} days ago. Please renew it immediately.',
            f"URGENT: Certificate Expired - {cert}",
            f"Dear {name},\n\nYour certificate \"{cert}\" has expired as of {expiry}.\n\n"
            "Please renew this certificate immediately to maintain compliance."
            + _SIGN_OFF,
        )
    if kind == NotificationType.certificate_created:
        return (
            "Certificate Added",
            f'A new certificate "{cert}" has been added to your profile.',
            f"Certificate Added: {cert}",
            f"Dear {name},\n\nThe certificate \"{cert}\" has been added to your profile."
            + _SIGN_OFF,
        )
    if kind == NotificationType.certificate_updated:
        return (
            "Certificate Updated",
            f'Your certificate "{cert}" has been updated. Fields changed: {_fields(event)}',
            f"Certificate Updated: {cert}",
            f"Dear {name},\n\nYour certificate \"{cert}\" has been updated.\n\n"
            f"Updated fields: {_fields(event)}" + _SIGN_OFF,
        )
    if kind == NotificationType.certificate_deleted:
        return (
            "Certificate Removed",
            f'The certificate "{cert}" has been removed from your profile.',
            f"Certificate Removed: {cert}",
            f"Dear {name},\n\nThe certificate \"{cert}\" has been removed from your profile."
            + _SIGN_OFF,
        )
    if kind == NotificationType.profile_created:
        return (
            "Profile Created",
            "Your employee profile has been created.",
            "Your Talent Shield HRMS profile",
            f"Dear {name},\n\nYour employee profile has been created." + _SIGN_OFF,
        )
    if kind == NotificationType.profile_updated:
        return (
            "Profile Updated",
            f"Your profile has been updated. Fields changed: {_fields(event)}",
            "Profile Updated",
            f"Dear {name},\n\nYour profile has been updated.\n\n"
            f"Updated fields: {_fields(event)}" + _SIGN_OFF,
        )
    if kind == NotificationType.profile_deleted:
        return (
            "Profile Deleted",
            "Your employee profile has been deleted.",
            "Profile Deleted",
            f"Dear {name},\n\nYour employee profile has been deleted." + _SIGN_OFF,
        )
    if kind == NotificationType.credentials_issued:
        login_url = f"{settings.FRONTEND_URL.rstrip('/')}/login"
        return (
            "Welcome to Talent Shield HRMS",
            "Your account has been created. Your login details were sent by e-mail.",
            "Your Talent Shield HRMS login details",
            f"Dear {name},\n\nAn account has been created for you.\n\n"
            f"Login: {login_url}\nUsername: {event.details.get('employee_email', '')}\n"
            f"Temporary password: {event.credential or ''}\n\n"
            "Please change your password after your first login." + _SIGN_OFF,
        )
    message = str(event.details.get("message", "You have a new notification."))
    return ("Notification", message, "Talent Shield HRMS notification",
            f"Dear {name},\n\n{message}" + _SIGN_OFF)


def render(
    event: NotificationEvent, subject: Profile | None, *, for_admin: bool
) -> RenderedMessage:
    """Render *event* for the employee or for an administrator."""
    name, email = _employee(event, subject)
    title, message, email_subject, email_body = _subject_text(event, name)

    if not for_admin:
        return RenderedMessage(title, message, email_subject, email_body)

    who = f"{name} - {email}" if email else name
    if event.event_type == NotificationType.credentials_issued:
        message = "A login account was created and credentials were issued."
        email_body = (
            f"Login credentials were issued to {who}." + _SIGN_OFF
        )
    else:
        email_body = f"Administrator notice for {who}.\n\n{message}" + _SIGN_OFF
    return RenderedMessage(
        title=f"{ADMIN_TITLE_PREFIX}{title}",
        message=f"{message} (Employee: {who})",
        email_subject=f"{ADMIN_TITLE_PREFIX}{email_subject}",
        email_body=email_body,
    )
