"""Enum types mirroring the PostgreSQL custom enums."""

from enum import Enum


class AccountRole(str, Enum):
    """Authorisation role of a login account."""
    user = "user"
    admin = "admin"


class ApprovalStatus(str, Enum):
    """Administrator approval state of an account."""
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class AccountOrigin(str, Enum):
    """How an account came to exist."""
    admin = "admin"
    signup = "signup"


class CertificationStatus(str, Enum):
    """Review status of a certification."""
    approved = "Approved"
    pending = "Pending"
    rejected = "Rejected"


class NotificationType(str, Enum):
    """Kinds of in-app notification (and of fan-out events)."""
    profile_created = "profile_created"
    profile_updated = "profile_updated"
    profile_deleted = "profile_deleted"
    certificate_created = "certificate_created"
    certificate_updated = "certificate_updated"
    certificate_deleted = "certificate_deleted"
    certificate_expiring = "certificate_expiring"
    certificate_expired = "certificate_expired"
    credentials_issued = "credentials_issued"
    system = "system"


class NotificationPriority(str, Enum):
    """Urgency of a notification."""
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class ScanStatus(str, Enum):
    """Outcome of one expiry scan run."""
    success = "success"
    partial = "partial"
    failed = "failed"
    skipped = "skipped"
