"""Pydantic models for the ``certifications`` table.

``holder_name`` is denormalised from the owning profile and kept in sync by
the synchronisation handler.  ``reminder_thresholds_sent`` and
``expired_notice_sent_at`` are the idempotency markers written by the
expiry scans; both are cleared whenever ``expiry_date`` changes.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any
from uuid import UUID

from pydantic import BaseModel, BeforeValidator, ConfigDict, model_validator

from app.core.dates import parse_date
from app.core.exceptions import InvariantViolation
from app.models.enums import CertificationStatus


def _coerce_date(value: Any) -> Any:
    # Unparseable input is passed through so pydantic reports it.
    parsed = parse_date(value)
    return parsed if parsed is not None else value


CertDate = Annotated[date | None, BeforeValidator(_coerce_date)]
ThresholdList = Annotated[list[int], BeforeValidator(lambda v: v or [])]


def check_dates(issue_date: date | None, expiry_date: date | None) -> None:
    """Raise ``InvariantViolation`` unless expiry is strictly after issue."""
    if issue_date is not None and expiry_date is not None and expiry_date <= issue_date:
        raise InvariantViolation(
            f"expiry_date {expiry_date.isoformat()} must be after "
            f"issue_date {issue_date.isoformat()}"
        )


class CertificationCreate(BaseModel):
    """Payload for creating a certification."""
    name: str
    category: str
    profile_id: UUID | None = None
    description: str | None = None
    provider: str | None = None
    issue_date: CertDate = None
    expiry_date: CertDate = None
    status: CertificationStatus = CertificationStatus.approved
    cost: Decimal = Decimal("0.00")
    file_name: str | None = None
    mime_type: str | None = None
    file_size: int | None = None

    @model_validator(mode="after")
    def _expiry_after_issue(self) -> "CertificationCreate":
        check_dates(self.issue_date, self.expiry_date)
        return self


class CertificationUpdate(BaseModel):
    """Partial update; dates are re-validated against the stored record."""
    name: str | None = None
    category: str | None = None
    profile_id: UUID | None = None
    description: str | None = None
    provider: str | None = None
    issue_date: CertDate = None
    expiry_date: CertDate = None
    status: CertificationStatus | None = None
    cost: Decimal | None = None
    file_name: str | None = None
    mime_type: str | None = None
    file_size: int | None = None


class Certification(BaseModel):
    """Full certification record returned from the database."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    category: str
    profile_id: UUID | None = None
    holder_name: str | None = None
    description: str | None = None
    provider: str | None = None
    issue_date: CertDate = None
    expiry_date: CertDate = None
    status: CertificationStatus = CertificationStatus.approved
    cost: Decimal = Decimal("0.00")
    file_name: str | None = None
    mime_type: str | None = None
    file_size: int | None = None
    reminder_thresholds_sent: ThresholdList = []
    expired_notice_sent_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
