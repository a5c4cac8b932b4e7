"""Pydantic models for the ``profiles`` table.

A profile is the employee record, distinct from the login account.
``vtid`` and ``staff_number`` are assigned by the synchronisation handler,
never supplied by callers; ``vtid`` is immutable once set.
"""

from datetime import date, datetime
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, BeforeValidator, ConfigDict

from app.models.account import Email

StringList = Annotated[list[str], BeforeValidator(lambda v: v or [])]


class Address(BaseModel):
    """Postal address block."""
    line1: str | None = None
    line2: str | None = None
    city: str | None = None
    post_code: str | None = None
    country: str | None = None


class EmergencyContact(BaseModel):
    """Emergency contact block."""
    name: str | None = None
    relationship: str | None = None
    phone: str | None = None


class ProfileCreate(BaseModel):
    """Payload for creating a profile."""
    first_name: str
    last_name: str
    email: Email
    mobile: str | None = None
    date_of_birth: date | None = None
    gender: str | None = None
    nationality: str | None = None
    company: str | None = None
    staff_type: str = "Direct"
    job_role: list[str] = []
    job_title: list[str] = []
    job_level: str | None = None
    status: str = "Onboarding"
    start_date: date | None = None
    address: Address | None = None
    emergency_contact: EmergencyContact | None = None


class ProfileUpdate(BaseModel):
    """Partial update for a profile; only fields that are set are applied.

    ``vtid`` is accepted so an attempted change can be rejected explicitly.
    """
    first_name: str | None = None
    last_name: str | None = None
    email: Email | None = None
    vtid: int | None = None
    mobile: str | None = None
    date_of_birth: date | None = None
    gender: str | None = None
    nationality: str | None = None
    company: str | None = None
    staff_type: str | None = None
    job_role: list[str] | None = None
    job_title: list[str] | None = None
    job_level: str | None = None
    status: str | None = None
    start_date: date | None = None
    address: Address | None = None
    emergency_contact: EmergencyContact | None = None
    is_active: bool | None = None


class Profile(BaseModel):
    """Full profile record returned from the database."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    first_name: str
    last_name: str
    email: str
    vtid: int | None = None
    staff_number: int | None = None
    account_id: UUID | None = None
    mobile: str | None = None
    date_of_birth: date | None = None
    gender: str | None = None
    nationality: str | None = None
    company: str | None = None
    staff_type: str = "Direct"
    job_role: StringList = []
    job_title: StringList = []
    job_level: str | None = None
    status: str = "Onboarding"
    start_date: date | None = None
    address: Address | None = None
    emergency_contact: EmergencyContact | None = None
    is_active: bool = True
    created_at: datetime
    updated_at: datetime

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
