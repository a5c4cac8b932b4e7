"""Pydantic models for the ``accounts`` table.

An account is the authentication identity.  E-mail addresses are stored
lower-cased so lookups are case-insensitive.
"""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict

from app.models.enums import AccountOrigin, AccountRole, ApprovalStatus


def normalise_email(value: str) -> str:
    return value.strip().lower()


Email = Annotated[str, AfterValidator(normalise_email)]


class AccountCreate(BaseModel):
    """Payload for inserting a new account (``password_hash`` already hashed)."""
    email: Email
    first_name: str
    last_name: str
    password_hash: str
    username: str | None = None
    vtid: str | None = None
    role: AccountRole = AccountRole.user
    is_active: bool = True
    email_verified: bool = False
    approval_status: ApprovalStatus = ApprovalStatus.approved
    created_by: AccountOrigin = AccountOrigin.signup
    profile_id: UUID | None = None


class AccountEmailChange(BaseModel):
    """Request body for changing an account's e-mail."""
    email: Email


class Account(BaseModel):
    """Full account record returned from the database."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    first_name: str
    last_name: str
    password_hash: str
    username: str | None = None
    vtid: str | None = None
    role: AccountRole = AccountRole.user
    is_active: bool = True
    email_verified: bool = False
    approval_status: ApprovalStatus = ApprovalStatus.approved
    created_by: AccountOrigin = AccountOrigin.signup
    profile_id: UUID | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.role == AccountRole.admin

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class AccountPublic(BaseModel):
    """Account as returned over HTTP (no credential hash)."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    first_name: str
    last_name: str
    username: str | None = None
    role: AccountRole
    is_active: bool
    profile_id: UUID | None = None
