"""Typed repositories over the Supabase tables.

This module is the single data-access layer: every read and write of
accounts, profiles, certifications and notifications goes through one of
the repository classes below, which return pydantic records instead of raw
rows.  PostgREST / transport failures surface as ``StoreError`` and unique
violations as ``DuplicateRecord``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import httpx
from postgrest.exceptions import APIError
from pydantic_core import to_jsonable_python
from supabase import AsyncClient

from app.core.constants import (
    ACCOUNTS_TABLE,
    CERTIFICATIONS_TABLE,
    NOTIFICATIONS_TABLE,
    PROFILES_TABLE,
)
from app.core.exceptions import DuplicateRecord, StoreError
from app.db.supabase import get_supabase
from app.models.account import Account, AccountCreate
from app.models.certification import Certification
from app.models.enums import AccountRole, NotificationType
from app.models.notification import Notification, NotificationCreate
from app.models.profile import Profile

logger = logging.getLogger(__name__)

_UNIQUE_VIOLATION = "23505"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _jsonable(fields: dict[str, Any]) -> dict[str, Any]:
    """Convert UUIDs, dates, Decimals and models to JSON-safe values."""
    return to_jsonable_python(fields)


async def _execute(query: Any) -> Any:
    """Run a PostgREST query, translating failures into domain errors."""
    try:
        return await query.execute()
    except APIError as exc:
        if exc.code == _UNIQUE_VIOLATION:
            raise DuplicateRecord(exc.message or "duplicate key") from exc
        raise StoreError(exc.message or str(exc)) from exc
    except httpx.HTTPError as exc:
        raise StoreError(str(exc)) from exc


async def _rows(query: Any) -> list[dict[str, Any]]:
    response = await _execute(query)
    return response.data or []


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

class AccountRepository:
    """Access to the ``accounts`` table."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    def _table(self) -> Any:
        return self._client.table(ACCOUNTS_TABLE)

    async def get(self, account_id: UUID) -> Account | None:
        rows = await _rows(self._table().select("*").eq("id", str(account_id)).limit(1))
        return Account(**rows[0]) if rows else None

    async def find_by_email(self, email: str) -> Account | None:
        rows = await _rows(
            self._table().select("*").eq("email", email.strip().lower()).limit(1)
        )
        return Account(**rows[0]) if rows else None

    async def find_by_profile(self, profile_id: UUID) -> Account | None:
        rows = await _rows(
            self._table().select("*").eq("profile_id", str(profile_id)).limit(1)
        )
        return Account(**rows[0]) if rows else None

    async def list_admins(self) -> list[Account]:
        rows = await _rows(
            self._table().select("*").eq("role", AccountRole.admin.value).order("created_at")
        )
        return [Account(**row) for row in rows]

    async def insert(self, payload: AccountCreate) -> Account:
        rows = await _rows(self._table().insert(payload.model_dump(mode="json")))
        return Account(**rows[0])

    async def update(self, account_id: UUID, fields: dict[str, Any]) -> Account | None:
        data = _jsonable({**fields, "updated_at": _now_iso()})
        rows = await _rows(self._table().update(data).eq("id", str(account_id)))
        return Account(**rows[0]) if rows else None

    async def delete(self, account_id: UUID) -> bool:
        rows = await _rows(self._table().delete().eq("id", str(account_id)))
        return bool(rows)


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

class ProfileRepository:
    """Access to the ``profiles`` table."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    def _table(self) -> Any:
        return self._client.table(PROFILES_TABLE)

    async def get(self, profile_id: UUID) -> Profile | None:
        rows = await _rows(self._table().select("*").eq("id", str(profile_id)).limit(1))
        return Profile(**rows[0]) if rows else None

    async def get_many(self, profile_ids: list[UUID]) -> dict[UUID, Profile]:
        """Fetch several profiles in one round-trip, keyed by id."""
        if not profile_ids:
            return {}
        ids = sorted({str(pid) for pid in profile_ids})
        rows = await _rows(self._table().select("*").in_("id", ids))
        profiles = [Profile(**row) for row in rows]
        return {profile.id: profile for profile in profiles}

    async def find_by_email(self, email: str) -> Profile | None:
        rows = await _rows(
            self._table().select("*").eq("email", email.strip().lower()).limit(1)
        )
        return Profile(**rows[0]) if rows else None

    async def max_vtid(self) -> int | None:
        rows = await _rows(
            self._table()
            .select("vtid")
            .not_.is_("vtid", "null")
            .order("vtid", desc=True)
            .limit(1)
        )
        return int(rows[0]["vtid"]) if rows else None

    async def staff_number_taken(self, staff_number: int) -> bool:
        rows = await _rows(
            self._table().select("id").eq("staff_number", staff_number).limit(1)
        )
        return bool(rows)

    async def insert(self, fields: dict[str, Any]) -> Profile:
        rows = await _rows(self._table().insert(_jsonable(fields)))
        return Profile(**rows[0])

    async def update(self, profile_id: UUID, fields: dict[str, Any]) -> Profile | None:
        data = _jsonable({**fields, "updated_at": _now_iso()})
        rows = await _rows(self._table().update(data).eq("id", str(profile_id)))
        return Profile(**rows[0]) if rows else None

    async def delete(self, profile_id: UUID) -> bool:
        rows = await _rows(self._table().delete().eq("id", str(profile_id)))
        return bool(rows)


# ---------------------------------------------------------------------------
# Certifications
# ---------------------------------------------------------------------------

class CertificationRepository:
    """Access to the ``certifications`` table."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    def _table(self) -> Any:
        return self._client.table(CERTIFICATIONS_TABLE)

    async def get(self, certification_id: UUID) -> Certification | None:
        rows = await _rows(
            self._table().select("*").eq("id", str(certification_id)).limit(1)
        )
        return Certification(**rows[0]) if rows else None

    async def list_for_profile(self, profile_id: UUID) -> list[Certification]:
        rows = await _rows(self._table().select("*").eq("profile_id", str(profile_id)))
        return [Certification(**row) for row in rows]

    async def list_expiry_rows(self) -> list[dict[str, Any]]:
        """Raw rows of every certification with an expiry date.

        Rows are returned unparsed so one malformed record can be skipped by
        the caller without losing the rest of the batch.
        """
        return await _rows(self._table().select("*").not_.is_("expiry_date", "null"))

    async def insert(self, fields: dict[str, Any]) -> Certification:
        rows = await _rows(self._table().insert(_jsonable(fields)))
        return Certification(**rows[0])

    async def update(
        self, certification_id: UUID, fields: dict[str, Any]
    ) -> Certification | None:
        data = _jsonable({**fields, "updated_at": _now_iso()})
        rows = await _rows(self._table().update(data).eq("id", str(certification_id)))
        return Certification(**rows[0]) if rows else None

    async def update_holder_name(self, profile_id: UUID, holder_name: str) -> int:
        """Bulk-rename every certification owned by *profile_id*."""
        rows = await _rows(
            self._table()
            .update({"holder_name": holder_name, "updated_at": _now_iso()})
            .eq("profile_id", str(profile_id))
        )
        return len(rows)

    async def delete(self, certification_id: UUID) -> Certification | None:
        rows = await _rows(self._table().delete().eq("id", str(certification_id)))
        return Certification(**rows[0]) if rows else None

    async def delete_for_profile(self, profile_id: UUID) -> list[Certification]:
        rows = await _rows(self._table().delete().eq("profile_id", str(profile_id)))
        return [Certification(**row) for row in rows]

    async def record_reminder_sent(
        self, certification: Certification, threshold: int
    ) -> Certification | None:
        sent = sorted({*certification.reminder_thresholds_sent, threshold}, reverse=True)
        return await self.update(certification.id, {"reminder_thresholds_sent": sent})

    async def record_expired_notice(self, certification_id: UUID) -> Certification | None:
        return await self.update(certification_id, {"expired_notice_sent_at": _now_iso()})


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

class NotificationRepository:
    """Access to the ``notifications`` table (the in-app record store)."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    def _table(self) -> Any:
        return self._client.table(NOTIFICATIONS_TABLE)

    async def insert(self, payload: NotificationCreate) -> Notification:
        rows = await _rows(self._table().insert(payload.model_dump(mode="json")))
        return Notification(**rows[0])

    async def list_for_account(
        self,
        account_id: UUID,
        *,
        limit: int = 50,
        offset: int = 0,
        unread_only: bool = False,
        notification_type: NotificationType | None = None,
    ) -> list[Notification]:
        query = self._table().select("*").eq("account_id", str(account_id))
        if unread_only:
            query = query.eq("is_read", False)
        if notification_type is not None:
            query = query.eq("type", notification_type.value)
        query = query.order("created_at", desc=True).range(offset, offset + limit - 1)
        return [Notification(**row) for row in await _rows(query)]

    async def count_unread(self, account_id: UUID) -> int:
        response = await _execute(
            self._table()
            .select("id", count="exact")
            .eq("account_id", str(account_id))
            .eq("is_read", False)
        )
        return response.count or 0

    async def mark_read(self, notification_id: UUID, account_id: UUID) -> Notification | None:
        rows = await _rows(
            self._table()
            .update({"is_read": True, "read_at": _now_iso()})
            .eq("id", str(notification_id))
            .eq("account_id", str(account_id))
        )
        return Notification(**rows[0]) if rows else None

    async def mark_all_read(self, account_id: UUID) -> int:
        rows = await _rows(
            self._table()
            .update({"is_read": True, "read_at": _now_iso()})
            .eq("account_id", str(account_id))
            .eq("is_read", False)
        )
        return len(rows)


# ---------------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------------

@dataclass
class Repositories:
    """The four repositories, built over one client."""
    accounts: AccountRepository
    profiles: ProfileRepository
    certifications: CertificationRepository
    notifications: NotificationRepository

    @classmethod
    def from_client(cls, client: AsyncClient) -> Repositories:
        return cls(
            accounts=AccountRepository(client),
            profiles=ProfileRepository(client),
            certifications=CertificationRepository(client),
            notifications=NotificationRepository(client),
        )


async def get_repositories() -> Repositories:
    """FastAPI dependency / job helper returning repositories over the shared client."""
    return Repositories.from_client(await get_supabase())
