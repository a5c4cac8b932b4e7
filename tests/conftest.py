"""Shared test fixtures.

Provides a ``test_client`` for FastAPI, Supabase chain mocks, and in-memory
repository and mail gateway doubles with failure injection for the service
tests.
"""

import asyncio
import os
from collections.abc import Generator
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID, uuid4

# Settings are instantiated at import time; make sure they can load.
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-key")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.core.exceptions import DuplicateRecord, StoreError  # noqa: E402
from app.db.repositories import Repositories  # noqa: E402
from app.models.account import Account, AccountCreate  # noqa: E402
from app.models.certification import Certification  # noqa: E402
from app.models.enums import AccountRole, NotificationType  # noqa: E402
from app.models.notification import Notification, NotificationCreate  # noqa: E402
from app.models.profile import Profile  # noqa: E402
from app.services.delivery import DeliveryResult  # noqa: E402
from app.services.expiry import ExpiryScanner  # noqa: E402
from app.services.notifications import NotificationFanOut  # noqa: E402
from app.services.sync import EntitySyncHandler  # noqa: E402

TODAY = date(2024, 6, 1)


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# In-memory repositories
# ---------------------------------------------------------------------------

class FakeAccountRepository:
    def __init__(self) -> None:
        self.rows: dict[UUID, Account] = {}
        self.fail_list_admins = False

    async def get(self, account_id: UUID) -> Account | None:
        return self.rows.get(account_id)

    async def find_by_email(self, email: str) -> Account | None:
        email = email.strip().lower()
        return next((a for a in self.rows.values() if a.email == email), None)

    async def find_by_profile(self, profile_id: UUID) -> Account | None:
        return next((a for a in self.rows.values() if a.profile_id == profile_id), None)

    async def list_admins(self) -> list[Account]:
        if self.fail_list_admins:
            raise StoreError("accounts unavailable")
        admins = [a for a in self.rows.values() if a.role == AccountRole.admin]
        return sorted(admins, key=lambda a: a.created_at)

    async def insert(self, payload: AccountCreate) -> Account:
        for column in ("email", "username", "vtid", "profile_id"):
            value = getattr(payload, column)
            if value is not None and any(getattr(a, column) == value for a in self.rows.values()):
                raise DuplicateRecord(f"accounts_{column}_key")
        now = _now()
        account = Account(id=uuid4(), created_at=now, updated_at=now, **payload.model_dump())
        self.rows[account.id] = account
        return account

    async def update(self, account_id: UUID, fields: dict[str, Any]) -> Account | None:
        existing = self.rows.get(account_id)
        if existing is None:
            return None
        updated = Account.model_validate({**existing.model_dump(), **fields, "updated_at": _now()})
        self.rows[account_id] = updated
        return updated

    async def delete(self, account_id: UUID) -> bool:
        return self.rows.pop(account_id, None) is not None


class FakeProfileRepository:
    def __init__(self) -> None:
        self.rows: dict[UUID, Profile] = {}
        self.fail_get_many = False

    async def get(self, profile_id: UUID) -> Profile | None:
        return self.rows.get(profile_id)

    async def get_many(self, profile_ids: list[UUID]) -> dict[UUID, Profile]:
        if self.fail_get_many:
            raise StoreError("profiles unavailable")
        return {pid: self.rows[pid] for pid in set(profile_ids) if pid in self.rows}

    async def find_by_email(self, email: str) -> Profile | None:
        email = email.strip().lower()
        return next((p for p in self.rows.values() if p.email == email), None)

    async def max_vtid(self) -> int | None:
        vtids = [p.vtid for p in self.rows.values() if p.vtid is not None]
        return max(vtids) if vtids else None

    async def staff_number_taken(self, staff_number: int) -> bool:
        return any(p.staff_number == staff_number for p in self.rows.values())

    async def insert(self, fields: dict[str, Any]) -> Profile:
        now = _now()
        profile = Profile.model_validate(
            {"id": uuid4(), "created_at": now, "updated_at": now, **fields}
        )
        self.rows[profile.id] = profile
        return profile

    async def update(self, profile_id: UUID, fields: dict[str, Any]) -> Profile | None:
        existing = self.rows.get(profile_id)
        if existing is None:
            return None
        updated = Profile.model_validate({**existing.model_dump(), **fields, "updated_at": _now()})
        self.rows[profile_id] = updated
        return updated

    async def delete(self, profile_id: UUID) -> bool:
        return self.rows.pop(profile_id, None) is not None


class FakeCertificationRepository:
    def __init__(self) -> None:
        self.rows: dict[UUID, Certification] = {}
        self.extra_rows: list[dict[str, Any]] = []
        self.fail_load = False
        self.fail_marker_ids: set[UUID] = set()
        self.marker_writes = 0

    async def get(self, certification_id: UUID) -> Certification | None:
        return self.rows.get(certification_id)

    async def list_for_profile(self, profile_id: UUID) -> list[Certification]:
        return [c for c in self.rows.values() if c.profile_id == profile_id]

    async def list_expiry_rows(self) -> list[dict[str, Any]]:
        if self.fail_load:
            raise StoreError("certifications unavailable")
        rows = [c.model_dump(mode="json") for c in self.rows.values() if c.expiry_date]
        return rows + list(self.extra_rows)

    async def insert(self, fields: dict[str, Any]) -> Certification:
        now = _now()
        cert = Certification.model_validate(
            {"id": uuid4(), "created_at": now, "updated_at": now, **fields}
        )
        self.rows[cert.id] = cert
        return cert

    async def update(
        self, certification_id: UUID, fields: dict[str, Any]
    ) -> Certification | None:
        existing = self.rows.get(certification_id)
        if existing is None:
            return None
        updated = Certification.model_validate(
            {**existing.model_dump(), **fields, "updated_at": _now()}
        )
        self.rows[certification_id] = updated
        return updated

    async def update_holder_name(self, profile_id: UUID, holder_name: str) -> int:
        owned = [c for c in self.rows.values() if c.profile_id == profile_id]
        for cert in owned:
            await self.update(cert.id, {"holder_name": holder_name})
        return len(owned)

    async def delete(self, certification_id: UUID) -> Certification | None:
        return self.rows.pop(certification_id, None)

    async def delete_for_profile(self, profile_id: UUID) -> list[Certification]:
        owned = [c for c in self.rows.values() if c.profile_id == profile_id]
        for cert in owned:
            del self.rows[cert.id]
        return owned

    async def record_reminder_sent(
        self, certification: Certification, threshold: int
    ) -> Certification | None:
        if certification.id in self.fail_marker_ids:
            raise StoreError("marker write failed")
        self.marker_writes += 1
        current = self.rows[certification.id].reminder_thresholds_sent
        sent = sorted({*current, threshold}, reverse=True)
        return await self.update(certification.id, {"reminder_thresholds_sent": sent})

    async def record_expired_notice(self, certification_id: UUID) -> Certification | None:
        if certification_id in self.fail_marker_ids:
            raise StoreError("marker write failed")
        self.marker_writes += 1
        return await self.update(certification_id, {"expired_notice_sent_at": _now()})


class FakeNotificationRepository:
    def __init__(self) -> None:
        self.rows: list[Notification] = []
        self.fail_for_accounts: set[UUID] = set()

    async def insert(self, payload: NotificationCreate) -> Notification:
        if payload.account_id in self.fail_for_accounts:
            raise StoreError("notification insert failed")
        record = Notification(id=uuid4(), created_at=_now(), **payload.model_dump())
        self.rows.append(record)
        return record

    async def list_for_account(
        self,
        account_id: UUID,
        *,
        limit: int = 50,
        offset: int = 0,
        unread_only: bool = False,
        notification_type: NotificationType | None = None,
    ) -> list[Notification]:
        rows = [n for n in self.rows if n.account_id == account_id]
        if unread_only:
            rows = [n for n in rows if not n.is_read]
        if notification_type is not None:
            rows = [n for n in rows if n.type == notification_type]
        rows.sort(key=lambda n: n.created_at, reverse=True)
        return rows[offset:offset + limit]

    async def count_unread(self, account_id: UUID) -> int:
        return sum(1 for n in self.rows if n.account_id == account_id and not n.is_read)

    async def mark_read(self, notification_id: UUID, account_id: UUID) -> Notification | None:
        for index, row in enumerate(self.rows):
            if row.id == notification_id and row.account_id == account_id:
                self.rows[index] = row.model_copy(update={"is_read": True, "read_at": _now()})
                return self.rows[index]
        return None

    async def mark_all_read(self, account_id: UUID) -> int:
        updated = 0
        for index, row in enumerate(self.rows):
            if row.account_id == account_id and not row.is_read:
                self.rows[index] = row.model_copy(update={"is_read": True, "read_at": _now()})
                updated += 1
        return updated

    def for_account(self, account_id: UUID) -> list[Notification]:
        return [n for n in self.rows if n.account_id == account_id]


class FakeGateway:
    """Records sent mail; can fail per address or globally."""

    provider = "fake"

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail_for: set[str] = set()
        self.fail_all = False
        self.in_flight = 0
        self.max_in_flight = 0

    async def send(self, to: str, subject: str, body: str) -> DeliveryResult:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if self.fail_all or to in self.fail_for:
                return DeliveryResult(success=False, error="mailbox unavailable")
            self.sent.append((to, subject, body))
            return DeliveryResult(success=True)
        finally:
            self.in_flight -= 1

    def sent_to(self, address: str) -> list[tuple[str, str, str]]:
        return [m for m in self.sent if m[0] == address]


# ---------------------------------------------------------------------------
# Service fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def repos() -> Repositories:
    return Repositories(
        accounts=FakeAccountRepository(),  # type: ignore[arg-type]
        profiles=FakeProfileRepository(),  # type: ignore[arg-type]
        certifications=FakeCertificationRepository(),  # type: ignore[arg-type]
        notifications=FakeNotificationRepository(),  # type: ignore[arg-type]
    )


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def fanout(repos: Repositories, gateway: FakeGateway) -> NotificationFanOut:
    return NotificationFanOut(repos, gateway)


@pytest.fixture()
def handler(repos: Repositories) -> EntitySyncHandler:
    return EntitySyncHandler(repos)


@pytest.fixture()
def scanner(repos: Repositories, fanout: NotificationFanOut) -> ExpiryScanner:
    return ExpiryScanner(
        repos, fanout, concurrency=2, expired_window_days=7, timezone_name="Europe/London"
    )


@pytest.fixture()
def add_account(repos: Repositories) -> Callable[..., Account]:
    """Factory inserting an account directly into the fake store."""

    def _add(email: str, role: AccountRole = AccountRole.user, **fields: Any) -> Account:
        now = _now()
        account = Account(
            id=uuid4(),
            email=email,
            first_name=fields.pop("first_name", "Test"),
            last_name=fields.pop("last_name", "User"),
            password_hash="$2b$12$hash",
            role=role,
            created_at=fields.pop("created_at", now),
            updated_at=now,
            **fields,
        )
        repos.accounts.rows[account.id] = account  # type: ignore[attr-defined]
        return account

    return _add


@pytest.fixture()
def add_profile(repos: Repositories, add_account: Callable[..., Account]) -> Callable[..., Profile]:
    """Factory inserting a profile, optionally with a linked user account."""

    def _add(
        first_name: str = "Jane",
        last_name: str = "Doe",
        email: str | None = None,
        with_account: bool = True,
        **fields: Any,
    ) -> Profile:
        now = _now()
        email = email if email is not None else f"{first_name}.{last_name}@example.com".lower()
        profile = Profile(
            id=uuid4(),
            first_name=first_name,
            last_name=last_name,
            email=email,
            created_at=now,
            updated_at=now,
            **fields,
        )
        if with_account:
            account = add_account(
                email, first_name=first_name, last_name=last_name, profile_id=profile.id
            )
            profile = profile.model_copy(update={"account_id": account.id})
        repos.profiles.rows[profile.id] = profile  # type: ignore[attr-defined]
        return profile

    return _add


@pytest.fixture()
def add_certification(repos: Repositories) -> Callable[..., Certification]:
    """Factory inserting a certification expiring ``days`` after ``TODAY``."""

    def _add(profile: Profile | None, days: int | None = 30, **fields: Any) -> Certification:
        now = _now()
        cert = Certification(
            id=uuid4(),
            name=fields.pop("name", "First Aid at Work"),
            category=fields.pop("category", "Health & Safety"),
            profile_id=profile.id if profile is not None else None,
            holder_name=profile.full_name if profile is not None else None,
            expiry_date=TODAY + timedelta(days=days) if days is not None else None,
            created_at=now,
            updated_at=now,
            **fields,
        )
        repos.certifications.rows[cert.id] = cert  # type: ignore[attr-defined]
        return cert

    return _add


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def mock_supabase_module() -> Generator[MagicMock, None, None]:
    """Patch the async Supabase client used by the health router."""
    mock_client = MagicMock()
    mock_client.table.return_value.select.return_value.limit.return_value.execute = AsyncMock(
        return_value=MagicMock()
    )
    with patch("app.routers.health.get_supabase", AsyncMock(return_value=mock_client)):
        yield mock_client


@pytest.fixture()
def mock_supabase_disconnected() -> Generator[MagicMock, None, None]:
    """Patch ``get_supabase`` to simulate a disconnected database."""
    with patch(
        "app.routers.health.get_supabase",
        AsyncMock(side_effect=Exception("Connection refused")),
    ):
        yield MagicMock()


@pytest.fixture()
def api(repos: Repositories, gateway: FakeGateway) -> Generator[TestClient, None, None]:
    """TestClient with repositories and gateway replaced by the fakes."""
    from app.db.repositories import get_repositories
    from app.main import app
    from app.routers.deps import get_fanout

    app.dependency_overrides[get_repositories] = lambda: repos
    app.dependency_overrides[get_fanout] = lambda: NotificationFanOut(repos, gateway)
    try:
        with TestClient(app) as client:
            yield client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def test_client() -> Generator[TestClient, None, None]:
    """Provide a FastAPI TestClient."""
    from app.main import app

    with TestClient(app) as client:
        yield client
