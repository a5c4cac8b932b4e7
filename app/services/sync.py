"""Entity synchronisation handler.

Every mutation of a profile, account or certification goes through this
module so the cross-entity invariants hold afterwards:

1. certification ``holder_name`` equals the owning profile's full name;
2. a linked account's e-mail equals its profile's e-mail;
3. no certification outlives its owning profile;
4. deleting a profile deletes its paired ``user`` account (admins are only
   unlinked).

Each operation returns a ``SyncOutcome`` whose ``events`` the caller hands
to the fan-out engine, usually as a background task after responding.
Invariant violations are raised before any write.  Multi-step mutations
are an ordered best-effort sequence, not a transaction.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from app.core.config import settings
from app.core.constants import (
    STAFF_NUMBER_MAX,
    STAFF_NUMBER_MAX_ATTEMPTS,
    STAFF_NUMBER_MIN,
    VTID_MAX,
    VTID_MIN,
)
from app.core.exceptions import ComplianceError, DuplicateRecord, InvariantViolation, RecordNotFound
from app.db.repositories import Repositories
from app.models.account import Account, AccountCreate, normalise_email
from app.models.certification import (
    Certification,
    CertificationCreate,
    CertificationUpdate,
    check_dates,
)
from app.models.enums import AccountOrigin, AccountRole, NotificationType
from app.models.notification import NotificationEvent
from app.models.profile import Profile, ProfileCreate, ProfileUpdate
from app.services.passwords import generate_password, hash_password

logger = logging.getLogger(__name__)

# Fields maintained by the system rather than by callers of update_certification
_CERT_SYSTEM_FIELDS = frozenset(
    {"holder_name", "reminder_thresholds_sent", "expired_notice_sent_at"}
)


@dataclass
class SyncOutcome:
    """Records touched by one synchronised mutation, plus events to fan out."""
    profile: Profile | None = None
    account: Account | None = None
    certification: Certification | None = None
    deleted_certifications: list[Certification] = field(default_factory=list)
    account_deleted: bool = False
    certifications_renamed: int = 0
    events: list[NotificationEvent] = field(default_factory=list)


def _profile_details(profile: Profile) -> dict[str, Any]:
    return {
        "employee_name": profile.full_name,
        "employee_email": profile.email,
        "vtid": profile.vtid,
    }


def _certificate_details(cert: Certification) -> dict[str, Any]:
    return {
        "certificate_name": cert.name,
        "category": cert.category,
        "expiry_date": cert.expiry_date.isoformat() if cert.expiry_date else None,
        "employee_name": cert.holder_name,
    }


def _changed_fields(current: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in changes.items() if current.get(key) != value}


class EntitySyncHandler:
    """Apply profile/account/certification mutations with their side effects."""

    def __init__(
        self,
        repos: Repositories,
        password_length: int | None = None,
    ) -> None:
        self._repos = repos
        self._password_length = password_length or settings.GENERATED_PASSWORD_LENGTH

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    async def create_profile(
        self, data: ProfileCreate, actor_account_id: UUID | None = None
    ) -> SyncOutcome:
        """Create a profile and provision or link its login account."""
        for required in ("first_name", "last_name"):
            if not getattr(data, required).strip():
                raise InvariantViolation(f"{required} cannot be empty")
        if await self._repos.profiles.find_by_email(data.email) is not None:
            raise DuplicateRecord(f"A profile with email {data.email} already exists")

        fields = data.model_dump()
        fields["vtid"] = await self._next_vtid()
        fields["staff_number"] = await self._new_staff_number()
        profile = await self._repos.profiles.insert(fields)
        outcome = SyncOutcome(profile=profile)

        try:
            await self._provision_account(profile, outcome, actor_account_id)
        except ComplianceError as exc:
            # The profile stands even if its account could not be set up.
            logger.error(
                "account_provisioning_failed",
                extra={
                    "profile_id": str(profile.id),
                    "error_type": type(exc).__name__,
                    "error_message": str(exc),
                },
            )

        created = outcome.profile or profile
        outcome.events.append(
            NotificationEvent(
                event_type=NotificationType.profile_created,
                subject_profile_id=created.id,
                related_entity_id=created.id,
                actor_account_id=actor_account_id,
                details=_profile_details(created),
            )
        )
        logger.info(
            "profile_created",
            extra={"profile_id": str(created.id), "vtid": created.vtid},
        )
        return outcome

    async def update_profile(
        self,
        profile_id: UUID,
        data: ProfileUpdate,
        actor_account_id: UUID | None = None,
    ) -> SyncOutcome:
        """Update a profile and propagate name/e-mail changes."""
        existing = await self._repos.profiles.get(profile_id)
        if existing is None:
            raise RecordNotFound("Profile", profile_id)

        changes = data.model_dump(exclude_unset=True)
        if "vtid" in changes:
            requested = changes.pop("vtid")
            if existing.vtid is not None and requested != existing.vtid:
                raise InvariantViolation("vtid cannot be changed once assigned")
        for required in ("first_name", "last_name", "email"):
            if required in changes and not (changes[required] or "").strip():
                raise InvariantViolation(f"{required} cannot be empty")

        changed = _changed_fields(existing.model_dump(), changes)
        if not changed:
            return SyncOutcome(profile=existing)

        linked = await self._linked_account(existing)
        if "email" in changed:
            await self._ensure_email_free(changed["email"], profile=existing, account=linked)

        profile = await self._repos.profiles.update(profile_id, changed)
        if profile is None:
            raise RecordNotFound("Profile", profile_id)
        outcome = SyncOutcome(profile=profile)

        name_changed = "first_name" in changed or "last_name" in changed
        if name_changed:
            outcome.certifications_renamed = await self._repos.certifications.update_holder_name(
                profile.id, profile.full_name
            )
        if linked is not None and (name_changed or "email" in changed):
            outcome.account = await self._repos.accounts.update(
                linked.id,
                {
                    "email": profile.email,
                    "first_name": profile.first_name,
                    "last_name": profile.last_name,
                },
            )

        outcome.events.append(
            NotificationEvent(
                event_type=NotificationType.profile_updated,
                subject_profile_id=profile.id,
                related_entity_id=profile.id,
                updated_field_names=sorted(changed),
                actor_account_id=actor_account_id,
                details=_profile_details(profile),
            )
        )
        return outcome

    async def delete_profile(
        self, profile_id: UUID, actor_account_id: UUID | None = None
    ) -> SyncOutcome:
        """Delete a profile with its certifications and paired user account.

        Order: certifications, then account, then the profile itself.
        """
        profile = await self._repos.profiles.get(profile_id)
        if profile is None:
            raise RecordNotFound("Profile", profile_id)

        outcome = SyncOutcome(profile=profile)
        outcome.deleted_certifications = await self._repos.certifications.delete_for_profile(
            profile.id
        )

        account = await self._linked_account(profile)
        if account is None:
            account = await self._repos.accounts.find_by_email(profile.email)
        if account is not None:
            if account.role == AccountRole.user:
                outcome.account_deleted = await self._repos.accounts.delete(account.id)
            elif account.profile_id == profile.id:
                outcome.account = await self._repos.accounts.update(
                    account.id, {"profile_id": None}
                )

        await self._repos.profiles.delete(profile.id)

        details = _profile_details(profile)
        for cert in outcome.deleted_certifications:
            outcome.events.append(
                NotificationEvent(
                    event_type=NotificationType.certificate_deleted,
                    subject_profile_id=profile.id,
                    related_entity_id=cert.id,
                    actor_account_id=actor_account_id,
                    details={**details, **_certificate_details(cert)},
                )
            )
        outcome.events.append(
            NotificationEvent(
                event_type=NotificationType.profile_deleted,
                subject_profile_id=profile.id,
                related_entity_id=profile.id,
                actor_account_id=actor_account_id,
                details=details,
            )
        )
        logger.info(
            "profile_deleted",
            extra={
                "profile_id": str(profile.id),
                "certificates_deleted": len(outcome.deleted_certifications),
                "account_deleted": outcome.account_deleted,
            },
        )
        return outcome

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def change_account_email(
        self,
        account_id: UUID,
        new_email: str,
        actor_account_id: UUID | None = None,
    ) -> SyncOutcome:
        """Change an account's e-mail and mirror it onto the linked profile."""
        account = await self._repos.accounts.get(account_id)
        if account is None:
            raise RecordNotFound("Account", account_id)

        email = normalise_email(new_email)
        if email == account.email:
            return SyncOutcome(account=account)

        profile = None
        if account.profile_id is not None:
            profile = await self._repos.profiles.get(account.profile_id)
        await self._ensure_email_free(email, profile=profile, account=account)

        outcome = SyncOutcome()
        outcome.account = await self._repos.accounts.update(account.id, {"email": email})
        if profile is not None:
            outcome.profile = await self._repos.profiles.update(profile.id, {"email": email})
            if outcome.profile is not None:
                outcome.events.append(
                    NotificationEvent(
                        event_type=NotificationType.profile_updated,
                        subject_profile_id=profile.id,
                        related_entity_id=profile.id,
                        updated_field_names=["email"],
                        actor_account_id=actor_account_id,
                        details=_profile_details(outcome.profile),
                    )
                )
        return outcome

    async def set_account_password(self, account_id: UUID, new_password: str) -> Account:
        """Rehash and store a new credential for *account_id*."""
        password_hash = await asyncio.to_thread(hash_password, new_password)
        account = await self._repos.accounts.update(account_id, {"password_hash": password_hash})
        if account is None:
            raise RecordNotFound("Account", account_id)
        return account

    # ------------------------------------------------------------------
    # Certifications
    # ------------------------------------------------------------------

    async def create_certification(
        self, data: CertificationCreate, actor_account_id: UUID | None = None
    ) -> SyncOutcome:
        check_dates(data.issue_date, data.expiry_date)

        profile = None
        if data.profile_id is not None:
            profile = await self._repos.profiles.get(data.profile_id)
            if profile is None:
                raise RecordNotFound("Profile", data.profile_id)

        fields = data.model_dump()
        fields["holder_name"] = profile.full_name if profile is not None else None
        cert = await self._repos.certifications.insert(fields)

        outcome = SyncOutcome(profile=profile, certification=cert)
        outcome.events.append(
            NotificationEvent(
                event_type=NotificationType.certificate_created,
                subject_profile_id=cert.profile_id,
                related_entity_id=cert.id,
                actor_account_id=actor_account_id,
                details=_certificate_details(cert),
            )
        )
        return outcome

    async def update_certification(
        self,
        certification_id: UUID,
        data: CertificationUpdate,
        actor_account_id: UUID | None = None,
    ) -> SyncOutcome:
        existing = await self._repos.certifications.get(certification_id)
        if existing is None:
            raise RecordNotFound("Certification", certification_id)

        changes = _changed_fields(existing.model_dump(), data.model_dump(exclude_unset=True))
        if not changes:
            return SyncOutcome(certification=existing)

        check_dates(
            changes.get("issue_date", existing.issue_date),
            changes.get("expiry_date", existing.expiry_date),
        )
        updated_names = sorted(changes)

        profile = None
        if "profile_id" in changes:
            if changes["profile_id"] is not None:
                profile = await self._repos.profiles.get(changes["profile_id"])
                if profile is None:
                    raise RecordNotFound("Profile", changes["profile_id"])
                changes["holder_name"] = profile.full_name
            else:
                changes["holder_name"] = None
        if "expiry_date" in changes:
            # A new expiry date starts a new reminder cycle.
            changes["reminder_thresholds_sent"] = []
            changes["expired_notice_sent_at"] = None

        cert = await self._repos.certifications.update(certification_id, changes)
        if cert is None:
            raise RecordNotFound("Certification", certification_id)

        outcome = SyncOutcome(profile=profile, certification=cert)
        outcome.events.append(
            NotificationEvent(
                event_type=NotificationType.certificate_updated,
                subject_profile_id=cert.profile_id,
                related_entity_id=cert.id,
                updated_field_names=[n for n in updated_names if n not in _CERT_SYSTEM_FIELDS],
                actor_account_id=actor_account_id,
                details=_certificate_details(cert),
            )
        )
        return outcome

    async def delete_certification(
        self, certification_id: UUID, actor_account_id: UUID | None = None
    ) -> SyncOutcome:
        cert = await self._repos.certifications.delete(certification_id)
        if cert is None:
            raise RecordNotFound("Certification", certification_id)

        outcome = SyncOutcome(certification=cert)
        outcome.events.append(
            NotificationEvent(
                event_type=NotificationType.certificate_deleted,
                subject_profile_id=cert.profile_id,
                related_entity_id=cert.id,
                actor_account_id=actor_account_id,
                details=_certificate_details(cert),
            )
        )
        return outcome

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _linked_account(self, profile: Profile) -> Account | None:
        if profile.account_id is not None:
            account = await self._repos.accounts.get(profile.account_id)
            if account is not None:
                return account
        return await self._repos.accounts.find_by_profile(profile.id)

    async def _ensure_email_free(
        self, email: str, *, profile: Profile | None, account: Account | None
    ) -> None:
        other_profile = await self._repos.profiles.find_by_email(email)
        if other_profile is not None and (profile is None or other_profile.id != profile.id):
            raise DuplicateRecord(f"Email {email} is already used by another profile")
        other_account = await self._repos.accounts.find_by_email(email)
        if other_account is not None and (account is None or other_account.id != account.id):
            raise DuplicateRecord(f"Email {email} is already used by another account")

    async def _next_vtid(self) -> int:
        current = await self._repos.profiles.max_vtid()
        candidate = VTID_MIN if current is None else max(VTID_MIN, current + 1)
        if candidate > VTID_MAX:
            raise InvariantViolation(f"VTID limit exceeded. Maximum VTID is {VTID_MAX}.")
        return candidate

    async def _new_staff_number(self) -> int:
        for _ in range(STAFF_NUMBER_MAX_ATTEMPTS):
            candidate = random.randint(STAFF_NUMBER_MIN, STAFF_NUMBER_MAX)
            if not await self._repos.profiles.staff_number_taken(candidate):
                return candidate
        raise InvariantViolation("Could not allocate a unique staff number")

    async def _provision_account(
        self,
        profile: Profile,
        outcome: SyncOutcome,
        actor_account_id: UUID | None,
    ) -> None:
        existing = await self._repos.accounts.find_by_email(profile.email)

        if existing is not None:
            if existing.profile_id is not None and existing.profile_id != profile.id:
                logger.warning(
                    "account_already_linked",
                    extra={
                        "account_id": str(existing.id),
                        "profile_id": str(profile.id),
                    },
                )
                return
            outcome.account = await self._repos.accounts.update(
                existing.id,
                {
                    "profile_id": profile.id,
                    "first_name": profile.first_name,
                    "last_name": profile.last_name,
                },
            )
            outcome.profile = await self._repos.profiles.update(
                profile.id, {"account_id": existing.id}
            )
            return

        password = generate_password(self._password_length)
        password_hash = await asyncio.to_thread(hash_password, password)
        try:
            account = await self._repos.accounts.insert(
                AccountCreate(
                    email=profile.email,
                    first_name=profile.first_name,
                    last_name=profile.last_name,
                    password_hash=password_hash,
                    vtid=str(profile.vtid) if profile.vtid is not None else None,
                    role=AccountRole.user,
                    email_verified=True,
                    created_by=AccountOrigin.admin,
                    profile_id=profile.id,
                )
            )
        except DuplicateRecord as exc:
            # Username, vtid or profile link already held by another login.
            logger.warning(
                "account_provisioning_conflict",
                extra={"profile_id": str(profile.id), "error_message": str(exc)},
            )
            return
        outcome.account = account
        outcome.profile = await self._repos.profiles.update(profile.id, {"account_id": account.id})
        outcome.events.append(
            NotificationEvent(
                event_type=NotificationType.credentials_issued,
                subject_profile_id=profile.id,
                related_entity_id=account.id,
                actor_account_id=actor_account_id,
                details=_profile_details(profile),
                credential=password,
            )
        )
        logger.info(
            "account_provisioned",
            extra={"account_id": str(account.id), "profile_id": str(profile.id)},
        )
