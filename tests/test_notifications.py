"""Unit tests for the notification fan-out engine and message rendering."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch
from uuid import uuid4

import pytest

from app.models.enums import AccountRole, NotificationPriority, NotificationType
from app.models.notification import NotificationEvent
from app.models.profile import ProfileCreate
from app.services.messages import priority_for, render


def _event(event_type, profile=None, **fields) -> NotificationEvent:
    details = fields.pop("details", {})
    if profile is not None:
        details = {
            "employee_name": profile.full_name,
            "employee_email": profile.email,
            **details,
        }
    return NotificationEvent(
        event_type=event_type,
        subject_profile_id=profile.id if profile is not None else None,
        details=details,
        **fields,
    )


class TestRecipients:
    """Subject account first, then every admin, de-duplicated."""

    @pytest.mark.asyncio
    async def test_subject_then_admins(self, fanout, add_account, add_profile) -> None:
        now = datetime.now(timezone.utc)
        first_admin = add_account("a1@example.com", role=AccountRole.admin, created_at=now)
        second_admin = add_account(
            "a2@example.com", role=AccountRole.admin, created_at=now + timedelta(seconds=1)
        )
        profile = add_profile()

        records = await fanout.notify(_event(NotificationType.certificate_created, profile))

        assert [r.account_id for r in records] == [
            profile.account_id,
            first_admin.id,
            second_admin.id,
        ]

    @pytest.mark.asyncio
    async def test_admin_subject_is_not_duplicated(
        self, fanout, repos, add_account, add_profile
    ) -> None:
        profile = add_profile(with_account=False)
        admin = add_account(profile.email, role=AccountRole.admin, profile_id=profile.id)
        repos.profiles.rows[profile.id] = profile.model_copy(update={"account_id": admin.id})

        records = await fanout.notify(_event(NotificationType.profile_updated, profile))

        assert len(records) == 1
        assert records[0].account_id == admin.id
        assert not records[0].title.startswith("[Admin]")

    @pytest.mark.asyncio
    async def test_deleted_subject_reaches_admins_only(
        self, fanout, gateway, add_account
    ) -> None:
        admin = add_account("boss@example.com", role=AccountRole.admin)
        event = NotificationEvent(
            event_type=NotificationType.profile_deleted,
            subject_profile_id=uuid4(),
            details={"employee_name": "Gone Person", "employee_email": "gone@example.com"},
        )

        records = await fanout.notify(event)

        assert [r.account_id for r in records] == [admin.id]
        assert "Gone Person - gone@example.com" in records[0].message
        assert [m[0] for m in gateway.sent] == ["boss@example.com"]

    @pytest.mark.asyncio
    async def test_subject_mail_goes_to_profile_email(
        self, fanout, gateway, add_profile
    ) -> None:
        profile = add_profile(email="jane@example.com")

        await fanout.notify(_event(NotificationType.certificate_updated, profile))

        assert [m[0] for m in gateway.sent] == ["jane@example.com"]

    @pytest.mark.asyncio
    async def test_subject_without_account_gets_email_only(
        self, fanout, repos, gateway, add_profile
    ) -> None:
        profile = add_profile(email="jane@example.com", with_account=False)

        report = await fanout.notify_detailed(
            _event(NotificationType.certificate_expiring, profile, days_value=30)
        )

        assert report.recipients == 1
        assert report.records == []
        assert report.delivered == 1
        assert report.any_success
        assert repos.notifications.rows == []
        assert [m[0] for m in gateway.sent] == ["jane@example.com"]

    @pytest.mark.asyncio
    async def test_nobody_to_notify(self, fanout, gateway) -> None:
        event = NotificationEvent(
            event_type=NotificationType.profile_deleted, subject_profile_id=uuid4()
        )

        report = await fanout.notify_detailed(event)

        assert report.nobody_to_notify
        assert not report.any_success
        assert gateway.sent == []

    @pytest.mark.asyncio
    async def test_lookup_failure_is_not_reported_as_empty(
        self, fanout, repos, add_profile
    ) -> None:
        profile = add_profile()
        repos.accounts.fail_list_admins = True

        report = await fanout.notify_detailed(_event(NotificationType.profile_updated, profile))

        assert report.recipients_failed
        assert not report.nobody_to_notify


class TestFailureIsolation:
    """The two channels fail independently per recipient."""

    @pytest.mark.asyncio
    async def test_delivery_failure_keeps_record_and_other_recipients(
        self, fanout, repos, gateway, add_account, add_profile
    ) -> None:
        admin = add_account("boss@example.com", role=AccountRole.admin)
        profile = add_profile(email="jane@example.com")
        gateway.fail_for.add("jane@example.com")

        report = await fanout.notify_detailed(_event(NotificationType.profile_updated, profile))

        assert len(repos.notifications.for_account(profile.account_id)) == 1
        assert len(repos.notifications.for_account(admin.id)) == 1
        assert report.delivered == 1
        assert report.delivery_failures == 1
        assert gateway.sent_to("boss@example.com")

    @pytest.mark.asyncio
    async def test_record_failure_still_delivers(
        self, fanout, repos, gateway, add_account, add_profile
    ) -> None:
        admin = add_account("boss@example.com", role=AccountRole.admin)
        profile = add_profile(email="jane@example.com")
        repos.notifications.fail_for_accounts.add(profile.account_id)

        report = await fanout.notify_detailed(_event(NotificationType.profile_updated, profile))

        assert report.record_failures == 1
        assert [r.account_id for r in report.records] == [admin.id]
        assert gateway.sent_to("jane@example.com")
        assert report.any_success

    @pytest.mark.asyncio
    async def test_unexpected_error_for_one_recipient(
        self, fanout, repos, gateway, add_account, add_profile
    ) -> None:
        admin = add_account("boss@example.com", role=AccountRole.admin)
        profile = add_profile(email="jane@example.com")
        original = gateway.send

        async def _send(to, subject, body):
            if to == "jane@example.com":
                raise RuntimeError("socket closed")
            return await original(to, subject, body)

        with patch.object(gateway, "send", side_effect=_send):
            records = await fanout.notify(_event(NotificationType.profile_updated, profile))

        assert {r.account_id for r in records} == {profile.account_id, admin.id}
        assert gateway.sent_to("boss@example.com")

    @pytest.mark.asyncio
    async def test_recipient_lookup_failure_never_raises(self, fanout, repos, add_profile) -> None:
        profile = add_profile()
        repos.accounts.fail_list_admins = True

        records = await fanout.notify(_event(NotificationType.profile_updated, profile))

        assert records == []

    @pytest.mark.asyncio
    async def test_notify_many_runs_in_order(self, fanout, repos, add_profile) -> None:
        profile = add_profile()
        events = [
            _event(NotificationType.certificate_deleted, profile),
            _event(NotificationType.profile_deleted, profile),
        ]

        created = await fanout.notify_many(events)

        assert created == 2
        assert [r.type for r in repos.notifications.rows] == [
            NotificationType.certificate_deleted,
            NotificationType.profile_deleted,
        ]


class TestCredentials:
    """The one-time credential only ever appears in the employee's e-mail."""

    @pytest.mark.asyncio
    async def test_created_profile_gets_credential_mail(
        self, handler, fanout, repos, gateway, add_account
    ) -> None:
        add_account("boss@example.com", role=AccountRole.admin)
        with patch("app.services.passwords.BCRYPT_ROUNDS", 4):
            outcome = await handler.create_profile(
                ProfileCreate(first_name="Ann", last_name="Lee", email="ann@example.com")
            )
        credential = outcome.events[0].credential

        await fanout.notify_many(outcome.events)

        employee_mail = [m for m in gateway.sent_to("ann@example.com") if credential in m[2]]
        assert len(employee_mail) == 1
        assert "/login" in employee_mail[0][2]
        assert all(credential not in m[2] for m in gateway.sent_to("boss@example.com"))
        for record in repos.notifications.rows:
            assert credential not in record.message
            assert credential not in str(record.metadata)
        issued = [r for r in repos.notifications.rows if r.type == NotificationType.credentials_issued]
        assert len(issued) == 2


class TestPriority:
    @pytest.mark.parametrize(
        ("days", "expected"),
        [
            (1, NotificationPriority.critical),
            (3, NotificationPriority.high),
            (7, NotificationPriority.high),
            (14, NotificationPriority.medium),
            (30, NotificationPriority.low),
            (60, NotificationPriority.low),
        ],
    )
    def test_expiring_priority(self, days, expected) -> None:
        event = _event(NotificationType.certificate_expiring, days_value=days)
        assert priority_for(event) == expected

    def test_other_priorities(self) -> None:
        assert priority_for(_event(NotificationType.certificate_expired)) == NotificationPriority.critical
        assert priority_for(_event(NotificationType.profile_deleted)) == NotificationPriority.medium
        assert priority_for(_event(NotificationType.credentials_issued)) == NotificationPriority.medium
        assert priority_for(_event(NotificationType.profile_updated)) == NotificationPriority.low


class TestRender:
    def test_admin_copy_is_prefixed_and_names_employee(self, add_profile) -> None:
        profile = add_profile("Ann", "Lee", email="ann@example.com")
        event = _event(
            NotificationType.certificate_expiring,
            profile,
            days_value=7,
            details={"certificate_name": "CSCS", "expiry_date": "2024-06-08"},
        )

        employee = render(event, profile, for_admin=False)
        admin = render(event, profile, for_admin=True)

        assert employee.title == "Certificate Expiring in 7 days"
        assert employee.email_subject.startswith("URGENT")
        assert admin.title == "[Admin] Certificate Expiring in 7 days"
        assert admin.message.endswith("(Employee: Ann Lee - ann@example.com)")

    def test_updated_fields_listed(self) -> None:
        event = _event(
            NotificationType.profile_updated, updated_field_names=["email", "last_name"]
        )
        rendered = render(event, None, for_admin=False)
        assert "email, last_name" in rendered.message
