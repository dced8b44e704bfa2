"""Tests for the periodic Celery tasks."""

from datetime import timedelta

import pytest

from django.core import mail
from django.utils import timezone

from accounts.models import EmailLog
from assets.factories import (
    AssetRequestFactory,
    MaintenanceRecordFactory,
    TicketFactory,
)
from assets.models import NotificationSetting
from assets.services.allocations import allocate
from assets.services.transfers import request_transfer
from assets.tasks import (
    dispatch_notification,
    send_email_digest,
    send_maintenance_reminders,
    send_overdue_ticket_reminders,
)


@pytest.mark.django_db
class TestDispatchNotification:
    def test_sends_rendered_email(self, user):
        assert dispatch_notification(
            "request_rejected",
            user.pk,
            {"request_id": "REQ-000009", "reason": "Duplicate"},
        )
        assert mail.outbox[0].subject == (
            "[AssetDesk] Request REQ-000009 rejected"
        )
        assert "Duplicate" in mail.outbox[0].body
        log = EmailLog.objects.get()
        assert (log.notification_type, log.status) == (
            "request_rejected",
            "sent",
        )

    def test_missing_user_is_dropped(self, db):
        assert dispatch_notification("request_approved", 999999, {}) is False
        assert mail.outbox == []


@pytest.mark.django_db
class TestEmailDigest:
    def test_digest_goes_to_staff(self, admin_user, super_admin, user):
        AssetRequestFactory(requester=user)
        assert send_email_digest() == 2
        message = mail.outbox[0]
        assert sorted(message.bcc) == [admin_user.email, super_admin.email]
        assert "Pending requests (1)" in message.body

    def test_digest_lists_pending_transfers(
        self, admin_actor, asset, user, second_user
    ):
        allocation = allocate(admin_actor, asset.pk, user.pk)
        request_transfer(admin_actor, allocation.pk, second_user.pk)
        send_email_digest()
        body = mail.outbox[0].body
        assert "Pending transfers (1)" in body
        assert "LT-0001: Erin Employee to Casey Colleague" in body

    def test_disabled_digest(self, admin_user):
        NotificationSetting.objects.create(
            notification_type="email_digest", enabled=False
        )
        assert send_email_digest() == 0
        assert mail.outbox == []

    def test_no_staff(self, user):
        assert send_email_digest() == 0


@pytest.mark.django_db
class TestReminders:
    def test_overdue_ticket_notifies_assignee(
        self, admin_user, django_capture_on_commit_callbacks
    ):
        TicketFactory(
            assignee=admin_user,
            deadline=timezone.now() - timedelta(hours=2),
            status="in_progress",
        )
        TicketFactory(
            assignee=admin_user,
            deadline=timezone.now() + timedelta(hours=2),
        )
        with django_capture_on_commit_callbacks(execute=True):
            assert send_overdue_ticket_reminders() == 1
        assert mail.outbox[0].to == [admin_user.email]
        assert "overdue" in mail.outbox[0].subject

    def test_resolved_tickets_are_not_overdue(self, admin_user):
        TicketFactory(
            assignee=admin_user,
            deadline=timezone.now() - timedelta(hours=2),
            status="resolved",
            completed_at=timezone.now(),
        )
        assert send_overdue_ticket_reminders() == 0

    def test_stale_maintenance(
        self, admin_user, settings, django_capture_on_commit_callbacks
    ):
        settings.MAINTENANCE_REMINDER_DAYS = 7
        MaintenanceRecordFactory(
            started_at=timezone.now() - timedelta(days=10),
            started_by=admin_user,
        )
        MaintenanceRecordFactory(started_by=admin_user)
        with django_capture_on_commit_callbacks(execute=True):
            assert send_maintenance_reminders() == 1
        assert [m.to for m in mail.outbox] == [[admin_user.email]]

    def test_disabled_maintenance_reminders(self, admin_user):
        NotificationSetting.objects.create(
            notification_type="maintenance_reminder", enabled=False
        )
        MaintenanceRecordFactory(
            started_at=timezone.now() - timedelta(days=60),
            started_by=admin_user,
        )
        assert send_maintenance_reminders() == 1
        assert mail.outbox == []
