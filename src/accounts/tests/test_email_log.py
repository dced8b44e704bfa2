"""Tests for the outgoing email log."""

from smtplib import SMTPException
from unittest.mock import patch

import pytest

from django.core import mail
from django.urls import reverse

from accounts.email import send_templated_email
from accounts.models import EmailLog
from accounts.tasks import send_email_task


def _send(recipients):
    return send_email_task(
        subject="[AssetDesk] Hello",
        text_body="Hello",
        html_body="<p>Hello</p>",
        from_email="noreply@example.com",
        recipient_list=recipients,
        notification_type="asset_assigned",
    )


@pytest.mark.django_db
class TestEmailLog:
    def test_sent_email_is_logged(self):
        assert _send(["erin@example.com"]) == 1
        log = EmailLog.objects.get()
        assert log.status == "sent"
        assert log.recipients == "erin@example.com"
        assert log.notification_type == "asset_assigned"
        assert log.error_message == ""

    def test_failed_email_is_logged_and_raised(self):
        with patch(
            "django.core.mail.EmailMultiAlternatives.send",
            side_effect=SMTPException("relay refused"),
        ):
            with pytest.raises(SMTPException):
                _send(["erin@example.com", "casey@example.com"])
        log = EmailLog.objects.get()
        assert log.status == "failed"
        assert log.error_message == "relay refused"
        assert log.recipients == "erin@example.com, casey@example.com"

    def test_email_without_recipients_is_not_logged(self):
        assert _send([]) == 0
        assert not EmailLog.objects.exists()

    def test_templated_email_defaults_type_to_template(self):
        send_templated_email(
            "notification",
            {"recipient_name": "Erin", "message": "Hi"},
            "Greetings",
            "erin@example.com",
        )
        assert len(mail.outbox) == 1
        assert EmailLog.objects.get().notification_type == "notification"


@pytest.mark.django_db
class TestEmailLogAdmin:
    def test_changelist_renders(self, admin_client):
        _send(["erin@example.com"])
        response = admin_client.get(
            reverse("admin:accounts_emaillog_changelist")
        )
        assert response.status_code == 200
        assert b"erin@example.com" in response.content

    def test_log_is_read_only(self, admin_client):
        _send(["erin@example.com"])
        log = EmailLog.objects.get()
        response = admin_client.post(
            reverse("admin:accounts_emaillog_delete", args=[log.pk]),
            {"post": "yes"},
        )
        assert response.status_code == 403
        assert EmailLog.objects.filter(pk=log.pk).exists()
