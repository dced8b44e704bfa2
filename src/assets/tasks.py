"""Celery tasks for the assets app."""

import logging
from datetime import timedelta

from celery import shared_task

from django.conf import settings
from django.contrib.auth import get_user_model
from django.utils import timezone

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    max_retries=3,
    retry_backoff=30,
    retry_backoff_max=300,
)
def dispatch_notification(
    self, event_type: str, recipient_id: int, payload: dict
):
    """Render a workflow notification and email it to the recipient."""
    from accounts.email import send_templated_email

    from .services.notifications import render_event

    User = get_user_model()
    try:
        recipient = User.objects.get(pk=recipient_id, is_active=True)
    except User.DoesNotExist:
        logger.info(
            "Notification %s dropped: user %s is gone",
            event_type,
            recipient_id,
        )
        return False
    if not recipient.email:
        return False

    subject, message = render_event(event_type, payload)
    send_templated_email(
        "notification",
        {
            "recipient_name": recipient.get_display_name(),
            "message": message,
            "event_type": event_type,
        },
        subject,
        recipient.email,
        notification_type=event_type,
    )
    return True


@shared_task
def send_email_digest():
    """Email admin staff a summary of outstanding work."""
    from accounts.email import send_templated_email

    from .models import (
        Allocation,
        AssetRequest,
        MaintenanceRecord,
        NotificationSetting,
        Ticket,
        TransferRequest,
    )

    if not NotificationSetting.is_enabled("email_digest"):
        logger.info("Email digest disabled, skipping")
        return 0

    User = get_user_model()
    recipients = list(
        User.objects.filter(
            is_active=True, role__in=User.STAFF_ROLES
        )
        .exclude(email="")
        .values_list("email", flat=True)
    )
    if not recipients:
        return 0

    since = timezone.now() - timedelta(days=settings.DIGEST_LOOKBACK_DAYS)
    context = {
        "since": since,
        "lookback_days": settings.DIGEST_LOOKBACK_DAYS,
        "pending_requests": AssetRequest.objects.filter(
            status="pending"
        ).select_related("requester", "department"),
        "pending_transfers": TransferRequest.objects.filter(
            status="pending"
        ).select_related("asset"),
        "open_tickets": Ticket.objects.filter(
            status__in=["open", "in_progress", "on_hold"]
        ).select_related("assignee"),
        "open_maintenance": MaintenanceRecord.objects.filter(
            completed_at__isnull=True
        ).select_related("asset"),
        "recent_allocations": Allocation.objects.filter(
            allocated_date__gte=since
        ).select_related("asset"),
    }
    send_templated_email(
        "digest",
        context,
        f"Weekly summary ({timezone.localdate().isoformat()})",
        recipients,
    )
    logger.info("Email digest sent to %d recipient(s)", len(recipients))
    return len(recipients)


@shared_task
def send_overdue_ticket_reminders():
    """Remind assignees of unfinished tickets past their deadline."""
    from .models import Ticket
    from .services.notifications import notify

    overdue = Ticket.objects.filter(
        deadline__lt=timezone.now(),
        status__in=["open", "in_progress", "on_hold"],
        assignee__isnull=False,
    ).select_related("assignee")
    count = 0
    for ticket in overdue:
        notify(
            "ticket_overdue",
            ticket.assignee,
            {
                "ticket_id": ticket.ticket_id,
                "title": ticket.title,
                "deadline": timezone.localtime(ticket.deadline).strftime(
                    "%Y-%m-%d %H:%M"
                ),
            },
        )
        count += 1
    if count:
        logger.info("Sent %d overdue ticket reminder(s)", count)
    return count


@shared_task
def send_maintenance_reminders():
    """Remind admin staff about maintenance that has been open too long."""
    from .models import MaintenanceRecord
    from .services.notifications import notify

    cutoff = timezone.now() - timedelta(
        days=settings.MAINTENANCE_REMINDER_DAYS
    )
    stale = list(
        MaintenanceRecord.objects.filter(
            completed_at__isnull=True, started_at__lt=cutoff
        ).select_related("asset")
    )
    if not stale:
        return 0

    User = get_user_model()
    staff = list(
        User.objects.filter(is_active=True, role__in=User.STAFF_ROLES)
    )
    for record in stale:
        for user in staff:
            notify(
                "maintenance_overdue",
                user,
                {
                    "asset_tag": record.asset.asset_tag,
                    "started_at": timezone.localtime(
                        record.started_at
                    ).strftime("%Y-%m-%d"),
                },
            )
    logger.info(
        "Sent reminders for %d stale maintenance record(s)", len(stale)
    )
    return len(stale)
