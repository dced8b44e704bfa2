"""Fire-and-forget notification dispatch.

Notifications are queued only once the surrounding transaction commits.
A broker that cannot be reached is logged and otherwise ignored; the
transition that triggered the notification has already been recorded
in history.
"""

import logging

from django.core.exceptions import ValidationError
from django.db import transaction

from ..models import NotificationSetting
from .permissions import ActorContext, require

logger = logging.getLogger(__name__)

EVENTS = {
    "asset_assigned": (
        "asset_assignment",
        "Asset {asset_tag} assigned to you",
        "Asset {asset_tag} ({asset_name}) has been assigned to you.",
    ),
    "request_approved": (
        "request_status",
        "Request {request_id} approved",
        "Your request {request_id} has been approved.",
    ),
    "request_rejected": (
        "request_status",
        "Request {request_id} rejected",
        "Your request {request_id} was rejected: {reason}",
    ),
    "request_fulfilled": (
        "request_status",
        "Request {request_id} fulfilled",
        "Your request {request_id} has been fulfilled and the assets "
        "are allocated to you.",
    ),
    "transfer_requested": (
        "asset_transfer",
        "Transfer of {asset_tag} needs your approval",
        "{initiator} proposed moving {asset_tag} ({asset_name}) from "
        "{from_user} to {to_user}. Please approve or reject the transfer.",
    ),
    "transfer_completed": (
        "asset_transfer",
        "Transfer of {asset_tag} completed",
        "{asset_tag} ({asset_name}) has moved from {from_user} to "
        "{to_user}.",
    ),
    "transfer_rejected": (
        "asset_transfer",
        "Transfer of {asset_tag} rejected",
        "The transfer of {asset_tag} to {to_user} was rejected: {reason}",
    ),
    "ticket_assigned": (
        "ticket_assignment",
        "Ticket {ticket_id} assigned to you",
        'Ticket {ticket_id} "{title}" has been assigned to you.',
    ),
    "ticket_overdue": (
        "ticket_assignment",
        "Ticket {ticket_id} is overdue",
        'Ticket {ticket_id} "{title}" passed its deadline ({deadline}).',
    ),
    "maintenance_overdue": (
        "maintenance_reminder",
        "Maintenance on {asset_tag} is still open",
        "Maintenance on {asset_tag} has been open since {started_at}.",
    ),
}


class _Blank(dict):
    def __missing__(self, key):
        return ""


def render_event(event_type: str, payload: dict) -> tuple[str, str]:
    """Return the (subject, message) for an event."""
    _, subject, message = EVENTS[event_type]
    values = _Blank(payload)
    return subject.format_map(values), message.format_map(values)


def notify(event_type: str, recipient, payload: dict | None = None) -> None:
    """Queue a notification for ``recipient`` after the current commit.

    ``recipient`` is a user instance. Users without an email address and
    disabled notification types are skipped.
    """
    if event_type not in EVENTS:
        raise ValueError(f"Unknown notification event '{event_type}'.")
    if recipient is None or not recipient.email:
        return
    if not NotificationSetting.is_enabled(EVENTS[event_type][0]):
        logger.info("Notification %s disabled, skipping", event_type)
        return

    recipient_id = recipient.pk
    data = dict(payload or {})

    def _enqueue():
        from ..tasks import dispatch_notification

        try:
            dispatch_notification.delay(event_type, recipient_id, data)
        except Exception:
            logger.warning(
                "Could not queue %s notification for user %s",
                event_type,
                recipient_id,
                exc_info=True,
            )

    transaction.on_commit(_enqueue)


def update_notification_setting(
    actor: ActorContext, notification_type: str, enabled: bool
) -> NotificationSetting:
    """Switch a notification type on or off globally."""
    require(actor, "settings.notifications")
    if notification_type not in dict(NotificationSetting.TYPE_CHOICES):
        raise ValidationError(
            {
                "notification_type": (
                    f"'{notification_type}' is not a notification type."
                )
            }
        )
    setting, _ = NotificationSetting.objects.update_or_create(
        notification_type=notification_type,
        defaults={"enabled": bool(enabled), "updated_by_id": actor.id},
    )
    logger.info(
        "Notification %s %s by %s",
        notification_type,
        "enabled" if setting.enabled else "disabled",
        actor.name,
    )
    return setting
