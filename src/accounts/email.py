"""Templated email utility for AssetDesk."""

import logging

from django.conf import settings
from django.template.loader import render_to_string

logger = logging.getLogger(__name__)


def send_templated_email(
    template_name: str,
    context: dict,
    subject: str,
    recipient: str | list[str],
    notification_type: str = "",
) -> None:
    """Render and dispatch an email via Celery.

    Args:
        template_name: Template base name (e.g. "notification"). Will load
            ``emails/{template_name}.html`` and ``emails/{template_name}.txt``.
        context: Template context variables specific to this email.
        subject: Email subject line.
        recipient: Single email address or list of addresses.
        notification_type: Label for the email log; defaults to the
            template name.
    """
    full_context = {
        "site_name": settings.SITE_NAME,
        "site_url": settings.SITE_URL,
        **context,
    }

    html_body = render_to_string(f"emails/{template_name}.html", full_context)
    text_body = render_to_string(f"emails/{template_name}.txt", full_context)

    recipient_list = [recipient] if isinstance(recipient, str) else recipient

    from accounts.tasks import send_email_task

    send_email_task.delay(
        subject=f"[{settings.SITE_NAME}] {subject}",
        text_body=text_body,
        html_body=html_body,
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=recipient_list,
        notification_type=notification_type or template_name,
    )
    logger.info("Queued '%s' email to %s", template_name, recipient_list)
