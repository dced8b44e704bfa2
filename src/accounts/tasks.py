"""Celery tasks for the accounts app."""

import logging

from celery import shared_task

from django.core.mail import EmailMultiAlternatives

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=60,
    autoretry_for=(Exception,),
    retry_backoff=True,
)
def send_email_task(
    self,
    subject: str,
    text_body: str,
    html_body: str,
    from_email: str,
    recipient_list: list[str],
    notification_type: str = "",
) -> int:
    """Send an email with HTML and plain-text alternatives via Celery.

    Digest mails go to several recipients, so they are addressed by Bcc.
    Every attempt is recorded in the email log, failed ones included.
    """
    from .models import EmailLog

    if not recipient_list:
        logger.warning("Email '%s' has no recipients, dropped", subject)
        return 0
    if len(recipient_list) == 1:
        to, bcc = recipient_list, []
    else:
        to, bcc = [from_email], recipient_list
    msg = EmailMultiAlternatives(
        subject=subject,
        body=text_body,
        from_email=from_email,
        to=to,
        bcc=bcc,
        headers={"Auto-Submitted": "auto-generated"},
    )
    msg.attach_alternative(html_body, "text/html")
    log_fields = {
        "notification_type": notification_type,
        "subject": subject[:255],
        "recipients": ", ".join(recipient_list),
    }
    try:
        sent = msg.send()
    except Exception as e:
        EmailLog.objects.create(
            status="failed", error_message=str(e), **log_fields
        )
        logger.warning("Email '%s' to %s failed: %s", subject, to, e)
        raise
    EmailLog.objects.create(status="sent", **log_fields)
    logger.info("Email sent: '%s' to %s", subject, recipient_list)
    return sent
