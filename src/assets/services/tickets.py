"""Support ticket workflow.

open -> in_progress | on_hold | cancelled; in_progress -> on_hold |
resolved; on_hold -> in_progress; resolved -> closed. Closed and
cancelled tickets accept no further transitions.
"""

import logging
import mimetypes

from PIL import Image

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.utils import timezone

from ..exceptions import (
    Conflict,
    Forbidden,
    InvalidAttachment,
    InvalidTransition,
    NotFound,
    atomic_transition,
)
from ..forms import TicketForm, clean_id, form_errors
from ..models import Allocation, Ticket, TicketComment
from . import history
from .notifications import notify
from .permissions import ActorContext, require, ticket_ownership
from .state import get_asset

logger = logging.getLogger(__name__)

User = get_user_model()


def check_attachment(upload) -> None:
    """Reject uploads that are not the single accepted content type.

    The declared type and the file extension must match, and the bytes
    must decode as an image of that type.
    """
    expected = settings.TICKET_ATTACHMENT_CONTENT_TYPE
    declared = getattr(upload, "content_type", None)
    guessed, _ = mimetypes.guess_type(upload.name or "")
    if declared != expected or guessed != expected:
        raise InvalidAttachment(
            {"attachment": f"Attachments must be of type {expected}."}
        )
    if upload.size > settings.TICKET_ATTACHMENT_MAX_BYTES:
        raise InvalidAttachment(
            {
                "attachment": (
                    f"Attachments may not exceed "
                    f"{settings.TICKET_ATTACHMENT_MAX_BYTES} bytes."
                )
            }
        )
    upload.seek(0)
    try:
        with Image.open(upload) as img:
            image_format = img.format
            img.verify()
    except (OSError, SyntaxError):
        # verify() raises SyntaxError on a corrupt PNG stream
        raise InvalidAttachment(
            {"attachment": "The attachment is not a readable image."}
        )
    finally:
        upload.seek(0)
    if Image.MIME.get(image_format) != expected:
        raise InvalidAttachment(
            {"attachment": f"Attachments must be of type {expected}."}
        )


def get_ticket(ticket_id: int, for_update: bool = False) -> Ticket:
    queryset = Ticket.objects.select_related(
        "reporter", "asset", "department", "assignee"
    )
    if for_update:
        queryset = queryset.select_for_update(of=("self",))
    try:
        return queryset.get(pk=ticket_id)
    except Ticket.DoesNotExist:
        raise NotFound(f"Ticket {ticket_id} does not exist.")


def _form_data(ticket) -> dict:
    return {
        "title": ticket.title,
        "description": ticket.description,
        "location": ticket.location,
        "department": ticket.department.name,
        "priority": ticket.priority,
        "issue_category": ticket.issue_category,
    }


def create(
    actor: ActorContext, payload: dict, attachment=None
) -> Ticket:
    """Raise a ticket against an asset the reporter currently holds."""
    require(actor, "ticket.create")
    if attachment is not None:
        check_attachment(attachment)
    form = TicketForm(payload)
    if not form.is_valid():
        raise ValidationError(form_errors(form))
    asset_id = clean_id(payload, "asset")

    with atomic_transition():
        asset = get_asset(asset_id)
        holds_asset = Allocation.objects.filter(
            asset=asset, employee_id=actor.id, status="active"
        ).exists()
        if not holds_asset:
            raise Forbidden(
                f"Tickets can only be raised for assets you hold; "
                f"{asset.asset_tag} is not allocated to you."
            )
        ticket = form.save(commit=False)
        ticket.reporter_id = actor.id
        ticket.asset = asset
        ticket.asset_name = asset.name
        ticket.status = "open"
        if attachment is not None:
            ticket.attachment = attachment
        ticket.save()
        history.record(ticket, "created", actor=actor, new_value="open")
    logger.info(
        "Ticket %s raised by %s for %s",
        ticket.ticket_id,
        actor.name,
        asset.asset_tag,
    )
    return ticket


def _apply_status(ticket, new_status, actor, remark=""):
    if not ticket.can_transition_to(new_status):
        allowed = Ticket.VALID_TRANSITIONS.get(ticket.status, [])
        raise InvalidTransition(
            f"Ticket {ticket.ticket_id} cannot move from "
            f"'{ticket.get_status_display()}' to '{new_status}'. "
            f"Allowed transitions: {', '.join(allowed) or 'none'}."
        )
    old_status = ticket.status
    ticket.status = new_status
    if new_status in Ticket.COMPLETED_STATUSES:
        ticket.completed_at = timezone.now()
    else:
        ticket.completed_at = None
    ticket.save(update_fields=["status", "completed_at", "updated_at"])
    history.record(
        ticket,
        new_status,
        actor=actor,
        remark=remark,
        old_value=old_status,
        new_value=new_status,
    )
    logger.info(
        "Ticket %s %s -> %s by %s",
        ticket.ticket_id,
        old_status,
        new_status,
        actor.name,
    )
    return ticket


def update_status(
    actor: ActorContext, ticket_id: int, new_status: str, remark: str = ""
) -> Ticket:
    if new_status not in dict(Ticket.STATUS_CHOICES):
        raise ValidationError(
            {"status": f"'{new_status}' is not a ticket status."}
        )
    with atomic_transition():
        ticket = get_ticket(ticket_id, for_update=True)
        require(actor, "ticket.update_status", ticket_ownership(ticket))
        if new_status == "cancelled":
            # Cancelling belongs to the reporter, through cancel()
            raise Forbidden(
                f"Ticket {ticket.ticket_id} can only be cancelled by its "
                f"reporter."
            )
        return _apply_status(ticket, new_status, actor, remark)


def cancel(actor: ActorContext, ticket_id: int, remark: str = "") -> Ticket:
    """Withdraw an open ticket. Only its reporter may do this."""
    with atomic_transition():
        ticket = get_ticket(ticket_id, for_update=True)
        require(actor, "ticket.cancel", ticket_ownership(ticket))
        if ticket.status != "open":
            raise InvalidTransition(
                f"Ticket {ticket.ticket_id} is "
                f"'{ticket.get_status_display()}'; only open tickets can "
                f"be cancelled."
            )
        return _apply_status(ticket, "cancelled", actor, remark)


def edit(actor: ActorContext, ticket_id: int, payload: dict) -> Ticket:
    with atomic_transition():
        ticket = get_ticket(ticket_id, for_update=True)
        require(actor, "ticket.edit", ticket_ownership(ticket))
        if ticket.status != "open":
            raise Conflict(
                f"Ticket {ticket.ticket_id} is "
                f"'{ticket.get_status_display()}' and can no longer be "
                f"edited."
            )
        data = _form_data(ticket)
        data.update(payload)
        form = TicketForm(data, instance=ticket)
        if not form.is_valid():
            raise ValidationError(form_errors(form))
        ticket = form.save()
        history.record(ticket, "updated", actor=actor)
    logger.info("Ticket %s edited by %s", ticket.ticket_id, actor.name)
    return ticket


def assign(
    actor: ActorContext, ticket_id: int, assignee_id: int, deadline=None
) -> Ticket:
    """Hand a ticket to a member of the admin staff."""
    require(actor, "ticket.assign")
    try:
        assignee = User.objects.get(
            pk=assignee_id,
            is_active=True,
            role__in=User.STAFF_ROLES,
        )
    except User.DoesNotExist:
        raise ValidationError(
            {"assignee": "Tickets can only be assigned to admin staff."}
        )
    if deadline is not None and deadline <= timezone.now():
        raise ValidationError({"deadline": "Deadline must be in the future."})

    with atomic_transition():
        ticket = get_ticket(ticket_id, for_update=True)
        if ticket.is_terminal:
            raise Conflict(
                f"Ticket {ticket.ticket_id} is "
                f"'{ticket.get_status_display()}' and cannot be assigned."
            )
        previous = ticket.assignee
        ticket.assignee = assignee
        ticket.deadline = deadline
        ticket.save(update_fields=["assignee", "deadline", "updated_at"])
        history.record(
            ticket,
            "assigned",
            actor=actor,
            old_value=previous.get_display_name() if previous else "",
            new_value=assignee.get_display_name(),
        )
        notify(
            "ticket_assigned",
            assignee,
            {
                "ticket_id": ticket.ticket_id,
                "title": ticket.title,
                "deadline": deadline.isoformat() if deadline else "",
            },
        )
    logger.info(
        "Ticket %s assigned to %s by %s",
        ticket.ticket_id,
        assignee.get_display_name(),
        actor.name,
    )
    return ticket


def add_comment(
    actor: ActorContext, ticket_id: int, text: str
) -> TicketComment:
    text = (text or "").strip()
    if not text:
        raise ValidationError({"comment": "Comment cannot be empty."})
    with atomic_transition():
        ticket = get_ticket(ticket_id, for_update=True)
        require(actor, "ticket.comment", ticket_ownership(ticket))
        if ticket.is_terminal:
            raise Conflict(
                f"Ticket {ticket.ticket_id} is "
                f"'{ticket.get_status_display()}'; comments are closed."
            )
        comment = TicketComment.objects.create(
            ticket=ticket, author_id=actor.id, comment=text
        )
        history.record(ticket, "commented", actor=actor)
    return comment
