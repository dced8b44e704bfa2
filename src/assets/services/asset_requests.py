"""Procurement request workflow.

pending -> approved | rejected; approved -> in_progress -> fulfilled.
Every transition reloads the request under a row lock and re-checks its
status before writing, so a duplicated or retried call fails with
Conflict instead of applying twice.
"""

import logging

from django.core.exceptions import ValidationError
from django.utils import timezone

from ..exceptions import (
    Conflict,
    InvalidTransition,
    NotFound,
    atomic_transition,
)
from ..forms import AssetRequestForm, form_errors
from ..models import AssetRequest
from . import history
from .allocations import allocate
from .notifications import notify
from .permissions import ActorContext, request_ownership, require

logger = logging.getLogger(__name__)

# Roles that may keep editing a request once procurement has started
APPROVER_EDIT_ROLES = ("hr", "admin", "super_admin")


def get_request(request_id: int, for_update: bool = False) -> AssetRequest:
    queryset = AssetRequest.objects.select_related(
        "requester", "department", "approved_by"
    )
    if for_update:
        queryset = queryset.select_for_update(of=("self",))
    try:
        return queryset.get(pk=request_id)
    except AssetRequest.DoesNotExist:
        raise NotFound(f"Request {request_id} does not exist.")


def _transition(asset_request, new_status, actor, remark=""):
    if not asset_request.can_transition_to(new_status):
        raise InvalidTransition(
            f"Request {asset_request.request_id} is "
            f"'{asset_request.get_status_display()}' and cannot move to "
            f"'{new_status}'."
        )
    old_status = asset_request.status
    asset_request.status = new_status
    asset_request.save()
    history.record(
        asset_request,
        new_status,
        actor=actor,
        remark=remark,
        old_value=old_status,
        new_value=new_status,
    )
    logger.info(
        "Request %s %s -> %s by %s",
        asset_request.request_id,
        old_status,
        new_status,
        actor.name,
    )


def submit(actor: ActorContext, payload: dict) -> AssetRequest:
    """Create a pending request on behalf of ``actor``."""
    require(actor, "request.create")
    form = AssetRequestForm(payload)
    if not form.is_valid():
        raise ValidationError(form_errors(form))
    with atomic_transition():
        asset_request = form.save(commit=False)
        asset_request.requester_id = actor.id
        asset_request.status = "pending"
        asset_request.save()
        history.record(
            asset_request, "created", actor=actor, new_value="pending"
        )
    logger.info(
        "Request %s submitted by %s", asset_request.request_id, actor.name
    )
    return asset_request


def approve(actor: ActorContext, request_id: int) -> AssetRequest:
    with atomic_transition():
        asset_request = get_request(request_id, for_update=True)
        require(actor, "request.approve", request_ownership(asset_request))
        if asset_request.status != "pending":
            raise Conflict(
                f"Request {asset_request.request_id} is "
                f"'{asset_request.get_status_display()}', not pending."
            )
        asset_request.approved_by_id = actor.id
        asset_request.approved_at = timezone.now()
        _transition(asset_request, "approved", actor)
        notify(
            "request_approved",
            asset_request.requester,
            {"request_id": asset_request.request_id},
        )
    return asset_request


def reject(actor: ActorContext, request_id: int, reason: str) -> AssetRequest:
    reason = (reason or "").strip()
    with atomic_transition():
        asset_request = get_request(request_id, for_update=True)
        require(actor, "request.reject", request_ownership(asset_request))
        if not reason:
            raise ValidationError(
                {"rejection_reason": "A rejection reason is required."}
            )
        if asset_request.status != "pending":
            raise Conflict(
                f"Request {asset_request.request_id} is "
                f"'{asset_request.get_status_display()}', not pending."
            )
        asset_request.rejected_by_id = actor.id
        asset_request.rejection_reason = reason
        _transition(asset_request, "rejected", actor, remark=reason)
        notify(
            "request_rejected",
            asset_request.requester,
            {"request_id": asset_request.request_id, "reason": reason},
        )
    return asset_request


def _form_data(asset_request) -> dict:
    return {
        "category": asset_request.category,
        "quantity": asset_request.quantity,
        "specification": asset_request.specification,
        "reason": asset_request.reason,
        "department": asset_request.department.name,
        "location": asset_request.location,
        "request_type": asset_request.request_type,
        "expected_delivery_date": asset_request.expected_delivery_date,
        "notes": asset_request.notes,
    }


def edit(actor: ActorContext, request_id: int, payload: dict) -> AssetRequest:
    """Update request fields without changing its status.

    Requesters may edit their own request while it is pending; HR and
    admin staff also while it is in progress.
    """
    with atomic_transition():
        asset_request = get_request(request_id, for_update=True)
        require(actor, "request.edit", request_ownership(asset_request))
        editable = (
            ("pending", "in_progress")
            if actor.role in APPROVER_EDIT_ROLES
            else ("pending",)
        )
        if asset_request.status not in editable:
            raise Conflict(
                f"Request {asset_request.request_id} is "
                f"'{asset_request.get_status_display()}' and can no longer "
                f"be edited."
            )
        before = {
            name: getattr(asset_request, name)
            for name in AssetRequestForm.Meta.fields
        }
        data = _form_data(asset_request)
        data.update(payload)
        form = AssetRequestForm(data, instance=asset_request)
        if not form.is_valid():
            raise ValidationError(form_errors(form))
        changed = [
            name
            for name, value in form.cleaned_data.items()
            if before.get(name) != value
        ]
        asset_request = form.save()
        history.record(
            asset_request,
            "updated",
            actor=actor,
            remark=", ".join(changed),
        )
    logger.info(
        "Request %s edited by %s (%s)",
        asset_request.request_id,
        actor.name,
        ", ".join(changed) or "no changes",
    )
    return asset_request


def delete(actor: ActorContext, request_id: int) -> None:
    """Delete a request together with its history, children first."""
    with atomic_transition():
        asset_request = get_request(request_id, for_update=True)
        require(actor, "request.delete", request_ownership(asset_request))
        if not actor.is_admin_staff and asset_request.status != "pending":
            raise Conflict(
                "Only pending requests can be withdrawn by the requester."
            )
        label = asset_request.request_id
        purged = history.purge_request_history(asset_request)
        asset_request.delete()
    logger.info(
        "Request %s deleted by %s (%d history rows)", label, actor.name, purged
    )


def start_procurement(actor: ActorContext, request_id: int) -> AssetRequest:
    with atomic_transition():
        asset_request = get_request(request_id, for_update=True)
        require(actor, "request.progress", request_ownership(asset_request))
        _transition(asset_request, "in_progress", actor)
    return asset_request


def fulfil(
    actor: ActorContext, request_id: int, asset_ids: list[int]
) -> AssetRequest:
    """Allocate the procured assets to the requester and close the request."""
    with atomic_transition():
        asset_request = get_request(request_id, for_update=True)
        require(actor, "request.progress", request_ownership(asset_request))
        if asset_request.status != "in_progress":
            raise InvalidTransition(
                f"Request {asset_request.request_id} is "
                f"'{asset_request.get_status_display()}'; only requests in "
                f"progress can be fulfilled."
            )
        asset_ids = list(dict.fromkeys(asset_ids or []))
        if not 1 <= len(asset_ids) <= asset_request.quantity:
            raise ValidationError(
                {
                    "assets": (
                        f"Provide between 1 and {asset_request.quantity} "
                        f"assets."
                    )
                }
            )
        allocations = [
            allocate(
                actor,
                asset_id,
                asset_request.requester_id,
                request=asset_request,
            )
            for asset_id in asset_ids
        ]
        _transition(
            asset_request,
            "fulfilled",
            actor,
            remark=", ".join(a.asset.asset_tag for a in allocations),
        )
        notify(
            "request_fulfilled",
            asset_request.requester,
            {"request_id": asset_request.request_id},
        )
    return asset_request
