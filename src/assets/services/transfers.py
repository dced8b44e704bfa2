"""Transfer requests: proposed moves of an allocated asset.

A request stays pending until the current holder and the recipient have
both approved it, or until admin staff approve it on their behalf. Only
approval moves the allocation, through the same ledger code as a direct
transfer and inside the same transaction. Locks are taken asset first,
then allocation, then the transfer request.
"""

import logging

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from ..exceptions import (
    Conflict,
    InvalidState,
    InvalidTransition,
    NotFound,
    atomic_transition,
)
from ..models import TransferRequest
from . import history
from .allocations import get_employee, lock_allocation, move_allocation
from .notifications import notify
from .permissions import ActorContext, can, require, transfer_ownership

logger = logging.getLogger(__name__)


def get_transfer(transfer_id: int) -> TransferRequest:
    try:
        return TransferRequest.objects.select_related(
            "asset", "allocation", "from_user", "to_user"
        ).get(pk=transfer_id)
    except TransferRequest.DoesNotExist:
        raise NotFound(f"Transfer request {transfer_id} does not exist.")


def _lock_transfer(transfer_id: int):
    try:
        allocation_id = TransferRequest.objects.values_list(
            "allocation_id", flat=True
        ).get(pk=transfer_id)
    except TransferRequest.DoesNotExist:
        raise NotFound(f"Transfer request {transfer_id} does not exist.")
    asset, allocation = lock_allocation(allocation_id)
    transfer = (
        TransferRequest.objects.select_for_update()
        .select_related("from_user", "to_user")
        .get(pk=transfer_id)
    )
    transfer.asset = asset
    transfer.allocation = allocation
    return transfer


def _payload(transfer, **extra) -> dict:
    return {
        "transfer_id": transfer.pk,
        "asset_tag": transfer.asset.asset_tag,
        "asset_name": transfer.asset_name,
        "from_user": transfer.from_user_name or "unassigned",
        "to_user": transfer.to_user_name,
        **extra,
    }


def _notify_parties(event_type, transfer, payload):
    for party in (transfer.from_user, transfer.to_user):
        notify(event_type, party, payload)


def _require_pending(transfer):
    if not transfer.is_pending:
        raise InvalidTransition(
            f"Transfer request {transfer.pk} is already "
            f"{transfer.get_status_display().lower()}."
        )


def request_transfer(
    actor: ActorContext,
    allocation_id: int,
    to_user_id: int,
    notes: str = "",
) -> TransferRequest:
    """Propose moving an active allocation to ``to_user_id``.

    Both employees are asked to approve. An allocation has at most one
    pending transfer request.
    """
    require(actor, "transfer.request")

    with atomic_transition():
        to_user = get_employee(to_user_id)
        asset, allocation = lock_allocation(allocation_id)
        if not allocation.is_active:
            raise InvalidState(
                f"Allocation {allocation.pk} is not active and cannot be "
                f"transferred."
            )
        if allocation.employee_id == to_user.pk:
            raise ValidationError(
                {"to_user": "The asset is already held by this employee."}
            )
        try:
            with transaction.atomic():
                transfer = TransferRequest.objects.create(
                    allocation=allocation,
                    asset=asset,
                    asset_name=asset.name,
                    from_user=allocation.employee,
                    from_user_name=allocation.employee_name,
                    to_user=to_user,
                    to_user_name=to_user.get_display_name(),
                    initiated_by_id=actor.id,
                    notes=notes,
                )
        except IntegrityError:
            raise Conflict(
                f"Asset {asset.asset_tag} already has a pending transfer."
            )
        history.record(
            transfer,
            "requested",
            actor=actor,
            remark=notes,
            new_value="pending",
        )
        _notify_parties(
            "transfer_requested",
            transfer,
            _payload(transfer, initiator=actor.name or "Admin"),
        )
    logger.info(
        "Transfer of %s to %s requested by %s",
        asset.asset_tag,
        transfer.to_user_name,
        actor.name,
    )
    return transfer


def approve_transfer(
    actor: ActorContext, transfer_id: int
) -> TransferRequest:
    """Record an approval; complete the transfer once nobody is awaited.

    Admin staff approve on behalf of both employees.
    """
    with atomic_transition():
        transfer = _lock_transfer(transfer_id)
        require(actor, "transfer.approve", transfer_ownership(transfer))
        _require_pending(transfer)
        if not transfer.allocation.is_active:
            raise InvalidState(
                f"Allocation {transfer.allocation_id} has been closed since "
                f"transfer request {transfer.pk} was made."
            )
        now = timezone.now()
        on_behalf = can(actor, "transfer.approve")
        if on_behalf or actor.id == transfer.from_user_id:
            transfer.from_user_approved_at = (
                transfer.from_user_approved_at or now
            )
        if on_behalf or actor.id == transfer.to_user_id:
            transfer.to_user_approved_at = transfer.to_user_approved_at or now
        history.record(transfer, "approved", actor=actor)

        if transfer.awaiting:
            transfer.save(
                update_fields=[
                    "from_user_approved_at",
                    "to_user_approved_at",
                    "updated_at",
                ]
            )
            logger.info(
                "Transfer %s approved by %s, awaiting %s",
                transfer.pk,
                actor.name,
                transfer.awaiting,
            )
            return transfer

        new_employee = get_employee(transfer.to_user_id)
        transfer.new_allocation = move_allocation(
            actor,
            transfer.asset,
            transfer.allocation,
            new_employee,
            transfer.notes,
        )
        transfer.status = "approved"
        transfer.decided_by_id = actor.id
        transfer.decided_at = now
        transfer.save()
        history.record(
            transfer,
            "completed",
            actor=actor,
            old_value="pending",
            new_value="approved",
        )
        _notify_parties("transfer_completed", transfer, _payload(transfer))
    logger.info("Transfer %s completed by %s", transfer.pk, actor.name)
    return transfer


def reject_transfer(
    actor: ActorContext, transfer_id: int, reason: str = ""
) -> TransferRequest:
    """Turn down a pending transfer; the allocation stays as it is."""
    with atomic_transition():
        transfer = _lock_transfer(transfer_id)
        require(actor, "transfer.reject", transfer_ownership(transfer))
        _require_pending(transfer)
        transfer.status = "rejected"
        transfer.rejection_reason = (reason or "").strip()
        transfer.decided_by_id = actor.id
        transfer.decided_at = timezone.now()
        transfer.save(
            update_fields=[
                "status",
                "rejection_reason",
                "decided_by",
                "decided_at",
                "updated_at",
            ]
        )
        history.record(
            transfer,
            "rejected",
            actor=actor,
            remark=transfer.rejection_reason,
            old_value="pending",
            new_value="rejected",
        )
        _notify_parties(
            "transfer_rejected",
            transfer,
            _payload(
                transfer,
                reason=transfer.rejection_reason or "no reason given",
            ),
        )
    logger.info("Transfer %s rejected by %s", transfer.pk, actor.name)
    return transfer
