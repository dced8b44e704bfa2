"""Allocation ledger: assigning, returning and transferring assets.

At most one active allocation exists per asset. Every operation locks
the asset row first, then the allocation, and the partial unique
constraint ``unique_active_allocation_per_asset`` rejects any insert
that would slip past the lock.
"""

import logging

from django.contrib.auth import get_user_model
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
from ..models import CONDITION_CHOICES, Allocation
from . import history
from .maintenance import open_record
from .notifications import notify
from .permissions import ActorContext, require
from .state import get_asset, sync_status

logger = logging.getLogger(__name__)

User = get_user_model()


def get_employee(employee_id: int):
    try:
        return User.objects.select_related("department").get(
            pk=employee_id, is_active=True
        )
    except User.DoesNotExist:
        raise NotFound(f"Employee {employee_id} does not exist.")


def _validate_condition(condition: str, field: str = "condition") -> None:
    if condition not in dict(CONDITION_CHOICES):
        raise ValidationError({field: f"'{condition}' is not a condition."})


def lock_allocation(allocation_id: int):
    """Lock an allocation and its asset, asset first."""
    try:
        asset_id = Allocation.objects.values_list("asset_id", flat=True).get(
            pk=allocation_id
        )
    except Allocation.DoesNotExist:
        raise NotFound(f"Allocation {allocation_id} does not exist.")
    asset = get_asset(asset_id, for_update=True)
    allocation = (
        Allocation.objects.select_for_update()
        .select_related("employee")
        .get(pk=allocation_id)
    )
    allocation.asset = asset
    return asset, allocation


def _open_allocation(asset, employee, actor, condition, notes, request=None):
    """Insert the active allocation row; the database has the final say."""
    try:
        with transaction.atomic():
            return Allocation.objects.create(
                asset=asset,
                employee=employee,
                employee_name=employee.get_display_name(),
                department_name=(
                    employee.department.name if employee.department else ""
                ),
                allocated_by_id=actor.id,
                request=request,
                condition=condition,
                notes=notes,
            )
    except IntegrityError:
        raise Conflict(f"Asset {asset.asset_tag} is already allocated.")


def get_allocation(allocation_id: int) -> Allocation:
    try:
        return Allocation.objects.select_related("asset", "employee").get(
            pk=allocation_id
        )
    except Allocation.DoesNotExist:
        raise NotFound(f"Allocation {allocation_id} does not exist.")


def allocate(
    actor: ActorContext,
    asset_id: int,
    employee_id: int,
    details: dict | None = None,
    request=None,
) -> Allocation:
    """Assign an asset to an employee.

    Fails with Conflict when the asset already has an active allocation
    or is under maintenance.
    """
    require(actor, "allocation.create")
    details = details or {}
    condition = details.get("condition") or "good"
    _validate_condition(condition)

    with atomic_transition():
        employee = get_employee(employee_id)
        asset = get_asset(asset_id, for_update=True)
        if asset.status == "retired":
            raise InvalidTransition(f"Asset {asset.asset_tag} is retired.")
        if asset.allocations.filter(status="active").exists():
            raise Conflict(f"Asset {asset.asset_tag} is already allocated.")
        if asset.status == "under_maintenance":
            raise Conflict(
                f"Asset {asset.asset_tag} is under maintenance."
            )
        allocation = _open_allocation(
            asset,
            employee,
            actor,
            condition,
            details.get("notes", ""),
            request=request,
        )
        history.record(
            allocation,
            "assigned",
            actor=actor,
            remark=f"Assigned to {allocation.employee_name}",
            new_value="active",
        )
        sync_status(asset, actor, f"Assigned to {allocation.employee_name}")
        notify(
            "asset_assigned",
            employee,
            {
                "asset_tag": asset.asset_tag,
                "asset_name": asset.name,
                "allocation_id": allocation.pk,
            },
        )
    logger.info(
        "Asset %s allocated to %s by %s",
        asset.asset_tag,
        allocation.employee_name,
        actor.name,
    )
    return allocation


def return_allocation(
    actor: ActorContext,
    allocation_id: int,
    condition: str = "good",
    notes: str = "",
    send_to_maintenance: bool = False,
    maintenance_type: str = "repair",
) -> Allocation:
    """Close an active allocation.

    The asset becomes available again, or goes straight to maintenance
    when ``send_to_maintenance`` is set.
    """
    require(actor, "allocation.return")
    _validate_condition(condition, "return_condition")

    with atomic_transition():
        asset, allocation = lock_allocation(allocation_id)
        if not allocation.is_active:
            raise InvalidState(
                f"Allocation {allocation.pk} has already been returned."
            )
        allocation.status = "returned"
        allocation.return_date = timezone.now()
        allocation.return_condition = condition
        if notes:
            allocation.notes = notes
        allocation.save(
            update_fields=[
                "status",
                "return_date",
                "return_condition",
                "notes",
                "updated_at",
            ]
        )
        history.record(
            allocation,
            "returned",
            actor=actor,
            remark=notes,
            old_value="active",
            new_value=condition,
        )
        if send_to_maintenance:
            open_record(
                asset,
                actor,
                maintenance_type,
                description=notes or f"Returned in {condition} condition",
            )
        sync_status(asset, actor, f"Returned by {allocation.employee_name}")
    logger.info(
        "Allocation %s of %s returned (%s)",
        allocation.pk,
        asset.asset_tag,
        condition,
    )
    return allocation


def move_allocation(actor, asset, old, new_employee, notes=""):
    """Close ``old`` and open an allocation for ``new_employee``.

    Callers hold the asset and allocation locks (``lock_allocation``)
    and have already checked the actor's permission.
    """
    if not old.is_active:
        raise InvalidState(
            f"Allocation {old.pk} is not active and cannot be transferred."
        )
    if old.employee_id == new_employee.pk:
        raise ValidationError(
            {"employee": "The asset is already held by this employee."}
        )
    old.status = "returned"
    old.return_date = timezone.now()
    old.return_condition = old.condition
    old.save(
        update_fields=[
            "status",
            "return_date",
            "return_condition",
            "updated_at",
        ]
    )
    history.record(
        old,
        "returned",
        actor=actor,
        remark=f"Transferred to {new_employee.get_display_name()}",
        old_value="active",
        new_value=old.return_condition,
    )
    new = _open_allocation(asset, new_employee, actor, old.condition, notes)
    history.record(
        new,
        "assigned",
        actor=actor,
        remark=f"Transferred from {old.employee_name}",
        new_value="active",
    )
    sync_status(asset, actor)
    notify(
        "asset_assigned",
        new_employee,
        {
            "asset_tag": asset.asset_tag,
            "asset_name": asset.name,
            "allocation_id": new.pk,
        },
    )
    logger.info(
        "Asset %s transferred from %s to %s",
        asset.asset_tag,
        old.employee_name,
        new.employee_name,
    )
    return new


def transfer_allocation(
    actor: ActorContext,
    allocation_id: int,
    new_employee_id: int,
    notes: str = "",
) -> Allocation:
    """Move an allocated asset to another employee in one transaction.

    Returns the new active allocation.
    """
    require(actor, "allocation.transfer")

    with atomic_transition():
        new_employee = get_employee(new_employee_id)
        asset, old = lock_allocation(allocation_id)
        return move_allocation(actor, asset, old, new_employee, notes)
