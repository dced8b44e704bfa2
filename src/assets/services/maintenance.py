"""Maintenance records: taking assets out of service and back."""

import logging
from decimal import Decimal, InvalidOperation

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
from ..models import MaintenanceRecord
from .permissions import ActorContext, require
from .state import get_asset, sync_status

logger = logging.getLogger(__name__)


def open_record(
    asset,
    actor: ActorContext,
    maintenance_type: str,
    description: str = "",
    vendor: str = "",
    ticket=None,
) -> MaintenanceRecord:
    """Insert an open maintenance record for a locked asset.

    The partial unique constraint rejects a second open record, which
    surfaces as Conflict.
    """
    if maintenance_type not in dict(MaintenanceRecord.TYPE_CHOICES):
        raise ValidationError(
            {
                "maintenance_type": (
                    f"'{maintenance_type}' is not a maintenance type."
                )
            }
        )
    try:
        with transaction.atomic():
            return MaintenanceRecord.objects.create(
                asset=asset,
                maintenance_type=maintenance_type,
                description=description,
                vendor=vendor,
                ticket=ticket,
                started_by_id=actor.id,
            )
    except IntegrityError:
        raise Conflict(
            f"Asset {asset.asset_tag} already has open maintenance."
        )


def start_maintenance(
    actor: ActorContext,
    asset_id: int,
    maintenance_type: str,
    description: str = "",
    vendor: str = "",
    ticket=None,
) -> MaintenanceRecord:
    """Send an available asset to maintenance."""
    require(actor, "asset.maintain")
    with atomic_transition():
        asset = get_asset(asset_id, for_update=True)
        if asset.status == "retired":
            raise InvalidTransition(f"Asset {asset.asset_tag} is retired.")
        if asset.allocations.filter(status="active").exists():
            raise Conflict(
                f"Asset {asset.asset_tag} is allocated. Return it with "
                f"send_to_maintenance instead."
            )
        record = open_record(
            asset, actor, maintenance_type, description, vendor, ticket
        )
        sync_status(
            asset,
            actor,
            f"Maintenance started: {record.get_maintenance_type_display()}",
        )
    logger.info("Maintenance started on %s", asset.asset_tag)
    return record


def complete_maintenance(
    actor: ActorContext,
    record_id: int,
    cost: Decimal | None = None,
    notes: str = "",
) -> MaintenanceRecord:
    """Close an open maintenance record and return the asset to service."""
    require(actor, "asset.maintain")
    if cost is not None:
        try:
            cost = Decimal(str(cost))
        except InvalidOperation:
            raise ValidationError({"cost": "Enter a valid amount."})
        if cost < 0:
            raise ValidationError({"cost": "Cost cannot be negative."})
    with atomic_transition():
        try:
            asset_id = MaintenanceRecord.objects.values_list(
                "asset_id", flat=True
            ).get(pk=record_id)
        except MaintenanceRecord.DoesNotExist:
            raise NotFound(f"Maintenance record {record_id} does not exist.")
        # Lock order: asset, then record
        asset = get_asset(asset_id, for_update=True)
        record = MaintenanceRecord.objects.select_for_update().get(
            pk=record_id
        )
        if not record.is_open:
            raise InvalidState("This maintenance record is already closed.")
        record.completed_at = timezone.now()
        record.completed_by_id = actor.id
        record.cost = cost
        if notes:
            record.notes = notes
        record.save(
            update_fields=["completed_at", "completed_by", "cost", "notes"]
        )
        sync_status(asset, actor, "Maintenance completed")
    logger.info("Maintenance completed on %s", asset.asset_tag)
    return record
