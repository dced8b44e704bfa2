"""Asset registry: creation, status transitions and retirement.

Asset status is derived from the authoritative records (retirement,
open maintenance, active allocation). Other services never assign
``Asset.status`` themselves; they call ``sync_status`` inside their own
transaction after changing those records.
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
from ..forms import AssetForm, form_errors
from ..models import Asset
from . import history
from .permissions import ActorContext, require

logger = logging.getLogger(__name__)


def get_asset(asset_id: int, for_update: bool = False) -> Asset:
    """Fetch an asset, optionally locking its row for the transaction."""
    queryset = Asset.objects.all()
    if for_update:
        queryset = queryset.select_for_update()
    try:
        return queryset.get(pk=asset_id)
    except Asset.DoesNotExist:
        raise NotFound(f"Asset {asset_id} does not exist.")


def derive_status(asset: Asset) -> str:
    """Compute the status implied by the asset's records."""
    if asset.retired_at is not None:
        return "retired"
    if asset.maintenance_records.filter(completed_at__isnull=True).exists():
        return "under_maintenance"
    if asset.allocations.filter(status="active").exists():
        return "assigned"
    return "available"


def validate_transition(asset: Asset, new_status: str) -> None:
    """Validate and raise if the status transition is not allowed."""
    if new_status not in dict(Asset.STATUS_CHOICES):
        raise ValidationError(f"'{new_status}' is not a valid status.")

    if not asset.can_transition_to(new_status):
        allowed = Asset.VALID_TRANSITIONS.get(asset.status, [])
        raise InvalidTransition(
            f"Cannot transition asset {asset.asset_tag} from "
            f"'{asset.get_status_display()}' to '{new_status}'. "
            f"Allowed transitions: {', '.join(allowed) or 'none'}."
        )


def update_status(
    asset: Asset,
    new_status: str,
    reason: str = "",
    actor: ActorContext | None = None,
) -> Asset:
    """Apply a status change and record it.

    Internal to the services package: callers hold the asset row lock
    and run inside ``atomic_transition``.
    """
    if new_status == asset.status:
        return asset
    validate_transition(asset, new_status)
    old_status = asset.status
    asset.status = new_status
    asset.save(update_fields=["status", "retired_at", "updated_at"])
    history.record(
        asset,
        "status_changed",
        actor=actor,
        remark=reason,
        old_value=old_status,
        new_value=new_status,
    )
    logger.info(
        "Asset %s status %s -> %s", asset.asset_tag, old_status, new_status
    )
    return asset


def sync_status(
    asset: Asset, actor: ActorContext | None = None, reason: str = ""
) -> Asset:
    """Bring the stored status in line with the derived status."""
    return update_status(asset, derive_status(asset), reason, actor)


def create_asset(actor: ActorContext, payload: dict) -> Asset:
    """Register a new asset in the ``available`` state."""
    require(actor, "asset.create")
    form = AssetForm(payload)
    if not form.is_valid():
        raise ValidationError(form_errors(form))
    with atomic_transition():
        asset = form.save(commit=False)
        asset.status = "available"
        asset.created_by_id = actor.id
        asset.save()
        history.record(
            asset, "created", actor=actor, new_value=asset.status
        )
    logger.info("Asset %s created by %s", asset.asset_tag, actor.name)
    return asset


def retire_asset(
    actor: ActorContext, asset_id: int, reason: str = ""
) -> Asset:
    """Soft-retire an asset. Retired is terminal.

    An open maintenance record is closed as part of the retirement; an
    active allocation must be returned first.
    """
    require(actor, "asset.retire")
    with atomic_transition():
        asset = get_asset(asset_id, for_update=True)
        if asset.status == "retired":
            raise InvalidTransition(
                f"Asset {asset.asset_tag} is already retired."
            )
        if asset.allocations.filter(status="active").exists():
            raise Conflict(
                f"Asset {asset.asset_tag} is allocated. Return it before "
                f"retiring."
            )
        now = timezone.now()
        asset.maintenance_records.filter(completed_at__isnull=True).update(
            completed_at=now,
            completed_by_id=actor.id,
            notes="Closed on retirement.",
        )
        asset.retired_at = now
        sync_status(asset, actor, reason or "Retired")
    return asset
