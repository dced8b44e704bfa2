"""Audit trail writer.

Callers invoke ``record()`` inside the same transaction as the
transition it describes, so a committed transition always has its entry.
"""

from ..models import (
    Allocation,
    Asset,
    AssetRequest,
    HistoryRecord,
    Ticket,
    TransferRequest,
)


def record(
    subject,
    action: str,
    actor=None,
    remark: str = "",
    old_value: str = "",
    new_value: str = "",
) -> HistoryRecord:
    """Append a history entry for ``subject``.

    ``subject`` is an Asset, AssetRequest, Allocation, Ticket,
    TransferRequest or user.
    ``actor`` is an ActorContext (or None for system actions).
    """
    extra = {}
    if isinstance(subject, Asset):
        subject_type = "asset"
        extra["asset"] = subject
    elif isinstance(subject, AssetRequest):
        subject_type = "request"
        extra["request"] = subject
    elif isinstance(subject, Allocation):
        subject_type = "allocation"
        extra["asset_id"] = subject.asset_id
    elif isinstance(subject, Ticket):
        subject_type = "ticket"
        extra["asset_id"] = subject.asset_id
    elif isinstance(subject, TransferRequest):
        subject_type = "transfer"
        extra["asset_id"] = subject.asset_id
    else:
        subject_type = "user"

    return HistoryRecord.objects.create(
        subject_type=subject_type,
        subject_id=subject.pk,
        action=action,
        actor_id=actor.id if actor else None,
        actor_name=actor.name if actor else "",
        remark=remark or "",
        old_value=old_value or "",
        new_value=new_value or "",
        **extra,
    )


def history_for(subject_type: str, subject_id: int):
    return HistoryRecord.objects.for_subject(subject_type, subject_id)


def purge_request_history(asset_request) -> int:
    """Delete every history row referencing a request.

    Only request deletion does this; it must run in the same
    transaction as the request delete.
    """
    deleted, _ = HistoryRecord.objects.filter(
        subject_type="request", subject_id=asset_request.pk
    ).delete()
    return deleted
