"""JSON endpoints for the asset workflows.

Views are a thin adapter: they parse the payload, build the actor and
call the workflow services, mapping error kinds to HTTP status codes.
"""

import json
import logging
from datetime import date
from functools import wraps

from django_ratelimit.decorators import ratelimit

from django.contrib.auth.decorators import login_required
from django.core.exceptions import (
    ObjectDoesNotExist,
    PermissionDenied,
    ValidationError,
)
from django.core.paginator import Paginator
from django.http import HttpResponse, JsonResponse
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from django.views.decorators.http import require_http_methods

from accounts.roles import change_role

from .exceptions import (
    Conflict,
    InvalidAttachment,
    InvalidState,
    InvalidTransition,
    Unavailable,
)
from .forms import clean_flag, clean_id
from .models import (
    Allocation,
    Asset,
    AssetRequest,
    Ticket,
    TransferRequest,
)
from .services import (
    allocations,
    asset_requests,
    bulk,
    export,
    history,
    maintenance,
    notifications,
    state,
    tickets,
    transfers,
)
from .services.permissions import (
    ActorContext,
    allocation_ownership,
    asset_ownership,
    can,
    request_ownership,
    require,
    scope_queryset,
    ticket_ownership,
    transfer_ownership,
)

logger = logging.getLogger(__name__)

PAGE_SIZE = 50
XLSX_CONTENT_TYPE = (
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
)


# --- Plumbing ---


def error_response(exc) -> JsonResponse:
    """Map a service error kind to a JSON error response."""
    if isinstance(exc, ValidationError):
        kind = (
            "invalid_attachment"
            if isinstance(exc, InvalidAttachment)
            else "validation_error"
        )
        if hasattr(exc, "error_dict"):
            errors = exc.message_dict
        else:
            errors = {"__all__": exc.messages}
        return JsonResponse({"error": kind, "errors": errors}, status=400)
    if isinstance(exc, PermissionDenied):
        return JsonResponse(
            {"error": "forbidden", "detail": str(exc)}, status=403
        )
    if isinstance(exc, ObjectDoesNotExist):
        return JsonResponse(
            {"error": "not_found", "detail": str(exc)}, status=404
        )
    if isinstance(exc, Conflict):
        if isinstance(exc, InvalidTransition):
            kind = "invalid_transition"
        elif isinstance(exc, InvalidState):
            kind = "invalid_state"
        else:
            kind = "conflict"
        return JsonResponse({"error": kind, "detail": str(exc)}, status=409)
    response = JsonResponse(
        {"error": "unavailable", "detail": str(exc)}, status=503
    )
    response["Retry-After"] = "5"
    return response


def api_view(*methods):
    """Require login and an allowed method, pass the actor, map errors."""

    def decorator(view):
        @wraps(view)
        def wrapper(request, *args, **kwargs):
            actor = ActorContext.from_user(request.user)
            try:
                return view(request, actor, *args, **kwargs)
            except (
                ValidationError,
                PermissionDenied,
                ObjectDoesNotExist,
                Conflict,
                Unavailable,
            ) as exc:
                logger.info(
                    "%s %s rejected: %s", request.method, request.path, exc
                )
                return error_response(exc)

        return login_required(require_http_methods(list(methods))(wrapper))

    return decorator


def read_payload(request) -> dict:
    if request.content_type == "application/json":
        try:
            data = json.loads(request.body or b"{}")
        except json.JSONDecodeError:
            raise ValidationError("Request body is not valid JSON.")
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object.")
        return data
    return request.POST.dict()


def paginate(request, queryset, serializer) -> JsonResponse:
    paginator = Paginator(queryset, PAGE_SIZE)
    page = paginator.get_page(request.GET.get("page"))
    return JsonResponse(
        {
            "count": paginator.count,
            "page": page.number,
            "num_pages": paginator.num_pages,
            "results": [serializer(obj) for obj in page],
        }
    )


def xlsx_response(buffer, name) -> HttpResponse:
    response = HttpResponse(buffer.getvalue(), content_type=XLSX_CONTENT_TYPE)
    filename = f"assetdesk-{name}-{date.today().isoformat()}.xlsx"
    response["Content-Disposition"] = f'attachment; filename="{filename}"'
    return response


def _iso(value):
    return value.isoformat() if value else None


# --- Serializers ---


def asset_data(asset: Asset, show_costs: bool = False) -> dict:
    data = {
        "id": asset.pk,
        "asset_tag": asset.asset_tag,
        "name": asset.name,
        "category": asset.category,
        "brand": asset.brand,
        "model": asset.model,
        "serial_number": asset.serial_number,
        "status": asset.status,
        "department": asset.department.name if asset.department else None,
        "location": asset.location,
        "purchase_date": _iso(asset.purchase_date),
        "warranty_end_date": _iso(asset.warranty_end_date),
        "specifications": asset.specifications,
        "retired_at": _iso(asset.retired_at),
    }
    if show_costs:
        cost = asset.purchase_cost
        data["purchase_cost"] = str(cost) if cost is not None else None
    return data


def allocation_data(allocation: Allocation) -> dict:
    return {
        "id": allocation.pk,
        "asset": allocation.asset_id,
        "employee": allocation.employee_id,
        "employee_name": allocation.employee_name,
        "department_name": allocation.department_name,
        "status": allocation.status,
        "allocated_date": _iso(allocation.allocated_date),
        "return_date": _iso(allocation.return_date),
        "condition": allocation.condition,
        "return_condition": allocation.return_condition,
        "notes": allocation.notes,
    }


def request_data(asset_request: AssetRequest) -> dict:
    return {
        "id": asset_request.pk,
        "request_id": asset_request.request_id,
        "requester": asset_request.requester_id,
        "category": asset_request.category,
        "quantity": asset_request.quantity,
        "specification": asset_request.specification,
        "reason": asset_request.reason,
        "department": asset_request.department.name,
        "location": asset_request.location,
        "request_type": asset_request.request_type,
        "expected_delivery_date": _iso(asset_request.expected_delivery_date),
        "status": asset_request.status,
        "approved_by": asset_request.approved_by_id,
        "approved_at": _iso(asset_request.approved_at),
        "rejection_reason": asset_request.rejection_reason,
        "created_at": _iso(asset_request.created_at),
    }


def ticket_data(ticket: Ticket) -> dict:
    return {
        "id": ticket.pk,
        "ticket_id": ticket.ticket_id,
        "reporter": ticket.reporter_id,
        "asset": ticket.asset_id,
        "asset_name": ticket.asset_name,
        "title": ticket.title,
        "description": ticket.description,
        "location": ticket.location,
        "department": ticket.department.name,
        "priority": ticket.priority,
        "issue_category": ticket.issue_category,
        "status": ticket.status,
        "assignee": ticket.assignee_id,
        "deadline": _iso(ticket.deadline),
        "completed_at": _iso(ticket.completed_at),
        "attachment": ticket.attachment.url if ticket.attachment else None,
    }


def transfer_data(transfer: TransferRequest) -> dict:
    return {
        "id": transfer.pk,
        "allocation": transfer.allocation_id,
        "asset": transfer.asset_id,
        "asset_name": transfer.asset_name,
        "from_user": transfer.from_user_id,
        "from_user_name": transfer.from_user_name,
        "to_user": transfer.to_user_id,
        "to_user_name": transfer.to_user_name,
        "status": transfer.status,
        "awaiting": transfer.awaiting if transfer.is_pending else [],
        "notes": transfer.notes,
        "rejection_reason": transfer.rejection_reason,
        "new_allocation": transfer.new_allocation_id,
        "created_at": _iso(transfer.created_at),
        "decided_at": _iso(transfer.decided_at),
    }


def history_data(record) -> dict:
    return {
        "action": record.action,
        "actor": record.actor_name,
        "old_value": record.old_value,
        "new_value": record.new_value,
        "remark": record.remark,
        "timestamp": _iso(record.timestamp),
    }


# --- Assets ---


@ratelimit(key="user_or_ip", rate="60/m", method="POST", block=True)
@api_view("GET", "POST")
def asset_collection(request, actor):
    if request.method == "POST":
        asset = state.create_asset(actor, read_payload(request))
        return JsonResponse(asset_data(asset, show_costs=True), status=201)

    queryset = scope_queryset(
        actor,
        "asset.view",
        Asset.objects.with_related(),
        owner_field="allocations__employee",
        owner_extra={"allocations__status": "active"},
    ).distinct()
    status = request.GET.get("status")
    if status:
        queryset = queryset.filter(status=status)
    return paginate(request, queryset, asset_data)


@api_view("GET")
def asset_detail(request, actor, pk):
    asset = state.get_asset(pk)
    ownership = asset_ownership(asset)
    require(actor, "asset.view", ownership)
    data = asset_data(
        asset, show_costs=can(actor, "asset.view_costs", ownership)
    )
    data["history"] = [
        history_data(r) for r in history.history_for("asset", asset.pk)
    ]
    return JsonResponse(data)


@api_view("POST")
def asset_retire(request, actor, pk):
    payload = read_payload(request)
    asset = state.retire_asset(actor, pk, payload.get("reason", ""))
    return JsonResponse(asset_data(asset))


@api_view("POST")
def asset_start_maintenance(request, actor, pk):
    payload = read_payload(request)
    record = maintenance.start_maintenance(
        actor,
        pk,
        payload.get("maintenance_type", "repair"),
        description=payload.get("description", ""),
        vendor=payload.get("vendor", ""),
    )
    return JsonResponse(
        {"id": record.pk, "asset": record.asset_id, "status": "open"},
        status=201,
    )


@api_view("POST")
def maintenance_complete(request, actor, pk):
    payload = read_payload(request)
    record = maintenance.complete_maintenance(
        actor, pk, cost=payload.get("cost"), notes=payload.get("notes", "")
    )
    return JsonResponse(
        {"id": record.pk, "asset": record.asset_id, "status": "completed"}
    )


@api_view("POST")
def asset_import(request, actor):
    upload = request.FILES.get("file")
    if upload is None:
        raise ValidationError({"file": "Upload an .xlsx file."})
    require(actor, "asset.import")
    report = bulk.import_assets(actor, bulk.read_rows(upload))
    return JsonResponse({"rows": report})


@api_view("GET")
def asset_export(request, actor):
    return xlsx_response(export.export_assets_xlsx(actor), "assets")


# --- Allocations ---


@api_view("POST")
def allocation_create(request, actor):
    payload = read_payload(request)
    allocation = allocations.allocate(
        actor,
        clean_id(payload, "asset"),
        clean_id(payload, "employee"),
        details={
            "condition": payload.get("condition"),
            "notes": payload.get("notes", ""),
        },
    )
    return JsonResponse(allocation_data(allocation), status=201)


@api_view("GET")
def allocation_detail(request, actor, pk):
    allocation = allocations.get_allocation(pk)
    require(actor, "allocation.view", allocation_ownership(allocation))
    data = allocation_data(allocation)
    data["history"] = [
        history_data(r)
        for r in history.history_for("allocation", allocation.pk)
    ]
    return JsonResponse(data)


@api_view("POST")
def allocation_return(request, actor, pk):
    payload = read_payload(request)
    allocation = allocations.return_allocation(
        actor,
        pk,
        condition=payload.get("condition", "good"),
        notes=payload.get("notes", ""),
        send_to_maintenance=clean_flag(payload, "send_to_maintenance"),
    )
    return JsonResponse(allocation_data(allocation))


@api_view("POST")
def allocation_transfer(request, actor, pk):
    payload = read_payload(request)
    allocation = allocations.transfer_allocation(
        actor,
        pk,
        clean_id(payload, "employee"),
        notes=payload.get("notes", ""),
    )
    return JsonResponse(allocation_data(allocation), status=201)


@api_view("GET")
def allocation_export(request, actor):
    return xlsx_response(export.export_allocations_xlsx(actor), "allocations")


# --- Transfer requests ---


@api_view("POST")
def allocation_transfer_request(request, actor, pk):
    payload = read_payload(request)
    transfer = transfers.request_transfer(
        actor,
        pk,
        clean_id(payload, "to_user"),
        notes=payload.get("notes", ""),
    )
    return JsonResponse(transfer_data(transfer), status=201)


@api_view("GET")
def transfer_collection(request, actor):
    queryset = scope_queryset(
        actor,
        "transfer.view",
        TransferRequest.objects.select_related("asset"),
        owner_field=("from_user", "to_user"),
        department_field="asset__department",
    )
    status = request.GET.get("status")
    if status:
        queryset = queryset.filter(status=status)
    return paginate(request, queryset, transfer_data)


@api_view("GET")
def transfer_detail(request, actor, pk):
    transfer = transfers.get_transfer(pk)
    require(actor, "transfer.view", transfer_ownership(transfer))
    data = transfer_data(transfer)
    data["history"] = [
        history_data(r) for r in history.history_for("transfer", transfer.pk)
    ]
    return JsonResponse(data)


@api_view("POST")
def transfer_approve(request, actor, pk):
    return JsonResponse(transfer_data(transfers.approve_transfer(actor, pk)))


@api_view("POST")
def transfer_reject(request, actor, pk):
    payload = read_payload(request)
    transfer = transfers.reject_transfer(
        actor, pk, payload.get("reason", "")
    )
    return JsonResponse(transfer_data(transfer))


# --- Requests ---


@ratelimit(key="user_or_ip", rate="30/m", method="POST", block=True)
@api_view("GET", "POST")
def request_collection(request, actor):
    if request.method == "POST":
        asset_request = asset_requests.submit(actor, read_payload(request))
        return JsonResponse(request_data(asset_request), status=201)

    queryset = scope_queryset(
        actor,
        "request.view",
        AssetRequest.objects.select_related("department"),
        owner_field="requester",
    )
    status = request.GET.get("status")
    if status:
        queryset = queryset.filter(status=status)
    return paginate(request, queryset, request_data)


@api_view("GET", "PATCH", "DELETE")
def request_detail(request, actor, pk):
    if request.method == "PATCH":
        asset_request = asset_requests.edit(actor, pk, read_payload(request))
        return JsonResponse(request_data(asset_request))
    if request.method == "DELETE":
        asset_requests.delete(actor, pk)
        return HttpResponse(status=204)

    asset_request = asset_requests.get_request(pk)
    require(actor, "request.view", request_ownership(asset_request))
    data = request_data(asset_request)
    data["history"] = [
        history_data(r)
        for r in history.history_for("request", asset_request.pk)
    ]
    return JsonResponse(data)


@api_view("POST")
def request_approve(request, actor, pk):
    return JsonResponse(request_data(asset_requests.approve(actor, pk)))


@api_view("POST")
def request_reject(request, actor, pk):
    payload = read_payload(request)
    asset_request = asset_requests.reject(
        actor, pk, payload.get("reason", "")
    )
    return JsonResponse(request_data(asset_request))


@api_view("POST")
def request_start(request, actor, pk):
    return JsonResponse(
        request_data(asset_requests.start_procurement(actor, pk))
    )


@api_view("POST")
def request_fulfil(request, actor, pk):
    payload = read_payload(request)
    asset_ids = payload.get("assets") or []
    if not isinstance(asset_ids, list):
        raise ValidationError({"assets": "Provide a list of asset ids."})
    asset_ids = [
        clean_id({"assets": asset_id}, "assets") for asset_id in asset_ids
    ]
    return JsonResponse(
        request_data(asset_requests.fulfil(actor, pk, asset_ids))
    )


# --- Tickets ---


@ratelimit(key="user_or_ip", rate="30/m", method="POST", block=True)
@api_view("GET", "POST")
def ticket_collection(request, actor):
    if request.method == "POST":
        ticket = tickets.create(
            actor,
            read_payload(request),
            attachment=request.FILES.get("attachment"),
        )
        return JsonResponse(ticket_data(ticket), status=201)

    queryset = scope_queryset(
        actor,
        "ticket.view",
        Ticket.objects.select_related("department"),
        owner_field="reporter",
    )
    status = request.GET.get("status")
    if status:
        queryset = queryset.filter(status=status)
    return paginate(request, queryset, ticket_data)


@api_view("GET", "PATCH")
def ticket_detail(request, actor, pk):
    if request.method == "PATCH":
        ticket = tickets.edit(actor, pk, read_payload(request))
        return JsonResponse(ticket_data(ticket))

    ticket = tickets.get_ticket(pk)
    require(actor, "ticket.view", ticket_ownership(ticket))
    data = ticket_data(ticket)
    data["comments"] = [
        {
            "author": c.author.get_display_name() if c.author else "",
            "comment": c.comment,
            "created_at": _iso(c.created_at),
        }
        for c in ticket.comments.select_related("author")
    ]
    data["history"] = [
        history_data(r) for r in history.history_for("ticket", ticket.pk)
    ]
    return JsonResponse(data)


@api_view("POST")
def ticket_status(request, actor, pk):
    payload = read_payload(request)
    ticket = tickets.update_status(
        actor, pk, payload.get("status", ""), payload.get("remark", "")
    )
    return JsonResponse(ticket_data(ticket))


@api_view("POST")
def ticket_cancel(request, actor, pk):
    payload = read_payload(request)
    ticket = tickets.cancel(actor, pk, payload.get("remark", ""))
    return JsonResponse(ticket_data(ticket))


@api_view("POST")
def ticket_assign(request, actor, pk):
    payload = read_payload(request)
    deadline = None
    if payload.get("deadline"):
        deadline = parse_datetime(payload["deadline"])
        if deadline is None:
            raise ValidationError({"deadline": "Enter a valid date/time."})
        if timezone.is_naive(deadline):
            deadline = timezone.make_aware(deadline)
    ticket = tickets.assign(
        actor, pk, clean_id(payload, "assignee"), deadline
    )
    return JsonResponse(ticket_data(ticket))


@api_view("POST")
def ticket_comment(request, actor, pk):
    payload = read_payload(request)
    comment = tickets.add_comment(actor, pk, payload.get("comment", ""))
    return JsonResponse(
        {"id": comment.pk, "comment": comment.comment}, status=201
    )


# --- Administration ---


@api_view("POST")
def user_role(request, actor, pk):
    payload = read_payload(request)
    user = change_role(
        actor,
        pk,
        payload.get("role", ""),
        clean_id(payload, "department", required=False),
    )
    return JsonResponse(
        {
            "id": user.pk,
            "role": user.role,
            "department": user.department.name if user.department else None,
        }
    )


@api_view("POST")
def user_import(request, actor):
    upload = request.FILES.get("file")
    if upload is None:
        raise ValidationError({"file": "Upload an .xlsx file."})
    require(actor, "user.import")
    report = bulk.import_users(actor, bulk.read_rows(upload))
    return JsonResponse({"rows": report})


@api_view("PUT", "POST")
def notification_setting(request, actor, notification_type):
    payload = read_payload(request)
    setting = notifications.update_notification_setting(
        actor, notification_type, clean_flag(payload, "enabled")
    )
    return JsonResponse(
        {
            "notification_type": setting.notification_type,
            "enabled": setting.enabled,
        }
    )
