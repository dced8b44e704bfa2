"""Admin configuration for assets app using django-unfold.

Status fields and the allocation ledger are read-only here; changes go
through the workflow services so that history and the policy checks
apply to admin users too.
"""

import logging
from datetime import date

from unfold.admin import ModelAdmin, TabularInline
from unfold.contrib.filters.admin import (
    ChoicesDropdownFilter,
    RelatedDropdownFilter,
)
from unfold.decorators import action, display
from unfold.enums import ActionVariant

from django.contrib import admin, messages
from django.core.exceptions import (
    ObjectDoesNotExist,
    PermissionDenied,
    ValidationError,
)
from django.http import HttpResponse

from .exceptions import Conflict, Unavailable
from .models import (
    Allocation,
    Asset,
    AssetRequest,
    Department,
    HistoryRecord,
    MaintenanceRecord,
    NotificationSetting,
    Ticket,
    TicketComment,
    TransferRequest,
)
from .services import (
    allocations,
    asset_requests,
    history,
    maintenance,
    notifications,
    state,
    tickets,
    transfers,
)
from .services.permissions import ActorContext

logger = logging.getLogger(__name__)

XLSX_CONTENT_TYPE = (
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
)

SERVICE_ERRORS = (
    Conflict,
    ObjectDoesNotExist,
    PermissionDenied,
    ValidationError,
    Unavailable,
)


def _error_message(exc) -> str:
    return "; ".join(getattr(exc, "messages", [str(exc)]))


def run_for_each(request, queryset, operation, verb):
    """Apply ``operation(actor, obj)`` to each selected object.

    Failures are reported per object; the rest still go through.
    """
    actor = ActorContext.from_user(request.user)
    done = 0
    for obj in queryset:
        try:
            operation(actor, obj)
        except SERVICE_ERRORS as e:
            messages.error(request, f"{obj}: {_error_message(e)}")
        else:
            done += 1
    if done:
        messages.success(request, f"{done} item(s) {verb}.")


class ReadOnlyInline(TabularInline):
    extra = 0
    can_delete = False
    show_change_link = True

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False


class AllocationInline(ReadOnlyInline):
    model = Allocation
    fk_name = "asset"
    fields = [
        "employee_name",
        "status",
        "allocated_date",
        "return_date",
        "condition",
        "return_condition",
    ]
    readonly_fields = fields


class MaintenanceInline(ReadOnlyInline):
    model = MaintenanceRecord
    fields = [
        "maintenance_type",
        "vendor",
        "started_at",
        "completed_at",
        "cost",
    ]
    readonly_fields = fields


class AssetHistoryInline(ReadOnlyInline):
    model = HistoryRecord
    fk_name = "asset"
    show_change_link = False
    fields = [
        "timestamp",
        "subject_type",
        "action",
        "actor_name",
        "old_value",
        "new_value",
        "remark",
    ]
    readonly_fields = fields


class TicketCommentInline(ReadOnlyInline):
    model = TicketComment
    show_change_link = False
    fields = ["author", "comment", "created_at"]
    readonly_fields = fields


@admin.register(Department)
class DepartmentAdmin(ModelAdmin):
    list_display = [
        "name",
        "description",
        "display_head",
        "display_active",
        "display_member_count",
        "display_asset_count",
    ]
    list_filter = ["is_active"]
    search_fields = ["name", "description"]

    @display(description="Head", empty_value="-")
    def display_head(self, obj):
        head = obj.head
        return head.get_display_name() if head else None

    @display(description="Active", boolean=True)
    def display_active(self, obj):
        return obj.is_active

    @display(description="Members")
    def display_member_count(self, obj):
        return obj.members.filter(is_active=True).count()

    @display(description="Assets")
    def display_asset_count(self, obj):
        return obj.assets.exclude(status="retired").count()


@admin.register(Asset)
class AssetAdmin(ModelAdmin):
    list_display = [
        "display_header",
        "display_status",
        "category",
        "department",
        "location",
        "display_holder",
        "updated_at",
    ]
    list_filter = [
        ("status", ChoicesDropdownFilter),
        ("category", ChoicesDropdownFilter),
        ("department", RelatedDropdownFilter),
    ]
    list_filter_submit = True
    search_fields = ["name", "asset_tag", "serial_number", "brand", "model"]
    readonly_fields = [
        "status",
        "retired_at",
        "created_by",
        "created_at",
        "updated_at",
    ]
    autocomplete_fields = ["department"]
    inlines = [AllocationInline, MaintenanceInline, AssetHistoryInline]
    actions = ["export_xlsx", "retire_selected"]

    fieldsets = (
        (
            None,
            {
                "fields": (
                    "asset_tag",
                    "name",
                    "category",
                    "status",
                    "department",
                    "location",
                )
            },
        ),
        (
            "Details",
            {
                "fields": (
                    "brand",
                    "model",
                    "serial_number",
                    "specifications",
                    "notes",
                ),
                "classes": ["tab"],
            },
        ),
        (
            "Purchase",
            {
                "fields": (
                    "purchase_date",
                    "purchase_cost",
                    "warranty_end_date",
                ),
                "classes": ["tab"],
            },
        ),
        (
            "Tracking",
            {
                "fields": (
                    "retired_at",
                    "created_by",
                    "created_at",
                    "updated_at",
                ),
                "classes": ["tab"],
            },
        ),
    )

    def get_queryset(self, request):
        return Asset.objects.with_related()

    @display(description="Asset", header=True, ordering="name")
    def display_header(self, obj):
        return obj.name, obj.asset_tag

    @display(
        description="Status",
        ordering="status",
        label={
            "available": "success",
            "assigned": "info",
            "under_maintenance": "warning",
            "retired": "danger",
        },
    )
    def display_status(self, obj):
        return obj.status

    @display(description="Held By", empty_value="-")
    def display_holder(self, obj):
        if not obj._active_allocation_id:
            return None
        return obj.active_allocation.employee_name

    def save_model(self, request, obj, form, change):
        if not change:
            obj.created_by = request.user
        super().save_model(request, obj, form, change)
        if not change:
            history.record(
                obj,
                "created",
                actor=ActorContext.from_user(request.user),
                new_value=obj.status,
            )

    def has_delete_permission(self, request, obj=None):
        # Assets are retired, never deleted
        return False

    @action(
        description="Export to Excel",
        icon="download",
        variant=ActionVariant.PRIMARY,
    )
    def export_xlsx(self, request, queryset):
        from .services.export import export_assets_xlsx

        actor = ActorContext.from_user(request.user)
        try:
            buffer = export_assets_xlsx(actor)
        except PermissionDenied as e:
            messages.error(request, str(e))
            return None
        response = HttpResponse(
            buffer.getvalue(), content_type=XLSX_CONTENT_TYPE
        )
        filename = f"assetdesk-assets-{date.today().isoformat()}.xlsx"
        response["Content-Disposition"] = f'attachment; filename="{filename}"'
        return response

    @action(description="Retire selected")
    def retire_selected(self, request, queryset):
        run_for_each(
            request,
            queryset,
            lambda actor, asset: state.retire_asset(
                actor, asset.pk, "Retired from admin"
            ),
            "retired",
        )


@admin.register(Allocation)
class AllocationAdmin(ModelAdmin):
    list_display = [
        "asset",
        "employee_name",
        "department_name",
        "display_status",
        "allocated_date",
        "return_date",
        "condition",
    ]
    list_filter = [
        ("status", ChoicesDropdownFilter),
        ("condition", ChoicesDropdownFilter),
    ]
    search_fields = ["asset__asset_tag", "asset__name", "employee_name"]
    date_hierarchy = "allocated_date"
    actions = ["return_selected"]

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("asset")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @display(
        description="Status",
        label={"active": "info", "returned": "default"},
    )
    def display_status(self, obj):
        return obj.status

    @action(description="Return selected (good condition)")
    def return_selected(self, request, queryset):
        run_for_each(
            request,
            queryset.filter(status="active"),
            lambda actor, allocation: allocations.return_allocation(
                actor, allocation.pk, "good"
            ),
            "returned",
        )


@admin.register(TransferRequest)
class TransferRequestAdmin(ModelAdmin):
    list_display = [
        "asset",
        "from_user_name",
        "to_user_name",
        "display_status",
        "created_at",
        "decided_at",
    ]
    list_filter = [("status", ChoicesDropdownFilter)]
    search_fields = [
        "asset__asset_tag",
        "asset_name",
        "from_user_name",
        "to_user_name",
    ]
    actions = ["approve_selected", "reject_selected"]

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("asset")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @display(
        description="Status",
        label={
            "pending": "warning",
            "approved": "success",
            "rejected": "danger",
        },
    )
    def display_status(self, obj):
        return obj.status

    @action(description="Approve selected")
    def approve_selected(self, request, queryset):
        run_for_each(
            request,
            queryset,
            lambda actor, obj: transfers.approve_transfer(actor, obj.pk),
            "approved",
        )

    @action(description="Reject selected")
    def reject_selected(self, request, queryset):
        run_for_each(
            request,
            queryset,
            lambda actor, obj: transfers.reject_transfer(
                actor, obj.pk, "Rejected from the admin"
            ),
            "rejected",
        )


@admin.register(AssetRequest)
class AssetRequestAdmin(ModelAdmin):
    list_display = [
        "request_id",
        "requester",
        "category",
        "quantity",
        "department",
        "request_type",
        "display_status",
        "created_at",
    ]
    list_filter = [
        ("status", ChoicesDropdownFilter),
        ("request_type", ChoicesDropdownFilter),
        ("department", RelatedDropdownFilter),
    ]
    search_fields = ["request_id", "specification", "requester__username"]
    readonly_fields = [
        "request_id",
        "requester",
        "status",
        "approved_by",
        "approved_at",
        "rejected_by",
        "rejection_reason",
        "created_at",
        "updated_at",
    ]
    actions = ["approve_selected", "start_procurement_selected"]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    @display(
        description="Status",
        label={
            "pending": "info",
            "approved": "success",
            "in_progress": "warning",
            "fulfilled": "default",
            "rejected": "danger",
        },
    )
    def display_status(self, obj):
        return obj.status

    def delete_model(self, request, obj):
        try:
            asset_requests.delete(
                ActorContext.from_user(request.user), obj.pk
            )
        except SERVICE_ERRORS as e:
            messages.error(request, f"{obj}: {_error_message(e)}")

    def delete_queryset(self, request, queryset):
        run_for_each(
            request,
            queryset,
            lambda actor, obj: asset_requests.delete(actor, obj.pk),
            "deleted",
        )

    @action(description="Approve selected")
    def approve_selected(self, request, queryset):
        run_for_each(
            request,
            queryset,
            lambda actor, obj: asset_requests.approve(actor, obj.pk),
            "approved",
        )

    @action(description="Start procurement for selected")
    def start_procurement_selected(self, request, queryset):
        run_for_each(
            request,
            queryset,
            lambda actor, obj: asset_requests.start_procurement(
                actor, obj.pk
            ),
            "moved to in progress",
        )


@admin.register(Ticket)
class TicketAdmin(ModelAdmin):
    list_display = [
        "ticket_id",
        "title",
        "asset_name",
        "reporter",
        "display_priority",
        "display_status",
        "assignee",
        "deadline",
    ]
    list_filter = [
        ("status", ChoicesDropdownFilter),
        ("priority", ChoicesDropdownFilter),
        ("issue_category", ChoicesDropdownFilter),
        ("department", RelatedDropdownFilter),
    ]
    search_fields = ["ticket_id", "title", "description", "asset_name"]
    readonly_fields = [
        "ticket_id",
        "reporter",
        "asset",
        "asset_name",
        "status",
        "assignee",
        "deadline",
        "completed_at",
        "created_at",
        "updated_at",
    ]
    inlines = [TicketCommentInline]
    actions = ["start_selected", "resolve_selected", "close_selected"]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @display(
        description="Priority",
        label={
            "low": "default",
            "medium": "info",
            "high": "warning",
            "critical": "danger",
        },
    )
    def display_priority(self, obj):
        return obj.priority

    @display(
        description="Status",
        label={
            "open": "info",
            "in_progress": "warning",
            "on_hold": "default",
            "resolved": "success",
            "closed": "success",
            "cancelled": "danger",
        },
    )
    def display_status(self, obj):
        return obj.status

    def save_model(self, request, obj, form, change):
        try:
            tickets.edit(
                ActorContext.from_user(request.user),
                obj.pk,
                {name: form.cleaned_data[name] for name in form.changed_data},
            )
        except SERVICE_ERRORS as e:
            messages.error(request, f"{obj}: {_error_message(e)}")

    def _move(self, request, queryset, new_status, verb):
        run_for_each(
            request,
            queryset,
            lambda actor, obj: tickets.update_status(
                actor, obj.pk, new_status
            ),
            verb,
        )

    @action(description="Start work on selected")
    def start_selected(self, request, queryset):
        self._move(request, queryset, "in_progress", "started")

    @action(description="Resolve selected")
    def resolve_selected(self, request, queryset):
        self._move(request, queryset, "resolved", "resolved")

    @action(description="Close selected")
    def close_selected(self, request, queryset):
        self._move(request, queryset, "closed", "closed")


@admin.register(MaintenanceRecord)
class MaintenanceRecordAdmin(ModelAdmin):
    list_display = [
        "asset",
        "maintenance_type",
        "vendor",
        "started_at",
        "completed_at",
        "cost",
        "display_open",
    ]
    list_filter = [("maintenance_type", ChoicesDropdownFilter)]
    search_fields = ["asset__asset_tag", "asset__name", "vendor"]
    actions = ["complete_selected"]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @display(description="Open", boolean=True)
    def display_open(self, obj):
        return obj.is_open

    @action(description="Complete selected")
    def complete_selected(self, request, queryset):
        run_for_each(
            request,
            queryset.filter(completed_at__isnull=True),
            lambda actor, obj: maintenance.complete_maintenance(
                actor, obj.pk
            ),
            "completed",
        )


@admin.register(HistoryRecord)
class HistoryRecordAdmin(ModelAdmin):
    list_display = [
        "timestamp",
        "subject_type",
        "subject_id",
        "action",
        "actor_name",
        "old_value",
        "new_value",
    ]
    list_filter = [("subject_type", ChoicesDropdownFilter), "action"]
    search_fields = ["action", "actor_name", "remark"]
    date_hierarchy = "timestamp"

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(NotificationSetting)
class NotificationSettingAdmin(ModelAdmin):
    list_display = ["notification_type", "display_enabled", "updated_at"]
    fields = ["notification_type", "enabled"]

    @display(description="Enabled", boolean=True)
    def display_enabled(self, obj):
        return obj.enabled

    def get_readonly_fields(self, request, obj=None):
        return ["notification_type"] if obj else []

    def has_delete_permission(self, request, obj=None):
        return False

    def save_model(self, request, obj, form, change):
        try:
            notifications.update_notification_setting(
                ActorContext.from_user(request.user),
                obj.notification_type,
                obj.enabled,
            )
        except PermissionDenied as e:
            messages.error(request, str(e))
