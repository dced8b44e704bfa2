"""Admin configuration for accounts app."""

import logging

from unfold.admin import ModelAdmin
from unfold.decorators import display

from django.contrib import admin, messages
from django.contrib.auth.admin import UserAdmin
from django.core.exceptions import PermissionDenied, ValidationError

from assets.exceptions import Conflict, NotFound
from assets.services.permissions import ActorContext

from .forms import CustomUserChangeForm, CustomUserCreationForm
from .models import CustomUser, EmailLog
from .roles import change_role

logger = logging.getLogger(__name__)


@admin.register(CustomUser)
class CustomUserAdmin(UserAdmin, ModelAdmin):
    add_form = CustomUserCreationForm
    form = CustomUserChangeForm
    model = CustomUser
    list_display = [
        "display_user",
        "email",
        "employee_id",
        "display_role",
        "display_department",
        "display_active",
    ]
    list_filter = ["is_active", "role", "department"]
    search_fields = [
        "username",
        "email",
        "display_name",
        "employee_id",
        "first_name",
        "last_name",
    ]
    autocomplete_fields = ["department"]
    fieldsets = (
        (
            "Profile",
            {
                "classes": ["tab"],
                "fields": (
                    "username",
                    "password",
                    "display_name",
                    "first_name",
                    "last_name",
                    "email",
                    "employee_id",
                    "phone_number",
                ),
            },
        ),
        (
            "Role",
            {
                "classes": ["tab"],
                "fields": ("role", "department", "is_active", "is_staff"),
            },
        ),
        (
            "Activity",
            {
                "classes": ["tab"],
                "fields": ("last_login", "date_joined"),
            },
        ),
    )
    readonly_fields = ["last_login", "date_joined"]
    add_fieldsets = UserAdmin.add_fieldsets + (
        (
            "Additional Info",
            {"fields": ("email", "display_name", "employee_id")},
        ),
    )

    @display(description="User", header=True, ordering="username")
    def display_user(self, obj):
        return obj.get_display_name(), obj.username

    @display(
        description="Role",
        ordering="role",
        label={
            "Super Admin": "danger",
            "Admin": "warning",
            "Department Head": "info",
        },
    )
    def display_role(self, obj):
        return obj.get_role_display()

    @display(description="Department")
    def display_department(self, obj):
        return obj.department.name if obj.department else "-"

    @display(description="Active", boolean=True)
    def display_active(self, obj):
        return obj.is_active

    def save_model(self, request, obj, form, change):
        """Route role and department changes through change_role."""
        role_fields = {"role", "department"} & set(form.changed_data)
        if not change or not role_fields:
            super().save_model(request, obj, form, change)
            return

        new_role, new_department_id = obj.role, obj.department_id
        original = CustomUser.objects.get(pk=obj.pk)
        obj.role = original.role
        obj.department_id = original.department_id
        super().save_model(request, obj, form, change)
        try:
            change_role(
                ActorContext.from_user(request.user),
                obj.pk,
                new_role,
                new_department_id,
            )
        except (Conflict, NotFound, PermissionDenied, ValidationError) as e:
            message = "; ".join(getattr(e, "messages", [str(e)]))
            messages.error(request, f"Role not changed: {message}")
            logger.warning(
                "Admin role change for %s rejected: %s", obj.username, e
            )
        else:
            obj.refresh_from_db()


@admin.register(EmailLog)
class EmailLogAdmin(ModelAdmin):
    list_display = [
        "subject",
        "recipients",
        "notification_type",
        "display_status",
        "created_at",
    ]
    list_filter = ["status", "notification_type"]
    search_fields = ["subject", "recipients"]
    date_hierarchy = "created_at"

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @display(
        description="Status",
        label={"sent": "success", "failed": "danger"},
    )
    def display_status(self, obj):
        return obj.status
