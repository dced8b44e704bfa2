import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

CATEGORY_CHOICES = [
    ("laptop", "Laptop"),
    ("desktop", "Desktop"),
    ("monitor", "Monitor"),
    ("keyboard", "Keyboard"),
    ("mouse", "Mouse"),
    ("headset", "Headset"),
    ("printer", "Printer"),
    ("phone", "Phone"),
    ("tablet", "Tablet"),
    ("other", "Other"),
]

CONDITION_CHOICES = [
    ("excellent", "Excellent"),
    ("good", "Good"),
    ("fair", "Fair"),
    ("poor", "Poor"),
]


def _id():
    return models.BigAutoField(
        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
    )


def _user_fk(related_name, null=True, blank=True, on_delete=None):
    return models.ForeignKey(
        blank=blank,
        null=null,
        on_delete=on_delete or django.db.models.deletion.SET_NULL,
        related_name=related_name,
        to=settings.AUTH_USER_MODEL,
    )


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("accounts", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Department",
            fields=[
                ("id", _id()),
                ("name", models.CharField(max_length=100, unique=True)),
                ("description", models.TextField(blank=True)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={"ordering": ["name"]},
        ),
        migrations.CreateModel(
            name="Asset",
            fields=[
                ("id", _id()),
                (
                    "asset_tag",
                    models.CharField(blank=True, max_length=50, unique=True),
                ),
                ("name", models.CharField(max_length=200)),
                (
                    "category",
                    models.CharField(choices=CATEGORY_CHOICES, max_length=20),
                ),
                ("brand", models.CharField(blank=True, max_length=100)),
                ("model", models.CharField(blank=True, max_length=100)),
                (
                    "serial_number",
                    models.CharField(blank=True, max_length=100),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("available", "Available"),
                            ("assigned", "Assigned"),
                            ("under_maintenance", "Under Maintenance"),
                            ("retired", "Retired"),
                        ],
                        default="available",
                        max_length=20,
                    ),
                ),
                (
                    "department",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="assets",
                        to="assets.department",
                    ),
                ),
                ("location", models.CharField(blank=True, max_length=200)),
                ("purchase_date", models.DateField(blank=True, null=True)),
                (
                    "purchase_cost",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        max_digits=10,
                        null=True,
                        validators=[
                            django.core.validators.MinValueValidator(0)
                        ],
                    ),
                ),
                (
                    "warranty_end_date",
                    models.DateField(blank=True, null=True),
                ),
                (
                    "specifications",
                    models.JSONField(blank=True, default=dict),
                ),
                ("notes", models.TextField(blank=True)),
                ("retired_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("created_by", _user_fk("created_assets")),
            ],
            options={
                "ordering": ["-updated_at"],
                "indexes": [
                    models.Index(fields=["status"], name="idx_asset_status"),
                    models.Index(
                        fields=["category"], name="idx_asset_category"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="AssetRequest",
            fields=[
                ("id", _id()),
                (
                    "request_id",
                    models.CharField(
                        blank=True, max_length=20, null=True, unique=True
                    ),
                ),
                (
                    "category",
                    models.CharField(choices=CATEGORY_CHOICES, max_length=20),
                ),
                (
                    "quantity",
                    models.PositiveIntegerField(
                        default=1,
                        validators=[
                            django.core.validators.MinValueValidator(1),
                            django.core.validators.MaxValueValidator(100),
                        ],
                    ),
                ),
                (
                    "specification",
                    models.TextField(
                        validators=[
                            django.core.validators.MinLengthValidator(10),
                            django.core.validators.MaxLengthValidator(500),
                        ]
                    ),
                ),
                ("reason", models.TextField(blank=True)),
                ("location", models.CharField(max_length=200)),
                (
                    "request_type",
                    models.CharField(
                        choices=[
                            ("regular", "Regular"),
                            ("express", "Express"),
                        ],
                        default="regular",
                        max_length=20,
                    ),
                ),
                (
                    "expected_delivery_date",
                    models.DateField(blank=True, null=True),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("approved", "Approved"),
                            ("rejected", "Rejected"),
                            ("in_progress", "In Progress"),
                            ("fulfilled", "Fulfilled"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                (
                    "rejection_reason",
                    models.TextField(blank=True, null=True),
                ),
                ("notes", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "requester",
                    _user_fk(
                        "asset_requests",
                        null=False,
                        blank=False,
                        on_delete=django.db.models.deletion.PROTECT,
                    ),
                ),
                (
                    "department",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="asset_requests",
                        to="assets.department",
                    ),
                ),
                ("approved_by", _user_fk("approved_requests")),
                ("rejected_by", _user_fk("rejected_requests")),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status"], name="idx_request_status"
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(
                                ("status", "rejected"),
                                ("rejection_reason__isnull", False),
                            ),
                            models.Q(
                                models.Q(
                                    ("status", "rejected"), _negated=True
                                ),
                                ("rejection_reason__isnull", True),
                            ),
                            _connector="OR",
                        ),
                        name="rejection_reason_iff_rejected",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Allocation",
            fields=[
                ("id", _id()),
                ("employee_name", models.CharField(max_length=255)),
                (
                    "department_name",
                    models.CharField(blank=True, max_length=100),
                ),
                (
                    "allocated_date",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                ("return_date", models.DateTimeField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("returned", "Returned"),
                        ],
                        default="active",
                        max_length=20,
                    ),
                ),
                (
                    "condition",
                    models.CharField(
                        choices=CONDITION_CHOICES,
                        default="good",
                        max_length=20,
                    ),
                ),
                (
                    "return_condition",
                    models.CharField(
                        blank=True, choices=CONDITION_CHOICES, max_length=20
                    ),
                ),
                ("notes", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "asset",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="allocations",
                        to="assets.asset",
                    ),
                ),
                ("employee", _user_fk("allocations", blank=False)),
                ("allocated_by", _user_fk("allocations_made")),
                (
                    "request",
                    models.ForeignKey(
                        blank=True,
                        help_text="Request this allocation fulfilled, if any",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="allocations",
                        to="assets.assetrequest",
                    ),
                ),
            ],
            options={
                "ordering": ["-allocated_date"],
                "indexes": [
                    models.Index(
                        fields=["employee", "status"],
                        name="idx_allocation_employee",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "active")),
                        fields=("asset",),
                        name="unique_active_allocation_per_asset",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Ticket",
            fields=[
                ("id", _id()),
                (
                    "ticket_id",
                    models.CharField(
                        blank=True, max_length=20, null=True, unique=True
                    ),
                ),
                ("asset_name", models.CharField(max_length=200)),
                ("title", models.CharField(max_length=200)),
                ("description", models.TextField()),
                ("location", models.CharField(max_length=200)),
                (
                    "priority",
                    models.CharField(
                        choices=[
                            ("low", "Low"),
                            ("medium", "Medium"),
                            ("high", "High"),
                            ("critical", "Critical"),
                        ],
                        default="medium",
                        max_length=20,
                    ),
                ),
                (
                    "issue_category",
                    models.CharField(
                        choices=[
                            ("hardware", "Hardware"),
                            ("software", "Software"),
                            ("network", "Network"),
                            ("access", "Access"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("open", "Open"),
                            ("in_progress", "In Progress"),
                            ("on_hold", "On Hold"),
                            ("resolved", "Resolved"),
                            ("closed", "Closed"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="open",
                        max_length=20,
                    ),
                ),
                ("deadline", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "attachment",
                    models.FileField(
                        blank=True, null=True, upload_to="ticket-attachments/"
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "reporter",
                    _user_fk(
                        "reported_tickets",
                        null=False,
                        blank=False,
                        on_delete=django.db.models.deletion.PROTECT,
                    ),
                ),
                (
                    "asset",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="tickets",
                        to="assets.asset",
                    ),
                ),
                (
                    "department",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="tickets",
                        to="assets.department",
                    ),
                ),
                ("assignee", _user_fk("assigned_tickets")),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status"], name="idx_ticket_status"),
                    models.Index(
                        fields=["assignee", "status"],
                        name="idx_ticket_assignee",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="TicketComment",
            fields=[
                ("id", _id()),
                ("comment", models.TextField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "ticket",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="comments",
                        to="assets.ticket",
                    ),
                ),
                ("author", _user_fk("ticket_comments", blank=False)),
            ],
            options={"ordering": ["created_at"]},
        ),
        migrations.CreateModel(
            name="MaintenanceRecord",
            fields=[
                ("id", _id()),
                (
                    "maintenance_type",
                    models.CharField(
                        choices=[
                            ("repair", "Repair"),
                            ("inspection", "Inspection"),
                            ("upgrade", "Upgrade"),
                            ("cleaning", "Cleaning"),
                            ("other", "Other"),
                        ],
                        max_length=20,
                    ),
                ),
                ("description", models.TextField(blank=True)),
                ("vendor", models.CharField(blank=True, max_length=200)),
                (
                    "cost",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        max_digits=10,
                        null=True,
                        validators=[
                            django.core.validators.MinValueValidator(0)
                        ],
                    ),
                ),
                (
                    "started_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                (
                    "completed_at",
                    models.DateTimeField(blank=True, null=True),
                ),
                ("notes", models.TextField(blank=True)),
                (
                    "asset",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="maintenance_records",
                        to="assets.asset",
                    ),
                ),
                (
                    "ticket",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="maintenance_records",
                        to="assets.ticket",
                    ),
                ),
                ("started_by", _user_fk("maintenance_started", blank=False)),
                ("completed_by", _user_fk("maintenance_completed")),
            ],
            options={
                "ordering": ["-started_at"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("completed_at__isnull", True)),
                        fields=("asset",),
                        name="unique_open_maintenance_per_asset",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="HistoryRecord",
            fields=[
                ("id", _id()),
                (
                    "subject_type",
                    models.CharField(
                        choices=[
                            ("asset", "Asset"),
                            ("request", "Request"),
                            ("allocation", "Allocation"),
                            ("ticket", "Ticket"),
                            ("user", "User"),
                        ],
                        max_length=20,
                    ),
                ),
                ("subject_id", models.PositiveBigIntegerField()),
                ("action", models.CharField(max_length=50)),
                ("actor_name", models.CharField(blank=True, max_length=255)),
                ("old_value", models.CharField(blank=True, max_length=100)),
                ("new_value", models.CharField(blank=True, max_length=100)),
                ("remark", models.TextField(blank=True)),
                (
                    "timestamp",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                ("actor", _user_fk("history_records")),
                (
                    "asset",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="history",
                        to="assets.asset",
                    ),
                ),
                (
                    "request",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="history",
                        to="assets.assetrequest",
                    ),
                ),
            ],
            options={
                "ordering": ["timestamp", "pk"],
                "indexes": [
                    models.Index(
                        fields=["subject_type", "subject_id"],
                        name="idx_history_subject",
                    ),
                    models.Index(
                        fields=["timestamp"], name="idx_history_timestamp"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="NotificationSetting",
            fields=[
                ("id", _id()),
                (
                    "notification_type",
                    models.CharField(
                        choices=[
                            ("asset_assignment", "Asset Assignment"),
                            ("ticket_assignment", "Ticket Assignment"),
                            ("request_status", "Request Status"),
                            ("maintenance_reminder", "Maintenance Reminder"),
                            ("email_digest", "Email Digest"),
                        ],
                        max_length=30,
                        unique=True,
                    ),
                ),
                ("enabled", models.BooleanField(default=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("updated_by", _user_fk("+")),
            ],
            options={"ordering": ["notification_type"]},
        ),
    ]
