"""Models for AssetDesk asset lifecycle tracking."""

import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import (
    MaxLengthValidator,
    MaxValueValidator,
    MinLengthValidator,
    MinValueValidator,
)
from django.db import IntegrityError, models, transaction
from django.utils import timezone

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


class Department(models.Model):
    """Organisational unit that owns assets and employees."""

    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    @property
    def head(self):
        """Return the active department head, if one is assigned."""
        return self.members.filter(
            role="department_head", is_active=True
        ).first()


class AssetManager(models.Manager):
    """Custom manager with shared queryset builder for Asset."""

    def with_related(self):
        """Join the department and annotate the active allocation id.

        Keeps list views free of per-row allocation lookups.
        """
        return self.select_related("department", "created_by").annotate(
            _active_allocation_id=models.Subquery(
                Allocation.objects.filter(
                    asset=models.OuterRef("pk"), status="active"
                ).values("pk")[:1]
            ),
        )


class Asset(models.Model):
    """A physical asset tracked through its lifecycle.

    ``status`` is stored for querying but only ever written by the
    state service, from the allocation and maintenance records.
    """

    STATUS_CHOICES = [
        ("available", "Available"),
        ("assigned", "Assigned"),
        ("under_maintenance", "Under Maintenance"),
        ("retired", "Retired"),
    ]

    # Valid state transitions: from_status -> [to_statuses]
    VALID_TRANSITIONS = {
        "available": ["assigned", "under_maintenance", "retired"],
        "assigned": ["available", "under_maintenance"],
        "under_maintenance": ["available", "retired"],
        "retired": [],
    }

    asset_tag = models.CharField(max_length=50, unique=True, blank=True)
    name = models.CharField(max_length=200)
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES)
    brand = models.CharField(max_length=100, blank=True)
    model = models.CharField(max_length=100, blank=True)
    serial_number = models.CharField(max_length=100, blank=True)
    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default="available"
    )
    department = models.ForeignKey(
        Department,
        on_delete=models.PROTECT,
        related_name="assets",
        null=True,
        blank=True,
    )
    location = models.CharField(max_length=200, blank=True)
    purchase_date = models.DateField(null=True, blank=True)
    purchase_cost = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(0)],
    )
    warranty_end_date = models.DateField(null=True, blank=True)
    specifications = models.JSONField(default=dict, blank=True)
    notes = models.TextField(blank=True)
    retired_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_assets",
    )

    objects = AssetManager()

    class Meta:
        ordering = ["-updated_at"]
        indexes = [
            models.Index(fields=["status"], name="idx_asset_status"),
            models.Index(fields=["category"], name="idx_asset_category"),
        ]

    def __str__(self):
        return f"{self.name} ({self.asset_tag})"

    def save(self, *args, **kwargs):
        if self.asset_tag:
            super().save(*args, **kwargs)
            return
        max_attempts = 5
        for attempt in range(max_attempts):
            self.asset_tag = self._generate_tag()
            try:
                with transaction.atomic():
                    super().save(*args, **kwargs)
                return
            except IntegrityError:
                # Generated tag collided; try another
                if attempt >= max_attempts - 1:
                    raise

    def clean(self):
        super().clean()
        if self.warranty_end_date and self.purchase_date:
            if self.warranty_end_date < self.purchase_date:
                raise ValidationError(
                    {
                        "warranty_end_date": "Warranty cannot end before "
                        "the purchase date."
                    }
                )
        if not isinstance(self.specifications, dict):
            raise ValidationError(
                {"specifications": "Specifications must be a mapping."}
            )

    def can_transition_to(self, new_status):
        """Check if the status transition is valid."""
        return new_status in self.VALID_TRANSITIONS.get(self.status, [])

    def _generate_tag(self):
        prefix = (self.category or "asset").upper()
        return f"{prefix}-{uuid.uuid4().hex[:8].upper()}"

    @property
    def active_allocation(self):
        return self.allocations.filter(status="active").first()

    @property
    def open_maintenance(self):
        return self.maintenance_records.filter(
            completed_at__isnull=True
        ).first()

    @property
    def is_retired(self):
        return self.status == "retired"


class Allocation(models.Model):
    """One asset held by one employee over a span of time."""

    STATUS_CHOICES = [
        ("active", "Active"),
        ("returned", "Returned"),
    ]

    CONDITION_CHOICES = CONDITION_CHOICES

    asset = models.ForeignKey(
        Asset, on_delete=models.PROTECT, related_name="allocations"
    )
    employee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name="allocations",
    )
    # Snapshots taken at allocation time for historical accuracy
    employee_name = models.CharField(max_length=255)
    department_name = models.CharField(max_length=100, blank=True)
    allocated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="allocations_made",
    )
    request = models.ForeignKey(
        "AssetRequest",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="allocations",
        help_text="Request this allocation fulfilled, if any",
    )
    allocated_date = models.DateTimeField(default=timezone.now)
    return_date = models.DateTimeField(null=True, blank=True)
    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default="active"
    )
    condition = models.CharField(
        max_length=20, choices=CONDITION_CHOICES, default="good"
    )
    return_condition = models.CharField(
        max_length=20, choices=CONDITION_CHOICES, blank=True
    )
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-allocated_date"]
        constraints = [
            models.UniqueConstraint(
                fields=["asset"],
                condition=models.Q(status="active"),
                name="unique_active_allocation_per_asset",
            ),
        ]
        indexes = [
            models.Index(
                fields=["employee", "status"],
                name="idx_allocation_employee",
            ),
        ]

    def __str__(self):
        return f"{self.asset.asset_tag} -> {self.employee_name}"

    def clean(self):
        super().clean()
        if self.status == "returned" and not self.return_date:
            raise ValidationError(
                {"return_date": "Returned allocations need a return date."}
            )
        if self.status == "active" and self.return_date:
            raise ValidationError(
                {"return_date": "Active allocations cannot be returned."}
            )

    @property
    def is_active(self):
        return self.status == "active"


class TransferRequest(models.Model):
    """A proposed move of an allocated asset to another employee.

    Nothing moves until the request is approved: by both the current
    holder and the recipient, or by admin staff on their behalf.
    """

    STATUS_CHOICES = [
        ("pending", "Pending"),
        ("approved", "Approved"),
        ("rejected", "Rejected"),
    ]

    allocation = models.ForeignKey(
        Allocation, on_delete=models.PROTECT, related_name="transfer_requests"
    )
    asset = models.ForeignKey(
        Asset, on_delete=models.PROTECT, related_name="transfer_requests"
    )
    asset_name = models.CharField(max_length=200)
    from_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transfers_out",
    )
    from_user_name = models.CharField(max_length=255, blank=True)
    to_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name="transfers_in",
    )
    to_user_name = models.CharField(max_length=255)
    initiated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transfers_initiated",
    )
    notes = models.TextField(blank=True)
    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default="pending"
    )
    from_user_approved_at = models.DateTimeField(null=True, blank=True)
    to_user_approved_at = models.DateTimeField(null=True, blank=True)
    decided_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    decided_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.TextField(blank=True)
    new_allocation = models.ForeignKey(
        Allocation,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["allocation"],
                condition=models.Q(status="pending"),
                name="unique_pending_transfer_per_allocation",
            ),
        ]

    def __str__(self):
        source = self.from_user_name or "unassigned"
        return f"{self.asset_name}: {source} -> {self.to_user_name}"

    @property
    def is_pending(self):
        return self.status == "pending"

    @property
    def awaiting(self):
        """Ids of the employees whose approval is still outstanding."""
        waiting = []
        if self.from_user_id and self.from_user_approved_at is None:
            waiting.append(self.from_user_id)
        if self.to_user_id and self.to_user_approved_at is None:
            waiting.append(self.to_user_id)
        return waiting


class AssetRequest(models.Model):
    """Employee-initiated procurement request."""

    STATUS_CHOICES = [
        ("pending", "Pending"),
        ("approved", "Approved"),
        ("rejected", "Rejected"),
        ("in_progress", "In Progress"),
        ("fulfilled", "Fulfilled"),
    ]

    REQUEST_TYPE_CHOICES = [
        ("regular", "Regular"),
        ("express", "Express"),
    ]

    VALID_TRANSITIONS = {
        "pending": ["approved", "rejected"],
        "approved": ["in_progress"],
        "in_progress": ["fulfilled"],
        "rejected": [],
        "fulfilled": [],
    }

    APPROVED_STATUSES = ("approved", "in_progress", "fulfilled")

    MIN_QUANTITY = 1
    MAX_QUANTITY = 100
    MIN_SPECIFICATION_LENGTH = 10
    MAX_SPECIFICATION_LENGTH = 500

    request_id = models.CharField(
        max_length=20, unique=True, null=True, blank=True
    )
    requester = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="asset_requests",
    )
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES)
    quantity = models.PositiveIntegerField(
        default=1,
        validators=[
            MinValueValidator(MIN_QUANTITY),
            MaxValueValidator(MAX_QUANTITY),
        ],
    )
    specification = models.TextField(
        validators=[
            MinLengthValidator(MIN_SPECIFICATION_LENGTH),
            MaxLengthValidator(MAX_SPECIFICATION_LENGTH),
        ],
    )
    reason = models.TextField(blank=True)
    department = models.ForeignKey(
        Department, on_delete=models.PROTECT, related_name="asset_requests"
    )
    location = models.CharField(max_length=200)
    request_type = models.CharField(
        max_length=20, choices=REQUEST_TYPE_CHOICES, default="regular"
    )
    expected_delivery_date = models.DateField(null=True, blank=True)
    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default="pending"
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="approved_requests",
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    rejected_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="rejected_requests",
    )
    rejection_reason = models.TextField(null=True, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(status="rejected", rejection_reason__isnull=False)
                    | (
                        ~models.Q(status="rejected")
                        & models.Q(rejection_reason__isnull=True)
                    )
                ),
                name="rejection_reason_iff_rejected",
            ),
        ]
        indexes = [
            models.Index(fields=["status"], name="idx_request_status"),
        ]

    def __str__(self):
        return self.request_id or f"Request #{self.pk}"

    def save(self, *args, **kwargs):
        super().save(*args, **kwargs)
        if not self.request_id:
            self.request_id = (
                f"{settings.REQUEST_ID_PREFIX}-{self.pk:06d}"
            )
            AssetRequest.objects.filter(pk=self.pk).update(
                request_id=self.request_id
            )

    def clean(self):
        super().clean()
        approved = self.status in self.APPROVED_STATUSES
        if approved != bool(self.approved_by_id and self.approved_at):
            raise ValidationError(
                "Approver and approval time are set exactly when the "
                "request has been approved."
            )
        if (self.status == "rejected") != bool(self.rejection_reason):
            raise ValidationError(
                {
                    "rejection_reason": "A rejection reason is set exactly "
                    "when the request is rejected."
                }
            )

    def can_transition_to(self, new_status):
        return new_status in self.VALID_TRANSITIONS.get(self.status, [])

    @property
    def is_terminal(self):
        return not self.VALID_TRANSITIONS.get(self.status)


class Ticket(models.Model):
    """Support ticket raised against an allocated asset."""

    STATUS_CHOICES = [
        ("open", "Open"),
        ("in_progress", "In Progress"),
        ("on_hold", "On Hold"),
        ("resolved", "Resolved"),
        ("closed", "Closed"),
        ("cancelled", "Cancelled"),
    ]

    PRIORITY_CHOICES = [
        ("low", "Low"),
        ("medium", "Medium"),
        ("high", "High"),
        ("critical", "Critical"),
    ]

    ISSUE_CATEGORY_CHOICES = [
        ("hardware", "Hardware"),
        ("software", "Software"),
        ("network", "Network"),
        ("access", "Access"),
    ]

    VALID_TRANSITIONS = {
        "open": ["in_progress", "on_hold", "cancelled"],
        "in_progress": ["on_hold", "resolved"],
        "on_hold": ["in_progress"],
        "resolved": ["closed"],
        "closed": [],
        "cancelled": [],
    }

    COMPLETED_STATUSES = ("resolved", "closed")

    ticket_id = models.CharField(
        max_length=20, unique=True, null=True, blank=True
    )
    reporter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="reported_tickets",
    )
    asset = models.ForeignKey(
        Asset, on_delete=models.PROTECT, related_name="tickets"
    )
    asset_name = models.CharField(max_length=200)
    title = models.CharField(max_length=200)
    description = models.TextField()
    location = models.CharField(max_length=200)
    department = models.ForeignKey(
        Department, on_delete=models.PROTECT, related_name="tickets"
    )
    priority = models.CharField(
        max_length=20, choices=PRIORITY_CHOICES, default="medium"
    )
    issue_category = models.CharField(
        max_length=20, choices=ISSUE_CATEGORY_CHOICES
    )
    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default="open"
    )
    assignee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="assigned_tickets",
    )
    deadline = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    attachment = models.FileField(
        upload_to="ticket-attachments/", null=True, blank=True
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="idx_ticket_status"),
            models.Index(
                fields=["assignee", "status"], name="idx_ticket_assignee"
            ),
        ]

    def __str__(self):
        return f"{self.ticket_id or self.pk}: {self.title}"

    def save(self, *args, **kwargs):
        super().save(*args, **kwargs)
        if not self.ticket_id:
            self.ticket_id = f"{settings.TICKET_ID_PREFIX}-{self.pk:06d}"
            Ticket.objects.filter(pk=self.pk).update(ticket_id=self.ticket_id)

    def clean(self):
        super().clean()
        completed = self.status in self.COMPLETED_STATUSES
        if completed != (self.completed_at is not None):
            raise ValidationError(
                {
                    "completed_at": "Completion time is set exactly when the "
                    "ticket is resolved or closed."
                }
            )

    def can_transition_to(self, new_status):
        return new_status in self.VALID_TRANSITIONS.get(self.status, [])

    @property
    def is_terminal(self):
        return not self.VALID_TRANSITIONS.get(self.status)


class TicketComment(models.Model):
    """Discussion entry on a ticket."""

    ticket = models.ForeignKey(
        Ticket, on_delete=models.CASCADE, related_name="comments"
    )
    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name="ticket_comments",
    )
    comment = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]

    def __str__(self):
        return f"Comment on {self.ticket.ticket_id} by {self.author}"


class MaintenanceRecord(models.Model):
    """A maintenance action on an asset; open until completed_at is set."""

    TYPE_CHOICES = [
        ("repair", "Repair"),
        ("inspection", "Inspection"),
        ("upgrade", "Upgrade"),
        ("cleaning", "Cleaning"),
        ("other", "Other"),
    ]

    asset = models.ForeignKey(
        Asset, on_delete=models.PROTECT, related_name="maintenance_records"
    )
    maintenance_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    description = models.TextField(blank=True)
    vendor = models.CharField(max_length=200, blank=True)
    cost = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(0)],
    )
    ticket = models.ForeignKey(
        Ticket,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="maintenance_records",
    )
    started_at = models.DateTimeField(default=timezone.now)
    started_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name="maintenance_started",
    )
    completed_at = models.DateTimeField(null=True, blank=True)
    completed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="maintenance_completed",
    )
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ["-started_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["asset"],
                condition=models.Q(completed_at__isnull=True),
                name="unique_open_maintenance_per_asset",
            ),
        ]

    def __str__(self):
        return f"{self.get_maintenance_type_display()} on {self.asset}"

    @property
    def is_open(self):
        return self.completed_at is None


class HistoryRecordQuerySet(models.QuerySet):
    def for_subject(self, subject_type, subject_id):
        return self.filter(subject_type=subject_type, subject_id=subject_id)


class HistoryRecord(models.Model):
    """Append-only audit trail of every committed transition."""

    SUBJECT_CHOICES = [
        ("asset", "Asset"),
        ("request", "Request"),
        ("allocation", "Allocation"),
        ("ticket", "Ticket"),
        ("transfer", "Transfer"),
        ("user", "User"),
    ]

    subject_type = models.CharField(max_length=20, choices=SUBJECT_CHOICES)
    subject_id = models.PositiveBigIntegerField()
    action = models.CharField(max_length=50)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="history_records",
    )
    actor_name = models.CharField(max_length=255, blank=True)
    asset = models.ForeignKey(
        Asset,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="history",
    )
    request = models.ForeignKey(
        AssetRequest,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="history",
    )
    old_value = models.CharField(max_length=100, blank=True)
    new_value = models.CharField(max_length=100, blank=True)
    remark = models.TextField(blank=True)
    timestamp = models.DateTimeField(default=timezone.now)

    objects = HistoryRecordQuerySet.as_manager()

    class Meta:
        ordering = ["timestamp", "pk"]
        indexes = [
            models.Index(
                fields=["subject_type", "subject_id"],
                name="idx_history_subject",
            ),
            models.Index(fields=["timestamp"], name="idx_history_timestamp"),
        ]

    def __str__(self):
        return (
            f"{self.get_subject_type_display()} #{self.subject_id}: "
            f"{self.action} by {self.actor_name or 'system'}"
        )

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValidationError(
                "History records are immutable and cannot be modified."
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError(
            "History records are immutable and cannot be deleted."
        )


class NotificationSetting(models.Model):
    """Global on/off switch per notification type."""

    TYPE_CHOICES = [
        ("asset_assignment", "Asset Assignment"),
        ("ticket_assignment", "Ticket Assignment"),
        ("request_status", "Request Status"),
        ("maintenance_reminder", "Maintenance Reminder"),
        ("asset_transfer", "Asset Transfer"),
        ("email_digest", "Email Digest"),
    ]

    notification_type = models.CharField(
        max_length=30, choices=TYPE_CHOICES, unique=True
    )
    enabled = models.BooleanField(default=True)
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["notification_type"]

    def __str__(self):
        state = "on" if self.enabled else "off"
        return f"{self.get_notification_type_display()} ({state})"

    @classmethod
    def is_enabled(cls, notification_type):
        """Types without a stored row default to enabled."""
        setting = cls.objects.filter(
            notification_type=notification_type
        ).first()
        return setting.enabled if setting else True
