"""Custom user model for AssetDesk."""

from django.contrib.auth.models import AbstractUser
from django.db import models


class CustomUser(AbstractUser):
    """Employee account with a single role and home department."""

    ROLE_CHOICES = [
        ("user", "User"),
        ("hr", "HR"),
        ("department_head", "Department Head"),
        ("financer", "Financer"),
        ("admin", "Admin"),
        ("super_admin", "Super Admin"),
    ]

    # Roles that make up the IT/admin staff
    STAFF_ROLES = ("admin", "super_admin")

    display_name = models.CharField(
        max_length=255,
        blank=True,
        help_text="Human-readable name captured on allocations and tickets",
    )
    employee_id = models.CharField(
        max_length=50,
        unique=True,
        null=True,
        blank=True,
        help_text="HR employee number",
    )
    phone_number = models.CharField(max_length=20, blank=True)
    email = models.EmailField("email address", blank=False, unique=True)
    role = models.CharField(
        max_length=20, choices=ROLE_CHOICES, default="user"
    )
    department = models.ForeignKey(
        "assets.Department",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="members",
    )

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        constraints = [
            models.UniqueConstraint(
                fields=["department"],
                condition=models.Q(role="department_head", is_active=True),
                name="unique_active_department_head",
            ),
        ]

    @property
    def is_department_head(self):
        return self.role == "department_head"

    @property
    def is_admin_staff(self):
        return self.role in self.STAFF_ROLES

    def get_display_name(self):
        """Return display_name if set, otherwise full name or username."""
        if self.display_name:
            return self.display_name
        full = self.get_full_name()
        return full if full else self.username

    def __str__(self):
        return self.get_display_name()


class EmailLog(models.Model):
    """Delivery record of one outgoing email, written by the send task."""

    STATUS_CHOICES = [
        ("sent", "Sent"),
        ("failed", "Failed"),
    ]

    notification_type = models.CharField(max_length=50, blank=True)
    subject = models.CharField(max_length=255)
    recipients = models.TextField(help_text="Comma-separated addresses")
    status = models.CharField(max_length=10, choices=STATUS_CHOICES)
    error_message = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["status", "created_at"], name="idx_emaillog_status"
            ),
        ]

    def __str__(self):
        return f"{self.subject} ({self.status})"
