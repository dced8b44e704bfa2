import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


def _user_fk(related_name, null=True, blank=True):
    return models.ForeignKey(
        blank=blank,
        null=null,
        on_delete=django.db.models.deletion.SET_NULL,
        related_name=related_name,
        to=settings.AUTH_USER_MODEL,
    )


def seed_transfer_setting(apps, schema_editor):
    NotificationSetting = apps.get_model("assets", "NotificationSetting")
    NotificationSetting.objects.get_or_create(
        notification_type="asset_transfer", defaults={"enabled": True}
    )


def remove_transfer_setting(apps, schema_editor):
    NotificationSetting = apps.get_model("assets", "NotificationSetting")
    NotificationSetting.objects.filter(
        notification_type="asset_transfer"
    ).delete()


class Migration(migrations.Migration):

    dependencies = [
        ("assets", "0002_seed_notification_settings"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="TransferRequest",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("asset_name", models.CharField(max_length=200)),
                (
                    "from_user_name",
                    models.CharField(blank=True, max_length=255),
                ),
                ("to_user_name", models.CharField(max_length=255)),
                ("notes", models.TextField(blank=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("approved", "Approved"),
                            ("rejected", "Rejected"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "from_user_approved_at",
                    models.DateTimeField(blank=True, null=True),
                ),
                (
                    "to_user_approved_at",
                    models.DateTimeField(blank=True, null=True),
                ),
                ("decided_at", models.DateTimeField(blank=True, null=True)),
                ("rejection_reason", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "allocation",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transfer_requests",
                        to="assets.allocation",
                    ),
                ),
                (
                    "asset",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transfer_requests",
                        to="assets.asset",
                    ),
                ),
                ("from_user", _user_fk("transfers_out")),
                ("to_user", _user_fk("transfers_in", blank=False)),
                ("initiated_by", _user_fk("transfers_initiated")),
                ("decided_by", _user_fk("+")),
                (
                    "new_allocation",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to="assets.allocation",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "pending")),
                        fields=("allocation",),
                        name="unique_pending_transfer_per_allocation",
                    ),
                ],
            },
        ),
        migrations.AlterField(
            model_name="historyrecord",
            name="subject_type",
            field=models.CharField(
                choices=[
                    ("asset", "Asset"),
                    ("request", "Request"),
                    ("allocation", "Allocation"),
                    ("ticket", "Ticket"),
                    ("transfer", "Transfer"),
                    ("user", "User"),
                ],
                max_length=20,
            ),
        ),
        migrations.AlterField(
            model_name="notificationsetting",
            name="notification_type",
            field=models.CharField(
                choices=[
                    ("asset_assignment", "Asset Assignment"),
                    ("ticket_assignment", "Ticket Assignment"),
                    ("request_status", "Request Status"),
                    ("maintenance_reminder", "Maintenance Reminder"),
                    ("asset_transfer", "Asset Transfer"),
                    ("email_digest", "Email Digest"),
                ],
                max_length=30,
                unique=True,
            ),
        ),
        migrations.RunPython(seed_transfer_setting, remove_transfer_setting),
    ]
