"""Seed one enabled row per notification type."""

from django.db import migrations

TYPES = [
    "asset_assignment",
    "ticket_assignment",
    "request_status",
    "maintenance_reminder",
    "email_digest",
]


def seed_settings(apps, schema_editor):
    NotificationSetting = apps.get_model("assets", "NotificationSetting")
    for notification_type in TYPES:
        NotificationSetting.objects.get_or_create(
            notification_type=notification_type,
            defaults={"enabled": True},
        )


def remove_settings(apps, schema_editor):
    NotificationSetting = apps.get_model("assets", "NotificationSetting")
    NotificationSetting.objects.filter(notification_type__in=TYPES).delete()


class Migration(migrations.Migration):

    dependencies = [
        ("assets", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(seed_settings, remove_settings),
    ]
