"""Register the periodic reminder and digest jobs with celery beat."""

from django_celery_beat.models import CrontabSchedule, PeriodicTask

from django.conf import settings
from django.core.management.base import BaseCommand

JOBS = [
    {
        "name": "Weekly email digest",
        "task": "assets.tasks.send_email_digest",
        "crontab": {"minute": "0", "hour": "7", "day_of_week": "1"},
    },
    {
        "name": "Overdue ticket reminders",
        "task": "assets.tasks.send_overdue_ticket_reminders",
        "crontab": {"minute": "0", "hour": "8", "day_of_week": "*"},
    },
    {
        "name": "Stale maintenance reminders",
        "task": "assets.tasks.send_maintenance_reminders",
        "crontab": {"minute": "30", "hour": "8", "day_of_week": "1-5"},
    },
]


class Command(BaseCommand):
    help = "Create or update the celery beat schedule for AssetDesk jobs"

    def handle(self, *args, **options):
        for job in JOBS:
            schedule, _ = CrontabSchedule.objects.get_or_create(
                timezone=settings.TIME_ZONE,
                day_of_month="*",
                month_of_year="*",
                **job["crontab"],
            )
            task, created = PeriodicTask.objects.update_or_create(
                name=job["name"],
                defaults={
                    "task": job["task"],
                    "crontab": schedule,
                    "interval": None,
                    "enabled": True,
                },
            )
            action = "Created" if created else "Updated"
            self.stdout.write(f"{action}: {task.name}")
