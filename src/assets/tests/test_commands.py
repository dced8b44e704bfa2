"""Tests for the management commands."""

from io import StringIO

import openpyxl
import pytest
from django_celery_beat.models import PeriodicTask

from django.core.management import call_command
from django.core.management.base import CommandError

from assets.models import Asset


@pytest.fixture
def workbook_path(tmp_path):
    wb = openpyxl.Workbook()
    wb.active.append(["Asset Tag", "Name", "Category"])
    wb.active.append(["KB-1", "Keyboard", "keyboard"])
    wb.active.append(["", "Nameless", "toaster"])
    path = tmp_path / "assets.xlsx"
    wb.save(path)
    return path


@pytest.mark.django_db
class TestImportAssetsCommand:
    def test_imports_and_reports(self, admin_user, workbook_path):
        out = StringIO()
        call_command(
            "import_assets", str(workbook_path), actor="admin", stdout=out
        )
        output = out.getvalue()
        assert "Row 1: created KB-1" in output
        assert "Row 2: category" in output
        assert "1 of 2 row(s) imported." in output
        assert Asset.objects.filter(asset_tag="KB-1").exists()

    def test_unknown_actor(self, workbook_path):
        with pytest.raises(CommandError, match="No user named"):
            call_command("import_assets", str(workbook_path), actor="ghost")

    def test_missing_file(self, admin_user, tmp_path):
        with pytest.raises(CommandError, match="Cannot read"):
            call_command(
                "import_assets", str(tmp_path / "nope.xlsx"), actor="admin"
            )


@pytest.mark.django_db
class TestSetupPeriodicTasks:
    def test_creates_jobs(self):
        out = StringIO()
        call_command("setup_periodic_tasks", stdout=out)
        tasks = set(PeriodicTask.objects.values_list("task", flat=True))
        assert tasks == {
            "assets.tasks.send_email_digest",
            "assets.tasks.send_overdue_ticket_reminders",
            "assets.tasks.send_maintenance_reminders",
        }
        assert "Created" in out.getvalue()

    def test_is_idempotent(self):
        call_command("setup_periodic_tasks", stdout=StringIO())
        out = StringIO()
        call_command("setup_periodic_tasks", stdout=out)
        assert PeriodicTask.objects.count() == 3
        assert "Created" not in out.getvalue()
        digest = PeriodicTask.objects.get(name="Weekly email digest")
        assert digest.crontab.hour == "7"
        assert digest.crontab.day_of_week == "1"
