"""Celery configuration for AssetDesk."""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "assetdesk.settings")

app = Celery("assetdesk")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
