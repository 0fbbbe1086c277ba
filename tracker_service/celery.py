"""Celery application for the workflow tracker service."""
from __future__ import annotations

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "tracker_service.settings")

app = Celery("tracker_service")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
