"""Django project for the workflow tracker service."""
from .celery import app as celery_app

__all__ = ["celery_app"]
