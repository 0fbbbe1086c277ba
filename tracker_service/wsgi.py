"""WSGI config for the workflow tracker service."""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "tracker_service.settings")

application = get_wsgi_application()
