"""Query-string and visibility helpers shared by the project-scoped endpoints."""
from __future__ import annotations

from typing import Optional

from rest_framework.exceptions import ValidationError
from rest_framework.request import Request

from .models import Project


def project_id_param(request: Request) -> Optional[int]:
    """The ``?project_id=`` filter, or ``None`` when absent."""

    value = request.query_params.get("project_id")
    if value in (None, ""):
        return None
    if not value.isdigit():
        raise ValidationError({"project_id": "A valid integer is required."})
    return int(value)


def visible_projects(request: Optional[Request]):
    """Projects the caller leads or belongs to (all of them for admins or outside a request)."""

    if request is None:
        return Project.objects.all()
    return Project.objects.visible_to(request.user)
