"""API exceptions raised by the workflow engine."""
from __future__ import annotations

from typing import Iterable, List

from rest_framework import status
from rest_framework.exceptions import APIException


class WorkflowStructureInvalid(APIException):
    """The transition validator rejected a workflow definition."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid workflow structure."
    default_code = "workflow_structure_invalid"

    def __init__(self, errors: Iterable[str]) -> None:
        self.errors: List[str] = list(errors)
        super().__init__(detail="; ".join(self.errors) or self.default_detail)
