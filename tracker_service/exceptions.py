"""Uniform JSON error bodies for every API failure."""
from __future__ import annotations

import logging
from typing import Any, Iterator

from django.conf import settings
from django.core.exceptions import ObjectDoesNotExist
from django.db import IntegrityError
from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.response import Response
from rest_framework.settings import api_settings
from rest_framework.views import exception_handler

from workflows.exceptions import WorkflowStructureInvalid

logger = logging.getLogger(__name__)


def flatten_errors(detail: Any, prefix: str = "") -> Iterator[str]:
    """Turn a nested DRF error detail into ``"field: message"`` strings."""

    if isinstance(detail, dict):
        for key, value in detail.items():
            label = "" if key == api_settings.NON_FIELD_ERRORS_KEY else str(key)
            if prefix and label:
                label = f"{prefix}.{label}"
            yield from flatten_errors(value, label or prefix)
    elif isinstance(detail, (list, tuple)):
        for index, item in enumerate(detail):
            if isinstance(item, (dict, list, tuple)):
                yield from flatten_errors(item, f"{prefix}[{index}]")
            else:
                yield from flatten_errors(item, prefix)
    else:
        yield f"{prefix}: {detail}" if prefix else str(detail)


def api_exception_handler(exc: Exception, context: dict) -> Response:
    if isinstance(exc, ObjectDoesNotExist):
        return Response({"error": "Record not found"}, status=status.HTTP_404_NOT_FOUND)

    if isinstance(exc, IntegrityError):
        logger.warning("Integrity error: %s", exc)
        return Response(
            {
                "error": "Duplicate entry",
                "details": "A record with this information already exists",
            },
            status=status.HTTP_400_BAD_REQUEST,
        )

    response = exception_handler(exc, context)
    if response is None:
        view = context.get("view")
        logger.error("Unhandled error in %s", type(view).__name__, exc_info=exc)
        return Response(
            {
                "error": "Internal Server Error",
                "details": str(exc) if settings.DEBUG else "Something went wrong",
            },
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if isinstance(exc, WorkflowStructureInvalid):
        response.data = {"error": "Invalid workflow structure", "errors": list(exc.errors)}
    elif isinstance(exc, ValidationError):
        response.data = {"error": "Validation Error", "errors": list(flatten_errors(exc.detail))}
    elif isinstance(exc, APIException):
        detail = exc.detail
        if isinstance(detail, (dict, list)):
            response.data = {"error": "; ".join(flatten_errors(detail))}
        else:
            response.data = {"error": str(detail)}
    return response
