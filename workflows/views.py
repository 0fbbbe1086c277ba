"""API views for workflows and default assignees."""
from __future__ import annotations

import logging

from django.db import transaction
from rest_framework import status, viewsets
from rest_framework.decorators import action, api_view, authentication_classes, permission_classes
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response

from projects.filters import project_id_param, visible_projects
from projects.models import Issue

from . import assignment
from .models import DefaultAssignee, Workflow
from .serializers import (
    DefaultAssigneeRequestSerializer,
    DefaultAssigneeSerializer,
    WorkflowSerializer,
)
from .templates import list_templates

logger = logging.getLogger(__name__)


class WorkflowViewSet(viewsets.ModelViewSet):
    queryset = Workflow.objects.select_related("project").prefetch_related("transitions").all()
    serializer_class = WorkflowSerializer
    filter_backends = [SearchFilter, OrderingFilter]
    search_fields = ["name", "description"]
    ordering_fields = ["name", "created_at", "updated_at"]
    ordering = ["-created_at", "-id"]

    def get_queryset(self):  # type: ignore[override]
        queryset = super().get_queryset().visible_to(self.request.user)
        project_id = project_id_param(self.request)
        if project_id is not None:
            queryset = queryset.filter(project_id=project_id)
        return queryset

    def list(self, request: Request, *args, **kwargs) -> Response:  # type: ignore[override]
        queryset = self.filter_queryset(self.get_queryset())
        serializer = self.get_serializer(queryset, many=True)
        return Response({"workflows": serializer.data})

    def retrieve(self, request: Request, *args, **kwargs) -> Response:  # type: ignore[override]
        serializer = self.get_serializer(self.get_object())
        return Response({"workflow": serializer.data})

    def create(self, request: Request, *args, **kwargs) -> Response:  # type: ignore[override]
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        workflow = serializer.save()
        return Response(
            {
                "message": "Workflow created successfully",
                "workflow": self.get_serializer(self._reload(workflow)).data,
                "warnings": serializer.validation_result.warning_messages,
            },
            status=status.HTTP_201_CREATED,
        )

    def update(self, request: Request, *args, **kwargs) -> Response:  # type: ignore[override]
        # Every field is optional on update, so PUT behaves like PATCH.
        serializer = self.get_serializer(self.get_object(), data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        workflow = serializer.save()
        return Response(
            {
                "message": "Workflow updated successfully",
                "workflow": self.get_serializer(self._reload(workflow)).data,
                "warnings": serializer.validation_result.warning_messages,
            }
        )

    def destroy(self, request: Request, *args, **kwargs) -> Response:  # type: ignore[override]
        workflow = self.get_object()
        workflow_id = workflow.pk
        with transaction.atomic():
            workflow.delete()
        logger.info("Workflow %s deleted", workflow_id)
        return Response({"message": "Workflow deleted successfully"})

    @action(detail=True, methods=["post"], url_path="activate")
    def activate(self, request: Request, *args, **kwargs) -> Response:
        """Make this the workflow that governs its project's issue statuses."""

        workflow = self.get_object()
        with transaction.atomic():
            Workflow.objects.filter(project_id=workflow.project_id, is_active=True).exclude(
                pk=workflow.pk
            ).update(is_active=False)
            workflow.is_active = True
            workflow.save(update_fields=["is_active", "updated_at"])
        logger.info("Workflow %s activated for project %s", workflow.pk, workflow.project_id)
        return Response(
            {
                "message": "Workflow activated successfully",
                "workflow": self.get_serializer(workflow).data,
            }
        )

    @action(detail=False, methods=["get"], url_path="templates")
    def templates(self, request: Request) -> Response:
        return Response({"templates": [template.as_dict() for template in list_templates()]})

    @action(detail=False, methods=["get", "post"], url_path="default-assignee")
    def default_assignee(self, request: Request) -> Response:
        if request.method == "GET":
            return self._list_default_assignees(request)

        payload = DefaultAssigneeRequestSerializer(data=request.data, context={"request": request})
        payload.is_valid(raise_exception=True)
        data = payload.validated_data
        default, _ = assignment.set_default_assignee(
            data["project"],
            data["issue_type"],
            data["assignee"] if "assignee" in data else assignment.UNCHANGED,
        )
        default = DefaultAssignee.objects.select_related("project", "assignee").get(pk=default.pk)
        return Response(
            {
                "message": "Default assignee set successfully",
                "defaultAssignee": DefaultAssigneeSerializer(default).data,
            }
        )

    @action(
        detail=False,
        methods=["post"],
        url_path=r"auto-assign/(?P<issue_id>[0-9]+)",
        url_name="auto-assign",
    )
    def auto_assign(self, request: Request, issue_id: str) -> Response:
        if not Issue.objects.visible_to(request.user).filter(pk=issue_id).exists():
            return Response({"error": "Issue not found"}, status=status.HTTP_404_NOT_FOUND)
        try:
            outcome = assignment.auto_assign(int(issue_id))
        except Issue.DoesNotExist:
            return Response({"error": "Issue not found"}, status=status.HTTP_404_NOT_FOUND)
        return Response(
            {
                "message": outcome.message,
                "assigned": outcome.assigned,
                "assignee_id": outcome.assignee_id,
            }
        )

    def _list_default_assignees(self, request: Request) -> Response:
        queryset = DefaultAssignee.objects.select_related("project", "assignee")
        queryset = queryset.filter(project__in=visible_projects(request))
        project_id = project_id_param(request)
        if project_id is not None:
            queryset = queryset.filter(project_id=project_id)
        serializer = DefaultAssigneeSerializer(queryset, many=True)
        return Response({"defaultAssignees": serializer.data})

    @staticmethod
    def _reload(workflow: Workflow) -> Workflow:
        return Workflow.objects.select_related("project").prefetch_related("transitions").get(
            pk=workflow.pk
        )


@api_view(["GET"])
@authentication_classes([])
@permission_classes([AllowAny])
def health(request: Request) -> Response:
    """Readiness endpoint for orchestration tooling."""

    return Response({"status": "ok"})
