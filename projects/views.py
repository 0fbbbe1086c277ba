"""API views for projects and issues."""
from __future__ import annotations

import logging

from django.db import transaction
from kombu.exceptions import OperationalError
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.request import Request
from rest_framework.response import Response

from workflows.models import Workflow
from workflows.serializers import WorkflowTransitionSerializer
from workflows.tasks import auto_assign_issue

from .filters import project_id_param, visible_projects
from .models import Issue, Project
from .serializers import (
    IssueSerializer,
    IssueTransitionSerializer,
    ProjectSerializer,
    check_status_change,
)

logger = logging.getLogger(__name__)


def schedule_auto_assign(issue_id: int) -> None:
    """Queue default-assignee resolution; the issue row is already committed."""

    try:
        auto_assign_issue.delay(issue_id)
    except OperationalError:
        logger.exception("Could not queue auto-assignment for issue %s", issue_id)


class ProjectViewSet(viewsets.ModelViewSet):
    queryset = Project.objects.prefetch_related("members").all()
    serializer_class = ProjectSerializer
    filter_backends = [SearchFilter, OrderingFilter]
    search_fields = ["name", "key", "description"]
    ordering_fields = ["name", "key", "created_at"]
    ordering = ["name"]

    def get_queryset(self):  # type: ignore[override]
        return visible_projects(self.request).prefetch_related("members")


class IssueViewSet(viewsets.ModelViewSet):
    queryset = Issue.objects.select_related("project").all()
    serializer_class = IssueSerializer
    filter_backends = [SearchFilter, OrderingFilter]
    search_fields = ["key", "summary", "description", "status", "type"]
    ordering_fields = ["created_at", "updated_at", "priority", "status"]
    ordering = ["-created_at"]

    def get_queryset(self):  # type: ignore[override]
        queryset = super().get_queryset().visible_to(self.request.user)
        project_id = project_id_param(self.request)
        if project_id is not None:
            queryset = queryset.filter(project_id=project_id)
        return queryset

    def perform_create(self, serializer) -> None:  # type: ignore[override]
        issue = serializer.save()
        if issue.assignee_id is None:
            transaction.on_commit(lambda: schedule_auto_assign(issue.pk))

    @action(detail=True, methods=["post"], url_path="transition")
    def transition(self, request: Request, *args, **kwargs) -> Response:
        """Move the issue to another status along the active workflow."""

        issue = self.get_object()
        payload = IssueTransitionSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        target = payload.validated_data["status"]

        check_status_change(issue.project_id, issue.status, target)
        previous = issue.status
        issue.status = target
        issue.save(update_fields=["status", "updated_at"])
        logger.info("Issue %s moved from '%s' to '%s'", issue.pk, previous, target)
        return Response(self.get_serializer(issue).data)

    @action(
        detail=True,
        methods=["get"],
        url_path="transitions",
        url_name="available-transitions",
    )
    def available_transitions(self, request: Request, *args, **kwargs) -> Response:
        """List the transitions the active workflow offers from the current status."""

        issue = self.get_object()
        workflow = Workflow.objects.active_for(issue.project_id)
        transitions = workflow.moves_from(issue.status) if workflow is not None else []
        return Response(
            {
                "status": issue.status,
                "workflow_id": workflow.pk if workflow is not None else None,
                "transitions": WorkflowTransitionSerializer(transitions, many=True).data,
            }
        )
