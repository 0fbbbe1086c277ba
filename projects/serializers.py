"""Serializers for projects and issues."""
from __future__ import annotations

from typing import Any, Dict, Optional

from rest_framework import serializers
from rest_framework.exceptions import NotFound

from accounts.models import User

from .filters import visible_projects
from .models import Issue, Project


class ProjectSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Project
        fields = ["id", "name", "key"]


class ProjectSerializer(serializers.ModelSerializer):
    lead_id = serializers.PrimaryKeyRelatedField(
        source="lead",
        queryset=User.objects.all(),
        required=False,
        allow_null=True,
    )
    member_ids = serializers.PrimaryKeyRelatedField(
        source="members",
        queryset=User.objects.all(),
        many=True,
        required=False,
    )

    class Meta:
        model = Project
        fields = [
            "id",
            "name",
            "key",
            "description",
            "lead_id",
            "member_ids",
            "created_at",
            "updated_at",
        ]

    def validate_key(self, value: str) -> str:
        return value.strip().upper()


def _active_workflow(project_id: int):
    # Imported here: the workflows app depends on this one.
    from workflows.models import Workflow

    return Workflow.objects.active_for(project_id)


def check_status_change(project_id: int, current: Optional[str], target: str) -> None:
    """Reject ``current -> target`` when the project's active workflow forbids it.

    Projects without an active workflow keep free-text statuses. An issue
    outside the active workflow may move to any of its statuses.
    """

    workflow = _active_workflow(project_id)
    if workflow is None or current == target:
        return
    if current is None:
        if target not in workflow.status_names:
            raise serializers.ValidationError(
                {"status": f"Status '{target}' is not part of workflow '{workflow.name}'."}
            )
        return
    if not workflow.allows(current, target):
        raise serializers.ValidationError(
            {"status": f"Workflow '{workflow.name}' does not allow '{current}' to '{target}'."}
        )


class IssueSerializer(serializers.ModelSerializer):
    project_id = serializers.PrimaryKeyRelatedField(source="project", queryset=Project.objects.all())
    assignee_id = serializers.PrimaryKeyRelatedField(
        source="assignee",
        queryset=User.objects.all(),
        required=False,
        allow_null=True,
    )
    reporter_id = serializers.PrimaryKeyRelatedField(
        source="reporter",
        queryset=User.objects.all(),
        required=False,
        allow_null=True,
    )
    status = serializers.CharField(max_length=100, required=False)

    class Meta:
        model = Issue
        fields = [
            "id",
            "key",
            "summary",
            "description",
            "type",
            "status",
            "priority",
            "project_id",
            "assignee_id",
            "reporter_id",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["key"]

    def validate_project_id(self, project: Project) -> Project:
        if self.instance is not None:
            return self.instance.project
        if not visible_projects(self.context.get("request")).filter(pk=project.pk).exists():
            raise NotFound("Project not found")
        return project

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:  # type: ignore[override]
        if self.instance is not None:
            attrs.pop("project", None)
            if "status" in attrs:
                check_status_change(self.instance.project_id, self.instance.status, attrs["status"])
            return attrs

        project = attrs["project"]
        if "status" in attrs:
            check_status_change(project.pk, None, attrs["status"])
        else:
            workflow = _active_workflow(project.pk)
            if workflow is not None and workflow.initial_status:
                attrs["status"] = workflow.initial_status
        return attrs


class IssueTransitionSerializer(serializers.Serializer):
    status = serializers.CharField(max_length=100)
