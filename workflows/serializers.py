"""Serializers for workflow entities."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from django.db import transaction
from rest_framework import serializers
from rest_framework.exceptions import NotFound

from accounts.models import User
from accounts.serializers import UserSummarySerializer
from projects.filters import visible_projects
from projects.models import Issue, Project
from projects.serializers import ProjectSummarySerializer

from .exceptions import WorkflowStructureInvalid
from .models import DefaultAssignee, Workflow, WorkflowTransition
from .templates import apply_template
from .validation import ValidationResult, validate_workflow

logger = logging.getLogger(__name__)


def _unique_statuses(statuses: List[str]) -> List[str]:
    unique: List[str] = []
    for name in statuses:
        if name not in unique:
            unique.append(name)
    return unique


def _unique_transitions(transitions: List[Dict[str, str]]) -> List[Dict[str, str]]:
    unique: List[Dict[str, str]] = []
    seen = set()
    for transition in transitions:
        pair = (transition["from"], transition["to"])
        if pair not in seen:
            seen.add(pair)
            unique.append(transition)
    return unique


class WorkflowTransitionSerializer(serializers.Serializer):
    """``{from, to}`` on input; ``{id, from, to, name}`` on output."""

    to = serializers.CharField(max_length=100)

    def get_fields(self):  # type: ignore[override]
        fields = super().get_fields()
        # "from" is a keyword, so it cannot be declared as a class attribute.
        return {"from": serializers.CharField(max_length=100), **fields}

    def to_representation(self, instance: WorkflowTransition) -> Dict[str, Any]:  # type: ignore[override]
        return {
            "id": instance.id,
            "from": instance.from_status,
            "to": instance.to_status,
            "name": instance.name,
        }


class WorkflowSerializer(serializers.ModelSerializer):
    project = ProjectSummarySerializer(read_only=True)
    project_id = serializers.IntegerField()
    statuses = serializers.ListField(
        child=serializers.CharField(max_length=100),
        allow_empty=True,
        required=False,
    )
    transitions = WorkflowTransitionSerializer(many=True, allow_empty=True)
    template = serializers.CharField(write_only=True, required=False, allow_blank=True)

    class Meta:
        model = Workflow
        fields = [
            "id",
            "name",
            "description",
            "project",
            "project_id",
            "statuses",
            "transitions",
            "template",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["is_active"]

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.validation_result = ValidationResult()

    def to_internal_value(self, data: Dict[str, Any]) -> Dict[str, Any]:  # type: ignore[override]
        """Prefill statuses and transitions the request omits from a named template."""

        template_name = data.get("template") if hasattr(data, "get") else None
        if template_name:
            applied = apply_template(template_name)
            if applied is not None:
                statuses, transitions = applied
                data = dict(data)
                data.setdefault("statuses", statuses)
                data.setdefault("transitions", transitions)
        return super().to_internal_value(data)

    def to_representation(self, instance: Workflow) -> Dict[str, Any]:  # type: ignore[override]
        representation = super().to_representation(instance)
        representation["statuses"] = instance.status_names
        return representation

    def validate_project_id(self, value: int) -> int:
        if self.instance is not None:
            return self.instance.project_id
        if not visible_projects(self.context.get("request")).filter(pk=value).exists():
            raise NotFound("Project not found")
        return value

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:  # type: ignore[override]
        attrs.pop("template", None)
        if "statuses" in attrs:
            attrs["statuses"] = _unique_statuses(attrs["statuses"])

        if self.instance is not None:
            statuses = attrs.get("statuses", self.instance.status_names)
            transitions = attrs.get(
                "transitions",
                [
                    {"from": transition.from_status, "to": transition.to_status}
                    for transition in self.instance.transitions.all()
                ],
            )
        else:
            transitions = attrs.get("transitions", [])
            if "statuses" not in attrs:
                # Without an explicit list the statuses are the transition endpoints.
                attrs["statuses"] = _unique_statuses(
                    [name for transition in transitions for name in (transition["from"], transition["to"])]
                )
            statuses = attrs["statuses"]

        result = validate_workflow(statuses, transitions)
        if not result.is_valid:
            raise WorkflowStructureInvalid(result.errors)
        self.validation_result = result
        return attrs

    @staticmethod
    def _replace_transitions(workflow: Workflow, transitions: List[Dict[str, str]]) -> None:
        workflow.transitions.all().delete()
        WorkflowTransition.objects.bulk_create(
            [
                WorkflowTransition(
                    workflow=workflow,
                    from_status=transition["from"],
                    to_status=transition["to"],
                )
                for transition in _unique_transitions(transitions)
            ]
        )

    @transaction.atomic
    def create(self, validated_data):  # type: ignore[override]
        transitions = validated_data.pop("transitions", [])
        workflow = Workflow.objects.create(**validated_data)
        self._replace_transitions(workflow, transitions)
        logger.info(
            "Workflow %s created for project %s with %d transitions",
            workflow.pk,
            workflow.project_id,
            workflow.transitions.count(),
        )
        return workflow

    @transaction.atomic
    def update(self, instance, validated_data):  # type: ignore[override]
        transitions = validated_data.pop("transitions", None)
        validated_data.pop("project_id", None)
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        instance.save()

        if transitions is not None:
            self._replace_transitions(instance, transitions)
        logger.info("Workflow %s updated", instance.pk)
        return instance


class DefaultAssigneeSerializer(serializers.ModelSerializer):
    project = ProjectSummarySerializer(read_only=True)
    assignee = UserSummarySerializer(read_only=True, allow_null=True)

    class Meta:
        model = DefaultAssignee
        fields = [
            "id",
            "project_id",
            "project",
            "issue_type",
            "assignee_id",
            "assignee",
            "created_at",
            "updated_at",
        ]


class DefaultAssigneeRequestSerializer(serializers.Serializer):
    """Validates ``{project_id, issue_type, assignee_id?}`` into ``project`` and ``assignee``."""

    project_id = serializers.IntegerField(source="project")
    issue_type = serializers.ChoiceField(choices=Issue.TYPE_CHOICES)
    assignee_id = serializers.IntegerField(source="assignee", required=False, allow_null=True)

    def validate_project_id(self, value: int) -> Project:
        project = visible_projects(self.context.get("request")).filter(pk=value).first()
        if project is None:
            raise NotFound("Project not found")
        return project

    def validate_assignee_id(self, value: Optional[int]) -> Optional[User]:
        if value is None:
            return None
        assignee = User.objects.filter(pk=value, is_active=True).first()
        if assignee is None:
            raise serializers.ValidationError("Assignee not found.")
        return assignee
