"""Database models for the workflow engine."""
from __future__ import annotations

from typing import Iterable, List, Optional

from django.db import models


def ordered_statuses(declared: Iterable[str], transitions: Iterable["WorkflowTransition"]) -> List[str]:
    """Declared statuses in order, followed by any transition endpoint not declared."""

    statuses: List[str] = []
    for name in declared:
        if name not in statuses:
            statuses.append(name)
    for transition in transitions:
        for name in (transition.from_status, transition.to_status):
            if name not in statuses:
                statuses.append(name)
    return statuses


class WorkflowQuerySet(models.QuerySet):
    def visible_to(self, user) -> "WorkflowQuerySet":
        if getattr(user, "is_admin", False):
            return self
        return self.filter(
            models.Q(project__lead=user) | models.Q(project__members=user)
        ).distinct()

    def active_for(self, project_id: int) -> Optional["Workflow"]:
        return self.filter(project_id=project_id, is_active=True).prefetch_related("transitions").first()


class Workflow(models.Model):
    """A user-defined state machine for the issues of one project."""

    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    project = models.ForeignKey("projects.Project", related_name="workflows", on_delete=models.CASCADE)
    statuses = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = WorkflowQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:
        return self.name

    @property
    def status_names(self) -> List[str]:
        return ordered_statuses(self.statuses or [], self.transitions.all())

    @property
    def initial_status(self) -> Optional[str]:
        names = self.status_names
        return names[0] if names else None

    def transitions_from(self, status: str) -> List["WorkflowTransition"]:
        return [transition for transition in self.transitions.all() if transition.from_status == status]

    def moves_from(self, status: str) -> List["WorkflowTransition"]:
        """Moves offered from ``status``.

        An issue whose status is not part of this workflow (it predates
        activation, or an update dropped its status) may enter the workflow
        at any of its statuses; the returned entries are unsaved.
        """

        names = self.status_names
        if status in names:
            return self.transitions_from(status)
        return [WorkflowTransition(workflow=self, from_status=status, to_status=name) for name in names]

    def allows(self, from_status: str, to_status: str) -> bool:
        return any(transition.to_status == to_status for transition in self.moves_from(from_status))


class WorkflowTransition(models.Model):
    """A legal move between two statuses of a workflow."""

    workflow = models.ForeignKey(Workflow, related_name="transitions", on_delete=models.CASCADE)
    from_status = models.CharField(max_length=100)
    to_status = models.CharField(max_length=100)

    class Meta:
        ordering = ["id"]
        unique_together = ("workflow", "from_status", "to_status")

    def __str__(self) -> str:
        return self.name

    @property
    def name(self) -> str:
        return f"{self.from_status} to {self.to_status}"


class DefaultAssignee(models.Model):
    """The user new issues of one type in one project are assigned to."""

    project = models.ForeignKey("projects.Project", related_name="default_assignees", on_delete=models.CASCADE)
    issue_type = models.CharField(max_length=32)
    assignee = models.ForeignKey(
        "accounts.User",
        on_delete=models.SET_NULL,
        related_name="default_assignments",
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        unique_together = ("project", "issue_type")

    def __str__(self) -> str:
        return f"{self.project_id}/{self.issue_type} -> {self.assignee_id}"
