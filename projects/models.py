"""Database models for projects and their issues."""
from __future__ import annotations

from django.db import models
from django.db.models import Q


class ProjectQuerySet(models.QuerySet):
    def visible_to(self, user) -> "ProjectQuerySet":
        """Projects ``user`` leads or belongs to; admins see everything."""

        if getattr(user, "is_admin", False):
            return self
        return self.filter(Q(lead=user) | Q(members=user)).distinct()


class Project(models.Model):
    """A container for issues, workflows and default assignees."""

    name = models.CharField(max_length=255)
    key = models.CharField(max_length=16, unique=True)
    description = models.TextField(blank=True)
    lead = models.ForeignKey(
        "accounts.User",
        on_delete=models.SET_NULL,
        related_name="led_projects",
        null=True,
        blank=True,
    )
    members = models.ManyToManyField("accounts.User", related_name="projects", blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ProjectQuerySet.as_manager()

    class Meta:
        ordering = ["name", "id"]

    def __str__(self) -> str:
        return f"{self.key} - {self.name}"


class IssueQuerySet(models.QuerySet):
    def visible_to(self, user) -> "IssueQuerySet":
        return self.filter(project__in=Project.objects.visible_to(user))


class Issue(models.Model):
    """A unit of work tracked inside a project."""

    TASK = "Task"
    STORY = "Story"
    BUG = "Bug"
    EPIC = "Epic"
    SUBTASK = "Sub-task"

    TYPE_CHOICES = [
        (TASK, "Task"),
        (STORY, "Story"),
        (BUG, "Bug"),
        (EPIC, "Epic"),
        (SUBTASK, "Sub-task"),
    ]

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    HIGHEST = "Highest"

    PRIORITY_CHOICES = [
        (LOW, "Low"),
        (MEDIUM, "Medium"),
        (HIGH, "High"),
        (HIGHEST, "Highest"),
    ]

    DEFAULT_STATUS = "To Do"

    project = models.ForeignKey(Project, related_name="issues", on_delete=models.CASCADE)
    key = models.CharField(max_length=32, unique=True, null=True, blank=True)
    summary = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    type = models.CharField(max_length=32, choices=TYPE_CHOICES, default=TASK)
    # Free text; constrained only when the project has an active workflow.
    status = models.CharField(max_length=100, default=DEFAULT_STATUS)
    priority = models.CharField(max_length=16, choices=PRIORITY_CHOICES, default=MEDIUM)
    assignee = models.ForeignKey(
        "accounts.User",
        on_delete=models.SET_NULL,
        related_name="assigned_issues",
        null=True,
        blank=True,
    )
    reporter = models.ForeignKey(
        "accounts.User",
        on_delete=models.SET_NULL,
        related_name="reported_issues",
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = IssueQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at", "id"]
        indexes = [
            models.Index(fields=["project", "status"], name="issue_project_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.key or self.pk}: {self.summary} ({self.status})"

    def save(self, *args, **kwargs) -> None:
        if not self.key:
            super().save(*args, **kwargs)
            self.key = f"{self.project.key}-{self.pk}"
            super().save(update_fields=["key"])
            return
        super().save(*args, **kwargs)
