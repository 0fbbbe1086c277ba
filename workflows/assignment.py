"""Per (project, issue type) default assignees."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from django.db import transaction

from accounts.models import User
from projects.models import Issue, Project

from .models import DefaultAssignee

logger = logging.getLogger(__name__)

UNCHANGED: Any = object()

ASSIGNED_MESSAGE = "Issue auto-assigned successfully"
NOT_CONFIGURED_MESSAGE = "No default assignee configured"


@dataclass(frozen=True)
class AssignmentOutcome:
    issue_id: int
    assignee_id: Optional[int]

    @property
    def assigned(self) -> bool:
        return self.assignee_id is not None

    @property
    def message(self) -> str:
        return ASSIGNED_MESSAGE if self.assigned else NOT_CONFIGURED_MESSAGE


def set_default_assignee(
    project: Project,
    issue_type: str,
    assignee: Optional[User] = UNCHANGED,
) -> Tuple[DefaultAssignee, bool]:
    """Upsert the default for ``(project, issue_type)``.

    ``assignee=None`` clears the default; leaving it ``UNCHANGED`` keeps the
    stored assignee (a new row starts without one).
    """

    with transaction.atomic():
        default, created = DefaultAssignee.objects.select_for_update().get_or_create(
            project=project,
            issue_type=issue_type,
            defaults={"assignee": None if assignee is UNCHANGED else assignee},
        )
        if not created and assignee is not UNCHANGED and default.assignee != assignee:
            default.assignee = assignee
            default.save(update_fields=["assignee", "updated_at"])

    logger.info(
        "Default assignee for project %s / %s set to %s",
        project.pk,
        issue_type,
        default.assignee_id,
    )
    return default, created


def resolve_default_assignee(project_id: int, issue_type: str) -> Optional[int]:
    return (
        DefaultAssignee.objects.filter(project_id=project_id, issue_type=issue_type)
        .values_list("assignee_id", flat=True)
        .first()
    )


def auto_assign(issue_id: int) -> AssignmentOutcome:
    """Write the configured default assignee onto the issue, if there is one.

    Raises ``Issue.DoesNotExist`` for an unknown issue. Concurrent calls are
    last-write-wins.
    """

    issue = Issue.objects.get(pk=issue_id)
    assignee_id = resolve_default_assignee(issue.project_id, issue.type)
    if assignee_id is None:
        logger.info("No default assignee for issue %s (%s)", issue_id, issue.type)
        return AssignmentOutcome(issue_id=issue.pk, assignee_id=None)

    issue.assignee_id = assignee_id
    issue.save(update_fields=["assignee", "updated_at"])
    logger.info("Issue %s auto-assigned to user %s", issue_id, assignee_id)
    return AssignmentOutcome(issue_id=issue.pk, assignee_id=assignee_id)
