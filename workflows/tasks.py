"""Background tasks for the workflow engine."""
from __future__ import annotations

import logging
from typing import Optional

from celery import shared_task

from projects.models import Issue

from .assignment import auto_assign

logger = logging.getLogger(__name__)


@shared_task
def auto_assign_issue(issue_id: int) -> Optional[int]:
    """Apply the default assignee to a freshly created issue."""

    try:
        outcome = auto_assign(issue_id)
    except Issue.DoesNotExist:
        logger.warning("Issue %s does not exist", issue_id)
        return None
    return outcome.assignee_id
