"""Load a small demo dataset: an admin, two projects, sample issues and workflows."""
from __future__ import annotations

from django.core.management.base import BaseCommand
from django.db import transaction

from accounts.models import User
from projects.models import Issue, Project
from workflows.models import Workflow, WorkflowTransition
from workflows.templates import find_template

SAMPLE_ISSUES = [
    ("KPM", "Setup project structure", Issue.TASK, "Done", Issue.HIGH),
    ("KPM", "Implement user authentication", Issue.STORY, "In Progress", Issue.HIGH),
    ("DEMO", "Create demo data", Issue.TASK, "To Do", Issue.MEDIUM),
]


class Command(BaseCommand):
    help = "Create demo users, projects, issues and a default workflow per project."

    @transaction.atomic
    def handle(self, *args, **options) -> None:
        admin, _ = User.objects.get_or_create(
            username="admin",
            defaults={"email": "admin@example.com", "display_name": "Administrator", "role": User.ADMIN},
        )

        projects = {}
        for key, name, description in (
            ("KPM", "Tracker PMS", "Main project management system"),
            ("DEMO", "Demo Project", "Demo project for testing"),
        ):
            project, _ = Project.objects.get_or_create(
                key=key,
                defaults={"name": name, "description": description, "lead": admin},
            )
            project.members.add(admin)
            projects[key] = project

        template = find_template("Simple Workflow")
        for project in projects.values():
            if project.workflows.exists():
                continue
            workflow = Workflow.objects.create(
                name="Default Workflow",
                description=template.description,
                project=project,
                statuses=list(template.statuses),
                is_active=True,
            )
            WorkflowTransition.objects.bulk_create(
                [
                    WorkflowTransition(workflow=workflow, from_status=item.source, to_status=item.target)
                    for item in template.transitions
                ]
            )

        created = 0
        for key, summary, issue_type, status, priority in SAMPLE_ISSUES:
            _, was_created = Issue.objects.get_or_create(
                project=projects[key],
                summary=summary,
                defaults={
                    "type": issue_type,
                    "status": status,
                    "priority": priority,
                    "assignee": admin,
                    "reporter": admin,
                },
            )
            created += int(was_created)

        self.stdout.write(self.style.SUCCESS(f"Demo data ready ({created} new issues)."))
