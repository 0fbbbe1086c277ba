"""Tests for the project and issue API."""
from __future__ import annotations

from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.test import TestCase
from django.urls import reverse
from kombu.exceptions import OperationalError
from rest_framework.test import APIClient

from accounts.models import User
from workflows.models import Workflow, WorkflowTransition

from .models import Issue, Project


class ProjectApiTests(TestCase):
    def setUp(self) -> None:
        self.admin = User.objects.create(username="admin", email="admin@example.com", role=User.ADMIN)
        self.client = APIClient()
        self.client.force_authenticate(user=self.admin)

    def test_create_project(self) -> None:
        payload = {
            "name": "Tracker",
            "key": "trk",
            "lead_id": self.admin.id,
            "member_ids": [self.admin.id],
        }
        response = self.client.post(reverse("project-list"), payload, format="json")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["key"], "TRK")

        project = Project.objects.get()
        self.assertEqual(list(project.members.all()), [self.admin])
        self.assertEqual(list(Project.objects.visible_to(self.admin)), [project])

    def test_visible_to_members_only(self) -> None:
        project = Project.objects.create(name="Tracker", key="TRK")
        outsider = User.objects.create(username="casey", email="casey@example.com")
        self.assertFalse(Project.objects.visible_to(outsider).exists())
        project.members.add(outsider)
        self.assertEqual(list(Project.objects.visible_to(outsider)), [project])


class IssueApiTests(TestCase):
    def setUp(self) -> None:
        self.admin = User.objects.create(username="admin", email="admin@example.com", role=User.ADMIN)
        self.project = Project.objects.create(name="Tracker", key="TRK", lead=self.admin)
        self.client = APIClient()
        self.client.force_authenticate(user=self.admin)

    def _activate_bug_flow(self) -> Workflow:
        workflow = Workflow.objects.create(
            name="Bug Flow",
            project=self.project,
            statuses=["Open", "Fixed", "Closed"],
            is_active=True,
        )
        WorkflowTransition.objects.bulk_create(
            [
                WorkflowTransition(workflow=workflow, from_status="Open", to_status="Fixed"),
                WorkflowTransition(workflow=workflow, from_status="Fixed", to_status="Closed"),
            ]
        )
        return workflow

    def _create_issue(self, **overrides):
        payload = {"project_id": self.project.id, "summary": "Crash on save", "type": Issue.BUG}
        payload.update(overrides)
        return self.client.post(reverse("issue-list"), payload, format="json")

    def test_create_issue_generates_key(self) -> None:
        response = self._create_issue()
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["key"], f"TRK-{response.data['id']}")
        self.assertEqual(response.data["status"], Issue.DEFAULT_STATUS)

    def test_status_is_free_text_without_workflow(self) -> None:
        issue_id = self._create_issue().data["id"]
        response = self.client.patch(
            reverse("issue-detail", args=[issue_id]),
            {"status": "Waiting on vendor"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "Waiting on vendor")

    def test_new_issue_starts_in_initial_status(self) -> None:
        self._activate_bug_flow()
        response = self._create_issue()
        self.assertEqual(response.data["status"], "Open")

    def test_new_issue_status_must_belong_to_workflow(self) -> None:
        self._activate_bug_flow()
        response = self._create_issue(status="Backlog")
        self.assertEqual(response.status_code, 400)
        self.assertTrue(any("Backlog" in message for message in response.data["errors"]))

    def test_transition_along_workflow(self) -> None:
        self._activate_bug_flow()
        issue_id = self._create_issue().data["id"]

        response = self.client.post(
            reverse("issue-transition", args=[issue_id]), {"status": "Fixed"}, format="json"
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "Fixed")

        response = self.client.post(
            reverse("issue-transition", args=[issue_id]), {"status": "Open"}, format="json"
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("'Fixed' to 'Open'", response.data["errors"][0])
        self.assertEqual(Issue.objects.get(pk=issue_id).status, "Fixed")

    def test_update_enforces_workflow(self) -> None:
        self._activate_bug_flow()
        issue_id = self._create_issue().data["id"]
        response = self.client.patch(
            reverse("issue-detail", args=[issue_id]), {"status": "Closed"}, format="json"
        )
        self.assertEqual(response.status_code, 400)

    def test_available_transitions(self) -> None:
        workflow = self._activate_bug_flow()
        issue_id = self._create_issue().data["id"]

        response = self.client.get(reverse("issue-available-transitions", args=[issue_id]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "Open")
        self.assertEqual(response.data["workflow_id"], workflow.id)
        self.assertEqual(
            [(item["from"], item["to"]) for item in response.data["transitions"]],
            [("Open", "Fixed")],
        )

    def test_available_transitions_without_workflow(self) -> None:
        issue_id = self._create_issue().data["id"]
        response = self.client.get(reverse("issue-available-transitions", args=[issue_id]))
        self.assertIsNone(response.data["workflow_id"])
        self.assertEqual(response.data["transitions"], [])

    def test_filter_by_project(self) -> None:
        other = Project.objects.create(name="Other", key="OTH")
        self._create_issue()
        self._create_issue(project_id=other.id)
        response = self.client.get(reverse("issue-list"), {"project_id": other.id})
        self.assertEqual(len(response.data), 1)
        self.assertTrue(response.data[0]["key"].startswith("OTH-"))

    def test_activation_over_existing_issues(self) -> None:
        issue_id = self._create_issue().data["id"]
        self._activate_bug_flow()
        url = reverse("issue-available-transitions", args=[issue_id])

        response = self.client.get(url)
        self.assertEqual(response.data["status"], Issue.DEFAULT_STATUS)
        self.assertEqual(
            [item["to"] for item in response.data["transitions"]],
            ["Open", "Fixed", "Closed"],
        )

        response = self.client.post(
            reverse("issue-transition", args=[issue_id]), {"status": "Fixed"}, format="json"
        )
        self.assertEqual(response.status_code, 200)

        response = self.client.post(
            reverse("issue-transition", args=[issue_id]), {"status": "Open"}, format="json"
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            [item["to"] for item in self.client.get(url).data["transitions"]],
            ["Closed"],
        )

    def test_create_survives_unreachable_broker(self) -> None:
        with self.assertLogs("projects.views", level="ERROR"), mock.patch(
            "projects.views.auto_assign_issue"
        ) as task, self.captureOnCommitCallbacks(execute=True):
            task.delay.side_effect = OperationalError("broker unavailable")
            response = self._create_issue()
        self.assertEqual(response.status_code, 201)
        self.assertTrue(Issue.objects.filter(pk=response.data["id"]).exists())


class IssueVisibilityTests(TestCase):
    def setUp(self) -> None:
        self.lead = User.objects.create(username="lead", email="lead@example.com")
        self.outsider = User.objects.create(username="casey", email="casey@example.com")
        self.project = Project.objects.create(name="Tracker", key="TRK", lead=self.lead)
        self.issue = Issue.objects.create(project=self.project, summary="Crash on save", type=Issue.BUG)
        self.client = APIClient()
        self.client.force_authenticate(user=self.outsider)

    def test_outsider_sees_no_issues(self) -> None:
        self.assertEqual(self.client.get(reverse("issue-list")).data, [])
        response = self.client.get(reverse("issue-detail", args=[self.issue.id]))
        self.assertEqual(response.status_code, 404)

    def test_outsider_cannot_file_issues(self) -> None:
        response = self.client.post(
            reverse("issue-list"),
            {"project_id": self.project.id, "summary": "Sneaky", "type": Issue.TASK},
            format="json",
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["error"], "Project not found")
        self.assertEqual(Issue.objects.count(), 1)

    def test_member_can_file_issues(self) -> None:
        self.project.members.add(self.outsider)
        response = self.client.post(
            reverse("issue-list"),
            {"project_id": self.project.id, "summary": "Legit", "type": Issue.TASK},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(len(self.client.get(reverse("issue-list")).data), 2)

    def test_outsider_sees_no_projects(self) -> None:
        self.assertEqual(self.client.get(reverse("project-list")).data, [])


class SeedDemoCommandTests(TestCase):
    def test_seed_is_idempotent(self) -> None:
        call_command("seeddemo", stdout=StringIO())
        call_command("seeddemo", stdout=StringIO())

        self.assertEqual(Project.objects.count(), 2)
        self.assertEqual(Issue.objects.count(), 3)
        self.assertEqual(Workflow.objects.filter(is_active=True).count(), 2)
        workflow = Workflow.objects.get(project__key="KPM")
        self.assertEqual(workflow.status_names, ["To Do", "In Progress", "Done"])
        self.assertTrue(workflow.allows("Done", "To Do"))
