"""Tests for the workflow engine and its API."""
from __future__ import annotations

import dataclasses
from unittest import mock

from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse
from rest_framework.exceptions import ValidationError
from rest_framework.test import APIClient

from accounts.models import User
from projects.models import Issue, Project
from tracker_service.exceptions import api_exception_handler, flatten_errors

from .models import DefaultAssignee, Workflow, WorkflowTransition
from .tasks import auto_assign_issue
from .templates import apply_template, find_template, list_templates
from .validation import (
    DUPLICATE_TRANSITION,
    EMPTY_STATUS_SET,
    EMPTY_TRANSITION_SET,
    MALFORMED_TRANSITION,
    SELF_LOOP_TRANSITION,
    UNKNOWN_STATUS_REFERENCE,
    UNREACHABLE_STATUS,
    validate_workflow,
)

SIMPLE_TRANSITIONS = [
    {"from": "To Do", "to": "In Progress"},
    {"from": "In Progress", "to": "Done"},
]


class TransitionValidatorTests(SimpleTestCase):
    def test_valid_definition(self) -> None:
        result = validate_workflow(["To Do", "In Progress", "Done"], SIMPLE_TRANSITIONS)
        self.assertTrue(result.is_valid)
        self.assertEqual(result.errors, [])

    def test_unknown_status_is_named(self) -> None:
        result = validate_workflow(["Open"], [{"from": "Open", "to": "Closed"}])
        self.assertFalse(result.is_valid)
        self.assertEqual([problem.code for problem in result.problems], [UNKNOWN_STATUS_REFERENCE])
        self.assertIn("Closed", result.errors[0])
        self.assertEqual(result.problems[0].status, "Closed")

    def test_empty_status_set(self) -> None:
        result = validate_workflow([], [{"from": "A", "to": "B"}])
        self.assertFalse(result.is_valid)
        codes = [problem.code for problem in result.problems]
        self.assertIn(EMPTY_STATUS_SET, codes)
        self.assertEqual(codes.count(UNKNOWN_STATUS_REFERENCE), 2)

    def test_empty_transition_set(self) -> None:
        result = validate_workflow(["Open"], [])
        self.assertFalse(result.is_valid)
        self.assertEqual([problem.code for problem in result.problems], [EMPTY_TRANSITION_SET])

    def test_every_problem_is_reported(self) -> None:
        result = validate_workflow(
            ["Open"],
            [{"from": "Open", "to": "Closed"}, {"from": "Reopened", "to": "Open"}],
        )
        self.assertEqual(len(result.errors), 2)
        self.assertIn("Transition 1", result.errors[0])
        self.assertIn("Transition 2", result.errors[1])

    def test_warnings_do_not_invalidate(self) -> None:
        result = validate_workflow(
            ["Open", "Fixed", "Parked"],
            [
                {"from": "Open", "to": "Fixed"},
                {"from": "Open", "to": "Fixed"},
                {"from": "Fixed", "to": "Fixed"},
            ],
        )
        self.assertTrue(result.is_valid)
        codes = [warning.code for warning in result.warnings]
        self.assertIn(DUPLICATE_TRANSITION, codes)
        self.assertIn(SELF_LOOP_TRANSITION, codes)
        self.assertIn(UNREACHABLE_STATUS, codes)
        self.assertTrue(any("Parked" in message for message in result.warning_messages))

    def test_malformed_transition_is_reported(self) -> None:
        result = validate_workflow(["Open", "Closed"], [{"from": "Open", "to": "Closed"}, "Open->Closed"])
        self.assertFalse(result.is_valid)
        self.assertEqual([problem.code for problem in result.problems], [MALFORMED_TRANSITION])
        self.assertIn("Transition 2", result.errors[0])

    def test_as_dict(self) -> None:
        payload = validate_workflow([], []).as_dict()
        self.assertFalse(payload["isValid"])
        self.assertEqual(
            payload["errors"],
            ["At least one status is required", "At least one transition is required"],
        )


class WorkflowTemplateTests(SimpleTestCase):
    def test_catalog_names(self) -> None:
        names = [template.name for template in list_templates()]
        self.assertEqual(
            names,
            ["Simple Workflow", "Agile Workflow", "Bug Workflow", "Feature Workflow"],
        )

    def test_templates_are_valid_and_connected(self) -> None:
        for template in list_templates():
            statuses, transitions = apply_template(template.name)
            result = validate_workflow(statuses, transitions)
            self.assertTrue(result.is_valid, template.name)
            self.assertEqual(result.warnings, (), template.name)

    def test_apply_template_is_case_insensitive(self) -> None:
        statuses, transitions = apply_template("bug workflow")
        self.assertEqual(statuses, ["Open", "In Progress", "Testing", "Closed"])
        self.assertEqual(transitions[0], {"from": "Open", "to": "In Progress", "name": "Start Fix"})

    def test_unknown_template_is_a_no_op(self) -> None:
        self.assertIsNone(apply_template("Kanban"))

    def test_templates_are_immutable(self) -> None:
        template = find_template("Simple Workflow")
        with self.assertRaises(dataclasses.FrozenInstanceError):
            template.name = "Changed"  # type: ignore[misc]
        apply_template("Simple Workflow")[0].append("Extra")
        self.assertEqual(find_template("Simple Workflow").statuses, ("To Do", "In Progress", "Done"))


class WorkflowApiTests(TestCase):
    def setUp(self) -> None:
        self.admin = User.objects.create(username="admin", email="admin@example.com", role=User.ADMIN)
        self.project = Project.objects.create(name="Tracker", key="TRK", lead=self.admin)
        self.client = APIClient()
        self.client.force_authenticate(user=self.admin)

    def _create(self, **overrides):
        payload = {
            "name": "Simple",
            "project_id": self.project.id,
            "statuses": ["To Do", "In Progress", "Done"],
            "transitions": SIMPLE_TRANSITIONS,
        }
        payload.update(overrides)
        return self.client.post(reverse("workflow-list"), payload, format="json")

    def test_create_workflow(self) -> None:
        response = self._create(
            name="Bug Flow",
            statuses=["Open", "Fixed"],
            transitions=[{"from": "Open", "to": "Fixed", "name": "Fix"}],
        )
        self.assertEqual(response.status_code, 201)
        workflow = response.data["workflow"]
        self.assertEqual(workflow["name"], "Bug Flow")
        self.assertEqual(len(workflow["transitions"]), 1)
        self.assertEqual(workflow["transitions"][0]["from"], "Open")
        self.assertEqual(workflow["transitions"][0]["to"], "Fixed")
        self.assertEqual(workflow["transitions"][0]["name"], "Open to Fixed")
        self.assertEqual(workflow["statuses"], ["Open", "Fixed"])
        self.assertEqual(workflow["project"], {"id": self.project.id, "name": "Tracker", "key": "TRK"})

    def test_create_rejects_unknown_status(self) -> None:
        response = self._create(statuses=["Open"], transitions=[{"from": "Open", "to": "Closed"}])
        self.assertEqual(response.status_code, 400)
        self.assertTrue(any("Closed" in message for message in response.data["errors"]))
        self.assertFalse(Workflow.objects.exists())

    def test_create_rejects_empty_definition(self) -> None:
        response = self._create(statuses=[], transitions=[])
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.data["errors"],
            ["At least one status is required", "At least one transition is required"],
        )

    def test_create_requires_name(self) -> None:
        response = self.client.post(
            reverse("workflow-list"),
            {"project_id": self.project.id, "transitions": SIMPLE_TRANSITIONS},
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["error"], "Validation Error")
        self.assertTrue(any(message.startswith("name:") for message in response.data["errors"]))

    def test_create_with_unknown_project(self) -> None:
        response = self._create(project_id=9999)
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["error"], "Project not found")

    def test_statuses_default_to_transition_endpoints(self) -> None:
        payload = {"name": "Derived", "project_id": self.project.id, "transitions": SIMPLE_TRANSITIONS}
        response = self.client.post(reverse("workflow-list"), payload, format="json")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(set(response.data["workflow"]["statuses"]), {"To Do", "In Progress", "Done"})

    def test_list_returns_statuses(self) -> None:
        self._create(statuses=["Done", "To Do", "In Progress"])
        response = self.client.get(reverse("workflow-list"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data["workflows"]), 1)
        self.assertEqual(
            set(response.data["workflows"][0]["statuses"]),
            {"To Do", "In Progress", "Done"},
        )

    def test_list_filters_by_project(self) -> None:
        other = Project.objects.create(name="Other", key="OTH", lead=self.admin)
        self._create()
        self._create(project_id=other.id)
        response = self.client.get(reverse("workflow-list"), {"project_id": other.id})
        self.assertEqual([item["project"]["key"] for item in response.data["workflows"]], ["OTH"])

        response = self.client.get(reverse("workflow-list"), {"project_id": "abc"})
        self.assertEqual(response.status_code, 400)

    def test_list_is_scoped_to_membership(self) -> None:
        self._create()
        member = User.objects.create(username="casey", email="casey@example.com")
        client = APIClient()
        client.force_authenticate(user=member)

        self.assertEqual(client.get(reverse("workflow-list")).data["workflows"], [])

        self.project.members.add(member)
        self.assertEqual(len(client.get(reverse("workflow-list")).data["workflows"]), 1)

    def test_retrieve(self) -> None:
        workflow_id = self._create().data["workflow"]["id"]
        response = self.client.get(reverse("workflow-detail", args=[workflow_id]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["workflow"]["id"], workflow_id)

    def test_update_replaces_transitions(self) -> None:
        workflow_id = self._create().data["workflow"]["id"]
        replacement = [
            {"from": "To Do", "to": "Done"},
            {"from": "Done", "to": "To Do"},
        ]
        url = reverse("workflow-detail", args=[workflow_id])

        for _ in range(2):
            response = self.client.put(url, {"transitions": replacement}, format="json")
            self.assertEqual(response.status_code, 200)
            stored = set(
                WorkflowTransition.objects.filter(workflow_id=workflow_id).values_list(
                    "from_status", "to_status"
                )
            )
            self.assertEqual(stored, {("To Do", "Done"), ("Done", "To Do")})
            self.assertEqual(WorkflowTransition.objects.filter(workflow_id=workflow_id).count(), 2)

        self.assertEqual(response.data["message"], "Workflow updated successfully")

    def test_update_name_keeps_transitions(self) -> None:
        workflow_id = self._create().data["workflow"]["id"]
        response = self.client.put(
            reverse("workflow-detail", args=[workflow_id]),
            {"name": "Renamed"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["workflow"]["name"], "Renamed")
        self.assertEqual(len(response.data["workflow"]["transitions"]), 2)

    def test_update_revalidates_merged_definition(self) -> None:
        workflow_id = self._create().data["workflow"]["id"]
        url = reverse("workflow-detail", args=[workflow_id])

        response = self.client.put(url, {"statuses": ["To Do", "Done"]}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertTrue(any("In Progress" in message for message in response.data["errors"]))

        response = self.client.put(url, {"transitions": [{"from": "To Do", "to": "Blocked"}]}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(WorkflowTransition.objects.filter(workflow_id=workflow_id).count(), 2)

    def test_update_is_atomic(self) -> None:
        workflow_id = self._create().data["workflow"]["id"]
        with mock.patch.object(
            WorkflowTransition.objects, "bulk_create", side_effect=DatabaseError("disk full")
        ), self.assertLogs("tracker_service.exceptions", level="ERROR"):
            response = self.client.put(
                reverse("workflow-detail", args=[workflow_id]),
                {"name": "Broken", "transitions": [{"from": "To Do", "to": "Done"}]},
                format="json",
            )
        self.assertEqual(response.status_code, 500)
        workflow = Workflow.objects.get(pk=workflow_id)
        self.assertEqual(workflow.name, "Simple")
        self.assertEqual(workflow.transitions.count(), 2)

    def test_update_missing_workflow(self) -> None:
        response = self.client.put(reverse("workflow-detail", args=[9999]), {"name": "x"}, format="json")
        self.assertEqual(response.status_code, 404)
        self.assertIn("error", response.data)

    def test_delete_cascades_transitions(self) -> None:
        response = self._create(
            transitions=SIMPLE_TRANSITIONS + [{"from": "Done", "to": "To Do"}],
        )
        workflow_id = response.data["workflow"]["id"]
        self.assertEqual(WorkflowTransition.objects.filter(workflow_id=workflow_id).count(), 3)

        response = self.client.delete(reverse("workflow-detail", args=[workflow_id]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["message"], "Workflow deleted successfully")

        listing = self.client.get(reverse("workflow-list")).data["workflows"]
        self.assertNotIn(workflow_id, [item["id"] for item in listing])
        self.assertFalse(WorkflowTransition.objects.filter(workflow_id=workflow_id).exists())

    def test_delete_missing_workflow(self) -> None:
        response = self.client.delete(reverse("workflow-detail", args=[9999]))
        self.assertEqual(response.status_code, 404)

    def test_duplicate_transitions_are_collapsed(self) -> None:
        response = self._create(transitions=SIMPLE_TRANSITIONS + [SIMPLE_TRANSITIONS[0]])
        self.assertEqual(response.status_code, 201)
        self.assertEqual(len(response.data["workflow"]["transitions"]), 2)
        self.assertEqual(len(response.data["warnings"]), 1)
        self.assertIn("duplicates", response.data["warnings"][0])

    def test_create_from_template(self) -> None:
        payload = {"name": "Bugs", "project_id": self.project.id, "template": "Bug Workflow"}
        response = self.client.post(reverse("workflow-list"), payload, format="json")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(
            response.data["workflow"]["statuses"],
            ["Open", "In Progress", "Testing", "Closed"],
        )
        self.assertEqual(len(response.data["workflow"]["transitions"]), 5)

    def test_unknown_template_prefills_nothing(self) -> None:
        payload = {"name": "Bugs", "project_id": self.project.id, "template": "Kanban"}
        response = self.client.post(reverse("workflow-list"), payload, format="json")
        self.assertEqual(response.status_code, 400)

    def test_templates_endpoint(self) -> None:
        response = self.client.get(reverse("workflow-templates"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data["templates"]), 4)
        self.assertEqual(response.data["templates"][0]["name"], "Simple Workflow")

    def test_activate_deactivates_siblings(self) -> None:
        first = self._create(name="First").data["workflow"]["id"]
        second = self._create(name="Second").data["workflow"]["id"]

        self.client.post(reverse("workflow-activate", args=[first]))
        response = self.client.post(reverse("workflow-activate", args=[second]))
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["workflow"]["is_active"])
        self.assertFalse(Workflow.objects.get(pk=first).is_active)
        self.assertEqual(Workflow.objects.active_for(self.project.id).pk, second)

    def test_requires_authentication(self) -> None:
        response = APIClient().get(reverse("workflow-list"))
        self.assertEqual(response.status_code, 401)
        self.assertIn("error", response.data)


class DefaultAssigneeApiTests(TestCase):
    def setUp(self) -> None:
        self.admin = User.objects.create(username="admin", email="admin@example.com", role=User.ADMIN)
        self.first = User.objects.create(username="first", email="first@example.com")
        self.second = User.objects.create(username="second", email="second@example.com")
        self.project = Project.objects.create(name="Tracker", key="TRK", lead=self.admin)
        self.client = APIClient()
        self.client.force_authenticate(user=self.admin)
        self.url = reverse("workflow-default-assignee")

    def _set(self, **payload):
        body = {"project_id": self.project.id, "issue_type": Issue.BUG}
        body.update(payload)
        return self.client.post(self.url, body, format="json")

    def test_upsert_keeps_one_row(self) -> None:
        self._set(assignee_id=self.first.id)
        response = self._set(assignee_id=self.second.id)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["message"], "Default assignee set successfully")
        self.assertEqual(response.data["defaultAssignee"]["assignee"]["username"], "second")
        rows = DefaultAssignee.objects.filter(project=self.project, issue_type=Issue.BUG)
        self.assertEqual(rows.count(), 1)
        self.assertEqual(rows.get().assignee, self.second)

    def test_omitted_assignee_is_kept_and_null_clears(self) -> None:
        self._set(assignee_id=self.first.id)

        response = self._set()
        self.assertEqual(response.data["defaultAssignee"]["assignee_id"], self.first.id)

        response = self._set(assignee_id=None)
        self.assertIsNone(response.data["defaultAssignee"]["assignee"])
        self.assertIsNone(DefaultAssignee.objects.get().assignee_id)

    def test_new_row_without_assignee(self) -> None:
        response = self._set(issue_type=Issue.STORY)
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.data["defaultAssignee"]["assignee"])

    def test_rejects_unknown_references(self) -> None:
        self.assertEqual(self._set(project_id=9999).status_code, 404)
        self.assertEqual(self._set(assignee_id=9999).status_code, 400)
        self.assertEqual(self._set(issue_type="Incident").status_code, 400)

    def test_list_filters_by_project(self) -> None:
        other = Project.objects.create(name="Other", key="OTH", lead=self.admin)
        self._set(assignee_id=self.first.id)
        self._set(project_id=other.id, assignee_id=self.second.id)

        response = self.client.get(self.url)
        self.assertEqual(len(response.data["defaultAssignees"]), 2)

        response = self.client.get(self.url, {"project_id": other.id})
        self.assertEqual(len(response.data["defaultAssignees"]), 1)
        self.assertEqual(response.data["defaultAssignees"][0]["project"]["key"], "OTH")

    def test_auto_assign(self) -> None:
        issue = Issue.objects.create(project=self.project, summary="Crash on save", type=Issue.BUG)
        self._set(assignee_id=self.first.id)

        response = self.client.post(reverse("workflow-auto-assign", kwargs={"issue_id": issue.id}))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["message"], "Issue auto-assigned successfully")
        self.assertTrue(response.data["assigned"])
        issue.refresh_from_db()
        self.assertEqual(issue.assignee, self.first)

    def test_auto_assign_without_default(self) -> None:
        issue = Issue.objects.create(project=self.project, summary="Write docs", type=Issue.TASK)
        self._set(issue_type=Issue.TASK, assignee_id=None)

        response = self.client.post(reverse("workflow-auto-assign", kwargs={"issue_id": issue.id}))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["message"], "No default assignee configured")
        self.assertFalse(response.data["assigned"])
        issue.refresh_from_db()
        self.assertIsNone(issue.assignee)

    def test_auto_assign_unknown_issue(self) -> None:
        response = self.client.post(reverse("workflow-auto-assign", kwargs={"issue_id": 9999}))
        self.assertEqual(response.status_code, 404)

    def test_auto_assign_task(self) -> None:
        issue = Issue.objects.create(project=self.project, summary="Crash on load", type=Issue.BUG)
        self._set(assignee_id=self.second.id)

        self.assertEqual(auto_assign_issue(issue.id), self.second.id)
        self.assertIsNone(auto_assign_issue(9999))

    def test_issue_creation_schedules_auto_assign(self) -> None:
        with mock.patch("projects.views.auto_assign_issue") as task, self.captureOnCommitCallbacks(
            execute=True
        ):
            response = self.client.post(
                reverse("issue-list"),
                {"project_id": self.project.id, "summary": "New bug", "type": Issue.BUG},
                format="json",
            )
        self.assertEqual(response.status_code, 201)
        task.delay.assert_called_once_with(response.data["id"])

    def test_issue_with_assignee_is_not_auto_assigned(self) -> None:
        with mock.patch("projects.views.auto_assign_issue") as task, self.captureOnCommitCallbacks(
            execute=True
        ):
            self.client.post(
                reverse("issue-list"),
                {
                    "project_id": self.project.id,
                    "summary": "Owned bug",
                    "type": Issue.BUG,
                    "assignee_id": self.first.id,
                },
                format="json",
            )
        task.delay.assert_not_called()


class OutsiderAccessTests(TestCase):
    def setUp(self) -> None:
        self.lead = User.objects.create(username="lead", email="lead@example.com")
        self.outsider = User.objects.create(username="casey", email="casey@example.com")
        self.project = Project.objects.create(name="Tracker", key="TRK", lead=self.lead)
        self.issue = Issue.objects.create(project=self.project, summary="Crash on save", type=Issue.BUG)
        self.client = APIClient()
        self.client.force_authenticate(user=self.outsider)

    def test_cannot_create_workflow(self) -> None:
        response = self.client.post(
            reverse("workflow-list"),
            {
                "name": "Simple",
                "project_id": self.project.id,
                "statuses": ["To Do", "In Progress", "Done"],
                "transitions": SIMPLE_TRANSITIONS,
            },
            format="json",
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["error"], "Project not found")
        self.assertFalse(Workflow.objects.exists())

    def test_cannot_set_default_assignee(self) -> None:
        response = self.client.post(
            reverse("workflow-default-assignee"),
            {"project_id": self.project.id, "issue_type": Issue.BUG, "assignee_id": self.outsider.id},
            format="json",
        )
        self.assertEqual(response.status_code, 404)
        self.assertFalse(DefaultAssignee.objects.exists())

    def test_cannot_auto_assign(self) -> None:
        DefaultAssignee.objects.create(project=self.project, issue_type=Issue.BUG, assignee=self.lead)
        response = self.client.post(reverse("workflow-auto-assign", kwargs={"issue_id": self.issue.id}))
        self.assertEqual(response.status_code, 404)
        self.issue.refresh_from_db()
        self.assertIsNone(self.issue.assignee)

    def test_member_may_write(self) -> None:
        self.project.members.add(self.outsider)
        response = self.client.post(
            reverse("workflow-default-assignee"),
            {"project_id": self.project.id, "issue_type": Issue.BUG, "assignee_id": self.lead.id},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["defaultAssignee"]["project_id"], self.project.id)


class ExceptionHandlerTests(SimpleTestCase):
    def test_flatten_nested_errors(self) -> None:
        detail = {
            "name": ["This field is required."],
            "transitions": [{}, {"to": ["This field may not be blank."]}],
            "non_field_errors": ["Broken."],
        }
        self.assertEqual(
            list(flatten_errors(detail)),
            [
                "name: This field is required.",
                "transitions[1].to: This field may not be blank.",
                "Broken.",
            ],
        )

    def test_validation_error_shape(self) -> None:
        response = api_exception_handler(ValidationError({"name": ["Required."]}), {})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data, {"error": "Validation Error", "errors": ["name: Required."]})

    @override_settings(DEBUG=False)
    def test_unhandled_error_hides_details(self) -> None:
        with self.assertLogs("tracker_service.exceptions", level="ERROR"):
            response = api_exception_handler(RuntimeError("boom"), {})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data["details"], "Something went wrong")

    @override_settings(DEBUG=True)
    def test_unhandled_error_in_debug(self) -> None:
        with self.assertLogs("tracker_service.exceptions", level="ERROR"):
            response = api_exception_handler(RuntimeError("boom"), {})
        self.assertEqual(response.data["details"], "boom")
