"""Canned workflow definitions used to prefill new workflows."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class TemplateTransition:
    source: str
    target: str
    name: str

    def as_dict(self) -> Dict[str, str]:
        return {"from": self.source, "to": self.target, "name": self.name}


@dataclass(frozen=True)
class WorkflowTemplate:
    name: str
    description: str
    statuses: Tuple[str, ...]
    transitions: Tuple[TemplateTransition, ...]

    def as_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "description": self.description,
            "statuses": list(self.statuses),
            "transitions": [transition.as_dict() for transition in self.transitions],
        }


TEMPLATES: Tuple[WorkflowTemplate, ...] = (
    WorkflowTemplate(
        name="Simple Workflow",
        description="Basic three-step workflow",
        statuses=("To Do", "In Progress", "Done"),
        transitions=(
            TemplateTransition("To Do", "In Progress", "Start Progress"),
            TemplateTransition("In Progress", "Done", "Complete"),
            TemplateTransition("Done", "To Do", "Reopen"),
        ),
    ),
    WorkflowTemplate(
        name="Agile Workflow",
        description="Sprint-oriented workflow with a review step",
        statuses=("Backlog", "Selected for Development", "In Progress", "In Review", "Done"),
        transitions=(
            TemplateTransition("Backlog", "Selected for Development", "Select"),
            TemplateTransition("Selected for Development", "In Progress", "Start Progress"),
            TemplateTransition("Selected for Development", "Backlog", "Deselect"),
            TemplateTransition("In Progress", "In Review", "Request Review"),
            TemplateTransition("In Review", "In Progress", "Changes Requested"),
            TemplateTransition("In Review", "Done", "Approve"),
            TemplateTransition("Done", "In Progress", "Reopen"),
        ),
    ),
    WorkflowTemplate(
        name="Bug Workflow",
        description="Workflow for bug tracking",
        statuses=("Open", "In Progress", "Testing", "Closed"),
        transitions=(
            TemplateTransition("Open", "In Progress", "Start Fix"),
            TemplateTransition("In Progress", "Testing", "Ready for Test"),
            TemplateTransition("Testing", "Closed", "Verified"),
            TemplateTransition("Testing", "In Progress", "Failed Test"),
            TemplateTransition("Closed", "Open", "Reopen"),
        ),
    ),
    WorkflowTemplate(
        name="Feature Workflow",
        description="Workflow for feature development",
        statuses=("Backlog", "Analysis", "Development", "Review", "Testing", "Done"),
        transitions=(
            TemplateTransition("Backlog", "Analysis", "Start Analysis"),
            TemplateTransition("Analysis", "Development", "Start Development"),
            TemplateTransition("Development", "Review", "Ready for Review"),
            TemplateTransition("Review", "Testing", "Approved"),
            TemplateTransition("Review", "Development", "Changes Requested"),
            TemplateTransition("Testing", "Done", "Passed Testing"),
            TemplateTransition("Testing", "Development", "Failed Testing"),
        ),
    ),
)


def list_templates() -> Tuple[WorkflowTemplate, ...]:
    return TEMPLATES


def find_template(name: str) -> Optional[WorkflowTemplate]:
    wanted = (name or "").strip().lower()
    for template in TEMPLATES:
        if template.name.lower() == wanted:
            return template
    return None


def apply_template(name: str) -> Optional[Tuple[List[str], List[Dict[str, str]]]]:
    """Statuses and transitions of the named template, or ``None`` when unknown."""

    template = find_template(name)
    if template is None:
        return None
    return list(template.statuses), [transition.as_dict() for transition in template.transitions]
