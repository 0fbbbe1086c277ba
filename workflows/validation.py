"""
Structural checks for workflow definitions.

``validate_workflow`` is pure: it takes the candidate status list and the
candidate transitions (mappings with ``from`` and ``to`` keys) and reports
every problem it finds instead of stopping at the first one.

Errors make the definition invalid:

* ``EmptyStatusSet``: no statuses were declared.
* ``EmptyTransitionSet``: no transitions were declared.
* ``UnknownStatusReference``: a transition names a status that was not
  declared.
* ``MalformedTransition``: a transition entry is not a mapping with
  ``from`` and ``to`` keys.

Warnings are reported alongside but never invalidate a definition:

* ``DuplicateTransition``: the same ``from``/``to`` pair appears twice.
* ``SelfLoopTransition``: a transition leads back to its own status.
* ``UnreachableStatus``: a status cannot be reached from the initial
  (first declared) status.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

EMPTY_STATUS_SET = "EmptyStatusSet"
EMPTY_TRANSITION_SET = "EmptyTransitionSet"
UNKNOWN_STATUS_REFERENCE = "UnknownStatusReference"
MALFORMED_TRANSITION = "MalformedTransition"

DUPLICATE_TRANSITION = "DuplicateTransition"
SELF_LOOP_TRANSITION = "SelfLoopTransition"
UNREACHABLE_STATUS = "UnreachableStatus"


@dataclass(frozen=True)
class Problem:
    code: str
    message: str
    status: Optional[str] = None


@dataclass(frozen=True)
class ValidationResult:
    problems: Tuple[Problem, ...] = ()
    warnings: Tuple[Problem, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.problems

    @property
    def errors(self) -> List[str]:
        return [problem.message for problem in self.problems]

    @property
    def warning_messages(self) -> List[str]:
        return [warning.message for warning in self.warnings]

    def as_dict(self) -> Dict[str, object]:
        return {"isValid": self.is_valid, "errors": self.errors, "warnings": self.warning_messages}


def _endpoint(transition: Mapping[str, str], key: str) -> str:
    value = transition.get(key)
    return "" if value is None else str(value)


def validate_workflow(
    statuses: Sequence[str],
    transitions: Sequence[Mapping[str, str]],
) -> ValidationResult:
    problems: List[Problem] = []
    warnings: List[Problem] = []
    known: Set[str] = set(statuses or ())

    if not statuses:
        problems.append(Problem(EMPTY_STATUS_SET, "At least one status is required"))
    if not transitions:
        problems.append(Problem(EMPTY_TRANSITION_SET, "At least one transition is required"))

    seen: Dict[Tuple[str, str], int] = {}
    for index, transition in enumerate(transitions or (), start=1):
        if not isinstance(transition, Mapping):
            problems.append(
                Problem(
                    MALFORMED_TRANSITION,
                    f"Transition {index}: expected an object with 'from' and 'to'",
                )
            )
            continue
        source = _endpoint(transition, "from")
        target = _endpoint(transition, "to")
        if source not in known:
            problems.append(
                Problem(
                    UNKNOWN_STATUS_REFERENCE,
                    f"Transition {index}: 'From' status '{source}' does not exist",
                    source,
                )
            )
        if target not in known:
            problems.append(
                Problem(
                    UNKNOWN_STATUS_REFERENCE,
                    f"Transition {index}: 'To' status '{target}' does not exist",
                    target,
                )
            )

        if source == target:
            warnings.append(
                Problem(
                    SELF_LOOP_TRANSITION,
                    f"Transition {index}: '{source}' leads back to itself",
                    source,
                )
            )
        pair = (source, target)
        if pair in seen:
            warnings.append(
                Problem(
                    DUPLICATE_TRANSITION,
                    f"Transition {index} duplicates transition {seen[pair]} ('{source}' to '{target}')",
                )
            )
        else:
            seen[pair] = index

    if statuses and transitions:
        initial = statuses[0]
        for status in unreachable_statuses(statuses, list(seen)):
            warnings.append(
                Problem(
                    UNREACHABLE_STATUS,
                    f"Status '{status}' is not reachable from initial status '{initial}'",
                    status,
                )
            )

    return ValidationResult(tuple(problems), tuple(warnings))


def unreachable_statuses(statuses: Sequence[str], edges: Sequence[Tuple[str, str]]) -> List[str]:
    """Statuses that no path from ``statuses[0]`` reaches, in declaration order."""

    if not statuses:
        return []
    graph: Dict[str, List[str]] = {}
    for source, target in edges:
        graph.setdefault(source, []).append(target)

    reached = {statuses[0]}
    queue = deque([statuses[0]])
    while queue:
        for target in graph.get(queue.popleft(), ()):
            if target not in reached:
                reached.add(target)
                queue.append(target)

    missing: List[str] = []
    for status in statuses:
        if status not in reached and status not in missing:
            missing.append(status)
    return missing
