"""Human-editable Markdown rendering of plans and reviews.

Plans round-trip through :func:`plan_to_markdown` and :func:`plan_from_markdown`. The
round trip is practical rather than byte-exact: goal, complexity, estimated time, step
descriptions, types, files, and dependencies survive, while step numbers are always
reassigned ``1..N`` on import so a reader can add, remove, or reorder steps freely.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Iterable

from ..errors import PlanDocumentError
from ..memory.schema import Issue, Plan, Review, Severity, Step

__all__ = [
    "DEFAULT_IMPORTED_GOAL",
    "plan_from_markdown",
    "plan_to_markdown",
    "review_to_markdown",
]

DEFAULT_IMPORTED_GOAL = "Imported plan"

_GOAL_LABEL = "**Goal:**"
_COMPLEXITY_LABEL = "**Complexity:**"
_ESTIMATED_TIME_LABEL = "**Estimated Time:**"
_STEP_TYPE_LABEL = "- **Type:**"
_STEP_TIME_LABEL = "- **Estimated Time:**"
_STEP_FILES_LABEL = "- **Files:**"
_STEP_DEPENDENCIES_LABEL = "- **Dependencies:**"
_STEP_HEADING = re.compile(r"^###\s+Step\b")
_FILE_BULLET = re.compile(r"^\s+[-*]\s+`([^`]+)`\s*$")
_INTEGER = re.compile(r"^-?\d+$")
_MINUTES = re.compile(r"\d+")


def plan_to_markdown(plan: Plan, *, command_hint: str = "lcoder agent --plan <this-file>") -> str:
    """Render ``plan`` in the document format accepted by :func:`plan_from_markdown`."""
    lines: list[str] = ["# Execution Plan", ""]
    lines.append(f"{_GOAL_LABEL} {plan.goal}")
    lines.append(f"{_COMPLEXITY_LABEL} {plan.complexity}")
    if plan.estimated_time.strip():
        lines.append(f"{_ESTIMATED_TIME_LABEL} {plan.estimated_time}")
    lines.append("")

    if plan.context.strip():
        lines.extend(["## Context", plan.context.strip(), ""])

    lines.extend(["## Steps", ""])
    for step in sorted(plan.steps, key=lambda item: item.order):
        lines.append(f"### Step {step.order}: {step.description}")
        lines.append("")
        lines.append(f"{_STEP_TYPE_LABEL} {step.type}")
        lines.append(f"{_STEP_TIME_LABEL} {step.estimated_minutes} minutes")
        if step.files:
            lines.append(_STEP_FILES_LABEL)
            lines.extend(f"  - `{path}`" for path in step.files)
        if step.dependencies:
            joined = ", ".join(str(order) for order in step.dependencies)
            lines.append(f"{_STEP_DEPENDENCIES_LABEL} Steps {joined}")
        lines.append("")

    lines.extend(
        [
            "---",
            "",
            "## Instructions",
            "",
            "- Edit steps as needed (add, remove, reorder)",
            "- Keep the markdown structure intact",
            "- Step numbers will be reassigned automatically",
            f"- Save and run: `{command_hint}`",
            "",
        ]
    )
    return "\n".join(lines)


class _Section(Enum):
    PREAMBLE = "preamble"
    CONTEXT = "context"
    STEPS = "steps"
    OTHER = "other"


class _PlanDocumentReader:
    """Single forward pass over document lines with explicit section state."""

    def __init__(self) -> None:
        self.plan = Plan(goal="")
        self.section = _Section.PREAMBLE
        self.context_lines: list[str] = []
        self.step: Step | None = None
        self.in_files = False

    def feed(self, raw_line: str) -> None:
        line = raw_line.rstrip("\r")
        stripped = line.strip()

        if _STEP_HEADING.match(stripped):
            self._start_step(stripped)
            return
        if stripped.startswith("##") and not stripped.startswith("###"):
            self._enter_section(stripped)
            return
        if self.section is _Section.CONTEXT:
            self.context_lines.append(line)
            return
        if self._apply_plan_label(stripped):
            return
        if self.step is not None:
            self._apply_step_line(line, stripped)

    def finish(self) -> Plan:
        self._close_step()
        plan = self.plan
        plan.context = "\n".join(self.context_lines).strip()
        if not plan.goal.strip():
            plan.goal = DEFAULT_IMPORTED_GOAL
        if not plan.steps:
            raise PlanDocumentError("No steps found in plan document")
        return plan

    def _enter_section(self, heading: str) -> None:
        self._close_step()
        title = heading.lstrip("#").strip().lower()
        if title == "context":
            self.section = _Section.CONTEXT
        elif title == "steps":
            self.section = _Section.STEPS
        else:
            self.section = _Section.OTHER

    def _start_step(self, heading: str) -> None:
        self._close_step()
        self.section = _Section.STEPS
        order = len(self.plan.steps) + 1
        _, colon, remainder = heading.partition(":")
        description = remainder.strip() if colon else ""
        self.step = Step(order=order, description=description or f"Step {order}")

    def _close_step(self) -> None:
        if self.step is not None:
            self.plan.steps.append(self.step)
        self.step = None
        self.in_files = False

    def _apply_plan_label(self, stripped: str) -> bool:
        if stripped.startswith(_GOAL_LABEL):
            self.plan.goal = stripped[len(_GOAL_LABEL) :].strip()
        elif stripped.startswith(_COMPLEXITY_LABEL):
            self.plan.complexity = stripped[len(_COMPLEXITY_LABEL) :].strip()
        elif stripped.startswith(_ESTIMATED_TIME_LABEL):
            self.plan.estimated_time = stripped[len(_ESTIMATED_TIME_LABEL) :].strip()
        else:
            return False
        return True

    def _apply_step_line(self, line: str, stripped: str) -> None:
        step = self.step
        assert step is not None
        if self.in_files:
            match = _FILE_BULLET.match(line)
            if match:
                step.files.append(match.group(1).strip())
                return
            if stripped:
                self.in_files = False

        if stripped.startswith(_STEP_TYPE_LABEL):
            step.type = stripped[len(_STEP_TYPE_LABEL) :].strip() or step.type
        elif stripped.startswith(_STEP_TIME_LABEL):
            minutes = _MINUTES.search(stripped[len(_STEP_TIME_LABEL) :])
            if minutes:
                step.estimated_minutes = int(minutes.group(0))
        elif stripped.startswith(_STEP_FILES_LABEL):
            self.in_files = True
            inline = stripped[len(_STEP_FILES_LABEL) :].strip()
            step.files.extend(_inline_files(inline))
        elif stripped.startswith(_STEP_DEPENDENCIES_LABEL):
            step.dependencies = _parse_dependencies(stripped[len(_STEP_DEPENDENCIES_LABEL) :])


def _inline_files(text: str) -> list[str]:
    return [item.strip() for item in re.findall(r"`([^`]+)`", text) if item.strip()]


def _parse_dependencies(text: str) -> list[int]:
    """Keep integer tokens only; words such as ``Steps`` and stray text are discarded."""
    cleaned = text.replace("Steps", " ").replace("Step", " ")
    tokens = (token.strip() for token in re.split(r"[,\s]+", cleaned))
    return [int(token) for token in tokens if _INTEGER.match(token)]


def plan_from_markdown(text: str) -> Plan:
    """Parse a plan document; raises ``PlanDocumentError`` when it holds no steps."""
    reader = _PlanDocumentReader()
    for line in (text or "").split("\n"):
        reader.feed(line)
    return reader.finish()


def review_to_markdown(review: Review, *, title: str = "Review") -> str:
    """Render a review as an export-only Markdown document."""
    verdict = "Approved" if review.approved else "Changes requested"
    lines: list[str] = [f"# {title}", ""]
    lines.append(f"**Score:** {review.score}/10")
    lines.append(f"**Verdict:** {verdict}")
    lines.append(
        f"**Issues:** {review.critical_count} critical, {review.warning_count} warning, "
        f"{review.info_count} info"
    )
    lines.append("")

    if review.summary.strip():
        lines.extend(["## Summary", review.summary.strip(), ""])

    if review.issues:
        lines.extend(["## Issues", ""])
        for heading, issues in _group_issues(review):
            lines.append(f"### {heading}")
            lines.append("")
            for issue in issues:
                lines.extend(_render_issue(issue))
            lines.append("")

    if review.suggestions:
        lines.extend(["## Suggestions", ""])
        lines.extend(f"- {suggestion}" for suggestion in review.suggestions)
        lines.append("")

    return "\n".join(lines)


def _group_issues(review: Review) -> Iterable[tuple[str, list[Issue]]]:
    for severity in Severity:
        matching = [issue for issue in review.issues if issue.severity_value.known is severity]
        if matching:
            yield severity.value.title(), matching
    unknown = [issue for issue in review.issues if not issue.severity_value.is_known]
    if unknown:
        yield "Other", unknown


def _render_issue(issue: Issue) -> list[str]:
    label = issue.category.strip() or "general"
    if not issue.severity_value.is_known:
        label = f"{label}, severity: {issue.severity or 'unspecified'}"
    rendered = [f"- **[{label}]** {issue.message}"]
    if issue.location:
        rendered.append(f"  - Location: `{issue.location}`")
    if issue.suggestion:
        rendered.append(f"  - Suggestion: {issue.suggestion}")
    return rendered
