"""Typed records describing plans, steps, reviews, and their runtime outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Generic, TypeVar

E = TypeVar("E", bound=Enum)


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class Complexity(str, Enum):
    """Coarse effort classification attached to a plan."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class StepType(str, Enum):
    """Kind of work a plan step performs."""

    CODE = "code"
    TEST = "test"
    DOC = "doc"
    CONFIG = "config"


class Severity(str, Enum):
    """Severity classification for review issues."""

    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class Category(str, Enum):
    """Area a review issue belongs to."""

    SECURITY = "security"
    BUG = "bug"
    PERFORMANCE = "performance"
    STYLE = "style"


class ActionKind(str, Enum):
    """Kinds of side effects an executor response can request."""

    FILE_WRITE = "file_write"
    SHELL = "shell"


@dataclass(frozen=True, slots=True)
class OpenValue(Generic[E]):
    """A closed enum member, or the raw string when the value is not recognised.

    ``known`` is ``None`` for the unknown variant; ``raw`` always holds the original
    text so nothing the model produced is lost.
    """

    raw: str
    known: E | None = None

    @classmethod
    def parse(cls, enum_type: type[E], raw: str | None) -> OpenValue[E]:
        text = raw or ""
        normalised = text.strip().lower()
        for member in enum_type:
            if member.value == normalised:
                return cls(raw=text, known=member)
        return cls(raw=text)

    @property
    def is_known(self) -> bool:
        return self.known is not None

    def __str__(self) -> str:
        return self.known.value if self.known is not None else self.raw


@dataclass(slots=True)
class Step:
    """Single unit of work inside a plan, plus its runtime state."""

    order: int = 0
    description: str = ""
    type: str = StepType.CODE.value
    files: list[str] = field(default_factory=list)
    dependencies: list[int] = field(default_factory=list)
    estimated_minutes: int = 5
    completed: bool = False
    skipped: bool = False
    result: str = ""
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def duration(self) -> timedelta | None:
        if self.started_at is None or self.completed_at is None:
            return None
        return self.completed_at - self.started_at

    @property
    def step_type(self) -> OpenValue[StepType]:
        return OpenValue.parse(StepType, self.type)

    def mark_started(self) -> None:
        self.started_at = utc_now()
        self.completed_at = None

    def mark_completed(self, result: str) -> None:
        self.result = result
        self.completed = True
        self.completed_at = utc_now()

    def mark_failed(self, result: str = "") -> None:
        if result:
            self.result = result
        self.completed = False
        self.completed_at = utc_now()


@dataclass(slots=True)
class Plan:
    """Ordered set of steps produced for one user goal."""

    goal: str = ""
    context: str = ""
    complexity: str = Complexity.MEDIUM.value
    estimated_time: str = ""
    steps: list[Step] = field(default_factory=list)

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    @property
    def completed_steps(self) -> int:
        return sum(1 for step in self.steps if step.completed)

    @property
    def is_complete(self) -> bool:
        return bool(self.steps) and all(step.completed for step in self.steps)

    def dependency_warnings(self) -> list[str]:
        """Describe dependency references that list-order execution will not honour.

        Steps always run in list order; these messages are informational only.
        """
        position = {step.order: index for index, step in enumerate(self.steps)}
        warnings: list[str] = []
        for index, step in enumerate(self.steps):
            for dependency in step.dependencies:
                if dependency == step.order:
                    warnings.append(f"Step {step.order} depends on itself")
                elif dependency not in position:
                    warnings.append(f"Step {step.order} depends on unknown step {dependency}")
                elif position[dependency] > index:
                    warnings.append(
                        f"Step {step.order} depends on step {dependency}, which runs later"
                    )
        return warnings


@dataclass(slots=True)
class Issue:
    """One problem reported by a review."""

    message: str = ""
    severity: str = Severity.INFO.value
    category: str = ""
    file: str | None = None
    line: int | None = None
    suggestion: str | None = None

    @property
    def severity_value(self) -> OpenValue[Severity]:
        return OpenValue.parse(Severity, self.severity)

    @property
    def category_value(self) -> OpenValue[Category]:
        return OpenValue.parse(Category, self.category)

    @property
    def display_severity(self) -> Severity:
        """Severity used for presentation; unrecognised values render as info."""
        return self.severity_value.known or Severity.INFO

    @property
    def location(self) -> str:
        if not self.file:
            return ""
        if self.line is not None:
            return f"{self.file}:{self.line}"
        return self.file


@dataclass(slots=True)
class Review:
    """Structured quality assessment of a step or a whole plan."""

    approved: bool = False
    score: int = 0
    issues: list[Issue] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    summary: str = ""

    def _count(self, severity: Severity) -> int:
        return sum(1 for issue in self.issues if issue.severity_value.known is severity)

    @property
    def critical_count(self) -> int:
        return self._count(Severity.CRITICAL)

    @property
    def warning_count(self) -> int:
        return self._count(Severity.WARNING)

    @property
    def info_count(self) -> int:
        return self._count(Severity.INFO)

    @property
    def unknown_count(self) -> int:
        return sum(1 for issue in self.issues if not issue.severity_value.is_known)

    @property
    def has_critical_issues(self) -> bool:
        return self.critical_count > 0


@dataclass(slots=True)
class ActionResult:
    """Outcome of applying one file write or shell command."""

    kind: ActionKind
    target: str
    success: bool
    message: str = ""
    skipped: bool = False


@dataclass(slots=True)
class StepExecutionResult:
    """Everything the execution stage learned while running one step."""

    step: Step
    response: str = ""
    actions: list[ActionResult] = field(default_factory=list)
    success: bool = False
    error: str | None = None

    @property
    def files_changed(self) -> list[str]:
        return [
            action.target
            for action in self.actions
            if action.kind is ActionKind.FILE_WRITE and action.success and not action.skipped
        ]

    @property
    def commands_run(self) -> list[str]:
        return [
            action.target
            for action in self.actions
            if action.kind is ActionKind.SHELL and not action.skipped
        ]

    @property
    def failed_actions(self) -> list[ActionResult]:
        return [action for action in self.actions if not action.success]


__all__ = [
    "ActionKind",
    "ActionResult",
    "Category",
    "Complexity",
    "Issue",
    "OpenValue",
    "Plan",
    "Review",
    "Severity",
    "Step",
    "StepExecutionResult",
    "StepType",
    "utc_now",
]
