"""Approval gates consulted before a run mutates the workspace."""

from __future__ import annotations

from typing import Callable, Optional, Protocol

import typer

from .cancellation import CancellationToken, check_cancelled
from .memory.schema import Plan, Review


class ApprovalGate(Protocol):
    """Binary user decisions requested by the orchestrator and the executor."""

    def approve_plan(self, plan: Plan) -> bool: ...

    def continue_despite_issues(self, review: Review) -> bool: ...

    def approve_edit(self, path: str, diff: str, content: str) -> bool: ...

    def approve_command(self, command: str, *, high_risk: bool) -> bool: ...


class AutoApprovalGate:
    """Gate that answers yes to every question."""

    def approve_plan(self, plan: Plan) -> bool:
        return True

    def continue_despite_issues(self, review: Review) -> bool:
        return True

    def approve_edit(self, path: str, diff: str, content: str) -> bool:
        return True

    def approve_command(self, command: str, *, high_risk: bool) -> bool:
        return True


class ConsoleApprovalGate:
    """Gate that prompts on the terminal through ``typer.confirm``.

    End of input or an aborted prompt counts as "no".
    """

    def __init__(self, *, echo: Callable[[str], None] = typer.echo, show_diffs: bool = True) -> None:
        self._echo = echo
        self._show_diffs = show_diffs

    def approve_plan(self, plan: Plan) -> bool:
        self._echo(f"\nGoal: {plan.goal}")
        for step in plan.steps:
            files = f" [{', '.join(step.files)}]" if step.files else ""
            self._echo(f"  {step.order}. ({step.step_type}) {step.description}{files}")
        return self._confirm(f"Execute this plan ({plan.total_steps} steps)?", default=True)

    def continue_despite_issues(self, review: Review) -> bool:
        self._echo(f"Review found {review.critical_count} critical issue(s).")
        for line in review_lines(review):
            self._echo(line)
        return self._confirm("Continue despite issues?", default=False)

    def approve_edit(self, path: str, diff: str, content: str) -> bool:
        self._echo(f"\nProposed changes to: {path}")
        if self._show_diffs:
            for line in diff.splitlines():
                if line.startswith("+") and not line.startswith("+++"):
                    typer.secho(line, fg=typer.colors.GREEN)
                elif line.startswith("-") and not line.startswith("---"):
                    typer.secho(line, fg=typer.colors.RED)
                else:
                    self._echo(line)
        return self._confirm("Apply these changes?", default=True)

    def approve_command(self, command: str, *, high_risk: bool) -> bool:
        self._echo(f"\nShell command: {command}")
        if high_risk:
            typer.secho("HIGH RISK COMMAND: please review carefully!", fg=typer.colors.RED, bold=True)
        return self._confirm("Run this command?", default=not high_risk)

    @staticmethod
    def _confirm(question: str, *, default: bool) -> bool:
        try:
            return typer.confirm(question, default=default)
        except typer.Abort:
            return False


def ask(decision: Callable[[], bool], cancel: Optional[CancellationToken]) -> bool:
    """Run one blocking confirmation with cancellation checked on both sides."""
    check_cancelled(cancel)
    answer = decision()
    check_cancelled(cancel)
    return answer


def review_lines(review: Review, *, indent: str = "  ") -> list[str]:
    """Format each review issue as ``[SEVERITY] (category) message @ location``.

    Unrecognised severities display as info; unrecognised categories keep their raw text.
    A suggestion, when present, follows on its own line.
    """
    lines: list[str] = []
    for issue in review.issues:
        category = str(issue.category_value)
        tag = f" ({category})" if category else ""
        where = f" @ {issue.location}" if issue.location else ""
        lines.append(f"{indent}[{issue.display_severity.value.upper()}]{tag} {issue.message}{where}")
        if issue.suggestion:
            lines.append(f"{indent}    -> {issue.suggestion}")
    return lines


__all__ = ["ApprovalGate", "AutoApprovalGate", "ConsoleApprovalGate", "ask", "review_lines"]
