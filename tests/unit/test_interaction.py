from __future__ import annotations

import pytest
import typer

from lcoder.cancellation import CancellationToken, OperationCancelled
from lcoder.interaction import ConsoleApprovalGate, ask, review_lines
from lcoder.memory.schema import Issue, Plan, Review, Step


def _review() -> Review:
    return Review(
        approved=False,
        score=3,
        issues=[
            Issue(
                message="SQL built from user input",
                severity="critical",
                category="security",
                file="src/db.py",
                line=12,
                suggestion="Use bound parameters",
            ),
            Issue(message="Odd spacing", severity="cosmetic", category="layout", file="src/db.py"),
            Issue(message="Unused import", severity="info"),
        ],
    )


def test_review_lines_render_severity_category_and_location() -> None:
    assert review_lines(_review()) == [
        "  [CRITICAL] (security) SQL built from user input @ src/db.py:12",
        "      -> Use bound parameters",
        "  [INFO] (layout) Odd spacing @ src/db.py",
        "  [INFO] Unused import",
    ]


def test_continue_despite_issues_lists_issues_before_prompt(monkeypatch: pytest.MonkeyPatch) -> None:
    echoed: list[str] = []
    questions: list[str] = []

    def confirm(question: str, default: bool = False) -> bool:
        questions.append(question)
        assert any("SQL built from user input" in line for line in echoed)
        return True

    monkeypatch.setattr(typer, "confirm", confirm)
    gate = ConsoleApprovalGate(echo=echoed.append)

    assert gate.continue_despite_issues(_review())
    assert echoed[0] == "Review found 1 critical issue(s)."
    assert "      -> Use bound parameters" in echoed
    assert questions == ["Continue despite issues?"]


def test_approve_plan_shows_step_types(monkeypatch: pytest.MonkeyPatch) -> None:
    echoed: list[str] = []
    monkeypatch.setattr(typer, "confirm", lambda question, default=False: False)
    plan = Plan(
        goal="Harden queries",
        steps=[
            Step(order=1, description="Parameterise queries", type="code", files=["src/db.py"]),
            Step(order=2, description="Tidy", type="refactor"),
        ],
    )

    assert not ConsoleApprovalGate(echo=echoed.append).approve_plan(plan)
    assert "  1. (code) Parameterise queries [src/db.py]" in echoed
    assert "  2. (refactor) Tidy" in echoed


def test_aborted_prompt_counts_as_no(monkeypatch: pytest.MonkeyPatch) -> None:
    def abort(question: str, default: bool = False) -> bool:
        raise typer.Abort()

    monkeypatch.setattr(typer, "confirm", abort)

    assert not ConsoleApprovalGate(echo=lambda line: None).approve_command("rm -rf build", high_risk=False)


def test_ask_checks_cancellation_after_decision() -> None:
    token = CancellationToken()

    def decide() -> bool:
        token.cancel("interrupted")
        return True

    with pytest.raises(OperationCancelled):
        ask(decide, token)
