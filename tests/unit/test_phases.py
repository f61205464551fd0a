from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from lcoder.cancellation import CancellationToken, OperationCancelled
from lcoder.errors import PlanValidationError
from lcoder.memory.schema import Step, StepExecutionResult
from lcoder.models.llm_client import LLMTimeoutError
from lcoder.phases.implement import ExecutorAgent, clean_response
from lcoder.phases.plan import PlannerAgent
from lcoder.phases.review import ReviewerAgent
from lcoder.tools.files import FileService
from lcoder.tools.shell import ShellRunner


def _plan_json(orders: list[int], *, goal: str = "Build it") -> str:
    return json.dumps(
        {
            "goal": goal,
            "steps": [{"order": order, "description": f"Step {index}"} for index, order in enumerate(orders)],
        }
    )


def test_clean_response_drops_thinking_blocks() -> None:
    response = (
        "Thinking...\nThe user wants a file.\n...done thinking.\n"
        "```write:a.txt\nhello\n```\n"
        "Let me think about tests\nmaybe later\nNow I will stop.\n"
        "Done."
    )
    assert clean_response(response) == "```write:a.txt\nhello\n```\nDone."


def test_clean_response_leaves_plain_answers_alone() -> None:
    assert clean_response("  Just the answer.\n") == "Just the answer."


def test_planner_fills_goal_and_renumbers_duplicates(make_client, caplog) -> None:
    client = make_client([_plan_json([1, 1, 3], goal="")])
    planner = PlannerAgent(client=client, model="m")

    with caplog.at_level(logging.WARNING, logger="lcoder.phases.plan"):
        plan = planner.create_plan("Add caching")

    assert plan.goal == "Add caching"
    assert [step.order for step in plan.steps] == [1, 2, 3]
    assert "renumbering" in caplog.text


def test_planner_keeps_unique_orders(make_client) -> None:
    plan = PlannerAgent(client=make_client([_plan_json([2, 5])]), model="m").create_plan("x")
    assert [step.order for step in plan.steps] == [2, 5]


def test_planner_rejects_empty_and_oversized_plans(make_client) -> None:
    with pytest.raises(PlanValidationError, match="at least one step"):
        PlannerAgent(client=make_client([_plan_json([])]), model="m").create_plan("x")

    with pytest.raises(PlanValidationError, match="too many steps"):
        PlannerAgent(client=make_client([_plan_json([1, 2, 3])]), model="m", max_steps=2).create_plan("x")


def test_planner_prompt_mentions_step_limit(make_client) -> None:
    client = make_client([_plan_json([1])])
    PlannerAgent(client=client, model="m", max_steps=12).create_plan("Goal text")

    system, user = client.payloads[0]["messages"]
    assert "more than 12 steps" in system["content"]
    assert user["content"].startswith("Task: Goal text")


def test_reviewer_clamps_score(make_client) -> None:
    client = make_client([json.dumps({"approved": True, "score": 15}), json.dumps({"approved": False, "score": -3})])
    reviewer = ReviewerAgent(client=client, model="m")
    result = StepExecutionResult(step=Step(order=1, description="x"), response="done", success=True)

    assert reviewer.review_step(result).score == 10
    assert reviewer.review_step(result).score == 0


def test_reviewer_reviews_standalone_code(make_client) -> None:
    client = make_client([json.dumps({"approved": True, "score": 8, "summary": "Fine"})])
    reviewer = ReviewerAgent(client=client, model="critic")

    review = reviewer.review_code("src/app.py", "def main():\n    return 1\n", "security")

    assert review.score == 8
    prompt = client.payloads[0]["messages"][-1]["content"]
    assert "Target: src/app.py" in prompt
    assert "Focus: security" in prompt
    assert "return 1" in prompt


def test_executor_turns_backend_errors_into_failed_results(project_root: Path, make_client, make_gate) -> None:
    executor = ExecutorAgent(
        client=make_client([LLMTimeoutError("timed out")]),
        model="m",
        files=FileService(project_root),
        shell=ShellRunner(),
        gate=make_gate(),
    )
    step = Step(order=1, description="x")

    result = executor.execute_step(step)

    assert not result.success
    assert result.error == "timed out"
    assert not step.completed
    assert step.completed_at is not None


def test_executor_includes_current_file_content_in_prompt(project_root: Path, make_client, make_gate) -> None:
    client = make_client(["nothing to do"])
    executor = ExecutorAgent(
        client=client,
        model="m",
        files=FileService(project_root),
        shell=ShellRunner(),
        gate=make_gate(),
    )

    executor.execute_step(Step(order=3, description="Tweak main", files=["src/app.py"]), "CTX")

    prompt = client.payloads[0]["messages"][1]["content"]
    assert "Step 3: Tweak main" in prompt
    assert "Current content of src/app.py:" in prompt
    assert "def main():" in prompt
    assert prompt.rstrip().endswith("Implement this step now.")


def test_executor_propagates_cancellation(project_root: Path, make_client, make_gate) -> None:
    token = CancellationToken()
    token.cancel()
    executor = ExecutorAgent(
        client=make_client(["unused"]),
        model="m",
        files=FileService(project_root),
        shell=ShellRunner(),
        gate=make_gate(),
    )

    with pytest.raises(OperationCancelled):
        executor.execute_step(Step(order=1, description="x"), cancel=token)
