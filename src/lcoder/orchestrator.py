"""State machine driving plan → approve → execute → review for one goal."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from .cancellation import CancellationToken, OperationCancelled, check_cancelled
from .config import AgentConfig
from .context_builder import ContextBuilder
from .errors import AgentError
from .interaction import ApprovalGate, ask
from .memory.schema import Plan, Review, StepExecutionResult
from .models.llm_client import LLMClient, LLMClientError
from .phases import PhaseName
from .phases.base import json_safe
from .phases.implement import ExecutorAgent
from .phases.plan import PlannerAgent
from .phases.review import ReviewerAgent
from .prompts import render_workspace_line
from .tools.files import FileService
from .tools.shell import OutputCallback, ShellRunner

LOGGER = logging.getLogger(__name__)
TELEMETRY_LOGGER = logging.getLogger("lcoder.telemetry")

SUGGESTION_SCORE_THRESHOLD = 7


class OrchestratorState(str, Enum):
    PLANNING = "planning"
    AWAITING_APPROVAL = "awaiting_approval"
    EXECUTING = "executing"
    REVIEWING = "reviewing"
    FINAL_REVIEW = "final_review"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = {OrchestratorState.DONE, OrchestratorState.CANCELLED, OrchestratorState.FAILED}


class Outcome(str, Enum):
    SUCCESS = "success"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass(slots=True)
class OrchestratorEvent:
    """Progress notification delivered to the optional listener."""

    kind: str
    state: OrchestratorState
    step: Optional[int] = None
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)


EventListener = Callable[[OrchestratorEvent], None]


@dataclass(slots=True)
class StateTransition:
    state: OrchestratorState
    step: Optional[int] = None
    detail: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(slots=True)
class OrchestratorResult:
    """Everything produced by one run, whatever its outcome."""

    goal: str
    plan: Optional[Plan] = None
    final_review: Optional[Review] = None
    step_results: list[StepExecutionResult] = field(default_factory=list)
    step_reviews: dict[int, Review] = field(default_factory=dict)
    review_failures: list[str] = field(default_factory=list)
    success: bool = False
    cancelled: bool = False
    error: Optional[str] = None
    state: OrchestratorState = OrchestratorState.PLANNING
    transitions: list[StateTransition] = field(default_factory=list)
    final_review_skipped: bool = False

    @property
    def outcome(self) -> Outcome:
        if self.cancelled:
            return Outcome.CANCELLED
        if self.success:
            return Outcome.SUCCESS
        return Outcome.ERROR


class Orchestrator:
    """Coordinator that runs the planner, executor and reviewer for one goal at a time."""

    def __init__(
        self,
        *,
        planner: PlannerAgent,
        executor: ExecutorAgent,
        reviewer: ReviewerAgent,
        gate: ApprovalGate,
        context_builder: ContextBuilder,
        auto_approve: bool = False,
        review_enabled: bool = True,
        listener: Optional[EventListener] = None,
    ) -> None:
        self.planner = planner
        self.executor = executor
        self.reviewer = reviewer
        self.auto_approve = auto_approve
        self.review_enabled = review_enabled
        self._gate = gate
        self._context_builder = context_builder
        self._listener = listener

    @classmethod
    def from_config(
        cls,
        config: AgentConfig,
        client: LLMClient,
        gate: ApprovalGate,
        project_root: Path,
        *,
        shell_output: Optional[OutputCallback] = None,
        listener: Optional[EventListener] = None,
    ) -> "Orchestrator":
        """Convenience constructor used by the CLI and the session controller."""
        root = Path(project_root).resolve()
        logs_root = config.logs_dir
        return cls(
            planner=PlannerAgent(
                client=client,
                model=config.model_for(PhaseName.PLANNER),
                max_steps=config.max_plan_steps,
                logs_root=logs_root,
            ),
            executor=ExecutorAgent(
                client=client,
                model=config.model_for(PhaseName.EXECUTOR),
                files=FileService(root),
                shell=ShellRunner(on_output=shell_output),
                gate=gate,
                logs_root=logs_root,
            ),
            reviewer=ReviewerAgent(
                client=client,
                model=config.model_for(PhaseName.REVIEWER),
                logs_root=logs_root,
            ),
            gate=gate,
            context_builder=ContextBuilder.from_config(config, root),
            auto_approve=config.auto_approve,
            review_enabled=config.review_enabled,
            listener=listener,
        )

    @property
    def project_root(self) -> Path:
        return self._context_builder.repo_root

    def agent_for(self, persona: PhaseName) -> PlannerAgent | ExecutorAgent | ReviewerAgent:
        return {
            PhaseName.PLANNER: self.planner,
            PhaseName.EXECUTOR: self.executor,
            PhaseName.REVIEWER: self.reviewer,
        }[persona]

    def run_task(self, goal: str, *, cancel: Optional[CancellationToken] = None) -> OrchestratorResult:
        """Plan ``goal`` from scratch, then carry the plan through to a terminal state."""
        result = OrchestratorResult(goal=goal)
        try:
            self._transition(result, OrchestratorState.PLANNING)
            check_cancelled(cancel)
            context = self._build_context()
            try:
                plan = self.planner.create_plan(goal, context, cancel=cancel)
            except (AgentError, LLMClientError) as error:
                LOGGER.error("Planning failed: %s", error)
                return self._fail(result, f"Planning failed: {error}")
            result.plan = plan
            self._emit("plan_created", result.state, message=plan.goal, steps=plan.total_steps)
            return self._carry_out(result, plan, context, cancel)
        except OperationCancelled as cancelled:
            return self._cancel(result, str(cancelled))

    def run_plan(self, plan: Plan, *, cancel: Optional[CancellationToken] = None) -> OrchestratorResult:
        """Carry an already-built plan (for example an imported document) through execution."""
        result = OrchestratorResult(goal=plan.goal, plan=plan)
        try:
            check_cancelled(cancel)
            context = self._build_context()
            return self._carry_out(result, plan, context, cancel)
        except OperationCancelled as cancelled:
            return self._cancel(result, str(cancelled))

    def _carry_out(
        self,
        result: OrchestratorResult,
        plan: Plan,
        context: str,
        cancel: Optional[CancellationToken],
    ) -> OrchestratorResult:
        self._transition(result, OrchestratorState.AWAITING_APPROVAL)
        if not self.auto_approve and not ask(lambda: self._gate.approve_plan(plan), cancel):
            return self._cancel(result, "Plan rejected by user")

        for step in plan.steps:
            check_cancelled(cancel)
            self._transition(result, OrchestratorState.EXECUTING, step=step.order, detail=step.description)
            step_result = self.executor.execute_step(
                step,
                context,
                auto_approve=self.auto_approve,
                cancel=cancel,
            )
            result.step_results.append(step_result)
            self._emit(
                "step_finished",
                result.state,
                step=step.order,
                message=step_result.error or "",
                success=step_result.success,
                files=step_result.files_changed,
                commands=step_result.commands_run,
            )
            if not step_result.success:
                return self._fail(result, f"Step {step.order} failed: {step_result.error or 'unknown error'}")

            if self.review_enabled:
                try:
                    proceed = self._review_step(result, step_result, context, cancel)
                except LLMClientError as error:
                    LOGGER.error("Review of step %d failed: %s", step.order, error)
                    return self._fail(result, f"Review failed: {error}")
                if not proceed:
                    return self._cancel(result, f"Stopped after review of step {step.order}")

        if self.auto_approve:
            result.success = True
            self._transition(result, OrchestratorState.DONE)
            return result
        return self._final_review(result, plan, context, cancel)

    def _review_step(
        self,
        result: OrchestratorResult,
        step_result: StepExecutionResult,
        context: str,
        cancel: Optional[CancellationToken],
    ) -> bool:
        """Review one step; returns False when the user chose to stop.

        An unparseable review is recorded and skipped. Backend errors propagate.
        """
        order = step_result.step.order
        self._transition(result, OrchestratorState.REVIEWING, step=order)
        try:
            review = self.reviewer.review_step(step_result, context, cancel=cancel)
        except AgentError as error:
            LOGGER.warning("Review of step %d skipped: %s", order, error)
            result.review_failures.append(f"Step {order}: {error}")
            self._emit("review_skipped", result.state, step=order, message=str(error))
            return True

        result.step_reviews[order] = review
        self._emit(
            "step_reviewed",
            result.state,
            step=order,
            message=review.summary,
            score=review.score,
            approved=review.approved,
            critical=review.critical_count,
            warnings=review.warning_count,
            review=review,
        )
        if review.has_critical_issues:
            if not self.auto_approve and not ask(lambda: self._gate.continue_despite_issues(review), cancel):
                return False
        elif review.score < SUGGESTION_SCORE_THRESHOLD and review.suggestions:
            self._emit(
                "suggestions",
                result.state,
                step=order,
                message=f"Score {review.score}/10",
                suggestions=list(review.suggestions),
            )
        return True

    def _final_review(
        self,
        result: OrchestratorResult,
        plan: Plan,
        context: str,
        cancel: Optional[CancellationToken],
    ) -> OrchestratorResult:
        self._transition(result, OrchestratorState.FINAL_REVIEW)
        try:
            review = self.reviewer.review_plan(plan, context, cancel=cancel)
        except AgentError as error:
            LOGGER.warning("Final review skipped, run counted as successful: %s", error)
            result.review_failures.append(f"Final review: {error}")
            result.final_review_skipped = True
            result.success = True
            self._transition(result, OrchestratorState.DONE, detail="final review skipped")
            return result
        except LLMClientError as error:
            LOGGER.error("Final review failed: %s", error)
            return self._fail(result, f"Review failed: {error}")

        result.final_review = review
        result.success = review.approved
        if not review.approved:
            result.error = f"Final review did not approve the changes (score {review.score}/10)"
        self._emit(
            "final_review",
            result.state,
            message=review.summary,
            score=review.score,
            approved=review.approved,
            review=review,
        )
        self._transition(result, OrchestratorState.DONE)
        return result

    def _build_context(self) -> str:
        context = self._context_builder.build()
        return f"{render_workspace_line(self.project_root)}\n\n{context}"

    def _fail(self, result: OrchestratorResult, message: str) -> OrchestratorResult:
        result.success = False
        result.error = message
        self._transition(result, OrchestratorState.FAILED, detail=message)
        return result

    def _cancel(self, result: OrchestratorResult, reason: str) -> OrchestratorResult:
        LOGGER.info("Run cancelled: %s", reason)
        result.success = False
        result.cancelled = True
        result.error = None
        self._transition(result, OrchestratorState.CANCELLED, detail=reason)
        return result

    def _transition(
        self,
        result: OrchestratorResult,
        state: OrchestratorState,
        *,
        step: Optional[int] = None,
        detail: str = "",
    ) -> None:
        previous = result.state
        result.state = state
        result.transitions.append(StateTransition(state=state, step=step, detail=detail))
        LOGGER.debug("Orchestrator %s -> %s (step=%s)", previous.value, state.value, step)
        _emit_telemetry("state_transition", source=previous, target=state, step=step, detail=detail)
        self._emit("transition", state, step=step, message=detail)

    def _emit(
        self,
        kind: str,
        state: OrchestratorState,
        *,
        step: Optional[int] = None,
        message: str = "",
        **data: Any,
    ) -> None:
        if self._listener is None:
            return
        self._listener(OrchestratorEvent(kind=kind, state=state, step=step, message=message, data=data))


def _emit_telemetry(event: str, **fields: Any) -> None:
    """Log one structured telemetry line for orchestrator activity."""
    payload: dict[str, Any] = {"event": event, "timestamp": datetime.now(timezone.utc).isoformat()}
    for key, value in fields.items():
        payload[key] = json_safe(value)
    TELEMETRY_LOGGER.info(json.dumps(payload, separators=(",", ":"), ensure_ascii=True))


__all__ = [
    "EventListener",
    "Orchestrator",
    "OrchestratorEvent",
    "OrchestratorResult",
    "OrchestratorState",
    "Outcome",
    "StateTransition",
]
