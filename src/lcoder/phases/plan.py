"""Planning stage: turn a goal and project context into an ordered plan."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from ..cancellation import CancellationToken
from ..errors import PlanValidationError
from ..memory.schema import Plan
from ..models.llm_client import LLMClient
from ..prompts import render_planner_input, render_planner_system_prompt
from ..structured import parse_structured
from . import PhaseName
from .base import Agent

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 100


class PlannerAgent(Agent):
    """Asks the model for a JSON plan and validates it."""

    def __init__(
        self,
        *,
        client: LLMClient,
        model: str,
        max_steps: int = DEFAULT_MAX_STEPS,
        logs_root: Optional[Path] = None,
    ) -> None:
        super().__init__(
            PhaseName.PLANNER,
            client=client,
            model=model,
            system_prompt=render_planner_system_prompt(max_steps),
            logs_root=logs_root,
        )
        self.max_steps = max_steps

    def create_plan(
        self,
        goal: str,
        context: Optional[str] = None,
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> Plan:
        """Return a validated plan; raises ``AgentError`` subclasses on bad output."""
        response = self.invoke(render_planner_input(goal, context), cancel=cancel)
        plan = parse_structured(response, Plan, context="plan")
        return self.validate(plan, goal)

    def validate(self, plan: Plan, goal: str) -> Plan:
        if not plan.steps:
            raise PlanValidationError("Plan must have at least one step")
        if len(plan.steps) > self.max_steps:
            raise PlanValidationError(
                f"Plan has too many steps ({len(plan.steps)}, max {self.max_steps})"
            )
        if not plan.goal.strip():
            plan.goal = goal
        orders = [step.order for step in plan.steps]
        if any(order <= 0 for order in orders) or len(set(orders)) != len(orders):
            LOGGER.warning("Plan step numbers were missing or duplicated; renumbering 1..%d", len(orders))
            for index, step in enumerate(plan.steps, start=1):
                step.order = index
        for warning in plan.dependency_warnings():
            LOGGER.warning("%s; steps run in list order", warning)
        return plan


__all__ = ["DEFAULT_MAX_STEPS", "PlannerAgent"]
