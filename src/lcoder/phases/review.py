"""Review stage: score a step's changes or a finished plan."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from ..cancellation import CancellationToken
from ..memory.schema import Plan, Review, StepExecutionResult
from ..models.llm_client import LLMClient
from ..prompts import (
    REVIEWER_SYSTEM_PROMPT,
    render_code_review_input,
    render_plan_review_input,
    render_step_review_input,
)
from ..structured import parse_structured
from . import PhaseName
from .base import Agent

LOGGER = logging.getLogger(__name__)

MIN_SCORE = 0
MAX_SCORE = 10


class ReviewerAgent(Agent):
    def __init__(
        self,
        *,
        client: LLMClient,
        model: str,
        logs_root: Optional[Path] = None,
    ) -> None:
        super().__init__(
            PhaseName.REVIEWER,
            client=client,
            model=model,
            system_prompt=REVIEWER_SYSTEM_PROMPT,
            logs_root=logs_root,
        )

    def review_step(
        self,
        result: StepExecutionResult,
        context: Optional[str] = None,
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> Review:
        response = self.invoke(render_step_review_input(result, context), cancel=cancel)
        return self._parse(response, f"review of step {result.step.order}")

    def review_plan(
        self,
        plan: Plan,
        context: Optional[str] = None,
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> Review:
        response = self.invoke(render_plan_review_input(plan, context), cancel=cancel)
        return self._parse(response, "final review")

    def review_code(
        self,
        target: str,
        code: str,
        focus: str = "all",
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> Review:
        """Review existing code outside any plan run."""
        response = self.invoke(render_code_review_input(target, code, focus), cancel=cancel)
        return self._parse(response, f"review of {target}")

    def _parse(self, response: str, context: str) -> Review:
        review = parse_structured(response, Review, context=context)
        clamped = max(MIN_SCORE, min(MAX_SCORE, review.score))
        if clamped != review.score:
            LOGGER.debug("Clamping %s score %d to %d", context, review.score, clamped)
            review.score = clamped
        return review


__all__ = ["MAX_SCORE", "MIN_SCORE", "ReviewerAgent"]
