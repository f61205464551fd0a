"""Mutable state carried across goals within one interactive session."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Deque

from ..phases import PhaseName
from .schema import Plan, utc_now

if TYPE_CHECKING:
    from ..orchestrator import OrchestratorResult

DEFAULT_HISTORY_LIMIT = 50


@dataclass(slots=True)
class AgentSession:
    """Session-level counters, bound plan, and the bounded history log."""

    project_root: Path
    history_limit: int = DEFAULT_HISTORY_LIMIT
    current_persona: PhaseName = PhaseName.PLANNER
    current_plan: Plan | None = None
    completed_steps: int = 0
    is_running: bool = True
    started_at: datetime = field(default_factory=utc_now)
    last_result: OrchestratorResult | None = None
    history: Deque[str] = field(init=False)

    def __post_init__(self) -> None:
        self.history = deque(maxlen=max(self.history_limit, 1))

    @property
    def duration(self) -> timedelta:
        return utc_now() - self.started_at

    def add_to_history(self, entry: str) -> None:
        """Append a timestamped entry; the oldest entry is dropped past the cap."""
        stamp = datetime.now().strftime("%H:%M:%S")
        self.history.append(f"[{stamp}] {entry}")

    def recent_history(self, count: int) -> list[str]:
        if count <= 0:
            return []
        return list(self.history)[-count:]

    def clear_history(self) -> None:
        self.history.clear()

    def bind_result(self, result: OrchestratorResult) -> None:
        """Record the outcome of one orchestrator run."""
        self.last_result = result
        if result.plan is not None:
            self.current_plan = result.plan
            self.completed_steps = result.plan.completed_steps


__all__ = ["AgentSession", "DEFAULT_HISTORY_LIMIT"]
