from __future__ import annotations

import sys
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Deque, Dict, Iterator, List

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from lcoder.config import AgentConfig  # noqa: E402
from lcoder.memory.schema import Plan, Review  # noqa: E402
from lcoder.models.llm_client import LLMClient  # noqa: E402


class ScriptedClient(LLMClient):
    """Chat backend replaying queued responses, split into small fragments."""

    def __init__(self, responses: List[str | Exception] | None = None, *, fragment_size: int = 16) -> None:
        super().__init__(model="scripted-model")
        self._responses: Deque[str | Exception] = deque(responses or [])
        self._fragment_size = fragment_size
        self.payloads: List[Dict[str, Any]] = []

    def queue(self, *responses: str | Exception) -> None:
        self._responses.extend(responses)

    @property
    def remaining(self) -> int:
        return len(self._responses)

    def _raw_stream(self, payload: Dict[str, Any]) -> Iterator[str]:
        self.payloads.append(payload)
        if not self._responses:
            raise AssertionError("ScriptedClient ran out of responses")
        response = self._responses.popleft()
        if isinstance(response, Exception):
            raise response
        for start in range(0, len(response), self._fragment_size):
            yield response[start : start + self._fragment_size]


@dataclass(slots=True)
class ScriptedGate:
    """Approval gate returning preset answers and recording every question."""

    plan: bool = True
    continue_on_issues: bool = True
    edits: bool = True
    commands: bool = True
    asked: List[str] = field(default_factory=list)

    def approve_plan(self, plan: Plan) -> bool:
        self.asked.append("plan")
        return self.plan

    def continue_despite_issues(self, review: Review) -> bool:
        self.asked.append("issues")
        return self.continue_on_issues

    def approve_edit(self, path: str, diff: str, content: str) -> bool:
        self.asked.append(f"edit:{path}")
        return self.edits

    def approve_command(self, command: str, *, high_risk: bool) -> bool:
        self.asked.append(f"command:{command}")
        return self.commands


@pytest.fixture()
def project_root(tmp_path: Path) -> Path:
    """Small project tree used as the agents' workspace."""
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "src" / "app.py").write_text("def main():\n    return 1\n", encoding="utf-8")
    (root / "README.md").write_text("# Demo\n", encoding="utf-8")
    return root


@pytest.fixture()
def agent_config() -> AgentConfig:
    return AgentConfig(default_model="scripted-model")


@pytest.fixture()
def make_gate() -> type[ScriptedGate]:
    return ScriptedGate


@pytest.fixture()
def make_client() -> type[ScriptedClient]:
    return ScriptedClient
