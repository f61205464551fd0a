"""Execution stage: ask the model for one step's changes and apply them."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from ..cancellation import CancellationToken
from ..errors import AgentError
from ..interaction import ApprovalGate
from ..memory.schema import ActionKind, ActionResult, Step, StepExecutionResult
from ..models.llm_client import LLMClient, LLMClientError
from ..prompts import EXECUTOR_SYSTEM_PROMPT, render_executor_input
from ..tools.actions import parse_actions
from ..tools.files import FileService
from ..tools.shell import ShellRunner
from . import PhaseName
from .base import Agent

LOGGER = logging.getLogger(__name__)

_THINKING_OPENERS = ("thinking", "...thinking", "let me think")
_THINKING_CLOSERS = ("...done thinking", "done thinking", "now i will")


def clean_response(response: str) -> str:
    """Drop "Thinking..." blocks some local models emit before their answer."""
    kept: list[str] = []
    in_thinking = False
    for line in response.split("\n"):
        lowered = line.strip().lower()
        if not in_thinking and lowered.startswith(_THINKING_OPENERS):
            in_thinking = True
            continue
        if in_thinking:
            if lowered.startswith(_THINKING_CLOSERS):
                in_thinking = False
            continue
        kept.append(line)
    return "\n".join(kept).strip()


class ExecutorAgent(Agent):
    """Implements one plan step through file writes and shell commands."""

    def __init__(
        self,
        *,
        client: LLMClient,
        model: str,
        files: FileService,
        shell: ShellRunner,
        gate: ApprovalGate,
        logs_root: Optional[Path] = None,
    ) -> None:
        super().__init__(
            PhaseName.EXECUTOR,
            client=client,
            model=model,
            system_prompt=EXECUTOR_SYSTEM_PROMPT,
            logs_root=logs_root,
        )
        self._files = files
        self._shell = shell
        self._gate = gate

    def execute_step(
        self,
        step: Step,
        context: Optional[str] = None,
        *,
        auto_approve: bool = False,
        cancel: Optional[CancellationToken] = None,
    ) -> StepExecutionResult:
        """Run ``step`` and report every applied action.

        Backend and domain failures become a failed result; cancellation propagates.
        A response without actions is a successful no-op.
        """
        step.mark_started()
        try:
            prompt = render_executor_input(step, context, self._files.read_file)
            response = clean_response(self.invoke(prompt, cancel=cancel))
        except (LLMClientError, AgentError) as error:
            LOGGER.warning("Step %d failed before producing actions: %s", step.order, error)
            step.mark_failed()
            return StepExecutionResult(step=step, success=False, error=str(error))

        parsed = parse_actions(response)
        if parsed.is_empty:
            LOGGER.info("Step %d produced no file or shell actions", step.order)

        actions: list[ActionResult] = []
        for write in parsed.file_writes:
            actions.append(
                self._files.confirm_and_apply_edit(
                    write.path,
                    write.content,
                    auto_accept=auto_approve,
                    gate=self._gate,
                    cancel=cancel,
                )
            )
        for command in parsed.commands:
            actions.append(self._run_command(command, auto_approve=auto_approve, cancel=cancel))

        result = StepExecutionResult(step=step, response=response, actions=actions, success=True)
        failed = result.failed_actions
        if failed:
            step.mark_failed(response)
            summary = ", ".join(f"{action.kind.value} {action.target}" for action in failed)
            result.success = False
            result.error = f"{len(failed)} action(s) did not succeed: {summary}"
            return result

        step.mark_completed(response)
        return result

    def _run_command(
        self,
        command: str,
        *,
        auto_approve: bool,
        cancel: Optional[CancellationToken],
    ) -> ActionResult:
        if auto_approve:
            # Unattended runs apply file edits but never execute shell commands.
            LOGGER.info("Skipping shell command under auto-approve: %s", command)
            return ActionResult(
                kind=ActionKind.SHELL,
                target=command,
                success=True,
                message="Not run under auto-approve",
                skipped=True,
            )
        result = self._shell.execute(command, self._files.project_root, gate=self._gate, cancel=cancel)
        if result.blocked:
            message = "Blocked by safety filter"
        elif result.skipped:
            message = "Skipped by user"
        else:
            message = result.output.strip() or f"exit code {result.exit_code}"
        return ActionResult(
            kind=ActionKind.SHELL,
            target=command,
            success=result.success,
            message=message,
            skipped=result.skipped,
        )


__all__ = ["ExecutorAgent", "clean_response"]
