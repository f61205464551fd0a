"""Interactive session loop: goals go to the orchestrator, ``/`` lines are commands."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

import typer

from .cancellation import CancellationToken, cancel_on_interrupt
from .config import AgentConfig
from .errors import AgentError, PersistenceError
from .memory.schema import Plan
from .memory.session import AgentSession
from .orchestrator import Orchestrator, OrchestratorResult, Outcome
from .phases import PHASE_SEQUENCE, PhaseName
from .planning import plan_from_markdown, plan_to_markdown, save_plan_document, save_review_document
from .planning.documents import TIMESTAMP_FORMAT, write_document

LOGGER = logging.getLogger(__name__)

HISTORY_DISPLAY_LIMIT = 20

PERSONA_DESCRIPTIONS = {
    PhaseName.PLANNER: "Strategic planning, breaks tasks into steps",
    PhaseName.EXECUTOR: "Code implementation, executes steps",
    PhaseName.REVIEWER: "Code review, finds bugs and issues",
}

COMMAND_HELP = (
    ("/help", "Show this help"),
    ("/switch <agent>", "Switch to a different agent (planner, executor, reviewer)"),
    ("/agents", "List available agents"),
    ("/plan", "Show the current plan"),
    ("/export [file]", "Export the current plan to Markdown"),
    ("/import <file>", "Load a plan document and execute it"),
    ("/status", "Show session status"),
    ("/config", "Show current configuration"),
    ("/history", "Show recent interactions"),
    ("/clear", "Clear history"),
    ("/exit, /quit", "End the session"),
)

_OUTCOME_LABELS = {
    Outcome.SUCCESS: "Success",
    Outcome.CANCELLED: "Cancelled",
    Outcome.ERROR: "Failed",
}


class SessionController:
    """Read-eval loop over one project, carrying history across goals."""

    def __init__(
        self,
        orchestrator: Orchestrator,
        config: AgentConfig,
        project_root: Path,
        *,
        echo: Callable[[str], None] = typer.echo,
        read_input: Optional[Callable[[str], str]] = None,
        cancel_factory: Callable[[], CancellationToken] = CancellationToken,
    ) -> None:
        self.orchestrator = orchestrator
        self.config = config
        self.project_root = Path(project_root).resolve()
        self.session = AgentSession(project_root=self.project_root, history_limit=config.history_limit)
        self._echo = echo
        self._read_input = read_input or (lambda prompt: typer.prompt(prompt, default="", show_default=False))
        self._cancel_factory = cancel_factory
        self._handlers: dict[str, Callable[[str], None]] = {
            "/help": self._show_help,
            "/switch": self._switch_persona,
            "/agents": self._show_agents,
            "/plan": self._show_plan,
            "/export": self._export_plan,
            "/import": self._import_plan,
            "/status": self._show_status,
            "/config": self._show_config,
            "/history": self._show_history,
            "/clear": self._clear_history,
            "/exit": self._exit,
            "/quit": self._exit,
        }

    def run(self, initial_task: Optional[str] = None) -> int:
        """Drive the loop until ``/exit`` or end of input."""
        self._show_banner()
        if initial_task and initial_task.strip():
            self.handle_input(initial_task)
        while self.session.is_running:
            try:
                line = self._read_input(f"Agent [{self.session.current_persona.value}] >")
            except (EOFError, typer.Abort):
                break
            self.handle_input(line)
        self._echo(f"\nSession ended. Duration: {_format_duration(self.session.duration.total_seconds())}")
        self._echo(f"Total interactions: {len(self.session.history)}")
        return 0

    def handle_input(self, line: str) -> None:
        """Process one line of input; failures are reported and never end the loop."""
        text = line.strip()
        if not text:
            return
        self.session.add_to_history(f"User: {text}")
        try:
            if text.startswith("/"):
                self._dispatch_command(text)
            else:
                self._run_goal(text)
        except AgentError as error:
            self._echo(f"Error: {error}")
        except Exception as error:  # noqa: BLE001
            LOGGER.exception("Unexpected error while handling input")
            self._echo(f"Unexpected error: {error}")

    def _dispatch_command(self, text: str) -> None:
        command, _, argument = text.partition(" ")
        handler = self._handlers.get(command.lower())
        if handler is None:
            self._echo(f"Unknown command: {command}. Type /help for the list of commands.")
            return
        handler(argument.strip())

    def _run_goal(self, goal: str) -> None:
        token = self._cancel_factory()
        with cancel_on_interrupt(token):
            result = self.orchestrator.run_task(goal, cancel=token)
        self._finish(result)

    def _run_imported_plan(self, plan: Plan) -> None:
        token = self._cancel_factory()
        with cancel_on_interrupt(token):
            result = self.orchestrator.run_plan(plan, cancel=token)
        self._finish(result)

    def _finish(self, result: OrchestratorResult) -> None:
        self.session.bind_result(result)
        self.session.add_to_history(f"Agent: {_OUTCOME_LABELS[result.outcome]}")
        self._report(result)
        if result.plan is not None:
            self._persist(lambda: save_plan_document(self.project_root, result.plan), "Plan saved to")
        if result.final_review is not None:
            self._persist(
                lambda: save_review_document(self.project_root, result.final_review, goal=result.goal),
                "Review saved to",
            )

    def _persist(self, save: Callable[[], Path], label: str) -> None:
        try:
            path = save()
        except PersistenceError as error:
            self._echo(f"Warning: {error}")
            return
        self._echo(f"{label}: {_display_path(path, self.project_root)}")

    def _report(self, result: OrchestratorResult) -> None:
        if result.outcome is Outcome.SUCCESS:
            self._echo("Task completed successfully.")
            if result.final_review_skipped:
                self._echo("Final review could not be parsed and was skipped.")
        elif result.outcome is Outcome.CANCELLED:
            self._echo("Task cancelled.")
        else:
            self._echo(f"Task failed: {result.error or 'unknown error'}")
        if result.final_review is not None:
            self._echo(f"Final score: {result.final_review.score}/10")

    # Commands

    def _show_help(self, _: str) -> None:
        width = max(len(name) for name, _ in COMMAND_HELP)
        self._echo("Commands:")
        for name, description in COMMAND_HELP:
            self._echo(f"  {name.ljust(width)}  {description}")
        self._echo("Anything else is treated as a task for the agents.")

    def _switch_persona(self, argument: str) -> None:
        available = ", ".join(persona.value for persona in PHASE_SEQUENCE)
        if not argument:
            self._echo("Usage: /switch <agent>")
            self._echo(f"Available: {available}")
            return
        persona = PhaseName.parse(argument)
        if persona is None:
            self._echo(f"Unknown agent: {argument}")
            self._echo(f"Available: {available}")
            return
        self.session.current_persona = persona
        self._echo(f"Switched to {persona.value} agent")

    def _show_agents(self, _: str) -> None:
        for persona in PHASE_SEQUENCE:
            marker = "*" if persona is self.session.current_persona else " "
            self._echo(
                f"{marker} {persona.value:<9} {PERSONA_DESCRIPTIONS[persona]} "
                f"({self.config.model_for(persona)})"
            )
        self._echo(f"Current: {self.session.current_persona.value}")

    def _show_plan(self, _: str) -> None:
        plan = self.session.current_plan
        if plan is None:
            self._echo("No active plan")
            return
        self._echo(f"Current plan ({plan.total_steps} steps)")
        for step in plan.steps:
            if step.completed:
                status = "done"
            elif step.skipped:
                status = "skipped"
            else:
                status = "pending"
            self._echo(f"  {step.order:>3}. [{status}] {step.description}")
        self._echo(f"Goal: {plan.goal}")
        self._echo(f"Completed: {self.session.completed_steps}/{plan.total_steps}")

    def _export_plan(self, argument: str) -> None:
        plan = self.session.current_plan
        if plan is None:
            self._echo("No active plan to export")
            return
        filename = argument or f"plan-{datetime.now().strftime(TIMESTAMP_FORMAT)}.md"
        target = Path(filename).expanduser()
        if not target.is_absolute():
            target = self.project_root / target
        self._persist(lambda: write_document(target, plan_to_markdown(plan)), "Plan exported to")

    def _import_plan(self, argument: str) -> None:
        if not argument:
            self._echo("Usage: /import <file>")
            return
        source = Path(argument).expanduser()
        if not source.is_absolute():
            source = self.project_root / source
        try:
            text = source.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as error:
            self._echo(f"Could not read plan document {source}: {error}")
            return
        plan = plan_from_markdown(text)
        self._echo(f"Loaded plan with {plan.total_steps} steps: {plan.goal}")
        self._run_imported_plan(plan)

    def _show_status(self, _: str) -> None:
        plan = self.session.current_plan
        plan_label = f"Active ({plan.total_steps} steps)" if plan is not None else "None"
        total = plan.total_steps if plan is not None else 0
        self._echo("Session Status")
        self._echo(f"  Agent:       {self.session.current_persona.value}")
        self._echo(f"  Model:       {self.orchestrator.agent_for(self.session.current_persona).model}")
        self._echo(f"  Code Review: {'Enabled' if self.orchestrator.review_enabled else 'Disabled'}")
        self._echo(f"  Plan:        {plan_label}")
        self._echo(f"  Completed:   {self.session.completed_steps}/{total} steps")
        self._echo(f"  History:     {len(self.session.history)} interactions")
        self._echo(f"  Duration:    {_format_duration(self.session.duration.total_seconds())}")
        self._echo(f"  Project:     {self.project_root}")

    def _show_config(self, _: str) -> None:
        self._echo("Configuration")
        for key, value in self.config.as_dict().items():
            self._echo(f"  {key}: {value}")

    def _show_history(self, _: str) -> None:
        entries = self.session.recent_history(HISTORY_DISPLAY_LIMIT)
        if not entries:
            self._echo("No history yet")
            return
        for entry in entries:
            self._echo(f"  {entry}")

    def _clear_history(self, _: str) -> None:
        self.session.clear_history()
        self._echo("History cleared")

    def _exit(self, _: str) -> None:
        self.session.is_running = False

    def _show_banner(self) -> None:
        review = "Enabled" if self.orchestrator.review_enabled else "Disabled"
        approve = "On" if self.orchestrator.auto_approve else "Off"
        self._echo("Local coding agent")
        self._echo(f"  Current agent: {self.session.current_persona.value}")
        self._echo(f"  Project:       {self.project_root}")
        self._echo(f"  Code review:   {review}")
        self._echo(f"  Auto-approve:  {approve}")
        self._echo(f"  Default model: {self.config.default_model}")
        self._echo("Type a request, or /help for commands.")


def _format_duration(seconds: float) -> str:
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def _display_path(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


__all__ = ["COMMAND_HELP", "HISTORY_DISPLAY_LIMIT", "SessionController"]
