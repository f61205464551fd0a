"""CLI commands for running the local coding agent."""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Optional

import typer

from .cancellation import CancellationToken, OperationCancelled, cancel_on_interrupt
from .config import (
    DEFAULT_CONFIG_NAME,
    AgentConfig,
    copy_config_template,
    load_config,
    write_config,
)
from .errors import AgentError, ConfigError, PersistenceError
from .context_builder import ContextBuilder
from .interaction import ApprovalGate, AutoApprovalGate, ConsoleApprovalGate, review_lines
from .memory.schema import Review
from .models import LLMClientError, OllamaClient
from .orchestrator import Orchestrator, OrchestratorEvent, OrchestratorResult, OrchestratorState, Outcome
from .phases import PhaseName
from .phases.review import ReviewerAgent
from .planning import plan_from_markdown, save_plan_document, save_review_document
from .session import SessionController
from .tools.files import FileService

APP_HELP = "Local multi-agent coding assistant backed by Ollama."

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 2

app = typer.Typer(help=APP_HELP)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _resolve_config(
    path: Path,
    config: Optional[Path],
    *,
    model: Optional[str] = None,
    planner_model: Optional[str] = None,
    executor_model: Optional[str] = None,
    reviewer_model: Optional[str] = None,
    yes: bool = False,
    no_review: bool = False,
) -> AgentConfig:
    """Load the effective configuration and apply command-line overrides."""
    try:
        resolved = load_config(config, project_root=path)
    except ConfigError as error:
        typer.echo(f"Configuration error: {error}")
        raise typer.Exit(code=EXIT_FAILURE) from error

    overrides: dict[str, object] = {}
    if model:
        overrides["default_model"] = model
    if planner_model:
        overrides["planner_model"] = planner_model
    if executor_model:
        overrides["executor_model"] = executor_model
    if reviewer_model:
        overrides["reviewer_model"] = reviewer_model
    if yes:
        overrides["auto_approve"] = True
    if no_review:
        overrides["review_enabled"] = False
    return dataclasses.replace(resolved, **overrides) if overrides else resolved


def _build_client(config: AgentConfig) -> OllamaClient:
    return OllamaClient(
        base_url=config.ollama_url,
        model=config.default_model,
        timeout=config.request_timeout,
        health_timeout=config.health_timeout,
    )


def _require_backend(client: OllamaClient) -> None:
    if client.is_available():
        return
    typer.echo(f"Ollama is not reachable at {client.base_url}.")
    typer.echo("Start it with: ollama serve")
    typer.echo("Or point LCODER_OLLAMA_URL (or ollama.url in lcoder.yaml) at a running server.")
    raise typer.Exit(code=EXIT_FAILURE)


def _gate_for(config: AgentConfig) -> ApprovalGate:
    return AutoApprovalGate() if config.auto_approve else ConsoleApprovalGate()


def _echo_shell_output(line: str, is_error: bool) -> None:
    typer.echo(f"  {line}", err=is_error)


def _echo_event(event: OrchestratorEvent) -> None:
    """Render orchestrator progress for a terminal user."""
    if event.kind == "transition":
        if event.state is OrchestratorState.PLANNING:
            typer.echo("Planning...")
        elif event.state is OrchestratorState.EXECUTING:
            typer.echo(f"\nStep {event.step}: {event.message}")
        elif event.state is OrchestratorState.REVIEWING:
            typer.echo(f"Reviewing step {event.step}...")
        elif event.state is OrchestratorState.FINAL_REVIEW:
            typer.echo("\nRunning final review...")
        return
    if event.kind == "plan_created":
        typer.echo(f"Plan ready: {event.data.get('steps', 0)} step(s)")
    elif event.kind == "step_finished":
        for path in event.data.get("files", []):
            typer.echo(f"  wrote {path}")
        if not event.data.get("success"):
            typer.secho(f"  {event.message}", fg=typer.colors.RED)
    elif event.kind == "step_reviewed":
        typer.echo(
            f"  score {event.data.get('score')}/10, "
            f"{event.data.get('critical', 0)} critical, {event.data.get('warnings', 0)} warning(s)"
        )
        _echo_issues(event.data.get("review"))
    elif event.kind == "final_review":
        verdict = "approved" if event.data.get("approved") else "changes requested"
        typer.echo(f"Final review: score {event.data.get('score')}/10, {verdict}")
        if event.message:
            typer.echo(f"  {event.message}")
        _echo_issues(event.data.get("review"))
    elif event.kind == "review_skipped":
        typer.secho(f"  review skipped: {event.message}", fg=typer.colors.YELLOW)
    elif event.kind == "suggestions":
        typer.echo("  Suggestions:")
        for suggestion in event.data.get("suggestions", []):
            typer.echo(f"  - {suggestion}")


def _echo_issues(review: Optional[Review]) -> None:
    if review is None:
        return
    for line in review_lines(review):
        typer.echo(line)


def _exit_code(result: OrchestratorResult) -> int:
    return {
        Outcome.SUCCESS: EXIT_SUCCESS,
        Outcome.CANCELLED: EXIT_CANCELLED,
        Outcome.ERROR: EXIT_FAILURE,
    }[result.outcome]


def _persist_artifacts(project_root: Path, result: OrchestratorResult) -> None:
    try:
        if result.plan is not None:
            path = save_plan_document(project_root, result.plan)
            typer.echo(f"Plan saved to: {path}")
        if result.final_review is not None:
            path = save_review_document(project_root, result.final_review, goal=result.goal)
            typer.echo(f"Review saved to: {path}")
    except PersistenceError as error:
        typer.echo(f"Warning: {error}")


@app.command()
def agent(
    task: Optional[str] = typer.Argument(None, help="What the agents should do."),
    path: Path = typer.Option(Path("."), "--path", "-p", help="Project root to work in."),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help=f"Path to the configuration file (defaults to ./{DEFAULT_CONFIG_NAME}).",
    ),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Default model for every agent."),
    planner_model: Optional[str] = typer.Option(None, "--planner-model", help="Model for the planner."),
    executor_model: Optional[str] = typer.Option(None, "--executor-model", help="Model for the executor."),
    reviewer_model: Optional[str] = typer.Option(None, "--reviewer-model", help="Model for the reviewer."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Approve plans and file edits without asking."),
    no_review: bool = typer.Option(False, "--no-review", help="Skip per-step code review."),
    plan_file: Optional[Path] = typer.Option(
        None,
        "--plan",
        help="Execute an exported plan document instead of planning from scratch.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Plan, execute and review one task, then exit."""
    _configure_logging(verbose)
    project_root = path.resolve()
    if not task and plan_file is None:
        typer.echo("Provide a task or --plan FILE.")
        raise typer.Exit(code=EXIT_FAILURE)

    resolved = _resolve_config(
        project_root,
        config,
        model=model,
        planner_model=planner_model,
        executor_model=executor_model,
        reviewer_model=reviewer_model,
        yes=yes,
        no_review=no_review,
    )

    imported = None
    if plan_file is not None:
        try:
            imported = plan_from_markdown(plan_file.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, AgentError) as error:
            typer.echo(f"Could not load plan document {plan_file}: {error}")
            raise typer.Exit(code=EXIT_FAILURE) from error

    with _build_client(resolved) as client:
        _require_backend(client)
        orchestrator = Orchestrator.from_config(
            resolved,
            client,
            _gate_for(resolved),
            project_root,
            shell_output=_echo_shell_output,
            listener=_echo_event,
        )
        token = CancellationToken()
        with cancel_on_interrupt(token):
            if imported is not None:
                result = orchestrator.run_plan(imported, cancel=token)
            else:
                result = orchestrator.run_task(task or "", cancel=token)

    _persist_artifacts(project_root, result)
    if result.outcome is Outcome.SUCCESS:
        typer.secho("Task completed successfully.", fg=typer.colors.GREEN)
    elif result.outcome is Outcome.CANCELLED:
        typer.secho("Task cancelled.", fg=typer.colors.YELLOW)
    else:
        typer.secho(f"Task failed: {result.error or 'unknown error'}", fg=typer.colors.RED)
    raise typer.Exit(code=_exit_code(result))


@app.command()
def repl(
    task: Optional[str] = typer.Argument(None, help="Optional first task to run."),
    path: Path = typer.Option(Path("."), "--path", "-p", help="Project root to work in."),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to the configuration file."),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Default model for every agent."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Approve plans and file edits without asking."),
    no_review: bool = typer.Option(False, "--no-review", help="Skip per-step code review."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Start an interactive session."""
    _configure_logging(verbose)
    project_root = path.resolve()
    resolved = _resolve_config(project_root, config, model=model, yes=yes, no_review=no_review)
    with _build_client(resolved) as client:
        _require_backend(client)
        orchestrator = Orchestrator.from_config(
            resolved,
            client,
            _gate_for(resolved),
            project_root,
            shell_output=_echo_shell_output,
            listener=_echo_event,
        )
        code = SessionController(orchestrator, resolved, project_root).run(task)
    raise typer.Exit(code=code)


@app.command()
def review(
    file: Optional[str] = typer.Argument(None, help="File to review, relative to the project root."),
    path: Path = typer.Option(Path("."), "--path", "-p", help="Project root."),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to the configuration file."),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model for the reviewer."),
    focus: str = typer.Option("all", "--focus", help="Focus area: security, performance, style, bugs, or all."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Review one file, or the whole project when no file is given."""
    _configure_logging(verbose)
    project_root = path.resolve()
    resolved = _resolve_config(project_root, config, reviewer_model=model)

    if file:
        code = FileService(project_root).read_file(file)
        if not code:
            typer.echo(f"File not found: {file}")
            raise typer.Exit(code=EXIT_FAILURE)
        target = file
    else:
        code = ContextBuilder.from_config(resolved, project_root).build()
        target = project_root.name or str(project_root)

    typer.echo(f"Reviewing: {target} (focus: {focus})")
    with _build_client(resolved) as client:
        _require_backend(client)
        reviewer = ReviewerAgent(
            client=client,
            model=resolved.model_for(PhaseName.REVIEWER),
            logs_root=resolved.logs_dir,
        )
        token = CancellationToken()
        try:
            with cancel_on_interrupt(token):
                result = reviewer.review_code(target, code, focus, cancel=token)
        except OperationCancelled:
            typer.secho("Review cancelled.", fg=typer.colors.YELLOW)
            raise typer.Exit(code=EXIT_CANCELLED) from None
        except (AgentError, LLMClientError) as error:
            typer.secho(f"Review failed: {error}", fg=typer.colors.RED)
            raise typer.Exit(code=EXIT_FAILURE) from error

    verdict = "approved" if result.approved else "changes requested"
    typer.echo(f"\nScore: {result.score}/10 ({verdict})")
    if result.summary.strip():
        typer.echo(result.summary.strip())
    _echo_issues(result)
    if result.suggestions:
        typer.echo("Suggestions:")
        for suggestion in result.suggestions:
            typer.echo(f"  - {suggestion}")

    try:
        saved = save_review_document(project_root, result, goal=f"Review {target}")
        typer.echo(f"Review saved to: {saved}")
    except PersistenceError as error:
        typer.echo(f"Warning: {error}")


@app.command("config")
def config_command(
    path: Path = typer.Option(Path("."), "--path", "-p", help="Project root."),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to the configuration file."),
    init: bool = typer.Option(False, "--init", help="Write a configuration template and exit."),
) -> None:
    """Show the effective configuration, or write a template with --init."""
    project_root = path.resolve()
    if init:
        target = config or project_root / DEFAULT_CONFIG_NAME
        if target.exists():
            typer.echo(f"Config already exists: {target}")
            raise typer.Exit(code=EXIT_FAILURE)
        write_config(target, copy_config_template())
        typer.echo(f"Wrote {target}")
        return

    resolved = _resolve_config(project_root, config)
    for key, value in resolved.as_dict().items():
        typer.echo(f"{key}: {value}")


@app.command()
def models(
    path: Path = typer.Option(Path("."), "--path", "-p", help="Project root."),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to the configuration file."),
) -> None:
    """Check the Ollama server and list installed models."""
    resolved = _resolve_config(path.resolve(), config)
    with _build_client(resolved) as client:
        _require_backend(client)
        try:
            installed = client.list_models()
        except LLMClientError as error:
            typer.echo(f"Could not list models: {error}")
            raise typer.Exit(code=EXIT_FAILURE) from error
    typer.echo(f"Ollama is running at {resolved.ollama_url}")
    if not installed:
        typer.echo(f"No models installed. Pull one with: ollama pull {resolved.default_model}")
        return
    typer.echo("Installed models:")
    for name in installed:
        marker = "*" if name == resolved.default_model else "-"
        typer.echo(f"{marker} {name}")


if __name__ == "__main__":
    app()
