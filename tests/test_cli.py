from __future__ import annotations

import json
import os
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from lcoder import cli
from lcoder.config import DEFAULT_CONFIG_NAME
from lcoder.planning.documents import PLANS_DIR, REVIEWS_DIR

PLAN_ONE_STEP = json.dumps(
    {
        "goal": "Add greeting helper",
        "steps": [{"order": 1, "description": "Create helper", "files": ["src/greet.py"]}],
    }
)
WRITE_GREET = "```write:src/greet.py\ndef greet():\n    return 'hi'\n```"


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("lcoder.config.USER_CONFIG_PATH", tmp_path / "user-config.yaml")
    for name in list(os.environ):
        if name.startswith("LCODER_") or name == "OLLAMA_HOST":
            monkeypatch.delenv(name)


@pytest.fixture()
def fake_backend(monkeypatch: pytest.MonkeyPatch, make_client):
    """Install a scripted backend in place of the Ollama client; returns a setter."""

    class FakeBackend(make_client):
        available = True
        installed: list[str] = []

        @property
        def base_url(self) -> str:
            return "http://ollama.test:11434"

        def __enter__(self) -> "FakeBackend":
            return self

        def __exit__(self, *exc_info) -> None:
            return None

        def is_available(self) -> bool:
            return self.available

        def list_models(self) -> list[str]:
            return sorted(self.installed)

    def install(responses: list[str], *, available: bool = True, installed: list[str] | None = None):
        backend = FakeBackend(responses)
        backend.available = available
        backend.installed = installed or []
        monkeypatch.setattr(cli, "_build_client", lambda config: backend)
        return backend

    return install


def test_config_init_writes_template_once(project_root: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(cli.app, ["config", "--init", "--path", str(project_root)], catch_exceptions=False)
    assert result.exit_code == 0
    target = project_root / DEFAULT_CONFIG_NAME
    assert "models" in yaml.safe_load(target.read_text(encoding="utf-8"))

    again = runner.invoke(cli.app, ["config", "--init", "--path", str(project_root)], catch_exceptions=False)
    assert again.exit_code == 1
    assert "Config already exists" in again.output


def test_config_shows_effective_values(project_root: Path) -> None:
    (project_root / DEFAULT_CONFIG_NAME).write_text("models:\n  default: llama3:8b\n", encoding="utf-8")

    result = CliRunner().invoke(cli.app, ["config", "--path", str(project_root)], catch_exceptions=False)

    assert result.exit_code == 0
    assert "default_model: llama3:8b" in result.output


def test_invalid_config_exits_with_failure(project_root: Path) -> None:
    (project_root / DEFAULT_CONFIG_NAME).write_text("- not a mapping\n", encoding="utf-8")

    result = CliRunner().invoke(cli.app, ["config", "--path", str(project_root)], catch_exceptions=False)

    assert result.exit_code == 1
    assert "Configuration error" in result.output


def test_agent_requires_task_or_plan(project_root: Path) -> None:
    result = CliRunner().invoke(cli.app, ["agent", "--path", str(project_root)], catch_exceptions=False)

    assert result.exit_code == 1
    assert "Provide a task or --plan FILE." in result.output


def test_agent_runs_task_and_saves_plan(project_root: Path, fake_backend) -> None:
    backend = fake_backend([PLAN_ONE_STEP, WRITE_GREET])

    result = CliRunner().invoke(
        cli.app,
        ["agent", "Add greeting helper", "--path", str(project_root), "--yes", "--no-review", "-m", "tiny"],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert "Task completed successfully." in result.output
    assert "wrote src/greet.py" in result.output
    assert (project_root / "src" / "greet.py").exists()
    assert list((project_root / PLANS_DIR).glob("add-greeting-helper-*.md"))
    assert [payload["model"] for payload in backend.payloads] == ["tiny", "tiny"]


def test_agent_plan_rejected_at_prompt_exits_cancelled(project_root: Path, fake_backend) -> None:
    fake_backend([PLAN_ONE_STEP])

    result = CliRunner().invoke(
        cli.app,
        ["agent", "Add greeting helper", "--path", str(project_root)],
        input="n\n",
        catch_exceptions=False,
    )

    assert result.exit_code == 2
    assert "Task cancelled." in result.output
    assert not (project_root / "src" / "greet.py").exists()


def test_agent_failure_exits_with_failure(project_root: Path, fake_backend) -> None:
    fake_backend(["No JSON here."])

    result = CliRunner().invoke(
        cli.app,
        ["agent", "Anything", "--path", str(project_root), "--yes"],
        catch_exceptions=False,
    )

    assert result.exit_code == 1
    assert "Task failed: Planning failed" in result.output


def test_agent_executes_exported_plan(project_root: Path, fake_backend) -> None:
    plan_file = project_root / "plan.md"
    plan_file.write_text(
        "# Execution Plan\n\n**Goal:** Add greeting helper\n\n## Steps\n\n### Step 1: Create helper\n",
        encoding="utf-8",
    )
    backend = fake_backend([WRITE_GREET])

    result = CliRunner().invoke(
        cli.app,
        ["agent", "--plan", str(plan_file), "--path", str(project_root), "--yes", "--no-review"],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert backend.remaining == 0
    assert (project_root / "src" / "greet.py").exists()


def test_agent_reports_unreachable_backend(project_root: Path, fake_backend) -> None:
    fake_backend([], available=False)

    result = CliRunner().invoke(cli.app, ["agent", "Anything", "--path", str(project_root)], catch_exceptions=False)

    assert result.exit_code == 1
    assert "Ollama is not reachable at http://ollama.test:11434." in result.output
    assert "ollama serve" in result.output


def test_models_lists_installed_models(project_root: Path, fake_backend) -> None:
    fake_backend([], installed=["qwen2.5-coder:7b", "llama3:8b"])

    result = CliRunner().invoke(cli.app, ["models", "--path", str(project_root)], catch_exceptions=False)

    assert result.exit_code == 0
    assert "Installed models:" in result.output
    assert "- llama3:8b" in result.output
    assert "* qwen2.5-coder:7b" in result.output


def test_models_suggests_pull_when_empty(project_root: Path, fake_backend) -> None:
    fake_backend([])

    result = CliRunner().invoke(cli.app, ["models", "--path", str(project_root)], catch_exceptions=False)

    assert result.exit_code == 0
    assert "No models installed. Pull one with: ollama pull qwen2.5-coder:7b" in result.output


REVIEW_WITH_ISSUES = json.dumps(
    {
        "approved": False,
        "score": 5,
        "summary": "Needs another pass",
        "issues": [
            {
                "severity": "warning",
                "category": "bug",
                "message": "Return value is never used",
                "file": "src/app.py",
                "line": 2,
                "suggestion": "Return a meaningful value",
            },
            {"severity": "nitpick", "category": "naming", "message": "Rename main"},
        ],
        "suggestions": ["Add tests"],
    }
)


def test_agent_final_review_lists_issues(project_root: Path, fake_backend) -> None:
    fake_backend([PLAN_ONE_STEP, WRITE_GREET, REVIEW_WITH_ISSUES])

    result = CliRunner().invoke(
        cli.app,
        ["agent", "Add greeting helper", "--path", str(project_root), "--no-review"],
        input="y\ny\n",
        catch_exceptions=False,
    )

    assert result.exit_code == 1
    assert "Final review: score 5/10, changes requested" in result.output
    assert "  [WARNING] (bug) Return value is never used @ src/app.py:2" in result.output
    assert "      -> Return a meaningful value" in result.output
    assert "  [INFO] (naming) Rename main" in result.output


def test_review_file_prints_and_saves_review(project_root: Path, fake_backend) -> None:
    backend = fake_backend([REVIEW_WITH_ISSUES])

    result = CliRunner().invoke(
        cli.app,
        ["review", "src/app.py", "--path", str(project_root), "--focus", "bugs", "-m", "critic"],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert "Reviewing: src/app.py (focus: bugs)" in result.output
    assert "Score: 5/10 (changes requested)" in result.output
    assert "[WARNING] (bug) Return value is never used @ src/app.py:2" in result.output
    assert "  - Add tests" in result.output
    prompt = backend.payloads[0]["messages"][-1]["content"]
    assert "Focus: bugs" in prompt
    assert "def main():" in prompt
    assert backend.payloads[0]["model"] == "critic"
    saved = list((project_root / REVIEWS_DIR).glob("review-*.md"))
    assert len(saved) == 1
    assert "Return value is never used" in saved[0].read_text(encoding="utf-8")


def test_review_without_file_uses_project_context(project_root: Path, fake_backend) -> None:
    backend = fake_backend([REVIEW_WITH_ISSUES])

    result = CliRunner().invoke(cli.app, ["review", "--path", str(project_root)], catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert "(focus: all)" in result.output
    prompt = backend.payloads[0]["messages"][-1]["content"]
    assert "=== PROJECT STRUCTURE ===" in prompt
    assert "--- src/app.py" in prompt


def test_review_missing_file_exits_with_failure(project_root: Path, fake_backend) -> None:
    backend = fake_backend([])

    result = CliRunner().invoke(
        cli.app, ["review", "src/missing.py", "--path", str(project_root)], catch_exceptions=False
    )

    assert result.exit_code == 1
    assert "File not found: src/missing.py" in result.output
    assert backend.payloads == []


def test_review_reports_unparseable_output(project_root: Path, fake_backend) -> None:
    fake_backend(["Looks good to me."])

    result = CliRunner().invoke(
        cli.app, ["review", "src/app.py", "--path", str(project_root)], catch_exceptions=False
    )

    assert result.exit_code == 1
    assert "Review failed:" in result.output
    assert not (project_root / REVIEWS_DIR).exists()
