"""Build the bounded project context supplied to agent prompts."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .config import AgentConfig

LOGGER = logging.getLogger(__name__)

__all__ = ["ContextBuilder", "ProjectContext", "ProjectFile", "SKILL_SEARCH_PATHS"]

SKILL_SEARCH_PATHS = (
    "SKILL.md",
    ".lcoder/SKILL.md",
    "docs/SKILL.md",
    ".github/SKILL.md",
    "ai/SKILL.md",
)


@dataclass(slots=True)
class ProjectFile:
    """Prompt-ready view of one source file."""

    path: str
    lines: int
    content: str


@dataclass(slots=True)
class ProjectContext:
    """Skill instructions, repository tree, and file previews for one project."""

    root: Path
    structure: str = ""
    files: list[ProjectFile] = field(default_factory=list)
    skills: list[tuple[str, str]] = field(default_factory=list)

    def to_prompt(self, max_chars: int) -> str:
        """Render the context, stopping once ``max_chars`` is reached."""
        parts: list[str] = []
        for name, content in self.skills:
            parts.append(
                f"=== SKILL: {name} ===\n"
                "(This is a SKILL/INSTRUCTIONS file - follow these rules carefully)\n"
                f"{content.rstrip()}\n"
                f"=== END SKILL ==="
            )
        parts.append(f"=== PROJECT STRUCTURE ===\n{self.structure}")
        parts.append("=== FILE CONTENTS ===")
        text = "\n\n".join(parts)
        for project_file in self.files:
            if len(text) > max_chars:
                break
            text += f"\n\n--- {project_file.path} ({project_file.lines} lines) ---\n{project_file.content}"
        if len(text) > max_chars:
            text = f"{text[:max_chars]}\n... [context truncated]"
        return text


class ContextBuilder:
    """Context assembly helper that scans the workspace for prompt material."""

    _ALWAYS_EXCLUDE_DIRS = {
        ".git",
        ".hg",
        ".svn",
        ".idea",
        ".vscode",
        ".venv",
        "venv",
        "__pycache__",
        ".mypy_cache",
        ".ruff_cache",
        ".pytest_cache",
        "node_modules",
        "bin",
        "obj",
        "dist",
        "build",
        "coverage",
        ".next",
    }
    _CODE_SUFFIXES = {
        ".py", ".pyi", ".cs", ".fs", ".ts", ".tsx", ".js", ".jsx", ".mjs",
        ".rb", ".go", ".rs", ".java", ".kt", ".c", ".h", ".cpp", ".hpp",
        ".sql", ".graphql", ".proto", ".json", ".yaml", ".yml", ".toml",
        ".xml", ".md", ".txt", ".sh", ".bash", ".ps1", ".cmd", ".html",
        ".css", ".scss",
    }
    _FULL_CONTENT_LINES = 500
    _PREVIEW_LINES = 50
    _TREE_LINE_LIMIT = 400
    _GENERATED_DOC_DIRS = ("docs/plans", "docs/reviews")

    def __init__(
        self,
        project_root: Path,
        *,
        max_files: int = 80,
        max_chars: int = 30000,
        auto_load_skill: bool = True,
    ) -> None:
        self._root = Path(project_root).resolve()
        self._max_files = max_files
        self._max_chars = max_chars
        self._auto_load_skill = auto_load_skill

    @classmethod
    def from_config(cls, config: AgentConfig, project_root: Path) -> ContextBuilder:
        return cls(
            project_root,
            max_files=config.max_context_files,
            max_chars=config.max_context_chars,
            auto_load_skill=config.auto_load_skill,
        )

    @property
    def repo_root(self) -> Path:
        return self._root

    def build(self) -> str:
        """Return the prompt-ready context string."""
        return self.collect().to_prompt(self._max_chars)

    def collect(self) -> ProjectContext:
        files = self._code_files()
        context = ProjectContext(root=self._root, structure=self._render_tree(files))
        for path in files[: self._max_files]:
            context.files.append(self._project_file(path))
        if self._auto_load_skill:
            context.skills = self.skill_files()
        return context

    def skill_files(self) -> list[tuple[str, str]]:
        """Return ``(relative path, content)`` for every SKILL.md at a known location."""
        found: list[tuple[str, str]] = []
        for relative in SKILL_SEARCH_PATHS:
            candidate = self._root / relative
            if not candidate.is_file():
                continue
            try:
                found.append((relative, candidate.read_text(encoding="utf-8")))
            except (OSError, UnicodeDecodeError) as error:
                LOGGER.warning("Could not read %s: %s", candidate, error)
        return found

    def _project_file(self, relative: str) -> ProjectFile:
        try:
            content = (self._root / relative).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            content = ""
        lines = content.split("\n")
        if len(lines) > self._FULL_CONTENT_LINES:
            preview = "\n".join(lines[: self._PREVIEW_LINES])
            content = f"{preview}\n\n... [File truncated - {len(lines)} total lines] ..."
        return ProjectFile(path=relative, lines=len(lines), content=content)

    def _code_files(self) -> list[str]:
        files: list[str] = []
        for current_root, dirs, filenames in os.walk(self._root):
            rel_dir = Path(current_root).relative_to(self._root)
            if rel_dir.as_posix().startswith(self._GENERATED_DOC_DIRS):
                dirs[:] = []
                continue
            dirs[:] = sorted(
                d for d in dirs if d not in self._ALWAYS_EXCLUDE_DIRS and not d.startswith(".")
            )
            for filename in sorted(filenames):
                if Path(filename).suffix.lower() not in self._CODE_SUFFIXES:
                    continue
                relative_path = Path(filename) if rel_dir == Path(".") else rel_dir / filename
                files.append(relative_path.as_posix())
        return files

    def _render_tree(self, files: list[str]) -> str:
        tree_root: dict[str, object] = {}
        for path in files:
            node = tree_root
            parts = path.split("/")
            for part in parts[:-1]:
                child = node.setdefault(part, {})
                node = child if isinstance(child, dict) else {}
            node.setdefault(parts[-1], None)

        lines: list[str] = ["."]

        def render(node: dict[str, object], prefix: str) -> None:
            entries = sorted(
                node.items(),
                key=lambda entry: (0 if isinstance(entry[1], dict) else 1, entry[0]),
            )
            for position, (name, child) in enumerate(entries):
                if len(lines) >= self._TREE_LINE_LIMIT:
                    return
                is_last = position == len(entries) - 1
                connector = "└── " if is_last else "├── "
                suffix = "/" if isinstance(child, dict) else ""
                lines.append(f"{prefix}{connector}{name}{suffix}")
                if isinstance(child, dict) and child:
                    render(child, prefix + ("    " if is_last else "│   "))

        render(tree_root, "")
        return "\n".join(lines)
