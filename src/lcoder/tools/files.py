"""Filesystem access scoped to one project root."""

from __future__ import annotations

import difflib
import logging
from pathlib import Path
from typing import Optional

from ..cancellation import CancellationToken
from ..interaction import ApprovalGate, ask
from ..memory.schema import ActionKind, ActionResult

LOGGER = logging.getLogger(__name__)

__all__ = ["FileService", "PathOutsideProjectError"]


class PathOutsideProjectError(ValueError):
    """Raised when a requested path resolves outside the project root."""


class FileService:
    """Read, write, and diff files relative to ``project_root``."""

    def __init__(self, project_root: Path) -> None:
        self._root = Path(project_root).resolve()

    @property
    def project_root(self) -> Path:
        return self._root

    def resolve(self, relative_path: str | Path) -> Path:
        """Return the absolute path for ``relative_path`` inside the project."""
        candidate = Path(relative_path)
        if not candidate.is_absolute():
            candidate = self._root / candidate
        resolved = candidate.resolve()
        if resolved != self._root and self._root not in resolved.parents:
            raise PathOutsideProjectError(f"{relative_path} is outside {self._root}")
        return resolved

    def read_file(self, path: str | Path) -> Optional[str]:
        """Return file content, or ``None`` when missing or unreadable."""
        try:
            target = self.resolve(path)
        except PathOutsideProjectError:
            return None
        if not target.is_file():
            return None
        try:
            return target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as error:
            LOGGER.debug("Could not read %s: %s", target, error)
            return None

    def write_file(self, path: str | Path, content: str) -> bool:
        """Write ``content``, creating parent directories; returns False on failure."""
        try:
            target = self.resolve(path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        except (OSError, PathOutsideProjectError) as error:
            LOGGER.warning("Could not write %s: %s", path, error)
            return False
        return True

    @staticmethod
    def generate_diff(original: str, updated: str, path: str) -> str:
        """Return a unified diff of ``original`` against ``updated``."""
        lines = difflib.unified_diff(
            original.splitlines(keepends=True),
            updated.splitlines(keepends=True),
            fromfile=f"a/{path}",
            tofile=f"b/{path}",
        )
        return "".join(line if line.endswith("\n") else f"{line}\n" for line in lines)

    def confirm_and_apply_edit(
        self,
        relative_path: str,
        content: str,
        *,
        auto_accept: bool,
        gate: ApprovalGate,
        cancel: Optional[CancellationToken] = None,
    ) -> ActionResult:
        """Show the diff through ``gate`` and write the file when accepted."""
        try:
            self.resolve(relative_path)
        except PathOutsideProjectError as error:
            LOGGER.warning("Refusing to write outside the project: %s", relative_path)
            return ActionResult(
                kind=ActionKind.FILE_WRITE,
                target=relative_path,
                success=False,
                message=str(error),
            )

        original = self.read_file(relative_path) or ""
        diff = self.generate_diff(original, content, relative_path)
        if not auto_accept and not ask(lambda: gate.approve_edit(relative_path, diff, content), cancel):
            return ActionResult(
                kind=ActionKind.FILE_WRITE,
                target=relative_path,
                success=False,
                message="Skipped by user",
            )

        if not self.write_file(relative_path, content):
            return ActionResult(
                kind=ActionKind.FILE_WRITE,
                target=relative_path,
                success=False,
                message="Write failed",
            )
        LOGGER.info("Applied changes to %s", relative_path)
        return ActionResult(
            kind=ActionKind.FILE_WRITE,
            target=relative_path,
            success=True,
            message="Changes applied",
        )
