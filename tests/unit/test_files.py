from __future__ import annotations

from pathlib import Path

import pytest

from lcoder.cancellation import CancellationToken, OperationCancelled
from lcoder.memory.schema import ActionKind
from lcoder.tools.files import FileService, PathOutsideProjectError


def test_read_file_never_raises(project_root: Path) -> None:
    files = FileService(project_root)
    assert files.read_file("src/app.py") == "def main():\n    return 1\n"
    assert files.read_file("missing.py") is None
    assert files.read_file("src") is None
    assert files.read_file("../outside.txt") is None


def test_resolve_rejects_escaping_paths(project_root: Path) -> None:
    files = FileService(project_root)
    with pytest.raises(PathOutsideProjectError):
        files.resolve("../../etc/passwd")
    assert files.resolve("src/new/module.py") == project_root.resolve() / "src" / "new" / "module.py"


def test_generate_diff_is_unified() -> None:
    diff = FileService.generate_diff("a\nb\n", "a\nc\n", "notes.txt")
    assert diff.startswith("--- a/notes.txt\n+++ b/notes.txt\n")
    assert "-b\n" in diff
    assert "+c\n" in diff


def test_confirm_and_apply_edit_writes_after_approval(project_root: Path, make_gate) -> None:
    files = FileService(project_root)
    gate = make_gate()

    result = files.confirm_and_apply_edit("pkg/new.py", "VALUE = 1\n", auto_accept=False, gate=gate)

    assert result.kind is ActionKind.FILE_WRITE
    assert result.success
    assert result.message == "Changes applied"
    assert gate.asked == ["edit:pkg/new.py"]
    assert (project_root / "pkg" / "new.py").read_text(encoding="utf-8") == "VALUE = 1\n"


def test_declined_edit_leaves_file_untouched(project_root: Path, make_gate) -> None:
    files = FileService(project_root)

    result = files.confirm_and_apply_edit(
        "src/app.py", "broken", auto_accept=False, gate=make_gate(edits=False)
    )

    assert not result.success
    assert result.message == "Skipped by user"
    assert (project_root / "src" / "app.py").read_text(encoding="utf-8").startswith("def main")


def test_auto_accept_skips_the_gate(project_root: Path, make_gate) -> None:
    gate = make_gate(edits=False)
    result = FileService(project_root).confirm_and_apply_edit(
        "README.md", "# Changed\n", auto_accept=True, gate=gate
    )
    assert result.success
    assert gate.asked == []


def test_edit_outside_project_is_refused(project_root: Path, make_gate) -> None:
    result = FileService(project_root).confirm_and_apply_edit(
        "../escape.txt", "x", auto_accept=True, gate=make_gate()
    )
    assert not result.success
    assert not (project_root.parent / "escape.txt").exists()


def test_cancelled_token_interrupts_confirmation(project_root: Path, make_gate) -> None:
    token = CancellationToken()
    token.cancel()
    with pytest.raises(OperationCancelled):
        FileService(project_root).confirm_and_apply_edit(
            "README.md", "x", auto_accept=False, gate=make_gate(), cancel=token
        )
