from __future__ import annotations

import re
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


def test_readme_field_names_the_project_readme() -> None:
    pyproject = (ROOT / "pyproject.toml").read_text(encoding="utf-8")

    match = re.search(r'^readme\s*=\s*"([^"]+)"', pyproject, re.MULTILINE)

    assert match is not None
    assert match.group(1) == "README.md"
    readme = (ROOT / match.group(1)).read_text(encoding="utf-8")
    assert readme.startswith("# local-coder")
    assert "lcoder review" in readme
