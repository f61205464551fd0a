"""Parse executor output into file-write and shell-command intents."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

__all__ = [
    "FileWrite",
    "ParsedActions",
    "SHELL_LANGUAGES",
    "extract_shell_commands",
    "parse_actions",
    "parse_file_writes",
]

SHELL_LANGUAGES = frozenset(
    {"", "bash", "sh", "shell", "zsh", "console", "powershell", "pwsh", "cmd"}
)

_FILE_WRITE_PATTERN = re.compile(r"```write:([^\n]+)\n(.*?)```", re.DOTALL)


@dataclass(frozen=True, slots=True)
class FileWrite:
    """Complete replacement content for one project-relative file."""

    path: str
    content: str


@dataclass(slots=True)
class ParsedActions:
    """Ordered actions found in one executor response."""

    file_writes: list[FileWrite] = field(default_factory=list)
    commands: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.file_writes and not self.commands


def parse_file_writes(text: str) -> list[FileWrite]:
    """Return every ```` ```write:<path> ```` block in order of appearance."""
    writes: list[FileWrite] = []
    for match in _FILE_WRITE_PATTERN.finditer(text or ""):
        path = match.group(1).strip()
        if not path:
            continue
        content = match.group(2)
        if content.startswith("\n"):
            content = content[1:]
        writes.append(FileWrite(path=path, content=content))
    return writes


def extract_shell_commands(text: str) -> list[str]:
    """Return command lines from fenced blocks tagged with a shell-family language.

    Untagged fences count as shell. Comment lines and blank lines are dropped; an
    unterminated trailing fence is ignored.
    """
    commands: list[str] = []
    in_block = False
    language = ""
    block: list[str] = []
    for line in (text or "").split("\n"):
        if line.lstrip().startswith("```"):
            if not in_block:
                in_block = True
                language = line.strip().lstrip("`").strip().lower()
                block = []
                continue
            if language in SHELL_LANGUAGES:
                commands.extend(
                    entry.strip()
                    for entry in block
                    if entry.strip() and not entry.lstrip().startswith("#")
                )
            in_block = False
        elif in_block:
            block.append(line)
    return commands


def parse_actions(text: str) -> ParsedActions:
    """Collect file writes and shell commands without touching disk or processes."""
    return ParsedActions(
        file_writes=parse_file_writes(text),
        commands=extract_shell_commands(text),
    )
