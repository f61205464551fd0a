"""Tool integrations used by the execution stage."""

from .actions import FileWrite, ParsedActions, extract_shell_commands, parse_actions, parse_file_writes
from .files import FileService, PathOutsideProjectError
from .shell import ShellResult, ShellRunner

__all__ = [
    "FileService",
    "FileWrite",
    "ParsedActions",
    "PathOutsideProjectError",
    "ShellResult",
    "ShellRunner",
    "extract_shell_commands",
    "parse_actions",
    "parse_file_writes",
]
