"""Shell command execution with a simple safety filter."""

from __future__ import annotations

import logging
import os
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Callable, List, Optional

from ..cancellation import CancellationToken, OperationCancelled, check_cancelled
from ..interaction import ApprovalGate, ask

LOGGER = logging.getLogger(__name__)

__all__ = [
    "DANGEROUS_PATTERNS",
    "HIGH_RISK_PREFIXES",
    "OutputCallback",
    "ShellResult",
    "ShellRunner",
]

DANGEROUS_PATTERNS = (
    "rm -rf /",
    "rm -rf ~",
    "mkfs",
    "dd if=/dev/zero",
    ":(){ :|:& };:",
    "chmod -r 777 /",
    "> /dev/sda",
    "curl | sh",
    "wget | sh",
    "shutdown",
    "reboot",
    "halt",
)

HIGH_RISK_PREFIXES = (
    "rm ",
    "del ",
    "rmdir",
    "drop ",
    "truncate",
    "format ",
    "fdisk",
    "diskpart",
)

OutputCallback = Callable[[str, bool], None]
"""Receives each output line and whether it came from stderr."""


@dataclass(slots=True)
class ShellResult:
    """Structured summary of one shell command."""

    command: str
    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""
    success: bool = False
    blocked: bool = False
    skipped: bool = False

    @property
    def output(self) -> str:
        return self.stdout if self.stdout.strip() else self.stderr


class ShellRunner:
    """Run commands through the platform shell, streaming output line by line."""

    def __init__(
        self,
        *,
        on_output: Optional[OutputCallback] = None,
        poll_interval: float = 0.1,
        terminate_timeout: float = 5.0,
    ) -> None:
        self._on_output = on_output
        self._poll_interval = poll_interval
        self._terminate_timeout = terminate_timeout

    @staticmethod
    def is_dangerous(command: str) -> bool:
        normalised = command.strip().lower()
        return any(pattern in normalised for pattern in DANGEROUS_PATTERNS)

    @staticmethod
    def is_high_risk(command: str) -> bool:
        normalised = command.lstrip().lower()
        return any(normalised.startswith(prefix) for prefix in HIGH_RISK_PREFIXES)

    def execute(
        self,
        command: str,
        cwd: Path,
        *,
        gate: ApprovalGate,
        cancel: Optional[CancellationToken] = None,
    ) -> ShellResult:
        """Block dangerous commands, ask for approval, then run."""
        if self.is_dangerous(command):
            LOGGER.warning("Blocked dangerous command: %s", command)
            return ShellResult(
                command=command,
                exit_code=-1,
                stderr="Command blocked by safety filter",
                blocked=True,
            )

        high_risk = self.is_high_risk(command)
        if not ask(lambda: gate.approve_command(command, high_risk=high_risk), cancel):
            return ShellResult(command=command, stdout="(skipped by user)", skipped=True)
        return self.run(command, cwd, cancel=cancel)

    def run(
        self,
        command: str,
        cwd: Path,
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> ShellResult:
        """Run ``command`` without confirmation and wait for it to exit.

        Output lines are forwarded to the callback as they arrive. When ``cancel`` fires
        the process is terminated and ``OperationCancelled`` is raised.
        """
        check_cancelled(cancel)
        workdir = Path(cwd) if Path(cwd).is_dir() else Path.cwd()
        LOGGER.info("Running shell command in %s: %s", workdir, command)
        process = subprocess.Popen(  # noqa: S602 - commands are user approved
            command,
            shell=True,
            cwd=workdir,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            text=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
            env=os.environ.copy(),
        )
        stdout_lines: List[str] = []
        stderr_lines: List[str] = []
        readers = [
            self._start_reader(process.stdout, stdout_lines, is_error=False),
            self._start_reader(process.stderr, stderr_lines, is_error=True),
        ]

        try:
            self._wait(process, cancel)
        finally:
            for reader in readers:
                reader.join(timeout=self._terminate_timeout)

        exit_code = process.returncode if process.returncode is not None else -1
        return ShellResult(
            command=command,
            exit_code=exit_code,
            stdout="".join(stdout_lines),
            stderr="".join(stderr_lines),
            success=exit_code == 0,
        )

    def _wait(self, process: subprocess.Popen, cancel: Optional[CancellationToken]) -> None:
        if cancel is None:
            process.wait()
            return
        while process.poll() is None:
            if cancel.wait(self._poll_interval):
                self._terminate(process)
                raise OperationCancelled(cancel.reason or "cancelled")

    def _terminate(self, process: subprocess.Popen) -> None:
        LOGGER.info("Terminating shell command (pid %s)", process.pid)
        process.terminate()
        try:
            process.wait(timeout=self._terminate_timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    def _start_reader(self, stream: Optional[IO[str]], sink: List[str], *, is_error: bool) -> threading.Thread:
        def _pump() -> None:
            if stream is None:
                return
            with stream:
                for line in stream:
                    sink.append(line)
                    if self._on_output is not None:
                        self._on_output(line.rstrip("\n"), is_error)

        thread = threading.Thread(target=_pump, daemon=True)
        thread.start()
        return thread
