"""Cooperative cancellation shared by every blocking point of an agent run."""

from __future__ import annotations

import logging
import signal
import threading
from contextlib import contextmanager
from typing import Any, Iterator

LOGGER = logging.getLogger(__name__)


class OperationCancelled(RuntimeError):
    """Raised at a suspension point once cancellation has been requested."""


class CancellationToken:
    """Thread-safe flag checked at model reads, prompts, and process waits."""

    __slots__ = ("_event", "_reason")

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "cancelled by user") -> None:
        """Request cancellation; later calls keep the first reason."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled(self._reason or "cancelled")

    def wait(self, timeout: float) -> bool:
        """Block for up to ``timeout`` seconds, returning True when cancelled."""
        return self._event.wait(timeout)


def check_cancelled(token: CancellationToken | None) -> None:
    """Raise ``OperationCancelled`` when ``token`` is set; no-op for ``None``."""
    if token is not None:
        token.raise_if_cancelled()


@contextmanager
def cancel_on_interrupt(token: CancellationToken) -> Iterator[CancellationToken]:
    """Translate the first Ctrl+C into ``token.cancel()`` for the duration of the block.

    A second interrupt restores the default behaviour and raises ``KeyboardInterrupt``
    so a stuck run can still be aborted. Outside the main thread the handler cannot be
    installed and the token is yielded untouched.
    """

    if threading.current_thread() is not threading.main_thread():
        yield token
        return

    previous = signal.getsignal(signal.SIGINT)

    def _handler(signum: int, frame: Any) -> None:
        if token.cancelled:
            signal.signal(signal.SIGINT, signal.default_int_handler)
            raise KeyboardInterrupt
        LOGGER.info("Interrupt received; cancelling current run")
        token.cancel("interrupted")

    signal.signal(signal.SIGINT, _handler)
    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, previous)


__all__ = [
    "CancellationToken",
    "OperationCancelled",
    "cancel_on_interrupt",
    "check_cancelled",
]
