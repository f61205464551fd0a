"""Streaming chat-completion contract shared by all language-model backends."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Sequence

from ..cancellation import CancellationToken, check_cancelled

__all__ = [
    "ChatMessage",
    "LLMClient",
    "LLMClientError",
    "LLMConnectionRefusedError",
    "LLMHostUnresolvedError",
    "LLMRequest",
    "LLMResponseError",
    "LLMTimeoutError",
    "LLMTransportError",
]


class LLMClientError(RuntimeError):
    """Base error raised for language-model client failures."""


class LLMTransportError(LLMClientError):
    """Raised when the backend cannot be reached or the stream breaks."""


class LLMTimeoutError(LLMTransportError):
    """Raised when the backend does not answer within the configured timeout."""


class LLMConnectionRefusedError(LLMTransportError):
    """Raised when nothing is listening at the backend address."""


class LLMHostUnresolvedError(LLMTransportError):
    """Raised when the backend host name cannot be resolved."""


class LLMResponseError(LLMClientError):
    """Raised when the backend answers with an error status or unusable payload."""


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """One role/content pair in a chat transcript."""

    role: str
    content: str

    @classmethod
    def system(cls, content: str) -> ChatMessage:
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> ChatMessage:
        return cls(role="user", content=content)


@dataclass(slots=True)
class LLMRequest:
    """Request payload sent to a chat backend."""

    messages: Sequence[ChatMessage]
    model: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self, default_model: str) -> Dict[str, Any]:
        """Render a transport-ready streaming chat payload."""
        payload: Dict[str, Any] = {
            "model": self.model or default_model,
            "messages": [{"role": message.role, "content": message.content} for message in self.messages],
            "stream": True,
        }
        if self.options:
            payload["options"] = dict(self.options)
        return payload


class LLMClient:
    """Backend-neutral helper that streams text fragments for a chat transcript."""

    def __init__(self, model: str) -> None:
        self._model = model

    @property
    def model(self) -> str:
        """Return the default model name configured for this client."""
        return self._model

    def chat_stream(
        self,
        messages: Sequence[ChatMessage],
        *,
        model: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> Iterator[str]:
        """Yield response fragments as they arrive.

        The cancellation token is checked before the request and between fragments; a
        cancelled stream raises ``OperationCancelled`` and callers discard what they
        accumulated.
        """
        check_cancelled(cancel)
        payload = LLMRequest(messages=messages, model=model).to_payload(self._model)
        for fragment in self._raw_stream(payload):
            check_cancelled(cancel)
            if fragment:
                yield fragment

    def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        model: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> str:
        """Accumulate the whole stream into one string."""
        return "".join(self.chat_stream(messages, model=model, cancel=cancel))

    def is_available(self) -> bool:
        """Return True when the backend answers a cheap probe."""
        return True

    def list_models(self) -> list[str]:
        return []

    def _raw_stream(self, payload: Dict[str, Any]) -> Iterator[str]:
        """Perform the transport call. Subclasses must implement."""
        raise NotImplementedError("Subclasses must implement _raw_stream().")
