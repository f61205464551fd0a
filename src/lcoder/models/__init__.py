"""Convenience exports for language-model client implementations."""

from .llm_client import (
    ChatMessage,
    LLMClient,
    LLMClientError,
    LLMConnectionRefusedError,
    LLMHostUnresolvedError,
    LLMRequest,
    LLMResponseError,
    LLMTimeoutError,
    LLMTransportError,
)
from .ollama import OllamaClient

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
    "OllamaClient",
]
