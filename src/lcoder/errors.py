"""Domain error taxonomy shared by the agent workflow engine."""

from __future__ import annotations

PREVIEW_LIMIT = 500


def bounded_preview(text: str, *, limit: int = PREVIEW_LIMIT) -> str:
    """Return ``text`` truncated to ``limit`` characters with an ellipsis marker."""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."


class AgentError(RuntimeError):
    """Base error raised when an agent stage cannot produce a usable result."""

    def __init__(self, message: str, *, raw: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.raw = raw


class InvalidStructuredOutput(AgentError):
    """Raised when model output does not contain a decodable structured payload."""

    def __init__(self, message: str, *, raw: str | None = None, attempted: str = "") -> None:
        self.preview = bounded_preview(attempted)
        if self.preview:
            message = f"{message}\nExtracted JSON: {self.preview}"
        super().__init__(message, raw=raw)


class PlanValidationError(AgentError):
    """Raised when a decoded plan violates a domain rule."""


class PlanDocumentError(AgentError):
    """Raised when a plan document cannot be turned into a plan."""


class PersistenceError(AgentError):
    """Raised when a plan or review document cannot be written."""


class ConfigError(ValueError):
    """Raised when the configuration file is malformed."""


__all__ = [
    "AgentError",
    "ConfigError",
    "InvalidStructuredOutput",
    "PREVIEW_LIMIT",
    "PersistenceError",
    "PlanDocumentError",
    "PlanValidationError",
    "bounded_preview",
]
