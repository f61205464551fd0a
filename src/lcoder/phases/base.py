"""Shared helpers for invoking agents and emitting exchange logs."""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from ..cancellation import CancellationToken
from ..models.llm_client import ChatMessage, LLMClient, LLMClientError
from ..utils.slug import slugify
from . import PhaseName

LOGGER = logging.getLogger(__name__)


class Agent:
    """One persona bound to a model, a system prompt, and a chat backend."""

    def __init__(
        self,
        persona: PhaseName,
        *,
        client: LLMClient,
        model: str,
        system_prompt: str,
        logs_root: Optional[Path] = None,
    ) -> None:
        self.persona = persona
        self.model = model
        self.system_prompt = system_prompt
        self._client = client
        self._logs_root = logs_root

    @property
    def name(self) -> str:
        return self.persona.value.title()

    def invoke(self, prompt: str, *, cancel: Optional[CancellationToken] = None) -> str:
        """Stream one completion and return the accumulated text.

        Cancellation mid-stream propagates as ``OperationCancelled`` and whatever was
        accumulated is dropped.
        """
        messages = [ChatMessage.system(self.system_prompt), ChatMessage.user(prompt)]
        LOGGER.debug("%s agent invoking %s (%d prompt chars)", self.name, self.model, len(prompt))
        fragments: list[str] = []
        try:
            for fragment in self._client.chat_stream(messages, model=self.model, cancel=cancel):
                fragments.append(fragment)
        except LLMClientError as error:
            _write_exchange_log(self._logs_root, self.persona, self.model, messages, None, error=error)
            raise
        response = "".join(fragments)
        LOGGER.debug("%s agent received %d chars", self.name, len(response))
        _write_exchange_log(self._logs_root, self.persona, self.model, messages, response)
        return response


def _write_exchange_log(
    logs_root: Optional[Path],
    persona: PhaseName,
    model: str,
    messages: list[ChatMessage],
    response: Optional[str],
    *,
    error: Exception | None = None,
) -> None:
    """Persist a structured prompt/response log for later debugging."""
    if logs_root is None:
        return
    root = logs_root / "agents"
    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError:
        LOGGER.debug("Cannot create agent log directory %s", root)
        return

    timestamp = datetime.now(timezone.utc)
    entry: dict[str, Any] = {
        "timestamp": timestamp.isoformat(),
        "persona": persona.value,
        "model": model,
        "messages": json_safe(messages),
        "response": response,
    }
    if error is not None:
        entry["error"] = str(error)

    parts = [
        "agent",
        slugify(persona.value, fallback="agent"),
        timestamp.strftime("%Y%m%dT%H%M%S%fZ"),
        uuid.uuid4().hex[:8],
    ]
    log_path = root / ("__".join(parts) + ".json")
    try:
        with log_path.open("w", encoding="utf-8") as handle:
            json.dump(entry, handle, indent=2, sort_keys=True, ensure_ascii=False)
    except OSError:
        LOGGER.debug("Cannot write agent log %s", log_path)


def json_safe(value: Any) -> Any:
    """Coerce complex objects into JSON-serialisable representations."""
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, datetime):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return json_safe(asdict(value))
    if isinstance(value, dict):
        return {str(key): json_safe(val) for key, val in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [json_safe(item) for item in value]
    return str(value)


__all__ = ["Agent", "json_safe"]
