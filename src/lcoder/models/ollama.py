"""Ollama backend that streams chat completions over HTTP."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterator, Optional

import httpx

from .llm_client import (
    LLMClient,
    LLMConnectionRefusedError,
    LLMHostUnresolvedError,
    LLMResponseError,
    LLMTimeoutError,
    LLMTransportError,
)

__all__ = ["DEFAULT_MODEL", "DEFAULT_OLLAMA_URL", "OllamaClient"]

LOGGER = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_MODEL = "qwen2.5-coder:7b"

_UNRESOLVED_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated with hostname",
    "name resolution",
)


class OllamaClient(LLMClient):
    """Thin adapter around the Ollama ``/api/chat`` and ``/api/tags`` endpoints."""

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_OLLAMA_URL,
        model: str = DEFAULT_MODEL,
        timeout: float = 600.0,
        health_timeout: float = 3.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        super().__init__(model=model)
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._health_timeout = health_timeout
        self._http = httpx.Client(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> OllamaClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def is_available(self) -> bool:
        """Probe ``/api/tags`` with the short health-check timeout."""
        try:
            response = self._http.get("/api/tags", timeout=self._health_timeout)
        except httpx.HTTPError as error:
            LOGGER.debug("Ollama probe at %s failed: %s", self._base_url, error)
            return False
        return response.status_code == 200

    def list_models(self) -> list[str]:
        """Return the names of locally installed models."""
        try:
            response = self._http.get("/api/tags", timeout=self._health_timeout)
            response.raise_for_status()
        except httpx.HTTPError as error:
            raise self._translate_error(error) from error
        try:
            data = response.json()
        except ValueError as error:
            raise LLMResponseError("Ollama returned a malformed model list.") from error
        models = data.get("models") if isinstance(data, dict) else None
        if not isinstance(models, list):
            return []
        names = [str(entry.get("name")) for entry in models if isinstance(entry, dict) and entry.get("name")]
        return sorted(names)

    def _raw_stream(self, payload: Dict[str, Any]) -> Iterator[str]:
        """Yield ``message.content`` fragments from the NDJSON chat stream."""
        try:
            with self._http.stream("POST", "/api/chat", json=payload) as response:
                if response.status_code >= 400:
                    response.read()
                    raise self._status_error(response, payload.get("model"))
                for line in response.iter_lines():
                    chunk = self._decode_chunk(line)
                    if chunk is None:
                        continue
                    if chunk.get("error"):
                        raise LLMResponseError(f"Ollama error: {chunk['error']}")
                    message = chunk.get("message")
                    if isinstance(message, dict):
                        content = message.get("content")
                        if isinstance(content, str) and content:
                            yield content
                    if chunk.get("done"):
                        return
        except httpx.HTTPError as error:
            raise self._translate_error(error) from error

    @staticmethod
    def _decode_chunk(line: str) -> Optional[Dict[str, Any]]:
        text = line.strip()
        if not text:
            return None
        try:
            chunk = json.loads(text)
        except json.JSONDecodeError:
            LOGGER.debug("Skipping malformed stream line: %s", text[:200])
            return None
        return chunk if isinstance(chunk, dict) else None

    def _status_error(self, response: httpx.Response, model: Any) -> LLMResponseError:
        body = response.text.strip()
        try:
            detail = response.json().get("error") or body
        except (ValueError, AttributeError):
            detail = body
        if response.status_code == 404 and model:
            return LLMResponseError(
                f"Model '{model}' is not available on {self._base_url}. "
                f"Pull it with: ollama pull {model}"
            )
        return LLMResponseError(f"Ollama returned HTTP {response.status_code}: {detail}")

    def _translate_error(self, error: httpx.HTTPError) -> LLMTransportError | LLMResponseError:
        """Map httpx failures onto the categorised client errors."""
        if isinstance(error, httpx.TimeoutException):
            return LLMTimeoutError(
                f"Request to Ollama at {self._base_url} timed out. "
                "The model may still be loading; try again or use a smaller model."
            )
        if isinstance(error, httpx.ConnectError):
            reason = str(error).lower()
            if any(marker in reason for marker in _UNRESOLVED_MARKERS):
                return LLMHostUnresolvedError(
                    f"Cannot resolve host: {self._base_url}. Check LCODER_OLLAMA_URL."
                )
            return LLMConnectionRefusedError(
                f"Ollama is not running at {self._base_url}. Start it with: ollama serve"
            )
        if isinstance(error, httpx.HTTPStatusError):
            return LLMResponseError(
                f"Ollama returned HTTP {error.response.status_code} for {error.request.url}"
            )
        return LLMTransportError(f"Failed to reach Ollama at {self._base_url}: {error}")
