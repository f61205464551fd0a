from __future__ import annotations

import json

import httpx
import pytest

from lcoder.cancellation import CancellationToken, OperationCancelled
from lcoder.models import (
    ChatMessage,
    LLMConnectionRefusedError,
    LLMHostUnresolvedError,
    LLMResponseError,
    LLMTimeoutError,
    OllamaClient,
)

MESSAGES = [ChatMessage.system("be brief"), ChatMessage.user("hi")]


def _ndjson(*chunks: dict) -> bytes:
    return "".join(json.dumps(chunk) + "\n" for chunk in chunks).encode("utf-8")


def _client(handler) -> OllamaClient:
    return OllamaClient(
        base_url="http://ollama.test:11434/",
        model="qwen2.5-coder:7b",
        transport=httpx.MockTransport(handler),
    )


def test_chat_stream_yields_fragments_until_done() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        body = _ndjson(
            {"message": {"role": "assistant", "content": "Hel"}, "done": False},
            {"message": {"role": "assistant", "content": "lo"}, "done": False},
            {"message": {"role": "assistant", "content": ""}, "done": True},
            {"message": {"role": "assistant", "content": "ignored"}, "done": False},
        )
        return httpx.Response(200, content=b"not json\n" + body)

    with _client(handler) as client:
        assert list(client.chat_stream(MESSAGES, model="llama3")) == ["Hel", "lo"]

    payload = seen[0]
    assert payload["model"] == "llama3"
    assert payload["stream"] is True
    assert payload["messages"] == [
        {"role": "system", "content": "be brief"},
        {"role": "user", "content": "hi"},
    ]


def test_complete_uses_default_model() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content)["model"] == "qwen2.5-coder:7b"
        return httpx.Response(200, content=_ndjson({"message": {"content": "ok"}, "done": True}))

    with _client(handler) as client:
        assert client.complete(MESSAGES) == "ok"


def test_missing_model_suggests_pull() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": "model 'llama3' not found"})

    with _client(handler) as client, pytest.raises(LLMResponseError, match="ollama pull llama3"):
        list(client.chat_stream(MESSAGES, model="llama3"))


def test_server_error_includes_detail() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": "out of memory"})

    with _client(handler) as client, pytest.raises(LLMResponseError, match="HTTP 500: out of memory"):
        client.complete(MESSAGES)


def test_error_chunk_in_stream() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=_ndjson({"error": "model crashed"}))

    with _client(handler) as client, pytest.raises(LLMResponseError, match="model crashed"):
        client.complete(MESSAGES)


@pytest.mark.parametrize(
    ("error", "expected", "message"),
    [
        (httpx.ReadTimeout("read timed out"), LLMTimeoutError, "timed out"),
        (httpx.ConnectError("[Errno 111] Connection refused"), LLMConnectionRefusedError, "ollama serve"),
        (
            httpx.ConnectError("[Errno -2] Name or service not known"),
            LLMHostUnresolvedError,
            "Cannot resolve host",
        ),
    ],
)
def test_transport_failures_are_categorised(error: Exception, expected: type, message: str) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise error

    with _client(handler) as client, pytest.raises(expected, match=message):
        client.complete(MESSAGES)


def test_cancellation_between_fragments() -> None:
    token = CancellationToken()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            content=_ndjson({"message": {"content": "a"}}, {"message": {"content": "b"}}, {"done": True}),
        )

    collected: list[str] = []
    with _client(handler) as client, pytest.raises(OperationCancelled):
        for fragment in client.chat_stream(MESSAGES, cancel=token):
            collected.append(fragment)
            token.cancel()

    assert collected == ["a"]


def test_availability_and_model_listing() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/tags"
        return httpx.Response(200, json={"models": [{"name": "zeta:1b"}, {"name": "alpha:7b"}, {"size": 1}]})

    with _client(handler) as client:
        assert client.base_url == "http://ollama.test:11434"
        assert client.is_available()
        assert client.list_models() == ["alpha:7b", "zeta:1b"]


def test_unreachable_server_is_not_available() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused")

    with _client(handler) as client:
        assert not client.is_available()
        with pytest.raises(LLMConnectionRefusedError):
            client.list_models()
