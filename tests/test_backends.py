"""
Tests for the inference backends.

HTTP backends run against httpx.MockTransport; the OpenAI SDK client is
replaced with mocks.
"""
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

from llm_relay import (
    BackendError,
    BodyWrapper,
    RawStream,
    Settings,
    StreamableResponse,
    TextWrapper,
    classify_result,
    create_app,
)
from llm_relay.backends import create_backend
from llm_relay.backends.ollama import OllamaBackend
from llm_relay.backends.openai_backend import OpenAIBackend
from llm_relay.backends.workers_ai import WorkersAIBackend


INPUTS = {"messages": [{"role": "user", "content": "hi"}], "max_tokens": 32}
SSE_BODY = b'data: {"response":"Hel"}\n\ndata: {"response":"lo"}\n\ndata: [DONE]\n\n'


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# =============================================================================
# Workers AI
# =============================================================================

@pytest.mark.asyncio
async def test_workers_ai_stream_returns_live_response():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["authorization"]
        seen["json"] = json.loads(request.content)
        return httpx.Response(200, content=SSE_BODY, headers={"content-type": "text/event-stream"})

    backend = WorkersAIBackend("acct", "secret", client=mock_client(handler))
    await backend.initialize()

    result = await backend.run("test-model", INPUTS, {"stream": True})

    assert isinstance(classify_result(result), StreamableResponse)
    assert b"".join([chunk async for chunk in result.aiter_bytes()]) == SSE_BODY
    assert seen["path"] == "/client/v4/accounts/acct/ai/run/test-model"
    assert seen["auth"] == "Bearer secret"
    assert seen["json"] == {**INPUTS, "stream": True}

    await backend.shutdown()


@pytest.mark.asyncio
async def test_workers_ai_non_stream_returns_text_result():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"result": {"response": "Hello"}, "success": True})

    backend = WorkersAIBackend("acct", "secret", client=mock_client(handler))
    await backend.initialize()

    result = await backend.run("test-model", INPUTS, {"stream": False})

    assert classify_result(result) == TextWrapper(response="Hello")


@pytest.mark.asyncio
async def test_workers_ai_error_status_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, text="rate limited")

    backend = WorkersAIBackend("acct", "secret", client=mock_client(handler))
    await backend.initialize()

    with pytest.raises(BackendError) as exc_info:
        await backend.run("test-model", INPUTS, {"stream": True})

    assert exc_info.value.status_code == 429
    assert "rate limited" in str(exc_info.value)


@pytest.mark.asyncio
async def test_workers_ai_requires_initialize():
    backend = WorkersAIBackend("acct", "secret")

    with pytest.raises(RuntimeError):
        await backend.run("test-model", INPUTS, {"stream": True})


def test_workers_ai_end_to_end(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=SSE_BODY, headers={"content-type": "text/event-stream"})

    backend = WorkersAIBackend("acct", "secret", client=mock_client(handler))
    app = create_app(settings, backend_factory=lambda: backend)

    with TestClient(app) as client:
        response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})

    assert response.status_code == 200
    assert response.headers["content-type"] == "text/plain; charset=utf-8"
    assert response.content == SSE_BODY


def test_workers_ai_upstream_error_end_to_end(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="model crashed")

    backend = WorkersAIBackend("acct", "secret", client=mock_client(handler))
    app = create_app(settings, backend_factory=lambda: backend)

    with TestClient(app) as client:
        response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to process request"
    assert "model crashed" in response.json()["details"]


# =============================================================================
# Ollama
# =============================================================================

NDJSON_BODY = (
    b'{"message":{"role":"assistant","content":"Hel"},"done":false}\n'
    b'{"message":{"role":"assistant","content":"lo"},"done":true}\n'
)


def ollama_handler(seen: dict, body: httpx.Response):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/tags":
            return httpx.Response(200, json={"models": []})
        seen["json"] = json.loads(request.content)
        return body
    return handler


@pytest.mark.asyncio
async def test_ollama_stream_returns_body_wrapper():
    seen = {}
    handler = ollama_handler(seen, httpx.Response(200, content=NDJSON_BODY))
    backend = OllamaBackend("http://ollama:11434", client=mock_client(handler))
    await backend.initialize()

    result = await backend.run("phi3.5", INPUTS, {"stream": True})
    shape = classify_result(result)

    assert isinstance(shape, BodyWrapper)
    assert b"".join([chunk async for chunk in shape.body]) == NDJSON_BODY
    assert seen["json"] == {
        "model": "phi3.5",
        "messages": INPUTS["messages"],
        "stream": True,
        "options": {"num_predict": 32},
    }


@pytest.mark.asyncio
async def test_ollama_non_stream_returns_text():
    handler = ollama_handler({}, httpx.Response(200, json={"message": {"content": "Hello"}}))
    backend = OllamaBackend(client=mock_client(handler))
    await backend.initialize()

    result = await backend.run("phi3.5", INPUTS, {"stream": False})

    assert classify_result(result) == TextWrapper(response="Hello")


@pytest.mark.asyncio
async def test_ollama_error_status_raises():
    handler = ollama_handler({}, httpx.Response(404, text="model not found"))
    backend = OllamaBackend(client=mock_client(handler))
    await backend.initialize()

    with pytest.raises(BackendError, match="model not found"):
        await backend.run("phi3.5", INPUTS, {"stream": True})


@pytest.mark.asyncio
async def test_ollama_initialize_tolerates_unreachable_host():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused")

    backend = OllamaBackend(client=mock_client(handler))

    await backend.initialize()
    await backend.shutdown()


# =============================================================================
# OpenAI
# =============================================================================

def delta_chunk(content):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


class FakeCompletionStream:
    """Stands in for the SDK's AsyncStream: async iterable with an async close()."""

    def __init__(self, *chunks):
        self._chunks = chunks
        self.close = AsyncMock()

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk


def fake_completion_stream():
    return FakeCompletionStream(
        delta_chunk("Hel"),
        SimpleNamespace(choices=[]),
        delta_chunk(None),
        delta_chunk("lo"),
    )


def openai_client(return_value) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=return_value)
    client.close = AsyncMock()
    return client


@pytest.mark.asyncio
async def test_openai_stream_yields_text_deltas():
    completion = fake_completion_stream()
    client = openai_client(completion)
    backend = OpenAIBackend(api_key="", client=client)
    await backend.initialize()

    result = await backend.run("gpt-test", INPUTS, {"stream": True})

    assert isinstance(classify_result(result), RawStream)
    assert [chunk async for chunk in result] == ["Hel", "lo"]
    client.chat.completions.create.assert_awaited_once_with(
        model="gpt-test",
        messages=INPUTS["messages"],
        stream=True,
        max_tokens=32,
    )
    completion.close.assert_awaited()


@pytest.mark.asyncio
async def test_openai_abandoned_stream_closes_completion():
    completion = fake_completion_stream()
    backend = OpenAIBackend(api_key="", client=openai_client(completion))
    await backend.initialize()

    result = await backend.run("gpt-test", INPUTS, {"stream": True})
    await result.aclose()

    completion.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_openai_non_stream_returns_text():
    completion = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="Hello"))])
    backend = OpenAIBackend(api_key="", client=openai_client(completion))
    await backend.initialize()

    result = await backend.run("gpt-test", INPUTS, {"stream": False})

    assert classify_result(result) == TextWrapper(response="Hello")


@pytest.mark.asyncio
async def test_openai_shutdown_closes_client():
    client = openai_client(None)
    backend = OpenAIBackend(api_key="", client=client)

    await backend.shutdown()

    client.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_openai_without_key_is_not_initialized():
    backend = OpenAIBackend(api_key="")
    await backend.initialize()

    with pytest.raises(RuntimeError, match="not initialized"):
        await backend.run("gpt-test", INPUTS, {"stream": True})


# =============================================================================
# Factory
# =============================================================================

@pytest.mark.parametrize("name, backend_class", [
    ("workers-ai", WorkersAIBackend),
    ("openai", OpenAIBackend),
    ("Ollama", OllamaBackend),
])
def test_create_backend(name, backend_class):
    backend = create_backend(Settings(backend=name))

    assert isinstance(backend, backend_class)


def test_create_backend_rejects_unknown_name():
    with pytest.raises(ValueError, match="Unknown inference backend"):
        create_backend(Settings(backend="carrier-pigeon"))
