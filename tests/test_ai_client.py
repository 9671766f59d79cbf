"""Tests for the chat transports."""

from __future__ import annotations

import json
from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any, Callable, Iterable, cast

import httpx
import pytest
from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from calloutchat.ai.client import (
    ONEMINAI_BASE_URL,
    ChatRequest,
    ClientSettings,
    OneMinAIClient,
    OpenAIChatClient,
    build_chat_client,
)
from calloutchat.ai.errors import ApiError, ConfigurationError, TransportError


def _onemin_client(handler: Callable[[httpx.Request], httpx.Response], **overrides: Any) -> OneMinAIClient:
    settings = ClientSettings(
        api_key="secret-key",
        retry_min_seconds=0,
        retry_max_seconds=0,
        **overrides,
    )
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OneMinAIClient(settings, http_client=http_client)


async def _collect(iterator) -> list[str]:
    return [chunk async for chunk in iterator]


@pytest.mark.asyncio
async def test_stream_posts_chat_payload_with_streaming_flag() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="The answer is 4.")

    client = _onemin_client(handler)
    request = ChatRequest(prompt="What is 2+2?", model="gpt-4o", temperature=0.0, max_tokens=64, web_search=True)

    chunks = await _collect(client.chat_stream(request))

    assert "".join(chunks) == "The answer is 4."
    sent = seen[0]
    assert sent.method == "POST"
    assert str(sent.url).startswith(ONEMINAI_BASE_URL)
    assert sent.url.params["isStreaming"] == "true"
    assert sent.headers["API-KEY"] == "secret-key"
    assert sent.headers["Content-Type"] == "application/json"
    assert json.loads(sent.content) == {
        "type": "CHAT_WITH_AI",
        "model": "gpt-4o",
        "promptObject": {
            "prompt": "What is 2+2?",
            "temperature": 0.0,
            "maxTokens": 64,
            "webSearch": True,
        },
    }
    await client.aclose()


@pytest.mark.asyncio
async def test_stream_payload_defaults() -> None:
    seen: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, text="ok")

    client = _onemin_client(handler, model="claude-3-5-sonnet")

    await _collect(client.chat_stream(ChatRequest(prompt="hi")))

    assert seen[0]["model"] == "claude-3-5-sonnet"
    assert seen[0]["promptObject"]["temperature"] == 0.7
    assert seen[0]["promptObject"]["maxTokens"] == 500
    assert seen[0]["promptObject"]["webSearch"] is False


@pytest.mark.asyncio
async def test_stream_non_success_status_raises_api_error() -> None:
    client = _onemin_client(lambda request: httpx.Response(401, text="Unauthorized"))

    with pytest.raises(ApiError) as excinfo:
        await _collect(client.chat_stream(ChatRequest(prompt="hi")))

    assert excinfo.value.status_code == 401
    assert excinfo.value.body == "Unauthorized"
    assert str(excinfo.value) == "API Error: 401"


@pytest.mark.asyncio
async def test_stream_connection_failure_raises_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _onemin_client(handler)

    with pytest.raises(TransportError) as excinfo:
        await _collect(client.chat_stream(ChatRequest(prompt="hi")))

    assert "connection refused" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


@pytest.mark.asyncio
async def test_chat_retries_transport_failures() -> None:
    attempts = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        if attempts["count"] < 3:
            raise httpx.ConnectError("flaky", request=request)
        return httpx.Response(200, json={"data": "Connection successful"})

    client = _onemin_client(handler, max_retries=3)

    response = await client.chat(ChatRequest(prompt="ping"))

    assert response.success
    assert response.data == "Connection successful"
    assert attempts["count"] == 3


@pytest.mark.asyncio
async def test_chat_reports_exhausted_retries_without_raising() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    client = _onemin_client(handler, max_retries=2)

    response = await client.chat(ChatRequest(prompt="ping"))

    assert not response.success
    assert response.error == "offline"


@pytest.mark.asyncio
async def test_chat_non_success_status_is_reported() -> None:
    client = _onemin_client(lambda request: httpx.Response(403, text="Forbidden"))

    response = await client.chat(ChatRequest(prompt="ping"))

    assert not response.success
    assert response.error == "API Error: 403 - Forbidden"


@pytest.mark.asyncio
async def test_chat_falls_back_to_serialized_body() -> None:
    body = {"aiRecord": {"status": "SUCCESS"}}
    client = _onemin_client(lambda request: httpx.Response(200, json=body))

    response = await client.chat(ChatRequest(prompt="ping"))

    assert response.success
    assert json.loads(response.data or "") == body


def test_onemin_client_requires_api_key() -> None:
    with pytest.raises(ConfigurationError):
        OneMinAIClient(ClientSettings(api_key="  "))


@dataclass
class _FakeEvent:
    type: str
    delta: str | None = None


class _FakeStream:
    def __init__(self, events: Iterable[_FakeEvent]):
        self._iterator = iter(list(events))

    def __aiter__(self) -> "_FakeStream":
        return self

    async def __anext__(self) -> _FakeEvent:
        try:
            return next(self._iterator)
        except StopIteration as exc:
            raise StopAsyncIteration from exc


class _FakeStreamContext:
    def __init__(self, events: Iterable[_FakeEvent], error: BaseException | None = None):
        self._events = list(events)
        self._error = error

    async def __aenter__(self) -> _FakeStream:
        if self._error is not None:
            raise self._error
        return _FakeStream(self._events)

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class _FakeCompletions:
    def __init__(
        self,
        events: Iterable[_FakeEvent] = (),
        *,
        error: BaseException | None = None,
        completion: Any = None,
    ):
        self._events = list(events)
        self._error = error
        self._completion = completion
        self.calls: list[dict[str, Any]] = []

    def stream(self, **kwargs: Any) -> _FakeStreamContext:
        self.calls.append(kwargs)
        return _FakeStreamContext(self._events, self._error)

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self._error is not None:
            raise self._error
        return self._completion


def _openai_client(completions: _FakeCompletions) -> OpenAIChatClient:
    fake_client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenAIChatClient(
        ClientSettings(api_key="test", base_url="http://local", model="stub"),
        client=cast(AsyncOpenAI, fake_client),
    )


@pytest.mark.asyncio
async def test_openai_stream_yields_content_deltas_only() -> None:
    completions = _FakeCompletions(
        [
            _FakeEvent(type="content.delta", delta="Hello"),
            _FakeEvent(type="chunk"),
            _FakeEvent(type="content.delta", delta=" world"),
            _FakeEvent(type="content.done"),
        ]
    )
    client = _openai_client(completions)

    chunks = await _collect(client.chat_stream(ChatRequest(prompt="Hi", temperature=0.2, max_tokens=32)))

    assert chunks == ["Hello", " world"]
    call = completions.calls[0]
    assert call["model"] == "stub"
    assert call["messages"] == [{"role": "user", "content": "Hi"}]
    assert call["temperature"] == 0.2
    assert call["max_tokens"] == 32


@pytest.mark.asyncio
async def test_openai_stream_connection_error_becomes_transport_error() -> None:
    error = APIConnectionError(request=httpx.Request("POST", "http://local/chat/completions"))
    client = _openai_client(_FakeCompletions(error=error))

    with pytest.raises(TransportError):
        await _collect(client.chat_stream(ChatRequest(prompt="Hi")))


@pytest.mark.asyncio
async def test_openai_stream_status_error_becomes_api_error() -> None:
    request = httpx.Request("POST", "http://local/chat/completions")
    error = APIStatusError("Too many requests", response=httpx.Response(429, request=request), body=None)
    client = _openai_client(_FakeCompletions(error=error))

    with pytest.raises(ApiError) as excinfo:
        await _collect(client.chat_stream(ChatRequest(prompt="Hi")))

    assert excinfo.value.status_code == 429
    assert "429" in str(excinfo.value)


@pytest.mark.asyncio
async def test_openai_chat_returns_first_choice() -> None:
    completion = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="Connection successful"))])
    client = _openai_client(_FakeCompletions(completion=completion))

    response = await client.chat(ChatRequest(prompt="ping"))

    assert response.success
    assert response.data == "Connection successful"


@pytest.mark.asyncio
async def test_openai_chat_reports_empty_completion() -> None:
    client = _openai_client(_FakeCompletions(completion=SimpleNamespace(choices=[])))

    response = await client.chat(ChatRequest(prompt="ping"))

    assert not response.success
    assert response.error == "API Error: empty completion"


@pytest.mark.asyncio
async def test_build_chat_client_selects_provider() -> None:
    onemin = build_chat_client(SimpleNamespace(api_key="k", provider="1minai", model="gpt-4o"))
    openai_client = build_chat_client(SimpleNamespace(api_key="k", provider="OpenAI", base_url="http://local"))

    assert isinstance(onemin, OneMinAIClient)
    assert onemin.settings.model == "gpt-4o"
    assert isinstance(openai_client, OpenAIChatClient)
    await onemin.aclose()
    await openai_client.aclose()


def test_build_chat_client_rejects_unknown_provider() -> None:
    with pytest.raises(ConfigurationError):
        build_chat_client(SimpleNamespace(api_key="k", provider="carrier-pigeon"))
