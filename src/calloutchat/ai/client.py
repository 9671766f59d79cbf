"""Async chat transports for 1min.ai and OpenAI-compatible endpoints."""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Mapping, Protocol, runtime_checkable

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .errors import ApiError, ConfigurationError, TransportError, describe_exception

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "ChatTransport",
    "ClientSettings",
    "OneMinAIClient",
    "OpenAIChatClient",
    "PROVIDERS",
    "build_chat_client",
    "DEFAULT_MODEL",
    "DEFAULT_TEMPERATURE",
    "DEFAULT_MAX_TOKENS",
    "ONEMINAI_BASE_URL",
    "OPENAI_BASE_URL",
]

LOGGER = logging.getLogger(__name__)

ONEMINAI_BASE_URL = "https://api.1min.ai/api/features"
OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 500
_CHAT_FEATURE = "CHAT_WITH_AI"


@dataclass(slots=True)
class ChatRequest:
    """Prompt plus optional generation parameters."""

    prompt: str
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    web_search: bool | None = None


@dataclass(slots=True)
class ChatResponse:
    """Result of a one-shot (non-streaming) chat request."""

    success: bool
    data: str | None = None
    error: str | None = None


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure a chat transport."""

    api_key: str
    base_url: str | None = None
    model: str = DEFAULT_MODEL
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False


@runtime_checkable
class ChatTransport(Protocol):
    """Contract consumed by the chat command."""

    def chat_stream(self, request: ChatRequest) -> AsyncIterator[str | bytes]:
        """Open a streamed request; the request is sent on first iteration."""
        ...

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Send a one-shot request; never raises."""
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        ...


class OneMinAIClient:
    """Client for the 1min.ai ``CHAT_WITH_AI`` feature endpoint."""

    def __init__(self, settings: ClientSettings, *, http_client: httpx.AsyncClient | None = None) -> None:
        if not (settings.api_key or "").strip():
            raise ConfigurationError("API key is required")
        self._settings = settings
        self._base_url = (settings.base_url or ONEMINAI_BASE_URL).rstrip("/")
        self._http = http_client or httpx.AsyncClient(timeout=settings.request_timeout)
        self._owns_http = http_client is None

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def base_url(self) -> str:
        return self._base_url

    async def chat(self, request: ChatRequest) -> ChatResponse:
        payload = self._build_payload(request)
        self._log_payload(payload)
        try:
            async for attempt in self._retrying():
                with attempt:
                    response = await self._http.post(self._base_url, headers=self._headers(), json=payload)
        except httpx.HTTPError as exc:
            LOGGER.debug("1min.ai chat request failed: %s", exc)
            return ChatResponse(success=False, error=describe_exception(exc))

        if not response.is_success:
            return ChatResponse(
                success=False,
                error=f"API Error: {response.status_code} - {response.text}",
            )
        try:
            body = response.json()
        except ValueError:
            return ChatResponse(success=True, data=response.text)
        data = body.get("data") if isinstance(body, Mapping) else None
        if isinstance(data, str) and data:
            return ChatResponse(success=True, data=data)
        return ChatResponse(success=True, data=json.dumps(body))

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[str]:
        payload = self._build_payload(request)
        self._log_payload(payload)
        LOGGER.debug("Starting streamed 1min.ai chat via %s", payload["model"])
        try:
            async with self._http.stream(
                "POST",
                self._base_url,
                params={"isStreaming": "true"},
                headers=self._headers(),
                json=payload,
            ) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise ApiError(
                        f"API Error: {response.status_code}",
                        status_code=response.status_code,
                        body=body,
                    )
                async for text in response.aiter_text():
                    if text:
                        yield text
        except httpx.TransportError as exc:
            raise TransportError(f"Network error: {describe_exception(exc)}") from exc

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    def _headers(self) -> Dict[str, str]:
        headers = dict(self._settings.default_headers or {})
        headers["API-KEY"] = self._settings.api_key
        headers["Content-Type"] = "application/json"
        return headers

    def _build_payload(self, request: ChatRequest) -> Dict[str, Any]:
        return {
            "type": _CHAT_FEATURE,
            "model": request.model or self._settings.model or DEFAULT_MODEL,
            "promptObject": {
                "prompt": request.prompt,
                "temperature": DEFAULT_TEMPERATURE if request.temperature is None else request.temperature,
                "maxTokens": request.max_tokens or DEFAULT_MAX_TOKENS,
                "webSearch": bool(request.web_search),
            },
        }

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type(httpx.TransportError),
        )

    def _log_payload(self, payload: Mapping[str, Any]) -> None:
        if self._settings.debug_logging:
            LOGGER.debug("1min.ai request payload:\n%s", json.dumps(payload, ensure_ascii=False, indent=2))


class OpenAIChatClient:
    """Chat transport for OpenAI-compatible chat completion endpoints."""

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        if not (settings.api_key or "").strip():
            raise ConfigurationError("API key is required")
        self._settings = settings
        self._client = client or self._build_client(settings)

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def chat(self, request: ChatRequest) -> ChatResponse:
        payload = self._build_payload(request)
        try:
            completion = await self._client.chat.completions.create(**payload)
        except APIStatusError as exc:
            return ChatResponse(success=False, error=f"API Error: {exc.status_code} - {exc.message}")
        except (APIConnectionError, APITimeoutError) as exc:
            return ChatResponse(success=False, error=f"Network error: {describe_exception(exc)}")
        choices = getattr(completion, "choices", None) or []
        if not choices:
            return ChatResponse(success=False, error="API Error: empty completion")
        content = getattr(choices[0].message, "content", None) or ""
        return ChatResponse(success=True, data=content)

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[str]:
        payload = self._build_payload(request)
        LOGGER.debug("Starting streamed chat completion via %s", payload["model"])
        try:
            async with self._client.chat.completions.stream(**payload) as stream:
                async for event in stream:
                    if getattr(event, "type", None) != "content.delta":
                        continue
                    delta = getattr(event, "delta", None)
                    if delta:
                        yield str(delta)
        except APIStatusError as exc:
            raise ApiError(
                f"API Error: {exc.status_code} - {exc.message}",
                status_code=exc.status_code,
            ) from exc
        except (APIConnectionError, APITimeoutError) as exc:
            raise TransportError(f"Network error: {describe_exception(exc)}") from exc

    async def aclose(self) -> None:
        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url or OPENAI_BASE_URL,
            timeout=settings.request_timeout,
            max_retries=max(0, settings.max_retries - 1),
            default_headers=headers,
        )

    def _build_payload(self, request: ChatRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": request.model or self._settings.model or DEFAULT_MODEL,
            "messages": [{"role": "user", "content": request.prompt}],
            "temperature": DEFAULT_TEMPERATURE if request.temperature is None else request.temperature,
            "max_tokens": request.max_tokens or DEFAULT_MAX_TOKENS,
        }
        if self._settings.debug_logging:
            LOGGER.debug("Chat completion payload:\n%s", json.dumps(payload, ensure_ascii=False, indent=2))
        return payload


PROVIDERS: Mapping[str, type] = {
    "1minai": OneMinAIClient,
    "openai": OpenAIChatClient,
}


def build_chat_client(settings: Any, *, debug_logging: bool = False) -> ChatTransport:
    """Construct the transport selected by ``settings.provider``."""

    provider = (getattr(settings, "provider", "") or "1minai").strip().lower()
    factory = PROVIDERS.get(provider)
    if factory is None:
        raise ConfigurationError(f"Unknown provider '{provider}'")
    client_settings = ClientSettings(
        api_key=(getattr(settings, "api_key", "") or "").strip(),
        base_url=getattr(settings, "base_url", None) or None,
        model=getattr(settings, "model", DEFAULT_MODEL) or DEFAULT_MODEL,
        request_timeout=getattr(settings, "request_timeout", 90.0),
        max_retries=getattr(settings, "max_retries", 3),
        retry_min_seconds=getattr(settings, "retry_min_seconds", 0.5),
        retry_max_seconds=getattr(settings, "retry_max_seconds", 6.0),
        debug_logging=debug_logging or bool(getattr(settings, "debug_logging", False)),
    )
    LOGGER.debug("Building %s chat client for model %s", provider, client_settings.model)
    return factory(client_settings)
