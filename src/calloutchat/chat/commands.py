"""The "AI Chat" and "Test connection" commands.

:class:`AIChatCommand` is the only place where configuration, prompt
extraction, the transport and the renderer meet. Every invocation ends either
silently (answer rendered) or with exactly one notification; no exception
escapes :meth:`AIChatCommand.execute`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from ..ai.client import DEFAULT_MODEL, DEFAULT_TEMPERATURE, ChatRequest, ChatTransport
from ..ai.errors import (
    ConfigurationError,
    ErrorCategory,
    classify_exception,
    describe_exception,
    message_for,
)
from ..ai.renderer import RenderResult, RenderState, StreamRenderer
from ..editor.callout import DEFAULT_CALLOUT_TYPE, CalloutMarker
from ..editor.document_model import DocumentBuffer
from ..editor.prompt import extract_prompt
from ..services.notifications import DEFAULT_NOTICE_DURATION_MS, Notifier

__all__ = [
    "AIChatCommand",
    "ChatOptions",
    "ChatOutcome",
    "ChatStatus",
    "CONNECTION_TEST_PROMPT",
]

LOGGER = logging.getLogger(__name__)

CONNECTION_TEST_PROMPT = "Say 'Connection successful' in exactly those words."
_CONNECTION_TEST_TEMPERATURE = 0.1
_MISSING_KEY_NOTICE = "Configure API key in settings first."
_EMPTY_PROMPT_NOTICE = "No prompt text found. Write something above the cursor."
_BUSY_NOTICE = "A response is already streaming into this document."


class ChatStatus(str, Enum):
    """Terminal status of one command invocation."""

    COMPLETED = "completed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(slots=True, frozen=True)
class ChatOptions:
    """Explicit parameter bundle passed into each invocation."""

    api_key: str = ""
    model: str = DEFAULT_MODEL
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int | None = None
    web_search: bool = False
    callout_type: str = DEFAULT_CALLOUT_TYPE
    notice_duration_ms: int = DEFAULT_NOTICE_DURATION_MS

    @classmethod
    def from_settings(cls, settings: Any) -> ChatOptions:
        return cls(
            api_key=(getattr(settings, "api_key", "") or "").strip(),
            model=getattr(settings, "model", DEFAULT_MODEL) or DEFAULT_MODEL,
            temperature=getattr(settings, "temperature", DEFAULT_TEMPERATURE),
            max_tokens=getattr(settings, "max_tokens", None),
            web_search=bool(getattr(settings, "web_search", False)),
            callout_type=getattr(settings, "callout_type", DEFAULT_CALLOUT_TYPE) or DEFAULT_CALLOUT_TYPE,
            notice_duration_ms=getattr(settings, "notice_duration_ms", DEFAULT_NOTICE_DURATION_MS),
        )


@dataclass(slots=True)
class ChatOutcome:
    """What happened during :meth:`AIChatCommand.execute`."""

    status: ChatStatus
    notice: str | None = None
    category: ErrorCategory | None = None
    render: RenderResult | None = None

    @property
    def ok(self) -> bool:
        return self.status is ChatStatus.COMPLETED


class AIChatCommand:
    """Runs one streamed chat turn against a document."""

    def __init__(
        self,
        client_factory: Callable[[], ChatTransport | None],
        notifier: Notifier,
    ) -> None:
        self._client_factory = client_factory
        self._notifier = notifier
        self._active: set[int] = set()

    def is_streaming(self, document: DocumentBuffer) -> bool:
        return id(document) in self._active

    async def execute(self, document: DocumentBuffer, options: ChatOptions) -> ChatOutcome:
        """Send the text above the cursor and stream the answer below it."""

        if self.is_streaming(document):
            return self._skip(_BUSY_NOTICE, options)
        try:
            client, prompt = self._prepare(document, options)
        except ConfigurationError as exc:
            return self._skip(str(exc), options)

        self._active.add(id(document))
        try:
            request = ChatRequest(
                prompt=prompt,
                model=options.model,
                temperature=options.temperature,
                max_tokens=options.max_tokens,
                web_search=options.web_search,
            )
            renderer = StreamRenderer(CalloutMarker.for_type(options.callout_type))
            LOGGER.debug("Running AI chat: prompt_length=%d, model=%s", len(prompt), options.model)
            result = await renderer.render(document, client.chat_stream(request))
        except Exception as exc:
            LOGGER.exception("AI chat failed outside the stream")
            return self._report_failure(exc, options)
        finally:
            self._active.discard(id(document))

        if result.state is RenderState.COMPLETED:
            return ChatOutcome(status=ChatStatus.COMPLETED, render=result)
        category = result.category or ErrorCategory.UNKNOWN
        notice = message_for(category, describe_exception(result.error) if result.error else None)
        self._notify(notice, options)
        status = ChatStatus.ROLLED_BACK if result.state is RenderState.ROLLED_BACK else ChatStatus.FAILED
        return ChatOutcome(status=status, notice=notice, category=category, render=result)

    async def test_connection(self, options: ChatOptions) -> ChatOutcome:
        """Send a fixed prompt through the one-shot endpoint and report the result."""

        if not options.api_key.strip():
            return self._skip("Please enter an API key first", options)
        try:
            client = self._client_factory()
        except ConfigurationError as exc:
            return self._skip(str(exc), options)
        if client is None:
            return self._skip("Failed to initialize client", options)

        response = await client.chat(
            ChatRequest(
                prompt=CONNECTION_TEST_PROMPT,
                model=options.model,
                temperature=_CONNECTION_TEST_TEMPERATURE,
            )
        )
        if response.success:
            notice = "Connection successful! API key is valid."
            self._notify(notice, options)
            return ChatOutcome(status=ChatStatus.COMPLETED, notice=notice)
        notice = f"Connection failed: {response.error}"
        self._notify(notice, options)
        return ChatOutcome(status=ChatStatus.FAILED, notice=notice)

    def _prepare(self, document: DocumentBuffer, options: ChatOptions) -> tuple[ChatTransport, str]:
        if not options.api_key.strip():
            raise ConfigurationError(_MISSING_KEY_NOTICE)
        client = self._client_factory()
        if client is None:
            raise ConfigurationError(_MISSING_KEY_NOTICE)
        prompt = extract_prompt(document)
        if not prompt:
            raise ConfigurationError(_EMPTY_PROMPT_NOTICE)
        return client, prompt

    def _report_failure(self, exc: Exception, options: ChatOptions) -> ChatOutcome:
        category = classify_exception(exc)
        notice = message_for(category, describe_exception(exc))
        self._notify(notice, options)
        return ChatOutcome(status=ChatStatus.FAILED, notice=notice, category=category)

    def _skip(self, notice: str, options: ChatOptions) -> ChatOutcome:
        self._notify(notice, options)
        return ChatOutcome(status=ChatStatus.SKIPPED, notice=notice)

    def _notify(self, message: str, options: ChatOptions) -> None:
        self._notifier.show(message, duration_ms=options.notice_duration_ms)
