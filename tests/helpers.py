"""Shared test helpers and stub classes.

Import from here instead of duplicating these stubs in individual test files.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import AsyncIterator, Iterable

from calloutchat.ai.client import ChatRequest, ChatResponse


async def stream_chunks(
    chunks: Iterable[str | bytes],
    *,
    error: BaseException | None = None,
    gate: asyncio.Event | None = None,
) -> AsyncIterator[str | bytes]:
    """Yield ``chunks`` then optionally raise ``error``, like a live transport."""

    if gate is not None:
        await gate.wait()
    for chunk in chunks:
        await asyncio.sleep(0)
        yield chunk
    if error is not None:
        raise error


@dataclass
class RecordingNotifier:
    """Notifier stub that keeps every message it was asked to show."""

    messages: list[str] = field(default_factory=list)
    durations: list[int | None] = field(default_factory=list)

    def show(self, message: str, *, duration_ms: int | None = None) -> None:
        self.messages.append(message)
        self.durations.append(duration_ms)


class FakeTransport:
    """Chat transport stub replaying canned chunks and responses."""

    def __init__(
        self,
        chunks: Iterable[str | bytes] = (),
        *,
        error: BaseException | None = None,
        response: ChatResponse | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.chunks = list(chunks)
        self.error = error
        self.response = response or ChatResponse(success=True, data="Connection successful")
        self.gate = gate
        self.requests: list[ChatRequest] = []
        self.closed = False

    def chat_stream(self, request: ChatRequest) -> AsyncIterator[str | bytes]:
        self.requests.append(request)
        return stream_chunks(self.chunks, error=self.error, gate=self.gate)

    async def chat(self, request: ChatRequest) -> ChatResponse:
        self.requests.append(request)
        return self.response

    async def aclose(self) -> None:
        self.closed = True
