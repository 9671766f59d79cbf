"""Incremental stream-to-document renderer for AI callouts."""

from __future__ import annotations

import codecs
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterable

from ..editor.callout import CalloutFormatter, CalloutMarker
from ..editor.document_model import DocumentBuffer, DocumentPosition
from .errors import ErrorCategory, StreamInterrupted, classify_exception

__all__ = ["RenderResult", "RenderState", "StreamRenderer", "StreamSession"]

LOGGER = logging.getLogger(__name__)


class RenderState(str, Enum):
    """Lifecycle of a single rendering session."""

    IDLE = "idle"
    MARKER_INSERTED = "marker_inserted"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


@dataclass(slots=True)
class StreamSession:
    """Mutable bookkeeping for one in-flight stream."""

    marker_start: DocumentPosition
    marker_end: DocumentPosition
    cursor: DocumentPosition
    content_received: bool = False
    chunks: int = 0
    characters: int = 0
    ends_with_carriage_return: bool = False

    @property
    def can_roll_back(self) -> bool:
        return not self.content_received

    def advance(self, position: DocumentPosition) -> None:
        if position < self.cursor:
            raise RuntimeError(
                f"Stream cursor cannot move backwards ({self.cursor} -> {position})"
            )
        self.cursor = position


@dataclass(slots=True)
class RenderResult:
    """Outcome of :meth:`StreamRenderer.render`."""

    state: RenderState
    marker_start: DocumentPosition
    cursor: DocumentPosition
    content_received: bool
    chunks: int = 0
    characters: int = 0
    error: BaseException | None = None
    category: ErrorCategory | None = None

    @property
    def ok(self) -> bool:
        return self.state is RenderState.COMPLETED


class StreamRenderer:
    """Writes a streamed answer into a document as a callout block.

    The renderer inserts the callout marker at the given position, then applies
    every chunk through :class:`CalloutFormatter` at a forward-only cursor. When
    the stream fails before any content arrived the marker is removed again so
    the document matches its pre-invocation text; later failures keep the
    partial answer.
    """

    def __init__(self, marker: CalloutMarker | None = None, *, encoding: str = "utf-8") -> None:
        self._marker = marker or CalloutMarker()
        self._formatter = CalloutFormatter(self._marker)
        self._encoding = encoding
        self._state = RenderState.IDLE

    @property
    def marker(self) -> CalloutMarker:
        return self._marker

    @property
    def state(self) -> RenderState:
        return self._state

    async def render(
        self,
        document: DocumentBuffer,
        chunks: AsyncIterable[str | bytes],
        *,
        position: DocumentPosition | None = None,
    ) -> RenderResult:
        """Stream ``chunks`` into ``document`` starting at ``position`` (default: cursor)."""

        start = position if position is not None else document.get_cursor()
        session = self._open_session(document, start)
        decoder = codecs.getincrementaldecoder(self._encoding)(errors="replace")

        self._transition(RenderState.STREAMING)
        try:
            async for raw in chunks:
                self._apply(document, session, self._decode(decoder, raw))
            self._apply(document, session, decoder.decode(b"", final=True))
        except Exception as exc:
            return self._fail(document, session, exc)

        self._transition(RenderState.COMPLETED)
        LOGGER.debug(
            "Stream completed: %s chunk(s), %s character(s), cursor=%s",
            session.chunks,
            session.characters,
            session.cursor,
        )
        return self._result(session)

    def _open_session(self, document: DocumentBuffer, start: DocumentPosition) -> StreamSession:
        if self._state in (RenderState.MARKER_INSERTED, RenderState.STREAMING):
            raise RuntimeError(f"Renderer is busy ({self._state.value})")
        self._state = RenderState.IDLE
        document.replace_range(self._marker.text, start, start)
        marker_end = self._marker.end_position(start)
        self._transition(RenderState.MARKER_INSERTED)
        return StreamSession(marker_start=start, marker_end=marker_end, cursor=marker_end)

    def _apply(self, document: DocumentBuffer, session: StreamSession, text: str) -> None:
        if not text:
            return
        session.content_received = True
        session.chunks += 1
        session.characters += len(text)
        # A "\r\n" split across chunks is one line break.
        if session.ends_with_carriage_return and text.startswith("\n"):
            text = text[1:]
        session.ends_with_carriage_return = text.endswith("\r")
        formatted = self._formatter.format_chunk(text, session.cursor)
        for instruction in formatted.instructions:
            document.replace_range(instruction.text, instruction.position, instruction.position)
        session.advance(formatted.cursor)

    def _fail(self, document: DocumentBuffer, session: StreamSession, exc: Exception) -> RenderResult:
        category = classify_exception(exc, streaming=True)
        if session.can_roll_back:
            document.replace_range("", session.marker_start, session.marker_end)
            self._transition(RenderState.ROLLED_BACK)
            LOGGER.info("Stream failed before any content (%s); removed empty callout", category.value)
            return self._result(session, error=exc, category=category)

        error: BaseException = exc
        if category is ErrorCategory.UNKNOWN and not isinstance(exc, StreamInterrupted):
            error = StreamInterrupted(str(exc) or type(exc).__name__)
            error.__cause__ = exc
        self._transition(RenderState.FAILED)
        LOGGER.warning(
            "Stream failed after %s character(s); keeping partial response (%s)",
            session.characters,
            category.value,
        )
        return self._result(session, error=error, category=category)

    def _result(
        self,
        session: StreamSession,
        *,
        error: BaseException | None = None,
        category: ErrorCategory | None = None,
    ) -> RenderResult:
        return RenderResult(
            state=self._state,
            marker_start=session.marker_start,
            cursor=session.cursor,
            content_received=session.content_received,
            chunks=session.chunks,
            characters=session.characters,
            error=error,
            category=category,
        )

    def _transition(self, state: RenderState) -> None:
        LOGGER.debug("Renderer state %s -> %s", self._state.value, state.value)
        self._state = state

    @staticmethod
    def _decode(decoder: codecs.IncrementalDecoder, raw: str | bytes) -> str:
        if isinstance(raw, (bytes, bytearray)):
            return decoder.decode(bytes(raw))
        return raw
