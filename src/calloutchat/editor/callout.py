"""Callout marker geometry and chunk-to-insertion formatting."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Tuple

from .document_model import DocumentPosition

__all__ = [
    "CalloutMarker",
    "CalloutFormatter",
    "FormattedChunk",
    "InsertInstruction",
    "DEFAULT_CALLOUT_TYPE",
    "DEFAULT_LINE_PREFIX",
]

DEFAULT_CALLOUT_TYPE = "ai"
DEFAULT_LINE_PREFIX = "> "
_LINE_BREAK = re.compile(r"\r\n|\r|\n")


@dataclass(slots=True, frozen=True)
class CalloutMarker:
    """Opening text of an AI callout block and the prefix carried by each line."""

    text: str = f"\n\n{DEFAULT_LINE_PREFIX}[!{DEFAULT_CALLOUT_TYPE}]\n{DEFAULT_LINE_PREFIX}"
    line_prefix: str = DEFAULT_LINE_PREFIX

    def __post_init__(self) -> None:
        if "\n" in self.line_prefix:
            raise ValueError("Callout line prefix cannot contain line breaks")
        if not self.text.endswith(self.line_prefix):
            raise ValueError("Callout marker must end with its line prefix")

    @classmethod
    def for_type(cls, callout_type: str = DEFAULT_CALLOUT_TYPE, *, line_prefix: str = DEFAULT_LINE_PREFIX) -> CalloutMarker:
        """Return the marker for a ``> [!callout_type]`` block."""

        label = (callout_type or DEFAULT_CALLOUT_TYPE).strip() or DEFAULT_CALLOUT_TYPE
        return cls(text=f"\n\n{line_prefix}[!{label}]\n{line_prefix}", line_prefix=line_prefix)

    @property
    def line_breaks(self) -> int:
        return self.text.count("\n")

    @property
    def content_column(self) -> int:
        """Column where text starts on every continuation line."""

        return len(self.line_prefix)

    def end_position(self, start: DocumentPosition) -> DocumentPosition:
        """Return the position right after the marker once inserted at ``start``."""

        breaks = self.line_breaks
        if breaks == 0:
            return DocumentPosition(start.line, start.column + len(self.text))
        last_line = self.text.rsplit("\n", 1)[1]
        return DocumentPosition(start.line + breaks, len(last_line))


@dataclass(slots=True, frozen=True)
class InsertInstruction:
    """Insert ``text`` at ``position``; ``line_break`` marks prefix-advance inserts."""

    text: str
    position: DocumentPosition
    line_break: bool = False


@dataclass(slots=True, frozen=True)
class FormattedChunk:
    """Ordered insertions for one chunk plus the cursor after applying them."""

    instructions: Tuple[InsertInstruction, ...] = field(default_factory=tuple)
    cursor: DocumentPosition = field(default_factory=DocumentPosition)

    @property
    def inserted_text(self) -> str:
        """Concatenated chunk text, excluding line-break + prefix inserts."""

        return "".join(item.text for item in self.instructions if not item.line_break)


class CalloutFormatter:
    """Turns raw chunks into insertions that keep every line inside the callout."""

    def __init__(self, marker: CalloutMarker | None = None) -> None:
        self._marker = marker or CalloutMarker()

    @property
    def marker(self) -> CalloutMarker:
        return self._marker

    @property
    def continuation(self) -> str:
        return "\n" + self._marker.line_prefix

    def format_chunk(self, chunk: str, position: DocumentPosition) -> FormattedChunk:
        if not chunk:
            return FormattedChunk(cursor=position)

        instructions: list[InsertInstruction] = []
        cursor = position
        for index, segment in enumerate(_LINE_BREAK.split(chunk)):
            if index > 0:
                instructions.append(InsertInstruction(self.continuation, cursor, line_break=True))
                cursor = DocumentPosition(cursor.line + 1, self._marker.content_column)
            if segment:
                instructions.append(InsertInstruction(segment, cursor))
                cursor = DocumentPosition(cursor.line, cursor.column + len(segment))
        return FormattedChunk(instructions=tuple(instructions), cursor=cursor)
