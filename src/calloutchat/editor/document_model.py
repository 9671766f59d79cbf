"""Cursor-addressed document buffers used by the stream renderer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence, runtime_checkable

__all__ = ["DocumentPosition", "DocumentBuffer", "TextDocument"]


@dataclass(slots=True, frozen=True, order=True)
class DocumentPosition:
    """Zero-indexed ``(line, column)`` insertion point in a line-oriented buffer."""

    line: int = 0
    column: int = 0

    def __post_init__(self) -> None:
        line = self._coerce_index(self.line, "line")
        column = self._coerce_index(self.column, "column")
        object.__setattr__(self, "line", line)
        object.__setattr__(self, "column", column)

    @staticmethod
    def _coerce_index(value: Any, label: str) -> int:
        try:
            number = int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"DocumentPosition {label} must be an integer") from exc
        if number < 0:
            raise ValueError(f"DocumentPosition {label} must be non-negative")
        return number

    @classmethod
    def from_value(cls, value: Any) -> DocumentPosition:
        """Coerce ``value`` (position, mapping or pair) into a :class:`DocumentPosition`."""

        if isinstance(value, DocumentPosition):
            return value
        if isinstance(value, dict):
            return cls(value.get("line", 0), value.get("column", value.get("ch", 0)))
        if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
            seq = list(value)
            if len(seq) != 2:
                raise ValueError("DocumentPosition sequences must have exactly two entries")
            return cls(seq[0], seq[1])
        raise TypeError("Unsupported DocumentPosition input")

    def to_dict(self) -> dict[str, int]:
        return {"line": self.line, "column": self.column}


@runtime_checkable
class DocumentBuffer(Protocol):
    """Minimal editor surface the renderer mutates."""

    def get_cursor(self) -> DocumentPosition:
        """Return the current cursor position."""
        ...

    def get_range(self, start: DocumentPosition, end: DocumentPosition) -> str:
        """Return the text between ``start`` and ``end``."""
        ...

    def replace_range(
        self,
        text: str,
        start: DocumentPosition,
        end: DocumentPosition | None = None,
    ) -> None:
        """Replace ``[start, end)`` with ``text``; insertion when ``end`` is omitted."""
        ...


@dataclass(slots=True)
class TextDocument:
    """In-memory :class:`DocumentBuffer` backed by a list of lines."""

    lines: list[str] = field(default_factory=lambda: [""])
    cursor: DocumentPosition = field(default_factory=DocumentPosition)
    version_id: int = 1

    def __post_init__(self) -> None:
        if not self.lines:
            self.lines = [""]
        self.cursor = self.clamp(self.cursor)

    @classmethod
    def from_text(cls, text: str, *, cursor: DocumentPosition | None = None) -> TextDocument:
        """Build a document from ``text`` with the cursor at ``cursor`` or the end."""

        document = cls(lines=text.split("\n"))
        document.set_cursor(cursor if cursor is not None else document.end_position())
        return document

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def end_position(self) -> DocumentPosition:
        last = len(self.lines) - 1
        return DocumentPosition(last, len(self.lines[last]))

    def clamp(self, position: DocumentPosition) -> DocumentPosition:
        """Pull ``position`` back inside the buffer bounds."""

        line = min(position.line, len(self.lines) - 1)
        column = min(position.column, len(self.lines[line]))
        return DocumentPosition(line, column)

    def get_cursor(self) -> DocumentPosition:
        return self.cursor

    def set_cursor(self, position: DocumentPosition) -> None:
        self.cursor = self._validate(position)

    def get_range(self, start: DocumentPosition, end: DocumentPosition) -> str:
        start, end = self._ordered(start, end)
        if start.line == end.line:
            return self.lines[start.line][start.column : end.column]
        parts = [self.lines[start.line][start.column :]]
        parts.extend(self.lines[start.line + 1 : end.line])
        parts.append(self.lines[end.line][: end.column])
        return "\n".join(parts)

    def replace_range(
        self,
        text: str,
        start: DocumentPosition,
        end: DocumentPosition | None = None,
    ) -> None:
        start, end = self._ordered(start, end if end is not None else start)
        head = self.lines[start.line][: start.column]
        tail = self.lines[end.line][end.column :]
        replacement = (head + text + tail).split("\n")
        self.lines[start.line : end.line + 1] = replacement
        self.version_id += 1
        self.cursor = self.clamp(self.cursor)

    def _ordered(
        self, start: DocumentPosition, end: DocumentPosition
    ) -> tuple[DocumentPosition, DocumentPosition]:
        start = self._validate(start)
        end = self._validate(end)
        if end < start:
            start, end = end, start
        return start, end

    def _validate(self, position: DocumentPosition) -> DocumentPosition:
        position = DocumentPosition.from_value(position)
        if position.line >= len(self.lines):
            raise ValueError(
                f"Line {position.line} is outside the document ({len(self.lines)} line(s))"
            )
        if position.column > len(self.lines[position.line]):
            raise ValueError(
                f"Column {position.column} is past the end of line {position.line}"
            )
        return position
