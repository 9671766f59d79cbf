"""Prompt extraction from the document text above the cursor."""

from __future__ import annotations

from .document_model import DocumentBuffer, DocumentPosition

__all__ = ["extract_prompt"]

_DOCUMENT_START = DocumentPosition(0, 0)


def extract_prompt(document: DocumentBuffer) -> str | None:
    """Return the trimmed text between the document start and the cursor, or ``None``."""

    text = document.get_range(_DOCUMENT_START, document.get_cursor())
    trimmed = text.strip()
    return trimmed or None
