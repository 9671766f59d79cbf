"""Editor package containing the document buffer, callout formatting and prompts."""

from .callout import CalloutFormatter, CalloutMarker, FormattedChunk, InsertInstruction
from .document_model import DocumentBuffer, DocumentPosition, TextDocument
from .prompt import extract_prompt

__all__ = [
    "CalloutFormatter",
    "CalloutMarker",
    "DocumentBuffer",
    "DocumentPosition",
    "FormattedChunk",
    "InsertInstruction",
    "TextDocument",
    "extract_prompt",
]
