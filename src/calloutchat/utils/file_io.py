"""File IO helpers for documents edited from the command line."""

from __future__ import annotations

import codecs
import locale
import os
import tempfile
from pathlib import Path

__all__ = ["detect_encoding", "detect_newline", "read_text", "write_text"]

_BOM_MAP: dict[bytes, str] = {
    codecs.BOM_UTF8: "utf-8-sig",
    codecs.BOM_UTF16_LE: "utf-16-le",
    codecs.BOM_UTF16_BE: "utf-16-be",
}
_UTF16_ENCODINGS = {"utf-16-le", "utf-16-be"}


def read_text(path: Path | str, *, encoding: str | None = None, normalize_newlines: bool = True) -> str:
    """Read a text file with encoding detection and optional newline normalization."""

    raw = Path(path).read_bytes()
    text = raw.decode(encoding or _detect_encoding(raw))
    if text.startswith("\ufeff"):
        text = text[1:]
    return _normalize_newlines(text) if normalize_newlines else text


def write_text(path: Path | str, content: str, *, encoding: str = "utf-8", newline: str = "\n") -> Path:
    """Atomically replace ``path`` with ``content`` using the requested newline style."""

    if newline not in ("\n", "\r\n"):
        raise ValueError(f"Unsupported newline policy: {newline!r}")
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    normalized = _normalize_newlines(content)
    if encoding.lower() in _UTF16_ENCODINGS and not normalized.startswith("\ufeff"):
        normalized = "\ufeff" + normalized
    if newline == "\r\n":
        normalized = normalized.replace("\n", "\r\n")

    descriptor, tmp_name = tempfile.mkstemp(dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(descriptor, "w", encoding=encoding, newline="") as handle:
            handle.write(normalized)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, target)
    finally:
        if os.path.exists(tmp_name):  # pragma: no cover - cleanup path
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
    return target


def detect_encoding(path: Path | str) -> str:
    """Return the encoding ``read_text`` would pick for ``path``; pass it back to ``write_text``."""

    return _detect_encoding(Path(path).read_bytes())


def detect_newline(path: Path | str) -> str:
    """Return ``"\\r\\n"`` when the file uses Windows line endings, else ``"\\n"``."""

    target = Path(path)
    if not target.exists():
        return "\n"
    return "\r\n" if b"\r\n" in target.read_bytes() else "\n"


def _detect_encoding(raw: bytes) -> str:
    for bom, encoding in _BOM_MAP.items():
        if raw.startswith(bom):
            return encoding
    preferred = locale.getpreferredencoding(False) or "utf-8"
    for candidate in dict.fromkeys(("utf-8", preferred, "latin-1")):
        try:
            raw.decode(candidate)
            return candidate
        except (UnicodeDecodeError, LookupError):
            continue
    return "utf-8"


def _normalize_newlines(text: str) -> str:
    if "\r" not in text:
        return text
    return text.replace("\r\n", "\n").replace("\r", "\n")
