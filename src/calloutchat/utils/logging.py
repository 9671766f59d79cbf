"""Logging setup for calloutchat runs.

Every record written through :func:`setup_logging` handlers is tagged with the
current invocation (document name, provider, action) bound by
:func:`invocation_context`, so one shared log file stays readable when several
runs append to it.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Iterator

__all__ = ["LOG_FILE_NAME", "get_log_path", "invocation_context", "setup_logging"]

LOG_FILE_NAME = "calloutchat.log"
_DEFAULT_LOG_DIR = Path.home() / ".calloutchat" / "logs"
_LOG_DIR_ENV = "CALLOUTCHAT_LOG_DIR"
_TRANSPORT_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
_RECORD_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(invocation)s | %(message)s"
_NO_INVOCATION = "-"

_invocation: ContextVar[str] = ContextVar("calloutchat_invocation", default=_NO_INVOCATION)
_log_path: Path | None = None


class InvocationFilter(logging.Filter):
    """Copies the bound invocation description onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.invocation = _invocation.get()
        return True


@contextmanager
def invocation_context(**fields: Any) -> Iterator[str]:
    """Tag records logged inside the block with ``key=value`` pairs."""

    label = " ".join(f"{key}={value}" for key, value in fields.items() if value not in (None, ""))
    token = _invocation.set(label or _NO_INVOCATION)
    try:
        yield label
    finally:
        _invocation.reset(token)


def setup_logging(
    settings: Any | None = None,
    *,
    debug: bool = False,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
) -> Path:
    """Install the rotating file handler (and a console handler) on the root logger.

    ``settings.debug_logging`` turns on DEBUG output just like ``debug=True``;
    otherwise the file gets INFO and the console only warnings. Calling this
    again replaces the previous handlers.
    """

    global _log_path
    verbose = debug or bool(getattr(settings, "debug_logging", False))
    level = logging.DEBUG if verbose else logging.INFO
    log_path = _resolve_log_dir(log_dir) / LOG_FILE_NAME
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(fmt=_RECORD_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    tagger = InvocationFilter()

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handlers: list[logging.Handler] = [file_handler]
    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level if verbose else logging.WARNING)
        handlers.append(console_handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(tagger)
    file_handler.setLevel(level)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    transport_level = logging.INFO if verbose else logging.WARNING
    for name in _TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(transport_level)

    _log_path = log_path
    return log_path


def get_log_path() -> Path | None:
    """Return the log file installed by the last :func:`setup_logging` call."""

    return _log_path


def _resolve_log_dir(log_dir: Path | str | None) -> Path:
    return Path(log_dir or os.environ.get(_LOG_DIR_ENV) or _DEFAULT_LOG_DIR).expanduser()
