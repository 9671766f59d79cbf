"""User-facing notification sinks."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import Protocol, TextIO, runtime_checkable

__all__ = ["DEFAULT_NOTICE_DURATION_MS", "ConsoleNotifier", "LoggingNotifier", "Notifier"]

LOGGER = logging.getLogger(__name__)
DEFAULT_NOTICE_DURATION_MS = 5_000


@runtime_checkable
class Notifier(Protocol):
    """Fire-and-forget sink for short user-visible messages."""

    def show(self, message: str, *, duration_ms: int | None = None) -> None:
        """Display ``message`` for ``duration_ms`` milliseconds."""
        ...


@dataclass(slots=True)
class ConsoleNotifier:
    """Writes notices to a text stream (``stderr`` by default)."""

    stream: TextIO | None = None
    default_duration_ms: int = DEFAULT_NOTICE_DURATION_MS

    def show(self, message: str, *, duration_ms: int | None = None) -> None:
        destination = self.stream or sys.stderr
        duration = duration_ms or self.default_duration_ms
        LOGGER.debug("Notice (%sms): %s", duration, message)
        try:
            destination.write(f"{message}\n")
            destination.flush()
        except (OSError, ValueError):  # pragma: no cover - closed stream
            LOGGER.debug("Unable to write notice to stream", exc_info=True)


@dataclass(slots=True)
class LoggingNotifier:
    """Routes notices into the logging stack, for headless runs."""

    logger: logging.Logger = LOGGER
    level: int = logging.INFO
    default_duration_ms: int = DEFAULT_NOTICE_DURATION_MS

    def show(self, message: str, *, duration_ms: int | None = None) -> None:
        self.logger.log(self.level, "%s (shown for %sms)", message, duration_ms or self.default_duration_ms)
