"""Error types raised by the chat pipeline and the user-facing classifier.

Failures are reduced to an :class:`ErrorCategory`, and each category owns
exactly one notification template. Classification is a pure function of the
failure text (plus the exception type for transport errors) and never raises.
"""

from __future__ import annotations

from enum import Enum
from typing import Mapping

import httpx

__all__ = [
    "ApiError",
    "CalloutChatError",
    "ConfigurationError",
    "ErrorCategory",
    "StreamInterrupted",
    "TransportError",
    "classify_error",
    "classify_exception",
    "describe_exception",
    "message_for",
]


# -----------------------------------------------------------------------------
# Exception hierarchy
# -----------------------------------------------------------------------------

class CalloutChatError(RuntimeError):
    """Base class for failures raised by calloutchat components."""


class ConfigurationError(CalloutChatError):
    """Raised when the chat cannot start (missing API key, empty prompt)."""


class TransportError(CalloutChatError):
    """Raised when the remote service cannot be reached."""


class ApiError(CalloutChatError):
    """Raised when the remote service answers with a non-2xx status."""

    def __init__(self, message: str, *, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class StreamInterrupted(CalloutChatError):
    """Raised when a stream breaks after content had already been rendered."""


# -----------------------------------------------------------------------------
# Classification
# -----------------------------------------------------------------------------

class ErrorCategory(str, Enum):
    """User-facing failure categories."""

    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    NETWORK = "network"
    GENERIC_API = "generic_api"
    UNKNOWN = "unknown"


_MESSAGES: Mapping[ErrorCategory, str] = {
    ErrorCategory.UNAUTHORIZED: "Invalid API key. Check your settings.",
    ErrorCategory.FORBIDDEN: "API access denied. Check your subscription.",
    ErrorCategory.RATE_LIMITED: "Rate limited. Please wait and try again.",
    ErrorCategory.SERVER_ERROR: "Server error. Try again later.",
    ErrorCategory.NETWORK: "Network error. Check your connection.",
    ErrorCategory.GENERIC_API: "API Error: {detail}",
    ErrorCategory.UNKNOWN: "Stream interrupted. Response may be incomplete.",
}

_STATUS_SIGNALS: tuple[tuple[ErrorCategory, tuple[str, ...]], ...] = (
    (ErrorCategory.UNAUTHORIZED, ("401", "unauthorized")),
    (ErrorCategory.FORBIDDEN, ("403", "forbidden")),
    (ErrorCategory.RATE_LIMITED, ("429", "rate limit")),
    (ErrorCategory.SERVER_ERROR, ("500", "server error")),
)
_NETWORK_SIGNALS: tuple[str, ...] = ("fetch", "network")
_API_ERROR_SIGNAL = "api error"
_API_ERROR_PREFIX = "api error:"


def classify_error(description: str | None, *, streaming: bool = False) -> ErrorCategory:
    """Map a failure description onto an :class:`ErrorCategory`.

    On the streaming path network signals win over everything else; otherwise
    they are checked after the status-code signals and before the generic API
    check.
    """

    lowered = str(description or "").lower()
    if streaming and _contains_any(lowered, _NETWORK_SIGNALS):
        return ErrorCategory.NETWORK
    for category, signals in _STATUS_SIGNALS:
        if _contains_any(lowered, signals):
            return category
    if _contains_any(lowered, _NETWORK_SIGNALS):
        return ErrorCategory.NETWORK
    if _API_ERROR_SIGNAL in lowered:
        return ErrorCategory.GENERIC_API
    return ErrorCategory.UNKNOWN


def classify_exception(error: BaseException, *, streaming: bool = False) -> ErrorCategory:
    """Classify a raised exception, treating transport failures as network errors."""

    if isinstance(error, (TransportError, httpx.TransportError)):
        return ErrorCategory.NETWORK
    return classify_error(describe_exception(error), streaming=streaming)


def describe_exception(error: BaseException) -> str:
    """Return the failure description used for classification and messaging."""

    text = str(error).strip()
    if text:
        return text
    cause = error.__cause__ or error.__context__
    if cause is not None and cause is not error:
        return describe_exception(cause)
    return type(error).__name__


def message_for(category: ErrorCategory, detail: str | None = None) -> str:
    """Render the notification text for ``category``."""

    template = _MESSAGES[category]
    if category is ErrorCategory.GENERIC_API:
        return template.format(detail=_strip_api_prefix(detail or "unknown failure"))
    return template


def _contains_any(text: str, needles: tuple[str, ...]) -> bool:
    return any(needle in text for needle in needles)


def _strip_api_prefix(detail: str) -> str:
    stripped = detail.strip()
    if stripped.lower().startswith(_API_ERROR_PREFIX):
        return stripped[len(_API_ERROR_PREFIX) :].strip()
    return stripped
