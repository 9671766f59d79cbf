"""AI transports, stream rendering and error classification."""

from .client import ChatRequest, ChatResponse, ChatTransport, ClientSettings, OneMinAIClient, OpenAIChatClient, build_chat_client
from .errors import ErrorCategory, classify_error, classify_exception, message_for
from .renderer import RenderResult, RenderState, StreamRenderer, StreamSession

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "ChatTransport",
    "ClientSettings",
    "ErrorCategory",
    "OneMinAIClient",
    "OpenAIChatClient",
    "RenderResult",
    "RenderState",
    "StreamRenderer",
    "StreamSession",
    "build_chat_client",
    "classify_error",
    "classify_exception",
    "message_for",
]
