"""Chat commands bound to an editor document."""

from .commands import AIChatCommand, ChatOptions, ChatOutcome, ChatStatus

__all__ = ["AIChatCommand", "ChatOptions", "ChatOutcome", "ChatStatus"]
