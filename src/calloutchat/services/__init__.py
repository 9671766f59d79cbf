"""Settings persistence and notification services."""

from .notifications import ConsoleNotifier, LoggingNotifier, Notifier
from .settings import AVAILABLE_MODELS, SecretVault, Settings, SettingsStore

__all__ = [
    "AVAILABLE_MODELS",
    "ConsoleNotifier",
    "LoggingNotifier",
    "Notifier",
    "SecretVault",
    "Settings",
    "SettingsStore",
]
