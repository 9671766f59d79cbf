"""Command-line entry point: stream an AI answer into a text file."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .ai.client import ChatTransport, build_chat_client
from .chat.commands import AIChatCommand, ChatOptions, ChatOutcome
from .editor.document_model import DocumentPosition, TextDocument
from .services.notifications import ConsoleNotifier, Notifier
from .services.settings import AVAILABLE_MODELS, PROVIDER_CHOICES, Settings, SettingsStore, redact_secret
from .utils import logging as logging_utils
from .utils.file_io import detect_encoding, detect_newline, read_text, write_text

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOGGER = logging.getLogger(__name__)


class _ClientProvider:
    """Builds the chat transport on first use and closes it afterwards."""

    def __init__(self, settings: Settings, *, debug_logging: bool = False) -> None:
        self._settings = settings
        self._debug_logging = debug_logging
        self._client: ChatTransport | None = None

    def __call__(self) -> ChatTransport | None:
        if self._client is None:
            self._client = build_chat_client(self._settings, debug_logging=self._debug_logging)
        return self._client

    async def aclose(self) -> None:
        if self._client is None:
            return
        try:
            await self._client.aclose()
        except Exception as exc:  # pragma: no cover - best-effort shutdown
            _LOGGER.debug("Chat client shutdown failed: %s", exc)
        self._client = None


def configure_logging(debug: bool = False, *, settings: Settings | None = None) -> None:
    """Configure file + console logging, honouring ``settings.debug_logging``."""

    log_path = logging_utils.setup_logging(settings, debug=debug)
    _LOGGER.debug("Logging to %s", log_path)


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except (OSError, ValueError, TypeError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


async def run_chat(
    path: Path,
    settings: Settings,
    *,
    line: int | None = None,
    column: int | None = None,
    notifier: Notifier | None = None,
    client_factory: Any | None = None,
) -> ChatOutcome:
    """Run one chat invocation against ``path`` and persist the edited text."""

    sink = notifier or ConsoleNotifier(default_duration_ms=settings.notice_duration_ms)
    exists = path.exists()
    encoding = detect_encoding(path) if exists else "utf-8"
    original = read_text(path, encoding=encoding) if exists else ""
    document = TextDocument.from_text(original)
    document.set_cursor(_resolve_cursor(document, line, column))

    provider = client_factory or _ClientProvider(settings, debug_logging=settings.debug_logging)
    command = AIChatCommand(provider, sink)
    with logging_utils.invocation_context(document=path.name, provider=settings.provider, model=settings.model):
        try:
            outcome = await command.execute(document, ChatOptions.from_settings(settings))
        finally:
            close = getattr(provider, "aclose", None)
            if close is not None:
                await close()

        if document.text != original:
            write_text(
                path,
                document.text,
                encoding=_writable_encoding(document.text, encoding),
                newline=detect_newline(path),
            )
            _LOGGER.info("Wrote %s (%s)", path, outcome.status.value)
    return outcome


async def run_connection_test(
    settings: Settings,
    *,
    notifier: Notifier | None = None,
    client_factory: Any | None = None,
) -> ChatOutcome:
    """Check that the configured API key can reach the chat service."""

    sink = notifier or ConsoleNotifier(default_duration_ms=settings.notice_duration_ms)
    provider = client_factory or _ClientProvider(settings, debug_logging=settings.debug_logging)
    command = AIChatCommand(provider, sink)
    sink.show("Testing connection...", duration_ms=settings.notice_duration_ms)
    with logging_utils.invocation_context(action="test-connection", provider=settings.provider):
        try:
            return await command.test_connection(ChatOptions.from_settings(settings))
        finally:
            close = getattr(provider, "aclose", None)
            if close is not None:
                await close()


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the `calloutchat` console script."""

    args = _parse_cli_args(argv)
    debug = args.debug or _env_flag("CALLOUTCHAT_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("CALLOUTCHAT_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return 0

    if settings.debug_logging and not debug:
        configure_logging(settings=settings)

    if args.test_connection:
        outcome = asyncio.run(run_connection_test(settings))
        return 0 if outcome.ok else 1

    if args.file is None:
        print("A FILE argument is required unless --dump-settings or --test-connection is used.", file=sys.stderr)
        return 2

    outcome = asyncio.run(run_chat(Path(args.file).expanduser(), settings, line=args.line, column=args.column))
    return 0 if outcome.ok else 1


def _resolve_cursor(document: TextDocument, line: int | None, column: int | None) -> DocumentPosition:
    if line is None:
        return document.end_position()
    target_line = min(max(0, line), document.line_count - 1)
    if column is None:
        return DocumentPosition(target_line, len(document.lines[target_line]))
    return document.clamp(DocumentPosition(target_line, max(0, column)))


def _writable_encoding(text: str, encoding: str) -> str:
    try:
        text.encode(encoding)
    except UnicodeEncodeError:
        _LOGGER.warning("Answer cannot be stored as %s; writing UTF-8 instead", encoding)
        return "utf-8"
    return encoding


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="calloutchat",
        description="Send the text above the cursor to an AI chat service and stream the answer back as a callout.",
    )
    parser.add_argument("file", nargs="?", metavar="FILE", help="Markdown/text file to chat in.")
    parser.add_argument("--line", type=int, help="Zero-based cursor line (default: last line).")
    parser.add_argument("--column", type=int, help="Zero-based cursor column (default: end of line).")
    parser.add_argument(
        "--test-connection",
        action="store_true",
        help="Verify the configured API key with a one-shot request and exit.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.calloutchat/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable).",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        value = _coerce_value(annotation, raw_value.strip())
        if key == "provider" and value is not None:
            value = value.lower()
            if value not in PROVIDER_CHOICES:
                raise ValueError(f"Unknown provider '{value}' (choose from {', '.join(PROVIDER_CHOICES)}).")
        if key == "model" and value not in AVAILABLE_MODELS:
            _LOGGER.info("Model '%s' is not in the built-in list; passing it through", value)
        overrides[key] = value
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    normalized = raw_value.strip()

    if normalized.lower() in {"none", "null"} and _is_optional(annotation):
        return None
    if target is str or target is Any:
        return normalized
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    return normalized


def _is_optional(annotation: Any) -> bool:
    return type(None) in get_args(annotation)


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return args[0]


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(settings)
    payload["api_key"] = redact_secret(settings.api_key)
    metadata = {
        "path": str(store.path),
        "secret_backend": store.vault.strategy,
        "cli_overrides": sorted(overrides.keys()),
        "providers": list(PROVIDER_CHOICES),
        "available_models": list(AVAILABLE_MODELS),
        "environment_variables": _active_env_overrides(),
    }
    json.dump({"settings": payload, "meta": metadata}, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("CALLOUTCHAT_"))


if __name__ == "__main__":  # pragma: no cover - manual invocation
    raise SystemExit(main())
