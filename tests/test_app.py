"""Tests for the command-line entry point."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from calloutchat import app
from calloutchat.ai.errors import TransportError
from calloutchat.chat.commands import ChatStatus
from calloutchat.editor.document_model import DocumentPosition, TextDocument
from calloutchat.services.settings import Settings
from calloutchat.utils import logging as logging_utils
from tests.helpers import FakeTransport, RecordingNotifier


@pytest.mark.asyncio
async def test_run_chat_writes_callout_to_file(tmp_path: Path) -> None:
    target = tmp_path / "notes.md"
    target.write_text("What is 2+2?", encoding="utf-8")
    transport = FakeTransport(["The answer is\n4."])
    notifier = RecordingNotifier()

    outcome = await app.run_chat(
        target,
        Settings(api_key="k"),
        notifier=notifier,
        client_factory=lambda: transport,
    )

    assert outcome.ok
    assert target.read_text(encoding="utf-8") == "What is 2+2?\n\n> [!ai]\n> The answer is\n> 4."
    assert notifier.messages == []


@pytest.mark.asyncio
async def test_run_chat_preserves_windows_newlines(tmp_path: Path) -> None:
    target = tmp_path / "notes.md"
    target.write_bytes(b"Intro\r\nQuestion?")

    await app.run_chat(target, Settings(api_key="k"), notifier=RecordingNotifier(), client_factory=lambda: FakeTransport(["Yes"]))

    assert target.read_bytes() == b"Intro\r\nQuestion?\r\n\r\n> [!ai]\r\n> Yes"


@pytest.mark.asyncio
async def test_run_chat_rollback_leaves_file_unchanged(tmp_path: Path) -> None:
    target = tmp_path / "notes.md"
    target.write_text("Question?\n", encoding="utf-8")
    before = target.stat().st_mtime_ns
    notifier = RecordingNotifier()

    outcome = await app.run_chat(
        target,
        Settings(api_key="k"),
        line=0,
        notifier=notifier,
        client_factory=lambda: FakeTransport([], error=TransportError("network down")),
    )

    assert outcome.status is ChatStatus.ROLLED_BACK
    assert target.read_text(encoding="utf-8") == "Question?\n"
    assert target.stat().st_mtime_ns == before
    assert notifier.messages == ["Network error. Check your connection."]


@pytest.mark.asyncio
async def test_run_connection_test_announces_then_reports() -> None:
    notifier = RecordingNotifier()

    outcome = await app.run_connection_test(
        Settings(api_key="k"),
        notifier=notifier,
        client_factory=lambda: FakeTransport(),
    )

    assert outcome.ok
    assert notifier.messages == ["Testing connection...", "Connection successful! API key is valid."]


def test_resolve_cursor_defaults_and_clamps() -> None:
    document = TextDocument.from_text("one\ntwo words\nthree")

    assert app._resolve_cursor(document, None, None) == DocumentPosition(2, 5)
    assert app._resolve_cursor(document, 1, None) == DocumentPosition(1, 9)
    assert app._resolve_cursor(document, 1, 3) == DocumentPosition(1, 3)
    assert app._resolve_cursor(document, 10, 99) == DocumentPosition(2, 5)


def test_coerce_cli_overrides_uses_field_types() -> None:
    overrides = app._coerce_cli_overrides(
        ["temperature=0.25", "max_tokens=64", "web_search=yes", "model=gpt-4o", "base_url=none"]
    )

    assert overrides == {
        "temperature": 0.25,
        "max_tokens": 64,
        "web_search": True,
        "model": "gpt-4o",
        "base_url": None,
    }


@pytest.mark.parametrize("entry", ["missing-separator", "=value", "colour=blue", "web_search=maybe"])
def test_coerce_cli_overrides_rejects_bad_entries(entry: str) -> None:
    with pytest.raises(ValueError):
        app._coerce_cli_overrides([entry])


def test_main_rejects_bad_override(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = app.main(["--settings-path", str(tmp_path / "settings.json"), "--set", "nope=1", "--dump-settings"])

    assert code == 2
    assert "Invalid --set override" in capsys.readouterr().err


def test_main_requires_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = app.main(["--settings-path", str(tmp_path / "settings.json")])

    assert code == 2
    assert "FILE" in capsys.readouterr().err


def test_dump_settings_redacts_api_key(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("CALLOUTCHAT_MODEL", "gpt-4o")

    code = app.main(
        [
            "--settings-path",
            str(tmp_path / "settings.json"),
            "--set",
            "api_key=sk-secret-value",
            "--dump-settings",
        ]
    )

    assert code == 0
    dumped = json.loads(capsys.readouterr().out)
    assert dumped["settings"]["api_key"] == "sk***********ue"
    assert dumped["settings"]["model"] == "gpt-4o"
    assert dumped["meta"]["cli_overrides"] == ["api_key"]
    assert "CALLOUTCHAT_MODEL" in dumped["meta"]["environment_variables"]
    assert dumped["meta"]["secret_backend"] == "fernet"


def test_main_streams_into_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    target = tmp_path / "notes.md"
    target.write_text("Say hi", encoding="utf-8")
    transport = FakeTransport(["hi"])
    monkeypatch.setattr(app, "build_chat_client", lambda settings, debug_logging=False: transport)

    code = app.main(["--settings-path", str(tmp_path / "settings.json"), "--set", "api_key=k", str(target)])

    assert code == 0
    assert target.read_text(encoding="utf-8") == "Say hi\n\n> [!ai]\n> hi"
    assert transport.closed


def test_main_without_api_key_fails(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    target = tmp_path / "notes.md"
    target.write_text("Say hi", encoding="utf-8")

    code = app.main(["--settings-path", str(tmp_path / "settings.json"), str(target)])

    assert code == 1
    assert target.read_text(encoding="utf-8") == "Say hi"
    assert "Configure API key in settings first." in capsys.readouterr().err


@pytest.mark.asyncio
async def test_run_chat_keeps_lone_carriage_return_inside_callout(tmp_path: Path) -> None:
    target = tmp_path / "notes.md"
    target.write_text("Q?", encoding="utf-8")

    await app.run_chat(
        target,
        Settings(api_key="k"),
        notifier=RecordingNotifier(),
        client_factory=lambda: FakeTransport(["line1\rline2"]),
    )

    assert target.read_bytes() == b"Q?\n\n> [!ai]\n> line1\n> line2"


@pytest.mark.asyncio
async def test_run_chat_writes_back_in_the_file_encoding(tmp_path: Path) -> None:
    target = tmp_path / "notes.md"
    target.write_bytes("Café?".encode("latin-1"))

    await app.run_chat(
        target,
        Settings(api_key="k"),
        notifier=RecordingNotifier(),
        client_factory=lambda: FakeTransport(["Oui, très bien."]),
    )

    assert target.read_bytes() == "Café?\n\n> [!ai]\n> Oui, très bien.".encode("latin-1")


@pytest.mark.asyncio
async def test_run_chat_falls_back_to_utf8_when_answer_does_not_fit(tmp_path: Path) -> None:
    target = tmp_path / "notes.md"
    target.write_bytes("Café?".encode("latin-1"))

    await app.run_chat(
        target,
        Settings(api_key="k"),
        notifier=RecordingNotifier(),
        client_factory=lambda: FakeTransport(["✓ done"]),
    )

    assert target.read_text(encoding="utf-8") == "Café?\n\n> [!ai]\n> ✓ done"


@pytest.mark.asyncio
async def test_run_chat_logs_with_document_and_provider(tmp_path: Path) -> None:
    log_path = logging_utils.setup_logging(log_dir=tmp_path / "logs", console=False)
    target = tmp_path / "notes.md"
    target.write_text("Q?", encoding="utf-8")

    await app.run_chat(
        target,
        Settings(api_key="k", provider="openai"),
        notifier=RecordingNotifier(),
        client_factory=lambda: FakeTransport(["ok"]),
    )
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert "document=notes.md provider=openai model=gpt-4o-mini | Wrote" in log_path.read_text(encoding="utf-8")


def test_provider_override_must_be_a_known_provider() -> None:
    assert app._coerce_cli_overrides(["provider=OpenAI"]) == {"provider": "openai"}
    with pytest.raises(ValueError, match="1minai, openai"):
        app._coerce_cli_overrides(["provider=carrier-pigeon"])


def test_dump_settings_lists_selectable_providers_and_models(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert app.main(["--settings-path", str(tmp_path / "settings.json"), "--dump-settings"]) == 0

    meta = json.loads(capsys.readouterr().out)["meta"]
    assert meta["providers"] == ["1minai", "openai"]
    assert meta["available_models"] == ["gpt-4o-mini", "gpt-4o", "claude-3-5-sonnet", "gemini-1.5-flash"]
