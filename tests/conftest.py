"""Shared pytest fixtures."""

from __future__ import annotations

import os

import pytest

from calloutchat.editor.document_model import TextDocument


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for name in list(os.environ):
        if name.startswith("CALLOUTCHAT_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CALLOUTCHAT_LOG_DIR", str(tmp_path / "logs"))


@pytest.fixture
def question_document() -> TextDocument:
    return TextDocument.from_text("What is 2+2?")
