"""Tests for configuration and metrics."""

import pytest

from coder_chat.config import Settings
from coder_chat.metrics import CUSTOM_REGISTRY, render_metrics
from coder_chat.services.session import SessionController

from conftest import DONE, ScriptedTransport, sse


def test_settings_defaults(monkeypatch):
    """Test the default client settings."""
    monkeypatch.delenv("CODER_CHAT_BASE_URL", raising=False)
    settings = Settings()
    assert settings.completion_path == "/v1/chat/completions"
    assert settings.history_window == 1
    assert settings.storage_path.name == "storage.json"


def test_settings_from_environment(monkeypatch, tmp_path):
    """Test that CODER_CHAT_* variables override the defaults."""
    monkeypatch.setenv("CODER_CHAT_BASE_URL", "http://llm.internal:9000")
    monkeypatch.setenv("CODER_CHAT_HISTORY_WINDOW", "4")
    monkeypatch.setenv("CODER_CHAT_STORAGE_PATH", str(tmp_path / "ledger.json"))
    settings = Settings()
    assert settings.base_url == "http://llm.internal:9000"
    assert settings.history_window == 4
    assert settings.storage_path == tmp_path / "ledger.json"


@pytest.mark.asyncio
async def test_dropped_frames_are_exported(ledger, presenter):
    """Test that malformed frames show up in the metrics exposition."""
    before = CUSTOM_REGISTRY.get_sample_value("frames_dropped_total")
    ledger.create()
    controller = SessionController(ledger, ScriptedTransport([sse("{bad"), DONE]), presenter)
    await controller.send("q")

    assert CUSTOM_REGISTRY.get_sample_value("frames_dropped_total") == before + 1
    assert "frames_dropped_total" in render_metrics()
