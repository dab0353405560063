"""Tests for settings and the session manager."""

import pytest
from pydantic import ValidationError

from genui.config import DEFAULT_MODELS, PROVIDER_BASE_URLS, Settings
from genui.session import SessionManager


def _settings(**kwargs) -> Settings:
    return Settings(_env_file=None, **kwargs)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("GENUI_MAX_STEPS", raising=False)
        settings = _settings()
        assert settings.max_steps == 12
        assert settings.preview_throttle_ms == 50
        assert settings.provider == "openai"

    def test_provider_presets(self):
        settings = _settings(provider="gemini", GEMINI_API_KEY="g-key")
        assert settings.resolved_model == DEFAULT_MODELS["gemini"]
        assert settings.resolved_base_url == PROVIDER_BASE_URLS["gemini"]
        assert settings.api_key == "g-key"

    def test_overrides(self):
        settings = _settings(model="my-model", api_base_url="http://localhost:1234/v1/")
        assert settings.resolved_model == "my-model"
        assert settings.resolved_base_url == "http://localhost:1234/v1/"

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("GENUI_MAX_STEPS", "3")
        monkeypatch.setenv("OPENAI_API_KEY", "env-key")
        settings = _settings()
        assert settings.max_steps == 3
        assert settings.api_key == "env-key"

    @pytest.mark.parametrize("field", [
        {"max_steps": 0},
        {"preview_throttle_ms": -1},
        {"max_sessions": 0},
    ])
    def test_invalid_limits(self, field):
        with pytest.raises(ValidationError):
            _settings(**field)


# ---------------------------------------------------------------------------
# SessionManager
# ---------------------------------------------------------------------------


class TestSessionManager:
    def test_get_or_create_reuses(self, settings):
        sessions = SessionManager(settings)
        session = sessions.get_or_create("a")
        assert sessions.get_or_create("a") is session
        assert sessions.get("a") is session
        assert sessions.get("b") is None

    def test_generated_id(self, settings):
        session = SessionManager(settings).get_or_create()
        assert len(session.session_id) == 32

    def test_lru_eviction(self, settings):
        sessions = SessionManager(settings.model_copy(update={"max_sessions": 2}))
        sessions.get_or_create("a")
        sessions.get_or_create("b")
        sessions.get("a")
        sessions.get_or_create("c")
        assert "a" in sessions
        assert "b" not in sessions
        assert len(sessions) == 2

    def test_session_context(self, settings):
        session = SessionManager(settings).get_or_create("a")
        window_id = session.store.create("Notes", "").window_id
        context = session.context()
        assert context.available_window_ids == [window_id]
        assert context.focused_window_id == window_id

    def test_end_and_close_all(self, settings):
        sessions = SessionManager(settings)
        sessions.get_or_create("a")
        sessions.get_or_create("b")
        assert sessions.end("a") is True
        assert sessions.end("a") is False
        sessions.close_all()
        assert len(sessions) == 0

    @pytest.mark.asyncio
    async def test_eviction_skips_busy_sessions(self, settings):
        sessions = SessionManager(settings.model_copy(update={"max_sessions": 2}))
        busy = sessions.get_or_create("a")
        sessions.get_or_create("b")
        await busy.lock.acquire()
        try:
            sessions.get_or_create("c")
            assert "a" in sessions
            assert "b" not in sessions

            await sessions.get("c").lock.acquire()
            sessions.get_or_create("d")
            assert len(sessions) == 3
            assert sessions.get("a") is busy
        finally:
            busy.lock.release()
