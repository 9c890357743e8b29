"""Tests for configuration warnings."""

import pytest

from emojilens import config


@pytest.fixture(autouse=True)
def _defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "LLM_PROVIDER", "openai")
    monkeypatch.setattr(config, "LLM_API_KEY", "sk-test")
    monkeypatch.setattr(config, "SERVICE_URL", "")
    monkeypatch.setattr(config, "INTERPRETER_ENABLED", True)
    monkeypatch.setattr(config, "ADVISORY_SECONDS", 10.0)
    monkeypatch.setattr(config, "TIMEOUT_SECONDS", 30.0)


class TestConfigWarnings:
    def test_clean(self) -> None:
        assert config.config_warnings() == []
        assert config.service_enabled()

    def test_missing_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(config, "LLM_API_KEY", "")
        assert any("LLM_API_KEY" in w for w in config.config_warnings())
        assert not config.service_enabled()

    def test_missing_key_ignored_when_disabled(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(config, "LLM_API_KEY", "")
        monkeypatch.setattr(config, "INTERPRETER_ENABLED", False)
        assert config.config_warnings() == []

    def test_http_needs_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(config, "LLM_PROVIDER", "http")
        assert any("EMOJILENS_SERVICE_URL" in w for w in config.config_warnings())
        monkeypatch.setattr(config, "SERVICE_URL", "http://localhost:8000")
        assert config.config_warnings() == []
        assert config.service_enabled()

    def test_unknown_provider(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(config, "LLM_PROVIDER", "carrier-pigeon")
        assert any("carrier-pigeon" in w for w in config.config_warnings())

    def test_timers_out_of_order(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(config, "TIMEOUT_SECONDS", 5.0)
        assert any("EMOJILENS_TIMEOUT_SECONDS" in w for w in config.config_warnings())
