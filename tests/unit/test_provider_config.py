"""Tests for provider configuration loading."""

import os

import pytest

from manuscript_providers import load_image_provider_config, load_provider_config
from manuscript_providers.config import DEFAULT_PROVIDER, IMAGE_PROVIDER_ENV_VAR, PROVIDER_ENV_VAR


@pytest.fixture(autouse=True)
def clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith(("OPENAI_", "ANTHROPIC_", "MOCK_")):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv(PROVIDER_ENV_VAR, raising=False)
    monkeypatch.delenv(IMAGE_PROVIDER_ENV_VAR, raising=False)


def test_defaults_to_mock() -> None:
    cfg = load_provider_config()
    assert cfg.name == DEFAULT_PROVIDER
    assert cfg.api_key == "mock"
    assert cfg.model == "mock"


def test_load_anthropic_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(PROVIDER_ENV_VAR, "anthropic")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "key")
    monkeypatch.setenv("ANTHROPIC_TEMPERATURE", "0.2")
    monkeypatch.setenv("ANTHROPIC_JSON_MODE", "off")
    cfg = load_provider_config()
    assert cfg.name == "anthropic"
    assert cfg.model == "claude-sonnet-4-20250514"
    assert cfg.settings.temperature == 0.2
    assert cfg.settings.json_mode is False


def test_missing_api_key_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(PROVIDER_ENV_VAR, "openai")
    with pytest.raises(Exception):
        load_provider_config()


def test_custom_prefix(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GATEWAY_API_KEY", "abc")
    monkeypatch.setenv("GATEWAY_MODEL", "model")
    monkeypatch.setenv("GATEWAY_BASE_URL", "https://gateway.example/v1")
    cfg = load_provider_config(prefix="gateway")
    assert cfg.name == "gateway"
    assert cfg.base_url == "https://gateway.example/v1"
    assert cfg.settings.temperature == 0.5


def test_image_provider_follows_openai_key(monkeypatch: pytest.MonkeyPatch) -> None:
    assert load_image_provider_config().name == "mock"

    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    cfg = load_image_provider_config()
    assert cfg.name == "openai"
    assert cfg.model == "dall-e-3"
