"""Tests for the mock provider, the factory and the Anthropic adapter."""

import asyncio
import json

import httpx
import pytest

from manuscript_providers import (
    MockImageProvider,
    MockProvider,
    ProviderConfig,
    ProviderFactory,
    ProviderHTTPError,
    ProviderRequest,
    ProviderSettings,
)
from manuscript_providers.anthropic import AnthropicProvider
from manuscript_providers.exceptions import ProviderConfigError, ProviderResponseError


def test_mock_generate_sync() -> None:
    provider = MockProvider()
    request = ProviderRequest(prompt="Hello world")
    response = asyncio.run(provider.generate(request))
    assert response.model == "mock"
    assert json.loads(response.text)["overallScore"] == 7
    assert provider.requests == [request]


def test_mock_answers_by_operation() -> None:
    provider = MockProvider(responses={"categories": {"primary": ["Thriller"]}})
    keywords = asyncio.run(provider.generate(ProviderRequest(prompt="p", metadata={"operation": "keywords"})))
    categories = asyncio.run(provider.generate(ProviderRequest(prompt="p", metadata={"operation": "categories"})))
    assert len(json.loads(keywords.text)["keywords"]) == 7
    assert json.loads(categories.text) == {"primary": ["Thriller"]}


def test_factory_creates_mock_when_config_provided() -> None:
    config = ProviderConfig(
        name="mock",
        api_key="mock",
        model="mock",
        settings=ProviderSettings(),
    )
    assert isinstance(ProviderFactory.create(config), MockProvider)
    assert isinstance(ProviderFactory.create_image(ProviderConfig(name="mock", api_key="m", model="m")), MockImageProvider)


def test_factory_rejects_unknown_provider() -> None:
    with pytest.raises(ProviderConfigError):
        ProviderFactory.create(ProviderConfig(name="gemini", api_key="k", model="m"))


def _anthropic(handler) -> AnthropicProvider:
    config = ProviderConfig(name="anthropic", api_key="key", model="claude-sonnet-4-5")
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AnthropicProvider(config, client=client)


def test_anthropic_parses_text_blocks_and_usage() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "model": "claude-sonnet-4-5",
                "content": [{"type": "text", "text": '{"ok": '}, {"type": "text", "text": "true}"}],
                "usage": {"input_tokens": 1_000_000, "output_tokens": 0},
            },
        )

    provider = _anthropic(handler)
    response = asyncio.run(provider.generate(ProviderRequest(prompt="Analyse", system_prompt="Be terse")))

    assert response.text == '{"ok": true}'
    assert response.cost_usd == 3.0
    body = json.loads(seen[0].content)
    assert body["system"] == "Be terse"
    assert seen[0].headers["x-api-key"] == "key"


def test_anthropic_maps_errors() -> None:
    rate_limited = _anthropic(lambda request: httpx.Response(429, text="slow down"))
    with pytest.raises(ProviderHTTPError) as excinfo:
        asyncio.run(rate_limited.generate(ProviderRequest(prompt="p")))
    assert excinfo.value.retryable is True

    empty = _anthropic(lambda request: httpx.Response(200, json={"content": []}))
    with pytest.raises(ProviderResponseError):
        asyncio.run(empty.generate(ProviderRequest(prompt="p")))
