"""Anthropic Messages API provider over httpx."""

from __future__ import annotations

import time
from typing import Any, Dict

import httpx

from manuscript_schemas import CostCenter

from .base import LLMProvider, ProviderCapabilities, ProviderRequest, ProviderResponse
from .config import ProviderConfig
from .exceptions import ProviderHTTPError, ProviderResponseError, ProviderTransportError
from .pricing import estimate_cost

ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"


class AnthropicProvider(LLMProvider):
    name = "anthropic"
    cost_center = CostCenter.CLAUDE_API

    def __init__(self, config: ProviderConfig, *, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._url = config.base_url or ANTHROPIC_API_URL
        self._client = client or httpx.AsyncClient(timeout=config.settings.timeout_seconds)

    def capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_json_mode=False,
            max_input_tokens=200_000,
            max_output_tokens=self._config.settings.max_output_tokens,
        )

    async def generate(self, request: ProviderRequest) -> ProviderResponse:
        temperature = (
            request.temperature
            if request.temperature is not None
            else self._config.settings.temperature
        )
        body: Dict[str, Any] = {
            "model": self._config.model,
            "max_tokens": request.max_output_tokens or self._config.settings.max_output_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": request.prompt}],
        }
        if request.system_prompt:
            body["system"] = request.system_prompt

        headers = {
            "content-type": "application/json",
            "x-api-key": self._config.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

        start = time.perf_counter()
        try:
            response = await self._client.post(self._url, json=body, headers=headers)
        except httpx.TransportError as err:
            raise ProviderTransportError(f"Anthropic request failed: {err}") from err
        latency_ms = (time.perf_counter() - start) * 1000

        if response.status_code >= 400:
            raise ProviderHTTPError(response.status_code, response.text[:500])

        try:
            data = response.json()
            blocks = data.get("content") or []
            text = "".join(block.get("text", "") for block in blocks if block.get("type") == "text")
        except (ValueError, AttributeError) as err:
            raise ProviderResponseError("Anthropic response was not valid JSON") from err
        if not text:
            raise ProviderResponseError("Anthropic response missing text content")

        usage = data.get("usage") or {}
        prompt_tokens = int(usage.get("input_tokens") or 0)
        completion_tokens = int(usage.get("output_tokens") or 0)
        model = data.get("model") or self._config.model

        return ProviderResponse(
            text=text,
            raw=data,
            model=model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            cost_usd=estimate_cost(
                provider=self.name,
                model=model,
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
            ),
            latency_ms=latency_ms,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
