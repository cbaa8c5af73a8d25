"""Deterministic mock providers for tests and offline development."""

from __future__ import annotations

import base64
import json
from typing import Any, Mapping

from manuscript_schemas import CostCenter

from .base import (
    GeneratedImage,
    ImageProvider,
    ImageRequest,
    ImageResponse,
    LLMProvider,
    ProviderCapabilities,
    ProviderRequest,
    ProviderResponse,
)
from .config import ProviderConfig, ProviderSettings

DEFAULT_TEXT = "Mock response generated for testing."

# 1x1 transparent PNG.
_PIXEL_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)

_CANNED: Mapping[str, dict[str, Any]] = {
    "keywords": {
        "keywords": [f"mock keyword phrase {index}" for index in range(1, 8)],
        "rationale": {},
    },
    "categories": {"primary": ["Fiction > General"], "secondary": []},
    "book-description": {"short": DEFAULT_TEXT, "long": DEFAULT_TEXT},
}


class MockProvider(LLMProvider):
    name = "mock"
    cost_center = CostCenter.MOCK

    def __init__(
        self,
        config: ProviderConfig | None = None,
        *,
        responses: Mapping[str, dict[str, Any]] | None = None,
    ) -> None:
        if config is None:
            settings = ProviderSettings(temperature=0.1)
            config = ProviderConfig(name="mock", api_key="mock", model="mock", settings=settings)
        self._config = config
        self._responses = {**_CANNED, **(responses or {})}
        self.requests: list[ProviderRequest] = []

    def capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_json_mode=True,
            max_input_tokens=32000,
            max_output_tokens=2000,
        )

    async def generate(self, request: ProviderRequest) -> ProviderResponse:
        self.requests.append(request)
        operation = str(request.metadata.get("operation", ""))
        payload = self._responses.get(operation) or {
            "message": DEFAULT_TEXT,
            "echo": request.prompt[:50],
            "overallScore": 7,
            "issues": [],
            "strengths": [],
        }
        text = json.dumps(payload)
        return ProviderResponse(
            text=text,
            raw={"mock": True, "payload": payload},
            model=self._config.model,
            prompt_tokens=len(request.prompt.split()),
            completion_tokens=len(text.split()),
            cost_usd=0.0,
            latency_ms=1.0,
        )


class MockImageProvider(ImageProvider):
    name = "mock"
    cost_center = CostCenter.MOCK

    def __init__(self, config: ProviderConfig | None = None) -> None:
        self._model = config.model if config else "mock-image"

    async def generate_images(self, request: ImageRequest) -> ImageResponse:
        return ImageResponse(
            images=[GeneratedImage(data=_PIXEL_PNG) for _ in range(request.count)],
            model=self._model,
            cost_usd=0.0,
            latency_ms=1.0,
        )
