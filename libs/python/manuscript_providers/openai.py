"""OpenAI chat and image providers."""

from __future__ import annotations

import base64
import time
from typing import Any, Dict, List

import openai
from openai import AsyncOpenAI

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
from .config import ProviderConfig
from .exceptions import ProviderHTTPError, ProviderResponseError, ProviderTransportError
from .pricing import estimate_cost, estimate_image_cost


def _client_for(config: ProviderConfig) -> AsyncOpenAI:
    # Retries belong to ProviderClient; the SDK must not add its own.
    return AsyncOpenAI(
        api_key=config.api_key,
        base_url=config.base_url,
        max_retries=0,
        timeout=config.settings.timeout_seconds,
    )


def _translate(err: openai.OpenAIError) -> Exception:
    if isinstance(err, openai.APIStatusError):
        return ProviderHTTPError(err.status_code, str(err.message)[:500])
    if isinstance(err, openai.APIConnectionError):
        return ProviderTransportError(f"OpenAI request failed: {err}")
    return ProviderResponseError(str(err))


class OpenAIProvider(LLMProvider):
    name = "openai"
    cost_center = CostCenter.OPENAI_API

    def __init__(self, config: ProviderConfig, *, client: AsyncOpenAI | None = None) -> None:
        self._config = config
        self._client = client or _client_for(config)

    def capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_json_mode=True,
            max_output_tokens=self._config.settings.max_output_tokens,
        )

    async def generate(self, request: ProviderRequest) -> ProviderResponse:
        messages: List[Dict[str, Any]] = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})

        params: Dict[str, Any] = {
            "model": self._config.model,
            "messages": messages,
            "temperature": (
                request.temperature
                if request.temperature is not None
                else self._config.settings.temperature
            ),
            "max_completion_tokens": request.max_output_tokens or self._config.settings.max_output_tokens,
        }
        if request.json_mode and self._config.settings.json_mode:
            params["response_format"] = {"type": "json_object"}

        start = time.perf_counter()
        try:
            response = await self._client.chat.completions.create(**params)
        except openai.OpenAIError as err:
            raise _translate(err) from err
        latency_ms = (time.perf_counter() - start) * 1000

        try:
            text = response.choices[0].message.content or ""
        except (IndexError, AttributeError) as err:
            raise ProviderResponseError("OpenAI response missing content") from err

        usage = getattr(response, "usage", None)
        prompt_tokens = getattr(usage, "prompt_tokens", 0) if usage else 0
        completion_tokens = getattr(usage, "completion_tokens", 0) if usage else 0

        return ProviderResponse(
            text=text,
            raw=response,
            model=response.model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            cost_usd=estimate_cost(
                provider=self.name,
                model=response.model,
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
            ),
            latency_ms=latency_ms,
        )

    async def aclose(self) -> None:
        await self._client.close()


class OpenAIImageProvider(ImageProvider):
    """DALL-E style image generation; one request per image."""

    name = "openai"
    cost_center = CostCenter.OPENAI_API

    def __init__(self, config: ProviderConfig, *, client: AsyncOpenAI | None = None) -> None:
        self._config = config
        self._client = client or _client_for(config)

    async def generate_images(self, request: ImageRequest) -> ImageResponse:
        images: list[GeneratedImage] = []
        start = time.perf_counter()
        for _ in range(request.count):
            try:
                response = await self._client.images.generate(
                    model=self._config.model,
                    prompt=request.prompt,
                    n=1,
                    size=request.size,
                    quality=request.quality,
                    response_format="b64_json",
                )
            except openai.OpenAIError as err:
                raise _translate(err) from err
            if not response.data or not response.data[0].b64_json:
                raise ProviderResponseError("OpenAI image response missing data")
            item = response.data[0]
            images.append(
                GeneratedImage(
                    data=base64.b64decode(item.b64_json),
                    revised_prompt=getattr(item, "revised_prompt", None),
                )
            )
        return ImageResponse(
            images=images,
            model=self._config.model,
            cost_usd=estimate_image_cost(
                self._config.model, quality=request.quality, size=request.size, count=len(images)
            ),
            latency_ms=(time.perf_counter() - start) * 1000,
        )

    async def aclose(self) -> None:
        await self._client.close()
