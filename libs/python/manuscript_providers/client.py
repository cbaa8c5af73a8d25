"""Retrying, cost-tracked access to text and image providers."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol

from manuscript_observability import observe_provider_response, record_provider_retry
from manuscript_schemas import Attribution, CostEntry

from .base import GeneratedImage, ImageProvider, ImageRequest, LLMProvider, ProviderRequest, ProviderResponse
from .exceptions import (
    ParseFailure,
    ProviderConfigError,
    ProviderFailure,
    ProviderHTTPError,
    ProviderResponseError,
    ProviderTransportError,
)
from .repair import repair_json

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 30.0
DEFAULT_JITTER = 0.1


class CostSink(Protocol):
    async def append(self, entry: CostEntry) -> None: ...


@dataclass(slots=True)
class CallParams:
    temperature: float | None = None
    max_output_tokens: int | None = None
    system_prompt: str | None = None
    json_mode: bool = True


@dataclass(slots=True)
class ProviderCall:
    """Outcome of one logical call, however many HTTP attempts it took."""

    parsed: dict[str, Any]
    text: str
    model: str
    provider: str
    attempts: int
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    parse_failed: bool = False
    error_message: str | None = None


@dataclass(slots=True)
class ImageCall:
    images: list[GeneratedImage]
    model: str
    provider: str
    attempts: int
    cost_usd: float = 0.0
    revised_prompts: list[str] = field(default_factory=list)


class ProviderClient:
    """Wraps a provider with retry, JSON repair and cost recording.

    Retries happen on 429, 5xx, transport failures, empty responses and
    unparseable JSON. Any other 4xx fails immediately. The wait before retry
    ``n`` is ``min(2**n * base_delay, max_delay)`` with proportional jitter.
    Exactly one cost entry is written per successful call.
    """

    def __init__(
        self,
        provider: LLMProvider,
        *,
        ledger: CostSink | None = None,
        image_provider: ImageProvider | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
        jitter: float = DEFAULT_JITTER,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
        service_name: str = "orchestrator",
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.provider = provider
        self.image_provider = image_provider
        self.ledger = ledger
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.service_name = service_name
        self._sleep = sleep or asyncio.sleep

    def backoff_delay(self, attempt: int) -> float:
        delay = min((2**attempt) * self.base_delay, self.max_delay)
        if self.jitter:
            delay *= 1 + random.uniform(-self.jitter, self.jitter)
        return max(0.0, min(delay, self.max_delay))

    async def call(
        self,
        prompt: str,
        attribution: Attribution,
        params: CallParams | None = None,
    ) -> ProviderCall:
        """Return the parsed JSON object or raise :class:`ProviderFailure`."""

        return await self._call(prompt, attribution, params or CallParams(), allow_sentinel=False)

    async def call_section(
        self,
        prompt: str,
        attribution: Attribution,
        params: CallParams | None = None,
    ) -> ProviderCall:
        """Like :meth:`call`, but an unparseable final answer comes back with
        ``parse_failed=True`` instead of raising."""

        return await self._call(prompt, attribution, params or CallParams(), allow_sentinel=True)

    async def _call(
        self,
        prompt: str,
        attribution: Attribution,
        params: CallParams,
        *,
        allow_sentinel: bool,
    ) -> ProviderCall:
        request = ProviderRequest(
            prompt=prompt,
            system_prompt=params.system_prompt,
            temperature=params.temperature,
            max_output_tokens=params.max_output_tokens,
            json_mode=params.json_mode,
            metadata={"operation": attribution.operation, "feature": attribution.feature_name},
        )
        provider_name = self.provider.name
        last_error: Exception | None = None
        last_text = ""

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await self.provider.generate(request)
            except ProviderHTTPError as err:
                if not err.retryable:
                    raise ProviderFailure(
                        f"{provider_name} rejected the request: {err}",
                        attempts=attempt,
                        upstream_status=err.status_code,
                    ) from err
                last_error = err
                reason = "rate_limited" if err.status_code == 429 else "server_error"
            except ProviderTransportError as err:
                last_error = err
                reason = "transport"
            except ProviderResponseError as err:
                last_error = err
                reason = "invalid_response"
            else:
                self._observe(response, attribution)
                try:
                    parsed = repair_json(response.text)
                except ParseFailure as err:
                    last_error = err
                    last_text = response.text
                    reason = "parse"
                else:
                    result = ProviderCall(
                        parsed=parsed,
                        text=response.text,
                        model=response.model,
                        provider=provider_name,
                        attempts=attempt,
                        input_tokens=response.prompt_tokens,
                        output_tokens=response.completion_tokens,
                        cost_usd=response.cost_usd or 0.0,
                    )
                    await self._record_cost(
                        attribution,
                        cost_usd=result.cost_usd,
                        model=result.model,
                        input_tokens=result.input_tokens,
                        output_tokens=result.output_tokens,
                        attempts=attempt,
                        cost_center=self.provider.cost_center,
                    )
                    return result

            if attempt < self.max_attempts:
                delay = self.backoff_delay(attempt)
                logger.warning(
                    "Provider call failed; retrying",
                    extra={
                        "provider": provider_name,
                        "operation": attribution.operation,
                        "attempt": attempt,
                        "reason": reason,
                        "delay_seconds": round(delay, 3),
                        "error": str(last_error),
                    },
                )
                record_provider_retry(provider=provider_name, reason=reason, service_name=self.service_name)
                await self._sleep(delay)

        if allow_sentinel and isinstance(last_error, ParseFailure):
            logger.error(
                "Provider output unparseable after retries",
                extra={"provider": provider_name, "operation": attribution.operation},
            )
            return ProviderCall(
                parsed={},
                text=last_text,
                model="",
                provider=provider_name,
                attempts=self.max_attempts,
                parse_failed=True,
                error_message=str(last_error),
            )

        upstream = last_error.status_code if isinstance(last_error, ProviderHTTPError) else None
        raise ProviderFailure(
            f"{provider_name} call failed after {self.max_attempts} attempts: {last_error}",
            attempts=self.max_attempts,
            upstream_status=upstream,
        ) from last_error

    async def generate_images(
        self,
        prompt: str,
        count: int,
        attribution: Attribution,
        *,
        size: str = "1024x1792",
        quality: str = "hd",
    ) -> ImageCall:
        if self.image_provider is None:
            raise ProviderConfigError("No image provider configured")
        provider = self.image_provider
        request = ImageRequest(prompt=prompt, count=count, size=size, quality=quality)
        last_error: Exception | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await provider.generate_images(request)
            except ProviderHTTPError as err:
                if not err.retryable:
                    raise ProviderFailure(
                        f"{provider.name} rejected the image request: {err}",
                        attempts=attempt,
                        upstream_status=err.status_code,
                    ) from err
                last_error = err
            except (ProviderTransportError, ProviderResponseError) as err:
                last_error = err
            else:
                observe_provider_response(
                    operation=attribution.operation,
                    provider=provider.name,
                    service_name=self.service_name,
                    latency_ms=response.latency_ms,
                    cost_usd=response.cost_usd,
                )
                await self._record_cost(
                    attribution,
                    cost_usd=response.cost_usd or 0.0,
                    model=response.model,
                    attempts=attempt,
                    cost_center=provider.cost_center,
                    extra={"images": len(response.images), "size": size, "quality": quality},
                )
                return ImageCall(
                    images=response.images,
                    model=response.model,
                    provider=provider.name,
                    attempts=attempt,
                    cost_usd=response.cost_usd or 0.0,
                    revised_prompts=[image.revised_prompt for image in response.images if image.revised_prompt],
                )

            if attempt < self.max_attempts:
                delay = self.backoff_delay(attempt)
                logger.warning(
                    "Image generation failed; retrying",
                    extra={"provider": provider.name, "attempt": attempt, "error": str(last_error)},
                )
                record_provider_retry(provider=provider.name, reason="image", service_name=self.service_name)
                await self._sleep(delay)

        raise ProviderFailure(
            f"{provider.name} image generation failed after {self.max_attempts} attempts: {last_error}",
            attempts=self.max_attempts,
        ) from last_error

    def _observe(self, response: ProviderResponse, attribution: Attribution) -> None:
        observe_provider_response(
            operation=attribution.operation,
            provider=self.provider.name,
            service_name=self.service_name,
            input_tokens=response.prompt_tokens,
            output_tokens=response.completion_tokens,
            latency_ms=response.latency_ms,
            cost_usd=response.cost_usd,
        )

    async def _record_cost(
        self,
        attribution: Attribution,
        *,
        cost_usd: float,
        model: str,
        attempts: int,
        cost_center,
        input_tokens: int | None = None,
        output_tokens: int | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        if self.ledger is None:
            return
        entry = CostEntry.from_attribution(
            attribution,
            cost_center=cost_center,
            cost_usd=cost_usd,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            metadata={"attempts": attempts, **(extra or {})},
        )
        try:
            await self.ledger.append(entry)
        except Exception:  # noqa: BLE001
            logger.exception(
                "Failed to record cost entry",
                extra={"operation": attribution.operation, "cost_usd": entry.cost_usd},
            )
