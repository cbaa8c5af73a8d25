"""Core interfaces and dataclasses for provider interactions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, MutableMapping

from manuscript_schemas import CostCenter


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class ProviderRequest:
    """Normalized request passed to providers."""

    prompt: str
    system_prompt: str | None = None
    temperature: float | None = None
    max_output_tokens: int | None = None
    json_mode: bool = True
    metadata: MutableMapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ProviderResponse:
    """Standard response returned by providers."""

    text: str
    raw: Any
    model: str
    prompt_tokens: int
    completion_tokens: int
    cost_usd: float | None = None
    latency_ms: float | None = None
    received_at: datetime = field(default_factory=_utcnow)


@dataclass(slots=True)
class ProviderCapabilities:
    """Capability flags used when choosing a provider."""

    supports_json_mode: bool = False
    supports_images: bool = False
    max_input_tokens: int | None = None
    max_output_tokens: int | None = None


@dataclass(slots=True)
class ImageRequest:
    prompt: str
    count: int = 1
    size: str = "1024x1792"
    quality: str = "hd"
    metadata: MutableMapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class GeneratedImage:
    data: bytes
    content_type: str = "image/png"
    revised_prompt: str | None = None


@dataclass(slots=True)
class ImageResponse:
    images: list[GeneratedImage]
    model: str
    cost_usd: float | None = None
    latency_ms: float | None = None


class LLMProvider(ABC):
    """Abstract base class implemented by concrete text providers."""

    name: str
    cost_center: CostCenter = CostCenter.MOCK

    @abstractmethod
    def capabilities(self) -> ProviderCapabilities:
        """Return capability metadata."""

    @abstractmethod
    async def generate(self, request: ProviderRequest) -> ProviderResponse:
        """Generate a text (usually JSON) response for the prompt.

        Implementations raise :class:`ProviderHTTPError` for non-2xx responses
        and :class:`ProviderTransportError` when the request never completed.
        They never retry on their own.
        """

    async def aclose(self) -> None:
        return None


class ImageProvider(ABC):
    name: str
    cost_center: CostCenter = CostCenter.MOCK

    @abstractmethod
    async def generate_images(self, request: ImageRequest) -> ImageResponse:
        """Produce ``request.count`` images for the prompt."""

    async def aclose(self) -> None:
        return None
