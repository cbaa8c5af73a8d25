"""Factory utilities for instantiating providers."""

from __future__ import annotations

from typing import Dict, Type

from .anthropic import AnthropicProvider
from .base import ImageProvider, LLMProvider
from .config import ProviderConfig, load_image_provider_config, load_provider_config
from .exceptions import ProviderConfigError
from .mock import MockImageProvider, MockProvider
from .openai import OpenAIImageProvider, OpenAIProvider

PROVIDER_MAP: Dict[str, Type[LLMProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "mock": MockProvider,
}

IMAGE_PROVIDER_MAP: Dict[str, Type[ImageProvider]] = {
    "openai": OpenAIImageProvider,
    "mock": MockImageProvider,
}


class ProviderFactory:
    """Factory for creating providers based on configuration."""

    @staticmethod
    def create(config: ProviderConfig | None = None) -> LLMProvider:
        if config is None:
            config = load_provider_config()
        provider_cls = PROVIDER_MAP.get(config.name.lower())
        if provider_cls is None:
            raise ProviderConfigError(f"Unknown provider: {config.name}")
        return provider_cls(config)

    @staticmethod
    def create_image(config: ProviderConfig | None = None) -> ImageProvider:
        if config is None:
            config = load_image_provider_config()
        provider_cls = IMAGE_PROVIDER_MAP.get(config.name.lower())
        if provider_cls is None:
            raise ProviderConfigError(f"Unknown image provider: {config.name}")
        return provider_cls(config)
