"""Unified provider abstraction for Anthropic, OpenAI and the offline mock."""

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
from .client import CallParams, ImageCall, ProviderCall, ProviderClient
from .config import ProviderConfig, ProviderSettings, load_image_provider_config, load_provider_config
from .exceptions import (
    ParseFailure,
    ProviderConfigError,
    ProviderError,
    ProviderFailure,
    ProviderHTTPError,
    ProviderResponseError,
    ProviderTransportError,
)
from .factory import ProviderFactory
from .mock import MockImageProvider, MockProvider
from .repair import repair_json

__all__ = [
    "CallParams",
    "GeneratedImage",
    "ImageCall",
    "ImageProvider",
    "ImageRequest",
    "ImageResponse",
    "LLMProvider",
    "MockImageProvider",
    "MockProvider",
    "ParseFailure",
    "ProviderCall",
    "ProviderCapabilities",
    "ProviderClient",
    "ProviderConfig",
    "ProviderConfigError",
    "ProviderError",
    "ProviderFactory",
    "ProviderFailure",
    "ProviderHTTPError",
    "ProviderRequest",
    "ProviderResponse",
    "ProviderResponseError",
    "ProviderSettings",
    "ProviderTransportError",
    "load_image_provider_config",
    "load_provider_config",
    "repair_json",
]
