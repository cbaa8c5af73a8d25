"""Configuration models and helpers for provider selection."""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

PROVIDER_ENV_VAR = "LLM_PROVIDER"
IMAGE_PROVIDER_ENV_VAR = "IMAGE_PROVIDER"
DEFAULT_PROVIDER = "mock"

DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-20250514",
    "openai": "gpt-4o",
    "openai_image": "dall-e-3",
    "mock": "mock",
}

_TRUTHY = {"true", "1", "yes", "on"}


class ProviderSettings(BaseModel):
    """Per-call default parameters."""

    temperature: float = Field(0.5, ge=0, le=2)
    max_output_tokens: int = Field(4096, ge=16)
    timeout_seconds: float = Field(120.0, gt=0)
    json_mode: bool = True


class ProviderConfig(BaseModel):
    """Configuration for a single provider instance."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    api_key: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    base_url: str | None = None
    settings: ProviderSettings = Field(default_factory=ProviderSettings)


def load_provider_config(prefix: str | None = None) -> ProviderConfig:
    """Load configuration from environment variables.

    Environment variables used (assuming prefix "ANTHROPIC"):
        ANTHROPIC_API_KEY
        ANTHROPIC_MODEL (optional, defaults per provider)
        ANTHROPIC_BASE_URL (optional, e.g. an AI gateway)
        ANTHROPIC_TEMPERATURE (optional)
        ANTHROPIC_MAX_OUTPUT_TOKENS (optional)
        ANTHROPIC_TIMEOUT (optional, seconds)

    Raises:
        pydantic.ValidationError: If required variables are missing or invalid.
    """

    provider_name = (prefix or os.getenv(PROVIDER_ENV_VAR, DEFAULT_PROVIDER)).upper()

    def read_env(key: str, default: Any | None = None) -> Any:
        value = os.getenv(f"{provider_name}_{key}")
        return default if value in (None, "") else value

    name = provider_name.lower()
    settings: dict[str, Any] = {}
    for field_name, env_key in (
        ("temperature", "TEMPERATURE"),
        ("max_output_tokens", "MAX_OUTPUT_TOKENS"),
        ("timeout_seconds", "TIMEOUT"),
    ):
        raw = read_env(env_key)
        if raw is not None:
            settings[field_name] = raw
    json_mode = read_env("JSON_MODE")
    if json_mode is not None:
        settings["json_mode"] = str(json_mode).strip().lower() in _TRUTHY

    api_key = read_env("API_KEY", "mock" if name == "mock" else "")
    return ProviderConfig.model_validate(
        {
            "name": name,
            "api_key": api_key,
            "model": read_env("MODEL", DEFAULT_MODELS.get(name, "")),
            "base_url": read_env("BASE_URL"),
            "settings": settings,
        }
    )


def load_image_provider_config() -> ProviderConfig:
    """Image generation reads ``OPENAI_API_KEY`` and ``OPENAI_IMAGE_MODEL``."""

    name = os.getenv(IMAGE_PROVIDER_ENV_VAR, "openai" if os.getenv("OPENAI_API_KEY") else "mock").lower()
    if name == "mock":
        return ProviderConfig(name="mock", api_key="mock", model="mock-image")
    return ProviderConfig.model_validate(
        {
            "name": name,
            "api_key": os.getenv(f"{name.upper()}_API_KEY", ""),
            "model": os.getenv(f"{name.upper()}_IMAGE_MODEL") or DEFAULT_MODELS["openai_image"],
            "base_url": os.getenv(f"{name.upper()}_BASE_URL") or None,
        }
    )
