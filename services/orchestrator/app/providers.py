"""Utilities for building the provider client used inside the orchestrator."""

from __future__ import annotations

import logging

from manuscript_providers import (
    ProviderClient,
    ProviderConfig,
    ProviderFactory,
    load_image_provider_config,
    load_provider_config,
)
from manuscript_substrate import CostLedger

logger = logging.getLogger(__name__)


def resolve_provider_config(name: str | None = None) -> ProviderConfig:
    """Chat provider from ``LLM_PROVIDER`` unless ``name`` overrides it."""

    return load_provider_config(prefix=name) if name else load_provider_config()


def build_provider_client(
    ledger: CostLedger | None,
    *,
    service_name: str = "orchestrator",
    provider_name: str | None = None,
) -> ProviderClient:
    config = resolve_provider_config(provider_name)
    image_config = load_image_provider_config()
    logger.info(
        "Provider client configured",
        extra={"provider": config.name, "model": config.model, "image_provider": image_config.name},
    )
    return ProviderClient(
        ProviderFactory.create(config),
        ledger=ledger,
        image_provider=ProviderFactory.create_image(image_config),
        service_name=service_name,
    )
