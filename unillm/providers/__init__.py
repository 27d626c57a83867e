"""Vendor adapters and the factory that builds them from configuration."""

from __future__ import annotations

import logging

from unillm.config import ClientConfig, ProviderConfig
from unillm.providers.base import Provider
from unillm.providers.ollama import OllamaProvider
from unillm.providers.openai_compat import OpenAICompatProvider
from unillm.registry import ProviderRegistry

logger = logging.getLogger(__name__)


def create_provider(cfg: ProviderConfig, max_rounds: int = 8) -> Provider:
    """Instantiate the adapter described by *cfg*."""
    if cfg.kind == "openai":
        return OpenAICompatProvider(
            url=cfg.url,
            api_key=cfg.api_key(),
            timeout=cfg.timeout_seconds,
            models=cfg.models,
            max_rounds=max_rounds,
        )
    if cfg.kind == "ollama":
        return OllamaProvider(
            url=cfg.url,
            timeout=cfg.timeout_seconds,
            models=cfg.models,
            max_rounds=max_rounds,
        )
    raise ValueError(f"Unknown provider kind: {cfg.kind!r}")


def build_registry(cfg: ClientConfig) -> ProviderRegistry:
    """Register one adapter per configured provider, in config order."""
    registry = ProviderRegistry()
    for pcfg in cfg.providers:
        registry.register(create_provider(pcfg, max_rounds=cfg.completion.max_rounds))
    return registry


__all__ = [
    "OllamaProvider",
    "OpenAICompatProvider",
    "Provider",
    "build_registry",
    "create_provider",
]
