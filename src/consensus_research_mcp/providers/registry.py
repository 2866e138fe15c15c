"""Provider registry — the set of reachable backends for one engine instance."""

from __future__ import annotations

import logging

from ..catalog import ModelCatalog
from ..config import ServerConfig
from .base import Provider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Explicitly constructed mapping of provider id -> :class:`Provider`."""

    def __init__(self, catalog: ModelCatalog | None = None, providers: list[Provider] | None = None) -> None:
        self.catalog = catalog or ModelCatalog()
        self._providers: dict[str, Provider] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: Provider) -> None:
        self._providers[provider.id] = provider

    def get(self, provider_id: str) -> Provider | None:
        return self._providers.get(provider_id)

    def has(self, provider_id: str) -> bool:
        return provider_id in self._providers

    def available(self) -> list[str]:
        """Registered provider ids, in registration order."""
        return list(self._providers)

    def provider_for_model(self, model_id: str) -> Provider | None:
        """Return the provider serving *model_id*, or None when it is not reachable."""
        provider_id = self.catalog.provider_for(model_id)
        return self._providers.get(provider_id) if provider_id else None

    def is_available(self, model_id: str) -> bool:
        return self.provider_for_model(model_id) is not None

    def __len__(self) -> int:
        return len(self._providers)

    async def aclose(self) -> int:
        """Close every provider. Returns count closed."""
        count = 0
        for provider in self._providers.values():
            try:
                await provider.aclose()
            except Exception:
                logger.debug("Closing provider %s failed", provider.id, exc_info=True)
            count += 1
        return count


def build_registry(config: ServerConfig, catalog: ModelCatalog | None = None) -> ProviderRegistry:
    """Register one provider per configured API key (or simulators when enabled)."""
    from .gemini import GeminiProvider
    from .http import AnthropicProvider, OpenAICompatibleProvider
    from .simulator import SimulatorProvider

    catalog = catalog or ModelCatalog()
    registry = ProviderRegistry(catalog)

    if config.simulate:
        for provider_id in ("gemini", "openai", "anthropic", "deepseek"):
            registry.register(SimulatorProvider(provider_id, catalog))
        logger.info("Simulation mode: registered %d simulated providers", len(registry))
        return registry

    for provider_id, key in config.api_keys.items():
        try:
            if provider_id == "gemini":
                registry.register(GeminiProvider(key, catalog))
            elif provider_id == "anthropic":
                registry.register(AnthropicProvider(key, catalog))
            else:
                registry.register(OpenAICompatibleProvider(provider_id, key, catalog))
            logger.info("Initialized %s provider", provider_id)
        except Exception as exc:
            logger.error("Failed to initialize %s provider: %s", provider_id, exc)

    if not len(registry):
        logger.warning("No providers initialized — check your API keys")
    return registry
