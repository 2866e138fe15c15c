"""Text-generation backends and the registry the engine dispatches through."""

from .base import Provider
from .registry import ProviderRegistry, build_registry

__all__ = ["Provider", "ProviderRegistry", "build_registry"]
