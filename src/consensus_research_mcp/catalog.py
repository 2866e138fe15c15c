"""Model catalog — pricing table and provider routing, built explicitly per engine.

A catalog instance is passed to the workflow selector and the dispatch
coordinator; there is no process-wide registry.
"""

from __future__ import annotations

from collections.abc import Iterable

from .models.catalog import ModelDefinition, ModelPricing

# Substitution target per provider when a roster backend fails.
CANONICAL_MODELS: dict[str, str] = {
    "gemini": "gemini-2.5-flash",
    "groq": "llama-3.3-70b-versatile",
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3.5-haiku",
    "deepseek": "deepseek-chat",
}

# Preference order for substitutes (cheap, generous quotas first).
SUBSTITUTION_ORDER: tuple[str, ...] = ("gemini", "groq", "openai", "anthropic", "deepseek")


def _m(
    model_id: str,
    provider: str,
    name: str,
    price_in: float,
    price_out: float,
    *,
    context: int = 128_000,
    speed: str = "fast",
    tier: int = 3,
) -> ModelDefinition:
    return ModelDefinition(
        id=model_id,
        provider=provider,
        display_name=name,
        pricing=ModelPricing(input_per_million=price_in, output_per_million=price_out),
        context_window=context,
        speed=speed,
        quality_tier=tier,
    )


DEFAULT_MODELS: list[ModelDefinition] = [
    # Anthropic
    _m("claude-3.5-haiku", "anthropic", "Claude 3.5 Haiku", 0.80, 4.00, context=200_000),
    _m("claude-3.7-sonnet", "anthropic", "Claude 3.7 Sonnet", 3.00, 15.00, context=200_000, tier=4),
    _m("claude-sonnet-4", "anthropic", "Claude Sonnet 4", 3.00, 15.00, context=200_000, tier=4),
    _m("claude-sonnet-4.5", "anthropic", "Claude Sonnet 4.5", 3.00, 15.00, context=200_000, tier=5),
    _m("claude-opus-4.5", "anthropic", "Claude Opus 4.5", 5.00, 25.00, context=200_000, speed="medium", tier=5),
    # OpenAI
    _m("gpt-4o-mini", "openai", "GPT-4o Mini", 0.15, 0.60),
    _m("gpt-4o", "openai", "GPT-4o", 2.50, 10.00, tier=4),
    _m("gpt-5", "openai", "GPT-5", 1.25, 10.00, context=200_000, speed="medium", tier=5),
    _m("gpt-5-mini", "openai", "GPT-5 Mini", 0.25, 2.00, tier=4),
    _m("gpt-5-nano", "openai", "GPT-5 Nano", 0.05, 0.40, context=64_000, tier=2),
    _m("o3", "openai", "OpenAI o3", 2.00, 8.00, context=200_000, speed="slow", tier=5),
    _m("o4-mini", "openai", "OpenAI o4 Mini", 1.10, 4.40, context=200_000, speed="medium", tier=4),
    # Gemini
    _m("gemini-2.5-flash", "gemini", "Gemini 2.5 Flash", 0.10, 0.40, context=1_000_000, tier=4),
    _m("gemini-2.5-flash-lite", "gemini", "Gemini 2.5 Flash Lite", 0.10, 0.40, context=1_000_000),
    _m("gemini-2.5-pro", "gemini", "Gemini 2.5 Pro", 1.25, 10.00, context=1_000_000, speed="medium", tier=5),
    # DeepSeek
    _m("deepseek-chat", "deepseek", "DeepSeek V3 (Chat)", 0.27, 1.10, context=64_000, tier=4),
    _m("deepseek-reasoner", "deepseek", "DeepSeek R1 (Reasoner)", 0.55, 2.19, context=64_000, speed="medium", tier=5),
    # Groq
    _m("llama-3.3-70b-versatile", "groq", "Llama 3.3 70B (Groq)", 0.59, 0.79, tier=3),
]


def _provider_by_prefix(model_id: str) -> str | None:
    """Route unknown model ids by naming convention."""
    if model_id.startswith(("gpt-", "o1", "o3", "o4")):
        return "openai"
    if model_id.startswith("claude"):
        return "anthropic"
    if model_id.startswith("gemini"):
        return "gemini"
    if model_id.startswith("deepseek"):
        return "deepseek"
    if model_id.startswith(("llama", "mixtral", "gemma")):
        return "groq"
    return None


class ModelCatalog:
    """Lookup of model definitions with cost estimation."""

    def __init__(self, models: Iterable[ModelDefinition] | None = None) -> None:
        self._models: dict[str, ModelDefinition] = {
            m.id: m for m in (DEFAULT_MODELS if models is None else models)
        }

    def get(self, model_id: str) -> ModelDefinition | None:
        return self._models.get(model_id)

    def all(self) -> list[ModelDefinition]:
        return list(self._models.values())

    def by_provider(self, provider: str) -> list[ModelDefinition]:
        return [m for m in self._models.values() if m.provider == provider]

    def provider_for(self, model_id: str) -> str | None:
        """Return the provider id that serves *model_id*, or None if unroutable."""
        model = self._models.get(model_id)
        if model is not None:
            return model.provider
        return _provider_by_prefix(model_id)

    def estimate_cost(self, model_id: str, input_tokens: float, output_tokens: float) -> float:
        """USD cost of a call; 0.0 for models without pricing."""
        model = self._models.get(model_id)
        if model is None:
            return 0.0
        return (
            input_tokens / 1_000_000 * model.pricing.input_per_million
            + output_tokens / 1_000_000 * model.pricing.output_per_million
        )

    def cheapest(self, model_ids: Iterable[str]) -> str | None:
        """Cheapest of *model_ids* by blended price; unpriced ids rank last."""
        ranked = sorted(
            model_ids,
            key=lambda mid: (self._models[mid].blended_price if mid in self._models else float("inf")),
        )
        return ranked[0] if ranked else None
