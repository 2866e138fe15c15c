"""Model catalog entries — pricing and capability metadata per backend."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

ProviderId = Literal["gemini", "openai", "anthropic", "deepseek", "groq"]


class ModelPricing(BaseModel):
    """USD per million tokens."""

    input_per_million: float = Field(ge=0.0)
    output_per_million: float = Field(ge=0.0)
    cached_input_per_million: float | None = None


class ModelDefinition(BaseModel):
    id: str
    provider: ProviderId
    display_name: str
    pricing: ModelPricing
    context_window: int = 128_000
    max_output: int = 8192
    speed: Literal["fast", "medium", "slow"] = "fast"
    quality_tier: int = Field(default=3, ge=1, le=5)

    @property
    def blended_price(self) -> float:
        return self.pricing.input_per_million + self.pricing.output_per_million
