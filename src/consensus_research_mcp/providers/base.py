"""Provider contract — every text-generation backend implements ``generate``."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..catalog import ModelCatalog
from ..models.research import Generation, GenerationParams


class Provider(ABC):
    """A text-generation capability the engine can dispatch to.

    Implementations raise :class:`~consensus_research_mcp.errors.ProviderError`
    (or let transport exceptions escape) on failure; retry, timeout, and
    admission are applied by the caller.
    """

    id: str
    name: str

    def __init__(self, catalog: ModelCatalog | None = None) -> None:
        self.catalog = catalog or ModelCatalog()

    @abstractmethod
    async def generate(self, params: GenerationParams) -> Generation:
        """Run one generation call and return the parsed result."""

    def _build(self, model: str, text: str, input_tokens: int, output_tokens: int) -> Generation:
        """Validate raw provider output into a :class:`Generation`."""
        return Generation.model_validate({
            "text": text,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "cost_estimate": self.catalog.estimate_cost(model, input_tokens, output_tokens),
            "model": model,
            "provider": self.id,
        })

    async def aclose(self) -> None:
        """Release network resources. Default: nothing to release."""
