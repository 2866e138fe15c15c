"""Offline simulator — scripted answers so the full pipeline runs without API keys.

Enabled with ``RESEARCH_SIMULATE=true``. One instance stands in for each
provider id; the scripted dropshipping scenario deliberately includes a
pessimist and an over-optimist so outlier isolation has something to find.
"""

from __future__ import annotations

import asyncio

from ..catalog import ModelCatalog
from ..models.research import Generation, GenerationParams
from .base import Provider

_DROPSHIPPING = {
    "mainstream": (
        "Based on 2024 market analysis, the average profit margin for dropshipping is between 15% and 20%. "
        "High-ticket items may see margins up to 30%, while low-cost items often sit around 10-15%. "
        "Key factors influencing this include ad spend, supplier costs, and platform fees."
    ),
    "detailed": (
        "Dropshipping profit margins in 2024 typically range from 15% to 20%. "
        "Net profit is heavily impacted by marketing costs, which can consume 30-40% of revenue. "
        "Successful stores should target a gross margin of at least 40% to achieve a 15-20% net margin."
    ),
    "pessimist": (
        "The reality of dropshipping in 2024 is harsh. Most stores operate on razor-thin margins of 5-10%. "
        "After accounting for rising ad costs on Meta and TikTok, many beginners actually see negative margins. "
        "Only established brands with organic traffic see the often-cited 20% figures."
    ),
    "optimist": (
        "Dropshipping is highly profitable! You can expect profit margins of 80-90% on almost any product. "
        "Suppliers do all the work, so you keep almost all the profit."
    ),
}


def _scripted_answer(model: str, prompt: str) -> str:
    topic = prompt.lower()
    if "dropshipping" in topic:
        if "flash" in model:
            return _DROPSHIPPING["mainstream"]
        if "gpt" in model or "sonnet" in model:
            return _DROPSHIPPING["detailed"]
        if "deepseek" in model:
            return _DROPSHIPPING["pessimist"]
        if "haiku" in model:
            return _DROPSHIPPING["optimist"]
        return "Dropshipping margins average 15-20% in 2024."
    return (
        f'[SIMULATION] This is a simulated response for model "{model}". '
        f'The research engine is running in simulation mode. Request: "{prompt[:50]}..."'
    )


class SimulatorProvider(Provider):
    """Deterministic stand-in for a real provider."""

    name = "Research Simulator"

    def __init__(self, provider_id: str, catalog: ModelCatalog | None = None, *, latency: float = 0.0) -> None:
        super().__init__(catalog)
        self.id = provider_id
        self.latency = latency

    async def generate(self, params: GenerationParams) -> Generation:
        if self.latency:
            await asyncio.sleep(self.latency)
        text = _scripted_answer(params.model, params.prompt)
        return self._build(params.model, text, len(params.prompt) // 4, len(text) // 4)
