"""Workflow selector — turns a depth preset into a concrete backend roster.

Each preset is a static list of *roles*; a role is a ranked list of
candidate model ids. Selection filters out unreachable backends, respects
an optional cost ceiling, and degrades rather than fails: an empty roster
falls back to the primary model and an unaffordable role is forced to its
cheapest candidate.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from .catalog import CANONICAL_MODELS, ModelCatalog
from .errors import NoProvidersError
from .models.research import Concurrent, Depth, DispatchStrategy, SequentialThrottled
from .providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

# Assumed token volume of one call when projecting cost under a ceiling.
PROJECTED_INPUT_TOKENS = 2_000
PROJECTED_OUTPUT_TOKENS = 1_000


class Preset(BaseModel):
    roles: list[list[str]]
    passes: int = Field(default=1, ge=1, le=2)
    tie_breaker: str | None = None
    sequential: bool = False
    label: str = ""


PRESETS: dict[str, Preset] = {
    "flash": Preset(
        roles=[["gemini-2.5-flash-lite", "gpt-5-nano"]],
        label="One fast, cheap backend",
    ),
    "budget": Preset(
        roles=[["deepseek-chat", "gemini-2.5-flash-lite"]],
        label="One low-cost backend",
    ),
    "quick": Preset(
        roles=[["gemini-2.5-flash", "gpt-4o-mini"]],
        label="One balanced backend",
    ),
    "standard": Preset(
        roles=[
            ["gemini-2.5-flash", "gemini-2.5-flash-lite"],
            ["gpt-4o-mini", "gpt-5-nano"],
            ["claude-3.5-haiku"],
        ],
        sequential=True,
        label="Three free-tier friendly backends, called one at a time",
    ),
    "verified": Preset(
        roles=[
            ["gemini-2.5-flash"],
            ["gpt-4o", "gpt-4o-mini"],
            ["claude-sonnet-4", "claude-3.5-haiku"],
            ["deepseek-chat"],
        ],
        tie_breaker="claude-sonnet-4.5",
        label="Four backends with outlier validation",
    ),
    "deep-dive": Preset(
        roles=[
            ["deepseek-chat"],
            ["gemini-2.5-flash"],
            ["claude-sonnet-4.5", "claude-sonnet-4"],
            ["gpt-4o", "gpt-4o-mini"],
            ["claude-sonnet-4", "claude-3.5-haiku"],
            ["gemini-2.5-pro", "gemini-2.5-flash"],
        ],
        passes=2,
        tie_breaker="o3",
        label="Six backends across two passes; the last one synthesizes",
    ),
}


class WorkflowPlan(BaseModel):
    """Resolved execution plan for one research request."""

    roster: list[str]
    passes: int = Field(ge=1, le=2)
    validate_outliers: bool
    tie_breaker: str | None = None
    strategy: DispatchStrategy = Field(default_factory=Concurrent)
    projected_cost: float = 0.0
    forced: list[str] = Field(default_factory=list)
    fallback: bool = False

    @property
    def synthesizer(self) -> str | None:
        """Backend that runs the second pass, when there is one."""
        return self.roster[-1] if self.passes == 2 else None

    @property
    def first_pass(self) -> list[str]:
        return self.roster[:-1] if self.passes == 2 else list(self.roster)


class WorkflowSelector:
    """Maps depth + cost ceiling + availability to a :class:`WorkflowPlan`."""

    def __init__(
        self,
        catalog: ModelCatalog,
        registry: ProviderRegistry,
        *,
        primary_model: str,
        sequential_delay: float = 2.0,
        presets: dict[str, Preset] | None = None,
    ) -> None:
        self.catalog = catalog
        self.registry = registry
        self.primary_model = primary_model
        self.sequential_delay = sequential_delay
        self.presets = presets or PRESETS

    def projected_cost(self, model_id: str) -> float:
        return self.catalog.estimate_cost(model_id, PROJECTED_INPUT_TOKENS, PROJECTED_OUTPUT_TOKENS)

    def select(
        self,
        depth: Depth,
        *,
        max_cost: float | None = None,
        overrides: list[str] | None = None,
    ) -> WorkflowPlan:
        """Resolve *depth* into a plan.

        Raises:
            NoProvidersError: When the registry holds no provider at all.
        """
        if not len(self.registry):
            raise NoProvidersError()

        preset = self.presets[depth]
        roles = [[model] for model in overrides] if overrides else preset.roles

        roster: list[str] = []
        forced: list[str] = []
        spent = 0.0
        for role in roles:
            candidates = [
                m for m in role if self.registry.is_available(m) and m not in roster
            ]
            if not candidates:
                logger.debug("Role %s has no reachable backend — skipped", role)
                continue
            choice = candidates[0]
            if max_cost is not None:
                affordable = [
                    m for m in candidates if spent + self.projected_cost(m) <= max_cost
                ]
                if affordable:
                    choice = affordable[0]
                else:
                    choice = self.catalog.cheapest(candidates) or candidates[0]
                    forced.append(choice)
                    logger.warning(
                        "Cost ceiling $%.4f exceeded for role %s — forcing cheapest %s",
                        max_cost, role, choice,
                    )
            roster.append(choice)
            spent += self.projected_cost(choice)

        if not roster:
            return self._fallback_plan(depth, roles)

        passes = preset.passes if len(roster) > 1 else 1
        tie_breaker = preset.tie_breaker
        if tie_breaker and not self.registry.is_available(tie_breaker):
            tie_breaker = None

        strategy: Concurrent | SequentialThrottled = (
            SequentialThrottled(delay=self.sequential_delay) if preset.sequential else Concurrent()
        )
        return WorkflowPlan(
            roster=roster,
            passes=passes,
            validate_outliers=len(roster) > 1,
            tie_breaker=tie_breaker,
            strategy=strategy,
            projected_cost=spent,
            forced=forced,
        )

    def _fallback_plan(self, depth: str, roles: list[list[str]]) -> WorkflowPlan:
        primary = self.primary_model
        if not self.registry.is_available(primary):
            primary = CANONICAL_MODELS.get(self.registry.available()[0], primary)
        requested = [m for role in roles for m in role[:1]]
        logger.warning(
            "Requested backends %s for %s are not available — falling back to %s",
            requested, depth, primary,
        )
        return WorkflowPlan(
            roster=[primary],
            passes=1,
            validate_outliers=False,
            projected_cost=self.projected_cost(primary),
            fallback=True,
        )
