"""Research tools — 2 tools on a FastMCP sub-server."""

from __future__ import annotations

import logging

from fastmcp import FastMCP
from mcp.types import ToolAnnotations

from ..config import get_config
from ..engine import ResearchEngine
from ..errors import make_tool_error
from ..models.research import Depth
from ..tracing import trace
from ..types import BackendsParam, DeadlineParam, DepthParam, MaxCostParam, PersonaId, TopicParam, coerce_json_param
from ..weaviate_store import WeaviateResultSink
from ..workflow import PRESETS

logger = logging.getLogger(__name__)
research_server = FastMCP("research")

_engine: ResearchEngine | None = None


def get_engine() -> ResearchEngine:
    """Return the shared engine, wiring it from the process config on first use."""
    global _engine
    if _engine is None:
        cfg = get_config()
        _engine = ResearchEngine.from_config(
            cfg,
            sink=WeaviateResultSink() if cfg.weaviate_enabled else None,
        )
        logger.info("Research engine ready with providers: %s", _engine.registry.available())
    return _engine


async def close_engine() -> None:
    """Close the shared engine; the next tool call rebuilds it."""
    global _engine
    if _engine is not None:
        await _engine.aclose()
        _engine = None


@research_server.tool(annotations=ToolAnnotations(readOnlyHint=True, openWorldHint=True))
@trace(name="research_run", span_type="TOOL")
async def research_run(
    topic: TopicParam,
    depth: DepthParam | None = None,
    max_cost: MaxCostParam = None,
    persona: PersonaId | None = None,
    backends: BackendsParam = None,
    deadline_seconds: DeadlineParam = None,
) -> dict:
    """Ask several model backends the same question and report where they agree.

    Responses are checked for numeric and lexical outliers, then reduced to
    consensus claims, a disagreement map, and meta-insights such as
    context dependency or overconfidence.

    Args:
        topic: Research question or subject area.
        depth: Workflow preset; defaults to RESEARCH_DEFAULT_DEPTH.
        max_cost: Projected USD ceiling; roles degrade to cheaper models to fit.
        persona: Viewing angle for the system prompt.
        backends: Explicit model ids replacing the preset roster.
        deadline_seconds: Abort dispatch after this many seconds.

    Returns:
        Dict with summary, score, confirmed/disputed/unique facts, consensus,
        variance, derivatives, outliers, metadata, and cost_breakdown.
    """
    try:
        cfg = get_config()
        result = await get_engine().investigate(
            topic,
            depth=depth or cfg.default_depth,
            max_cost=max_cost,
            persona=persona or cfg.default_persona,
            backends=coerce_json_param(backends, list) or [],
            deadline_seconds=deadline_seconds,
        )
        return result.model_dump(mode="json")
    except Exception as exc:
        return make_tool_error(exc)


@research_server.tool(annotations=ToolAnnotations(readOnlyHint=True, openWorldHint=False))
@trace(name="research_workflows", span_type="TOOL")
async def research_workflows(max_cost: MaxCostParam = None) -> dict:
    """List the workflow presets and the roster each resolves to right now.

    Args:
        max_cost: Optional ceiling to preview how rosters degrade under it.

    Returns:
        Dict with default_depth and one entry per preset: label, requested
        roles, resolved roster, passes, strategy, tie_breaker, projected_cost.
    """
    try:
        engine = get_engine()
        presets: dict[str, dict] = {}
        for name, preset in PRESETS.items():
            depth: Depth = name  # type: ignore[assignment]
            plan = engine.selector.select(depth, max_cost=max_cost)
            presets[name] = {
                "label": preset.label,
                "roles": preset.roles,
                "roster": plan.roster,
                "passes": plan.passes,
                "strategy": plan.strategy.model_dump(),
                "tie_breaker": plan.tie_breaker,
                "validate_outliers": plan.validate_outliers,
                "projected_cost": round(plan.projected_cost, 6),
                "fallback": plan.fallback,
                "forced": plan.forced,
            }
        return {"default_depth": get_config().default_depth, "presets": presets}
    except Exception as exc:
        return make_tool_error(exc)
