"""Infrastructure tools — 2 tools on a FastMCP sub-server."""

from __future__ import annotations

from typing import Annotated

from fastmcp import FastMCP
from mcp.types import ToolAnnotations
from pydantic import Field

from ..config import get_config, update_config
from ..errors import make_tool_error
from ..tracing import trace
from ..types import DepthParam
from .research import close_engine, get_engine

infra_server = FastMCP("infra")
_SENSITIVE_CONFIG_FIELDS = {"api_keys", "weaviate_api_key", "infra_admin_token"}


def _redacted_config() -> dict:
    """Return runtime config with secret-bearing fields removed."""
    cfg = get_config()
    data = cfg.model_dump(exclude=_SENSITIVE_CONFIG_FIELDS)
    data["configured_providers"] = sorted(cfg.api_keys)
    return data


def _enforce_mutation_policy(auth_token: str | None) -> None:
    """Gate mutating infra operations behind explicit policy + optional token."""
    cfg = get_config()
    if not cfg.infra_mutations_enabled:
        raise PermissionError(
            "Infra mutations are disabled by policy. "
            "Set INFRA_MUTATIONS_ENABLED=true to enable mutating infra tools."
        )
    if cfg.infra_admin_token and auth_token != cfg.infra_admin_token:
        raise PermissionError("Invalid or missing infra auth token for mutating operation.")


@infra_server.tool(annotations=ToolAnnotations(readOnlyHint=True, openWorldHint=False))
@trace(name="infra_providers", span_type="TOOL")
async def infra_providers() -> dict:
    """Show which providers are reachable and what their models cost.

    Returns:
        Dict with simulate flag, available provider ids, and per-model
        pricing plus availability.
    """
    try:
        engine = get_engine()
        registry = engine.registry
        models = [
            {
                "id": m.id,
                "provider": m.provider,
                "display_name": m.display_name,
                "input_per_million": m.pricing.input_per_million,
                "output_per_million": m.pricing.output_per_million,
                "available": registry.is_available(m.id),
            }
            for m in engine.catalog.all()
        ]
        return {
            "simulate": get_config().simulate,
            "providers": registry.available(),
            "models": models,
        }
    except Exception as exc:
        return make_tool_error(exc)


@infra_server.tool(
    annotations=ToolAnnotations(
        readOnlyHint=False,
        destructiveHint=False,
        idempotentHint=True,
        openWorldHint=False,
    )
)
@trace(name="infra_configure", span_type="TOOL")
async def infra_configure(
    primary_model: Annotated[str | None, Field(description="Fallback model when a roster empties")] = None,
    default_depth: DepthParam | None = None,
    temperature: Annotated[float | None, Field(ge=0.0, le=2.0, description="Sampling temperature")] = None,
    simulate: Annotated[bool | None, Field(description="Use scripted offline providers")] = None,
    auth_token: Annotated[str | None, Field(
        description="Optional infra auth token (required when INFRA_ADMIN_TOKEN is configured)",
    )] = None,
) -> dict:
    """Reconfigure the server at runtime.

    Changes rebuild the research engine, so they apply to every later call.

    Returns:
        Dict with current_config (secrets redacted).
    """
    try:
        overrides: dict[str, object] = {
            k: v
            for k, v in {
                "primary_model": primary_model,
                "default_depth": default_depth,
                "temperature": temperature,
                "simulate": simulate,
            }.items()
            if v is not None
        }
        if overrides:
            _enforce_mutation_policy(auth_token)
            update_config(**overrides)
            await close_engine()
        return {"current_config": _redacted_config()}
    except Exception as exc:
        return make_tool_error(exc)
