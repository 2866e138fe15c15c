"""Shared type aliases and helpers for tool parameters."""

from __future__ import annotations

import json
from typing import Annotated, Literal

from pydantic import Field

from .models.research import Depth


def coerce_json_param(value: str | dict | list | None, expected_type: type) -> dict | list | None:
    """Parse MCP JSON-RPC string params back to dict/list.

    Some MCP hosts serialize list params as JSON strings, which pydantic
    rejects; this turns them back into the expected container.
    """
    if not isinstance(value, str):
        return value
    try:
        parsed = json.loads(value)
        if isinstance(parsed, expected_type):
            return parsed
    except (json.JSONDecodeError, TypeError):
        pass
    return value


# ── Literal enums ────────────────────────────────────────────────────────────

PersonaId = Literal["analyst", "cfo", "cto", "devils_advocate", "savage"]

# ── Annotated aliases ────────────────────────────────────────────────────────

TopicParam = Annotated[str, Field(min_length=1, max_length=2000, description="Research topic or question")]
DepthParam = Annotated[Depth, Field(
    description=(
        'Workflow preset: "flash", "budget", "quick" (one backend), "standard" (3, sequential), '
        '"verified" (4 + outlier validation), or "deep-dive" (6, two passes)'
    ),
)]
MaxCostParam = Annotated[float | None, Field(gt=0, description="Projected USD ceiling for the whole run")]
BackendsParam = Annotated[list[str] | str | None, Field(
    description="Model ids replacing the preset roster, e.g. ['gpt-4o-mini', 'deepseek-chat']",
)]
DeadlineParam = Annotated[float | None, Field(gt=0, description="Overall dispatch deadline in seconds")]
