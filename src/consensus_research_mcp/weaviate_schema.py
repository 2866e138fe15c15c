"""Weaviate collection definitions for persisted research runs.

PropertyDef and CollectionDef are plain dataclasses; weaviate_client.py
turns them into v4 ``Property`` objects when creating or evolving
collections. Two collections:

* ResearchRuns -- one object per run: summary, score, variance, cost.
* ResearchFacts -- one object per confirmed / disputed / unique fact.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class PropertyDef:
    """Single property in a Weaviate collection."""

    name: str
    data_type: list[str]
    description: str = ""
    skip_vectorization: bool = False
    index_filterable: bool = True
    index_range_filters: bool = False
    index_searchable: bool | None = None  # None = Weaviate default (True for text)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"name": self.name, "dataType": self.data_type}
        if self.description:
            result["description"] = self.description
        if self.skip_vectorization:
            result["moduleConfig"] = {"text2vec-weaviate": {"skip": True}}
        return result


@dataclass
class CollectionDef:
    """A Weaviate collection definition."""

    name: str
    description: str = ""
    properties: list[PropertyDef] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "class": self.name,
            "description": self.description,
            "properties": [p.to_dict() for p in self.properties],
        }


def _meta(name: str, data_type: str, description: str, **kwargs: Any) -> PropertyDef:
    """Non-vectorized metadata property."""
    return PropertyDef(name, [data_type], description, skip_vectorization=True, **kwargs)


RESEARCH_RUNS = CollectionDef(
    name="ResearchRuns",
    description="One multi-backend research run with its consensus summary",
    properties=[
        _meta("created_at", "date", "Timestamp of creation", index_range_filters=True),
        PropertyDef("topic", ["text"], "Research topic as submitted"),
        PropertyDef("summary", ["text"], "Top consensus claims"),
        _meta("score", "int", "System confidence score 0-100", index_range_filters=True),
        _meta("depth", "text", "Workflow preset", index_searchable=False),
        _meta("persona", "text", "Persona id", index_searchable=False),
        _meta("variance_level", "text", "low / medium / high", index_searchable=False),
        _meta("models_used", "text[]", "Backends that responded"),
        _meta("outlier_models", "text[]", "Backends flagged as outliers"),
        _meta("derivative_types", "text[]", "Meta-insights that fired"),
        _meta("total_cost", "number", "Estimated USD cost", index_range_filters=True),
        _meta("duration_ms", "int", "Wall-clock duration", index_range_filters=True),
        _meta("result_json", "text", "Full serialized ResearchResult", index_filterable=False, index_searchable=False),
    ],
)

RESEARCH_FACTS = CollectionDef(
    name="ResearchFacts",
    description="Individual facts extracted from research runs",
    properties=[
        _meta("created_at", "date", "Timestamp of creation", index_range_filters=True),
        _meta("topic", "text", "Topic of the parent run"),
        PropertyDef("claim", ["text"], "Normalized claim text"),
        _meta("kind", "text", "confirmed / disputed / unique", index_searchable=False),
        _meta("confidence", "text", "high / medium / low", index_searchable=False),
        _meta("agreed_by", "text[]", "Backends asserting the claim"),
        _meta("disputed_by", "text[]", "Backends disputing the claim"),
        _meta("run_uuid", "text", "UUID of the parent ResearchRuns object", index_searchable=False),
    ],
)

ALL_COLLECTIONS: list[CollectionDef] = [RESEARCH_RUNS, RESEARCH_FACTS]
