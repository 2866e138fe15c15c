"""Write-through storage of finished research runs.

All writes are fire-and-forget: failures log a warning but never propagate
to the engine or the tool caller.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from weaviate.classes.data import DataObject

from .config import get_config
from .models.research import ResearchFact, ResearchResult
from .weaviate_client import WeaviateClient

logger = logging.getLogger(__name__)


def _is_enabled() -> bool:
    return get_config().weaviate_enabled


def _run_properties(result: ResearchResult) -> dict:
    return {
        "created_at": datetime.now(timezone.utc),
        "topic": result.topic,
        "summary": result.summary,
        "score": result.score,
        "depth": result.metadata.depth,
        "persona": result.metadata.persona,
        "variance_level": result.variance.level,
        "models_used": result.metadata.models_used,
        "outlier_models": [o.model for o in result.outliers.outliers],
        "derivative_types": [d.type for d in result.derivatives],
        "total_cost": result.cost_breakdown.total,
        "duration_ms": result.metadata.duration_ms,
        "result_json": result.model_dump_json(),
    }


def _fact_objects(result: ResearchResult, run_uuid: str) -> list[DataObject]:
    now = datetime.now(timezone.utc)
    groups: list[tuple[str, list[ResearchFact]]] = [
        ("confirmed", result.confirmed),
        ("disputed", result.disputed),
        ("unique", result.unique),
    ]
    return [
        DataObject(properties={
            "created_at": now,
            "topic": result.topic,
            "claim": fact.claim,
            "kind": kind,
            "confidence": fact.confidence,
            "agreed_by": fact.agreed_by,
            "disputed_by": fact.disputed_by,
            "run_uuid": run_uuid,
        })
        for kind, facts in groups
        for fact in facts
    ]


async def store_research_run(result: ResearchResult, embedding: list[float] | None = None) -> str | None:
    """Persist a run to ResearchRuns and its facts to ResearchFacts.

    Args:
        result: The assembled research result.
        embedding: Optional precomputed vector for the run object.

    Returns:
        UUID of the ResearchRuns object, or None when disabled or failed.
    """
    if not _is_enabled():
        return None
    try:
        def _insert() -> str:
            client = WeaviateClient.get()
            runs = client.collections.get("ResearchRuns")
            run_uuid = str(runs.data.insert(properties=_run_properties(result), vector=embedding))
            facts = _fact_objects(result, run_uuid)
            if facts:
                client.collections.get("ResearchFacts").data.insert_many(facts)
            return run_uuid

        return await asyncio.to_thread(_insert)
    except Exception as exc:
        logger.warning("Weaviate store failed (non-fatal): %s", exc)
        return None


class WeaviateResultSink:
    """ResultSink backed by :func:`store_research_run`."""

    async def store(self, result: ResearchResult, embedding: list[float] | None = None) -> str | None:
        return await store_research_run(result, embedding)
