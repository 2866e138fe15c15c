"""Tests for Weaviate write-through storage of research runs."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from consensus_research_mcp.models.research import (
    Consensus,
    CostBreakdown,
    Outlier,
    OutlierReport,
    ResearchFact,
    ResearchMetadata,
    ResearchResult,
    SequentialThrottled,
    UniqueClaims,
    ValuableDissent,
    VarianceReport,
)
from consensus_research_mcp.weaviate_store import WeaviateResultSink, store_research_run


def _result() -> ResearchResult:
    return ResearchResult(
        topic="dropshipping margins",
        summary="shipping costs keep rising",
        score=71,
        confirmed=[ResearchFact(claim="shipping costs keep rising", confidence="high", agreed_by=["gpt-4o", "deepseek-chat"])],
        disputed=[ResearchFact(claim="margins near 60 percent", source="deepseek-chat", confidence="low", disputed_by=["gpt-4o"])],
        unique=[],
        consensus=Consensus(threshold=1, total_responses=2),
        variance=VarianceReport(level="medium", score=40),
        derivatives=[UniqueClaims(title="Unique", message="1 unique claim", reliability="low", actionable=False, count=1)],
        outliers=OutlierReport(
            total_responses=2,
            outliers=[Outlier(
                model="deepseek-chat",
                response="margins near 60 percent",
                classification=ValuableDissent(model="deepseek-chat", confidence=0.5, reasoning="r", recommendation="review"),
            )],
            valid_responses=["gpt-4o"],
        ),
        metadata=ResearchMetadata(
            depth="standard",
            persona="analyst",
            models_used=["gpt-4o", "deepseek-chat"],
            total_queries=2,
            passes=1,
            strategy=SequentialThrottled(delay=2.0),
            duration_ms=1234,
        ),
        cost_breakdown=CostBreakdown(by_model={"gpt-4o": 0.01, "deepseek-chat": 0.001}, total=0.011),
        started_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture()
def weaviate_enabled(monkeypatch, clean_config):
    monkeypatch.setenv("WEAVIATE_URL", "https://test.weaviate.network")


class TestStoreGuards:
    async def test_noop_when_disabled(self, clean_config, mock_weaviate_client):
        assert await store_research_run(_result()) is None
        mock_weaviate_client["collection"].data.insert.assert_not_called()

    async def test_failure_returns_none(self, weaviate_enabled, mock_weaviate_client, caplog):
        mock_weaviate_client["collection"].data.insert.side_effect = RuntimeError("503")

        assert await store_research_run(_result()) is None
        assert "Weaviate store failed" in caplog.text


class TestStoreResearchRun:
    async def test_returns_run_uuid(self, weaviate_enabled, mock_weaviate_client):
        assert await store_research_run(_result()) == "run-uuid-1234"

    async def test_run_properties(self, weaviate_enabled, mock_weaviate_client):
        result = _result()
        await store_research_run(result, embedding=[0.1, 0.2])

        call = mock_weaviate_client["collection"].data.insert.call_args[1]
        props = call["properties"]
        assert call["vector"] == [0.1, 0.2]
        assert props["topic"] == "dropshipping margins"
        assert props["score"] == 71
        assert props["variance_level"] == "medium"
        assert props["outlier_models"] == ["deepseek-chat"]
        assert props["derivative_types"] == ["unique-claims"]
        assert props["total_cost"] == 0.011
        assert props["duration_ms"] == 1234
        assert json.loads(props["result_json"])["metadata"]["strategy"] == {"kind": "sequential", "delay": 2.0}

    async def test_facts_inserted_in_batch(self, weaviate_enabled, mock_weaviate_client):
        await store_research_run(_result())

        objects = mock_weaviate_client["collection"].data.insert_many.call_args[0][0]
        props = [o.properties for o in objects]
        assert [p["kind"] for p in props] == ["confirmed", "disputed"]
        assert all(p["run_uuid"] == "run-uuid-1234" for p in props)
        assert props[0]["agreed_by"] == ["gpt-4o", "deepseek-chat"]
        assert props[1]["disputed_by"] == ["gpt-4o"]

    async def test_no_facts_skips_batch(self, weaviate_enabled, mock_weaviate_client):
        result = _result().model_copy(update={"confirmed": [], "disputed": []})

        await store_research_run(result)

        mock_weaviate_client["collection"].data.insert_many.assert_not_called()


class TestWeaviateResultSink:
    async def test_delegates_to_store(self, weaviate_enabled, mock_weaviate_client):
        assert await WeaviateResultSink().store(_result()) == "run-uuid-1234"
