"""Result assembler — turns the analysis reports into a scored ResearchResult."""

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import datetime

from .models.research import (
    Consensus,
    CostBreakdown,
    Derivative,
    ModelResponse,
    OutlierReport,
    ResearchFact,
    ResearchMetadata,
    ResearchResult,
    Tier,
    VarianceLevel,
    VarianceReport,
)

NO_CONSENSUS_SUMMARY = "No consensus reached. Models provided divergent responses."
HIGH_VARIANCE_NOTE = " Note: High variance detected - answer may be context-dependent."
SUMMARY_CLAIMS = 3
DISPUTED_EXCERPT = 200
SEVERITY_RANK: dict[str, int] = {"low": 0, "medium": 1, "high": 2}
SEVERITY_PENALTY = 0.15

_URL = re.compile(r"https?://[^\s<>()\[\]\"']+")


def confidence_tier(confidence: float) -> Tier:
    if confidence > 0.8:
        return "high"
    if confidence > 0.5:
        return "medium"
    return "low"


def confidence_score(consensus: Consensus, level: VarianceLevel) -> int:
    """0-100 score: mean consensus confidence, discounted 15% per severity step."""
    if not consensus.items:
        return 0
    mean_confidence = sum(item.confidence for item in consensus.items) / len(consensus.items)
    return round(100 * mean_confidence * (1 - SEVERITY_PENALTY * SEVERITY_RANK[level]))


def summarize(consensus: Consensus, variance: VarianceReport) -> str:
    if not consensus.items:
        return NO_CONSENSUS_SUMMARY
    top = ". ".join(item.value for item in consensus.items[:SUMMARY_CLAIMS])
    return top + (HIGH_VARIANCE_NOTE if variance.level == "high" else "")


def extract_sources(responses: Sequence[ModelResponse]) -> list[str]:
    """Distinct URLs cited anywhere in the responses, sorted."""
    urls = {m.rstrip(".,;:") for r in responses for m in _URL.findall(r.text)}
    return sorted(urls)


def cost_breakdown(responses: Sequence[ModelResponse]) -> CostBreakdown:
    by_model: dict[str, float] = {}
    for response in responses:
        by_model[response.backend] = by_model.get(response.backend, 0.0) + response.cost_estimate
    return CostBreakdown(by_model=by_model, total=sum(by_model.values()))


def assemble_result(
    *,
    topic: str,
    responses: Sequence[ModelResponse],
    consensus: Consensus,
    variance: VarianceReport,
    derivatives: list[Derivative],
    outliers: OutlierReport,
    metadata: ResearchMetadata,
    started_at: datetime,
) -> ResearchResult:
    """Build the final result from the full response set and its analyses.

    *responses* is every dispatched response, outliers included; cost and
    sources are accounted over all of them.
    """
    confirmed = [
        ResearchFact(
            claim=item.value,
            confidence=confidence_tier(item.confidence),
            agreed_by=item.models,
        )
        for item in consensus.items
    ]
    disputed = [
        ResearchFact(
            claim=outlier.response[:DISPUTED_EXCERPT],
            source=outlier.model,
            confidence="low",
            agreed_by=[outlier.model],
            disputed_by=list(outliers.valid_responses),
        )
        for outlier in outliers.outliers
        if outlier.classification.category == "valuable-dissent"
    ]
    unique = [
        ResearchFact(claim=claim.text, source=claim.model, confidence="low", agreed_by=[claim.model])
        for claim in variance.unique
    ]

    return ResearchResult(
        topic=topic,
        summary=summarize(consensus, variance),
        score=confidence_score(consensus, variance.level),
        confirmed=confirmed,
        disputed=disputed,
        unique=unique,
        sources=extract_sources(responses),
        consensus=consensus,
        variance=variance,
        derivatives=derivatives,
        outliers=outliers,
        metadata=metadata,
        cost_breakdown=cost_breakdown(responses),
        started_at=started_at,
    )
