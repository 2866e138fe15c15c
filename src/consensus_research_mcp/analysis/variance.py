"""Variance analyzer — minority claims, single-source claims, and negation conflicts."""

from __future__ import annotations

from collections.abc import Sequence
from itertools import combinations

from ..config import AnalysisThresholds
from ..models.research import (
    Claim,
    Consensus,
    Contradiction,
    Disagreement,
    ModelResponse,
    UniqueClaim,
    VarianceLevel,
    VarianceReport,
)
from .consensus import extract_claims

NEGATION = "not"
EXCERPT_LENGTH = 100


def find_contradictions(responses: Sequence[ModelResponse]) -> list[Contradiction]:
    """Every pair where exactly one text contains ``"not"`` (case-sensitive)."""
    ordered = sorted(responses, key=lambda r: (r.backend, r.text))
    return [
        Contradiction(
            model1=a.backend,
            model2=b.backend,
            text1=a.text[:EXCERPT_LENGTH],
            text2=b.text[:EXCERPT_LENGTH],
        )
        for a, b in combinations(ordered, 2)
        if (NEGATION in a.text) != (NEGATION in b.text)
    ]


def variance_level(score: int, medium_max: int = 2) -> VarianceLevel:
    if score == 0:
        return "low"
    return "medium" if score <= medium_max else "high"


def analyze_variance(
    responses: Sequence[ModelResponse],
    consensus: Consensus,
    thresholds: AnalysisThresholds | None = None,
    claims: list[Claim] | None = None,
) -> VarianceReport:
    """Map the claims that did not reach consensus.

    A claim is consensus (count >= threshold), a disagreement
    (1 < count < threshold), or unique (count == 1); the three sets
    partition the extracted claims.
    """
    thresholds = thresholds or AnalysisThresholds()
    if claims is None:
        claims = extract_claims(responses, thresholds)

    disagreements: list[Disagreement] = []
    unique: list[UniqueClaim] = []
    for claim in claims:
        if claim.count >= consensus.threshold:
            continue
        if claim.count == 1:
            unique.append(UniqueClaim(text=claim.text, model=claim.backends[0]))
        else:
            disagreements.append(Disagreement(text=claim.text, models=claim.backends, count=claim.count))

    contradictions = find_contradictions(responses)
    score = len(disagreements) + len(contradictions)
    return VarianceReport(
        level=variance_level(score, thresholds.medium_variance_max),
        score=score,
        disagreements=disagreements,
        unique=unique,
        contradictions=contradictions,
    )
