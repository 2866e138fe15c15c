"""Consensus calculator — majority agreement over normalized sentence fragments."""

from __future__ import annotations

import math
from collections.abc import Sequence

from ..config import AnalysisThresholds
from ..errors import ConsensusComputationError
from ..models.research import Claim, Consensus, ConsensusItem, ModelResponse
from .text import fragments, normalize


def majority_threshold(total: int) -> int:
    return math.ceil(total / 2)


def extract_claims(
    responses: Sequence[ModelResponse],
    thresholds: AnalysisThresholds | None = None,
) -> list[Claim]:
    """Group normalized fragments by text with the distinct backends that said them.

    Sorted by support (descending) then text, so the output does not depend
    on the order of *responses*.
    """
    thresholds = thresholds or AnalysisThresholds()
    support: dict[str, set[str]] = {}
    for response in responses:
        for fragment in fragments(response.text, thresholds.min_claim_length):
            text = normalize(fragment)
            if text:
                support.setdefault(text, set()).add(response.backend)

    claims = [Claim(text=text, backends=sorted(backends)) for text, backends in support.items()]
    claims.sort(key=lambda c: (-c.count, c.text))
    return claims


def calculate_consensus(
    responses: Sequence[ModelResponse],
    thresholds: AnalysisThresholds | None = None,
    claims: list[Claim] | None = None,
) -> Consensus:
    """Claims supported by at least ``ceil(N / 2)`` backends.

    Raises:
        ConsensusComputationError: When *responses* is empty.
    """
    total = len(responses)
    if total == 0:
        raise ConsensusComputationError("Cannot calculate consensus from zero responses")

    threshold = majority_threshold(total)
    if claims is None:
        claims = extract_claims(responses, thresholds)
    items = [
        ConsensusItem(
            value=claim.text,
            confidence=claim.count / total,
            agreement_count=claim.count,
            total_models=total,
            models=claim.backends,
        )
        for claim in claims
        if claim.count >= threshold
    ]
    return Consensus(items=items, threshold=threshold, total_responses=total)
