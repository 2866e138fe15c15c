"""Outlier isolator — flags responses that deviate numerically or lexically, then classifies them.

Two detection passes run over the response set:

* **Numerical** -- each response is reduced to the mean of its numbers below
  ``numeric_ceiling`` (percentages and ratios). With enough qualifying
  responses, a response is flagged when its modified z-score (distance from
  the median of all means, scaled by their median absolute deviation)
  exceeds ``z_score``. A single extreme value cannot inflate the spread it
  is measured against.
* **Lexical** -- responses are reduced to word sets and each one is flagged
  when its average Jaccard similarity to all the others is below
  ``similarity``. A pair cannot single out either side, so a dissimilar
  pair flags only the later backend id.

Each flagged response is classified against the unflagged ones, first
match wins: hallucination, outdated, misunderstood-query, valuable-dissent.
"""

from __future__ import annotations

import logging
import re
import statistics
from collections.abc import Sequence

from ..config import AnalysisThresholds
from ..models.research import (
    Hallucination,
    MisunderstoodQuery,
    ModelResponse,
    Outdated,
    Outlier,
    OutlierClassification,
    OutlierReport,
    ValuableDissent,
)
from .text import extract_numbers, jaccard, vocabulary, word_set

logger = logging.getLogger(__name__)

# Makes the median absolute deviation comparable to a standard deviation.
MAD_SCALE = 0.6745

TEMPORAL_LANGUAGE = re.compile(r"as of \d{4}|in \d{4}|back in|historically|used to be", re.IGNORECASE)


def numerical_outliers(
    responses: Sequence[ModelResponse],
    thresholds: AnalysisThresholds | None = None,
) -> set[str]:
    """Backends whose numeric mean is a modified z-score outlier.

    Nothing is flagged when more than half of the means coincide (zero
    median absolute deviation).
    """
    thresholds = thresholds or AnalysisThresholds()
    means: dict[str, float] = {}
    for response in responses:
        values = [n for n in extract_numbers(response.text) if n < thresholds.numeric_ceiling]
        if values:
            means[response.backend] = statistics.fmean(values)

    if len(means) < thresholds.min_numeric_responses:
        return set()

    center = statistics.median(means.values())
    mad = statistics.median(abs(v - center) for v in means.values())
    if mad == 0:
        return set()

    flagged = set()
    for backend, value in means.items():
        z = MAD_SCALE * abs(value - center) / mad
        if z > thresholds.z_score:
            logger.debug("Numerical outlier %s: mean %.2f, z=%.2f", backend, value, z)
            flagged.add(backend)
    return flagged


def lexical_outliers(
    responses: Sequence[ModelResponse],
    thresholds: AnalysisThresholds | None = None,
) -> set[str]:
    """Backends whose vocabulary barely overlaps with everyone else's."""
    thresholds = thresholds or AnalysisThresholds()
    words = {r.backend: word_set(r.text, thresholds.min_word_length) for r in responses}

    backends = sorted(words)
    if len(backends) < 2:
        return set()

    flagged: set[str] = set()
    for backend in backends:
        average = statistics.fmean(jaccard(words[backend], words[other]) for other in backends if other != backend)
        if average < thresholds.similarity:
            logger.debug("Lexical outlier %s: average similarity %.2f", backend, average)
            flagged.add(backend)

    if len(backends) == 2 and flagged:
        return {backends[-1]}
    return flagged


def classify_outlier(
    outlier: ModelResponse,
    valid: Sequence[ModelResponse],
    thresholds: AnalysisThresholds | None = None,
) -> OutlierClassification:
    thresholds = thresholds or AnalysisThresholds()

    outlier_numbers = extract_numbers(outlier.text)
    valid_numbers = [n for r in valid for n in extract_numbers(r.text)]
    if outlier_numbers and valid_numbers:
        outlier_mean = statistics.fmean(outlier_numbers)
        valid_mean = statistics.fmean(valid_numbers)
        factor = thresholds.magnitude_factor
        if outlier_mean >= valid_mean * factor or outlier_mean <= valid_mean / factor:
            return Hallucination(
                model=outlier.backend,
                confidence=0.9,
                reasoning=(
                    f"Numerical value {outlier_mean:.2f} is {factor:g}x+ different "
                    f"from consensus {valid_mean:.2f}"
                ),
                recommendation="EXCLUDE from final answer. Likely hallucination or data error.",
                outlier_mean=outlier_mean,
                valid_mean=valid_mean,
            )

    if TEMPORAL_LANGUAGE.search(outlier.text):
        return Outdated(
            model=outlier.backend,
            confidence=0.7,
            reasoning="Response contains temporal language suggesting outdated information",
            recommendation="NOTE as historical perspective. May have been correct in the past.",
        )

    valid_words = set().union(*(vocabulary(r.text) for r in valid)) if valid else set()
    overlap = jaccard(vocabulary(outlier.text), valid_words)
    if overlap < thresholds.misunderstood_overlap:
        return MisunderstoodQuery(
            model=outlier.backend,
            confidence=0.75,
            reasoning="Response semantically divergent. May have interpreted question differently.",
            recommendation="RE-RUN with clarified prompt. This model answered a related but different question.",
            overlap=overlap,
        )

    return ValuableDissent(
        model=outlier.backend,
        confidence=0.6,
        reasoning="Different perspective but internally consistent",
        recommendation="INCLUDE as alternative viewpoint. May represent minority perspective.",
    )


def isolate_outliers(
    responses: Sequence[ModelResponse],
    thresholds: AnalysisThresholds | None = None,
) -> OutlierReport:
    """Detect and classify outliers; fewer than two responses are all valid."""
    thresholds = thresholds or AnalysisThresholds()
    ordered = sorted(responses, key=lambda r: r.backend)
    if len(ordered) < 2:
        return OutlierReport(total_responses=len(ordered), valid_responses=[r.backend for r in ordered])

    numerical = numerical_outliers(ordered, thresholds)
    lexical = lexical_outliers(ordered, thresholds)
    flagged = numerical | lexical

    valid = [r for r in ordered if r.backend not in flagged]
    outliers = [
        Outlier(model=r.backend, response=r.text, classification=classify_outlier(r, valid, thresholds))
        for r in ordered
        if r.backend in flagged
    ]
    if outliers:
        logger.info(
            "Isolated %d outlier(s): %s",
            len(outliers),
            ", ".join(f"{o.model} ({o.classification.category})" for o in outliers),
        )
    return OutlierReport(
        total_responses=len(ordered),
        outliers=outliers,
        valid_responses=[r.backend for r in valid],
        numerical_flags=sorted(numerical),
        lexical_flags=sorted(lexical),
    )
