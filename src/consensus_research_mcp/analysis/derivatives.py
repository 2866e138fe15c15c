"""Derivative deriver — meta-insights read off consensus, variance, and raw text.

Six independent rules, each emitting at most one insight:

1. convergent-confidence -- low variance and at least one consensus claim.
2. context-dependency -- high variance and some response hedges with conditions.
3. unique-claims -- at least one single-source claim.
4. contradictions -- at least one negation conflict.
5. numerical-variance -- the pooled numbers spread wider than 0.3 x their mean.
6. overconfidence-flag -- exactly one response speaks with certainty while
   most of the others hedge.
"""

from __future__ import annotations

import statistics
from collections.abc import Sequence

from ..config import AnalysisThresholds
from ..models.research import (
    Consensus,
    ContextDependency,
    Contradictions,
    ConvergentConfidence,
    Derivative,
    ModelResponse,
    NumericalVariance,
    OverconfidenceFlag,
    UniqueClaims,
    VarianceReport,
)
from .text import extract_numbers

CONDITIONAL_PHRASES = (
    "depends on",
    "depending on",
    "varies",
    "typically",
    "usually",
    "generally",
    "can range",
    "may be",
    "might be",
    "if",
    "unless",
    "provided that",
)

CERTAINTY_PHRASES = ("definitely", "certainly", "absolutely", "without doubt")


def has_conditional_language(text: str) -> bool:
    lowered = text.lower()
    return any(phrase in lowered for phrase in CONDITIONAL_PHRASES)


def has_certainty_language(text: str) -> bool:
    lowered = text.lower()
    return any(phrase in lowered for phrase in CERTAINTY_PHRASES)


def _fmt(value: float) -> str:
    return f"{value:g}"


def numerical_spread(
    responses: Sequence[ModelResponse],
    thresholds: AnalysisThresholds | None = None,
) -> NumericalVariance | None:
    thresholds = thresholds or AnalysisThresholds()
    values = [n for r in responses for n in extract_numbers(r.text)]
    if not values:
        return None
    mean = statistics.fmean(values)
    if statistics.pstdev(values) <= mean * thresholds.spread_ratio:
        return None
    low, high = min(values), max(values)
    return NumericalVariance(
        title="Value is a Distribution",
        message=f"Range: {_fmt(low)}-{_fmt(high)}, Mean: {mean:.2f}",
        reliability="medium",
        actionable=True,
        recommendation="This metric varies widely. Don't rely on a single number.",
        minimum=low,
        maximum=high,
        mean=mean,
    )


def overconfident_backend(responses: Sequence[ModelResponse]) -> str | None:
    """The single certainty-speaking backend when more than half of all responses hedge."""
    certain = [r.backend for r in responses if has_certainty_language(r.text)]
    hedging = sum(1 for r in responses if has_conditional_language(r.text))
    if len(certain) == 1 and hedging > len(responses) / 2:
        return certain[0]
    return None


def derive_insights(
    responses: Sequence[ModelResponse],
    consensus: Consensus,
    variance: VarianceReport,
    thresholds: AnalysisThresholds | None = None,
) -> list[Derivative]:
    """Apply every rule in order; the result lists fired insights only."""
    insights: list[Derivative] = []

    if variance.level == "low" and consensus.items:
        insights.append(ConvergentConfidence(
            title="Strong Consensus",
            message="All models agree on core facts",
            reliability="high",
            actionable=False,
        ))

    if variance.level == "high" and any(has_conditional_language(r.text) for r in responses):
        insights.append(ContextDependency(
            title="Context-Dependent Answer",
            message="Models cite different conditions. Answer depends on unstated variables.",
            reliability="medium",
            actionable=True,
            recommendation="Refine query with specific context (niche, timeframe, location)",
        ))

    if variance.unique:
        insights.append(UniqueClaims(
            title="Single-Source Claims",
            message=f"{len(variance.unique)} fact(s) mentioned by only one model",
            reliability="low",
            actionable=True,
            recommendation="Verify unique claims with external sources before trusting",
            count=len(variance.unique),
        ))

    if variance.contradictions:
        insights.append(Contradictions(
            title="Contradictory Answers Detected",
            message="Models gave conflicting information",
            reliability="uncertain",
            actionable=True,
            recommendation="Question may be ambiguous. Consider rephrasing or adding specifics.",
            count=len(variance.contradictions),
        ))

    spread = numerical_spread(responses, thresholds)
    if spread is not None:
        insights.append(spread)

    flagged = overconfident_backend(responses)
    if flagged is not None:
        insights.append(OverconfidenceFlag(
            title="Overconfidence Detected",
            message=f"Most confident answer ({flagged}) is the outlier",
            reliability="low",
            actionable=True,
            recommendation="The most certain answer may be wrong. Trust ranges over point estimates.",
            model=flagged,
        ))

    return insights
