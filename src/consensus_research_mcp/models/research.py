"""Research models — request, per-backend responses, analysis reports, final result.

Everything the engine produces is a pydantic model so a ResearchResult can
be dumped to JSON for downstream consumers and validated back unchanged.
Derivatives and outlier classifications are discriminated unions keyed on
``type`` / ``category``.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, field_validator

Depth = Literal["flash", "budget", "quick", "standard", "verified", "deep-dive"]
Reliability = Literal["high", "medium", "low", "uncertain"]
Tier = Literal["high", "medium", "low"]
VarianceLevel = Literal["low", "medium", "high"]

MODEL_ID_PATTERN = re.compile(r"^[a-zA-Z0-9\-./]+$")


class ResearchRequest(BaseModel):
    """A validated research request. Built once at ingestion."""

    topic: str = Field(min_length=1, max_length=2000)
    depth: Depth = "standard"
    max_cost: float | None = Field(default=None, gt=0)
    persona: str = "analyst"
    backends: list[str] = Field(default_factory=list)
    deadline_seconds: float | None = Field(default=None, gt=0)

    @field_validator("topic")
    @classmethod
    def strip_topic(cls, value: str) -> str:
        topic = value.strip()
        if not topic:
            raise ValueError("Topic is required")
        return topic

    @field_validator("backends")
    @classmethod
    def validate_backends(cls, value: list[str]) -> list[str]:
        for model_id in value:
            if not MODEL_ID_PATTERN.match(model_id):
                raise ValueError(f"Invalid model ID format: {model_id!r}")
        return value


class GenerationParams(BaseModel):
    """Arguments for a single provider call."""

    prompt: str = Field(min_length=1, max_length=100_000)
    system_prompt: str | None = Field(default=None, max_length=50_000)
    model: str
    max_tokens: int = Field(default=1000, gt=0, le=200_000)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)


class Generation(BaseModel):
    """Provider output, parsed once at the provider boundary."""

    text: str
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    cost_estimate: float = Field(default=0.0, ge=0.0)
    model: str
    provider: str


class ModelResponse(BaseModel):
    """One backend's contribution to a research run.

    ``backend`` is the roster model id the response is attributed to and the
    identity every analyzer keys on; ``model`` is the id the provider reported.
    """

    backend: str
    provider: str
    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost_estimate: float = 0.0
    model: str
    pass_number: int = 1
    substituted_for: str | None = None


# ── Consensus & variance ─────────────────────────────────────────────────────


class Claim(BaseModel):
    """A normalized fragment and the distinct backends that produced it."""

    text: str
    backends: list[str]

    @property
    def count(self) -> int:
        return len(self.backends)


class ConsensusItem(BaseModel):
    value: str
    confidence: float = Field(gt=0.0, le=1.0)
    agreement_count: int
    total_models: int
    models: list[str]


class Consensus(BaseModel):
    items: list[ConsensusItem] = Field(default_factory=list)
    threshold: int
    total_responses: int


class Disagreement(BaseModel):
    text: str
    models: list[str]
    count: int


class UniqueClaim(BaseModel):
    text: str
    model: str
    confidence: Literal["low"] = "low"


class Contradiction(BaseModel):
    model1: str
    model2: str
    text1: str
    text2: str


class VarianceReport(BaseModel):
    level: VarianceLevel
    score: int
    disagreements: list[Disagreement] = Field(default_factory=list)
    unique: list[UniqueClaim] = Field(default_factory=list)
    contradictions: list[Contradiction] = Field(default_factory=list)


# ── Derivatives ──────────────────────────────────────────────────────────────


class _DerivativeBase(BaseModel):
    title: str
    message: str
    reliability: Reliability
    actionable: bool
    recommendation: str | None = None


class ConvergentConfidence(_DerivativeBase):
    type: Literal["convergent-confidence"] = "convergent-confidence"


class ContextDependency(_DerivativeBase):
    type: Literal["context-dependency"] = "context-dependency"


class UniqueClaims(_DerivativeBase):
    type: Literal["unique-claims"] = "unique-claims"
    count: int


class Contradictions(_DerivativeBase):
    type: Literal["contradictions"] = "contradictions"
    count: int


class NumericalVariance(_DerivativeBase):
    type: Literal["numerical-variance"] = "numerical-variance"
    minimum: float
    maximum: float
    mean: float


class OverconfidenceFlag(_DerivativeBase):
    type: Literal["overconfidence-flag"] = "overconfidence-flag"
    model: str


Derivative = Annotated[
    Union[
        ConvergentConfidence,
        ContextDependency,
        UniqueClaims,
        Contradictions,
        NumericalVariance,
        OverconfidenceFlag,
    ],
    Field(discriminator="type"),
]


# ── Outliers ─────────────────────────────────────────────────────────────────


class _ClassificationBase(BaseModel):
    model: str
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str
    recommendation: str


class Hallucination(_ClassificationBase):
    category: Literal["hallucination"] = "hallucination"
    outlier_mean: float
    valid_mean: float


class Outdated(_ClassificationBase):
    category: Literal["outdated"] = "outdated"


class MisunderstoodQuery(_ClassificationBase):
    category: Literal["misunderstood-query"] = "misunderstood-query"
    overlap: float


class ValuableDissent(_ClassificationBase):
    category: Literal["valuable-dissent"] = "valuable-dissent"


OutlierClassification = Annotated[
    Union[Hallucination, Outdated, MisunderstoodQuery, ValuableDissent],
    Field(discriminator="category"),
]


class Outlier(BaseModel):
    model: str
    response: str
    classification: OutlierClassification


class OutlierReport(BaseModel):
    total_responses: int
    outliers: list[Outlier] = Field(default_factory=list)
    valid_responses: list[str] = Field(default_factory=list)
    numerical_flags: list[str] = Field(default_factory=list)
    lexical_flags: list[str] = Field(default_factory=list)


# ── Dispatch strategy & result ───────────────────────────────────────────────


class Concurrent(BaseModel):
    kind: Literal["concurrent"] = "concurrent"


class SequentialThrottled(BaseModel):
    kind: Literal["sequential"] = "sequential"
    delay: float = Field(ge=0.0)


DispatchStrategy = Annotated[Union[Concurrent, SequentialThrottled], Field(discriminator="kind")]


class ResearchFact(BaseModel):
    claim: str
    source: str | None = None
    confidence: Tier
    agreed_by: list[str] = Field(default_factory=list)
    disputed_by: list[str] = Field(default_factory=list)


class ResearchMetadata(BaseModel):
    depth: Depth
    persona: str
    models_used: list[str]
    total_queries: int
    passes: int
    strategy: DispatchStrategy
    tie_breaker: str | None = None
    duration_ms: int
    outlier_fallback: bool = False


class CostBreakdown(BaseModel):
    by_model: dict[str, float] = Field(default_factory=dict)
    total: float = 0.0


class ResearchResult(BaseModel):
    """Output of one research run — serialisable for downstream consumers."""

    topic: str
    summary: str
    score: int = Field(ge=0, le=100)
    confirmed: list[ResearchFact] = Field(default_factory=list)
    disputed: list[ResearchFact] = Field(default_factory=list)
    unique: list[ResearchFact] = Field(default_factory=list)
    sources: list[str] = Field(default_factory=list)
    consensus: Consensus
    variance: VarianceReport
    derivatives: list[Derivative] = Field(default_factory=list)
    outliers: OutlierReport
    metadata: ResearchMetadata
    cost_breakdown: CostBreakdown
    started_at: datetime
