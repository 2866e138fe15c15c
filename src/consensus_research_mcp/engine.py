"""Research engine — select, dispatch, isolate, analyze, assemble.

One ``investigate`` call runs the whole pipeline for a topic:

1. Validate the request (pydantic) and resolve a WorkflowPlan.
2. Dispatch Pass 1 (and Pass 2 when planned) under an optional deadline.
3. Isolate outliers; if every response is flagged, analyze the raw set.
4. Compute consensus, variance, and derivatives over the analysis set.
5. Assemble the scored ResearchResult and hand it to the storage sink
   in the background.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Protocol

import pydantic

from .admission import AdmissionController
from .analysis import analyze_variance, calculate_consensus, derive_insights, extract_claims, isolate_outliers
from .assembler import assemble_result
from .catalog import ModelCatalog
from .config import AnalysisThresholds, ServerConfig
from .dispatch import DispatchCoordinator
from .errors import ConsensusComputationError, DeadlineExceededError, ResearchError, ValidationError
from .models.research import ModelResponse, OutlierReport, ResearchMetadata, ResearchRequest, ResearchResult
from .personas import PersonaBook
from .prompts.research import research_prompt
from .providers.registry import ProviderRegistry, build_registry
from .retry import RetryPolicy
from .workflow import WorkflowPlan, WorkflowSelector

logger = logging.getLogger(__name__)


class ResultSink(Protocol):
    """Persists finished results; failures are the sink's own business."""

    async def store(self, result: ResearchResult, embedding: list[float] | None = None) -> Any: ...


class Grounding(Protocol):
    """Optional source of external context prepended to the research prompt."""

    async def context(self, topic: str) -> str | None: ...


class ResearchEngine:
    """Multi-backend research orchestration with statistical consensus."""

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        catalog: ModelCatalog | None = None,
        admission: AdmissionController | None = None,
        retry_policy: RetryPolicy | None = None,
        thresholds: AnalysisThresholds | None = None,
        personas: PersonaBook | None = None,
        sink: ResultSink | None = None,
        grounding: Grounding | None = None,
        primary_model: str = "gemini-2.5-flash",
        sequential_delay: float = 2.0,
        max_tokens: int = 1000,
        synthesis_max_tokens: int = 1500,
        temperature: float = 0.7,
    ) -> None:
        self.registry = registry
        self.catalog = catalog or registry.catalog
        self.thresholds = thresholds or AnalysisThresholds()
        self.personas = personas or PersonaBook()
        self.sink = sink
        self.grounding = grounding
        self.selector = WorkflowSelector(
            self.catalog,
            registry,
            primary_model=primary_model,
            sequential_delay=sequential_delay,
        )
        self.dispatcher = DispatchCoordinator(
            registry,
            self.catalog,
            admission=admission,
            retry_policy=retry_policy,
            max_tokens=max_tokens,
            synthesis_max_tokens=synthesis_max_tokens,
            temperature=temperature,
        )
        self._background: set[asyncio.Task] = set()

    @classmethod
    def from_config(
        cls,
        config: ServerConfig,
        *,
        registry: ProviderRegistry | None = None,
        sink: ResultSink | None = None,
        grounding: Grounding | None = None,
    ) -> ResearchEngine:
        """Wire an engine from a :class:`ServerConfig`."""
        catalog = registry.catalog if registry is not None else ModelCatalog()
        return cls(
            registry if registry is not None else build_registry(config, catalog),
            catalog=catalog,
            retry_policy=RetryPolicy(
                max_attempts=config.retry_max_attempts,
                base_delay=config.retry_base_delay,
                max_delay=config.retry_max_delay,
                timeout=config.call_timeout,
            ),
            thresholds=config.thresholds,
            sink=sink,
            grounding=grounding,
            primary_model=config.primary_model,
            sequential_delay=config.sequential_delay,
            max_tokens=config.max_tokens,
            synthesis_max_tokens=config.synthesis_max_tokens,
            temperature=config.temperature,
        )

    async def investigate(self, request: ResearchRequest | str, **options: Any) -> ResearchResult:
        """Run one research request end to end.

        Args:
            request: A ResearchRequest, or a topic string combined with
                ``options`` (depth, max_cost, persona, backends, deadline_seconds).

        Returns:
            The assembled ResearchResult.

        Raises:
            ValidationError: Malformed request.
            NoProvidersError: No backend is registered at all.
            DeadlineExceededError: ``deadline_seconds`` elapsed during dispatch.
            ConsensusComputationError: Every backend call failed.
        """
        request = _validate(request, options)
        try:
            return await self._investigate(request)
        except ResearchError as exc:
            exc.topic = exc.topic or request.topic
            raise

    async def _investigate(self, request: ResearchRequest) -> ResearchResult:
        started_at = datetime.now(timezone.utc)
        started = time.monotonic()

        plan = self.selector.select(request.depth, max_cost=request.max_cost, overrides=request.backends or None)
        logger.info(
            "Starting %s research on %r with %s (%d pass%s, %s)",
            request.depth, request.topic, plan.roster, plan.passes,
            "es" if plan.passes > 1 else "", plan.strategy.kind,
        )

        prompt = research_prompt(request.topic, await self._ground(request.topic))
        system_prompt = self.personas.system_prompt(request.persona)
        responses = await self._dispatch(plan, prompt, system_prompt, request.deadline_seconds)
        if not responses:
            raise ConsensusComputationError(
                "All backend calls failed — no responses to analyze",
                phase="dispatch",
                topic=request.topic,
            )

        if plan.validate_outliers:
            outliers = isolate_outliers(responses, self.thresholds)
        else:
            outliers = OutlierReport(total_responses=len(responses), valid_responses=[r.backend for r in responses])

        valid_ids = set(outliers.valid_responses)
        analysis_set = [r for r in responses if r.backend in valid_ids]
        fallback = not analysis_set
        if fallback:
            logger.warning("All %d responses were outliers — analyzing the raw set", len(responses))
            analysis_set = list(responses)

        claims = extract_claims(analysis_set, self.thresholds)
        consensus = calculate_consensus(analysis_set, self.thresholds, claims)
        variance = analyze_variance(analysis_set, consensus, self.thresholds, claims)
        derivatives = derive_insights(analysis_set, consensus, variance, self.thresholds)

        duration_ms = int((time.monotonic() - started) * 1000)
        result = assemble_result(
            topic=request.topic,
            responses=responses,
            consensus=consensus,
            variance=variance,
            derivatives=derivatives,
            outliers=outliers,
            metadata=ResearchMetadata(
                depth=request.depth,
                persona=request.persona,
                models_used=[r.backend for r in responses],
                total_queries=len(responses),
                passes=plan.passes,
                strategy=plan.strategy,
                tie_breaker=plan.tie_breaker,
                duration_ms=duration_ms,
                outlier_fallback=fallback,
            ),
            started_at=started_at,
        )
        logger.info(
            "Research complete: score=%d, cost=$%.4f, %dms, %d responses",
            result.score, result.cost_breakdown.total, duration_ms, len(responses),
        )
        self._store_in_background(result)
        return result

    async def _ground(self, topic: str) -> str | None:
        if self.grounding is None:
            return None
        try:
            return await self.grounding.context(topic)
        except Exception as exc:
            logger.warning("Grounding failed, continuing without context: %s", exc)
            return None

    async def _dispatch(
        self,
        plan: WorkflowPlan,
        prompt: str,
        system_prompt: str,
        deadline: float | None,
    ) -> list[ModelResponse]:
        work = self.dispatcher.dispatch(plan, prompt, system_prompt)
        if deadline is None:
            return await work
        try:
            return await asyncio.wait_for(work, timeout=deadline)
        except asyncio.TimeoutError as exc:
            raise DeadlineExceededError(f"Deadline of {deadline:g}s exceeded during dispatch", cause=exc) from exc

    def _store_in_background(self, result: ResearchResult) -> None:
        if self.sink is None:
            return
        task = asyncio.create_task(self.sink.store(result))
        self._background.add(task)
        task.add_done_callback(self._on_stored)

    def _on_stored(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Result sink failed: %s", task.exception())

    async def aclose(self) -> None:
        """Wait for pending storage writes, then close every provider."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        await self.registry.aclose()


def _validate(request: ResearchRequest | str, options: dict[str, Any]) -> ResearchRequest:
    if isinstance(request, ResearchRequest):
        return request
    try:
        return ResearchRequest.model_validate({"topic": request, **options})
    except pydantic.ValidationError as exc:
        topic = request if isinstance(request, str) else ""
        details = "; ".join(f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in exc.errors())
        raise ValidationError(f"Invalid research request: {details}", topic=topic, cause=exc) from exc
