"""Dispatch coordinator — runs a WorkflowPlan against the provider registry.

Pass 1 asks every first-pass backend the same question, concurrently or one
at a time with a fixed delay. A failing slot gets exactly one substitute
from a different provider; if that also fails the slot is dropped. When the
plan has two passes, the synthesizer then refines every Pass-1 answer.
Individual failures never propagate: the caller decides what an empty
result means.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from .admission import AdmissionController
from .catalog import CANONICAL_MODELS, SUBSTITUTION_ORDER, ModelCatalog
from .errors import FailureKind, ProviderError, classify_failure
from .models.research import Generation, GenerationParams, ModelResponse, SequentialThrottled
from .prompts.research import synthesis_prompt
from .providers.registry import ProviderRegistry
from .retry import RetryPolicy, with_retry
from .workflow import WorkflowPlan

logger = logging.getLogger(__name__)


class DispatchCoordinator:
    """Executes pass 1 and the optional synthesis pass for one plan."""

    def __init__(
        self,
        registry: ProviderRegistry,
        catalog: ModelCatalog | None = None,
        *,
        admission: AdmissionController | None = None,
        retry_policy: RetryPolicy | None = None,
        max_tokens: int = 1000,
        synthesis_max_tokens: int = 1500,
        temperature: float = 0.7,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.registry = registry
        self.catalog = catalog or registry.catalog
        self.admission = admission or AdmissionController()
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_tokens = max_tokens
        self.synthesis_max_tokens = synthesis_max_tokens
        self.temperature = temperature
        self._sleep = sleep

    async def dispatch(
        self,
        plan: WorkflowPlan,
        prompt: str,
        system_prompt: str | None = None,
    ) -> list[ModelResponse]:
        """Run the plan and return every response that succeeded."""
        claimed = set(plan.roster)
        first_pass = plan.first_pass

        if isinstance(plan.strategy, SequentialThrottled):
            responses: list[ModelResponse] = []
            for index, backend in enumerate(first_pass):
                if index:
                    await self._sleep(plan.strategy.delay)
                response = await self._run_slot(backend, prompt, system_prompt, claimed)
                if response is not None:
                    responses.append(response)
        else:
            results = await asyncio.gather(
                *(self._run_slot(b, prompt, system_prompt, claimed) for b in first_pass)
            )
            responses = [r for r in results if r is not None]

        logger.info("Pass 1 complete: %d/%d backends responded", len(responses), len(first_pass))

        synthesizer = plan.synthesizer
        if synthesizer and responses:
            synthesis = await self._synthesize(synthesizer, responses, system_prompt)
            if synthesis is not None:
                responses.append(synthesis)
        return responses

    async def _call(
        self,
        backend: str,
        prompt: str,
        system_prompt: str | None,
        max_tokens: int,
        policy: RetryPolicy,
    ) -> Generation:
        provider = self.registry.provider_for_model(backend)
        if provider is None:
            raise ProviderError(
                self.catalog.provider_for(backend) or "unknown",
                backend,
                "no provider registered",
                kind=FailureKind.UNAVAILABLE,
            )
        params = GenerationParams(
            prompt=prompt,
            system_prompt=system_prompt,
            model=backend,
            max_tokens=max_tokens,
            temperature=self.temperature,
        )
        return await with_retry(
            lambda: provider.generate(params),
            policy,
            gate=self.admission.gate(provider.id),
            label=f"{provider.id}:{backend}",
        )

    async def _run_slot(
        self,
        backend: str,
        prompt: str,
        system_prompt: str | None,
        claimed: set[str],
    ) -> ModelResponse | None:
        try:
            generation = await self._call(backend, prompt, system_prompt, self.max_tokens, self.retry_policy)
            return _to_response(backend, generation)
        except Exception as exc:
            failed_provider = self.catalog.provider_for(backend) or "unknown"
            _log_failure(backend, exc)

        substitute = self._claim_substitute(failed_provider, claimed)
        if substitute is None:
            logger.warning("No substitute available for %s — dropping slot", backend)
            return None

        logger.info("Substituting %s for failed %s", substitute, backend)
        single_attempt = self.retry_policy.model_copy(update={"max_attempts": 1})
        try:
            generation = await self._call(substitute, prompt, system_prompt, self.max_tokens, single_attempt)
        except Exception as exc:
            _log_failure(substitute, exc)
            logger.warning("Substitute %s failed — dropping slot for %s", substitute, backend)
            return None
        return _to_response(substitute, generation, substituted_for=backend)

    def _claim_substitute(self, failed_provider: str, claimed: set[str]) -> str | None:
        """Pick and reserve a canonical model from another provider.

        Check-and-add happens without an ``await`` in between, so concurrent
        slots can never claim the same substitute.
        """
        order = list(SUBSTITUTION_ORDER) + [
            p for p in self.registry.available() if p not in SUBSTITUTION_ORDER
        ]
        for provider_id in order:
            if provider_id == failed_provider or not self.registry.has(provider_id):
                continue
            model = CANONICAL_MODELS.get(provider_id)
            if model is None or model in claimed:
                continue
            claimed.add(model)
            return model
        return None

    async def _synthesize(
        self,
        synthesizer: str,
        responses: list[ModelResponse],
        system_prompt: str | None,
    ) -> ModelResponse | None:
        prompt = synthesis_prompt([(r.backend, r.text) for r in responses])
        try:
            generation = await self._call(
                synthesizer, prompt, system_prompt, self.synthesis_max_tokens, self.retry_policy
            )
        except Exception as exc:
            _log_failure(synthesizer, exc)
            logger.warning("Synthesis by %s failed — keeping %d pass-1 responses", synthesizer, len(responses))
            return None
        logger.info("Pass 2 complete: synthesized by %s", synthesizer)
        return _to_response(synthesizer, generation, pass_number=2)


def _to_response(
    backend: str,
    generation: Generation,
    *,
    pass_number: int = 1,
    substituted_for: str | None = None,
) -> ModelResponse:
    return ModelResponse(
        backend=backend,
        provider=generation.provider,
        text=generation.text,
        input_tokens=generation.input_tokens,
        output_tokens=generation.output_tokens,
        cost_estimate=generation.cost_estimate,
        model=generation.model,
        pass_number=pass_number,
        substituted_for=substituted_for,
    )


def _log_failure(backend: str, exc: BaseException) -> None:
    kind = classify_failure(exc)
    if kind is FailureKind.QUOTA:
        logger.warning("%s: quota or billing exhausted: %s", backend, exc)
    elif kind is FailureKind.RATE_LIMIT:
        logger.warning("%s: rate limited: %s", backend, exc)
    elif kind is FailureKind.TIMEOUT:
        logger.warning("%s: timed out", backend)
    elif kind is FailureKind.AUTH:
        logger.error("%s: authentication failed: %s", backend, exc)
    else:
        logger.warning("%s: call failed (%s): %s", backend, kind.value, exc)
