"""Tests for pass-1 dispatch, substitution, and the synthesis pass."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from consensus_research_mcp.admission import AdmissionController, AdmissionLimits
from consensus_research_mcp.catalog import ModelCatalog
from consensus_research_mcp.dispatch import DispatchCoordinator
from consensus_research_mcp.errors import FailureKind, ProviderError
from consensus_research_mcp.models.research import SequentialThrottled
from consensus_research_mcp.providers import ProviderRegistry
from consensus_research_mcp.retry import RetryPolicy
from consensus_research_mcp.workflow import WorkflowPlan

PROMPT = "Research the following topic thoroughly: tidal energy"


def _fail(provider: str, model: str, kind: FailureKind = FailureKind.AUTH) -> ProviderError:
    return ProviderError(provider, model, "scripted failure", kind=kind)


def _plan(*roster: str, passes: int = 1, strategy=None) -> WorkflowPlan:
    kwargs = {"strategy": strategy} if strategy is not None else {}
    return WorkflowPlan(roster=list(roster), passes=passes, validate_outliers=len(roster) > 1, **kwargs)


@pytest.fixture()
def build():
    """Build a coordinator over the given providers with instant admission and one attempt."""

    def _build(*providers, sleep=None):
        registry = ProviderRegistry(ModelCatalog(), list(providers))
        admission = AdmissionController({}, fallback=AdmissionLimits(min_interval=0.0, reservoir=None))
        kwargs = {"sleep": sleep} if sleep is not None else {}
        return DispatchCoordinator(
            registry,
            admission=admission,
            retry_policy=RetryPolicy(max_attempts=1, timeout=None),
            **kwargs,
        )

    return _build


class TestPassOne:
    async def test_every_backend_answers(self, build, scripted):
        gemini = scripted("gemini", {"gemini-2.5-flash": "Tidal power is predictable."})
        openai = scripted("openai", {"gpt-4o-mini": "Tidal power needs coastal sites."})
        coordinator = build(gemini, openai)

        responses = await coordinator.dispatch(_plan("gemini-2.5-flash", "gpt-4o-mini"), PROMPT)

        assert [r.backend for r in responses] == ["gemini-2.5-flash", "gpt-4o-mini"]
        assert responses[0].text == "Tidal power is predictable."
        assert all(r.pass_number == 1 and r.substituted_for is None for r in responses)
        assert responses[0].input_tokens == 100

    async def test_system_prompt_and_settings_forwarded(self, build, scripted):
        gemini = scripted("gemini")
        coordinator = build(gemini)
        coordinator.temperature = 0.2

        await coordinator.dispatch(_plan("gemini-2.5-flash"), PROMPT, system_prompt="You are a CFO.")

        params = gemini.calls[0]
        assert params.system_prompt == "You are a CFO."
        assert params.temperature == 0.2
        assert params.max_tokens == 1000

    async def test_sequential_strategy_sleeps_between_slots(self, build, scripted):
        sleep = AsyncMock()
        gemini = scripted("gemini")
        openai = scripted("openai")
        anthropic = scripted("anthropic")
        coordinator = build(gemini, openai, anthropic, sleep=sleep)
        plan = _plan(
            "gemini-2.5-flash", "gpt-4o-mini", "claude-3.5-haiku",
            strategy=SequentialThrottled(delay=2.0),
        )

        responses = await coordinator.dispatch(plan, PROMPT)

        assert [r.backend for r in responses] == ["gemini-2.5-flash", "gpt-4o-mini", "claude-3.5-haiku"]
        assert [c.args[0] for c in sleep.await_args_list] == [2.0, 2.0]

    async def test_concurrent_strategy_never_sleeps(self, build, scripted):
        sleep = AsyncMock()
        coordinator = build(scripted("gemini"), scripted("openai"), sleep=sleep)

        await coordinator.dispatch(_plan("gemini-2.5-flash", "gpt-4o-mini"), PROMPT)

        sleep.assert_not_awaited()

    async def test_all_failures_yield_empty_list(self, build, scripted):
        gemini = scripted("gemini", {"gemini-2.5-flash": _fail("gemini", "gemini-2.5-flash")})
        coordinator = build(gemini)

        assert await coordinator.dispatch(_plan("gemini-2.5-flash"), PROMPT) == []


class TestSubstitution:
    async def test_failed_slot_gets_substitute_from_other_provider(self, build, scripted):
        gemini = scripted("gemini")
        openai = scripted("openai", {"gpt-4o-mini": _fail("openai", "gpt-4o-mini", FailureKind.QUOTA)})
        anthropic = scripted("anthropic", {"claude-3.5-haiku": "Haiku fills in."})
        coordinator = build(gemini, openai, anthropic)

        responses = await coordinator.dispatch(_plan("gemini-2.5-flash", "gpt-4o-mini"), PROMPT)

        # gemini-2.5-flash is already on the roster, so the next canonical model is used
        assert [r.backend for r in responses] == ["gemini-2.5-flash", "claude-3.5-haiku"]
        assert responses[1].substituted_for == "gpt-4o-mini"
        assert responses[1].text == "Haiku fills in."

    async def test_concurrent_failures_claim_distinct_substitutes(self, build, scripted):
        openai = scripted("openai", {
            "gpt-4o": _fail("openai", "gpt-4o"),
            "gpt-4o-mini": _fail("openai", "gpt-4o-mini"),
        })
        coordinator = build(openai, scripted("anthropic"), scripted("deepseek"))

        responses = await coordinator.dispatch(_plan("gpt-4o", "gpt-4o-mini"), PROMPT)

        substitutes = {r.backend: r.substituted_for for r in responses}
        assert set(substitutes) == {"claude-3.5-haiku", "deepseek-chat"}
        assert set(substitutes.values()) == {"gpt-4o", "gpt-4o-mini"}

    async def test_substitute_gets_one_attempt_then_slot_dropped(self, build, scripted):
        openai = scripted("openai", {"gpt-4o": _fail("openai", "gpt-4o")})
        anthropic = scripted("anthropic", {
            "claude-3.5-haiku": _fail("anthropic", "claude-3.5-haiku", FailureKind.RATE_LIMIT),
        })
        coordinator = build(openai, anthropic)
        coordinator.retry_policy = RetryPolicy(max_attempts=3, base_delay=0.001, timeout=None)

        responses = await coordinator.dispatch(_plan("gpt-4o"), PROMPT)

        assert responses == []
        assert len(anthropic.calls) == 1

    async def test_no_substitute_when_every_canonical_model_is_claimed(self, build, scripted):
        gemini = scripted("gemini", {"gemini-2.5-flash": _fail("gemini", "gemini-2.5-flash")})
        openai = scripted("openai")
        coordinator = build(gemini, openai)

        responses = await coordinator.dispatch(_plan("gemini-2.5-flash", "gpt-4o-mini"), PROMPT)

        assert [r.backend for r in responses] == ["gpt-4o-mini"]

    async def test_unregistered_backend_is_substituted(self, build, scripted):
        coordinator = build(scripted("gemini"))

        responses = await coordinator.dispatch(_plan("deepseek-chat"), PROMPT)

        assert responses[0].backend == "gemini-2.5-flash"
        assert responses[0].substituted_for == "deepseek-chat"


class TestSynthesis:
    async def test_synthesizer_refines_pass_one(self, build, scripted):
        gemini = scripted("gemini", {"gemini-2.5-flash": "Tides are predictable."})
        openai = scripted("openai", {"gpt-4o-mini": "Tidal sites are rare."})
        anthropic = scripted("anthropic", {"claude-sonnet-4": "Predictable but site-limited."})
        coordinator = build(gemini, openai, anthropic)

        responses = await coordinator.dispatch(
            _plan("gemini-2.5-flash", "gpt-4o-mini", "claude-sonnet-4", passes=2), PROMPT,
        )

        assert [r.pass_number for r in responses] == [1, 1, 2]
        synthesis = anthropic.calls[0]
        assert "[gemini-2.5-flash]: Tides are predictable." in synthesis.prompt
        assert "[gpt-4o-mini]: Tidal sites are rare." in synthesis.prompt
        assert synthesis.max_tokens == 1500
        assert responses[-1].text == "Predictable but site-limited."

    async def test_synthesis_failure_keeps_pass_one(self, build, scripted):
        anthropic = scripted("anthropic", {"claude-sonnet-4": _fail("anthropic", "claude-sonnet-4")})
        coordinator = build(scripted("gemini"), scripted("openai"), anthropic)

        responses = await coordinator.dispatch(
            _plan("gemini-2.5-flash", "gpt-4o-mini", "claude-sonnet-4", passes=2), PROMPT,
        )

        assert [r.backend for r in responses] == ["gemini-2.5-flash", "gpt-4o-mini"]

    async def test_synthesis_skipped_without_pass_one_answers(self, build, scripted):
        gemini = scripted("gemini", {"gemini-2.5-flash": _fail("gemini", "gemini-2.5-flash")})
        anthropic = scripted("anthropic", {"claude-3.5-haiku": _fail("anthropic", "claude-3.5-haiku")})
        coordinator = build(gemini, anthropic)

        responses = await coordinator.dispatch(_plan("gemini-2.5-flash", "claude-sonnet-4", passes=2), PROMPT)

        assert responses == []
        assert [p.model for p in anthropic.calls] == ["claude-3.5-haiku"]


class TestRetryInsideSlot:
    async def test_transient_failure_retried_before_substitution(self, build, scripted):
        gemini = scripted("gemini", {
            "gemini-2.5-flash": [_fail("gemini", "gemini-2.5-flash", FailureKind.RATE_LIMIT), "Second try."],
        })
        coordinator = build(gemini, scripted("openai"))
        coordinator.retry_policy = RetryPolicy(max_attempts=2, base_delay=0.001, timeout=None)

        responses = await coordinator.dispatch(_plan("gemini-2.5-flash"), PROMPT)

        assert responses[0].backend == "gemini-2.5-flash"
        assert responses[0].text == "Second try."
        assert len(gemini.calls) == 2

    async def test_slow_backend_times_out_and_is_substituted(self, build, scripted):
        class _Slow(scripted):
            async def generate(self, params):
                await asyncio.sleep(5)

        coordinator = build(_Slow("openai"), scripted("gemini"))
        coordinator.retry_policy = RetryPolicy(max_attempts=1, timeout=0.01)

        responses = await coordinator.dispatch(_plan("gpt-4o"), PROMPT)

        assert responses[0].backend == "gemini-2.5-flash"
        assert responses[0].substituted_for == "gpt-4o"
