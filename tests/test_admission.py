"""Tests for per-backend admission gates."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

from consensus_research_mcp.admission import (
    DEFAULT_LIMITS,
    AdmissionController,
    AdmissionGate,
    AdmissionLimits,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.waits: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.waits.append(round(seconds, 6))
        self.now += seconds


class TestAdmissionGate:
    async def test_in_flight_never_exceeds_limit(self):
        gate = AdmissionGate("openai", AdmissionLimits(max_concurrent=2, min_interval=0.0, reservoir=None))
        peak = 0
        release = asyncio.Event()

        async def _call():
            nonlocal peak
            peak = max(peak, gate.in_flight)
            await release.wait()
            return "done"

        tasks = [asyncio.create_task(gate.run(_call)) for _ in range(5)]
        await asyncio.sleep(0.01)
        assert gate.in_flight == 2
        release.set()
        results = await asyncio.gather(*tasks)

        assert results == ["done"] * 5
        assert peak <= 2
        assert gate.in_flight == 0

    async def test_starts_are_spaced(self):
        clock = FakeClock()
        gate = AdmissionGate("gemini", AdmissionLimits(max_concurrent=5, min_interval=0.5, reservoir=None), clock=clock)

        async def _noop():
            return None

        with patch("consensus_research_mcp.admission.asyncio.sleep", clock.sleep):
            for _ in range(3):
                await gate.run(_noop)

        assert clock.waits == [0.5, 0.5]
        assert clock.now == 1.0

    async def test_reservoir_refills_on_fixed_period(self):
        """GIVEN a 2-call reservoir THEN the third call waits for the next period."""
        clock = FakeClock()
        limits = AdmissionLimits(max_concurrent=5, min_interval=0.0, reservoir=2, refill_interval=60.0)
        gate = AdmissionGate("deepseek", limits, clock=clock)

        async def _noop():
            return None

        with patch("consensus_research_mcp.admission.asyncio.sleep", clock.sleep):
            await gate.run(_noop)
            await gate.run(_noop)
            assert gate.tokens == 0
            await gate.run(_noop)

        assert clock.waits == [60.0]
        assert gate.tokens == 1

    async def test_failure_releases_slot(self):
        gate = AdmissionGate("groq", AdmissionLimits(max_concurrent=1, min_interval=0.0, reservoir=None))

        async def _boom():
            raise RuntimeError("boom")

        try:
            await gate.run(_boom)
        except RuntimeError:
            pass
        assert gate.in_flight == 0


class TestAdmissionController:
    def test_one_gate_per_provider(self):
        controller = AdmissionController()
        assert controller.gate("openai") is controller.gate("openai")
        assert controller.gate("openai") is not controller.gate("gemini")

    def test_known_and_fallback_limits(self):
        controller = AdmissionController()
        assert controller.gate("gemini").limits == DEFAULT_LIMITS["gemini"]
        assert controller.gate("simulator").limits == DEFAULT_LIMITS["openai"]
