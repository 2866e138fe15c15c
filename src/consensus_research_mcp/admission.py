"""Per-backend admission control — in-flight bound, start spacing, refilling reservoir.

Each provider gets its own :class:`AdmissionGate`. A call acquires a slot
(bounded by ``max_concurrent``), then reserves a start: at least
``min_interval`` after the previous start and only while the reservoir still
holds tokens. The reservoir refills to ``reservoir`` every
``refill_interval`` seconds on a fixed period. Counters are only touched
under the gate's ``asyncio.Lock``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from contextlib import asynccontextmanager
from typing import TypeVar

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AdmissionLimits(BaseModel):
    """Throughput limits for one provider."""

    max_concurrent: int = Field(default=5, ge=1)
    min_interval: float = Field(default=0.1, ge=0.0)
    reservoir: int | None = Field(default=60, ge=1)
    refill_interval: float = Field(default=60.0, gt=0.0)


DEFAULT_LIMITS: dict[str, AdmissionLimits] = {
    "openai": AdmissionLimits(max_concurrent=5, min_interval=0.1, reservoir=60),
    "anthropic": AdmissionLimits(max_concurrent=5, min_interval=0.1, reservoir=60),
    "gemini": AdmissionLimits(max_concurrent=10, min_interval=0.05, reservoir=1500),
    "deepseek": AdmissionLimits(max_concurrent=5, min_interval=0.1, reservoir=60),
    "groq": AdmissionLimits(max_concurrent=10, min_interval=0.05, reservoir=100),
}


class AdmissionGate:
    """Concurrency and rate gate for a single backend provider."""

    def __init__(
        self,
        name: str,
        limits: AdmissionLimits,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.limits = limits
        self._clock = clock
        self._semaphore = asyncio.Semaphore(limits.max_concurrent)
        self._lock = asyncio.Lock()
        self._tokens = limits.reservoir
        self._period_start = clock()
        self._last_start: float | None = None
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def tokens(self) -> int | None:
        return self._tokens

    def _refill(self, now: float) -> None:
        if self.limits.reservoir is None:
            return
        elapsed = now - self._period_start
        if elapsed >= self.limits.refill_interval:
            periods = int(elapsed // self.limits.refill_interval)
            self._period_start += periods * self.limits.refill_interval
            self._tokens = self.limits.reservoir

    async def _reserve_start(self) -> None:
        """Block until spacing and reservoir allow another call to start."""
        while True:
            async with self._lock:
                now = self._clock()
                self._refill(now)
                wait = 0.0
                if self._last_start is not None:
                    wait = max(wait, self._last_start + self.limits.min_interval - now)
                if self._tokens is not None and self._tokens <= 0:
                    wait = max(wait, self._period_start + self.limits.refill_interval - now)
                if wait <= 0:
                    if self._tokens is not None:
                        self._tokens -= 1
                    self._last_start = now
                    self._in_flight += 1
                    return
            logger.debug("Admission %s: waiting %.2fs", self.name, wait)
            await asyncio.sleep(wait)

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        """Hold one admitted call for the duration of the ``async with`` block."""
        async with self._semaphore:
            await self._reserve_start()
            try:
                yield
            finally:
                async with self._lock:
                    self._in_flight -= 1

    async def run(self, coro_factory: Callable[[], Awaitable[T]]) -> T:
        """Run ``coro_factory()`` inside an admitted slot."""
        async with self.slot():
            return await coro_factory()


class AdmissionController:
    """Lazily creates one gate per provider from a limits table."""

    def __init__(
        self,
        limits: Mapping[str, AdmissionLimits] | None = None,
        *,
        fallback: AdmissionLimits | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._limits = dict(DEFAULT_LIMITS if limits is None else limits)
        self._fallback = fallback or DEFAULT_LIMITS["openai"]
        self._clock = clock
        self._gates: dict[str, AdmissionGate] = {}

    def gate(self, provider: str) -> AdmissionGate:
        gate = self._gates.get(provider)
        if gate is None:
            limits = self._limits.get(provider, self._fallback)
            gate = AdmissionGate(provider, limits, clock=self._clock)
            self._gates[provider] = gate
        return gate
