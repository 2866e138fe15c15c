"""Exponential backoff retry for transient backend failures."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pydantic import BaseModel, Field

from .admission import AdmissionGate
from .errors import is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """Attempts, backoff, and per-call timeout for one backend call."""

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, gt=0.0)
    max_delay: float = Field(default=60.0, gt=0.0)
    timeout: float | None = Field(default=30.0, gt=0.0)

    def delay_for(self, attempt: int) -> float:
        """Backoff before attempt ``attempt + 1``: ``base * 2**attempt``, capped."""
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    @classmethod
    def from_config(cls) -> RetryPolicy:
        from .config import get_config

        cfg = get_config()
        return cls(
            max_attempts=cfg.retry_max_attempts,
            base_delay=cfg.retry_base_delay,
            max_delay=cfg.retry_max_delay,
            timeout=cfg.call_timeout,
        )


async def with_retry(
    coro_factory: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    gate: AdmissionGate | None = None,
    label: str = "call",
) -> T:
    """Execute an async callable with admission, timeout, and backoff.

    Each attempt passes through *gate* (when given) and is bounded by
    ``policy.timeout``; a timeout counts as a retryable failure.

    Args:
        coro_factory: Zero-arg callable that returns a fresh awaitable each attempt.
        policy: Retry settings; defaults to the process config.
        gate: Admission gate of the backend being called.
        label: Name used in log lines.

    Returns:
        The result of the first successful call.

    Raises:
        The last exception if all attempts are exhausted or non-retryable.
    """
    policy = policy or RetryPolicy.from_config()

    async def _attempt() -> T:
        if policy.timeout is None:
            return await coro_factory()
        return await asyncio.wait_for(coro_factory(), timeout=policy.timeout)

    last_exc: Exception | None = None
    for attempt in range(policy.max_attempts):
        try:
            if gate is not None:
                return await gate.run(_attempt)
            return await _attempt()
        except Exception as exc:
            last_exc = exc
            if not is_retryable(exc):
                logger.error("%s: non-retryable error: %s", label, exc)
                raise
            if attempt == policy.max_attempts - 1:
                break
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s: retry %d/%d after %.1fs: %s",
                label, attempt + 1, policy.max_attempts, delay, exc or type(exc).__name__,
            )
            await asyncio.sleep(delay)
    logger.error("%s: all %d attempts failed", label, policy.max_attempts)
    raise last_exc  # type: ignore[misc]
