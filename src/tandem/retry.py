"""Bounded async retry with explicit error contracts.

Design goals:
- Explicit state (policy + attempt counter), no decorator magic
- Injected sleep and random sources so tests run instantly and deterministically
- No brittle substring matching for retry decisions
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import random as _random
from typing import TYPE_CHECKING, TypeVar

from tandem.errors import UpstreamError, UpstreamUnavailableError, _walk_exception_chain

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with a small uniform jitter addend."""

    max_attempts: int = 5
    initial_delay_s: float = 0.2
    backoff_multiplier: float = 2.0
    max_delay_s: float = 5.0
    jitter_s: float = 0.1

    def __post_init__(self) -> None:
        """Validate invariants to keep retry behavior predictable."""
        if self.max_attempts < 1:
            raise ValueError("RetryPolicy.max_attempts must be >= 1")
        if self.initial_delay_s < 0:
            raise ValueError("RetryPolicy.initial_delay_s must be >= 0")
        if self.backoff_multiplier <= 0:
            raise ValueError("RetryPolicy.backoff_multiplier must be > 0")
        if self.max_delay_s < 0:
            raise ValueError("RetryPolicy.max_delay_s must be >= 0")
        if self.jitter_s < 0:
            raise ValueError("RetryPolicy.jitter_s must be >= 0")

    def backoff_delay(self, retry_index: int, *, rand: float = 0.0) -> float:
        """Delay before retry number *retry_index* (1 for the first retry)."""
        base = self.initial_delay_s * (
            self.backoff_multiplier ** max(0, retry_index - 1)
        )
        return min(self.max_delay_s, base) + rand * self.jitter_s


def should_retry(exc: BaseException) -> bool:
    """Return True when an upstream failure is worth another attempt.

    Contract:
    - Cancellation is never retried.
    - UpstreamError is retried only when the transport marked it retryable.
    - Bare timeouts and connection failures are retried as a fallback for
      transports that do not wrap their errors.
    """
    if isinstance(exc, asyncio.CancelledError):
        return False
    if isinstance(exc, UpstreamError):
        return exc.retryable is True
    for e in _walk_exception_chain(exc):
        if isinstance(e, (TimeoutError, asyncio.TimeoutError, ConnectionError)):
            return True
    return False


def _retry_after(exc: BaseException) -> float | None:
    if isinstance(exc, UpstreamError):
        v = exc.retry_after_s
        if isinstance(v, (int, float)) and v >= 0:
            return float(v)
    return None


async def retry_async(
    factory: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    should_retry: Callable[[BaseException], bool] = should_retry,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    random: Callable[[], float] = _random.random,
    operation: str = "upstream call",
) -> T:
    """Run an async factory with bounded retries.

    Non-retryable errors propagate unchanged on the first occurrence. When every
    attempt failed with a retryable error, UpstreamUnavailableError is raised
    with the last failure attached as ``last_error`` and ``__cause__``.
    """
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await factory()
        except Exception as exc:
            if not should_retry(exc):
                raise
            if attempt >= policy.max_attempts:
                raise UpstreamUnavailableError(
                    f"{operation} failed after {attempt} attempts: {exc}",
                    last_error=exc,
                    attempts=attempt,
                    hint="The provider kept failing with transient errors; try again later.",
                ) from exc

            delay = policy.backoff_delay(attempt, rand=random())
            retry_after = _retry_after(exc)
            if retry_after is not None:
                delay = max(delay, retry_after)
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.3fs: %s",
                operation,
                attempt,
                policy.max_attempts,
                delay,
                exc,
            )
            await sleep(delay)

    raise AssertionError("unreachable")  # pragma: no cover
