from __future__ import annotations

import asyncio

import pytest

from tandem.errors import (
    UpstreamRetryableError,
    UpstreamTerminalError,
    UpstreamUnavailableError,
)
from tandem.retry import RetryPolicy, retry_async, should_retry

pytestmark = pytest.mark.unit


class _Flaky:
    """Async factory that fails with scripted errors before succeeding."""

    def __init__(self, *errors: BaseException, result: str = "ok") -> None:
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


def test_backoff_doubles_and_caps() -> None:
    policy = RetryPolicy()
    assert [policy.backoff_delay(n) for n in range(1, 7)] == [
        0.2,
        0.4,
        0.8,
        1.6,
        3.2,
        5.0,
    ]


def test_backoff_adds_scaled_jitter() -> None:
    policy = RetryPolicy(jitter_s=0.5)
    assert policy.backoff_delay(1, rand=1.0) == pytest.approx(0.7)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_attempts": 0},
        {"initial_delay_s": -1},
        {"backoff_multiplier": 0},
        {"max_delay_s": -0.1},
        {"jitter_s": -1},
    ],
)
def test_policy_rejects_invalid_values(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


def test_should_retry_contract() -> None:
    assert should_retry(UpstreamRetryableError("x"))
    assert not should_retry(UpstreamTerminalError("x"))
    assert not should_retry(UpstreamUnavailableError("x"))
    assert not should_retry(asyncio.CancelledError())
    assert should_retry(TimeoutError())
    assert should_retry(ConnectionResetError())
    assert not should_retry(ValueError("bad"))


@pytest.mark.asyncio
async def test_retries_until_success(recording_sleep) -> None:
    factory = _Flaky(UpstreamRetryableError("429"), UpstreamRetryableError("timeout"))

    result = await retry_async(
        factory, policy=RetryPolicy(), sleep=recording_sleep, random=lambda: 0.0
    )

    assert result == "ok"
    assert factory.calls == 3
    assert recording_sleep.delays == [0.2, 0.4]


@pytest.mark.asyncio
async def test_exhaustion_raises_unavailable_with_last_cause(recording_sleep) -> None:
    errors = [UpstreamRetryableError(f"fail {i}") for i in range(3)]
    factory = _Flaky(*errors)

    with pytest.raises(UpstreamUnavailableError) as exc_info:
        await retry_async(
            factory,
            policy=RetryPolicy(max_attempts=3),
            sleep=recording_sleep,
            random=lambda: 0.0,
        )

    assert factory.calls == 3
    assert exc_info.value.attempts == 3
    assert exc_info.value.last_error is errors[-1]
    assert exc_info.value.__cause__ is errors[-1]
    assert len(recording_sleep.delays) == 2


@pytest.mark.asyncio
async def test_terminal_errors_propagate_immediately(recording_sleep) -> None:
    terminal = UpstreamTerminalError("bad auth", status_code=401)
    factory = _Flaky(terminal)

    with pytest.raises(UpstreamTerminalError) as exc_info:
        await retry_async(factory, policy=RetryPolicy(), sleep=recording_sleep)

    assert exc_info.value is terminal
    assert factory.calls == 1
    assert recording_sleep.delays == []


@pytest.mark.asyncio
async def test_retry_after_raises_the_delay(recording_sleep) -> None:
    factory = _Flaky(UpstreamRetryableError("429", retry_after_s=3.0))

    await retry_async(
        factory, policy=RetryPolicy(), sleep=recording_sleep, random=lambda: 0.0
    )

    assert recording_sleep.delays == [3.0]


@pytest.mark.asyncio
async def test_single_attempt_policy_never_sleeps(recording_sleep) -> None:
    factory = _Flaky(UpstreamRetryableError("x"))

    with pytest.raises(UpstreamUnavailableError):
        await retry_async(
            factory, policy=RetryPolicy(max_attempts=1), sleep=recording_sleep
        )

    assert recording_sleep.delays == []
