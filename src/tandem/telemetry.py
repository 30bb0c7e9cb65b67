"""Trace hook for upstream calls, with opt-in span timing.

The engine runs every upstream call through a ``TraceWrapper`` under a fixed
span name (``openai.responses.create`` / ``openai.responses.stream``). Callers
can pass their own wrapper to bridge into a tracing backend; ``timed_trace``
builds one that records a ``SpanRecord`` per call into one or more sinks.
With ``TANDEM_TELEMETRY=1`` the default wrapper logs span timings at DEBUG.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import logging
import os
import time
from typing import Any, Protocol, TypeVar, runtime_checkable

log = logging.getLogger(__name__)

T = TypeVar("T")

TraceWrapper = Callable[[str, Callable[[], Awaitable[Any]]], Awaitable[Any]]

TELEMETRY_ENV_VAR = "TANDEM_TELEMETRY"


async def no_trace(name: str, fn: Callable[[], Awaitable[T]]) -> T:  # noqa: ARG001
    """Default trace hook: run *fn* without any span."""
    return await fn()


@dataclass(frozen=True)
class SpanRecord:
    """One traced upstream call."""

    name: str
    duration_s: float
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@runtime_checkable
class SpanSink(Protocol):
    """Receives a record for every finished span."""

    def record_span(self, record: SpanRecord) -> None: ...  # noqa: D102


class SpanBuffer:
    """Keeps the most recent spans per name in memory."""

    def __init__(self, maxlen: int = 256) -> None:
        self.maxlen = maxlen
        self.spans: dict[str, deque[SpanRecord]] = {}

    def record_span(self, record: SpanRecord) -> None:
        self.spans.setdefault(record.name, deque(maxlen=self.maxlen)).append(record)

    def durations(self, name: str) -> list[float]:
        return [r.duration_s for r in self.spans.get(name, ())]

    def failures(self, name: str) -> int:
        return sum(1 for r in self.spans.get(name, ()) if not r.ok)


class _LogSink:
    def record_span(self, record: SpanRecord) -> None:
        log.debug(
            "span %s took %.3fs%s",
            record.name,
            record.duration_s,
            f" ({record.error})" if record.error else "",
        )


def timed_trace(*sinks: SpanSink, inner: TraceWrapper = no_trace) -> TraceWrapper:
    """Wrap *inner* so each call's duration and outcome reach *sinks*.

    The call's result or exception passes through unchanged. A failing sink is
    logged and never affects the call.
    """

    async def trace(name: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        start = time.perf_counter()
        error: str | None = None
        try:
            return await inner(name, fn)
        except BaseException as exc:
            error = type(exc).__name__
            raise
        finally:
            record = SpanRecord(name, time.perf_counter() - start, error)
            for sink in sinks:
                try:
                    sink.record_span(record)
                except Exception as e:
                    log.error(
                        "Span sink '%s' failed: %s",
                        type(sink).__name__,
                        e,
                        exc_info=True,
                    )

    return trace


def default_trace() -> TraceWrapper:
    """``no_trace``, or DEBUG span logging when ``TANDEM_TELEMETRY=1``."""
    if os.getenv(TELEMETRY_ENV_VAR) == "1":
        return timed_trace(_LogSink())
    return no_trace
