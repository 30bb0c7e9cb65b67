"""Resilient execution engine for the responses API.

Builds the provider payload, runs the upstream call through a caller-supplied
trace hook and the bounded retry loop, then aggregates output text and
extracts annotations and tool results. Streaming shares the retry policy for
establishing the stream; once a chunk has been delivered the call is never
retried.

The engine owns no conversation state. Callers advance it after inspecting
the result (see ``tandem.conversation``).
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
import logging
import random as _random
from typing import TYPE_CHECKING, Any

from tandem.config import Config
from tandem.errors import MidStreamFailure, UpstreamTerminalError
from tandem.extraction import ExtractorRegistry, default_registry
from tandem.models import Chunk, CompletedResponse
from tandem.redaction import redact
from tandem.request import build_payload
from tandem.retry import RetryPolicy, retry_async
from tandem.streaming import normalize, response_id_of
from tandem.telemetry import TraceWrapper, default_trace
from tandem.transports import create_transport
from tandem.transports._errors import wrap_transport_error

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable

    from tandem.models import ResponseRequest
    from tandem.transports.base import Transport

logger = logging.getLogger(__name__)

CREATE_SPAN = "openai.responses.create"
STREAM_SPAN = "openai.responses.stream"


class ResponsesClient:
    """Executes ResponseRequests against an injected transport.

    Every collaborator with side effects or nondeterminism is injectable:
    the transport, the trace hook, and the retry loop's ``sleep`` and
    ``random`` sources.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        retry: RetryPolicy | None = None,
        extractors: ExtractorRegistry | None = None,
        trace: TraceWrapper | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        random: Callable[[], float] = _random.random,
        timeout_s: float | None = None,
        provider: str = "openai",
    ) -> None:
        """Initialize the engine around *transport*."""
        self.transport = transport
        self.retry = retry or RetryPolicy()
        self.extractors = extractors or default_registry()
        self._trace = trace if trace is not None else default_trace()
        self._sleep = sleep
        self._random = random
        self._timeout_s = timeout_s
        self._provider = provider

    async def __aenter__(self) -> ResponsesClient:
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the transport. Cleanup failures are logged, not raised."""
        try:
            await self.transport.aclose()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Transport cleanup failed: %s", exc)

    # --- single-shot ---

    async def create_response(
        self, request: ResponseRequest, *, timeout_s: float | None = None
    ) -> CompletedResponse:
        """Execute *request* and return the completed response.

        Raises:
            InvalidRequestError: The request is malformed; nothing was sent.
            UpstreamTerminalError: The provider rejected the call.
            UpstreamUnavailableError: Every attempt failed with a transient error.
        """
        payload = build_payload(request)
        deadline = timeout_s if timeout_s is not None else self._timeout_s
        logger.debug("responses.create payload: %s", redact(payload))

        async def attempt() -> dict[str, Any]:
            try:
                return await self._trace(
                    CREATE_SPAN,
                    lambda: self.transport.create(payload, timeout=deadline),
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                raise wrap_transport_error(
                    exc, provider=self._provider, phase="create"
                ) from exc

        raw = await retry_async(
            attempt,
            policy=self.retry,
            sleep=self._sleep,
            random=self._random,
            operation="responses.create",
        )
        response = self._complete(raw)
        logger.debug(
            "responses.create completed: id=%s chars=%d annotations=%d",
            response.id,
            len(response.output_text),
            len(response.annotations),
        )
        return response

    def _complete(self, raw: Any) -> CompletedResponse:
        if not isinstance(raw, Mapping):
            raise UpstreamTerminalError(
                f"Malformed response: expected a mapping, got {type(raw).__name__}",
                provider=self._provider,
                phase="create",
            )
        response_id = raw.get("id")
        if not isinstance(response_id, str) or not response_id:
            raise UpstreamTerminalError(
                "Malformed response: missing id",
                provider=self._provider,
                phase="create",
            )
        output = raw.get("output")
        output_list = list(output) if isinstance(output, list) else []
        extracted = self.extractors.parse({"output": output_list})
        annotations = extracted.annotations
        if annotations:
            logger.debug(
                "responses.create annotations: %s",
                [redact({"type": a.type, "data": a.data}) for a in annotations],
            )
        return CompletedResponse(
            id=response_id,
            output_text=aggregate_output_text(output_list),
            output=output_list,
            annotations=annotations,
            tool_results=extracted.tool_results,
            usage=_usage(raw.get("usage")),
            raw=dict(raw),
        )

    # --- streaming ---

    def stream_response(
        self, request: ResponseRequest, *, timeout_s: float | None = None
    ) -> AsyncIterator[Chunk]:
        """Execute *request* as a stream of normalized chunks.

        The request is validated here, before any iteration, so a malformed
        request raises InvalidRequestError at call time. Nothing is sent until
        the returned iterator is first advanced.

        Chunks are yielded in receipt order. The sequence ends with a ``done``
        chunk (carrying the last seen response id) or an ``error`` chunk. It
        is not restartable: call again to re-execute the request.
        """
        payload = build_payload(request)
        deadline = timeout_s if timeout_s is not None else self._timeout_s
        return self._stream(payload, deadline)

    async def _stream(
        self, payload: dict[str, Any], deadline: float | None
    ) -> AsyncIterator[Chunk]:
        logger.debug("responses.stream payload: %s", redact(payload))

        async def establish() -> tuple[AsyncIterator[Any], Chunk | None]:
            try:
                events = await self._trace(
                    STREAM_SPAN,
                    lambda: self.transport.stream(payload, timeout=deadline),
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                raise wrap_transport_error(
                    exc, provider=self._provider, phase="stream"
                ) from exc
            try:
                first = await _next_chunk(events)
            except BaseException as exc:
                await _close_events(events)
                if isinstance(exc, Exception):
                    raise wrap_transport_error(
                        exc, provider=self._provider, phase="stream"
                    ) from exc
                raise
            return events, first

        events, chunk = await retry_async(
            establish,
            policy=self.retry,
            sleep=self._sleep,
            random=self._random,
            operation="responses.stream",
        )

        response_id: str | None = None
        try:
            while chunk is not None:
                response_id = response_id_of(chunk) or response_id
                yield chunk
                if chunk.type == "error":
                    return
                try:
                    chunk = await _next_chunk(events)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    failure = MidStreamFailure(
                        f"Stream terminated after partial delivery: {exc}",
                        provider=self._provider,
                        phase="stream",
                    )
                    failure.__cause__ = exc
                    logger.warning("%s (response_id=%s)", failure, response_id)
                    yield Chunk("error", {"kind": failure.kind, "message": str(failure)})
                    return
            yield Chunk("done", {"responseId": response_id})
        finally:
            await _close_events(events)


def create_client(
    config: Config | None = None,
    *,
    transport: Transport | None = None,
    **kwargs: Any,
) -> ResponsesClient:
    """Build a ResponsesClient from *config* (resolved from the environment when omitted).

    Keyword arguments override the config-derived client options, e.g.
    ``trace=...`` or ``sleep=...``.
    """
    config = config or Config()
    options: dict[str, Any] = {
        "retry": config.retry,
        "timeout_s": config.timeout_s,
    }
    options.update(kwargs)
    return ResponsesClient(transport or create_transport(config), **options)


def aggregate_output_text(output: list[Any]) -> str:
    """Concatenate every ``output_text`` segment in order, with no separator.

    Top-level ``output_text`` entries and ``output_text`` parts nested in
    ``message`` entries both count.
    """
    parts: list[str] = []
    for entry in output:
        if not isinstance(entry, Mapping):
            continue
        entry_type = entry.get("type")
        if entry_type == "output_text":
            text = entry.get("text")
            if isinstance(text, str):
                parts.append(text)
        elif entry_type == "message":
            content = entry.get("content")
            if not isinstance(content, list):
                continue
            for part in content:
                if isinstance(part, Mapping) and part.get("type") == "output_text":
                    text = part.get("text")
                    if isinstance(text, str):
                        parts.append(text)
    return "".join(parts)


async def collect_stream(
    chunks: AsyncIterable[Chunk],
) -> tuple[str, list[Any]]:
    """Fold a chunk stream into its full text and the annotation payloads seen."""
    text: list[str] = []
    annotations: list[Any] = []
    async for chunk in chunks:
        if chunk.type == "text" and isinstance(chunk.data, str):
            text.append(chunk.data)
        elif chunk.type == "annotation":
            annotations.append(chunk.data)
    return "".join(text), annotations


def _usage(raw: Any) -> dict[str, int]:
    if not isinstance(raw, Mapping):
        return {}
    return {k: int(v) for k, v in raw.items() if isinstance(v, (int, float))}


async def _next_chunk(events: AsyncIterator[Any]) -> Chunk | None:
    """Pull events until one normalizes to a chunk; None at end of stream."""
    while True:
        try:
            event = await events.__anext__()
        except StopAsyncIteration:
            return None
        chunk = normalize(event)
        if chunk is not None:
            return chunk


async def _close_events(events: AsyncIterator[Any]) -> None:
    aclose = getattr(events, "aclose", None)
    if not callable(aclose):
        return
    try:
        await aclose()
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        logger.debug("Closing event stream failed: %s", exc)
