"""Transport-side error classification.

Transports map SDK exceptions into UpstreamError subclasses with stable retry
metadata, so the engine's retry loop never has to inspect vendor types.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from tandem.errors import (
    UpstreamError,
    UpstreamRetryableError,
    UpstreamTerminalError,
    _walk_exception_chain,
)

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 429})


def is_retryable_status(status_code: int) -> bool:
    """408, 429 and every 5xx are transient; other 4xx are terminal."""
    return status_code in RETRYABLE_STATUS_CODES or 500 <= status_code <= 599


def extract_status_code(exc: BaseException) -> int | None:
    """Walk the exception chain to find an HTTP status code."""
    for e in _walk_exception_chain(exc):
        for attr in ("status_code", "status"):
            value = getattr(e, attr, None)
            if isinstance(value, int) and 100 <= value <= 599:
                return value
        response = getattr(e, "response", None)
        value = getattr(response, "status_code", None)
        if isinstance(value, int) and 100 <= value <= 599:
            return value
    return None


def extract_retry_after_s(exc: BaseException) -> float | None:
    """Walk the exception chain to find a retry-after delay in seconds."""
    for e in _walk_exception_chain(exc):
        value = getattr(e, "retry_after", None)
        if isinstance(value, (int, float)) and value >= 0:
            return float(value)

        response = getattr(e, "response", None)
        headers: Any = getattr(response, "headers", None)
        if headers is None:
            continue
        try:
            raw = headers.get("Retry-After")
        except (AttributeError, TypeError):
            raw = None
        if isinstance(raw, str) and raw.strip():
            try:
                seconds = float(raw)
            except ValueError:
                continue
            if seconds >= 0:
                return seconds
    return None


def _is_connection_failure(exc: BaseException) -> bool:
    for e in _walk_exception_chain(exc):
        if isinstance(
            e,
            (
                httpx.TransportError,
                httpx.TimeoutException,
                TimeoutError,
                asyncio.TimeoutError,
                ConnectionError,
            ),
        ):
            return True
    return False


def _auth_hint(status_code: int | None) -> str | None:
    if status_code in {401, 403}:
        return "Check credentials/permissions (try setting OPENAI_API_KEY or Config.api_key)."
    if status_code == 404:
        return "Check the model identifier and any previous_response_id."
    return None


def wrap_transport_error(
    exc: BaseException,
    *,
    provider: str,
    phase: str,
    message: str | None = None,
) -> UpstreamError:
    """Map a transport/SDK exception into a classified UpstreamError."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    # Already classified: fill in missing context only.
    if isinstance(exc, UpstreamError):
        if exc.provider is None:
            exc.provider = provider
        if exc.phase is None:
            exc.phase = phase
        return exc

    status_code = extract_status_code(exc)
    retry_after_s = extract_retry_after_s(exc)

    if status_code is not None:
        retryable = is_retryable_status(status_code)
    else:
        retryable = _is_connection_failure(exc)

    msg = message or f"{provider} {phase} failed"
    status_note = f" (status={status_code})" if status_code is not None else ""
    cause = str(exc)
    err_cls: type[UpstreamError] = (
        UpstreamRetryableError if retryable else UpstreamTerminalError
    )
    return err_cls(
        f"{msg}{status_note}: {cause}" if cause else f"{msg}{status_note}",
        hint=_auth_hint(status_code),
        status_code=status_code,
        retry_after_s=retry_after_s,
        provider=provider,
        phase=phase,
    )
