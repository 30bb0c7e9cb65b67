"""Exception hierarchy for Tandem."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator


class TandemError(Exception):
    """Base exception for all Tandem errors.

    ``kind`` is a stable, user-presentable identifier. Callers should surface
    the kind (and optionally the hint) rather than raw provider error text.
    """

    kind: str = "internal"

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(TandemError):
    """Configuration validation or resolution failed."""

    kind = "configuration"


class InvalidRequestError(TandemError):
    """A ResponseRequest violated the caller contract (empty input, bad item type)."""

    kind = "invalid_request"


class UpstreamError(TandemError):
    """An upstream provider call failed.

    Transports attach retry metadata so the execution engine can classify
    failures without substring matching on error messages.
    """

    kind = "upstream"

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
        retry_after_s: float | None = None,
        provider: str | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.retryable = retryable
        self.status_code = status_code
        self.retry_after_s = retry_after_s
        self.provider = provider
        self.phase = phase


class UpstreamRetryableError(UpstreamError):
    """Transient failure (timeout, rate limit, 5xx, connection). Absorbed by retries."""

    kind = "upstream_retryable"

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)


class UpstreamTerminalError(UpstreamError):
    """Non-retryable failure (bad auth, unknown model, payload rejected)."""

    kind = "upstream_terminal"

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)


class UpstreamUnavailableError(UpstreamError):
    """Retries were exhausted. ``last_error`` holds the final underlying failure."""

    kind = "upstream_unavailable"

    def __init__(
        self,
        message: str,
        *,
        last_error: BaseException | None = None,
        attempts: int = 0,
        hint: str | None = None,
    ) -> None:
        status_code = getattr(last_error, "status_code", None)
        super().__init__(
            message,
            hint=hint,
            retryable=False,
            status_code=status_code if isinstance(status_code, int) else None,
            provider=getattr(last_error, "provider", None),
            phase=getattr(last_error, "phase", None),
        )
        self.last_error = last_error
        self.attempts = attempts


class ConversationNotFoundError(TandemError):
    """A state update referenced an unknown conversation id."""

    kind = "conversation_not_found"

    def __init__(self, conversation_id: str) -> None:
        super().__init__(
            f"Conversation not found: {conversation_id!r}",
            hint="Create the conversation first with create_conversation().",
        )
        self.conversation_id = conversation_id


class OptimizerUnavailableError(TandemError):
    """Context optimization was requested without a configured optimizer."""

    kind = "optimizer_unavailable"


class MidStreamFailure(UpstreamError):
    """The provider stream broke after at least one chunk was delivered.

    Never retried: the upstream thread may already hold a partial turn.
    """

    kind = "mid_stream_failure"


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
