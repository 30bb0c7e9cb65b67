"""Mock transport for offline use and testing."""

from __future__ import annotations

import hashlib
import json
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class MockTransport:
    """Deterministic transport that echoes the first text input.

    Response ids are derived from the payload so repeated calls with the same
    request produce the same id.
    """

    def __init__(self) -> None:
        """Initialize call counters."""
        self.create_calls = 0
        self.stream_calls = 0

    async def create(
        self,
        payload: dict[str, Any],
        *,
        timeout: float | None = None,  # noqa: ARG002
    ) -> dict[str, Any]:
        """Return a synthetic completed response."""
        self.create_calls += 1
        text = _echo_text(payload)
        return {
            "id": _response_id(payload),
            "object": "response",
            "model": payload.get("model"),
            "status": "completed",
            "output": [{"type": "output_text", "text": text}],
            "usage": {
                "input_tokens": 10,
                "output_tokens": max(1, len(text) // 4),
                "total_tokens": 10 + max(1, len(text) // 4),
            },
        }

    async def stream(
        self,
        payload: dict[str, Any],
        *,
        timeout: float | None = None,  # noqa: ARG002
    ) -> AsyncIterator[dict[str, Any]]:
        """Return a synthetic event stream: text deltas then the response id."""
        self.stream_calls += 1
        return _events(_echo_text(payload), _response_id(payload))

    async def aclose(self) -> None:
        """Nothing to release."""
        return


async def _events(text: str, response_id: str) -> AsyncIterator[dict[str, Any]]:
    for i, word in enumerate(text.split(" ")):
        yield {"type": "text-delta", "delta": word if i == 0 else f" {word}"}
    yield {"type": "data-responseId", "data": response_id}
    yield {"type": "finish"}


def _first_text(payload: dict[str, Any]) -> str:
    for item in payload.get("input") or []:
        if isinstance(item, dict) and isinstance(item.get("text"), str):
            text: str = item["text"]
            if text.strip():
                return text
    return ""


def _echo_text(payload: dict[str, Any]) -> str:
    return f"echo: {_first_text(payload)[:100]}"


def _response_id(payload: dict[str, Any]) -> str:
    hasher = hashlib.sha256()
    hasher.update(str(payload.get("model")).encode("utf-8"))
    hasher.update(_first_text(payload).encode("utf-8"))
    hasher.update(
        json.dumps(payload.get("previous_response_id"), default=str).encode("utf-8")
    )
    return f"resp_mock_{hasher.hexdigest()[:16]}"
