"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration, transport and sleep
test doubles, and automatic API test skipping.
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass, field
import logging
import os
from typing import Any

import pytest

from tandem.errors import UpstreamRetryableError, UpstreamTerminalError

# =============================================================================
# Test Doubles
# =============================================================================


@dataclass
class ScriptedTransport:
    """Transport test double that replays a script, one step per call.

    Each step is either an exception instance (raised) or a value (returned).
    For ``stream``, values are lists of events replayed through an async
    generator; an exception inside the list is raised mid-stream.
    """

    create_script: list[Any] = field(default_factory=list)
    stream_script: list[Any] = field(default_factory=list)
    create_calls: int = 0
    stream_calls: int = 0
    payloads: list[dict[str, Any]] = field(default_factory=list)
    timeouts: list[float | None] = field(default_factory=list)
    streams_closed: int = 0
    closed: bool = False

    async def create(
        self, payload: dict[str, Any], *, timeout: float | None = None
    ) -> dict[str, Any]:
        self.create_calls += 1
        self.payloads.append(payload)
        self.timeouts.append(timeout)
        step = self.create_script[min(self.create_calls, len(self.create_script)) - 1]
        if isinstance(step, BaseException):
            raise step
        return step

    async def stream(self, payload: dict[str, Any], *, timeout: float | None = None):
        self.stream_calls += 1
        self.payloads.append(payload)
        self.timeouts.append(timeout)
        step = self.stream_script[min(self.stream_calls, len(self.stream_script)) - 1]
        if isinstance(step, BaseException):
            raise step
        return self._replay(list(step))

    async def _replay(self, events: list[Any]):
        try:
            for event in events:
                if isinstance(event, BaseException):
                    raise event
                yield event
        finally:
            self.streams_closed += 1

    async def aclose(self) -> None:
        self.closed = True


@dataclass
class RecordingSleep:
    """Async sleep replacement that records requested delays and returns at once."""

    delays: list[float] = field(default_factory=list)

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def scripted_transport() -> Callable[..., ScriptedTransport]:
    """Factory: ``scripted_transport(create=[...], stream=[...])``."""

    def _make(
        *, create: list[Any] | None = None, stream: list[Any] | None = None
    ) -> ScriptedTransport:
        return ScriptedTransport(
            create_script=list(create or []), stream_script=list(stream or [])
        )

    return _make


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def rate_limited() -> UpstreamRetryableError:
    return UpstreamRetryableError(
        "rate limited", status_code=429, provider="openai", phase="create"
    )


@pytest.fixture
def bad_request() -> UpstreamTerminalError:
    return UpstreamTerminalError(
        "bad request", status_code=400, provider="openai", phase="create"
    )


# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_env(request, monkeypatch):
    """Clear OPENAI_* and TANDEM_* env vars to prevent test pollution.

    Opt-out: @pytest.mark.allow_env_pollution or @pytest.mark.api
    """
    if request.node.get_closest_marker("allow_env_pollution") or (
        "api" in request.node.keywords
    ):
        return

    for key in list(os.environ.keys()):
        if key.startswith(("OPENAI_", "TANDEM_")):
            monkeypatch.delenv(key, raising=False)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


# =============================================================================
# Pytest Hooks
# =============================================================================

API_TESTS_REASON = "API tests require ENABLE_API_TESTS=1"


def _api_tests_enabled() -> bool:
    return bool(os.getenv("ENABLE_API_TESTS"))


def pytest_collection_modifyitems(items):
    """Automatically skip API tests when not explicitly enabled."""
    if _api_tests_enabled():
        return
    skip_api = pytest.mark.skip(reason=API_TESTS_REASON)
    for item in items:
        if "api" in item.keywords:
            item.add_marker(skip_api)
