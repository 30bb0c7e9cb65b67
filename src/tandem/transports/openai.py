"""OpenAI Responses API transport."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from tandem.errors import ConfigurationError
from tandem.transports._errors import wrap_transport_error

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class OpenAITransport:
    """Transport backed by ``openai.AsyncOpenAI().responses``."""

    def __init__(self, api_key: str, *, base_url: str | None = None) -> None:
        """Initialize with an API key and optional base URL."""
        self.api_key = api_key
        self.base_url = base_url
        self._client: Any = None

    def _get_client(self) -> Any:
        """Lazily initialize and return the OpenAI client."""
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError as e:
                raise ConfigurationError(
                    "openai package not installed",
                    hint="pip install openai",
                ) from e
            self._client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    async def create(
        self, payload: dict[str, Any], *, timeout: float | None = None
    ) -> dict[str, Any]:
        """Create a response and return it as a plain mapping."""
        client = self._get_client()
        kwargs = dict(payload)
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            response = await client.responses.create(**kwargs)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise wrap_transport_error(
                e, provider="openai", phase="create", message="OpenAI create failed"
            ) from e
        return _to_mapping(response)

    async def stream(
        self, payload: dict[str, Any], *, timeout: float | None = None
    ) -> AsyncIterator[dict[str, Any]]:
        """Open a streaming response; iteration yields event mappings."""
        client = self._get_client()
        kwargs = dict(payload)
        kwargs["stream"] = True
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            sdk_stream = await client.responses.create(**kwargs)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise wrap_transport_error(
                e, provider="openai", phase="stream", message="OpenAI stream failed"
            ) from e
        return _iter_events(sdk_stream)

    async def aclose(self) -> None:
        """Close underlying async client resources."""
        client = self._client
        if client is None:
            return
        self._client = None
        await client.close()


async def _iter_events(sdk_stream: Any) -> AsyncIterator[dict[str, Any]]:
    try:
        async for event in sdk_stream:
            yield _to_mapping(event)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        raise wrap_transport_error(
            e, provider="openai", phase="stream", message="OpenAI stream broke"
        ) from e
    finally:
        close = getattr(sdk_stream, "close", None)
        if callable(close):
            await close()


def _to_mapping(obj: Any) -> dict[str, Any]:
    """Convert SDK pydantic models (or plain mappings) into dicts."""
    if isinstance(obj, dict):
        return obj
    dump = getattr(obj, "model_dump", None)
    if callable(dump):
        result = dump()
        if isinstance(result, dict):
            return result
    return dict(vars(obj))
