"""Transport protocol: the narrow upstream interface the engine depends on."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


@runtime_checkable
class Transport(Protocol):
    """Minimal upstream protocol: create, stream, aclose.

    ``create`` returns the completed response as a plain mapping with at least
    ``id`` and ``output``. ``stream`` resolves once the stream is open and
    returns an async iterator of provider events (mappings or SDK objects).
    Implementations raise UpstreamError subclasses for classified failures.
    """

    async def create(
        self, payload: dict[str, Any], *, timeout: float | None = None
    ) -> dict[str, Any]:
        """Execute one create call and return the completed response."""
        ...

    async def stream(
        self, payload: dict[str, Any], *, timeout: float | None = None
    ) -> AsyncIterator[Any]:
        """Open a streaming call and return its event iterator."""
        ...

    async def aclose(self) -> None:
        """Release any underlying client resources."""
        ...
