"""Upstream transports."""

from __future__ import annotations

from typing import TYPE_CHECKING

from tandem.errors import ConfigurationError
from tandem.transports.base import Transport

if TYPE_CHECKING:
    from tandem.config import Config


def create_transport(config: Config) -> Transport:
    """Return the transport selected by *config*."""
    if config.use_mock:
        from tandem.transports.mock import MockTransport

        return MockTransport()

    from tandem.transports.openai import OpenAITransport

    if not config.api_key:
        raise ConfigurationError(
            "api_key required for real API",
            hint="Set OPENAI_API_KEY or pass Config(api_key=...).",
        )
    return OpenAITransport(config.api_key, base_url=config.base_url)


__all__ = ["Transport", "create_transport"]
