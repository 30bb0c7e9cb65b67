"""Configuration: frozen Config resolved from arguments and the environment."""

from __future__ import annotations

from dataclasses import dataclass, field
import os

from dotenv import load_dotenv

from tandem.errors import ConfigurationError
from tandem.retry import RetryPolicy

load_dotenv()

API_KEY_ENV_VAR = "OPENAI_API_KEY"
BASE_URL_ENV_VAR = "OPENAI_BASE_URL"
DEFAULT_MODEL = "gpt-4o-mini"


@dataclass(frozen=True)
class Config:
    """Immutable configuration for a responses client.

    API key and base URL are auto-resolved from ``OPENAI_API_KEY`` and
    ``OPENAI_BASE_URL`` when not passed explicitly.

    Example:
        config = Config(model="gpt-4o-mini")
        # API key is automatically resolved from OPENAI_API_KEY
    """

    model: str = DEFAULT_MODEL
    api_key: str | None = None
    base_url: str | None = None
    use_mock: bool = False
    #: Per-call deadline passed through to the transport; None means no deadline.
    timeout_s: float | None = None
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self) -> None:
        """Auto-resolve credentials and validate configuration."""
        if not isinstance(self.model, str) or not self.model.strip():
            raise ConfigurationError(
                "model must be a non-empty string",
                hint=f"Pass a model identifier, e.g. Config(model={DEFAULT_MODEL!r}).",
            )
        if self.timeout_s is not None and self.timeout_s <= 0:
            raise ConfigurationError(
                f"timeout_s must be > 0, got {self.timeout_s}",
                hint="Use None to disable the per-call deadline.",
            )

        if self.api_key is None and not self.use_mock:
            object.__setattr__(self, "api_key", os.environ.get(API_KEY_ENV_VAR))
        if self.base_url is None:
            object.__setattr__(self, "base_url", os.environ.get(BASE_URL_ENV_VAR))

        if not self.use_mock and not self.api_key:
            raise ConfigurationError(
                "API key required for the OpenAI transport",
                hint=f"Set {API_KEY_ENV_VAR} environment variable or pass api_key=...",
            )

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"Config(model={self.model!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None}, "
            f"base_url={self.base_url!r}, use_mock={self.use_mock})"
        )

    __repr__ = __str__
