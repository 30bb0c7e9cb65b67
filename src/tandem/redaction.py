"""Key-driven redaction for anything headed to a log or trace sink.

Never apply this to the payload sent upstream: metadata is passed through to
the provider untouched and only masked locally.
"""

from __future__ import annotations

from collections.abc import Mapping
import re
from typing import Any, Final

REDACTED: Final[str] = "[REDACTED]"

_SENSITIVE_KEY = re.compile(r"api|key|token|secret|auth|password", re.IGNORECASE)


def is_sensitive_key(key: object) -> bool:
    """Return True when a mapping key looks like it holds a credential."""
    return isinstance(key, str) and _SENSITIVE_KEY.search(key) is not None


def redact(value: Any) -> Any:
    """Return a copy of *value* with sensitive-looking keys masked.

    Matching is on the key alone: ``{"apiKey": None}`` becomes
    ``{"apiKey": "[REDACTED]"}``. Mappings and sequences (lists, tuples) are
    walked recursively; every other value passes through unchanged. A
    container that contains itself is replaced by the marker where it recurs.
    """
    return _redact(value, frozenset())


def _redact(value: Any, ancestors: frozenset[int]) -> Any:
    if not isinstance(value, (Mapping, list, tuple)):
        return value
    if id(value) in ancestors:
        return REDACTED
    path = ancestors | {id(value)}
    if isinstance(value, Mapping):
        return {
            key: REDACTED if is_sensitive_key(key) else _redact(item, path)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_redact(item, path) for item in value]
    return tuple(_redact(item, path) for item in value)
