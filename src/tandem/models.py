"""Domain models shared by the request builder, engine and conversation layer."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

InputType = Literal["text", "image", "audio"]
ChunkType = Literal["text", "annotation", "tool_result", "done", "error"]

INPUT_TYPES: frozenset[str] = frozenset({"text", "image", "audio"})


def utcnow() -> datetime:
    """Timezone-aware current time; all persisted timestamps are UTC."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class InputItem:
    """One ordered input attachment: text, image bytes or audio bytes."""

    type: str
    content: str | bytes
    metadata: Mapping[str, Any] | None = None

    @classmethod
    def text(cls, content: str, **metadata: Any) -> InputItem:
        """Create a text item."""
        return cls("text", content, metadata or None)

    @classmethod
    def image(cls, content: bytes, **metadata: Any) -> InputItem:
        """Create an image item from raw bytes."""
        return cls("image", content, metadata or None)

    @classmethod
    def audio(cls, content: bytes, **metadata: Any) -> InputItem:
        """Create an audio item from raw bytes."""
        return cls("audio", content, metadata or None)


@dataclass(frozen=True)
class ToolDeclaration:
    """A tool made available to the model; ``config`` is provider-defined."""

    type: str
    config: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ResponseRequest:
    """An immutable description of one call against the responses API.

    ``input`` is either a plain string (shorthand for one user text item) or
    an ordered sequence of ``InputItem``. Lists are frozen into tuples.
    """

    model: str
    input: str | tuple[InputItem, ...]
    tools: tuple[ToolDeclaration, ...] = ()
    previous_response_id: str | None = None
    store: bool = False
    metadata: Mapping[str, Any] | None = None

    def __post_init__(self) -> None:
        """Freeze sequence fields into tuples."""
        if not isinstance(self.input, str) and isinstance(self.input, Sequence):
            object.__setattr__(self, "input", tuple(self.input))
        object.__setattr__(self, "tools", tuple(self.tools))


@dataclass(frozen=True)
class Annotation:
    """A normalized citation or source reference."""

    type: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResult:
    """Normalized structured output of one upstream tool invocation."""

    type: str
    results: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class ExtractionResult:
    """Annotations and tool results extracted from a completed response."""

    annotations: list[Annotation] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)


@dataclass(frozen=True)
class CompletedResponse:
    """A finished response with its text aggregated and side-channels extracted."""

    id: str
    output_text: str
    output: list[Any] = field(default_factory=list)
    annotations: list[Annotation] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    usage: dict[str, int] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Chunk:
    """One normalized unit of streamed output."""

    type: ChunkType
    data: Any = None


@dataclass
class ContextMetadata:
    """Turn and token accounting for a conversation."""

    turn_count: int = 0
    last_activity: datetime = field(default_factory=utcnow)
    total_tokens: int = 0
    relevance_score: float | None = None


@dataclass
class ConversationState:
    """Mutable per-conversation record owned by the state manager."""

    conversation_id: str
    user_id: str | None
    previous_response_id: str | None = None
    context_metadata: ContextMetadata = field(default_factory=ContextMetadata)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    version: int = 0


@dataclass(frozen=True)
class OptimizationInput:
    """What a context optimizer needs to decide on truncation."""

    conversation_id: str | None
    turn_count: int
    total_tokens: int
    max_tokens: int | None = None


@dataclass(frozen=True)
class OptimizationResult:
    """A context optimizer's verdict."""

    should_truncate: bool
    relevance_score: float
    summary: str | None = None
    total_tokens: int | None = None
    tokens_to_remove: int | None = None
