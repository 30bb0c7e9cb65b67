"""Stream event normalization.

Maps provider streaming events (our own ``text-delta``/``data-*`` events and
native Responses API events) onto the closed set of Chunk kinds. Pure and
total: unknown event tags are dropped so upstream additions never break a
stream.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, Final

from tandem.models import Chunk

if TYPE_CHECKING:
    from collections.abc import Iterable

ResponseIdSource = Callable[[Mapping[str, Any]], str | None]

DATA_EVENT_PREFIX: Final[str] = "data-"


def responses_annotation(response_id: str) -> dict[str, Any]:
    """Canonical annotation payload linking a stream to its response id."""
    return {"type": "responses", "data": {"responseId": response_id}}


# --- Response id sources (first match wins) ---


def _id_from_data_string(event: Mapping[str, Any]) -> str | None:
    data = event.get("data")
    return data if isinstance(data, str) and data else None


def _id_from_id_field(event: Mapping[str, Any]) -> str | None:
    value = event.get("id")
    return value if isinstance(value, str) and value else None


def _id_from_data_object(event: Mapping[str, Any]) -> str | None:
    data = event.get("data")
    if isinstance(data, Mapping):
        value = data.get("responseId")
        if isinstance(value, str) and value:
            return value
    return None


def _id_from_response_object(event: Mapping[str, Any]) -> str | None:
    response = event.get("response")
    if isinstance(response, Mapping):
        value = response.get("id")
        if isinstance(value, str) and value:
            return value
    return None


RESPONSE_ID_SOURCES: tuple[ResponseIdSource, ...] = (
    _id_from_data_string,
    _id_from_id_field,
    _id_from_data_object,
)


def first_match(
    sources: Iterable[ResponseIdSource], event: Mapping[str, Any]
) -> str | None:
    """Return the first non-None value produced by *sources* for *event*."""
    for source in sources:
        value = source(event)
        if value is not None:
            return value
    return None


# --- Event handlers ---


def _text_delta(event: Mapping[str, Any]) -> Chunk | None:
    delta = event.get("delta")
    return Chunk("text", delta) if isinstance(delta, str) else None


def _annotation(event: Mapping[str, Any]) -> Chunk | None:
    return Chunk("annotation", event.get("annotation"))


def _tool_call(event: Mapping[str, Any]) -> Chunk | None:
    return Chunk("tool_result", {"name": event.get("name"), "args": event.get("args")})


def _response_lifecycle(event: Mapping[str, Any]) -> Chunk | None:
    response_id = _id_from_response_object(event)
    if response_id is None:
        return None
    return Chunk("annotation", responses_annotation(response_id))


def _error(event: Mapping[str, Any]) -> Chunk | None:
    message = event.get("message")
    if not isinstance(message, str):
        response = event.get("response")
        error = response.get("error") if isinstance(response, Mapping) else None
        message = error.get("message") if isinstance(error, Mapping) else None
    return Chunk(
        "error",
        {"kind": "upstream_error", "message": message if isinstance(message, str) else ""},
    )


_HANDLERS: dict[str, Callable[[Mapping[str, Any]], Chunk | None]] = {
    "text-delta": _text_delta,
    "response.output_text.delta": _text_delta,
    "response.annotation": _annotation,
    "response.output_text.annotation.added": _annotation,
    "response.tool_call": _tool_call,
    "response.created": _response_lifecycle,
    "response.completed": _response_lifecycle,
    "error": _error,
    "response.failed": _error,
}


def _data_event(name: str, event: Mapping[str, Any]) -> Chunk | None:
    if name == "responseId":
        response_id = first_match(RESPONSE_ID_SOURCES, event)
        if response_id is None:
            return None
        return Chunk("annotation", responses_annotation(response_id))
    return Chunk("annotation", {"type": "data", "name": name, "event": dict(event)})


def as_event_mapping(event: Any) -> Mapping[str, Any] | None:
    """Coerce a provider event (mapping, SDK model, plain object) to a mapping."""
    if isinstance(event, Mapping):
        return event
    dump = getattr(event, "model_dump", None)
    if callable(dump):
        try:
            result = dump()
        except (TypeError, ValueError):
            result = None
        if isinstance(result, Mapping):
            return result
    attrs = getattr(event, "__dict__", None)
    if isinstance(attrs, Mapping):
        return attrs
    return None


def normalize(event: Any) -> Chunk | None:
    """Map one provider event to a Chunk, or None when the event is ignored."""
    mapping = as_event_mapping(event)
    if mapping is None:
        return None
    tag = mapping.get("type")
    if not isinstance(tag, str):
        return None
    if tag.startswith(DATA_EVENT_PREFIX):
        return _data_event(tag[len(DATA_EVENT_PREFIX) :], mapping)
    handler = _HANDLERS.get(tag)
    return handler(mapping) if handler is not None else None


def normalize_events(events: Iterable[Any]) -> list[Chunk]:
    """Normalize a sequence of events in order, dropping ignored ones."""
    out: list[Chunk] = []
    for event in events:
        chunk = normalize(event)
        if chunk is not None:
            out.append(chunk)
    return out


def response_id_of(chunk: Chunk) -> str | None:
    """Return the response id carried by a canonical ``responses`` annotation."""
    if chunk.type != "annotation" or not isinstance(chunk.data, Mapping):
        return None
    if chunk.data.get("type") != "responses":
        return None
    inner = chunk.data.get("data")
    if isinstance(inner, Mapping):
        value = inner.get("responseId")
        return value if isinstance(value, str) else None
    return None
