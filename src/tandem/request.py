"""Request building: ResponseRequest -> provider payload.

Pure and total for well-formed input. The only failure is a caller contract
violation, reported as InvalidRequestError before anything goes upstream.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from tandem.errors import InvalidRequestError
from tandem.models import INPUT_TYPES, InputItem, ResponseRequest

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence


def validate_request(request: ResponseRequest) -> None:
    """Raise InvalidRequestError when *request* cannot be sent."""
    if not isinstance(request.model, str) or not request.model.strip():
        raise InvalidRequestError(
            "model is empty",
            hint="Pass a non-empty model identifier, e.g. 'gpt-4o-mini'.",
        )
    if isinstance(request.input, str):
        if not request.input:
            raise InvalidRequestError(
                "input is an empty string",
                hint="Pass a non-empty string or at least one InputItem.",
            )
        return
    if not request.input:
        raise InvalidRequestError(
            "input is an empty sequence",
            hint="Pass a non-empty string or at least one InputItem.",
        )
    for i, item in enumerate(request.input):
        item_type = _item_field(item, "type")
        if item_type not in INPUT_TYPES:
            raise InvalidRequestError(
                f"input[{i}] has unsupported type {item_type!r}",
                hint="Input items must be one of: text, image, audio.",
            )


def build_payload(request: ResponseRequest) -> dict[str, Any]:
    """Map *request* onto the provider's request payload.

    Wire items keep the order of ``request.input``. Optional top-level keys
    (``previous_response_id``, ``metadata``, ``tools``) are omitted rather than
    sent as null.
    """
    validate_request(request)

    if isinstance(request.input, str):
        item: dict[str, Any] = {"type": "message", "text": request.input, "role": "user"}
        if request.metadata is not None:
            item["metadata"] = dict(request.metadata)
        wire_input = [item]
    else:
        wire_input = [_map_input_item(i) for i in request.input]

    payload: dict[str, Any] = {
        "model": request.model,
        "input": wire_input,
        "store": bool(request.store),
    }
    if request.tools:
        payload["tools"] = [
            {"type": tool.type, "config": dict(tool.config)} for tool in request.tools
        ]
    if request.previous_response_id is not None:
        payload["previous_response_id"] = request.previous_response_id
    if request.metadata is not None:
        payload["metadata"] = dict(request.metadata)
    return payload


def _item_field(item: InputItem | Mapping[str, Any], name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _map_input_item(item: InputItem | Mapping[str, Any]) -> dict[str, Any]:
    item_type = _item_field(item, "type")
    content = _item_field(item, "content")
    metadata = _item_field(item, "metadata")

    if item_type == "text":
        wire: dict[str, Any] = {"type": "message", "text": content, "role": "user"}
        if metadata is not None:
            wire["metadata"] = dict(metadata)
        return wire

    # image / audio share a shape: {"type": "input_<kind>", "<kind>": {"data": ...}}
    body: dict[str, Any] = {"data": content}
    if metadata is not None:
        body["metadata"] = dict(metadata)
    return {"type": f"input_{item_type}", item_type: body}


# --- Chat context -> input items ---


def build_multimodal_inputs(
    messages: Sequence[Mapping[str, Any]],
) -> tuple[tuple[InputItem, ...], str]:
    """Flatten chat-style messages into ordered input items plus joined text.

    Each message has ``content`` as a string or a list of parts. ``text`` parts
    become text items (trimmed, blanks dropped), ``image`` parts with bytes
    become image items, and ``file`` parts become audio items only when their
    ``mediaType`` is ``audio/*``. Anything else is skipped.

    The joined text has one line per text part and a blank line between
    messages, for callers that send the shorthand string form instead.
    """
    items: list[InputItem] = []
    message_texts: list[str] = []
    for message in messages:
        parts = list(_message_parts(message))
        message_texts.append(
            "\n".join(
                p["text"]
                for p in parts
                if p.get("type") == "text" and isinstance(p.get("text"), str)
            )
        )
        for part in parts:
            item = _part_to_item(part)
            if item is not None:
                items.append(item)
    return tuple(items), "\n\n".join(message_texts)


def _message_parts(message: Mapping[str, Any]) -> Iterable[Mapping[str, Any]]:
    content = message.get("content")
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    if isinstance(content, list):
        return [p for p in content if isinstance(p, Mapping)]
    return []


def _as_bytes(data: Any) -> bytes | None:
    if isinstance(data, bytes):
        return data
    if isinstance(data, (bytearray, memoryview)):
        return bytes(data)
    return None


def _part_to_item(part: Mapping[str, Any]) -> InputItem | None:
    part_type = part.get("type")
    if part_type == "text":
        text = part.get("text")
        if isinstance(text, str) and text.strip():
            return InputItem.text(text.strip())
        return None
    if part_type == "image":
        data = _as_bytes(part.get("image"))
        return InputItem.image(data) if data else None
    if part_type == "file":
        media_type = part.get("mediaType")
        data = _as_bytes(part.get("data"))
        if data and isinstance(media_type, str) and media_type.startswith("audio/"):
            return InputItem.audio(data)
    return None
