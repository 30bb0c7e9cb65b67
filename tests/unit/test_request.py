from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st
import pytest

from tandem.errors import InvalidRequestError
from tandem.models import InputItem, ResponseRequest, ToolDeclaration
from tandem.request import build_multimodal_inputs, build_payload, validate_request

pytestmark = pytest.mark.unit


@given(st.text(min_size=1))
@settings(max_examples=25, deadline=None, derandomize=True)
def test_string_input_becomes_one_user_message(text: str) -> None:
    payload = build_payload(ResponseRequest(model="gpt-4o-mini", input=text))
    assert payload["input"] == [{"type": "message", "text": text, "role": "user"}]


def test_absent_optionals_are_omitted_not_null() -> None:
    payload = build_payload(ResponseRequest(model="gpt-4o-mini", input="hi"))

    assert payload == {
        "model": "gpt-4o-mini",
        "input": [{"type": "message", "text": "hi", "role": "user"}],
        "store": False,
    }
    assert "previous_response_id" not in payload
    assert "metadata" not in payload
    assert "tools" not in payload


def test_chaining_and_store_are_passed_through() -> None:
    payload = build_payload(
        ResponseRequest(
            model="m", input="next", previous_response_id="resp_1", store=True
        )
    )
    assert payload["previous_response_id"] == "resp_1"
    assert payload["store"] is True


def test_string_input_metadata_lands_on_item_and_payload() -> None:
    payload = build_payload(
        ResponseRequest(model="m", input="hi", metadata={"user": "u1"})
    )
    assert payload["input"][0]["metadata"] == {"user": "u1"}
    assert payload["metadata"] == {"user": "u1"}


def test_items_keep_order_and_map_by_kind() -> None:
    request = ResponseRequest(
        model="m",
        input=[
            InputItem.text("describe", lang="en"),
            InputItem.image(b"\x89PNG"),
            InputItem.audio(b"RIFF", format="wav"),
        ],
    )

    assert build_payload(request)["input"] == [
        {"type": "message", "text": "describe", "role": "user", "metadata": {"lang": "en"}},
        {"type": "input_image", "image": {"data": b"\x89PNG"}},
        {"type": "input_audio", "audio": {"data": b"RIFF", "metadata": {"format": "wav"}}},
    ]


def test_mapping_items_are_accepted() -> None:
    request = ResponseRequest(model="m", input=[{"type": "text", "content": "hi"}])
    assert build_payload(request)["input"] == [
        {"type": "message", "text": "hi", "role": "user"}
    ]


def test_tools_are_declared_with_their_config() -> None:
    request = ResponseRequest(
        model="m",
        input="q",
        tools=[ToolDeclaration("file_search", {"vector_store_ids": ["vs_1"]})],
    )
    assert build_payload(request)["tools"] == [
        {"type": "file_search", "config": {"vector_store_ids": ["vs_1"]}}
    ]


def test_request_freezes_sequences() -> None:
    request = ResponseRequest(model="m", input=[InputItem.text("a")], tools=[])
    assert isinstance(request.input, tuple)
    assert request.tools == ()


@pytest.mark.parametrize(
    "request_",
    [
        ResponseRequest(model="m", input=""),
        ResponseRequest(model="m", input=[]),
        ResponseRequest(model="", input="hi"),
        ResponseRequest(model="m", input=[InputItem("video", b"x")]),
    ],
)
def test_malformed_requests_are_rejected_before_sending(
    request_: ResponseRequest,
) -> None:
    with pytest.raises(InvalidRequestError) as exc_info:
        validate_request(request_)
    assert exc_info.value.kind == "invalid_request"
    assert exc_info.value.hint


def test_multimodal_inputs_from_chat_messages() -> None:
    messages = [
        {"role": "user", "content": "first question"},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": "  look at this  "},
                {"type": "text", "text": "   "},
                {"type": "image", "image": b"img"},
                {"type": "file", "mediaType": "audio/wav", "data": b"wav"},
                {"type": "file", "mediaType": "application/pdf", "data": b"pdf"},
                {"type": "reasoning", "text": "skip me"},
            ],
        },
    ]

    items, text = build_multimodal_inputs(messages)

    assert items == (
        InputItem.text("first question"),
        InputItem.text("look at this"),
        InputItem.image(b"img"),
        InputItem.audio(b"wav"),
    )
    assert text.startswith("first question\n\n")
    assert "look at this" in text


def test_multimodal_inputs_empty_for_no_messages() -> None:
    assert build_multimodal_inputs([]) == ((), "")
