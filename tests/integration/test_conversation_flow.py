"""End-to-end flows: engine and conversation manager wired together offline."""

from __future__ import annotations

import pytest

from tandem import (
    Config,
    ConversationStateManager,
    JSONFilePersistenceProvider,
    collect_stream,
    create_client,
)
from tandem.conversation import HeuristicContextOptimizer

pytestmark = pytest.mark.integration


@pytest.mark.asyncio
async def test_multi_turn_chain_with_mock_transport(tmp_path) -> None:
    manager = ConversationStateManager(
        JSONFilePersistenceProvider(tmp_path / "conversations.json")
    )
    state = await manager.create_conversation("user_1")

    async with create_client(Config(use_mock=True)) as client:
        first = await client.create_response(
            manager.continue_conversation(state.previous_response_id, "Hello there")
        )
        state = await manager.update_conversation_with_response(
            state.conversation_id, first
        )
        second_request = manager.continue_conversation(
            state.previous_response_id, "And again"
        )
        second = await client.create_response(second_request)
        state = await manager.update_conversation_with_response(
            state.conversation_id, second
        )

    assert second_request.previous_response_id == first.id
    assert state.previous_response_id == second.id
    assert state.context_metadata.turn_count == 2
    assert state.context_metadata.total_tokens == len(first.output_text) + len(
        second.output_text
    )

    reloaded = ConversationStateManager(
        JSONFilePersistenceProvider(tmp_path / "conversations.json")
    )
    assert await reloaded.get_conversation_state(state.conversation_id) == state


@pytest.mark.asyncio
async def test_streamed_turn_feeds_the_conversation() -> None:
    manager = ConversationStateManager(optimizer=HeuristicContextOptimizer())
    state = await manager.create_conversation("user_1")
    response_ids: list[str] = []

    async with create_client(Config(use_mock=True)) as client:
        chunks = client.stream_response(
            manager.continue_conversation(None, "stream me please")
        )
        text, annotations = await collect_stream(chunks)

    for annotation in annotations:
        if annotation.get("type") == "responses":
            response_ids.append(annotation["data"]["responseId"])

    assert text == "echo: stream me please"
    assert len(response_ids) == 1

    state = await manager.update_conversation_with_response(
        state.conversation_id, {"id": response_ids[0], "output_text": text}
    )
    verdict = await manager.optimize_conversation_context(state.conversation_id)

    assert state.previous_response_id == response_ids[0]
    assert verdict.should_truncate is False
