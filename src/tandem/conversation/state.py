"""Conversation state manager.

Tracks the response chain and turn/token accounting per conversation on top
of a pluggable persistence provider. Conversations move from created to active
with the first recorded response, and may additionally carry an optimizer's
relevance score.

Read-modify-write sequences (get, then save) are not atomic across the pair
unless the provider makes them so; callers serialize per conversation when it
matters.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import replace
import logging
from typing import Any
import uuid

from tandem.config import DEFAULT_MODEL
from tandem.conversation.optimizer import ContextOptimizer
from tandem.conversation.store import InMemoryPersistenceProvider, PersistenceProvider
from tandem.errors import (
    ConversationNotFoundError,
    InvalidRequestError,
    OptimizerUnavailableError,
)
from tandem.models import (
    ConversationState,
    InputItem,
    OptimizationInput,
    OptimizationResult,
    ResponseRequest,
    utcnow,
)

logger = logging.getLogger(__name__)


def _new_conversation_id() -> str:
    return f"conv_{uuid.uuid4().hex}"


class ConversationStateManager:
    """Owns conversation records; the execution engine never touches them."""

    def __init__(
        self,
        persistence: PersistenceProvider | None = None,
        optimizer: ContextOptimizer | None = None,
        *,
        default_model: str = DEFAULT_MODEL,
        id_factory: Callable[[], str] = _new_conversation_id,
    ) -> None:
        """Initialize with an optional store (in-memory when omitted) and optimizer."""
        self.persistence: PersistenceProvider = (
            persistence if persistence is not None else InMemoryPersistenceProvider()
        )
        self.optimizer = optimizer
        self.default_model = default_model
        self._id_factory = id_factory

    async def create_conversation(self, user_id: str | None) -> ConversationState:
        """Allocate a fresh conversation with zeroed accounting and persist it."""
        conversation_id = self._id_factory()
        while await self.persistence.get_conversation(conversation_id) is not None:
            conversation_id = self._id_factory()
        state = ConversationState(conversation_id=conversation_id, user_id=user_id)
        saved = await self.save_conversation_state(conversation_id, state)
        logger.debug("Created conversation %s", conversation_id)
        return saved

    async def ensure_conversation(
        self, conversation_id: str, user_id: str | None
    ) -> ConversationState:
        """Return the existing state for *conversation_id*, creating it if absent."""
        state = await self.persistence.get_conversation(conversation_id)
        if state is not None:
            return state
        state = ConversationState(conversation_id=conversation_id, user_id=user_id)
        return await self.save_conversation_state(conversation_id, state)

    def continue_conversation(
        self,
        previous_response_id: str | None,
        input: str | tuple[InputItem, ...],  # noqa: A002
        *,
        model: str | None = None,
    ) -> ResponseRequest:
        """Build a stored request chained onto *previous_response_id*.

        Pure: persisted state is not read or written.
        """
        return ResponseRequest(
            model=model or self.default_model,
            input=input,
            previous_response_id=previous_response_id,
            store=True,
        )

    async def get_conversation_state(
        self, conversation_id: str
    ) -> ConversationState | None:
        return await self.persistence.get_conversation(conversation_id)

    async def save_conversation_state(
        self, conversation_id: str, state: ConversationState
    ) -> ConversationState:
        """Persist *state*, bumping ``updated_at`` and ``version``.

        Last write wins; the version counter is informational only.
        """
        saved = replace(state, updated_at=utcnow(), version=state.version + 1)
        await self.persistence.save_conversation(conversation_id, saved)
        return saved

    async def update_conversation_with_response(
        self, conversation_id: str, response: Any
    ) -> ConversationState:
        """Record one completed turn on the conversation.

        *response* is a ``CompletedResponse`` or a mapping with ``id`` and
        ``output_text``. Token accounting uses the output length as a proxy.

        Raises:
            ConversationNotFoundError: *conversation_id* is unknown. No record
                is created.
        """
        state = await self.persistence.get_conversation(conversation_id)
        if state is None:
            raise ConversationNotFoundError(conversation_id)

        response_id, output_text = _response_fields(response)
        meta = state.context_metadata
        updated = replace(
            state,
            previous_response_id=response_id,
            context_metadata=replace(
                meta,
                turn_count=meta.turn_count + 1,
                last_activity=utcnow(),
                total_tokens=meta.total_tokens + len(output_text),
            ),
        )
        saved = await self.save_conversation_state(conversation_id, updated)
        logger.debug(
            "Conversation %s advanced to turn %d (response_id=%s)",
            conversation_id,
            saved.context_metadata.turn_count,
            response_id,
        )
        return saved

    async def optimize_conversation_context(
        self,
        conversation_id: str,
        data: OptimizationInput | None = None,
    ) -> OptimizationResult:
        """Ask the optimizer for a verdict; persist the relevance score on truncation.

        When *data* is omitted it is derived from the stored accounting.

        Raises:
            OptimizerUnavailableError: No optimizer was configured.
            ConversationNotFoundError: *conversation_id* is unknown.
        """
        if self.optimizer is None:
            raise OptimizerUnavailableError(
                "No context optimizer configured",
                hint="Pass optimizer=HeuristicContextOptimizer() to the manager.",
            )

        state = await self.persistence.get_conversation(conversation_id)
        if state is None:
            raise ConversationNotFoundError(conversation_id)
        if data is None:
            data = OptimizationInput(
                conversation_id=conversation_id,
                turn_count=state.context_metadata.turn_count,
                total_tokens=state.context_metadata.total_tokens,
            )

        result = await self.optimizer.optimize_context(data)
        if result.should_truncate:
            updated = replace(
                state,
                context_metadata=replace(
                    state.context_metadata, relevance_score=result.relevance_score
                ),
            )
            await self.save_conversation_state(conversation_id, updated)
            logger.info(
                "Conversation %s flagged for truncation (relevance=%.2f)",
                conversation_id,
                result.relevance_score,
            )
        return result


def _response_fields(response: Any) -> tuple[str, str]:
    if isinstance(response, Mapping):
        response_id = response.get("id")
        text = response.get("output_text", response.get("outputText", ""))
    else:
        response_id = getattr(response, "id", None)
        text = getattr(response, "output_text", "")
    if not isinstance(response_id, str) or not response_id:
        raise InvalidRequestError(
            "response must carry a non-empty string id",
            hint="Pass the CompletedResponse returned by create_response().",
        )
    return response_id, text if isinstance(text, str) else ""
