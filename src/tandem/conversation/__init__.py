"""Conversation state: manager, persistence providers and context optimizers."""

from tandem.conversation.optimizer import (
    ContextOptimizer,
    HeuristicContextOptimizer,
)
from tandem.conversation.state import ConversationStateManager
from tandem.conversation.store import (
    InMemoryPersistenceProvider,
    JSONFilePersistenceProvider,
    PersistenceProvider,
)

__all__ = [
    "ContextOptimizer",
    "ConversationStateManager",
    "HeuristicContextOptimizer",
    "InMemoryPersistenceProvider",
    "JSONFilePersistenceProvider",
    "PersistenceProvider",
]
