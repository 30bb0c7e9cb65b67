"""Persistence providers for conversation state.

Defines the `PersistenceProvider` protocol, the in-memory fallback used when
no provider is configured, and a single-file JSON provider.
"""

from __future__ import annotations

import asyncio
import copy
from dataclasses import asdict
from datetime import datetime, timedelta
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field, ValidationError

from tandem.models import ContextMetadata, ConversationState, utcnow

if TYPE_CHECKING:
    import os

logger = logging.getLogger(__name__)


@runtime_checkable
class PersistenceProvider(Protocol):
    """Protocol for storing conversation state records."""

    async def save_conversation(
        self, conversation_id: str, state: ConversationState
    ) -> None:
        """Insert or replace the record for *conversation_id*."""
        ...

    async def get_conversation(self, conversation_id: str) -> ConversationState | None:
        """Return the record for *conversation_id*, or None."""
        ...

    async def delete_conversation(self, conversation_id: str) -> None:
        """Remove the record if present."""
        ...

    async def cleanup_expired_conversations(self, older_than_hours: float) -> int:
        """Remove records not updated within the window; return how many."""
        ...


class InMemoryPersistenceProvider:
    """Process-local store guarded by a single lock.

    Records are copied on the way in and out so callers never share mutable
    state with the store.
    """

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._store: dict[str, ConversationState] = {}
        self._lock = asyncio.Lock()

    async def save_conversation(
        self, conversation_id: str, state: ConversationState
    ) -> None:
        async with self._lock:
            self._store[conversation_id] = copy.deepcopy(state)

    async def get_conversation(self, conversation_id: str) -> ConversationState | None:
        async with self._lock:
            state = self._store.get(conversation_id)
            return copy.deepcopy(state) if state is not None else None

    async def delete_conversation(self, conversation_id: str) -> None:
        async with self._lock:
            self._store.pop(conversation_id, None)

    async def cleanup_expired_conversations(self, older_than_hours: float) -> int:
        cutoff = utcnow() - timedelta(hours=older_than_hours)
        async with self._lock:
            expired = [
                cid for cid, state in self._store.items() if state.updated_at < cutoff
            ]
            for cid in expired:
                del self._store[cid]
        return len(expired)

    def __len__(self) -> int:
        return len(self._store)


# --- JSON file provider ---


class _ContextMetadataRecord(BaseModel):
    turn_count: int = Field(default=0, ge=0)
    last_activity: datetime
    total_tokens: int = Field(default=0, ge=0)
    relevance_score: float | None = None


class _ConversationRecord(BaseModel):
    """Validation wall for records read back from disk."""

    conversation_id: str = Field(min_length=1)
    user_id: str | None = None
    previous_response_id: str | None = None
    context_metadata: _ContextMetadataRecord
    created_at: datetime
    updated_at: datetime
    version: int = Field(default=0, ge=0)

    model_config = {"extra": "ignore"}

    def to_state(self) -> ConversationState:
        meta = self.context_metadata
        return ConversationState(
            conversation_id=self.conversation_id,
            user_id=self.user_id,
            previous_response_id=self.previous_response_id,
            context_metadata=ContextMetadata(
                turn_count=meta.turn_count,
                last_activity=meta.last_activity,
                total_tokens=meta.total_tokens,
                relevance_score=meta.relevance_score,
            ),
            created_at=self.created_at,
            updated_at=self.updated_at,
            version=self.version,
        )


class JSONFilePersistenceProvider:
    """Single JSON file mapping conversation id -> state record.

    Uses copy-on-write: write to a temp file and rename for atomicity.
    Records that fail validation on read are skipped and logged.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        """Initialize the provider pointing at a JSON file path."""
        self._path = Path(path)
        self._lock = asyncio.Lock()

    async def save_conversation(
        self, conversation_id: str, state: ConversationState
    ) -> None:
        record = _ConversationRecord.model_validate(asdict(state))
        async with self._lock:
            data = self._read_all()
            data[conversation_id] = record.model_dump(mode="json")
            self._write_all(data)

    async def get_conversation(self, conversation_id: str) -> ConversationState | None:
        async with self._lock:
            entry = self._read_all().get(conversation_id)
        if entry is None:
            return None
        try:
            return _ConversationRecord.model_validate(entry).to_state()
        except ValidationError as e:
            logger.warning(
                "Skipping malformed conversation record %s: %s", conversation_id, e
            )
            return None

    async def delete_conversation(self, conversation_id: str) -> None:
        async with self._lock:
            data = self._read_all()
            if data.pop(conversation_id, None) is not None:
                self._write_all(data)

    async def cleanup_expired_conversations(self, older_than_hours: float) -> int:
        cutoff = utcnow() - timedelta(hours=older_than_hours)
        async with self._lock:
            data = self._read_all()
            expired: list[str] = []
            for cid, entry in data.items():
                try:
                    record = _ConversationRecord.model_validate(entry)
                except ValidationError:
                    continue
                if record.updated_at < cutoff:
                    expired.append(cid)
            for cid in expired:
                del data[cid]
            if expired:
                self._write_all(data)
        return len(expired)

    def _read_all(self) -> dict[str, Any]:
        """Read and deserialize the entire JSON file into a mapping."""
        if not self._path.exists():
            return {}
        try:
            result = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Unreadable conversation store %s: %s", self._path, e)
            return {}
        return result if isinstance(result, dict) else {}

    def _write_all(self, data: dict[str, Any]) -> None:
        """Persist data atomically via temp file rename."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp.replace(self._path)
