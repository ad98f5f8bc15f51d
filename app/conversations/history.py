"""Bounded in-memory conversation history keyed by tenant and conversation."""

from __future__ import annotations

import threading
from collections import deque
from uuid import UUID

from .models import ConversationContext, Turn


class InMemoryHistoryStore:
    """Keep the last ``max_turns`` turns for each (tenant, conversation) pair."""

    def __init__(self, max_turns: int = 20) -> None:
        self._max_turns = max_turns
        self._turns: dict[tuple[UUID, str], deque[Turn]] = {}
        self._lock = threading.Lock()

    def context(self, tenant_id: UUID, conversation_id: str) -> ConversationContext:
        with self._lock:
            turns = tuple(self._turns.get((tenant_id, conversation_id), ()))
        return ConversationContext(turns)

    def append(self, tenant_id: UUID, conversation_id: str, *turns: Turn) -> None:
        with self._lock:
            bucket = self._turns.setdefault(
                (tenant_id, conversation_id), deque(maxlen=self._max_turns)
            )
            bucket.extend(turns)

    def clear(self, tenant_id: UUID, conversation_id: str) -> None:
        with self._lock:
            self._turns.pop((tenant_id, conversation_id), None)
