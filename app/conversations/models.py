"""Domain models for inbound messages and conversation history."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID


@dataclass
class NormalizedMessage:
    """Uniform representation of inbound channel messages."""

    tenant_id: UUID
    channel: str
    external_conversation_id: str
    sender_id: str
    text: str
    sender_name: str | None = None
    attachments: list[dict[str, Any]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class Turn:
    """One utterance in a conversation; ``role`` is ``user`` or ``assistant``."""

    role: str
    text: str


@dataclass(frozen=True)
class ConversationContext:
    turns: tuple[Turn, ...] = ()

    @classmethod
    def from_turns(cls, turns: Iterable[Turn], limit: int | None = None) -> "ConversationContext":
        items = tuple(turns)
        if limit is not None:
            items = items[-limit:] if limit > 0 else ()
        return cls(items)

    def window(self, size: int) -> tuple[Turn, ...]:
        """Return the ``size`` most recent turns, oldest first."""

        if size <= 0:
            return ()
        return self.turns[-size:]
