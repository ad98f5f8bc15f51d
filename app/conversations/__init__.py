"""Inbound message models and conversation history."""

from .history import InMemoryHistoryStore
from .models import ConversationContext, NormalizedMessage, Turn

__all__ = [
    "ConversationContext",
    "InMemoryHistoryStore",
    "NormalizedMessage",
    "Turn",
]
