"""Short-lived cache that deduplicates classification of repeated messages."""

from __future__ import annotations

import dataclasses
import datetime as dt
import hashlib
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Sequence

from ..conversations.models import Turn
from .taxonomy import Intent


class IntentCache:
    """TTL cache of classifier answers for repeated messages.

    Entries are keyed by tenant, conversation, calendar day, normalised text
    and the history window the classifier saw, so a short reply such as "yes"
    only hits when it continues the same exchange. Stored slots are the
    normalised classifier slots for that day; callers still re-extract slots
    from the text on every hit.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        *,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, Intent]] = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def make_key(
        tenant_id: object,
        text: str,
        day: dt.date,
        *,
        conversation: str | None = None,
        history: Sequence[Turn] = (),
    ) -> str:
        digest = hashlib.sha256()
        digest.update(" ".join((text or "").lower().split()).encode("utf-8"))
        for turn in history:
            digest.update(b"\x1e")
            digest.update(turn.role.encode("utf-8"))
            digest.update(b"\x1f")
            digest.update(" ".join(turn.text.split()).encode("utf-8"))
        return f"{tenant_id}:{conversation or '-'}:{day.isoformat()}:{digest.hexdigest()}"

    def get(
        self,
        tenant_id: object,
        text: str,
        day: dt.date,
        *,
        conversation: str | None = None,
        history: Sequence[Turn] = (),
    ) -> Intent | None:
        if self._ttl <= 0:
            return None
        key = self.make_key(tenant_id, text, day, conversation=conversation, history=history)
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, intent = entry
            if now - stored_at > self._ttl:
                del self._entries[key]
                return None
        return dataclasses.replace(intent, slots=dict(intent.slots), source="cache")

    def put(
        self,
        tenant_id: object,
        text: str,
        day: dt.date,
        intent: Intent,
        *,
        conversation: str | None = None,
        history: Sequence[Turn] = (),
    ) -> None:
        if self._ttl <= 0:
            return
        key = self.make_key(tenant_id, text, day, conversation=conversation, history=history)
        with self._lock:
            self._entries[key] = (self._clock(), dataclasses.replace(intent, slots=dict(intent.slots)))
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


__all__ = ["IntentCache"]
