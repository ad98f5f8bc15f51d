"""Keyword search over a tenant's frequently asked questions."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from ..core.db import apply_tenant_settings
from ..models import BusinessFaq

MATCH_THRESHOLD = 0.3
_WORD_RE = re.compile(r"[a-z0-9']+")


@dataclass(frozen=True)
class FaqEntry:
    question: str
    answer: str


def _keywords(text: str) -> set[str]:
    return {w for w in _WORD_RE.findall(text.lower()) if len(w) > 2}


def best_match(
    text: str, entries: Sequence[FaqEntry], threshold: float = MATCH_THRESHOLD
) -> tuple[FaqEntry, float] | None:
    """Return the entry whose question shares the most keywords with ``text``.

    The score is the number of shared words divided by the size of the larger
    word set; entries scoring at or below ``threshold`` are ignored.
    """

    words = _keywords(text)
    if not words:
        return None
    best: tuple[FaqEntry, float] | None = None
    for entry in entries:
        question_words = _keywords(entry.question)
        if not question_words:
            continue
        score = len(words & question_words) / max(len(words), len(question_words))
        if score > threshold and (best is None or score > best[1]):
            best = (entry, score)
    return best


class FaqRepository(Protocol):
    def list_entries(self, tenant_id: UUID) -> list[FaqEntry]:
        ...


class InMemoryFaqRepository:
    def __init__(self, entries: Mapping[UUID, Sequence[FaqEntry]] | None = None) -> None:
        self._entries = {k: list(v) for k, v in (entries or {}).items()}

    def add(self, tenant_id: UUID, question: str, answer: str) -> FaqEntry:
        entry = FaqEntry(question=question, answer=answer)
        self._entries.setdefault(tenant_id, []).append(entry)
        return entry

    def list_entries(self, tenant_id: UUID) -> list[FaqEntry]:
        return list(self._entries.get(tenant_id, []))


class SqlFaqRepository:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def list_entries(self, tenant_id: UUID) -> list[FaqEntry]:
        with self._session_factory() as session:
            apply_tenant_settings(session, tenant_id)
            rows = session.scalars(
                select(BusinessFaq).where(BusinessFaq.tenant_id == tenant_id)
            ).all()
            return [FaqEntry(question=row.question, answer=row.answer) for row in rows]


__all__ = [
    "FaqEntry",
    "FaqRepository",
    "InMemoryFaqRepository",
    "SqlFaqRepository",
    "best_match",
]
