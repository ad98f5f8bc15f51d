"""Combine primary classification, fallback matching and slot extraction."""

from __future__ import annotations

import dataclasses
import datetime as dt
import logging
from collections.abc import Sequence

from ..conversations.models import Turn
from ..integrations.errors import InputValidationError
from .cache import IntentCache
from .classifier import IntentClassifierAdapter
from .fallback import FallbackClassifier
from .slots import DEFAULT_MEETING_DURATION, extract_slots, normalize_slots
from .taxonomy import ClassifierUnavailable, Intent

logger = logging.getLogger(__name__)


class IntentResolver:
    """Resolve one message to an :class:`Intent` with validated slots.

    The primary classifier's answer is used when its confidence reaches
    ``confidence_threshold``; otherwise, or when it is unavailable, the
    fallback matcher table decides. Slots supplied by the classifier are
    normalised and take precedence over deterministically extracted ones.
    """

    def __init__(
        self,
        classifier: IntentClassifierAdapter,
        fallback: FallbackClassifier | None = None,
        *,
        confidence_threshold: float = 0.7,
        cache: IntentCache | None = None,
        default_duration: int = DEFAULT_MEETING_DURATION,
    ) -> None:
        self._classifier = classifier
        self._fallback = fallback or FallbackClassifier()
        self._threshold = confidence_threshold
        self._cache = cache
        self._default_duration = default_duration

    def resolve(
        self,
        text: str,
        history: Sequence[Turn],
        tenant_id: object,
        today: dt.date,
        *,
        conversation: str | None = None,
    ) -> Intent:
        stripped = (text or "").strip()
        if not stripped:
            raise InputValidationError("text must not be empty")

        window = self._classifier.window(history)
        cache_scope = {"conversation": conversation, "history": window}
        chosen = (
            self._cache.get(tenant_id, stripped, today, **cache_scope)
            if self._cache is not None
            else None
        )
        if chosen is not None:
            logger.debug("Intent cache hit for tenant %s", tenant_id)
        else:
            chosen = self._classify(stripped, history, tenant_id)
            chosen = dataclasses.replace(
                chosen, slots=normalize_slots(chosen.label, chosen.slots, today)
            )
            if self._cache is not None and chosen.source == "classifier":
                self._cache.put(tenant_id, stripped, today, chosen, **cache_scope)

        slots = extract_slots(
            stripped, chosen.label, today, default_duration=self._default_duration
        )
        slots.update(chosen.slots)
        return Intent(
            label=chosen.label,
            confidence=chosen.confidence,
            slots=slots,
            source=chosen.source,
        )

    def _classify(self, text: str, history: Sequence[Turn], tenant_id: object) -> Intent:
        primary = self._classifier.classify(text, history, tenant_id)
        if isinstance(primary, Intent) and primary.confidence >= self._threshold:
            return primary
        if isinstance(primary, ClassifierUnavailable):
            logger.info(
                "Classifier unavailable for tenant %s (%s); using fallback",
                tenant_id,
                primary.reason,
            )
        else:
            logger.info(
                "Classifier confidence %.2f below %.2f for tenant %s; using fallback",
                primary.confidence,
                self._threshold,
                tenant_id,
            )
        return self._fallback.classify(text)


__all__ = ["IntentResolver"]
