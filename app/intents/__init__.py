"""Intent classification, fallback matching and slot extraction."""

from .cache import IntentCache
from .classifier import IntentClassifierAdapter, OpenAIClassificationBackend
from .fallback import FallbackClassifier
from .resolver import IntentResolver
from .taxonomy import (
    REQUIRED_SLOTS,
    ClassifierUnavailable,
    IncompleteSlots,
    Intent,
    IntentLabel,
)

__all__ = [
    "ClassifierUnavailable",
    "FallbackClassifier",
    "IncompleteSlots",
    "Intent",
    "IntentCache",
    "IntentClassifierAdapter",
    "IntentLabel",
    "IntentResolver",
    "OpenAIClassificationBackend",
    "REQUIRED_SLOTS",
]
