"""Intent dispatch, reply composition and the per-message pipeline."""

from .composer import GENERIC_APOLOGY, OpenAIReplyGenerator, ResponseComposer
from .dispatcher import ROUTES, Dispatcher
from .faq import FaqEntry, InMemoryFaqRepository, SqlFaqRepository, best_match
from .outcomes import DispatchOutcome, FailureReason, OutcomeKind
from .pipeline import (
    MessagePipeline,
    PipelineResult,
    TenantUnavailableError,
    create_pipeline,
)
from .prompts import TonePromptStore

__all__ = [
    "Dispatcher",
    "DispatchOutcome",
    "FailureReason",
    "FaqEntry",
    "GENERIC_APOLOGY",
    "InMemoryFaqRepository",
    "MessagePipeline",
    "OpenAIReplyGenerator",
    "OutcomeKind",
    "PipelineResult",
    "ROUTES",
    "ResponseComposer",
    "SqlFaqRepository",
    "TenantUnavailableError",
    "TonePromptStore",
    "best_match",
    "create_pipeline",
]
