"""Normalised results of dispatching an intent."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

from ..intents.taxonomy import IntentLabel


class OutcomeKind(str, enum.Enum):
    SUCCESS = "success"
    RECOVERABLE = "recoverable"
    FATAL = "fatal"
    CONVERSATIONAL = "conversational"


class FailureReason(str, enum.Enum):
    INCOMPLETE_SLOTS = "incomplete_slots"
    NO_INTEGRATION = "no_integration"
    REFRESH_FAILED = "refresh_failed"
    INVALID_INPUT = "invalid_input"
    CONFIGURATION = "configuration"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    UNCONFIRMED = "unconfirmed"
    INTERNAL = "internal"


@dataclass(frozen=True)
class DispatchOutcome:
    """What happened when an intent was dispatched.

    ``payload`` carries the handler result on success (or the FAQ answer);
    failures carry a ``reason`` and, for incomplete slots, ``missing_fields``.
    """

    kind: OutcomeKind
    intent: IntentLabel
    payload: dict[str, Any] = field(default_factory=dict)
    reason: FailureReason | None = None
    provider: str | None = None
    missing_fields: tuple[str, ...] = ()
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.kind in (OutcomeKind.SUCCESS, OutcomeKind.CONVERSATIONAL)

    @classmethod
    def success(
        cls, intent: IntentLabel, payload: dict[str, Any], provider: str | None = None
    ) -> "DispatchOutcome":
        return cls(OutcomeKind.SUCCESS, intent, payload=payload, provider=provider)

    @classmethod
    def conversational(
        cls, intent: IntentLabel, payload: dict[str, Any] | None = None
    ) -> "DispatchOutcome":
        return cls(OutcomeKind.CONVERSATIONAL, intent, payload=payload or {})

    @classmethod
    def recoverable(
        cls,
        intent: IntentLabel,
        reason: FailureReason,
        *,
        provider: str | None = None,
        missing_fields: tuple[str, ...] = (),
        detail: str | None = None,
    ) -> "DispatchOutcome":
        return cls(
            OutcomeKind.RECOVERABLE,
            intent,
            reason=reason,
            provider=provider,
            missing_fields=missing_fields,
            detail=detail,
        )

    @classmethod
    def fatal(
        cls,
        intent: IntentLabel,
        reason: FailureReason,
        *,
        provider: str | None = None,
        detail: str | None = None,
    ) -> "DispatchOutcome":
        return cls(OutcomeKind.FATAL, intent, reason=reason, provider=provider, detail=detail)


__all__ = ["DispatchOutcome", "FailureReason", "OutcomeKind"]
