"""Primary intent classification through an external model."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from openai import OpenAI
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..conversations.models import Turn
from ..core.settings import DispatchSettings
from ..integrations.errors import InputValidationError
from .taxonomy import ClassifierUnavailable, Intent, IntentLabel

logger = logging.getLogger(__name__)

CLASSIFIER_SYSTEM_PROMPT = (
    "You route customer messages for a small business assistant. "
    "Classify the latest user message into exactly one label: "
    + ", ".join(label.value for label in IntentLabel)
    + ". Respond with a JSON object with keys 'label', 'confidence' (0 to 1) and "
    "'slots'. Use these slot names when present: to, subject, body (EMAIL_SEND); "
    "sender, max_results (EMAIL_READ); date (YYYY-MM-DD or today/tomorrow/weekday), "
    "time (HH:MM), duration (minutes), title, attendees (CALENDAR_*); company, name, "
    "email, phone (CRM_CREATE_LEAD, CRM_CREATE_CONTACT); query (CRM_SEARCH_CONTACT); "
    "product, quantity (ERP_ORDER); invoice_number (ERP_INVOICE_STATUS); subject, "
    "description (ERP_CREATE_TICKET, ERP_CREATE_LEAD). Use GENERAL when no workflow applies."
)


class ClassificationBackend(Protocol):
    def classify(self, text: str, history: Sequence[Turn]) -> Mapping[str, Any]:
        ...


class ClassifierPayload(BaseModel):
    """Validated shape of a classification response."""

    model_config = ConfigDict(extra="ignore")

    label: IntentLabel = Field(validation_alias=AliasChoices("label", "intent"))
    confidence: float = Field(ge=0.0, le=1.0, allow_inf_nan=False)
    slots: dict[str, Any] = Field(default_factory=dict)

    @field_validator("label", mode="before")
    @classmethod
    def _parse_label(cls, value: Any) -> IntentLabel:
        if isinstance(value, IntentLabel):
            return value
        if not isinstance(value, str):
            raise ValueError("label must be a string")
        return IntentLabel.parse(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _reject_bool(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("confidence must be numeric")
        return value

    @field_validator("slots", mode="before")
    @classmethod
    def _default_slots(cls, value: Any) -> Any:
        return {} if value is None else value


class IntentClassifierAdapter:
    """Call the classification backend once and validate what comes back.

    Any backend exception (timeouts included) and any malformed payload is
    reported as :class:`ClassifierUnavailable`; retrying is left to the caller,
    which falls back to deterministic matching instead.
    """

    def __init__(
        self, backend: ClassificationBackend | None, *, history_window: int = 6
    ) -> None:
        self._backend = backend
        self._history_window = history_window

    def window(self, history: Sequence[Turn]) -> list[Turn]:
        """Return the most recent turns sent along with each classification."""

        if self._history_window <= 0:
            return []
        return list(history)[-self._history_window :]

    def classify(
        self, text: str, history: Sequence[Turn], tenant_id: object
    ) -> Intent | ClassifierUnavailable:
        stripped = (text or "").strip()
        if not stripped:
            raise InputValidationError("text must not be empty")
        if self._backend is None:
            return ClassifierUnavailable("classifier not configured")

        window = self.window(history)
        try:
            raw = self._backend.classify(stripped, window)
        except Exception as exc:
            logger.warning("Intent classifier failed for tenant %s: %s", tenant_id, exc)
            return ClassifierUnavailable(f"backend error: {exc}")

        if not isinstance(raw, Mapping):
            return ClassifierUnavailable("classifier returned a non-object response")
        try:
            payload = ClassifierPayload.model_validate(dict(raw))
        except ValidationError as exc:
            logger.warning(
                "Discarding malformed classifier response for tenant %s: %s",
                tenant_id,
                exc.errors(include_url=False),
            )
            return ClassifierUnavailable("malformed classifier response")
        return Intent(
            label=payload.label,
            confidence=payload.confidence,
            slots=dict(payload.slots),
            source="classifier",
        )


class OpenAIClassificationBackend:
    """Classification through an OpenAI chat completion in JSON mode."""

    def __init__(self, client: Any, *, model: str, timeout: float) -> None:
        self._client = client
        self._model = model
        self._timeout = timeout

    @classmethod
    def from_env(cls, settings: DispatchSettings) -> "OpenAIClassificationBackend | None":
        """Return a backend when ``OPENAI_API_KEY`` is set, else ``None``."""

        if not os.getenv("OPENAI_API_KEY"):
            return None
        client = OpenAI(timeout=settings.classifier_timeout_seconds, max_retries=0)
        return cls(
            client,
            model=settings.openai_model,
            timeout=settings.classifier_timeout_seconds,
        )

    def classify(self, text: str, history: Sequence[Turn]) -> Mapping[str, Any]:
        messages: list[dict[str, str]] = [
            {"role": "system", "content": CLASSIFIER_SYSTEM_PROMPT}
        ]
        for turn in history:
            role = "assistant" if turn.role == "assistant" else "user"
            messages.append({"role": role, "content": turn.text})
        messages.append({"role": "user", "content": text})

        completion = self._client.chat.completions.create(
            model=self._model,
            messages=messages,
            response_format={"type": "json_object"},
            temperature=0,
            timeout=self._timeout,
        )
        content = completion.choices[0].message.content or ""
        return json.loads(content)


__all__ = [
    "CLASSIFIER_SYSTEM_PROMPT",
    "ClassificationBackend",
    "ClassifierPayload",
    "IntentClassifierAdapter",
    "OpenAIClassificationBackend",
]
