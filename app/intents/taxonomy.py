"""Closed intent taxonomy and the value objects produced by classification."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any


class IntentLabel(str, enum.Enum):
    EMAIL_SEND = "EMAIL_SEND"
    EMAIL_READ = "EMAIL_READ"
    CALENDAR_SCHEDULE = "CALENDAR_SCHEDULE"
    CALENDAR_CHECK = "CALENDAR_CHECK"
    CRM_CREATE_LEAD = "CRM_CREATE_LEAD"
    CRM_SEARCH_CONTACT = "CRM_SEARCH_CONTACT"
    CRM_CREATE_CONTACT = "CRM_CREATE_CONTACT"
    ERP_ORDER = "ERP_ORDER"
    ERP_INVOICE_STATUS = "ERP_INVOICE_STATUS"
    ERP_CREATE_TICKET = "ERP_CREATE_TICKET"
    ERP_CREATE_LEAD = "ERP_CREATE_LEAD"
    FAQ = "FAQ"
    GENERAL = "GENERAL"

    @classmethod
    def parse(cls, value: str) -> "IntentLabel":
        """Resolve a label case-insensitively; raises ``ValueError`` when unknown."""

        normalized = str(value).strip().upper().replace("-", "_").replace(" ", "_")
        return cls(normalized)


#: Slots that must be present before an intent can be dispatched.
REQUIRED_SLOTS: dict[IntentLabel, tuple[str, ...]] = {
    IntentLabel.EMAIL_SEND: ("to", "subject", "body"),
    IntentLabel.EMAIL_READ: (),
    IntentLabel.CALENDAR_SCHEDULE: ("date", "time"),
    IntentLabel.CALENDAR_CHECK: (),
    IntentLabel.CRM_CREATE_LEAD: ("company",),
    IntentLabel.CRM_SEARCH_CONTACT: ("query",),
    IntentLabel.CRM_CREATE_CONTACT: ("email",),
    IntentLabel.ERP_ORDER: ("product", "quantity"),
    IntentLabel.ERP_INVOICE_STATUS: ("invoice_number",),
    IntentLabel.ERP_CREATE_TICKET: ("subject",),
    IntentLabel.ERP_CREATE_LEAD: ("description",),
    IntentLabel.FAQ: (),
    IntentLabel.GENERAL: (),
}

#: Confidence reported when no specific workflow was detected.
GENERAL_CONFIDENCE = 0.5


@dataclass(frozen=True)
class Intent:
    label: IntentLabel
    confidence: float
    slots: dict[str, Any] = field(default_factory=dict)
    source: str = "classifier"


@dataclass(frozen=True)
class ClassifierUnavailable:
    """The primary classifier produced no usable answer for this message."""

    reason: str


@dataclass(frozen=True)
class IncompleteSlots:
    intent: IntentLabel
    missing_fields: tuple[str, ...]


__all__ = [
    "ClassifierUnavailable",
    "GENERAL_CONFIDENCE",
    "IncompleteSlots",
    "Intent",
    "IntentLabel",
    "REQUIRED_SLOTS",
]
