"""Keyword-and-anchor classifier used when the primary classifier can't decide.

Matchers are plain functions ``text -> Intent | None`` kept in a fixed order:
email, calendar, CRM, ERP, FAQ. The first matcher that fires wins; when none
does the message is treated as general conversation.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence

from .slots import extract_emails, extract_invoice_number, extract_order
from .taxonomy import GENERAL_CONFIDENCE, Intent, IntentLabel

Matcher = Callable[[str], "Intent | None"]

PATTERN_CONFIDENCE = 0.8
KEYWORD_CONFIDENCE = 0.6


def _has(pattern: str, text: str) -> bool:
    return re.search(pattern, text, re.I) is not None


def _intent(label: IntentLabel, confidence: float = PATTERN_CONFIDENCE) -> Intent:
    return Intent(label=label, confidence=confidence, source="fallback")


_SEND_VERB = (
    r"\b(?:send|mail|write|forward|shoot)\b"
    r"|(?:^|\b(?:please|pls|can\s+you|could\s+you|to|and)\s+)e-?mail\b"
)
_READ_VERB = r"\b(?:read|check|show|list|open|see|get|fetch|go\s+through)\b"
_OWN_MAILBOX = (
    r"\b(?:my|our)\s+(?:(?:new|unread|latest|recent|last|\d+)\s+)*"
    r"(?:inbox|e-?mails?|mails?|mailbox|messages)\b"
    r"|\binbox\b|\b(?:e-?mails?|mails?)\s+from\b"
)
_MAIL_ASK = (
    r"\b(?:any|new|unread|latest|recent)\s+(?:(?:new|unread)\s+)?(?:e-?mails?|mails?)\b"
    r"|\bin\s+(?:my|our)\s+(?:inbox|mailbox)\b"
)
_OTHER_MAILBOX = r"\b(?:your|their|his|her)\s+e-?mail\b|\be-?mail\s+(?:address|id)\b"
_BOOKING = r"\b(?:schedule|book|set\s+up|arrange|reserve|plan|organi[sz]e|add)\b"
_EVENT_NOUN = r"\b(?:meeting|appointment|call|event|reservation|session|demo)\b"
_DATE_OR_TIME = (
    r"\b(?:today|tonight|tomorrow|monday|tuesday|wednesday|thursday|friday|saturday|sunday|"
    r"noon|midnight|next\s+week)\b|\b\d{1,2}(?::\d{2})?\s*(?:am|pm)\b|\b\d{1,2}:\d{2}\b|\bat\s+\d{1,2}\b"
)
_CALENDAR_NOUN = r"\b(?:calendar|agenda|schedule|events?|meetings?|appointments?)\b"
_CALENDAR_QUESTION = (
    r"\b(?:what|show|check|list|upcoming|do\s+i\s+have|am\s+i\s+(?:free|busy)|"
    r"available|availability|free|busy|anything)\b"
)


def match_email_send(text: str) -> Intent | None:
    """Send verb plus a syntactically valid recipient address."""

    if _has(_SEND_VERB, text) and extract_emails(text):
        return _intent(IntentLabel.EMAIL_SEND)
    lowered = text.lower()
    if re.search(r"^\s*(?:to|email address)\s*:", lowered, re.M) and re.search(
        r"^\s*subject\s*:", lowered, re.M
    ):
        return _intent(IntentLabel.EMAIL_SEND)
    return None


def match_email_read(text: str) -> Intent | None:
    """A read request aimed at the user's own mailbox.

    Questions about the business's address ("what is your email?") never
    match; those are FAQ material.
    """

    if _has(_OTHER_MAILBOX, text):
        return None
    if _has(_MAIL_ASK, text):
        return _intent(IntentLabel.EMAIL_READ)
    if _has(_READ_VERB, text) and _has(_OWN_MAILBOX, text):
        return _intent(IntentLabel.EMAIL_READ)
    return None


def match_calendar_check(text: str) -> Intent | None:
    if _has(r"\bam\s+i\s+(?:free|busy|available)\b", text):
        return _intent(IntentLabel.CALENDAR_CHECK)
    if _has(_CALENDAR_NOUN, text) and _has(_CALENDAR_QUESTION, text):
        if _has(r"\b(?:schedule|book|set\s+up|arrange)\s+(?:a|an|the|my)\b", text) and not _has(
            r"\b(?:check|show|what|list|upcoming|do\s+i\s+have)\b", text
        ):
            return None
        return _intent(IntentLabel.CALENDAR_CHECK)
    return None


def match_calendar_schedule(text: str) -> Intent | None:
    if _has(_BOOKING, text) and _has(_EVENT_NOUN + r"|\b(?:book|schedule)\b", text):
        if _has(_DATE_OR_TIME, text):
            return _intent(IntentLabel.CALENDAR_SCHEDULE)
        return _intent(IntentLabel.CALENDAR_SCHEDULE, KEYWORD_CONFIDENCE)
    return None


def match_crm_create_lead(text: str) -> Intent | None:
    if _has(r"\b(?:create|add|new|register|log|capture|record)\b", text) and _has(
        r"\b(?:leads?|prospects?|opportunit(?:y|ies))\b", text
    ):
        return _intent(IntentLabel.CRM_CREATE_LEAD)
    return None


def match_crm_search_contact(text: str) -> Intent | None:
    if _has(r"\b(?:find|search|look\s*up|lookup|who\s+is|details)\b", text) and _has(
        r"\b(?:contacts?|customers?|clients?|crm)\b", text
    ):
        return _intent(IntentLabel.CRM_SEARCH_CONTACT)
    return None


def match_crm_create_contact(text: str) -> Intent | None:
    if _has(r"\b(?:create|add|new|save|register)\b", text) and _has(
        r"\b(?:contacts?|clients?)\b", text
    ):
        return _intent(IntentLabel.CRM_CREATE_CONTACT)
    return None


def match_erp_invoice(text: str) -> Intent | None:
    if _has(r"\b(?:invoices?|bills?)\b", text):
        confidence = PATTERN_CONFIDENCE if extract_invoice_number(text) else KEYWORD_CONFIDENCE
        return _intent(IntentLabel.ERP_INVOICE_STATUS, confidence)
    return None


def match_erp_order(text: str) -> Intent | None:
    quantity, product = extract_order(text)
    if _has(r"\b(?:order|buy|purchase)\b", text) and quantity and product:
        return _intent(IntentLabel.ERP_ORDER)
    if _has(r"\b\d+\s+(?:pizzas?|items?|products?|units?|boxes|pieces?)\b", text):
        return _intent(IntentLabel.ERP_ORDER)
    return None


def match_erp_ticket(text: str) -> Intent | None:
    if _has(
        r"\b(?:support|help\s+with|issue|problem|ticket|broken|not\s+working|complaint|"
        r"defective|damaged)\b",
        text,
    ):
        return _intent(IntentLabel.ERP_CREATE_TICKET, KEYWORD_CONFIDENCE)
    return None


def match_erp_lead(text: str) -> Intent | None:
    if _has(r"\b(?:interested\s+in|inquiry|enquiry|quote|quotation|pricing\s+for)\b", text):
        return _intent(IntentLabel.ERP_CREATE_LEAD, KEYWORD_CONFIDENCE)
    return None


_FAQ_QUESTION = (
    r"\?\s*$|^\s*(?:what|how|when|where|which|do\s+you|does|can\s+i|is\s+there|are\s+you|are\s+there)\b"
)
_FAQ_TOPIC = (
    r"\b(?:hours?|open|opening|close|closing|return|refunds?|shipping|delivery|deliver|payment|"
    r"pay|warranty|price|prices|cost|location|address|located|parking|policy|menu|services?)\b"
)


def match_faq(text: str) -> Intent | None:
    if _has(_FAQ_QUESTION, text) and _has(_FAQ_TOPIC, text):
        return _intent(IntentLabel.FAQ, KEYWORD_CONFIDENCE)
    return None


#: Priority order; the first matcher that returns an intent wins.
DEFAULT_MATCHERS: tuple[Matcher, ...] = (
    match_email_send,
    match_email_read,
    match_calendar_check,
    match_calendar_schedule,
    match_crm_create_lead,
    match_crm_search_contact,
    match_crm_create_contact,
    match_erp_invoice,
    match_erp_order,
    match_erp_ticket,
    match_erp_lead,
    match_faq,
)


class FallbackClassifier:
    """Deterministic classifier over an ordered matcher table."""

    def __init__(self, matchers: Sequence[Matcher] | None = None) -> None:
        self._matchers = tuple(matchers) if matchers is not None else DEFAULT_MATCHERS

    def classify(self, text: str) -> Intent:
        stripped = (text or "").strip()
        if stripped:
            for matcher in self._matchers:
                intent = matcher(stripped)
                if intent is not None:
                    return intent
        return Intent(
            label=IntentLabel.GENERAL, confidence=GENERAL_CONFIDENCE, source="fallback"
        )


__all__ = ["DEFAULT_MATCHERS", "FallbackClassifier", "Matcher"]
