"""Turn dispatch outcomes into the reply text sent back to the customer."""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Protocol

from openai import OpenAI

from ..businesses.directory import BusinessTone
from ..conversations.models import Turn
from ..core.settings import DispatchSettings
from ..intents.taxonomy import IntentLabel
from .outcomes import DispatchOutcome, FailureReason, OutcomeKind
from .prompts import TonePromptStore

logger = logging.getLogger(__name__)

GENERIC_APOLOGY = (
    "Sorry, something went wrong while handling your message. Please try again later."
)
GREETING = (
    "Hi! I can help you send and read emails, manage your calendar, look up "
    "contacts, place orders, check invoices and open support tickets. "
    "What would you like to do?"
)
FAQ_MISS = "I'm not sure about that one. Could you rephrase your question?"

# Appended to the tone prompt when answering small talk instead of a template.
GENERAL_CHAT_PROMPT = (
    "The customer is chatting rather than asking for a task. Answer their latest "
    "message briefly and naturally, using the conversation so far. Only describe "
    "what you can do with the capabilities listed in the draft, and use the draft "
    "as your reply when the message needs nothing else."
)

PROVIDER_NAMES = {
    "email-calendar": "Google email and calendar",
    "crm-a": "HubSpot CRM",
    "crm-b": "Salesforce CRM",
    "erp": "Odoo ERP",
}

ACTIONS = {
    IntentLabel.EMAIL_SEND: "send the email",
    IntentLabel.EMAIL_READ: "check your email",
    IntentLabel.CALENDAR_SCHEDULE: "schedule the meeting",
    IntentLabel.CALENDAR_CHECK: "check your calendar",
    IntentLabel.CRM_CREATE_LEAD: "create the lead",
    IntentLabel.CRM_SEARCH_CONTACT: "look up the contact",
    IntentLabel.CRM_CREATE_CONTACT: "add the contact",
    IntentLabel.ERP_ORDER: "place your order",
    IntentLabel.ERP_INVOICE_STATUS: "check the invoice",
    IntentLabel.ERP_CREATE_TICKET: "open a support ticket",
    IntentLabel.ERP_CREATE_LEAD: "pass on your inquiry",
}

FIELD_LABELS = {
    "to": "the recipient's email address",
    "subject": "a subject",
    "body": "the message text",
    "date": "the date",
    "time": "the time",
    "company": "the company name",
    "query": "a name or email address to search for",
    "email": "an email address",
    "product": "the product name",
    "quantity": "the quantity",
    "invoice_number": "the invoice number",
    "description": "a short description",
}

EMAIL_FORMAT_HINT = (
    "You can write it like this:\n"
    "Email address: name@example.com\n"
    "Subject: Your subject\n"
    "Body: Your message"
)

_RAW_PROVIDER_DETAIL = re.compile(r"\breturned \d{3}\b|\brequest failed\b")


class ReplyGenerator(Protocol):
    def rephrase(
        self,
        draft: str,
        tone: BusinessTone | None,
        outcome: DispatchOutcome,
        *,
        message: str | None = None,
        history: Sequence[Turn] = (),
    ) -> str:
        ...


def _provider_name(outcome: DispatchOutcome) -> str:
    return PROVIDER_NAMES.get(outcome.provider or "", "the integration")


def _join(items: list[str]) -> str:
    if len(items) <= 1:
        return "".join(items)
    return ", ".join(items[:-1]) + " and " + items[-1]


# ------------------------------------------------------------------
# Success templates
# ------------------------------------------------------------------


def _email_sent(p: Mapping[str, Any]) -> str:
    return f'Done! I sent your email to {p["to"]} with the subject "{p["subject"]}".'


def _email_list(p: Mapping[str, Any]) -> str:
    messages = p.get("messages") or []
    if not messages:
        return "You have no matching emails right now."
    lines = [f"- {m.get('from') or 'Unknown sender'}: {m.get('subject')}" for m in messages]
    return "Here are your latest emails:\n" + "\n".join(lines)


def _event_created(p: Mapping[str, Any]) -> str:
    return (
        f"Your {p.get('title') or 'meeting'} is booked for {p['date']} at {p['time']} "
        f"({p.get('duration', 60)} minutes)."
    )


def _event_list(p: Mapping[str, Any]) -> str:
    events = p.get("events") or []
    when = f" on {p['date']}" if p.get("date") else " coming up"
    if not events:
        return f"You have no events{when}."
    lines = [f"- {e.get('start')}: {e.get('title')}" for e in events]
    return f"Here is what you have{when}:\n" + "\n".join(lines)


def _lead_created(p: Mapping[str, Any]) -> str:
    return f"I created a new lead for {p.get('company') or p.get('name') or 'the prospect'}."


def _contacts_found(p: Mapping[str, Any]) -> str:
    contacts = p.get("contacts") or []
    if not contacts:
        return f'I couldn\'t find any contact matching "{p.get("query")}".'
    lines = []
    for contact in contacts:
        details = ", ".join(
            str(v) for v in (contact.get("email"), contact.get("phone"), contact.get("company")) if v
        )
        name = contact.get("name") or contact.get("email") or "Unnamed contact"
        lines.append(f"- {name}" + (f" ({details})" if details else ""))
    return "Here is what I found:\n" + "\n".join(lines)


def _contact_created(p: Mapping[str, Any]) -> str:
    return f"I added {p.get('name') or p.get('email')} to your contacts."


def _order_placed(p: Mapping[str, Any]) -> str:
    reply = f"Your order for {p['quantity']} x {p['product']} has been placed (order #{p['order_id']})."
    if p.get("total"):
        reply += f" Total: {p['total']:.2f}."
    return reply


def _invoice_status(p: Mapping[str, Any]) -> str:
    state = str(p.get("payment_state") or "unknown").replace("_", " ")
    reply = f"Invoice {p['invoice_number']} is {state}."
    if p.get("amount_total") is not None:
        reply += f" Amount: {p['amount_total']}."
    return reply


def _ticket_created(p: Mapping[str, Any]) -> str:
    return f"I opened support ticket #{p['ticket_id']}. Our team will follow up soon."


def _erp_lead_created(p: Mapping[str, Any]) -> str:
    return "Thanks for your interest! Our team will get back to you shortly."


def _faq_answer(p: Mapping[str, Any]) -> str:
    return str(p["answer"])


SUCCESS_TEMPLATES: dict[IntentLabel, Callable[[Mapping[str, Any]], str]] = {
    IntentLabel.EMAIL_SEND: _email_sent,
    IntentLabel.EMAIL_READ: _email_list,
    IntentLabel.CALENDAR_SCHEDULE: _event_created,
    IntentLabel.CALENDAR_CHECK: _event_list,
    IntentLabel.CRM_CREATE_LEAD: _lead_created,
    IntentLabel.CRM_SEARCH_CONTACT: _contacts_found,
    IntentLabel.CRM_CREATE_CONTACT: _contact_created,
    IntentLabel.ERP_ORDER: _order_placed,
    IntentLabel.ERP_INVOICE_STATUS: _invoice_status,
    IntentLabel.ERP_CREATE_TICKET: _ticket_created,
    IntentLabel.ERP_CREATE_LEAD: _erp_lead_created,
    IntentLabel.FAQ: _faq_answer,
}


class ResponseComposer:
    """Render outcomes with fixed templates, optionally rephrased in the tenant's tone.

    ``compose`` always returns non-empty text: a failed phrasing pass falls
    back to the template and any error while rendering yields
    :data:`GENERIC_APOLOGY`.
    """

    def __init__(self, generator: ReplyGenerator | None = None) -> None:
        self._generator = generator

    def compose(
        self,
        outcome: DispatchOutcome,
        tone: BusinessTone | None = None,
        *,
        message: str | None = None,
        history: Sequence[Turn] = (),
    ) -> str:
        """Return the reply for ``outcome``.

        ``message`` and ``history`` reach the generator only for general chat,
        where it answers the customer instead of rephrasing a template; without
        a generator that reply is :data:`GREETING`.
        """

        try:
            draft = self.render(outcome)
        except Exception:
            logger.exception("Failed to render reply for outcome %r", outcome)
            return GENERIC_APOLOGY
        if not draft or not draft.strip():
            return GENERIC_APOLOGY
        if self._generator is None:
            return draft
        chat: dict[str, Any] = {}
        if (
            getattr(outcome, "kind", None) is OutcomeKind.CONVERSATIONAL
            and outcome.intent is IntentLabel.GENERAL
        ):
            chat = {"message": message, "history": tuple(history)}
        try:
            phrased = self._generator.rephrase(draft, tone, outcome, **chat)
        except Exception as exc:
            logger.warning("Reply phrasing failed, using template: %s", exc)
            return draft
        if isinstance(phrased, str) and phrased.strip():
            return phrased.strip()
        return draft

    def render(self, outcome: DispatchOutcome) -> str:
        """Return the deterministic template text for ``outcome``."""

        kind = getattr(outcome, "kind", None)
        if kind is OutcomeKind.SUCCESS:
            template = SUCCESS_TEMPLATES.get(outcome.intent)
            return template(outcome.payload) if template else GENERIC_APOLOGY
        if kind is OutcomeKind.CONVERSATIONAL:
            return FAQ_MISS if outcome.intent is IntentLabel.FAQ else GREETING
        if kind is OutcomeKind.RECOVERABLE:
            return self._recoverable(outcome)
        if kind is OutcomeKind.FATAL:
            return self._fatal(outcome)
        return GENERIC_APOLOGY

    def _recoverable(self, outcome: DispatchOutcome) -> str:
        provider = _provider_name(outcome)
        reason = outcome.reason
        if reason is FailureReason.INCOMPLETE_SLOTS:
            needed = [FIELD_LABELS.get(f, f.replace("_", " ")) for f in outcome.missing_fields]
            action = ACTIONS.get(outcome.intent, "do that")
            reply = f"To {action}, I still need {_join(needed)}."
            if outcome.intent is IntentLabel.EMAIL_SEND:
                reply += "\n" + EMAIL_FORMAT_HINT
            return reply
        if reason is FailureReason.NO_INTEGRATION:
            return (
                f"{provider} isn't connected for this business yet. Please ask an "
                f"administrator to configure the {provider} integration."
            )
        if reason is FailureReason.REFRESH_FAILED:
            return (
                f"I couldn't renew access to {provider}. Please reconnect the "
                "integration and try again."
            )
        if reason is FailureReason.CONFIGURATION:
            return (
                f"{provider} isn't set up for this request yet. Please ask an "
                "administrator to check the integration settings."
            )
        if reason is FailureReason.INVALID_INPUT:
            detail = outcome.detail or ""
            if detail and not _RAW_PROVIDER_DETAIL.search(detail):
                return f"I couldn't complete that: {detail.rstrip('.')}. Please check the details and try again."
            return "I couldn't complete that request. Please check the details and try again."
        return GENERIC_APOLOGY

    def _fatal(self, outcome: DispatchOutcome) -> str:
        provider = _provider_name(outcome)
        if outcome.reason is FailureReason.PROVIDER_UNAVAILABLE:
            return f"{provider} isn't responding right now. Please try again in a few minutes."
        if outcome.reason is FailureReason.UNCONFIRMED:
            action = ACTIONS.get(outcome.intent, "do that")
            return (
                f"{provider} didn't confirm in time whether I managed to {action}. "
                "Please check before asking me again."
            )
        if outcome.reason is FailureReason.REFRESH_FAILED:
            return (
                f"I couldn't access {provider} with the saved credentials. An "
                "administrator needs to reconnect the integration."
            )
        return GENERIC_APOLOGY


class OpenAIReplyGenerator:
    """Rephrase template replies with an OpenAI chat completion.

    General chat is answered from the customer's message and the last
    ``history_window`` turns, with the template draft in the system prompt.
    """

    def __init__(
        self,
        client: Any,
        *,
        model: str,
        timeout: float,
        prompt_store: TonePromptStore | None = None,
        history_window: int = 6,
    ) -> None:
        self._client = client
        self._model = model
        self._timeout = timeout
        self._prompts = prompt_store or TonePromptStore()
        self._history_window = history_window

    @classmethod
    def from_env(cls, settings: DispatchSettings) -> "OpenAIReplyGenerator | None":
        if not os.getenv("OPENAI_API_KEY"):
            return None
        client = OpenAI(timeout=settings.classifier_timeout_seconds, max_retries=0)
        return cls(
            client,
            model=settings.openai_model,
            timeout=settings.classifier_timeout_seconds,
            history_window=settings.history_window,
        )

    def rephrase(
        self,
        draft: str,
        tone: BusinessTone | None,
        outcome: DispatchOutcome,
        *,
        message: str | None = None,
        history: Sequence[Turn] = (),
    ) -> str:
        system = self._prompts.resolve(tone)
        if message and message.strip():
            messages = [
                {
                    "role": "system",
                    "content": f"{system}\n\n{GENERAL_CHAT_PROMPT}\n\nDraft reply:\n{draft}",
                }
            ]
            recent = list(history)[-self._history_window :] if self._history_window > 0 else []
            for turn in recent:
                role = "assistant" if turn.role == "assistant" else "user"
                messages.append({"role": role, "content": turn.text})
            messages.append({"role": "user", "content": message.strip()})
        else:
            messages = [
                {"role": "system", "content": system},
                {"role": "user", "content": f"Draft reply:\n{draft}"},
            ]
        completion = self._client.chat.completions.create(
            model=self._model,
            messages=messages,
            temperature=0.3,
            timeout=self._timeout,
        )
        return completion.choices[0].message.content or ""


__all__ = [
    "GENERAL_CHAT_PROMPT",
    "GENERIC_APOLOGY",
    "GREETING",
    "OpenAIReplyGenerator",
    "ReplyGenerator",
    "ResponseComposer",
]
