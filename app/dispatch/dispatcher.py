"""Route resolved intents to provider handlers and classify the result."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any
from uuid import UUID

from ..integrations.credentials import Credential, Provider
from ..integrations.errors import (
    ConfigurationError,
    InputValidationError,
    NoIntegration,
    ProviderAuthError,
    ProviderTimeoutError,
    RefreshFailed,
)
from ..integrations.handlers import HandlerContext, ProviderHandler
from ..integrations.lifecycle import CredentialManager, RefreshBudget
from ..integrations.retry import RetryPolicy, is_transient_error
from ..intents.slots import validate_slots
from ..intents.taxonomy import Intent, IntentLabel
from .faq import FaqRepository, best_match
from .outcomes import DispatchOutcome, FailureReason

logger = logging.getLogger(__name__)

#: Static routing table: each dispatchable intent maps to one provider operation.
ROUTES: dict[IntentLabel, tuple[Provider, str]] = {
    IntentLabel.EMAIL_SEND: (Provider.EMAIL_CALENDAR, "send_email"),
    IntentLabel.EMAIL_READ: (Provider.EMAIL_CALENDAR, "read_email"),
    IntentLabel.CALENDAR_SCHEDULE: (Provider.EMAIL_CALENDAR, "create_event"),
    IntentLabel.CALENDAR_CHECK: (Provider.EMAIL_CALENDAR, "list_events"),
    IntentLabel.CRM_CREATE_LEAD: (Provider.CRM_B, "create_lead"),
    IntentLabel.CRM_SEARCH_CONTACT: (Provider.CRM_A, "search_contact"),
    IntentLabel.CRM_CREATE_CONTACT: (Provider.CRM_A, "create_contact"),
    IntentLabel.ERP_ORDER: (Provider.ERP, "create_order"),
    IntentLabel.ERP_INVOICE_STATUS: (Provider.ERP, "invoice_status"),
    IntentLabel.ERP_CREATE_TICKET: (Provider.ERP, "create_ticket"),
    IntentLabel.ERP_CREATE_LEAD: (Provider.ERP, "create_lead"),
}


class Dispatcher:
    """Execute an intent for a tenant and return a :class:`DispatchOutcome`.

    The dispatcher never raises for provider or credential problems: missing
    slots, missing integrations, tenant-side configuration problems and
    rejected input become recoverable outcomes; outages that survive the retry
    policy and unexpected errors become fatal outcomes for this request only.
    """

    def __init__(
        self,
        credentials: CredentialManager,
        handlers: Mapping[Provider, ProviderHandler],
        *,
        retry_policy: RetryPolicy | None = None,
        faq_repository: FaqRepository | None = None,
        routes: Mapping[IntentLabel, tuple[Provider, str]] | None = None,
    ) -> None:
        self._credentials = credentials
        self._handlers = dict(handlers)
        self._retry = retry_policy or RetryPolicy(stage="provider_call")
        self._faqs = faq_repository
        self._routes = dict(routes) if routes is not None else dict(ROUTES)

    def dispatch(
        self,
        intent: Intent | IntentLabel,
        slots: Mapping[str, Any],
        tenant_id: UUID,
        *,
        requester: str | None = None,
        context: HandlerContext | None = None,
    ) -> DispatchOutcome:
        label = intent.label if isinstance(intent, Intent) else IntentLabel(intent)
        context = context or HandlerContext(tenant_id=tenant_id, requester=requester)

        if label is IntentLabel.FAQ:
            return self._answer_faq(tenant_id, slots, context)
        route = self._routes.get(label)
        if route is None:
            return DispatchOutcome.conversational(label)
        provider, operation = route

        incomplete = validate_slots(label, slots)
        if incomplete is not None:
            return DispatchOutcome.recoverable(
                label,
                FailureReason.INCOMPLETE_SLOTS,
                provider=provider.value,
                missing_fields=incomplete.missing_fields,
            )

        handler = self._handlers.get(provider)
        if handler is None:
            logger.error("No handler registered for provider %s", provider.value)
            return DispatchOutcome.fatal(
                label, FailureReason.INTERNAL, provider=provider.value
            )

        budget = RefreshBudget()
        try:
            payload = self._invoke(
                handler, provider, operation, dict(slots), tenant_id, context, budget
            )
        except NoIntegration:
            return DispatchOutcome.recoverable(
                label, FailureReason.NO_INTEGRATION, provider=provider.value
            )
        except RefreshFailed as exc:
            if exc.exhausted or budget.failures > 1:
                logger.warning(
                    "Repeated token refresh failure for tenant %s provider %s",
                    tenant_id,
                    provider.value,
                )
                return DispatchOutcome.fatal(
                    label, FailureReason.REFRESH_FAILED, provider=provider.value, detail=str(exc)
                )
            return DispatchOutcome.recoverable(
                label, FailureReason.REFRESH_FAILED, provider=provider.value, detail=str(exc)
            )
        except (ConfigurationError, ProviderAuthError) as exc:
            return DispatchOutcome.recoverable(
                label, FailureReason.CONFIGURATION, provider=provider.value, detail=str(exc)
            )
        except InputValidationError as exc:
            return DispatchOutcome.recoverable(
                label, FailureReason.INVALID_INPUT, provider=provider.value, detail=str(exc)
            )
        except ProviderTimeoutError as exc:
            logger.warning(
                "%s did not confirm %s for tenant %s; not repeating it: %s",
                provider.value,
                operation,
                tenant_id,
                exc,
            )
            return DispatchOutcome.fatal(
                label, FailureReason.UNCONFIRMED, provider=provider.value, detail=str(exc)
            )
        except Exception as exc:
            if is_transient_error(exc):
                logger.warning(
                    "%s unavailable for tenant %s after retries: %s",
                    provider.value,
                    tenant_id,
                    exc,
                )
                return DispatchOutcome.fatal(
                    label,
                    FailureReason.PROVIDER_UNAVAILABLE,
                    provider=provider.value,
                    detail=str(exc),
                )
            logger.exception(
                "Unexpected error dispatching %s for tenant %s", label.value, tenant_id
            )
            return DispatchOutcome.fatal(
                label, FailureReason.INTERNAL, provider=provider.value
            )

        logger.info(
            "Dispatched %s via %s for tenant %s", label.value, provider.value, tenant_id
        )
        return DispatchOutcome.success(label, payload, provider=provider.value)

    def _invoke(
        self,
        handler: ProviderHandler,
        provider: Provider,
        operation: str,
        slots: dict[str, Any],
        tenant_id: UUID,
        context: HandlerContext,
        budget: RefreshBudget,
    ) -> dict[str, Any]:
        credential = self._credentials.get_valid_credential(
            tenant_id, provider, budget=budget
        )
        try:
            return self._call(handler, operation, credential, slots, context)
        except ProviderAuthError:
            if not provider.uses_oauth:
                raise
            logger.info(
                "%s rejected the access token for tenant %s; refreshing",
                provider.value,
                tenant_id,
            )
        refreshed = self._credentials.get_valid_credential(
            tenant_id, provider, budget=budget, rejected_token=credential.access_token
        )
        return self._call(handler, operation, refreshed, slots, context)

    def _call(
        self,
        handler: ProviderHandler,
        operation: str,
        credential: Credential,
        slots: dict[str, Any],
        context: HandlerContext,
    ) -> dict[str, Any]:
        return self._retry.call(
            lambda: handler.execute(operation, credential, slots, context)
        )

    def _answer_faq(
        self, tenant_id: UUID, slots: Mapping[str, Any], context: HandlerContext
    ) -> DispatchOutcome:
        question = str(slots.get("question") or context.message or "")
        if self._faqs is None or not question.strip():
            return DispatchOutcome.conversational(IntentLabel.FAQ)
        try:
            entries = self._retry.call(lambda: self._faqs.list_entries(tenant_id))
        except Exception:
            logger.exception("Failed to load FAQ entries for tenant %s", tenant_id)
            return DispatchOutcome.fatal(IntentLabel.FAQ, FailureReason.INTERNAL)
        match = best_match(question, entries)
        if match is None:
            return DispatchOutcome.conversational(IntentLabel.FAQ)
        entry, score = match
        return DispatchOutcome.success(
            IntentLabel.FAQ,
            {"question": entry.question, "answer": entry.answer, "score": round(score, 3)},
        )


__all__ = ["Dispatcher", "ROUTES"]
