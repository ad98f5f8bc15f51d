"""Per-message flow: resolve the intent, dispatch it and compose the reply."""

from __future__ import annotations

import datetime as dt
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import requests
from sqlalchemy.orm import Session, sessionmaker

from ..businesses.directory import BusinessProfile, SqlTenantDirectory, TenantDirectory
from ..conversations.models import Turn
from ..core.settings import DispatchSettings, get_dispatch_settings
from ..core.tenant_context import reset_tenant_context, set_tenant_context
from ..integrations.credentials import CredentialStore, SqlCredentialStore
from ..integrations.errors import InputValidationError, IntegrationError
from ..integrations.handlers import HandlerContext, build_handlers
from ..integrations.lifecycle import CredentialManager
from ..integrations.oauth import build_refreshers
from ..integrations.retry import RetryPolicy
from ..intents.cache import IntentCache
from ..intents.classifier import (
    ClassificationBackend,
    IntentClassifierAdapter,
    OpenAIClassificationBackend,
)
from ..intents.resolver import IntentResolver
from ..intents.taxonomy import Intent, IntentLabel
from .composer import OpenAIReplyGenerator, ReplyGenerator, ResponseComposer
from .dispatcher import Dispatcher
from .faq import FaqRepository, SqlFaqRepository
from .outcomes import DispatchOutcome, FailureReason

logger = logging.getLogger(__name__)


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class TenantUnavailableError(IntegrationError):
    """Raised when a message targets an unknown or inactive tenant."""

    def __init__(self, tenant_id: UUID) -> None:
        super().__init__(f"Tenant {tenant_id} is unknown or inactive")
        self.tenant_id = tenant_id


@dataclass(frozen=True)
class PipelineResult:
    reply: str
    intent: Intent | None
    outcome: DispatchOutcome


class MessagePipeline:
    """Handle one inbound message for one tenant.

    Resolution, dispatch and composition run sequentially; every failure past
    the tenant lookup ends up as a :class:`DispatchOutcome` so the caller always
    receives a reply.
    """

    def __init__(
        self,
        resolver: IntentResolver,
        dispatcher: Dispatcher,
        composer: ResponseComposer,
        directory: TenantDirectory,
        *,
        default_timezone: str = "UTC",
        clock: Callable[[], dt.datetime] = _utcnow,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._resolver = resolver
        self._dispatcher = dispatcher
        self._composer = composer
        self._directory = directory
        self._default_timezone = default_timezone
        self._clock = clock
        self._retry = retry_policy or RetryPolicy(stage="tenant_lookup")

    def handle(
        self,
        tenant_id: UUID,
        text: str,
        history: Sequence[Turn] = (),
        *,
        requester: str | None = None,
    ) -> PipelineResult:
        profile = self._retry.call(lambda: self._directory.get(tenant_id))
        if profile is None or not profile.is_active:
            raise TenantUnavailableError(tenant_id)

        timezone = self._timezone_name(profile)
        today = self._clock().astimezone(ZoneInfo(timezone)).date()
        token = set_tenant_context(str(tenant_id), requester)
        try:
            intent, outcome = self._process(
                profile, text, history, requester, timezone, today
            )
        finally:
            reset_tenant_context(token)

        reply = self._composer.compose(
            outcome, profile.tone, message=text.strip(), history=history
        )
        logger.info(
            "Handled message for tenant %s: intent=%s outcome=%s reason=%s",
            tenant_id,
            outcome.intent.value,
            outcome.kind.value,
            outcome.reason.value if outcome.reason else None,
        )
        return PipelineResult(reply=reply, intent=intent, outcome=outcome)

    def _process(
        self,
        profile: BusinessProfile,
        text: str,
        history: Sequence[Turn],
        requester: str | None,
        timezone: str,
        today: dt.date,
    ) -> tuple[Intent | None, DispatchOutcome]:
        try:
            intent = self._resolver.resolve(
                text, history, profile.id, today, conversation=requester
            )
        except InputValidationError as exc:
            return None, DispatchOutcome.recoverable(
                IntentLabel.GENERAL, FailureReason.INVALID_INPUT, detail=str(exc)
            )
        except Exception:
            logger.exception("Intent resolution failed for tenant %s", profile.id)
            return None, DispatchOutcome.fatal(IntentLabel.GENERAL, FailureReason.INTERNAL)

        logger.info(
            "Resolved intent %s (%.2f, %s) for tenant %s",
            intent.label.value,
            intent.confidence,
            intent.source,
            profile.id,
        )
        context = HandlerContext(
            tenant_id=profile.id,
            message=text.strip(),
            requester=requester,
            timezone=timezone,
            today=today,
        )
        outcome = self._dispatcher.dispatch(
            intent, intent.slots, profile.id, context=context
        )
        return intent, outcome

    def _timezone_name(self, profile: BusinessProfile) -> str:
        for name in (profile.timezone, self._default_timezone):
            try:
                ZoneInfo(name)
            except (ZoneInfoNotFoundError, ValueError):
                logger.warning("Unknown timezone %r for tenant %s", name, profile.id)
                continue
            return name
        return "UTC"


def create_pipeline(
    settings: DispatchSettings | None = None,
    *,
    session_factory: sessionmaker[Session] | None = None,
    credential_store: CredentialStore | None = None,
    directory: TenantDirectory | None = None,
    faq_repository: FaqRepository | None = None,
    classifier_backend: ClassificationBackend | None = None,
    reply_generator: ReplyGenerator | None = None,
    http_session: requests.Session | None = None,
    sleep_fn: Callable[[float], Any] = time.sleep,
) -> MessagePipeline:
    """Wire a :class:`MessagePipeline` from settings and storage.

    Stores default to their SQLAlchemy implementations on ``session_factory``;
    the OpenAI classifier and reply generator are used when ``OPENAI_API_KEY``
    is set and no explicit replacement is given.
    """

    settings = settings or get_dispatch_settings()
    if session_factory is not None:
        credential_store = credential_store or SqlCredentialStore(session_factory)
        directory = directory or SqlTenantDirectory(session_factory)
        faq_repository = faq_repository or SqlFaqRepository(session_factory)
    if credential_store is None or directory is None:
        raise RuntimeError("create_pipeline needs a session factory or explicit stores")

    retry = RetryPolicy(
        stage="integration",
        max_attempts=settings.retry_max_attempts,
        base_delay=settings.retry_base_delay_seconds,
        max_delay=settings.retry_max_delay_seconds,
        sleep_fn=sleep_fn,
    )
    backend = classifier_backend or OpenAIClassificationBackend.from_env(settings)
    resolver = IntentResolver(
        IntentClassifierAdapter(backend, history_window=settings.history_window),
        confidence_threshold=settings.confidence_threshold,
        cache=IntentCache(settings.intent_cache_ttl_seconds),
        default_duration=settings.meeting_duration_minutes,
    )
    manager = CredentialManager(
        credential_store,
        build_refreshers(settings, session=http_session),
        retry_policy=retry,
        refresh_skew=dt.timedelta(seconds=settings.refresh_skew_seconds),
    )
    dispatcher = Dispatcher(
        manager,
        build_handlers(session=http_session, timeout=settings.http_timeout_seconds),
        retry_policy=retry,
        faq_repository=faq_repository,
    )
    composer = ResponseComposer(reply_generator or OpenAIReplyGenerator.from_env(settings))
    return MessagePipeline(
        resolver,
        dispatcher,
        composer,
        directory,
        default_timezone=settings.default_timezone,
        retry_policy=retry,
    )


__all__ = [
    "MessagePipeline",
    "PipelineResult",
    "TenantUnavailableError",
    "create_pipeline",
]
