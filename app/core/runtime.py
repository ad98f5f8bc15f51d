"""Process-wide wiring of stores and the message pipeline for the HTTP app."""

from __future__ import annotations

from functools import lru_cache

from sqlalchemy.orm import Session, sessionmaker

from ..businesses.directory import SqlTenantDirectory, TenantDirectory
from ..conversations.history import InMemoryHistoryStore
from ..dispatch.pipeline import MessagePipeline, create_pipeline
from ..integrations.credentials import CredentialStore, SqlCredentialStore
from ..models.session import create_schema, get_sessionmaker
from .settings import get_dispatch_settings


@lru_cache(maxsize=1)
def get_session_factory() -> sessionmaker[Session]:
    """Return the session factory for ``DATABASE_URL``, creating missing tables."""

    factory = get_sessionmaker(pool_pre_ping=True)
    create_schema(factory)
    return factory


@lru_cache(maxsize=1)
def get_pipeline() -> MessagePipeline:
    return create_pipeline(get_dispatch_settings(), session_factory=get_session_factory())


def get_credential_store() -> CredentialStore:
    return SqlCredentialStore(get_session_factory())


def get_tenant_directory() -> TenantDirectory:
    return SqlTenantDirectory(get_session_factory())


@lru_cache(maxsize=1)
def get_history_store() -> InMemoryHistoryStore:
    return InMemoryHistoryStore(max_turns=max(get_dispatch_settings().history_window * 2, 2))


def reset_runtime_cache() -> None:
    """Drop cached factories; used by tests that switch databases."""

    get_pipeline.cache_clear()
    get_history_store.cache_clear()
    get_session_factory.cache_clear()
