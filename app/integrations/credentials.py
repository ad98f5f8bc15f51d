"""Credential records and their per-tenant stores."""

from __future__ import annotations

import datetime as dt
import enum
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from ..core.db import apply_tenant_settings
from ..models import IntegrationCredentialRecord


class Provider(str, enum.Enum):
    """External systems a tenant can connect."""

    EMAIL_CALENDAR = "email-calendar"
    CRM_A = "crm-a"
    CRM_B = "crm-b"
    ERP = "erp"

    @property
    def uses_oauth(self) -> bool:
        # The ERP is reached with a long-lived API key.
        return self is not Provider.ERP

    @classmethod
    def parse(cls, value: str | Provider) -> Provider:
        if isinstance(value, Provider):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError as exc:
            raise KeyError(f"Unknown provider '{value}'") from exc


def as_utc(value: dt.datetime | None) -> dt.datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


@dataclass(frozen=True)
class Credential:
    """Access material for one (tenant, provider) pair."""

    tenant_id: UUID
    provider: Provider
    access_token: str
    refresh_token: str | None = None
    expires_at: dt.datetime | None = None
    account: Mapping[str, Any] = field(default_factory=dict)

    def expires_within(self, now: dt.datetime, skew: dt.timedelta) -> bool:
        """Return ``True`` when the token is expired or will be within ``skew``."""

        expires_at = as_utc(self.expires_at)
        if expires_at is None:
            return False
        return now + skew >= expires_at

    def summary(self) -> dict[str, Any]:
        """Token-free view safe to return from the API or write to logs."""

        return {
            "provider": self.provider.value,
            "expires_at": as_utc(self.expires_at),
            "has_refresh_token": bool(self.refresh_token),
            "account": dict(self.account),
        }


class CredentialStore(Protocol):
    """Persistence interface for integration credentials."""

    def get(self, tenant_id: UUID, provider: Provider) -> Credential | None:
        ...

    def upsert(self, credential: Credential) -> Credential:
        ...

    def delete(self, tenant_id: UUID, provider: Provider) -> bool:
        ...

    def list_for_tenant(self, tenant_id: UUID) -> list[Credential]:
        ...


class InMemoryCredentialStore:
    """Thread-safe store used in tests and single-process deployments."""

    def __init__(self, credentials: list[Credential] | None = None) -> None:
        self._items: dict[tuple[UUID, Provider], Credential] = {}
        self._lock = threading.Lock()
        for credential in credentials or []:
            self.upsert(credential)

    def get(self, tenant_id: UUID, provider: Provider) -> Credential | None:
        with self._lock:
            return self._items.get((tenant_id, Provider.parse(provider)))

    def upsert(self, credential: Credential) -> Credential:
        with self._lock:
            self._items[(credential.tenant_id, credential.provider)] = credential
        return credential

    def delete(self, tenant_id: UUID, provider: Provider) -> bool:
        with self._lock:
            return self._items.pop((tenant_id, Provider.parse(provider)), None) is not None

    def list_for_tenant(self, tenant_id: UUID) -> list[Credential]:
        with self._lock:
            found = [c for (tid, _), c in self._items.items() if tid == tenant_id]
        return sorted(found, key=lambda c: c.provider.value)


class SqlCredentialStore:
    """Credential store backed by the ``integration_credentials`` table."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _to_credential(record: IntegrationCredentialRecord) -> Credential:
        return Credential(
            tenant_id=record.tenant_id,
            provider=Provider.parse(record.provider),
            access_token=record.access_token,
            refresh_token=record.refresh_token,
            expires_at=as_utc(record.expires_at),
            account=dict(record.account or {}),
        )

    @staticmethod
    def _select(tenant_id: UUID, provider: Provider):
        return select(IntegrationCredentialRecord).where(
            IntegrationCredentialRecord.tenant_id == tenant_id,
            IntegrationCredentialRecord.provider == Provider.parse(provider).value,
        )

    def get(self, tenant_id: UUID, provider: Provider) -> Credential | None:
        with self._session_factory() as session:
            apply_tenant_settings(session, tenant_id)
            record = session.scalars(self._select(tenant_id, provider)).first()
            return self._to_credential(record) if record is not None else None

    def upsert(self, credential: Credential) -> Credential:
        with self._session_factory.begin() as session:
            apply_tenant_settings(session, credential.tenant_id)
            record = session.scalars(
                self._select(credential.tenant_id, credential.provider).with_for_update()
            ).first()
            if record is None:
                record = IntegrationCredentialRecord(
                    tenant_id=credential.tenant_id,
                    provider=credential.provider.value,
                )
                session.add(record)
            record.access_token = credential.access_token
            record.refresh_token = credential.refresh_token
            record.expires_at = as_utc(credential.expires_at)
            record.account = dict(credential.account)
        return credential

    def delete(self, tenant_id: UUID, provider: Provider) -> bool:
        with self._session_factory.begin() as session:
            apply_tenant_settings(session, tenant_id)
            result = session.execute(
                delete(IntegrationCredentialRecord).where(
                    IntegrationCredentialRecord.tenant_id == tenant_id,
                    IntegrationCredentialRecord.provider == Provider.parse(provider).value,
                )
            )
            return bool(result.rowcount)

    def list_for_tenant(self, tenant_id: UUID) -> list[Credential]:
        with self._session_factory() as session:
            apply_tenant_settings(session, tenant_id)
            records = session.scalars(
                select(IntegrationCredentialRecord)
                .where(IntegrationCredentialRecord.tenant_id == tenant_id)
                .order_by(IntegrationCredentialRecord.provider)
            ).all()
            return [self._to_credential(record) for record in records]


__all__ = [
    "Credential",
    "CredentialStore",
    "InMemoryCredentialStore",
    "Provider",
    "SqlCredentialStore",
    "as_utc",
]
