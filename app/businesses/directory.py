"""Lookup of the business tenants served by the assistant."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from ..models import Business

ACTIVE = "active"


@dataclass(frozen=True)
class BusinessTone:
    """How a tenant wants replies to sound."""

    name: str = "friendly"
    instructions: str | None = None
    business_name: str | None = None


@dataclass(frozen=True)
class BusinessProfile:
    """Read-only view of a tenant used while handling a message."""

    id: UUID
    name: str
    status: str = ACTIVE
    timezone: str = "UTC"
    tone: BusinessTone = field(default_factory=BusinessTone)

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE

    @classmethod
    def from_record(cls, record: Business) -> "BusinessProfile":
        return cls(
            id=record.id,
            name=record.name,
            status=record.status,
            timezone=record.timezone or "UTC",
            tone=BusinessTone(
                name=record.tone_name or "friendly",
                instructions=record.tone_instructions,
                business_name=record.name,
            ),
        )


class TenantDirectory(Protocol):
    def get(self, tenant_id: UUID) -> BusinessProfile | None:
        ...


class InMemoryTenantDirectory:
    def __init__(self, profiles: list[BusinessProfile] | None = None) -> None:
        self._profiles = {p.id: p for p in profiles or []}

    def add(self, profile: BusinessProfile) -> BusinessProfile:
        self._profiles[profile.id] = profile
        return profile

    def get(self, tenant_id: UUID) -> BusinessProfile | None:
        return self._profiles.get(tenant_id)


class SqlTenantDirectory:
    """Load tenant profiles from the ``businesses`` table."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def get(self, tenant_id: UUID) -> BusinessProfile | None:
        with self._session_factory() as session:
            record = session.get(Business, tenant_id)
            return BusinessProfile.from_record(record) if record is not None else None


__all__ = [
    "BusinessProfile",
    "BusinessTone",
    "InMemoryTenantDirectory",
    "SqlTenantDirectory",
    "TenantDirectory",
]
