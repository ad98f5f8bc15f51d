"""Tenant-related SQLAlchemy models.

The models defined here represent the business tenants served by the
assistant, the credentials they connected for their external systems and the
FAQ entries used to answer common questions.
"""

from __future__ import annotations

import datetime as dt
import uuid
from typing import Any, List

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import Base


def _utcnow() -> dt.datetime:
    """Return the current UTC timestamp with timezone awareness."""

    return dt.datetime.now(dt.timezone.utc)


class Business(Base):
    """Represents a business tenant.

    Attributes:
        id: Primary key generated via ``gen_random_uuid`` in Postgres.
        name: Display name used in replies.
        status: ``active`` or ``inactive``; inactive tenants are never served.
        timezone: IANA timezone used to resolve relative dates.
        tone_name: Short label of the reply tone (``friendly``, ``formal``...).
        tone_instructions: Free-text instructions for the reply phrasing pass.
    """

    __tablename__ = "businesses"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    name: Mapped[str] = mapped_column(String(length=255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(length=32),
        nullable=False,
        default="active",
        server_default=text("'active'"),
    )
    timezone: Mapped[str] = mapped_column(
        String(length=64),
        nullable=False,
        default="UTC",
        server_default=text("'UTC'"),
    )
    tone_name: Mapped[str | None] = mapped_column(String(length=64))
    tone_instructions: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    credentials: Mapped[List["IntegrationCredentialRecord"]] = relationship(
        back_populates="business",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    faqs: Mapped[List["BusinessFaq"]] = relationship(
        back_populates="business",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class IntegrationCredentialRecord(Base):
    """OAuth tokens or API keys connecting a business to one provider."""

    __tablename__ = "integration_credentials"
    __table_args__ = (
        Index(
            "ix_integration_credentials_tenant_provider",
            "tenant_id",
            "provider",
            unique=True,
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
    )
    provider: Mapped[str] = mapped_column(String(length=32), nullable=False)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text)
    expires_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True))
    account: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    business: Mapped[Business] = relationship(back_populates="credentials")


class BusinessFaq(Base):
    __tablename__ = "business_faqs"
    __table_args__ = (Index("ix_business_faqs_tenant_id", "tenant_id"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
    )
    question: Mapped[str] = mapped_column(Text, nullable=False)
    answer: Mapped[str] = mapped_column(Text, nullable=False)

    business: Mapped[Business] = relationship(back_populates="faqs")
