"""Database helpers for tenant-aware SQLAlchemy sessions."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.orm import Session

from .tenant_context import get_current_tenant_id

logger = logging.getLogger(__name__)


def apply_tenant_settings(session: Session, tenant_id: str | UUID | None = None) -> None:
    """Ensure ``app.tenant_id`` is configured for the session's connection.

    Only PostgreSQL sessions are affected; row level security policies read the
    setting. Other dialects (SQLite in tests) are left untouched.
    """

    effective = tenant_id or get_current_tenant_id()
    if effective is None:
        raise RuntimeError("tenant_id is required for tenant-scoped operations")

    tenant_value = str(effective)
    if not tenant_value:
        raise RuntimeError("tenant_id cannot be empty")

    if session.get_bind().dialect.name != "postgresql":
        return
    try:
        session.execute(
            text("SELECT set_config('app.tenant_id', :tenant_id, false)"),
            {"tenant_id": tenant_value},
        )
    except Exception:  # pragma: no cover - defensive logging
        logger.exception("Failed to apply tenant settings to session")
        raise
