"""Runtime helpers for storing tenant-aware processing context.

This module exposes a small API around a :class:`contextvars.ContextVar`
that keeps track of the tenant whose message is being processed. The message
pipeline populates the context by calling ``set_tenant_context`` and obtains a
token that must be passed back to ``reset_tenant_context`` once the reply has
been composed. Other layers (repositories, provider handlers, log statements)
can call ``get_current_tenant_id`` to discover which tenant is being served
without threading the identifier through every call.
"""

from __future__ import annotations

from contextvars import ContextVar, Token
from typing import TypedDict

__all__ = [
    "TenantRuntimeContext",
    "get_current_requester",
    "get_current_tenant_id",
    "reset_tenant_context",
    "set_tenant_context",
]


class TenantRuntimeContext(TypedDict):
    """Values stored in the tenant context while a message is processed."""

    tenant_id: str
    requester: str | None


_tenant_context: ContextVar[TenantRuntimeContext | None] = ContextVar(
    "tenant_runtime_context", default=None
)


def set_tenant_context(
    tenant_id: str, requester: str | None = None
) -> Token[TenantRuntimeContext | None]:
    """Persist the tenant metadata in the context variable.

    Args:
        tenant_id: Identifier of the business the message was sent to.
        requester: Channel identity of the end customer (for example a phone
            number), when known.

    Returns:
        ``Token`` returned by :meth:`contextvars.ContextVar.set`. Callers must
        later pass this token to :func:`reset_tenant_context` to restore the
        previous value.
    """

    return _tenant_context.set({"tenant_id": tenant_id, "requester": requester})


def reset_tenant_context(token: Token[TenantRuntimeContext | None]) -> None:
    """Restore the tenant context to the state prior to ``set_tenant_context``."""

    _tenant_context.reset(token)


def get_current_tenant_id() -> str | None:
    """Return the tenant identifier for the current execution context.

    Returns ``None`` when no message is being processed in this context.
    """

    context = _tenant_context.get()
    if context is None:
        return None
    return context["tenant_id"]


def get_current_requester() -> str | None:
    context = _tenant_context.get()
    if context is None:
        return None
    return context["requester"]
