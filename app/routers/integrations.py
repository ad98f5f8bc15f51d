"""Integration management API: connect, inspect and remove tenant credentials."""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
from uuid import UUID

from fastapi import APIRouter, HTTPException, Response, status
from pydantic import BaseModel, Field

from ..core import runtime
from ..integrations.credentials import Credential, CredentialStore, Provider

router = APIRouter(prefix="/api/tenants/{tenant_id}/integrations", tags=["integrations"])


class CredentialIn(BaseModel):
    access_token: str = Field(min_length=1)
    refresh_token: str | None = None
    expires_at: dt.datetime | None = None
    account: dict[str, Any] = Field(default_factory=dict)


class CredentialOut(BaseModel):
    provider: str
    expires_at: dt.datetime | None = None
    has_refresh_token: bool = False
    account: dict[str, Any] = Field(default_factory=dict)


class CredentialList(BaseModel):
    items: list[CredentialOut]
    total: int


@contextmanager
def _store_context(tenant_id: UUID) -> Iterator[CredentialStore]:
    if runtime.get_tenant_directory().get(tenant_id) is None:
        raise HTTPException(status_code=404, detail=f"Tenant {tenant_id} not found")
    yield runtime.get_credential_store()


def _parse_provider(provider: str) -> Provider:
    try:
        return Provider.parse(provider)
    except KeyError as exc:
        raise HTTPException(status_code=400, detail=f"Unknown provider '{provider}'") from exc


@router.get("", response_model=CredentialList)
def list_integrations(tenant_id: UUID) -> CredentialList:
    with _store_context(tenant_id) as store:
        items = [CredentialOut(**c.summary()) for c in store.list_for_tenant(tenant_id)]
    return CredentialList(items=items, total=len(items))


@router.get("/{provider}", response_model=CredentialOut)
def get_integration(tenant_id: UUID, provider: str) -> CredentialOut:
    key = _parse_provider(provider)
    with _store_context(tenant_id) as store:
        credential = store.get(tenant_id, key)
    if credential is None:
        raise HTTPException(status_code=404, detail=f"{key.value} is not connected")
    return CredentialOut(**credential.summary())


@router.put("/{provider}", response_model=CredentialOut)
def upsert_integration(tenant_id: UUID, provider: str, payload: CredentialIn) -> CredentialOut:
    """Store (or replace) the tenant's credential; tokens are never echoed back."""

    key = _parse_provider(provider)
    with _store_context(tenant_id) as store:
        saved = store.upsert(
            Credential(
                tenant_id=tenant_id,
                provider=key,
                access_token=payload.access_token,
                refresh_token=payload.refresh_token,
                expires_at=payload.expires_at,
                account=dict(payload.account),
            )
        )
    return CredentialOut(**saved.summary())


@router.delete("/{provider}", status_code=status.HTTP_204_NO_CONTENT)
def delete_integration(tenant_id: UUID, provider: str) -> Response:
    key = _parse_provider(provider)
    with _store_context(tenant_id) as store:
        deleted = store.delete(tenant_id, key)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"{key.value} is not connected")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
