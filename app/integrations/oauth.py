"""OAuth refresh-token exchange for the providers that use OAuth."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol

import requests

from ..core.settings import DispatchSettings, OAuthClientSettings
from .credentials import Credential, Provider
from .errors import ProviderError, TransientProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenGrant:
    """Result of a successful refresh exchange."""

    access_token: str
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    account_updates: Mapping[str, Any] = field(default_factory=dict)


class TokenRefresher(Protocol):
    def refresh(self, credential: Credential) -> TokenGrant:
        ...


class OAuthTokenRefresher:
    """Exchange a refresh token at a provider's token endpoint.

    All three OAuth providers accept the standard form-encoded
    ``grant_type=refresh_token`` request; Salesforce additionally returns the
    ``instance_url`` the API must be called on, which is carried back as an
    account update.
    """

    def __init__(
        self,
        client: OAuthClientSettings,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ) -> None:
        self._client = client
        self._session = session or requests.Session()
        self._timeout = timeout

    def refresh(self, credential: Credential) -> TokenGrant:
        if not credential.refresh_token:
            raise ProviderError(f"{credential.provider.value} credential has no refresh token")
        if not self._client.client_id or not self._client.client_secret:
            raise ProviderError(f"OAuth client for {credential.provider.value} is not configured")

        data = {
            "grant_type": "refresh_token",
            "refresh_token": credential.refresh_token,
            "client_id": self._client.client_id,
            "client_secret": self._client.client_secret,
        }
        try:
            response = self._session.post(
                self._client.token_url, data=data, timeout=self._timeout
            )
        except (requests.Timeout, requests.ConnectionError) as exc:
            raise TransientProviderError(f"Token endpoint unreachable: {exc}") from exc

        status = response.status_code
        if status == 429 or status >= 500:
            raise TransientProviderError(
                f"Token endpoint returned {status}", status_code=status
            )
        if status >= 400:
            raise ProviderError(
                f"Token endpoint rejected refresh ({status})", status_code=status
            )

        payload = response.json()
        access_token = payload.get("access_token")
        if not access_token:
            raise ProviderError("Token endpoint response did not include an access token")
        expires_in = payload.get("expires_in")
        updates: dict[str, Any] = {}
        if payload.get("instance_url"):
            updates["instance_url"] = payload["instance_url"]
        logger.info("Refreshed %s access token", credential.provider.value)
        return TokenGrant(
            access_token=access_token,
            expires_in=int(expires_in) if expires_in is not None else None,
            refresh_token=payload.get("refresh_token"),
            account_updates=updates,
        )


def build_refreshers(
    settings: DispatchSettings, session: Optional[requests.Session] = None
) -> dict[Provider, TokenRefresher]:
    """Return one refresher per OAuth provider."""

    return {
        Provider.EMAIL_CALENDAR: OAuthTokenRefresher(
            settings.google, session=session, timeout=settings.http_timeout_seconds
        ),
        Provider.CRM_A: OAuthTokenRefresher(
            settings.hubspot, session=session, timeout=settings.http_timeout_seconds
        ),
        Provider.CRM_B: OAuthTokenRefresher(
            settings.salesforce, session=session, timeout=settings.http_timeout_seconds
        ),
    }


__all__ = ["OAuthTokenRefresher", "TokenGrant", "TokenRefresher", "build_refreshers"]
