"""Credential lifecycle: hand out valid tokens, refreshing them when needed."""

from __future__ import annotations

import dataclasses
import datetime as dt
import logging
import threading
from collections.abc import Callable, Mapping
from uuid import UUID

from .credentials import Credential, CredentialStore, Provider
from .errors import NoIntegration, RefreshFailed
from .oauth import TokenRefresher
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


@dataclasses.dataclass
class RefreshBudget:
    """Tracks refresh attempts made on behalf of a single request."""

    max_attempts: int = 1
    attempts: int = 0
    failures: int = 0

    def consume(self) -> bool:
        if self.attempts >= self.max_attempts:
            return False
        self.attempts += 1
        return True


class CredentialManager:
    """Return usable credentials for a tenant, refreshing OAuth tokens on demand.

    The read-check-refresh-write sequence for a (tenant, provider) pair runs
    under a lock dedicated to that pair, so concurrent requests for the same
    tenant trigger at most one refresh; later callers re-read the stored
    credential and reuse the token the first caller obtained.
    Store reads and writes go through the same retry policy as refreshes.
    """

    def __init__(
        self,
        store: CredentialStore,
        refreshers: Mapping[Provider, TokenRefresher] | None = None,
        *,
        retry_policy: RetryPolicy | None = None,
        refresh_skew: dt.timedelta = dt.timedelta(minutes=5),
        clock: Callable[[], dt.datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._refreshers = dict(refreshers or {})
        self._retry = retry_policy or RetryPolicy(stage="token_refresh")
        self._skew = refresh_skew
        self._clock = clock
        self._locks: dict[tuple[UUID, Provider], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, tenant_id: UUID, provider: Provider) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get((tenant_id, provider))
            if lock is None:
                lock = threading.Lock()
                self._locks[(tenant_id, provider)] = lock
            return lock

    def get_valid_credential(
        self,
        tenant_id: UUID,
        provider: Provider | str,
        *,
        budget: RefreshBudget | None = None,
        rejected_token: str | None = None,
    ) -> Credential:
        """Return a credential that is valid for at least the refresh skew.

        ``rejected_token`` forces a refresh when the stored access token is the
        one a provider just rejected. Raises :class:`NoIntegration` when the
        tenant never connected ``provider`` and :class:`RefreshFailed` when a
        needed refresh fails or the request's ``budget`` is spent.
        """

        provider = Provider.parse(provider)
        budget = budget if budget is not None else RefreshBudget()
        with self._lock_for(tenant_id, provider):
            credential = self._retry.call(lambda: self._store.get(tenant_id, provider))
            if credential is None:
                raise NoIntegration(tenant_id, provider.value)
            if not provider.uses_oauth:
                return credential

            now = self._clock()
            if rejected_token is not None:
                stale = credential.access_token == rejected_token
            else:
                stale = credential.expires_within(now, self._skew)
            if not stale:
                return credential

            if not budget.consume():
                budget.failures += 1
                raise RefreshFailed(
                    provider.value,
                    f"{provider.value} token needs another refresh in the same request",
                    exhausted=True,
                )
            return self._refresh(credential, now, budget)

    def _refresh(
        self, credential: Credential, now: dt.datetime, budget: RefreshBudget
    ) -> Credential:
        provider = credential.provider
        refresher = self._refreshers.get(provider)
        if refresher is None:
            budget.failures += 1
            raise RefreshFailed(provider.value, f"No token refresher for {provider.value}")
        try:
            grant = self._retry.call(lambda: refresher.refresh(credential))
        except Exception as exc:
            budget.failures += 1
            logger.warning(
                "Token refresh failed for tenant %s provider %s: %s",
                credential.tenant_id,
                provider.value,
                exc,
            )
            raise RefreshFailed(provider.value, f"Token refresh failed: {exc}") from exc

        expires_at = (
            now + dt.timedelta(seconds=grant.expires_in)
            if grant.expires_in is not None
            else None
        )
        refreshed = dataclasses.replace(
            credential,
            access_token=grant.access_token,
            refresh_token=grant.refresh_token or credential.refresh_token,
            expires_at=expires_at,
            account={**credential.account, **grant.account_updates},
        )
        self._retry.call(lambda: self._store.upsert(refreshed))
        logger.info(
            "Stored refreshed %s credential for tenant %s",
            provider.value,
            credential.tenant_id,
        )
        return refreshed


__all__ = ["CredentialManager", "RefreshBudget"]
