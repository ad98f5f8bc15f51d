import datetime as dt
import threading
import time

import pytest
from sqlalchemy.exc import OperationalError

from app.integrations.credentials import Credential, InMemoryCredentialStore, Provider
from app.integrations.errors import (
    NoIntegration,
    ProviderError,
    RefreshFailed,
    TransientProviderError,
)
from app.integrations.lifecycle import CredentialManager, RefreshBudget
from app.integrations.oauth import TokenGrant
from app.integrations.retry import RetryPolicy

NOW = dt.datetime(2024, 5, 1, 12, 0, tzinfo=dt.timezone.utc)


class _CountingRefresher:
    def __init__(self, *results, delay: float = 0.0):
        self.results = list(results)
        self.delay = delay
        self.calls = 0
        self._lock = threading.Lock()

    def refresh(self, credential):
        with self._lock:
            self.calls += 1
            result = self.results.pop(0) if self.results else TokenGrant(f"new-{self.calls}", 3600)
        if self.delay:
            time.sleep(self.delay)
        if isinstance(result, BaseException):
            raise result
        return result


class _DroppedConnectionStore(InMemoryCredentialStore):
    """Fails the first read and the first write like a recycled connection."""

    def __init__(self, credentials):
        self.failing = set()
        self.calls = []
        super().__init__(credentials)
        self.failing = {"get", "upsert"}
        self.calls = []

    def _check(self, name):
        self.calls.append(name)
        if name in self.failing:
            self.failing.discard(name)
            raise OperationalError(name, {}, ConnectionError("server closed the connection"))

    def get(self, tenant_id, provider):
        self._check("get")
        return super().get(tenant_id, provider)

    def upsert(self, credential):
        self._check("upsert")
        return super().upsert(credential)


def _manager(store, refresher, **kwargs) -> CredentialManager:
    return CredentialManager(
        store,
        {Provider.CRM_A: refresher, Provider.EMAIL_CALENDAR: refresher},
        retry_policy=RetryPolicy(sleep_fn=lambda _: None),
        clock=lambda: NOW,
        **kwargs,
    )


def _expiring(tenant_id, provider=Provider.CRM_A, minutes=1) -> Credential:
    return Credential(
        tenant_id,
        provider,
        "old-token",
        "refresh-token",
        expires_at=NOW + dt.timedelta(minutes=minutes),
    )


def test_missing_credential_raises_no_integration(tenant_id):
    manager = _manager(InMemoryCredentialStore(), _CountingRefresher())
    with pytest.raises(NoIntegration) as excinfo:
        manager.get_valid_credential(tenant_id, Provider.ERP)
    assert excinfo.value.provider == "erp"


def test_fresh_token_is_returned_untouched(tenant_id):
    refresher = _CountingRefresher()
    store = InMemoryCredentialStore([_expiring(tenant_id, minutes=30)])
    credential = _manager(store, refresher).get_valid_credential(tenant_id, "crm-a")
    assert credential.access_token == "old-token"
    assert refresher.calls == 0


def test_api_key_credentials_are_never_refreshed(tenant_id):
    refresher = _CountingRefresher()
    store = InMemoryCredentialStore(
        [Credential(tenant_id, Provider.ERP, "api-key", expires_at=NOW - dt.timedelta(days=1))]
    )
    assert _manager(store, refresher).get_valid_credential(tenant_id, Provider.ERP).access_token == "api-key"
    assert refresher.calls == 0


def test_expiring_token_is_refreshed_and_persisted(tenant_id):
    refresher = _CountingRefresher(
        TokenGrant("fresh", 1800, account_updates={"portal": "42"})
    )
    store = InMemoryCredentialStore([_expiring(tenant_id)])

    credential = _manager(store, refresher).get_valid_credential(tenant_id, Provider.CRM_A)

    assert credential.access_token == "fresh"
    assert credential.refresh_token == "refresh-token"
    assert credential.expires_at == NOW + dt.timedelta(minutes=30)
    assert store.get(tenant_id, Provider.CRM_A) == credential
    assert store.get(tenant_id, Provider.CRM_A).account == {"portal": "42"}


def test_rotated_refresh_token_is_kept(tenant_id):
    refresher = _CountingRefresher(TokenGrant("fresh", 3600, refresh_token="rotated"))
    store = InMemoryCredentialStore([_expiring(tenant_id)])
    _manager(store, refresher).get_valid_credential(tenant_id, Provider.CRM_A)
    assert store.get(tenant_id, Provider.CRM_A).refresh_token == "rotated"


def test_concurrent_requests_refresh_once(tenant_id):
    refresher = _CountingRefresher(TokenGrant("shared", 3600), delay=0.05)
    store = InMemoryCredentialStore([_expiring(tenant_id)])
    manager = _manager(store, refresher)
    tokens: list[str] = []

    def _worker():
        tokens.append(manager.get_valid_credential(tenant_id, Provider.CRM_A).access_token)

    threads = [threading.Thread(target=_worker) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert refresher.calls == 1
    assert tokens == ["shared"] * 5


def test_refresh_budget_allows_one_refresh_per_request(tenant_id):
    refresher = _CountingRefresher(TokenGrant("fresh", 3600))
    store = InMemoryCredentialStore([_expiring(tenant_id)])
    manager = _manager(store, refresher)
    budget = RefreshBudget()

    manager.get_valid_credential(tenant_id, Provider.CRM_A, budget=budget)
    with pytest.raises(RefreshFailed) as excinfo:
        manager.get_valid_credential(
            tenant_id, Provider.CRM_A, budget=budget, rejected_token="fresh"
        )

    assert excinfo.value.exhausted
    assert refresher.calls == 1
    assert budget.attempts == 1
    assert budget.failures == 1


def test_rejected_token_forces_refresh(tenant_id):
    refresher = _CountingRefresher(TokenGrant("fresh", 3600))
    store = InMemoryCredentialStore([_expiring(tenant_id, minutes=60)])
    credential = _manager(store, refresher).get_valid_credential(
        tenant_id, Provider.CRM_A, rejected_token="old-token"
    )
    assert credential.access_token == "fresh"


def test_rejected_token_already_replaced_is_not_refreshed_again(tenant_id):
    refresher = _CountingRefresher()
    store = InMemoryCredentialStore([_expiring(tenant_id, minutes=60)])
    credential = _manager(store, refresher).get_valid_credential(
        tenant_id, Provider.CRM_A, rejected_token="older-token"
    )
    assert credential.access_token == "old-token"
    assert refresher.calls == 0


def test_transient_refresh_errors_are_retried(tenant_id):
    refresher = _CountingRefresher(TransientProviderError("503"), TokenGrant("fresh", 3600))
    store = InMemoryCredentialStore([_expiring(tenant_id)])
    credential = _manager(store, refresher).get_valid_credential(tenant_id, Provider.CRM_A)
    assert credential.access_token == "fresh"
    assert refresher.calls == 2


def test_store_reads_and_writes_are_retried(tenant_id):
    store = _DroppedConnectionStore([_expiring(tenant_id)])
    refresher = _CountingRefresher()

    credential = _manager(store, refresher).get_valid_credential(tenant_id, Provider.CRM_A)

    assert credential.access_token == "new-1"
    assert refresher.calls == 1
    assert store.calls == ["get", "get", "upsert", "upsert"]
    assert InMemoryCredentialStore.get(store, tenant_id, Provider.CRM_A).access_token == "new-1"


def test_rejected_refresh_raises_refresh_failed(tenant_id):
    refresher = _CountingRefresher(ProviderError("invalid_grant", status_code=400))
    store = InMemoryCredentialStore([_expiring(tenant_id)])
    budget = RefreshBudget()

    with pytest.raises(RefreshFailed) as excinfo:
        _manager(store, refresher).get_valid_credential(tenant_id, Provider.CRM_A, budget=budget)

    assert not excinfo.value.exhausted
    assert budget.failures == 1
    assert store.get(tenant_id, Provider.CRM_A).access_token == "old-token"


def test_missing_refresher_raises_refresh_failed(tenant_id):
    store = InMemoryCredentialStore([_expiring(tenant_id, Provider.CRM_B)])
    manager = CredentialManager(store, {}, clock=lambda: NOW)
    with pytest.raises(RefreshFailed):
        manager.get_valid_credential(tenant_id, Provider.CRM_B)
