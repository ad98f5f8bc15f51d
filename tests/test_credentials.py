import datetime as dt
import uuid

import pytest

from app.integrations.credentials import (
    Credential,
    InMemoryCredentialStore,
    Provider,
    SqlCredentialStore,
    as_utc,
)

NOW = dt.datetime(2024, 5, 1, 12, 0, tzinfo=dt.timezone.utc)


def test_provider_parse():
    assert Provider.parse(" CRM-A ") is Provider.CRM_A
    assert Provider.parse(Provider.ERP) is Provider.ERP
    with pytest.raises(KeyError):
        Provider.parse("slack")


def test_only_erp_skips_oauth():
    assert [p for p in Provider if not p.uses_oauth] == [Provider.ERP]


def test_expires_within_skew(tenant_id):
    credential = Credential(
        tenant_id, Provider.CRM_A, "tok", expires_at=NOW + dt.timedelta(minutes=4)
    )
    assert credential.expires_within(NOW, dt.timedelta(minutes=5))
    assert not credential.expires_within(NOW, dt.timedelta(minutes=3))
    assert not Credential(tenant_id, Provider.ERP, "key").expires_within(
        NOW, dt.timedelta(minutes=5)
    )


def test_naive_expiry_is_treated_as_utc():
    assert as_utc(dt.datetime(2024, 5, 1, 12, 0)) == NOW


def test_summary_never_contains_tokens(tenant_id):
    credential = Credential(
        tenant_id, Provider.CRM_B, "secret-access", "secret-refresh", account={"instance_url": "x"}
    )
    summary = credential.summary()
    assert summary["has_refresh_token"] is True
    assert "secret-access" not in str(summary)
    assert "secret-refresh" not in str(summary)


def test_in_memory_store_round_trip(tenant_id):
    store = InMemoryCredentialStore()
    store.upsert(Credential(tenant_id, Provider.ERP, "key"))
    store.upsert(Credential(tenant_id, Provider.CRM_A, "tok"))
    store.upsert(Credential(uuid.uuid4(), Provider.CRM_B, "other"))

    assert store.get(tenant_id, "erp").access_token == "key"
    assert [c.provider for c in store.list_for_tenant(tenant_id)] == [
        Provider.CRM_A,
        Provider.ERP,
    ]
    assert store.delete(tenant_id, Provider.ERP)
    assert not store.delete(tenant_id, Provider.ERP)
    assert store.get(tenant_id, Provider.ERP) is None


class TestSqlCredentialStore:
    def test_upsert_inserts_then_updates(self, session_factory, business_factory):
        tenant = business_factory()
        store = SqlCredentialStore(session_factory)

        store.upsert(
            Credential(
                tenant,
                Provider.CRM_B,
                "first",
                "refresh",
                expires_at=NOW,
                account={"instance_url": "https://acme.my.salesforce.com"},
            )
        )
        store.upsert(Credential(tenant, Provider.CRM_B, "second", "refresh", expires_at=NOW))

        stored = store.get(tenant, Provider.CRM_B)
        assert stored.access_token == "second"
        assert stored.expires_at == NOW
        assert stored.account == {}
        assert len(store.list_for_tenant(tenant)) == 1

    def test_credentials_are_isolated_per_tenant(self, session_factory, business_factory):
        first = business_factory("First")
        second = business_factory("Second")
        store = SqlCredentialStore(session_factory)
        store.upsert(Credential(first, Provider.ERP, "key-1", account={"db": "one"}))

        assert store.get(second, Provider.ERP) is None
        assert store.list_for_tenant(second) == []
        assert not store.delete(second, Provider.ERP)
        assert store.get(first, Provider.ERP).account == {"db": "one"}

    def test_delete(self, session_factory, business_factory):
        tenant = business_factory()
        store = SqlCredentialStore(session_factory)
        store.upsert(Credential(tenant, Provider.EMAIL_CALENDAR, "tok"))

        assert store.delete(tenant, "email-calendar")
        assert store.get(tenant, Provider.EMAIL_CALENDAR) is None
