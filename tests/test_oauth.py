import pytest
import requests

from app.core.settings import DispatchSettings, OAuthClientSettings
from app.integrations.credentials import Credential, Provider
from app.integrations.errors import ProviderError, TransientProviderError
from app.integrations.oauth import OAuthTokenRefresher, build_refreshers

CLIENT = OAuthClientSettings("client-id", "client-secret", "https://auth.example/token")


class _FakeResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        return self._payload


class _FakeSession:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if isinstance(self.response, BaseException):
            raise self.response
        return self.response


def _credential(tenant_id, refresh_token="refresh-1"):
    return Credential(tenant_id, Provider.CRM_B, "old", refresh_token)


def test_refresh_posts_form_and_returns_grant(tenant_id):
    session = _FakeSession(
        _FakeResponse(
            200,
            {
                "access_token": "new-token",
                "expires_in": "3600",
                "instance_url": "https://acme.my.salesforce.com",
            },
        )
    )
    grant = OAuthTokenRefresher(CLIENT, session=session, timeout=3).refresh(_credential(tenant_id))

    url, kwargs = session.calls[0]
    assert url == "https://auth.example/token"
    assert kwargs["timeout"] == 3
    assert kwargs["data"] == {
        "grant_type": "refresh_token",
        "refresh_token": "refresh-1",
        "client_id": "client-id",
        "client_secret": "client-secret",
    }
    assert grant.access_token == "new-token"
    assert grant.expires_in == 3600
    assert grant.refresh_token is None
    assert grant.account_updates == {"instance_url": "https://acme.my.salesforce.com"}


@pytest.mark.parametrize(
    "response, error",
    [
        (_FakeResponse(503), TransientProviderError),
        (_FakeResponse(429), TransientProviderError),
        (requests.ConnectionError("refused"), TransientProviderError),
        (_FakeResponse(400, {"error": "invalid_grant"}), ProviderError),
        (_FakeResponse(200, {"token_type": "bearer"}), ProviderError),
    ],
)
def test_refresh_failures(response, error, tenant_id):
    refresher = OAuthTokenRefresher(CLIENT, session=_FakeSession(response))
    with pytest.raises(error):
        refresher.refresh(_credential(tenant_id))


def test_rejected_refresh_is_not_transient(tenant_id):
    refresher = OAuthTokenRefresher(
        CLIENT, session=_FakeSession(_FakeResponse(401, {"error": "invalid_client"}))
    )
    with pytest.raises(ProviderError) as excinfo:
        refresher.refresh(_credential(tenant_id))
    assert not isinstance(excinfo.value, TransientProviderError)


def test_refresh_requires_refresh_token_and_client(tenant_id):
    session = _FakeSession(_FakeResponse(200, {"access_token": "x"}))
    with pytest.raises(ProviderError):
        OAuthTokenRefresher(CLIENT, session=session).refresh(_credential(tenant_id, None))
    unconfigured = OAuthClientSettings(None, None, "https://auth.example/token")
    with pytest.raises(ProviderError):
        OAuthTokenRefresher(unconfigured, session=session).refresh(_credential(tenant_id))
    assert session.calls == []


def test_build_refreshers_covers_oauth_providers():
    refreshers = build_refreshers(DispatchSettings())
    assert set(refreshers) == {Provider.EMAIL_CALENDAR, Provider.CRM_A, Provider.CRM_B}
