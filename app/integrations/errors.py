"""Error types raised while resolving credentials and calling providers."""

from __future__ import annotations


class IntegrationError(RuntimeError):
    """Base class for failures of the integration layer."""


class NoIntegration(IntegrationError):
    """The tenant has not connected the provider an intent needs."""

    def __init__(self, tenant_id: object, provider: str) -> None:
        super().__init__(f"Tenant {tenant_id} has no {provider} integration")
        self.tenant_id = tenant_id
        self.provider = provider


class RefreshFailed(IntegrationError):
    """A token refresh could not produce a usable credential.

    ``exhausted`` is set when a refresh was needed but the request had already
    used its refresh attempt.
    """

    def __init__(self, provider: str, message: str, *, exhausted: bool = False) -> None:
        super().__init__(message)
        self.provider = provider
        self.exhausted = exhausted


class ProviderError(IntegrationError):
    """Error reported by an external provider API."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientProviderError(ProviderError):
    """Timeouts, connection failures, throttling and 5xx responses."""


class ProviderAuthError(ProviderError):
    """The provider rejected the access token (401/403)."""


class InputValidationError(ProviderError):
    """The request was rejected because of the data we sent (4xx, unknown ids)."""


class ConfigurationError(ProviderError):
    """The tenant's account is not set up for the operation (missing module, scope)."""


class ProviderTimeoutError(ProviderError):
    """A non-repeatable call timed out after it may already have reached the provider."""
