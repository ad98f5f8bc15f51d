"""Tenant integrations: credentials, token lifecycle, retries and handlers."""

from .credentials import (
    Credential,
    CredentialStore,
    InMemoryCredentialStore,
    Provider,
    SqlCredentialStore,
)
from .errors import (
    ConfigurationError,
    InputValidationError,
    IntegrationError,
    NoIntegration,
    ProviderAuthError,
    ProviderError,
    RefreshFailed,
    TransientProviderError,
)
from .lifecycle import CredentialManager, RefreshBudget
from .oauth import OAuthTokenRefresher, TokenGrant, build_refreshers
from .retry import RetryPolicy, is_transient_error, with_retry

__all__ = [
    "ConfigurationError",
    "Credential",
    "CredentialManager",
    "CredentialStore",
    "InMemoryCredentialStore",
    "InputValidationError",
    "IntegrationError",
    "NoIntegration",
    "OAuthTokenRefresher",
    "Provider",
    "ProviderAuthError",
    "ProviderError",
    "RefreshBudget",
    "RefreshFailed",
    "RetryPolicy",
    "SqlCredentialStore",
    "TokenGrant",
    "TransientProviderError",
    "build_refreshers",
    "is_transient_error",
    "with_retry",
]
