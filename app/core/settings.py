"""Runtime configuration for intent resolution and integration dispatch."""

from __future__ import annotations

import dataclasses
import os
from functools import lru_cache


@dataclasses.dataclass(frozen=True)
class OAuthClientSettings:
    """OAuth client registration used to refresh a provider's tokens."""

    client_id: str | None
    client_secret: str | None
    token_url: str


@dataclasses.dataclass(frozen=True)
class DispatchSettings:
    """Tunables shared by the classifier, dispatcher and credential manager."""

    confidence_threshold: float = 0.7
    history_window: int = 6
    intent_cache_ttl_seconds: float = 300.0
    refresh_skew_seconds: int = 300  # five minutes
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 0.5
    retry_max_delay_seconds: float = 8.0
    http_timeout_seconds: float = 10.0
    classifier_timeout_seconds: float = 8.0
    openai_model: str = "gpt-4o-mini"
    default_timezone: str = "UTC"
    meeting_duration_minutes: int = 60
    google: OAuthClientSettings = OAuthClientSettings(
        None, None, "https://oauth2.googleapis.com/token"
    )
    hubspot: OAuthClientSettings = OAuthClientSettings(
        None, None, "https://api.hubapi.com/oauth/v1/token"
    )
    salesforce: OAuthClientSettings = OAuthClientSettings(
        None, None, "https://login.salesforce.com/services/oauth2/token"
    )


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


@lru_cache(maxsize=1)
def get_dispatch_settings() -> DispatchSettings:
    """Load settings from the environment, falling back to defaults."""

    threshold = _env_float("INTENT_CONFIDENCE_THRESHOLD", 0.7)
    if not 0.0 <= threshold <= 1.0:
        raise RuntimeError("INTENT_CONFIDENCE_THRESHOLD must be between 0 and 1")
    max_attempts = _env_int("RETRY_MAX_ATTEMPTS", 3)
    if max_attempts < 1:
        raise RuntimeError("RETRY_MAX_ATTEMPTS must be at least 1")

    salesforce_login = os.getenv(
        "SALESFORCE_LOGIN_URL", "https://login.salesforce.com"
    ).rstrip("/")
    return DispatchSettings(
        confidence_threshold=threshold,
        history_window=_env_int("INTENT_HISTORY_WINDOW", 6),
        intent_cache_ttl_seconds=_env_float("INTENT_CACHE_TTL_SECONDS", 300.0),
        refresh_skew_seconds=_env_int("CREDENTIAL_REFRESH_SKEW_SECONDS", 300),
        retry_max_attempts=max_attempts,
        retry_base_delay_seconds=_env_float("RETRY_BASE_DELAY_SECONDS", 0.5),
        retry_max_delay_seconds=_env_float("RETRY_MAX_DELAY_SECONDS", 8.0),
        http_timeout_seconds=_env_float("HTTP_TIMEOUT_SECONDS", 10.0),
        classifier_timeout_seconds=_env_float("CLASSIFIER_TIMEOUT_SECONDS", 8.0),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        default_timezone=os.getenv("DEFAULT_TIMEZONE", "UTC"),
        meeting_duration_minutes=_env_int("MEETING_DURATION_MINUTES", 60),
        google=OAuthClientSettings(
            os.getenv("GOOGLE_CLIENT_ID"),
            os.getenv("GOOGLE_CLIENT_SECRET"),
            "https://oauth2.googleapis.com/token",
        ),
        hubspot=OAuthClientSettings(
            os.getenv("HUBSPOT_CLIENT_ID"),
            os.getenv("HUBSPOT_CLIENT_SECRET"),
            "https://api.hubapi.com/oauth/v1/token",
        ),
        salesforce=OAuthClientSettings(
            os.getenv("SALESFORCE_CLIENT_ID"),
            os.getenv("SALESFORCE_CLIENT_SECRET"),
            f"{salesforce_login}/services/oauth2/token",
        ),
    )


def reset_dispatch_settings_cache() -> None:
    """Clear cached settings; useful in tests when env vars change."""

    get_dispatch_settings.cache_clear()
