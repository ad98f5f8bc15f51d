"""Base abstractions for provider handlers."""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

import requests

from ..credentials import Credential, Provider
from ..errors import (
    ConfigurationError,
    InputValidationError,
    ProviderAuthError,
    ProviderTimeoutError,
    TransientProviderError,
)

logger = logging.getLogger(__name__)

Operation = Callable[[Credential, Mapping[str, Any], "HandlerContext"], dict[str, Any]]


@dataclass(frozen=True)
class HandlerContext:
    """Request facts a handler may need besides credential and slots.

    ``request_id`` stays the same across retries of one dispatch, so create
    operations can use it to recognise their own earlier attempt.
    """

    tenant_id: UUID
    message: str = ""
    requester: str | None = None
    timezone: str = "UTC"
    today: dt.date | None = None
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)


def _error_detail(response: Any) -> str:
    try:
        payload = response.json()
    except Exception:
        return getattr(response, "text", "") or ""
    if isinstance(payload, Mapping):
        for key in ("message", "error_description", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, Mapping) and value.get("message"):
                return str(value["message"])
    if isinstance(payload, list) and payload and isinstance(payload[0], Mapping):
        return str(payload[0].get("message") or "")
    return ""


def raise_for_provider_status(response: Any, provider: Provider) -> None:
    """Translate an HTTP error status into the integration error taxonomy."""

    status = response.status_code
    if status < 400:
        return
    detail = _error_detail(response)
    message = f"{provider.value} returned {status}" + (f": {detail}" if detail else "")
    if status in (401, 403):
        raise ProviderAuthError(message, status_code=status)
    if status == 429 or status >= 500:
        raise TransientProviderError(message, status_code=status)
    raise InputValidationError(message, status_code=status)


class ProviderHandler(ABC):
    """Executes operations against one provider with a tenant credential.

    Subclasses register their operations in ``operations()``; each operation
    receives a valid credential, the validated slots and a
    :class:`HandlerContext`, and returns a plain ``dict`` result. The retry
    wrapper may re-invoke an operation, so creates either deduplicate on
    ``context.request_id`` or send their write with ``idempotent=False``.
    """

    #: Provider the handler talks to.
    provider: Provider

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._session = session or requests.Session()
        self._timeout = timeout

    @abstractmethod
    def operations(self) -> Mapping[str, Operation]:
        """Return the operation table of the handler."""

    def execute(
        self,
        operation: str,
        credential: Credential,
        slots: Mapping[str, Any],
        context: HandlerContext,
    ) -> dict[str, Any]:
        handler = self.operations().get(operation)
        if handler is None:
            raise ConfigurationError(
                f"{self.provider.value} does not support operation '{operation}'"
            )
        return handler(credential, slots, context)

    def _request(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        idempotent: bool = True,
        **kwargs: Any,
    ) -> Any:
        """Send an HTTP request and return the decoded JSON body (``{}`` if empty).

        With ``idempotent=False`` only failures that happened before the request
        was sent count as transient; a read timeout or dropped connection raises
        :class:`ProviderTimeoutError`, which the retry policy does not repeat.
        """

        try:
            response = self._session.request(
                method, url, headers=dict(headers or {}), timeout=self._timeout, **kwargs
            )
        except requests.ConnectTimeout as exc:
            raise TransientProviderError(
                f"{self.provider.value} request failed: {exc}"
            ) from exc
        except (requests.Timeout, requests.ConnectionError) as exc:
            if not idempotent:
                raise ProviderTimeoutError(
                    f"{self.provider.value} did not confirm {method} {url}: {exc}"
                ) from exc
            raise TransientProviderError(
                f"{self.provider.value} request failed: {exc}"
            ) from exc
        raise_for_provider_status(response, self.provider)
        logger.debug("%s %s -> %s", method, url, response.status_code)
        if response.status_code == 204:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    @staticmethod
    def _bearer(credential: Credential) -> dict[str, str]:
        return {"Authorization": f"Bearer {credential.access_token}"}


__all__ = [
    "HandlerContext",
    "Operation",
    "ProviderHandler",
    "raise_for_provider_status",
]
