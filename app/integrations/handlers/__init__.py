"""Provider handler registry."""

from __future__ import annotations

from ..credentials import Provider
from .base import HandlerContext, ProviderHandler, raise_for_provider_status
from .google import GoogleWorkspaceHandler
from .hubspot import HubSpotHandler
from .odoo import OdooHandler
from .salesforce import SalesforceHandler

_REGISTRY: dict[Provider, type[ProviderHandler]] = {}


def register_handler(handler: type[ProviderHandler]) -> None:
    """Register a handler class for its provider, replacing any previous one."""
    _REGISTRY[handler.provider] = handler


def get_handler(provider: Provider | str) -> type[ProviderHandler]:
    """Retrieve the handler class for ``provider`` or raise ``KeyError``."""
    key = Provider.parse(provider)
    if key not in _REGISTRY:
        raise KeyError(f"Provider '{key.value}' has no handler")
    return _REGISTRY[key]


def build_handlers(**kwargs: object) -> dict[Provider, ProviderHandler]:
    """Instantiate every registered handler with shared constructor arguments."""
    return {provider: cls(**kwargs) for provider, cls in _REGISTRY.items()}  # type: ignore[arg-type]


# Pre-register built-in handlers
register_handler(GoogleWorkspaceHandler)
register_handler(HubSpotHandler)
register_handler(SalesforceHandler)
register_handler(OdooHandler)

__all__ = [
    "GoogleWorkspaceHandler",
    "HandlerContext",
    "HubSpotHandler",
    "OdooHandler",
    "ProviderHandler",
    "SalesforceHandler",
    "build_handlers",
    "get_handler",
    "raise_for_provider_status",
    "register_handler",
]
