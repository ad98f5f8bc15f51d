"""HubSpot contact operations for the crm-a provider."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ...intents.slots import is_valid_email
from ..credentials import Credential, Provider
from ..errors import InputValidationError
from .base import HandlerContext, Operation, ProviderHandler

HUBSPOT_API = "https://api.hubapi.com/crm/v3/objects/contacts"
CONTACT_PROPERTIES = ["firstname", "lastname", "email", "phone", "company"]


def _split_name(name: str | None) -> tuple[str | None, str | None]:
    if not name:
        return None, None
    parts = name.split()
    if len(parts) == 1:
        return parts[0], None
    return " ".join(parts[:-1]), parts[-1]


def _contact_summary(record: Mapping[str, Any]) -> dict[str, Any]:
    props = record.get("properties") or {}
    name = " ".join(p for p in (props.get("firstname"), props.get("lastname")) if p)
    return {
        "id": record.get("id"),
        "name": name or None,
        "email": props.get("email"),
        "phone": props.get("phone"),
        "company": props.get("company"),
    }


def _email_filter(email: str, limit: int = 5) -> dict[str, Any]:
    return {
        "properties": CONTACT_PROPERTIES,
        "limit": limit,
        "filterGroups": [
            {"filters": [{"propertyName": "email", "operator": "EQ", "value": email}]}
        ],
    }


class HubSpotHandler(ProviderHandler):
    provider = Provider.CRM_A

    def operations(self) -> Mapping[str, Operation]:
        return {
            "search_contact": self.search_contact,
            "create_contact": self.create_contact,
        }

    def _search(self, credential: Credential, body: dict[str, Any]) -> list[dict[str, Any]]:
        payload = self._request(
            "POST",
            f"{HUBSPOT_API}/search",
            headers=self._bearer(credential),
            json=body,
        )
        return [_contact_summary(item) for item in payload.get("results") or []]

    def search_contact(
        self, credential: Credential, slots: Mapping[str, Any], context: HandlerContext
    ) -> dict[str, Any]:
        query = str(slots["query"]).strip()
        if is_valid_email(query):
            body = _email_filter(query)
        else:
            body = {"properties": CONTACT_PROPERTIES, "limit": 5, "query": query}
        contacts = self._search(credential, body)
        return {"query": query, "contacts": contacts, "count": len(contacts)}

    def create_contact(
        self, credential: Credential, slots: Mapping[str, Any], context: HandlerContext
    ) -> dict[str, Any]:
        first, last = _split_name(slots.get("name"))
        properties = {
            "email": slots["email"],
            "firstname": first,
            "lastname": last,
            "phone": slots.get("phone"),
            "company": slots.get("company"),
        }
        try:
            payload = self._request(
                "POST",
                HUBSPOT_API,
                headers=self._bearer(credential),
                json={"properties": {k: v for k, v in properties.items() if v}},
            )
        except InputValidationError as exc:
            if exc.status_code != 409:
                raise
            # HubSpot keys contacts by email; a retried create finds the first one.
            found = self._search(credential, _email_filter(str(slots["email"]), limit=1))
            if not found:
                raise
            return found[0]
        return _contact_summary(payload)


__all__ = ["HubSpotHandler"]
