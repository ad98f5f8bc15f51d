"""Salesforce lead creation for the crm-b provider."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..credentials import Credential, Provider
from ..errors import ConfigurationError
from .base import HandlerContext, Operation, ProviderHandler

API_VERSION = "v59.0"


class SalesforceHandler(ProviderHandler):
    """Create leads through the Salesforce REST API.

    The API host differs per org; it is read from the credential's
    ``instance_url`` account field, which the OAuth exchange returns.
    """

    provider = Provider.CRM_B

    def operations(self) -> Mapping[str, Operation]:
        return {"create_lead": self.create_lead}

    def _base_url(self, credential: Credential) -> str:
        instance_url = credential.account.get("instance_url")
        if not instance_url:
            raise ConfigurationError("Salesforce credential is missing instance_url")
        return f"{str(instance_url).rstrip('/')}/services/data/{API_VERSION}"

    def create_lead(
        self, credential: Credential, slots: Mapping[str, Any], context: HandlerContext
    ) -> dict[str, Any]:
        company = str(slots["company"])
        name = str(slots.get("name") or "").strip()
        first, _, last = name.rpartition(" ")
        fields = {
            "Company": company,
            "LastName": last or company,
            "FirstName": first or None,
            "Email": slots.get("email"),
            "Phone": slots.get("phone") or context.requester,
            "LeadSource": "Chat",
            "Description": context.message or None,
        }
        payload = self._request(
            "POST",
            f"{self._base_url(credential)}/sobjects/Lead",
            headers=self._bearer(credential),
            json={k: v for k, v in fields.items() if v},
            idempotent=False,
        )
        return {"lead_id": payload.get("id"), "company": company, "name": name or None}


__all__ = ["SalesforceHandler"]
