"""Odoo operations for the erp provider over JSON-RPC.

Odoo is reached with a per-user API key rather than OAuth. The credential's
``access_token`` holds the key and its ``account`` mapping holds
``instance_url``, ``db`` and ``username``.
"""

from __future__ import annotations

import itertools
import logging
import re
from collections.abc import Mapping
from typing import Any

from ..credentials import Credential, Provider
from ..errors import ConfigurationError, InputValidationError
from .base import HandlerContext, Operation, ProviderHandler

logger = logging.getLogger(__name__)

# Raised when a model is unknown, e.g. "Object helpdesk.ticket doesn't exist".
# "Record does not exist or has been deleted" is a missing row, not a module.
_MISSING_MODEL_RE = re.compile(
    r"\b(?:Object|Model)\s+['\"]?[\w.]+['\"]?\s+(?:doesn't|does not) exist"
)

_MISSING_MODULE_HINTS = {
    "sale.order": "Sales",
    "product.product": "Sales",
    "crm.lead": "CRM",
    "helpdesk.ticket": "Helpdesk",
    "account.move": "Invoicing",
}


def _singular(name: str) -> str:
    words = name.split()
    if words and len(words[-1]) > 3 and words[-1].lower().endswith("s"):
        words[-1] = words[-1][:-1]
    return " ".join(words)


class OdooHandler(ProviderHandler):
    provider = Provider.ERP

    _ids = itertools.count(1)

    def operations(self) -> Mapping[str, Operation]:
        return {
            "create_order": self.create_order,
            "invoice_status": self.invoice_status,
            "create_ticket": self.create_ticket,
            "create_lead": self.create_lead,
        }

    # ------------------------------------------------------------------
    # JSON-RPC plumbing
    # ------------------------------------------------------------------
    @staticmethod
    def _account(credential: Credential) -> tuple[str, str, str]:
        account = credential.account
        missing = [k for k in ("instance_url", "db", "username") if not account.get(k)]
        if missing:
            raise ConfigurationError(
                "Odoo credential is missing " + ", ".join(missing)
            )
        return (
            str(account["instance_url"]).rstrip("/"),
            str(account["db"]),
            str(account["username"]),
        )

    def _rpc(
        self,
        url: str,
        service: str,
        method: str,
        args: list[Any],
        model: str = "",
        *,
        idempotent: bool = True,
    ) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "method": "call",
            "params": {"service": service, "method": method, "args": args},
            "id": next(self._ids),
        }
        body = self._request("POST", f"{url}/jsonrpc", json=payload, idempotent=idempotent)
        error = body.get("error") if isinstance(body, Mapping) else None
        if error:
            data = error.get("data") or {}
            message = str(data.get("message") or error.get("message") or error)
            if _MISSING_MODEL_RE.search(message):
                module = _MISSING_MODULE_HINTS.get(model, "required")
                raise ConfigurationError(
                    f"The {module} module is not installed in this Odoo instance"
                )
            if "Access Denied" in message or "AccessDenied" in str(data.get("name", "")):
                raise ConfigurationError("Odoo rejected the configured API key")
            raise InputValidationError(f"Odoo error: {message}")
        return body.get("result")

    def _execute(
        self,
        credential: Credential,
        model: str,
        method: str,
        *args: Any,
        idempotent: bool = True,
        **kwargs: Any,
    ) -> Any:
        url, db, username = self._account(credential)
        uid = self._rpc(
            url, "common", "authenticate", [db, username, credential.access_token, {}]
        )
        if not uid:
            raise ConfigurationError("Odoo rejected the configured API key")
        call_args: list[Any] = [db, uid, credential.access_token, model, method, *args]
        if kwargs:
            call_args.append(kwargs)
        return self._rpc(
            url, "object", "execute", call_args, model=model, idempotent=idempotent
        )

    def _find_or_create_partner(
        self, credential: Credential, context: HandlerContext, slots: Mapping[str, Any]
    ) -> int | None:
        phone = context.requester or slots.get("phone")
        email = slots.get("email")
        if not phone and not email:
            return None
        domain = [["phone", "=", phone]] if phone else [["email", "=", email]]
        found = self._execute(
            credential, "res.partner", "search_read", domain, ["id", "name"]
        )
        if found:
            return int(found[0]["id"])
        values = {
            "name": slots.get("name") or (f"Chat customer {phone}" if phone else email),
            "phone": phone,
            "email": email,
            "is_company": False,
        }
        partner_id = self._execute(
            credential, "res.partner", "create", {k: v for k, v in values.items() if v is not None}
        )
        logger.info("Created Odoo partner %s for tenant %s", partner_id, context.tenant_id)
        return int(partner_id)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def create_order(
        self, credential: Credential, slots: Mapping[str, Any], context: HandlerContext
    ) -> dict[str, Any]:
        requested = str(slots["product"])
        quantity = int(slots["quantity"])
        product = None
        for candidate in dict.fromkeys((requested, _singular(requested))):
            matches = self._execute(
                credential,
                "product.product",
                "search_read",
                [["sale_ok", "=", True], ["name", "ilike", candidate]],
                ["id", "name", "list_price"],
            )
            if matches:
                product = matches[0]
                break
        if product is None:
            raise InputValidationError(f"Product '{requested}' was not found")

        partner_id = self._find_or_create_partner(credential, context, slots)
        if partner_id is None:
            raise InputValidationError("A customer phone number is required to place an order")
        reference = f"chat-{context.request_id}"
        existing = self._execute(
            credential,
            "sale.order",
            "search_read",
            [["client_order_ref", "=", reference]],
            ["id"],
        )
        if existing:
            order_id = existing[0]["id"]
            logger.info("Reusing Odoo order %s created by an earlier attempt", order_id)
        else:
            order_id = self._execute(
                credential,
                "sale.order",
                "create",
                {
                    "partner_id": partner_id,
                    "client_order_ref": reference,
                    "order_line": [
                        [0, 0, {"product_id": product["id"], "product_uom_qty": quantity}]
                    ],
                },
            )
        unit_price = float(product.get("list_price") or 0.0)
        return {
            "order_id": order_id,
            "product": product["name"],
            "quantity": quantity,
            "total": round(unit_price * quantity, 2),
        }

    def invoice_status(
        self, credential: Credential, slots: Mapping[str, Any], context: HandlerContext
    ) -> dict[str, Any]:
        number = str(slots["invoice_number"])
        invoices = self._execute(
            credential,
            "account.move",
            "search_read",
            [["name", "ilike", number], ["move_type", "=", "out_invoice"]],
            ["id", "name", "amount_total", "payment_state", "state"],
        )
        if not invoices:
            raise InputValidationError(f"Invoice {number} was not found")
        invoice = invoices[0]
        return {
            "invoice_number": invoice["name"],
            "amount_total": invoice.get("amount_total"),
            "payment_state": invoice.get("payment_state") or "unknown",
            "state": invoice.get("state"),
        }

    def create_ticket(
        self, credential: Credential, slots: Mapping[str, Any], context: HandlerContext
    ) -> dict[str, Any]:
        partner_id = self._find_or_create_partner(credential, context, slots)
        values = {
            "name": slots["subject"],
            "description": slots.get("description") or context.message,
            "partner_id": partner_id,
            "priority": "1",
        }
        ticket_id = self._execute(
            credential,
            "helpdesk.ticket",
            "create",
            {k: v for k, v in values.items() if v is not None},
            idempotent=False,
        )
        return {"ticket_id": ticket_id, "subject": slots["subject"]}

    def create_lead(
        self, credential: Credential, slots: Mapping[str, Any], context: HandlerContext
    ) -> dict[str, Any]:
        partner_id = self._find_or_create_partner(credential, context, slots)
        who = slots.get("name") or context.requester or "chat customer"
        values = {
            "name": f"Inquiry from {who}",
            "description": slots["description"],
            "partner_id": partner_id,
            "email_from": slots.get("email"),
            "phone": context.requester or slots.get("phone"),
            "type": "lead",
        }
        lead_id = self._execute(
            credential,
            "crm.lead",
            "create",
            {k: v for k, v in values.items() if v is not None},
            idempotent=False,
        )
        return {"lead_id": lead_id, "name": values["name"]}


__all__ = ["OdooHandler"]
