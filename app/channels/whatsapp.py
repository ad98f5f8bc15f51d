"""WhatsApp Cloud API channel adapter."""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from ..conversations.models import NormalizedMessage
from .base import ChannelAdapter


def _interactive_text(interactive: Mapping[str, Any]) -> str:
    for key in ("button_reply", "list_reply"):
        reply = interactive.get(key) or {}
        if reply.get("title"):
            return str(reply["title"])
    return str(interactive.get("text") or interactive.get("title") or "")


class WhatsAppAdapter(ChannelAdapter):
    channel_name = "whatsapp"

    @staticmethod
    def verify_subscription(
        params: Mapping[str, str], verify_token: str | None
    ) -> str | None:
        """Return ``hub.challenge`` when the subscription request is genuine."""

        if not verify_token:
            return None
        if params.get("hub.mode") != "subscribe":
            return None
        if not hmac.compare_digest(params.get("hub.verify_token") or "", verify_token):
            return None
        return params.get("hub.challenge")

    def verify_signature(
        self,
        body: bytes,
        headers: Mapping[str, str],
        config: Mapping[str, Any],
    ) -> bool:
        secret = (config or {}).get("app_secret")
        if not secret:
            return True
        received = headers.get("X-Hub-Signature-256") or headers.get("x-hub-signature-256")
        if not received:
            return False
        digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
        expected = f"sha256={digest}"
        return hmac.compare_digest(received, expected)

    def parse_incoming(
        self,
        payload: Mapping[str, Any],
        headers: Mapping[str, str],
        config: Mapping[str, Any],
    ) -> Iterable[NormalizedMessage]:
        """Yield text and interactive replies; media and status updates are skipped."""

        for entry in payload.get("entry", []):
            for change in entry.get("changes", []):
                value = change.get("value", {})
                contacts = {c.get("wa_id"): c for c in value.get("contacts", [])}
                for message in value.get("messages", []):
                    message_type = message.get("type")
                    if message_type == "text":
                        text = (message.get("text") or {}).get("body", "")
                    elif message_type == "interactive":
                        text = _interactive_text(message.get("interactive") or {})
                    else:
                        continue
                    if not text.strip():
                        continue
                    sender_id = str(message.get("from") or "")
                    contact = contacts.get(sender_id, {})
                    timestamp = message.get("timestamp")
                    try:
                        sent_at = datetime.fromtimestamp(int(timestamp), tz=timezone.utc)
                    except (ValueError, TypeError):
                        sent_at = datetime.now(timezone.utc)
                    yield NormalizedMessage(
                        tenant_id=self.tenant_id,
                        channel=self.channel_name,
                        external_conversation_id=sender_id,
                        sender_id=sender_id,
                        sender_name=(contact.get("profile") or {}).get("name"),
                        text=text,
                        metadata={
                            "message_id": message.get("id"),
                            "phone_number_id": (value.get("metadata") or {}).get(
                                "phone_number_id"
                            ),
                        },
                        sent_at=sent_at,
                    )

    def build_outgoing_payload(
        self, recipient: str, text: str, config: Mapping[str, Any]
    ) -> dict[str, Any]:
        return {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": recipient,
            "type": "text",
            "text": {"preview_url": False, "body": text},
        }
