"""Contract every chat channel adapter implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Any
from uuid import UUID

from ..conversations.models import NormalizedMessage


class ChannelAdapter(ABC):
    """Translate between one channel's webhook format and tenant messages."""

    #: Path segment under ``/api/tenants/{tenant_id}/channels/``.
    channel_name: str

    def __init__(self, *, tenant_id: UUID) -> None:
        self.tenant_id = tenant_id

    @abstractmethod
    def parse_incoming(
        self,
        payload: Mapping[str, Any],
        headers: Mapping[str, str],
        config: Mapping[str, Any],
    ) -> Iterable[NormalizedMessage]:
        """Yield the user messages carried by ``payload``; ignore delivery receipts."""

    def verify_signature(
        self,
        body: bytes,
        headers: Mapping[str, str],
        config: Mapping[str, Any],
    ) -> bool:
        """Return ``False`` when ``body`` was not signed by the channel.

        Channels without signed webhooks keep this permissive default.
        """

        return True

    @abstractmethod
    def build_outgoing_payload(
        self, recipient: str, text: str, config: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Prepare the channel API payload carrying ``text`` to ``recipient``."""
