"""Webhook routes for external messaging channels."""

from __future__ import annotations

import json
import logging
import os
from typing import Any
from uuid import UUID

from fastapi import APIRouter, HTTPException, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, PlainTextResponse

from ..channels import WhatsAppAdapter, get_adapter
from ..conversations.history import InMemoryHistoryStore
from ..conversations.models import Turn
from ..core import runtime
from ..dispatch.pipeline import MessagePipeline, TenantUnavailableError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


def get_pipeline() -> MessagePipeline:
    return runtime.get_pipeline()


def get_history_store() -> InMemoryHistoryStore:
    return runtime.get_history_store()


def _channel_config(channel: str) -> dict[str, Any]:
    if channel == WhatsAppAdapter.channel_name:
        return {"app_secret": os.getenv("WHATSAPP_APP_SECRET")}
    return {}


@router.get("/{tenant_id}/whatsapp", response_class=PlainTextResponse)
def verify_whatsapp(tenant_id: UUID, request: Request) -> PlainTextResponse:
    """Answer the WhatsApp subscription handshake with ``hub.challenge``."""

    challenge = WhatsAppAdapter.verify_subscription(
        request.query_params, os.getenv("WHATSAPP_VERIFY_TOKEN")
    )
    if challenge is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Verification failed")
    return PlainTextResponse(challenge)


@router.post("/{tenant_id}/{channel}")
async def ingest_webhook(tenant_id: UUID, channel: str, request: Request) -> Response:
    body_bytes = await request.body()
    try:
        payload = json.loads(body_bytes.decode("utf-8")) if body_bytes else {}
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid JSON payload: {exc}") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Payload must be a JSON object")

    channel_name = channel.lower()
    try:
        adapter_cls = get_adapter(channel_name)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    config = _channel_config(channel_name)
    adapter = adapter_cls(tenant_id=tenant_id)
    if not adapter.verify_signature(body_bytes, request.headers, config):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    messages = list(adapter.parse_incoming(payload, request.headers, config))
    if not messages:
        return Response(status_code=status.HTTP_202_ACCEPTED)

    pipeline = get_pipeline()
    history = get_history_store()
    replies = []
    for message in messages:
        context = history.context(tenant_id, message.external_conversation_id)
        try:
            result = await run_in_threadpool(
                pipeline.handle,
                tenant_id,
                message.text,
                context.turns,
                requester=message.sender_id,
            )
        except TenantUnavailableError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        history.append(
            tenant_id,
            message.external_conversation_id,
            Turn(role="user", text=message.text),
            Turn(role="assistant", text=result.reply),
        )
        replies.append(adapter.build_outgoing_payload(message.sender_id, result.reply, config))
    logger.info("Processed %d %s message(s) for tenant %s", len(replies), channel_name, tenant_id)
    return JSONResponse({"processed_messages": len(replies), "replies": replies})
