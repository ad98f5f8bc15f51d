"""Inbound message API: run the intent pipeline for one tenant message."""

from __future__ import annotations

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ..conversations.models import Turn
from ..core import runtime
from ..dispatch.pipeline import MessagePipeline, TenantUnavailableError

router = APIRouter(prefix="/api/tenants/{tenant_id}", tags=["messages"])

MAX_MESSAGE_LENGTH = 4000


class TurnIn(BaseModel):
    role: Literal["user", "assistant"]
    text: str


class MessageRequest(BaseModel):
    text: str = Field(max_length=MAX_MESSAGE_LENGTH)
    history: list[TurnIn] = Field(default_factory=list)
    requester: str | None = None


class MessageResponse(BaseModel):
    reply: str
    intent: str | None = None
    confidence: float | None = None
    source: str | None = None
    outcome: str
    reason: str | None = None
    provider: str | None = None
    missing_fields: list[str] = Field(default_factory=list)


def get_pipeline() -> MessagePipeline:
    return runtime.get_pipeline()


@router.post("/messages", response_model=MessageResponse)
def post_message(tenant_id: UUID, payload: MessageRequest) -> MessageResponse:
    """Resolve, dispatch and answer a customer message."""

    pipeline = get_pipeline()
    history = [Turn(role=t.role, text=t.text) for t in payload.history]
    try:
        result = pipeline.handle(
            tenant_id, payload.text, history, requester=payload.requester
        )
    except TenantUnavailableError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    outcome = result.outcome
    return MessageResponse(
        reply=result.reply,
        intent=result.intent.label.value if result.intent else None,
        confidence=result.intent.confidence if result.intent else None,
        source=result.intent.source if result.intent else None,
        outcome=outcome.kind.value,
        reason=outcome.reason.value if outcome.reason else None,
        provider=outcome.provider,
        missing_fields=list(outcome.missing_fields),
    )
