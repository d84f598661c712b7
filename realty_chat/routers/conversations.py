"""Conversation history reads."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from ..conversations.repository import ConversationRepository
from ..conversations.schemas import HistoryRequest, HistoryResponse, parse_model
from ..dependencies import get_conversation_repository
from ..errors import InvalidRequest
from .common import read_json

router = APIRouter(prefix="/api", tags=["conversations"])


@router.post("/get-conversation-history", response_model=HistoryResponse)
async def get_conversation_history(
    request: Request,
    repository: ConversationRepository = Depends(get_conversation_repository),
) -> HistoryResponse:
    """Return the recorded turns of a conversation, oldest first."""
    body = parse_model(HistoryRequest, await read_json(request))
    if not body.conversation_id.strip():
        raise InvalidRequest("conversationId is required")
    if not (body.user_id or "").strip():
        raise InvalidRequest("userId is required")
    records = await run_in_threadpool(
        repository.list_history,
        body.conversation_id,
        tenant_id=body.user_id,
        limit=body.limit,
    )
    return HistoryResponse(messages=[r.as_dict() for r in records])
