"""Chat entry points for the website widget and WhatsApp."""

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from ..channels import WebChatAdapter, WhatsAppAdapter
from ..channels.whatsapp import is_cloud_envelope
from ..dependencies import get_web_adapter, get_whatsapp_adapter
from ..rate_limit import chat_rate_limit, limiter
from .common import decode_json, read_json

router = APIRouter(prefix="/api", tags=["chat"])


@router.post("/chatbot-response")
@limiter.limit(chat_rate_limit)
async def chatbot_response(
    request: Request,
    background_tasks: BackgroundTasks,
    adapter: WebChatAdapter = Depends(get_web_adapter),
) -> dict[str, Any]:
    """Answer one website chat message.

    The exchange is recorded in a background task after the reply is sent.
    """
    payload = await read_json(request)
    replies = await run_in_threadpool(
        adapter.process, payload, defer=background_tasks.add_task
    )
    return replies[0]


@router.post("/process-whatsapp-message")
@limiter.limit(chat_rate_limit)
async def process_whatsapp_message(
    request: Request,
    background_tasks: BackgroundTasks,
    adapter: WhatsAppAdapter = Depends(get_whatsapp_adapter),
) -> Any:
    """Answer a WhatsApp message posted flat or as a Cloud API webhook.

    Cloud API envelopes name no tenant, so ``tenantId`` (or ``userId``) is
    read from the query string for them.
    """
    body = await request.body()
    if not adapter.verify_signature(body, request.headers):
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"error": "Invalid signature"},
        )
    payload = decode_json(body)
    replies = await run_in_threadpool(
        adapter.process,
        payload,
        dict(request.query_params),
        defer=background_tasks.add_task,
    )
    if is_cloud_envelope(payload):
        if not replies:
            return JSONResponse(
                status_code=status.HTTP_202_ACCEPTED, content={"replies": []}
            )
        return {"replies": replies}
    return replies[0]
