"""WhatsApp channel adapter.

Accepts either the flat ``{message, phone, userId}`` payload posted by the
dashboard integration or the WhatsApp Cloud API webhook envelope. Every
sender is upserted as a lead before the message is routed; a failed upsert
is logged and the reply goes out without a ``lead_id``. Cloud API senders
keep one conversation per tenant and phone number.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from collections.abc import Iterable, Mapping
from typing import Any, Optional

from ..conversations.models import (
    Channel,
    InboundMessage,
    OrchestrationResult,
    session_conversation_id,
)
from ..conversations.orchestrator import ResponseOrchestrator
from ..conversations.schemas import WhatsAppMessageRequest, WhatsAppReply, parse_model
from ..leads import LeadRepository
from .base import ChannelAdapter

logger = logging.getLogger(__name__)


def is_cloud_envelope(payload: Any) -> bool:
    return isinstance(payload, Mapping) and "entry" in payload


class WhatsAppAdapter(ChannelAdapter):
    channel_name = "whatsapp"

    def __init__(
        self,
        orchestrator: ResponseOrchestrator,
        *,
        leads: LeadRepository,
        webhook_secret: Optional[str] = None,
        max_message_length: Optional[int] = None,
    ) -> None:
        super().__init__(orchestrator, max_message_length=max_message_length)
        self.leads = leads
        self.webhook_secret = webhook_secret

    def verify_signature(self, body: bytes, headers: Mapping[str, str]) -> bool:
        if not self.webhook_secret:
            return True
        received = headers.get("X-Hub-Signature-256")
        if not received:
            return False
        digest = hmac.new(
            self.webhook_secret.encode("utf-8"), body, hashlib.sha256
        ).hexdigest()
        return hmac.compare_digest(received, f"sha256={digest}")

    def parse_incoming(
        self, payload: Any, params: Mapping[str, str]
    ) -> Iterable[InboundMessage]:
        if not is_cloud_envelope(payload):
            request = parse_model(WhatsAppMessageRequest, payload)
            yield InboundMessage(
                text=request.message,
                tenant_id=request.resolved_tenant_id or "",
                channel=Channel.WHATSAPP,
                conversation_id=request.conversation_id,
                visitor_id=request.phone,
            )
            return

        tenant_id = params.get("tenantId") or params.get("userId") or ""
        for entry in payload.get("entry") or []:
            for change in entry.get("changes") or []:
                value = change.get("value") or {}
                contacts = {c.get("wa_id"): c for c in value.get("contacts") or []}
                for message in value.get("messages") or []:
                    sender = str(message.get("from") or "")
                    message_type = message.get("type")
                    if message_type == "text":
                        text = (message.get("text") or {}).get("body", "")
                    elif message_type in {"image", "video", "document"}:
                        text = (message.get(message_type) or {}).get("caption", "")
                    else:
                        text = ""
                    if not text.strip():
                        logger.info(
                            "Skipping WhatsApp %s message without text from %s",
                            message_type,
                            sender,
                        )
                        continue
                    name = (contacts.get(sender) or {}).get("profile", {}).get("name")
                    yield InboundMessage(
                        text=text,
                        tenant_id=tenant_id,
                        channel=Channel.WHATSAPP,
                        conversation_id=session_conversation_id(tenant_id, sender),
                        visitor_id=sender,
                        visitor_context={"name": name} if name else {},
                    )

    def prepare(self, inbound: InboundMessage) -> dict[str, Any]:
        phone = inbound.visitor_id
        if not phone:
            return {"lead_id": None}
        try:
            lead = self.leads.upsert_by_phone(inbound.tenant_id, phone)
        except Exception as exc:
            logger.error(
                "Lead upsert failed for tenant %s phone %s: %s",
                inbound.tenant_id,
                phone,
                exc,
            )
            return {"lead_id": None}
        return {"lead_id": lead.id}

    def build_outgoing_payload(
        self, result: OrchestrationResult, extras: Mapping[str, Any]
    ) -> dict[str, Any]:
        reply = WhatsAppReply(
            response=result.response,
            conversation_id=result.conversation_id,
            source=result.source.value,
            lead_id=extras.get("lead_id"),
        )
        return reply.model_dump(by_alias=True)
