"""Website chat widget adapter."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from ..conversations.models import Channel, InboundMessage, OrchestrationResult, PriorTurn
from ..conversations.schemas import ChatRequest, PreviousMessage, WebChatReply, parse_model
from ..leads import extract_lead_info
from .base import ChannelAdapter


def prior_turns(previous: Sequence[PreviousMessage]) -> list[PriorTurn]:
    """Pair widget history into (text, reply) turns, oldest first.

    ``{message, response}`` entries are already paired. ``{role, content}``
    entries are paired user-then-assistant; a trailing user entry without a
    reply is dropped.
    """

    turns: list[PriorTurn] = []
    pending: str | None = None
    for entry in previous:
        if entry.message is not None:
            turns.append(PriorTurn(text=entry.message, reply=entry.response or ""))
            continue
        if not entry.content:
            continue
        if entry.role == "user":
            pending = entry.content
        elif entry.role in ("assistant", "bot") and pending is not None:
            turns.append(PriorTurn(text=pending, reply=entry.content))
            pending = None
    return turns


class WebChatAdapter(ChannelAdapter):
    channel_name = "web"

    def parse_incoming(
        self, payload: Any, params: Mapping[str, str]
    ) -> Iterable[InboundMessage]:
        request = parse_model(ChatRequest, payload)
        visitor = request.visitor_info
        visitor_id = visitor.get("id") or visitor.get("visitorId")
        yield InboundMessage(
            text=request.message,
            tenant_id=request.resolved_tenant_id or "",
            channel=Channel.WEB,
            conversation_id=request.conversation_id,
            visitor_id=str(visitor_id) if visitor_id else None,
            visitor_context=dict(visitor),
            prior_messages=prior_turns(request.previous_messages),
            agency_flag=request.is_agency_question,
        )

    def prepare(self, inbound: InboundMessage) -> dict[str, Any]:
        return {"lead_info": extract_lead_info(inbound.text, inbound.visitor_context)}

    def build_outgoing_payload(
        self, result: OrchestrationResult, extras: Mapping[str, Any]
    ) -> dict[str, Any]:
        reply = WebChatReply(
            response=result.response,
            conversation_id=result.conversation_id,
            source=result.source.value,
            lead_info=extras.get("lead_info", {}),
        )
        return reply.model_dump(by_alias=True)
