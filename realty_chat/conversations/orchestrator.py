"""Routing of one inbound message to a reply.

States: ``Start -> AgencyCheck -> (FallbackNoKnowledge | Generate) ->
Recorded -> Done``.

Messages about the agency itself are only answered generatively when the
tenant's training data holds matching knowledge; otherwise the visitor gets
a fixed fallback sentence. Every other message goes straight to the
responder without a retrieval round-trip. Upstream failures never escape:
they become the fallback or the apology reply.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Optional

from ..agency import is_agency_question
from ..errors import InvalidRequest, UpstreamUnavailable
from ..metrics import CHAT_REPLIES
from ..nlp import IntentClassifier
from ..responders import GenerationRequest, Responder
from ..retrieval import KnowledgeRetriever
from .models import (
    ConversationRecord,
    DecisionMode,
    InboundMessage,
    KnowledgeResult,
    OrchestrationDecision,
    OrchestrationResult,
    ReplySource,
    new_conversation_id,
)
from .recorder import ConversationRecorder

logger = logging.getLogger(__name__)

AGENCY_FALLBACK_REPLY = (
    "I don't have that information about our agency at the moment. Please "
    "contact our office directly for the most accurate information."
)
GENERATION_ERROR_REPLY = "I'm sorry, I encountered an error. Please try again."

#: Schedules ``func(*args)`` to run later, e.g. ``BackgroundTasks.add_task``.
Defer = Callable[..., Any]


class ResponseOrchestrator:
    """Coordinates classification, retrieval gating, generation and recording."""

    def __init__(
        self,
        *,
        retriever: KnowledgeRetriever,
        responder: Responder,
        recorder: ConversationRecorder,
        classifier: Optional[IntentClassifier] = None,
    ) -> None:
        self._retriever = retriever
        self._responder = responder
        self._recorder = recorder
        self._classifier = classifier or IntentClassifier()

    # ------------------------------------------------------------------
    # Entry point

    def handle(
        self, inbound: InboundMessage, *, defer: Optional[Defer] = None
    ) -> OrchestrationResult:
        """Produce the reply for ``inbound``.

        When ``defer`` is given the conversation record is handed to it
        instead of being written inline, so persistence does not delay the
        reply.
        """

        self.validate(inbound)
        if not inbound.conversation_id:
            inbound.conversation_id = new_conversation_id()
        intent = self._classifier.classify(inbound.text)
        agency = is_agency_question(inbound.text, inbound.agency_flag)

        knowledge = KnowledgeResult()
        if not agency:
            decision = OrchestrationDecision(
                DecisionMode.GENERATE, "not an agency question; retrieval skipped"
            )
        else:
            knowledge = self._retriever.retrieve(inbound.text, inbound.tenant_id)
            if knowledge.is_empty:
                decision = OrchestrationDecision(
                    DecisionMode.FALLBACK, "agency question without training data"
                )
            else:
                decision = OrchestrationDecision(
                    DecisionMode.GENERATE,
                    f"agency question grounded by {len(knowledge.qa_matches)} Q&A and "
                    f"{len(knowledge.file_matches)} file matches",
                )
        logger.info(
            "Routing message for tenant %s conversation %s: intent=%s agency=%s mode=%s",
            inbound.tenant_id,
            inbound.conversation_id,
            intent.label,
            agency,
            decision.mode.value,
        )

        if decision.mode is DecisionMode.FALLBACK:
            response, source = AGENCY_FALLBACK_REPLY, ReplySource.FALLBACK
        else:
            request = GenerationRequest(
                message=inbound.text,
                tenant_id=inbound.tenant_id,
                intent=intent,
                is_agency_question=agency,
                prior_messages=list(inbound.prior_messages),
                matches=knowledge.matches,
                visitor_context=dict(inbound.visitor_context),
            )
            response, source = self._generate(inbound, request)

        record = ConversationRecord(
            tenant_id=inbound.tenant_id,
            conversation_id=inbound.conversation_id,
            visitor_id=inbound.visitor_id,
            message=inbound.text,
            response=response,
            channel=inbound.channel,
        )
        if defer is not None:
            defer(self._recorder.record, record)
        else:
            self._recorder.record(record)
        CHAT_REPLIES.labels(channel=inbound.channel.value, source=source.value).inc()

        return OrchestrationResult(
            response=response,
            conversation_id=inbound.conversation_id,
            source=source,
            intent=intent,
            decision=decision,
        )

    # ------------------------------------------------------------------
    # Helpers

    @staticmethod
    def validate(inbound: InboundMessage) -> None:
        """Raise :class:`InvalidRequest` unless ``inbound`` can be routed."""

        if not inbound.text or not inbound.text.strip():
            raise InvalidRequest("Message is required")
        if not inbound.tenant_id or not str(inbound.tenant_id).strip():
            raise InvalidRequest("Tenant identifier is required")

    def _generate(
        self, inbound: InboundMessage, request: GenerationRequest
    ) -> tuple[str, ReplySource]:
        try:
            return self._responder.generate(request), ReplySource.GENERATED
        except UpstreamUnavailable as exc:
            logger.error(
                "Upstream %s failed for tenant %s (conversation=%s, message=%r): %s",
                exc.upstream,
                inbound.tenant_id,
                inbound.conversation_id,
                inbound.text[:80],
                exc,
            )
            return GENERATION_ERROR_REPLY, ReplySource.ERROR
        except Exception:
            logger.exception(
                "Generation failed unexpectedly for tenant %s (conversation=%s, message=%r)",
                inbound.tenant_id,
                inbound.conversation_id,
                inbound.text[:80],
            )
            return GENERATION_ERROR_REPLY, ReplySource.ERROR
