"""Conversation domain: models, request schemas, storage and orchestration.

Only the models are re-exported here; import the orchestrator and
repositories from their modules directly.
"""

from .models import (
    Channel,
    ConversationRecord,
    InboundMessage,
    KnowledgeMatch,
    KnowledgeResult,
    Lead,
    PriorTurn,
    ReplySource,
    new_conversation_id,
)

__all__ = [
    "Channel",
    "ConversationRecord",
    "InboundMessage",
    "KnowledgeMatch",
    "KnowledgeResult",
    "Lead",
    "PriorTurn",
    "ReplySource",
    "new_conversation_id",
]
