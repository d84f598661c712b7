"""Domain models used by the routing pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import NAMESPACE_URL, uuid4, uuid5


class Channel(str, Enum):
    WEB = "web"
    WHATSAPP = "whatsapp"


class KnowledgeSource(str, Enum):
    QA_PAIR = "qa_pair"
    FILE_EXCERPT = "file_excerpt"


class DecisionMode(str, Enum):
    FALLBACK = "fallback"
    GENERATE = "generate"


class ReplySource(str, Enum):
    GENERATED = "generated"
    FALLBACK = "fallback"
    ERROR = "error"


def new_conversation_id() -> str:
    """Return a collision-resistant identifier for a new conversation."""

    return f"conv_{uuid4().hex}"


def session_conversation_id(tenant_id: str, visitor_id: str) -> str:
    """Stable conversation id for channels that never echo one back.

    The same tenant and sender always map to the same id.
    """

    return f"conv_{uuid5(NAMESPACE_URL, f'{tenant_id}/{visitor_id}').hex}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PriorTurn:
    """One earlier exchange of the conversation, oldest first."""

    text: str
    reply: str


@dataclass
class InboundMessage:
    """Channel-independent representation of a visitor message."""

    text: str
    tenant_id: str
    channel: Channel
    conversation_id: str | None = None
    visitor_id: str | None = None
    visitor_context: dict[str, Any] = field(default_factory=dict)
    prior_messages: list[PriorTurn] = field(default_factory=list)
    agency_flag: bool | None = None


@dataclass
class ClassifiedIntent:
    label: str
    confidence: float
    entities: dict[str, Any] = field(default_factory=dict)
    matched_pattern: str | None = None


@dataclass(frozen=True)
class KnowledgeMatch:
    source: KnowledgeSource
    score: float
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "source": self.source.value,
            "score": self.score,
            "content": self.content,
            **self.metadata,
        }


@dataclass
class KnowledgeResult:
    """Matches returned by a single retrieval attempt."""

    qa_matches: list[KnowledgeMatch] = field(default_factory=list)
    file_matches: list[KnowledgeMatch] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.qa_matches and not self.file_matches

    @property
    def matches(self) -> list[KnowledgeMatch]:
        return [*self.qa_matches, *self.file_matches]


@dataclass(frozen=True)
class OrchestrationDecision:
    mode: DecisionMode
    reasoning: str


@dataclass
class OrchestrationResult:
    response: str
    conversation_id: str
    source: ReplySource
    intent: ClassifiedIntent
    decision: OrchestrationDecision


@dataclass
class ConversationRecord:
    """One persisted message/response pair."""

    tenant_id: str
    conversation_id: str
    message: str
    response: str
    channel: Channel
    visitor_id: str | None = None
    created_at: datetime = field(default_factory=_utcnow)
    id: int | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "message": self.message,
            "response": self.response,
            "created_at": self.created_at.isoformat(),
            "visitor_id": self.visitor_id,
            "channel": self.channel.value,
        }


@dataclass
class Lead:
    tenant_id: str
    phone: str
    first_name: str = "WhatsApp"
    last_name: str = "Contact"
    email: str | None = None
    source: str = "whatsapp"
    status: str = "new"
    id: int | None = None
    created_at: datetime = field(default_factory=_utcnow)
