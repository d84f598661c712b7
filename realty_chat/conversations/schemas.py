"""Pydantic schemas for the chat HTTP endpoints."""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import InvalidRequest

ModelT = TypeVar("ModelT", bound=BaseModel)


class PreviousMessage(BaseModel):
    """A prior turn sent by the widget.

    The widget sends either ``{role, content}`` entries or already paired
    ``{message, response}`` entries.
    """

    model_config = ConfigDict(extra="ignore")

    role: str | None = None
    content: str | None = None
    message: str | None = None
    response: str | None = None


class ChatRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    message: str
    user_id: str | None = Field(default=None, alias="userId")
    tenant_id: str | None = Field(default=None, alias="tenantId")
    conversation_id: str | None = Field(default=None, alias="conversationId")
    visitor_info: dict[str, Any] = Field(default_factory=dict, alias="visitorInfo")
    previous_messages: list[PreviousMessage] = Field(
        default_factory=list, alias="previousMessages"
    )
    is_agency_question: bool | None = Field(default=None, alias="isAgencyQuestion")

    @field_validator("visitor_info", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return value or {}

    @property
    def resolved_tenant_id(self) -> str | None:
        return self.tenant_id or self.user_id


class WhatsAppMessageRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    message: str
    phone: str
    user_id: str | None = Field(default=None, alias="userId")
    tenant_id: str | None = Field(default=None, alias="tenantId")
    conversation_id: str | None = Field(default=None, alias="conversationId")

    @property
    def resolved_tenant_id(self) -> str | None:
        return self.tenant_id or self.user_id


class ChatReply(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response: str
    conversation_id: str = Field(serialization_alias="conversationId")
    source: str


class WebChatReply(ChatReply):
    lead_info: dict[str, Any] = Field(default_factory=dict, serialization_alias="leadInfo")


class WhatsAppReply(ChatReply):
    lead_id: int | None = None


class IntentAnalysisRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    message: str
    user_id: str | None = Field(default=None, alias="userId")
    conversation_id: str | None = Field(default=None, alias="conversationId")
    previous_messages: list[PreviousMessage] = Field(
        default_factory=list, alias="previousMessages"
    )
    visitor_info: dict[str, Any] | None = Field(default=None, alias="visitorInfo")


class IntentAnalysis(BaseModel):
    intent: str
    confidence: float
    entities: dict[str, Any] = Field(default_factory=dict)
    debug_info: dict[str, Any] = Field(default_factory=dict)


class TrainingSearchRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    query: str
    user_id: str | None = Field(default=None, alias="userId")
    include_qa: bool = Field(default=True, alias="includeQA")
    include_files: bool = Field(default=True, alias="includeFiles")
    max_results: int = Field(default=5, alias="maxResults", ge=1, le=50)


class TrainingSearchResponse(BaseModel):
    qa_matches: list[dict[str, Any]]
    file_content: list[dict[str, Any]]


class HistoryRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    conversation_id: str = Field(alias="conversationId")
    user_id: str | None = Field(default=None, alias="userId")
    limit: int = Field(default=10, ge=1, le=200)


class HistoryResponse(BaseModel):
    messages: list[dict[str, Any]]


def _describe(exc: ValidationError) -> str:
    error = exc.errors()[0]
    field = ".".join(str(part) for part in error.get("loc", ())) or "body"
    if error.get("type") == "missing":
        return f"{field} is required"
    return f"Invalid {field}: {error.get('msg')}"


def parse_model(model: type[ModelT], payload: Any) -> ModelT:
    """Validate ``payload`` against ``model`` or raise :class:`InvalidRequest`."""

    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise InvalidRequest(_describe(exc)) from exc
