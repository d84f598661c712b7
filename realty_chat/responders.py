"""Generative answer services.

:class:`OpenAIResponder` renders a :class:`GenerationRequest` into a chat
completion call. :class:`ScriptedResponder` answers deterministically when no
``OPENAI_API_KEY`` is configured so the service stays usable in development
and CI without network access.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import openai

from .conversations.models import ClassifiedIntent, KnowledgeMatch, KnowledgeSource, PriorTurn
from .errors import UpstreamUnavailable
from .nlp import detect_language

logger = logging.getLogger(__name__)

MAX_CONTEXT_CHARS = 4000

BASE_PROMPT = (
    "You are an AI assistant for a real estate agency. "
    "Respond in a helpful, friendly manner."
)
AGENCY_PROMPT = (
    "This is a question about our agency. ONLY use the provided training data "
    "to answer this question. DO NOT make up information about the agency."
)
GENERAL_PROMPT = (
    "Follow these guidelines:\n"
    "- Always be accurate and specific.\n"
    "- If you don't know something, say so rather than making up information.\n"
    "- Keep responses concise and easy to understand.\n"
    "- Be friendly and conversational in tone."
)


@dataclass
class GenerationRequest:
    """Structured grounding payload handed to a responder."""

    message: str
    tenant_id: str
    intent: ClassifiedIntent
    is_agency_question: bool = False
    prior_messages: List[PriorTurn] = field(default_factory=list)
    matches: List[KnowledgeMatch] = field(default_factory=list)
    visitor_context: Dict[str, Any] = field(default_factory=dict)


class Responder(Protocol):
    """Produce a reply or raise :class:`UpstreamUnavailable`."""

    def generate(self, request: GenerationRequest) -> str: ...


def build_knowledge_context(matches: List[KnowledgeMatch], max_chars: int = MAX_CONTEXT_CHARS) -> str:
    """Join matches into labelled Q&A and document sections."""

    qa = [m.content for m in matches if m.source is KnowledgeSource.QA_PAIR]
    files = [m.content for m in matches if m.source is KnowledgeSource.FILE_EXCERPT]
    sections = []
    if qa:
        sections.append("### Q&A CONTENT ###\n" + "\n\n".join(qa))
    if files:
        sections.append("### DOCUMENT CONTENT ###\n" + "\n\n".join(files))
    context = "\n\n".join(sections)
    if len(context) > max_chars:
        context = context[:max_chars] + "..."
    return context


class OpenAIResponder:
    """Chat-completions backed responder."""

    def __init__(
        self,
        client: Any,
        *,
        model: str = "gpt-4o-mini",
        timeout: float | None = None,
        system_prompt: Optional[str] = None,
        lang: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 500,
    ) -> None:
        self._client = client
        self._model = model
        self._timeout = timeout
        self._system_prompt = system_prompt
        self._lang = lang
        self._temperature = temperature
        self._max_tokens = max_tokens

    def _system_content(self, request: GenerationRequest) -> str:
        parts = [f"{self._system_prompt} {BASE_PROMPT}" if self._system_prompt else BASE_PROMPT]
        context = build_knowledge_context(request.matches)
        if request.is_agency_question:
            parts.append(AGENCY_PROMPT)
            if context:
                parts.append(f"Here is information about our agency:\n{context}")
        else:
            parts.append(GENERAL_PROMPT)
            if context:
                parts.append(
                    "Here is relevant information from our knowledge base that "
                    f"may help with your response:\n{context}"
                )
        visitor_name = request.visitor_context.get("name")
        if visitor_name:
            parts.append(f"The visitor's name is {visitor_name}.")
        lang = self._lang or detect_language(request.message)
        parts.append(
            f"Reply in {lang}." if lang else "Reply in the same language as the question."
        )
        return "\n\n".join(parts)

    def build_messages(self, request: GenerationRequest) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": self._system_content(request)}]
        for turn in request.prior_messages:
            messages.append({"role": "user", "content": turn.text})
            messages.append({"role": "assistant", "content": turn.reply})
        messages.append({"role": "user", "content": request.message})
        return messages

    def generate(self, request: GenerationRequest) -> str:
        try:
            completion = self._client.chat.completions.create(
                model=self._model,
                messages=self.build_messages(request),
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                timeout=self._timeout,
            )
        except openai.OpenAIError as exc:
            raise UpstreamUnavailable("generation", str(exc)) from exc
        content = completion.choices[0].message.content if completion.choices else None
        if not content or not content.strip():
            raise UpstreamUnavailable("generation", "empty completion")
        return content.strip()


class ScriptedResponder:
    """Deterministic replies used when no LLM is configured."""

    GREETING = (
        "Hello! 👋 I'm your personal real estate assistant. How can I help you "
        "today? Are you looking to buy, sell, or rent a property?"
    )
    PROPERTY = (
        "I'd be happy to help you find the perfect property! Could you tell me a "
        "bit more about what you're looking for? For example, are you interested "
        "in a villa, apartment, or house? And do you have a specific location or "
        "budget in mind?"
    )
    DEFAULT = (
        "Thank you for your message. I'm your personal real estate assistant and "
        "I'm here to help you find your dream property. Please let me know what "
        "you're looking for, and I'll be happy to assist you!"
    )

    def generate(self, request: GenerationRequest) -> str:
        for match in request.matches:
            if match.source is KnowledgeSource.QA_PAIR and match.metadata.get("answer"):
                return str(match.metadata["answer"])
        if request.intent.label == "greeting":
            return self.GREETING
        if request.intent.label == "property_inquiry":
            return self.PROPERTY
        return self.DEFAULT


def create_openai_client(api_key: str, timeout: float) -> openai.OpenAI:
    # Retries are disabled: one attempt per request, expiry counts as failure.
    return openai.OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
