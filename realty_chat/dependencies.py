"""Process-wide collaborators for the HTTP layer.

Each factory builds its object once and caches it; routers receive them via
``Depends`` so tests can swap any of them with ``app.dependency_overrides``.
``STORAGE_BACKEND=memory`` replaces every PostgreSQL-backed store with an
in-process one.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from .channels import WebChatAdapter, WhatsAppAdapter, get_adapter
from .config import get_settings
from .conversations.orchestrator import ResponseOrchestrator
from .conversations.recorder import ConversationRecorder
from .conversations.repository import (
    ConversationRepository,
    InMemoryConversationRepository,
    PostgresConversationRepository,
)
from .core.db import get_database
from .leads import InMemoryLeadRepository, LeadRepository, PostgresLeadRepository
from .nlp import IntentClassifier
from .responders import OpenAIResponder, Responder, ScriptedResponder, create_openai_client
from .retrieval import (
    InMemoryTrainingDataStore,
    KnowledgeRetriever,
    PostgresTrainingDataStore,
    TrainingDataStore,
)

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_classifier() -> IntentClassifier:
    return IntentClassifier()


@lru_cache(maxsize=1)
def get_training_store() -> TrainingDataStore:
    settings = get_settings()
    if settings.uses_memory_storage:
        return InMemoryTrainingDataStore()
    return PostgresTrainingDataStore(
        get_database(), timeout=settings.retrieval_timeout_seconds
    )


@lru_cache(maxsize=1)
def get_conversation_repository() -> ConversationRepository:
    if get_settings().uses_memory_storage:
        return InMemoryConversationRepository()
    return PostgresConversationRepository(get_database())


@lru_cache(maxsize=1)
def get_lead_repository() -> LeadRepository:
    if get_settings().uses_memory_storage:
        return InMemoryLeadRepository()
    return PostgresLeadRepository(get_database())


@lru_cache(maxsize=1)
def get_retriever() -> KnowledgeRetriever:
    return KnowledgeRetriever(
        get_training_store(), max_results=get_settings().knowledge_max_results
    )


@lru_cache(maxsize=1)
def get_responder() -> Responder:
    settings = get_settings()
    if not settings.openai_api_key:
        logger.info("OPENAI_API_KEY not set; using scripted replies")
        return ScriptedResponder()
    client = create_openai_client(
        settings.openai_api_key, settings.generation_timeout_seconds
    )
    return OpenAIResponder(
        client,
        model=settings.openai_model,
        timeout=settings.generation_timeout_seconds,
        system_prompt=settings.system_prompt,
        lang=settings.openai_lang,
    )


@lru_cache(maxsize=1)
def get_orchestrator() -> ResponseOrchestrator:
    return ResponseOrchestrator(
        retriever=get_retriever(),
        responder=get_responder(),
        recorder=ConversationRecorder(get_conversation_repository()),
        classifier=get_classifier(),
    )


def get_web_adapter() -> WebChatAdapter:
    adapter_cls = get_adapter("web")
    return adapter_cls(
        get_orchestrator(),
        max_message_length=get_settings().chat_max_message_length,
    )


def get_whatsapp_adapter() -> WhatsAppAdapter:
    settings = get_settings()
    adapter_cls = get_adapter("whatsapp")
    return adapter_cls(
        get_orchestrator(),
        leads=get_lead_repository(),
        webhook_secret=settings.whatsapp_webhook_secret,
        max_message_length=settings.chat_max_message_length,
    )


def reset_dependency_caches() -> None:
    """Drop every cached collaborator; the next request rebuilds them."""

    for factory in (
        get_classifier,
        get_training_store,
        get_conversation_repository,
        get_lead_repository,
        get_retriever,
        get_responder,
        get_orchestrator,
        get_database,
    ):
        factory.cache_clear()
