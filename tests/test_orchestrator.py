"""Routing decisions of the response orchestrator, using counting doubles."""

import pytest

from realty_chat.conversations.models import (
    Channel,
    DecisionMode,
    KnowledgeMatch,
    KnowledgeResult,
    KnowledgeSource,
    ReplySource,
)
from realty_chat.conversations.orchestrator import (
    AGENCY_FALLBACK_REPLY,
    GENERATION_ERROR_REPLY,
    ResponseOrchestrator,
)
from realty_chat.conversations.recorder import ConversationRecorder
from realty_chat.conversations.repository import InMemoryConversationRepository
from realty_chat.errors import InvalidRequest, UpstreamUnavailable
from realty_chat.metrics import CHAT_REPLIES


class CountingRetriever:
    def __init__(self, result=None):
        self.result = result or KnowledgeResult()
        self.calls = []

    def retrieve(self, text, tenant_id, **kwargs):
        self.calls.append((text, tenant_id))
        return self.result


class CountingResponder:
    def __init__(self, reply="Generated reply", exc=None):
        self.reply = reply
        self.exc = exc
        self.requests = []

    def generate(self, request):
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        return self.reply


class FailingRepository:
    def add_record(self, record):
        raise RuntimeError("disk full")


QA = KnowledgeMatch(
    KnowledgeSource.QA_PAIR,
    1.0,
    "Q: What is your company name?\nA: Sunrise Realty.",
    {"answer": "Sunrise Realty."},
)


@pytest.fixture
def repository():
    return InMemoryConversationRepository()


def _orchestrator(repository, retriever=None, responder=None):
    return ResponseOrchestrator(
        retriever=retriever or CountingRetriever(),
        responder=responder or CountingResponder(),
        recorder=ConversationRecorder(repository),
    )


def test_non_agency_message_skips_retrieval(repository, make_inbound):
    retriever, responder = CountingRetriever(), CountingResponder()
    result = _orchestrator(repository, retriever, responder).handle(make_inbound("Hi there"))
    assert retriever.calls == []
    assert len(responder.requests) == 1
    assert result.source is ReplySource.GENERATED
    assert result.response == "Generated reply"
    assert result.intent.label == "greeting"
    assert result.decision.mode is DecisionMode.GENERATE


def test_agency_question_without_knowledge_falls_back(repository, make_inbound):
    retriever, responder = CountingRetriever(), CountingResponder()
    result = _orchestrator(repository, retriever, responder).handle(
        make_inbound("What is your company name?")
    )
    assert result.response == AGENCY_FALLBACK_REPLY
    assert result.source is ReplySource.FALLBACK
    assert len(retriever.calls) == 1
    assert responder.requests == []
    assert repository.records[0].response == AGENCY_FALLBACK_REPLY


def test_agency_question_with_knowledge_is_grounded(repository, make_inbound):
    retriever = CountingRetriever(KnowledgeResult(qa_matches=[QA]))
    responder = CountingResponder()
    result = _orchestrator(repository, retriever, responder).handle(
        make_inbound("What is your company name?")
    )
    assert result.source is ReplySource.GENERATED
    request = responder.requests[0]
    assert request.is_agency_question is True
    assert request.matches == [QA]


def test_supplied_agency_flag_is_trusted(repository, make_inbound):
    retriever = CountingRetriever()
    result = _orchestrator(repository, retriever).handle(
        make_inbound("Hi there", agency_flag=True)
    )
    assert result.source is ReplySource.FALLBACK
    assert len(retriever.calls) == 1


def test_generation_failure_returns_apology_and_records(repository, make_inbound, caplog):
    responder = CountingResponder(exc=UpstreamUnavailable("generation", "HTTP 503"))
    result = _orchestrator(repository, responder=responder).handle(
        make_inbound("Do you have villas?")
    )
    assert result.response == GENERATION_ERROR_REPLY
    assert result.source is ReplySource.ERROR
    assert len(responder.requests) == 1
    assert [r.response for r in repository.records] == [GENERATION_ERROR_REPLY]
    assert "Upstream generation failed for tenant tenant-1" in caplog.text


def test_unexpected_generation_error_returns_apology_and_records(
    repository, make_inbound, caplog
):
    responder = CountingResponder(exc=ValueError("unexpected response shape"))
    result = _orchestrator(repository, responder=responder).handle(
        make_inbound("Do you have villas?")
    )
    assert result.response == GENERATION_ERROR_REPLY
    assert result.source is ReplySource.ERROR
    assert len(repository.records) == 1
    assert "Generation failed unexpectedly for tenant tenant-1" in caplog.text


def test_conversation_id_generated_once_and_kept(repository, make_inbound):
    orchestrator = _orchestrator(repository)
    first = orchestrator.handle(make_inbound("Hi there"))
    assert first.conversation_id.startswith("conv_")
    second = orchestrator.handle(
        make_inbound("Thanks", conversation_id=first.conversation_id)
    )
    assert second.conversation_id == first.conversation_id
    other = orchestrator.handle(make_inbound("Hi there"))
    assert other.conversation_id != first.conversation_id


def test_every_reply_is_recorded_once(repository, make_inbound):
    orchestrator = _orchestrator(repository)
    orchestrator.handle(make_inbound("Hi there", channel=Channel.WHATSAPP, visitor_id="+351900"))
    assert len(repository.records) == 1
    record = repository.records[0]
    assert record.channel is Channel.WHATSAPP
    assert record.visitor_id == "+351900"
    assert record.message == "Hi there"


def test_persistence_failure_does_not_change_reply(make_inbound):
    orchestrator = _orchestrator(FailingRepository())
    result = orchestrator.handle(make_inbound("Hi there"))
    assert result.response == "Generated reply"
    assert result.source is ReplySource.GENERATED


def test_deferred_recording(repository, make_inbound):
    scheduled = []
    result = _orchestrator(repository).handle(
        make_inbound("Hi there"), defer=lambda fn, *args: scheduled.append((fn, args))
    )
    assert repository.records == []
    fn, args = scheduled[0]
    fn(*args)
    assert repository.records[0].conversation_id == result.conversation_id


@pytest.mark.parametrize("text,tenant", [("   ", "tenant-1"), ("", "tenant-1"), ("Hi", "")])
def test_invalid_messages_are_rejected(repository, make_inbound, text, tenant):
    retriever, responder = CountingRetriever(), CountingResponder()
    with pytest.raises(InvalidRequest):
        _orchestrator(repository, retriever, responder).handle(make_inbound(text, tenant))
    assert retriever.calls == [] and responder.requests == []
    assert repository.records == []


def test_reply_counter_increments(repository, make_inbound):
    counter = CHAT_REPLIES.labels(channel="web", source="fallback")
    before = counter._value.get()
    _orchestrator(repository).handle(make_inbound("Where is your office?"))
    assert counter._value.get() == before + 1
