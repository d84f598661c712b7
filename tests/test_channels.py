import hashlib
import hmac

import pytest

from realty_chat.channels import WebChatAdapter, WhatsAppAdapter, get_adapter
from realty_chat.channels.web import prior_turns
from realty_chat.conversations.models import Channel, PriorTurn
from realty_chat.conversations.orchestrator import ResponseOrchestrator
from realty_chat.conversations.recorder import ConversationRecorder
from realty_chat.conversations.repository import InMemoryConversationRepository
from realty_chat.conversations.schemas import PreviousMessage
from realty_chat.errors import InvalidRequest
from realty_chat.leads import InMemoryLeadRepository
from realty_chat.responders import ScriptedResponder
from realty_chat.retrieval import InMemoryTrainingDataStore, KnowledgeRetriever


@pytest.fixture
def repository():
    return InMemoryConversationRepository()


@pytest.fixture
def orchestrator(repository):
    return ResponseOrchestrator(
        retriever=KnowledgeRetriever(InMemoryTrainingDataStore()),
        responder=ScriptedResponder(),
        recorder=ConversationRecorder(repository),
    )


class BrokenLeads:
    def upsert_by_phone(self, tenant_id, phone):
        raise RuntimeError("leads table missing")


def _cloud_envelope(*messages):
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "changes": [
                    {
                        "value": {
                            "contacts": [{"wa_id": "351900", "profile": {"name": "Rita"}}],
                            "messages": list(messages),
                        }
                    }
                ]
            }
        ],
    }


def test_registry_lookup():
    assert get_adapter("WEB") is WebChatAdapter
    assert get_adapter("whatsapp") is WhatsAppAdapter
    with pytest.raises(KeyError):
        get_adapter("telegram")


def test_prior_turns_pairs_role_entries():
    previous = [
        PreviousMessage(role="user", content="Hello"),
        PreviousMessage(role="assistant", content="Hi!"),
        PreviousMessage(message="Any villas?", response="Yes, three."),
        PreviousMessage(role="user", content="dangling"),
    ]
    assert prior_turns(previous) == [
        PriorTurn("Hello", "Hi!"),
        PriorTurn("Any villas?", "Yes, three."),
    ]


def test_web_adapter_maps_payload_and_reply(orchestrator, repository):
    adapter = WebChatAdapter(orchestrator)
    [reply] = adapter.process(
        {
            "message": "Hi there, reach me on ana@example.com",
            "tenantId": "tenant-1",
            "conversationId": "conv_existing",
            "visitorInfo": {"id": "visitor-9", "name": "Ana"},
        }
    )
    assert reply["conversationId"] == "conv_existing"
    assert reply["source"] == "generated"
    assert reply["response"] == ScriptedResponder.GREETING
    assert reply["leadInfo"]["email"] == "ana@example.com"
    assert repository.records[0].visitor_id == "visitor-9"


def test_web_adapter_rejects_missing_message(orchestrator):
    with pytest.raises(InvalidRequest, match="message is required"):
        WebChatAdapter(orchestrator).process({"userId": "tenant-1"})


def test_web_adapter_rejects_long_message(orchestrator):
    adapter = WebChatAdapter(orchestrator, max_message_length=10)
    with pytest.raises(InvalidRequest, match="too long"):
        adapter.process({"message": "x" * 11, "userId": "tenant-1"})


def test_whatsapp_flat_payload_upserts_lead(orchestrator, repository):
    leads = InMemoryLeadRepository()
    adapter = WhatsAppAdapter(orchestrator, leads=leads)
    payload = {"message": "Hi there", "phone": "+351900", "userId": "tenant-1"}
    first = adapter.process(payload)[0]
    second = adapter.process(payload)[0]
    assert first["lead_id"] == second["lead_id"] == 1
    assert first["source"] == "generated"
    assert repository.records[0].channel is Channel.WHATSAPP


def test_whatsapp_requires_phone(orchestrator):
    adapter = WhatsAppAdapter(orchestrator, leads=InMemoryLeadRepository())
    with pytest.raises(InvalidRequest, match="phone is required"):
        adapter.process({"message": "Hi", "userId": "tenant-1"})


def test_whatsapp_lead_failure_does_not_block_reply(orchestrator, caplog):
    adapter = WhatsAppAdapter(orchestrator, leads=BrokenLeads())
    [reply] = adapter.process({"message": "Hi there", "phone": "+351900", "userId": "t1"})
    assert reply["lead_id"] is None
    assert reply["response"] == ScriptedResponder.GREETING
    assert "Lead upsert failed for tenant t1" in caplog.text


def test_whatsapp_cloud_envelope(orchestrator, repository):
    adapter = WhatsAppAdapter(orchestrator, leads=InMemoryLeadRepository())
    payload = _cloud_envelope(
        {"from": "351900", "type": "text", "text": {"body": "Hi there"}},
        {"from": "351900", "type": "sticker", "sticker": {}},
    )
    replies = adapter.process(payload, {"tenantId": "tenant-1"})
    assert len(replies) == 1
    record = repository.records[0]
    assert record.tenant_id == "tenant-1"
    assert record.visitor_id == "351900"


def test_whatsapp_signature_verification(orchestrator):
    adapter = WhatsAppAdapter(
        orchestrator, leads=InMemoryLeadRepository(), webhook_secret="s3cret"
    )
    body = b'{"message": "Hi"}'
    digest = hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()
    assert adapter.verify_signature(body, {"X-Hub-Signature-256": f"sha256={digest}"})
    assert not adapter.verify_signature(body, {"X-Hub-Signature-256": "sha256=bad"})
    assert not adapter.verify_signature(body, {})


def test_whatsapp_without_secret_accepts_everything(orchestrator):
    adapter = WhatsAppAdapter(orchestrator, leads=InMemoryLeadRepository())
    assert adapter.verify_signature(b"{}", {})


def test_whatsapp_cloud_sender_keeps_one_conversation(orchestrator, repository):
    adapter = WhatsAppAdapter(orchestrator, leads=InMemoryLeadRepository())
    text = {"from": "351900", "type": "text", "text": {"body": "Hi there"}}
    [first] = adapter.process(_cloud_envelope(text), {"tenantId": "t1"})
    [second] = adapter.process(_cloud_envelope(text), {"tenantId": "t1"})
    [other_tenant] = adapter.process(_cloud_envelope(text), {"tenantId": "t2"})
    assert first["conversationId"] == second["conversationId"]
    assert first["conversationId"].startswith("conv_")
    assert other_tenant["conversationId"] != first["conversationId"]
    assert len(repository.list_history(first["conversationId"], tenant_id="t1")) == 2
