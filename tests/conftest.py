import os
import pathlib
import sys
import tempfile

import pytest
from fastapi.testclient import TestClient

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

# Keep log files out of the working tree when the app module is imported.
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="realty-chat-logs-"))

from realty_chat.config import reset_settings_cache
from realty_chat.conversations.models import Channel, InboundMessage
from realty_chat.dependencies import reset_dependency_caches
from realty_chat.rate_limit import limiter


@pytest.fixture
def memory_backend(monkeypatch):
    """Run the service on in-memory stores with scripted replies."""
    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("WHATSAPP_WEBHOOK_SECRET", raising=False)
    monkeypatch.delenv("CHAT_MAX_MESSAGE_LENGTH", raising=False)
    reset_settings_cache()
    reset_dependency_caches()
    yield
    reset_settings_cache()
    reset_dependency_caches()


@pytest.fixture
def client(memory_backend):
    from realty_chat.main import app

    limiter.reset()
    app.dependency_overrides.clear()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_inbound():
    def _make(text="Hi there", tenant_id="tenant-1", **kwargs):
        kwargs.setdefault("channel", Channel.WEB)
        return InboundMessage(text=text, tenant_id=tenant_id, **kwargs)

    return _make
