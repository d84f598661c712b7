from realty_chat.config import get_settings, reset_settings_cache


def test_defaults(monkeypatch):
    for name in (
        "DATABASE_URL",
        "STORAGE_BACKEND",
        "OPENAI_API_KEY",
        "OPENAI_MODEL",
        "GENERATION_TIMEOUT_SECONDS",
        "KNOWLEDGE_MAX_RESULTS",
        "CHAT_RATE_LIMIT",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PGHOST", "pg.internal")
    reset_settings_cache()
    try:
        settings = get_settings()
        assert "host=pg.internal" in settings.database_url
        assert settings.storage_backend == "postgres"
        assert settings.openai_api_key is None
        assert settings.openai_model == "gpt-4o-mini"
        assert settings.generation_timeout_seconds == 10.0
        assert settings.knowledge_max_results == 5
        assert settings.chat_rate_limit == "30/minute"
        assert not settings.uses_memory_storage
    finally:
        reset_settings_cache()


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db/realty")
    monkeypatch.setenv("STORAGE_BACKEND", "MEMORY")
    monkeypatch.setenv("RETRIEVAL_TIMEOUT_SECONDS", "2.5")
    reset_settings_cache()
    try:
        settings = get_settings()
        assert settings.database_url == "postgresql://u:p@db/realty"
        assert settings.uses_memory_storage
        assert settings.retrieval_timeout_seconds == 2.5
        assert get_settings() is settings
    finally:
        reset_settings_cache()
