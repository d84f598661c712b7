"""Runtime configuration loaded from environment variables.

Values are read once per process into a frozen :class:`Settings` instance.
Tests that change environment variables call :func:`reset_settings_cache`
so the next :func:`get_settings` call observes the new values.
"""

from __future__ import annotations

import dataclasses
import os
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


def _database_url_from_parts() -> str:
    return (
        f"host={os.getenv('PGHOST', 'db')} "
        f"port={os.getenv('PGPORT', '5432')} "
        f"dbname={os.getenv('PGDATABASE', 'realty')} "
        f"user={os.getenv('PGUSER', 'realty')} "
        f"password={os.getenv('PGPASSWORD', 'realty')}"
    )


@dataclasses.dataclass(frozen=True)
class Settings:
    """Immutable snapshot of the service configuration."""

    database_url: str
    storage_backend: str = "postgres"
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    openai_lang: str | None = None
    system_prompt: str | None = None
    generation_timeout_seconds: float = 10.0
    retrieval_timeout_seconds: float = 5.0
    knowledge_max_results: int = 5
    chat_max_message_length: int = 5000
    chat_rate_limit: str = "30/minute"
    whatsapp_webhook_secret: str | None = None

    @property
    def uses_memory_storage(self) -> bool:
        return self.storage_backend == "memory"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from the environment with development defaults."""

    return Settings(
        database_url=os.getenv("DATABASE_URL") or _database_url_from_parts(),
        storage_backend=os.getenv("STORAGE_BACKEND", "postgres").lower(),
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        openai_lang=os.getenv("OPENAI_LANG") or None,
        system_prompt=os.getenv("SYSTEM_PROMPT") or None,
        generation_timeout_seconds=float(
            os.getenv("GENERATION_TIMEOUT_SECONDS", "10")
        ),
        retrieval_timeout_seconds=float(os.getenv("RETRIEVAL_TIMEOUT_SECONDS", "5")),
        knowledge_max_results=int(os.getenv("KNOWLEDGE_MAX_RESULTS", "5")),
        chat_max_message_length=int(os.getenv("CHAT_MAX_MESSAGE_LENGTH", "5000")),
        chat_rate_limit=os.getenv("CHAT_RATE_LIMIT", "30/minute"),
        whatsapp_webhook_secret=os.getenv("WHATSAPP_WEBHOOK_SECRET") or None,
    )


def reset_settings_cache() -> None:
    """Clear cached settings; useful in tests when env vars change."""

    get_settings.cache_clear()
