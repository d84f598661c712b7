"""Database handle shared by repositories and the knowledge store."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterator
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path

import psycopg

from ..config import get_settings

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parents[1] / "schema.sql"


class Database:
    """Connection factory built once per process.

    Each ``connect()`` call opens a short-lived connection, commits on success
    and rolls back on error. ``timeout`` bounds both connection setup and
    statement execution so callers can treat expiry as an ordinary failure.
    """

    def __init__(self, url: str, *, timeout: float | None = None) -> None:
        self._url = url
        self._timeout = timeout

    @property
    def url(self) -> str:
        return self._url

    @contextmanager
    def connect(self, *, timeout: float | None = None) -> Iterator[psycopg.Connection]:
        effective = timeout if timeout is not None else self._timeout
        kwargs = {}
        if effective:
            kwargs["connect_timeout"] = max(1, math.ceil(effective))
        conn = psycopg.connect(self._url, **kwargs)
        try:
            if effective:
                with conn.cursor() as cur:
                    cur.execute(
                        "SELECT set_config('statement_timeout', %s, false)",
                        (str(int(effective * 1000)),),
                    )
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()


def ensure_schema(conn: psycopg.Connection, schema_sql_path: Path = SCHEMA_PATH) -> None:
    """Create the chat tables if they are missing.

    The schema relies on ``IF NOT EXISTS`` clauses so it can be applied on
    every boot.
    """

    with conn.cursor() as cur:
        cur.execute(schema_sql_path.read_text(encoding="utf-8"))
    logger.info("Schema ensured from %s", schema_sql_path)


@lru_cache(maxsize=1)
def get_database() -> Database:
    settings = get_settings()
    return Database(settings.database_url, timeout=settings.retrieval_timeout_seconds)
