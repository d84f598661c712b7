"""Storage for conversation records."""
from __future__ import annotations

from datetime import timezone
from threading import Lock
from typing import Any, Dict, List, Optional, Protocol

import psycopg
from psycopg.rows import dict_row

from ..core.db import Database
from ..errors import PersistenceFailure
from .models import Channel, ConversationRecord


class ConversationRepository(Protocol):
    """Append-only log of message/response pairs."""

    def add_record(self, record: ConversationRecord) -> ConversationRecord: ...

    def list_history(
        self,
        conversation_id: str,
        *,
        tenant_id: Optional[str] = None,
        limit: int = 10,
    ) -> List[ConversationRecord]: ...


def _hydrate(row: Dict[str, Any]) -> ConversationRecord:
    created_at = row["created_at"]
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return ConversationRecord(
        id=row["id"],
        tenant_id=row["tenant_id"],
        conversation_id=row["conversation_id"],
        visitor_id=row.get("visitor_id"),
        message=row["message"],
        response=row["response"],
        channel=Channel(row["channel"]),
        created_at=created_at,
    )


class PostgresConversationRepository:
    """PostgreSQL implementation of :class:`ConversationRepository`."""

    def __init__(self, database: Database) -> None:
        self._database = database

    def add_record(self, record: ConversationRecord) -> ConversationRecord:
        try:
            row = self._insert(record)
        except psycopg.Error as exc:
            raise PersistenceFailure(f"could not insert conversation row: {exc}") from exc
        return _hydrate(row)

    def _insert(self, record: ConversationRecord) -> Dict[str, Any]:
        with self._database.connect() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    INSERT INTO chatbot_conversations
                        (tenant_id, conversation_id, visitor_id, message, response, channel, created_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    RETURNING *
                    """,
                    (
                        record.tenant_id,
                        record.conversation_id,
                        record.visitor_id,
                        record.message,
                        record.response,
                        record.channel.value,
                        record.created_at,
                    ),
                )
                return cur.fetchone()

    def list_history(
        self,
        conversation_id: str,
        *,
        tenant_id: Optional[str] = None,
        limit: int = 10,
    ) -> List[ConversationRecord]:
        clauses = ["conversation_id = %s"]
        params: List[Any] = [conversation_id]
        if tenant_id:
            clauses.append("tenant_id = %s")
            params.append(tenant_id)
        params.append(limit)
        query = (
            "SELECT id, tenant_id, conversation_id, visitor_id, message, response, "
            "channel, created_at FROM chatbot_conversations "
            f"WHERE {' AND '.join(clauses)} "
            "ORDER BY created_at ASC, id ASC LIMIT %s"
        )
        with self._database.connect() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, params)
                rows = cur.fetchall()
        return [_hydrate(row) for row in rows]


class InMemoryConversationRepository:
    """Thread-safe in-process log used in development and tests."""

    def __init__(self) -> None:
        self._records: List[ConversationRecord] = []
        self._id_seq = 1
        self._lock = Lock()

    def add_record(self, record: ConversationRecord) -> ConversationRecord:
        with self._lock:
            record.id = self._id_seq
            self._id_seq += 1
            self._records.append(record)
        return record

    def list_history(
        self,
        conversation_id: str,
        *,
        tenant_id: Optional[str] = None,
        limit: int = 10,
    ) -> List[ConversationRecord]:
        with self._lock:
            rows = [
                r
                for r in self._records
                if r.conversation_id == conversation_id
                and (not tenant_id or r.tenant_id == tenant_id)
            ]
        rows.sort(key=lambda r: (r.created_at, r.id or 0))
        return rows[:limit]

    @property
    def records(self) -> List[ConversationRecord]:
        return list(self._records)
