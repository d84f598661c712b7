"""Knowledge retrieval over tenant training data (Q&A pairs + documents).

The retriever queries the training-data store for candidates that share at
least one meaningful token with the message, then scores them with BM25 so
the best grounding material comes first. A failed store call is logged and
reported as an empty result: missing knowledge is a normal outcome that
drives the fallback reply, never a request failure.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

import psycopg
from psycopg.rows import dict_row
from rank_bm25 import BM25Okapi

from .conversations.models import KnowledgeMatch, KnowledgeResult, KnowledgeSource
from .core.db import Database
from .errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

_STOP_WORDS = frozenset(
    {
        "the", "and", "for", "are", "you", "your", "what", "is", "was", "who",
        "how", "can", "does", "with", "this", "that", "have", "has", "our",
        "any", "about", "there", "where", "when", "which", "will", "would",
    }
)


def _tokenize(text: str) -> List[str]:
    """Lowercase and keep alphanumeric runs, as the BM25 corpus expects."""
    return [
        t.lower()
        for t in "".join(c if c.isalnum() else " " for c in text or "").split()
        if t
    ]


def query_terms(text: str) -> List[str]:
    """Return the distinct tokens worth searching for, in message order."""

    seen: Dict[str, None] = {}
    for token in _tokenize(text):
        if len(token) > 2 and token not in _STOP_WORDS:
            seen.setdefault(token, None)
    return list(seen)


class TrainingDataStore(Protocol):
    """Source of tenant training material."""

    def search_qa(self, tenant_id: str, terms: List[str], limit: int) -> List[Dict[str, Any]]: ...

    def search_files(self, tenant_id: str, terms: List[str], limit: int) -> List[Dict[str, Any]]: ...


class PostgresTrainingDataStore:
    """Full-text candidate search on ``chatbot_training_data`` / ``_files``."""

    def __init__(self, database: Database, *, timeout: float | None = None) -> None:
        self._database = database
        self._timeout = timeout

    def _fetch(self, sql: str, params: tuple) -> List[Dict[str, Any]]:
        with self._database.connect(timeout=self._timeout) as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(sql, params)
                return list(cur.fetchall())

    def search_qa(self, tenant_id: str, terms: List[str], limit: int) -> List[Dict[str, Any]]:
        if not terms:
            return []
        return self._fetch(
            """
            SELECT id, question, answer
            FROM chatbot_training_data
            WHERE tenant_id = %s
              AND to_tsvector('simple', question || ' ' || answer)
                  @@ to_tsquery('simple', %s)
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (tenant_id, " | ".join(terms), limit),
        )

    def search_files(self, tenant_id: str, terms: List[str], limit: int) -> List[Dict[str, Any]]:
        if not terms:
            return []
        return self._fetch(
            """
            SELECT id, file_name, extracted_text
            FROM chatbot_training_files
            WHERE tenant_id = %s
              AND content_type = 'file'
              AND to_tsvector('simple', extracted_text) @@ to_tsquery('simple', %s)
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (tenant_id, " | ".join(terms), limit),
        )


class InMemoryTrainingDataStore:
    """Token-overlap store used in development and tests."""

    def __init__(self) -> None:
        self._qa: Dict[str, List[Dict[str, Any]]] = {}
        self._files: Dict[str, List[Dict[str, Any]]] = {}
        self._id_seq = 1

    def _next_id(self) -> int:
        value = self._id_seq
        self._id_seq += 1
        return value

    def add_qa(self, tenant_id: str, question: str, answer: str) -> Dict[str, Any]:
        row = {"id": self._next_id(), "question": question, "answer": answer}
        self._qa.setdefault(tenant_id, []).append(row)
        return row

    def add_file(self, tenant_id: str, file_name: str, extracted_text: str) -> Dict[str, Any]:
        row = {"id": self._next_id(), "file_name": file_name, "extracted_text": extracted_text}
        self._files.setdefault(tenant_id, []).append(row)
        return row

    @staticmethod
    def _overlaps(terms: List[str], *texts: str) -> bool:
        tokens = set(_tokenize(" ".join(texts)))
        return any(term in tokens for term in terms)

    def search_qa(self, tenant_id: str, terms: List[str], limit: int) -> List[Dict[str, Any]]:
        rows = [
            row
            for row in self._qa.get(tenant_id, [])
            if self._overlaps(terms, row["question"], row["answer"])
        ]
        return rows[:limit]

    def search_files(self, tenant_id: str, terms: List[str], limit: int) -> List[Dict[str, Any]]:
        rows = [
            row
            for row in self._files.get(tenant_id, [])
            if self._overlaps(terms, row["extracted_text"])
        ]
        return rows[:limit]


def _bm25_rank(query: str, matches: List[KnowledgeMatch]) -> List[KnowledgeMatch]:
    """Score ``matches`` against ``query`` with BM25, best first."""
    if not matches:
        return matches
    corpus = [_tokenize(m.content) or [""] for m in matches]
    scores = BM25Okapi(corpus).get_scores(_tokenize(query))
    scored = [
        KnowledgeMatch(
            source=m.source,
            score=float(score),
            content=m.content,
            metadata=m.metadata,
        )
        for score, m in zip(scores, matches)
    ]
    scored.sort(key=lambda m: m.score, reverse=True)
    return scored


class KnowledgeRetriever:
    """Single-attempt retrieval of grounding knowledge for a tenant."""

    def __init__(self, store: TrainingDataStore, *, max_results: int = 5) -> None:
        self._store = store
        self._max_results = max_results

    def retrieve(
        self,
        text: str,
        tenant_id: str,
        *,
        include_qa: bool = True,
        include_files: bool = True,
        max_results: Optional[int] = None,
    ) -> KnowledgeResult:
        limit = max_results or self._max_results
        # Fetch a larger candidate pool so ranking has headroom.
        pool = max(limit * 4, 20)
        terms = query_terms(text)
        try:
            qa_rows = self._store.search_qa(tenant_id, terms, pool) if include_qa else []
            file_rows = (
                self._store.search_files(tenant_id, terms, pool) if include_files else []
            )
        except (psycopg.Error, UpstreamUnavailable, OSError) as exc:
            logger.warning(
                "Knowledge retrieval failed for tenant %s (message=%r): %s",
                tenant_id,
                text[:80],
                exc,
            )
            return KnowledgeResult()
        except Exception:
            logger.exception(
                "Knowledge retrieval failed unexpectedly for tenant %s (message=%r)",
                tenant_id,
                text[:80],
            )
            return KnowledgeResult()

        qa_matches = [
            KnowledgeMatch(
                source=KnowledgeSource.QA_PAIR,
                score=0.0,
                content=f"Q: {row['question']}\nA: {row['answer']}",
                metadata={
                    "id": row.get("id"),
                    "question": row["question"],
                    "answer": row["answer"],
                },
            )
            for row in qa_rows
        ]
        file_matches = [
            KnowledgeMatch(
                source=KnowledgeSource.FILE_EXCERPT,
                score=0.0,
                content=row["extracted_text"],
                metadata={"id": row.get("id"), "file_name": row.get("file_name")},
            )
            for row in file_rows
        ]
        result = KnowledgeResult(
            qa_matches=_bm25_rank(text, qa_matches)[:limit],
            file_matches=_bm25_rank(text, file_matches)[:limit],
        )
        logger.info(
            "Retrieved %d Q&A and %d file matches for tenant %s",
            len(result.qa_matches),
            len(result.file_matches),
            tenant_id,
        )
        return result
