"""Lead capture for chat visitors.

Web visitors volunteer contact details in free text; :func:`extract_lead_info`
picks them out. WhatsApp contacts are identified by phone number and are
upserted into the ``leads`` table before their message is answered.
"""

from __future__ import annotations

import re
from threading import Lock
from typing import Any, Dict, Mapping, Optional, Protocol

import psycopg
from psycopg.rows import dict_row

from .conversations.models import Lead
from .core.db import Database
from .errors import PersistenceFailure

EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
PHONE_RE = re.compile(
    r"(?:\+?[0-9]{1,4}[\s.-]?)?\(?[0-9]{3}\)?[\s.-]?[0-9]{3}[\s.-]?[0-9]{4}\b"
)
NAME_RE = re.compile(r"(?:my name is|i am|i'm) ([A-Za-z]+)(?: [A-Za-z]+)?", re.IGNORECASE)


def extract_lead_info(
    message: str, visitor_info: Optional[Mapping[str, Any]] = None
) -> Dict[str, Any]:
    """Merge contact details found in ``message`` over ``visitor_info``.

    Values already present in ``visitor_info`` win over extracted ones.
    """

    lead_info: Dict[str, Any] = dict(visitor_info or {})
    text = message or ""
    if not lead_info.get("email"):
        match = EMAIL_RE.search(text)
        if match:
            lead_info["email"] = match.group(0)
    if not lead_info.get("phone"):
        match = PHONE_RE.search(text)
        if match:
            lead_info["phone"] = match.group(0).strip()
    if not lead_info.get("name"):
        match = NAME_RE.search(text)
        if match:
            lead_info["name"] = match.group(1)
    return lead_info


def placeholder_email(phone: str) -> str:
    digits = re.sub(r"[^0-9]", "", phone) or "unknown"
    return f"whatsapp-{digits}@placeholder.com"


class LeadRepository(Protocol):
    def upsert_by_phone(self, tenant_id: str, phone: str) -> Lead: ...


def _hydrate(row: Dict[str, Any]) -> Lead:
    return Lead(
        id=row["id"],
        tenant_id=row["tenant_id"],
        phone=row["phone"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        email=row.get("email"),
        source=row["source"],
        status=row["status"],
        created_at=row["created_at"],
    )


class PostgresLeadRepository:
    """Leads stored in PostgreSQL, unique per (tenant_id, phone)."""

    def __init__(self, database: Database) -> None:
        self._database = database

    def upsert_by_phone(self, tenant_id: str, phone: str) -> Lead:
        try:
            with self._database.connect() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    # The no-op update makes RETURNING yield the existing row.
                    cur.execute(
                        """
                        INSERT INTO leads
                            (tenant_id, phone, first_name, last_name, email, source, status)
                        VALUES (%s, %s, 'WhatsApp', 'Contact', %s, 'whatsapp', 'new')
                        ON CONFLICT (tenant_id, phone)
                        DO UPDATE SET phone = EXCLUDED.phone
                        RETURNING *
                        """,
                        (tenant_id, phone, placeholder_email(phone)),
                    )
                    row = cur.fetchone()
        except psycopg.Error as exc:
            raise PersistenceFailure(f"could not upsert lead: {exc}") from exc
        return _hydrate(row)


class InMemoryLeadRepository:
    def __init__(self) -> None:
        self._leads: Dict[tuple, Lead] = {}
        self._id_seq = 1
        self._lock = Lock()

    def upsert_by_phone(self, tenant_id: str, phone: str) -> Lead:
        key = (tenant_id, phone)
        with self._lock:
            lead = self._leads.get(key)
            if lead is None:
                lead = Lead(
                    id=self._id_seq,
                    tenant_id=tenant_id,
                    phone=phone,
                    email=placeholder_email(phone),
                )
                self._id_seq += 1
                self._leads[key] = lead
        return lead

    @property
    def leads(self) -> list:
        return list(self._leads.values())
