"""Best-effort persistence of chat exchanges."""

from __future__ import annotations

import logging

from ..errors import PersistenceFailure
from .models import ConversationRecord
from .repository import ConversationRepository

logger = logging.getLogger(__name__)


class ConversationRecorder:
    """Write one record per exchange; never raise.

    A failed write is logged and dropped so the visitor reply is never
    affected. Duplicate calls for the same turn produce separate rows.
    """

    def __init__(self, repository: ConversationRepository) -> None:
        self._repository = repository

    def record(self, record: ConversationRecord) -> None:
        try:
            self._repository.add_record(record)
        except Exception as exc:
            logger.error(
                "Failed to record exchange for tenant %s conversation %s: %s",
                record.tenant_id,
                record.conversation_id,
                exc,
                exc_info=not isinstance(exc, PersistenceFailure),
            )
            return
        logger.debug(
            "Recorded exchange for tenant %s conversation %s",
            record.tenant_id,
            record.conversation_id,
        )
