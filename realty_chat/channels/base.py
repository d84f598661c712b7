"""Base abstractions for chat channel adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Any, Optional

from ..conversations.models import InboundMessage, OrchestrationResult
from ..conversations.orchestrator import Defer, ResponseOrchestrator
from ..errors import InvalidRequest


class ChannelAdapter(ABC):
    """Map one channel's wire payloads to the orchestrator and back."""

    #: Lowercase channel identifier used in routes and configuration.
    channel_name: str

    def __init__(
        self,
        orchestrator: ResponseOrchestrator,
        *,
        max_message_length: Optional[int] = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.max_message_length = max_message_length

    @abstractmethod
    def parse_incoming(
        self, payload: Any, params: Mapping[str, str]
    ) -> Iterable[InboundMessage]:
        """Convert a request payload into inbound messages.

        ``params`` carries query-string values for channels whose webhook
        envelope does not name the tenant.
        """

    def verify_signature(self, body: bytes, headers: Mapping[str, str]) -> bool:
        """Validate authenticity of the payload.

        Adapters can override this to implement signature checks. The default
        implementation returns ``True``.
        """

        return True

    def prepare(self, inbound: InboundMessage) -> dict[str, Any]:
        """Channel side effects run before routing; returns reply extras."""

        return {}

    @abstractmethod
    def build_outgoing_payload(
        self, result: OrchestrationResult, extras: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Render an orchestration result in the channel's reply format."""

    def process(
        self,
        payload: Any,
        params: Optional[Mapping[str, str]] = None,
        *,
        defer: Optional[Defer] = None,
    ) -> list[dict[str, Any]]:
        """Parse, route and render every message in ``payload``."""

        replies = []
        for inbound in self.parse_incoming(payload, params or {}):
            ResponseOrchestrator.validate(inbound)
            if self.max_message_length and len(inbound.text) > self.max_message_length:
                raise InvalidRequest("Message is too long")
            extras = self.prepare(inbound)
            result = self.orchestrator.handle(inbound, defer=defer)
            replies.append(self.build_outgoing_payload(result, extras))
        return replies
