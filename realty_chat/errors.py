"""Error taxonomy shared by the routing pipeline and the HTTP layer."""

from __future__ import annotations


class InvalidRequest(ValueError):
    """Raised when required input is missing or malformed (HTTP 400)."""


class UpstreamUnavailable(RuntimeError):
    """Raised when the retrieval store or the answer service cannot be used.

    ``upstream`` names the collaborator (``"retrieval"`` or ``"generation"``)
    so log lines can tell the two apart.
    """

    def __init__(self, upstream: str, message: str) -> None:
        super().__init__(f"{upstream}: {message}")
        self.upstream = upstream


class PersistenceFailure(RuntimeError):
    """Raised by repositories when a conversation row could not be written."""
