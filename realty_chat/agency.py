"""Detect messages that ask about the agency itself rather than listings."""

from __future__ import annotations

from typing import FrozenSet, Optional

AGENCY_KEYWORDS: FrozenSet[str] = frozenset(
    {
        # identity
        "who are you",
        "your name",
        "about you",
        "about your",
        # business nouns
        "agency",
        "company",
        "firm",
        "broker",
        "your team",
        "your website",
        # location
        "your office",
        "where are you",
        "your address",
        "office hours",
        "opening hours",
        # contact
        "phone",
        "email",
        "reach you",
        "contact you",
    }
)


def is_agency_question(text: str, supplied_flag: Optional[bool] = None) -> bool:
    """Return whether ``text`` is a question about the business.

    ``supplied_flag`` comes from upstream callers that already made the call;
    when present it is returned as-is and the text is not inspected.
    """

    if supplied_flag is not None:
        return bool(supplied_flag)
    lowered = (text or "").lower()
    return any(keyword in lowered for keyword in AGENCY_KEYWORDS)
