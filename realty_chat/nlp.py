"""Deterministic intent classification and entity extraction.

Intent rules are evaluated in declaration order and the first matching rule
wins, so a message that mentions both a greeting and a property is classified
as ``greeting``. Entity extraction is independent of the chosen intent.
"""
from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Any, Dict, Optional, Pattern, Tuple

from langdetect import LangDetectException, detect

from .conversations.models import ClassifiedIntent

MATCHED_CONFIDENCE = 0.8
DEFAULT_CONFIDENCE = 0.4
DEFAULT_INTENT = "general_query"


def _rule(label: str, pattern: str) -> Tuple[str, Pattern[str]]:
    return label, re.compile(pattern)


INTENT_RULES: Tuple[Tuple[str, Pattern[str]], ...] = (
    _rule(
        "greeting",
        r"\b(?:hi|hello|hey|howdy|greetings|good (?:morning|afternoon|evening))\b",
    ),
    _rule("farewell", r"\b(?:bye|goodbye|see you|farewell|take care)\b"),
    _rule("thanks", r"\b(?:thanks|thank you|thx|cheers|appreciate it)\b"),
    _rule(
        "property_inquiry",
        r"\b(?:propert(?:y|ies)|houses?|homes?|apartments?|flats?|condos?|villas?"
        r"|listings?|bedrooms?|studios?|penthouses?|townhouses?)\b",
    ),
    _rule(
        "price_inquiry",
        r"\b(?:price|prices|pricing|cost|costs|how much|budget|afford|expensive|cheap)\b",
    ),
    _rule(
        "location_inquiry",
        r"\b(?:neighbou?rhoods?|areas?|districts?|suburbs?|nearby|location)\b",
    ),
    _rule(
        "agent_inquiry",
        r"\b(?:agents?|realtors?|brokers?|speak to (?:someone|a person|a human))\b",
    ),
    _rule(
        "contact_request",
        r"\b(?:contact|call me|phone|e-?mail|reach (?:you|out)|get in touch)\b",
    ),
    _rule(
        "appointment_request",
        r"\b(?:appointment|viewing|visit|schedule|book|tour|showing)\b",
    ),
    _rule(
        "mortgage_inquiry",
        r"\b(?:mortgages?|loans?|financing|finance|interest rates?|down ?payment"
        r"|pre-?approv\w*)\b",
    ),
    _rule("buying_inquiry", r"\b(?:buy|buying|purchase|purchasing)\b"),
    _rule("selling_inquiry", r"\b(?:sell|selling|list my|valuation|appraisal)\b"),
    _rule("rental_inquiry", r"\b(?:rent|rental|renting|lease|leasing)\b"),
    _rule(
        "bot_identity",
        r"\b(?:who are you|what are you|are you (?:an? )?(?:bot|robot|human|real person|ai)"
        r"|your name)\b",
    ),
    _rule("help_request", r"\b(?:help|assist|assistance|support|what can you do)\b"),
    _rule(
        "feature_inquiry",
        r"\b(?:pool|garage|garden|parking|balcony|terrace|features?|amenit(?:y|ies))\b",
    ),
    _rule("address_inquiry", r"\b(?:address|your office|where are you|located)\b"),
    _rule(
        "property_details",
        r"\b(?:details|more information|more info|tell me more|square (?:feet|meters|metres)"
        r"|sq ?ft|size)\b",
    ),
    _rule("company_info", r"\b(?:company|agency|firm|about you|about your|business)\b"),
)

INTENT_LABELS: Tuple[str, ...] = tuple(label for label, _ in INTENT_RULES) + (
    DEFAULT_INTENT,
)

# Entities ---------------------------------------------------------------------

_PRICE_PATTERN = re.compile(
    r"[$€£]\s?\d[\d,]*(?:\.\d+)?(?:\s?(?:k|m|million|thousand))?\b"
    r"|\b\d[\d,]*(?:\.\d+)?\s?(?:k|thousand|million)\b"
)

_LOCATION_STOP_WORDS = (
    r"(?:under|over|below|above|around|for|with|without|and|or|but|between"
    r"|from|to|near|in|at|that|which|please|max|min|less|more|up)"
)
_LOCATION_PHRASE = r"([a-z][a-z'\-]*(?:\s+[a-z][a-z'\-]*){0,3}?)"
_LOCATION_TAIL = rf"(?=\s+{_LOCATION_STOP_WORDS}\b|\s*[,.;:!?]|\s*$|\s+\d)"

_LOCATION_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(rf"\bin\s+(?:the\s+)?{_LOCATION_PHRASE}{_LOCATION_TAIL}"),
    re.compile(rf"\bnear\s+(?:the\s+)?{_LOCATION_PHRASE}{_LOCATION_TAIL}"),
    re.compile(rf"\bat\s+(?:the\s+)?{_LOCATION_PHRASE}{_LOCATION_TAIL}"),
    re.compile(r"\b([a-z][a-z'\-]*(?:\s+[a-z][a-z'\-]*)?)\s+area\b"),
)

# Leading words that make a prepositional phrase something other than a place
# ("in a villa", "interested in buying", "at the moment").
_NON_LOCATION_HEADS = frozenset(
    {
        "a", "an", "the", "my", "your", "our", "this", "that", "any", "some",
        "buying", "selling", "renting", "touch", "mind", "moment", "least",
        "all", "price", "what", "which", "how", "it", "me", "you", "them",
    }
)

_BEDROOM_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"\b([1-6])[\s-]*(?:bedrooms?|beds?|br|bd)\b"),
    re.compile(r"\b(?:bedrooms?|beds?)\s*[:=]?\s*([1-6])\b"),
)
_BATHROOM_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"\b([1-5])[\s-]*(?:bathrooms?|baths?|ba)\b"),
    re.compile(r"\b(?:bathrooms?|baths?)\s*[:=]?\s*([1-5])\b"),
)


def normalize(text: str | None) -> str:
    return (text or "").strip().lower()


def _first_count(patterns: Sequence[Pattern[str]], text: str) -> Optional[int]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return int(match.group(1))
    return None


def _extract_location(text: str) -> Optional[str]:
    for pattern in _LOCATION_PATTERNS:
        for match in pattern.finditer(text):
            phrase = match.group(1).strip()
            if phrase.startswith("the "):
                phrase = phrase[4:]
            if not phrase or phrase.split()[0] in _NON_LOCATION_HEADS:
                continue
            return phrase
    return None


def extract_entities(text: str) -> Dict[str, Any]:
    """Return the entities found in ``text``; missing ones are omitted."""

    lowered = normalize(text)
    entities: Dict[str, Any] = {}
    price = _PRICE_PATTERN.search(lowered)
    if price:
        entities["price"] = price.group(0).strip()
    location = _extract_location(lowered)
    if location:
        entities["location"] = location
    bedrooms = _first_count(_BEDROOM_PATTERNS, lowered)
    if bedrooms is not None:
        entities["bedrooms"] = bedrooms
    bathrooms = _first_count(_BATHROOM_PATTERNS, lowered)
    if bathrooms is not None:
        entities["bathrooms"] = bathrooms
    return entities


def detect_language(text: str) -> Optional[str]:
    try:
        return detect(text) if text and text.strip() else None
    except LangDetectException:
        return None


class IntentClassifier:
    """Ordered, first-match rule classifier."""

    def __init__(
        self, rules: Sequence[Tuple[str, Pattern[str]]] = INTENT_RULES
    ) -> None:
        self._rules = tuple(rules)

    @property
    def labels(self) -> Tuple[str, ...]:
        return tuple(label for label, _ in self._rules) + (DEFAULT_INTENT,)

    def classify(self, text: str) -> ClassifiedIntent:
        lowered = normalize(text)
        entities = extract_entities(lowered)
        for label, pattern in self._rules:
            if pattern.search(lowered):
                return ClassifiedIntent(
                    label=label,
                    confidence=MATCHED_CONFIDENCE,
                    entities=entities,
                    matched_pattern=pattern.pattern,
                )
        return ClassifiedIntent(
            label=DEFAULT_INTENT,
            confidence=DEFAULT_CONFIDENCE,
            entities=entities,
        )


_default_classifier = IntentClassifier()


def classify(text: str) -> ClassifiedIntent:
    """Classify ``text`` with the built-in rule set."""

    return _default_classifier.classify(text)
