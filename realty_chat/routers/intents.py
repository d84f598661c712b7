"""Standalone intent analysis."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..conversations.schemas import IntentAnalysis, IntentAnalysisRequest, parse_model
from ..dependencies import get_classifier
from ..errors import InvalidRequest
from ..nlp import IntentClassifier, detect_language, normalize
from .common import read_json

router = APIRouter(prefix="/api", tags=["intents"])


@router.post("/analyze-intent", response_model=IntentAnalysis)
async def analyze_intent(
    request: Request, classifier: IntentClassifier = Depends(get_classifier)
) -> IntentAnalysis:
    """Classify a message without routing or recording it."""
    body = parse_model(IntentAnalysisRequest, await read_json(request))
    if not body.message.strip():
        raise InvalidRequest("Message is required")
    intent = classifier.classify(body.message)
    return IntentAnalysis(
        intent=intent.label,
        confidence=intent.confidence,
        entities=intent.entities,
        debug_info={
            "normalized": normalize(body.message),
            "matched_pattern": intent.matched_pattern,
            "language": detect_language(body.message),
            "message_length": len(body.message),
            "previous_message_count": len(body.previous_messages),
        },
    )
