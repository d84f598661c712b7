"""Search over a tenant's chatbot training data."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from ..conversations.schemas import TrainingSearchRequest, TrainingSearchResponse, parse_model
from ..dependencies import get_retriever
from ..errors import InvalidRequest
from ..retrieval import KnowledgeRetriever
from .common import read_json

router = APIRouter(prefix="/api", tags=["training"])


@router.post("/search-training-data", response_model=TrainingSearchResponse)
async def search_training_data(
    request: Request, retriever: KnowledgeRetriever = Depends(get_retriever)
) -> TrainingSearchResponse:
    body = parse_model(TrainingSearchRequest, await read_json(request))
    if not body.query.strip():
        raise InvalidRequest("query is required")
    if not body.user_id:
        raise InvalidRequest("userId is required")
    result = await run_in_threadpool(
        retriever.retrieve,
        body.query,
        body.user_id,
        include_qa=body.include_qa,
        include_files=body.include_files,
        max_results=body.max_results,
    )
    return TrainingSearchResponse(
        qa_matches=[m.as_dict() for m in result.qa_matches],
        file_content=[m.as_dict() for m in result.file_matches],
    )
