"""API endpoints for knowledge base search."""

import uuid

from fastapi import APIRouter, Depends

from ragkb.api.deps import get_current_user_id, get_search_engine
from ragkb.schemas.search import (
    ContextRequest,
    ContextResponse,
    GlobalSearchRequest,
    SearchRequest,
    SearchResponse,
    SearchResultResponse,
)
from ragkb.services.search import SearchEngine, SearchOptions

router = APIRouter()


def _options(request: GlobalSearchRequest) -> SearchOptions:
    return SearchOptions(
        limit=request.limit,
        threshold=request.threshold,
        include_content=request.include_content,
    )


def _response(results) -> SearchResponse:
    return SearchResponse(
        results=[SearchResultResponse.model_validate(r) for r in results]
    )


@router.post("/knowledge-bases/{kb_id}/search", response_model=SearchResponse)
async def search_knowledge_base(
    kb_id: str,
    request: SearchRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    engine: SearchEngine = Depends(get_search_engine),
) -> SearchResponse:
    """
    Search one knowledge base. `hybrid` fuses vector and keyword hits by rank.
    """
    options = _options(request)
    if request.mode == "semantic":
        results = await engine.semantic_search(kb_id, request.query, user_id, options)
    elif request.mode == "keyword":
        results = await engine.keyword_search(kb_id, request.query, user_id, options)
    else:
        results = await engine.hybrid_search(kb_id, request.query, user_id, options)
    return _response(results)


@router.post("/knowledge-bases/{kb_id}/context", response_model=ContextResponse)
async def knowledge_base_context(
    kb_id: str,
    request: ContextRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    engine: SearchEngine = Depends(get_search_engine),
) -> ContextResponse:
    context = await engine.get_relevant_context(
        kb_id, request.query, user_id, max_chunks=request.max_chunks
    )
    return ContextResponse(context=context)


@router.post("/search", response_model=SearchResponse)
async def search_all(
    request: GlobalSearchRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    engine: SearchEngine = Depends(get_search_engine),
) -> SearchResponse:
    """Vector search across all of the caller's files."""
    results = await engine.search(None, request.query, user_id, _options(request))
    return _response(results)
