"""Pydantic schemas for knowledge base search."""

import uuid
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from ragkb.settings import settings

SearchMode = Literal["hybrid", "semantic", "keyword"]


class GlobalSearchRequest(BaseModel):
    query: str = Field(..., min_length=1)
    limit: int = Field(default=10, ge=1, le=settings.SEARCH_MAX_LIMIT)
    threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    include_content: bool = True


class SearchRequest(GlobalSearchRequest):
    mode: SearchMode = "hybrid"


class ContextRequest(BaseModel):
    query: str = Field(..., min_length=1)
    max_chunks: int = Field(default=5, ge=1, le=settings.SEARCH_MAX_LIMIT)


class SearchResultResponse(BaseModel):
    chunk_id: uuid.UUID
    content: str
    similarity: float = Field(
        ...,
        description="Cosine or trigram similarity, or the fused rank score when score_type is `rrf`.",
    )
    vector_similarity: float
    keyword_similarity: float
    score_type: Literal["cosine", "trigram", "rrf"]
    document_id: str
    document_title: Optional[str] = None
    file_name: Optional[str] = None
    file_id: Optional[str] = None
    chunk_index: int
    model_config = {"from_attributes": True}


class SearchResponse(BaseModel):
    results: List[SearchResultResponse]


class ContextResponse(BaseModel):
    context: str
