"""
Knowledge base search: vector, trigram keyword and hybrid retrieval.

Hybrid search runs both signals concurrently and fuses the two ranked lists
with Reciprocal Rank Fusion. A fused result's `similarity` holds the RRF score,
which is a rank-derived number and not a 0..1 confidence; `score_type` says
which kind of score a result carries.
"""

import asyncio
import uuid
from dataclasses import dataclass, replace
from typing import Literal, Optional, Sequence

from ragkb.services.embeddings import Embedder
from ragkb.services.repository import ChunkHit, SearchRepository
from ragkb.settings import settings
from ragkb.utils.logging_config import logger

ScoreType = Literal["cosine", "trigram", "rrf"]

DEFAULT_LIMIT = 10
CONTEXT_SEPARATOR = "\n\n---\n\n"


@dataclass(frozen=True)
class SearchOptions:
    limit: int = DEFAULT_LIMIT
    threshold: Optional[float] = None
    include_content: bool = True


@dataclass(frozen=True)
class SearchResult:
    chunk_id: uuid.UUID
    content: str
    similarity: float
    vector_similarity: float
    keyword_similarity: float
    document_id: str
    document_title: Optional[str]
    file_name: Optional[str]
    file_id: Optional[str]
    chunk_index: int
    score_type: ScoreType


def _to_result(hit: ChunkHit, source: ScoreType, include_content: bool) -> SearchResult:
    return SearchResult(
        chunk_id=hit.chunk_id,
        content=hit.content if include_content else "",
        similarity=hit.similarity,
        vector_similarity=hit.similarity if source == "cosine" else 0.0,
        keyword_similarity=hit.similarity if source == "trigram" else 0.0,
        document_id=hit.document_id,
        document_title=hit.document_title,
        file_name=hit.file_name,
        file_id=hit.file_id,
        chunk_index=hit.chunk_index or 0,
        score_type=source,
    )


def reciprocal_rank_fusion(
    vector_results: Sequence[SearchResult],
    keyword_results: Sequence[SearchResult],
    k: int = 60,
) -> list[SearchResult]:
    """
    Fuses two ranked lists. Each list contributes 1 / (k + rank) per result,
    with 1-based ranks; a chunk found by both signals sums both contributions.
    Per-signal scores are kept on the fused result (0.0 when a signal missed it).
    """
    fused: dict[uuid.UUID, dict] = {}

    for rank, result in enumerate(vector_results, start=1):
        fused[result.chunk_id] = {
            "score": 1 / (k + rank),
            "vector": result.similarity,
            "keyword": 0.0,
            "result": result,
        }

    for rank, result in enumerate(keyword_results, start=1):
        entry = fused.get(result.chunk_id)
        if entry is not None:
            entry["score"] += 1 / (k + rank)
            entry["keyword"] = result.similarity
        else:
            fused[result.chunk_id] = {
                "score": 1 / (k + rank),
                "vector": 0.0,
                "keyword": result.similarity,
                "result": result,
            }

    ranked = sorted(fused.values(), key=lambda entry: entry["score"], reverse=True)
    return [
        replace(
            entry["result"],
            similarity=entry["score"],
            vector_similarity=entry["vector"],
            keyword_similarity=entry["keyword"],
            score_type="rrf",
        )
        for entry in ranked
    ]


class SearchEngine:
    def __init__(
        self,
        repository: SearchRepository,
        embedder: Embedder,
        rrf_k: int = settings.RRF_K,
        vector_threshold: float = settings.VECTOR_SIMILARITY_THRESHOLD,
        keyword_threshold: float = settings.KEYWORD_SIMILARITY_THRESHOLD,
    ):
        self.repository = repository
        self.embedder = embedder
        self.rrf_k = rrf_k
        self.vector_threshold = vector_threshold
        self.keyword_threshold = keyword_threshold

    async def _vector(
        self,
        knowledge_base_id: Optional[str],
        query: str,
        user_id: uuid.UUID,
        options: SearchOptions,
    ) -> list[SearchResult]:
        query_embedding = await self.embedder.embed(query)
        threshold = (
            self.vector_threshold if options.threshold is None else options.threshold
        )
        hits = await self.repository.vector_search(
            query_embedding.embedding, user_id, knowledge_base_id, threshold, options.limit
        )
        return [_to_result(hit, "cosine", options.include_content) for hit in hits]

    async def semantic_search(
        self,
        knowledge_base_id: str,
        query: str,
        user_id: uuid.UUID,
        options: SearchOptions = SearchOptions(),
    ) -> list[SearchResult]:
        if not query.strip():
            return []
        return await self._vector(knowledge_base_id, query, user_id, options)

    async def keyword_search(
        self,
        knowledge_base_id: str,
        query: str,
        user_id: uuid.UUID,
        options: SearchOptions = SearchOptions(),
    ) -> list[SearchResult]:
        if not query.strip():
            return []
        threshold = (
            self.keyword_threshold if options.threshold is None else options.threshold
        )
        hits = await self.repository.keyword_search(
            query, user_id, knowledge_base_id, threshold, options.limit
        )
        return [_to_result(hit, "trigram", options.include_content) for hit in hits]

    async def hybrid_search(
        self,
        knowledge_base_id: str,
        query: str,
        user_id: uuid.UUID,
        options: SearchOptions = SearchOptions(),
    ) -> list[SearchResult]:
        """
        Runs semantic and keyword search concurrently, each capped at
        `options.limit` and filtered by its own threshold, then fuses them.
        """
        if not query.strip():
            return []

        vector_results, keyword_results = await asyncio.gather(
            self.semantic_search(knowledge_base_id, query, user_id, options),
            self.keyword_search(knowledge_base_id, query, user_id, options),
        )
        logger.info(
            f"Hybrid search in {knowledge_base_id}: {len(vector_results)} vector hits, "
            f"{len(keyword_results)} keyword hits"
        )
        fused = reciprocal_rank_fusion(vector_results, keyword_results, k=self.rrf_k)
        return fused[: options.limit]

    async def global_search(
        self,
        query: str,
        user_id: uuid.UUID,
        options: SearchOptions = SearchOptions(),
    ) -> list[SearchResult]:
        """Vector search across every knowledge base the user owns."""
        if not query.strip():
            return []
        return await self._vector(None, query, user_id, options)

    async def search(
        self,
        knowledge_base_id: Optional[str],
        query: str,
        user_id: uuid.UUID,
        options: SearchOptions = SearchOptions(),
    ) -> list[SearchResult]:
        if knowledge_base_id is None:
            return await self.global_search(query, user_id, options)
        return await self.hybrid_search(knowledge_base_id, query, user_id, options)

    async def get_relevant_context(
        self,
        knowledge_base_id: str,
        query: str,
        user_id: uuid.UUID,
        max_chunks: int = 5,
    ) -> str:
        """Builds a prompt context block from the top hybrid search hits."""
        results = await self.hybrid_search(
            knowledge_base_id,
            query,
            user_id,
            SearchOptions(limit=max_chunks, include_content=True),
        )
        if not results:
            return ""

        blocks = []
        for number, result in enumerate(results, start=1):
            title = f" - {result.document_title}" if result.document_title else ""
            blocks.append(f"[source {number}: {result.file_name}{title}]\n{result.content}")
        return CONTEXT_SEPARATOR.join(blocks)
