"""Builds the pipeline and search engine from settings."""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ragkb.services.embeddings import (
    Embedder,
    EmbeddingProvider,
    FastEmbedProvider,
    OpenAIEmbeddingProvider,
)
from ragkb.services.ingestion import IngestionPipeline
from ragkb.services.repository import SqlIngestionRepository, SqlSearchRepository
from ragkb.services.search import SearchEngine
from ragkb.services.storage import BlobStore, SupabaseBlobStore
from ragkb.services.task_queue import (
    EMBED_FILE_JOB,
    PROCESS_FILE_JOB,
    CeleryTaskQueue,
    InProcessTaskQueue,
    TaskQueue,
)
from ragkb.settings import settings


def create_embedder() -> Embedder:
    provider: EmbeddingProvider
    if settings.EMBEDDING_PROVIDER == "fastembed":
        model = settings.FASTEMBED_MODEL
        provider = FastEmbedProvider(model)
    else:
        model = settings.EMBEDDING_MODEL
        provider = OpenAIEmbeddingProvider(model, api_key=settings.OPENAI_API_KEY)
    return Embedder(
        provider,
        model,
        batch_size=settings.EMBEDDING_BATCH_SIZE,
        max_retries=settings.EMBEDDING_MAX_RETRIES,
        retry_delay=settings.EMBEDDING_RETRY_DELAY_SECONDS,
        timeout=settings.EMBEDDING_TIMEOUT_SECONDS,
    )


def create_blob_store() -> BlobStore:
    return SupabaseBlobStore(settings.KNOWLEDGE_BASE_BUCKET)


def create_task_queue() -> TaskQueue:
    if settings.TASK_BACKEND == "celery":
        from ragkb.worker import celery_app

        return CeleryTaskQueue(celery_app)
    return InProcessTaskQueue()


def create_pipeline(
    session_factory: async_sessionmaker[AsyncSession],
    queue: TaskQueue,
    embedder: Optional[Embedder] = None,
    blob_store: Optional[BlobStore] = None,
) -> IngestionPipeline:
    pipeline = IngestionPipeline(
        SqlIngestionRepository(session_factory),
        blob_store or create_blob_store(),
        embedder or create_embedder(),
        queue,
        chunk_size=settings.CHUNK_SIZE,
        chunk_overlap=settings.CHUNK_OVERLAP,
        blob_timeout=settings.BLOB_FETCH_TIMEOUT_SECONDS,
        bucket=settings.KNOWLEDGE_BASE_BUCKET,
    )
    if isinstance(queue, InProcessTaskQueue):
        queue.register(PROCESS_FILE_JOB, pipeline.process_file_task)
        queue.register(EMBED_FILE_JOB, pipeline.reembed_file_task)
    return pipeline


def create_search_engine(
    session_factory: async_sessionmaker[AsyncSession],
    embedder: Optional[Embedder] = None,
) -> SearchEngine:
    return SearchEngine(
        SqlSearchRepository(session_factory),
        embedder or create_embedder(),
        rrf_k=settings.RRF_K,
        vector_threshold=settings.VECTOR_SIMILARITY_THRESHOLD,
        keyword_threshold=settings.KEYWORD_SIMILARITY_THRESHOLD,
    )
