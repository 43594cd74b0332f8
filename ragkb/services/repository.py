"""
Persistence seams for the ingestion pipeline and the search engine.

The pipeline and search engine only talk to the abstract repositories below,
so tests can swap in an in-memory store. The SQL implementations run every
operation in its own session taken from an `async_sessionmaker`.
"""

import abc
import uuid
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from uuid_extensions import uuid7

from ragkb.models import (
    AsyncTask,
    Chunk,
    Document,
    DocumentChunk,
    Embedding,
    File,
    KnowledgeBaseFile,
    TaskStatus,
)
from ragkb.services.chunker import TextChunk
from ragkb.services.embeddings import EmbeddingResult
from ragkb.utils.batching import batched, safe_batch_size
from ragkb.utils.logging_config import logger


@dataclass
class FileInfo:
    id: str
    user_id: Optional[uuid.UUID]
    name: str
    file_type: str
    url: str
    size: int = 0


@dataclass
class TaskProgress:
    id: uuid.UUID
    type: str
    status: TaskStatus
    user_id: uuid.UUID
    progress: int = 0
    message: Optional[str] = None
    error: Optional[dict] = None
    duration: Optional[float] = None


@dataclass
class PendingChunk:
    """A persisted chunk still waiting for its embedding."""

    id: uuid.UUID
    text: str
    index: int


@dataclass
class ChunkHit:
    chunk_id: uuid.UUID
    content: str
    similarity: float
    document_id: str
    document_title: Optional[str]
    file_name: Optional[str]
    file_id: Optional[str]
    chunk_index: Optional[int]


class IngestionRepository(abc.ABC):
    @abc.abstractmethod
    async def get_file(self, file_id: str) -> Optional[FileInfo]: ...

    @abc.abstractmethod
    async def create_task(self, task_type: str, user_id: uuid.UUID) -> uuid.UUID: ...

    @abc.abstractmethod
    async def attach_task(self, file_id: str, task_id: uuid.UUID, kind: str) -> None:
        """Points the file's `chunk_task_id` or `embedding_task_id` at the task."""

    @abc.abstractmethod
    async def update_task(self, task_id: uuid.UUID, **fields: Any) -> None: ...

    @abc.abstractmethod
    async def get_task(self, task_id: uuid.UUID) -> Optional[TaskProgress]: ...

    @abc.abstractmethod
    async def create_document(
        self,
        file: FileInfo,
        content: str,
        title: Optional[str],
        metadata: dict,
    ) -> str: ...

    @abc.abstractmethod
    async def insert_chunks(
        self, document_id: str, user_id: uuid.UUID, chunks: Sequence[TextChunk]
    ) -> list[uuid.UUID]:
        """Inserts chunks with their document links and returns ids in input order."""

    @abc.abstractmethod
    async def insert_embeddings(
        self,
        chunk_ids: Sequence[uuid.UUID],
        results: Sequence[EmbeddingResult],
        user_id: uuid.UUID,
    ) -> None: ...

    @abc.abstractmethod
    async def get_unembedded_chunks(self, file_id: str) -> list[PendingChunk]: ...

    @abc.abstractmethod
    async def delete_file_data(self, file_id: str) -> int:
        """Removes everything derived from a file and returns the document count."""


class SearchRepository(abc.ABC):
    @abc.abstractmethod
    async def vector_search(
        self,
        query_vector: Sequence[float],
        user_id: uuid.UUID,
        knowledge_base_id: Optional[str],
        threshold: float,
        limit: int,
    ) -> list[ChunkHit]: ...

    @abc.abstractmethod
    async def keyword_search(
        self,
        query: str,
        user_id: uuid.UUID,
        knowledge_base_id: Optional[str],
        threshold: float,
        limit: int,
    ) -> list[ChunkHit]: ...


CHUNK_COLUMNS = ("id", "text", "index", "metadata", "user_id")
DOCUMENT_CHUNK_COLUMNS = ("document_id", "chunk_id", "page_index", "user_id")
EMBEDDING_COLUMNS = ("id", "chunk_id", "embeddings", "model", "user_id")

_TASK_FIELDS = {"status", "progress", "message", "error", "duration"}
_TASK_LINKS = {"chunk": "chunk_task_id", "embedding": "embedding_task_id"}


async def _insert_rows(session: AsyncSession, table, columns, rows: list[dict]) -> None:
    size = safe_batch_size(len(columns))
    for batch in batched(rows, size):
        await session.execute(insert(table).values(list(batch)))


class SqlIngestionRepository(IngestionRepository):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_file(self, file_id: str) -> Optional[FileInfo]:
        async with self.session_factory() as session:
            file = await session.get(File, file_id)
            if file is None:
                return None
            return FileInfo(
                id=file.id,
                user_id=file.user_id,
                name=file.name,
                file_type=file.file_type,
                url=file.url,
                size=file.size,
            )

    async def create_task(self, task_type: str, user_id: uuid.UUID) -> uuid.UUID:
        async with self.session_factory() as session:
            task = AsyncTask(
                id=uuid7(),
                type=task_type,
                status=TaskStatus.PENDING,
                progress=0,
                user_id=user_id,
            )
            session.add(task)
            await session.commit()
            return task.id

    async def attach_task(self, file_id: str, task_id: uuid.UUID, kind: str) -> None:
        column = _TASK_LINKS[kind]
        async with self.session_factory() as session:
            await session.execute(
                update(File).where(File.id == file_id).values({column: task_id})
            )
            await session.commit()

    async def update_task(self, task_id: uuid.UUID, **fields: Any) -> None:
        unknown = set(fields) - _TASK_FIELDS
        if unknown:
            raise ValueError(f"Unknown task fields: {sorted(unknown)}")
        async with self.session_factory() as session:
            await session.execute(
                update(AsyncTask).where(AsyncTask.id == task_id).values(**fields)
            )
            await session.commit()

    async def get_task(self, task_id: uuid.UUID) -> Optional[TaskProgress]:
        async with self.session_factory() as session:
            task = await session.get(AsyncTask, task_id)
            if task is None:
                return None
            return TaskProgress(
                id=task.id,
                type=task.type,
                status=task.status,
                user_id=task.user_id,
                progress=task.progress,
                message=task.message,
                error=task.error,
                duration=task.duration,
            )

    async def create_document(
        self,
        file: FileInfo,
        content: str,
        title: Optional[str],
        metadata: dict,
    ) -> str:
        async with self.session_factory() as session:
            document = Document(
                title=title,
                content=content,
                file_type=file.file_type,
                filename=file.name,
                doc_metadata=metadata,
                source_type="file",
                source=file.url,
                file_id=file.id,
                user_id=file.user_id,
            )
            session.add(document)
            await session.commit()
            return document.id

    async def insert_chunks(
        self, document_id: str, user_id: uuid.UUID, chunks: Sequence[TextChunk]
    ) -> list[uuid.UUID]:
        chunk_ids = [uuid7() for _ in chunks]
        chunk_rows = [
            {
                "id": chunk_id,
                "text": chunk.content,
                "index": chunk.index,
                "metadata": chunk.metadata,
                "user_id": user_id,
            }
            for chunk_id, chunk in zip(chunk_ids, chunks)
        ]
        link_rows = [
            {
                "document_id": document_id,
                "chunk_id": chunk_id,
                "page_index": chunk.index,
                "user_id": user_id,
            }
            for chunk_id, chunk in zip(chunk_ids, chunks)
        ]
        async with self.session_factory() as session:
            await _insert_rows(session, Chunk.__table__, CHUNK_COLUMNS, chunk_rows)
            await _insert_rows(
                session, DocumentChunk.__table__, DOCUMENT_CHUNK_COLUMNS, link_rows
            )
            await session.commit()
        logger.info(f"Inserted {len(chunk_ids)} chunks for document {document_id}")
        return chunk_ids

    async def insert_embeddings(
        self,
        chunk_ids: Sequence[uuid.UUID],
        results: Sequence[EmbeddingResult],
        user_id: uuid.UUID,
    ) -> None:
        if len(chunk_ids) != len(results):
            raise ValueError(
                f"Got {len(results)} embeddings for {len(chunk_ids)} chunks"
            )
        rows = [
            {
                "id": uuid7(),
                "chunk_id": chunk_id,
                "embeddings": result.embedding,
                "model": result.model,
                "user_id": user_id,
            }
            for chunk_id, result in zip(chunk_ids, results)
        ]
        async with self.session_factory() as session:
            await _insert_rows(session, Embedding.__table__, EMBEDDING_COLUMNS, rows)
            await session.commit()

    async def get_unembedded_chunks(self, file_id: str) -> list[PendingChunk]:
        stmt = (
            select(Chunk.id, Chunk.text, Chunk.index)
            .join(DocumentChunk, DocumentChunk.chunk_id == Chunk.id)
            .join(Document, Document.id == DocumentChunk.document_id)
            .outerjoin(Embedding, Embedding.chunk_id == Chunk.id)
            .where(Document.file_id == file_id, Embedding.id.is_(None))
            .order_by(Chunk.index)
        )
        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).all()
        return [PendingChunk(id=r.id, text=r.text or "", index=r.index) for r in rows]

    async def delete_file_data(self, file_id: str) -> int:
        async with self.session_factory() as session:
            document_ids = (
                await session.scalars(
                    select(Document.id).where(Document.file_id == file_id)
                )
            ).all()
            if not document_ids:
                return 0
            chunk_ids = (
                await session.scalars(
                    select(DocumentChunk.chunk_id).where(
                        DocumentChunk.document_id.in_(document_ids)
                    )
                )
            ).all()

            for batch in batched(chunk_ids, safe_batch_size(1)):
                await session.execute(
                    delete(Embedding).where(Embedding.chunk_id.in_(batch))
                )
            await session.execute(
                delete(DocumentChunk).where(DocumentChunk.document_id.in_(document_ids))
            )
            for batch in batched(chunk_ids, safe_batch_size(1)):
                await session.execute(delete(Chunk).where(Chunk.id.in_(batch)))
            await session.execute(delete(Document).where(Document.id.in_(document_ids)))
            await session.commit()

        logger.info(
            f"Deleted {len(document_ids)} documents and {len(chunk_ids)} chunks for file {file_id}"
        )
        return len(document_ids)


class SqlSearchRepository(SearchRepository):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @staticmethod
    def _scoped(stmt, user_id: uuid.UUID, knowledge_base_id: Optional[str]):
        stmt = (
            stmt.join(DocumentChunk, DocumentChunk.chunk_id == Chunk.id)
            .join(Document, Document.id == DocumentChunk.document_id)
            .join(File, File.id == Document.file_id)
            .where(File.user_id == user_id)
        )
        if knowledge_base_id is not None:
            stmt = stmt.join(
                KnowledgeBaseFile, KnowledgeBaseFile.file_id == File.id
            ).where(KnowledgeBaseFile.knowledge_base_id == knowledge_base_id)
        return stmt

    @staticmethod
    def _columns():
        return (
            Chunk.id.label("chunk_id"),
            Chunk.text.label("content"),
            Chunk.index.label("chunk_index"),
            Document.id.label("document_id"),
            Document.title.label("document_title"),
            File.name.label("file_name"),
            File.id.label("file_id"),
        )

    @staticmethod
    def _to_hit(row) -> ChunkHit:
        return ChunkHit(
            chunk_id=row.chunk_id,
            content=row.content or "",
            similarity=float(row.similarity),
            document_id=row.document_id,
            document_title=row.document_title,
            file_name=row.file_name,
            file_id=row.file_id,
            chunk_index=row.chunk_index,
        )

    async def vector_search(
        self,
        query_vector: Sequence[float],
        user_id: uuid.UUID,
        knowledge_base_id: Optional[str],
        threshold: float,
        limit: int,
    ) -> list[ChunkHit]:
        distance = Embedding.embeddings.cosine_distance(list(query_vector))
        stmt = select(*self._columns(), (1 - distance).label("similarity")).select_from(
            Chunk
        )
        stmt = stmt.join(Embedding, Embedding.chunk_id == Chunk.id)
        stmt = (
            self._scoped(stmt, user_id, knowledge_base_id)
            .where(distance < 1 - threshold)
            .order_by(distance)
            .limit(limit)
        )
        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).all()
        return [self._to_hit(row) for row in rows]

    async def keyword_search(
        self,
        query: str,
        user_id: uuid.UUID,
        knowledge_base_id: Optional[str],
        threshold: float,
        limit: int,
    ) -> list[ChunkHit]:
        score = func.word_similarity(query, Chunk.text)
        stmt = select(*self._columns(), score.label("similarity")).select_from(Chunk)
        stmt = (
            self._scoped(stmt, user_id, knowledge_base_id)
            .where(score > threshold)
            .order_by(score.desc())
            .limit(limit)
        )
        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).all()
        return [self._to_hit(row) for row in rows]
