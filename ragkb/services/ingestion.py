"""
Per-file ingestion pipeline: parse, chunk, embed and persist.

Each run is tracked by an AsyncTask row. Failures are recorded on that row
and never raised into the background job that runs the pipeline.
"""

import asyncio
import time
import uuid
from typing import Optional

from ragkb.models import TaskStatus
from ragkb.services.chunker import chunk_text
from ragkb.services.embeddings import Embedder
from ragkb.services.errors import SourceFileMissing
from ragkb.services.file_types import resolve_file_type
from ragkb.services.parser import parse_file
from ragkb.services.repository import IngestionRepository, TaskProgress
from ragkb.services.storage import BlobStore, extract_key_from_url
from ragkb.services.task_queue import EMBED_FILE_JOB, PROCESS_FILE_JOB, TaskQueue
from ragkb.settings import settings
from ragkb.utils.logging_config import logger

EMBED_PROGRESS_START = 55
EMBED_PROGRESS_END = 95


class IngestionPipeline:
    def __init__(
        self,
        repository: IngestionRepository,
        blob_store: BlobStore,
        embedder: Embedder,
        queue: TaskQueue,
        chunk_size: int = settings.CHUNK_SIZE,
        chunk_overlap: int = settings.CHUNK_OVERLAP,
        blob_timeout: Optional[float] = None,
        bucket: str = settings.KNOWLEDGE_BASE_BUCKET,
    ):
        self.repository = repository
        self.blob_store = blob_store
        self.embedder = embedder
        self.queue = queue
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.blob_timeout = blob_timeout
        self.bucket = bucket

    async def get_owned_file(self, file_id: str, user_id: uuid.UUID):
        file = await self.repository.get_file(file_id)
        if file is None or file.user_id != user_id:
            raise SourceFileMissing(file_id)
        return file

    async def create_process_task(self, file_id: str, user_id: uuid.UUID) -> uuid.UUID:
        """
        Registers a pending processing task for the file and submits the
        pipeline without waiting for it. The returned id is used for polling.
        """
        await self.get_owned_file(file_id, user_id)
        task_id = await self.repository.create_task(PROCESS_FILE_JOB, user_id)
        await self.repository.attach_task(file_id, task_id, "chunk")
        await self._submit(PROCESS_FILE_JOB, task_id, file_id)
        logger.info(f"Created processing task {task_id} for file {file_id}")
        return task_id

    async def create_reembed_task(self, file_id: str, user_id: uuid.UUID) -> uuid.UUID:
        """Schedules embedding of the file's chunks that have no embedding yet."""
        await self.get_owned_file(file_id, user_id)
        task_id = await self.repository.create_task(EMBED_FILE_JOB, user_id)
        await self.repository.attach_task(file_id, task_id, "embedding")
        await self._submit(EMBED_FILE_JOB, task_id, file_id)
        logger.info(f"Created re-embedding task {task_id} for file {file_id}")
        return task_id

    async def _submit(self, job: str, task_id: uuid.UUID, file_id: str) -> None:
        """Enqueues a job; a submission error fails its task before propagating."""
        try:
            await self.queue.enqueue(job, task_id=task_id, file_id=file_id)
        except Exception as e:
            logger.error(f"Could not submit {job} task {task_id} for file {file_id}: {e!r}")
            await self._fail(task_id, str(e), type(e).__name__, "enqueue", time.monotonic())
            raise

    async def get_task_status(
        self, task_id: uuid.UUID, user_id: uuid.UUID
    ) -> Optional[TaskProgress]:
        task = await self.repository.get_task(task_id)
        if task is None or task.user_id != user_id:
            return None
        return task

    async def _progress(
        self,
        task_id: uuid.UUID,
        progress: int,
        message: str,
        status: Optional[TaskStatus] = None,
    ) -> None:
        fields = {"progress": progress, "message": message}
        if status is not None:
            fields["status"] = status
        await self.repository.update_task(task_id, **fields)

    async def _complete(self, task_id: uuid.UUID, message: str, started: float) -> None:
        await self.repository.update_task(
            task_id,
            status=TaskStatus.COMPLETED,
            progress=100,
            message=message,
            duration=time.monotonic() - started,
        )

    async def _fail(
        self,
        task_id: uuid.UUID,
        message: str,
        error_type: str,
        stage: str,
        started: float,
    ) -> None:
        try:
            await self.repository.update_task(
                task_id,
                status=TaskStatus.FAILED,
                message=message,
                error={"message": message, "type": error_type, "stage": stage},
                duration=time.monotonic() - started,
            )
        except Exception:
            logger.exception(f"Could not record failure of task {task_id}")

    async def _embed_with_progress(self, task_id: uuid.UUID, texts: list[str]):
        span = EMBED_PROGRESS_END - EMBED_PROGRESS_START

        async def on_progress(done: int, total: int) -> None:
            progress = EMBED_PROGRESS_START + (span * done) // max(total, 1)
            await self._progress(task_id, progress, f"Embedded {done}/{total} chunks")

        return await self.embedder.embed_batch(texts, on_progress=on_progress)

    async def process_file_task(self, task_id: uuid.UUID, file_id: str) -> None:
        started = time.monotonic()
        stage = "parse"
        try:
            file = await self.repository.get_file(file_id)
            if file is None:
                raise SourceFileMissing(file_id)

            await self._progress(task_id, 10, "Parsing file", TaskStatus.PROCESSING)
            file_type = resolve_file_type(file.name, file.file_type)
            parsed = await parse_file(
                self.blob_store,
                extract_key_from_url(file.url, self.bucket),
                file_type,
                timeout=self.blob_timeout,
            )
            await self._progress(
                task_id, 30, f"Parsed {parsed.metadata.word_count} words"
            )

            stage = "document"
            replaced = await self.repository.delete_file_data(file_id)
            if replaced:
                logger.info(
                    f"Task {task_id}: replacing {replaced} existing documents of file {file_id}"
                )
            document_id = await self.repository.create_document(
                file,
                content=parsed.content,
                title=parsed.metadata.title or file.name,
                metadata=parsed.metadata.to_dict(),
            )

            stage = "chunk"
            await self._progress(task_id, 35, "Splitting text into chunks")
            chunks = chunk_text(parsed.content, self.chunk_size, self.chunk_overlap)
            await self._progress(task_id, 50, f"Created {len(chunks)} chunks")
            if not chunks:
                await self._complete(task_id, "No text content to index", started)
                return

            stage = "store_chunks"
            chunk_ids = await self.repository.insert_chunks(
                document_id, file.user_id, chunks
            )

            stage = "embed"
            await self._progress(task_id, EMBED_PROGRESS_START, "Generating embeddings")
            results = await self._embed_with_progress(
                task_id, [chunk.content for chunk in chunks]
            )

            stage = "store_embeddings"
            await self.repository.insert_embeddings(chunk_ids, results, file.user_id)
            await self._complete(task_id, f"Indexed {len(chunks)} chunks", started)
            logger.info(
                f"Task {task_id}: indexed file {file_id} into {len(chunks)} chunks "
                f"in {time.monotonic() - started:.2f}s"
            )
        except asyncio.CancelledError:
            await self._fail(task_id, "Task cancelled", "CancelledError", stage, started)
            raise
        except Exception as e:
            logger.exception(f"Task {task_id} failed at stage '{stage}' for file {file_id}")
            await self._fail(task_id, str(e), type(e).__name__, stage, started)

    async def reembed_file_task(self, task_id: uuid.UUID, file_id: str) -> None:
        started = time.monotonic()
        stage = "load"
        try:
            file = await self.repository.get_file(file_id)
            if file is None:
                raise SourceFileMissing(file_id)

            await self._progress(
                task_id, 10, "Looking for chunks without embeddings", TaskStatus.PROCESSING
            )
            pending = await self.repository.get_unembedded_chunks(file_id)
            if not pending:
                await self._complete(
                    task_id, "All chunks already have embeddings", started
                )
                return

            stage = "embed"
            await self._progress(
                task_id, EMBED_PROGRESS_START, f"Embedding {len(pending)} chunks"
            )
            results = await self._embed_with_progress(
                task_id, [chunk.text for chunk in pending]
            )

            stage = "store_embeddings"
            await self.repository.insert_embeddings(
                [chunk.id for chunk in pending], results, file.user_id
            )
            await self._complete(task_id, f"Embedded {len(pending)} chunks", started)
        except asyncio.CancelledError:
            await self._fail(task_id, "Task cancelled", "CancelledError", stage, started)
            raise
        except Exception as e:
            logger.exception(f"Task {task_id} failed at stage '{stage}' for file {file_id}")
            await self._fail(task_id, str(e), type(e).__name__, stage, started)

    async def delete_file_data(self, file_id: str) -> int:
        """Deletes the documents, chunks and embeddings derived from a file."""
        deleted = await self.repository.delete_file_data(file_id)
        logger.info(f"Removed indexed data for file {file_id} ({deleted} documents)")
        return deleted
