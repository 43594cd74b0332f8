"""Shared ingestion helper for scenario tests."""

import uuid
from typing import Optional

from ragkb.models import TaskStatus
from ragkb.services.ingestion import IngestionPipeline
from ragkb.services.repository import FileInfo
from ragkb.services.task_queue import InProcessTaskQueue

from fakes import FakeBlobStore, InMemoryKnowledgeStore


async def ingest(
    store: InMemoryKnowledgeStore,
    blob_store: FakeBlobStore,
    pipeline: IngestionPipeline,
    queue: InProcessTaskQueue,
    user_id: uuid.UUID,
    name: str,
    content: bytes,
    knowledge_base_id: Optional[str] = None,
    file_type: Optional[str] = None,
) -> FileInfo:
    key = f"{user_id}/{name}"
    await blob_store.put(key, content)
    file = store.add_file(
        user_id,
        name,
        file_type or name.rsplit(".", 1)[-1],
        key,
        knowledge_base_id=knowledge_base_id,
    )
    task_id = await pipeline.create_process_task(file.id, user_id)
    await queue.join(timeout=5)
    task = await store.get_task(task_id)
    assert task.status is TaskStatus.COMPLETED, task.error
    return file
