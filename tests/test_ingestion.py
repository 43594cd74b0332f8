import asyncio

import pytest

from ragkb.models import TaskStatus
from ragkb.services.embeddings import Embedder
from ragkb.services.errors import SourceFileMissing
from ragkb.services.ingestion import IngestionPipeline
from ragkb.services.task_queue import EMBED_FILE_JOB, PROCESS_FILE_JOB

from fakes import BagOfWordsProvider, FakeBlobStore, FlakyProvider
from helpers import ingest

SCENARIO_TEXT = b"Hello world. This is a test. Another sentence here."


async def start(store, blob_store, pipeline, user_id, name, content):
    key = f"{user_id}/{name}"
    await blob_store.put(key, content)
    file = store.add_file(user_id, name, name.rsplit(".", 1)[-1], key, "kb_a")
    task_id = await pipeline.create_process_task(file.id, user_id)
    return file, task_id


@pytest.mark.asyncio
async def test_small_window_scenario_indexes_every_chunk(store, blob_store, embedder, queue, provider, user_a):
    pipeline = IngestionPipeline(store, blob_store, embedder, queue, chunk_size=15, chunk_overlap=5)
    queue.register(PROCESS_FILE_JOB, pipeline.process_file_task)

    file, task_id = await start(store, blob_store, pipeline, user_a, "hello.txt", SCENARIO_TEXT)
    await queue.join(timeout=5)

    task = await store.get_task(task_id)
    chunks = store.chunks_for_file(file.id)
    assert task.status is TaskStatus.COMPLETED
    assert task.progress == 100
    assert task.message == f"Indexed {len(chunks)} chunks"
    assert task.duration is not None and task.duration >= 0
    assert len(chunks) >= 3
    assert [c.index for c in chunks] == list(range(len(chunks)))
    assert all(len(c.text) <= 15 for c in chunks)
    for chunk in chunks:
        stored = store.embeddings[chunk.id]
        assert stored.dimensions == 1024
        assert stored.embedding == provider.vector(chunk.text, 1024)


@pytest.mark.asyncio
async def test_task_is_pending_until_the_job_runs(store, blob_store, pipeline, queue, user_a):
    file, task_id = await start(store, blob_store, pipeline, user_a, "doc.txt", b"Some text.")

    task = await pipeline.get_task_status(task_id, user_a)
    assert task.status is TaskStatus.PENDING
    assert task.progress == 0
    assert task.type == PROCESS_FILE_JOB
    assert store.file_tasks[file.id]["chunk"] == task_id

    await queue.join(timeout=5)
    assert (await pipeline.get_task_status(task_id, user_a)).status is TaskStatus.COMPLETED


@pytest.mark.asyncio
async def test_progress_is_monotonic(store, blob_store, pipeline, queue, user_a):
    content = " ".join(f"Sentence number {i} talks about indexing." for i in range(200)).encode()
    _, task_id = await start(store, blob_store, pipeline, user_a, "long.txt", content)
    await queue.join(timeout=5)

    history = store.tasks[task_id].history
    assert history[0] == 10
    assert history[-1] == 100
    assert history == sorted(history)
    assert {30, 35, 50, 55} <= set(history)
    assert all(55 <= p <= 95 for p in history if 50 < p < 100)


@pytest.mark.asyncio
async def test_metadata_is_stored_on_the_document(store, blob_store, pipeline, queue, user_a):
    file = await ingest(
        store, blob_store, pipeline, queue, user_a, "guide.md",
        b"# Setup Guide\n\nInstall the package and run it.",
    )

    (document,) = [d for d in store.documents.values() if d.file_id == file.id]
    assert document.title == "Setup Guide"
    assert document.metadata == {"wordCount": 8, "title": "Setup Guide"}
    assert document.user_id == user_a


@pytest.mark.asyncio
async def test_unknown_or_foreign_file_is_rejected(store, pipeline, user_a, user_b):
    file = store.add_file(user_b, "theirs.txt", "txt", "theirs.txt")

    with pytest.raises(SourceFileMissing):
        await pipeline.create_process_task("file_missing", user_a)
    with pytest.raises(SourceFileMissing):
        await pipeline.create_process_task(file.id, user_a)
    with pytest.raises(SourceFileMissing):
        await pipeline.create_reembed_task(file.id, user_a)
    assert store.tasks == {}


@pytest.mark.asyncio
async def test_task_status_is_scoped_to_its_owner(store, blob_store, pipeline, queue, user_a, user_b):
    _, task_id = await start(store, blob_store, pipeline, user_a, "doc.txt", b"Text.")
    await queue.join(timeout=5)

    assert await pipeline.get_task_status(task_id, user_b) is None
    assert await pipeline.get_task_status(task_id, user_a) is not None


@pytest.mark.asyncio
async def test_parse_failure_marks_task_failed(store, blob_store, pipeline, queue, user_a):
    file, task_id = await start(store, blob_store, pipeline, user_a, "bad.txt", b"\xff\xfe\xfa")
    await queue.join(timeout=5)

    task = await store.get_task(task_id)
    assert task.status is TaskStatus.FAILED
    assert task.error["stage"] == "parse"
    assert task.error["type"] == "ParseFailure"
    assert task.message == task.error["message"]
    assert not [d for d in store.documents.values() if d.file_id == file.id]
    assert store.chunks == {}


@pytest.mark.asyncio
async def test_missing_blob_marks_task_failed(store, pipeline, queue, user_a):
    file = store.add_file(user_a, "gone.txt", "txt", "gone.txt")
    task_id = await pipeline.create_process_task(file.id, user_a)
    await queue.join(timeout=5)

    task = await store.get_task(task_id)
    assert task.status is TaskStatus.FAILED
    assert task.error["stage"] == "parse"


@pytest.mark.asyncio
async def test_unsupported_type_marks_task_failed(store, blob_store, pipeline, queue, user_a):
    _, task_id = await start(store, blob_store, pipeline, user_a, "sheet.xlsx", b"PK\x03\x04")
    await queue.join(timeout=5)

    task = await store.get_task(task_id)
    assert task.status is TaskStatus.FAILED
    assert task.error["type"] == "UnsupportedFileType"


@pytest.mark.asyncio
async def test_empty_file_completes_without_chunks(store, blob_store, pipeline, queue, user_a):
    file, task_id = await start(store, blob_store, pipeline, user_a, "blank.txt", b"  \n\n  ")
    await queue.join(timeout=5)

    task = await store.get_task(task_id)
    assert task.status is TaskStatus.COMPLETED
    assert task.message == "No text content to index"
    assert store.chunks_for_file(file.id) == []
    assert store.chunk_insert_calls == 0


@pytest.mark.asyncio
async def test_transient_embedding_errors_are_retried(store, blob_store, queue, user_a):
    provider = FlakyProvider(failures=2)
    pipeline = IngestionPipeline(
        store, blob_store, Embedder(provider, "flaky", retry_delay=0), queue
    )
    queue.register(PROCESS_FILE_JOB, pipeline.process_file_task)

    file, task_id = await start(store, blob_store, pipeline, user_a, "doc.txt", b"Retry me please.")
    await queue.join(timeout=5)

    assert (await store.get_task(task_id)).status is TaskStatus.COMPLETED
    assert provider.attempts == 3
    assert all(c.id in store.embeddings for c in store.chunks_for_file(file.id))


@pytest.mark.asyncio
async def test_embedding_outage_leaves_chunks_for_reembedding(
    store, blob_store, queue, search_engine, user_a
):
    pipeline = IngestionPipeline(
        store, blob_store, Embedder(FlakyProvider(failures=3), "flaky", retry_delay=0), queue
    )
    queue.register(PROCESS_FILE_JOB, pipeline.process_file_task)
    queue.register(EMBED_FILE_JOB, pipeline.reembed_file_task)

    file, task_id = await start(
        store, blob_store, pipeline, user_a, "outage.txt", b"Embeddings fail for this file."
    )
    await queue.join(timeout=5)

    task = await store.get_task(task_id)
    chunks = store.chunks_for_file(file.id)
    assert task.status is TaskStatus.FAILED
    assert task.error["stage"] == "embed"
    assert task.error["type"] == "EmbeddingFailure"
    assert chunks
    assert store.embeddings == {}
    assert await search_engine.semantic_search("kb_a", "embeddings fail", user_a) == []

    pipeline.embedder = Embedder(BagOfWordsProvider(), "bag-of-words", retry_delay=0)
    reembed_id = await pipeline.create_reembed_task(file.id, user_a)
    await queue.join(timeout=5)

    reembed = await store.get_task(reembed_id)
    assert reembed.status is TaskStatus.COMPLETED
    assert reembed.type == EMBED_FILE_JOB
    assert store.file_tasks[file.id]["embedding"] == reembed_id
    assert all(c.id in store.embeddings for c in chunks)
    assert await search_engine.semantic_search("kb_a", "embeddings fail", user_a)


@pytest.mark.asyncio
async def test_reembed_with_nothing_missing(store, blob_store, pipeline, queue, provider, user_a):
    file = await ingest(store, blob_store, pipeline, queue, user_a, "doc.txt", b"All good here.")
    calls = len(provider.calls)

    task_id = await pipeline.create_reembed_task(file.id, user_a)
    await queue.join(timeout=5)

    task = await store.get_task(task_id)
    assert task.status is TaskStatus.COMPLETED
    assert task.message == "All chunks already have embeddings"
    assert len(provider.calls) == calls


@pytest.mark.asyncio
async def test_deleting_file_data_removes_it_from_search(
    store, blob_store, pipeline, queue, search_engine, user_a
):
    file = await ingest(
        store, blob_store, pipeline, queue, user_a, "secret.txt",
        b"Zanzibar marmalade procurement policy.", "kb_a",
    )
    assert await search_engine.hybrid_search("kb_a", "zanzibar marmalade", user_a)

    assert await pipeline.delete_file_data(file.id) == 1

    assert store.chunks_for_file(file.id) == []
    assert store.embeddings == {}
    assert await search_engine.hybrid_search("kb_a", "zanzibar marmalade", user_a) == []
    assert await pipeline.delete_file_data(file.id) == 0


@pytest.mark.asyncio
async def test_reprocessing_replaces_previous_data(
    store, blob_store, pipeline, queue, search_engine, user_a
):
    file = await ingest(
        store, blob_store, pipeline, queue, user_a, "policy.txt",
        b"Zanzibar marmalade procurement policy.", "kb_a",
    )
    first_chunks = {c.id for c in store.chunks_for_file(file.id)}

    task_id = await pipeline.create_process_task(file.id, user_a)
    await queue.join(timeout=5)

    documents = [d for d in store.documents.values() if d.file_id == file.id]
    chunks = store.chunks_for_file(file.id)
    results = await search_engine.hybrid_search("kb_a", "zanzibar marmalade", user_a)
    assert (await store.get_task(task_id)).status is TaskStatus.COMPLETED
    assert len(documents) == 1
    assert len(chunks) == 1
    assert first_chunks.isdisjoint(c.id for c in chunks)
    assert set(store.embeddings) == {c.id for c in chunks}
    assert len(results) == 1


@pytest.mark.asyncio
async def test_failed_parse_keeps_previous_data(store, blob_store, pipeline, queue, user_a):
    file = await ingest(store, blob_store, pipeline, queue, user_a, "doc.txt", b"Original text.")
    await blob_store.put(f"{user_a}/doc.txt", b"\xff\xfe\xfa")

    task_id = await pipeline.create_process_task(file.id, user_a)
    await queue.join(timeout=5)

    assert (await store.get_task(task_id)).status is TaskStatus.FAILED
    assert [c.text for c in store.chunks_for_file(file.id)] == ["Original text."]


@pytest.mark.asyncio
@pytest.mark.parametrize("job", [PROCESS_FILE_JOB, EMBED_FILE_JOB])
async def test_submission_error_fails_the_task(store, blob_store, embedder, queue, user_a, job):
    pipeline = IngestionPipeline(store, blob_store, embedder, queue)
    file = store.add_file(user_a, "doc.txt", "txt", "doc.txt")
    create = (
        pipeline.create_process_task if job == PROCESS_FILE_JOB else pipeline.create_reembed_task
    )

    with pytest.raises(KeyError):
        await create(file.id, user_a)

    (task,) = store.tasks.values()
    assert task.type == job
    assert task.status is TaskStatus.FAILED
    assert task.error["stage"] == "enqueue"
    assert task.error["type"] == "KeyError"
    assert task.duration is not None


@pytest.mark.asyncio
async def test_concurrent_files_are_independent(store, blob_store, pipeline, queue, user_a):
    started = [
        await start(store, blob_store, pipeline, user_a, f"doc-{i}.txt", f"Document {i} body.".encode())
        for i in range(3)
    ]
    assert queue.pending == 3
    await queue.join(timeout=5)

    for file, task_id in started:
        assert (await store.get_task(task_id)).status is TaskStatus.COMPLETED
        assert len(store.chunks_for_file(file.id)) == 1


class BlockingBlobStore(FakeBlobStore):
    def __init__(self):
        super().__init__()
        self.reached = asyncio.Event()

    async def get(self, key: str) -> bytes:
        self.reached.set()
        await asyncio.Event().wait()
        return b""


@pytest.mark.asyncio
async def test_cancelled_task_is_marked_failed(store, embedder, queue, user_a):
    blob_store = BlockingBlobStore()
    pipeline = IngestionPipeline(store, blob_store, embedder, queue)
    queue.register(PROCESS_FILE_JOB, pipeline.process_file_task)
    file = store.add_file(user_a, "slow.txt", "txt", "slow.txt")

    task_id = await pipeline.create_process_task(file.id, user_a)
    await asyncio.wait_for(blob_store.reached.wait(), timeout=5)
    assert queue.cancel(task_id)
    await queue.join(timeout=5)

    task = await store.get_task(task_id)
    assert task.status is TaskStatus.FAILED
    assert task.message == "Task cancelled"
    assert task.error["type"] == "CancelledError"
