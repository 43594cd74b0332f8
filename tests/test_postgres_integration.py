"""
Runs the SQL repositories against a real Postgres with pgvector and pg_trgm.
Skipped unless TEST_URL points at a database the tests may create tables in.
"""

import uuid

import pytest
import pytest_asyncio
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ragkb.models import (
    AsyncTask,
    Base,
    Chunk,
    Document,
    Embedding,
    File,
    KnowledgeBase,
    KnowledgeBaseFile,
    TaskStatus,
)
from ragkb.services.ingestion import IngestionPipeline
from ragkb.services.repository import SqlIngestionRepository, SqlSearchRepository
from ragkb.services.search import SearchEngine
from ragkb.services.task_queue import EMBED_FILE_JOB, PROCESS_FILE_JOB
from ragkb.settings import settings

pytestmark = pytest.mark.skipif(
    settings.TEST_URL is None, reason="TEST_URL is not configured"
)

REPORT = b"# Quarterly Revenue Report\n\nQuarterly revenue grew in every region this year."


@pytest_asyncio.fixture(scope="function")
async def session_factory():
    engine = create_async_engine(str(settings.TEST_URL), future=True, echo=False)
    async with engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS pg_trgm"))
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def sql_pipeline(session_factory, blob_store, embedder, queue) -> IngestionPipeline:
    pipeline = IngestionPipeline(
        SqlIngestionRepository(session_factory), blob_store, embedder, queue
    )
    queue.register(PROCESS_FILE_JOB, pipeline.process_file_task)
    queue.register(EMBED_FILE_JOB, pipeline.reembed_file_task)
    return pipeline


@pytest.fixture
def sql_search(session_factory, embedder) -> SearchEngine:
    return SearchEngine(SqlSearchRepository(session_factory), embedder)


async def add_file(session_factory, blob_store, user_id, name, content, kb_name="Main"):
    await blob_store.put(f"{user_id}/{name}", content)
    async with session_factory() as session:
        kb = KnowledgeBase(name=kb_name, user_id=user_id)
        file = File(
            user_id=user_id,
            name=name,
            file_type=name.rsplit(".", 1)[-1],
            size=len(content),
            url=f"https://storage.example.com/knowledge-base/{user_id}/{name}",
        )
        session.add_all([kb, file])
        await session.flush()
        session.add(
            KnowledgeBaseFile(knowledge_base_id=kb.id, file_id=file.id, user_id=user_id)
        )
        await session.commit()
        return kb.id, file.id


async def count(session_factory, model) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(model))


@pytest.mark.asyncio
async def test_ingest_search_and_delete(
    session_factory, sql_pipeline, sql_search, blob_store, queue, user_a, user_b
):
    kb_a, file_a = await add_file(session_factory, blob_store, user_a, "report.md", REPORT)
    kb_b, _ = await add_file(session_factory, blob_store, user_b, "report.md", REPORT)

    task_id = await sql_pipeline.create_process_task(file_a, user_a)
    await queue.join(timeout=30)

    async with session_factory() as session:
        task = await session.get(AsyncTask, task_id)
        file = await session.get(File, file_a)
    assert task.status is TaskStatus.COMPLETED, task.error
    assert task.progress == 100
    assert file.chunk_task_id == task_id
    assert await count(session_factory, Chunk) == await count(session_factory, Embedding) == 1

    hybrid = await sql_search.hybrid_search(kb_a, "quarterly revenue", user_a)
    assert [r.file_id for r in hybrid] == [file_a]
    assert hybrid[0].document_title == "Quarterly Revenue Report"
    assert hybrid[0].vector_similarity > 0.3
    assert hybrid[0].keyword_similarity > 0.3

    assert await sql_search.hybrid_search(kb_b, "quarterly revenue", user_b) == []
    assert await sql_search.hybrid_search(kb_a, "quarterly revenue", user_b) == []
    assert await sql_search.global_search("quarterly revenue", user_b) == []

    assert await sql_pipeline.delete_file_data(file_a) == 1
    assert await sql_pipeline.delete_file_data(file_a) == 0
    assert await count(session_factory, Document) == 0
    assert await count(session_factory, Embedding) == 0
    assert await sql_search.hybrid_search(kb_a, "quarterly revenue", user_a) == []


@pytest.mark.asyncio
async def test_reembed_fills_missing_embeddings(
    session_factory, sql_pipeline, blob_store, queue, user_a
):
    _, file_id = await add_file(session_factory, blob_store, user_a, "notes.txt", b"Some notes.")
    await sql_pipeline.create_process_task(file_id, user_a)
    await queue.join(timeout=30)

    async with session_factory() as session:
        await session.execute(Embedding.__table__.delete())
        await session.commit()

    task_id = await sql_pipeline.create_reembed_task(file_id, user_a)
    await queue.join(timeout=30)

    task = await sql_pipeline.get_task_status(task_id, user_a)
    assert task.status is TaskStatus.COMPLETED
    assert task.message == "Embedded 1 chunks"
    assert await count(session_factory, Embedding) == 1


@pytest.mark.asyncio
async def test_update_task_rejects_unknown_fields(session_factory, user_a):
    repository = SqlIngestionRepository(session_factory)
    task_id = await repository.create_task(PROCESS_FILE_JOB, user_a)

    with pytest.raises(ValueError):
        await repository.update_task(task_id, user_id=uuid.uuid4())
