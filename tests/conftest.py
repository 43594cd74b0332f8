import sys
from pathlib import Path

# Bootstrap to ensure tests can import ragkb modules without installing the package.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import uuid

import pytest
import pytest_asyncio

from ragkb.services.embeddings import Embedder
from ragkb.services.ingestion import IngestionPipeline
from ragkb.services.search import SearchEngine
from ragkb.services.task_queue import EMBED_FILE_JOB, PROCESS_FILE_JOB, InProcessTaskQueue
from fakes import BagOfWordsProvider, FakeBlobStore, InMemoryKnowledgeStore


def pytest_configure(config):
    config.pluginmanager.unregister(name="anyio")


@pytest.fixture
def user_a() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def user_b() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def store() -> InMemoryKnowledgeStore:
    return InMemoryKnowledgeStore()


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def provider() -> BagOfWordsProvider:
    return BagOfWordsProvider()


@pytest.fixture
def embedder(provider) -> Embedder:
    return Embedder(provider, "bag-of-words", retry_delay=0)


@pytest_asyncio.fixture
async def queue():
    task_queue = InProcessTaskQueue()
    yield task_queue
    await task_queue.shutdown()


@pytest.fixture
def pipeline(store, blob_store, embedder, queue) -> IngestionPipeline:
    ingestion = IngestionPipeline(store, blob_store, embedder, queue)
    queue.register(PROCESS_FILE_JOB, ingestion.process_file_task)
    queue.register(EMBED_FILE_JOB, ingestion.reembed_file_task)
    return ingestion


@pytest.fixture
def search_engine(store, embedder) -> SearchEngine:
    return SearchEngine(store, embedder)
