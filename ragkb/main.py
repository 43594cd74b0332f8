from contextlib import asynccontextmanager

from fastapi import FastAPI

from ragkb.api.v1 import files as files_router
from ragkb.api.v1 import search as search_router
from ragkb.api.v1 import tasks as tasks_router
from ragkb.config.db import SessionLocal, check_db_connection
from ragkb.config.redis import check_redis_connection
from ragkb.config.supabase import check_supabase_connection
from ragkb.middleware.owner import owner_middleware
from ragkb.services.factory import (
    create_embedder,
    create_pipeline,
    create_search_engine,
    create_task_queue,
)
from ragkb.settings import settings
from ragkb.utils.logging_config import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Handle application startup and shutdown events.
    """
    await check_db_connection()
    await check_supabase_connection()
    if settings.TASK_BACKEND == "celery":
        await check_redis_connection()

    embedder = create_embedder()
    queue = create_task_queue()
    app.state.pipeline = create_pipeline(SessionLocal, queue, embedder=embedder)
    app.state.search_engine = create_search_engine(SessionLocal, embedder=embedder)
    logger.info(
        f"Knowledge base services ready (tasks: {settings.TASK_BACKEND}, "
        f"embeddings: {embedder.model_info()})"
    )

    yield

    await queue.shutdown()


app = FastAPI(
    lifespan=lifespan,
    title="RAG Knowledge Base",
    description="Document ingestion and hybrid search over per-user knowledge bases",
)

app.middleware("http")(owner_middleware)

# Include routers
app.include_router(files_router.router, prefix="/api/v1/files", tags=["Files"])
app.include_router(tasks_router.router, prefix="/api/v1/tasks", tags=["Tasks"])
app.include_router(search_router.router, prefix="/api/v1", tags=["Search"])


@app.get("/")
def read_root() -> dict[str, str]:
    return {"message": "Hello from RAG Knowledge Base API!"}
