"""
Celery tasks that run the ingestion pipeline outside the API process.
"""

import asyncio
import uuid

from ragkb.config.db import create_worker_session_factory
from ragkb.config.supabase import reset_supabase_admin
from ragkb.services.factory import create_pipeline
from ragkb.services.task_queue import EMBED_FILE_JOB, PROCESS_FILE_JOB, CeleryTaskQueue
from ragkb.utils.logging_config import logger
from ragkb.worker import celery_app


async def _run_pipeline_job(job: str, task_id: str, file_id: str) -> None:
    engine, session_factory = create_worker_session_factory()
    try:
        pipeline = create_pipeline(session_factory, CeleryTaskQueue(celery_app))
        if job == PROCESS_FILE_JOB:
            await pipeline.process_file_task(uuid.UUID(task_id), file_id)
        else:
            await pipeline.reembed_file_task(uuid.UUID(task_id), file_id)
    finally:
        await engine.dispose()
        reset_supabase_admin()


@celery_app.task(name=PROCESS_FILE_JOB)
def process_file(task_id: str, file_id: str):
    """
    Celery task to parse, chunk and embed a stored file.

    Args:
        task_id: The AsyncTask row tracking this run.
        file_id: The ID of the file record in the database.
    """
    logger.info(f"Starting processing task {task_id} for file_id: {file_id}")
    asyncio.run(_run_pipeline_job(PROCESS_FILE_JOB, task_id, file_id))


@celery_app.task(name=EMBED_FILE_JOB)
def embed_file(task_id: str, file_id: str):
    """Celery task to embed the chunks of a file that are still missing embeddings."""
    logger.info(f"Starting re-embedding task {task_id} for file_id: {file_id}")
    asyncio.run(_run_pipeline_job(EMBED_FILE_JOB, task_id, file_id))
