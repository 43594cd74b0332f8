"""
Submission of background pipeline jobs.

`InProcessTaskQueue` runs jobs as asyncio tasks inside the API process.
`CeleryTaskQueue` hands them to the Celery worker defined in `ragkb.worker`.
"""

import abc
import asyncio
import uuid
from typing import Any, Awaitable, Callable, Optional

from celery import Celery

from ragkb.utils.logging_config import logger

PROCESS_FILE_JOB = "process_file"
EMBED_FILE_JOB = "embed_file"

JobHandler = Callable[..., Awaitable[Any]]


class TaskQueue(abc.ABC):
    @abc.abstractmethod
    async def enqueue(self, job: str, **kwargs: Any) -> str:
        """Submits a job without waiting for it and returns a job key."""

    async def shutdown(self) -> None:
        return None


class InProcessTaskQueue(TaskQueue):
    def __init__(self):
        self._handlers: dict[str, JobHandler] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    def register(self, job: str, handler: JobHandler) -> None:
        self._handlers[job] = handler

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def enqueue(self, job: str, **kwargs: Any) -> str:
        handler = self._handlers.get(job)
        if handler is None:
            raise KeyError(f"No handler registered for job '{job}'")

        key = str(kwargs.get("task_id") or uuid.uuid4())
        task = asyncio.create_task(handler(**kwargs), name=f"{job}:{key}")
        self._tasks[key] = task
        task.add_done_callback(lambda t, key=key: self._on_done(key, t))
        logger.info(f"Enqueued job '{job}' ({key})")
        return key

    def _on_done(self, key: str, task: asyncio.Task) -> None:
        self._tasks.pop(key, None)
        if task.cancelled():
            logger.warning(f"Job {task.get_name()} was cancelled")
        elif task.exception() is not None:
            logger.error(
                f"Job {task.get_name()} raised: {task.exception()!r}",
                exc_info=task.exception(),
            )

    def cancel(self, key: str) -> bool:
        task = self._tasks.get(str(key))
        if task is None or task.done():
            return False
        return task.cancel()

    async def join(self, timeout: Optional[float] = None) -> None:
        """Waits until every submitted job, including ones enqueued meanwhile, is done."""

        async def _drain():
            while self._tasks:
                await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

        await asyncio.wait_for(_drain(), timeout)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Cancelled {len(tasks)} running jobs on shutdown")


class CeleryTaskQueue(TaskQueue):
    def __init__(self, celery_app: Celery):
        self.celery_app = celery_app

    async def enqueue(self, job: str, **kwargs: Any) -> str:
        payload = {
            name: str(value) if isinstance(value, uuid.UUID) else value
            for name, value in kwargs.items()
        }
        result = await asyncio.to_thread(
            self.celery_app.send_task, job, kwargs=payload
        )
        logger.info(f"Sent job '{job}' to Celery as {result.id}")
        return result.id
