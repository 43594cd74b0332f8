import uuid

from fastapi import APIRouter, Depends, HTTPException

from ragkb.api.deps import get_current_user_id, get_pipeline
from ragkb.schemas.task import TaskStatusResponse
from ragkb.services.ingestion import IngestionPipeline

router = APIRouter()


@router.get("/{task_id}", response_model=TaskStatusResponse)
async def get_task(
    task_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    """
    Poll the status and progress of a processing task.
    """
    task = await pipeline.get_task_status(task_id, user_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return TaskStatusResponse.model_validate(task)
