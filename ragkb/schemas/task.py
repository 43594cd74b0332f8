"""Pydantic schemas for background task polling."""

import uuid
from typing import Optional

from pydantic import BaseModel, Field

from ragkb.models.task import TaskStatus


class TaskCreatedResponse(BaseModel):
    """Response schema for a scheduled pipeline run."""

    task_id: uuid.UUID = Field(..., description="Poll this id for progress.")
    file_id: str = Field(..., description="The file being processed.")
    status: TaskStatus = Field(default=TaskStatus.PENDING)


class TaskStatusResponse(BaseModel):
    id: uuid.UUID
    type: str
    status: TaskStatus
    progress: int = Field(..., ge=0, le=100)
    message: Optional[str] = None
    error: Optional[dict] = Field(
        default=None, description="`message`, `type` and `stage` of a failed run."
    )
    duration: Optional[float] = Field(default=None, description="Seconds.")
    model_config = {"from_attributes": True}
