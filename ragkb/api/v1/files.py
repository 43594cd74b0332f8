"""API endpoints for processing uploaded files."""

import uuid

from fastapi import APIRouter, Depends, HTTPException

from ragkb.api.deps import get_current_user_id, get_pipeline
from ragkb.schemas.file import FileDataDeletedResponse
from ragkb.schemas.task import TaskCreatedResponse
from ragkb.services.errors import SourceFileMissing
from ragkb.services.ingestion import IngestionPipeline

router = APIRouter()


@router.post(
    "/{file_id}/process",
    status_code=202,
    response_model=TaskCreatedResponse,
    summary="Index an uploaded file",
    description="Creates a processing task and runs parsing, chunking and embedding in the background.",
)
async def process_file(
    file_id: str,
    user_id: uuid.UUID = Depends(get_current_user_id),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> TaskCreatedResponse:
    try:
        task_id = await pipeline.create_process_task(file_id, user_id)
    except SourceFileMissing as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return TaskCreatedResponse(task_id=task_id, file_id=file_id)


@router.post(
    "/{file_id}/reembed",
    status_code=202,
    response_model=TaskCreatedResponse,
    summary="Embed chunks left without embeddings",
)
async def reembed_file(
    file_id: str,
    user_id: uuid.UUID = Depends(get_current_user_id),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> TaskCreatedResponse:
    try:
        task_id = await pipeline.create_reembed_task(file_id, user_id)
    except SourceFileMissing as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return TaskCreatedResponse(task_id=task_id, file_id=file_id)


@router.delete(
    "/{file_id}/data",
    response_model=FileDataDeletedResponse,
    summary="Remove a file's documents, chunks and embeddings",
)
async def delete_file_data(
    file_id: str,
    user_id: uuid.UUID = Depends(get_current_user_id),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> FileDataDeletedResponse:
    try:
        await pipeline.get_owned_file(file_id, user_id)
    except SourceFileMissing as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    deleted = await pipeline.delete_file_data(file_id)
    return FileDataDeletedResponse(file_id=file_id, documents_deleted=deleted)
