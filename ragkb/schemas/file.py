"""Pydantic schemas for file operations."""

from pydantic import BaseModel, Field


class FileDataDeletedResponse(BaseModel):
    """Response schema for removing a file's indexed data."""

    file_id: str = Field(..., description="The file whose data was removed.")
    documents_deleted: int = Field(
        ..., description="Documents removed along with their chunks and embeddings."
    )
