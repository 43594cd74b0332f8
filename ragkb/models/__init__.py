"""Exports all models for easy access."""

from .base import Base, BaseModel, prefixed_id
from .chunk import Chunk, Embedding
from .document import Document, DocumentChunk
from .file import File, KnowledgeBase, KnowledgeBaseFile
from .task import AsyncTask, TaskStatus

__all__ = [
    "Base",
    "BaseModel",
    "prefixed_id",
    "File",
    "KnowledgeBase",
    "KnowledgeBaseFile",
    "Document",
    "DocumentChunk",
    "Chunk",
    "Embedding",
    "AsyncTask",
    "TaskStatus",
]
