"""Error taxonomy for the ingestion and retrieval pipeline."""

from typing import Optional


class KnowledgeBaseError(Exception):
    """Base class for all pipeline errors."""


class UnsupportedFileType(KnowledgeBaseError):
    def __init__(self, file_type: str):
        self.file_type = file_type
        super().__init__(f"Unsupported file type: {file_type}")


class ParseFailure(KnowledgeBaseError):
    """The source bytes could not be fetched or decoded for their declared type."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class EmbeddingFailure(KnowledgeBaseError):
    """The embedding provider did not return usable vectors within the retry budget."""


class DimensionMismatch(EmbeddingFailure):
    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}"
        )


class SourceFileMissing(KnowledgeBaseError):
    def __init__(self, file_id: str):
        self.file_id = file_id
        super().__init__(f"File not found: {file_id}")
