"""Document model for parsed file content and its chunk associations."""

import uuid
from typing import Optional

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from ragkb.models.base import Base, CreatedAtMixin, PrefixedIdModel


class Document(PrefixedIdModel):
    __tablename__ = "documents"
    id_prefix = "docs"

    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    file_type: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    filename: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    doc_metadata: Mapped[Optional[dict]] = mapped_column(
        "metadata", JSONB, nullable=True
    )
    source_type: Mapped[str] = mapped_column(
        String, nullable=False, comment="One of: file, web, api."
    )
    source: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    file_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("files.id", ondelete="CASCADE"), nullable=True, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, file_id={self.file_id})>"


class DocumentChunk(Base, CreatedAtMixin):
    __tablename__ = "document_chunks"

    document_id: Mapped[str] = mapped_column(
        ForeignKey("documents.id", ondelete="CASCADE"), primary_key=True
    )
    chunk_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("chunks.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    page_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
