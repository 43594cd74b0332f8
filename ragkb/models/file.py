"""File and knowledge base models."""

import uuid
from typing import Optional

from sqlalchemy import BigInteger, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from ragkb.models.base import Base, CreatedAtMixin, PrefixedIdModel


class File(PrefixedIdModel):
    __tablename__ = "files"
    id_prefix = "file"

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True, index=True
    )
    file_type: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    file_metadata: Mapped[Optional[dict]] = mapped_column(
        "metadata", JSONB, nullable=True
    )
    chunk_task_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("async_tasks.id", ondelete="SET NULL"), nullable=True
    )
    embedding_task_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("async_tasks.id", ondelete="SET NULL"), nullable=True
    )

    def __repr__(self) -> str:
        return f"<File(id={self.id}, name='{self.name}')>"


class KnowledgeBase(PrefixedIdModel):
    __tablename__ = "knowledge_bases"
    id_prefix = "kb"

    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True, index=True
    )

    def __repr__(self) -> str:
        return f"<KnowledgeBase(id={self.id}, name='{self.name}')>"


class KnowledgeBaseFile(Base, CreatedAtMixin):
    __tablename__ = "knowledge_base_files"

    knowledge_base_id: Mapped[str] = mapped_column(
        ForeignKey("knowledge_bases.id", ondelete="CASCADE"), primary_key=True
    )
    file_id: Mapped[str] = mapped_column(
        ForeignKey("files.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
