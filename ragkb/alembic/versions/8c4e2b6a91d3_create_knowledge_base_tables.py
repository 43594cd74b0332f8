"""create knowledge base tables

Revision ID: 8c4e2b6a91d3
Revises: 3f1a9c2d7b10
Create Date: 2026-10-12 09:31:05.772140

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "8c4e2b6a91d3"
down_revision: Union[str, Sequence[str], None] = "3f1a9c2d7b10"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(updated: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        )
    ]
    if updated:
        columns.append(
            sa.Column(
                "updated_at",
                postgresql.TIMESTAMP(timezone=True),
                server_default=sa.text("now()"),
                nullable=False,
            )
        )
    return columns


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "async_tasks",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("status", sa.String(length=10), nullable=False),
        sa.Column("error", postgresql.JSONB(), nullable=True),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("duration", sa.Float(), nullable=True),
        sa.Column("user_id", sa.UUID(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_async_tasks_user_id", "async_tasks", ["user_id"])

    op.create_table(
        "files",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.UUID(), nullable=True),
        sa.Column("file_type", sa.String(length=255), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("size", sa.BigInteger(), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column(
            "chunk_task_id",
            sa.UUID(),
            sa.ForeignKey("async_tasks.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "embedding_task_id",
            sa.UUID(),
            sa.ForeignKey("async_tasks.id", ondelete="SET NULL"),
            nullable=True,
        ),
        *_timestamps(),
    )
    op.create_index("ix_files_user_id", "files", ["user_id"])

    op.create_table(
        "knowledge_bases",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("user_id", sa.UUID(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_knowledge_bases_user_id", "knowledge_bases", ["user_id"])

    op.create_table(
        "knowledge_base_files",
        sa.Column(
            "knowledge_base_id",
            sa.String(),
            sa.ForeignKey("knowledge_bases.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "file_id",
            sa.String(),
            sa.ForeignKey("files.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("user_id", sa.UUID(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index(
        "ix_knowledge_base_files_file_id", "knowledge_base_files", ["file_id"]
    )

    op.create_table(
        "documents",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("file_type", sa.String(length=255), nullable=False),
        sa.Column("filename", sa.Text(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("source_type", sa.String(), nullable=False),
        sa.Column("source", sa.Text(), nullable=False),
        sa.Column(
            "file_id",
            sa.String(),
            sa.ForeignKey("files.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("user_id", sa.UUID(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_documents_file_id", "documents", ["file_id"])
    op.create_index("ix_documents_file_type", "documents", ["file_type"])
    op.create_index("ix_documents_source", "documents", ["source"])
    op.create_index("ix_documents_user_id", "documents", ["user_id"])

    op.create_table(
        "chunks",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column("text", sa.Text(), nullable=True),
        sa.Column("index", sa.Integer(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        sa.Column("user_id", sa.UUID(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_chunks_user_id", "chunks", ["user_id"])

    op.create_table(
        "document_chunks",
        sa.Column(
            "document_id",
            sa.String(),
            sa.ForeignKey("documents.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "chunk_id",
            sa.UUID(),
            sa.ForeignKey("chunks.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("page_index", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.UUID(), nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index("ix_document_chunks_chunk_id", "document_chunks", ["chunk_id"])

    op.create_table(
        "embeddings",
        sa.Column("id", sa.UUID(), primary_key=True),
        sa.Column(
            "chunk_id",
            sa.UUID(),
            sa.ForeignKey("chunks.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("embeddings", Vector(1024), nullable=False),
        sa.Column("model", sa.Text(), nullable=True),
        sa.Column("user_id", sa.UUID(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_embeddings_user_id", "embeddings", ["user_id"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("embeddings")
    op.drop_table("document_chunks")
    op.drop_table("chunks")
    op.drop_table("documents")
    op.drop_table("knowledge_base_files")
    op.drop_table("knowledge_bases")
    op.drop_table("files")
    op.drop_table("async_tasks")
