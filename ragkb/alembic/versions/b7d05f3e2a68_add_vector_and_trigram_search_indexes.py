"""add vector and trigram search indexes

Revision ID: b7d05f3e2a68
Revises: 8c4e2b6a91d3
Create Date: 2026-10-12 10:02:47.193826

"""

from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "b7d05f3e2a68"
down_revision: Union[str, Sequence[str], None] = "8c4e2b6a91d3"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.execute("""
        CREATE INDEX CONCURRENTLY IF NOT EXISTS idx_embeddings_hnsw
        ON embeddings
        USING hnsw (embeddings vector_cosine_ops)
        WITH (m = 16, ef_construction = 64)
    """)
    op.execute("""
        CREATE INDEX CONCURRENTLY IF NOT EXISTS idx_chunks_text_trgm
        ON chunks
        USING gin (text gin_trgm_ops)
    """)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("idx_chunks_text_trgm", table_name="chunks")
    op.drop_index("idx_embeddings_hnsw", table_name="embeddings")
