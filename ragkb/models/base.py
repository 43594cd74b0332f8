"""Base model for all other models to inherit from."""

import secrets
import uuid
from datetime import datetime
from typing import ClassVar

from sqlalchemy import String, func
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from uuid_extensions import uuid7


class Base(DeclarativeBase):
    """Base for all models."""

    pass


def prefixed_id(prefix: str, size: int = 12) -> str:
    """Generates ids such as `file_3f9a...` for tables keyed by text."""
    return f"{prefix}_{secrets.token_hex(size)}"


class CreatedAtMixin:
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="The time the record was created.",
    )


class TimestampMixin(CreatedAtMixin):
    """Mixin to add created_at and updated_at timestamps to a model."""

    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        comment="The time the record was last updated.",
    )


class BaseModel(Base, TimestampMixin):
    """
    Base model for all other models to inherit from.
    It includes a UUID primary key and timestamps.
    """

    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid7,
        comment="The unique identifier for the record.",
    )


class PrefixedIdModel(Base, TimestampMixin):
    """Base for tables keyed by prefixed text ids (files, documents, knowledge bases)."""

    __abstract__ = True
    id_prefix: ClassVar[str] = ""

    id: Mapped[str] = mapped_column(
        String,
        primary_key=True,
        comment="The unique identifier for the record.",
    )

    def __init__(self, **kwargs):
        kwargs.setdefault("id", prefixed_id(self.id_prefix))
        super().__init__(**kwargs)
