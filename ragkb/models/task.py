"""AsyncTask model for tracking pipeline runs."""

import enum
import uuid
from typing import Optional

from sqlalchemy import Enum, Float, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from ragkb.models.base import BaseModel


class TaskStatus(enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class AsyncTask(BaseModel):
    __tablename__ = "async_tasks"

    type: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[TaskStatus] = mapped_column(
        Enum(
            TaskStatus,
            native_enum=False,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=TaskStatus.PENDING,
    )
    error: Mapped[Optional[dict]] = mapped_column(
        JSONB, nullable=True, comment="Structured failure payload."
    )
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    duration: Mapped[Optional[float]] = mapped_column(
        Float, nullable=True, comment="Run time in seconds."
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<AsyncTask(id={self.id}, type='{self.type}', status='{self.status.value}')>"
