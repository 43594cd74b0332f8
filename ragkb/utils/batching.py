"""Helpers for keeping bulk inserts under the driver's bind parameter ceiling."""

from typing import Iterator, Sequence, TypeVar

T = TypeVar("T")

# asyncpg refuses statements with more bind parameters than this.
MAX_PARAMS = 32767


def safe_batch_size(column_count: int, max_params: int = MAX_PARAMS) -> int:
    """Largest row count whose multi-row INSERT stays within `max_params`."""
    if column_count <= 0:
        raise ValueError("column_count must be positive")
    return max(1, max_params // column_count)


def batched(rows: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    if size <= 0:
        raise ValueError("size must be positive")
    for start in range(0, len(rows), size):
        yield rows[start : start + size]
