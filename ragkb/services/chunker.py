"""
Boundary-aware text chunking with overlap.
"""

import math
import re
from dataclasses import dataclass
from typing import Sequence

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 200
# Separators in priority order: paragraph and line breaks, then sentence
# punctuation, then whitespace.
DEFAULT_SEPARATORS = ("\n\n", "\n", "。", ".", "！", "!", "？", "?", "；", ";", " ")
SEPARATOR_LOOKBACK = 200

_HAN = re.compile(r"[\u4e00-\u9fa5]")
_HORIZONTAL_WHITESPACE = re.compile(r"[^\S\n]+")
_SPACES_AROUND_NEWLINE = re.compile(r" ?\n ?")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


@dataclass(frozen=True)
class TextChunk:
    content: str
    index: int
    start_offset: int
    end_offset: int
    char_count: int

    @property
    def metadata(self) -> dict:
        """Metadata in the shape stored on `chunks.metadata`."""
        return {
            "startIndex": self.start_offset,
            "endIndex": self.end_offset,
            "charCount": self.char_count,
        }


def clean_text(text: str) -> str:
    """
    Collapses horizontal whitespace to single spaces, trims spaces around
    line breaks, limits blank lines to one and strips the ends.
    """
    text = _HORIZONTAL_WHITESPACE.sub(" ", text)
    text = _SPACES_AROUND_NEWLINE.sub("\n", text)
    text = _EXCESS_NEWLINES.sub("\n\n", text)
    return text.strip()


def _find_split(
    text: str, cursor: int, end: int, chunk_size: int, separators: Sequence[str]
) -> int:
    search_start = max(cursor + chunk_size - SEPARATOR_LOOKBACK, cursor)
    window = text[search_start:end]
    for separator in separators:
        position = window.rfind(separator)
        if position != -1:
            return search_start + position + 1
    return end


def chunk_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
    separators: Sequence[str] = DEFAULT_SEPARATORS,
) -> list[TextChunk]:
    """
    Splits text into overlapping chunks of at most `chunk_size` characters.

    Each window is cut at the last occurrence of the highest-priority
    separator found near its end, and the next window starts
    `chunk_overlap` characters before the cut. Offsets refer to the cleaned
    text.

    Args:
        text: The text to split.
        chunk_size: Maximum window length in characters.
        chunk_overlap: Characters shared by consecutive windows.
        separators: Cut points in priority order.

    Returns:
        list[TextChunk]: Chunks indexed 0..N-1 in document order.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if chunk_overlap < 0:
        raise ValueError("chunk_overlap must not be negative")

    cleaned = clean_text(text)
    if not cleaned:
        return []
    if len(cleaned) <= chunk_size:
        return [TextChunk(cleaned, 0, 0, len(cleaned), len(cleaned))]

    chunks: list[TextChunk] = []
    text_length = len(cleaned)
    cursor = 0
    while cursor < text_length:
        end = min(cursor + chunk_size, text_length)
        if end < text_length:
            end = _find_split(cleaned, cursor, end, chunk_size, separators)

        content = cleaned[cursor:end].strip()
        if content:
            chunks.append(TextChunk(content, len(chunks), cursor, end, len(content)))

        if end >= text_length:
            break
        next_cursor = end - chunk_overlap
        if next_cursor <= cursor:
            next_cursor = end
        cursor = next_cursor

    return chunks


def estimate_tokens(text: str) -> int:
    """
    Rough token estimate: 1.5 tokens per Han character, 4 characters per
    token otherwise. Not suitable for billing.
    """
    han_chars = len(_HAN.findall(text))
    other_chars = len(text) - han_chars
    return math.ceil(han_chars * 1.5 + other_chars / 4)


def chunk_by_tokens(
    text: str, max_tokens: int = 500, overlap_tokens: int = 50
) -> list[TextChunk]:
    """Token-sized variant of `chunk_text` using the estimate above."""
    total_tokens = estimate_tokens(text)
    if total_tokens == 0:
        return chunk_text(text)
    chars_per_token = len(text) / total_tokens
    chunk_size = max(1, math.floor(max_tokens * chars_per_token))
    overlap = math.floor(overlap_tokens * chars_per_token)
    return chunk_text(text, chunk_size=chunk_size, chunk_overlap=overlap)
