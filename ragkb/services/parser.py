"""
Format-specific text extraction for uploaded source files.
"""

import asyncio
import io
import re
import zipfile
from dataclasses import dataclass, field
from typing import Callable, Optional

import fitz
from docx import Document as DocxDocument
from docx.opc.exceptions import PackageNotFoundError

from ragkb.services.errors import ParseFailure
from ragkb.services.file_types import FileType
from ragkb.services.storage import BlobStore
from ragkb.utils.logging_config import logger

HAN_PATTERN = re.compile(r"[\u4e00-\u9fa5]")
LATIN_WORD_PATTERN = re.compile(r"[a-zA-Z]+")
MARKDOWN_TITLE_PATTERN = re.compile(r"^#\s+(.+)$", re.MULTILINE)

_EXCESS_NEWLINES = re.compile(r"\n{3,}")


@dataclass
class ParsedMetadata:
    word_count: int
    page_count: Optional[int] = None
    title: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"wordCount": self.word_count}
        if self.page_count is not None:
            data["pageCount"] = self.page_count
        if self.title is not None:
            data["title"] = self.title
        return data


@dataclass
class ParsedDocument:
    content: str
    metadata: ParsedMetadata = field(default_factory=lambda: ParsedMetadata(0))


def count_words(text: str) -> int:
    """
    Approximate word count for mixed CJK/Latin text: every Han character
    counts as one word, plus every run of Latin letters.
    """
    return len(HAN_PATTERN.findall(text)) + len(LATIN_WORD_PATTERN.findall(text))


def _decode_utf8(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ParseFailure(f"File is not valid UTF-8 text: {e}", e) from e


def parse_pdf(data: bytes) -> ParsedDocument:
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except (fitz.FileDataError, RuntimeError, ValueError) as e:
        raise ParseFailure(f"Failed to open PDF: {e}", e) from e
    try:
        page_count = doc.page_count
        page_texts = [page.get_text() for page in doc]
    except (fitz.FileDataError, RuntimeError, ValueError) as e:
        raise ParseFailure(f"Failed to read PDF pages: {e}", e) from e
    finally:
        doc.close()
    if page_count == 0:
        raise ParseFailure("PDF has no pages")
    text = "\n".join(page_texts)
    return ParsedDocument(
        content=text,
        metadata=ParsedMetadata(word_count=count_words(text), page_count=page_count),
    )


def parse_txt(data: bytes) -> ParsedDocument:
    text = _decode_utf8(data)
    return ParsedDocument(content=text, metadata=ParsedMetadata(count_words(text)))


def parse_markdown(data: bytes) -> ParsedDocument:
    text = _decode_utf8(data)
    title_match = MARKDOWN_TITLE_PATTERN.search(text)
    title = title_match.group(1).strip() if title_match else None
    return ParsedDocument(
        content=text,
        metadata=ParsedMetadata(word_count=count_words(text), title=title),
    )


def parse_docx(data: bytes) -> ParsedDocument:
    """
    Joins the body paragraphs with newlines. Run text keeps explicit breaks
    as newlines and tabs as tab characters; field instructions and
    tracked deletions are not part of it.
    """
    try:
        document = DocxDocument(io.BytesIO(data))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
        raise ParseFailure(f"Failed to read DOCX container: {e}", e) from e
    text = "\n".join(paragraph.text for paragraph in document.paragraphs)
    text = _EXCESS_NEWLINES.sub("\n\n", text).strip()
    return ParsedDocument(content=text, metadata=ParsedMetadata(count_words(text)))


PARSERS: dict[FileType, Callable[[bytes], ParsedDocument]] = {
    FileType.PDF: parse_pdf,
    FileType.TXT: parse_txt,
    FileType.MD: parse_markdown,
    FileType.DOCX: parse_docx,
}


def parse_bytes(data: bytes, declared_type: FileType | str) -> ParsedDocument:
    """
    Extracts text and metadata from raw file bytes.

    Args:
        data: The raw file content.
        declared_type: A FileType or a declared type string such as `pdf`
            or `markdown`.

    Raises:
        UnsupportedFileType: If the declared type is not supported.
        ParseFailure: If the bytes cannot be decoded as the declared type.
    """
    file_type = (
        declared_type
        if isinstance(declared_type, FileType)
        else FileType.from_declared(declared_type)
    )
    return PARSERS[file_type](data)


async def parse_file(
    blob_store: BlobStore,
    key: str,
    declared_type: FileType | str,
    timeout: Optional[float] = None,
) -> ParsedDocument:
    """
    Fetches a blob and parses it. Fetch errors, including timeouts, surface
    as ParseFailure.
    """
    file_type = (
        declared_type
        if isinstance(declared_type, FileType)
        else FileType.from_declared(declared_type)
    )
    try:
        data = await asyncio.wait_for(blob_store.get(key), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise ParseFailure(f"Timed out fetching {key} from storage", e) from e
    except Exception as e:
        raise ParseFailure(f"Failed to fetch {key} from storage: {e}", e) from e

    logger.info(f"Parsing {file_type.value} file {key} ({len(data)} bytes)")
    return parse_bytes(data, file_type)
