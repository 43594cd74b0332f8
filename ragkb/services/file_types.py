"""Supported source file types."""

import enum
from typing import Optional

from ragkb.services.errors import UnsupportedFileType


class FileType(enum.Enum):
    PDF = "pdf"
    TXT = "txt"
    MD = "md"
    DOCX = "docx"

    @classmethod
    def from_declared(cls, declared_type: str) -> "FileType":
        """
        Maps a declared type (including the `text` and `markdown` aliases)
        to a FileType.

        Raises:
            UnsupportedFileType: If the value is not a supported type.
        """
        normalized = (declared_type or "").strip().lower()
        file_type = _ALIASES.get(normalized)
        if file_type is None:
            raise UnsupportedFileType(declared_type)
        return file_type


_ALIASES = {
    "pdf": FileType.PDF,
    "txt": FileType.TXT,
    "text": FileType.TXT,
    "md": FileType.MD,
    "markdown": FileType.MD,
    "docx": FileType.DOCX,
}

SUPPORTED_EXTENSIONS = frozenset(_ALIASES) - {"text"}


def _extension(filename: str) -> str:
    if "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


def file_type_from_name(filename: str) -> Optional[FileType]:
    """Returns the FileType implied by a filename's extension, if any."""
    ext = _extension(filename)
    if ext not in SUPPORTED_EXTENSIONS:
        return None
    return _ALIASES[ext]


def is_supported_file_type(filename: str) -> bool:
    return file_type_from_name(filename) is not None


def resolve_file_type(filename: str, declared_type: Optional[str]) -> FileType:
    """
    Picks the type for a stored file: the filename extension first, then the
    declared type (uploads often declare a MIME type here).
    """
    from_name = file_type_from_name(filename)
    if from_name is not None:
        return from_name
    return FileType.from_declared(declared_type or _extension(filename))
