import asyncio
import io
import zipfile

import docx
import fitz
import pytest

from ragkb.services.errors import ParseFailure, UnsupportedFileType
from ragkb.services.file_types import (
    FileType,
    file_type_from_name,
    is_supported_file_type,
    resolve_file_type,
)
from ragkb.services.parser import count_words, parse_bytes, parse_file

from fakes import FakeBlobStore


WORD_NAMESPACE = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"


def make_docx(body_xml: str) -> bytes:
    """A Word package whose main document body is `body_xml`."""
    template = io.BytesIO()
    docx.Document().save(template)
    document_xml = (
        f'<w:document xmlns:w="{WORD_NAMESPACE}"><w:body>{body_xml}</w:body></w:document>'
    )
    buffer = io.BytesIO()
    with zipfile.ZipFile(template) as source, zipfile.ZipFile(buffer, "w") as archive:
        for item in source.infolist():
            data = source.read(item.filename)
            if item.filename == "word/document.xml":
                data = document_xml.encode()
            archive.writestr(item, data)
    return buffer.getvalue()


def make_pdf(*pages: str) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def test_count_words_mixes_han_and_latin():
    assert count_words("Hello world") == 2
    assert count_words("你好 world") == 3
    assert count_words("") == 0


def test_txt_is_decoded_verbatim():
    parsed = parse_bytes("line one\n  line two\n".encode(), "txt")

    assert parsed.content == "line one\n  line two\n"
    assert parsed.metadata.word_count == 4
    assert parsed.metadata.title is None


def test_text_alias():
    assert parse_bytes(b"abc", "text").content == "abc"


def test_markdown_title_from_first_heading():
    data = b"intro line\n# Quarterly Report \n## Details\n# Second"
    parsed = parse_bytes(data, "markdown")

    assert parsed.metadata.title == "Quarterly Report"
    assert parsed.metadata.to_dict()["title"] == "Quarterly Report"


def test_markdown_without_heading():
    parsed = parse_bytes(b"## only a subheading", FileType.MD)

    assert parsed.metadata.title is None
    assert "title" not in parsed.metadata.to_dict()


def test_invalid_utf8_is_parse_failure():
    with pytest.raises(ParseFailure) as exc_info:
        parse_bytes(b"\xff\xfe\xfa", "txt")

    assert isinstance(exc_info.value.cause, UnicodeDecodeError)


def test_docx_line_break_between_runs():
    xml = "<w:p><w:r><w:t>Hello</w:t><w:br/><w:t>World</w:t></w:r></w:p>"
    parsed = parse_bytes(make_docx(xml), "docx")

    assert "Hello\nWorld" in parsed.content
    assert parsed.metadata.word_count == 2


def test_docx_paragraphs_tabs_and_blank_lines():
    xml = (
        "<w:p><w:r><w:t>A</w:t><w:tab/><w:t>B &amp; C</w:t></w:r></w:p>"
        "<w:p/><w:p/><w:p/>"
        "<w:p><w:r><w:t>D</w:t><w:cr/><w:t>E</w:t></w:r></w:p>"
    )

    assert parse_bytes(make_docx(xml), "docx").content == "A\tB & C\n\nD\nE"


def test_docx_skips_field_codes_and_deleted_text():
    xml = (
        "<w:p>"
        "<w:r><w:t>Visible</w:t></w:r>"
        '<w:r><w:instrText xml:space="preserve"> HYPERLINK "http://x.example" </w:instrText></w:r>'
        '<w:del w:id="1" w:author="editor"><w:r><w:delText>REMOVED</w:delText></w:r></w:del>'
        "</w:p>"
        "<w:p><w:r><w:t>Hello</w:t><w:br/><w:t>World</w:t><w:tab/><w:t>X</w:t></w:r></w:p>"
    )

    parsed = parse_bytes(make_docx(xml), "docx")

    assert parsed.content == "Visible\nHello\nWorld\tX"
    assert "HYPERLINK" not in parsed.content
    assert "REMOVED" not in parsed.content


def test_docx_bad_zip_is_parse_failure():
    with pytest.raises(ParseFailure) as exc_info:
        parse_bytes(b"not a zip file", "docx")

    assert isinstance(exc_info.value.cause, zipfile.BadZipFile)


def test_docx_without_document_part_is_parse_failure():
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("word/styles.xml", "<w:styles/>")

    with pytest.raises(ParseFailure):
        parse_bytes(buffer.getvalue(), "docx")


def test_pdf_pages_and_text():
    parsed = parse_bytes(make_pdf("Hello PDF", "Second page"), "pdf")

    assert "Hello PDF" in parsed.content
    assert "Second page" in parsed.content
    assert parsed.metadata.page_count == 2
    assert parsed.metadata.to_dict()["pageCount"] == 2


def test_corrupt_pdf_is_parse_failure():
    with pytest.raises(ParseFailure):
        parse_bytes(b"%PDF-1.4 garbage", "pdf")


@pytest.mark.parametrize("declared", ["xlsx", "", "application/zip"])
def test_unsupported_type(declared):
    with pytest.raises(UnsupportedFileType):
        parse_bytes(b"data", declared)


def test_file_type_helpers():
    assert file_type_from_name("Notes.MD") is FileType.MD
    assert file_type_from_name("archive.tar.gz") is None
    assert is_supported_file_type("report.docx")
    assert not is_supported_file_type("report")
    assert resolve_file_type("report", "pdf") is FileType.PDF
    assert resolve_file_type("report.txt", "application/octet-stream") is FileType.TXT
    with pytest.raises(UnsupportedFileType):
        resolve_file_type("image.png", "image/png")


@pytest.mark.asyncio
async def test_parse_file_reads_blob():
    blobs = FakeBlobStore()
    await blobs.put("u/notes.md", b"# Notes\nbody")

    parsed = await parse_file(blobs, "u/notes.md", "md")

    assert parsed.metadata.title == "Notes"


@pytest.mark.asyncio
async def test_parse_file_missing_blob_is_parse_failure():
    with pytest.raises(ParseFailure) as exc_info:
        await parse_file(FakeBlobStore(), "missing.txt", "txt")

    assert isinstance(exc_info.value.cause, KeyError)


@pytest.mark.asyncio
async def test_parse_file_timeout_is_parse_failure():
    class SlowBlobStore(FakeBlobStore):
        async def get(self, key: str) -> bytes:
            await asyncio.sleep(1)
            return b""

    with pytest.raises(ParseFailure, match="Timed out"):
        await parse_file(SlowBlobStore(), "slow.txt", "txt", timeout=0.01)


@pytest.mark.asyncio
async def test_parse_file_rejects_unknown_type_before_fetch():
    with pytest.raises(UnsupportedFileType):
        await parse_file(FakeBlobStore(), "x.csv", "csv")
