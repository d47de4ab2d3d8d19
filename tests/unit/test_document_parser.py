"""Unit tests for DocumentParser text extraction."""

from __future__ import annotations

import fitz  # PyMuPDF
import pytest

from docurag.providers.parser.document_parser import DocumentParser
from docurag.utils.errors import ExtractionError


def _pdf_bytes(pages: list[str]) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture()
def parser() -> DocumentParser:
    return DocumentParser()


class TestSupports:
    @pytest.mark.parametrize(
        "mime_type",
        ["text/plain", "text/markdown", "application/pdf", "text/plain; charset=utf-8", "TEXT/PLAIN"],
    )
    def test_supported(self, parser: DocumentParser, mime_type: str) -> None:
        assert parser.supports(mime_type) is True

    @pytest.mark.parametrize("mime_type", ["image/png", "application/msword", ""])
    def test_unsupported(self, parser: DocumentParser, mime_type: str) -> None:
        assert parser.supports(mime_type) is False


class TestTextExtraction:
    def test_plain_text(self, parser: DocumentParser) -> None:
        assert parser.extract_text("héllo wörld".encode(), "text/plain") == "héllo wörld"

    def test_markdown_kept_verbatim(self, parser: DocumentParser) -> None:
        source = "# Title\n\nSome *emphasis*."
        assert parser.extract_text(source.encode(), "text/markdown", "notes.md") == source

    def test_bom_dropped(self, parser: DocumentParser) -> None:
        assert parser.extract_text(b"\xef\xbb\xbfhello", "text/plain") == "hello"

    def test_invalid_utf8(self, parser: DocumentParser) -> None:
        with pytest.raises(ExtractionError, match="bad.txt"):
            parser.extract_text(b"\xff\xfe\xfa", "text/plain", "bad.txt")

    def test_unsupported_type(self, parser: DocumentParser) -> None:
        with pytest.raises(ExtractionError, match="Unsupported"):
            parser.extract_text(b"\x89PNG", "image/png", "photo.png")


class TestPdfExtraction:
    def test_pages_joined_with_blank_line(self, parser: DocumentParser) -> None:
        content = _pdf_bytes(["First page text", "Second page text"])

        text = parser.extract_text(content, "application/pdf", "two.pdf")

        assert text == "First page text\n\nSecond page text"

    def test_blank_pages_skipped(self, parser: DocumentParser) -> None:
        content = _pdf_bytes(["Only page", ""])
        assert parser.extract_text(content, "application/pdf") == "Only page"

    def test_image_only_pdf_yields_empty_text(self, parser: DocumentParser) -> None:
        assert parser.extract_text(_pdf_bytes([""]), "application/pdf") == ""

