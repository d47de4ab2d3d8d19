"""Text extraction for uploaded files.

Plain text and Markdown are decoded as UTF-8 (a leading byte-order mark is
dropped).  PDFs are read page by page with PyMuPDF; pages are joined with a
blank line so the chunker sees page breaks as paragraph boundaries.
"""

from __future__ import annotations

import fitz  # PyMuPDF
import structlog

from docurag.interfaces.document_parser import IDocumentParser
from docurag.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)

_TEXT_TYPES = frozenset({"text/plain", "text/markdown", "text/x-markdown"})
_PDF_TYPE = "application/pdf"


class DocumentParser(IDocumentParser):
    """Extract text from ``text/plain``, ``text/markdown`` and PDF uploads."""

    def supports(self, mime_type: str) -> bool:
        return _normalize(mime_type) in _TEXT_TYPES or _normalize(mime_type) == _PDF_TYPE

    def extract_text(self, content: bytes, mime_type: str, filename: str = "") -> str:
        kind = _normalize(mime_type)
        if kind in _TEXT_TYPES:
            return self._decode_text(content, filename)
        if kind == _PDF_TYPE:
            return self._extract_pdf(content, filename)
        raise ExtractionError(
            message=f"Unsupported file type: {mime_type}",
            provider_name=self.get_provider_name(),
        )

    def get_provider_name(self) -> str:
        return "document_parser"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _decode_text(self, content: bytes, filename: str) -> str:
        try:
            return content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ExtractionError(
                message=f"{filename or 'upload'} is not valid UTF-8 text",
                provider_name=self.get_provider_name(),
            ) from exc

    def _extract_pdf(self, content: bytes, filename: str) -> str:
        try:
            doc = fitz.open(stream=content, filetype="pdf")
        except Exception as exc:
            raise ExtractionError(
                message=f"{filename or 'upload'} could not be opened as a PDF: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        pages: list[str] = []
        try:
            for page in doc:
                text = page.get_text("text").strip()
                if text:
                    pages.append(text)
        except Exception as exc:
            raise ExtractionError(
                message=f"Failed to read text from {filename or 'PDF'}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        finally:
            doc.close()

        if not pages:
            logger.warning("pdf_no_text_extracted", filename=filename)
        logger.info("pdf_text_extracted", filename=filename, pages=len(pages))
        return "\n\n".join(pages)


def _normalize(mime_type: str) -> str:
    # "text/plain; charset=utf-8" -> "text/plain"
    return mime_type.split(";", 1)[0].strip().lower()
