"""Upload text extraction."""

from docurag.providers.parser.document_parser import DocumentParser

__all__ = ["DocumentParser"]
