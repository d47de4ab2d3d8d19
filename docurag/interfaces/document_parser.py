"""Abstract base class for upload text extraction."""

from __future__ import annotations

from abc import ABC, abstractmethod


class IDocumentParser(ABC):
    """Contract for turning raw upload bytes into plain text."""

    @abstractmethod
    def supports(self, mime_type: str) -> bool:
        """Return True if *mime_type* can be parsed."""

    @abstractmethod
    def extract_text(self, content: bytes, mime_type: str, filename: str = "") -> str:
        """Return the text contained in *content*.

        Raises
        ------
        docurag.utils.errors.ExtractionError
            If the type is unsupported or the content cannot be decoded.
        """
