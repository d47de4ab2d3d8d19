"""Custom exception hierarchy for docurag.

All application exceptions inherit from :class:`DocuRagError`, which carries
an optional ``provider_name`` so handlers can tell which collaborator
("openai", "chromadb", "sqlite", ...) caused the failure.

    DocuRagError  (base -- catch-all for any docurag error)
    +-- ExtractionError        (unsupported, corrupt or oversized upload)
    +-- EmbeddingError         (embedding backend failure or bad output)
    +-- VectorIndexError       (vector store failure)
    |   +-- IndexWriteError    (upsert / delete)
    |   +-- IndexQueryError    (similarity search)
    +-- CompletionError        (language-model call failure)
    +-- NotFoundError          (unknown document id)
    +-- StorageError           (relational store failure)
    +-- ConfigurationError     (bad settings / unknown provider)

Ingestion converts every error raised after a pass starts into a FAILED
document status.  The query path lets them propagate to the caller.
"""


class DocuRagError(Exception):
    """Base exception for all docurag errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name``.  ``__str__`` prefixes the provider in brackets, e.g.
    ``[chromadb] ChromaDB upsert failed: ...``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Ingestion errors
# ---------------------------------------------------------------------------

class ExtractionError(DocuRagError):
    """Raised when text cannot be extracted from an uploaded file."""

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(DocuRagError):
    """Raised when the embedding backend fails or returns malformed vectors."""

    def __init__(
        self,
        message: str = "Embedding generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Vector index errors
# ---------------------------------------------------------------------------

class VectorIndexError(DocuRagError):
    """Base class for vector store failures."""

    def __init__(
        self,
        message: str = "Vector index operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class IndexWriteError(VectorIndexError):
    """Raised when an upsert or delete against the vector store fails.

    An upsert that fails part-way may have persisted a prefix of its
    entries; callers that need all-or-nothing must delete the ids they sent.
    """

    def __init__(
        self,
        message: str = "Vector index write failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class IndexQueryError(VectorIndexError):
    """Raised when a similarity query against the vector store fails."""

    def __init__(
        self,
        message: str = "Vector index query failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Generation errors
# ---------------------------------------------------------------------------

class CompletionError(DocuRagError):
    """Raised when a language-model call fails or returns no content."""

    def __init__(
        self,
        message: str = "Completion request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Storage / lookup / configuration errors
# ---------------------------------------------------------------------------

class NotFoundError(DocuRagError):
    """Raised when a referenced document does not exist."""

    def __init__(
        self,
        message: str = "Resource not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StorageError(DocuRagError):
    """Raised when the relational store rejects a read or write."""

    def __init__(
        self,
        message: str = "Storage operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(DocuRagError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
