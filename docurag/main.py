"""Composition root: builds every provider and service from Settings.

:func:`build_application` wires the concrete adapters into the services and
returns an :class:`Application` container.  Callers (the CLI, a web layer,
tests) use it as an async context manager::

    async with build_application(settings) as app:
        document = await app.documents.upload(...)

``startup`` creates the SQLite tables, fails unfinished documents whose
heartbeat lease has run out and starts the ingestion worker; ``shutdown`` drains or
cancels the worker.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

import structlog

from docurag.config.settings import Settings
from docurag.interfaces.document_store import IDocumentStore
from docurag.interfaces.embedding_provider import IEmbeddingProvider
from docurag.interfaces.history_store import IHistoryStore
from docurag.interfaces.llm_provider import ILLMProvider
from docurag.interfaces.vector_store_provider import IVectorStoreProvider
from docurag.providers.parser.document_parser import DocumentParser
from docurag.providers.storage.sqlite_document_store import SQLiteDocumentStore
from docurag.providers.storage.sqlite_history_store import SQLiteHistoryStore
from docurag.services.document_service import DocumentService
from docurag.services.ingestion.chunker import TextChunker
from docurag.services.ingestion.ingestion_service import IngestionService
from docurag.services.ingestion.worker import IngestionWorker, recover_interrupted
from docurag.services.rag_service import RAGService
from docurag.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)


# ---------------------------------------------------------------------------
# Provider factories
# ---------------------------------------------------------------------------


def _build_llm_provider(app_settings: Settings) -> ILLMProvider:
    """Return the configured LLM provider.

    With ``llm_provider`` unset: OpenAI-compatible if a key is configured,
    otherwise Ollama.
    """
    choice = app_settings.llm_provider.strip().lower()
    if not choice:
        choice = "openai" if app_settings.openai_api_key else "ollama"

    if choice == "openai":
        from docurag.providers.llm.openai_provider import OpenAILLMProvider

        return OpenAILLMProvider(settings=app_settings)
    if choice == "ollama":
        from docurag.providers.llm.ollama_provider import OllamaLLMProvider

        return OllamaLLMProvider(settings=app_settings)
    raise ConfigurationError(message=f"Unknown llm_provider {app_settings.llm_provider!r}")


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Return the configured embedding provider (``hash`` by default)."""
    choice = app_settings.embedding_provider.strip().lower()

    if choice == "hash":
        from docurag.providers.embedding.hash_embedding_provider import HashEmbeddingProvider

        return HashEmbeddingProvider(dimension=app_settings.embedding_dimension)
    if choice == "openai":
        from docurag.providers.embedding.openai_embedding_provider import (
            OpenAIEmbeddingProvider,
        )

        provider = OpenAIEmbeddingProvider(settings=app_settings)
        if not provider.is_available():
            raise ConfigurationError(
                message="embedding_provider=openai requires OPENAI_API_KEY",
                provider_name=provider.get_provider_name(),
            )
        return provider
    if choice == "fastembed":
        from docurag.providers.embedding.fastembed_embedding_provider import (
            FastEmbedEmbeddingProvider,
        )

        provider = FastEmbedEmbeddingProvider(
            model_name=app_settings.openai_embedding_model or None,
            dimension=app_settings.embedding_dimension,
        )
        if not provider.is_available():
            raise ConfigurationError(
                message="embedding_provider=fastembed requires the 'fastembed' extra",
                provider_name=provider.get_provider_name(),
            )
        return provider
    raise ConfigurationError(
        message=f"Unknown embedding_provider {app_settings.embedding_provider!r}"
    )


def _build_vector_store(app_settings: Settings) -> IVectorStoreProvider:
    from docurag.providers.vector_store.chromadb_provider import ChromaDBProvider

    return ChromaDBProvider(
        persist_directory=app_settings.chromadb_persist_dir,
        host=app_settings.chromadb_host,
        port=app_settings.chromadb_port,
        auth_token=app_settings.chromadb_auth_token,
    )


# ---------------------------------------------------------------------------
# Application container
# ---------------------------------------------------------------------------


@dataclass
class Application:
    """Every long-lived component, wired together."""

    settings: Settings
    document_store: IDocumentStore
    history_store: IHistoryStore
    embedding_provider: IEmbeddingProvider
    vector_store: IVectorStoreProvider
    llm_provider: ILLMProvider
    ingestion: IngestionService
    worker: IngestionWorker
    documents: DocumentService
    rag: RAGService
    # Documents whose heartbeat is older than the lease are failed at startup.
    recover_on_startup: bool = True

    async def startup(self) -> None:
        await self.document_store.initialize()
        await self.history_store.initialize()
        if self.recover_on_startup:
            await recover_interrupted(
                self.document_store, timedelta(seconds=self.settings.ingestion_lease_seconds)
            )
        self.worker.start()
        logger.info(
            "application_started",
            embedding=self.embedding_provider.get_provider_name(),
            llm=self.llm_provider.get_provider_name(),
            vector_store=self.vector_store.get_provider_name(),
        )

    async def shutdown(self, drain: bool = True) -> None:
        await self.worker.stop(drain=drain)
        logger.info("application_stopped", drained=drain)

    async def __aenter__(self) -> Application:
        await self.startup()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown(drain=exc_type is None)


def build_application(
    app_settings: Settings,
    *,
    embedding_provider: IEmbeddingProvider | None = None,
    vector_store: IVectorStoreProvider | None = None,
    llm_provider: ILLMProvider | None = None,
) -> Application:
    """Construct every provider and service for *app_settings*.

    Keyword overrides replace the matching factory, which lets tests plug
    in doubles for the external services.
    """
    embedder = embedding_provider or _build_embedding_provider(app_settings)
    index = vector_store or _build_vector_store(app_settings)
    llm = llm_provider or _build_llm_provider(app_settings)

    document_store = SQLiteDocumentStore(app_settings.database_path)
    history_store = SQLiteHistoryStore(app_settings.database_path)

    ingestion = IngestionService(
        chunker=TextChunker(
            chunk_size=app_settings.chunk_size,
            overlap=app_settings.chunk_overlap,
        ),
        embedding_provider=embedder,
        vector_store=index,
        document_store=document_store,
        collection=app_settings.chromadb_collection,
    )
    worker = IngestionWorker(
        ingestion_service=ingestion,
        document_store=document_store,
        concurrency=app_settings.ingestion_concurrency,
        heartbeat_interval=app_settings.ingestion_heartbeat_seconds,
    )
    documents = DocumentService(
        document_store=document_store,
        parser=DocumentParser(),
        ingestion_service=ingestion,
        worker=worker,
        allowed_mime_types=app_settings.allowed_mime_types,
        max_upload_bytes=app_settings.max_upload_bytes,
    )
    rag = RAGService(
        embedding_provider=embedder,
        vector_store=index,
        history_store=history_store,
        llm_provider=llm,
        collection=app_settings.chromadb_collection,
        temperature=app_settings.completion_temperature,
        max_tokens=app_settings.completion_max_tokens,
        history_fetch_limit=app_settings.history_fetch_limit,
        history_prompt_window=app_settings.history_prompt_window,
        default_top_k=app_settings.rag_top_k,
    )

    return Application(
        settings=app_settings,
        document_store=document_store,
        history_store=history_store,
        embedding_provider=embedder,
        vector_store=index,
        llm_provider=llm,
        ingestion=ingestion,
        worker=worker,
        documents=documents,
        rag=rag,
    )
