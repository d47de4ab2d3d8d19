"""Application settings loaded from environment variables via pydantic-settings.

Field names map to upper-case environment variables (``chunk_size`` ->
``CHUNK_SIZE``).  A ``.env`` file in the working directory is read as a
lower-priority source.  Static defaults can also come from
``config/config.yaml``; see :mod:`docurag.config.loader`.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """docurag application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Language model ===
    # Empty llm_provider means "pick the first configured one" (see main.py).
    llm_provider: str = ""
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoints (Groq, TogetherAI, ...)
    openai_text_model: str = ""
    openai_embedding_model: str = ""
    ollama_base_url: str = "http://localhost:11434"
    ollama_text_model: str = "llama3.1"
    completion_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    completion_max_tokens: int = Field(default=1024, gt=0)

    # === Embeddings ===
    embedding_provider: str = "hash"  # hash | openai | fastembed
    embedding_dimension: int = Field(default=384, gt=0)

    # === Vector store ===
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_host: str = ""  # non-empty switches to the HTTP client
    chromadb_port: int = 8000
    chromadb_auth_token: str = ""
    chromadb_collection: str = "rag_documents"

    # === Relational store ===
    database_path: str = "data/docurag.db"

    # === Ingestion ===
    chunk_size: int = Field(default=1000, gt=0)
    chunk_overlap: int = Field(default=200, ge=0)
    ingestion_concurrency: int = Field(default=2, ge=1)
    # Unfinished documents whose heartbeat is older than the lease are failed
    # at startup; running workers refresh the heartbeat every interval.
    ingestion_lease_seconds: float = Field(default=300.0, ge=0.0)
    ingestion_heartbeat_seconds: float = Field(default=30.0, gt=0.0)
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    allowed_mime_types: list[str] = [
        "application/pdf",
        "text/plain",
        "text/markdown",
    ]

    # === Retrieval ===
    rag_top_k: int = Field(default=5, ge=1)
    history_fetch_limit: int = Field(default=10, ge=0)
    history_prompt_window: int = Field(default=5, ge=0)

    # === App ===
    app_env: str = "development"
    log_level: str = "INFO"

    @model_validator(mode="after")
    def _check_chunk_overlap(self) -> "Settings":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than "
                f"chunk_size ({self.chunk_size})"
            )
        return self

    @model_validator(mode="after")
    def _check_heartbeat(self) -> "Settings":
        if self.ingestion_lease_seconds and (
            self.ingestion_heartbeat_seconds >= self.ingestion_lease_seconds
        ):
            raise ValueError(
                f"ingestion_heartbeat_seconds ({self.ingestion_heartbeat_seconds}) must be "
                f"shorter than ingestion_lease_seconds ({self.ingestion_lease_seconds})"
            )
        return self
