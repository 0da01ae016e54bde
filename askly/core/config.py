"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables (or a local .env file).
"""

from functools import lru_cache

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # ============================================
    # Application
    # ============================================
    app_name: str = "Askly"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = False

    # API Server
    api_prefix: str = "/api/v1"
    allowed_origins: list[str] = ["http://localhost:3000"]

    # ============================================
    # Qdrant (Vector Database)
    # ============================================
    qdrant_url: str = "http://localhost:6333"
    qdrant_api_key: str | None = None
    qdrant_collection: str = "askly-documents"
    qdrant_timeout: int = 60
    qdrant_upsert_batch_size: int = 100

    # ============================================
    # OpenAI
    # ============================================
    openai_api_key: str = ""
    openai_base_url: str | None = None
    openai_timeout: float = 120.0
    openai_max_retries: int = 2

    # ============================================
    # Embeddings
    # ============================================
    embedding_model: str = Field(
        default="text-embedding-3-large", description="OpenAI embedding model name"
    )
    embedding_dimensions: int = Field(
        default=3072, description="Embedding vector dimensions (must match model)"
    )
    embedding_batch_size: int = 100
    embedding_concurrency: int = 4

    # ============================================
    # Chat model
    # ============================================
    chat_model: str = "gpt-4o-mini"
    chat_temperature: float = 0.7
    chat_max_tokens: int = 1000

    # ============================================
    # Ingestion
    # ============================================
    chunk_size: int = 1000
    chunk_overlap: int = 200
    min_text_length: int = 50
    max_upload_bytes: int = 50 * 1024 * 1024
    max_website_batch: int = 50
    max_youtube_batch: int = 10
    fetch_timeout: float = 10.0
    fetch_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    )
    transcript_languages: list[str] = ["en"]
    transcript_timeout: float = 30.0

    # ============================================
    # Retrieval
    # ============================================
    retrieval_top_k: int = 8
    history_window_exchanges: int = 3

    # ============================================
    # Identity (supplied by the upstream auth provider)
    # ============================================
    identity_header: str = "X-User-Id"
    # SECURITY: dev bypass needs environment == "development" AND this flag
    dev_bypass_enabled: bool = Field(
        default=False,
        description="Explicitly enable X-Dev-Bypass header. Requires environment=development.",
    )
    dev_user_id: str = "dev-user"

    # ============================================
    # Langfuse (Observability)
    # ============================================
    langfuse_host: str = "http://localhost:3000"
    langfuse_public_key: str = ""
    langfuse_secret_key: str = ""

    # ============================================
    # Logging
    # ============================================
    log_level: str = "INFO"
    log_format: str = "console"  # "json" or "console"

    @field_validator("chunk_overlap")
    @classmethod
    def validate_overlap(cls, v: int, info: ValidationInfo) -> int:
        """Overlap must be smaller than the chunk size."""
        chunk_size = info.data.get("chunk_size", 1000)
        if v < 0 or v >= chunk_size:
            raise ValueError(f"chunk_overlap ({v}) must be in [0, chunk_size={chunk_size})")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return v

    @property
    def langfuse_enabled(self) -> bool:
        return bool(self.langfuse_public_key and self.langfuse_secret_key)

    @property
    def dev_bypass_allowed(self) -> bool:
        """Dev bypass only when both conditions hold."""
        return self.environment == "development" and self.dev_bypass_enabled is True


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
