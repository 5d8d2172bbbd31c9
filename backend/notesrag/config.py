"""
Application configuration using Pydantic Settings.
All config is loaded from environment variables / .env file.
"""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    # ── App ──────────────────────────────────────────────
    APP_NAME: str = "notes-rag"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: str = "http://localhost:3000"  # comma-separated

    # ── Supabase ─────────────────────────────────────────
    SUPABASE_URL: str
    SUPABASE_KEY: str  # anon/public key
    SUPABASE_SERVICE_KEY: str = ""  # service_role key (worker + storage ops)
    SUPABASE_TIMEOUT_SECONDS: int = 30
    STORAGE_BUCKET: str = "files"
    SIGNED_URL_TTL_SECONDS: int = 60

    # ── Security ─────────────────────────────────────────
    JWT_SECRET_KEY: str  # JWT signing key
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRY_MINUTES: int = 1440  # 24 hours

    # ── LLM (Provider-Agnostic) ──────────────────────────
    LLM_PROVIDER: str = "gemini"  # gemini | openai
    LLM_MODEL: str = "gemini-2.5-flash"
    LLM_API_KEY: str = ""
    LLM_TEMPERATURE: float = 0.3

    # ── Embedding ────────────────────────────────────────
    EMBEDDING_PROVIDER: str = "huggingface"  # huggingface | openai
    EMBEDDING_MODEL: str = "sentence-transformers/all-MiniLM-L6-v2"
    EMBEDDING_API_KEY: str = ""
    EMBEDDING_DIMENSIONS: int = 384

    # ── Qdrant ───────────────────────────────────────────
    QDRANT_URL: str = "http://localhost:6333"
    QDRANT_API_KEY: str = ""
    QDRANT_COLLECTION: str = "document-embeddings-hf"

    # ── Redis / Ingestion queue ──────────────────────────
    REDIS_URL: str = "redis://localhost:6379/0"
    INGESTION_QUEUE_NAME: str = "file-upload-queue"
    INGESTION_CONCURRENCY: int = 10
    INGESTION_MAX_TRIES: int = 5
    INGESTION_JOB_TIMEOUT: int = 600  # seconds
    INGESTION_RETRY_BACKOFF_SECONDS: int = 10

    # ── RAG ──────────────────────────────────────────────
    CHUNK_SIZE: int = 1000
    CHUNK_OVERLAP: int = 200
    RETRIEVAL_TOP_K: int = 5
    CHAT_HISTORY_WINDOW: int = 10  # messages of history sent to the model
    QUERY_TIMEOUT_SECONDS: float = 60.0
    MAX_UPLOAD_BYTES: int = 50 * 1024 * 1024  # 50MB

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
    }


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance (singleton)."""
    return Settings()
