from typing import Literal, Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Corpus checkout (a git working tree)
    corpus_repo_path: str = "/app/data/corpus"
    corpus_format: Literal["cpp-core-guidelines", "nodejs-best-practices"] = (
        "cpp-core-guidelines"
    )
    corpus_file: Optional[str] = None  # overrides the format's default file

    # FAISS tables
    index_path: str = "/app/data/index"
    index_table: Optional[str] = None  # defaults to the format's table name

    # Redis is optional; without it the server runs uncached
    redis_url: Optional[str] = None
    cache_key_prefix: Optional[str] = None
    cache_timeout_seconds: float = 0.5
    search_cache_ttl_seconds: int = 3600

    # OpenAI-compatible embeddings endpoint serving nomic-embed-text
    embedding_base_url: str = "http://localhost:11434/v1/embeddings"
    embedding_api_key: Optional[SecretStr] = None
    embedding_model: str = "nomic-embed-text"
    embedding_dimensions: int = 768
    embedding_batch_size: int = 4
    embedding_timeout_seconds: float = 60.0
    embedding_max_concurrency: int = 4

    search_default_limit: int = 10
    search_max_limit: int = 50
    summary_max_chars: int = 300

    admin_api_key: Optional[SecretStr] = None
    index_on_startup: bool = True

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

settings = Settings()
