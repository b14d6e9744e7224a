"""
Service Wiring

Builds the long-lived components of one corpus server from configuration and
ties them together. One `Runtime` exists per process; the FastAPI lifespan
and the command-line indexer both construct it through `build_runtime`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .cache.backend import CacheBackend, create_cache_backend
from .cache.document_cache import DocumentCache
from .config import Settings, settings as default_settings
from .corpus.parsers import CorpusFormat, get_corpus_format, resolve_corpus_file
from .corpus.revision import GitRevisionSource
from .corpus.snapshot import CorpusState
from .embeddings.embedder import Embedder
from .index.store import IndexStore
from .indexing.update import UpdateService
from .search.engine import SearchEngine

logger = logging.getLogger("rulebook.runtime")


@dataclass
class Runtime:
    settings: Settings
    corpus_format: CorpusFormat
    cache_backend: CacheBackend
    cache: DocumentCache
    state: CorpusState
    embedder: Embedder
    index_store: IndexStore
    search_engine: SearchEngine
    update_service: UpdateService

    async def close(self) -> None:
        await self.cache_backend.close()


def build_runtime(
    config: Optional[Settings] = None,
    cache_backend: Optional[CacheBackend] = None,
    embedder: Optional[Embedder] = None,
) -> Runtime:
    """
    Construct every component from `config`.

    Fails fast with ConfigurationError when the corpus format is unknown or
    the corpus file cannot be found in the checkout.
    """
    config = config or default_settings

    fmt = get_corpus_format(config.corpus_format)
    resolve_corpus_file(config.corpus_repo_path, fmt, config.corpus_file)

    backend = cache_backend or create_cache_backend(
        config.redis_url,
        timeout=config.cache_timeout_seconds,
    )
    cache = DocumentCache(
        backend,
        key_prefix=config.cache_key_prefix or fmt.cache_key_prefix,
        search_ttl_seconds=config.search_cache_ttl_seconds,
    )

    if embedder is None:
        api_key = (
            config.embedding_api_key.get_secret_value()
            if config.embedding_api_key
            else None
        )
        embedder = Embedder(
            base_url=config.embedding_base_url,
            api_key=api_key,
            model=config.embedding_model,
            dimensions=config.embedding_dimensions,
            batch_size=config.embedding_batch_size,
            timeout=config.embedding_timeout_seconds,
            max_concurrency=config.embedding_max_concurrency,
        )

    table_name = config.index_table or fmt.table_name
    index_store = IndexStore(config.index_path)
    state = CorpusState()

    search_engine = SearchEngine(
        embedder=embedder,
        index_store=index_store,
        cache=cache,
        state=state,
        table_name=table_name,
        default_limit=config.search_default_limit,
        max_limit=config.search_max_limit,
        summary_max_chars=config.summary_max_chars,
    )

    update_service = UpdateService(
        corpus_format=fmt,
        revision_source=GitRevisionSource(config.corpus_repo_path),
        embedder=embedder,
        index_store=index_store,
        cache=cache,
        state=state,
        repo_path=config.corpus_repo_path,
        corpus_file=config.corpus_file,
        table_name=table_name,
        dimensions=config.embedding_dimensions,
    )

    logger.info(
        "Runtime built: format=%s repo=%s index=%s table=%s",
        fmt.name,
        config.corpus_repo_path,
        config.index_path,
        table_name,
    )

    return Runtime(
        settings=config,
        corpus_format=fmt,
        cache_backend=backend,
        cache=cache,
        state=state,
        embedder=embedder,
        index_store=index_store,
        search_engine=search_engine,
        update_service=update_service,
    )
