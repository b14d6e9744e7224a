"""
Document Cache

Namespaced, best-effort caching of one corpus over a single key-value
backend. All keys of a corpus share one prefix so the whole namespace can be
dropped at once when a new generation is indexed.

Key schema (prefix `p`, e.g. "cpg:v1:")
---------------------------------------
- `{p}document:{id}`          Document JSON            no expiry
- `{p}search:{rev}:{fp}`     SearchResult list JSON   search TTL
- `{p}categories`             Category list JSON       no expiry
- `{p}category_members:{key}` sorted id list JSON      no expiry
- `{p}corpus_version`         revision string          no expiry

Search entries carry the revision of the generation they were computed
from, so a result written late by a search that started before a re-index
is never read once the new generation is published.

Every read returns a value or None; every write is fire-and-forget.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import List, Optional, Sequence

from pydantic import TypeAdapter, ValidationError

from .backend import CacheBackend, DisabledCacheBackend
from ..corpus.models import Category, Document, SearchResult

logger = logging.getLogger("rulebook.cache")

DEFAULT_SEARCH_TTL_SECONDS = 3600

_search_results_adapter = TypeAdapter(List[SearchResult])
_categories_adapter = TypeAdapter(List[Category])
_id_list_adapter = TypeAdapter(List[str])


def normalize_query(query: str) -> str:
    """Collapse runs of whitespace and trim the ends."""
    return " ".join(query.split())


def query_fingerprint(query: str, limit: int) -> str:
    """
    Deterministic cache key component for a (query, limit) pair.

    SHA-256 over the normalized query, a separator and the limit, so the same
    query with different limits never shares a key.
    """
    digest = hashlib.sha256()
    digest.update(normalize_query(query).encode("utf-8"))
    digest.update(b"|")
    digest.update(str(limit).encode("ascii"))
    return digest.hexdigest()


class DocumentCache:
    """
    Typed access to the cached collections of one corpus.
    """

    def __init__(
        self,
        backend: CacheBackend,
        key_prefix: str,
        search_ttl_seconds: int = DEFAULT_SEARCH_TTL_SECONDS,
    ) -> None:
        self._backend = backend
        self.key_prefix = key_prefix
        self.search_ttl_seconds = search_ttl_seconds

    @property
    def backend(self) -> CacheBackend:
        return self._backend

    @property
    def enabled(self) -> bool:
        """False when no cache is configured for this process."""
        return not isinstance(self._backend, DisabledCacheBackend)

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def document_key(self, document_id: str) -> str:
        return f"{self.key_prefix}document:{document_id}"

    def search_key(self, query: str, limit: int, revision: Optional[str]) -> str:
        return f"{self.key_prefix}search:{revision or '-'}:{query_fingerprint(query, limit)}"

    def categories_key(self) -> str:
        return f"{self.key_prefix}categories"

    def category_members_key(self, category: str) -> str:
        return f"{self.key_prefix}category_members:{category}"

    def corpus_version_key(self) -> str:
        return f"{self.key_prefix}corpus_version"

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def get_document(self, document_id: str) -> Optional[Document]:
        key = self.document_key(document_id)
        raw = await self._backend.get(key)
        if raw is None:
            return None
        try:
            return Document.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Cache deserialization failed for %s: %s", key, exc)
            return None

    async def set_document(self, document: Document) -> None:
        await self._backend.set(
            self.document_key(document.id),
            document.model_dump_json(),
        )

    # ------------------------------------------------------------------
    # Search results
    # ------------------------------------------------------------------

    async def get_search_results(
        self,
        query: str,
        limit: int,
        revision: Optional[str],
    ) -> Optional[List[SearchResult]]:
        key = self.search_key(query, limit, revision)
        raw = await self._backend.get(key)
        if raw is None:
            return None
        try:
            return _search_results_adapter.validate_json(raw)
        except ValidationError as exc:
            logger.warning("Cache deserialization failed for %s: %s", key, exc)
            return None

    async def set_search_results(
        self,
        query: str,
        limit: int,
        revision: Optional[str],
        results: Sequence[SearchResult],
    ) -> None:
        await self._backend.set(
            self.search_key(query, limit, revision),
            _search_results_adapter.dump_json(list(results)).decode("utf-8"),
            ttl_seconds=self.search_ttl_seconds,
        )

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    async def get_categories(self) -> Optional[List[Category]]:
        key = self.categories_key()
        raw = await self._backend.get(key)
        if raw is None:
            return None
        try:
            return _categories_adapter.validate_json(raw)
        except ValidationError as exc:
            logger.warning("Cache deserialization failed for %s: %s", key, exc)
            return None

    async def set_categories(self, categories: Sequence[Category]) -> None:
        await self._backend.set(
            self.categories_key(),
            _categories_adapter.dump_json(list(categories)).decode("utf-8"),
        )

    async def get_category_members(self, category: str) -> Optional[List[str]]:
        key = self.category_members_key(category)
        raw = await self._backend.get(key)
        if raw is None:
            return None
        try:
            return _id_list_adapter.validate_json(raw)
        except ValidationError as exc:
            logger.warning("Cache deserialization failed for %s: %s", key, exc)
            return None

    async def set_category_members(self, category: str, ids: Sequence[str]) -> None:
        await self._backend.set(
            self.category_members_key(category),
            json.dumps(list(ids)),
        )

    # ------------------------------------------------------------------
    # Corpus version
    # ------------------------------------------------------------------

    async def get_corpus_version(self) -> Optional[str]:
        return await self._backend.get(self.corpus_version_key())

    async def set_corpus_version(self, revision: str) -> None:
        await self._backend.set(self.corpus_version_key(), revision)

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    async def invalidate_all(self) -> None:
        """
        Drop every cached entry of this corpus.

        Called once per successful re-index, before repopulation.
        """
        if not await self._backend.delete_by_prefix(self.key_prefix):
            logger.warning("Cache invalidation for %s did not complete", self.key_prefix)
