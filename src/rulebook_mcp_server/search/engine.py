"""
Search Engine

Cache-through semantic search plus point and category lookups over the
current corpus generation.

Responsibilities
----------------
- Validate and clamp search arguments
- Serve repeated queries from the cache
- Embed the query (query mode) and search the vector table on a miss
- Shape vector hits into SearchResult objects and write them back
- Resolve documents and categories case-insensitively from memory
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from ..cache.document_cache import DocumentCache
from ..config import settings
from ..core.errors import DocumentNotFoundError, InvalidQueryError, UnknownCategoryError
from ..corpus.models import Category, Document, SearchResult
from ..corpus.snapshot import CorpusState
from ..embeddings.embedder import Embedder
from ..index.store import IndexHit, IndexStore

logger = logging.getLogger("rulebook.search")

TRUNCATION_MARKER = "..."


@dataclass(frozen=True)
class CategoryListing:
    category: Category
    documents: List[Document]


def distance_to_score(distance: float) -> float:
    """
    Map a cosine distance to a similarity score in [0, 1].
    """
    return min(1.0, max(0.0, 1.0 - distance))


def summarize(text: str, max_chars: int) -> str:
    if len(text) > max_chars:
        return f"{text[:max_chars]}{TRUNCATION_MARKER}"
    return text


class SearchEngine:
    def __init__(
        self,
        embedder: Embedder,
        index_store: IndexStore,
        cache: DocumentCache,
        state: CorpusState,
        table_name: str,
        default_limit: Optional[int] = None,
        max_limit: Optional[int] = None,
        summary_max_chars: Optional[int] = None,
    ) -> None:
        self.embedder = embedder
        self.index_store = index_store
        self.cache = cache
        self.state = state
        self.table_name = table_name
        self.default_limit = default_limit or settings.search_default_limit
        self.max_limit = max_limit or settings.search_max_limit
        self.summary_max_chars = summary_max_chars or settings.summary_max_chars

    # ------------------------------------------------------------------
    # Semantic search
    # ------------------------------------------------------------------

    def clamp_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.default_limit
        return max(1, min(int(limit), self.max_limit))

    async def search(
        self,
        query: str,
        limit: Optional[int] = None,
    ) -> List[SearchResult]:
        """
        Search the corpus by semantic similarity to `query`.

        Returns at most `limit` results ordered by descending score.

        Raises
        ------
        InvalidQueryError
            If the query is empty or blank.
        EmbeddingError, IndexStoreError
            If the query cannot be embedded or the vector table queried.
        """
        query = (query or "").strip()
        if not query:
            raise InvalidQueryError("query must not be empty")

        limit = self.clamp_limit(limit)

        # Cache entries are bound to the generation this search started on
        revision = self.state.current.revision

        cached = await self.cache.get_search_results(query, limit, revision)
        if cached is not None:
            logger.info("Search cache hit for %r (limit=%d)", query, limit)
            return cached

        query_vector = await self.embedder.embed_query(query)
        hits = await asyncio.to_thread(
            self.index_store.search,
            self.table_name,
            query_vector,
            limit,
        )

        results = sorted(
            (self._to_result(hit) for hit in hits),
            key=lambda result: result.score,
            reverse=True,
        )

        await self.cache.set_search_results(query, limit, revision, results)
        return results

    def _to_result(self, hit: IndexHit) -> SearchResult:
        return SearchResult(
            id=hit.id,
            title=hit.title,
            category=hit.category,
            score=distance_to_score(hit.distance),
            summary=summarize(hit.text, self.summary_max_chars),
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_document(self, document_id: str) -> Document:
        """
        Return one document by id, matched case-insensitively.

        Never consults the vector table: it holds embeddings, not content.
        """
        document_id = (document_id or "").strip()
        if not document_id:
            raise InvalidQueryError("document id must not be empty")

        cached = await self.cache.get_document(document_id)
        if cached is not None:
            return cached

        doc = self.state.current.find_document(document_id)
        if doc is None:
            raise DocumentNotFoundError(document_id)
        return doc

    def list_category(self, key: str) -> CategoryListing:
        """
        Return a category and its documents sorted by id.

        Raises
        ------
        UnknownCategoryError
            Carrying the available category keys.
        """
        key = (key or "").strip()
        if not key:
            raise InvalidQueryError("category must not be empty")

        snapshot = self.state.current
        category = snapshot.find_category(key)
        if category is None:
            raise UnknownCategoryError(
                key,
                [cat.key for cat in snapshot.sorted_categories()],
            )

        return CategoryListing(
            category=category,
            documents=snapshot.category_members(category.key),
        )

    def list_categories(self) -> List[Category]:
        return self.state.current.sorted_categories()
