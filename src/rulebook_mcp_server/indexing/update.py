"""
Corpus Update Service

Detects when the indexed corpus is stale and rebuilds the whole index
generation: parse, compose, embed, replace the vector table, repopulate the
cache and publish the new in-memory maps.

Failure semantics
-----------------
- Revision lookup failure: fatal, aborts the operation.
- Malformed corpus entries: skipped by the parser, never abort.
- Embedding count mismatch: fatal, aborts before any destructive write.
- Vector table write failure: fatal, previous generation keeps serving.
- Cache write failures during repopulation: logged only.

Re-index runs are single-flight: overlapping update triggers share one run.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol

from ..cache.document_cache import DocumentCache
from ..config import settings
from ..core.errors import EmbeddingCountMismatchError, IndexStoreError, ReindexError
from ..corpus.models import Category, Document
from ..corpus.parsers import CorpusFormat, ParseResult, load_corpus
from ..corpus.snapshot import CorpusSnapshot, CorpusState
from ..embeddings.embedder import Embedder
from ..index.store import IndexRow, IndexStore, TableSchema

logger = logging.getLogger("rulebook.update")

LIVENESS_PROBE_ID = "__nonexistent__"


class RevisionSource(Protocol):
    async def current_revision(self) -> str: ...


@dataclass(frozen=True)
class ReindexResult:
    revision: str
    documents: List[Document]
    categories: List[Category]


@dataclass(frozen=True)
class UpdateResult:
    updated: bool
    revision: str
    document_count: int


class UpdateService:
    """
    Owner of generation transitions for one corpus.
    """

    def __init__(
        self,
        corpus_format: CorpusFormat,
        revision_source: RevisionSource,
        embedder: Embedder,
        index_store: IndexStore,
        cache: DocumentCache,
        state: CorpusState,
        repo_path: Optional[str] = None,
        corpus_file: Optional[str] = None,
        table_name: Optional[str] = None,
        dimensions: Optional[int] = None,
    ) -> None:
        self.corpus_format = corpus_format
        self.revision_source = revision_source
        self.embedder = embedder
        self.index_store = index_store
        self.cache = cache
        self.state = state
        self.repo_path = repo_path or settings.corpus_repo_path
        self.corpus_file = corpus_file or settings.corpus_file
        self.table_name = table_name or corpus_format.table_name
        self.schema = TableSchema(dimensions or settings.embedding_dimensions)

        self._reindex_lock = asyncio.Lock()
        self._inflight: Optional[asyncio.Future] = None

    # ------------------------------------------------------------------
    # Staleness
    # ------------------------------------------------------------------

    async def needs_update(self) -> bool:
        """
        Return True when the index does not reflect the current revision.

        Compares the repository revision with the cached marker, then probes
        the vector table; a missing or unreadable table is stale even when
        the marker matches (the cache and the index store may have been
        reset independently).
        """
        current = await self.revision_source.current_revision()
        cached = await self.cache.get_corpus_version()
        if cached is None and not self.cache.enabled:
            # No cache configured: compare against the generation this process published
            cached = self.state.current.revision

        if cached is None:
            logger.info("No indexed revision recorded, re-index needed")
            return True

        if cached != current:
            logger.info("Corpus changed (%s -> %s), re-index needed", cached, current)
            return True

        try:
            await asyncio.to_thread(
                self.index_store.get_by_id,
                self.table_name,
                LIVENESS_PROBE_ID,
            )
        except IndexStoreError as exc:
            logger.info("Vector table %s unusable (%s), re-index needed", self.table_name, exc)
            return True

        return False

    # ------------------------------------------------------------------
    # Re-index
    # ------------------------------------------------------------------

    async def full_reindex(self) -> ReindexResult:
        """
        Rebuild the whole index generation from the corpus.

        Once this returns, the new generation is what every subsequent read
        observes. If it raises, the previous generation is still serving.
        """
        async with self._reindex_lock:
            return await self._full_reindex()

    async def _full_reindex(self) -> ReindexResult:
        revision = await self.revision_source.current_revision()
        logger.info("Starting full re-index at revision %s", revision)

        parsed = await self._parse()
        documents = parsed.documents
        if not documents:
            raise ReindexError("Corpus parse produced no documents; aborting re-index")

        texts = [self.corpus_format.compose(doc) for doc in documents]

        logger.info("Generating embeddings for %d documents", len(documents))
        embeddings = await self.embedder.embed_documents(texts)

        if len(embeddings) != len(documents):
            raise EmbeddingCountMismatchError(len(documents), len(embeddings))

        rows = [
            IndexRow(
                id=doc.id,
                title=doc.title,
                category=doc.category,
                text=text,
                embedding=vector,
            )
            for doc, text, vector in zip(documents, texts, embeddings)
        ]

        # Cut-over point for search
        await asyncio.to_thread(self.index_store.replace, self.table_name, self.schema, rows)

        await self._repopulate_cache(revision, parsed)

        self.state.publish(
            CorpusSnapshot.build(revision, documents, parsed.categories)
        )

        logger.info(
            "Re-index complete: revision %s, %d documents, %d categories",
            revision,
            len(documents),
            len(parsed.categories),
        )

        return ReindexResult(
            revision=revision,
            documents=list(documents),
            categories=list(parsed.categories),
        )

    async def _repopulate_cache(self, revision: str, parsed: ParseResult) -> None:
        await self.cache.invalidate_all()

        for doc in parsed.documents:
            await self.cache.set_document(doc)

        categories = sorted(parsed.categories, key=lambda cat: cat.key)
        await self.cache.set_categories(categories)

        for category in categories:
            ids = sorted(
                doc.id for doc in parsed.documents if doc.category == category.key
            )
            await self.cache.set_category_members(category.key, ids)

        # Written last: a partially repopulated cache never claims the revision
        await self.cache.set_corpus_version(revision)

    # ------------------------------------------------------------------
    # Update cycle
    # ------------------------------------------------------------------

    async def update(self) -> UpdateResult:
        """
        Re-index when stale; otherwise do nothing beyond the staleness check.

        Concurrent callers join the run already in flight and receive its
        result.
        """
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(self._update())
        else:
            logger.info("Update already in progress, joining it")

        return await asyncio.shield(self._inflight)

    async def _update(self) -> UpdateResult:
        if not await self.needs_update():
            revision = await self.revision_source.current_revision()
            logger.info("Corpus up to date at %s, skipping re-index", revision)
            return UpdateResult(
                updated=False,
                revision=revision,
                document_count=self.state.current.document_count,
            )

        result = await self.full_reindex()
        return UpdateResult(
            updated=True,
            revision=result.revision,
            document_count=len(result.documents),
        )

    async def initialize(self) -> CorpusSnapshot:
        """
        Startup path: re-index when stale, otherwise load the corpus maps
        from source (the vector table from the prior run is reused).
        """
        if await self.needs_update():
            logger.info("Indexing corpus (first run or content changed)")
            await self.update()
            return self.state.current

        revision = await self.revision_source.current_revision()
        parsed = await self._parse()
        snapshot = CorpusSnapshot.build(revision, parsed.documents, parsed.categories)
        self.state.publish(snapshot)
        logger.info(
            "Corpus up to date at %s, loaded %d documents from source",
            revision,
            snapshot.document_count,
        )
        return snapshot

    async def _parse(self) -> ParseResult:
        return await asyncio.to_thread(
            load_corpus,
            self.repo_path,
            self.corpus_format,
            self.corpus_file,
        )
