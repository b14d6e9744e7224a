"""
Corpus Generation State

This module holds the in-memory document and category maps shared by every
request handler.

Design choices
--------------
- One generation is one immutable `CorpusSnapshot`; it is never mutated.
- `CorpusState` holds a single reference to the current snapshot.
- Readers take the reference without locking and keep a consistent view for
  as long as they hold it, even if a newer generation is published meanwhile.
- Publishing a generation is the only critical section: a reference swap
  under a lock, so concurrent publishers are ordered.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence

from .models import Category, Document


@dataclass(frozen=True)
class CorpusSnapshot:
    """
    One generation of the corpus: documents and categories of one revision.
    """

    revision: Optional[str]
    documents: Mapping[str, Document]
    categories: Mapping[str, Category]
    _documents_ci: Mapping[str, Document] = field(repr=False)
    _categories_ci: Mapping[str, Category] = field(repr=False)

    @classmethod
    def build(
        cls,
        revision: Optional[str],
        documents: Sequence[Document],
        categories: Sequence[Category],
    ) -> "CorpusSnapshot":
        doc_map: Dict[str, Document] = {doc.id: doc for doc in documents}
        cat_map: Dict[str, Category] = {cat.key: cat for cat in categories}

        return cls(
            revision=revision,
            documents=MappingProxyType(doc_map),
            categories=MappingProxyType(cat_map),
            _documents_ci=MappingProxyType(
                {doc_id.lower(): doc for doc_id, doc in doc_map.items()}
            ),
            _categories_ci=MappingProxyType(
                {key.lower(): cat for key, cat in cat_map.items()}
            ),
        )

    @classmethod
    def empty(cls) -> "CorpusSnapshot":
        return cls.build(None, [], [])

    @property
    def document_count(self) -> int:
        return len(self.documents)

    def find_document(self, document_id: str) -> Optional[Document]:
        """Exact id match first, then case-insensitive."""
        doc = self.documents.get(document_id)
        if doc is not None:
            return doc
        return self._documents_ci.get(document_id.lower())

    def find_category(self, key: str) -> Optional[Category]:
        cat = self.categories.get(key)
        if cat is not None:
            return cat
        return self._categories_ci.get(key.lower())

    def category_members(self, key: str) -> List[Document]:
        """Documents of one category, sorted by id ascending."""
        return sorted(
            (doc for doc in self.documents.values() if doc.category == key),
            key=lambda doc: doc.id,
        )

    def sorted_categories(self) -> List[Category]:
        return sorted(self.categories.values(), key=lambda cat: cat.key)


class CorpusState:
    """
    Holder of the current corpus generation.

    Reads are lock-free reference loads. `publish` replaces the whole
    generation at once, so no reader ever observes a partial update.
    """

    def __init__(self, snapshot: Optional[CorpusSnapshot] = None) -> None:
        self._snapshot = snapshot or CorpusSnapshot.empty()
        self._lock = Lock()

    @property
    def current(self) -> CorpusSnapshot:
        return self._snapshot

    def publish(self, snapshot: CorpusSnapshot) -> CorpusSnapshot:
        """
        Make `snapshot` the current generation and return the previous one.
        """
        with self._lock:
            previous = self._snapshot
            self._snapshot = snapshot
            return previous
