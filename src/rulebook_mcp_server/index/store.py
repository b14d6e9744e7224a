"""
FAISS Vector Tables

This module implements the vector index behind semantic search: a set of
named tables, each one FAISS index plus the row metadata it was built from.

Key Properties
--------------
- One active generation per table, replaced wholesale (never patched)
- Replacement builds off-path and then swaps the table's CURRENT pointer
  with an atomic rename, so a failed build leaves the old table serving
- Cosine distance (inner product over L2-normalized vectors), range [0, 2]
- Concurrency-safe (thread locking); writers are serialized
- Strong validation of rows and vectors

On-disk layout
--------------
    <root>/<table>/CURRENT                  name of the active generation
    <root>/<table>/<generation>/index.faiss
    <root>/<table>/<generation>/rows.json
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import uuid
from dataclasses import asdict, dataclass, field
from pathlib import Path
from threading import Lock, RLock
from typing import Dict, List, Optional, Sequence

import faiss
import numpy as np

from ..config import settings
from ..core.errors import IndexStoreError, IndexTableMissingError

logger = logging.getLogger("rulebook.index")

TABLE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")
POINTER_FILE = "CURRENT"
INDEX_FILE = "index.faiss"
ROWS_FILE = "rows.json"


# ---------------------------------------------------------------------
# Row Types
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class IndexRow:
    """One row to be written: stored columns plus its embedding."""

    id: str
    title: str
    category: str
    text: str
    embedding: Sequence[float] = field(repr=False)


@dataclass(frozen=True)
class IndexRecord:
    """Stored columns of one row, as returned by lookups."""

    id: str
    title: str
    category: str
    text: str


@dataclass(frozen=True)
class IndexHit:
    """A search match: stored columns plus distance to the query vector."""

    id: str
    title: str
    category: str
    text: str
    distance: float


@dataclass(frozen=True)
class TableSchema:
    """Fixed table layout; only the vector dimensionality varies."""

    dimensions: int

    def validate(self, rows: Sequence[IndexRow]) -> None:
        seen = set()
        for position, row in enumerate(rows):
            if not row.id:
                raise IndexStoreError(f"Row {position} has an empty id.")
            if row.id in seen:
                raise IndexStoreError(f"Duplicate row id {row.id!r}.")
            seen.add(row.id)
            if len(row.embedding) != self.dimensions:
                raise IndexStoreError(
                    f"Row {row.id!r} has {len(row.embedding)} dimensions, "
                    f"expected {self.dimensions}."
                )


@dataclass
class _LoadedTable:
    generation: str
    index: faiss.Index
    records: List[IndexRecord]
    by_id: Dict[str, IndexRecord]


# ---------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------

class IndexStore:
    """
    Directory of named FAISS tables.

    Readers and the single writer may run concurrently: readers always see
    either the previous or the new generation of a table, never a mix.
    """

    def __init__(self, root_path: Optional[str] = None) -> None:
        """
        Parameters
        ----------
        root_path : Optional[str]
            Directory holding all tables. Defaults to settings.index_path.
        """
        self._root = Path(root_path or settings.index_path)
        self._tables: Dict[str, _LoadedTable] = {}
        self._lock = RLock()
        self._write_lock = Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def replace(
        self,
        table: str,
        schema: TableSchema,
        rows: Sequence[IndexRow],
    ) -> None:
        """
        Replace `table` with a new generation built from `rows`.

        The previous generation stays loaded and queryable until the new one
        has been fully written; if building fails it is left untouched.

        Raises
        ------
        IndexStoreError
            If validation, index construction or persistence fails.
        """
        table_dir = self._table_dir(table)
        schema.validate(rows)

        with self._write_lock:
            generation = f"gen-{uuid.uuid4().hex}"
            gen_dir = table_dir / generation
            records = [
                IndexRecord(id=r.id, title=r.title, category=r.category, text=r.text)
                for r in rows
            ]

            try:
                index = self._build_index(schema.dimensions, rows)
                gen_dir.mkdir(parents=True, exist_ok=False)
                faiss.write_index(index, str(gen_dir / INDEX_FILE))
                with (gen_dir / ROWS_FILE).open("w", encoding="utf-8") as f:
                    json.dump([asdict(r) for r in records], f)
            except (RuntimeError, OSError, ValueError) as exc:
                shutil.rmtree(gen_dir, ignore_errors=True)
                raise IndexStoreError(
                    f"Failed to build table '{table}': {type(exc).__name__}: {exc}"
                ) from exc

            loaded = _LoadedTable(
                generation=generation,
                index=index,
                records=records,
                by_id={r.id: r for r in records},
            )

            pointer_tmp = table_dir / f".{POINTER_FILE}.{generation}.tmp"
            try:
                pointer_tmp.write_text(generation, encoding="utf-8")
                with self._lock:
                    os.replace(pointer_tmp, table_dir / POINTER_FILE)
                    self._tables[table] = loaded
            except OSError as exc:
                pointer_tmp.unlink(missing_ok=True)
                shutil.rmtree(gen_dir, ignore_errors=True)
                raise IndexStoreError(
                    f"Failed to activate table '{table}': {type(exc).__name__}"
                ) from exc

            self._remove_stale_generations(table_dir, keep=generation)

        logger.info(
            "Vector table %s replaced: %d rows (generation %s)",
            table,
            len(records),
            generation,
        )

    def search(
        self,
        table: str,
        query_vector: Sequence[float],
        limit: int,
    ) -> List[IndexHit]:
        """
        Return up to `limit` rows ordered by increasing cosine distance.
        """
        loaded = self._load(table)

        if limit <= 0 or loaded.index.ntotal == 0:
            return []

        if len(query_vector) != loaded.index.d:
            raise IndexStoreError(
                f"Query vector has {len(query_vector)} dimensions, "
                f"table '{table}' expects {loaded.index.d}."
            )

        q = np.asarray([query_vector], dtype="float32")
        faiss.normalize_L2(q)

        k = min(limit, loaded.index.ntotal)
        try:
            scores, idxs = loaded.index.search(q, k)
        except RuntimeError as exc:
            raise IndexStoreError(
                f"Vector search failed on '{table}': {type(exc).__name__}"
            ) from exc

        hits: List[IndexHit] = []
        for score, idx in zip(scores[0], idxs[0]):
            idx = int(idx)
            if idx < 0 or idx >= len(loaded.records):
                continue
            record = loaded.records[idx]
            hits.append(
                IndexHit(
                    id=record.id,
                    title=record.title,
                    category=record.category,
                    text=record.text,
                    distance=1.0 - float(score),
                )
            )

        return hits

    def get_by_id(self, table: str, row_id: str) -> Optional[IndexRecord]:
        """
        Point lookup. Returns None for an unknown id.

        Raises
        ------
        IndexStoreError
            If the table does not exist or cannot be read, which makes this
            usable as a liveness probe.
        """
        return self._load(table).by_id.get(row_id)

    def row_count(self, table: str) -> int:
        return self._load(table).index.ntotal

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    def _table_dir(self, table: str) -> Path:
        if not TABLE_NAME_PATTERN.match(table):
            raise IndexStoreError(f"Invalid table name '{table}'.")
        return self._root / table

    @staticmethod
    def _build_index(dimensions: int, rows: Sequence[IndexRow]) -> faiss.Index:
        index = faiss.IndexFlatIP(dimensions)
        if rows:
            vectors = np.asarray([r.embedding for r in rows], dtype="float32")
            faiss.normalize_L2(vectors)
            index.add(vectors)
        return index

    def _load(self, table: str) -> _LoadedTable:
        table_dir = self._table_dir(table)

        with self._lock:
            loaded = self._tables.get(table)
            if loaded is not None:
                return loaded

            pointer = table_dir / POINTER_FILE
            if not pointer.is_file():
                raise IndexTableMissingError(f"Vector table '{table}' does not exist.")

            try:
                generation = pointer.read_text(encoding="utf-8").strip()
                gen_dir = table_dir / generation
                index = faiss.read_index(str(gen_dir / INDEX_FILE))
                with (gen_dir / ROWS_FILE).open("r", encoding="utf-8") as f:
                    records = [IndexRecord(**row) for row in json.load(f)]
            except (RuntimeError, OSError, ValueError, TypeError) as exc:
                raise IndexStoreError(
                    f"Failed to load table '{table}': {type(exc).__name__}"
                ) from exc

            if index.ntotal != len(records):
                raise IndexStoreError(
                    f"Table '{table}' is corrupt: {index.ntotal} vectors, "
                    f"{len(records)} rows."
                )

            loaded = _LoadedTable(
                generation=generation,
                index=index,
                records=records,
                by_id={r.id: r for r in records},
            )
            self._tables[table] = loaded
            return loaded

    @staticmethod
    def _remove_stale_generations(table_dir: Path, keep: str) -> None:
        for child in table_dir.iterdir():
            if child.is_dir() and child.name != keep:
                shutil.rmtree(child, ignore_errors=True)
            elif child.name.startswith(f".{POINTER_FILE}."):
                child.unlink(missing_ok=True)
