"""
Vector Table Tests

FAISS tables on a temporary directory: wholesale replacement, cosine
ranking, point lookups and failure isolation.
"""

import pytest

from rulebook_mcp_server.core.errors import IndexStoreError, IndexTableMissingError
from rulebook_mcp_server.index.store import IndexRow, IndexStore, TableSchema

SCHEMA = TableSchema(dimensions=3)


def row(row_id, vector, title=None):
    return IndexRow(
        id=row_id,
        title=title or f"title {row_id}",
        category=row_id.split(".", 1)[0],
        text=f"text of {row_id}",
        embedding=vector,
    )


@pytest.fixture
def store(tmp_path):
    return IndexStore(str(tmp_path / "index"))


def test_missing_table_raises(store):
    with pytest.raises(IndexTableMissingError):
        store.get_by_id("guidelines", "__nonexistent__")
    with pytest.raises(IndexTableMissingError):
        store.search("guidelines", [1.0, 0.0, 0.0], 5)


def test_replace_then_lookup(store):
    store.replace("guidelines", SCHEMA, [row("P.1", [1, 0, 0]), row("P.2", [0, 1, 0])])

    record = store.get_by_id("guidelines", "P.1")
    assert record.title == "title P.1"
    assert record.text == "text of P.1"
    assert store.get_by_id("guidelines", "__nonexistent__") is None
    assert store.row_count("guidelines") == 2


def test_search_orders_by_cosine_distance(store):
    store.replace(
        "guidelines",
        SCHEMA,
        [row("P.1", [1, 0, 0]), row("P.2", [0, 1, 0]), row("I.1", [1, 1, 0])],
    )

    hits = store.search("guidelines", [2.0, 0.0, 0.0], 3)

    assert [h.id for h in hits] == ["P.1", "I.1", "P.2"]
    assert hits[0].distance == pytest.approx(0.0, abs=1e-6)
    assert hits[1].distance == pytest.approx(1 - 2 ** -0.5, abs=1e-6)
    assert hits[2].distance == pytest.approx(1.0, abs=1e-6)
    assert all(0.0 <= h.distance <= 2.0 for h in hits)


def test_search_limit_and_dimension_check(store):
    store.replace("guidelines", SCHEMA, [row("P.1", [1, 0, 0]), row("P.2", [0, 1, 0])])

    assert len(store.search("guidelines", [1, 0, 0], 1)) == 1
    assert len(store.search("guidelines", [1, 0, 0], 10)) == 2
    with pytest.raises(IndexStoreError):
        store.search("guidelines", [1, 0], 1)


def test_replace_drops_previous_rows(store):
    store.replace("guidelines", SCHEMA, [row("P.1", [1, 0, 0]), row("P.2", [0, 1, 0])])
    store.replace("guidelines", SCHEMA, [row("I.1", [0, 0, 1])])

    assert store.get_by_id("guidelines", "P.1") is None
    assert store.get_by_id("guidelines", "I.1") is not None
    assert store.row_count("guidelines") == 1


def test_failed_replace_keeps_previous_generation(store):
    store.replace("guidelines", SCHEMA, [row("P.1", [1, 0, 0])])

    with pytest.raises(IndexStoreError):
        store.replace("guidelines", SCHEMA, [row("P.2", [1, 0])])
    with pytest.raises(IndexStoreError):
        store.replace("guidelines", SCHEMA, [row("P.2", [1, 0, 0]), row("P.2", [0, 1, 0])])

    assert store.get_by_id("guidelines", "P.1") is not None
    assert store.get_by_id("guidelines", "P.2") is None


def test_tables_survive_reopen(tmp_path):
    root = str(tmp_path / "index")
    IndexStore(root).replace("guidelines", SCHEMA, [row("P.1", [1, 0, 0])])

    reopened = IndexStore(root)
    assert reopened.get_by_id("guidelines", "P.1").title == "title P.1"
    assert [h.id for h in reopened.search("guidelines", [1, 0, 0], 1)] == ["P.1"]

    generations = [p for p in (tmp_path / "index" / "guidelines").iterdir() if p.is_dir()]
    assert len(generations) == 1


def test_corrupt_table_is_an_error(tmp_path):
    root = tmp_path / "index"
    IndexStore(str(root)).replace("guidelines", SCHEMA, [row("P.1", [1, 0, 0])])
    (root / "guidelines" / "CURRENT").write_text("gen-missing", encoding="utf-8")

    with pytest.raises(IndexStoreError):
        IndexStore(str(root)).get_by_id("guidelines", "P.1")


def test_invalid_table_name(store):
    with pytest.raises(IndexStoreError):
        store.replace("../escape", SCHEMA, [row("P.1", [1, 0, 0])])
