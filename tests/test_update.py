"""
Update Orchestrator Tests

Covers staleness detection, full re-index (index, cache and in-memory maps
move together), failure isolation and single-flight updates.
"""

import asyncio
import threading

import pytest

from rulebook_mcp_server.cache.backend import DisabledCacheBackend
from rulebook_mcp_server.core.errors import (
    EmbeddingCountMismatchError,
    ReindexError,
    VersionControlError,
)
from rulebook_mcp_server.runtime import build_runtime

from conftest import write_corpus

TWO_RULES = """# <a name="s-philosophy"></a>P: Philosophy

### <a name="rp-direct"></a>P.1: Express ideas directly in code

##### Reason

Compilers don't read comments.

### <a name="rp-Cplusplus"></a>P.2: Write in ISO Standard C++

##### Reason

Standard C++.
"""


@pytest.fixture
def service(runtime):
    return runtime.update_service


async def test_fresh_install_needs_update(service):
    assert await service.needs_update() is True


async def test_full_reindex_publishes_everything(runtime, corpus_repo, redis_client):
    write_corpus(corpus_repo, TWO_RULES)

    result = await runtime.update_service.full_reindex()

    assert result.revision == "abc123"
    assert [doc.id for doc in result.documents] == ["P.1", "P.2"]
    assert [(c.key, c.document_count) for c in result.categories] == [("P", 2)]

    # vector table
    table = runtime.update_service.table_name
    assert runtime.index_store.row_count(table) == 2
    assert runtime.index_store.get_by_id(table, "P.2").title == "Write in ISO Standard C++"

    # cache
    assert await runtime.cache.get_corpus_version() == "abc123"
    assert (await runtime.cache.get_document("P.1")).title == "Express ideas directly in code"
    assert await runtime.cache.get_category_members("P") == ["P.1", "P.2"]
    assert [c.key for c in await runtime.cache.get_categories()] == ["P"]

    # in-memory maps
    snapshot = runtime.state.current
    assert snapshot.revision == "abc123"
    assert snapshot.document_count == 2

    assert await runtime.update_service.needs_update() is False


async def test_revision_change_triggers_update(runtime, revision_source, fake_embedder):
    await runtime.update_service.update()
    assert fake_embedder.document_calls == 1

    revision_source.revision = "def456"
    assert await runtime.update_service.needs_update() is True

    outcome = await runtime.update_service.update()
    assert outcome.updated is True
    assert outcome.revision == "def456"
    assert fake_embedder.document_calls == 2


async def test_update_is_idempotent(runtime, cache_backend, fake_embedder, monkeypatch):
    first = await runtime.update_service.update()

    writes = []

    def counting(name):
        original = getattr(cache_backend, name)

        async def wrapper(*args, **kwargs):
            writes.append(name)
            return await original(*args, **kwargs)

        return wrapper

    for name in ("set", "delete", "delete_by_prefix"):
        monkeypatch.setattr(cache_backend, name, counting(name))

    original_replace = runtime.index_store.replace

    def counting_replace(*args, **kwargs):
        writes.append("replace")
        return original_replace(*args, **kwargs)

    monkeypatch.setattr(runtime.index_store, "replace", counting_replace)

    second = await runtime.update_service.update()

    assert first.updated is True
    assert second.updated is False
    assert second.revision == first.revision
    assert second.document_count == first.document_count == 4
    assert fake_embedder.document_calls == 1
    assert writes == []


async def test_missing_table_is_stale_even_when_version_matches(runtime):
    await runtime.cache.set_corpus_version("abc123")
    assert await runtime.update_service.needs_update() is True


async def test_old_entries_are_dropped_on_reindex(runtime, corpus_repo, revision_source):
    await runtime.update_service.update()
    assert (await runtime.cache.get_document("I.1")) is not None

    write_corpus(corpus_repo, TWO_RULES)
    revision_source.revision = "def456"
    await runtime.update_service.update()

    assert await runtime.cache.get_document("I.1") is None
    assert runtime.state.current.find_document("I.1") is None
    assert runtime.index_store.get_by_id(runtime.update_service.table_name, "I.1") is None


async def test_count_mismatch_keeps_previous_generation(runtime, corpus_repo, revision_source, fake_embedder):
    await runtime.update_service.update()
    table = runtime.update_service.table_name

    write_corpus(corpus_repo, TWO_RULES)
    revision_source.revision = "def456"
    fake_embedder.drop_vectors = 1

    with pytest.raises(EmbeddingCountMismatchError) as excinfo:
        await runtime.update_service.update()
    assert excinfo.value.expected == 2
    assert excinfo.value.actual == 1

    assert runtime.index_store.row_count(table) == 4
    assert runtime.state.current.revision == "abc123"
    assert await runtime.cache.get_corpus_version() == "abc123"
    assert await runtime.cache.get_document("I.1") is not None

    # Readers still see the previous generation
    results = await runtime.search_engine.search("interfaces explicit", 5)
    assert {"I.1", "I.2"} <= {r.id for r in results}

    doc = await runtime.search_engine.get_document("I.1")
    assert doc.title == "Make interfaces explicit"
    assert runtime.search_engine.list_category("I").category.document_count == 2


async def test_liveness_check_runs_off_the_event_loop(runtime, monkeypatch):
    await runtime.update_service.update()

    loop_thread = threading.get_ident()
    seen = []
    original = runtime.index_store.get_by_id

    def recording_get_by_id(*args, **kwargs):
        seen.append(threading.get_ident())
        return original(*args, **kwargs)

    monkeypatch.setattr(runtime.index_store, "get_by_id", recording_get_by_id)

    assert await runtime.update_service.needs_update() is False
    assert len(seen) == 1
    assert seen[0] != loop_thread


async def test_empty_parse_aborts(runtime, corpus_repo):
    write_corpus(corpus_repo, "# nothing here\n")

    with pytest.raises(ReindexError):
        await runtime.update_service.full_reindex()

    assert await runtime.cache.get_corpus_version() is None


async def test_revision_failure_is_fatal(runtime, revision_source):
    revision_source.error = VersionControlError("not a git repository")

    with pytest.raises(VersionControlError):
        await runtime.update_service.update()


async def test_concurrent_updates_share_one_run(runtime, fake_embedder):
    fake_embedder.delay = 0.05

    results = await asyncio.gather(
        runtime.update_service.update(),
        runtime.update_service.update(),
        runtime.update_service.update(),
    )

    assert fake_embedder.document_calls == 1
    assert all(r.updated for r in results)
    assert len({r.revision for r in results}) == 1


async def test_initialize_reuses_existing_table(test_settings, cache_backend, fake_embedder, revision_source):
    first = build_runtime(test_settings, cache_backend=cache_backend, embedder=fake_embedder)
    first.update_service.revision_source = revision_source
    await first.update_service.initialize()
    assert fake_embedder.document_calls == 1

    # A restarted process finds the marker and the table and only reloads maps
    second = build_runtime(test_settings, cache_backend=cache_backend, embedder=fake_embedder)
    second.update_service.revision_source = revision_source
    snapshot = await second.update_service.initialize()

    assert fake_embedder.document_calls == 1
    assert snapshot.revision == "abc123"
    assert snapshot.document_count == 4


async def test_without_cache_published_revision_prevents_reindex(test_settings, fake_embedder, revision_source):
    rt = build_runtime(test_settings, cache_backend=DisabledCacheBackend(), embedder=fake_embedder)
    rt.update_service.revision_source = revision_source

    await rt.update_service.update()
    outcome = await rt.update_service.update()

    assert outcome.updated is False
    assert fake_embedder.document_calls == 1


async def test_cleared_cache_marker_means_stale(runtime, redis_client):
    await runtime.update_service.update()
    await redis_client.flushall()

    assert await runtime.update_service.needs_update() is True
