"""
Cache Layer Tests

The cache is best-effort: these tests verify typed round trips over an
in-memory Redis, prefix invalidation, and that an unreachable server only
ever produces misses.
"""

import logging

import pytest

from rulebook_mcp_server.cache.backend import (
    DisabledCacheBackend,
    RedisCacheBackend,
    create_cache_backend,
)
from rulebook_mcp_server.cache.document_cache import (
    DocumentCache,
    normalize_query,
    query_fingerprint,
)
from rulebook_mcp_server.corpus.models import Category, Document, SearchResult


def make_document(doc_id="P.1"):
    return Document(
        id=doc_id,
        title="Express ideas directly in code",
        category="P",
        raw_content="### P.1",
    )


@pytest.fixture
def cache(cache_backend):
    return DocumentCache(cache_backend, key_prefix="cpg:v1:", search_ttl_seconds=3600)


class TestFingerprint:
    def test_normalizes_whitespace(self):
        assert normalize_query("  raw   pointers \n") == "raw pointers"
        assert query_fingerprint("raw  pointers", 5) == query_fingerprint(" raw pointers ", 5)

    def test_limit_is_part_of_the_key(self):
        assert query_fingerprint("raw pointers", 5) != query_fingerprint("raw pointers", 10)

    def test_is_hex_sha256(self):
        fingerprint = query_fingerprint("q", 1)
        assert len(fingerprint) == 64
        int(fingerprint, 16)


class TestDocumentCache:
    async def test_document_round_trip(self, cache, redis_client):
        doc = make_document()
        await cache.set_document(doc)

        assert await cache.get_document("P.1") == doc
        assert await redis_client.exists("cpg:v1:document:P.1") == 1
        assert await cache.get_document("P.2") is None

    async def test_search_results_expire(self, cache, redis_client):
        results = [
            SearchResult(id="P.1", title="t", category="P", score=0.9, summary="s"),
        ]
        await cache.set_search_results("raw pointers", 5, "abc123", results)

        assert await cache.get_search_results("raw  pointers", 5, "abc123") == results
        assert await cache.get_search_results("raw pointers", 6, "abc123") is None
        assert await cache.get_search_results("raw pointers", 5, "def456") is None

        ttl = await redis_client.ttl(cache.search_key("raw pointers", 5, "abc123"))
        assert 0 < ttl <= 3600

    async def test_categories_and_members(self, cache):
        categories = [Category(key="P", display_name="Philosophy", document_count=2)]
        await cache.set_categories(categories)
        await cache.set_category_members("P", ["P.1", "P.2"])

        assert await cache.get_categories() == categories
        assert await cache.get_category_members("P") == ["P.1", "P.2"]
        assert await cache.get_category_members("I") is None

    async def test_corpus_version(self, cache):
        assert await cache.get_corpus_version() is None
        await cache.set_corpus_version("abc123")
        assert await cache.get_corpus_version() == "abc123"

    async def test_invalid_payload_is_a_miss(self, cache, redis_client, caplog):
        await redis_client.set("cpg:v1:document:P.1", "{not json")

        with caplog.at_level(logging.WARNING, logger="rulebook.cache"):
            assert await cache.get_document("P.1") is None
        assert "deserialization failed" in caplog.text

    async def test_invalidate_all_only_touches_own_prefix(self, cache, redis_client):
        await cache.set_document(make_document("P.1"))
        await cache.set_corpus_version("abc123")
        await redis_client.set("nbp:v1:document:1.1", "other corpus")

        await cache.invalidate_all()

        assert await cache.get_document("P.1") is None
        assert await cache.get_corpus_version() is None
        assert await redis_client.get("nbp:v1:document:1.1") == "other corpus"


class TestBackends:
    async def test_prefix_delete_spans_scan_pages(self, cache_backend, redis_client):
        for i in range(250):
            await redis_client.set(f"cpg:v1:document:R.{i}", "x")
        await redis_client.set("cpg:v2:document:R.1", "keep")

        assert await cache_backend.delete_by_prefix("cpg:v1:") is True

        assert await redis_client.keys("cpg:v1:*") == []
        assert await redis_client.get("cpg:v2:document:R.1") == "keep"

    async def test_prefix_with_glob_characters_is_literal(self, cache_backend, redis_client):
        await redis_client.set("a*:one", "1")
        await redis_client.set("ab:two", "2")

        await cache_backend.delete_by_prefix("a*:")

        assert await redis_client.get("a*:one") is None
        assert await redis_client.get("ab:two") == "2"

    async def test_unreachable_server_degrades(self, caplog):
        backend = RedisCacheBackend.from_url("redis://127.0.0.1:1/0", timeout=0.2)
        cache = DocumentCache(backend, key_prefix="cpg:v1:")

        with caplog.at_level(logging.WARNING, logger="rulebook.cache"):
            assert await cache.get_document("P.1") is None
            await cache.set_document(make_document())
            assert await cache.get_search_results("q", 5, "abc123") is None
            assert await backend.delete_by_prefix("cpg:v1:") is False
            assert await backend.ping() is False

        assert "Redis GET failed" in caplog.text
        await backend.close()

    async def test_disabled_backend(self):
        backend = DisabledCacheBackend()
        assert await backend.get("k") is None
        assert await backend.set("k", "v") is False
        assert await backend.delete_by_prefix("p") is True
        assert await backend.ping() is False

    def test_factory_without_url_disables_cache(self):
        assert isinstance(create_cache_backend(None), DisabledCacheBackend)
        assert isinstance(create_cache_backend("redis://localhost:6379/0"), RedisCacheBackend)
