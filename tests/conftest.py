"""
Shared fixtures: a small on-disk corpus, deterministic embedding and
revision fakes, and a runtime wired over an in-memory Redis.
"""

import asyncio
import hashlib
import re
from pathlib import Path
from typing import List, Optional

import fakeredis
import pytest

from rulebook_mcp_server.cache.backend import RedisCacheBackend
from rulebook_mcp_server.config import Settings
from rulebook_mcp_server.runtime import build_runtime

DIMS = 256

CPP_SAMPLE = """# <a name="s-philosophy"></a>P: Philosophy

### <a name="rp-direct"></a>P.1: Express ideas directly in code

##### Reason

Compilers don't read comments.

##### Example

    class Date {};

##### Enforcement

Very hard in general.

### <a name="rp-Cplusplus"></a>P.2: Write in ISO Standard C++

##### Reason

This is a set of guidelines for writing ISO Standard C++.

# <a name="s-interfaces"></a>I: Interfaces

### <a name="ri-explicit"></a>I.1: Make interfaces explicit

##### Reason

Correctness. Assumptions not stated in an interface are easily overlooked.

### <a name="ri-global"></a>I.2: Avoid non-`const` global variables

##### Reason

Non-const global variables hide dependencies.
"""

NODE_SAMPLE = """# `1. Project Architecture Practices`

## ![✔] 1.1 Structure your solution by business components

TL;DR text.

## ![✔] 1.2 Layer your components

More text.

# `2. Error Handling Practices`

## ![✔] 2.1 Use Async-Await or promises for async error handling

Callbacks don't scale well.
"""


def bag_of_words(text: str, dimensions: int = DIMS) -> List[float]:
    """Hash each lowercase token into one slot; deterministic and cheap."""
    vector = [0.0] * dimensions
    for token in re.findall(r"[a-z0-9]+", text.lower()):
        slot = int(hashlib.sha1(token.encode("utf-8")).hexdigest(), 16) % dimensions
        vector[slot] += 1.0
    if not any(vector):
        vector[0] = 1.0
    return vector


class FakeEmbedder:
    def __init__(self, dimensions: int = DIMS) -> None:
        self.dimensions = dimensions
        self.document_calls = 0
        self.query_calls = 0
        self.drop_vectors = 0
        self.delay = 0.0

    async def embed_documents(self, texts):
        self.document_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        vectors = [bag_of_words(t, self.dimensions) for t in texts]
        if self.drop_vectors:
            vectors = vectors[: -self.drop_vectors]
        return vectors

    async def embed_query(self, query):
        self.query_calls += 1
        return bag_of_words(query, self.dimensions)


class FakeRevisionSource:
    def __init__(self, revision: str = "abc123") -> None:
        self.revision = revision
        self.error: Optional[Exception] = None
        self.calls = 0

    async def current_revision(self) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.revision


def write_corpus(repo: Path, content: str, filename: str = "CppCoreGuidelines.md") -> Path:
    repo.mkdir(parents=True, exist_ok=True)
    path = repo / filename
    path.write_text(content, encoding="utf-8")
    return path


# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

@pytest.fixture
def corpus_repo(tmp_path):
    repo = tmp_path / "corpus"
    write_corpus(repo, CPP_SAMPLE)
    return repo


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def revision_source():
    return FakeRevisionSource()


@pytest.fixture
def redis_client():
    return fakeredis.FakeAsyncRedis(decode_responses=True)


@pytest.fixture
def cache_backend(redis_client):
    return RedisCacheBackend(redis_client, timeout=1.0)


@pytest.fixture
def test_settings(tmp_path, corpus_repo):
    return Settings(
        corpus_repo_path=str(corpus_repo),
        corpus_format="cpp-core-guidelines",
        index_path=str(tmp_path / "index"),
        redis_url=None,
        embedding_dimensions=DIMS,
        search_default_limit=10,
        search_max_limit=50,
        admin_api_key=None,
        index_on_startup=False,
    )


@pytest.fixture
def runtime(test_settings, cache_backend, fake_embedder, revision_source):
    rt = build_runtime(test_settings, cache_backend=cache_backend, embedder=fake_embedder)
    rt.update_service.revision_source = revision_source
    return rt
