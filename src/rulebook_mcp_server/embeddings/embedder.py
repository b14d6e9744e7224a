"""
Embedding Client

This module implements the embedding runtime client used for both indexing
and querying. It talks to any OpenAI-compatible `/embeddings` endpoint
(Ollama, llama.cpp server, text-embeddings-inference, OpenAI itself) serving
a task-prefixed model such as nomic-embed-text-v1.5. It is responsible for:

- Document mode vs. query mode input framing
- Small, bounded batches during indexing
- Bounded concurrency for query embedding on the request path
- Network and transport error isolation
- Strict response validation (shape and dimensionality)

The class holds no per-request state and is safe to reuse across requests.
"""

from __future__ import annotations

from typing import List, Sequence, Optional
import asyncio
import logging
import httpx

from ..config import settings
from ..core.errors import EmbeddingError

logger = logging.getLogger("rulebook.embedder")

DOCUMENT_PREFIX = "search_document: "
QUERY_PREFIX = "search_query: "


class Embedder:
    """
    Asynchronous embedding generator.

    This class performs no caching; the search engine caches shaped results
    and the index store keeps document vectors.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
        batch_size: Optional[int] = None,
        timeout: Optional[float] = None,
        max_concurrency: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize an Embedder.

        Parameters
        ----------
        base_url : Optional[str]
            Full URL of the embeddings endpoint. Defaults to
            settings.embedding_base_url.

        api_key : Optional[str]
            Bearer token, if the endpoint requires one. Defaults to
            settings.embedding_api_key.

        model : Optional[str]
            Embedding model name. Defaults to settings.embedding_model.

        dimensions : Optional[int]
            Expected vector length; responses of any other length are
            rejected. Defaults to settings.embedding_dimensions.

        batch_size : Optional[int]
            Number of documents per request while indexing. Defaults to
            settings.embedding_batch_size.

        timeout : Optional[float]
            HTTP timeout for each request.

        max_concurrency : Optional[int]
            Upper bound on concurrently running query embeddings.

        transport : Optional[httpx.AsyncBaseTransport]
            Custom transport, used by tests to stub the endpoint.
        """
        if api_key is None and settings.embedding_api_key is not None:
            api_key = settings.embedding_api_key.get_secret_value()

        self.base_url = base_url or settings.embedding_base_url
        self.api_key = api_key
        self.model = model or settings.embedding_model
        self.dimensions = dimensions or settings.embedding_dimensions
        self.batch_size = batch_size or settings.embedding_batch_size
        self.timeout = timeout or settings.embedding_timeout_seconds
        self._transport = transport
        self._query_slots = asyncio.Semaphore(
            max_concurrency or settings.embedding_max_concurrency
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed_documents(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Embed document texts for indexing, in batches of `batch_size`.

        Returns one vector per input text, in input order.
        """
        prefixed = [f"{DOCUMENT_PREFIX}{text}" for text in texts]
        return await self.embed(prefixed, batch_size=self.batch_size)

    async def embed_query(self, query: str) -> List[float]:
        """
        Embed a single search query.

        Concurrent callers beyond `max_concurrency` wait for a free slot.
        """
        async with self._query_slots:
            embeddings = await self.embed([f"{QUERY_PREFIX}{query}"], batch_size=1)

        if not embeddings:
            raise EmbeddingError("Embedding response contained no vectors.")

        return embeddings[0]

    async def embed(
        self,
        texts: Sequence[str],
        batch_size: int = 20,
    ) -> List[List[float]]:
        """
        Generate embeddings for a sequence of already-framed input texts.

        Parameters
        ----------
        texts : Sequence[str]
            List or sequence of input text strings.

        batch_size : int
            Maximum batch size per request. Bounds request size and the
            memory used by the embedding runtime.

        Returns
        -------
        List[List[float]]
            A flat list of embeddings, each an array of floats.

        Raises
        ------
        EmbeddingError
            If any batch fails or the response is malformed.
        """
        if not texts:
            return []

        all_embeddings: List[List[float]] = []
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            for start in range(0, len(texts), batch_size):
                batch = list(texts[start : start + batch_size])
                payload = {
                    "model": self.model,
                    "input": batch,
                }

                try:
                    response = await client.post(
                        self.base_url,
                        json=payload,
                        headers=headers,
                    )
                    response.raise_for_status()
                except httpx.HTTPError as exc:
                    logger.error(
                        "Embedding request failed (%s): batch size=%d, error=%s",
                        type(exc).__name__,
                        len(batch),
                        str(exc),
                    )
                    raise EmbeddingError(
                        f"Embedding generation failed: {type(exc).__name__}"
                    ) from exc

                try:
                    data = response.json()
                except ValueError as exc:
                    raise EmbeddingError("Embedding response is not JSON.") from exc

                all_embeddings.extend(self._extract_embeddings(data))

        return all_embeddings

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _extract_embeddings(self, data: dict) -> List[List[float]]:
        """
        Parse and validate embedding output format.

        OpenAI-compatible servers return:
            { "data": [ {"index": 0, "embedding": [...]}, ... ] }

        Records are ordered by "index" when present.

        Raises
        ------
        EmbeddingError
            If the API returns unexpected structure or dimensionality.
        """
        if not isinstance(data, dict) or "data" not in data:
            raise EmbeddingError("Embedding response missing 'data' field.")

        records = data["data"]
        if not isinstance(records, list):
            raise EmbeddingError("'data' field must be a list.")

        if all(isinstance(r, dict) and isinstance(r.get("index"), int) for r in records):
            records = sorted(records, key=lambda r: r["index"])

        embeddings: List[List[float]] = []

        for index, record in enumerate(records):
            if not isinstance(record, dict) or "embedding" not in record:
                raise EmbeddingError(
                    f"Malformed embedding record at index {index}: {record!r}"
                )

            emb = record["embedding"]
            if not isinstance(emb, list) or not all(
                isinstance(x, (float, int)) for x in emb
            ):
                raise EmbeddingError(
                    f"Invalid embedding vector at index {index}: must be float list."
                )

            if len(emb) != self.dimensions:
                raise EmbeddingError(
                    f"Embedding at index {index} has {len(emb)} dimensions, "
                    f"expected {self.dimensions}."
                )

            embeddings.append([float(x) for x in emb])

        return embeddings
