"""
Corpus Tools

Tool implementations callable by LLM clients: semantic search, rule lookup,
category listing and re-index trigger. Each returns the structured model
that forms the tool's output contract.
"""

from __future__ import annotations

from typing import List, Optional

from ..api.models import CategoryListResponse, DocumentSummary, UpdateResponse
from ..corpus.models import Document, SearchResult
from ..indexing.update import UpdateService
from ..search.engine import SearchEngine


async def tool_search_documents(
    query: str,
    engine: SearchEngine,
    limit: Optional[int] = None,
) -> List[SearchResult]:
    return await engine.search(query, limit)


async def tool_get_document(
    document_id: str,
    engine: SearchEngine,
) -> Document:
    return await engine.get_document(document_id)


async def tool_list_category(
    category: str,
    engine: SearchEngine,
) -> CategoryListResponse:
    listing = engine.list_category(category)
    return CategoryListResponse(
        category=listing.category,
        documents=[
            DocumentSummary(id=doc.id, title=doc.title)
            for doc in listing.documents
        ],
    )


async def tool_update_index(update_service: UpdateService) -> UpdateResponse:
    """
    Re-index when the corpus changed; a no-op otherwise.
    """
    result = await update_service.update()
    return UpdateResponse(
        updated=result.updated,
        revision=result.revision,
        document_count=result.document_count,
    )
