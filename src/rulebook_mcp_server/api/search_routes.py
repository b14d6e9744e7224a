"""
Search Routes

Semantic search over the indexed corpus. Results are served from the cache
when the same normalized query and limit were answered before.
"""

from fastapi import APIRouter, Depends, status
from typing import List, Annotated

from .models import SearchRequest
from .dependencies import get_search_engine
from ..corpus.models import SearchResult
from ..search.engine import SearchEngine
from ..tools.corpus_tools import tool_search_documents

router = APIRouter(prefix="/search", tags=["search"])


@router.post(
    "",
    response_model=List[SearchResult],
    summary="Vector-based semantic search",
    status_code=status.HTTP_200_OK,
)
async def search(
    req: SearchRequest,
    engine: Annotated[SearchEngine, Depends(get_search_engine)],
) -> List[SearchResult]:
    """
    Perform a semantic search over the corpus.

    Parameters
    ----------
    req : SearchRequest
        Contains:
        - query: Search query string
        - limit: Maximum number of results (clamped server-side)

    Returns
    -------
    List[SearchResult]
        Results ordered by descending similarity score.
    """
    return await tool_search_documents(
        query=req.query,
        engine=engine,
        limit=req.limit,
    )
