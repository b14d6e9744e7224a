"""
Corpus Routes

Point lookups, category browsing and the re-index trigger.
"""

from fastapi import APIRouter, Depends, status
from typing import List, Annotated

from .dependencies import get_search_engine, get_update_service, verify_admin
from .models import CategoryListResponse, UpdateResponse
from ..corpus.models import Category, Document
from ..indexing.update import UpdateService
from ..search.engine import SearchEngine
from ..tools.corpus_tools import (
    tool_get_document,
    tool_list_category,
    tool_update_index,
)

router = APIRouter(tags=["corpus"])


@router.get(
    "/documents/{document_id}",
    response_model=Document,
    summary="Fetch one document by id (case-insensitive)",
)
async def get_document(
    document_id: str,
    engine: Annotated[SearchEngine, Depends(get_search_engine)],
) -> Document:
    return await tool_get_document(document_id, engine)


@router.get(
    "/categories",
    response_model=List[Category],
    summary="List all categories sorted by key",
)
async def list_categories(
    engine: Annotated[SearchEngine, Depends(get_search_engine)],
) -> List[Category]:
    return engine.list_categories()


@router.get(
    "/categories/{key}",
    response_model=CategoryListResponse,
    summary="List the documents of one category",
)
async def list_category(
    key: str,
    engine: Annotated[SearchEngine, Depends(get_search_engine)],
) -> CategoryListResponse:
    return await tool_list_category(key, engine)


@router.post(
    "/update",
    response_model=UpdateResponse,
    summary="Re-index the corpus if its revision changed",
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(verify_admin)],
)
async def update_index(
    update_service: Annotated[UpdateService, Depends(get_update_service)],
) -> UpdateResponse:
    """
    Run one update cycle.

    Concurrent calls share a single re-index run. A failed run leaves the
    previous generation serving and is reported with a 5xx error.
    """
    return await tool_update_index(update_service)
