from typing import Annotated

from fastapi import APIRouter, Depends

from .dependencies import get_runtime
from .models import HealthResponse
from ..runtime import Runtime

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(runtime: Annotated[Runtime, Depends(get_runtime)]) -> HealthResponse:
    snapshot = runtime.state.current
    return HealthResponse(
        status="ok",
        corpus_format=runtime.corpus_format.name,
        revision=snapshot.revision or None,
        document_count=snapshot.document_count,
        category_count=len(snapshot.categories),
        cache_available=await runtime.cache_backend.ping(),
    )
