"""
Tool Routes

Exposes the tool catalogue and a single dispatch endpoint so LLM clients can
discover and invoke the corpus tools over plain JSON.
"""

from typing import Any, Dict, List, Optional, Annotated

from fastapi import APIRouter, Depends, Header
from fastapi.encoders import jsonable_encoder

from .dependencies import check_admin_key, get_runtime
from .models import ToolCallRequest, ToolCallResponse
from ..runtime import Runtime
from ..tools.base import dispatch_tool_call
from ..tools.definitions import TOOL_DEFINITIONS, TOOL_UPDATE_INDEX

router = APIRouter(prefix="/tools", tags=["tools"])


@router.get("", summary="List tool definitions")
async def list_tools() -> List[Dict[str, Any]]:
    return TOOL_DEFINITIONS


@router.post(
    "/call",
    response_model=ToolCallResponse,
    summary="Invoke one tool by name",
)
async def call_tool(
    req: ToolCallRequest,
    runtime: Annotated[Runtime, Depends(get_runtime)],
    x_admin_key: Annotated[Optional[str], Header(alias="x-admin-key")] = None,
) -> ToolCallResponse:
    """
    Dispatch a tool call through the registry.

    `update_index` is a mutating tool and carries the same admin key
    requirement as POST /update.
    """
    if req.name == TOOL_UPDATE_INDEX:
        check_admin_key(runtime, x_admin_key)

    result = await dispatch_tool_call(
        req.name,
        req.arguments,
        runtime.search_engine,
        runtime.update_service,
    )
    return ToolCallResponse(name=req.name, result=jsonable_encoder(result))
