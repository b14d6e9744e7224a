"""
Tool Dispatch Layer

This module defines the central dispatch mechanism for all tool calls. It
enforces:

- Explicit tool allow-listing
- Argument validation
- Dependency injection for testability

No tool is callable unless it is explicitly registered here.
"""

from __future__ import annotations

from typing import Any, Dict, Callable, Awaitable, Optional

from .corpus_tools import (
    tool_get_document,
    tool_list_category,
    tool_search_documents,
    tool_update_index,
)
from .definitions import (
    TOOL_GET_DOCUMENT,
    TOOL_LIST_CATEGORY,
    TOOL_SEARCH_DOCUMENTS,
    TOOL_UPDATE_INDEX,
)
from ..core.errors import InvalidQueryError
from ..indexing.update import UpdateService
from ..search.engine import SearchEngine


# ---------------------------------------------------------------------
# Tool Type Definitions
# ---------------------------------------------------------------------

ToolHandler = Callable[
    [Dict[str, Any], SearchEngine, UpdateService],
    Awaitable[Any],
]


def _require_str(args: Dict[str, Any], name: str, tool: str) -> str:
    value = args.get(name)
    if not isinstance(value, str) or not value.strip():
        raise InvalidQueryError(f"{tool} requires a non-empty '{name}' argument.")
    return value


def _optional_int(args: Dict[str, Any], name: str, tool: str) -> Optional[int]:
    value = args.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidQueryError(f"{tool} argument '{name}' must be an integer.")
    return value


# ---------------------------------------------------------------------
# Tool Registry (AUTHORITATIVE)
# ---------------------------------------------------------------------

async def _handle_search_documents(
    args: Dict[str, Any],
    engine: SearchEngine,
    update_service: UpdateService,
) -> Any:
    return await tool_search_documents(
        query=_require_str(args, "query", TOOL_SEARCH_DOCUMENTS),
        engine=engine,
        limit=_optional_int(args, "limit", TOOL_SEARCH_DOCUMENTS),
    )


async def _handle_get_document(
    args: Dict[str, Any],
    engine: SearchEngine,
    update_service: UpdateService,
) -> Any:
    return await tool_get_document(
        _require_str(args, "id", TOOL_GET_DOCUMENT),
        engine,
    )


async def _handle_list_category(
    args: Dict[str, Any],
    engine: SearchEngine,
    update_service: UpdateService,
) -> Any:
    return await tool_list_category(
        _require_str(args, "category", TOOL_LIST_CATEGORY),
        engine,
    )


async def _handle_update_index(
    args: Dict[str, Any],
    engine: SearchEngine,
    update_service: UpdateService,
) -> Any:
    return await tool_update_index(update_service)


TOOL_REGISTRY: Dict[str, ToolHandler] = {
    TOOL_SEARCH_DOCUMENTS: _handle_search_documents,
    TOOL_GET_DOCUMENT: _handle_get_document,
    TOOL_LIST_CATEGORY: _handle_list_category,
    TOOL_UPDATE_INDEX: _handle_update_index,
}


# ---------------------------------------------------------------------
# Public Dispatch API
# ---------------------------------------------------------------------

async def dispatch_tool_call(
    tool_name: str,
    args: Dict[str, Any],
    engine: SearchEngine,
    update_service: UpdateService,
) -> Any:
    """
    Dispatch a tool call.

    Parameters
    ----------
    tool_name : str
        The symbolic tool name requested by the client.

    args : Dict[str, Any]
        Parsed JSON arguments for the tool.

    engine : SearchEngine
        Active search engine (injected).

    update_service : UpdateService
        Active update service (injected).

    Returns
    -------
    Any
        Tool execution result.

    Raises
    ------
    InvalidQueryError
        If the tool name is unknown or required arguments are missing.
    """

    handler = TOOL_REGISTRY.get(tool_name)
    if not handler:
        raise InvalidQueryError(f"Unknown tool requested: {tool_name}")

    return await handler(args, engine, update_service)
