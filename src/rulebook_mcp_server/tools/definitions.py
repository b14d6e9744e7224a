"""
LLM Tool Definitions

This module defines the authoritative tool/function schemas exposed to LLM
clients. These definitions must remain strictly synchronized with:

- tools/base.py (TOOL_REGISTRY)
- The actual tool handler implementations

Only tools defined here can ever be invoked through the tool endpoint.
"""

from __future__ import annotations

from typing import Dict, List, Any, Final

from ..config import settings


# ---------------------------------------------------------------------
# Tool Name Constants (Single Source of Truth)
# ---------------------------------------------------------------------

TOOL_SEARCH_DOCUMENTS: Final[str] = "search_documents"
TOOL_GET_DOCUMENT: Final[str] = "get_document"
TOOL_LIST_CATEGORY: Final[str] = "list_category"
TOOL_UPDATE_INDEX: Final[str] = "update_index"


# ---------------------------------------------------------------------
# Tool Definitions
# ---------------------------------------------------------------------

TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": TOOL_SEARCH_DOCUMENTS,
            "description": (
                "Search the rulebook by semantic similarity. "
                "Returns ranked rules with a similarity score and a short summary."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "Natural language description of what you are looking for.",
                        "minLength": 1,
                    },
                    "limit": {
                        "type": "integer",
                        "description": (
                            f"Maximum number of results (default: {settings.search_default_limit}, "
                            f"max: {settings.search_max_limit})."
                        ),
                        "minimum": 1,
                        "maximum": settings.search_max_limit,
                    },
                },
                "required": ["query"],
                "additionalProperties": False,
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": TOOL_GET_DOCUMENT,
            "description": (
                "Get the full content of one rule by its identifier "
                "(e.g. 'P.1', 'ES.20', '1.1'). Matching is case-insensitive."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "id": {
                        "type": "string",
                        "description": "Rule identifier.",
                        "minLength": 1,
                    }
                },
                "required": ["id"],
                "additionalProperties": False,
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": TOOL_LIST_CATEGORY,
            "description": (
                "List all rules in one category, sorted by identifier. "
                "Unknown categories are rejected with the list of available ones."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "category": {
                        "type": "string",
                        "description": "Category key (e.g. 'P', 'ES', 'SL', '1').",
                        "minLength": 1,
                    }
                },
                "required": ["category"],
                "additionalProperties": False,
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": TOOL_UPDATE_INDEX,
            "description": (
                "Check the rulebook repository for changes and re-index it if the "
                "revision moved. Does nothing when the index is current."
            ),
            "parameters": {
                "type": "object",
                "properties": {},
                "additionalProperties": False,
            },
        },
    },
]
