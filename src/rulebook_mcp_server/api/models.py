"""
API Models

This module defines the Pydantic models used for request/response validation
across search, lookup, update and tool-call endpoints.

Design Goals
------------
- Strong typing
- Safe defaults (no shared mutable state)
- Explicit tool output contracts
"""

from __future__ import annotations

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, ConfigDict

from ..corpus.models import Category


# ---------------------------------------------------------------------
# Search Models
# ---------------------------------------------------------------------

class SearchRequest(BaseModel):
    """
    Semantic search request. `limit` is clamped server-side.
    """
    query: str = Field(..., min_length=1)
    limit: Optional[int] = Field(default=None, ge=1)

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Category Models
# ---------------------------------------------------------------------

class DocumentSummary(BaseModel):
    id: str
    title: str

    model_config = ConfigDict(extra="forbid")


class CategoryListResponse(BaseModel):
    """
    A category together with its documents, sorted by id.
    """
    category: Category
    documents: List[DocumentSummary] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Update Models
# ---------------------------------------------------------------------

class UpdateResponse(BaseModel):
    updated: bool
    revision: str
    document_count: int = Field(..., ge=0)

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Tool Call Models
# ---------------------------------------------------------------------

class ToolCallRequest(BaseModel):
    """
    A tool invocation: tool name plus its JSON arguments.
    """
    name: str = Field(..., min_length=1)
    arguments: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class ToolCallResponse(BaseModel):
    name: str
    result: Any

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------

class HealthResponse(BaseModel):
    status: str
    corpus_format: str
    revision: Optional[str] = None
    document_count: int = Field(..., ge=0)
    category_count: int = Field(..., ge=0)
    cache_available: bool

    model_config = ConfigDict(extra="forbid")
