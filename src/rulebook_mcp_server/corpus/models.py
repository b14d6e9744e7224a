"""
Corpus Data Models

This module defines the canonical data model for one generation of an
indexed rulebook: the documents (rules), the categories derived from them,
and the search results shaped from the vector index.

Documents and categories are immutable once created. A re-index never
patches them; it replaces the whole set.
"""

from __future__ import annotations

from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict


class DocumentSection(BaseModel):
    """
    A named subsection of a document (e.g. "Reason", "Example, bad").
    """

    heading: str
    content: str

    model_config = ConfigDict(extra="forbid", frozen=True)


class Document(BaseModel):
    """
    A single indexed rule or entry of the corpus.

    This model is the authoritative schema for:
    - the in-memory document map
    - the `document:{id}` cache collection
    - the `get_document` tool response
    """

    id: str = Field(
        ...,
        min_length=1,
        description="Stable rule identifier, e.g. 'P.1', 'SL.con.1' or '1.1'.",
    )

    title: str = Field(
        ...,
        description="Rule title as written in the source heading.",
    )

    category: str = Field(
        ...,
        min_length=1,
        description="Key of the category this rule belongs to.",
    )

    anchor: str = Field(
        default="",
        description="Anchor of the rule in its source document.",
    )

    raw_content: str = Field(
        ...,
        description="Full original text of the rule.",
    )

    sections: List[DocumentSection] = Field(
        default_factory=list,
        description="Ordered subsections, when the corpus format has them.",
    )

    source_file: Optional[str] = Field(
        default=None,
        description="Corpus-relative path of the file this rule came from.",
    )

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )


class Category(BaseModel):
    """
    A category projection: recomputed from the documents of each generation.
    """

    key: str = Field(..., min_length=1)
    display_name: str
    document_count: int = Field(..., ge=0)

    model_config = ConfigDict(extra="forbid", frozen=True)


class SearchResult(BaseModel):
    """
    One ranked semantic search match. Higher score means more similar.
    """

    id: str
    title: str
    category: str
    score: float = Field(..., ge=0.0, le=1.0)
    summary: str

    model_config = ConfigDict(extra="forbid", frozen=True)
