"""
Embedding text composition.

Each function maps a Document to the text handed to the embedding model.
They are pure and deterministic, and bound their output by character count
so that embedding cost stays predictable.
"""

from __future__ import annotations

from typing import Callable, Optional

from .models import Document

Composer = Callable[[Document], str]

SECTIONED_MAX_CHARS = 2000
FLAT_MAX_CHARS = 3000


def truncate_chars(text: str, max_chars: int) -> str:
    """Cut `text` to at most `max_chars` characters."""
    if len(text) > max_chars:
        return text[:max_chars]
    return text


def compose_sectioned_text(document: Document) -> str:
    """
    Title, then the first "Reason" section, then the first "Example*" section.

    Used for corpora whose rules carry explicit subsections.
    """
    parts = [document.title]

    reason = _first_section(document, lambda heading: heading == "Reason")
    if reason is not None:
        parts.append(reason)

    example = _first_section(document, lambda heading: heading.startswith("Example"))
    if example is not None:
        parts.append(example)

    return truncate_chars(". ".join(parts), SECTIONED_MAX_CHARS)


def compose_flat_text(document: Document) -> str:
    """Identifier, title and category followed by the raw rule text."""
    text = (
        f"{document.id}: {document.title}. "
        f"Category: {document.category}. {document.raw_content}"
    )
    return truncate_chars(text, FLAT_MAX_CHARS)


def _first_section(
    document: Document,
    matches: Callable[[str], bool],
) -> Optional[str]:
    for section in document.sections:
        if matches(section.heading):
            return section.content
    return None
