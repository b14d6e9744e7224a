"""
Corpus Formats and Parsers

A corpus format bundles everything that varies between rulebooks: where the
source text lives in the checkout, how it is split into documents, how each
document is turned into embedding text, and the names under which the
generation is stored (vector table, cache key prefix).

Parser contract
---------------
parse(raw_text, source_file) -> ParseResult(documents, categories)

- Never raises on malformed entries: they are skipped with a line diagnostic.
- Document ids are unique within the result (later duplicates are skipped).
- Categories are a projection of the returned documents; their counts always
  sum to the number of documents.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .composer import Composer, compose_flat_text, compose_sectioned_text
from .models import Category, Document, DocumentSection
from ..core.errors import ConfigurationError, CorpusReadError

logger = logging.getLogger("rulebook.parser")


@dataclass(frozen=True)
class ParseResult:
    documents: List[Document] = field(default_factory=list)
    categories: List[Category] = field(default_factory=list)


Parser = Callable[[str, str], ParseResult]


@dataclass(frozen=True)
class CorpusFormat:
    """Static description of one supported corpus layout."""

    name: str
    default_file: str
    parse: Parser
    compose: Composer
    table_name: str
    cache_key_prefix: str


# ---------------------------------------------------------------------
# Shared Helpers
# ---------------------------------------------------------------------

def build_categories(
    documents: Iterable[Document],
    display_names: Dict[str, str],
) -> List[Category]:
    """
    Recompute the category projection from a document set.

    Categories with no documents are dropped; keys without a known display
    name fall back to the key itself.
    """
    counts: Dict[str, int] = {}
    for doc in documents:
        counts[doc.category] = counts.get(doc.category, 0) + 1

    return [
        Category(
            key=key,
            display_name=display_names.get(key, key),
            document_count=count,
        )
        for key, count in sorted(counts.items())
    ]


def unique_documents(
    documents: Iterable[Tuple[int, Document]],
) -> List[Document]:
    """Keep the first document per id; later duplicates are logged and dropped."""
    seen: Dict[str, int] = {}
    result: List[Document] = []

    for line_number, doc in documents:
        if doc.id in seen:
            logger.warning(
                "Duplicate rule id %r at line %d (first seen at line %d), skipping",
                doc.id,
                line_number,
                seen[doc.id],
            )
            continue
        seen[doc.id] = line_number
        result.append(doc)

    return result


def _slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


# ---------------------------------------------------------------------
# C++ Core Guidelines
# ---------------------------------------------------------------------
#
# Category headers:  # <a name="..."></a>PREFIX: Category Name
# Rule headers:      ### <a name="ANCHOR"></a>RULE_ID: Title
# Subsections:       ##### Heading
# A rule ends at the next level 1-3 heading or EOF.

_CPP_CATEGORY_RE = re.compile(r'^# <a name="[^"]+">\s*</a>\s*(\S+):\s+(.+)$')
_CPP_RULE_RE = re.compile(r'^### <a name="([^"]+)">\s*</a>\s*(.+)$')
_CPP_SECTION_RE = re.compile(r"^##### (.+)$")
_CPP_RULE_END_RE = re.compile(r"^#{1,3} ")


def _split_rule_header(rest: str) -> Optional[Tuple[str, str]]:
    """Split "ID: Title" on the first colon; titles may contain colons."""
    if ": " in rest:
        rule_id, title = rest.split(": ", 1)
    elif ":" in rest:
        rule_id, title = rest.split(":", 1)
    else:
        return None
    return rule_id.strip(), title.strip()


def _cpp_category(rule_id: str) -> str:
    # "SL.con.1" -> "SL", "In.0" -> "In"
    return rule_id.split(".", 1)[0]


def _collect_sections(lines: List[str]) -> List[DocumentSection]:
    sections: List[DocumentSection] = []
    heading: Optional[str] = None
    body: List[str] = []

    for line in lines:
        match = _CPP_SECTION_RE.match(line)
        if match:
            if heading is not None:
                sections.append(
                    DocumentSection(heading=heading, content="\n".join(body).strip())
                )
            heading = match.group(1)
            body = []
        else:
            body.append(line)

    if heading is not None:
        sections.append(
            DocumentSection(heading=heading, content="\n".join(body).strip())
        )

    return sections


def parse_cpp_guidelines(content: str, source_file: str) -> ParseResult:
    """Parse CppCoreGuidelines.md into rules and categories."""
    lines = content.splitlines()

    category_names: Dict[str, str] = {}
    for line in lines:
        match = _CPP_CATEGORY_RE.match(line)
        if match:
            category_names[match.group(1)] = match.group(2).strip()

    parsed: List[Tuple[int, Document]] = []
    i = 0
    while i < len(lines):
        match = _CPP_RULE_RE.match(lines[i])
        if not match:
            i += 1
            continue

        line_number = i + 1
        anchor = match.group(1)
        header = _split_rule_header(match.group(2))

        if header is None or not header[0]:
            logger.warning(
                "Malformed rule header at line %d, skipping: %s",
                line_number,
                lines[i],
            )
            i += 1
            continue

        rule_id, title = header

        start = i
        i += 1
        while i < len(lines) and not _CPP_RULE_END_RE.match(lines[i]):
            i += 1

        parsed.append(
            (
                line_number,
                Document(
                    id=rule_id,
                    title=title,
                    category=_cpp_category(rule_id),
                    anchor=anchor,
                    raw_content="\n".join(lines[start:i]),
                    sections=_collect_sections(lines[start + 1 : i]),
                    source_file=source_file,
                ),
            )
        )

    documents = unique_documents(parsed)
    return ParseResult(
        documents=documents,
        categories=build_categories(documents, category_names),
    )


# ---------------------------------------------------------------------
# Node.js Best Practices
# ---------------------------------------------------------------------
#
# Category headers:  # `1. Project Architecture Practices`
# Rule headers:      ## ![✔] 1.1 Structure your solution by components
# A rule ends at the next rule or category header, or EOF.

_NODE_CATEGORY_RE = re.compile(r"^#\s+`?(\d+)\.\s+(.+?)`?\s*$")
_NODE_RULE_RE = re.compile(r"^##\s+!\[✔\]\s+(\d+(?:\.\d+)+)\s+(.+?)\s*$")


def _node_anchor(rule_id: str, title: str) -> str:
    digits = "".join(ch for ch in rule_id if ch.isdigit())
    return f"-{digits}-{_slugify(title)}"


def parse_node_best_practices(content: str, source_file: str) -> ParseResult:
    """Parse the nodebestpractices README into rules and categories."""
    lines = content.splitlines()

    category_names: Dict[str, str] = {}
    current_category: Optional[str] = None
    parsed: List[Tuple[int, Document]] = []

    i = 0
    while i < len(lines):
        line = lines[i]

        category_match = _NODE_CATEGORY_RE.match(line)
        if category_match:
            current_category = category_match.group(1)
            category_names.setdefault(current_category, category_match.group(2).strip())
            i += 1
            continue

        rule_match = _NODE_RULE_RE.match(line)
        if not rule_match:
            i += 1
            continue

        line_number = i + 1
        rule_id = rule_match.group(1).strip()
        title = rule_match.group(2).strip()
        category = current_category or rule_id.split(".", 1)[0]

        end = i + 1
        while end < len(lines) and not (
            _NODE_RULE_RE.match(lines[end]) or _NODE_CATEGORY_RE.match(lines[end])
        ):
            end += 1

        parsed.append(
            (
                line_number,
                Document(
                    id=rule_id,
                    title=title,
                    category=category,
                    anchor=_node_anchor(rule_id, title),
                    raw_content="\n".join(lines[i:end]).strip(),
                    source_file=source_file,
                ),
            )
        )
        i = end

    documents = sorted(unique_documents(parsed), key=lambda d: d.id)
    return ParseResult(
        documents=documents,
        categories=build_categories(documents, category_names),
    )


# ---------------------------------------------------------------------
# Format Registry
# ---------------------------------------------------------------------

CORPUS_FORMATS: Dict[str, CorpusFormat] = {
    "cpp-core-guidelines": CorpusFormat(
        name="cpp-core-guidelines",
        default_file="CppCoreGuidelines.md",
        parse=parse_cpp_guidelines,
        compose=compose_sectioned_text,
        table_name="guidelines",
        cache_key_prefix="cpg:v1:",
    ),
    "nodejs-best-practices": CorpusFormat(
        name="nodejs-best-practices",
        default_file="README.md",
        parse=parse_node_best_practices,
        compose=compose_flat_text,
        table_name="nodejs_guidelines",
        cache_key_prefix="nbp:v1:",
    ),
}


def get_corpus_format(name: str) -> CorpusFormat:
    fmt = CORPUS_FORMATS.get(name)
    if fmt is None:
        raise ConfigurationError(
            f"Unknown corpus format '{name}'. "
            f"Supported: {', '.join(sorted(CORPUS_FORMATS))}"
        )
    return fmt


def resolve_corpus_file(
    repo_path: str,
    fmt: CorpusFormat,
    corpus_file: Optional[str] = None,
) -> Path:
    """
    Locate the corpus source file inside a checkout.

    Also accepts a checkout nested one directory down (a common layout when
    the corpus repository is cloned into a data volume).
    """
    relative = corpus_file or fmt.default_file
    root = Path(repo_path)

    candidate = root / relative
    if candidate.is_file():
        return candidate

    for child in sorted(root.iterdir()) if root.is_dir() else []:
        nested = child / relative
        if child.is_dir() and nested.is_file():
            return nested

    raise ConfigurationError(f"{relative} not found under {root}")


def load_corpus(
    repo_path: str,
    fmt: CorpusFormat,
    corpus_file: Optional[str] = None,
) -> ParseResult:
    """Read the corpus source file and run the format's parser over it."""
    path = resolve_corpus_file(repo_path, fmt, corpus_file)

    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise CorpusReadError(f"Failed to read {path}: {type(exc).__name__}") from exc

    result = fmt.parse(content, corpus_file or fmt.default_file)
    logger.info(
        "Parsed %s: %d documents in %d categories",
        path,
        len(result.documents),
        len(result.categories),
    )
    return result
