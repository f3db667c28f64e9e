"""Front-matter codec for tracked best-practices documents.

A tracked document starts with a YAML block fenced by ``---`` lines::

    ---
    language: Python
    language_version: '3.13'
    last_checked: '2026-02-11'
    resource_hash: 9f86d0...
    version_source_url: https://www.python.org/downloads/
    ---

    # Python Best Practices
    ...

Parsing never raises: anything that is not a recognisable block yields an
empty ``DocumentMetadata`` and the untouched document as body.
"""

from __future__ import annotations

import re
from typing import Any

import yaml

from .models import DocumentMetadata

# (model field, yaml key) in the order they are written back
_FIELD_KEYS: list[tuple[str, str]] = [
    ("topic_name", "language"),
    ("version", "language_version"),
    ("last_checked", "last_checked"),
    ("content_hash", "resource_hash"),
    ("version_source_url", "version_source_url"),
]

# Keys always emitted, even when empty
_REQUIRED_KEYS = {"language_version", "last_checked", "resource_hash", "version_source_url"}

_FRONTMATTER_RE = re.compile(r"---[ \t]*\r?\n(?P<yaml>.*?)\r?\n---[ \t]*(?:\r?\n|$)", re.DOTALL)
_HEADING_RE = re.compile(r"^(?P<hashes>#{1,6})[ \t]+(?P<title>.+?)[ \t#]*$", re.MULTILINE)
_FENCE_RE = re.compile(r"^(`{3,}|~{3,}).*?^\1[ \t]*$", re.MULTILINE | re.DOTALL)
_URL_RE = re.compile(r"https?://[^\s)>\]\"'`]+")

DEFAULT_REFERENCE_SECTION = "Resources"


# ---------------------------------------------------------------------------
# Parse / serialize
# ---------------------------------------------------------------------------

def parse(document: str) -> tuple[DocumentMetadata, str]:
    """Split *document* into ``(metadata, body)``.

    All scalars are read as strings (``BaseLoader``) so versions like
    ``3.10`` and ISO dates survive unchanged.
    """
    match = _FRONTMATTER_RE.match(document)
    if not match:
        return DocumentMetadata(), document

    try:
        data = yaml.load(match.group("yaml"), Loader=yaml.BaseLoader)
    except yaml.YAMLError:
        return DocumentMetadata(), document
    if not isinstance(data, dict):
        return DocumentMetadata(), document

    values: dict[str, str] = {}
    for field_name, key in _FIELD_KEYS:
        value = data.get(key)
        values[field_name] = value.strip() if isinstance(value, str) else ""

    body = document[match.end():].lstrip("\r\n")
    return DocumentMetadata(**values), body


def serialize(metadata: DocumentMetadata, body: str) -> str:
    """Emit a front-matter block followed by *body*.

    Keys are written in schema order; the output is a pure function of the
    inputs, so ``serialize(*parse(serialize(m, b)))`` reproduces itself.
    """
    data: dict[str, Any] = {}
    for field_name, key in _FIELD_KEYS:
        value = getattr(metadata, field_name)
        if value or key in _REQUIRED_KEYS:
            data[key] = value

    block = yaml.safe_dump(
        data,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=4096,
    ).rstrip("\n")
    return f"---\n{block}\n---\n\n{body}"


def update_metadata(document: str, **changes: str) -> str:
    """Return *document* with the given metadata fields replaced."""
    metadata, body = parse(document)
    return serialize(metadata.model_copy(update=changes), body)


# ---------------------------------------------------------------------------
# Reference URLs
# ---------------------------------------------------------------------------

def extract_reference_urls(
    document: str,
    section: str = DEFAULT_REFERENCE_SECTION,
) -> list[str]:
    """Collect every absolute URL inside the *section* heading.

    The section ends at the next heading of the same or a higher level.
    Returns ``[]`` when the heading is absent.
    """
    # "# comment" lines inside code blocks are not headings
    fences = [(m.start(), m.end()) for m in _FENCE_RE.finditer(document)]
    headings = [
        m for m in _HEADING_RE.finditer(document)
        if not any(a <= m.start() < b for a, b in fences)
    ]
    start = end = None
    level = 0
    for m in headings:
        depth = len(m.group("hashes"))
        if start is None:
            if m.group("title").strip() == section:
                start, level = m.end(), depth
            continue
        if depth <= level:
            end = m.start()
            break

    if start is None:
        return []

    text = document[start:end]
    urls: list[str] = []
    for raw in _URL_RE.findall(text):
        url = raw.rstrip(".,;:!?")
        if url not in urls:
            urls.append(url)
    return urls
