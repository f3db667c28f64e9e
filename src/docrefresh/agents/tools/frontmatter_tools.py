"""Front-matter tool — read_frontmatter."""

from __future__ import annotations

from typing import Any

from ...core import frontmatter


def read_frontmatter(markdown_content: str) -> dict[str, Any]:
    """Metadata, reference URLs and body size of a tracked document."""
    metadata, body = frontmatter.parse(markdown_content)
    return {
        "language": metadata.topic_name,
        "language_version": metadata.version,
        "last_checked": metadata.last_checked,
        "resource_hash": metadata.content_hash,
        "version_source_url": metadata.version_source_url,
        "resource_urls": frontmatter.extract_reference_urls(markdown_content),
        "body_line_count": len(body.split("\n")),
        "has_frontmatter": not metadata.is_empty,
    }
