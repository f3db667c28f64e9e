"""Discover tracked documents on disk.

Layout convention: one subdirectory per topic, each holding one or more
``*-best-practices.md`` files::

    topics/
      Python/python-best-practices.md
      Go/go-best-practices.md
"""

from __future__ import annotations

import logging
from pathlib import Path

from .models import WorkItem

log = logging.getLogger("docrefresh.discovery")

DEFAULT_PATTERN = "*-best-practices.md"


def discover_documents(
    topics_dir: Path | str,
    pattern: str = DEFAULT_PATTERN,
) -> list[tuple[str, Path]]:
    """Return ``(topic_name, path)`` pairs in a stable, sorted order."""
    root = Path(topics_dir).expanduser()
    if not root.is_dir():
        raise FileNotFoundError(f"Topics directory not found: {root}")

    found: list[tuple[str, Path]] = []
    for topic_dir in sorted(p for p in root.iterdir() if p.is_dir()):
        for path in sorted(topic_dir.glob(pattern)):
            if path.is_file():
                found.append((topic_dir.name, path))
    return found


def discover_work_items(
    topics_dir: Path | str,
    pattern: str = DEFAULT_PATTERN,
) -> list[WorkItem]:
    """Read every tracked document into a ``WorkItem``."""
    items: list[WorkItem] = []
    for topic, path in discover_documents(topics_dir, pattern):
        items.append(WorkItem(
            topic_name=topic,
            file_path=str(path.resolve()),
            current_content=path.read_text(encoding="utf-8"),
        ))
    log.info("Discovered %d document(s) for update checking", len(items))
    return items
