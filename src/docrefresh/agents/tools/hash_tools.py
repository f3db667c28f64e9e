"""Content hash tool — compare_content_hash."""

from __future__ import annotations

import hashlib

from pydantic import BaseModel


class HashComparison(BaseModel):
    new_hash: str
    stored_hash: str
    has_changed: bool
    is_first_check: bool


def compute_hash(content: str) -> str:
    """SHA-256 of the UTF-8 encoded content, lowercase hex."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def compare_content_hash(content: str, stored_hash: str = "") -> HashComparison:
    """Hash *content* and compare it with *stored_hash* (case-insensitive).

    An empty stored hash is a first check: nothing to compare against, so
    ``has_changed`` stays false.
    """
    new_hash = compute_hash(content)
    stored_hash = stored_hash or ""
    is_first_check = not stored_hash
    return HashComparison(
        new_hash=new_hash,
        stored_hash=stored_hash,
        has_changed=not is_first_check and stored_hash.lower() != new_hash,
        is_first_check=is_first_check,
    )
