"""Version tool — check_latest_version.

Scrapes a release page for dotted version numbers and drops prereleases.
Deciding whether a candidate is *newer* than the tracked version is left to
the calling agent; release pages are too varied for a reliable rule here.
"""

from __future__ import annotations

import asyncio
import re
from typing import Optional

import httpx
from pydantic import BaseModel, Field

from .http import RequestCancelled, is_absolute_http_url, run_cancellable
from .resource_tools import describe_error, read_prefix

PAGE_CHARS = 8_000
SNIPPET_CHARS = 3_000
MAX_VERSIONS = 10

# 3.13, 3.13.1, 1.2.3.4 plus an attached suffix such as "b1", "-rc1", "-nightly"
_VERSION_RE = re.compile(
    r"(?<![\w.])v?(?P<core>\d+\.\d+(?:\.\d+){0,2})(?P<suffix>[-+._]?[A-Za-z][\w.-]*)?"
)
_TOKEN_RE = re.compile(r"[A-Za-z]+\d*")
_PRERELEASE_RE = re.compile(
    r"(?:alpha|beta|rc|preview|dev|canary|nightly|pre|snapshot|insider)",
    re.IGNORECASE,
)
_SHORT_PRERELEASE_RE = re.compile(r"[ab]\d+", re.IGNORECASE)   # PEP 440 "b1", "a2"
# "3.14.0 beta 4", "2.0.0 (RC1)": the marker is the next word on the same line
_SPACED_PRERELEASE_RE = re.compile(
    r"[ \t]+\(?(?P<marker>(?:alpha|beta|rc|preview|dev|canary|nightly|pre|snapshot|insider)"
    r"(?:[.-]?\d+)*(?:[ \t]+\d+)?)\b",
    re.IGNORECASE,
)


class VersionCheckResult(BaseModel):
    """Stable version candidates found on a version source page."""
    topic_name: str
    current_version: str
    stable_versions_found: list[str] = Field(default_factory=list)
    page_snippet: str = ""
    error: Optional[str] = None


def is_prerelease(candidate: str) -> bool:
    """True if *candidate* carries a prerelease marker after its numeric part."""
    m = _VERSION_RE.match(candidate)
    suffix = candidate[m.end("core"):] if m else candidate
    for token in _TOKEN_RE.findall(suffix):
        if _PRERELEASE_RE.match(token) or _SHORT_PRERELEASE_RE.fullmatch(token):
            return True
    return False


def extract_version_candidates(text: str) -> list[str]:
    """Every version-like string in *text*, suffix included, in page order.

    A prerelease word separated from the number by spaces is kept with it
    (``"3.14.0 beta 4"``) so that ``is_prerelease`` can see it.
    """
    candidates: list[str] = []
    for m in _VERSION_RE.finditer(text):
        candidate = m.group(0).lstrip("v")
        if not m.group("suffix"):
            spaced = _SPACED_PRERELEASE_RE.match(text, m.end())
            if spaced:
                candidate = f"{candidate} {spaced.group('marker')}"
        candidates.append(candidate)
    return candidates


def filter_stable_versions(candidates: list[str], limit: int = MAX_VERSIONS) -> list[str]:
    """Drop prereleases, strip non-prerelease suffixes, de-duplicate."""
    stable: list[str] = []
    for candidate in candidates:
        if is_prerelease(candidate):
            continue
        m = _VERSION_RE.match(candidate)
        core = m.group("core") if m else candidate
        if core not in stable:
            stable.append(core)
        if len(stable) >= limit:
            break
    return stable


async def _fetch_page(client: httpx.AsyncClient, url: str) -> tuple[int, str, str]:
    async with client.stream("GET", url) as response:
        if not response.is_success:
            return response.status_code, response.reason_phrase, ""
        return response.status_code, response.reason_phrase, await read_prefix(response, PAGE_CHARS)


async def detect_latest_stable_version(
    client: httpx.AsyncClient,
    source_url: str,
    current_version: str,
    topic_name: str,
    *,
    cancel_event: asyncio.Event | None = None,
) -> VersionCheckResult:
    """Fetch *source_url* and list the stable versions it mentions."""
    result = VersionCheckResult(topic_name=topic_name, current_version=current_version)
    if not is_absolute_http_url(source_url):
        result.error = f"Invalid URL format - {source_url!r} is not an absolute http(s) URL"
        return result

    try:
        status, reason, page = await run_cancellable(_fetch_page(client, source_url), cancel_event)
    except (httpx.HTTPError, httpx.InvalidURL, RequestCancelled) as exc:
        result.error = describe_error(exc).removeprefix("Error: ")
        return result

    if not page and not 200 <= status < 300:
        result.error = f"HTTP {status} {reason}".rstrip()
        return result

    result.stable_versions_found = filter_stable_versions(extract_version_candidates(page))
    result.page_snippet = page[:SNIPPET_CHARS]
    return result
