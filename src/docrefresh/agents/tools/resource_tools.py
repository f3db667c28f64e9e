"""Resource tools — check_resource_urls, fetch_url_content.

Both tools report network trouble in their result instead of raising, so
the evaluation agent can reason about a broken link the same way it
reasons about a healthy one.
"""

from __future__ import annotations

import asyncio

import httpx
from pydantic import BaseModel

from .http import RequestCancelled, is_absolute_http_url, run_cancellable

SNIPPET_CHARS = 500
FULL_CONTENT_CHARS = 10_000

TIMEOUT_MESSAGE = "Error: Request timed out"
CANCELLED_MESSAGE = "Error: Request cancelled"


class ReachabilityResult(BaseModel):
    """Outcome of requesting a single reference URL."""
    url: str
    status_code: int = 0
    is_accessible: bool = False
    snippet: str = ""


def split_urls(urls: str | list[str]) -> list[str]:
    """Accept a comma-separated string or a list; drop blanks."""
    if isinstance(urls, str):
        urls = urls.split(",")
    return [u.strip() for u in urls if u and u.strip()]


def describe_error(exc: BaseException) -> str:
    """Map an expected request failure to the message reported to agents."""
    if isinstance(exc, RequestCancelled):
        return CANCELLED_MESSAGE
    if isinstance(exc, httpx.TimeoutException):
        return TIMEOUT_MESSAGE
    if isinstance(exc, (httpx.InvalidURL, httpx.UnsupportedProtocol)):
        return f"Error: Invalid URL format - {exc}"
    return f"Error: {exc}"


async def read_prefix(response: httpx.Response, limit: int) -> str:
    """Read at most about *limit* characters of a streamed body."""
    chunks: list[str] = []
    size = 0
    async for chunk in response.aiter_text():
        chunks.append(chunk)
        size += len(chunk)
        if size >= limit:
            break
    return "".join(chunks)[:limit]


# ---------------------------------------------------------------------------
# check_resource_urls
# ---------------------------------------------------------------------------

async def _check_url(client: httpx.AsyncClient, url: str) -> ReachabilityResult:
    # headers first; the body is only read for successful responses
    async with client.stream("GET", url) as response:
        snippet = ""
        if response.is_success:
            snippet = await read_prefix(response, SNIPPET_CHARS)
        return ReachabilityResult(
            url=url,
            status_code=response.status_code,
            is_accessible=response.is_success,
            snippet=snippet,
        )


async def check_reachability(
    client: httpx.AsyncClient,
    urls: str | list[str],
    *,
    cancel_event: asyncio.Event | None = None,
) -> list[ReachabilityResult]:
    """Request each URL once and report status plus a short snippet."""
    results: list[ReachabilityResult] = []
    for url in split_urls(urls):
        if not is_absolute_http_url(url):
            results.append(ReachabilityResult(
                url=url,
                snippet=f"Error: Invalid URL format - {url!r} is not an absolute http(s) URL",
            ))
            continue
        try:
            results.append(await run_cancellable(_check_url(client, url), cancel_event))
        except (httpx.HTTPError, httpx.InvalidURL, RequestCancelled) as exc:
            results.append(ReachabilityResult(url=url, snippet=describe_error(exc)))
    return results


# ---------------------------------------------------------------------------
# fetch_url_content
# ---------------------------------------------------------------------------

async def _fetch(client: httpx.AsyncClient, url: str, limit: int) -> str:
    async with client.stream("GET", url) as response:
        if not response.is_success:
            return f"Error: HTTP {response.status_code} {response.reason_phrase}".rstrip()
        return await read_prefix(response, limit)


async def fetch_full_content(
    client: httpx.AsyncClient,
    url: str,
    *,
    limit: int = FULL_CONTENT_CHARS,
    cancel_event: asyncio.Event | None = None,
) -> str:
    """Fetch a page body, truncated to *limit* characters."""
    if not is_absolute_http_url(url):
        return f"Error: Invalid URL format - {url!r} is not an absolute http(s) URL"
    try:
        return await run_cancellable(_fetch(client, url, limit), cancel_event)
    except (httpx.HTTPError, httpx.InvalidURL, RequestCancelled) as exc:
        return describe_error(exc)
