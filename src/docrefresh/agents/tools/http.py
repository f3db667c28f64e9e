"""Shared HTTP plumbing for the verification tools.

One ``httpx.AsyncClient`` is created at process start and handed to the
toolbelt; it is connection-pooled and carries no per-call state, so the
tools can share it across concurrent agent calls without locking.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, TypeVar

import httpx

from ... import __version__

T = TypeVar("T")

USER_AGENT = f"docrefresh-update-worker/{__version__}"
DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_CONNECTIONS = 10


class RequestCancelled(Exception):
    """Raised inside the toolbelt when the run-scoped cancel signal fires."""


def create_http_client(
    timeout: float = DEFAULT_TIMEOUT,
    max_connections: int = DEFAULT_MAX_CONNECTIONS,
    **kwargs: Any,
) -> httpx.AsyncClient:
    """Build the long-lived client used by every verification tool."""
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT},
        limits=httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_connections,
        ),
        **kwargs,
    )


def is_absolute_http_url(url: str) -> bool:
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError):
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.host)


async def run_cancellable(
    awaitable: Awaitable[T],
    cancel_event: asyncio.Event | None,
) -> T:
    """Await *awaitable*, aborting it when *cancel_event* is set.

    Raises ``RequestCancelled`` instead of letting the abort escape as an
    ``asyncio.CancelledError``; cancellation of the calling task itself
    still propagates normally.
    """
    if cancel_event is None:
        return await awaitable

    task = asyncio.ensure_future(awaitable)
    if cancel_event.is_set():
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise RequestCancelled()

    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        waiter.cancel()
        raise
    waiter.cancel()
    if task.done():
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    raise RequestCancelled()
