"""The verification toolbelt handed to the evaluation agent.

``VerificationToolbelt`` wraps the shared HTTP client and exposes the five
verification tools both as plain coroutines (for code and tests) and as
``AgentTool`` bindings (for the agent's tool loop). None of the tools keep
state between calls, so the agent may call them in any order, any number
of times.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from . import frontmatter_tools, hash_tools, resource_tools, version_tools
from .contracts import (
    CHECK_LATEST_VERSION,
    CHECK_RESOURCE_URLS,
    COMPARE_CONTENT_HASH,
    FETCH_URL_CONTENT,
    READ_FRONTMATTER,
    AgentTool,
)
from .hash_tools import HashComparison
from .resource_tools import ReachabilityResult
from .version_tools import VersionCheckResult


class VerificationToolbelt:
    """Reachability, fetch, version and hash tools over one HTTP client.

    Parameters
    ----------
    client
        Long-lived ``httpx.AsyncClient`` (see ``create_http_client``).
    cancel_event
        Optional run-scoped signal; when set, in-flight requests are
        aborted and reported as cancelled.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        self.client = client
        self.cancel_event = cancel_event

    def bind(self, cancel_event: asyncio.Event | None) -> VerificationToolbelt:
        """Return a view over the same client bound to *cancel_event*."""
        return VerificationToolbelt(self.client, cancel_event=cancel_event)

    # -- Tools ---------------------------------------------------------------

    async def check_reachability(self, urls: str | list[str]) -> list[ReachabilityResult]:
        return await resource_tools.check_reachability(
            self.client, urls, cancel_event=self.cancel_event,
        )

    async def fetch_full_content(self, url: str) -> str:
        return await resource_tools.fetch_full_content(
            self.client, url, cancel_event=self.cancel_event,
        )

    async def detect_latest_stable_version(
        self,
        source_url: str,
        current_version: str,
        topic_name: str,
    ) -> VersionCheckResult:
        return await version_tools.detect_latest_stable_version(
            self.client, source_url, current_version, topic_name,
            cancel_event=self.cancel_event,
        )

    @staticmethod
    def compare_content_hash(content: str, stored_hash: str = "") -> HashComparison:
        return hash_tools.compare_content_hash(content, stored_hash)

    @staticmethod
    def read_frontmatter(markdown_content: str) -> dict[str, Any]:
        return frontmatter_tools.read_frontmatter(markdown_content)

    # -- Agent bindings ------------------------------------------------------

    def agent_tools(self) -> list[AgentTool]:
        """Bind every verification contract to this toolbelt."""

        async def _read_frontmatter(params: dict[str, Any]) -> Any:
            return self.read_frontmatter(params["markdown_content"])

        async def _check_urls(params: dict[str, Any]) -> Any:
            results = await self.check_reachability(params["urls"])
            return [r.model_dump() for r in results]

        async def _fetch(params: dict[str, Any]) -> Any:
            return await self.fetch_full_content(params["url"])

        async def _check_version(params: dict[str, Any]) -> Any:
            result = await self.detect_latest_stable_version(
                params["version_source_url"],
                params.get("current_version", ""),
                params.get("language_name", ""),
            )
            return result.model_dump()

        async def _compare_hash(params: dict[str, Any]) -> Any:
            return self.compare_content_hash(
                params["content"], params.get("stored_hash", ""),
            ).model_dump()

        return [
            AgentTool(READ_FRONTMATTER, _read_frontmatter),
            AgentTool(CHECK_RESOURCE_URLS, _check_urls),
            AgentTool(FETCH_URL_CONTENT, _fetch),
            AgentTool(CHECK_LATEST_VERSION, _check_version),
            AgentTool(COMPARE_CONTENT_HASH, _compare_hash),
        ]
