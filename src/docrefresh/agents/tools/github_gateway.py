"""Remote tool gateway — the GitHub MCP server, filtered for publishing.

Connects to the GitHub remote MCP endpoint over streamable HTTP with a
bearer token and exposes only the three tools the publishing agent needs.
The upstream ``repos`` + ``pull_requests`` toolsets expose dozens of tools;
offering all of them to a single chat completion makes the call less
reliable, so everything else is filtered out before it reaches the agent.

The connection is opened lazily on first use, guarded by one lock, and
cached for the lifetime of the process::

    async with GithubToolGateway(token) as gateway:
        tools = await gateway.get_tools()
        await gateway.call_tool("create_branch", {...})
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Callable

from mcp import ClientSession, types
from mcp.client.streamable_http import streamablehttp_client

from .contracts import AgentTool, ToolContract

log = logging.getLogger("docrefresh.gateway")

DEFAULT_ENDPOINT = "https://api.githubcopilot.com/mcp/"
DEFAULT_TOOLSETS = "repos,pull_requests"

ALLOWED_TOOLS: tuple[str, ...] = (
    "create_branch",        # repos toolset
    "push_files",           # repos toolset, one commit for all files
    "create_pull_request",  # pull_requests toolset
)

Connector = Callable[[], AsyncContextManager[ClientSession]]


class GatewayError(Exception):
    """The remote tool service could not be reached or refused a call."""


@asynccontextmanager
async def streamable_http_session(
    endpoint: str,
    headers: dict[str, str],
) -> AsyncIterator[ClientSession]:
    """Open an initialised MCP client session over streamable HTTP."""
    async with streamablehttp_client(endpoint, headers=headers) as (read, write, _):
        async with ClientSession(read, write) as session:
            await session.initialize()
            yield session


class GithubToolGateway:
    """Lazily connected, filtered client for the GitHub MCP server.

    Parameters
    ----------
    token
        GitHub token sent as ``Authorization: Bearer``.
    endpoint
        MCP endpoint URL.
    toolsets
        Value of the ``X-MCP-Toolsets`` header limiting the upstream catalog.
    allowed_tools
        Tool names offered to the agent (case-insensitive).
    connector
        Factory returning an async context manager that yields an
        initialised ``ClientSession``; defaults to streamable HTTP.
    """

    def __init__(
        self,
        token: str,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        toolsets: str = DEFAULT_TOOLSETS,
        allowed_tools: tuple[str, ...] = ALLOWED_TOOLS,
        connector: Connector | None = None,
    ) -> None:
        if not token:
            raise GatewayError("A GitHub token is required for the remote tool gateway.")
        self.endpoint = endpoint
        self.toolsets = toolsets
        self.allowed_tools = {name.lower() for name in allowed_tools}
        self._token = token
        self._connector = connector or (
            lambda: streamable_http_session(self.endpoint, self._headers())
        )

        self._init_lock = asyncio.Lock()
        self._stack: AsyncExitStack | None = None
        self._session: ClientSession | None = None
        self._tools: list[types.Tool] | None = None
        self._closed = False

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "X-MCP-Toolsets": self.toolsets,
        }

    @property
    def connected(self) -> bool:
        return self._session is not None

    # -- Connection ----------------------------------------------------------

    async def get_tools(self) -> list[types.Tool]:
        """Return the filtered remote tools, connecting on first call."""
        if self._tools is not None:
            return self._tools

        async with self._init_lock:
            # another caller may have connected while we waited
            if self._tools is not None:
                return self._tools
            if self._closed:
                raise GatewayError("Remote tool gateway is closed.")

            stack = AsyncExitStack()
            try:
                session = await stack.enter_async_context(self._connector())
                listed = await session.list_tools()
            except Exception as exc:
                await stack.aclose()
                raise GatewayError(f"Could not connect to {self.endpoint}: {exc}") from exc

            tools = [t for t in listed.tools if t.name.lower() in self.allowed_tools]
            missing = self.allowed_tools - {t.name.lower() for t in tools}
            if missing:
                log.warning("Remote tool catalog is missing: %s", ", ".join(sorted(missing)))
            log.info(
                "Connected to %s: exposing %d of %d remote tools",
                self.endpoint, len(tools), len(listed.tools),
            )

            self._stack, self._session, self._tools = stack, session, tools
            return tools

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> str:
        """Invoke an allowed remote tool and return its text output."""
        if name.lower() not in self.allowed_tools:
            raise GatewayError(f"Tool not exposed by the gateway: {name}")
        await self.get_tools()
        assert self._session is not None

        result = await self._session.call_tool(name, arguments)
        text = "\n".join(
            block.text for block in result.content if isinstance(block, types.TextContent)
        )
        if result.isError:
            raise GatewayError(f"Remote tool {name} failed: {text or 'no details'}")
        return text

    async def agent_tools(self) -> list[AgentTool]:
        """Wrap the filtered remote tools as agent tool bindings."""
        bindings: list[AgentTool] = []
        for tool in await self.get_tools():
            contract = ToolContract(
                name=tool.name,
                description=tool.description or "",
                category="repository",
                input_schema=tool.inputSchema or {"type": "object", "properties": {}},
            )
            bindings.append(AgentTool(contract, self._binding(tool.name)))
        return bindings

    def _binding(self, name: str) -> Callable[[dict[str, Any]], Any]:
        async def _call(params: dict[str, Any]) -> Any:
            text = await self.call_tool(name, params)
            try:
                return json.loads(text)
            except json.JSONDecodeError:
                return text
        return _call

    # -- Disposal ------------------------------------------------------------

    async def aclose(self) -> None:
        """Release the connection; the gateway cannot be reused afterwards."""
        async with self._init_lock:
            self._closed = True
            stack, self._stack = self._stack, None
            self._session = None
            self._tools = None
        if stack is not None:
            await stack.aclose()

    async def __aenter__(self) -> GithubToolGateway:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
