"""Process wiring for the update worker.

``UpdateWorker`` creates the long-lived shared resources once (reasoning
client, toolbelt HTTP client, remote tool gateway, journal store), builds
the agents and the engine on top of them, and releases everything on exit::

    async with UpdateWorker(load_settings()) as worker:
        result = await worker.run_once()
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import Any, Optional

import httpx
from openai import AsyncOpenAI

from .agents.evaluator import EvaluationAgent
from .agents.llm_client import create_client
from .agents.orchestrator import UpdateOrchestrator
from .agents.publisher import PublishingAgent
from .agents.tools.github_gateway import Connector, GithubToolGateway
from .agents.tools.http import create_http_client
from .agents.tools.toolbelt import VerificationToolbelt
from .config import UpdateWorkerSettings
from .core.journal import JournalStore
from .core.models import RunResult
from .scheduler import ScheduleTrigger

log = logging.getLogger("docrefresh.worker")


class UpdateWorker:
    """Owns the shared clients, agents, engine and schedule trigger.

    Parameters
    ----------
    settings
        Resolved worker settings.
    llm_client, http_client
        Pre-built clients to use instead of creating (and owning) new ones.
    gateway_connector
        Session factory for the remote tool gateway, mainly for tests.
    """

    def __init__(
        self,
        settings: UpdateWorkerSettings,
        *,
        llm_client: AsyncOpenAI | None = None,
        http_client: httpx.AsyncClient | None = None,
        gateway_connector: Connector | None = None,
    ) -> None:
        self.settings = settings.clamped()
        self._llm = llm_client
        self._http = http_client
        self._gateway_connector = gateway_connector
        self._stack = AsyncExitStack()

        self.gateway: Optional[GithubToolGateway] = None
        self.orchestrator: Optional[UpdateOrchestrator] = None
        self.trigger: Optional[ScheduleTrigger] = None

    async def __aenter__(self) -> UpdateWorker:
        s = self.settings
        try:
            if self._llm is None:
                issues = s.reasoning_issues()
                if issues:
                    raise RuntimeError(
                        "No reasoning service configured. Set " + ", ".join(issues) + "."
                    )
                self._llm = create_client(
                    api_key=(s.azure_openai_key if s.azure_openai_endpoint else s.openai_api_key) or None,
                    base_url=s.openai_base_url or None,
                    azure_endpoint=s.azure_openai_endpoint or None,
                    azure_api_version=s.azure_openai_api_version,
                )
                self._stack.push_async_callback(self._llm.close)

            if self._http is None:
                self._http = create_http_client(timeout=s.http_timeout)
                self._stack.push_async_callback(self._http.aclose)

            evaluator = EvaluationAgent(
                VerificationToolbelt(self._http), self._llm, s.model,
            )
            publisher, disabled_reason = self._build_publisher()

            self.orchestrator = UpdateOrchestrator(
                evaluator,
                publisher,
                journal_store=JournalStore(s.state_dir),
                failure_policy=s.failure_policy,
                publish_disabled_reason=disabled_reason,
            )
            self.trigger = ScheduleTrigger(s, self.orchestrator)
        except BaseException:
            await self._stack.aclose()
            raise
        return self

    def _build_publisher(self) -> tuple[Optional[PublishingAgent], str]:
        s = self.settings
        missing = s.publishing_issues()
        if missing:
            reason = "Publishing disabled: missing " + ", ".join(missing)
            log.warning("%s; documents will be evaluated but not published", reason)
            return None, reason

        self.gateway = GithubToolGateway(
            s.github_token,
            endpoint=s.github_mcp_endpoint,
            toolsets=s.github_mcp_toolsets,
            connector=self._gateway_connector,
        )
        self._stack.push_async_callback(self.gateway.aclose)
        publisher = PublishingAgent(
            self.gateway,
            self._llm,
            s.model,
            repo_owner=s.github_repo_owner,
            repo_name=s.github_repo_name,
            default_branch=s.default_branch,
            path_anchor=s.path_anchor,
        )
        return publisher, ""

    async def __aexit__(self, *exc_info: Any) -> None:
        await self._stack.aclose()

    # -- Operations ----------------------------------------------------------

    def _require_started(self) -> tuple[UpdateOrchestrator, ScheduleTrigger]:
        if self.orchestrator is None or self.trigger is None:
            raise RuntimeError("UpdateWorker must be used as an async context manager")
        return self.orchestrator, self.trigger

    async def run_once(self, *, cancel_event: asyncio.Event | None = None) -> Optional[RunResult]:
        """Discover documents and run one update pass now."""
        _, trigger = self._require_started()
        return await trigger.fire(cancel_event=cancel_event)

    async def resume(
        self,
        instance_id: str,
        *,
        retry_failed: bool = False,
        cancel_event: asyncio.Event | None = None,
    ) -> RunResult:
        """Resume a journaled run; completed steps are replayed, not re-run.

        With *retry_failed* recorded failures are evaluated again.
        """
        orchestrator, _ = self._require_started()
        return await orchestrator.resume(
            instance_id, retry_failed=retry_failed, cancel_event=cancel_event,
        )

    async def serve(self, stop_event: asyncio.Event) -> None:
        """Run on the weekly schedule until *stop_event* is set."""
        _, trigger = self._require_started()
        await trigger.serve(stop_event)
