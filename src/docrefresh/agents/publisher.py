"""Publishing agent — turns aggregated verdicts into one pull request.

Uses only the remote gateway tools (``create_branch``, ``push_files``,
``create_pull_request``) and must open exactly one branch, one commit and
one pull request per run.
"""

from __future__ import annotations

import logging
from pathlib import PurePosixPath, PureWindowsPath

from openai import AsyncOpenAI
from pydantic import BaseModel, ConfigDict, Field

from ..core.models import PublishResult, Verdict
from .base import AgentBase, AgentRole
from .llm_client import DEFAULT_MODEL
from .tools.github_gateway import GithubToolGateway

logger = logging.getLogger("docrefresh.agents.publisher")

DEFAULT_PATH_ANCHOR = "Languages"


class PublishOutput(BaseModel):
    """Final JSON reply of the publishing agent."""

    model_config = ConfigDict(populate_by_name=True)

    pr_url: str = Field(alias="prUrl")


def repository_path(file_path: str, anchor: str = DEFAULT_PATH_ANCHOR) -> str:
    """Return *file_path* relative to the repository, with forward slashes.

    The path starts at the first component equal to *anchor*
    (case-insensitive); without a match the whole path is kept.
    """
    parts = PureWindowsPath(file_path).parts if "\\" in file_path else PurePosixPath(file_path).parts
    lowered = anchor.lower()
    for idx, part in enumerate(parts):
        if part.lower() == lowered:
            return "/".join(parts[idx:])
    return file_path.replace("\\", "/")


class PublishingAgent(AgentBase):
    """Opens a single pull request for every update in a run.

    Parameters
    ----------
    gateway
        Remote tool gateway restricted to branch, push and pull-request tools.
    client
        Async chat-completions client.
    repo_owner, repo_name, default_branch
        Target repository and base branch.
    path_anchor
        Directory name where repository-relative paths begin.
    """

    def __init__(
        self,
        gateway: GithubToolGateway,
        client: AsyncOpenAI,
        model: str = DEFAULT_MODEL,
        *,
        repo_owner: str,
        repo_name: str,
        default_branch: str = "main",
        path_anchor: str = DEFAULT_PATH_ANCHOR,
        **kwargs,
    ) -> None:
        super().__init__(
            AgentRole.PUBLISHER,
            client=client,
            model=model,
            instructions=self._instructions(repo_owner, repo_name, default_branch),
            **kwargs,
        )
        self.gateway = gateway
        self.repo_owner = repo_owner
        self.repo_name = repo_name
        self.default_branch = default_branch
        self.path_anchor = path_anchor

    @staticmethod
    def _instructions(owner: str, repo: str, branch: str) -> str:
        return f"""\
You publish documentation updates to the GitHub repository {owner}/{repo}.
For every request:
1. Create ONE new branch from "{branch}" named docs/update-<date>.
2. Push ALL updated files to that branch in a single commit with push_files.
3. Open ONE pull request from the new branch into "{branch}" whose body lists
   every file and its change summary.
Never push to "{branch}" directly and never open more than one pull request.
Reply with a JSON object: {{"prUrl": "<url of the pull request>"}}.
"""

    def build_prompt(self, verdicts: list[Verdict], run_date: str) -> str:
        """Render the publish instruction for the actionable *verdicts*."""
        updates = [v for v in verdicts if v.is_actionable]
        lines = [
            f"Create a pull request for the following {len(updates)} "
            f"document updates dated {run_date}.",
            "",
            "## Files to update",
            "",
        ]
        for v in updates:
            lines += [
                f"### {v.topic_name}",
                f"- File path: `{repository_path(v.file_path, self.path_anchor)}`",
                f"- Change summary: {v.change_summary}",
                "- Updated content:",
                "```markdown",
                v.updated_content,
                "```",
                "",
            ]
        return "\n".join(lines)

    async def publish(self, prompt: str) -> PublishResult:
        """Run the tool loop over the gateway tools and return the PR locator."""
        tools = await self.gateway.agent_tools()
        run = await self.invoke(prompt, tools=tools, output_model=PublishOutput)
        output: PublishOutput = run.output
        logger.info(
            "Pull request created: %s (%d tool calls, %d turns)",
            output.pr_url, len(run.tool_calls), run.turns,
        )
        return PublishResult(change_request_url=output.pr_url)
